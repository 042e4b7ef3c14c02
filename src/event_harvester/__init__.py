"""Event harvester: crawl event listings, normalize, deduplicate and deliver."""

__version__ = "0.1.0"
