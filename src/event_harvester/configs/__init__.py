from event_harvester.configs.config import Config
from event_harvester.configs.loader import LoadOptions, LoadResult, load_sources, parse_config
from event_harvester.configs.settings import Settings, get_settings

__all__ = [
    "Config",
    "LoadOptions",
    "LoadResult",
    "Settings",
    "get_settings",
    "load_sources",
    "parse_config",
]
