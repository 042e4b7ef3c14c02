"""
Ingestion: page adapters, extraction strategy, deduplication, batching,
job tracking and the crawl scheduler.
"""
