#!/usr/bin/env python3
"""Command-line interface for the event harvester.

Commands:
  - event-harvester serve     : Run the cron scheduler until interrupted
  - event-harvester run       : Run a crawl now (all sources or --source ...)
  - event-harvester history   : List recent crawl jobs
  - event-harvester job       : Show one crawl job
  - event-harvester sources   : List configured sources and schedule buckets
  - event-harvester validate  : Validate the sources/schedules file

Typical usage:
  event-harvester run --source "Smithsonian Events"
  event-harvester validate --config my_sources.yaml --strict
"""

from __future__ import annotations

import argparse
import json
import signal
import sys
import threading
from contextlib import ExitStack, contextmanager
from typing import Iterator

from event_harvester import __version__
from event_harvester.configs.loader import LoadOptions, LoadResult, load_sources
from event_harvester.configs.settings import Settings, get_settings
from event_harvester.ingestion.extraction.ai_extractor import AIEventExtractor
from event_harvester.ingestion.extraction.llm_client import create_llm_client
from event_harvester.ingestion.job_tracker import JobTracker
from event_harvester.ingestion.scheduler import CrawlScheduler
from event_harvester.monitoring.logging import LoggingOptions, setup_logging
from event_harvester.runtime.errors import HarvesterError
from event_harvester.storage.event_store import EventStore, InMemoryEventStore, PostgresEventStore
from event_harvester.storage.workflow import HttpWorkflowExecutor, InMemoryWorkflowExecutor, WorkflowExecutor


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="event-harvester", description="Event Harvester CLI")
    p.add_argument("--version", action="store_true", help="Print version and exit")
    p.add_argument("--config", "-c", default=None, help="Path to sources YAML (defaults to the bundled file)")
    p.add_argument("--json-logs", action="store_true", help="Emit JSON logs")
    p.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    sub = p.add_subparsers(dest="cmd")

    # serve
    sub.add_parser("serve", help="Run scheduled crawls until interrupted")

    # run
    pr = sub.add_parser("run", help="Run a crawl now")
    pr.add_argument(
        "--source", "-s", dest="sources", action="append", default=None,
        help="Source name to crawl (repeatable); all sources when omitted",
    )

    # history
    ph = sub.add_parser("history", help="List recent crawl jobs")
    ph.add_argument("--limit", "-n", type=int, default=20, help="Number of jobs to show")

    # job
    pj = sub.add_parser("job", help="Show one crawl job")
    pj.add_argument("job_id", help="Job identifier")

    # sources
    sub.add_parser("sources", help="List configured sources and schedules")

    # validate
    pv = sub.add_parser("validate", help="Validate the sources file")
    pv.add_argument("--strict", action="store_true", help="Treat warnings as errors")
    pv.add_argument("--verbose", "-v", action="store_true", help="Print the load summary")

    return p.parse_args(argv)


# ---------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------


def _make_store(settings: Settings) -> EventStore:
    if settings.DATABASE_URL:
        return PostgresEventStore.from_settings(settings)
    return InMemoryEventStore()


def _make_executor(settings: Settings) -> WorkflowExecutor:
    if settings.WORKFLOW_ENDPOINT:
        api_key = settings.WORKFLOW_API_KEY.get_secret_value() if settings.WORKFLOW_API_KEY else None
        return HttpWorkflowExecutor(
            settings.WORKFLOW_ENDPOINT, api_key=api_key, timeout_s=settings.WORKFLOW_TIMEOUT_S
        )
    return InMemoryWorkflowExecutor()


@contextmanager
def _build_scheduler(settings: Settings, loaded: LoadResult) -> Iterator[CrawlScheduler]:
    """Create the scheduler and close its collaborators on exit."""
    from event_harvester.ingestion.adapters.playwright_adapter import PlaywrightPageAutomation

    with ExitStack() as stack:
        store = stack.enter_context(_make_store(settings))
        executor = stack.enter_context(_make_executor(settings))
        automation = stack.enter_context(PlaywrightPageAutomation.from_settings(settings))
        llm_client = create_llm_client(settings)
        ai_extractor = (
            AIEventExtractor(llm_client, max_text_chars=settings.AI_MAX_TEXT_CHARS) if llm_client else None
        )
        yield CrawlScheduler(
            loaded.sources,
            loaded.schedules,
            executor=executor,
            automation=automation,
            ai_extractor=ai_extractor,
            store=store,
            settings=settings,
        )


def _load(args: argparse.Namespace, settings: Settings, strict: bool = False) -> LoadResult:
    return load_sources(args.config or settings.SOURCES_CONFIG_PATH, LoadOptions(strict=strict))


def _print_job(job) -> None:
    print(json.dumps(job.model_dump(mode="json"), indent=2, ensure_ascii=False))


# ---------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------


def main(argv: list[str] | None = None) -> int:
    """Run the CLI with the given arguments."""
    try:
        return _main_impl(argv)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except HarvesterError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def _main_impl(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    if args.version:
        print(f"event-harvester version {__version__}")
        return 0

    if not args.cmd:
        print("Error: Command required. Use --help for usage info.", file=sys.stderr)
        return 1

    settings = get_settings()
    setup_logging(
        LoggingOptions(
            level=args.log_level or settings.LOG_LEVEL,
            json_logs=bool(args.json_logs or settings.LOG_JSON),
            log_file=settings.LOG_FILE,
        )
    )

    if args.cmd == "validate":
        loaded = _load(args, settings, strict=bool(args.strict))
        for w in loaded.warnings:
            print(f"  - [WARNING] {w}", file=sys.stderr)
        if loaded.ok:
            print(f"Config is VALID ({len(loaded.sources)} sources, {len(loaded.schedules)} schedules).")
            if args.verbose:
                print(json.dumps(loaded.meta, indent=2, ensure_ascii=False))
            return 0
        print("Config is INVALID. Issues found:", file=sys.stderr)
        for e in loaded.errors:
            print(f"  - [ERROR] {e}", file=sys.stderr)
        return 2

    if args.cmd == "sources":
        loaded = _load(args, settings).raise_for_errors()
        print(f"{'SOURCE':<40} {'PAGES':<6} {'BASE URL'}")
        print("-" * 80)
        for s in loaded.sources:
            print(f"{s.name:<40} {len(s.event_urls):<6} {s.base_url}")
        print()
        print(f"{'BUCKET':<10} {'CRON':<15} {'SOURCES'}")
        print("-" * 80)
        for name, bucket in loaded.schedules.items():
            state = "" if bucket.enabled else " (disabled)"
            print(f"{name.value:<10} {bucket.cron:<15} {', '.join(bucket.sources)}{state}")
        return 0

    if args.cmd in ("history", "job"):
        with _make_store(settings) as store:
            tracker = JobTracker(store=store)
            if args.cmd == "job":
                job = tracker.get_job(args.job_id)
                if job is None:
                    print(f"Error: No job {args.job_id}", file=sys.stderr)
                    return 1
                _print_job(job)
                return 0
            jobs = tracker.list_jobs(limit=args.limit)
            if not jobs:
                print("No crawl jobs recorded.")
            for job in jobs:
                print(job.summary())
            return 0

    loaded = _load(args, settings).raise_for_errors()

    if args.cmd == "run":
        with _build_scheduler(settings, loaded) as scheduler:
            summary = scheduler.run_manual(args.sources)
        print("-" * 40)
        print(f"Job:         {summary.job_id} [{summary.status.value}]")
        print(f"Found:       {summary.events_found}")
        print(f"Normalized:  {summary.events_normalized} ({summary.rejected} rejected)")
        print(f"Duplicates:  {summary.duplicates}")
        print(f"Submitted:   {summary.events_saved}")
        if summary.error:
            print(f"Note:        {summary.error}")
        print("-" * 40)
        return 0

    if args.cmd == "serve":
        stop = threading.Event()
        signal.signal(signal.SIGINT, lambda *_: stop.set())
        signal.signal(signal.SIGTERM, lambda *_: stop.set())
        with _build_scheduler(settings, loaded) as scheduler:
            scheduler.serve(stop)
        return 0

    return 1


if __name__ == "__main__":
    raise SystemExit(main())
