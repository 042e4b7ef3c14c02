"""
event_harvester.configs.loader

Load source descriptors and schedule buckets from a YAML file.

The file has two top-level keys:
- ``sources``: a list of SourceConfig objects
- ``schedules``: a mapping of bucket name -> {cron, sources, timezone, enabled}

Validation failures are collected rather than raised so a bad source does
not hide the good ones; ``strict`` turns warnings into errors.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from event_harvester.configs.config import Config, read_yaml
from event_harvester.runtime.errors import ConfigError
from event_harvester.schemas.source import BucketName, ScheduleBucket, SourceConfig

JsonDict = dict[str, Any]


@dataclass(frozen=True)
class LoadOptions:
    strict: bool = False  # treat warnings as errors


@dataclass(frozen=True)
class LoadResult:
    sources: list[SourceConfig]
    schedules: dict[BucketName, ScheduleBucket]
    meta: JsonDict = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def source_map(self) -> dict[str, SourceConfig]:
        return {s.name: s for s in self.sources}

    def raise_for_errors(self) -> "LoadResult":
        if self.errors:
            raise ConfigError("; ".join(self.errors))
        return self


def load_sources(
    config_path: str | Path | None = None,
    options: LoadOptions | None = None,
) -> LoadResult:
    """
    Load and validate sources and schedules.

    Raises nothing for invalid entries; returns ok/not ok via errors list.
    A missing file raises FileNotFoundError.
    """
    options = options or LoadOptions()
    path = Path(config_path).expanduser().resolve() if config_path else Config.SOURCES_CONFIG_PATH
    data = read_yaml(path)
    return parse_config(data, options=options, origin=str(path))


def parse_config(
    data: JsonDict,
    *,
    options: LoadOptions | None = None,
    origin: str = "<memory>",
) -> LoadResult:
    options = options or LoadOptions()
    warnings: list[str] = []
    errors: list[str] = []

    raw_sources = data.get("sources") or []
    if not isinstance(raw_sources, list):
        errors.append(f"{origin}: 'sources' must be a list")
        raw_sources = []

    # Apply enabled filter early (before validation)
    disabled = [d.get("name") for d in raw_sources if isinstance(d, dict) and not d.get("enabled", True)]
    raw_sources = [d for d in raw_sources if not isinstance(d, dict) or d.get("enabled", True)]

    sources: list[SourceConfig] = []
    seen: set[str] = set()
    for d in raw_sources:
        if not isinstance(d, dict):
            errors.append(f"{origin}: source entry must be an object")
            continue
        name = d.get("name", "<no name>")
        try:
            source = SourceConfig.model_validate(d)
        except ValidationError as ve:
            errors.append(f"{name}: {ve}")
            continue
        if source.name in seen:
            warnings.append(f"{source.name}: duplicate source name, later entry ignored")
            continue
        seen.add(source.name)
        sources.append(source)

    schedules: dict[BucketName, ScheduleBucket] = {}
    raw_schedules = data.get("schedules") or {}
    if not isinstance(raw_schedules, dict):
        errors.append(f"{origin}: 'schedules' must be a mapping")
        raw_schedules = {}

    for bucket_name, spec in raw_schedules.items():
        spec = spec or {}
        try:
            bucket = ScheduleBucket.model_validate({"name": bucket_name, **spec})
        except ValidationError as ve:
            errors.append(f"schedule {bucket_name}: {ve}")
            continue
        unknown = [s for s in bucket.sources if s not in seen and s not in disabled]
        for s in unknown:
            warnings.append(f"schedule {bucket_name}: unknown source '{s}'")
        schedules[bucket.name] = bucket

    # strict mode converts warnings -> errors
    if options.strict and warnings:
        errors.extend([f"STRICT: {w}" for w in warnings])

    meta: JsonDict = {
        "file": origin,
        "sources_loaded": len(sources),
        "sources_disabled": [n for n in disabled if n],
        "schedules_loaded": [b.value for b in schedules],
    }
    return LoadResult(
        sources=sources, schedules=schedules, meta=meta, warnings=warnings, errors=errors
    )
