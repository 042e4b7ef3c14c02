# src/event_harvester/configs/config.py
import yaml
from pathlib import Path


class Config:
    """
    Static paths and raw YAML access for the event harvester.
    """

    # This points to src/event_harvester/configs/
    CONFIG_DIR = Path(__file__).parent.resolve()
    SOURCES_CONFIG_PATH = CONFIG_DIR / "sources.yaml"


def read_yaml(path: Path) -> dict:
    if not path.exists():
        raise FileNotFoundError(f"Missing config at {path}")

    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    return data or {}
