"""Loader for the YAML tuning tables shipped in robopet/data."""

from functools import lru_cache
from pathlib import Path

import yaml

DATA_DIR = Path(__file__).parent.parent / "data"


@lru_cache(maxsize=None)
def load_data(name: str):
    """Load a data YAML file. Cached; callers must not mutate the result."""
    with open(DATA_DIR / name, "r", encoding="utf-8") as f:
        return yaml.safe_load(f)
