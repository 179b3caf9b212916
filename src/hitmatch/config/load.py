from __future__ import annotations
from pathlib import Path
from typing import Any, Dict
import json

from .schemas import Config

try:
    import tomllib  # py311+
except ModuleNotFoundError:  # pragma: no cover
    import tomli as tomllib  # py<=310

def load_config(path: str | Path) -> Config:
    """Parse and validate a TOML run configuration."""
    p = Path(path)
    if not p.is_file():
        raise FileNotFoundError(f"Config file not found: {p}")
    return config_from_dict(tomllib.loads(p.read_text()))

def config_from_dict(data: Dict[str, Any]) -> Config:
    return Config(**data)

def snapshot_config_toml(path: str | Path) -> str:
    """Return the raw TOML text for embedding in HDF5 metadata."""
    return Path(path).read_text()

def config_json(cfg: Config) -> str:
    """Compact JSON of the validated config (defaults filled in)."""
    return json.dumps(cfg.model_dump(), separators=(",", ":"), ensure_ascii=False)
