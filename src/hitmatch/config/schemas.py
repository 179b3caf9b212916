from __future__ import annotations
from pydantic import BaseModel, Field, field_validator
from typing import Literal, Optional, Dict, Any

class RunCfg(BaseModel):
    """
    Global run controls.
    """

    # Diagnostics
    diagnostics_level: int = 1  # 0=off, 1=minimal, 2=verbose

    # Limits
    max_events: Optional[int] = None

    @field_validator("diagnostics_level")
    def _diag_range(cls, v: int) -> int:
        if v not in (0, 1, 2):
            raise ValueError("diagnostics_level must be 0, 1, or 2")
        return v

    @field_validator("max_events")
    def _max_events_positive(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v < 0:
            raise ValueError("max_events must be >= 0")
        return v

class IOCfg(BaseModel):
    """
    I/O paths and event source description.

    TOML:

    [io]
    input_path  = "..."
    output_path = "..."

    [io.adapter]
    type = "hdf5"      # "hdf5" | "table"
    """

    input_path: str
    output_path: str

    # Adapter-specific sub-config, e.g. [io.adapter]
    adapter: Dict[str, Any] = Field(default_factory=lambda: {"type": "hdf5"})

class MatchingCfg(BaseModel):
    """
    Which upstream producers supply the inputs.

    TOML:

    [matching]
    hit_label      = "gaushit"
    particle_label = "largeant"
    """

    hit_label: str = "gaushit"
    particle_label: str = "largeant"

    @field_validator("hit_label", "particle_label")
    def _non_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("producer labels must be non-empty")
        return v

class VisCfg(BaseModel):
    export_png_on_write: bool = False
    bins: int = 50


class Config(BaseModel):
    """
    Top-level TOML configuration.
    """

    run: RunCfg = Field(default_factory=RunCfg)
    io: IOCfg
    matching: MatchingCfg = Field(default_factory=MatchingCfg)
    vis: VisCfg = Field(default_factory=VisCfg)
