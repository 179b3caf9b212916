from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict

@dataclass(slots=True)
class Hit:
    """
    Reconstructed detector hit (signal cluster on one readout channel).

    hit_id: key used by the backtracker to look up truth contributions;
            adapters set it to the hit's position in its collection
    channel: readout channel number
    peak_time: pulse peak time [ticks]
    integral: integrated pulse area [ADC]
    extras: arbitrary per-hit fields preserved from input (wire, plane, rms, ...)
    """
    hit_id: int
    channel: int = -1
    peak_time: float = 0.0
    integral: float = 0.0

    # Preserve raw/source-specific fields without polluting the core schema
    extras: Dict[str, Any] = field(default_factory=dict)
