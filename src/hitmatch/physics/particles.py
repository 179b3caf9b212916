# src/hitmatch/physics/particles.py
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, NamedTuple


@dataclass(slots=True)
class TruthParticle:
    """
    Simulated ground-truth particle.

    Only track_id is used for matching; the rest is carried through for
    downstream analysis.
    """
    track_id: int
    pdg: int = 0
    mother: int = 0
    energy: float = 0.0  # initial total energy [GeV]
    extras: Dict[str, Any] = field(default_factory=dict)


class ContributionRecord(NamedTuple):
    """One (hit, particle) truth deposit as reported by the backtracker."""

    track_id: int
    energy: float  # deposited energy [MeV]
    charge: float  # number of ionisation electrons
