# src/hitmatch/physics/events.py
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .backtracker import BackTracker, TableBackTracker
from .hits import Hit
from .particles import TruthParticle


class MissingInputError(RuntimeError):
    """Raised when a required input collection is not available in an event."""


@dataclass(slots=True)
class SimEvent:
    """
    One unit of work: the named collections of a single (simulated) event.

    Collections are keyed by the label of the producer that made them, so a
    file can carry several hit finders or particle lists side by side.
    """
    event_id: int
    is_real_data: bool = False
    hits: Dict[str, List[Hit]] = field(default_factory=dict)
    particles: Dict[str, List[TruthParticle]] = field(default_factory=dict)
    backtracker: BackTracker = field(default_factory=TableBackTracker)
    meta: Dict[str, Any] = field(default_factory=dict)

    def get_hits(self, label: str) -> Optional[List[Hit]]:
        """Return the hit collection for `label`, or None if it is absent."""
        return self.hits.get(label)

    def get_valid_particles(self, label: str) -> List[TruthParticle]:
        """
        Return the particle collection for `label`.

        Raise MissingInputError if the collection is absent.
        """
        if label not in self.particles:
            raise MissingInputError(
                f"Event {self.event_id}: no truth particle collection '{label}' "
                f"(available: {sorted(self.particles)})"
            )
        return self.particles[label]
