"""
hitmatch.physics.backtracker

Truth backtracking: map a reconstructed hit to the simulated particles that
deposited charge in it.

The backtracker is an external collaborator; the matcher only relies on the
`BackTracker` protocol. `TableBackTracker` is the concrete implementation used
by the file adapters and the synthetic generator: it simply looks up
pre-computed records keyed by `Hit.hit_id`.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Protocol, Sequence, Tuple

import numpy as np

from hitmatch.physics.hits import Hit
from hitmatch.physics.particles import ContributionRecord


class BackTracker(Protocol):
    def contributions_of(self, hit: Hit) -> Sequence[ContributionRecord]:
        ...


@dataclass
class TableBackTracker:
    table: Dict[int, List[ContributionRecord]] = field(default_factory=dict)

    @classmethod
    def from_pairs(cls, pairs: Iterable[Tuple[int, ContributionRecord]]) -> "TableBackTracker":
        table: Dict[int, List[ContributionRecord]] = {}
        for hit_id, rec in pairs:
            table.setdefault(int(hit_id), []).append(rec)
        return cls(table=table)

    @classmethod
    def from_arrays(
        cls,
        ide_ptr: np.ndarray,
        track_id: np.ndarray,
        energy: np.ndarray,
        charge: np.ndarray,
        *,
        first_hit: int = 0,
        n_hits: int | None = None,
    ) -> "TableBackTracker":
        """
        Build from CSR-style flat arrays.

        Parameters
        ----------
        ide_ptr : (N_hits_total+1,) int
            Pointers into the flat record arrays, one slot per hit.
        track_id, energy, charge : (M,) arrays
            Flat record columns.
        first_hit : int
            Global index of the first hit of the event; records for hit
            `first_hit + k` are stored under hit_id `k`.
        n_hits : int, optional
            Number of hits of the event (defaults to all remaining hits).
        """
        if n_hits is None:
            n_hits = len(ide_ptr) - 1 - first_hit
        table: Dict[int, List[ContributionRecord]] = {}
        for k in range(n_hits):
            lo, hi = int(ide_ptr[first_hit + k]), int(ide_ptr[first_hit + k + 1])
            if hi <= lo:
                continue
            table[k] = [
                ContributionRecord(int(track_id[j]), float(energy[j]), float(charge[j]))
                for j in range(lo, hi)
            ]
        return cls(table=table)

    def contributions_of(self, hit: Hit) -> Sequence[ContributionRecord]:
        return self.table.get(hit.hit_id, [])
