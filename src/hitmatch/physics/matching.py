# src/hitmatch/physics/matching.py
"""
Hit <-> truth particle matching.

For every hit the backtracker reports the (track_id, energy, charge) deposits
that make it up. Deposits are summed per track id, and each track that can be
resolved to a particle in the event gets one association carrying its share of
the hit's energy and charge, plus flags marking the dominant contributor.
"""
from __future__ import annotations
import sys
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, List, Optional, Sequence

import numpy as np

from .events import MissingInputError, SimEvent
from .hits import Hit
from .particles import ContributionRecord, TruthParticle

ContributionsFn = Callable[[Hit], Sequence[ContributionRecord]]

UNRESOLVED = -1


@dataclass(slots=True)
class MatchData:
    """Metadata of one hit/particle association."""
    hit_index: int
    particle_index: int
    track_id: int
    energy_fraction: float
    charge_fraction: float
    is_max_energy: bool
    is_max_charge: bool
    energy: float
    charge: float


@dataclass
class HitParticleAssns:
    """Ordered (hit, particle, MatchData) relation for one event."""
    entries: List[MatchData] = field(default_factory=list)

    def add_single(self, data: MatchData) -> None:
        self.entries.append(data)

    def for_hit(self, hit_index: int) -> List[MatchData]:
        return [m for m in self.entries if m.hit_index == hit_index]

    def __iter__(self) -> Iterator[MatchData]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)


@dataclass
class MatchDiagnostics:
    events_in: int = 0
    real_data_skipped: int = 0
    missing_hits: int = 0
    hits_in: int = 0
    hits_without_ides: int = 0
    entries_out: int = 0

    def summary(self) -> str:
        return (
            f"events={self.events_in} real_data_skipped={self.real_data_skipped} "
            f"missing_hits={self.missing_hits} hits={self.hits_in} "
            f"hits_without_ides={self.hits_without_ides} assns={self.entries_out}"
        )


@dataclass
class _TrackSums:
    energy: float = 0.0
    charge: float = 0.0


class HitParticleMatcher:
    """
    Associate hits with the truth particles that deposited their energy.

    The track_id -> particle position lookup is cached on the instance and
    reset at the start of every `attribute` call, i.e. once per event.
    """

    def __init__(self, hit_label: str = "gaushit", particle_label: str = "largeant") -> None:
        self.hit_label = hit_label
        self.particle_label = particle_label
        self.diagnostics = MatchDiagnostics()
        self._trkid_lookup: Dict[int, int] = {}

    def produce(self, event: SimEvent) -> HitParticleAssns:
        """
        Build the hit/particle associations for one event.

        Real-data events pass through with an empty relation. A missing hit
        collection aborts the event (reported on stderr, empty relation); a
        missing particle collection raises MissingInputError.
        """
        self.diagnostics.events_in += 1
        if event.is_real_data:
            self.diagnostics.real_data_skipped += 1
            return HitParticleAssns()

        particles = event.get_valid_particles(self.particle_label)
        hits = event.get_hits(self.hit_label)
        if hits is None:
            self.diagnostics.missing_hits += 1
            print(
                f"[match] Hit handle is not valid! No hit collection '{self.hit_label}' "
                f"in event {event.event_id}",
                file=sys.stderr,
            )
            return HitParticleAssns()
        return self.attribute(hits, particles, event.backtracker.contributions_of)

    def attribute(
        self,
        hits: Optional[Sequence[Hit]],
        particles: Sequence[TruthParticle],
        contributions_of: ContributionsFn,
    ) -> HitParticleAssns:
        """
        Match every hit in `hits` to the particles in `particles`.

        Parameters
        ----------
        hits : sequence of Hit, or None if the collection is unavailable
        particles : sequence of TruthParticle
        contributions_of : callable
            Backtracker lookup returning the ContributionRecords of a hit.

        Returns
        -------
        HitParticleAssns with one entry per (hit, resolvable track id).
        Fractions use IEEE division, so a hit whose records carry no energy
        (or no charge) gets nan fractions.
        """
        if hits is None:
            raise MissingInputError(f"hit collection '{self.hit_label}' is not available")

        self._trkid_lookup.clear()
        assns = HitParticleAssns()

        for i_h, hit in enumerate(hits):
            self.diagnostics.hits_in += 1
            records = contributions_of(hit)
            if not records:
                self.diagnostics.hits_without_ides += 1
                continue

            sums: Dict[int, _TrackSums] = {}
            tot_e = 0.0
            tot_n = 0.0
            max_e, max_e_trkid = -1.0, UNRESOLVED
            max_n, max_n_trkid = -1.0, UNRESOLVED

            for rec in records:
                s = sums.setdefault(rec.track_id, _TrackSums())
                s.energy += rec.energy
                tot_e += rec.energy
                if s.energy > max_e:
                    max_e, max_e_trkid = s.energy, rec.track_id
                s.charge += rec.charge
                tot_n += rec.charge
                if s.charge > max_n:
                    max_n, max_n_trkid = s.charge, rec.track_id

                if rec.track_id not in self._trkid_lookup:
                    self._trkid_lookup[rec.track_id] = _find_particle(particles, rec.track_id)

            with np.errstate(divide="ignore", invalid="ignore"):
                for track_id, s in sums.items():
                    i_p = self._trkid_lookup[track_id]
                    if i_p == UNRESOLVED:
                        continue
                    assns.add_single(MatchData(
                        hit_index=i_h,
                        particle_index=i_p,
                        track_id=track_id,
                        energy_fraction=float(np.float64(s.energy) / tot_e),
                        charge_fraction=float(np.float64(s.charge) / tot_n),
                        is_max_energy=(track_id == max_e_trkid),
                        is_max_charge=(track_id == max_n_trkid),
                        energy=s.energy,
                        charge=s.charge,
                    ))

        self.diagnostics.entries_out += len(assns)
        return assns


def _find_particle(particles: Sequence[TruthParticle], track_id: int) -> int:
    for i_p, p in enumerate(particles):
        if p.track_id == track_id:
            return i_p
    return UNRESOLVED
