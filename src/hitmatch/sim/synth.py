from __future__ import annotations
import numpy as np
from typing import List
from ..physics.backtracker import TableBackTracker
from ..physics.events import SimEvent
from ..physics.hits import Hit
from ..physics.particles import ContributionRecord, TruthParticle

# ionisation electrons per MeV deposited in liquid argon (W_ion = 23.6 eV), before recombination
ELECTRONS_PER_MEV = 1.0e6 / 23.6

_PDG_CHOICES = np.array([13, -13, 211, -211, 2212, 11, -11, 22])


def synth_sim_events(
    n_events: int,
    *,
    n_particles: int = 5,
    n_hits: int = 20,
    max_ides_per_hit: int = 4,
    unresolved_fraction: float = 0.1,
    empty_hit_fraction: float = 0.05,
    real_data_fraction: float = 0.0,
    recombination: float = 0.7,
    hit_label: str = "gaushit",
    particle_label: str = "largeant",
    rng: np.random.Generator | None = None,
) -> List[SimEvent]:
    """
    Generate toy simulated events with known truth content.

      - particles get consecutive track ids starting at 1
      - each hit draws 1..max_ides_per_hit deposits; a deposit points at an
        id outside the particle list with probability `unresolved_fraction`
        (mimics secondaries that were not saved)
      - charge = energy * ELECTRONS_PER_MEV * recombination, smeared by 5 %
      - a share `empty_hit_fraction` of hits carries no truth at all (noise)
      - a share `real_data_fraction` of events is flagged as real data
    """
    rng = rng or np.random.default_rng()
    events: List[SimEvent] = []

    for i in range(n_events):
        particles = [
            TruthParticle(
                track_id=k + 1,
                pdg=int(rng.choice(_PDG_CHOICES)),
                mother=0 if k == 0 else int(rng.integers(0, k + 1)),
                energy=float(rng.uniform(0.05, 2.0)),
            )
            for k in range(n_particles)
        ]

        hits: List[Hit] = []
        pairs = []
        for h in range(n_hits):
            hits.append(Hit(
                hit_id=h,
                channel=int(rng.integers(0, 8256)),
                peak_time=float(rng.uniform(0.0, 6000.0)),
                integral=float(rng.uniform(10.0, 500.0)),
            ))
            if rng.random() < empty_hit_fraction:
                continue
            for _ in range(int(rng.integers(1, max_ides_per_hit + 1))):
                if rng.random() < unresolved_fraction:
                    trk = int(rng.integers(n_particles + 1, n_particles + 1000))
                else:
                    trk = int(rng.integers(1, n_particles + 1))
                edep = float(rng.exponential(0.5))
                n_el = edep * ELECTRONS_PER_MEV * recombination * float(rng.normal(1.0, 0.05))
                pairs.append((h, ContributionRecord(trk, edep, max(n_el, 0.0))))

        events.append(SimEvent(
            event_id=i,
            is_real_data=bool(rng.random() < real_data_fraction),
            hits={hit_label: hits},
            particles={particle_label: particles},
            backtracker=TableBackTracker.from_pairs(pairs),
            meta={"source": "synth"},
        ))

    return events
