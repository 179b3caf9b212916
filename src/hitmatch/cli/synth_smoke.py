# src/hitmatch/cli/synth_smoke.py
'''
A small CLI that runs:
synth → HDF5 input file → (optional) match → write /assns.
Useful to check an installation or to produce an input file for the TOML pipeline.
'''
from __future__ import annotations
import argparse
from pathlib import Path

import h5py
import numpy as np

from hitmatch.io.assn_store import write_sim_events, write_init, write_assns
from hitmatch.physics.matching import HitParticleMatcher
from hitmatch.sim.synth import synth_sim_events

def main():
    ap = argparse.ArgumentParser(description="Synthetic hit/particle matching smoke run")
    ap.add_argument("-o", "--out", type=Path, default=Path("synth_sim.h5"), help="Output input-layout HDF5")
    ap.add_argument("-n", "--events", type=int, default=100)
    ap.add_argument("--particles", type=int, default=5)
    ap.add_argument("--hits", type=int, default=20)
    ap.add_argument("--unresolved", type=float, default=0.1, help="share of deposits with no saved particle")
    ap.add_argument("--real-data", type=float, default=0.0, help="share of events flagged as real data")
    ap.add_argument("--seed", type=int, default=None)
    ap.add_argument("--hit-label", default="gaushit")
    ap.add_argument("--particle-label", default="largeant")
    ap.add_argument("--match", type=Path, default=None, help="Also run matching and write /assns here")
    args = ap.parse_args()

    events = synth_sim_events(
        args.events,
        n_particles=args.particles,
        n_hits=args.hits,
        unresolved_fraction=args.unresolved,
        real_data_fraction=args.real_data,
        hit_label=args.hit_label,
        particle_label=args.particle_label,
        rng=np.random.default_rng(args.seed),
    )
    write_sim_events(args.out, events)
    print(f"[smoke] Wrote {len(events)} synthetic events to {args.out}")

    if args.match is None:
        return

    matcher = HitParticleMatcher(hit_label=args.hit_label, particle_label=args.particle_label)
    f: h5py.File = write_init(str(args.match), hit_label=args.hit_label, particle_label=args.particle_label)
    try:
        for ev in events:
            write_assns(f, ev.event_id, matcher.produce(ev))
    finally:
        f.close()
    print(f"[smoke] {matcher.diagnostics.summary()}")
    print(f"[smoke] Wrote associations to {args.match}")

if __name__ == "__main__":
    main()
