from __future__ import annotations
from typing import Dict, Iterable, List, Optional, Sequence
import h5py
import numpy as np
import pandas as pd
from datetime import datetime, timezone
from pathlib import Path
from hitmatch.config.schemas import Config
from hitmatch.config.load import snapshot_config_toml, config_json
from hitmatch.physics.events import SimEvent
from hitmatch.physics.matching import HitParticleAssns

FORMAT_VERSION = "1.0"

# column name -> dtype, in on-disk order
ASSN_COLUMNS: Dict[str, str] = {
    "event_id": "i8",
    "hit_index": "i8",
    "particle_index": "i8",
    "track_id": "i8",
    "energy_fraction": "f8",
    "charge_fraction": "f8",
    "is_max_energy": "u1",
    "is_max_charge": "u1",
    "energy": "f8",
    "charge": "f8",
}


def write_init(
    path: str,
    cfg_path: Optional[str] = None,
    cfg: Optional[Config] = None,
    *,
    hit_label: str = "gaushit",
    particle_label: str = "largeant",
) -> h5py.File:
    """
    Create the association output file and its empty, growable /assns group.

    The caller owns the returned h5py.File and must close it.
    """
    f = h5py.File(path, "w")
    # Root attrs
    f.attrs["format_version"] = FORMAT_VERSION
    f.attrs["created_utc"] = datetime.now(timezone.utc).isoformat()
    f.attrs["software"] = "hitmatch 0.1.0"
    if cfg_path is not None:
        f.attrs["config_text"] = snapshot_config_toml(cfg_path)
    if cfg is not None:
        f.attrs["config_json"] = config_json(cfg)
        hit_label = cfg.matching.hit_label
        particle_label = cfg.matching.particle_label

    grp = f.create_group("assns")
    grp.attrs["hit_label"] = hit_label
    grp.attrs["particle_label"] = particle_label
    for name, dtype in ASSN_COLUMNS.items():
        grp.create_dataset(name, shape=(0,), maxshape=(None,), dtype=dtype, chunks=True)
    # one slot per written event, CSR-style
    grp.create_dataset("event_ptr", data=np.zeros(1, dtype=np.int64), maxshape=(None,), chunks=True)
    grp.create_dataset("events", shape=(0,), maxshape=(None,), dtype="i8", chunks=True)
    return f


def _append(dset: h5py.Dataset, values: np.ndarray) -> None:
    n0 = dset.shape[0]
    dset.resize((n0 + len(values),))
    dset[n0:] = values


def write_assns(f: h5py.File, event_id: int, assns: HitParticleAssns) -> None:
    """
    Append the associations of one event to /assns.

    Events with an empty relation still get an event_ptr slot so the event
    list mirrors what was processed.
    """
    grp = f["assns"]
    entries = list(assns)
    cols = {
        "event_id": np.full(len(entries), event_id, dtype=np.int64),
        "hit_index": np.array([m.hit_index for m in entries], dtype=np.int64),
        "particle_index": np.array([m.particle_index for m in entries], dtype=np.int64),
        "track_id": np.array([m.track_id for m in entries], dtype=np.int64),
        "energy_fraction": np.array([m.energy_fraction for m in entries], dtype=np.float64),
        "charge_fraction": np.array([m.charge_fraction for m in entries], dtype=np.float64),
        "is_max_energy": np.array([m.is_max_energy for m in entries], dtype=np.uint8),
        "is_max_charge": np.array([m.is_max_charge for m in entries], dtype=np.uint8),
        "energy": np.array([m.energy for m in entries], dtype=np.float64),
        "charge": np.array([m.charge for m in entries], dtype=np.float64),
    }
    for name in ASSN_COLUMNS:
        _append(grp[name], cols[name])

    ptr = grp["event_ptr"]
    _append(ptr, np.array([int(ptr[ptr.shape[0] - 1]) + len(entries)], dtype=np.int64))
    _append(grp["events"], np.array([event_id], dtype=np.int64))


def read_assns(path: str | Path) -> pd.DataFrame:
    """Load /assns as a flat DataFrame (one row per hit/particle association)."""
    path = str(path)
    with h5py.File(path, "r") as f:
        if "assns" not in f:
            raise KeyError(f"/assns not found in {path}")
        grp = f["assns"]
        data = {name: np.asarray(grp[name]) for name in ASSN_COLUMNS}
    df = pd.DataFrame(data)
    df["is_max_energy"] = df["is_max_energy"].astype(bool)
    df["is_max_charge"] = df["is_max_charge"].astype(bool)
    return df


def read_event_ptr(path: str | Path) -> tuple[np.ndarray, np.ndarray]:
    """Return (event_ids, event_ptr) describing how /assns rows split into events."""
    with h5py.File(str(path), "r") as f:
        grp = f["assns"]
        return np.asarray(grp["events"]), np.asarray(grp["event_ptr"])


# ---------------------------------------------------------------------------
# Simulated-event input files (the layout read by io.adapters.HDF5Adapter)
# ---------------------------------------------------------------------------

def _replace_or_create(grp: h5py.Group, name: str, data: np.ndarray) -> None:
    if name in grp:
        del grp[name]
    # gzip needs a chunked layout, which an empty fixed-size dataset cannot have
    grp.create_dataset(name, data=data, compression="gzip" if data.size else None)


def _labels(per_event: Iterable[Dict[str, list]]) -> List[str]:
    seen: Dict[str, None] = {}
    for d in per_event:
        for k in d:
            seen.setdefault(k, None)
    return list(seen)


def write_sim_events(path: str | Path, events: Sequence[SimEvent]) -> None:
    """
    Write simulated events into the ragged input layout:

    /events/event_id              (N,)   int64
    /events/is_real_data          (N,)   uint8
    /hits/<label>/event_ptr       (N+1,) int64   CSR pointers into the flat hit arrays
    /hits/<label>/present         (N,)   uint8   0 where the event lacks the collection
    /hits/<label>/{channel,peak_time,integral}
    /particles/<label>/event_ptr  (N+1,) int64
    /particles/<label>/present    (N,)   uint8
    /particles/<label>/{track_id,pdg,mother,energy}
    /backtracker/<hit_label>/ide_ptr (M_hits+1,) int64  one slot per flat hit
    /backtracker/<hit_label>/{track_id,energy,charge}

    Backtracker records are looked up through each hit's hit_id, so the
    event's backtracker must answer `contributions_of` for its hits.
    """
    N = len(events)
    with h5py.File(str(path), "w") as f:
        f.attrs["format_version"] = FORMAT_VERSION
        g_ev = f.require_group("events")
        _replace_or_create(g_ev, "event_id", np.array([ev.event_id for ev in events], dtype=np.int64))
        _replace_or_create(g_ev, "is_real_data", np.array([ev.is_real_data for ev in events], dtype=np.uint8))

        for label in _labels(ev.hits for ev in events):
            ptr = np.zeros(N + 1, dtype=np.int64)
            present = np.zeros(N, dtype=np.uint8)
            channel: List[int] = []
            peak: List[float] = []
            integral: List[float] = []
            ide_ptr: List[int] = [0]
            ide_trk: List[int] = []
            ide_e: List[float] = []
            ide_n: List[float] = []
            for i, ev in enumerate(events):
                hits = ev.hits.get(label)
                present[i] = hits is not None
                for h in hits or []:
                    channel.append(h.channel)
                    peak.append(h.peak_time)
                    integral.append(h.integral)
                    for rec in ev.backtracker.contributions_of(h):
                        ide_trk.append(rec.track_id)
                        ide_e.append(rec.energy)
                        ide_n.append(rec.charge)
                    ide_ptr.append(len(ide_trk))
                ptr[i + 1] = len(channel)

            g = f.require_group(f"hits/{label}")
            _replace_or_create(g, "event_ptr", ptr)
            _replace_or_create(g, "present", present)
            _replace_or_create(g, "channel", np.asarray(channel, dtype=np.int32))
            _replace_or_create(g, "peak_time", np.asarray(peak, dtype=np.float64))
            _replace_or_create(g, "integral", np.asarray(integral, dtype=np.float64))

            g_bt = f.require_group(f"backtracker/{label}")
            _replace_or_create(g_bt, "ide_ptr", np.asarray(ide_ptr, dtype=np.int64))
            _replace_or_create(g_bt, "track_id", np.asarray(ide_trk, dtype=np.int32))
            _replace_or_create(g_bt, "energy", np.asarray(ide_e, dtype=np.float64))
            _replace_or_create(g_bt, "charge", np.asarray(ide_n, dtype=np.float64))

        for label in _labels(ev.particles for ev in events):
            ptr = np.zeros(N + 1, dtype=np.int64)
            present = np.zeros(N, dtype=np.uint8)
            trk: List[int] = []
            pdg: List[int] = []
            mother: List[int] = []
            energy: List[float] = []
            for i, ev in enumerate(events):
                parts = ev.particles.get(label)
                present[i] = parts is not None
                for p in parts or []:
                    trk.append(p.track_id)
                    pdg.append(p.pdg)
                    mother.append(p.mother)
                    energy.append(p.energy)
                ptr[i + 1] = len(trk)

            g = f.require_group(f"particles/{label}")
            _replace_or_create(g, "event_ptr", ptr)
            _replace_or_create(g, "present", present)
            _replace_or_create(g, "track_id", np.asarray(trk, dtype=np.int32))
            _replace_or_create(g, "pdg", np.asarray(pdg, dtype=np.int32))
            _replace_or_create(g, "mother", np.asarray(mother, dtype=np.int32))
            _replace_or_create(g, "energy", np.asarray(energy, dtype=np.float64))
