"""
hitmatch.io.adapters

Readers that turn simulation outputs into `SimEvent`s (named hit and truth
particle collections plus a backtracker) for the hit/particle matcher.

Design goals
------------
- Keep I/O concerns isolated from the matching algorithm.
- Hits get hit_id = position in their collection; the backtracker of each
  event is keyed the same way.
- Be tolerant to schema variants by using small, explicit column alias maps.
- Remain side-effect free: yield Python objects; HDF5 output is handled downstream.

Entry points
------------
- class HDF5Adapter: reads the ragged layout written by io.assn_store.write_sim_events.
- class TableAdapter: reads hits/particles/ides tables (CSV or Parquet).
- function make_adapter(cfg): factory from the [io.adapter] TOML section.

Config (example)
----------------
[io]
input_path = "data/sim.h5"

[io.adapter]
type = "table"                # "hdf5" | "table"
"""
from __future__ import annotations
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Any

import h5py
import numpy as np
import pandas as pd

from hitmatch.physics.backtracker import TableBackTracker
from hitmatch.physics.events import SimEvent
from hitmatch.physics.hits import Hit
from hitmatch.physics.particles import ContributionRecord, TruthParticle
from hitmatch.io.canonicalize import canonicalize_columns


# ---------------------------------------------------------------------------
# Base adapter API
# ---------------------------------------------------------------------------

class BaseAdapter:
    """
    Abstract adapter interface.

    Yields SimEvent objects in file order.
    """

    def iter_events(self, path: str) -> Iterator[SimEvent]:
        raise NotImplementedError


# ---------------------------------------------------------------------------
# HDF5 adapter
# ---------------------------------------------------------------------------

def _read_group(grp: h5py.Group) -> Dict[str, np.ndarray]:
    return {k: np.asarray(grp[k]) for k in grp.keys() if isinstance(grp[k], h5py.Dataset)}


class HDF5Adapter(BaseAdapter):
    """
    Read simulated events from the ragged HDF5 layout (see
    io.assn_store.write_sim_events for the dataset list).

    Parameters
    ----------
    hit_labels, particle_labels : list of str, optional
        Restrict which collections are loaded. Default: everything in the file.
    """

    def __init__(
        self,
        hit_labels: Optional[List[str]] = None,
        particle_labels: Optional[List[str]] = None,
    ) -> None:
        self.hit_labels = hit_labels
        self.particle_labels = particle_labels

    def iter_events(self, path: str) -> Iterator[SimEvent]:
        with h5py.File(path, "r") as f:
            if "events" not in f:
                raise KeyError(f"/events not found in {path}")
            event_ids = np.asarray(f["events/event_id"])
            is_real = np.asarray(f["events/is_real_data"]).astype(bool)

            hit_groups = {}
            if "hits" in f:
                for label in f["hits"]:
                    if self.hit_labels is None or label in self.hit_labels:
                        hit_groups[label] = _read_group(f[f"hits/{label}"])
            bt_groups = {}
            if "backtracker" in f:
                for label in f["backtracker"]:
                    if label in hit_groups:
                        bt_groups[label] = _read_group(f[f"backtracker/{label}"])
            part_groups = {}
            if "particles" in f:
                for label in f["particles"]:
                    if self.particle_labels is None or label in self.particle_labels:
                        part_groups[label] = _read_group(f[f"particles/{label}"])

        for i, event_id in enumerate(event_ids):
            ev = SimEvent(
                event_id=int(event_id),
                is_real_data=bool(is_real[i]),
                meta={"source": "HDF5", "file": path, "entry_index": i},
            )
            for label, cols in part_groups.items():
                if "present" in cols and not cols["present"][i]:
                    continue
                lo, hi = int(cols["event_ptr"][i]), int(cols["event_ptr"][i + 1])
                ev.particles[label] = [
                    TruthParticle(
                        track_id=int(cols["track_id"][j]),
                        pdg=int(cols["pdg"][j]) if "pdg" in cols else 0,
                        mother=int(cols["mother"][j]) if "mother" in cols else 0,
                        energy=float(cols["energy"][j]) if "energy" in cols else 0.0,
                    )
                    for j in range(lo, hi)
                ]
            # The backtracker is per event; with several hit collections the
            # last one read wins, so pin hit_labels when that matters.
            for label, cols in hit_groups.items():
                if "present" in cols and not cols["present"][i]:
                    continue
                lo, hi = int(cols["event_ptr"][i]), int(cols["event_ptr"][i + 1])
                ev.hits[label] = [
                    Hit(
                        hit_id=j - lo,
                        channel=int(cols["channel"][j]) if "channel" in cols else -1,
                        peak_time=float(cols["peak_time"][j]) if "peak_time" in cols else 0.0,
                        integral=float(cols["integral"][j]) if "integral" in cols else 0.0,
                    )
                    for j in range(lo, hi)
                ]
                bt = bt_groups.get(label)
                if bt is not None:
                    ev.backtracker = TableBackTracker.from_arrays(
                        bt["ide_ptr"], bt["track_id"], bt["energy"], bt["charge"],
                        first_hit=lo, n_hits=hi - lo,
                    )
            yield ev


# ---------------------------------------------------------------------------
# Table adapter
# ---------------------------------------------------------------------------

class TableAdapter(BaseAdapter):
    """
    Read a directory of flat tables, one row per object, keyed by an event column.

      hits.{csv,parquet}       event, [hit], channel, peak_time, integral
      particles.{csv,parquet}  event, track_id, [pdg, mother, energy]
      ides.{csv,parquet}       event, hit, track_id, energy, charge
      events.{csv,parquet}     event, is_real_data            (optional)

    Column names are canonicalised (e.g. trackID -> track_id,
    numElectrons -> charge). When the hits table has no hit column, hits are
    numbered in row order within each event. Every event listed in any table
    is yielded; an event with no hit rows has an empty hit collection.
    """

    def __init__(self, hit_label: str = "gaushit", particle_label: str = "largeant") -> None:
        self.hit_label = hit_label
        self.particle_label = particle_label

    def _read_table(self, root: Path, stem: str, required: bool = True) -> Optional[pd.DataFrame]:
        for suffix in (".csv", ".parquet", ".pq"):
            p = root / f"{stem}{suffix}"
            if not p.exists():
                continue
            if suffix == ".csv":
                return pd.read_csv(p)
            return pd.read_parquet(p)
        if required:
            raise FileNotFoundError(f"No {stem}.csv/.parquet table in {root}")
        return None

    def iter_events(self, path: str) -> Iterator[SimEvent]:
        root = Path(path)
        if not root.is_dir():
            raise ValueError(f"TableAdapter expects a directory of tables, got {root}")

        hits = canonicalize_columns(
            self._read_table(root, "hits"), ("event",), ("hit", "channel", "peak_time", "integral"),
            context="hits",
        )
        parts = canonicalize_columns(
            self._read_table(root, "particles"), ("event", "track_id"), ("pdg", "mother", "energy"),
            context="particles",
        )
        ides = canonicalize_columns(
            self._read_table(root, "ides"), ("event", "hit", "track_id", "energy", "charge"),
            context="ides",
        )
        events_df = self._read_table(root, "events", required=False)
        real: Dict[int, bool] = {}
        if events_df is not None:
            events_df = canonicalize_columns(events_df, ("event",), ("is_real_data",), context="events")
            if "is_real_data" in events_df.columns:
                # blank cells mean simulated
                flags = events_df["is_real_data"].fillna(0).astype(bool)
                real = {int(e): bool(r) for e, r in zip(events_df["event"], flags)}

        if "hit" not in hits.columns:
            hits = hits.assign(hit=hits.groupby("event").cumcount())

        event_ids = sorted(
            set(hits["event"].astype(int))
            | set(parts["event"].astype(int))
            | set(ides["event"].astype(int))
            | set(real)
        )
        hits_by_ev = {int(k): g for k, g in hits.groupby("event")}
        parts_by_ev = {int(k): g for k, g in parts.groupby("event")}
        ides_by_ev = {int(k): g for k, g in ides.groupby("event")}

        for event_id in event_ids:
            ev = SimEvent(
                event_id=event_id,
                is_real_data=real.get(event_id, False),
                meta={"source": "table", "dir": str(root)},
            )
            ev.hits[self.hit_label] = [
                _hit_from_row(r) for r in _rows(hits_by_ev.get(event_id))
            ]
            ev.particles[self.particle_label] = [
                _particle_from_row(r) for r in _rows(parts_by_ev.get(event_id))
            ]
            ev.backtracker = TableBackTracker.from_pairs(
                (int(r["hit"]), ContributionRecord(int(r["track_id"]), float(r["energy"]), float(r["charge"])))
                for r in _rows(ides_by_ev.get(event_id))
            )
            yield ev


def _rows(df: Optional[pd.DataFrame]) -> List[Dict[str, Any]]:
    if df is None:
        return []
    return df.to_dict(orient="records")


def _hit_from_row(r: Dict[str, Any]) -> Hit:
    used = {"event", "hit", "channel", "peak_time", "integral"}
    return Hit(
        hit_id=int(r["hit"]),
        channel=int(r.get("channel", -1)),
        peak_time=float(r.get("peak_time", 0.0)),
        integral=float(r.get("integral", 0.0)),
        extras={k: v for k, v in r.items() if k not in used},
    )


def _particle_from_row(r: Dict[str, Any]) -> TruthParticle:
    used = {"event", "track_id", "pdg", "mother", "energy"}
    return TruthParticle(
        track_id=int(r["track_id"]),
        pdg=int(r.get("pdg", 0)),
        mother=int(r.get("mother", 0)),
        energy=float(r.get("energy", 0.0)),
        extras={k: v for k, v in r.items() if k not in used},
    )


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

def make_adapter(cfg: Dict, *, hit_label: str = "gaushit", particle_label: str = "largeant") -> BaseAdapter:
    """
    Create an adapter from a config dict (from TOML/CLI).

    Expected keys under [io.adapter]:
      type: "hdf5" | "table"

    Collection labels come from [matching]: the HDF5 adapter only loads
    those collections, the table adapter files its tables under them.
    """
    typ = (cfg.get("type") or "hdf5").lower()

    if typ == "hdf5":
        return HDF5Adapter(hit_labels=[hit_label], particle_labels=[particle_label])

    if typ == "table":
        return TableAdapter(hit_label=hit_label, particle_label=particle_label)

    raise ValueError(f"Unknown adapter type: {typ}")
