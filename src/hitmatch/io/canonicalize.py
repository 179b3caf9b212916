# src/hitmatch/io/canonicalize.py
from __future__ import annotations
from typing import Iterable, Mapping, Tuple

import pandas as pd

_CANON_KEYS = {
    # canonical_key: tuple of fallback source keys
    "event": ("event", "evt", "event_id", "Event"),
    "hit": ("hit", "hit_id", "hit_index", "hitidx"),
    "channel": ("channel", "Channel", "ch"),
    "peak_time": ("peak_time", "PeakTime", "peak_tick"),
    "integral": ("integral", "Integral", "adc"),
    # truth side
    "track_id": ("track_id", "trackID", "TrackId", "trkid"),
    "pdg": ("pdg", "PdgCode", "pdg_code"),
    "mother": ("mother", "Mother"),
    "energy": ("energy", "E", "energy_MeV", "edep"),
    # Number of ionisation electrons is what the simulation calls charge
    "charge": ("charge", "numElectrons", "num_electrons", "n_electrons"),
    "is_real_data": ("is_real_data", "isRealData", "real_data"),
}

def _first(columns: Iterable[str], names: Iterable[str], default=None):
    cols = set(columns)
    for k in names:
        if k in cols:
            return k
    return default

def canonicalize_columns(
    df: pd.DataFrame,
    required: Tuple[str, ...],
    optional: Tuple[str, ...] = (),
    *,
    context: str = "table",
    aliases: Mapping[str, Tuple[str, ...]] = _CANON_KEYS,
) -> pd.DataFrame:
    """
    Return a copy of `df` whose columns use the canonical names.

    Only the requested canonical keys are mapped; other columns are kept
    untouched. Raise KeyError if a required key has no matching column.
    """
    rename = {}
    for key in required + optional:
        src = _first(df.columns, aliases[key])
        if src is None:
            if key in required:
                raise KeyError(
                    f"{context}: no column for '{key}' (tried {list(aliases[key])}, "
                    f"have {list(df.columns)})"
                )
            continue
        if src != key:
            rename[src] = key
    return df.rename(columns=rename)
