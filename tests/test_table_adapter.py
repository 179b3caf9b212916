from pathlib import Path

import pandas as pd
import pytest

from hitmatch.io.adapters import TableAdapter
from hitmatch.io.canonicalize import canonicalize_columns
from hitmatch.physics.matching import HitParticleMatcher


def _write_tables(root: Path, with_events: bool = True) -> None:
    pd.DataFrame({
        "event": [1, 1, 2],
        "Channel": [100, 101, 7],
        "PeakTime": [1500.0, 1510.0, 800.0],
        "Integral": [40.0, 35.0, 12.0],
        "wire": [3, 4, 5],
    }).to_csv(root / "hits.csv", index=False)
    pd.DataFrame({
        "event": [1, 1, 2],
        "trackID": [5, 7, 5],
        "PdgCode": [13, 2212, 11],
    }).to_csv(root / "particles.csv", index=False)
    pd.DataFrame({
        "event": [1, 1, 1, 1, 2],
        "hit": [0, 0, 0, 1, 0],
        "trackID": [5, 5, 7, 7, 5],
        "energy": [3.0, 2.0, 4.0, 1.0, 0.5],
        "numElectrons": [1.0, 1.0, 5.0, 2.0, 3.0],
    }).to_csv(root / "ides.csv", index=False)
    if with_events:
        pd.DataFrame({"event": [1, 2, 3], "isRealData": [0, 1, 1]}).to_csv(root / "events.csv", index=False)


def test_table_adapter_reads_aliases(tmp_path: Path):
    _write_tables(tmp_path)
    events = list(TableAdapter().iter_events(str(tmp_path)))

    assert [ev.event_id for ev in events] == [1, 2, 3]
    assert [ev.is_real_data for ev in events] == [False, True, True]

    ev1 = events[0]
    hits = ev1.get_hits("gaushit")
    assert [h.channel for h in hits] == [100, 101]
    assert hits[0].extras["wire"] == 3
    assert [p.track_id for p in ev1.get_valid_particles("largeant")] == [5, 7]
    assert ev1.get_valid_particles("largeant")[1].pdg == 2212
    assert len(ev1.backtracker.contributions_of(hits[0])) == 3

    # event 3 only appears in the events table
    assert events[2].get_hits("gaushit") == []


def test_table_adapter_then_match(tmp_path: Path):
    _write_tables(tmp_path, with_events=False)
    matcher = HitParticleMatcher()
    per_event = {ev.event_id: matcher.produce(ev) for ev in TableAdapter().iter_events(str(tmp_path))}

    assert len(per_event[1]) == 3
    hit0 = {m.track_id: m for m in per_event[1].for_hit(0)}
    assert hit0[5].energy_fraction == pytest.approx(5 / 9)
    assert hit0[7].charge_fraction == pytest.approx(5 / 7)
    (only,) = per_event[1].for_hit(1)
    assert only.track_id == 7 and only.particle_index == 1
    assert only.energy_fraction == pytest.approx(1.0)

    (m2,) = per_event[2]
    assert m2.particle_index == 0 and m2.is_max_energy and m2.is_max_charge


def test_table_adapter_missing_table(tmp_path: Path):
    _write_tables(tmp_path)
    (tmp_path / "ides.csv").unlink()
    with pytest.raises(FileNotFoundError):
        list(TableAdapter().iter_events(str(tmp_path)))


def test_table_adapter_needs_directory(tmp_path: Path):
    f = tmp_path / "hits.csv"
    f.write_text("event\n1\n")
    with pytest.raises(ValueError):
        list(TableAdapter().iter_events(str(f)))


def test_canonicalize_missing_required_column():
    df = pd.DataFrame({"evt": [1], "E": [0.3]})
    out = canonicalize_columns(df, ("event", "energy"))
    assert list(out.columns) == ["event", "energy"]
    with pytest.raises(KeyError):
        canonicalize_columns(df, ("event", "track_id"))


def test_table_adapter_blank_real_data_flag_is_simulated(tmp_path: Path):
    _write_tables(tmp_path, with_events=False)
    pd.DataFrame({"event": [1, 2], "isRealData": [None, 1]}).to_csv(tmp_path / "events.csv", index=False)

    events = {ev.event_id: ev for ev in TableAdapter().iter_events(str(tmp_path))}
    assert events[1].is_real_data is False
    assert events[2].is_real_data is True
    assert len(HitParticleMatcher().produce(events[1])) == 3
