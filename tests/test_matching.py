import math

import pytest

from hitmatch.physics.backtracker import TableBackTracker
from hitmatch.physics.events import MissingInputError, SimEvent
from hitmatch.physics.hits import Hit
from hitmatch.physics.matching import HitParticleMatcher
from hitmatch.physics.particles import ContributionRecord as R, TruthParticle


# --- Helpers -----------------------------------------------------------------

def _particles(*track_ids):
    return [TruthParticle(track_id=t) for t in track_ids]


def _setup(per_hit_records):
    """Hits numbered 0..N-1 with the given record lists."""
    hits = [Hit(hit_id=i) for i in range(len(per_hit_records))]
    bt = TableBackTracker.from_pairs(
        (i, rec) for i, recs in enumerate(per_hit_records) for rec in recs
    )
    return hits, bt


def _by_track(assns):
    return {m.track_id: m for m in assns}


# --- Tests -------------------------------------------------------------------

def test_reference_hit():
    hits, bt = _setup([[R(5, 3.0, 1.0), R(5, 2.0, 1.0), R(7, 4.0, 5.0)]])
    assns = HitParticleMatcher().attribute(hits, _particles(5, 7), bt.contributions_of)

    assert len(assns) == 2
    m = _by_track(assns)

    assert m[5].energy == pytest.approx(5.0)
    assert m[5].energy_fraction == pytest.approx(5 / 9)
    assert m[5].is_max_energy
    assert m[5].charge == pytest.approx(2.0)
    assert m[5].charge_fraction == pytest.approx(2 / 7)
    assert not m[5].is_max_charge

    assert m[7].energy == pytest.approx(4.0)
    assert m[7].energy_fraction == pytest.approx(4 / 9)
    assert not m[7].is_max_energy
    assert m[7].charge == pytest.approx(5.0)
    assert m[7].charge_fraction == pytest.approx(5 / 7)
    assert m[7].is_max_charge

    assert m[5].particle_index == 0 and m[7].particle_index == 1
    assert all(x.hit_index == 0 for x in assns)


def test_one_entry_per_distinct_track_and_fractions_sum_to_one():
    recs = [
        [R(1, 0.5, 10), R(2, 1.5, 30), R(3, 0.1, 2), R(2, 0.2, 4), R(1, 0.7, 14)],
        [R(4, 2.0, 40)],
        [R(3, 0.3, 1), R(1, 0.3, 9)],
    ]
    hits, bt = _setup(recs)
    assns = HitParticleMatcher().attribute(hits, _particles(1, 2, 3, 4), bt.contributions_of)

    for i_h, hit_recs in enumerate(recs):
        entries = assns.for_hit(i_h)
        assert len(entries) == len({r.track_id for r in hit_recs})
        assert sum(m.energy_fraction for m in entries) == pytest.approx(1.0)
        assert sum(m.charge_fraction for m in entries) == pytest.approx(1.0)
        assert sum(m.is_max_energy for m in entries) == 1
        assert sum(m.is_max_charge for m in entries) == 1
        top = max(entries, key=lambda m: m.energy)
        assert top.is_max_energy


def test_entries_follow_first_seen_track_order():
    hits, bt = _setup([[R(9, 1, 1), R(3, 1, 1), R(9, 1, 1), R(6, 1, 1)]])
    assns = HitParticleMatcher().attribute(hits, _particles(3, 6, 9), bt.contributions_of)
    assert [m.track_id for m in assns] == [9, 3, 6]


def test_tie_keeps_earlier_maximum():
    hits, bt = _setup([[R(5, 2.0, 1.0), R(7, 2.0, 1.0)]])
    m = _by_track(HitParticleMatcher().attribute(hits, _particles(5, 7), bt.contributions_of))
    assert m[5].is_max_energy and not m[7].is_max_energy
    assert m[5].is_max_charge and not m[7].is_max_charge


def test_running_maximum_needs_strictly_greater_sum():
    # track 1 only catches up with track 2 (2.0 == 2.0); it does not take over
    hits, bt = _setup([[R(1, 1.0, 3.0), R(2, 2.0, 1.0), R(1, 1.0, 0.0)]])
    m = _by_track(HitParticleMatcher().attribute(hits, _particles(1, 2), bt.contributions_of))
    assert m[2].is_max_energy and not m[1].is_max_energy
    assert m[1].is_max_charge


def test_unresolved_track_counts_in_denominator_only():
    hits, bt = _setup([[R(1, 1.0, 1.0), R(999, 3.0, 3.0)]])
    assns = HitParticleMatcher().attribute(hits, _particles(1), bt.contributions_of)

    assert len(assns) == 1
    (m,) = assns
    assert m.track_id == 1
    assert m.energy_fraction == pytest.approx(0.25)
    assert m.charge_fraction == pytest.approx(0.25)
    # the dominant deposit belongs to the unresolved track
    assert not m.is_max_energy and not m.is_max_charge


def test_hit_without_records_emits_nothing():
    hits, bt = _setup([[], [R(1, 1.0, 1.0)], []])
    matcher = HitParticleMatcher()
    assns = matcher.attribute(hits, _particles(1), bt.contributions_of)
    assert [m.hit_index for m in assns] == [1]
    assert matcher.diagnostics.hits_in == 3
    assert matcher.diagnostics.hits_without_ides == 2


def test_zero_energy_deposits_give_nan_fraction():
    hits, bt = _setup([[R(3, 0.0, 0.0)], [R(3, 0.0, 1.0), R(4, 0.0, 1.0)]])
    assns = HitParticleMatcher().attribute(hits, _particles(3, 4), bt.contributions_of)

    (only,) = assns.for_hit(0)
    assert math.isnan(only.energy_fraction)
    assert math.isnan(only.charge_fraction)
    assert only.is_max_energy and only.is_max_charge

    second = _by_track(assns.for_hit(1))
    assert all(math.isnan(m.energy_fraction) for m in second.values())
    assert second[3].charge_fraction == pytest.approx(0.5)
    assert second[3].is_max_energy and not second[4].is_max_energy


def test_duplicate_track_ids_resolve_to_first_particle():
    hits, bt = _setup([[R(2, 1.0, 1.0)]])
    (m,) = HitParticleMatcher().attribute(hits, _particles(1, 2, 2), bt.contributions_of)
    assert m.particle_index == 1


def test_particle_lookup_is_cached_within_an_event():
    class CountingParticles(list):
        scans = 0

        def __iter__(self):
            CountingParticles.scans += 1
            return super().__iter__()

    parts = CountingParticles(_particles(1, 2))
    hits, bt = _setup([[R(1, 1, 1), R(2, 1, 1)], [R(1, 1, 1)], [R(2, 1, 1), R(404, 1, 1)], [R(404, 1, 1)]])
    assns = HitParticleMatcher().attribute(hits, parts, bt.contributions_of)

    assert len(assns) == 4
    # one scan per distinct track id, including the unresolved one
    assert CountingParticles.scans == 3


def test_lookup_cache_resets_between_events():
    matcher = HitParticleMatcher()
    hits, bt = _setup([[R(5, 1.0, 1.0)]])

    first = matcher.attribute(hits, _particles(5), bt.contributions_of)
    assert len(first) == 1

    # same track id, but this event's particle list does not contain it
    second = matcher.attribute(hits, _particles(6), bt.contributions_of)
    assert len(second) == 0

    third = matcher.attribute(hits, _particles(0, 5), bt.contributions_of)
    assert [m.particle_index for m in third] == [1]


def test_attribute_without_hits_raises():
    with pytest.raises(MissingInputError):
        HitParticleMatcher().attribute(None, _particles(1), lambda h: [])


# --- Event-level -------------------------------------------------------------

def _event(**kw):
    hits, bt = _setup([[R(5, 3.0, 1.0), R(5, 2.0, 1.0), R(7, 4.0, 5.0)]])
    base = dict(
        event_id=1,
        hits={"gaushit": hits},
        particles={"largeant": _particles(5, 7)},
        backtracker=bt,
    )
    base.update(kw)
    return SimEvent(**base)


def test_produce_simulated_event():
    matcher = HitParticleMatcher(hit_label="gaushit", particle_label="largeant")
    assns = matcher.produce(_event())
    assert len(assns) == 2
    assert matcher.diagnostics.events_in == 1
    assert matcher.diagnostics.entries_out == 2


def test_produce_real_data_returns_immediately():
    class ExplodingBackTracker:
        def contributions_of(self, hit):
            raise AssertionError("backtracker must not be used on real data")

    matcher = HitParticleMatcher()
    ev = _event(is_real_data=True, particles={}, backtracker=ExplodingBackTracker())
    assns = matcher.produce(ev)
    assert len(assns) == 0
    assert matcher.diagnostics.real_data_skipped == 1
    assert matcher.diagnostics.hits_in == 0


def test_produce_missing_hits_aborts_event(capsys):
    matcher = HitParticleMatcher(hit_label="other_hits")
    assns = matcher.produce(_event())
    assert len(assns) == 0
    assert matcher.diagnostics.missing_hits == 1
    assert "Hit handle is not valid" in capsys.readouterr().err

    # the next event is processed normally
    matcher.hit_label = "gaushit"
    assert len(matcher.produce(_event(event_id=2))) == 2


def test_produce_missing_particles_raises():
    with pytest.raises(MissingInputError):
        HitParticleMatcher(particle_label="nope").produce(_event())


def test_produce_does_not_mask_backtracker_failures(capsys):
    class BrokenBackTracker:
        def contributions_of(self, hit):
            raise MissingInputError("truth records unavailable")

    matcher = HitParticleMatcher()
    with pytest.raises(MissingInputError, match="truth records unavailable"):
        matcher.produce(_event(backtracker=BrokenBackTracker()))
    assert matcher.diagnostics.missing_hits == 0
    assert "Hit handle is not valid" not in capsys.readouterr().err
