from datetime import datetime, timedelta, timezone

import pytest

from app.modules.proximity.matcher import (
    ArrivalLatch, CandidateMode, PositionTick, closest_candidate, track_position
)

TARGET = (-13.9600, 33.7700)
# Points due north of TARGET; 0.0001 deg of latitude is ~11.1 m
AT_150M = (-13.95865, 33.7700)
AT_50M = (-13.95955, 33.7700)
AT_40M = (-13.95964, 33.7700)
AT_300M = (-13.9573, 33.7700)


@pytest.fixture
def collect_candidates(make_packet):
    near = make_packet(status="assigned", origin_lat=-13.9626, origin_lng=33.7741)
    far = make_packet(status="assigned", origin_lat=-13.9800, origin_lng=33.7900)
    no_fix = make_packet(status="assigned", origin_lat=None, origin_lng=None)
    broken = make_packet(status="assigned", origin_lat=float("nan"), origin_lng=33.77)
    return near, far, no_fix, broken


def test_closest_candidate_skips_invalid_coordinates(collect_candidates):
    near, far, no_fix, broken = collect_candidates
    match = closest_candidate((-13.9600, 33.7700), [broken, far, no_fix, near], CandidateMode.COLLECT)

    assert match.packet is near
    assert match.distance_km == pytest.approx(0.53, abs=0.02)
    assert match.distance_m == pytest.approx(match.distance_km * 1000)


def test_closest_candidate_uses_destination_when_delivering(make_packet):
    packet = make_packet(status="out_for_delivery", origin_lat=-13.96, origin_lng=33.77,
                         destination_lat=-15.7861, destination_lng=35.0058)
    match = closest_candidate((-15.7861, 35.0058), [packet], CandidateMode.DELIVER)
    assert match.distance_km == pytest.approx(0.0)


def test_no_candidate_without_position_or_packets(collect_candidates):
    near, *_ = collect_candidates
    assert closest_candidate(None, [near], CandidateMode.COLLECT) is None
    assert closest_candidate((-13.96, 33.77), [], CandidateMode.COLLECT) is None


def test_arrival_fires_once_per_approach():
    latch = ArrivalLatch(rearm_factor=2.0)
    t0 = datetime(2026, 3, 1, 9, 0, 0)

    assert latch.check(1, 10, AT_150M, TARGET, 100.0, t0) is False
    assert latch.check(1, 10, AT_50M, TARGET, 100.0, t0 + timedelta(seconds=5)) is True
    assert latch.check(1, 10, AT_40M, TARGET, 100.0, t0 + timedelta(seconds=10)) is False
    assert latch.check(1, 10, AT_150M, TARGET, 100.0, t0 + timedelta(seconds=15)) is False
    assert latch.check(1, 10, AT_50M, TARGET, 100.0, t0 + timedelta(seconds=20)) is False


def test_latch_rearms_only_on_a_newer_far_tick():
    latch = ArrivalLatch(rearm_factor=2.0)
    t0 = datetime(2026, 3, 1, 9, 0, 0)
    assert latch.check(1, 10, AT_50M, TARGET, 100.0, t0) is True

    # Out-of-order tick from before the arrival does not reopen the latch
    latch.check(1, 10, AT_300M, TARGET, 100.0, t0 - timedelta(seconds=30))
    assert latch.is_latched(1, 10)
    assert latch.check(1, 10, AT_50M, TARGET, 100.0, t0 + timedelta(seconds=1)) is False

    latch.check(1, 10, AT_300M, TARGET, 100.0, t0 + timedelta(minutes=5))
    assert not latch.is_latched(1, 10)
    assert latch.check(1, 10, AT_50M, TARGET, 100.0, t0 + timedelta(minutes=10)) is True


def test_latch_compares_naive_and_aware_tick_times():
    latch = ArrivalLatch(rearm_factor=2.0)
    arrived_at = datetime(2026, 1, 1, 12, 0, 0)
    assert latch.check(1, 10, AT_50M, TARGET, 100.0, arrived_at) is True

    later = arrived_at.astimezone(timezone.utc) + timedelta(minutes=5)
    assert latch.check(1, 10, AT_300M, TARGET, 100.0, later) is False
    assert not latch.is_latched(1, 10)

    earlier = arrived_at.astimezone(timezone.utc) - timedelta(minutes=5)
    assert latch.check(1, 10, AT_50M, TARGET, 100.0, later) is True
    assert latch.check(1, 10, AT_300M, TARGET, 100.0, earlier) is False
    assert latch.is_latched(1, 10)


def test_latches_are_per_agent_and_packet_and_can_be_released():
    latch = ArrivalLatch()
    assert latch.check(1, 10, AT_50M, TARGET, 100.0) is True
    assert latch.check(2, 10, AT_50M, TARGET, 100.0) is True
    assert latch.check(1, 11, AT_50M, TARGET, 100.0) is True

    latch.release_packet(10)
    assert not latch.is_latched(1, 10)
    assert not latch.is_latched(2, 10)
    assert latch.is_latched(1, 11)

    latch.release(1, 11)
    assert not latch.is_latched(1, 11)


def test_track_position_reports_closest_and_arrival(make_packet):
    target = make_packet(status="assigned", origin_lat=TARGET[0], origin_lng=TARGET[1])
    other = make_packet(status="assigned", origin_lat=-13.99, origin_lng=33.80)
    latch = ArrivalLatch()

    far_tick = PositionTick(agent_id=1, lat=AT_150M[0], lng=AT_150M[1])
    update = track_position(far_tick, [other, target], CandidateMode.COLLECT, latch, 100.0)
    assert update.match.packet is target
    assert update.arrived is False

    near_tick = PositionTick(agent_id=1, lat=AT_50M[0], lng=AT_50M[1])
    update = track_position(near_tick, [other, target], CandidateMode.COLLECT, latch, 100.0)
    assert update.arrived is True
    assert update.target_distance_m == pytest.approx(50, abs=2)

    again = track_position(near_tick, [other, target], CandidateMode.COLLECT, latch, 100.0)
    assert again.arrived is False


def test_track_position_prefers_the_packet_the_agent_is_heading_to(make_packet):
    close = make_packet(status="assigned", origin_lat=TARGET[0], origin_lng=TARGET[1])
    chosen = make_packet(status="assigned", origin_lat=-13.99, origin_lng=33.80)
    tick = PositionTick(agent_id=3, lat=AT_50M[0], lng=AT_50M[1])

    update = track_position(tick, [close, chosen], CandidateMode.COLLECT, ArrivalLatch(), 100.0,
                            target_packet_id=chosen.id)
    assert update.match.packet is close
    assert update.target is chosen
    assert update.arrived is False


def test_tick_without_fix_degrades_to_no_candidate(make_packet):
    packet = make_packet(status="assigned", origin_lat=TARGET[0], origin_lng=TARGET[1])
    for tick in (PositionTick(agent_id=1), PositionTick(agent_id=1, lat=-13.96, lng=33.77, error="timeout")):
        update = track_position(tick, [packet], CandidateMode.COLLECT, ArrivalLatch(), 100.0)
        assert update.has_candidate is False
        assert update.arrived is False
