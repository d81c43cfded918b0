# app/modules/proximity/matcher.py
"""
Closest-parcel selection and arrival detection for agents in the field.

Positions are never persisted. The only state is the arrival latch, which
remembers per (agent, packet) that an arrival was already reported.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
import threading
from typing import Any, Dict, Iterable, Optional, Tuple
import logging

from app.config.settings import settings
from app.shared.geo import LatLng, coerce_point, distance_km, distance_m

logger = logging.getLogger(__name__)

DEFAULT_REARM_FACTOR = 2.0


class CandidateMode(str, Enum):
    COLLECT = "collect"   # heading to the sender, origin coordinates
    DELIVER = "deliver"   # heading to the recipient, destination coordinates


@dataclass(frozen=True)
class CandidateMatch:
    packet: Any
    distance_km: float

    @property
    def distance_m(self) -> float:
        return self.distance_km * 1000.0


@dataclass
class PositionTick:
    agent_id: int
    lat: Optional[float] = None
    lng: Optional[float] = None
    timestamp: Optional[datetime] = None
    error: Optional[str] = None

    @property
    def point(self) -> Optional[LatLng]:
        if self.error:
            return None
        return coerce_point((self.lat, self.lng))


@dataclass
class PositionUpdate:
    match: Optional[CandidateMatch] = None
    target: Any = None
    target_distance_m: Optional[float] = None
    arrived: bool = False

    @property
    def has_candidate(self) -> bool:
        return self.match is not None


def candidate_point(packet: Any, mode: CandidateMode) -> Optional[LatLng]:
    if CandidateMode(mode) == CandidateMode.COLLECT:
        return coerce_point((packet.origin_lat, packet.origin_lng))
    return coerce_point((packet.destination_lat, packet.destination_lng))


def closest_candidate(agent_position: Any, candidates: Iterable[Any],
                      mode: CandidateMode) -> Optional[CandidateMatch]:
    """Nearest candidate by great-circle distance; ties keep the first seen."""
    origin = coerce_point(agent_position)
    if origin is None:
        return None

    best: Optional[CandidateMatch] = None
    for packet in candidates:
        point = candidate_point(packet, mode)
        if point is None:
            continue
        km = distance_km(origin, point)
        if best is None or km < best.distance_km:
            best = CandidateMatch(packet=packet, distance_km=km)
    return best


class ArrivalLatch:
    """
    Reports an arrival once per approach. After firing, the latch for that
    (agent, packet) stays closed until a tick newer than the one that fired
    puts the agent beyond rearm_factor times the threshold.
    """

    def __init__(self, rearm_factor: float = DEFAULT_REARM_FACTOR):
        self.rearm_factor = rearm_factor
        self._fired: Dict[Tuple[int, int], Optional[datetime]] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _as_utc(moment: Optional[datetime]) -> Optional[datetime]:
        # Naive tick timestamps are device-local time
        if moment is None:
            return None
        return moment.astimezone(timezone.utc)

    @staticmethod
    def _is_newer(observed_at: Optional[datetime], fired_at: Optional[datetime]) -> bool:
        if observed_at is None or fired_at is None:
            return True
        return observed_at > fired_at

    def check(self, agent_id: int, packet_id: int, agent_position: Any, target: Any,
              threshold_m: float, observed_at: Optional[datetime] = None) -> bool:
        meters = distance_m(agent_position, target)
        if meters is None:
            return False

        observed_at = self._as_utc(observed_at)
        key = (agent_id, packet_id)
        with self._lock:
            if key in self._fired:
                if meters > threshold_m * self.rearm_factor and self._is_newer(observed_at, self._fired[key]):
                    del self._fired[key]
                    logger.info(f"🔓 Arrival latch re-armed for agent {agent_id} / packet {packet_id}")
                return False

            if meters <= threshold_m:
                self._fired[key] = observed_at
                logger.info(f"📍 Agent {agent_id} reached packet {packet_id} ({meters:.0f} m)")
                return True
            return False

    def is_latched(self, agent_id: int, packet_id: int) -> bool:
        with self._lock:
            return (agent_id, packet_id) in self._fired

    def release(self, agent_id: int, packet_id: int) -> None:
        with self._lock:
            self._fired.pop((agent_id, packet_id), None)

    def release_packet(self, packet_id: int) -> None:
        """Drop every agent's latch on a packet that was collected, delivered or reassigned"""
        with self._lock:
            for key in [key for key in self._fired if key[1] == packet_id]:
                del self._fired[key]

    def clear(self) -> None:
        with self._lock:
            self._fired.clear()


def track_position(tick: PositionTick, candidates: Iterable[Any], mode: CandidateMode,
                   latch: ArrivalLatch, threshold_m: float,
                   target_packet_id: Optional[int] = None) -> PositionUpdate:
    """
    Closest candidate plus arrival flag for one live position tick. The
    arrival is checked against target_packet_id when it is one of the
    candidates, otherwise against the closest candidate.
    """
    position = tick.point
    if position is None:
        return PositionUpdate()

    candidates = list(candidates)
    match = closest_candidate(position, candidates, mode)
    if match is None:
        return PositionUpdate()

    target = match.packet
    if target_packet_id is not None:
        chosen = next((p for p in candidates if p.id == target_packet_id), None)
        if chosen is not None and candidate_point(chosen, mode) is not None:
            target = chosen

    target_point = candidate_point(target, mode)
    arrived = latch.check(tick.agent_id, target.id, position, target_point, threshold_m, tick.timestamp)

    return PositionUpdate(
        match=match,
        target=target,
        target_distance_m=distance_m(position, target_point),
        arrived=arrived,
    )


arrival_latch = ArrivalLatch(settings.arrival_rearm_factor)
