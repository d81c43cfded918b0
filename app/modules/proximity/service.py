# app/modules/proximity/service.py
from typing import Any, Dict
import logging

from sqlalchemy.orm import Session

from app.config.settings import settings
from app.core.exceptions import RouteUnavailable
from app.modules.packets.repository import PacketRepository
from app.shared.services.routing_client import routing_client
from .matcher import CandidateMode, PositionTick, arrival_latch, candidate_point, track_position
from .schemas import PositionTickRequest, RouteInfoResponse

logger = logging.getLogger(__name__)

class ProximityService:
    def __init__(self, db: Session):
        self.db = db
        self.packets = PacketRepository(db)

    def _candidates(self, agent_id: int, mode: CandidateMode):
        if mode == CandidateMode.COLLECT:
            return self.packets.agent_pickup_packets(agent_id)
        return self.packets.agent_delivery_packets(agent_id)

    async def process_tick(self, data: PositionTickRequest) -> Dict[str, Any]:
        """Closest packet, distance and arrival flag for a live position"""
        tick = PositionTick(
            agent_id=data.agent_id,
            lat=data.lat,
            lng=data.lng,
            timestamp=data.timestamp,
            error=data.error
        )
        response: Dict[str, Any] = {
            "success": True,
            "agent_id": data.agent_id,
            "mode": data.mode.value,
            "has_candidate": False
        }

        if tick.point is None:
            reason = data.error or "no valid position fix"
            logger.info(f"📡 Agent {data.agent_id} tick without position: {reason}")
            response["message"] = f"Position unavailable: {reason}"
            return response

        update = track_position(
            tick,
            self._candidates(data.agent_id, data.mode),
            data.mode,
            arrival_latch,
            settings.arrival_threshold_meters,
            target_packet_id=data.packet_id
        )
        if not update.has_candidate:
            response["message"] = "No packets with coordinates to track"
            return response

        response.update({
            "message": "Arrived at destination" if update.arrived else "Tracking",
            "has_candidate": True,
            "closest_packet_id": update.match.packet.id,
            "closest_tracking_code": update.match.packet.tracking_code,
            "distance_km": round(update.match.distance_km, 3),
            "distance_m": round(update.match.distance_m, 1),
            "target_packet_id": update.target.id,
            "target_distance_m": round(update.target_distance_m, 1),
            "arrived": update.arrived
        })

        if data.include_route:
            try:
                route = await routing_client.route_info(tick.point, candidate_point(update.target, data.mode))
                response["route"] = RouteInfoResponse.model_validate(route)
            except RouteUnavailable as e:
                logger.warning(f"🗺️ Route unavailable for agent {data.agent_id}: {e.detail}")
                response["route_error"] = e.detail

        return response

    async def get_route(self, origin_lat: float, origin_lng: float,
                        destination_lat: float, destination_lng: float) -> Dict[str, Any]:
        route = await routing_client.route_info((origin_lat, origin_lng), (destination_lat, destination_lng))
        return {
            "success": True,
            "message": f"{route.distance_text}, {route.duration_text}",
            "route": RouteInfoResponse.model_validate(route)
        }
