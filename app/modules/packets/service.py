# app/modules/packets/service.py
from datetime import datetime
from typing import Any, Dict, Optional
import logging
import secrets

from fastapi import BackgroundTasks
from sqlalchemy.orm import Session

from app.core.auth.dependencies import CurrentUser
from app.core.exceptions import InvalidAssignment
from app.modules.assignments.engine import raw_destination
from app.modules.dispatch.coordinator import (
    ConfirmCollection, ConfirmDestinationHub, ConfirmHubPickup, ConfirmOriginHub,
    DispatchOutcome, MarkDelivered
)
from app.modules.dispatch.service import DispatchService
from app.modules.proximity.matcher import CandidateMode, candidate_point
from app.shared.database.models import Customer, Packet, PickupRequest
from app.shared.schemas.packet import PacketInfo
from .lifecycle import TIMELINE, PacketStatus, next_timestamp
from .repository import PacketRepository
from .schemas import PacketCreate, PickupBookingRequest, ProofOfDeliveryRequest

logger = logging.getLogger(__name__)

TRACKING_PREFIX = "PKT-"
TRACKING_HEX_BYTES = 5

TIMELINE_EVENTS = {
    "created_at": "registered",
    "collected_at": "collected",
    "origin_hub_confirmed_at": "at_origin_hub",
    "dispatched_at": "in_transit",
    "destination_hub_confirmed_at": "at_destination_hub",
    "out_for_delivery_at": "out_for_delivery",
    "delivered_at": "delivered",
}

def new_tracking_code() -> str:
    """PKT- followed by 10 upper-case hex characters"""
    return TRACKING_PREFIX + secrets.token_hex(TRACKING_HEX_BYTES).upper()

class PacketService:
    def __init__(self, db: Session, background_tasks: Optional[BackgroundTasks] = None):
        self.db = db
        self.background_tasks = background_tasks
        self.repository = PacketRepository(db)
        self.dispatch = DispatchService(db)

    def _run(self, command) -> DispatchOutcome:
        return self.dispatch.execute(command, self.background_tasks)

    @staticmethod
    def _packet_response(outcome: DispatchOutcome) -> Dict[str, Any]:
        return {
            "success": True,
            "message": outcome.message,
            "packet": PacketInfo.model_validate(outcome.packets[0]),
            "changed": outcome.changed
        }

    def _unique_tracking_code(self) -> str:
        code = new_tracking_code()
        while self.repository.tracking_code_exists(code):
            code = new_tracking_code()
        return code

    def _build_packet(self, data: PacketCreate, origin_city: str, **fields) -> Packet:
        return Packet(
            tracking_code=self._unique_tracking_code(),
            description=data.description,
            category=data.category or "general",
            weight=data.weight,
            delivery_type=data.delivery_type.value,
            origin_city=origin_city.strip(),
            origin_address=data.origin_address,
            origin_lat=data.origin_lat,
            origin_lng=data.origin_lng,
            destination_address=data.destination_address,
            destination_hub=data.destination_hub,
            destination_city=data.destination_city,
            destination_lat=data.destination_lat,
            destination_lng=data.destination_lng,
            **fields
        )

    # ==================== REGISTRO ====================

    async def create_packet(self, data: PacketCreate, operator: CurrentUser) -> Dict[str, Any]:
        """Hub drop-off: the sender brings the packet, it starts at the origin hub"""
        origin_city = data.origin_city or operator.city
        if not origin_city:
            raise InvalidAssignment("An origin city is required to register a packet")

        try:
            now = datetime.now()
            packet = self._build_packet(
                data, origin_city,
                status=PacketStatus.AT_ORIGIN_HUB.value,
                created_at=now,
            )
            packet.origin_hub_confirmed_at = next_timestamp(packet, "origin_hub_confirmed_at", now)
            self.repository.add(packet)
            self.db.commit()
            self.db.refresh(packet)
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"📦 Packet {packet.tracking_code} registered at {packet.origin_city} hub "
                    f"({packet.weight:g} kg → {raw_destination(packet)})")
        return {
            "success": True,
            "message": f"Packet {packet.tracking_code} registered",
            "packet": PacketInfo.model_validate(packet),
            "changed": True
        }

    async def book_pickup(self, data: PickupBookingRequest) -> Dict[str, Any]:
        """Customer booking: a pending packet plus its pickup request"""
        try:
            customer = self.repository.get_customer_by_email(data.customer_email)
            if customer is None:
                customer = self.repository.add(Customer(
                    name=data.customer_name,
                    email=data.customer_email.strip().lower(),
                    phone_number=data.customer_phone,
                    city=data.origin_city
                ))

            packet = self._build_packet(
                data, data.origin_city,
                status=PacketStatus.PENDING.value,
                created_at=datetime.now(),
            )
            if not packet.origin_address:
                packet.origin_address = data.pickup_address
            self.repository.add(packet)

            request = self.repository.add(PickupRequest(
                customer_id=customer.id,
                packet_id=packet.id,
                pickup_address=data.pickup_address,
                status=PacketStatus.PENDING.value
            ))
            self.db.commit()
            self.db.refresh(packet)
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"📝 Pickup request {request.id} booked for packet {packet.tracking_code} in {packet.origin_city}")
        return {
            "success": True,
            "message": f"Pickup booked, tracking code {packet.tracking_code}",
            "packet": PacketInfo.model_validate(packet),
            "request_id": request.id,
            "customer_id": customer.id
        }

    # ==================== CONSULTAS ====================

    async def get_packet(self, packet_id: int) -> Dict[str, Any]:
        packet = self.repository.get_packet(packet_id)
        return {
            "success": True,
            "message": f"Packet {packet.tracking_code}",
            "packet": PacketInfo.model_validate(packet),
            "changed": False
        }

    async def track(self, tracking_code: str) -> Dict[str, Any]:
        """Public status and timeline, no personal data"""
        packet = self.repository.get_by_tracking_code(tracking_code)

        timeline = [
            {"event": TIMELINE_EVENTS[field], "at": getattr(packet, field)}
            for field in TIMELINE
            if getattr(packet, field) is not None
        ]
        return {
            "success": True,
            "message": f"Packet {packet.tracking_code} is {packet.status}",
            "tracking_code": packet.tracking_code,
            "status": packet.status,
            "delivery_type": packet.delivery_type,
            "origin_city": packet.origin_city,
            "destination": raw_destination(packet),
            "timeline": timeline
        }

    async def get_coordinates(self, packet_id: int) -> Dict[str, Any]:
        packet = self.repository.get_packet(packet_id)
        origin = candidate_point(packet, CandidateMode.COLLECT)
        destination = candidate_point(packet, CandidateMode.DELIVER)
        return {
            "success": True,
            "message": f"Coordinates of packet {packet.tracking_code}",
            "packet_id": packet.id,
            "tracking_code": packet.tracking_code,
            "origin": {"lat": origin[0], "lng": origin[1]} if origin else None,
            "destination": {"lat": destination[0], "lng": destination[1]} if destination else None
        }

    async def get_agent_packets(self, agent_id: int, mode: CandidateMode) -> Dict[str, Any]:
        """Collect or deliver list of an agent, flagged for the map"""
        if mode == CandidateMode.COLLECT:
            packets = self.repository.agent_pickup_packets(agent_id)
        else:
            packets = self.repository.agent_delivery_packets(agent_id)

        items = [
            {
                "packet": PacketInfo.model_validate(p),
                "has_coordinates": candidate_point(p, mode) is not None
            }
            for p in packets
        ]
        return {
            "success": True,
            "message": f"{len(items)} packet(s) to {mode.value}",
            "agent_id": agent_id,
            "mode": mode.value,
            "packets": items,
            "count": len(items)
        }

    # ==================== TRANSICIONES ====================

    async def agent_confirm(self, packet_id: int, agent_id: int, weight: Optional[float]) -> Dict[str, Any]:
        outcome = self._run(ConfirmCollection(packet_id=packet_id, agent_id=agent_id, weight=weight))
        return self._packet_response(outcome)

    async def origin_hub_confirm(self, packet_id: int) -> Dict[str, Any]:
        outcome = self._run(ConfirmOriginHub(packet_id=packet_id))
        return self._packet_response(outcome)

    async def destination_hub_confirm(self, packet_id: int, operator: CurrentUser) -> Dict[str, Any]:
        outcome = self._run(ConfirmDestinationHub(packet_id=packet_id, hub_city=operator.city))
        return self._packet_response(outcome)

    async def mark_delivered(self, packet_id: int, data: ProofOfDeliveryRequest,
                             current_user: CurrentUser) -> Dict[str, Any]:
        agent_id = None if current_user.is_admin else current_user.id
        outcome = self._run(MarkDelivered(
            packet_id=packet_id,
            signature_base64=data.signature_base64,
            national_id=data.national_id,
            agent_id=agent_id
        ))
        return self._packet_response(outcome)

    async def confirm_hub_pickup(self, packet_id: int, data: ProofOfDeliveryRequest) -> Dict[str, Any]:
        outcome = self._run(ConfirmHubPickup(
            packet_id=packet_id,
            signature_base64=data.signature_base64,
            national_id=data.national_id
        ))
        return self._packet_response(outcome)
