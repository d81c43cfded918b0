# app/modules/packets/lifecycle.py
"""
Packet lifecycle: statuses, the transition table and the transitions that
do not involve an assignment (collection, hub confirmations, final handover).

Every public function validates first and mutates last, so a rejected call
leaves the packet untouched. Committing or rolling back is the caller's job.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, FrozenSet, Optional, Tuple
import logging

from app.core.exceptions import InvalidAssignment, PreconditionFailed
from app.shared.database.models import Packet

logger = logging.getLogger(__name__)


class PacketStatus(str, Enum):
    PENDING = "pending"
    ASSIGNED = "assigned"
    COLLECTED = "collected"
    AT_ORIGIN_HUB = "at_origin_hub"
    IN_TRANSIT = "in_transit"
    AT_DESTINATION_HUB = "at_destination_hub"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"


class DeliveryType(str, Enum):
    PICKUP = "pickup"        # customer collects at the destination hub
    DELIVERY = "delivery"    # home delivery by an agent


TERMINAL_STATUSES = frozenset({PacketStatus.DELIVERED})

# Statuses shared with PickupRequest
PICKUP_REQUEST_STATUSES = frozenset({
    PacketStatus.PENDING, PacketStatus.ASSIGNED, PacketStatus.COLLECTED
})

# Edge order of the timeline, used to keep stamps strictly increasing
TIMELINE = (
    "created_at",
    "collected_at",
    "origin_hub_confirmed_at",
    "dispatched_at",
    "destination_hub_confirmed_at",
    "out_for_delivery_at",
    "delivered_at",
)

BOTH_TYPES = frozenset({DeliveryType.PICKUP, DeliveryType.DELIVERY})
HOME_DELIVERY = frozenset({DeliveryType.DELIVERY})
HUB_PICKUP = frozenset({DeliveryType.PICKUP})


@dataclass(frozen=True)
class Transition:
    name: str
    source: PacketStatus
    target: PacketStatus
    stamps: Optional[str] = None
    clears: Optional[str] = None
    delivery_types: FrozenSet[DeliveryType] = BOTH_TYPES


_EDGES = (
    Transition("assign_pickup_agent", PacketStatus.PENDING, PacketStatus.ASSIGNED),
    Transition("unassign_pickup_agent", PacketStatus.ASSIGNED, PacketStatus.PENDING),
    Transition("agent_confirm", PacketStatus.ASSIGNED, PacketStatus.COLLECTED, stamps="collected_at"),
    Transition("origin_hub_confirm", PacketStatus.COLLECTED, PacketStatus.AT_ORIGIN_HUB,
               stamps="origin_hub_confirmed_at"),
    Transition("dispatch", PacketStatus.AT_ORIGIN_HUB, PacketStatus.IN_TRANSIT, stamps="dispatched_at"),
    Transition("destination_hub_confirm", PacketStatus.IN_TRANSIT, PacketStatus.AT_DESTINATION_HUB,
               stamps="destination_hub_confirmed_at"),
    Transition("assign_delivery_agent", PacketStatus.AT_DESTINATION_HUB, PacketStatus.OUT_FOR_DELIVERY,
               stamps="out_for_delivery_at", delivery_types=HOME_DELIVERY),
    Transition("unassign_delivery_agent", PacketStatus.OUT_FOR_DELIVERY, PacketStatus.AT_DESTINATION_HUB,
               clears="out_for_delivery_at", delivery_types=HOME_DELIVERY),
    Transition("mark_delivered", PacketStatus.OUT_FOR_DELIVERY, PacketStatus.DELIVERED,
               stamps="delivered_at", delivery_types=HOME_DELIVERY),
    Transition("hub_pickup", PacketStatus.AT_DESTINATION_HUB, PacketStatus.DELIVERED,
               stamps="delivered_at", delivery_types=HUB_PICKUP),
)

TRANSITIONS: Dict[Tuple[PacketStatus, PacketStatus], Transition] = {
    (edge.source, edge.target): edge for edge in _EDGES
}


def status_of(packet: Packet) -> PacketStatus:
    try:
        return PacketStatus(packet.status or PacketStatus.PENDING.value)
    except ValueError:
        raise PreconditionFailed(f"Packet {packet.id} has unknown status '{packet.status}'")


def delivery_type_of(packet: Packet) -> DeliveryType:
    try:
        return DeliveryType(packet.delivery_type or DeliveryType.DELIVERY.value)
    except ValueError:
        raise PreconditionFailed(f"Packet {packet.id} has unknown delivery type '{packet.delivery_type}'")


def find_transition(packet: Packet, target: PacketStatus) -> Transition:
    """Return the edge from the packet's current status to target, or raise PreconditionFailed."""
    current = status_of(packet)
    if current in TERMINAL_STATUSES:
        raise PreconditionFailed(
            f"Packet {packet.id} is already {current.value}, no further transitions are allowed",
            details={"packet_id": packet.id, "status": current.value, "terminal": True}
        )

    edge = TRANSITIONS.get((current, PacketStatus(target)))

    if edge is None:
        raise PreconditionFailed(
            f"Packet {packet.id} cannot move from '{current.value}' to '{PacketStatus(target).value}'",
            details={"packet_id": packet.id, "status": current.value, "target": PacketStatus(target).value}
        )

    delivery_type = delivery_type_of(packet)
    if delivery_type not in edge.delivery_types:
        raise PreconditionFailed(
            f"Transition '{edge.name}' is not allowed for {delivery_type.value}-type packet {packet.id}",
            details={"packet_id": packet.id, "delivery_type": delivery_type.value}
        )

    if edge.stamps and getattr(packet, edge.stamps) is not None:
        raise PreconditionFailed(
            f"Packet {packet.id} already has {edge.stamps} recorded",
            details={"packet_id": packet.id, "field": edge.stamps}
        )
    return edge


def can_transition(packet: Packet, target: PacketStatus) -> bool:
    try:
        find_transition(packet, target)
    except PreconditionFailed:
        return False
    return True


def next_timestamp(packet: Packet, field: str, now: Optional[datetime] = None) -> datetime:
    """
    Stamp for `field` that is strictly later than every earlier stamp on the
    packet's timeline.
    """
    now = now or datetime.now()
    position = TIMELINE.index(field)
    earlier = [getattr(packet, name) for name in TIMELINE[:position]]
    earlier = [stamp for stamp in earlier if stamp is not None]

    if earlier:
        floor = max(earlier)
        if now <= floor:
            now = floor + timedelta(microseconds=1)
    return now


def apply_transition(packet: Packet, target: PacketStatus, now: Optional[datetime] = None) -> Transition:
    """Move the packet along a legal edge, stamping or clearing the edge's timestamp."""
    edge = find_transition(packet, target)

    if edge.stamps:
        setattr(packet, edge.stamps, next_timestamp(packet, edge.stamps, now))

    if edge.clears:
        setattr(packet, edge.clears, None)

    packet.status = edge.target.value

    # Pickup requests follow the packet until it is collected
    request = packet.pickup_request
    if request is not None and edge.target in PICKUP_REQUEST_STATUSES:
        request.status = edge.target.value

    logger.info(f"📦 Packet {packet.id}: {edge.source.value} → {edge.target.value} ({edge.name})")
    return edge


# ==================== TRANSICIONES SIN ASIGNACION ====================

def confirm_collection(packet: Packet, agent_id: int, weight: Optional[float] = None,
                       now: Optional[datetime] = None) -> Transition:
    """
    assigned → collected. Only the assigned pickup agent may confirm, and this
    is the single point where the declared weight may be corrected.
    """
    find_transition(packet, PacketStatus.COLLECTED)

    if packet.assigned_pickup_agent_id != agent_id:
        raise InvalidAssignment(
            f"Packet {packet.id} is assigned to another pickup agent",
            details={"packet_id": packet.id, "agent_id": agent_id}
        )
    if weight is not None and not weight > 0:
        raise PreconditionFailed(f"Corrected weight must be greater than 0 kg, got {weight}")

    if weight is not None and weight != packet.weight:
        logger.info(f"⚖️ Packet {packet.id} weight corrected: {packet.weight} → {weight} kg")
        packet.weight = weight

    return apply_transition(packet, PacketStatus.COLLECTED, now)


def confirm_origin_hub(packet: Packet, now: Optional[datetime] = None) -> Transition:
    """collected → at_origin_hub once an operator confirms receipt"""
    return apply_transition(packet, PacketStatus.AT_ORIGIN_HUB, now)


def confirm_destination_hub(packet: Packet, now: Optional[datetime] = None) -> Transition:
    """in_transit → at_destination_hub; the origin side must have confirmed first"""
    find_transition(packet, PacketStatus.AT_DESTINATION_HUB)

    if not packet.confirmed_by_origin:
        raise PreconditionFailed(
            f"Packet {packet.id} was not confirmed by the origin hub",
            details={"packet_id": packet.id}
        )
    return apply_transition(packet, PacketStatus.AT_DESTINATION_HUB, now)


def _require_signature(packet: Packet, signature_base64: Optional[str]) -> str:
    signature = (signature_base64 or "").strip()
    if not signature:
        raise PreconditionFailed(
            f"A recipient signature is required to hand over packet {packet.id}",
            details={"packet_id": packet.id}
        )
    return signature


def mark_delivered(packet: Packet, signature_base64: Optional[str], national_id: Optional[str] = None,
                   now: Optional[datetime] = None) -> Transition:
    """out_for_delivery → delivered with proof of delivery"""
    edge = find_transition(packet, PacketStatus.DELIVERED)
    if edge.name != "mark_delivered":
        raise PreconditionFailed(
            f"Packet {packet.id} is not out for delivery",
            details={"packet_id": packet.id, "status": packet.status}
        )
    signature = _require_signature(packet, signature_base64)

    edge = apply_transition(packet, PacketStatus.DELIVERED, now)
    packet.signature_base64 = signature
    packet.recipient_national_id = national_id or None
    return edge


def confirm_hub_pickup(packet: Packet, signature_base64: Optional[str], national_id: Optional[str] = None,
                       now: Optional[datetime] = None) -> Transition:
    """at_destination_hub → delivered when the customer collects at the counter"""
    edge = find_transition(packet, PacketStatus.DELIVERED)
    if edge.name != "hub_pickup":
        raise PreconditionFailed(
            f"Packet {packet.id} is not waiting for hub pickup",
            details={"packet_id": packet.id, "status": packet.status}
        )
    signature = _require_signature(packet, signature_base64)

    edge = apply_transition(packet, PacketStatus.DELIVERED, now)
    packet.signature_base64 = signature
    packet.recipient_national_id = national_id or None
    return edge
