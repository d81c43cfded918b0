# app/modules/dispatch/views.py
"""
Per-city lists shown on the hub screens. Pure filters over already loaded
rows; the repository narrows the query, these functions decide membership.
"""

from collections import Counter
from typing import Any, Callable, Dict, Iterable, List

from app.modules.assignments.engine import raw_destination, same_city
from app.modules.packets.lifecycle import DeliveryType, PacketStatus
from app.shared.database.models import Packet, PickupRequest, Vehicle

WEIGHT_BUCKETS = (
    ("0-1kg", 1.0),
    ("1-2kg", 2.0),
    ("2-5kg", 5.0),
    ("5-10kg", 10.0),
)
HEAVIEST_BUCKET = ">10kg"


def _is(packet: Packet, status: PacketStatus) -> bool:
    return packet.status == status.value


def _is_home_delivery(packet: Packet) -> bool:
    return (packet.delivery_type or DeliveryType.DELIVERY.value) == DeliveryType.DELIVERY.value


def _is_hub_pickup(packet: Packet) -> bool:
    return packet.delivery_type == DeliveryType.PICKUP.value


def _from_city(packet: Packet, city: str) -> bool:
    return same_city(packet.origin_city, city)


def _to_city(packet: Packet, city: str) -> bool:
    return same_city(raw_destination(packet), city)


# ==================== HUB DE ORIGEN ====================

def ready_for_dispatch(packets: Iterable[Packet], city: str) -> List[Packet]:
    return [p for p in packets if _is(p, PacketStatus.AT_ORIGIN_HUB) and _from_city(p, city)]


def in_transit(packets: Iterable[Packet], city: str) -> List[Packet]:
    """Packets that left this city's hub"""
    return [p for p in packets if _is(p, PacketStatus.IN_TRANSIT) and _from_city(p, city)]


def unassigned_pickup_requests(requests: Iterable[PickupRequest], city: str) -> List[PickupRequest]:
    return [
        r for r in requests
        if r.status == PacketStatus.PENDING.value
        and r.packet is not None
        and r.packet.assigned_pickup_agent_id is None
        and _from_city(r.packet, city)
    ]


def available_vehicles(vehicles: Iterable[Vehicle], city: str) -> List[Vehicle]:
    return [v for v in vehicles if v.is_available and same_city(v.current_city, city)]


# ==================== HUB DE DESTINO ====================

def incoming(packets: Iterable[Packet], city: str) -> List[Packet]:
    """Packets on their way to this city's hub, waiting for receipt confirmation"""
    return [
        p for p in packets
        if _is(p, PacketStatus.IN_TRANSIT) and p.confirmed_by_origin and _to_city(p, city)
    ]


def awaiting_delivery(packets: Iterable[Packet], city: str) -> List[Packet]:
    return [
        p for p in packets
        if _is(p, PacketStatus.AT_DESTINATION_HUB)
        and _is_home_delivery(p)
        and p.assigned_delivery_agent_id is None
        and _to_city(p, city)
    ]


def awaiting_hub_pickup(packets: Iterable[Packet], city: str) -> List[Packet]:
    return [
        p for p in packets
        if _is(p, PacketStatus.AT_DESTINATION_HUB) and _is_hub_pickup(p)
        and same_city(p.destination_hub, city)
    ]


def assigned_deliveries(packets: Iterable[Packet], city: str) -> List[Packet]:
    return [
        p for p in packets
        if _is_home_delivery(p)
        and (_is(p, PacketStatus.OUT_FOR_DELIVERY) or p.assigned_delivery_agent_id is not None)
        and _to_city(p, city)
    ]


def picked_up(packets: Iterable[Packet], city: str) -> List[Packet]:
    """Hub pickups the customer already collected"""
    return [
        p for p in packets
        if _is(p, PacketStatus.DELIVERED) and _is_hub_pickup(p) and _to_city(p, city)
    ]


def delivered(packets: Iterable[Packet], city: str) -> List[Packet]:
    """Home deliveries handed over to the recipient"""
    return [
        p for p in packets
        if _is(p, PacketStatus.DELIVERED) and _is_home_delivery(p) and _to_city(p, city)
    ]


PACKET_VIEWS: Dict[str, Callable[[Iterable[Packet], str], List[Packet]]] = {
    "ready-for-dispatch": ready_for_dispatch,
    "in-transit": in_transit,
    "incoming": incoming,
    "awaiting-delivery": awaiting_delivery,
    "awaiting-hub-pickup": awaiting_hub_pickup,
    "assigned-deliveries": assigned_deliveries,
    "picked-up": picked_up,
    "delivered": delivered,
}


# ==================== ESTADISTICAS ====================

def weight_bucket(weight: float) -> str:
    for label, upper in WEIGHT_BUCKETS:
        if weight <= upper:
            return label
    return HEAVIEST_BUCKET


def hub_stats(packets: Iterable[Packet], city: str) -> Dict[str, Any]:
    """Dashboard breakdowns for every packet that starts or ends in the city"""
    related = [p for p in packets if _from_city(p, city) or _to_city(p, city)]

    by_weight = {label: 0 for label, _ in WEIGHT_BUCKETS}
    by_weight[HEAVIEST_BUCKET] = 0
    for packet in related:
        by_weight[weight_bucket(packet.weight)] += 1

    by_status = {status.value: 0 for status in PacketStatus}
    by_status.update(Counter(p.status for p in related))

    return {
        "city": city,
        "total": len(related),
        "outgoing": len([p for p in related if _from_city(p, city)]),
        "incoming": len([p for p in related if _to_city(p, city)]),
        "by_status": by_status,
        "by_category": dict(Counter(p.category or "general" for p in related)),
        "by_delivery_type": dict(Counter(p.delivery_type or DeliveryType.DELIVERY.value for p in related)),
        "by_weight": by_weight,
        "total_weight": round(sum(p.weight for p in related), 3),
    }
