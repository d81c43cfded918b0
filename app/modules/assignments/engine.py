# app/modules/assignments/engine.py
"""
Assignment rules for pickup agents, vehicles and delivery agents.

The functions here work on ORM entities that the caller has already loaded
(under lock when running against the database) and never touch the session.
Each one validates everything first and only then mutates, so a raised
DispatchError always leaves the entities exactly as they were.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional
import logging

from app.core.exceptions import (
    AlreadyDispatched, CapacityExceeded, CityMismatch, DestinationMismatch,
    InvalidAssignment, PreconditionFailed, UnresolvableDestination
)
from app.modules.packets.lifecycle import (
    DeliveryType, PacketStatus, apply_transition, delivery_type_of,
    find_transition, status_of
)
from app.shared.database.models import Agent, Packet, Vehicle
from app.shared.schemas.common import SideEffectIntent

logger = logging.getLogger(__name__)

# Load values are rounded to absorb float noise from repeated add/subtract
LOAD_PRECISION = 6

DELIVERY_ASSIGNMENT = "delivery-assignment"
PICKUP_CONFIRMATION = "pickup-confirmation"
DELIVERY_CONFIRMATION = "delivery-confirmation"

# Statuses a packet reaches only after its vehicle departed
POST_DISPATCH_STATUSES = frozenset({
    PacketStatus.IN_TRANSIT,
    PacketStatus.AT_DESTINATION_HUB,
    PacketStatus.OUT_FOR_DELIVERY,
    PacketStatus.DELIVERED,
})


@dataclass
class EngineResult:
    packets: List[Packet] = field(default_factory=list)
    vehicle: Optional[Vehicle] = None
    changed: bool = True
    message: str = ""
    intents: List[SideEffectIntent] = field(default_factory=list)


# ==================== UTILIDADES ====================

def normalize_city(name: Optional[str]) -> str:
    return " ".join((name or "").split()).casefold()


def same_city(a: Optional[str], b: Optional[str]) -> bool:
    return bool(normalize_city(a)) and normalize_city(a) == normalize_city(b)


def _round_load(value: float) -> float:
    return round(value, LOAD_PRECISION)


def raw_destination(packet: Packet) -> Optional[str]:
    """
    City name the packet is routed to, before matching against known hubs.
    Hub pickups go to destination_hub; home deliveries use destination_city
    or, failing that, the last comma-separated part of the address.
    """
    if delivery_type_of(packet) == DeliveryType.PICKUP:
        return packet.destination_hub

    if packet.destination_city:
        return packet.destination_city
    if packet.destination_address:
        return packet.destination_address.split(",")[-1].strip() or None
    return None


def resolve_destination_city(packet: Packet, known_cities: Iterable[str]) -> str:
    """Canonical known city for the packet's destination, or UnresolvableDestination."""
    lookup: Dict[str, str] = {normalize_city(city): city for city in known_cities if city}
    candidate = raw_destination(packet)
    resolved = lookup.get(normalize_city(candidate))

    if resolved is None:
        raise UnresolvableDestination(
            f"Destination of packet {packet.id} ('{candidate or 'unknown'}') "
            f"does not match any known hub city",
            details={"packet_id": packet.id, "destination": candidate}
        )
    return resolved


def _ensure_agent_active(agent: Agent) -> None:
    if not agent.is_active and agent.is_active is not None:
        raise InvalidAssignment(f"Agent {agent.id} is not active", details={"agent_id": agent.id})


def _ensure_vehicle_available(vehicle: Vehicle) -> None:
    if vehicle.is_active is False or vehicle.is_in_maintenance:
        raise InvalidAssignment(
            f"Vehicle {vehicle.id} is not available (inactive or in maintenance)",
            details={"vehicle_id": vehicle.id}
        )


# ==================== AGENTE DE RECOLECCION ====================

def assign_pickup_agent(packet: Packet, agent: Agent) -> EngineResult:
    """pending → assigned. The agent must work in the packet's origin city."""
    _ensure_agent_active(agent)

    if (status_of(packet) == PacketStatus.ASSIGNED
            and packet.assigned_pickup_agent_id == agent.id):
        return EngineResult(packets=[packet], changed=False,
                            message=f"Agent {agent.id} already assigned to packet {packet.id}")

    find_transition(packet, PacketStatus.ASSIGNED)

    if not same_city(agent.city, packet.origin_city):
        raise CityMismatch(
            f"Agent {agent.id} works in {agent.city} but packet {packet.id} "
            f"is collected in {packet.origin_city}",
            details={"agent_city": agent.city, "origin_city": packet.origin_city}
        )

    packet.pickup_agent = agent
    packet.assigned_pickup_agent_id = agent.id
    apply_transition(packet, PacketStatus.ASSIGNED)

    return EngineResult(packets=[packet], message=f"Pickup agent {agent.id} assigned")


def unassign_pickup_agent(packet: Packet) -> EngineResult:
    """
    assigned → pending, unconditionally. Calling it again is a no-op that
    reports the packet as already unassigned.
    """
    status = status_of(packet)

    if status == PacketStatus.PENDING and packet.assigned_pickup_agent_id is None:
        return EngineResult(packets=[packet], changed=False,
                            message=f"Packet {packet.id} is already unassigned")

    find_transition(packet, PacketStatus.PENDING)

    packet.pickup_agent = None
    packet.assigned_pickup_agent_id = None
    apply_transition(packet, PacketStatus.PENDING)

    return EngineResult(packets=[packet], message="Pickup agent unassigned")


# ==================== VEHICULOS ====================

def _is_on_vehicle(packet: Packet, vehicle: Vehicle) -> bool:
    if packet in vehicle.assigned_packets:
        return True
    return vehicle.id is not None and packet.assigned_vehicle_id == vehicle.id


def _ensure_ready_for_vehicle(packet: Packet, vehicle: Vehicle) -> None:
    status = status_of(packet)
    if status != PacketStatus.AT_ORIGIN_HUB:
        raise PreconditionFailed(
            f"Packet {packet.id} is '{status.value}', only packets at the origin hub can be loaded",
            details={"packet_id": packet.id, "status": status.value}
        )
    on_some_vehicle = packet.assigned_vehicle_id is not None or packet.assigned_vehicle is not None
    if on_some_vehicle and not _is_on_vehicle(packet, vehicle):
        raise PreconditionFailed(
            f"Packet {packet.id} is already assigned to vehicle {packet.assigned_vehicle_id}",
            details={"packet_id": packet.id, "vehicle_id": packet.assigned_vehicle_id}
        )
    if not same_city(packet.origin_city, vehicle.current_city):
        raise CityMismatch(
            f"Packet {packet.id} is at {packet.origin_city} but vehicle {vehicle.id} is at {vehicle.current_city}",
            details={"packet_id": packet.id, "vehicle_city": vehicle.current_city}
        )


def assign_multiple_to_vehicle(packets: List[Packet], vehicle: Vehicle,
                               known_cities: Iterable[str]) -> EngineResult:
    """
    Load a batch of packets onto a vehicle chosen by the caller.

    Checks, in order: packet status and origin, destination resolution,
    destination homogeneity within the batch and against the vehicle, and
    capacity. Packet status does not change until the vehicle is dispatched.
    """
    if not packets:
        raise PreconditionFailed("No packets given for vehicle assignment")

    _ensure_vehicle_available(vehicle)
    known_cities = list(known_cities)

    unique: Dict[int, Packet] = {}
    for packet in packets:
        unique.setdefault(id(packet) if packet.id is None else packet.id, packet)
    batch = list(unique.values())

    for packet in batch:
        _ensure_ready_for_vehicle(packet, vehicle)

    new_packets = [p for p in batch if not _is_on_vehicle(p, vehicle)]
    if not new_packets:
        return EngineResult(packets=batch, vehicle=vehicle, changed=False,
                            message=f"Packets already assigned to vehicle {vehicle.id}")

    destinations = {packet.id: resolve_destination_city(packet, known_cities) for packet in batch}
    distinct = sorted(set(destinations.values()))
    if len(distinct) > 1:
        raise DestinationMismatch(
            f"Packets in the batch go to different cities: {', '.join(distinct)}",
            details={"destinations": destinations}
        )
    destination = distinct[0]

    if vehicle.destination_city and not same_city(vehicle.destination_city, destination):
        raise DestinationMismatch(
            f"Vehicle {vehicle.id} is loading for {vehicle.destination_city}, "
            f"packet destination is {destination}",
            details={"vehicle_destination": vehicle.destination_city, "packet_destination": destination}
        )

    current_load = vehicle.current_load or 0.0
    added = _round_load(sum(packet.weight for packet in new_packets))
    new_load = _round_load(current_load + added)
    if new_load > vehicle.capacity:
        overshoot = _round_load(new_load - vehicle.capacity)
        raise CapacityExceeded(
            f"Assignment of {added:g} kg exceeds vehicle capacity by {overshoot:g} kg "
            f"(load {current_load:g}/{vehicle.capacity:g} kg)",
            details={
                "vehicle_id": vehicle.id,
                "capacity": vehicle.capacity,
                "current_load": current_load,
                "requested": added,
                "overshoot": overshoot,
            }
        )

    # Mutations
    for packet in new_packets:
        packet.assigned_vehicle = vehicle
        packet.assigned_vehicle_id = vehicle.id
    vehicle.current_load = new_load
    if not vehicle.destination_city:
        vehicle.destination_city = destination

    logger.info(
        f"🚚 Vehicle {vehicle.id}: +{len(new_packets)} packet(s), "
        f"load {current_load:g} → {new_load:g}/{vehicle.capacity:g} kg, destination {vehicle.destination_city}"
    )
    return EngineResult(packets=batch, vehicle=vehicle,
                        message=f"{len(new_packets)} packet(s) assigned to vehicle {vehicle.id}")


def assign_to_vehicle(packet: Packet, vehicle: Vehicle, known_cities: Iterable[str]) -> EngineResult:
    return assign_multiple_to_vehicle([packet], vehicle, known_cities)


def unassign_from_vehicle(packet: Packet, vehicle: Optional[Vehicle] = None) -> EngineResult:
    """
    Take a packet off its vehicle before departure. Idempotent: a packet that
    is not on any vehicle is returned unchanged.
    """
    status = status_of(packet)
    if status in POST_DISPATCH_STATUSES or packet.dispatched_at is not None:
        raise AlreadyDispatched(
            f"Packet {packet.id} has already been dispatched",
            details={"packet_id": packet.id, "status": status.value}
        )

    vehicle = vehicle if vehicle is not None else packet.assigned_vehicle
    if vehicle is None or not _is_on_vehicle(packet, vehicle):
        return EngineResult(packets=[packet], vehicle=vehicle, changed=False,
                            message=f"Packet {packet.id} is not assigned to a vehicle")

    if packet in vehicle.assigned_packets:
        vehicle.assigned_packets.remove(packet)
    packet.assigned_vehicle = None
    packet.assigned_vehicle_id = None

    if vehicle.assigned_packets:
        vehicle.current_load = max(0.0, _round_load((vehicle.current_load or 0.0) - packet.weight))
    else:
        vehicle.current_load = 0.0
        vehicle.destination_city = None

    logger.info(f"🚚 Vehicle {vehicle.id}: packet {packet.id} removed, load now {vehicle.current_load:g} kg")
    return EngineResult(packets=[packet], vehicle=vehicle,
                        message=f"Packet {packet.id} unassigned from vehicle {vehicle.id}")


def dispatch_vehicle(vehicle: Vehicle, now: Optional[datetime] = None) -> EngineResult:
    """
    Depart with the whole assigned batch. Every packet must be at the origin
    hub; otherwise nothing moves.
    """
    _ensure_vehicle_available(vehicle)
    batch = list(vehicle.assigned_packets)

    if not batch:
        raise PreconditionFailed(f"Vehicle {vehicle.id} has no packets to dispatch",
                                 details={"vehicle_id": vehicle.id})

    blocked = []
    for packet in batch:
        try:
            find_transition(packet, PacketStatus.IN_TRANSIT)
        except PreconditionFailed:
            blocked.append({"packet_id": packet.id, "status": packet.status})
    if blocked:
        raise PreconditionFailed(
            f"Vehicle {vehicle.id} cannot depart: {len(blocked)} packet(s) are not ready at the origin hub",
            details={"vehicle_id": vehicle.id, "blocked": blocked}
        )

    now = now or datetime.now()
    for packet in batch:
        apply_transition(packet, PacketStatus.IN_TRANSIT, now)
        packet.confirmed_by_origin = True
        packet.dispatched_vehicle_id = vehicle.id

    vehicle.assigned_packets.clear()
    for packet in batch:
        packet.assigned_vehicle = None
        packet.assigned_vehicle_id = None
    destination = vehicle.destination_city
    vehicle.current_load = 0.0
    vehicle.destination_city = None

    logger.info(f"🚛 Vehicle {vehicle.id} dispatched to {destination} with {len(batch)} packet(s)")
    return EngineResult(packets=batch, vehicle=vehicle,
                        message=f"Vehicle {vehicle.id} dispatched with {len(batch)} packet(s) to {destination}")


# ==================== AGENTE DE ENTREGA ====================

def _ensure_home_delivery(packet: Packet) -> None:
    if delivery_type_of(packet) != DeliveryType.DELIVERY:
        raise PreconditionFailed(
            f"Packet {packet.id} is collected at the hub, it has no delivery agent",
            details={"packet_id": packet.id, "delivery_type": packet.delivery_type}
        )


def assign_delivery_agent(packet: Packet, agent: Agent, known_cities: Iterable[str]) -> EngineResult:
    """
    at_destination_hub → out_for_delivery, or swap the agent of a packet that
    is already out for delivery. Emits one delivery-assignment intent per
    successful (re)assignment.
    """
    _ensure_home_delivery(packet)
    _ensure_agent_active(agent)

    status = status_of(packet)
    if status not in (PacketStatus.AT_DESTINATION_HUB, PacketStatus.OUT_FOR_DELIVERY):
        raise PreconditionFailed(
            f"Packet {packet.id} is '{status.value}', delivery agents are assigned at the destination hub",
            details={"packet_id": packet.id, "status": status.value}
        )

    if status == PacketStatus.OUT_FOR_DELIVERY and packet.assigned_delivery_agent_id == agent.id:
        return EngineResult(packets=[packet], changed=False,
                            message=f"Agent {agent.id} already delivers packet {packet.id}")

    destination = resolve_destination_city(packet, known_cities)
    if not same_city(agent.city, destination):
        raise CityMismatch(
            f"Agent {agent.id} works in {agent.city} but packet {packet.id} is delivered in {destination}",
            details={"agent_city": agent.city, "destination_city": destination}
        )

    if status == PacketStatus.AT_DESTINATION_HUB:
        find_transition(packet, PacketStatus.OUT_FOR_DELIVERY)

    previous_agent_id = packet.assigned_delivery_agent_id
    packet.delivery_agent = agent
    packet.assigned_delivery_agent_id = agent.id
    if status == PacketStatus.AT_DESTINATION_HUB:
        apply_transition(packet, PacketStatus.OUT_FOR_DELIVERY)

    intent = SideEffectIntent(
        kind=DELIVERY_ASSIGNMENT,
        packet_id=packet.id,
        payload={"packetId": packet.id, "agentId": agent.id}
    )
    message = (f"Delivery reassigned from agent {previous_agent_id} to {agent.id}"
               if previous_agent_id else f"Delivery agent {agent.id} assigned")
    return EngineResult(packets=[packet], message=message, intents=[intent])


def unassign_delivery_agent(packet: Packet) -> EngineResult:
    """out_for_delivery → at_destination_hub; a second call is a no-op."""
    _ensure_home_delivery(packet)
    status = status_of(packet)

    if status == PacketStatus.AT_DESTINATION_HUB and packet.assigned_delivery_agent_id is None:
        return EngineResult(packets=[packet], changed=False,
                            message=f"Packet {packet.id} has no delivery agent")

    if status != PacketStatus.OUT_FOR_DELIVERY:
        raise PreconditionFailed(
            f"Packet {packet.id} is '{status.value}', only packets out for delivery can be unassigned",
            details={"packet_id": packet.id, "status": status.value}
        )

    packet.delivery_agent = None
    packet.assigned_delivery_agent_id = None
    apply_transition(packet, PacketStatus.AT_DESTINATION_HUB)

    return EngineResult(packets=[packet], message="Delivery agent unassigned")
