# app/modules/dispatch/coordinator.py
"""
Turns a dispatch command into engine and lifecycle calls.

The coordinator asks its loader for the rows a command touches (the
database loader locks them), runs the matching rule, and reports what
changed together with the notifications to send once the caller commits.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple
import logging

from app.core.exceptions import InvalidAssignment, NotFound
from app.modules.assignments import engine
from app.modules.assignments.engine import (
    DELIVERY_CONFIRMATION, PICKUP_CONFIRMATION, EngineResult, raw_destination, same_city
)
from app.modules.packets import lifecycle
from app.shared.database.models import Agent, Packet, Vehicle
from app.shared.schemas.common import SideEffectIntent

logger = logging.getLogger(__name__)


# ==================== COMANDOS ====================

@dataclass(frozen=True)
class AssignPickupAgent:
    packet_id: int
    agent_id: int


@dataclass(frozen=True)
class UnassignPickupAgent:
    packet_id: int


@dataclass(frozen=True)
class AssignToVehicle:
    packet_ids: Tuple[int, ...]
    vehicle_id: int


@dataclass(frozen=True)
class UnassignFromVehicle:
    packet_id: int


@dataclass(frozen=True)
class DispatchVehicle:
    vehicle_id: int


@dataclass(frozen=True)
class AssignDeliveryAgent:
    packet_id: int
    agent_id: int


@dataclass(frozen=True)
class UnassignDeliveryAgent:
    packet_id: int


@dataclass(frozen=True)
class ConfirmCollection:
    packet_id: int
    agent_id: int
    weight: Optional[float] = None


@dataclass(frozen=True)
class ConfirmOriginHub:
    packet_id: int


@dataclass(frozen=True)
class ConfirmDestinationHub:
    packet_id: int
    hub_city: Optional[str] = None


@dataclass(frozen=True)
class MarkDelivered:
    packet_id: int
    signature_base64: Optional[str]
    national_id: Optional[str] = None
    agent_id: Optional[int] = None  # None when an operator records the handover


@dataclass(frozen=True)
class ConfirmHubPickup:
    packet_id: int
    signature_base64: Optional[str]
    national_id: Optional[str] = None


# ==================== SNAPSHOT Y RESULTADO ====================

@dataclass
class Snapshot:
    """Rows a command may read or write, keyed by id"""
    packets: Dict[int, Packet] = field(default_factory=dict)
    vehicles: Dict[int, Vehicle] = field(default_factory=dict)
    agents: Dict[int, Agent] = field(default_factory=dict)
    known_cities: List[str] = field(default_factory=list)

    def packet(self, packet_id: int) -> Packet:
        packet = self.packets.get(packet_id)
        if packet is None:
            raise NotFound(f"Packet {packet_id} not found", details={"packet_id": packet_id})
        return packet

    def vehicle(self, vehicle_id: int) -> Vehicle:
        vehicle = self.vehicles.get(vehicle_id)
        if vehicle is None:
            raise NotFound(f"Vehicle {vehicle_id} not found", details={"vehicle_id": vehicle_id})
        return vehicle

    def agent(self, agent_id: int) -> Agent:
        agent = self.agents.get(agent_id)
        if agent is None:
            raise NotFound(f"Agent {agent_id} not found", details={"agent_id": agent_id})
        return agent


@dataclass
class DispatchOutcome:
    packets: List[Packet]
    vehicle: Optional[Vehicle]
    intents: List[SideEffectIntent]
    changed: bool
    message: str = ""
    # Packets whose arrival latches no longer apply
    settled_packet_ids: List[int] = field(default_factory=list)


SnapshotLoader = Callable[[object], Snapshot]

# Commands after which an agent is no longer heading to the packet
_SETTLING_COMMANDS = (
    UnassignPickupAgent, ConfirmCollection, AssignDeliveryAgent,
    UnassignDeliveryAgent, MarkDelivered, ConfirmHubPickup,
)


class DispatchCoordinator:
    def __init__(self, load_snapshot: SnapshotLoader, clock: Callable[[], datetime] = datetime.now):
        self.load_snapshot = load_snapshot
        self.clock = clock
        self._handlers = {
            AssignPickupAgent: self._assign_pickup_agent,
            UnassignPickupAgent: self._unassign_pickup_agent,
            AssignToVehicle: self._assign_to_vehicle,
            UnassignFromVehicle: self._unassign_from_vehicle,
            DispatchVehicle: self._dispatch_vehicle,
            AssignDeliveryAgent: self._assign_delivery_agent,
            UnassignDeliveryAgent: self._unassign_delivery_agent,
            ConfirmCollection: self._confirm_collection,
            ConfirmOriginHub: self._confirm_origin_hub,
            ConfirmDestinationHub: self._confirm_destination_hub,
            MarkDelivered: self._mark_delivered,
            ConfirmHubPickup: self._confirm_hub_pickup,
        }

    def apply(self, command) -> DispatchOutcome:
        handler = self._handlers.get(type(command))
        if handler is None:
            raise TypeError(f"Unsupported dispatch command: {type(command).__name__}")

        snapshot = self.load_snapshot(command)
        result: EngineResult = handler(command, snapshot)

        settled = []
        if result.changed and isinstance(command, _SETTLING_COMMANDS):
            settled = [p.id for p in result.packets if p.id is not None]

        return DispatchOutcome(
            packets=result.packets,
            vehicle=result.vehicle,
            intents=list(result.intents),
            changed=result.changed,
            message=result.message,
            settled_packet_ids=settled,
        )

    # ==================== AGENTES DE RECOLECCION ====================

    def _assign_pickup_agent(self, command: AssignPickupAgent, snapshot: Snapshot) -> EngineResult:
        return engine.assign_pickup_agent(snapshot.packet(command.packet_id), snapshot.agent(command.agent_id))

    def _unassign_pickup_agent(self, command: UnassignPickupAgent, snapshot: Snapshot) -> EngineResult:
        return engine.unassign_pickup_agent(snapshot.packet(command.packet_id))

    def _confirm_collection(self, command: ConfirmCollection, snapshot: Snapshot) -> EngineResult:
        packet = snapshot.packet(command.packet_id)
        lifecycle.confirm_collection(packet, command.agent_id, command.weight, self.clock())
        return EngineResult(packets=[packet], message=f"Packet {packet.id} collected")

    def _confirm_origin_hub(self, command: ConfirmOriginHub, snapshot: Snapshot) -> EngineResult:
        packet = snapshot.packet(command.packet_id)
        lifecycle.confirm_origin_hub(packet, self.clock())
        return EngineResult(packets=[packet], message=f"Packet {packet.id} received at the origin hub")

    # ==================== VEHICULOS ====================

    def _assign_to_vehicle(self, command: AssignToVehicle, snapshot: Snapshot) -> EngineResult:
        vehicle = snapshot.vehicle(command.vehicle_id)
        packets = [snapshot.packet(packet_id) for packet_id in command.packet_ids]
        return engine.assign_multiple_to_vehicle(packets, vehicle, snapshot.known_cities)

    def _unassign_from_vehicle(self, command: UnassignFromVehicle, snapshot: Snapshot) -> EngineResult:
        packet = snapshot.packet(command.packet_id)
        vehicle = snapshot.vehicles.get(packet.assigned_vehicle_id) if packet.assigned_vehicle_id else None
        return engine.unassign_from_vehicle(packet, vehicle)

    def _dispatch_vehicle(self, command: DispatchVehicle, snapshot: Snapshot) -> EngineResult:
        return engine.dispatch_vehicle(snapshot.vehicle(command.vehicle_id), self.clock())

    # ==================== HUB DE DESTINO ====================

    def _confirm_destination_hub(self, command: ConfirmDestinationHub, snapshot: Snapshot) -> EngineResult:
        packet = snapshot.packet(command.packet_id)
        destination = raw_destination(packet)
        if command.hub_city and not same_city(command.hub_city, destination):
            raise InvalidAssignment(
                f"Packet {packet.id} is bound for {destination}, it cannot be received at {command.hub_city}",
                details={"packet_id": packet.id, "destination": destination, "hub_city": command.hub_city}
            )
        lifecycle.confirm_destination_hub(packet, self.clock())
        return EngineResult(packets=[packet], message=f"Packet {packet.id} received at the destination hub")

    def _assign_delivery_agent(self, command: AssignDeliveryAgent, snapshot: Snapshot) -> EngineResult:
        return engine.assign_delivery_agent(
            snapshot.packet(command.packet_id), snapshot.agent(command.agent_id), snapshot.known_cities
        )

    def _unassign_delivery_agent(self, command: UnassignDeliveryAgent, snapshot: Snapshot) -> EngineResult:
        return engine.unassign_delivery_agent(snapshot.packet(command.packet_id))

    def _mark_delivered(self, command: MarkDelivered, snapshot: Snapshot) -> EngineResult:
        packet = snapshot.packet(command.packet_id)
        if command.agent_id is not None and packet.assigned_delivery_agent_id != command.agent_id:
            raise InvalidAssignment(
                f"Packet {packet.id} is assigned to another delivery agent",
                details={"packet_id": packet.id, "agent_id": command.agent_id}
            )
        lifecycle.mark_delivered(packet, command.signature_base64, command.national_id, self.clock())
        intent = SideEffectIntent(kind=DELIVERY_CONFIRMATION, packet_id=packet.id,
                                  payload={"packetId": packet.id})
        return EngineResult(packets=[packet], message=f"Packet {packet.id} delivered", intents=[intent])

    def _confirm_hub_pickup(self, command: ConfirmHubPickup, snapshot: Snapshot) -> EngineResult:
        packet = snapshot.packet(command.packet_id)
        lifecycle.confirm_hub_pickup(packet, command.signature_base64, command.national_id, self.clock())
        intent = SideEffectIntent(kind=PICKUP_CONFIRMATION, packet_id=packet.id,
                                  payload={"packetId": packet.id})
        return EngineResult(packets=[packet], message=f"Packet {packet.id} picked up at the hub", intents=[intent])
