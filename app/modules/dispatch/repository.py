# app/modules/dispatch/repository.py
from typing import Iterable, List, Optional, Set
import logging

from sqlalchemy import or_
from sqlalchemy.orm import Session, joinedload

from app.core.exceptions import ConcurrentModification, NotFound
from app.shared.database.models import Agent, Hub, Packet, PickupRequest, Vehicle
from app.modules.packets.lifecycle import PacketStatus
from .coordinator import (
    AssignDeliveryAgent, AssignPickupAgent, AssignToVehicle, DispatchVehicle,
    Snapshot, UnassignFromVehicle
)

logger = logging.getLogger(__name__)


class DispatchRepository:
    def __init__(self, db: Session):
        self.db = db

    # ==================== BLOQUEOS ====================

    def lock_vehicles(self, vehicle_ids: Iterable[int]) -> List[Vehicle]:
        ids = sorted(set(vehicle_ids))
        if not ids:
            return []

        vehicles = self.db.query(Vehicle).filter(
            Vehicle.id.in_(ids)
        ).order_by(Vehicle.id).populate_existing().with_for_update().all()

        missing = set(ids) - {v.id for v in vehicles}
        if missing:
            raise NotFound(f"Vehicle(s) not found: {sorted(missing)}", details={"vehicle_ids": sorted(missing)})
        return vehicles

    def lock_packets(self, packet_ids: Iterable[int]) -> List[Packet]:
        ids = sorted(set(packet_ids))
        if not ids:
            return []

        packets = self.db.query(Packet).filter(
            Packet.id.in_(ids)
        ).order_by(Packet.id).populate_existing().with_for_update().all()

        missing = set(ids) - {p.id for p in packets}
        if missing:
            raise NotFound(f"Packet(s) not found: {sorted(missing)}", details={"packet_ids": sorted(missing)})
        return packets

    def lock_vehicle_load(self, vehicle_id: int) -> List[Packet]:
        """Packets currently sitting on the vehicle, locked in id order"""
        return self.db.query(Packet).filter(
            Packet.assigned_vehicle_id == vehicle_id
        ).order_by(Packet.id).populate_existing().with_for_update().all()

    def get_agents(self, agent_ids: Iterable[int]) -> List[Agent]:
        ids = sorted(set(agent_ids))
        if not ids:
            return []
        return self.db.query(Agent).filter(Agent.id.in_(ids)).all()

    def known_cities(self) -> List[str]:
        rows = self.db.query(Hub.city).filter(Hub.is_active == True).order_by(Hub.city).all()
        return [row[0] for row in rows]

    def _current_vehicle_of(self, packet_id: int) -> Optional[int]:
        row = self.db.query(Packet.assigned_vehicle_id).filter(Packet.id == packet_id).first()
        if row is None:
            raise NotFound(f"Packet {packet_id} not found", details={"packet_id": packet_id})
        return row[0]

    def load_snapshot(self, command) -> Snapshot:
        """
        Lock every row the command may write: vehicles first, then packets
        ordered by id. Agents are read without a lock.
        """
        packet_ids: Set[int] = set()
        vehicle_ids: Set[int] = set()
        agent_ids: Set[int] = set()

        if isinstance(command, AssignToVehicle):
            packet_ids.update(command.packet_ids)
            vehicle_ids.add(command.vehicle_id)
        elif isinstance(command, DispatchVehicle):
            vehicle_ids.add(command.vehicle_id)
        elif isinstance(command, UnassignFromVehicle):
            packet_ids.add(command.packet_id)
            vehicle_id = self._current_vehicle_of(command.packet_id)
            if vehicle_id is not None:
                vehicle_ids.add(vehicle_id)
        else:
            packet_ids.add(command.packet_id)

        if isinstance(command, (AssignPickupAgent, AssignDeliveryAgent)):
            agent_ids.add(command.agent_id)

        vehicles = self.lock_vehicles(vehicle_ids)
        for vehicle in vehicles:
            # Loaded packets must be locked too, the load changes with them
            packet_ids.update(p.id for p in self.lock_vehicle_load(vehicle.id))
        packets = self.lock_packets(packet_ids)

        if isinstance(command, UnassignFromVehicle):
            packet = packets[0]
            if packet.assigned_vehicle_id is not None and packet.assigned_vehicle_id not in vehicle_ids:
                raise ConcurrentModification(
                    f"Packet {packet.id} moved to another vehicle while being unassigned, please retry",
                    details={"packet_id": packet.id}
                )

        return Snapshot(
            packets={p.id: p for p in packets},
            vehicles={v.id: v for v in vehicles},
            agents={a.id: a for a in self.get_agents(agent_ids)},
            known_cities=self.known_cities(),
        )

    # ==================== CONSULTAS ====================

    def packets_for_city(self, city: str, statuses: Optional[Iterable[str]] = None) -> List[Packet]:
        """Candidate rows for the city views; the views do the exact city match"""
        query = self.db.query(Packet).options(
            joinedload(Packet.pickup_agent),
            joinedload(Packet.delivery_agent),
        )
        if statuses:
            query = query.filter(Packet.status.in_(list(statuses)))

        pattern = f"%{city.strip()}%"
        query = query.filter(or_(
            Packet.origin_city.ilike(pattern),
            Packet.destination_city.ilike(pattern),
            Packet.destination_hub.ilike(pattern),
            Packet.destination_address.ilike(pattern),
        ))
        return query.order_by(Packet.id).all()

    def pending_pickup_requests(self) -> List[PickupRequest]:
        return self.db.query(PickupRequest).options(
            joinedload(PickupRequest.packet),
            joinedload(PickupRequest.customer),
        ).filter(
            PickupRequest.status == PacketStatus.PENDING.value
        ).order_by(PickupRequest.created_at, PickupRequest.id).all()

    def vehicles(self) -> List[Vehicle]:
        return self.db.query(Vehicle).order_by(Vehicle.id).all()

    def agents_in_city(self, city: str) -> List[Agent]:
        return self.db.query(Agent).filter(
            Agent.city.ilike(city.strip()),
            Agent.is_active == True
        ).order_by(Agent.name).all()
