# app/modules/assignments/service.py
from typing import Any, Dict, Optional
import logging

from fastapi import BackgroundTasks
from sqlalchemy.orm import Session

from app.modules.dispatch.coordinator import (
    AssignDeliveryAgent, AssignPickupAgent, AssignToVehicle, DispatchOutcome,
    DispatchVehicle, UnassignDeliveryAgent, UnassignFromVehicle, UnassignPickupAgent
)
from app.modules.dispatch.service import DispatchService
from app.modules.dispatch.schemas import PickupRequestInfo
from app.shared.schemas.packet import PacketInfo, VehicleInfo
from .repository import AssignmentRepository
from .schemas import (
    AssignDeliveryAgentRequest, AssignMultipleToVehicleRequest, AssignPickupAgentRequest,
    AssignToVehicleRequest, PacketRequest, UnassignPickupAgentRequest
)

logger = logging.getLogger(__name__)

class AssignmentService:
    def __init__(self, db: Session, background_tasks: Optional[BackgroundTasks] = None):
        self.db = db
        self.background_tasks = background_tasks
        self.repository = AssignmentRepository(db)
        self.dispatch = DispatchService(db)

    def _run(self, command) -> DispatchOutcome:
        return self.dispatch.execute(command, self.background_tasks)

    @staticmethod
    def _packet_response(outcome: DispatchOutcome, **extra) -> Dict[str, Any]:
        return {
            "success": True,
            "message": outcome.message,
            "packet": PacketInfo.model_validate(outcome.packets[0]),
            "changed": outcome.changed,
            **extra
        }

    @staticmethod
    def _vehicle_response(outcome: DispatchOutcome) -> Dict[str, Any]:
        return {
            "success": True,
            "message": outcome.message,
            "vehicle": VehicleInfo.model_validate(outcome.vehicle),
            "packets": [PacketInfo.model_validate(p) for p in outcome.packets],
            "changed": outcome.changed
        }

    def _resolve_packet_id(self, packet_id: Optional[int], request_id: Optional[int]) -> int:
        if packet_id is not None:
            return packet_id
        return self.repository.packet_id_for_request(request_id)

    # ==================== AGENTE DE RECOLECCION ====================

    async def assign_pickup_agent(self, data: AssignPickupAgentRequest) -> Dict[str, Any]:
        packet_id = self._resolve_packet_id(data.packet_id, data.request_id)
        outcome = self._run(AssignPickupAgent(packet_id=packet_id, agent_id=data.agent_id))
        return self._packet_response(outcome)

    async def unassign_pickup_agent(self, data: UnassignPickupAgentRequest) -> Dict[str, Any]:
        packet_id = self._resolve_packet_id(data.packet_id, data.request_id)
        outcome = self._run(UnassignPickupAgent(packet_id=packet_id))
        request = outcome.packets[0].pickup_request
        return self._packet_response(
            outcome,
            already_unassigned=not outcome.changed,
            pickup_request=PickupRequestInfo.model_validate(request) if request else None
        )

    # ==================== VEHICULOS ====================

    async def assign_to_vehicle(self, data: AssignToVehicleRequest) -> Dict[str, Any]:
        outcome = self._run(AssignToVehicle(packet_ids=(data.packet_id,), vehicle_id=data.vehicle_id))
        return self._vehicle_response(outcome)

    async def assign_multiple_to_vehicle(self, data: AssignMultipleToVehicleRequest) -> Dict[str, Any]:
        outcome = self._run(AssignToVehicle(packet_ids=tuple(data.packet_ids), vehicle_id=data.vehicle_id))
        return self._vehicle_response(outcome)

    async def unassign_from_vehicle(self, data: PacketRequest) -> Dict[str, Any]:
        outcome = self._run(UnassignFromVehicle(packet_id=data.packet_id))
        return self._packet_response(outcome, already_unassigned=not outcome.changed)

    async def dispatch_vehicle(self, vehicle_id: int) -> Dict[str, Any]:
        outcome = self._run(DispatchVehicle(vehicle_id=vehicle_id))
        return {
            "success": True,
            "message": outcome.message,
            "vehicle": VehicleInfo.model_validate(outcome.vehicle),
            "dispatched_packets": [PacketInfo.model_validate(p) for p in outcome.packets],
            "count": len(outcome.packets)
        }

    # ==================== AGENTE DE ENTREGA ====================

    async def assign_delivery_agent(self, data: AssignDeliveryAgentRequest) -> Dict[str, Any]:
        outcome = self._run(AssignDeliveryAgent(packet_id=data.packet_id, agent_id=data.agent_id))
        return self._packet_response(outcome)

    async def unassign_delivery_agent(self, data: PacketRequest) -> Dict[str, Any]:
        outcome = self._run(UnassignDeliveryAgent(packet_id=data.packet_id))
        return self._packet_response(outcome, already_unassigned=not outcome.changed)
