# app/modules/assignments/schemas.py
from pydantic import BaseModel, Field, model_validator
from typing import List, Optional

from app.shared.schemas.common import BaseResponse
from app.shared.schemas.packet import PacketInfo, VehicleInfo
from app.modules.dispatch.schemas import PickupRequestInfo

class CamelRequest(BaseModel):
    class Config:
        populate_by_name = True

class AssignPickupAgentRequest(CamelRequest):
    packet_id: Optional[int] = Field(None, alias="packetId", description="Packet to collect")
    request_id: Optional[int] = Field(None, alias="requestId", description="Pickup request of the packet")
    agent_id: int = Field(..., alias="agentId")

    @model_validator(mode="after")
    def check_target(self):
        if (self.packet_id is None) == (self.request_id is None):
            raise ValueError("Provide exactly one of packetId or requestId")
        return self

class UnassignPickupAgentRequest(CamelRequest):
    request_id: Optional[int] = Field(None, alias="requestId")
    packet_id: Optional[int] = Field(None, alias="packetId")

    @model_validator(mode="after")
    def check_target(self):
        if (self.packet_id is None) == (self.request_id is None):
            raise ValueError("Provide exactly one of requestId or packetId")
        return self

class AssignToVehicleRequest(CamelRequest):
    packet_id: int = Field(..., alias="packetId")
    vehicle_id: int = Field(..., alias="vehicleId")

class AssignMultipleToVehicleRequest(CamelRequest):
    packet_ids: List[int] = Field(..., alias="packetIds", min_length=1)
    vehicle_id: int = Field(..., alias="vehicleId")

class PacketRequest(CamelRequest):
    packet_id: int = Field(..., alias="packetId")

class AssignDeliveryAgentRequest(CamelRequest):
    packet_id: int = Field(..., alias="packetId")
    agent_id: int = Field(..., alias="agentId")

class PacketAssignmentResponse(BaseResponse):
    packet: PacketInfo
    changed: bool = True
    already_unassigned: bool = False

class PickupUnassignResponse(PacketAssignmentResponse):
    pickup_request: Optional[PickupRequestInfo] = None

class VehicleAssignmentResponse(BaseResponse):
    vehicle: VehicleInfo
    packets: List[PacketInfo]
    changed: bool = True

class VehicleDispatchResponse(BaseResponse):
    vehicle: VehicleInfo
    dispatched_packets: List[PacketInfo]
    count: int
