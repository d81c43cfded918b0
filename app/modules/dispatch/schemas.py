# app/modules/dispatch/schemas.py
from pydantic import BaseModel
from typing import Any, Dict, List, Optional
from datetime import datetime

from app.shared.schemas.common import AgentInfo, BaseResponse
from app.shared.schemas.packet import PacketInfo, PacketSummary, VehicleInfo

class PacketViewResponse(BaseResponse):
    view: str
    city: str
    packets: List[PacketInfo]
    count: int

class CustomerInfo(BaseModel):
    id: int
    name: str
    email: str
    phone_number: Optional[str] = None

    class Config:
        from_attributes = True

class PickupRequestInfo(BaseModel):
    id: int
    status: str
    pickup_address: str
    created_at: Optional[datetime] = None
    customer: Optional[CustomerInfo] = None
    packet: PacketSummary

    class Config:
        from_attributes = True

class PickupRequestsResponse(BaseResponse):
    city: str
    requests: List[PickupRequestInfo]
    count: int

class AvailableVehiclesResponse(BaseResponse):
    city: str
    vehicles: List[VehicleInfo]
    count: int

class CityAgentsResponse(BaseResponse):
    city: str
    agents: List[AgentInfo]
    count: int

class HubStatsResponse(BaseResponse):
    stats: Dict[str, Any]
