# app/shared/schemas/packet.py
from pydantic import BaseModel
from typing import List, Optional
from datetime import datetime

from .common import AgentInfo

class PacketSummary(BaseModel):
    id: int
    tracking_code: str
    weight: float
    status: str
    delivery_type: str
    origin_city: str
    destination_address: str
    destination_hub: Optional[str] = None
    destination_city: Optional[str] = None

    class Config:
        from_attributes = True

class PacketInfo(PacketSummary):
    description: str
    category: str
    origin_address: Optional[str] = None
    origin_lat: Optional[float] = None
    origin_lng: Optional[float] = None
    destination_lat: Optional[float] = None
    destination_lng: Optional[float] = None
    confirmed_by_origin: bool = False

    assigned_pickup_agent_id: Optional[int] = None
    assigned_delivery_agent_id: Optional[int] = None
    assigned_vehicle_id: Optional[int] = None
    dispatched_vehicle_id: Optional[int] = None
    pickup_agent: Optional[AgentInfo] = None
    delivery_agent: Optional[AgentInfo] = None

    created_at: Optional[datetime] = None
    collected_at: Optional[datetime] = None
    origin_hub_confirmed_at: Optional[datetime] = None
    dispatched_at: Optional[datetime] = None
    destination_hub_confirmed_at: Optional[datetime] = None
    out_for_delivery_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None

    has_signature: bool = False
    recipient_national_id: Optional[str] = None

class VehicleInfo(BaseModel):
    id: int
    make: str
    model: str
    year: Optional[int] = None
    license_plate: Optional[str] = None
    vehicle_type: Optional[str] = None
    capacity: float
    current_load: float
    remaining_capacity: float
    current_city: str
    destination_city: Optional[str] = None
    is_active: bool = True
    is_in_maintenance: bool = False
    assigned_packets: List[PacketSummary] = []

    class Config:
        from_attributes = True
