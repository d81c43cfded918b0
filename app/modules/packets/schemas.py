# app/modules/packets/schemas.py
from pydantic import BaseModel, Field, model_validator
from typing import List, Optional
from datetime import datetime

from app.shared.schemas.common import BaseResponse, Coordinates
from app.shared.schemas.packet import PacketInfo
from .lifecycle import DeliveryType

class PacketCreate(BaseModel):
    description: str = Field(..., min_length=1, description="Contenido del paquete")
    category: str = Field("general", description="Categoría")
    weight: float = Field(..., gt=0, description="Peso declarado en kg")
    delivery_type: DeliveryType = Field(DeliveryType.DELIVERY, description="pickup (retiro en hub) o delivery")

    origin_city: Optional[str] = Field(None, description="Ciudad de origen, por defecto la del hub")
    origin_address: Optional[str] = None
    origin_lat: Optional[float] = Field(None, ge=-90, le=90)
    origin_lng: Optional[float] = Field(None, ge=-180, le=180)

    destination_address: str = Field(..., min_length=1)
    destination_hub: Optional[str] = Field(None, description="Ciudad del hub de retiro (tipo pickup)")
    destination_city: Optional[str] = None
    destination_lat: Optional[float] = Field(None, ge=-90, le=90)
    destination_lng: Optional[float] = Field(None, ge=-180, le=180)

    @model_validator(mode="after")
    def check_destination(self):
        if self.delivery_type == DeliveryType.PICKUP and not self.destination_hub:
            raise ValueError("destination_hub is required for hub pickup packets")
        return self

class PickupBookingRequest(PacketCreate):
    customer_name: str = Field(..., min_length=1)
    customer_email: str = Field(..., min_length=3)
    customer_phone: Optional[str] = None
    pickup_address: str = Field(..., min_length=1, description="Dirección donde el agente recoge")
    origin_city: str = Field(..., min_length=1)

class AgentConfirmRequest(BaseModel):
    weight: Optional[float] = Field(None, gt=0, description="Peso corregido en kg")

class ProofOfDeliveryRequest(BaseModel):
    signature_base64: str = Field(..., description="Firma del receptor")
    national_id: Optional[str] = Field(None, alias="nationalId")

    class Config:
        populate_by_name = True

class PacketResponse(BaseResponse):
    packet: PacketInfo
    changed: bool = True

class PickupBookingResponse(BaseResponse):
    packet: PacketInfo
    request_id: int
    customer_id: int

class TimelineEvent(BaseModel):
    event: str
    at: datetime

class TrackingResponse(BaseResponse):
    tracking_code: str
    status: str
    delivery_type: str
    origin_city: str
    destination: Optional[str] = None
    timeline: List[TimelineEvent]

class CoordinatesResponse(BaseResponse):
    packet_id: int
    tracking_code: str
    origin: Optional[Coordinates] = None
    destination: Optional[Coordinates] = None

class AgentPacket(BaseModel):
    packet: PacketInfo
    has_coordinates: bool

class AgentPacketsResponse(BaseResponse):
    agent_id: int
    mode: str
    packets: List[AgentPacket]
    count: int
