# app/modules/proximity/schemas.py
from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime

from app.shared.schemas.common import BaseResponse
from .matcher import CandidateMode

class PositionTickRequest(BaseModel):
    agent_id: int = Field(..., alias="agentId")
    lat: Optional[float] = None
    lng: Optional[float] = None
    timestamp: Optional[datetime] = None
    mode: CandidateMode = CandidateMode.COLLECT
    packet_id: Optional[int] = Field(None, alias="packetId", description="Packet the agent is heading to")
    error: Optional[str] = Field(None, description="Geolocation error reported by the device")
    include_route: bool = Field(False, alias="includeRoute")

    class Config:
        populate_by_name = True

class RouteInfoResponse(BaseModel):
    distance_text: str
    duration_text: str
    distance_m: int
    duration_s: int
    polyline: str

    class Config:
        from_attributes = True

class PositionUpdateResponse(BaseResponse):
    agent_id: int
    mode: str
    has_candidate: bool
    closest_packet_id: Optional[int] = None
    closest_tracking_code: Optional[str] = None
    distance_km: Optional[float] = None
    distance_m: Optional[float] = None
    target_packet_id: Optional[int] = None
    target_distance_m: Optional[float] = None
    arrived: bool = False
    route: Optional[RouteInfoResponse] = None
    route_error: Optional[str] = None

class RouteResponse(BaseResponse):
    route: RouteInfoResponse
