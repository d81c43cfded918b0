# app/shared/schemas/common.py
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional
from datetime import datetime

class BaseResponse(BaseModel):
    success: bool
    message: str = ""
    timestamp: datetime = Field(default_factory=datetime.now)

class ErrorResponse(BaseResponse):
    success: bool = False
    error_code: Optional[str] = None
    details: Optional[Dict[str, Any]] = None

class Coordinates(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)

class AgentInfo(BaseModel):
    id: int
    name: str
    city: str
    phone_number: Optional[str] = None

    class Config:
        from_attributes = True

class VehicleSummary(BaseModel):
    id: int
    make: str
    model: str
    license_plate: Optional[str] = None
    capacity: float
    current_load: float
    current_city: str
    destination_city: Optional[str] = None

    class Config:
        from_attributes = True

class SideEffectIntent(BaseModel):
    """Fire-and-forget request for an external collaborator, keyed by packet"""
    kind: str
    packet_id: int
    payload: Dict[str, Any] = Field(default_factory=dict)

    @property
    def idempotency_key(self) -> str:
        return f"{self.kind}:{self.packet_id}"

class PaginatedResponse(BaseModel):
    items: List[Any]
    total: int
    page: int
    size: int
    pages: int
