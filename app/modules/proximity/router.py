# app/modules/proximity/router.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.config.database import get_db
from app.core.auth.dependencies import (
    ADMIN, AGENT, AuthorizationError, CurrentUser, require_roles
)
from .service import ProximityService
from .schemas import PositionTickRequest, PositionUpdateResponse, RouteResponse

router = APIRouter()

@router.post("/positions", response_model=PositionUpdateResponse)
async def post_position(
    data: PositionTickRequest,
    current_user: CurrentUser = Depends(require_roles([AGENT, ADMIN])),
    db: Session = Depends(get_db)
):
    """
    Live position tick from an agent's device

    **Respuesta:**
    - Paquete más cercano y distancia en km / m
    - arrived=true una sola vez por aproximación (umbral configurable, 100 m)
    - Ruta opcional (includeRoute); si el servicio de rutas falla se informa en route_error

    La posición nunca se guarda.
    """
    if not current_user.is_admin and current_user.id != data.agent_id:
        raise AuthorizationError("Agents can only report their own position")

    service = ProximityService(db)
    return await service.process_tick(data)

@router.get("/route", response_model=RouteResponse)
async def get_route(
    origin_lat: float = Query(..., alias="originLat", ge=-90, le=90),
    origin_lng: float = Query(..., alias="originLng", ge=-180, le=180),
    destination_lat: float = Query(..., alias="destinationLat", ge=-90, le=90),
    destination_lng: float = Query(..., alias="destinationLng", ge=-180, le=180),
    current_user: CurrentUser = Depends(require_roles([AGENT, ADMIN])),
    db: Session = Depends(get_db)
):
    """Driving distance, duration and polyline between two points (502 when unavailable)"""
    service = ProximityService(db)
    return await service.get_route(origin_lat, origin_lng, destination_lat, destination_lng)
