# app/modules/dispatch/router.py
from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.orm import Session
from typing import Optional

from app.config.database import get_db
from app.core.auth.dependencies import CurrentUser, get_admin_user, resolve_city
from .service import DispatchService
from .schemas import (
    AvailableVehiclesResponse, CityAgentsResponse, HubStatsResponse,
    PacketViewResponse, PickupRequestsResponse
)

router = APIRouter()

CITY_QUERY = Query(None, description="Hub city, defaults to the operator's own hub")

@router.get("/available-vehicles", response_model=AvailableVehiclesResponse)
async def get_available_vehicles(
    city: Optional[str] = CITY_QUERY,
    current_user: CurrentUser = Depends(get_admin_user),
    db: Session = Depends(get_db)
):
    """
    Vehicles that can be loaded at the hub

    **Criterios:**
    - Activo y fuera de mantenimiento
    - Ubicado en la ciudad del hub
    - Incluye carga actual, capacidad restante y destino fijado
    """
    service = DispatchService(db)
    return await service.get_available_vehicles(resolve_city(current_user, city))

@router.get("/agents", response_model=CityAgentsResponse)
async def get_city_agents(
    city: Optional[str] = CITY_QUERY,
    current_user: CurrentUser = Depends(get_admin_user),
    db: Session = Depends(get_db)
):
    """Active agents working in the hub city"""
    service = DispatchService(db)
    return await service.get_city_agents(resolve_city(current_user, city))

@router.get("/stats", response_model=HubStatsResponse)
async def get_hub_stats(
    city: Optional[str] = CITY_QUERY,
    current_user: CurrentUser = Depends(get_admin_user),
    db: Session = Depends(get_db)
):
    """
    Dashboard breakdowns for the hub

    **Incluye:**
    - Paquetes por estado, categoría y tipo de entrega
    - Distribución por peso (0-1, 1-2, 2-5, 5-10, >10 kg)
    - Totales de salida y llegada
    """
    service = DispatchService(db)
    return await service.get_stats(resolve_city(current_user, city))

@router.get("/pickup-requests/unassigned", response_model=PickupRequestsResponse)
async def get_unassigned_pickup_requests(
    city: Optional[str] = CITY_QUERY,
    current_user: CurrentUser = Depends(get_admin_user),
    db: Session = Depends(get_db)
):
    """Customer bookings in the city that still need a pickup agent"""
    service = DispatchService(db)
    return await service.get_unassigned_pickup_requests(resolve_city(current_user, city))

@router.get("/{view}", response_model=PacketViewResponse)
async def get_packet_view(
    view: str = Path(..., description="ready-for-dispatch, in-transit, incoming, awaiting-delivery, "
                                      "awaiting-hub-pickup, assigned-deliveries, picked-up, delivered"),
    city: Optional[str] = CITY_QUERY,
    current_user: CurrentUser = Depends(get_admin_user),
    db: Session = Depends(get_db)
):
    """
    Hub work lists

    **Hub de origen:**
    - ready-for-dispatch: en el hub, esperando vehículo
    - in-transit: despachados desde esta ciudad

    **Hub de destino:**
    - incoming: en tránsito hacia esta ciudad, confirmados por origen
    - awaiting-delivery: entrega a domicilio sin agente
    - awaiting-hub-pickup: esperando que el cliente retire
    - assigned-deliveries: con agente de entrega
    - picked-up / delivered: entregados
    """
    service = DispatchService(db)
    return await service.get_packet_view(view, resolve_city(current_user, city))
