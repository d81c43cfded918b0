# app/modules/packets/router.py
from fastapi import APIRouter, BackgroundTasks, Depends, Path, status
from sqlalchemy.orm import Session

from app.config.database import get_db
from app.core.auth.dependencies import (
    ADMIN, AGENT, CUSTOMER, AuthorizationError, CurrentUser,
    get_admin_user, get_agent_user, get_current_user, require_roles
)
from app.modules.proximity.matcher import CandidateMode
from .service import PacketService
from .schemas import (
    AgentConfirmRequest, AgentPacketsResponse, CoordinatesResponse, PacketCreate,
    PacketResponse, PickupBookingRequest, PickupBookingResponse, ProofOfDeliveryRequest,
    TrackingResponse
)

router = APIRouter()
pickup_router = APIRouter()

def _ensure_own_list(agent_id: int, current_user: CurrentUser):
    if not current_user.is_admin and current_user.id != agent_id:
        raise AuthorizationError("Agents can only read their own packet lists")

# ==================== REGISTRO ====================

@router.post("", response_model=PacketResponse, status_code=status.HTTP_201_CREATED)
async def create_packet(
    data: PacketCreate,
    current_user: CurrentUser = Depends(get_admin_user),
    db: Session = Depends(get_db)
):
    """
    Register a packet dropped off at the hub

    **Funcionalidad:**
    - Genera el código de seguimiento (PKT-XXXXXXXXXX)
    - El paquete queda directamente en 'at_origin_hub'
    - La ciudad de origen por defecto es la del operador
    """
    service = PacketService(db)
    return await service.create_packet(data, current_user)

@pickup_router.post("/request", response_model=PickupBookingResponse, status_code=status.HTTP_201_CREATED)
async def book_pickup(
    data: PickupBookingRequest,
    current_user: CurrentUser = Depends(require_roles([CUSTOMER, ADMIN])),
    db: Session = Depends(get_db)
):
    """
    Book a pickup at the sender's address

    **Funcionalidad:**
    - Crea (o reutiliza por e-mail) el cliente
    - Crea el paquete en 'pending' y su solicitud de recolección
    - La solicitud aparece en la lista de solicitudes sin asignar del hub
    """
    service = PacketService(db)
    return await service.book_pickup(data)

# ==================== CONSULTAS ====================

@router.get("/track/{tracking_code}", response_model=TrackingResponse)
async def track_packet(
    tracking_code: str = Path(..., description="Tracking code"),
    db: Session = Depends(get_db)
):
    """Public tracking: status and timeline, no authentication required"""
    service = PacketService(db)
    return await service.track(tracking_code)

@router.get("/agents/{agent_id}/assigned-packets", response_model=AgentPacketsResponse)
async def get_agent_pickup_packets(
    agent_id: int = Path(..., description="Agent ID"),
    current_user: CurrentUser = Depends(require_roles([AGENT, ADMIN])),
    db: Session = Depends(get_db)
):
    """Packets the agent has to collect, flagged when they can be shown on the map"""
    _ensure_own_list(agent_id, current_user)
    service = PacketService(db)
    return await service.get_agent_packets(agent_id, CandidateMode.COLLECT)

@router.get("/agents/{agent_id}/packets-deliver", response_model=AgentPacketsResponse)
async def get_agent_delivery_packets(
    agent_id: int = Path(..., description="Agent ID"),
    current_user: CurrentUser = Depends(require_roles([AGENT, ADMIN])),
    db: Session = Depends(get_db)
):
    """Packets the agent is out delivering"""
    _ensure_own_list(agent_id, current_user)
    service = PacketService(db)
    return await service.get_agent_packets(agent_id, CandidateMode.DELIVER)

@router.get("/{packet_id}", response_model=PacketResponse)
async def get_packet(
    packet_id: int = Path(..., description="Packet ID"),
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    service = PacketService(db)
    return await service.get_packet(packet_id)

@router.get("/{packet_id}/coordinates", response_model=CoordinatesResponse)
async def get_packet_coordinates(
    packet_id: int = Path(..., description="Packet ID"),
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Origin and destination points, null when missing or invalid"""
    service = PacketService(db)
    return await service.get_coordinates(packet_id)

# ==================== TRANSICIONES ====================

@router.patch("/{packet_id}/agent-confirm", response_model=PacketResponse)
async def agent_confirm(
    packet_id: int = Path(..., description="Packet ID"),
    data: AgentConfirmRequest = AgentConfirmRequest(),
    current_user: CurrentUser = Depends(get_agent_user),
    db: Session = Depends(get_db)
):
    """
    Confirm collection from the sender

    **Reglas:**
    - Solo el agente de recolección asignado
    - Permite corregir el peso declarado (única oportunidad)
    """
    service = PacketService(db)
    return await service.agent_confirm(packet_id, current_user.id, data.weight)

@router.patch("/{packet_id}/origin-hub-confirm", response_model=PacketResponse)
async def origin_hub_confirm(
    packet_id: int = Path(..., description="Packet ID"),
    current_user: CurrentUser = Depends(get_admin_user),
    db: Session = Depends(get_db)
):
    """Receive a collected packet at the origin hub"""
    service = PacketService(db)
    return await service.origin_hub_confirm(packet_id)

@router.patch("/{packet_id}/destination-hub-confirm", response_model=PacketResponse)
async def destination_hub_confirm(
    packet_id: int = Path(..., description="Packet ID"),
    current_user: CurrentUser = Depends(get_admin_user),
    db: Session = Depends(get_db)
):
    """
    Receive an incoming packet at the destination hub

    **Reglas:**
    - El paquete debe estar en tránsito y confirmado por el hub de origen
    - El operador debe pertenecer al hub de destino del paquete
    """
    service = PacketService(db)
    return await service.destination_hub_confirm(packet_id, current_user)

@router.patch("/{packet_id}/mark-delivered", response_model=PacketResponse)
async def mark_delivered(
    background_tasks: BackgroundTasks,
    data: ProofOfDeliveryRequest,
    packet_id: int = Path(..., description="Packet ID"),
    current_user: CurrentUser = Depends(require_roles([AGENT, ADMIN])),
    db: Session = Depends(get_db)
):
    """
    Hand over a home delivery

    **Prueba de entrega:**
    - Firma obligatoria, cédula opcional
    - Un agente solo puede cerrar sus propias entregas
    - Notifica la confirmación de entrega al cliente
    """
    service = PacketService(db, background_tasks)
    return await service.mark_delivered(packet_id, data, current_user)

@router.patch("/{packet_id}/picked", response_model=PacketResponse)
async def confirm_hub_pickup(
    background_tasks: BackgroundTasks,
    data: ProofOfDeliveryRequest,
    packet_id: int = Path(..., description="Packet ID"),
    current_user: CurrentUser = Depends(get_admin_user),
    db: Session = Depends(get_db)
):
    """Customer collected the packet at the destination hub counter"""
    service = PacketService(db, background_tasks)
    return await service.confirm_hub_pickup(packet_id, data)
