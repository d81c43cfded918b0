# app/modules/assignments/router.py
from fastapi import APIRouter, BackgroundTasks, Depends, Path
from sqlalchemy.orm import Session

from app.config.database import get_db
from app.core.auth.dependencies import CurrentUser, get_admin_user
from .service import AssignmentService
from .schemas import (
    AssignDeliveryAgentRequest, AssignMultipleToVehicleRequest, AssignPickupAgentRequest,
    AssignToVehicleRequest, PacketAssignmentResponse, PacketRequest, PickupUnassignResponse,
    UnassignPickupAgentRequest, VehicleAssignmentResponse, VehicleDispatchResponse
)

router = APIRouter()

# ==================== AGENTE DE RECOLECCION ====================

@router.post("/assign-pickup-agent", response_model=PacketAssignmentResponse)
async def assign_pickup_agent(
    data: AssignPickupAgentRequest,
    current_user: CurrentUser = Depends(get_admin_user),
    db: Session = Depends(get_db)
):
    """
    Assign a pickup agent to a pending packet

    **Reglas:**
    - El paquete debe estar en 'pending'
    - El agente debe trabajar en la ciudad de origen del paquete
    - Acepta packetId o requestId (solicitud de recolección)
    - Reasignar el mismo agente no cambia nada
    """
    service = AssignmentService(db)
    return await service.assign_pickup_agent(data)

@router.patch("/unassign-pickup-agent", response_model=PickupUnassignResponse)
async def unassign_pickup_agent(
    data: UnassignPickupAgentRequest,
    current_user: CurrentUser = Depends(get_admin_user),
    db: Session = Depends(get_db)
):
    """
    Return a packet to the unassigned pool

    **Idempotente:** una segunda llamada responde con already_unassigned=true
    """
    service = AssignmentService(db)
    return await service.unassign_pickup_agent(data)

# ==================== VEHICULOS ====================

@router.post("/assign-to-vehicle", response_model=VehicleAssignmentResponse)
async def assign_to_vehicle(
    data: AssignToVehicleRequest,
    current_user: CurrentUser = Depends(get_admin_user),
    db: Session = Depends(get_db)
):
    """
    Load one packet onto a vehicle

    **Validaciones:**
    - Paquete en el hub de origen y sin vehículo
    - Vehículo activo, fuera de mantenimiento y en la ciudad de origen
    - Destino resoluble a un hub conocido y compatible con el vehículo
    - Capacidad suficiente (el mensaje indica el exceso en kg)
    """
    service = AssignmentService(db)
    return await service.assign_to_vehicle(data)

@router.post("/assign-multiple-to-vehicle", response_model=VehicleAssignmentResponse)
async def assign_multiple_to_vehicle(
    data: AssignMultipleToVehicleRequest,
    current_user: CurrentUser = Depends(get_admin_user),
    db: Session = Depends(get_db)
):
    """
    Load a batch of packets onto a vehicle

    **Todo o nada:** si un paquete falla la validación, ninguno se asigna.
    Todos los paquetes del lote deben ir a la misma ciudad.
    """
    service = AssignmentService(db)
    return await service.assign_multiple_to_vehicle(data)

@router.post("/unassign-from-vehicle", response_model=PacketAssignmentResponse)
async def unassign_from_vehicle(
    data: PacketRequest,
    current_user: CurrentUser = Depends(get_admin_user),
    db: Session = Depends(get_db)
):
    """
    Take a packet off its vehicle before departure

    **Reglas:**
    - Solo antes del despacho (409 already_dispatched después)
    - Libera la carga; un vehículo vacío pierde su destino
    """
    service = AssignmentService(db)
    return await service.unassign_from_vehicle(data)

@router.post("/dispatch-vehicle/{vehicle_id}", response_model=VehicleDispatchResponse)
async def dispatch_vehicle(
    vehicle_id: int = Path(..., description="Vehicle ID"),
    current_user: CurrentUser = Depends(get_admin_user),
    db: Session = Depends(get_db)
):
    """
    Dispatch a vehicle with its whole load

    **Efectos:**
    - Todos los paquetes pasan a 'in_transit' y quedan confirmados por origen
    - El vehículo queda vacío, con carga 0 y sin destino
    - Si algún paquete no está listo, nada cambia
    """
    service = AssignmentService(db)
    return await service.dispatch_vehicle(vehicle_id)

# ==================== AGENTE DE ENTREGA ====================

@router.post("/assign-delivery-agent", response_model=PacketAssignmentResponse)
async def assign_delivery_agent(
    data: AssignDeliveryAgentRequest,
    background_tasks: BackgroundTasks,
    current_user: CurrentUser = Depends(get_admin_user),
    db: Session = Depends(get_db)
):
    """
    Assign or reassign the home delivery agent

    **Reglas:**
    - Solo paquetes de entrega a domicilio en el hub de destino o en reparto
    - El agente debe trabajar en la ciudad de destino
    - Notifica al cliente una vez por asignación efectiva
    """
    service = AssignmentService(db, background_tasks)
    return await service.assign_delivery_agent(data)

@router.post("/unassign-delivery-agent", response_model=PacketAssignmentResponse)
async def unassign_delivery_agent(
    data: PacketRequest,
    current_user: CurrentUser = Depends(get_admin_user),
    db: Session = Depends(get_db)
):
    """Return an out-for-delivery packet to the destination hub"""
    service = AssignmentService(db)
    return await service.unassign_delivery_agent(data)
