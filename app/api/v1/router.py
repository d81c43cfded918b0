# app/api/v1/router.py
from fastapi import APIRouter
from app.modules.packets.router import router as packets_router, pickup_router
from app.modules.assignments.router import router as assignments_router
from app.modules.dispatch.router import router as dispatch_router
from app.modules.proximity.router import router as proximity_router

# Crear router principal de la API v1
api_router = APIRouter()

# ==================== PAQUETES ====================

api_router.include_router(
    assignments_router,
    prefix="/packets",
    tags=["Assignments"]
)

api_router.include_router(
    packets_router,
    prefix="/packets",
    tags=["Packets"]
)

api_router.include_router(
    pickup_router,
    prefix="/pickup",
    tags=["Pickup Requests"]
)

# ==================== HUBS ====================

api_router.include_router(
    dispatch_router,
    prefix="/dispatch",
    tags=["Dispatch"]
)

# ==================== AGENTES EN CAMPO ====================

api_router.include_router(
    proximity_router,
    prefix="/proximity",
    tags=["Proximity"]
)
