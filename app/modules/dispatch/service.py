# app/modules/dispatch/service.py
from typing import Any, Dict, Optional
import logging

from fastapi import BackgroundTasks
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.core.exceptions import ConcurrentModification, NotFound
from app.modules.proximity.matcher import arrival_latch
from app.shared.schemas.common import AgentInfo
from app.shared.schemas.packet import PacketInfo, VehicleInfo
from app.shared.services.notification_client import notification_client
from . import views
from .coordinator import DispatchCoordinator, DispatchOutcome
from .repository import DispatchRepository
from .schemas import PickupRequestInfo

logger = logging.getLogger(__name__)

class DispatchService:
    def __init__(self, db: Session):
        self.db = db
        self.repository = DispatchRepository(db)
        self.coordinator = DispatchCoordinator(self.repository.load_snapshot)

    # ==================== COMANDOS ====================

    def execute(self, command, background_tasks: Optional[BackgroundTasks] = None) -> DispatchOutcome:
        """
        Run one command in a single transaction. Notifications are queued
        only after the commit succeeded.
        """
        try:
            outcome = self.coordinator.apply(command)
            if outcome.changed:
                self.db.commit()
            else:
                self.db.rollback()
        except StaleDataError as e:
            self.db.rollback()
            logger.warning(f"⚠️ {type(command).__name__} lost a concurrent update: {e}")
            raise ConcurrentModification(
                "Vehicle was modified by another request, please retry",
                details={"command": type(command).__name__}
            )
        except Exception:
            self.db.rollback()
            raise

        for packet_id in outcome.settled_packet_ids:
            arrival_latch.release_packet(packet_id)

        if outcome.intents:
            if background_tasks is not None:
                background_tasks.add_task(notification_client.send_all, outcome.intents)
            else:
                logger.warning(f"⚠️ {len(outcome.intents)} notification(s) dropped, no background task runner")

        logger.info(f"✅ {type(command).__name__}: {outcome.message}")
        return outcome

    # ==================== VISTAS ====================

    async def get_packet_view(self, view: str, city: str) -> Dict[str, Any]:
        view_filter = views.PACKET_VIEWS.get(view)
        if view_filter is None:
            raise NotFound(f"Unknown dispatch view '{view}'",
                           details={"available_views": sorted(views.PACKET_VIEWS)})

        packets = view_filter(self.repository.packets_for_city(city), city)
        return {
            "success": True,
            "message": f"{len(packets)} packet(s) in {view} for {city}",
            "view": view,
            "city": city,
            "packets": [PacketInfo.model_validate(p) for p in packets],
            "count": len(packets)
        }

    async def get_unassigned_pickup_requests(self, city: str) -> Dict[str, Any]:
        requests = views.unassigned_pickup_requests(self.repository.pending_pickup_requests(), city)
        return {
            "success": True,
            "message": f"{len(requests)} pickup request(s) waiting for an agent in {city}",
            "city": city,
            "requests": [PickupRequestInfo.model_validate(r) for r in requests],
            "count": len(requests)
        }

    async def get_available_vehicles(self, city: str) -> Dict[str, Any]:
        vehicles = views.available_vehicles(self.repository.vehicles(), city)
        return {
            "success": True,
            "message": f"{len(vehicles)} vehicle(s) available in {city}",
            "city": city,
            "vehicles": [VehicleInfo.model_validate(v) for v in vehicles],
            "count": len(vehicles)
        }

    async def get_city_agents(self, city: str) -> Dict[str, Any]:
        agents = self.repository.agents_in_city(city)
        return {
            "success": True,
            "message": f"{len(agents)} active agent(s) in {city}",
            "city": city,
            "agents": [AgentInfo.model_validate(a) for a in agents],
            "count": len(agents)
        }

    async def get_stats(self, city: str) -> Dict[str, Any]:
        return {
            "success": True,
            "message": f"Hub statistics for {city}",
            "stats": views.hub_stats(self.repository.packets_for_city(city), city)
        }
