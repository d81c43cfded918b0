# app/shared/services/notification_client.py
import httpx
import logging
from typing import Dict, Iterable

from app.config.settings import settings
from app.core.exceptions import NotificationDeliveryFailed
from app.shared.schemas.common import SideEffectIntent

logger = logging.getLogger(__name__)

class NotificationClient:
    """Client for the external notification service (e-mails to customers and agents)"""
    
    def __init__(self):
        self.base_url = settings.NOTIFICATION_SERVICE_URL.rstrip("/")
        self.api_key = settings.NOTIFICATION_SERVICE_API_KEY
        self.timeout = settings.NOTIFICATION_SERVICE_TIMEOUT
    
    def _get_headers(self, intent: SideEffectIntent) -> Dict[str, str]:
        """Headers with the idempotency key so the receiver can drop duplicates"""
        headers = {
            "Content-Type": "application/json",
            "Idempotency-Key": intent.idempotency_key,
        }
        if self.api_key:
            headers["X-API-Key"] = self.api_key
        return headers
    
    def url_for(self, intent: SideEffectIntent) -> str:
        return f"{self.base_url}/packets/notifications/{intent.kind}"
    
    async def send(self, intent: SideEffectIntent) -> bool:
        """
        Deliver a single intent. Runs after the transaction committed, so a
        failure is logged and reported as False, never raised.
        """
        try:
            logger.info(f"📨 Sending {intent.kind} for packet {intent.packet_id}")
            
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    self.url_for(intent),
                    json={"packetId": intent.packet_id},
                    headers=self._get_headers(intent)
                )
            
            if 200 <= response.status_code < 300:
                logger.info(f"✅ {intent.kind} delivered for packet {intent.packet_id}")
                return True
            
            raise NotificationDeliveryFailed(
                intent.kind, intent.packet_id, f"HTTP {response.status_code} - {response.text}"
            )
        
        except NotificationDeliveryFailed as e:
            logger.error(f"❌ {e}")
            return False
        except httpx.HTTPError as e:
            logger.error(f"❌ {NotificationDeliveryFailed(intent.kind, intent.packet_id, str(e) or type(e).__name__)}")
            return False
    
    async def send_all(self, intents: Iterable[SideEffectIntent]) -> int:
        """Send every intent in order, returns how many were delivered"""
        delivered = 0
        for intent in intents:
            if await self.send(intent):
                delivered += 1
        return delivered

notification_client = NotificationClient()
