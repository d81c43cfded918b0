# app/shared/services/routing_client.py
import httpx
import logging
from dataclasses import dataclass
from typing import Any, Dict

from app.config.settings import settings
from app.core.exceptions import RouteUnavailable
from app.shared.geo import LatLng, coerce_point

logger = logging.getLogger(__name__)

@dataclass(frozen=True)
class RouteInfo:
    distance_text: str
    duration_text: str
    distance_m: int
    duration_s: int
    polyline: str

class RoutingClient:
    """Client for the Directions API (driving mode)"""
    
    def __init__(self):
        self.url = settings.ROUTING_API_URL
        self.api_key = settings.ROUTING_API_KEY
        self.timeout = settings.ROUTING_API_TIMEOUT
    
    def _params(self, origin: LatLng, destination: LatLng) -> Dict[str, Any]:
        params = {
            "origin": f"{origin[0]},{origin[1]}",
            "destination": f"{destination[0]},{destination[1]}",
            "mode": "driving",
        }
        if self.api_key:
            params["key"] = self.api_key
        return params
    
    @staticmethod
    def parse_directions(body: Dict[str, Any]) -> RouteInfo:
        """Pick the first leg of the first route from a Directions response"""
        status = body.get("status")
        if status != "OK":
            raise RouteUnavailable(
                f"Routing service returned status {status}",
                details={"status": status, "error_message": body.get("error_message")}
            )
        try:
            route = body["routes"][0]
            leg = route["legs"][0]
            return RouteInfo(
                distance_text=leg["distance"]["text"],
                duration_text=leg["duration"]["text"],
                distance_m=int(leg["distance"]["value"]),
                duration_s=int(leg["duration"]["value"]),
                polyline=route.get("overview_polyline", {}).get("points", ""),
            )
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise RouteUnavailable(f"Malformed routing response: {e}")
    
    async def route_info(self, origin: Any, destination: Any) -> RouteInfo:
        """Driving distance, duration and polyline between two points"""
        a = coerce_point(origin)
        b = coerce_point(destination)
        if a is None or b is None:
            raise RouteUnavailable("Route needs two valid coordinates")
        
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(self.url, params=self._params(a, b))
        except httpx.TimeoutException:
            logger.error(f"⏱️ Routing timeout for {a} → {b}")
            raise RouteUnavailable("Routing service timed out")
        except httpx.HTTPError as e:
            logger.error(f"❌ Routing request failed: {e}")
            raise RouteUnavailable(f"Routing service unreachable: {e}")
        
        if response.status_code != 200:
            logger.error(f"❌ Routing service error: {response.status_code} - {response.text}")
            raise RouteUnavailable(f"Routing service error: HTTP {response.status_code}")
        
        return self.parse_directions(response.json())

routing_client = RoutingClient()
