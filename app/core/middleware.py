# app/core/middleware.py
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
import time
import logging

logger = logging.getLogger(__name__)

def route_template(request: Request) -> str:
    """Matched route path (e.g. /api/v1/packets/{packet_id}), raw path when nothing matched"""
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path

def setup_middleware(app: FastAPI):
    """Configure all middleware for the application"""

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure properly for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start_time = time.time()

        response = await call_next(request)

        process_time = time.time() - start_time
        response.headers["X-Process-Time"] = f"{process_time:.4f}"

        template = route_template(request)
        params = request.scope.get("path_params") or {}
        context = " ".join(f"{key}={value}" for key, value in params.items())

        if response.status_code >= 500:
            level, icon = logging.ERROR, "❌"
        elif response.status_code >= 400:
            level, icon = logging.WARNING, "⚠️"
        else:
            level, icon = logging.INFO, "✅"

        logger.log(
            level,
            f"{icon} {request.method} {template}"
            f"{f' [{context}]' if context else ''} - "
            f"Status: {response.status_code} - "
            f"Time: {process_time:.4f}s"
        )

        return response
