# app/modules/assignments/__init__.py
"""
Assignments module - pickup agents, vehicles and delivery agents

Arquitectura:
- engine.py: assignment rules over loaded entities
- router.py: assignment endpoints (mounted under /packets)
- service.py: request handling on top of the dispatch transaction
- repository.py: pickup request lookups
- schemas.py: request/response models
"""

from .engine import EngineResult

__all__ = [
    "EngineResult"
]
