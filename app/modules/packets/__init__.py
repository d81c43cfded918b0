# app/modules/packets/__init__.py
"""
Packets module - lifecycle, intake and tracking

Arquitectura:
- lifecycle.py: statuses, transition table and non-assignment transitions
- router.py: intake, tracking, agent lists and confirmation endpoints
- service.py: business logic for intake and confirmations
- repository.py: packet and customer queries
- schemas.py: request/response models
"""

from .lifecycle import DeliveryType, PacketStatus

__all__ = [
    "DeliveryType",
    "PacketStatus"
]
