# app/modules/proximity/__init__.py
"""
Proximity module - live agent positions

Arquitectura:
- matcher.py: closest candidate, arrival latch, tick tracking
- router.py: position ingress and route lookup
- service.py: candidate loading and route enrichment
- schemas.py: request/response models
"""

from .matcher import ArrivalLatch, CandidateMatch, CandidateMode, closest_candidate

__all__ = [
    "ArrivalLatch",
    "CandidateMatch",
    "CandidateMode",
    "closest_candidate"
]
