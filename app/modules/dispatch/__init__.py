# app/modules/dispatch/__init__.py
"""
Dispatch module - hub work lists and the command coordinator

Arquitectura:
- coordinator.py: commands, locked snapshot and DispatchCoordinator.apply
- views.py: per-city filters and dashboard stats
- router.py: hub views (GET /dispatch/...)
- service.py: transaction boundary for every dispatch command
- repository.py: locked loads and view queries
"""

from .coordinator import DispatchCoordinator, DispatchOutcome, Snapshot

__all__ = [
    "DispatchCoordinator",
    "DispatchOutcome",
    "Snapshot"
]
