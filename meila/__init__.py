"""Household inventory engine package."""
from __future__ import annotations

from .models import Item, UsageRecord
from .predictor import estimate_days_remaining
from .store import Adjustment, InventoryStore
from .undo import PendingAction, UndoController

__all__ = [
    "Adjustment",
    "InventoryStore",
    "Item",
    "PendingAction",
    "UndoController",
    "UsageRecord",
    "create_app",
    "estimate_days_remaining",
]


def create_app(*args, **kwargs):
    from .app import create_app as _create_app

    return _create_app(*args, **kwargs)

