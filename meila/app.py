"""Composition root wiring storage, store, undo and preferences together."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional
import logging

from .codec import export_csv, export_json
from .config import Settings, get_settings
from .models import utc_now
from .preferences import ThemePreference
from .report import restock_report_to_xls
from .storage import KeyValueStorage, open_storage
from .store import InventoryStore
from .undo import Scheduler, UndoController

logger = logging.getLogger(__name__)


@dataclass
class InventoryApp:
    """Service objects shared by every front end for one process."""

    settings: Settings
    storage: KeyValueStorage
    store: InventoryStore
    undo: UndoController
    theme: ThemePreference

    def export_csv(self) -> str:
        return export_csv(self.store.items())

    def export_json(self) -> str:
        return export_json(self.store.items())

    def export_restock_report(self, generated_label: Optional[str] = None) -> bytes:
        if generated_label is None:
            generated_label = self.store.clock().strftime("%Y-%m-%d %H:%M")
        return restock_report_to_xls(self.store.items(), generated_label=generated_label)

    def close(self) -> None:
        self.undo.close()
        dispose = getattr(self.storage, "close", None)
        if callable(dispose):
            dispose()


def create_app(
    settings: Optional[Settings] = None,
    *,
    storage: Optional[KeyValueStorage] = None,
    scheduler: Optional[Scheduler] = None,
    clock: Callable[[], datetime] = utc_now,
) -> InventoryApp:
    settings = settings or get_settings()
    logging.getLogger("meila").setLevel(settings.log_level)

    if storage is None:
        storage = open_storage(settings)
    store = InventoryStore(storage, storage_key=settings.inventory_key, clock=clock)
    undo = UndoController(
        store, timeout=settings.undo_timeout_seconds, scheduler=scheduler
    )
    theme = ThemePreference(storage, key=settings.theme_key)
    logger.info(
        "%s started (%s, %s backend, %d items)",
        settings.app_name,
        settings.environment,
        settings.storage_backend,
        len(store.items()),
    )
    return InventoryApp(
        settings=settings, storage=storage, store=store, undo=undo, theme=theme
    )


__all__ = ["InventoryApp", "create_app"]
