"""Single-slot undo for quantity adjustments and bulk imports."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from threading import RLock, Timer
from typing import Callable, List, Optional, Protocol
import logging

from .store import Adjustment, InventoryStore

logger = logging.getLogger(__name__)

IMPORT_SENTINEL_ID = "__import__"
DEFAULT_UNDO_TIMEOUT = 4.0

UndoListener = Callable[[Optional["PendingAction"]], None]


@dataclass(frozen=True)
class PendingAction:
    """The most recent reversible action."""

    description: str
    target_id: str
    record_timestamp: datetime

    @property
    def is_import(self) -> bool:
        return self.target_id == IMPORT_SENTINEL_ID


class ScheduledTask(Protocol):
    def cancel(self) -> None:
        ...


class Scheduler(Protocol):
    def schedule(self, delay: float, callback: Callable[[], None]) -> ScheduledTask:
        ...


class ThreadingScheduler:
    """Runs callbacks on daemon :class:`threading.Timer` threads."""

    def schedule(self, delay: float, callback: Callable[[], None]) -> ScheduledTask:
        timer = Timer(delay, callback)
        timer.daemon = True
        timer.start()
        return timer


def describe_adjustment(adjustment: Adjustment) -> str:
    record = adjustment.record
    sign = "-" if record.delta < 0 else "+"
    return f"{adjustment.item.name} {sign}{abs(record.delta)}{adjustment.item.unit}"


class UndoController:
    """Wraps store mutations and keeps at most one undoable action.

    Every eligible action replaces the pending one and restarts its expiry
    task. Restocks are passed through without becoming undoable. Imports are
    registered under :data:`IMPORT_SENTINEL_ID`; undoing them only dismisses
    the confirmation.
    """

    def __init__(
        self,
        store: InventoryStore,
        *,
        timeout: float = DEFAULT_UNDO_TIMEOUT,
        scheduler: Optional[Scheduler] = None,
    ) -> None:
        self.store = store
        self.timeout = timeout
        self.scheduler: Scheduler = scheduler or ThreadingScheduler()
        self._pending: Optional[PendingAction] = None
        self._task: Optional[ScheduledTask] = None
        self._listeners: List[UndoListener] = []
        self._lock = RLock()

    @property
    def pending(self) -> Optional[PendingAction]:
        with self._lock:
            return self._pending

    def subscribe(self, listener: UndoListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    # ------------------------------------------------------------------
    # Wrapped store operations
    # ------------------------------------------------------------------
    def adjust_quantity(self, item_id: str, delta: int) -> Optional[Adjustment]:
        adjustment = self.store.adjust_quantity(item_id, delta)
        if adjustment is not None:
            self._register(
                PendingAction(
                    description=describe_adjustment(adjustment),
                    target_id=item_id,
                    record_timestamp=adjustment.record.timestamp,
                )
            )
        return adjustment

    def restock_item(self, item_id: str, new_quantity: int) -> Optional[Adjustment]:
        return self.store.restock_item(item_id, new_quantity)

    def import_content(self, content: str) -> bool:
        """Import JSON or CSV ``content``; ``False`` means nothing was imported."""

        result = self.store.import_content(content)
        if result is None:
            return False
        self._register(
            PendingAction(
                description=f"已导入 {result.imported_count} 项物品",
                target_id=IMPORT_SENTINEL_ID,
                record_timestamp=self.store.clock(),
            )
        )
        return True

    # ------------------------------------------------------------------
    # Undo slot
    # ------------------------------------------------------------------
    def undo(self) -> bool:
        """Revert the pending adjustment; return whether data changed."""

        with self._lock:
            action = self._pending
            if action is None:
                return False
            if action.is_import:
                self._clear_locked()
                reverted = False
            else:
                item = self.store.revert_last_record(
                    action.target_id, action.record_timestamp
                )
                if item is None:
                    logger.debug("Ignoring stale undo for item %s", action.target_id)
                    return False
                self._clear_locked()
                reverted = True
        self._notify(None)
        return reverted

    def dismiss(self) -> None:
        with self._lock:
            if self._pending is None:
                return
            self._clear_locked()
        self._notify(None)

    def close(self) -> None:
        with self._lock:
            self._cancel_task_locked()

    def _register(self, action: PendingAction) -> None:
        with self._lock:
            self._cancel_task_locked()
            self._pending = action
            self._task = self.scheduler.schedule(
                self.timeout, lambda: self._expire(action)
            )
        logger.debug("Undo available: %s", action.description)
        self._notify(action)

    def _expire(self, action: PendingAction) -> None:
        with self._lock:
            if self._pending is not action:
                return
            self._pending = None
            self._task = None
        self._notify(None)

    def _clear_locked(self) -> None:
        self._cancel_task_locked()
        self._pending = None

    def _cancel_task_locked(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    def _notify(self, action: Optional[PendingAction]) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(action)
            except Exception:
                logger.exception("Undo listener %r failed", listener)


__all__ = [
    "DEFAULT_UNDO_TIMEOUT",
    "IMPORT_SENTINEL_ID",
    "PendingAction",
    "Scheduler",
    "ThreadingScheduler",
    "UndoController",
    "describe_adjustment",
]
