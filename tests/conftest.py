from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

import pytest

from meila.storage import MemoryStorage, StorageError
from meila.store import InventoryStore
from meila.undo import UndoController


class FakeClock:
    def __init__(self, start: Optional[datetime] = None) -> None:
        self.current = start or datetime(2024, 3, 1, 8, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


class ManualTask:
    def __init__(self, delay: float, callback: Callable[[], None]) -> None:
        self.delay = delay
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        if not self.cancelled:
            self.callback()


class ManualScheduler:
    def __init__(self) -> None:
        self.tasks: List[ManualTask] = []

    def schedule(self, delay: float, callback: Callable[[], None]) -> ManualTask:
        task = ManualTask(delay, callback)
        self.tasks.append(task)
        return task

    @property
    def active(self) -> List[ManualTask]:
        return [task for task in self.tasks if not task.cancelled]


class FailingStorage:
    def __init__(self) -> None:
        self.attempts = 0

    def get(self, key: str) -> Optional[str]:
        raise StorageError("read failed")

    def set(self, key: str, value: str) -> None:
        self.attempts += 1
        raise StorageError("write failed")


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture()
def store(storage: MemoryStorage, clock: FakeClock) -> InventoryStore:
    return InventoryStore(storage, clock=clock)


@pytest.fixture()
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture()
def undo(store: InventoryStore, scheduler: ManualScheduler) -> UndoController:
    return UndoController(store, scheduler=scheduler)


@pytest.fixture()
def failing_storage() -> FailingStorage:
    return FailingStorage()
