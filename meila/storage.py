"""Key-value persistence port and its adapters."""
from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from threading import RLock
from typing import Dict, Optional, Protocol
import json

from sqlalchemy import DateTime, String, Text, create_engine, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column

from .config import Settings


class StorageError(RuntimeError):
    """Raised by adapters when a read or write cannot be completed."""


class KeyValueStorage(Protocol):
    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...


class MemoryStorage:
    """Dictionary backed storage, mostly useful for tests."""

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._values: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value


class JsonFileStorage:
    """Stores every key in a single JSON object file."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = RLock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            values = self._read_locked()
        value = values.get(key)
        return None if value is None else str(value)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            values = self._read_locked()
            values[key] = value
            self.path.parent.mkdir(parents=True, exist_ok=True)
            temp_path = self.path.with_suffix(".tmp")
            temp_path.write_text(
                json.dumps(values, indent=2, ensure_ascii=False), encoding="utf-8"
            )
            temp_path.replace(self.path)

    def _read_locked(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            raw = self.path.read_text(encoding="utf-8") or "{}"
        except UnicodeDecodeError as exc:
            raise StorageError(f"Storage file {self.path} is not valid UTF-8") from exc
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise StorageError(f"Storage file {self.path} is not valid JSON") from exc
        if not isinstance(payload, dict):
            raise StorageError(f"Storage file {self.path} must hold a JSON object")
        return payload


class Base(DeclarativeBase):
    """Base class for SQLAlchemy models."""


class KeyValueEntry(Base):
    __tablename__ = "kv_entries"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )


class SqlStorage:
    """Key-value rows in a relational database through SQLAlchemy."""

    def __init__(self, database_url: str, *, echo: bool = False) -> None:
        self.engine = create_engine(database_url, echo=echo)
        try:
            Base.metadata.create_all(self.engine)
        except SQLAlchemyError as exc:
            raise StorageError("Unable to initialise key-value table") from exc

    def get(self, key: str) -> Optional[str]:
        try:
            with Session(self.engine) as session:
                stmt = select(KeyValueEntry.value).where(KeyValueEntry.key == key)
                return session.execute(stmt).scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise StorageError(f"Unable to read key {key!r}") from exc

    def set(self, key: str, value: str) -> None:
        try:
            with Session(self.engine) as session, session.begin():
                entry = session.get(KeyValueEntry, key)
                if entry is None:
                    session.add(KeyValueEntry(key=key, value=value))
                else:
                    entry.value = value
        except SQLAlchemyError as exc:
            raise StorageError(f"Unable to write key {key!r}") from exc

    def close(self) -> None:
        self.engine.dispose()


def open_storage(settings: Settings) -> KeyValueStorage:
    """Build the storage adapter selected by ``settings.storage_backend``."""

    if settings.storage_backend == "memory":
        return MemoryStorage()
    if settings.storage_backend == "sql":
        return SqlStorage(settings.database_url, echo=settings.echo_sql)
    return JsonFileStorage(settings.storage_path)


__all__ = [
    "JsonFileStorage",
    "KeyValueEntry",
    "KeyValueStorage",
    "MemoryStorage",
    "SqlStorage",
    "StorageError",
    "open_storage",
]
