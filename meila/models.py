"""Item and usage-record data model with tolerant field coercion."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
import json
import math

USAGE_TYPES = ("consume", "restock", "adjust")

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _truncate_to_millis(value: datetime) -> datetime:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.replace(microsecond=(value.microsecond // 1000) * 1000)


def utc_now() -> datetime:
    return _truncate_to_millis(datetime.now(timezone.utc))


def to_epoch_millis(value: datetime) -> int:
    delta = _truncate_to_millis(value) - _EPOCH
    return (delta.days * 86_400 + delta.seconds) * 1000 + delta.microseconds // 1000


def from_epoch_millis(value: float) -> datetime:
    return _EPOCH + timedelta(milliseconds=int(value))


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return _truncate_to_millis(value)
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            return None
        try:
            return from_epoch_millis(value)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return _parse_timestamp(float(text))
        except ValueError:
            pass
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return None
        return _truncate_to_millis(parsed)
    return None


def coerce_non_negative_int(value: Any, default: int = 0) -> int:
    """Convert loosely typed input to an ``int >= 0`` or return ``default``."""

    number = _coerce_int(value)
    if number is None or number < 0:
        return default
    return number


def coerce_int(value: Any, default: int = 0) -> int:
    number = _coerce_int(value)
    return default if number is None else number


def _coerce_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip()
        if text == "":
            return None
        try:
            return int(text)
        except ValueError:
            try:
                value = float(text)
            except ValueError:
                return None
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        return int(value)
    return None


def coerce_timestamp(value: Any, default: datetime) -> datetime:
    parsed = _parse_timestamp(value)
    return default if parsed is None else parsed


def coerce_optional_timestamp(value: Any) -> Optional[datetime]:
    return _parse_timestamp(value)


def coerce_usage_history(value: Any) -> List["UsageRecord"]:
    """Return usage records newest first, dropping unusable entries."""

    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError:
            return []
    if not isinstance(value, (list, tuple)):
        return []
    records: List[UsageRecord] = []
    for raw in value:
        if isinstance(raw, UsageRecord):
            records.append(raw)
            continue
        if not isinstance(raw, dict):
            continue
        try:
            records.append(UsageRecord.from_record(raw))
        except ValueError:
            continue
    records.sort(key=lambda record: record.timestamp, reverse=True)
    return records


@dataclass(frozen=True)
class UsageRecord:
    """One quantity change in an item's ledger."""

    timestamp: datetime
    type: str
    delta: int
    previous_quantity: int
    new_quantity: int

    def to_record(self) -> Dict[str, Any]:
        return {
            "timestamp": to_epoch_millis(self.timestamp),
            "type": self.type,
            "delta": self.delta,
            "previousQuantity": self.previous_quantity,
            "newQuantity": self.new_quantity,
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "UsageRecord":
        timestamp = _parse_timestamp(record.get("timestamp"))
        if timestamp is None:
            raise ValueError("Invalid timestamp in usage record")
        record_type = str(record.get("type") or "").strip()
        if record_type not in USAGE_TYPES:
            raise ValueError(f"Unknown usage record type {record_type!r}")
        return cls(
            timestamp=timestamp,
            type=record_type,
            delta=coerce_int(record.get("delta")),
            previous_quantity=coerce_non_negative_int(record.get("previousQuantity")),
            new_quantity=coerce_non_negative_int(record.get("newQuantity")),
        )


@dataclass(frozen=True)
class Item:
    """A tracked household consumable."""

    id: str
    name: str
    quantity: int
    unit: str
    threshold: int
    target_quantity: int
    created_at: datetime
    updated_at: datetime
    expiration_date: Optional[datetime] = None
    usage_history: List[UsageRecord] = field(default_factory=list)

    @property
    def is_low_stock(self) -> bool:
        return self.quantity <= self.threshold

    def to_record(self) -> Dict[str, Any]:
        record: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "quantity": self.quantity,
            "threshold": self.threshold,
            "targetQuantity": self.target_quantity,
            "unit": self.unit,
        }
        if self.expiration_date is not None:
            record["expirationDate"] = to_epoch_millis(self.expiration_date)
        record["usageHistory"] = [entry.to_record() for entry in self.usage_history]
        record["createdAt"] = to_epoch_millis(self.created_at)
        record["updatedAt"] = to_epoch_millis(self.updated_at)
        return record

    @classmethod
    def from_record(cls, record: Dict[str, Any], *, now: datetime) -> "Item":
        """Build an item from an external mapping, coercing every field.

        Raises :class:`ValueError` only when ``id`` or ``name`` is missing.
        """

        item_id = str(record.get("id") or "")
        name = str(record.get("name") or "")
        if not item_id.strip() or not name.strip():
            raise ValueError("Record requires both id and name")
        raw_unit = record.get("unit")
        return cls(
            id=item_id,
            name=name,
            quantity=coerce_non_negative_int(record.get("quantity")),
            unit="" if raw_unit is None else str(raw_unit),
            threshold=coerce_non_negative_int(record.get("threshold")),
            target_quantity=coerce_non_negative_int(record.get("targetQuantity")),
            created_at=coerce_timestamp(record.get("createdAt"), now),
            updated_at=coerce_timestamp(record.get("updatedAt"), now),
            expiration_date=coerce_optional_timestamp(record.get("expirationDate")),
            usage_history=coerce_usage_history(record.get("usageHistory")),
        )


__all__ = [
    "Item",
    "USAGE_TYPES",
    "UsageRecord",
    "coerce_int",
    "coerce_non_negative_int",
    "coerce_optional_timestamp",
    "coerce_timestamp",
    "coerce_usage_history",
    "from_epoch_millis",
    "to_epoch_millis",
    "utc_now",
]
