"""In-memory item collection with its usage ledger and best-effort persistence."""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from threading import RLock
from typing import Any, Callable, Dict, List, Optional
import json
import logging
import uuid

from .codec import ImportResult, merge_items, parse_import
from .models import Item, UsageRecord, coerce_optional_timestamp, utc_now
from .storage import KeyValueStorage, StorageError

logger = logging.getLogger(__name__)

INVENTORY_KEY = "meila_inventory_v1"

_PATCHABLE_FIELDS = frozenset(
    {"name", "quantity", "unit", "threshold", "target_quantity", "expiration_date"}
)

Listener = Callable[[List[Item]], None]


def _generate_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class Adjustment:
    """Outcome of a quantity change that appended a ledger record."""

    previous: Item
    item: Item
    record: UsageRecord


@dataclass
class InventoryStore:
    """Owns the item collection and persists it through a key-value port."""

    storage: KeyValueStorage
    storage_key: str = INVENTORY_KEY
    clock: Callable[[], datetime] = utc_now
    id_factory: Callable[[], str] = _generate_id
    _items: List[Item] = field(default_factory=list, init=False)
    _listeners: List[Listener] = field(default_factory=list, init=False)
    _lock: RLock = field(default_factory=RLock, init=False)

    def __post_init__(self) -> None:
        with self._lock:
            self._items = self._load_items_locked()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def items(self) -> List[Item]:
        with self._lock:
            return list(self._items)

    def get_item(self, item_id: str) -> Optional[Item]:
        with self._lock:
            index = self._index_of(item_id)
            return None if index is None else self._items[index]

    def low_stock_items(self) -> List[Item]:
        """Items due for restocking, in collection order."""

        with self._lock:
            return [item for item in self._items if item.is_low_stock]

    def sorted_for_display(self) -> List[Item]:
        """Low-stock items first, then the most recently updated."""

        with self._lock:
            ordered = sorted(self._items, key=lambda item: item.updated_at, reverse=True)
        return sorted(ordered, key=lambda item: not item.is_low_stock)

    # ------------------------------------------------------------------
    # Change notification
    # ------------------------------------------------------------------
    def subscribe(self, listener: Listener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def create_item(
        self,
        name: str,
        quantity: int = 0,
        unit: str = "",
        threshold: int = 0,
        *,
        target_quantity: Optional[int] = None,
        expiration_date: Optional[datetime] = None,
    ) -> Item:
        now = self.clock()
        item = Item(
            id=self.id_factory(),
            name=name,
            quantity=quantity,
            unit=unit,
            threshold=threshold,
            target_quantity=quantity if target_quantity is None else target_quantity,
            created_at=now,
            updated_at=now,
            expiration_date=coerce_optional_timestamp(expiration_date),
            usage_history=[],
        )
        with self._lock:
            self._items.insert(0, item)
            snapshot = self._commit_locked()
        self._notify(snapshot)
        logger.debug("Created item %s (%s)", item.id, item.name)
        return item

    def update_item(self, item_id: str, **patch: Any) -> Optional[Item]:
        """Merge ``patch`` into an item and refresh ``updated_at``.

        Unknown ids are ignored and ``None`` is returned. Only editable fields
        may be patched; ``id``, ``created_at`` and ``usage_history`` are owned
        by the store.
        """

        unknown = set(patch) - _PATCHABLE_FIELDS
        if unknown:
            raise TypeError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")
        with self._lock:
            index = self._index_of(item_id)
            if index is None:
                return None
            updated = replace(self._items[index], **patch, updated_at=self.clock())
            self._items[index] = updated
            snapshot = self._commit_locked()
        self._notify(snapshot)
        logger.debug("Updated item %s fields=%s", item_id, sorted(patch))
        return updated

    def delete_item(self, item_id: str) -> bool:
        with self._lock:
            index = self._index_of(item_id)
            if index is None:
                return False
            del self._items[index]
            snapshot = self._commit_locked()
        self._notify(snapshot)
        logger.debug("Deleted item %s", item_id)
        return True

    def adjust_quantity(self, item_id: str, delta: int) -> Optional[Adjustment]:
        """Change an item's stock by ``delta``, never going below zero.

        Returns ``None`` without touching the ledger when the item is unknown
        or the quantity would not change.
        """

        with self._lock:
            index = self._index_of(item_id)
            if index is None:
                return None
            current = self._items[index]
            new_quantity = max(0, current.quantity + delta)
            if new_quantity == current.quantity:
                return None
            record_type = "consume" if delta < 0 else "adjust"
            adjustment = self._apply_locked(index, new_quantity, record_type)
            snapshot = self._commit_locked()
        self._notify(snapshot)
        return adjustment

    def restock_item(self, item_id: str, new_quantity: int) -> Optional[Adjustment]:
        """Set an item's stock to ``new_quantity`` and log a restock record."""

        new_quantity = max(0, new_quantity)
        with self._lock:
            index = self._index_of(item_id)
            if index is None:
                return None
            if new_quantity == self._items[index].quantity:
                return None
            adjustment = self._apply_locked(index, new_quantity, "restock")
            snapshot = self._commit_locked()
        self._notify(snapshot)
        return adjustment

    def revert_last_record(
        self, item_id: str, record_timestamp: datetime
    ) -> Optional[Item]:
        """Drop the newest ledger record if it is the one stamped ``record_timestamp``.

        The quantity goes back to the record's ``previous_quantity``. Nothing
        happens when the item is gone or its history has moved on.
        """

        with self._lock:
            index = self._index_of(item_id)
            if index is None:
                return None
            current = self._items[index]
            if not current.usage_history:
                return None
            head = current.usage_history[0]
            if head.timestamp != record_timestamp:
                return None
            reverted = replace(
                current,
                quantity=head.previous_quantity,
                usage_history=list(current.usage_history[1:]),
                updated_at=self.clock(),
            )
            self._items[index] = reverted
            snapshot = self._commit_locked()
        self._notify(snapshot)
        logger.debug("Reverted %s record on item %s", head.type, item_id)
        return reverted

    def import_content(self, content: str) -> Optional[ImportResult]:
        """Merge JSON or CSV ``content`` into the collection.

        Returns ``None`` and leaves the collection untouched when no valid
        record could be extracted.
        """

        records = parse_import(content)
        if not records:
            logger.info("Import rejected: no valid records found")
            return None
        with self._lock:
            result = merge_items(self._items, records, now=self.clock())
            if result.imported_count == 0:
                logger.info("Import rejected: no valid records found")
                return None
            self._items = list(result.items)
            snapshot = self._commit_locked()
        self._notify(snapshot)
        logger.info("Imported %d items", result.imported_count)
        return result

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _index_of(self, item_id: str) -> Optional[int]:
        for index, item in enumerate(self._items):
            if item.id == item_id:
                return index
        return None

    def _apply_locked(self, index: int, new_quantity: int, record_type: str) -> Adjustment:
        current = self._items[index]
        now = self.clock()
        record = UsageRecord(
            timestamp=now,
            type=record_type,
            delta=new_quantity - current.quantity,
            previous_quantity=current.quantity,
            new_quantity=new_quantity,
        )
        updated = replace(
            current,
            quantity=new_quantity,
            usage_history=[record, *current.usage_history],
            updated_at=now,
        )
        self._items[index] = updated
        logger.debug(
            "Recorded %s on item %s: %d -> %d",
            record_type,
            current.id,
            record.previous_quantity,
            record.new_quantity,
        )
        return Adjustment(previous=current, item=updated, record=record)

    def _commit_locked(self) -> List[Item]:
        self._persist_locked()
        return list(self._items)

    def _notify(self, snapshot: List[Item]) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Inventory listener %r failed", listener)

    def _persist_locked(self) -> None:
        payload = json.dumps(
            [item.to_record() for item in self._items], ensure_ascii=False
        )
        try:
            self.storage.set(self.storage_key, payload)
        except (StorageError, OSError):
            logger.exception("Failed to save inventory")

    def _load_items_locked(self) -> List[Item]:
        try:
            raw = self.storage.get(self.storage_key)
        except (StorageError, OSError):
            logger.exception("Failed to load inventory")
            return []
        if not raw:
            return []
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Stored inventory is not valid JSON; starting empty")
            return []
        if not isinstance(payload, list):
            logger.warning("Stored inventory is not a JSON array; starting empty")
            return []
        now = self.clock()
        items: List[Item] = []
        seen: Dict[str, bool] = {}
        for record in payload:
            if not isinstance(record, dict):
                continue
            try:
                item = Item.from_record(record, now=now)
            except ValueError:
                continue
            if item.id in seen:
                continue
            seen[item.id] = True
            items.append(item)
        return items


__all__ = ["Adjustment", "INVENTORY_KEY", "InventoryStore", "Listener"]
