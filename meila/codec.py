"""CSV/JSON export and tolerant import of the item collection."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from io import StringIO
from typing import Any, Dict, Iterable, List, Optional, Sequence
import csv
import json

from .models import Item, to_epoch_millis

BOM = "\ufeff"

CSV_COLUMNS = (
    "id",
    "name",
    "quantity",
    "unit",
    "threshold",
    "targetQuantity",
    "expirationDate",
    "createdAt",
    "updatedAt",
    "usageHistory",
)

_CSV_COLUMN_LOOKUP = {column.lower(): column for column in CSV_COLUMNS}


def _normalize_csv_key(value: Any) -> str:
    if value is None:
        return ""
    text = str(value).strip().lower()
    if BOM in text:
        text = text.replace(BOM, "")
    return text


@dataclass(frozen=True)
class ImportResult:
    items: List[Item]
    imported_count: int


def export_json(items: Iterable[Item]) -> str:
    return json.dumps(
        [item.to_record() for item in items], indent=2, ensure_ascii=False
    )


def _csv_row(item: Item) -> List[Any]:
    history = json.dumps(
        [entry.to_record() for entry in item.usage_history], ensure_ascii=False
    )
    return [
        item.id,
        item.name,
        item.quantity,
        item.unit,
        item.threshold,
        item.target_quantity,
        None if item.expiration_date is None else to_epoch_millis(item.expiration_date),
        to_epoch_millis(item.created_at),
        to_epoch_millis(item.updated_at),
        history,
    ]


def export_csv(items: Iterable[Item]) -> str:
    """Serialize ``items`` as CSV prefixed with a byte-order mark.

    Text cells (including the JSON encoded usage history) are always quoted,
    numeric cells are written bare.
    """

    buffer = StringIO()
    buffer.write(BOM)
    writer = csv.writer(buffer, quoting=csv.QUOTE_NONNUMERIC)
    writer.writerow(CSV_COLUMNS)
    for item in items:
        writer.writerow(_csv_row(item))
    return buffer.getvalue()


def _has_identity(record: Dict[str, Any]) -> bool:
    return bool(str(record.get("id") or "").strip()) and bool(
        str(record.get("name") or "").strip()
    )


def _parse_json_records(content: str) -> Optional[List[Dict[str, Any]]]:
    try:
        payload = json.loads(content)
    except ValueError:
        return None
    if not isinstance(payload, list):
        return None
    return [row for row in payload if isinstance(row, dict) and _has_identity(row)]


def _parse_csv_records(content: str) -> List[Dict[str, Any]]:
    # Long usageHistory cells exceed the csv module's default field limit.
    csv.field_size_limit(max(csv.field_size_limit(), len(content)))
    reader = csv.reader(StringIO(content, newline=""))
    try:
        header = next(reader)
    except (StopIteration, csv.Error):
        return []
    columns = [_CSV_COLUMN_LOOKUP.get(_normalize_csv_key(label)) for label in header]
    if "id" not in columns or "name" not in columns:
        return []

    records: List[Dict[str, Any]] = []
    try:
        for row in reader:
            if not any(cell.strip() for cell in row):
                continue
            record: Dict[str, Any] = {}
            for column, value in zip(columns, row):
                if column is None:
                    continue
                record[column] = value
            if not _has_identity(record):
                continue
            if "usageHistory" in record:
                try:
                    record["usageHistory"] = json.loads(record["usageHistory"])
                except ValueError:
                    record["usageHistory"] = []
            records.append(record)
    except csv.Error:
        return []
    return records


def parse_import(content: str) -> List[Dict[str, Any]]:
    """Extract raw item records from JSON or CSV text.

    JSON is tried first and must be an array; anything else is read as CSV
    with a header row. Records lacking ``id`` or ``name`` are dropped.
    """

    if content.startswith(BOM):
        content = content[len(BOM):]
    records = _parse_json_records(content)
    if records is not None:
        return records
    return _parse_csv_records(content)


def merge_items(
    current: Sequence[Item],
    records: Iterable[Dict[str, Any]],
    *,
    now: datetime,
) -> ImportResult:
    """Overlay imported records on ``current`` by id.

    An imported record replaces the whole existing item with the same id.
    Ids absent from the import keep their position; new ids are appended.
    """

    merged: Dict[str, Item] = {item.id: item for item in current}
    count = 0
    for record in records:
        try:
            item = Item.from_record(record, now=now)
        except ValueError:
            continue
        merged[item.id] = item
        count += 1
    return ImportResult(items=list(merged.values()), imported_count=count)


__all__ = [
    "BOM",
    "CSV_COLUMNS",
    "ImportResult",
    "export_csv",
    "export_json",
    "merge_items",
    "parse_import",
]
