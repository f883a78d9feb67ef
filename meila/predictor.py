"""Burn-rate based estimate of how long an item's stock will last."""
from __future__ import annotations

from datetime import datetime
from typing import Iterable, List, Optional
import math

from .models import Item, UsageRecord

WINDOW_SIZE = 10
MIN_SINGLE_EVENT_DAYS = 0.5
MIN_WINDOW_SPAN_DAYS = 0.05
MIN_LIFETIME_DAYS = 0.5

_SECONDS_PER_DAY = 86_400


def _days_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / _SECONDS_PER_DAY


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def consumption_events(item: Item) -> List[UsageRecord]:
    """Return the consumption-like records of ``item``, newest first."""

    return [
        record
        for record in item.usage_history
        if record.type == "consume" or (record.type == "adjust" and record.delta < 0)
    ]


def _total_consumed(records: Iterable[UsageRecord]) -> int:
    return sum(abs(record.delta) for record in records)


def daily_burn_rate(item: Item) -> Optional[float]:
    """Return units consumed per day, or ``None`` when history is too thin.

    A single consumption is measured against the item's creation time. With
    more events the ten most recent ones form a window; the oldest entry of
    the window only marks the start boundary, so its own amount is left out.
    Windows that are too short or carry no consumption fall back to the
    lifetime average.
    """

    events = consumption_events(item)
    if not events:
        return None

    if len(events) == 1:
        event = events[0]
        elapsed = _days_between(item.created_at, event.timestamp)
        if elapsed < MIN_SINGLE_EVENT_DAYS:
            return None
        consumed = abs(event.delta)
        if consumed == 0:
            return None
        return consumed / elapsed

    window = events[:WINDOW_SIZE]
    span = _days_between(window[-1].timestamp, window[0].timestamp)
    consumed_in_window = _total_consumed(window[:-1])
    if span < MIN_WINDOW_SPAN_DAYS or consumed_in_window == 0:
        lifetime_days = _days_between(item.created_at, window[0].timestamp)
        lifetime_consumed = _total_consumed(events)
        if lifetime_days <= MIN_LIFETIME_DAYS or lifetime_consumed == 0:
            return None
        return lifetime_consumed / lifetime_days
    return consumed_in_window / span


def estimate_days_remaining(item: Item) -> Optional[int]:
    """Estimate whole days until ``item`` runs out.

    Returns ``0`` for an empty item and ``None`` when the usage history does
    not support a rate.
    """

    if item.quantity <= 0:
        return 0
    rate = daily_burn_rate(item)
    if rate is None:
        return None
    return _round_half_up(item.quantity / rate)


def is_low_stock(item: Item) -> bool:
    return item.is_low_stock


__all__ = [
    "WINDOW_SIZE",
    "consumption_events",
    "daily_burn_rate",
    "estimate_days_remaining",
    "is_low_stock",
]
