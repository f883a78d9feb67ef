from datetime import datetime, timedelta, timezone
from typing import List, Sequence, Tuple

import pytest

from meila.models import Item, UsageRecord
from meila.predictor import (
    consumption_events,
    daily_burn_rate,
    estimate_days_remaining,
    is_low_stock,
)

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _item(quantity: int, events: Sequence[Tuple[float, str, int]] = ()) -> Item:
    """Build an item created at ``T0`` with ``(day_offset, type, delta)`` events."""

    history: List[UsageRecord] = []
    for offset, record_type, delta in sorted(events, key=lambda entry: entry[0], reverse=True):
        history.append(
            UsageRecord(
                timestamp=T0 + timedelta(days=offset),
                type=record_type,
                delta=delta,
                previous_quantity=max(quantity - delta, 0),
                new_quantity=quantity,
            )
        )
    return Item(
        id="item",
        name="纸巾",
        quantity=quantity,
        unit="包",
        threshold=1,
        target_quantity=10,
        created_at=T0,
        updated_at=T0,
        usage_history=history,
    )


def test_empty_item_has_zero_days_regardless_of_history() -> None:
    assert estimate_days_remaining(_item(0)) == 0
    assert estimate_days_remaining(_item(0, [(1, "consume", -2)])) == 0


def test_no_history_returns_none() -> None:
    assert estimate_days_remaining(_item(5)) is None


def test_restocks_and_increases_are_not_consumption() -> None:
    item = _item(5, [(1, "restock", 4), (2, "adjust", 1)])
    assert consumption_events(item) == []
    assert estimate_days_remaining(item) is None


def test_negative_adjust_counts_as_consumption() -> None:
    item = _item(6, [(2, "adjust", -2)])
    assert len(consumption_events(item)) == 1
    assert estimate_days_remaining(item) == 6


def test_single_event_uses_creation_time() -> None:
    item = _item(8, [(2, "consume", -2)])
    assert daily_burn_rate(item) == pytest.approx(1.0)
    assert estimate_days_remaining(item) == 8


def test_single_event_too_soon_after_creation() -> None:
    item = _item(8, [(0.4, "consume", -2)])
    assert estimate_days_remaining(item) is None


def test_window_rate_excludes_oldest_entry_delta() -> None:
    # Events at day 1 (-5) and day 3 (-2): only the newer amount counts,
    # spread over the two days between them.
    item = _item(10, [(1, "consume", -5), (3, "consume", -2)])

    assert daily_burn_rate(item) == pytest.approx(1.0)
    assert estimate_days_remaining(item) == 10


def test_window_limited_to_ten_most_recent_events() -> None:
    old = [(day, "consume", -50) for day in range(1, 6)]
    recent = [(10 + day, "consume", -1) for day in range(10)]
    item = _item(9, old + recent)

    # Window spans days 10..19 with nine counted units of consumption.
    assert daily_burn_rate(item) == pytest.approx(1.0)
    assert estimate_days_remaining(item) == 9


def test_clustered_events_fall_back_to_lifetime_rate() -> None:
    item = _item(6, [(3, "consume", -1), (3.01, "consume", -2)])

    # Span is under 0.05 days: lifetime is 3 units over ~3.01 days.
    assert estimate_days_remaining(item) == 6


def test_lifetime_fallback_needs_half_a_day() -> None:
    item = _item(6, [(0.1, "consume", -1), (0.11, "consume", -2)])
    assert estimate_days_remaining(item) is None


def test_zero_window_consumption_falls_back_to_lifetime() -> None:
    item = _item(4, [(1, "consume", -4), (2, "consume", 0)])

    # Only the newest (zero) delta is inside the window; lifetime is 4 over 2 days.
    assert estimate_days_remaining(item) == 2


def test_rounding_is_half_up() -> None:
    # Rate of 2 per day with 5 units left is 2.5 days.
    item = _item(5, [(1, "consume", -1), (2, "consume", -2)])
    assert estimate_days_remaining(item) == 3


def test_is_low_stock() -> None:
    assert is_low_stock(_item(1))
    assert not is_low_stock(_item(2))
