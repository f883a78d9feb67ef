import json
import threading

from meila.codec import export_json
from meila.store import InventoryStore
from meila.undo import IMPORT_SENTINEL_ID, UndoController


def test_adjust_registers_pending_action(undo: UndoController, store: InventoryStore, scheduler) -> None:
    item = store.create_item("纸巾", 10, unit="包")

    adjustment = undo.adjust_quantity(item.id, -2)

    pending = undo.pending
    assert pending is not None
    assert pending.target_id == item.id
    assert pending.record_timestamp == adjustment.record.timestamp
    assert pending.description == "纸巾 -2包"
    assert len(scheduler.active) == 1
    assert scheduler.active[0].delay == 4.0


def test_undo_scenario_restores_previous_adjustment(
    undo: UndoController, store: InventoryStore, clock
) -> None:
    item = store.create_item("纸巾", 10, threshold=2)
    clock.advance(hours=1)
    undo.adjust_quantity(item.id, -3)
    clock.advance(hours=1)
    undo.adjust_quantity(item.id, -3)
    assert store.get_item(item.id).quantity == 4

    assert undo.undo() is True

    current = store.get_item(item.id)
    assert current.quantity == 7
    assert len(current.usage_history) == 1
    assert current.usage_history[0].new_quantity == 7
    assert undo.pending is None


def test_second_undo_is_noop(undo: UndoController, store: InventoryStore, clock) -> None:
    item = store.create_item("纸巾", 10)
    clock.advance(hours=1)
    undo.adjust_quantity(item.id, -1)
    clock.advance(hours=1)
    undo.adjust_quantity(item.id, -1)

    assert undo.undo() is True
    before = store.get_item(item.id)
    assert undo.undo() is False
    assert store.get_item(item.id) == before


def test_noop_adjustment_does_not_replace_pending(
    undo: UndoController, store: InventoryStore, clock
) -> None:
    empty = store.create_item("牛奶", 0)
    other = store.create_item("面包", 3)
    clock.advance(hours=1)
    undo.adjust_quantity(other.id, -1)
    pending = undo.pending

    assert undo.adjust_quantity(empty.id, -1) is None

    assert undo.pending is pending
    assert store.get_item(empty.id).usage_history == []


def test_undo_after_intervening_mutation_is_ignored(
    undo: UndoController, store: InventoryStore, clock
) -> None:
    item = store.create_item("洗手液", 3)
    clock.advance(hours=1)
    undo.adjust_quantity(item.id, -1)
    clock.advance(hours=1)
    undo.restock_item(item.id, 6)
    before = store.get_item(item.id)

    assert undo.undo() is False

    assert store.get_item(item.id) == before
    assert undo.pending is not None


def test_restock_is_not_undoable(undo: UndoController, store: InventoryStore, scheduler) -> None:
    item = store.create_item("洗手液", 1)

    adjustment = undo.restock_item(item.id, 5)

    assert adjustment is not None
    assert undo.pending is None
    assert scheduler.tasks == []


def test_undo_for_deleted_item_is_ignored(undo: UndoController, store: InventoryStore) -> None:
    item = store.create_item("洗手液", 3)
    undo.adjust_quantity(item.id, -1)
    store.delete_item(item.id)

    assert undo.undo() is False


def test_undo_without_pending_action(undo: UndoController) -> None:
    assert undo.undo() is False


def test_new_action_resets_expiry(undo: UndoController, store: InventoryStore, scheduler, clock) -> None:
    item = store.create_item("纸巾", 10)
    clock.advance(seconds=1)
    undo.adjust_quantity(item.id, -1)
    first_task = scheduler.tasks[0]
    clock.advance(seconds=1)
    undo.adjust_quantity(item.id, -1)

    assert first_task.cancelled
    assert len(scheduler.active) == 1

    first_task.fire()
    assert undo.pending is not None

    scheduler.active[0].fire()
    assert undo.pending is None
    assert undo.undo() is False
    assert store.get_item(item.id).quantity == 8


def test_undo_cancels_expiry_task(undo: UndoController, store: InventoryStore, scheduler) -> None:
    item = store.create_item("纸巾", 10)
    undo.adjust_quantity(item.id, 2)

    assert undo.undo() is True
    assert scheduler.active == []
    assert store.get_item(item.id).quantity == 10


def test_import_registers_sentinel_and_undo_discards(
    undo: UndoController, store: InventoryStore
) -> None:
    item = store.create_item("纸巾", 10)
    content = json.dumps(
        [{"id": item.id, "name": "纸巾", "quantity": 3}, {"id": "new", "name": "牙刷", "quantity": 2}]
    )

    assert undo.import_content(content) is True

    pending = undo.pending
    assert pending.target_id == IMPORT_SENTINEL_ID
    assert pending.is_import
    assert pending.description == "已导入 2 项物品"
    snapshot = export_json(store.items())

    assert undo.undo() is False

    assert undo.pending is None
    assert export_json(store.items()) == snapshot


def test_failed_import_keeps_state_and_pending(
    undo: UndoController, store: InventoryStore, clock
) -> None:
    item = store.create_item("纸巾", 10)
    clock.advance(hours=1)
    undo.adjust_quantity(item.id, -1)
    pending = undo.pending
    before = store.items()

    assert undo.import_content("not,a\nvalid,file") is False
    assert undo.import_content("[]") is False

    assert undo.pending is pending
    assert store.items() == before


def test_listeners_follow_slot_changes(undo: UndoController, store: InventoryStore, scheduler) -> None:
    seen = []
    undo.subscribe(seen.append)
    item = store.create_item("纸巾", 10)

    undo.adjust_quantity(item.id, -1)
    scheduler.active[0].fire()

    assert seen[0].target_id == item.id
    assert seen[1] is None


def test_dismiss_clears_slot(undo: UndoController, store: InventoryStore, scheduler) -> None:
    item = store.create_item("纸巾", 10)
    undo.adjust_quantity(item.id, -1)

    undo.dismiss()

    assert undo.pending is None
    assert scheduler.active == []
    assert store.get_item(item.id).quantity == 9


def test_threading_scheduler_expires_action(store: InventoryStore) -> None:
    controller = UndoController(store, timeout=0.01)
    expired = threading.Event()
    controller.subscribe(lambda action: expired.set() if action is None else None)
    item = store.create_item("纸巾", 10)

    controller.adjust_quantity(item.id, -1)

    assert expired.wait(2.0)
    assert controller.pending is None
    controller.close()
