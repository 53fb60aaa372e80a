import pytest

from aftercommit.dispatch.frame_buffer import PendingSet
from aftercommit.dispatch.registry import CallbackRegistry
from aftercommit.domain.callback import (
    ADHOC_GROUP,
    CallbackCondition,
    CallbackKind,
    CallbackTrigger,
    EntryStatus,
)
from aftercommit.domain.frame import FrameOutcome, TransactionDepthTracker
from aftercommit.exceptions import NoActiveTransaction

from tests.unit.fakes import Record, make_source


def _registry():
    tracker = TransactionDepthTracker()
    pending = PendingSet()
    return tracker, pending, CallbackRegistry(tracker, pending)


def _adhoc(registry, owner, trigger=CallbackTrigger.ON_COMMIT):
    return registry.register(owner, None, trigger, CallbackCondition.always(), lambda: None)


def test_register_without_frame_raises():
    _, _, registry = _registry()
    with pytest.raises(NoActiveTransaction) as info:
        _adhoc(registry, "car-1")
    assert info.value.code == "no_active_transaction"


def test_entries_bind_to_top_frame():
    tracker, pending, registry = _registry()
    outer = tracker.begin_frame(joinable=True)
    inner = tracker.begin_frame(joinable=True)
    entry = _adhoc(registry, "car-1")
    assert entry.registered_at_frame is inner
    assert pending.peek(inner) == [entry]
    assert pending.peek(outer) == []
    assert entry.group == ADHOC_GROUP


def test_sequence_is_per_entity_and_trigger():
    tracker, _, registry = _registry()
    tracker.begin_frame(joinable=True)
    a1 = _adhoc(registry, "a")
    a2 = _adhoc(registry, "a")
    b1 = _adhoc(registry, "b")
    a_rollback = _adhoc(registry, "a", CallbackTrigger.ON_ROLLBACK)
    assert (a1.sequence, a2.sequence, b1.sequence, a_rollback.sequence) == (1, 2, 1, 1)


def test_same_source_registers_once_per_frame():
    tracker, pending, registry = _registry()
    source = make_source("always", [])
    car = Record("car-1")

    tracker.begin_frame(joinable=True)
    first = registry.register_source(car, "car-1", CallbackKind.CREATE, source)
    again = registry.register_source(car, "car-1", CallbackKind.UPDATE, source)

    assert again is first
    assert len(pending) == 1


def test_savepoint_gets_its_own_entry_for_a_source_pending_outside():
    tracker, pending, registry = _registry()
    source = make_source("always", [])
    car = Record("car-1")

    outer = tracker.begin_frame(joinable=True)
    first = registry.register_source(car, "car-1", CallbackKind.CREATE, source)
    inner = tracker.begin_frame(joinable=False)
    second = registry.register_source(car, "car-1", CallbackKind.UPDATE, source)

    assert second is not first
    assert pending.peek(outer) == [first]
    assert pending.peek(inner) == [second]


def test_promote_keeps_the_parents_earlier_entry():
    tracker, pending, registry = _registry()
    always = make_source("always", [])
    update = make_source("update", [], on="update")
    car = Record("car-1")

    outer = tracker.begin_frame(joinable=True)
    first = registry.register_source(car, "car-1", CallbackKind.CREATE, always)
    inner = tracker.begin_frame(joinable=False)
    duplicate = registry.register_source(car, "car-1", CallbackKind.UPDATE, always)
    updated = registry.register_source(car, "car-1", CallbackKind.UPDATE, update)

    kept, duplicates = registry.promote(outer, pending.take(inner))

    assert kept == [updated]
    assert duplicates == [duplicate]
    tracker.end_frame(inner, FrameOutcome.COMMITTED)
    assert registry.register_source(car, "car-1", CallbackKind.UPDATE, always) is first
    assert registry.register_source(car, "car-1", CallbackKind.UPDATE, update) is updated


def test_same_source_on_two_entities_registers_twice():
    tracker, pending, registry = _registry()
    source = make_source("always", [])
    tracker.begin_frame(joinable=True)
    registry.register_source(Record("a"), "a", CallbackKind.CREATE, source)
    registry.register_source(Record("b"), "b", CallbackKind.CREATE, source)
    assert len(pending) == 2


def test_clear_discards_entries_for_entity():
    tracker, pending, registry = _registry()
    source = make_source("always", [])
    tracker.begin_frame(joinable=True)
    entry = registry.register_source(Record("a"), "a", CallbackKind.CREATE, source)
    other = _adhoc(registry, "b")

    removed = registry.clear("a")

    assert removed == [entry]
    assert entry.status is EntryStatus.DISCARDED
    assert list(pending.entries()) == [other]
    fresh = registry.register_source(Record("a"), "a", CallbackKind.CREATE, source)
    assert fresh is not entry and fresh.is_pending


def test_when_predicate_is_bound_to_entity():
    tracker, _, registry = _registry()
    source = make_source("flagged", [], when=lambda e: e.name == "yes")
    tracker.begin_frame(joinable=True)
    yes = registry.register_source(Record("yes"), "yes", CallbackKind.CREATE, source)
    no = registry.register_source(Record("no"), "no", CallbackKind.CREATE, source)
    assert yes.when() is True
    assert no.when() is False


def test_pending_for_lists_entries_of_one_owner():
    tracker, _, registry = _registry()
    tracker.begin_frame(joinable=True)
    a = _adhoc(registry, "a")
    _adhoc(registry, "b")
    assert registry.pending_for("a") == [a]
