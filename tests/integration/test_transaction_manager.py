import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from aftercommit import CallbackDeliveryFailure, Rollback, TransactionManager

from tests.models import Car, CarObserver


def test_rollback_in_joined_block_rolls_back_the_owning_block(manager):
    reached = []
    with manager.transaction():
        manager.save(Car())
        with manager.transaction():
            raise Rollback
        reached.append(True)
    assert reached == []
    assert Car.called == []
    assert manager.open_transactions == 0


def test_savepoint_rollback_keeps_outer_work(manager):
    with manager.transaction():
        manager.save(Car(label="outer"))
        with manager.transaction(requires_new=True):
            manager.save(Car(label="inner"))
            raise Rollback
        labels = manager.session.scalars(
            select(Car.label).where(Car.label.in_(["outer", "inner"]))
        ).all()
        assert labels == ["outer"]
        assert Car.called == []
    assert Car.called == ["create", "always"]


def test_non_joinable_scope_forces_a_savepoint(manager):
    with manager.transaction(joinable=False):
        with manager.transaction():
            assert manager.open_transactions == 2
            manager.save(Car())
        assert Car.called == []
    assert Car.called == ["create", "always"]


def test_errors_propagate_unchanged_and_restore_depth(manager):
    depth = manager.depth
    with pytest.raises(KeyError):
        with manager.transaction():
            manager.save(Car())
            raise KeyError("boom")
    assert manager.depth == depth
    assert Car.called == []


def test_flush_failure_rolls_back_and_manager_recovers(manager):
    first = manager.save(Car())
    manager.session.expunge(first)
    depth = manager.depth
    with pytest.raises(IntegrityError):
        manager.save(Car(id=first.id))
    assert manager.depth == depth

    Car.called.clear()
    manager.save(Car())
    assert Car.called == ["create", "always"]


def test_adhoc_callbacks_follow_the_transaction_outcome(manager):
    log = []
    with manager.transaction():
        manager.on_commit(lambda: log.append("commit"))
        manager.on_rollback(lambda: log.append("rollback"))
    assert log == ["commit"]

    log.clear()
    with manager.transaction():
        manager.on_commit(lambda: log.append("commit"))
        manager.on_rollback(lambda: log.append("rollback"))
        raise Rollback
    assert log == ["rollback"]


def test_adhoc_callbacks_fire_after_earlier_changed_entities(manager):
    with manager.transaction():
        manager.save(Car())
        manager.on_commit(lambda: Car.called.append("adhoc"))
    assert Car.called == ["create", "always", "adhoc"]


def test_manager_lookup(manager):
    car = manager.save(Car())
    assert TransactionManager.of(car) is manager
    assert TransactionManager.of(manager.session) is manager
    with pytest.raises(ValueError):
        TransactionManager.of(Car())


def _failing_hook():
    raise ValueError("rollback hook failed")


def test_rollback_callback_failure_keeps_the_original_error(manager):
    with pytest.raises(RuntimeError, match="original"):
        with manager.transaction():
            manager.on_rollback(_failing_hook)
            raise RuntimeError("original")
    assert manager.open_transactions == 0


def test_rollback_callback_failure_surfaces_on_requested_rollback(manager):
    with pytest.raises(CallbackDeliveryFailure) as info:
        with manager.transaction():
            manager.on_rollback(_failing_hook)
            raise Rollback
    assert isinstance(info.value.__cause__, ValueError)
    assert manager.open_transactions == 0


def test_savepoint_rollback_fires_for_entity_saved_by_the_outer_block(manager):
    CarObserver.recording = True
    with manager.transaction():
        car = manager.save(Car())
        with manager.transaction(requires_new=True):
            manager.save(car)
            raise Rollback
        assert Car.called == ["observed_after_rollback"]
    assert Car.called == ["observed_after_rollback", "observed_after_commit", "create", "always"]
