"""
SQLAlchemy Transaction Manager
Runs session transactions and reports every scope boundary to the callback dispatcher
"""
from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Callable, Iterator

from sqlalchemy import inspect
from sqlalchemy.orm import Session, SessionTransaction, object_session

from aftercommit.dispatch.callbacks import TransactionCallbacks
from aftercommit.domain.callback import CallbackEntry, CallbackKind
from aftercommit.domain.frame import TransactionFrame
from aftercommit.exceptions import CallbackDeliveryFailure, Rollback, ValidationAbort
from aftercommit.infrastructure.observability.logger import get_logger

logger = get_logger(__name__)

_INFO_KEY = "aftercommit.manager"


class TransactionManager:
    """
    Transaction scopes for one SQLAlchemy session.

    Every scope opened through `transaction()` is a frame on the callback
    tracker. Scopes that join an open frame do not touch the database
    transaction; the others map to the session's root transaction or to a
    SAVEPOINT when an application scope is already open.

    Attributes:
        session: Session the manager drives
        callbacks: Per-session callback state (TransactionListener)

    Usage:
        manager = TransactionManager.of(session)
        with manager.transaction():
            manager.save(car)
        # car's after_commit callbacks have run here
    """

    def __init__(self, session: Session, callbacks: TransactionCallbacks | None = None) -> None:
        self.session = session
        self.callbacks = callbacks or TransactionCallbacks()
        session.info[_INFO_KEY] = self

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------
    @classmethod
    def lookup(cls, session: Session) -> TransactionManager | None:
        return session.info.get(_INFO_KEY)

    @classmethod
    def of(cls, session_or_entity: Any) -> TransactionManager:
        """
        Manager for a session, or for the session an entity belongs to.

        A session without a manager gets one.

        Raises:
            ValueError: the entity is not attached to a session
        """
        if isinstance(session_or_entity, Session):
            session = session_or_entity
        else:
            session = object_session(session_or_entity)
            if session is None:
                raise ValueError(f"{type(session_or_entity).__name__} is not attached to a session")
        return cls.lookup(session) or cls(session)

    # ------------------------------------------------------------------
    # Scopes
    # ------------------------------------------------------------------
    @contextmanager
    def transaction(self, requires_new: bool = False, joinable: bool = True) -> Iterator[TransactionManager]:
        """
        Open (or join) a transaction scope.

        Args:
            requires_new: Always open a new frame, as a SAVEPOINT when nested
            joinable: Whether inner scopes may join this one

        Raising Rollback inside the block rolls back the scope that owns the
        frame and is swallowed there. Any other exception rolls back and
        propagates unchanged.
        """
        current = self.callbacks.tracker.current_frame()
        if current is not None and current.joinable and not requires_new:
            yield self
            return

        db_transaction = self._begin_db_transaction()
        frame = self.callbacks.transaction_began(joinable=joinable)
        try:
            yield self
            db_transaction.commit()
        except Rollback:
            self._rollback_db_transaction(db_transaction)
            self.callbacks.transaction_rolled_back(frame)
            logger.debug("Transaction rolled back on request", frame_id=frame.frame_id)
            return
        except BaseException as exc:
            self._rollback_db_transaction(db_transaction)
            try:
                self.callbacks.transaction_rolled_back(frame)
            except CallbackDeliveryFailure as failure:
                # The caller's own error takes precedence.
                logger.error(
                    "Rollback callback failed while an error propagated",
                    frame_id=frame.frame_id,
                    error=type(exc).__name__,
                    reason=str(failure),
                    exc_info=failure,
                )
            raise

        self.callbacks.transaction_committed(frame)

    def _begin_db_transaction(self) -> SessionTransaction:
        if self.callbacks.open_transactions > 0:
            return self.session.begin_nested()
        if self.session.in_transaction():
            return self.session.get_transaction()
        return self.session.begin()

    def _rollback_db_transaction(self, db_transaction: SessionTransaction) -> None:
        # A failed flush leaves the transaction inactive but still current.
        current = (self.session.get_nested_transaction(), self.session.get_transaction())
        if db_transaction.is_active or db_transaction in current:
            db_transaction.rollback()

    # ------------------------------------------------------------------
    # Entity operations
    # ------------------------------------------------------------------
    def save(self, entity: Any) -> Any:
        """
        Insert or update an entity inside a transaction.

        Raises:
            ValidationAbort: entity.validation_errors() returned errors; no
                transaction is opened and pending callbacks for the entity
                are dropped
        """
        validate = getattr(entity, "validation_errors", None)
        errors = list(validate()) if validate is not None else []
        if errors:
            self.callbacks.discard(entity)
            raise ValidationAbort(
                f"{type(entity).__name__} is invalid",
                errors=errors,
            )

        with self.transaction():
            state = inspect(entity)
            is_new = state.transient or state.pending
            self.session.add(entity)
            if not is_new:
                # Clean instances are skipped by the flush but still count as updated.
                self.record_change(entity, CallbackKind.UPDATE)
            self.session.flush()
        return entity

    def update(self, entity: Any, **values: Any) -> Any:
        for name, value in values.items():
            setattr(entity, name, value)
        return self.save(entity)

    def destroy(self, entity: Any) -> Any:
        with self.transaction():
            self.session.delete(entity)
            self.session.flush()
        return entity

    def record_change(self, entity: Any, kind: CallbackKind) -> list[CallbackEntry]:
        return self.callbacks.record_change(entity, kind)

    # ------------------------------------------------------------------
    # Ad-hoc callbacks
    # ------------------------------------------------------------------
    def on_commit(self, action: Callable[[], Any]) -> CallbackEntry:
        return self.callbacks.on_commit(action)

    def on_rollback(self, action: Callable[[], Any]) -> CallbackEntry:
        return self.callbacks.on_rollback(action)

    # ------------------------------------------------------------------
    # Harness frame
    # ------------------------------------------------------------------
    def begin_harness(self) -> TransactionFrame:
        """Open the frame standing for a test runner's outer transaction."""
        frame = self.callbacks.transaction_began(joinable=False, harness=True)
        logger.debug("Harness frame opened", frame_id=frame.frame_id)
        return frame

    def end_harness(self, frame: TransactionFrame) -> None:
        """Close the harness frame: emulated commit when enabled, otherwise drop everything."""
        self.callbacks.transaction_rolled_back(frame)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------
    @property
    def open_transactions(self) -> int:
        return self.callbacks.open_transactions

    @property
    def depth(self) -> int:
        return self.callbacks.depth
