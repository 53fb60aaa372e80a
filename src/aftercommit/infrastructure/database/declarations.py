"""
Callback Declarations
Decorators and the model mixin that turn methods into commit/rollback callbacks
"""
from __future__ import annotations

import operator
from typing import Any, Callable, Hashable, Iterable

from sqlalchemy import event
from sqlalchemy.orm import object_session

from aftercommit.domain.callback import (
    CallbackCondition,
    CallbackKind,
    CallbackSource,
    CallbackTrigger,
    next_group,
)
from aftercommit.infrastructure.database.transaction_manager import TransactionManager
from aftercommit.infrastructure.observability.logger import get_logger

logger = get_logger(__name__)

_MARKER = "__aftercommit_sources__"

KindSpec = CallbackKind | str | Iterable[CallbackKind | str] | None
Predicate = Callable[[Any], Any] | str | None


def _predicate(when: Predicate) -> Callable[[Any], Any] | None:
    if when is None or callable(when):
        return when
    if isinstance(when, str):
        return operator.attrgetter(when)
    raise TypeError(f"`when` must be a callable or an attribute name, got {type(when).__name__}")


def _declare(trigger: CallbackTrigger, func: Callable | None, on: KindSpec, when: Predicate):
    condition = CallbackCondition.parse(on)
    predicate = _predicate(when)

    def decorate(fn: Callable) -> Callable:
        source = CallbackSource(
            group=next_group(),
            name=fn.__qualname__,
            trigger=trigger,
            condition=condition,
            handler=fn,
            when=predicate,
        )
        setattr(fn, _MARKER, getattr(fn, _MARKER, ()) + (source,))
        return fn

    if func is not None:
        return decorate(func)
    return decorate


def after_commit(func: Callable | None = None, *, on: KindSpec = None, when: Predicate = None):
    """
    Run a model method after the transaction that changed the instance commits.

    Works bare or with arguments:

        class Car(CommitCallbacksMixin, Base):
            @after_commit
            def refresh_cache(self): ...

            @after_commit(on="create", when="notify_owner")
            def send_welcome(self): ...

    Args:
        on: Change kind(s) to fire for (create, update, destroy); omit for all
        when: Callable taking the instance, or an attribute name, checked
            right before the callback runs
    """
    return _declare(CallbackTrigger.ON_COMMIT, func, on, when)


def after_rollback(func: Callable | None = None, *, on: KindSpec = None, when: Predicate = None):
    """Run a model method after the transaction that changed the instance rolls back."""
    return _declare(CallbackTrigger.ON_ROLLBACK, func, on, when)


# Class -> declared sources (MRO-collected, declaration order)
_sources_cache: dict[type, tuple[CallbackSource, ...]] = {}


def declared_sources(cls: type) -> tuple[CallbackSource, ...]:
    cached = _sources_cache.get(cls)
    if cached is not None:
        return cached

    seen: set[str] = set()
    sources: list[CallbackSource] = []
    for klass in cls.__mro__:
        for name, value in vars(klass).items():
            if name in seen:
                continue
            seen.add(name)
            sources.extend(getattr(value, _MARKER, ()))

    result = tuple(sorted(sources, key=lambda s: s.group))
    _sources_cache[cls] = result
    return result


class CommitCallbacksMixin:
    """
    Mixin for mapped classes that declare commit/rollback callbacks.

    Inserts, updates and deletes flushed through a session managed by a
    TransactionManager are recorded as create/update/destroy changes.
    Override validation_errors() to stop TransactionManager.save before
    any transaction is opened.
    """

    def callback_identity(self) -> Hashable:
        return f"{type(self).__name__}#{id(self):x}"

    @classmethod
    def callback_sources(cls) -> tuple[CallbackSource, ...]:
        return declared_sources(cls)

    def validation_errors(self) -> list[str]:
        return []


# ---------------------------------------------------------------------------
# Change capture
# ---------------------------------------------------------------------------
def _record(target: Any, kind: CallbackKind) -> None:
    session = object_session(target)
    manager = TransactionManager.lookup(session) if session is not None else None
    if manager is None:
        logger.debug(
            "Change flushed by an unmanaged session, callbacks skipped",
            entity=type(target).__name__,
            kind=kind.value,
        )
        return
    manager.record_change(target, kind)


@event.listens_for(CommitCallbacksMixin, "after_insert", propagate=True)
def _after_insert(mapper, connection, target) -> None:
    _record(target, CallbackKind.CREATE)


@event.listens_for(CommitCallbacksMixin, "after_update", propagate=True)
def _after_update(mapper, connection, target) -> None:
    _record(target, CallbackKind.UPDATE)


@event.listens_for(CommitCallbacksMixin, "after_delete", propagate=True)
def _after_delete(mapper, connection, target) -> None:
    _record(target, CallbackKind.DESTROY)
