"""
Observer Bridge
Process-wide observers that receive commit and rollback callbacks per entity category
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable

from aftercommit.domain.callback import (
    CallbackCondition,
    CallbackKind,
    CallbackSource,
    CallbackTrigger,
    next_group,
)
from aftercommit.infrastructure.observability.logger import get_logger

logger = get_logger(__name__)

_HOOKS = (
    ("after_commit", CallbackTrigger.ON_COMMIT),
    ("after_rollback", CallbackTrigger.ON_ROLLBACK),
)


class Observer:
    """
    Base class for observers.

    Subclasses set `observed` to the entity classes they watch and define
    `after_commit(entity)` and/or `after_rollback(entity)`. `on` limits the
    change kinds, like the `on=` argument of the instance decorators.

    Example:
        class CarObserver(Observer):
            observed = (Car,)

            def after_commit(self, car):
                cache.invalidate(car.id)
    """

    observed: tuple[type, ...] = ()
    on: CallbackKind | str | Iterable[CallbackKind | str] | None = None


@dataclass(frozen=True)
class _Registration:
    observer: Any
    categories: tuple[type, ...]
    sources: tuple[CallbackSource, ...]


class ObserverBridge:
    """
    Registry of observers keyed by entity category.

    Each observer hook becomes a CallbackSource whose group is drawn from the
    same counter as instance declarations, so an observer registered after a
    model class was defined fires before that model's own callbacks.
    """

    def __init__(self) -> None:
        self._registrations: list[_Registration] = []

    def observe(self, observer: Any, categories: Iterable[type] | None = None) -> tuple[CallbackSource, ...]:
        """
        Register an observer.

        Args:
            observer: Object with after_commit and/or after_rollback methods
            categories: Entity classes to watch (defaults to observer.observed)

        Returns:
            The callback sources created for the observer
        """
        cats = tuple(categories if categories is not None else getattr(observer, "observed", ()))
        if not cats:
            raise ValueError(f"{type(observer).__name__} observes no entity classes")

        condition = CallbackCondition.parse(getattr(observer, "on", None))
        sources = []
        for method_name, trigger in _HOOKS:
            handler = getattr(observer, method_name, None)
            if not callable(handler):
                continue
            sources.append(
                CallbackSource(
                    group=next_group(),
                    name=f"{type(observer).__name__}.{method_name}",
                    trigger=trigger,
                    condition=condition,
                    handler=handler,
                    origin="observer",
                )
            )
        if not sources:
            raise ValueError(f"{type(observer).__name__} defines neither after_commit nor after_rollback")

        self._registrations.append(_Registration(observer, cats, tuple(sources)))
        logger.debug(
            "Observer registered",
            observer=type(observer).__name__,
            categories=[c.__name__ for c in cats],
            hooks=[s.name for s in sources],
        )
        return tuple(sources)

    def remove(self, observer: Any) -> None:
        self._registrations = [r for r in self._registrations if r.observer is not observer]

    def clear(self) -> None:
        self._registrations.clear()

    def sources_for(self, entity: Any) -> list[CallbackSource]:
        sources: list[CallbackSource] = []
        for registration in self._registrations:
            if isinstance(entity, registration.categories):
                sources.extend(registration.sources)
        return sources


# Global bridge instance
_bridge: ObserverBridge | None = None


def get_observer_bridge() -> ObserverBridge:
    global _bridge
    if _bridge is None:
        _bridge = ObserverBridge()
    return _bridge


def observe(observer: Any, categories: Iterable[type] | None = None) -> tuple[CallbackSource, ...]:
    """Register an observer on the process-wide bridge."""
    return get_observer_bridge().observe(observer, categories)
