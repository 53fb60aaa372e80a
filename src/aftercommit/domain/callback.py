"""
Callback Entries and Sources
What gets registered, by whom, and in which order it fires
"""
from __future__ import annotations

import functools
import itertools
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Hashable, Iterable, Protocol, runtime_checkable

from aftercommit.domain.frame import TransactionFrame


class CallbackKind(str, Enum):
    """Entity lifecycle change that caused a registration."""
    CREATE = "create"
    UPDATE = "update"
    DESTROY = "destroy"


class CallbackTrigger(str, Enum):
    ON_COMMIT = "on_commit"
    ON_ROLLBACK = "on_rollback"


class EntryStatus(str, Enum):
    """Consumption state of a CallbackEntry. Only PENDING entries may be delivered."""
    PENDING = "pending"
    CONSUMED = "consumed"
    FAILED = "failed"
    SKIPPED = "skipped"
    DISCARDED = "discarded"


def _coerce_kind(value: CallbackKind | str) -> CallbackKind:
    if isinstance(value, CallbackKind):
        return value
    try:
        return CallbackKind(value)
    except ValueError:
        raise ValueError(
            f"unknown callback kind {value!r}, expected one of {[k.value for k in CallbackKind]}"
        ) from None


@dataclass(frozen=True)
class CallbackCondition:
    """
    Which change kinds a source fires for.

    An empty `kinds` set means `always`.
    """

    kinds: frozenset[CallbackKind] = frozenset()

    @classmethod
    def always(cls) -> CallbackCondition:
        return cls()

    @classmethod
    def parse(cls, on: CallbackKind | str | Iterable[CallbackKind | str] | None) -> CallbackCondition:
        if on is None:
            return cls()
        if isinstance(on, (str, CallbackKind)):
            on = [on]
        kinds = frozenset(_coerce_kind(k) for k in on)
        if not kinds:
            raise ValueError("`on` must name at least one kind; omit it to fire always")
        return cls(kinds)

    @property
    def is_always(self) -> bool:
        return not self.kinds

    def matches(self, kind: CallbackKind) -> bool:
        return self.is_always or kind in self.kinds

    def __str__(self) -> str:
        if self.is_always:
            return "always"
        return ",".join(sorted(k.value for k in self.kinds))


# Process-wide source ordering. Instance declarations and observers draw
# from the same counter so dispatch order across both is well defined.
_groups = itertools.count(1)

ADHOC_GROUP = 0


def next_group() -> int:
    return next(_groups)


@dataclass(frozen=True)
class CallbackSource:
    """
    One callback declaration: an instance method decorated with
    after_commit/after_rollback, or an observer method.

    Attributes:
        group: Declaration order; higher fires first within a batch
        name: Readable name used in logs
        trigger: ON_COMMIT or ON_ROLLBACK
        condition: Kinds the source applies to
        handler: Callable taking the entity
        when: Optional predicate on the entity, checked at dispatch time
        origin: "instance", "observer" or "adhoc"
    """

    group: int
    name: str
    trigger: CallbackTrigger
    condition: CallbackCondition
    handler: Callable[[Any], Any]
    when: Callable[[Any], bool] | None = None
    origin: str = "instance"

    def applies_to(self, kind: CallbackKind) -> bool:
        return self.condition.matches(kind)

    def bind(self, entity: Any) -> Callable[[], Any]:
        return functools.partial(self.handler, entity)


@dataclass(eq=False)
class CallbackEntry:
    """
    A pending callback bound to one entity and the frame it was registered in.

    Identity fields are fixed at creation; only `status` moves, and only
    forward from PENDING.
    """

    owner_entity_id: Hashable
    kind: CallbackKind | None
    trigger: CallbackTrigger
    condition: CallbackCondition
    registered_at_frame: TransactionFrame
    sequence: int
    group: int
    action: Callable[[], Any]
    name: str = "callback"
    when: Callable[[], bool] | None = None
    status: EntryStatus = field(default=EntryStatus.PENDING)

    @property
    def dispatch_key(self) -> tuple[int, int]:
        return (-self.group, self.sequence)

    @property
    def is_pending(self) -> bool:
        return self.status is EntryStatus.PENDING

    def describe(self) -> dict[str, Any]:
        return {
            "callback": self.name,
            "entity": str(self.owner_entity_id),
            "kind": self.kind.value if self.kind else None,
            "trigger": self.trigger.value,
            "sequence": self.sequence,
            "group": self.group,
            "frame": self.registered_at_frame.frame_id,
        }


@runtime_checkable
class CallbackTarget(Protocol):
    """
    Anything that can own callbacks: a stable identity plus its declared sources.
    """

    def callback_identity(self) -> Hashable:
        ...

    @classmethod
    def callback_sources(cls) -> tuple[CallbackSource, ...]:
        ...


def entity_identity(entity: Any) -> Hashable:
    """Identity used to key registrations for an entity."""
    if isinstance(entity, CallbackTarget):
        return entity.callback_identity()
    return f"{type(entity).__name__}#{id(entity):x}"
