"""
Callback Registry
Turns entity changes into pending CallbackEntry objects on the current frame
"""
from __future__ import annotations

from collections import defaultdict
from typing import Any, Callable, Hashable, Iterable

from aftercommit.dispatch.frame_buffer import PendingSet
from aftercommit.domain.callback import (
    ADHOC_GROUP,
    CallbackCondition,
    CallbackEntry,
    CallbackKind,
    CallbackSource,
    CallbackTrigger,
    EntryStatus,
)
from aftercommit.domain.frame import TransactionDepthTracker, TransactionFrame
from aftercommit.exceptions import NoActiveTransaction
from aftercommit.infrastructure.observability.logger import get_logger

logger = get_logger(__name__)

# (frame id, entity, source group, trigger)
_DedupKey = tuple[int, Hashable, int, CallbackTrigger]


class CallbackRegistry:
    """
    Registers callbacks against the tracker's top frame.

    Sequence numbers are allocated per (entity, trigger) pair. A declared
    source that is already pending for the same entity and trigger in the
    same frame is not registered a second time, so saving a record twice in
    one transaction still fires its callbacks once. A savepoint gets its own
    entries even when an enclosing frame already holds the same source, so
    its rollback callbacks fire if it rolls back; on commit, `promote` folds
    them into the parent.
    """

    def __init__(self, tracker: TransactionDepthTracker, pending: PendingSet) -> None:
        self._tracker = tracker
        self._pending = pending
        self._sequences: dict[tuple[Hashable, CallbackTrigger], int] = defaultdict(int)
        self._live: dict[_DedupKey, CallbackEntry] = {}
        self._keys: dict[int, _DedupKey] = {}

    def register(
        self,
        entity_id: Hashable,
        kind: CallbackKind | None,
        trigger: CallbackTrigger,
        condition: CallbackCondition,
        action: Callable[[], Any],
        *,
        source: CallbackSource | None = None,
        when: Callable[[], bool] | None = None,
        name: str | None = None,
    ) -> CallbackEntry:
        """
        Create a pending entry on the current top frame.

        Args:
            entity_id: Stable identity of the owning entity
            kind: Change that caused the registration (None for ad-hoc callbacks)
            trigger: ON_COMMIT or ON_ROLLBACK
            condition: The declaring source's kind filter
            action: Zero-argument callable run on delivery
            source: Declaring source; ad-hoc registrations pass None
            when: Dispatch-time predicate
            name: Label for logs, defaults to the source name

        Returns:
            The new entry, or the already pending entry for the same source

        Raises:
            NoActiveTransaction: no frame is open
        """
        frame = self._tracker.current_frame()
        if frame is None:
            raise NoActiveTransaction(
                "callbacks can only be registered inside a transaction",
                details={"entity": str(entity_id), "trigger": trigger.value},
            )

        group = source.group if source is not None else ADHOC_GROUP
        key = (frame.frame_id, entity_id, group, trigger)
        if source is not None:
            existing = self._live.get(key)
            if existing is not None and existing.is_pending:
                return existing

        seq_key = (entity_id, trigger)
        self._sequences[seq_key] += 1
        entry = CallbackEntry(
            owner_entity_id=entity_id,
            kind=kind,
            trigger=trigger,
            condition=condition,
            registered_at_frame=frame,
            sequence=self._sequences[seq_key],
            group=group,
            action=action,
            name=name or (source.name if source is not None else getattr(action, "__name__", "callback")),
            when=when,
        )
        self._pending.append(frame, entry)
        if source is not None:
            self._live[key] = entry
            self._keys[id(entry)] = key

        logger.debug("Callback registered", **entry.describe())
        return entry

    def promote(self, parent: TransactionFrame, entries: list[CallbackEntry]) -> tuple[list[CallbackEntry], list[CallbackEntry]]:
        """
        Re-key a committed child frame's entries onto its parent.

        An entry whose source is already pending in the parent for the same
        entity and trigger is a duplicate; the parent's earlier entry wins.

        Returns:
            (entries to append to the parent, duplicates to discard)
        """
        kept: list[CallbackEntry] = []
        duplicates: list[CallbackEntry] = []
        for entry in entries:
            key = self._keys.get(id(entry))
            if key is None:
                kept.append(entry)
                continue
            parent_key = (parent.frame_id,) + key[1:]
            existing = self._live.get(parent_key)
            if existing is not None and existing is not entry and existing.is_pending:
                duplicates.append(entry)
                continue
            if self._live.get(key) is entry:
                del self._live[key]
            self._live[parent_key] = entry
            self._keys[id(entry)] = parent_key
            kept.append(entry)
        return kept, duplicates

    def register_source(self, entity: Any, entity_id: Hashable, kind: CallbackKind, source: CallbackSource) -> CallbackEntry:
        when = None
        if source.when is not None:
            predicate = source.when
            when = lambda: bool(predicate(entity))  # noqa: E731
        return self.register(
            entity_id,
            kind,
            source.trigger,
            source.condition,
            source.bind(entity),
            source=source,
            when=when,
        )

    def clear(self, entity_id: Hashable) -> list[CallbackEntry]:
        """
        Discard every unfired entry owned by an entity.

        Returns:
            The discarded entries
        """
        removed = self._pending.remove_owner(entity_id)
        for entry in removed:
            entry.status = EntryStatus.DISCARDED
        self.forget(removed)
        if removed:
            logger.debug("Callbacks cleared", entity=str(entity_id), count=len(removed))
        return removed

    def forget(self, entries: Iterable[CallbackEntry]) -> None:
        """Drop settled entries from the dedup index."""
        for entry in entries:
            key = self._keys.pop(id(entry), None)
            if key is not None and self._live.get(key) is entry:
                del self._live[key]
        if self._pending.is_empty():
            self._sequences.clear()

    def pending_for(self, entity_id: Hashable) -> list[CallbackEntry]:
        return [e for e in self._pending.entries() if e.owner_entity_id == entity_id]
