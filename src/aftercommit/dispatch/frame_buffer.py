"""
Frame Buffer
Holds pending callbacks per frame and settles them when the frame exits
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Hashable, Iterator

from aftercommit.domain.callback import CallbackEntry, CallbackTrigger, EntryStatus
from aftercommit.domain.frame import FrameOutcome, TransactionFrame
from aftercommit.infrastructure.observability import metrics
from aftercommit.infrastructure.observability.logger import get_logger

if TYPE_CHECKING:
    from aftercommit.dispatch.dispatcher import Dispatcher
    from aftercommit.dispatch.emulation import EmulationController
    from aftercommit.dispatch.registry import CallbackRegistry

logger = get_logger(__name__)


class PendingSet:
    """Frame -> ordered pending entries. One list per live frame."""

    def __init__(self) -> None:
        self._by_frame: dict[int, list[CallbackEntry]] = {}

    def open(self, frame: TransactionFrame) -> None:
        self._by_frame[frame.frame_id] = []

    def append(self, frame: TransactionFrame, entry: CallbackEntry) -> None:
        self._by_frame.setdefault(frame.frame_id, []).append(entry)

    def extend(self, frame: TransactionFrame, entries: list[CallbackEntry]) -> None:
        self._by_frame.setdefault(frame.frame_id, []).extend(entries)

    def take(self, frame: TransactionFrame) -> list[CallbackEntry]:
        return self._by_frame.pop(frame.frame_id, [])

    def peek(self, frame: TransactionFrame) -> list[CallbackEntry]:
        return list(self._by_frame.get(frame.frame_id, []))

    def remove_owner(self, entity_id: Hashable) -> list[CallbackEntry]:
        removed: list[CallbackEntry] = []
        for frame_id, entries in self._by_frame.items():
            keep = []
            for entry in entries:
                (removed if entry.owner_entity_id == entity_id else keep).append(entry)
            self._by_frame[frame_id] = keep
        return removed

    def entries(self) -> Iterator[CallbackEntry]:
        for entries in self._by_frame.values():
            yield from entries

    def is_empty(self) -> bool:
        return not any(self._by_frame.values())

    def __len__(self) -> int:
        return sum(len(entries) for entries in self._by_frame.values())


class FrameBuffer:
    """
    Decides what happens to a frame's entries when the frame exits.

    - committed, nested: append to the parent frame, order preserved,
      dropping sources the parent already holds for the same entity
    - committed, outermost (or directly inside the harness frame while
      emulation is on): deliver on_commit entries, drop on_rollback ones
    - committed directly inside the harness frame with emulation off:
      drop everything, nothing from that frame ever fires
    - rolled back: deliver on_rollback entries, drop on_commit ones
    - harness frame rolled back: deliver on_commit entries when emulation
      is on, otherwise drop everything

    The tracker has already popped the frame when on_frame_exit runs, so
    callbacks execute outside the transaction that produced them.
    """

    def __init__(
        self,
        pending: PendingSet,
        registry: CallbackRegistry,
        dispatcher: Dispatcher,
        emulation: EmulationController,
    ) -> None:
        self._pending = pending
        self._registry = registry
        self._dispatcher = dispatcher
        self._emulation = emulation

    def on_frame_begin(self, frame: TransactionFrame) -> None:
        self._pending.open(frame)

    def on_frame_exit(self, frame: TransactionFrame, outcome: FrameOutcome) -> None:
        entries = self._pending.take(frame)
        parent = frame.parent

        if frame.harness:
            if self._emulation.enabled():
                self._settle(frame, entries, CallbackTrigger.ON_COMMIT)
            else:
                self._discard(entries, reason="emulation_disabled")
            return

        if outcome is FrameOutcome.ROLLED_BACK:
            self._settle(frame, entries, CallbackTrigger.ON_ROLLBACK)
            return

        if parent is None:
            self._settle(frame, entries, CallbackTrigger.ON_COMMIT)
            return

        if parent.harness:
            if self._emulation.enabled():
                self._settle(frame, entries, CallbackTrigger.ON_COMMIT)
            else:
                self._discard(entries, reason="emulation_disabled")
            return

        kept, duplicates = self._registry.promote(parent, entries)
        self._discard(duplicates, reason="duplicate")
        self._pending.extend(parent, kept)
        if kept:
            logger.debug(
                "Callbacks promoted to parent frame",
                frame_id=frame.frame_id,
                parent_id=parent.frame_id,
                count=len(kept),
            )

    def _settle(self, frame: TransactionFrame, entries: list[CallbackEntry], trigger: CallbackTrigger) -> None:
        deliver = [e for e in entries if e.trigger is trigger]
        dropped = [e for e in entries if e.trigger is not trigger]
        self._discard(dropped, reason=f"not_{trigger.value}")
        self._registry.forget(deliver)
        if deliver:
            logger.debug(
                "Frame settled",
                frame_id=frame.frame_id,
                trigger=trigger.value,
                emulated=frame.harness or (frame.parent is not None and frame.parent.harness),
                count=len(deliver),
            )
            self._dispatcher.deliver(deliver, trigger)

    def _discard(self, entries: list[CallbackEntry], *, reason: str) -> None:
        if not entries:
            return
        for entry in entries:
            entry.status = EntryStatus.DISCARDED
        self._registry.forget(entries)
        metrics.get_metrics().increment_counter(metrics.DISCARDED, len(entries), reason=reason)
        logger.debug("Callbacks discarded", reason=reason, count=len(entries))
