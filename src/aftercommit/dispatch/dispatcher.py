"""
Dispatcher
Exactly-once delivery of settled callbacks in dispatch order
"""
from __future__ import annotations

from collections import deque
from typing import Hashable, Iterable

from aftercommit.domain.callback import CallbackEntry, CallbackTrigger, EntryStatus
from aftercommit.exceptions import CallbackDeliveryFailure, DoubleDeliveryAttempt
from aftercommit.infrastructure.observability import metrics
from aftercommit.infrastructure.observability.logger import get_logger

logger = get_logger(__name__)


def dispatch_order(entries: Iterable[CallbackEntry]) -> list[CallbackEntry]:
    """
    Order a batch for delivery.

    Owners keep their first-appearance order. Within one owner, the most
    recently declared source fires first; entries of the same source fire
    in ascending sequence.
    """
    by_owner: dict[Hashable, list[CallbackEntry]] = {}
    for entry in entries:
        by_owner.setdefault(entry.owner_entity_id, []).append(entry)

    ordered: list[CallbackEntry] = []
    for owner_entries in by_owner.values():
        ordered.extend(sorted(owner_entries, key=lambda e: e.dispatch_key))
    return ordered


class Dispatcher:
    """
    Runs callback actions, each at most once.

    A delivery requested while another one is running (a callback that saves
    a record and commits again) is queued and drained by the running pass
    once the current batch finishes, so nested work goes through the same
    pipeline without interleaving with the batch that spawned it.

    Attributes:
        raise_in_callbacks: Propagate the first failing action (True) or log
            it and keep delivering (False)
    """

    def __init__(self, raise_in_callbacks: bool = True) -> None:
        self.raise_in_callbacks = raise_in_callbacks
        self._queue: deque[tuple[CallbackTrigger, list[CallbackEntry]]] = deque()
        self._delivering = False

    @property
    def delivering(self) -> bool:
        return self._delivering

    def deliver(self, entries: Iterable[CallbackEntry], trigger: CallbackTrigger) -> None:
        """
        Deliver a settled batch.

        Args:
            entries: Entries whose trigger matches `trigger`
            trigger: ON_COMMIT or ON_ROLLBACK

        Raises:
            CallbackDeliveryFailure: an action raised and raise_in_callbacks is set
            DoubleDeliveryAttempt: an entry had already been consumed
        """
        batch = dispatch_order(e for e in entries if e.trigger is trigger)
        if not batch:
            return
        self._queue.append((trigger, batch))
        if self._delivering:
            logger.debug("Delivery queued behind running pass", trigger=trigger.value, count=len(batch))
            return

        self._delivering = True
        try:
            while self._queue:
                current_trigger, current = self._queue.popleft()
                self._run_batch(current_trigger, current)
        finally:
            self._delivering = False
            self._queue.clear()

    def _run_batch(self, trigger: CallbackTrigger, batch: list[CallbackEntry]) -> None:
        collector = metrics.get_metrics()
        for index, entry in enumerate(batch):
            if not entry.is_pending:
                raise DoubleDeliveryAttempt(
                    "callback entry delivered twice",
                    details={**entry.describe(), "status": entry.status.value},
                )
            entry.status = EntryStatus.CONSUMED

            try:
                if entry.when is not None and not entry.when():
                    entry.status = EntryStatus.SKIPPED
                    collector.increment_counter(metrics.SKIPPED, trigger=trigger.value)
                    continue
                entry.action()
            except Exception as exc:
                entry.status = EntryStatus.FAILED
                collector.increment_counter(metrics.FAILED, trigger=trigger.value)
                logger.error("Callback failed", error=str(exc), exc_info=True, **entry.describe())
                if not self.raise_in_callbacks:
                    continue
                abandoned = self._abandon(batch[index + 1:])
                raise CallbackDeliveryFailure(
                    f"{trigger.value} callback {entry.name!r} raised {type(exc).__name__}: {exc}",
                    entry=entry,
                    abandoned=abandoned,
                    details={**entry.describe(), "abandoned": len(abandoned)},
                ) from exc

            collector.increment_counter(metrics.DELIVERED, trigger=trigger.value)
            logger.debug("Callback delivered", **entry.describe())

    def _abandon(self, rest: list[CallbackEntry]) -> list[CallbackEntry]:
        """Mark everything left in this pass as attempted so it is never re-delivered."""
        abandoned = list(rest)
        while self._queue:
            _, queued = self._queue.popleft()
            abandoned.extend(queued)
        for entry in abandoned:
            if entry.is_pending:
                entry.status = EntryStatus.FAILED
                logger.error("Callback not delivered, pass aborted", **entry.describe())
        if abandoned:
            metrics.get_metrics().increment_counter(metrics.FAILED, len(abandoned), reason="aborted")
        return abandoned
