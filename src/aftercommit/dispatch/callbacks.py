"""
Transaction Callbacks
Per-connection context object wiring tracker, registry, frame buffer and dispatcher
"""
from __future__ import annotations

from typing import Any, Callable, Iterable

from aftercommit.config import get_settings
from aftercommit.dispatch.dispatcher import Dispatcher
from aftercommit.dispatch.emulation import EmulationController, get_emulation
from aftercommit.dispatch.frame_buffer import FrameBuffer, PendingSet
from aftercommit.dispatch.observers import ObserverBridge, get_observer_bridge
from aftercommit.dispatch.registry import CallbackRegistry
from aftercommit.domain.callback import (
    CallbackCondition,
    CallbackEntry,
    CallbackKind,
    CallbackSource,
    CallbackTarget,
    CallbackTrigger,
    entity_identity,
)
from aftercommit.domain.frame import FrameOutcome, TransactionDepthTracker, TransactionFrame
from aftercommit.infrastructure.observability import metrics
from aftercommit.infrastructure.observability.logger import get_logger

logger = get_logger(__name__)


class TransactionCallbacks:
    """
    Callback state for one connection.

    Implements the TransactionListener protocol: the host transaction manager
    reports every scope boundary here, and entity changes are recorded through
    record_change. Nothing in here is shared between connections except the
    emulation controller and the observer bridge.

    Attributes:
        tracker: Open frames
        registry: Entry creation and dedup
        pending: Entries per live frame
        dispatcher: Delivery engine
        buffer: Frame exit decisions
        emulation: Emulated-commit flag
        observers: Process-wide observer bridge
    """

    def __init__(
        self,
        *,
        emulation: EmulationController | None = None,
        observers: ObserverBridge | None = None,
        raise_in_callbacks: bool | None = None,
    ) -> None:
        if raise_in_callbacks is None:
            raise_in_callbacks = get_settings().raise_in_callbacks
        self.emulation = emulation or get_emulation()
        self.observers = observers or get_observer_bridge()
        self.tracker = TransactionDepthTracker()
        self.pending = PendingSet()
        self.registry = CallbackRegistry(self.tracker, self.pending)
        self.dispatcher = Dispatcher(raise_in_callbacks=raise_in_callbacks)
        self.buffer = FrameBuffer(self.pending, self.registry, self.dispatcher, self.emulation)
        self._adhoc_owner = f"transaction#{id(self):x}"

    # ------------------------------------------------------------------
    # TransactionListener
    # ------------------------------------------------------------------
    def transaction_began(self, joinable: bool, harness: bool = False) -> TransactionFrame:
        frame = self.tracker.begin_frame(joinable=joinable, harness=harness)
        self.buffer.on_frame_begin(frame)
        self._report_depth()
        logger.debug("Frame opened", frame=repr(frame))
        return frame

    def transaction_committed(self, frame: TransactionFrame) -> None:
        self._end(frame, FrameOutcome.COMMITTED)

    def transaction_rolled_back(self, frame: TransactionFrame) -> None:
        self._end(frame, FrameOutcome.ROLLED_BACK)

    def _end(self, frame: TransactionFrame, outcome: FrameOutcome) -> None:
        self.tracker.end_frame(frame, outcome)
        self._report_depth()
        logger.debug("Frame closed", frame=repr(frame))
        self.buffer.on_frame_exit(frame, outcome)

    def _report_depth(self) -> None:
        metrics.get_metrics().set_gauge(metrics.FRAME_DEPTH, self.tracker.current_depth())

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------
    def sources_for(self, entity: Any) -> list[CallbackSource]:
        """Declared and observer sources for an entity, oldest declaration first."""
        sources: list[CallbackSource] = []
        if isinstance(entity, CallbackTarget):
            sources.extend(type(entity).callback_sources())
        sources.extend(self.observers.sources_for(entity))
        return sorted(sources, key=lambda s: s.group)

    def record_change(self, entity: Any, kind: CallbackKind) -> list[CallbackEntry]:
        """
        Register every applicable source for a change to an entity.

        Changes seen while no frame is open cannot be tied to a transaction
        and are logged and skipped.

        Args:
            entity: The changed entity
            kind: CREATE, UPDATE or DESTROY

        Returns:
            Entries registered (or already pending) for the change
        """
        sources = [s for s in self.sources_for(entity) if s.applies_to(kind)]
        if not sources:
            return []
        if self.tracker.current_frame() is None:
            logger.warning(
                "Change recorded outside any transaction, callbacks skipped",
                entity=type(entity).__name__,
                kind=kind.value,
            )
            return []

        entity_id = entity_identity(entity)
        return [self.registry.register_source(entity, entity_id, kind, source) for source in sources]

    def on_commit(self, action: Callable[[], Any]) -> CallbackEntry:
        """Run `action` once the current frame is committed for real (or emulated)."""
        return self._adhoc(action, CallbackTrigger.ON_COMMIT)

    def on_rollback(self, action: Callable[[], Any]) -> CallbackEntry:
        return self._adhoc(action, CallbackTrigger.ON_ROLLBACK)

    def _adhoc(self, action: Callable[[], Any], trigger: CallbackTrigger) -> CallbackEntry:
        return self.registry.register(
            self._adhoc_owner,
            None,
            trigger,
            CallbackCondition.always(),
            action,
        )

    def discard(self, entity: Any) -> list[CallbackEntry]:
        return self.registry.clear(entity_identity(entity))

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------
    @property
    def open_transactions(self) -> int:
        return self.tracker.open_transactions()

    @property
    def depth(self) -> int:
        return self.tracker.current_depth()

    def pending_entries(self) -> Iterable[CallbackEntry]:
        return list(self.pending.entries())
