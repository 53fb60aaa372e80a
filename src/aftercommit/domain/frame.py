"""
Transaction Frames
Nesting depth tracking for one connection
"""
from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from enum import Enum

from aftercommit.exceptions import FrameMismatch


class FrameOutcome(str, Enum):
    """Fate of a transaction frame."""
    PENDING = "pending"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


@dataclass(eq=False)
class TransactionFrame:
    """
    One transaction scope on the tracker stack.

    Frames compare by identity; the frame object itself is the reference
    handed back to the tracker when the scope ends.

    Attributes:
        frame_id: Per-tracker sequential id (for logging)
        depth: Zero-based position on the stack
        joinable: Whether inner scopes may join this frame without a savepoint
        harness: True for the frame standing in for a test runner's outer transaction
        parent: Enclosing frame, None for the outermost one
        outcome: Pending until the frame ends
    """

    frame_id: int
    depth: int
    joinable: bool
    harness: bool = False
    parent: TransactionFrame | None = None
    outcome: FrameOutcome = field(default=FrameOutcome.PENDING)

    @property
    def is_outermost(self) -> bool:
        return self.parent is None

    def __repr__(self) -> str:
        kind = "harness" if self.harness else ("joinable" if self.joinable else "isolated")
        return f"<TransactionFrame #{self.frame_id} depth={self.depth} {kind} {self.outcome.value}>"


class TransactionDepthTracker:
    """
    Stack of open transaction frames for a single connection.

    begin_frame pushes, end_frame pops. Ending anything other than the top
    frame means lifecycle signals arrived out of order and raises FrameMismatch.
    """

    def __init__(self) -> None:
        self._stack: list[TransactionFrame] = []
        self._ids = itertools.count(1)

    def begin_frame(self, joinable: bool, harness: bool = False) -> TransactionFrame:
        """
        Push a new frame.

        Args:
            joinable: Whether nested scopes may join this frame
            harness: Mark the frame as the test harness's outer transaction

        Returns:
            The new frame (used as the reference for end_frame)
        """
        parent = self._stack[-1] if self._stack else None
        frame = TransactionFrame(
            frame_id=next(self._ids),
            depth=len(self._stack),
            joinable=joinable,
            harness=harness,
            parent=parent,
        )
        self._stack.append(frame)
        return frame

    def end_frame(self, ref: TransactionFrame, outcome: FrameOutcome) -> TransactionFrame:
        """
        Pop the top frame and record its outcome.

        Args:
            ref: Frame returned by begin_frame
            outcome: COMMITTED or ROLLED_BACK

        Raises:
            FrameMismatch: ref is not the current top frame
        """
        if outcome is FrameOutcome.PENDING:
            raise ValueError("a frame cannot end with a pending outcome")
        top = self._stack[-1] if self._stack else None
        if top is not ref:
            raise FrameMismatch(
                "transaction frame ended out of order",
                details={"expected": repr(top), "received": repr(ref)},
            )
        self._stack.pop()
        ref.outcome = outcome
        return ref

    def current_frame(self) -> TransactionFrame | None:
        return self._stack[-1] if self._stack else None

    def current_depth(self) -> int:
        return len(self._stack)

    def open_transactions(self) -> int:
        """Number of open frames, not counting the harness frame."""
        return sum(1 for frame in self._stack if not frame.harness)

    def is_outermost(self, ref: TransactionFrame) -> bool:
        return ref.parent is None

    def harness_frame(self) -> TransactionFrame | None:
        for frame in self._stack:
            if frame.harness:
                return frame
        return None
