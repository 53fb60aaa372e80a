"""
Domain Layer
Frames, callback entries and sources
"""
from aftercommit.domain.callback import (
    ADHOC_GROUP,
    CallbackCondition,
    CallbackEntry,
    CallbackKind,
    CallbackSource,
    CallbackTarget,
    CallbackTrigger,
    EntryStatus,
    entity_identity,
    next_group,
)
from aftercommit.domain.frame import FrameOutcome, TransactionDepthTracker, TransactionFrame

__all__ = [
    "ADHOC_GROUP",
    "CallbackCondition",
    "CallbackEntry",
    "CallbackKind",
    "CallbackSource",
    "CallbackTarget",
    "CallbackTrigger",
    "EntryStatus",
    "FrameOutcome",
    "TransactionDepthTracker",
    "TransactionFrame",
    "entity_identity",
    "next_group",
]
