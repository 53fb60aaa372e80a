"""
Dispatch Layer
Registry, frame buffer, dispatcher, emulation and observers
"""
from aftercommit.dispatch.callbacks import TransactionCallbacks
from aftercommit.dispatch.dispatcher import Dispatcher, dispatch_order
from aftercommit.dispatch.emulation import (
    EmulationController,
    get_emulation,
    is_enabled,
    set_enabled,
    with_commits,
)
from aftercommit.dispatch.frame_buffer import FrameBuffer, PendingSet
from aftercommit.dispatch.observers import Observer, ObserverBridge, get_observer_bridge, observe
from aftercommit.dispatch.registry import CallbackRegistry

__all__ = [
    "CallbackRegistry",
    "Dispatcher",
    "EmulationController",
    "FrameBuffer",
    "Observer",
    "ObserverBridge",
    "PendingSet",
    "TransactionCallbacks",
    "dispatch_order",
    "get_emulation",
    "get_observer_bridge",
    "is_enabled",
    "observe",
    "set_enabled",
    "with_commits",
]
