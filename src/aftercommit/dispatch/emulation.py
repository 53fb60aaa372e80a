"""
Emulation Mode Controller
Decides whether the harness rollback counts as a commit for callbacks
"""
from __future__ import annotations

import contextvars
import itertools
from contextlib import contextmanager
from typing import Iterator, Optional

from aftercommit.config import get_settings
from aftercommit.infrastructure.observability.logger import get_logger

logger = get_logger(__name__)

_names = itertools.count(1)


class EmulationController:
    """
    Process-wide default plus a stack of scoped overrides.

    Overrides live in a ContextVar, so a scope opened in one thread or task
    is invisible to the others and is always unwound in LIFO order.
    """

    def __init__(self, default: bool = True) -> None:
        self._default = bool(default)
        self._overrides: contextvars.ContextVar[tuple[Optional[bool], ...]] = contextvars.ContextVar(
            f"aftercommit_emulation_{next(_names)}", default=()
        )

    def enabled(self) -> bool:
        """Innermost override that is set, else the global default."""
        for value in reversed(self._overrides.get()):
            if value is not None:
                return value
        return self._default

    @property
    def default(self) -> bool:
        return self._default

    def set_enabled(self, value: bool) -> None:
        self._default = bool(value)
        logger.debug("Emulated commits default changed", enabled=self._default)

    @contextmanager
    def with_scope(self, value: Optional[bool] = True) -> Iterator[EmulationController]:
        """
        Override the flag for the dynamic extent of the block.

        Args:
            value: True/False to force, None to inherit the enclosing value
        """
        token = self._overrides.set(self._overrides.get() + (None if value is None else bool(value),))
        try:
            yield self
        finally:
            self._overrides.reset(token)

    @contextmanager
    def default_scope(self, value: bool) -> Iterator[EmulationController]:
        """Set the global default for the block and restore the previous one after."""
        previous = self._default
        self.set_enabled(value)
        try:
            yield self
        finally:
            self.set_enabled(previous)


# Global controller (default taken from settings on first use)
_emulation: EmulationController | None = None


def get_emulation() -> EmulationController:
    global _emulation
    if _emulation is None:
        _emulation = EmulationController(default=get_settings().emulation_enabled)
    return _emulation


def is_enabled() -> bool:
    return get_emulation().enabled()


def set_enabled(value: bool) -> None:
    """Change the process-wide default for emulated commits."""
    get_emulation().set_enabled(value)


def with_commits(value: Optional[bool] = True):
    """
    Run a block (or decorated function) with emulated commits forced on or off.

    Usage:
        with with_commits(False):
            manager.save(car)   # no commit callbacks fire
    """
    return get_emulation().with_scope(value)
