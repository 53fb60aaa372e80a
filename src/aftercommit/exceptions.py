from typing import Any, Dict, List, Optional

# ───────────────────────── Base ─────────────────────────
class AfterCommitError(Exception):
    """Base class for errors raised by the callback dispatcher."""
    code: str = "after_commit_error"
    message: str
    details: Optional[Dict[str, Any]]

    def __init__(
        self,
        message: str = "",
        *,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message or self.__class__.__name__)
        if code is not None:
            self.code = code
        self.message = message or self.__class__.__name__
        self.details = details


# ───────────────────────── Frame lifecycle ─────────────────────────
class FrameMismatch(AfterCommitError):
    """end_frame was called with a frame that is not on top of the stack."""
    code = "frame_mismatch"


class NoActiveTransaction(AfterCommitError):
    code = "no_active_transaction"


# ───────────────────────── Entities ─────────────────────────
class ValidationAbort(AfterCommitError):
    """An entity failed validation before any transaction was opened for it."""
    code = "validation_failed"

    def __init__(self, message: str = "", *, errors: Optional[List[str]] = None, **kwargs: Any) -> None:
        self.errors = list(errors or [])
        details = kwargs.pop("details", None) or {}
        if self.errors:
            details.setdefault("errors", self.errors)
        super().__init__(message or "validation failed", details=details or None, **kwargs)


# ───────────────────────── Delivery ─────────────────────────
class CallbackDeliveryFailure(AfterCommitError):
    """
    A callback action raised during delivery.

    The original exception is chained as __cause__. `entry` is the entry whose
    action failed, `abandoned` the entries of the same pass that were never run.
    """
    code = "callback_failed"

    def __init__(self, message: str = "", *, entry: Any = None, abandoned: Optional[List[Any]] = None, **kwargs: Any) -> None:
        self.entry = entry
        self.abandoned = list(abandoned or [])
        super().__init__(message, **kwargs)


class DoubleDeliveryAttempt(AfterCommitError):
    code = "double_delivery"


# ───────────────────────── Control flow ─────────────────────────
class Rollback(Exception):
    """
    Roll back the enclosing transaction block without failing.

    Swallowed by the block that owns the frame; never reaches the caller.
    """
