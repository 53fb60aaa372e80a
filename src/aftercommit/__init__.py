"""
aftercommit
Commit and rollback callbacks that fire inside transactional test harnesses
"""
from aftercommit.dispatch import (
    Observer,
    TransactionCallbacks,
    get_emulation,
    is_enabled,
    observe,
    set_enabled,
    with_commits,
)
from aftercommit.exceptions import (
    AfterCommitError,
    CallbackDeliveryFailure,
    DoubleDeliveryAttempt,
    FrameMismatch,
    NoActiveTransaction,
    Rollback,
    ValidationAbort,
)
from aftercommit.infrastructure.database import (
    CommitCallbacksMixin,
    SessionFactory,
    TransactionManager,
    after_commit,
    after_rollback,
)

__version__ = "0.1.0"

__all__ = [
    "AfterCommitError",
    "CallbackDeliveryFailure",
    "CommitCallbacksMixin",
    "DoubleDeliveryAttempt",
    "FrameMismatch",
    "NoActiveTransaction",
    "Observer",
    "Rollback",
    "SessionFactory",
    "TransactionCallbacks",
    "TransactionManager",
    "ValidationAbort",
    "__version__",
    "after_commit",
    "after_rollback",
    "get_emulation",
    "is_enabled",
    "observe",
    "set_enabled",
    "with_commits",
]
