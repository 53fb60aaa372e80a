"""
Database Infrastructure
SQLAlchemy sessions, transaction scopes and callback declarations
"""
from aftercommit.infrastructure.database.declarations import (
    CommitCallbacksMixin,
    after_commit,
    after_rollback,
    declared_sources,
)
from aftercommit.infrastructure.database.listener import TransactionListener
from aftercommit.infrastructure.database.session import SessionFactory
from aftercommit.infrastructure.database.transaction_manager import TransactionManager

__all__ = [
    "CommitCallbacksMixin",
    "SessionFactory",
    "TransactionListener",
    "TransactionManager",
    "after_commit",
    "after_rollback",
    "declared_sources",
]
