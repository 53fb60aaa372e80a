"""
Transaction Listener Interface (Protocol)
Lifecycle signals a transaction manager sends to interested parties
"""
from __future__ import annotations

from typing import Protocol, runtime_checkable

from aftercommit.domain.frame import TransactionFrame


@runtime_checkable
class TransactionListener(Protocol):
    """
    Receiver of begin/commit/rollback signals.

    The transaction manager calls these explicitly at each scope boundary;
    nothing is intercepted by patching the ORM.

    Usage:
        frame = listener.transaction_began(joinable=True)
        ...                                  # work inside the scope
        listener.transaction_committed(frame)
    """

    def transaction_began(self, joinable: bool, harness: bool = False) -> TransactionFrame:
        """
        A transaction scope was opened.

        Args:
            joinable: Whether nested scopes may join it without a savepoint
            harness: True for a test runner's outer transaction

        Returns:
            Frame reference to pass back when the scope ends
        """
        ...

    def transaction_committed(self, frame: TransactionFrame) -> None:
        """The scope committed (or released its savepoint)."""
        ...

    def transaction_rolled_back(self, frame: TransactionFrame) -> None:
        """The scope rolled back, for any reason."""
        ...
