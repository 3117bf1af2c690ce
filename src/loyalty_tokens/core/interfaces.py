"""
Collaborator Protocol Interfaces

The lifecycle ledger and vesting engine depend on these protocols rather
than on concrete registry or ledger classes. This keeps the core testable
with stubs and lets a deployment plug in its own ownership registry or
reward ledger.

Thread Safety: implementations are only ever called from inside the
contract's single-writer lock, so they need no locking of their own.
"""

from __future__ import annotations

from typing import Callable, Iterable, Protocol, runtime_checkable


@runtime_checkable
class OwnershipOracle(Protocol):
    """
    Authoritative source of token ownership and approval.

    Queries are side-effect free. ``mint`` and ``burn`` are the registry
    hooks the lifecycle ledger calls after its own checks have passed.
    """

    def owner_of(self, token_id: int) -> str:
        """
        Get the current owner of a token.

        Raises:
            NotFound: If the token was never minted or has been burnt
        """
        ...

    def is_approved_or_owner(self, caller: str, token_id: int) -> bool:
        """
        Check whether caller owns the token or holds a delegated approval.

        Raises:
            NotFound: If the token does not exist
        """
        ...

    def mint(self, minter: str, to: str, token_id: int) -> int:
        """Create the asset record for ``token_id`` owned by ``to``."""
        ...

    def burn(self, caller: str, token_id: int) -> bool:
        """Remove the asset record for ``token_id``."""
        ...


@runtime_checkable
class RewardLedger(Protocol):
    """
    Fungible balance ledger used to pay out vested rewards.

    Calls are synchronous; a failed transfer either raises or returns False.
    """

    def balance_of(self, account: str) -> int:
        """Get the balance held by ``account``."""
        ...

    def transfer(self, sender: str, recipient: str, amount: int) -> bool:
        """Move ``amount`` from ``sender`` to ``recipient``."""
        ...


@runtime_checkable
class Checkpointable(Protocol):
    """
    Component that can undo one operation's changes.

    ``checkpoint`` captures only the entries that an operation on
    ``token_ids`` involving ``accounts`` can change, and returns a callable
    that puts them back.
    """

    def checkpoint(
        self, token_ids: Iterable[int] = (), accounts: Iterable[str] = ()
    ) -> Callable[[], None]:
        ...
