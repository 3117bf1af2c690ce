"""
Token lifecycle ledger.

Tracks the burnt tombstone for every token ID, the collection-wide
transferability flag, and the next-ID counter. Ownership and approval are
never stored here; they are read from the OwnershipOracle on every call.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable

from . import journal
from .constants import FIRST_TOKEN_ID, RESERVED_TOKEN_ID, ZERO_ADDRESS
from .events import EventBus, LoyaltyEvent, burned, minted, transferability_changed
from .exceptions import AlreadyBurnt, InvalidTarget, Unauthorized
from .interfaces import OwnershipOracle

logger = logging.getLogger(__name__)


class LifecycleLedger:
    """
    Active/Burnt state machine for loyalty credentials.

    A token moves Active -> Burnt exactly once. Token 0 is reserved and
    starts out burnt so it can never be minted or acted on. Burnt records
    are never removed.
    """

    def __init__(
        self,
        administrator: str,
        registry: OwnershipOracle,
        transferable: bool = False,
        emit: Callable[[LoyaltyEvent], Any] | None = None,
    ):
        if not administrator:
            raise InvalidTarget("Administrator address cannot be empty.")
        self.administrator = administrator.lower()
        self.registry = registry
        self.transferable = bool(transferable)
        self.next_token_id = FIRST_TOKEN_ID
        # tokenId -> burnt flag; only ever flips False -> True
        self.burnt: dict[int, bool] = {RESERVED_TOKEN_ID: True}
        self._emit = emit or EventBus().publish

    # ==================== Mutations ====================

    def mint(self, caller: str, target: str) -> int:
        """
        Issue a new credential to ``target``.

        Args:
            caller: Must be the administrator
            target: Recipient identity

        Returns:
            Newly allocated token ID

        Raises:
            Unauthorized: If caller is not the administrator
            InvalidTarget: If target is empty or the zero address
        """
        self._require_admin(caller, "mint")
        target_norm = (target or "").lower()
        if not target_norm or target_norm == ZERO_ADDRESS:
            raise InvalidTarget(
                "mint target cannot be empty or the zero address",
                details={"target": target},
            )

        token_id = self.next_token_id
        self.registry.mint(self.administrator, target_norm, token_id)
        self.next_token_id = token_id + 1
        self.burnt[token_id] = False

        logger.info(
            "Credential %s minted to %s",
            token_id,
            target_norm[:10],
            extra={"event": "lifecycle.mint", "token_id": token_id},
        )
        self._emit(minted(target_norm, token_id))
        return token_id

    def burn(self, caller: str, token_id: int) -> None:
        """
        Permanently retire a credential.

        Raises:
            AlreadyBurnt: If the token is already burnt (including token 0)
            NotFound: If the token was never minted
            Unauthorized: If caller is neither owner nor approved
        """
        if self.is_burnt(token_id):
            raise AlreadyBurnt(
                f"token {token_id} is already burnt", details={"token_id": token_id}
            )
        caller_norm = (caller or "").lower()
        if not self.registry.is_approved_or_owner(caller_norm, token_id):
            raise Unauthorized(
                f"caller is not owner nor approved for token {token_id}",
                details={"token_id": token_id, "caller": caller_norm},
            )

        self.registry.burn(caller_norm, token_id)
        self.burnt[token_id] = True

        logger.info(
            "Credential %s burnt by %s",
            token_id,
            caller_norm[:10],
            extra={"event": "lifecycle.burn", "token_id": token_id},
        )
        self._emit(burned(caller_norm, token_id))

    def set_transferability(self, caller: str, enabled: bool) -> None:
        """Overwrite the collection-wide transferability flag (admin only)."""
        self._require_admin(caller, "set_transferability")
        previous = self.transferable
        self.transferable = bool(enabled)
        logger.info(
            "Transferability changed %s -> %s",
            previous,
            self.transferable,
            extra={"event": "lifecycle.transferability"},
        )
        self._emit(transferability_changed(self.administrator, self.transferable))

    # ==================== Queries ====================

    def is_burnt(self, token_id: int) -> bool:
        """
        Whether a token is burnt.

        Never raises: IDs that were never minted read as not burnt.
        """
        return self.burnt.get(token_id, False)

    def get_transferability(self) -> bool:
        return self.transferable

    @property
    def minted_count(self) -> int:
        return self.next_token_id - FIRST_TOKEN_ID

    # ==================== Helpers ====================

    def _require_admin(self, caller: str, operation: str) -> None:
        if (caller or "").lower() != self.administrator:
            raise Unauthorized(
                f"{operation} requires the administrator",
                details={"caller": caller, "operation": operation},
            )

    # ==================== Rollback ====================

    def checkpoint(
        self, token_ids: Iterable[int] = (), accounts: Iterable[str] = ()
    ) -> journal.Undo:
        """
        Capture what an operation on ``token_ids`` can change.

        The slot of the next ID to be minted is always included.
        """
        transferable = self.transferable
        next_token_id = self.next_token_id
        burnt = journal.capture(self.burnt, set(token_ids) | {next_token_id})

        def undo() -> None:
            self.transferable = transferable
            self.next_token_id = next_token_id
            journal.restore(self.burnt, burnt)

        return undo

    # ==================== Serialization ====================

    def to_dict(self) -> Dict[str, Any]:
        return {
            "administrator": self.administrator,
            "transferable": self.transferable,
            "next_token_id": self.next_token_id,
            "burnt": {str(k): v for k, v in self.burnt.items()},
        }

    def restore(self, data: Dict[str, Any]) -> None:
        """Replace state in place from a ``to_dict`` snapshot."""
        self.transferable = bool(data.get("transferable", False))
        self.next_token_id = int(data.get("next_token_id", FIRST_TOKEN_ID))
        self.burnt = {int(k): bool(v) for k, v in data.get("burnt", {}).items()}
        self.burnt[RESERVED_TOKEN_ID] = True
