"""
Credential ownership registry.

The bundled ``OwnershipOracle``: it records who holds each credential and
who may act for them. The lifecycle ledger allocates token IDs and drives
mint and burn; transfers are checked against ``transfer_guard``, which the
loyalty contract wires to its transferability flag.
"""

from __future__ import annotations

import hashlib
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable

from .. import journal
from ..constants import RESERVED_TOKEN_ID, ZERO_ADDRESS
from ..exceptions import (
    InvalidTarget,
    LoyaltyTokenError,
    NotFound,
    TransfersDisabled,
    Unauthorized,
)

logger = logging.getLogger(__name__)


@dataclass
class NFTEvent:
    """Registry log entry: Transfer, Approval or ApprovalForAll."""

    event_type: str
    from_address: str
    to_address: str
    token_id: int
    approved: bool = False
    timestamp: float = field(default_factory=time.time)


@dataclass
class NFTRegistry:
    """
    In-memory credential registry.

    Only ``owner`` (the contract administrator) may mint. Addresses are
    stored lowercased. ``all_tokens`` and ``owner_tokens`` keep mint order
    so holders can be enumerated.
    """

    name: str
    symbol: str
    owner: str = ""
    address: str = ""
    owners: dict[int, str] = field(default_factory=dict)
    token_approvals: dict[int, str] = field(default_factory=dict)
    operator_approvals: dict[str, dict[str, bool]] = field(default_factory=dict)
    all_tokens: list[int] = field(default_factory=list)
    owner_tokens: dict[str, list[int]] = field(default_factory=dict)
    events: list[NFTEvent] = field(default_factory=list)
    transfer_guard: Callable[[], bool] | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        self.owner = (self.owner or "").lower()
        if not self.address:
            seed = f"registry:{self.symbol}:{self.owner}:{time.time()}".encode()
            self.address = "0x" + hashlib.sha3_256(seed).digest()[-20:].hex()

    # ==================== Queries ====================

    def owner_of(self, token_id: int) -> str:
        """Holder of a live credential. Raises NotFound for unminted or burnt IDs."""
        holder = self.owners.get(token_id)
        if holder is None:
            raise NotFound(f"token {token_id} does not exist", details={"token_id": token_id})
        return holder

    def exists(self, token_id: int) -> bool:
        return token_id in self.owners

    def balance_of(self, holder: str) -> int:
        return len(self.owner_tokens.get((holder or "").lower(), ()))

    def tokens_of_owner(self, holder: str) -> list[int]:
        return list(self.owner_tokens.get((holder or "").lower(), ()))

    def total_supply(self) -> int:
        return len(self.all_tokens)

    def token_by_index(self, index: int) -> int:
        if not 0 <= index < len(self.all_tokens):
            raise NotFound(f"no token at index {index}")
        return self.all_tokens[index]

    def token_of_owner_by_index(self, holder: str, index: int) -> int:
        held = self.owner_tokens.get((holder or "").lower(), [])
        if not 0 <= index < len(held):
            raise NotFound(f"{holder} has no token at index {index}")
        return held[index]

    def get_approved(self, token_id: int) -> str:
        """Approved address for a token, or the zero address."""
        self.owner_of(token_id)
        return self.token_approvals.get(token_id, ZERO_ADDRESS)

    def is_approved_for_all(self, holder: str, operator: str) -> bool:
        return self.operator_approvals.get((holder or "").lower(), {}).get(
            (operator or "").lower(), False
        )

    def is_approved_or_owner(self, caller: str, token_id: int) -> bool:
        """
        Whether caller may act on the token.

        True for the holder, the token's approved address, or an operator
        the holder approved for all tokens.

        Raises:
            NotFound: If the token is not live
        """
        holder = self.owner_of(token_id)
        who = (caller or "").lower()
        return (
            who == holder
            or self.token_approvals.get(token_id) == who
            or self.is_approved_for_all(holder, who)
        )

    # ==================== Approvals ====================

    def approve(self, caller: str, to: str, token_id: int) -> bool:
        """Approve ``to`` for one token. The zero address clears the approval."""
        holder = self.owner_of(token_id)
        who = (caller or "").lower()
        delegate = (to or "").lower()

        if delegate == holder:
            raise InvalidTarget("cannot approve the current holder", details={"token_id": token_id})
        if who != holder and not self.is_approved_for_all(holder, who):
            raise Unauthorized(
                f"{who[:10]} may not set approvals for token {token_id}",
                details={"token_id": token_id, "caller": who},
            )

        if delegate == ZERO_ADDRESS:
            self.token_approvals.pop(token_id, None)
        else:
            self.token_approvals[token_id] = delegate
        self.events.append(NFTEvent("Approval", holder, delegate, token_id))
        return True

    def set_approval_for_all(self, caller: str, operator: str, approved: bool) -> bool:
        who = (caller or "").lower()
        delegate = (operator or "").lower()
        if delegate == who:
            raise InvalidTarget("cannot make yourself an operator")

        self.operator_approvals.setdefault(who, {})[delegate] = bool(approved)
        self.events.append(
            NFTEvent("ApprovalForAll", who, delegate, RESERVED_TOKEN_ID, approved=bool(approved))
        )
        return True

    # ==================== Movement ====================

    def transfer_from(self, caller: str, from_addr: str, to_addr: str, token_id: int) -> bool:
        """
        Move a credential to a new holder.

        Raises:
            TransfersDisabled: If ``transfer_guard`` returns False
            Unauthorized: If from_addr is not the holder or caller may not act
            InvalidTarget: If to_addr is empty or the zero address
        """
        if self.transfer_guard is not None and not self.transfer_guard():
            raise TransfersDisabled(
                "credential transfers are disabled", details={"token_id": token_id}
            )

        holder = self.owner_of(token_id)
        source = (from_addr or "").lower()
        destination = self._checked_holder(to_addr)
        if holder != source:
            raise Unauthorized(
                f"token {token_id} is not held by {source[:10]}",
                details={"token_id": token_id, "holder": holder},
            )
        if not self.is_approved_or_owner(caller, token_id):
            raise Unauthorized(
                f"caller may not transfer token {token_id}", details={"token_id": token_id}
            )

        self.token_approvals.pop(token_id, None)
        self.owner_tokens[source].remove(token_id)
        self.owner_tokens.setdefault(destination, []).append(token_id)
        self.owners[token_id] = destination
        self.events.append(NFTEvent("Transfer", source, destination, token_id))

        logger.debug(
            "Token %s moved %s -> %s",
            token_id,
            source[:10],
            destination[:10],
            extra={"event": "registry.transfer", "token_id": token_id},
        )
        return True

    def mint(self, minter: str, to: str, token_id: int) -> int:
        """Record a new credential under an ID chosen by the lifecycle ledger."""
        if (minter or "").lower() != self.owner:
            raise Unauthorized("only the registry owner can mint", details={"minter": minter})
        destination = self._checked_holder(to)
        if token_id == RESERVED_TOKEN_ID:
            raise LoyaltyTokenError(f"token {RESERVED_TOKEN_ID} is reserved")
        if token_id in self.owners:
            raise LoyaltyTokenError(f"token {token_id} already exists", details={"token_id": token_id})

        self.owners[token_id] = destination
        self.all_tokens.append(token_id)
        self.owner_tokens.setdefault(destination, []).append(token_id)
        self.events.append(NFTEvent("Transfer", ZERO_ADDRESS, destination, token_id))
        return token_id

    def burn(self, caller: str, token_id: int) -> bool:
        """Forget a credential. Burnt IDs read as NotFound afterwards."""
        holder = self.owner_of(token_id)
        if not self.is_approved_or_owner(caller, token_id):
            raise Unauthorized(
                f"caller may not burn token {token_id}", details={"token_id": token_id}
            )

        self.token_approvals.pop(token_id, None)
        del self.owners[token_id]
        self.all_tokens.remove(token_id)
        self.owner_tokens[holder].remove(token_id)
        self.events.append(NFTEvent("Transfer", holder, ZERO_ADDRESS, token_id))
        return True

    @staticmethod
    def _checked_holder(address: str) -> str:
        normalized = (address or "").lower()
        if not normalized or normalized == ZERO_ADDRESS:
            raise InvalidTarget("credential holder cannot be the zero address")
        return normalized

    # ==================== Rollback ====================

    def checkpoint(
        self, token_ids: Iterable[int] = (), accounts: Iterable[str] = ()
    ) -> journal.Undo:
        """Capture the entries of ``token_ids``, their holders and ``accounts``."""
        ids = set(token_ids)
        addresses = journal.normalized(accounts) | {
            self.owners[tid] for tid in ids if tid in self.owners
        }
        owners = journal.capture(self.owners, ids)
        approvals = journal.capture(self.token_approvals, ids)
        holdings = journal.capture(self.owner_tokens, addresses, copy=list)
        operators = journal.capture(self.operator_approvals, addresses, copy=dict)
        positions = {tid: self.all_tokens.index(tid) for tid in ids if tid in self.owners}
        event_count = len(self.events)

        def undo() -> None:
            for tid in ids:
                if tid in self.all_tokens:
                    self.all_tokens.remove(tid)
            for tid, index in sorted(positions.items(), key=lambda item: item[1]):
                self.all_tokens.insert(index, tid)
            journal.restore(self.owners, owners)
            journal.restore(self.token_approvals, approvals)
            journal.restore(self.owner_tokens, holdings)
            journal.restore(self.operator_approvals, operators)
            del self.events[event_count:]

        return undo

    # ==================== Serialization ====================

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "symbol": self.symbol,
            "owner": self.owner,
            "address": self.address,
            "owners": {str(tid): holder for tid, holder in self.owners.items()},
            "token_approvals": {str(tid): who for tid, who in self.token_approvals.items()},
            "operator_approvals": {h: dict(ops) for h, ops in self.operator_approvals.items()},
            "all_tokens": list(self.all_tokens),
            "owner_tokens": {h: list(ids) for h, ids in self.owner_tokens.items()},
        }

    @classmethod
    def from_dict(
        cls, data: Dict[str, Any], transfer_guard: Callable[[], bool] | None = None
    ) -> "NFTRegistry":
        registry = cls(
            name=data["name"],
            symbol=data["symbol"],
            owner=data.get("owner", ""),
            address=data.get("address", ""),
            transfer_guard=transfer_guard,
        )
        registry.restore(data)
        return registry

    def restore(self, data: Dict[str, Any]) -> None:
        """Replace token state in place from a ``to_dict`` snapshot."""
        self.owners = {int(tid): holder for tid, holder in data.get("owners", {}).items()}
        self.token_approvals = {
            int(tid): who for tid, who in data.get("token_approvals", {}).items()
        }
        self.operator_approvals = {
            h: dict(ops) for h, ops in data.get("operator_approvals", {}).items()
        }
        self.all_tokens = [int(tid) for tid in data.get("all_tokens", [])]
        self.owner_tokens = {
            h: [int(tid) for tid in ids] for h, ids in data.get("owner_tokens", {}).items()
        }
