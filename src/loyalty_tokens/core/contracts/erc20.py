"""
Reward ledger.

Fungible balances from which vested loyalty rewards are paid. The loyalty
contract keeps the reward pool at its custody address and the
administrator tops it up with ``mint``.
"""

from __future__ import annotations

import hashlib
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable

from .. import journal
from ..constants import UINT256_MAX, ZERO_ADDRESS
from ..exceptions import InvalidParameter, InvalidTarget, LoyaltyTokenError, Unauthorized

logger = logging.getLogger(__name__)


class InsufficientBalance(LoyaltyTokenError):
    """Sender holds less than the requested amount."""


@dataclass
class RewardMovement:
    """A reward balance change. ``source`` is the zero address for mints."""

    source: str
    destination: str
    amount: int
    timestamp: float = field(default_factory=time.time)


@dataclass
class RewardToken:
    """In-memory reward balances keyed by lowercased address."""

    name: str
    symbol: str
    owner: str = ""
    address: str = ""
    supply: int = 0
    balances: dict[str, int] = field(default_factory=dict)
    events: list[RewardMovement] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.owner = (self.owner or "").lower()
        if not self.address:
            seed = f"reward:{self.symbol}:{self.owner}:{time.time()}".encode()
            self.address = "0x" + hashlib.sha3_256(seed).digest()[-20:].hex()

    def balance_of(self, account: str) -> int:
        return self.balances.get((account or "").lower(), 0)

    def transfer(self, sender: str, recipient: str, amount: int) -> bool:
        """
        Move ``amount`` from sender to recipient.

        Raises:
            InsufficientBalance: If sender holds less than amount
            InvalidTarget: If recipient is empty or the zero address
        """
        source = (sender or "").lower()
        destination = self._checked_recipient(recipient)
        self._check_amount(amount)

        available = self.balances.get(source, 0)
        if available < amount:
            raise InsufficientBalance(
                f"{source[:10]} holds {available}, cannot send {amount}",
                details={"sender": source, "available": available, "amount": amount},
            )

        self.balances[source] = available - amount
        self.balances[destination] = self.balances.get(destination, 0) + amount
        self.events.append(RewardMovement(source, destination, amount))
        logger.debug(
            "Moved %s %s to %s",
            amount,
            self.symbol,
            destination[:10],
            extra={"event": "reward.transfer", "amount": amount},
        )
        return True

    def mint(self, minter: str, to: str, amount: int) -> bool:
        """Create ``amount`` new reward units at ``to`` (owner only)."""
        if (minter or "").lower() != self.owner:
            raise Unauthorized("only the reward owner can mint", details={"minter": minter})
        destination = self._checked_recipient(to)
        self._check_amount(amount)
        if self.supply + amount > UINT256_MAX:
            raise InvalidParameter("reward supply would exceed uint256")

        self.supply += amount
        self.balances[destination] = self.balances.get(destination, 0) + amount
        self.events.append(RewardMovement(ZERO_ADDRESS, destination, amount))
        logger.info(
            "Minted %s %s into %s",
            amount,
            self.symbol,
            destination[:10],
            extra={"event": "reward.mint", "amount": amount, "supply": self.supply},
        )
        return True

    @staticmethod
    def _checked_recipient(recipient: str) -> str:
        destination = (recipient or "").lower()
        if not destination or destination == ZERO_ADDRESS:
            raise InvalidTarget("reward recipient cannot be the zero address")
        return destination

    @staticmethod
    def _check_amount(amount: int) -> None:
        if not isinstance(amount, int) or amount < 0 or amount > UINT256_MAX:
            raise InvalidParameter(
                "reward amount must be an integer in [0, 2**256)", details={"amount": amount}
            )

    def checkpoint(
        self, token_ids: Iterable[int] = (), accounts: Iterable[str] = ()
    ) -> journal.Undo:
        """Capture the balances of ``accounts``, the supply and the log length."""
        balances = journal.capture(self.balances, journal.normalized(accounts))
        supply = self.supply
        event_count = len(self.events)

        def undo() -> None:
            journal.restore(self.balances, balances)
            self.supply = supply
            del self.events[event_count:]

        return undo

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "symbol": self.symbol,
            "owner": self.owner,
            "address": self.address,
            "supply": self.supply,
            "balances": dict(self.balances),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RewardToken":
        token = cls(
            name=data["name"],
            symbol=data["symbol"],
            owner=data.get("owner", ""),
            address=data.get("address", ""),
        )
        token.restore(data)
        return token

    def restore(self, data: Dict[str, Any]) -> None:
        self.supply = int(data.get("supply", 0))
        self.balances = {k: int(v) for k, v in data.get("balances", {}).items()}
