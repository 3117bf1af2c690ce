"""
Vesting schedules and reward release.

Each credential may carry a deadline; once it passes, the holder (or an
approved address) can claim the reward pool held in custody.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Iterable

from . import journal
from .constants import UINT256_MAX
from .events import EventBus, LoyaltyEvent, schedule_set, vested
from .exceptions import (
    InvalidParameter,
    InvalidTarget,
    NotYetVested,
    ScheduleNotSet,
    TransferFailed,
    Unauthorized,
)
from .interfaces import OwnershipOracle, RewardLedger

logger = logging.getLogger(__name__)


class VestingEngine:
    """
    Per-token vesting deadlines and one-shot reward release.

    Release pays out the whole reward pool held in custody, not a per-token
    share: the first holder to release after their deadline drains the pool
    and any later release transfers zero until the pool is refunded.
    """

    def __init__(
        self,
        administrator: str,
        registry: OwnershipOracle,
        reward_ledger: RewardLedger,
        custody_address: str,
        time_provider: Callable[[], int] | None = None,
        emit: Callable[[LoyaltyEvent], Any] | None = None,
    ):
        if not administrator:
            raise InvalidTarget("Administrator address cannot be empty.")
        if not custody_address:
            raise InvalidTarget("Custody address cannot be empty.")
        self.administrator = administrator.lower()
        self.registry = registry
        self.reward_ledger = reward_ledger
        self.custody_address = custody_address.lower()
        # tokenId -> deadline (unix seconds); absent means no schedule
        self.deadlines: dict[int, int] = {}
        self._time_provider = time_provider or (lambda: int(time.time()))
        self._emit = emit or EventBus().publish
        logger.debug("Vesting engine ready (custody %s)", self.custody_address[:10])

    def _current_time(self) -> int:
        timestamp = self._time_provider()
        try:
            return int(timestamp)
        except (TypeError, ValueError) as exc:
            raise ValueError("time_provider must return an integer timestamp") from exc

    def set_schedule(self, caller: str, token_id: int, duration_seconds: int) -> int:
        """
        Set or overwrite a token's vesting deadline to now + duration.

        The deadline saturates at UINT256_MAX. The token does not need to be
        minted yet.

        Returns:
            The new deadline
        """
        if (caller or "").lower() != self.administrator:
            raise Unauthorized(
                "set_schedule requires the administrator",
                details={"caller": caller, "token_id": token_id},
            )
        if not isinstance(duration_seconds, int) or duration_seconds < 0:
            raise InvalidParameter(
                "Vesting duration must be a non-negative integer.",
                details={"duration_seconds": duration_seconds},
            )

        deadline = min(self._current_time() + duration_seconds, UINT256_MAX)
        previous = self.deadlines.get(token_id)
        self.deadlines[token_id] = deadline
        logger.info(
            "Vesting deadline for token %s set to %s (previous %s)",
            token_id,
            deadline,
            previous,
        )
        self._emit(schedule_set(self.administrator, token_id, deadline))
        return deadline

    def release_vested(self, caller: str, token_id: int) -> int:
        """
        Pay the entire custody pool to caller once the deadline has passed.

        Raises:
            NotFound: If the token does not exist (never minted or burnt)
            Unauthorized: If caller is neither owner nor approved
            ScheduleNotSet: If no deadline was set
            NotYetVested: If the deadline has not been reached
            TransferFailed: If the reward ledger raises or rejects the payout

        Returns:
            Amount transferred (zero when the pool is empty)
        """
        caller_norm = (caller or "").lower()
        if not self.registry.is_approved_or_owner(caller_norm, token_id):
            raise Unauthorized(
                f"caller is not owner nor approved for token {token_id}",
                details={"token_id": token_id, "caller": caller_norm},
            )

        deadline = self.deadlines.get(token_id, 0)
        if not deadline:
            raise ScheduleNotSet(
                f"no vesting schedule for token {token_id}", details={"token_id": token_id}
            )

        now = self._current_time()
        if now < deadline:
            raise NotYetVested(
                f"token {token_id} vests at {deadline}, now {now}",
                deadline=deadline,
                details={"token_id": token_id, "deadline": deadline, "now": now},
            )

        amount = None
        try:
            amount = self.reward_ledger.balance_of(self.custody_address)
            ok = self.reward_ledger.transfer(self.custody_address, caller_norm, amount)
        except Exception as exc:
            raise TransferFailed(
                f"reward transfer of {amount} failed: {exc}",
                details={"token_id": token_id, "amount": amount, "cause": type(exc).__name__},
            ) from exc
        if not ok:
            raise TransferFailed(
                f"reward transfer of {amount} was rejected",
                details={"token_id": token_id, "amount": amount},
            )

        if amount == 0:
            logger.warning("Reward pool empty; token %s released 0", token_id)
        else:
            logger.info(
                "Released %s to %s for token %s",
                amount,
                caller_norm[:10],
                token_id,
                extra={"event": "vesting.release", "token_id": token_id, "amount": amount},
            )
        self._emit(vested(caller_norm, token_id, amount))
        return amount

    def get_schedule(self, token_id: int) -> int | None:
        """Deadline for a token, or None when unset. Never raises."""
        return self.deadlines.get(token_id) or None

    def is_vested(self, token_id: int) -> bool:
        """Whether the deadline is set and has passed."""
        deadline = self.deadlines.get(token_id, 0)
        return bool(deadline) and self._current_time() >= deadline

    def pool_balance(self) -> int:
        return self.reward_ledger.balance_of(self.custody_address)

    def checkpoint(
        self, token_ids: Iterable[int] = (), accounts: Iterable[str] = ()
    ) -> journal.Undo:
        deadlines = journal.capture(self.deadlines, set(token_ids))
        return lambda: journal.restore(self.deadlines, deadlines)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "custody_address": self.custody_address,
            "deadlines": {str(k): v for k, v in self.deadlines.items()},
        }

    def restore(self, data: Dict[str, Any]) -> None:
        self.deadlines = {int(k): int(v) for k, v in data.get("deadlines", {}).items()}
