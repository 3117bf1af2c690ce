"""
Loyalty Token Contract.

Wires the ownership registry, lifecycle ledger, vesting engine, and reward
ledger into one contract with these guarantees:
- Mutations run one at a time under a single re-entrant lock
- A mutation either commits fully or every touched component is restored
- Notifications are delivered only after a successful commit
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Iterator, Optional

from . import journal
from .config import LoyaltyConfig
from .contracts.erc20 import RewardToken
from .contracts.erc721 import NFTRegistry
from .events import EventBus, LoyaltyEvent
from .exceptions import LoyaltyTokenError, NotFound, Unauthorized
from .interfaces import Checkpointable, OwnershipOracle, RewardLedger
from .lifecycle import LifecycleLedger
from .metrics import LoyaltyMetrics
from .vesting import VestingEngine

logger = logging.getLogger(__name__)

STATE_VERSION = 1


class LoyaltyTokenContract:
    """
    Loyalty credential contract.

    All mutating methods take the caller identity as their first argument,
    the way a contract call carries msg.sender.
    """

    def __init__(
        self,
        config: LoyaltyConfig,
        registry: Optional[OwnershipOracle] = None,
        reward_ledger: Optional[RewardLedger] = None,
        time_provider: Optional[Callable[[], int]] = None,
        event_bus: Optional[EventBus] = None,
        metrics: Optional[LoyaltyMetrics] = None,
    ):
        self.config = config
        self.administrator = config.administrator.lower()
        self.address = (config.custody_address or self._derive_address(config)).lower()

        self.registry = registry or NFTRegistry(
            name=config.collection_name,
            symbol=config.collection_symbol,
            owner=self.administrator,
            transfer_guard=self.get_transferability,
        )
        self.reward_ledger = reward_ledger or RewardToken(
            name=f"{config.collection_name} Reward",
            symbol=config.reward_symbol,
            owner=self.administrator,
        )
        self.event_bus = event_bus or EventBus()
        self.metrics = metrics or LoyaltyMetrics()

        self._lock = threading.RLock()
        self._pending: Optional[list[LoyaltyEvent]] = None
        self._undo: list[journal.Undo] = []

        self.lifecycle = LifecycleLedger(
            self.administrator,
            self.registry,
            transferable=config.transferable,
            emit=self._queue_event,
        )
        self.vesting = VestingEngine(
            self.administrator,
            self.registry,
            self.reward_ledger,
            self.address,
            time_provider=time_provider,
            emit=self._queue_event,
        )
        logger.info(
            "Loyalty contract %s initialized",
            self.address[:10],
            extra={"event": "contract.init", "symbol": config.collection_symbol},
        )

    @staticmethod
    def _derive_address(config: LoyaltyConfig) -> str:
        addr_input = f"{config.collection_symbol}{config.administrator}{time.time()}".encode()
        return f"0x{hashlib.sha3_256(addr_input).digest()[-20:].hex()}"

    # ==================== Transaction Boundary ====================

    def _queue_event(self, event: LoyaltyEvent) -> None:
        if self._pending is None:
            self.event_bus.publish(event)
        else:
            self._pending.append(event)

    def _checkpoint(self, token_ids: Iterable[int], accounts: Iterable[str]) -> list[journal.Undo]:
        """Undo steps for every component an operation can touch."""
        undo: list[journal.Undo] = []
        for component in (self.lifecycle, self.vesting, self.registry, self.reward_ledger):
            if isinstance(component, Checkpointable):
                undo.append(component.checkpoint(token_ids, accounts))
            elif hasattr(component, "to_dict") and hasattr(component, "restore"):
                undo.append(self._full_snapshot(component))
        return undo

    @staticmethod
    def _full_snapshot(component: Any) -> journal.Undo:
        state = component.to_dict()
        event_count = len(getattr(component, "events", ()))

        def undo() -> None:
            component.restore(state)
            if hasattr(component, "events"):
                del component.events[event_count:]

        return undo

    def _rollback(self) -> None:
        for step in reversed(self._undo):
            step()

    @contextmanager
    def _transaction(
        self,
        operation: str,
        token_ids: Iterable[int] = (),
        accounts: Iterable[Optional[str]] = (),
    ) -> Iterator[None]:
        """
        Run one mutation atomically.

        ``token_ids`` and ``accounts`` name everything the operation may
        change; only those entries are captured for rollback.
        """
        with self._lock:
            undo = self._checkpoint(tuple(token_ids), tuple(journal.normalized(accounts)))
            if self._pending is not None:
                # Nested call joins the outer transaction
                self._undo.extend(undo)
                yield
                return

            self._pending = []
            self._undo = undo
            try:
                yield
            except LoyaltyTokenError as exc:
                self._rollback()
                self.metrics.record_rejection(operation, exc.kind)
                logger.warning(
                    "%s rejected: %s",
                    operation,
                    exc.message,
                    extra={"event": "contract.rejected", "operation": operation, "kind": exc.kind},
                )
                raise
            except Exception:
                self._rollback()
                logger.error("%s failed; state restored", operation, exc_info=True)
                raise
            else:
                committed = self._pending
            finally:
                self._pending = None
                self._undo = []

            for event in committed:
                self.event_bus.publish(event)

    # ==================== Lifecycle ====================

    def mint(self, caller: str, target: str) -> int:
        """Issue a credential to target (administrator only)."""
        with self._lock:
            token_ids = (self.lifecycle.next_token_id,)
            with self._transaction("mint", token_ids, (target,)):
                token_id = self.lifecycle.mint(caller, target)
            self.metrics.tokens_minted.inc()
            return token_id

    def burn(self, caller: str, token_id: int) -> None:
        """Retire a credential (owner or approved)."""
        with self._lock:
            with self._transaction("burn", (token_id,)):
                self.lifecycle.burn(caller, token_id)
            self.metrics.tokens_burned.inc()

    def set_transferability(self, caller: str, enabled: bool) -> None:
        with self._transaction("set_transferability"):
            self.lifecycle.set_transferability(caller, enabled)

    # ==================== Vesting ====================

    def set_vesting_schedule(self, caller: str, token_id: int, duration_seconds: int) -> int:
        """Set token deadline to now + duration (administrator only)."""
        with self._transaction("set_vesting_schedule", (token_id,)):
            return self.vesting.set_schedule(caller, token_id, duration_seconds)

    def release_vested(self, caller: str, token_id: int) -> int:
        """Pay the whole reward pool to caller once the token has vested."""
        with self._lock:
            with self._transaction("release_vested", (token_id,), (self.address, caller)):
                amount = self.vesting.release_vested(caller, token_id)
            self.metrics.record_release(amount, self.vesting.pool_balance())
            return amount

    def fund_pool(self, caller: str, amount: int) -> int:
        """
        Mint reward tokens into the contract's custody (administrator only).

        Only available with the bundled RewardToken ledger; external ledgers
        are funded by transferring to ``self.address``.

        Returns:
            New pool balance
        """
        with self._lock:
            with self._transaction("fund_pool", accounts=(self.address,)):
                if (caller or "").lower() != self.administrator:
                    raise Unauthorized("fund_pool requires the administrator")
                if not isinstance(self.reward_ledger, RewardToken):
                    raise LoyaltyTokenError("reward ledger does not support minting")
                self.reward_ledger.mint(self.administrator, self.address, amount)
                balance = self.vesting.pool_balance()
            self.metrics.pool_balance.set(balance)
            return balance

    # ==================== Registry Pass-through ====================

    def approve(self, caller: str, to: str, token_id: int) -> bool:
        with self._transaction("approve", (token_id,)):
            return self._native_registry().approve(caller, to, token_id)

    def set_approval_for_all(self, caller: str, operator: str, approved: bool) -> bool:
        with self._transaction("set_approval_for_all", accounts=(caller,)):
            return self._native_registry().set_approval_for_all(caller, operator, approved)

    def transfer_from(self, caller: str, from_addr: str, to_addr: str, token_id: int) -> bool:
        """Transfer a credential; rejected while transferability is off."""
        with self._transaction("transfer_from", (token_id,), (from_addr, to_addr)):
            return self._native_registry().transfer_from(caller, from_addr, to_addr, token_id)

    def _native_registry(self) -> NFTRegistry:
        if not isinstance(self.registry, NFTRegistry):
            raise LoyaltyTokenError("operation requires the bundled NFTRegistry")
        return self.registry

    # ==================== Queries ====================
    # Queries take the contract lock so they never see an uncommitted change.

    def is_token_burned(self, token_id: int) -> bool:
        """Burnt status; unminted IDs read as False, token 0 as True."""
        with self._lock:
            return self.lifecycle.is_burnt(token_id)

    def get_transferability(self) -> bool:
        with self._lock:
            return self.lifecycle.get_transferability()

    def get_token_vesting_schedule(self, token_id: int) -> Optional[int]:
        """Vesting deadline, or None when no schedule is set."""
        with self._lock:
            return self.vesting.get_schedule(token_id)

    def owner_of(self, token_id: int) -> str:
        with self._lock:
            return self.registry.owner_of(token_id)

    def pool_balance(self) -> int:
        with self._lock:
            return self.vesting.pool_balance()

    def token_info(self, token_id: int) -> Dict[str, Any]:
        """Combined view of a token for status displays. Never raises."""
        with self._lock:
            try:
                owner: Optional[str] = self.registry.owner_of(token_id)
            except NotFound:
                owner = None
            return {
                "token_id": token_id,
                "owner": owner,
                "burnt": self.lifecycle.is_burnt(token_id),
                "vesting_deadline": self.vesting.get_schedule(token_id),
                "vested": self.vesting.is_vested(token_id),
            }

    @property
    def events(self) -> list[LoyaltyEvent]:
        """Recent notifications, oldest first."""
        with self._lock:
            return self.event_bus.recent()

    # ==================== Persistence ====================

    def to_dict(self) -> Dict[str, Any]:
        """Serialize contract state (bundled collaborators only)."""
        with self._lock:
            return {
                "version": STATE_VERSION,
                "address": self.address,
                "config": {
                    "administrator": self.config.administrator,
                    "transferable": self.config.transferable,
                    "collection_name": self.config.collection_name,
                    "collection_symbol": self.config.collection_symbol,
                    "reward_symbol": self.config.reward_symbol,
                },
                "lifecycle": self.lifecycle.to_dict(),
                "vesting": self.vesting.to_dict(),
                "registry": self.registry.to_dict() if hasattr(self.registry, "to_dict") else None,
                "reward_ledger": (
                    self.reward_ledger.to_dict() if hasattr(self.reward_ledger, "to_dict") else None
                ),
            }

    @classmethod
    def from_dict(
        cls,
        data: Dict[str, Any],
        time_provider: Optional[Callable[[], int]] = None,
        event_bus: Optional[EventBus] = None,
        metrics: Optional[LoyaltyMetrics] = None,
    ) -> "LoyaltyTokenContract":
        """Rebuild a contract from ``to_dict`` output."""
        if data.get("version") != STATE_VERSION:
            raise LoyaltyTokenError(f"unsupported state version {data.get('version')!r}")
        config = LoyaltyConfig(custody_address=data["address"], **data["config"])
        reward = RewardToken.from_dict(data["reward_ledger"]) if data.get("reward_ledger") else None
        contract = cls(
            config,
            reward_ledger=reward,
            time_provider=time_provider,
            event_bus=event_bus,
            metrics=metrics,
        )
        if data.get("registry"):
            contract.registry = NFTRegistry.from_dict(
                data["registry"], transfer_guard=contract.get_transferability
            )
            contract.lifecycle.registry = contract.registry
            contract.vesting.registry = contract.registry
        contract.lifecycle.restore(data["lifecycle"])
        contract.vesting.restore(data["vesting"])
        return contract

    def save(self, path: Path | str) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(self.to_dict(), indent=2, sort_keys=True))
        tmp_path.replace(path)
        logger.debug("Saved contract state to %s", path)

    @classmethod
    def load(cls, path: Path | str, **kwargs: Any) -> "LoyaltyTokenContract":
        data = json.loads(Path(path).read_text())
        return cls.from_dict(data, **kwargs)
