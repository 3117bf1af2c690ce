"""
Unit tests for LoyaltyTokenContract: atomicity, notifications, queries,
metrics and persistence.
"""

import threading

import pytest

from loyalty_tokens.core.config import LoyaltyConfig
from loyalty_tokens.core.contracts.erc20 import InsufficientBalance, RewardToken
from loyalty_tokens.core.contracts.erc721 import NFTRegistry
from loyalty_tokens.core.exceptions import (
    AlreadyBurnt,
    LoyaltyTokenError,
    NotFound,
    NotYetVested,
    TransferFailed,
    TransfersDisabled,
    Unauthorized,
)
from loyalty_tokens.core.loyalty_contract import LoyaltyTokenContract


class DebitThenFailToken(RewardToken):
    """Reward ledger that mutates balances before failing."""

    def transfer(self, sender, recipient, amount):
        self.balances[sender.lower()] = 0
        raise InsufficientBalance("ledger offline")


class ConcurrentReadToken(RewardToken):
    """Reward ledger that lets another thread read the pool mid-payout."""

    contract = None

    def transfer(self, sender, recipient, amount):
        self.balances[sender.lower()] = 0
        self.reader = threading.Thread(
            target=lambda: self.observed.append(self.contract.pool_balance())
        )
        self.reader.start()
        self.reader.join(timeout=0.2)
        raise InsufficientBalance("ledger offline")


class UnacknowledgedBurnRegistry(NFTRegistry):
    """Registry that applies a burn and then reports a storage fault."""

    def burn(self, caller, token_id):
        super().burn(caller, token_id)
        raise ConnectionError("registry write not acknowledged")


def test_scenario_b_release_after_deadline(contract, admin, alice, custody, clock):
    token_id = contract.mint(admin, alice)
    deadline = contract.set_vesting_schedule(admin, token_id, 3600)
    assert contract.get_token_vesting_schedule(token_id) == clock.now() + 3600 == deadline

    clock.advance(1000)
    with pytest.raises(NotYetVested):
        contract.release_vested(alice, token_id)

    contract.fund_pool(admin, 500)
    clock.advance(2600)
    assert contract.release_vested(alice, token_id) == 500
    assert contract.reward_ledger.balance_of(alice) == 500
    assert contract.pool_balance() == 0

    last = contract.events[-1]
    assert last.event_type == "Vested"
    assert last.data == {"caller": alice, "token_id": token_id, "amount": 500}


def test_scenario_c_non_admin_mint_leaves_state_unchanged(contract, mallory):
    before = contract.to_dict()
    with pytest.raises(Unauthorized):
        contract.mint(mallory, mallory)
    assert contract.to_dict() == before
    assert contract.lifecycle.next_token_id == 1
    assert contract.events == []


def test_admin_only_operations_reject_others(contract, admin, alice, mallory):
    contract.mint(admin, alice)
    before = contract.to_dict()

    with pytest.raises(Unauthorized):
        contract.set_transferability(mallory, True)
    with pytest.raises(Unauthorized):
        contract.set_vesting_schedule(mallory, 1, 10)
    with pytest.raises(Unauthorized):
        contract.fund_pool(mallory, 10)

    assert contract.to_dict() == before
    assert contract.get_transferability() is False
    assert contract.get_token_vesting_schedule(1) is None


def test_events_follow_state_changes_in_order(contract, admin, alice):
    seen = []
    contract.event_bus.subscribe(lambda event: seen.append((event.event_type, contract.is_token_burned(1))))

    contract.mint(admin, alice)
    contract.burn(alice, 1)
    with pytest.raises(AlreadyBurnt):
        contract.burn(alice, 1)

    assert seen == [("Minted", False), ("Burned", True)]


def test_failing_subscriber_does_not_fail_operation(contract, admin, alice):
    def broken(event):
        raise RuntimeError("webhook down")

    delivered = []
    contract.event_bus.subscribe(broken)
    contract.event_bus.subscribe(delivered.append, "Minted")

    assert contract.mint(admin, alice) == 1
    assert [e.event_type for e in delivered] == ["Minted"]


def test_failed_payout_rolls_back_partial_ledger_changes(admin, alice, custody, clock):
    config = LoyaltyConfig(administrator=admin, custody_address=custody)
    reward = DebitThenFailToken(name="Reward", symbol="RWD", owner=admin)
    contract = LoyaltyTokenContract(config, reward_ledger=reward, time_provider=clock.now)

    contract.mint(admin, alice)
    contract.set_vesting_schedule(admin, 1, 0)
    contract.fund_pool(admin, 500)
    event_count = len(contract.events)

    with pytest.raises(TransferFailed):
        contract.release_vested(alice, 1)

    assert contract.pool_balance() == 500
    assert len(contract.events) == event_count
    assert contract.metrics.registry.get_sample_value(
        "loyalty_operations_rejected_total",
        {"operation": "release_vested", "kind": "TransferFailed"},
    ) == 1.0


def test_burnt_token_keeps_vesting_record(contract, admin, alice):
    contract.mint(admin, alice)
    deadline = contract.set_vesting_schedule(admin, 1, 60)
    contract.burn(alice, 1)

    assert contract.is_token_burned(1) is True
    assert contract.get_token_vesting_schedule(1) == deadline
    with pytest.raises(NotFound):
        contract.release_vested(alice, 1)


def test_queries_default_for_unknown_ids(contract):
    assert contract.is_token_burned(0) is True
    assert contract.is_token_burned(12345) is False
    assert contract.get_token_vesting_schedule(12345) is None
    assert contract.token_info(12345) == {
        "token_id": 12345,
        "owner": None,
        "burnt": False,
        "vesting_deadline": None,
        "vested": False,
    }


def test_transfers_follow_global_flag(contract, admin, alice, bob):
    contract.mint(admin, alice)
    with pytest.raises(TransfersDisabled):
        contract.transfer_from(alice, alice, bob, 1)
    assert contract.owner_of(1) == alice

    contract.set_transferability(admin, True)
    contract.transfer_from(alice, alice, bob, 1)
    assert contract.owner_of(1) == bob

    contract.set_transferability(admin, False)
    with pytest.raises(TransfersDisabled):
        contract.transfer_from(bob, bob, alice, 1)


def test_mint_and_burn_ignore_transferability(contract, admin, alice):
    assert contract.get_transferability() is False
    contract.mint(admin, alice)
    contract.burn(alice, 1)
    assert contract.is_token_burned(1)


def test_approved_address_can_release(contract, admin, alice, bob):
    contract.mint(admin, alice)
    contract.approve(alice, bob, 1)
    contract.set_vesting_schedule(admin, 1, 0)
    contract.fund_pool(admin, 75)
    assert contract.release_vested(bob, 1) == 75
    assert contract.reward_ledger.balance_of(bob) == 75


def test_metrics_count_successful_operations(contract, admin, alice):
    contract.mint(admin, alice)
    contract.mint(admin, alice)
    contract.burn(alice, 2)
    contract.set_vesting_schedule(admin, 1, 0)
    contract.fund_pool(admin, 20)
    contract.release_vested(alice, 1)

    registry = contract.metrics.registry
    assert registry.get_sample_value("loyalty_tokens_minted_total") == 2.0
    assert registry.get_sample_value("loyalty_tokens_burned_total") == 1.0
    assert registry.get_sample_value("loyalty_vesting_releases_total") == 1.0
    assert registry.get_sample_value("loyalty_reward_released_total") == 20.0
    assert registry.get_sample_value("loyalty_reward_pool_balance") == 0.0
    assert b"loyalty_tokens_minted_total" in contract.metrics.export()


def test_state_survives_save_and_load(tmp_path, contract, admin, alice, bob, clock):
    contract.mint(admin, alice)
    contract.mint(admin, bob)
    contract.burn(bob, 2)
    deadline = contract.set_vesting_schedule(admin, 1, 120)
    contract.set_transferability(admin, True)
    contract.fund_pool(admin, 40)

    path = tmp_path / "state.json"
    contract.save(path)
    restored = LoyaltyTokenContract.load(path, time_provider=clock.now)

    assert restored.address == contract.address
    assert restored.owner_of(1) == alice
    assert restored.is_token_burned(2) is True
    assert restored.is_token_burned(0) is True
    assert restored.get_token_vesting_schedule(1) == deadline
    assert restored.get_transferability() is True
    assert restored.pool_balance() == 40
    assert restored.mint(admin, bob) == 3

    restored.transfer_from(alice, alice, bob, 1)
    assert restored.owner_of(1) == bob


def test_unsupported_state_version(contract):
    data = contract.to_dict()
    data["version"] = 99
    with pytest.raises(LoyaltyTokenError):
        LoyaltyTokenContract.from_dict(data)


def test_concurrent_reader_never_sees_rolled_back_payout(admin, alice, custody, clock):
    config = LoyaltyConfig(administrator=admin, custody_address=custody)
    reward = ConcurrentReadToken(name="Reward", symbol="RWD", owner=admin)
    contract = LoyaltyTokenContract(config, reward_ledger=reward, time_provider=clock.now)
    reward.contract = contract
    reward.observed = []

    contract.mint(admin, alice)
    contract.set_vesting_schedule(admin, 1, 0)
    contract.fund_pool(admin, 500)

    with pytest.raises(TransferFailed):
        contract.release_vested(alice, 1)
    reward.reader.join(timeout=5)

    assert reward.observed == [500]
    assert contract.pool_balance() == 500


def test_ledger_outage_during_release_leaves_state_unchanged(admin, alice, custody, clock):
    class OfflineToken(RewardToken):
        def transfer(self, sender, recipient, amount):
            raise ConnectionError("ledger node unreachable")

    config = LoyaltyConfig(administrator=admin, custody_address=custody)
    reward = OfflineToken(name="Reward", symbol="RWD", owner=admin)
    contract = LoyaltyTokenContract(config, reward_ledger=reward, time_provider=clock.now)
    contract.mint(admin, alice)
    contract.set_vesting_schedule(admin, 1, 0)
    contract.fund_pool(admin, 500)
    before = contract.to_dict()
    event_count = len(contract.events)

    with pytest.raises(TransferFailed):
        contract.release_vested(alice, 1)

    assert contract.to_dict() == before
    assert len(contract.events) == event_count


def test_unexpected_registry_fault_restores_token_order(admin, alice, bob, custody, clock):
    config = LoyaltyConfig(administrator=admin, custody_address=custody)
    registry = UnacknowledgedBurnRegistry(name="Loyalty", symbol="LOYAL", owner=admin)
    contract = LoyaltyTokenContract(config, registry=registry, time_provider=clock.now)
    for holder in (alice, bob, alice):
        contract.mint(admin, holder)
    before = contract.to_dict()

    with pytest.raises(ConnectionError):
        contract.burn(alice, 1)

    assert contract.to_dict() == before
    assert registry.all_tokens == [1, 2, 3]
    assert registry.tokens_of_owner(alice) == [1, 3]
    assert contract.is_token_burned(1) is False
    assert [e.event_type for e in contract.events] == ["Minted"] * 3


def test_transactions_capture_only_touched_entries(
    contract, admin, alice, bob, mallory, monkeypatch
):
    def no_full_serialization():
        raise AssertionError("transaction serialized the whole component")

    for tid in range(1, 51):
        contract.mint(admin, alice if tid % 2 else bob)
    contract.set_vesting_schedule(admin, 7, 0)
    contract.fund_pool(admin, 90)
    before = contract.to_dict()

    components = (contract.lifecycle, contract.vesting, contract.registry, contract.reward_ledger)
    for component in components:
        monkeypatch.setattr(component, "to_dict", no_full_serialization)

    with pytest.raises(Unauthorized):
        contract.burn(mallory, 7)
    with pytest.raises(TransfersDisabled):
        contract.transfer_from(alice, alice, bob, 7)
    with pytest.raises(Unauthorized):
        contract.release_vested(bob, 7)
    with pytest.raises(Unauthorized):
        contract.fund_pool(mallory, 5)

    monkeypatch.undo()
    assert contract.to_dict() == before

    monkeypatch.setattr(contract.registry, "to_dict", no_full_serialization)
    contract.set_transferability(admin, True)
    contract.transfer_from(alice, alice, bob, 7)
    contract.burn(bob, 8)
    assert contract.release_vested(bob, 7) == 90
    assert contract.mint(admin, mallory) == 51
    monkeypatch.undo()

    assert contract.owner_of(7) == bob
    assert contract.is_token_burned(8) is True
    assert contract.registry.total_supply() == 50


def test_event_history_stays_bounded(contract, admin):
    for i in range(3000):
        contract.set_transferability(admin, i % 2 == 0)

    history = contract.events
    assert len(history) <= contract.event_bus.MAX_HISTORY
    assert history[-1].event_type == "TransferabilityChanged"
    assert history[-1].data["enabled"] is False
