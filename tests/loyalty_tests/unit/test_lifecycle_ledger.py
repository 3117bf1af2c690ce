"""
Unit tests for LifecycleLedger mint/burn/transferability rules.
"""

import pytest

from loyalty_tokens.core.constants import ZERO_ADDRESS
from loyalty_tokens.core.contracts.erc721 import NFTRegistry
from loyalty_tokens.core.exceptions import (
    AlreadyBurnt,
    InvalidTarget,
    NotFound,
    Unauthorized,
)
from loyalty_tokens.core.lifecycle import LifecycleLedger

ADMIN = "0xAdmin"
U1 = "0xuser1"
U2 = "0xuser2"


@pytest.fixture
def emitted():
    return []


@pytest.fixture
def ledger(emitted):
    registry = NFTRegistry(name="Loyalty", symbol="LOYAL", owner=ADMIN)
    return LifecycleLedger(ADMIN, registry, emit=emitted.append)


def test_scenario_mint_then_double_burn(ledger, emitted):
    token_id = ledger.mint(ADMIN, U1)
    assert token_id == 1
    assert ledger.is_burnt(1) is False

    ledger.burn(U1, 1)
    assert ledger.is_burnt(1) is True

    with pytest.raises(AlreadyBurnt):
        ledger.burn(U1, 1)

    assert [e.event_type for e in emitted] == ["Minted", "Burned"]
    assert emitted[0].data == {"identity": U1, "token_id": 1}
    assert emitted[1].data == {"caller": U1, "token_id": 1}


def test_token_zero_is_reserved_and_burnt(ledger):
    assert ledger.is_burnt(0) is True
    with pytest.raises(AlreadyBurnt):
        ledger.burn(U1, 0)
    assert ledger.mint(ADMIN, U1) == 1


def test_unminted_ids_read_as_not_burnt(ledger):
    assert ledger.is_burnt(42) is False
    assert ledger.is_burnt(-1) is False


def test_mint_ids_strictly_increase_and_are_not_reused(ledger):
    first = ledger.mint(ADMIN, U1)
    second = ledger.mint(ADMIN, U2)
    ledger.burn(U1, first)
    third = ledger.mint(ADMIN, U1)
    assert (first, second, third) == (1, 2, 3)
    assert ledger.minted_count == 3


def test_admin_check_is_case_insensitive(ledger):
    assert ledger.mint(ADMIN.upper(), U1) == 1


def test_mint_by_non_admin_is_rejected_without_state_change(ledger, emitted):
    with pytest.raises(Unauthorized):
        ledger.mint(U1, U1)
    assert ledger.next_token_id == 1
    assert ledger.registry.total_supply() == 0
    assert emitted == []


@pytest.mark.parametrize("target", ["", None, ZERO_ADDRESS])
def test_mint_rejects_empty_target(ledger, target):
    with pytest.raises(InvalidTarget):
        ledger.mint(ADMIN, target)
    assert ledger.next_token_id == 1


def test_burn_requires_owner_or_approval(ledger):
    ledger.mint(ADMIN, U1)
    with pytest.raises(Unauthorized):
        ledger.burn(U2, 1)
    assert ledger.is_burnt(1) is False

    ledger.registry.approve(U1, U2, 1)
    ledger.burn(U2, 1)
    assert ledger.is_burnt(1) is True


def test_operator_can_burn(ledger):
    ledger.mint(ADMIN, U1)
    ledger.registry.set_approval_for_all(U1, U2, True)
    ledger.burn(U2, 1)
    assert ledger.is_burnt(1)


def test_burn_of_unminted_token_is_not_found(ledger):
    with pytest.raises(NotFound):
        ledger.burn(U1, 7)


def test_burn_removes_registry_record(ledger):
    ledger.mint(ADMIN, U1)
    ledger.burn(U1, 1)
    with pytest.raises(NotFound):
        ledger.registry.owner_of(1)
    assert ledger.registry.balance_of(U1) == 0


def test_transferability_is_admin_only(ledger, emitted):
    assert ledger.get_transferability() is False
    with pytest.raises(Unauthorized):
        ledger.set_transferability(U1, True)
    assert ledger.get_transferability() is False
    assert emitted == []

    ledger.set_transferability(ADMIN, True)
    assert ledger.get_transferability() is True
    assert emitted[-1].event_type == "TransferabilityChanged"
    assert emitted[-1].data["enabled"] is True


def test_restore_keeps_token_zero_burnt(ledger):
    ledger.mint(ADMIN, U1)
    snapshot = ledger.to_dict()
    ledger.restore({"burnt": {}, "next_token_id": 5})
    assert ledger.is_burnt(0) is True
    assert ledger.next_token_id == 5

    ledger.restore(snapshot)
    assert ledger.next_token_id == 2
    assert ledger.is_burnt(1) is False


def test_empty_administrator_rejected():
    with pytest.raises(InvalidTarget):
        LifecycleLedger("", NFTRegistry(name="L", symbol="L", owner=ADMIN))


def test_checkpoint_restores_counter_and_tombstones(ledger):
    ledger.mint(ADMIN, U1)
    undo = ledger.checkpoint(token_ids=(1,))

    ledger.burn(U1, 1)
    ledger.mint(ADMIN, U2)
    ledger.set_transferability(ADMIN, True)
    undo()

    assert ledger.is_burnt(1) is False
    assert ledger.next_token_id == 2
    assert 2 not in ledger.burnt
    assert ledger.get_transferability() is False
