from __future__ import annotations

import pytest

from exchange_ledger.ledger.balances import InMemoryBalanceLedger
from exchange_ledger.ledger.errors import ValidationError
from exchange_ledger.utils.constants import MAX_ALLOWANCE, ZERO_ADDRESS


def test_transfer_moves_balance(ledger: InMemoryBalanceLedger) -> None:
    ledger.mint("alice", "usdc", 1_000)

    assert ledger.transfer("alice", "bob", "usdc", 400) is True
    assert ledger.balance_of("alice", "usdc") == 600
    assert ledger.balance_of("bob", "usdc") == 400
    assert ledger.total_supply("usdc") == 1_000


def test_transfer_refuses_overdraft_and_null_recipient(ledger: InMemoryBalanceLedger) -> None:
    ledger.mint("alice", "usdc", 100)

    assert ledger.transfer("alice", "bob", "usdc", 101) is False
    assert ledger.transfer("alice", ZERO_ADDRESS, "usdc", 10) is False
    assert ledger.transfer("alice", "", "usdc", 10) is False
    assert ledger.balance_of("alice", "usdc") == 100
    assert ledger.balance_of("bob", "usdc") == 0


def test_denominations_are_independent(ledger: InMemoryBalanceLedger) -> None:
    ledger.mint("alice", "usdc", 50)
    ledger.mint("alice", "eurc", 70)

    assert ledger.transfer("alice", "bob", "eurc", 70) is True
    assert ledger.snapshot() == {"usdc": {"alice": 50}, "eurc": {"bob": 70}}
    assert ledger.snapshot("usdc") == {"usdc": {"alice": 50}}


def test_transfer_from_consumes_allowance(ledger: InMemoryBalanceLedger) -> None:
    ledger.mint("alice", "usdc", 1_000)
    ledger.approve("alice", "pool", "usdc", 300)

    assert ledger.transfer_from("pool", "alice", "pool", "usdc", 200) is True
    assert ledger.allowance("alice", "pool", "usdc") == 100
    assert ledger.transfer_from("pool", "alice", "pool", "usdc", 200) is False
    assert ledger.balance_of("pool", "usdc") == 200


def test_transfer_from_without_balance_keeps_allowance(ledger: InMemoryBalanceLedger) -> None:
    ledger.mint("alice", "usdc", 10)
    ledger.approve("alice", "pool", "usdc", 300)

    assert ledger.transfer_from("pool", "alice", "pool", "usdc", 20) is False
    assert ledger.allowance("alice", "pool", "usdc") == 300


def test_max_allowance_is_never_decremented(ledger: InMemoryBalanceLedger) -> None:
    ledger.mint("swap", "usdc", 500)
    ledger.approve("swap", "pool", "usdc", MAX_ALLOWANCE)

    assert ledger.transfer_from("pool", "swap", "pool", "usdc", 500) is True
    assert ledger.allowance("swap", "pool", "usdc") == MAX_ALLOWANCE


@pytest.mark.parametrize("amount", [-1, 1.5, True])
def test_rejects_non_integer_or_negative_amounts(ledger: InMemoryBalanceLedger, amount) -> None:
    with pytest.raises(ValidationError):
        ledger.mint("alice", "usdc", amount)


def test_mint_to_zero_address_is_rejected(ledger: InMemoryBalanceLedger) -> None:
    with pytest.raises(ValidationError):
        ledger.mint(ZERO_ADDRESS, "usdc", 1)
