from __future__ import annotations

from datetime import datetime

import pytest

from exchange_ledger.datalake.schemas import LockPosition
from exchange_ledger.ledger.balances import InMemoryBalanceLedger
from exchange_ledger.ledger.errors import (
    AuthorizationError,
    InsufficientBalanceError,
    ManagedTokenSweepError,
    StateGateError,
    ValidationError,
)
from exchange_ledger.ledger.lock import TokenLock
from exchange_ledger.ledger.roles import RoleAuthority
from exchange_ledger.ledger.transaction import TransactionManager
from exchange_ledger.monitoring.event_bus import EventBus, EventType
from exchange_ledger.utils.constants import ZERO_ADDRESS

AMOUNT = 100 * 10**6


def _lock(transactions: TransactionManager, ledger: InMemoryBalanceLedger, funded: int = AMOUNT) -> TokenLock:
    lock = TokenLock(
        "lock",
        "usdc",
        ledger=ledger,
        authority=RoleAuthority(transactions, "admin", name="lock"),
        transactions=transactions,
    )
    if funded:
        ledger.mint("admin", "usdc", funded)
        ledger.approve("admin", lock.address, "usdc", funded)
    return lock


def test_lock_unlock_claim_lifecycle(
    transactions: TransactionManager, ledger: InMemoryBalanceLedger, bus: EventBus, now: datetime
) -> None:
    lock = _lock(transactions, ledger)

    lock.lock("admin", "alice", AMOUNT)
    assert lock.get_locked_token("alice") == LockPosition(date=now, amount=AMOUNT, locked=True, claimed=False)
    assert lock.total_locked_token_amount == AMOUNT
    assert ledger.balance_of("lock", "usdc") == AMOUNT

    lock.unlock("admin", "alice")
    assert lock.get_locked_token("alice").locked is False

    assert lock.claim("alice") == AMOUNT
    assert lock.get_locked_token("alice") == LockPosition(date=now, amount=0, locked=False, claimed=True)
    assert lock.total_locked_token_amount == 0
    assert ledger.balance_of("alice", "usdc") == AMOUNT

    bus.flush()
    expected = {"claimer": "alice", "date": now, "amount": AMOUNT}
    assert bus.events(EventType.LOCKED)[-1].payload == {**expected, "total_locked_token_amount": AMOUNT}
    assert bus.events(EventType.UNLOCKED)[-1].payload == {**expected, "total_locked_token_amount": AMOUNT}
    assert bus.events(EventType.CLAIMED)[-1].payload == {**expected, "total_locked_token_amount": 0}


def test_lock_guards(transactions: TransactionManager, ledger: InMemoryBalanceLedger) -> None:
    lock = _lock(transactions, ledger)

    with pytest.raises(AuthorizationError, match="allowed to lock tokens"):
        lock.lock("alice", "alice", AMOUNT)
    # Amount is checked before the claimer address.
    with pytest.raises(ValidationError, match="Lock amount must be greater than zero"):
        lock.lock("admin", ZERO_ADDRESS, 0)
    with pytest.raises(ValidationError, match="Claimer address cannot be the zero address"):
        lock.lock("admin", ZERO_ADDRESS, AMOUNT)
    with pytest.raises(InsufficientBalanceError, match="does not have enough tokens"):
        lock.lock("admin", "alice", AMOUNT + 1)

    lock.lock("admin", "alice", AMOUNT // 2)
    with pytest.raises(ValidationError, match="already locked"):
        lock.lock("admin", "alice", AMOUNT // 2)


def test_unlock_guards(transactions: TransactionManager, ledger: InMemoryBalanceLedger) -> None:
    lock = _lock(transactions, ledger)
    lock.lock("admin", "alice", AMOUNT)

    with pytest.raises(AuthorizationError, match="allowed to unlock tokens"):
        lock.unlock("alice", "alice")
    with pytest.raises(ValidationError, match="Claimer address cannot be the zero address"):
        lock.unlock("admin", ZERO_ADDRESS)
    with pytest.raises(ValidationError, match="are not locked"):
        lock.unlock("admin", "bob")


def test_claim_guards(transactions: TransactionManager, ledger: InMemoryBalanceLedger) -> None:
    lock = _lock(transactions, ledger)
    lock.lock("admin", "alice", AMOUNT)

    with pytest.raises(ValidationError, match="not unlocked yet"):
        lock.claim("alice")
    with pytest.raises(ValidationError, match="not unlocked yet"):
        lock.claim("bob")

    lock.unlock("admin", "alice")
    lock.set_claiming_enabled("admin", False)
    with pytest.raises(StateGateError, match="Claiming is currently disabled"):
        lock.claim("alice")

    lock.set_claiming_enabled("admin", True)
    lock.claim("alice")
    with pytest.raises(ValidationError, match="already claimed"):
        lock.claim("alice")


def test_relock_after_claim_resets_claimed_flag(
    transactions: TransactionManager, ledger: InMemoryBalanceLedger
) -> None:
    lock = _lock(transactions, ledger, funded=2 * AMOUNT)
    lock.lock("admin", "alice", AMOUNT)
    lock.unlock("admin", "alice")
    lock.claim("alice")

    lock.lock("admin", "alice", AMOUNT)

    position = lock.get_locked_token("alice")
    assert position.locked is True
    assert position.claimed is False
    assert position.amount == AMOUNT


def test_set_claiming_enabled_requires_admin(
    transactions: TransactionManager, ledger: InMemoryBalanceLedger, bus: EventBus
) -> None:
    lock = _lock(transactions, ledger, funded=0)

    with pytest.raises(AuthorizationError, match="enable or disable claiming"):
        lock.set_claiming_enabled("alice", False)

    lock.set_claiming_enabled("admin", False)
    bus.flush()
    assert bus.events(EventType.CLAIMING_ENABLED)[-1].payload == {"enabled": False}


def test_locked_token_cannot_be_swept(transactions: TransactionManager, ledger: InMemoryBalanceLedger) -> None:
    lock = _lock(transactions, ledger)
    lock.lock("admin", "alice", AMOUNT)

    with pytest.raises(ManagedTokenSweepError, match="Cannot withdraw the locked tokens"):
        lock.withdraw_tokens("admin", "usdc")
    assert lock.total_locked_token_amount == AMOUNT
