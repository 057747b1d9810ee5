from __future__ import annotations

import pytest

from exchange_ledger.ledger.errors import AuthorizationError, ValidationError
from exchange_ledger.ledger.roles import Role, RoleAuthority
from exchange_ledger.ledger.transaction import TransactionManager
from exchange_ledger.monitoring.event_bus import EventBus, EventType
from exchange_ledger.utils.constants import ZERO_ADDRESS


def _authority(transactions: TransactionManager) -> RoleAuthority:
    return RoleAuthority(transactions, "admin", name="pool:usdc")


def test_constructor_grants_admin_root(transactions: TransactionManager, bus: EventBus) -> None:
    authority = _authority(transactions)

    assert authority.has_role("admin", Role.ADMIN)
    assert Role.ADMIN.is_root
    assert not Role.DEPOSITOR.is_root
    assert all(authority.get_role_admin(role) is Role.ADMIN for role in Role)
    bus.flush()
    granted = bus.events(EventType.ROLE_GRANTED)
    assert granted[-1].payload == {"role": "ADMIN", "account": "admin", "sender": "admin"}
    assert granted[-1].source == "pool:usdc"


def test_admin_grants_and_revokes_subordinate_roles(transactions: TransactionManager, bus: EventBus) -> None:
    authority = _authority(transactions)

    authority.grant_role("admin", Role.DEPOSITOR, "swap")
    assert authority.has_role("swap", Role.DEPOSITOR)
    assert authority.has_any_role("swap", Role.ADMIN, Role.DEPOSITOR)
    assert authority.members(Role.DEPOSITOR) == ["swap"]

    authority.revoke_role("admin", Role.DEPOSITOR, "swap")
    assert not authority.has_role("swap", Role.DEPOSITOR)
    bus.flush()
    revoked = bus.events(EventType.ROLE_REVOKED)
    assert revoked[-1].payload == {"role": "DEPOSITOR", "account": "swap", "sender": "admin"}


def test_admin_administers_itself(transactions: TransactionManager) -> None:
    authority = _authority(transactions)

    authority.grant_role("admin", Role.ADMIN, "second-admin")
    authority.revoke_role("second-admin", Role.ADMIN, "admin")

    assert authority.members(Role.ADMIN) == ["second-admin"]


def test_non_admin_cannot_grant(transactions: TransactionManager) -> None:
    authority = _authority(transactions)
    authority.grant_role("admin", Role.DEPOSITOR, "depositor")

    with pytest.raises(AuthorizationError):
        authority.grant_role("depositor", Role.DEPOSITOR, "mallory")
    assert not authority.has_role("mallory", Role.DEPOSITOR)


def test_require_raises_with_message(transactions: TransactionManager) -> None:
    authority = _authority(transactions)

    with pytest.raises(AuthorizationError, match="not allowed"):
        authority.require("mallory", Role.ADMIN, Role.WITHDRAWER, message="not allowed")


def test_renounce_only_affects_caller(transactions: TransactionManager) -> None:
    authority = _authority(transactions)
    authority.grant_role("admin", Role.MINTER, "minter")

    authority.renounce_role("minter", Role.MINTER)

    assert not authority.has_role("minter", Role.MINTER)
    assert authority.has_role("admin", Role.ADMIN)


def test_duplicate_grant_emits_nothing(transactions: TransactionManager, bus: EventBus) -> None:
    authority = _authority(transactions)
    authority.grant_role("admin", Role.WITHDRAWER, "swap")
    bus.flush()
    before = len(bus.events(EventType.ROLE_GRANTED))

    authority.grant_role("admin", Role.WITHDRAWER, "swap")

    bus.flush()
    assert len(bus.events(EventType.ROLE_GRANTED)) == before


def test_zero_subject_and_zero_admin_are_rejected(transactions: TransactionManager) -> None:
    authority = _authority(transactions)

    with pytest.raises(ValidationError):
        authority.grant_role("admin", Role.DEPOSITOR, ZERO_ADDRESS)
    with pytest.raises(ValidationError):
        RoleAuthority(transactions, ZERO_ADDRESS)
