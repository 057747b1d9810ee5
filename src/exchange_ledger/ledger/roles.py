"""Role-based authorization service injected into each component."""

from __future__ import annotations

from enum import Enum
from typing import Dict, List, Set

from ..monitoring.event_bus import EventType
from ..utils.constants import is_null_address
from .errors import AuthorizationError, ValidationError
from .transaction import TransactionManager


class Role(str, Enum):
    """Capabilities a subject can hold on a component."""

    ADMIN = "ADMIN"
    DEPOSITOR = "DEPOSITOR"
    WITHDRAWER = "WITHDRAWER"
    MINTER = "MINTER"

    @property
    def is_root(self) -> bool:
        return self is Role.ADMIN


# ADMIN is the root: it administers itself and every subordinate role.
ROLE_ADMINS: Dict[Role, Role] = {role: Role.ADMIN for role in Role}


class RoleAuthority:
    """Maps (subject, role) to granted/revoked for one component."""

    def __init__(self, transactions: TransactionManager, admin: str, *, name: str = "authority") -> None:
        if is_null_address(admin):
            raise ValidationError("Administrator address cannot be the zero address")
        self._transactions = transactions
        self._name = name
        self._grants: Dict[Role, Set[str]] = {role: set() for role in Role}
        with transactions.atomic("grant_role", source=name) as tx:
            self._grant(tx, Role.ADMIN, admin, sender=admin)

    @property
    def name(self) -> str:
        return self._name

    def has_role(self, subject: str, role: Role) -> bool:
        return subject in self._grants[Role(role)]

    def has_any_role(self, subject: str, *roles: Role) -> bool:
        return any(self.has_role(subject, role) for role in roles)

    def require(self, subject: str, *roles: Role, message: str) -> None:
        """Raise ``AuthorizationError`` unless ``subject`` holds one of ``roles``."""

        if not self.has_any_role(subject, *roles):
            raise AuthorizationError(message)

    def get_role_admin(self, role: Role) -> Role:
        return ROLE_ADMINS[Role(role)]

    def members(self, role: Role) -> List[str]:
        return sorted(self._grants[Role(role)])

    def grant_role(self, caller: str, role: Role, subject: str) -> None:
        role = Role(role)
        with self._transactions.atomic("grant_role", source=self._name) as tx:
            self._require_role_admin(caller, role)
            if is_null_address(subject):
                raise ValidationError("Role subject cannot be the zero address")
            self._grant(tx, role, subject, sender=caller)

    def revoke_role(self, caller: str, role: Role, subject: str) -> None:
        role = Role(role)
        with self._transactions.atomic("revoke_role", source=self._name) as tx:
            self._require_role_admin(caller, role)
            self._revoke(tx, role, subject, sender=caller)

    def renounce_role(self, caller: str, role: Role) -> None:
        """Drop a role the caller holds; nobody can renounce on someone else's behalf."""

        role = Role(role)
        with self._transactions.atomic("renounce_role", source=self._name) as tx:
            self._revoke(tx, role, caller, sender=caller)

    def _require_role_admin(self, caller: str, role: Role) -> None:
        admin_role = self.get_role_admin(role)
        if not self.has_role(caller, admin_role):
            raise AuthorizationError(
                f"Only holders of {admin_role.value} are allowed to manage the {role.value} role"
            )

    def _grant(self, tx, role: Role, subject: str, *, sender: str) -> None:
        members = self._grants[role]
        if subject in members:
            return
        members.add(subject)
        tx.on_rollback(lambda: members.discard(subject))
        tx.emit(EventType.ROLE_GRANTED, {"role": role.value, "account": subject, "sender": sender}, source=self._name)

    def _revoke(self, tx, role: Role, subject: str, *, sender: str) -> None:
        members = self._grants[role]
        if subject not in members:
            return
        members.discard(subject)
        tx.on_rollback(lambda: members.add(subject))
        tx.emit(EventType.ROLE_REVOKED, {"role": role.value, "account": subject, "sender": sender}, source=self._name)


__all__ = ["ROLE_ADMINS", "Role", "RoleAuthority"]
