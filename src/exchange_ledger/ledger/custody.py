"""Shared behaviour for components that hold funds under their own address."""

from __future__ import annotations

from contextlib import AbstractContextManager
from typing import Any, Callable, Dict, Optional

from ..monitoring.event_bus import EventType
from ..monitoring.logger import get_logger
from ..utils.constants import is_null_address
from .balances import BalanceLedger
from .errors import (
    InsufficientBalanceError,
    ManagedTokenSweepError,
    TransferFailureError,
    ValidationError,
)
from .roles import Role, RoleAuthority
from .transaction import Transaction, TransactionManager


class CustodialAccount:
    """Base class for pools, stake ledgers, the swap engine and the time-lock.

    Subclasses set ``component`` (prefix for operation names and metrics) and,
    when they custody a single denomination, pass it as ``managed_token`` so
    the administrator sweep can never reach it.
    """

    component = "custody"
    managed_token_label = "managed"

    def __init__(
        self,
        address: str,
        *,
        ledger: BalanceLedger,
        authority: RoleAuthority,
        transactions: TransactionManager,
        native_token: str = "native",
        managed_token: Optional[str] = None,
    ) -> None:
        if is_null_address(address):
            raise ValidationError(f"{self.component.capitalize()} address cannot be the zero address")
        self._address = address
        self._ledger = ledger
        self._authority = authority
        self._transactions = transactions
        self._native_token = native_token
        self._managed_token = managed_token
        self._logger = get_logger(f"{__name__}.{self.component}")

    @property
    def address(self) -> str:
        return self._address

    @property
    def authority(self) -> RoleAuthority:
        return self._authority

    @property
    def managed_token(self) -> Optional[str]:
        return self._managed_token

    def balance_of(self, token: str) -> int:
        """Ledger balance held at this component's address."""

        return self._ledger.balance_of(self._address, token)

    def withdraw_native_tokens(self, caller: str) -> int:
        """Send every native-currency unit held here to the calling administrator.

        Refused when the native currency is this component's managed token.
        """

        with self._atomic("withdraw_native_tokens") as tx:
            self._require_admin(caller, "Only administrators are allowed to withdraw native tokens")
            if self._managed_token is not None and self._native_token == self._managed_token:
                raise ManagedTokenSweepError(f"Cannot withdraw the {self.managed_token_label} tokens")
            amount = self.balance_of(self._native_token)
            if amount <= 0:
                raise InsufficientBalanceError("Insufficient tokens to withdraw")
            self._pay(caller, amount, self._native_token)
            self._emit(tx, EventType.NATIVE_TOKENS_WITHDRAWN, {"receiver": caller, "amount": amount})
        self._logger.info("Swept %d native units from %s", amount, self._address)
        return amount

    def withdraw_tokens(self, caller: str, token: str) -> int:
        """Sweep a stray denomination; the managed token is always refused."""

        with self._atomic("withdraw_tokens") as tx:
            self._require_admin(caller, "Only administrators are allowed to withdraw tokens")
            if is_null_address(token):
                raise ValidationError("Token contract address cannot be the zero address")
            if self._managed_token is not None and token == self._managed_token:
                raise ManagedTokenSweepError(f"Cannot withdraw the {self.managed_token_label} tokens")
            amount = self.balance_of(token)
            if amount <= 0:
                raise InsufficientBalanceError("Insufficient tokens to withdraw")
            self._pay(caller, amount, token)
            self._emit(tx, EventType.TOKENS_WITHDRAWN, {"token": token, "receiver": caller, "amount": amount})
        self._logger.info("Swept %d %s from %s", amount, token, self._address)
        return amount

    def _atomic(self, operation: str) -> AbstractContextManager[Transaction]:
        return self._transactions.atomic(f"{self.component}.{operation}", source=self._address)

    def _emit(self, tx: Transaction, event_type: EventType, payload: Dict[str, Any]) -> None:
        # Nested operations join an outer transaction; keep this component as the source.
        tx.emit(event_type, payload, source=self._address)

    def _publish_gauge(self, tx: Transaction, name: str, read: Callable[[], int]) -> None:
        """Refresh ``<component>.<address>.<name>`` once ``tx`` commits."""

        metric = f"{self.component}.{self._address}.{name}"
        tx.on_commit(lambda: self._transactions.metrics.gauge(metric, read()))

    def _require_admin(self, caller: str, message: str) -> None:
        self._authority.require(caller, Role.ADMIN, message=message)

    def _pull(self, source: str, amount: int, token: Optional[str] = None) -> None:
        """Move ``amount`` from ``source`` into this account using its permission."""

        denomination = token or self._managed_token
        if not self._ledger.transfer_from(self._address, source, self._address, denomination, amount):
            raise TransferFailureError(f"Transfer of {amount} {denomination} from {source} failed")

    def _pay(self, recipient: str, amount: int, token: Optional[str] = None) -> None:
        denomination = token or self._managed_token
        if not self._ledger.transfer(self._address, recipient, denomination, amount):
            raise TransferFailureError(f"Transfer of {amount} {denomination} to {recipient} failed")


__all__ = ["CustodialAccount"]
