"""Custodial pool for a single token denomination."""

from __future__ import annotations

from ..monitoring.event_bus import EventType
from ..utils.constants import is_null_address
from .balances import BalanceLedger
from .custody import CustodialAccount
from .errors import InsufficientBalanceError, StateGateError, ValidationError
from .roles import Role, RoleAuthority
from .transaction import TransactionManager


class Pool(CustodialAccount):
    """Holds one denomination and mirrors its ledger balance in ``pool_balance``.

    Deposits are limited to administrators and depositors and pulled from the
    caller with ``transfer_from``, so the depositor must have approved the
    pool beforehand. Withdrawals are limited to administrators and withdrawers.
    """

    component = "pool"
    managed_token_label = "pool"

    def __init__(
        self,
        address: str,
        token_address: str,
        *,
        ledger: BalanceLedger,
        authority: RoleAuthority,
        transactions: TransactionManager,
        native_token: str = "native",
        depositing_enabled: bool = True,
    ) -> None:
        if is_null_address(token_address):
            raise ValidationError("Token contract address cannot be the zero address")
        super().__init__(
            address,
            ledger=ledger,
            authority=authority,
            transactions=transactions,
            native_token=native_token,
            managed_token=token_address,
        )
        self.depositing_enabled = depositing_enabled
        self.pool_balance = 0

    @property
    def token_address(self) -> str:
        return self._managed_token

    def deposit(self, caller: str, amount: int) -> bool:
        with self._atomic("deposit") as tx:
            self._authority.require(
                caller,
                Role.ADMIN,
                Role.DEPOSITOR,
                message="Only administrators and authorized depositors are allowed to deposit tokens",
            )
            if not self.depositing_enabled:
                raise StateGateError("Depositing is currently disabled")
            if amount <= 0:
                raise ValidationError("Deposit amount must be greater than zero")
            if self._ledger.balance_of(caller, self.token_address) < amount:
                raise InsufficientBalanceError("Token balance is insufficient for the desired deposit")

            tx.assign(self, "pool_balance", self.pool_balance + amount)
            self._emit(
                tx,
                EventType.DEPOSITED,
                {"depositor": caller, "amount": amount, "pool_balance": self.pool_balance},
            )
            self._pull(caller, amount)
            self._publish_gauge(tx, "balance", lambda: self.pool_balance)
        self._logger.debug("Deposited %d %s into %s", amount, self.token_address, self._address)
        return True

    def withdraw(self, caller: str, receiver: str, amount: int) -> bool:
        with self._atomic("withdraw") as tx:
            self._authority.require(
                caller,
                Role.ADMIN,
                Role.WITHDRAWER,
                message="Only administrators and authorized withdrawers are allowed to withdraw tokens",
            )
            if is_null_address(receiver):
                raise ValidationError("Withdraw address cannot be the zero address")
            if amount <= 0:
                raise ValidationError("Withdraw amount must be greater than zero")
            # Check both the cached counter and the real ledger balance.
            if self.balance_of(self.token_address) < amount or self.pool_balance < amount:
                raise InsufficientBalanceError("Insufficient tokens to withdraw")

            tx.assign(self, "pool_balance", self.pool_balance - amount)
            self._emit(
                tx,
                EventType.WITHDRAWN,
                {"receiver": receiver, "amount": amount, "pool_balance": self.pool_balance},
            )
            self._pay(receiver, amount)
            self._publish_gauge(tx, "balance", lambda: self.pool_balance)
        self._logger.debug("Withdrew %d %s from %s to %s", amount, self.token_address, self._address, receiver)
        return True

    def set_depositing_enabled(self, caller: str, enabled: bool) -> None:
        with self._atomic("set_depositing_enabled") as tx:
            self._require_admin(caller, "Only administrators are allowed to set depositing enabled or disabled")
            tx.assign(self, "depositing_enabled", bool(enabled))
            self._emit(tx, EventType.DEPOSITING_ENABLED, {"enabled": bool(enabled)})


__all__ = ["Pool"]
