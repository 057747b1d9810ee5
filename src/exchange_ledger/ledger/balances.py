"""Multi-denomination balance ledger with transfer permissions."""

from __future__ import annotations

from typing import Dict, Optional, Protocol, Tuple

from ..monitoring.logger import get_logger
from ..utils.constants import MAX_ALLOWANCE, is_null_address
from .errors import ValidationError
from .transaction import TransactionManager


class BalanceLedger(Protocol):
    """Debit/credit interface the contract components are written against."""

    def balance_of(self, account: str, token: str) -> int:
        ...

    def transfer(self, source: str, recipient: str, token: str, amount: int) -> bool:
        ...

    def approve(self, owner: str, spender: str, token: str, amount: int) -> None:
        ...

    def allowance(self, owner: str, spender: str, token: str) -> int:
        ...

    def transfer_from(self, spender: str, source: str, recipient: str, token: str, amount: int) -> bool:
        ...


class InMemoryBalanceLedger:
    """Balance ledger kept in process memory.

    Mutations are journalled on the active transaction, so a failed operation
    leaves every balance and allowance as it found them. Transfers report
    refusal by returning ``False``; balances can never go negative.
    """

    def __init__(self, transactions: TransactionManager) -> None:
        self._transactions = transactions
        self._balances: Dict[Tuple[str, str], int] = {}
        self._allowances: Dict[Tuple[str, str, str], int] = {}
        self._supply: Dict[str, int] = {}
        self._logger = get_logger(__name__)

    @property
    def transactions(self) -> TransactionManager:
        return self._transactions

    def balance_of(self, account: str, token: str) -> int:
        return self._balances.get((account, token), 0)

    def total_supply(self, token: str) -> int:
        return self._supply.get(token, 0)

    def allowance(self, owner: str, spender: str, token: str) -> int:
        return self._allowances.get((owner, spender, token), 0)

    def mint(self, account: str, token: str, amount: int) -> None:
        """Create ``amount`` new units of ``token`` for ``account``."""

        _require_amount(amount)
        if is_null_address(account):
            raise ValidationError("Mint address cannot be the zero address")
        with self._transactions.atomic("mint") as tx:
            tx.assign_item(self._balances, (account, token), self.balance_of(account, token) + amount)
            tx.assign_item(self._supply, token, self.total_supply(token) + amount)

    def approve(self, owner: str, spender: str, token: str, amount: int) -> None:
        _require_amount(amount)
        if is_null_address(spender):
            raise ValidationError("Approve address cannot be the zero address")
        with self._transactions.atomic("approve") as tx:
            tx.assign_item(self._allowances, (owner, spender, token), amount)

    def transfer(self, source: str, recipient: str, token: str, amount: int) -> bool:
        _require_amount(amount)
        if is_null_address(recipient):
            self._logger.debug("Refusing transfer of %s to the zero address", token)
            return False
        with self._transactions.atomic("transfer") as tx:
            balance = self.balance_of(source, token)
            if balance < amount:
                self._logger.debug(
                    "Refusing transfer of %d %s from %s: balance %d", amount, token, source, balance
                )
                return False
            tx.assign_item(self._balances, (source, token), balance - amount)
            tx.assign_item(self._balances, (recipient, token), self.balance_of(recipient, token) + amount)
            return True

    def transfer_from(self, spender: str, source: str, recipient: str, token: str, amount: int) -> bool:
        """Move ``source`` funds on behalf of ``spender`` within its allowance."""

        _require_amount(amount)
        with self._transactions.atomic("transfer_from") as tx:
            allowed = self.allowance(source, spender, token)
            if allowed < amount:
                self._logger.debug(
                    "Refusing transfer of %d %s by %s: allowance %d", amount, token, spender, allowed
                )
                return False
            if self.balance_of(source, token) < amount or is_null_address(recipient):
                return False
            if allowed != MAX_ALLOWANCE:
                tx.assign_item(self._allowances, (source, spender, token), allowed - amount)
            return self.transfer(source, recipient, token, amount)

    def snapshot(self, token: Optional[str] = None) -> Dict[str, Dict[str, int]]:
        """Non-zero balances grouped by token."""

        grouped: Dict[str, Dict[str, int]] = {}
        for (account, denomination), balance in self._balances.items():
            if balance == 0 or (token is not None and denomination != token):
                continue
            grouped.setdefault(denomination, {})[account] = balance
        return grouped


def _require_amount(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValidationError(f"Amounts must be integers in base units, got {amount!r}")
    if amount < 0:
        raise ValidationError("Amounts cannot be negative")


__all__ = ["BalanceLedger", "InMemoryBalanceLedger"]
