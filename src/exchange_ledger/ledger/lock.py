"""Administrator-controlled time-lock holding tokens for a claimer."""

from __future__ import annotations

from typing import Dict

from ..datalake.schemas import LockPosition
from ..monitoring.event_bus import EventType
from ..utils.constants import is_null_address
from .balances import BalanceLedger
from .custody import CustodialAccount
from .errors import InsufficientBalanceError, StateGateError, ValidationError
from .roles import RoleAuthority
from .transaction import TransactionManager


class TokenLock(CustodialAccount):
    """Positions move ``locked -> unlocked -> claimed``; only admins lock and unlock."""

    component = "lock"
    managed_token_label = "locked"

    def __init__(
        self,
        address: str,
        token_address: str,
        *,
        ledger: BalanceLedger,
        authority: RoleAuthority,
        transactions: TransactionManager,
        native_token: str = "native",
        claiming_enabled: bool = True,
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
        self.claiming_enabled = claiming_enabled
        self.total_locked_token_amount = 0
        self._positions: Dict[str, LockPosition] = {}

    @property
    def token_address(self) -> str:
        return self._managed_token

    def get_locked_token(self, claimer: str) -> LockPosition:
        position = self._positions.get(claimer)
        if position is None:
            return LockPosition()
        return LockPosition(position.date, position.amount, position.locked, position.claimed)

    def lock(self, caller: str, claimer: str, amount: int) -> None:
        with self._atomic("lock") as tx:
            self._require_admin(caller, "Only administrators are allowed to lock tokens")
            if amount <= 0:
                raise ValidationError("Lock amount must be greater than zero")
            if is_null_address(claimer):
                raise ValidationError("Claimer address cannot be the zero address")
            if self.get_locked_token(claimer).locked:
                raise ValidationError("Claimer address tokens are already locked")
            if self._ledger.balance_of(caller, self.token_address) < amount:
                raise InsufficientBalanceError("This address does not have enough tokens")

            tx.assign_item(
                self._positions,
                claimer,
                LockPosition(date=tx.timestamp, amount=amount, locked=True, claimed=False),
            )
            tx.assign(self, "total_locked_token_amount", self.total_locked_token_amount + amount)
            self._emit_position(tx, EventType.LOCKED, claimer, amount)
            self._pull(caller, amount)
            self._publish_gauge(tx, "total_locked", lambda: self.total_locked_token_amount)
        self._logger.info("Locked %d %s for %s", amount, self.token_address, claimer)

    def unlock(self, caller: str, claimer: str) -> None:
        with self._atomic("unlock") as tx:
            self._require_admin(caller, "Only administrators are allowed to unlock tokens")
            if is_null_address(claimer):
                raise ValidationError("Claimer address cannot be the zero address")
            position = self.get_locked_token(claimer)
            if not position.locked:
                raise ValidationError("Claimer address tokens are not locked")

            position.locked = False
            tx.assign_item(self._positions, claimer, position)
            self._emit_position(tx, EventType.UNLOCKED, claimer, position.amount)

    def claim(self, caller: str) -> int:
        with self._atomic("claim") as tx:
            if not self.claiming_enabled:
                raise StateGateError("Claiming is currently disabled")
            position = self.get_locked_token(caller)
            if position.claimed:
                raise ValidationError("Claimer address already claimed tokens")
            if position.locked or position.amount <= 0:
                raise ValidationError("Claimer address tokens are not unlocked yet")

            amount = position.amount
            tx.assign(self, "total_locked_token_amount", self.total_locked_token_amount - amount)
            position.amount = 0
            position.claimed = True
            tx.assign_item(self._positions, caller, position)
            self._emit_position(tx, EventType.CLAIMED, caller, amount)
            self._pay(caller, amount)
            self._publish_gauge(tx, "total_locked", lambda: self.total_locked_token_amount)
        self._logger.info("Claimed %d %s for %s", amount, self.token_address, caller)
        return amount

    def set_claiming_enabled(self, caller: str, enabled: bool) -> None:
        with self._atomic("set_claiming_enabled") as tx:
            self._require_admin(caller, "Only administrators are authorized to enable or disable claiming")
            tx.assign(self, "claiming_enabled", bool(enabled))
            self._emit(tx, EventType.CLAIMING_ENABLED, {"enabled": bool(enabled)})

    def _emit_position(self, tx, event_type: EventType, claimer: str, amount: int) -> None:
        self._emit(
            tx,
            event_type,
            {
                "claimer": claimer,
                "date": tx.timestamp,
                "amount": amount,
                "total_locked_token_amount": self.total_locked_token_amount,
            },
        )


__all__ = ["TokenLock"]
