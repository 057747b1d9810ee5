"""Staking ledger paying a fixed-point interest locked in at stake time."""

from __future__ import annotations

from typing import Dict

from ..datalake.schemas import StakePosition
from ..monitoring.event_bus import EventType
from ..utils.constants import PERCENT_SCALE, fixed_point_base, is_null_address
from .balances import BalanceLedger
from .custody import CustodialAccount
from .errors import InsufficientBalanceError, StateGateError, ValidationError
from .roles import RoleAuthority
from .transaction import TransactionManager


class StakeLedger(CustodialAccount):
    """Tracks one position per staker plus the shared reward pool.

    Staked principal and reward tokens are the same denomination and sit
    together at the ledger's address; ``reward_token_pool_balance`` and
    ``total_staked_token_amount`` split that balance between the two uses.
    """

    component = "stake"
    managed_token_label = "staked"

    def __init__(
        self,
        address: str,
        token_address: str,
        *,
        ledger: BalanceLedger,
        authority: RoleAuthority,
        transactions: TransactionManager,
        native_token: str = "native",
        token_decimals: int = 6,
        interest_rate: int = 500_000,
        staking_enabled: bool = True,
        unstaking_enabled: bool = True,
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
        self.token_decimals = token_decimals
        self.interest_rate = interest_rate
        self.staking_enabled = staking_enabled
        self.unstaking_enabled = unstaking_enabled
        self.total_staker_count = 0
        self.total_staked_token_amount = 0
        self.reward_token_pool_balance = 0
        self._positions: Dict[str, StakePosition] = {}

    @property
    def token_address(self) -> str:
        return self._managed_token

    def get_staked_token(self, staker: str) -> StakePosition:
        """Copy of the staker's position; an empty position if they never staked."""

        position = self._positions.get(staker)
        if position is None:
            return StakePosition()
        return StakePosition(position.date, position.interest_rate, position.amount, position.staked)

    def calculate_reward(self, position: StakePosition) -> int:
        return position.amount * position.interest_rate // (PERCENT_SCALE * fixed_point_base(self.token_decimals))

    def deposit_reward_tokens(self, caller: str, amount: int) -> None:
        with self._atomic("deposit_reward_tokens") as tx:
            self._require_admin(caller, "Only administrators are allowed to deposit reward tokens")
            if amount <= 0:
                raise ValidationError("Deposit amount must be greater than zero")
            if self._ledger.balance_of(caller, self.token_address) < amount:
                raise InsufficientBalanceError("Token balance is insufficient for the desired deposit")

            tx.assign(self, "reward_token_pool_balance", self.reward_token_pool_balance + amount)
            self._emit(
                tx,
                EventType.REWARD_TOKENS_DEPOSITED,
                {
                    "depositor": caller,
                    "amount": amount,
                    "reward_token_pool_balance": self.reward_token_pool_balance,
                },
            )
            self._pull(caller, amount)
            self._publish_gauges(tx)

    def stake(self, caller: str, amount: int) -> None:
        with self._atomic("stake") as tx:
            if not self.staking_enabled:
                raise StateGateError("Staking is currently disabled")
            if amount <= 0:
                raise ValidationError("Stake amount must be greater than zero")
            # Only the flag guards re-entry; unstaked positions keep their amount.
            if self.get_staked_token(caller).staked:
                raise ValidationError("This address already staked tokens")
            if self._ledger.balance_of(caller, self.token_address) < amount:
                raise InsufficientBalanceError("This address does not have enough tokens")

            tx.assign(self, "total_staker_count", self.total_staker_count + 1)
            tx.assign(self, "total_staked_token_amount", self.total_staked_token_amount + amount)
            tx.assign_item(
                self._positions,
                caller,
                StakePosition(date=tx.timestamp, interest_rate=self.interest_rate, amount=amount, staked=True),
            )
            self._emit(
                tx,
                EventType.STAKED,
                {
                    "staker": caller,
                    "amount": amount,
                    "total_staked_token_amount": self.total_staked_token_amount,
                    "total_staker_count": self.total_staker_count,
                },
            )
            self._pull(caller, amount)
            self._publish_gauges(tx)
        self._logger.info("Staked %d %s for %s", amount, self.token_address, caller)

    def unstake(self, caller: str) -> int:
        """Return the caller's principal plus reward; the reward paid is returned."""

        with self._atomic("unstake") as tx:
            if not self.unstaking_enabled:
                raise StateGateError("Unstaking is currently disabled")
            position = self.get_staked_token(caller)
            if not position.staked or position.amount <= 0:
                raise ValidationError("This address did not stake tokens yet")
            amount = position.amount
            if self.balance_of(self.token_address) < amount or self.total_staked_token_amount < amount:
                raise InsufficientBalanceError("Insufficient tokens to withdraw")

            reward = self.calculate_reward(position)
            tx.assign(self, "total_staker_count", self.total_staker_count - 1)
            tx.assign(self, "total_staked_token_amount", self.total_staked_token_amount - amount)
            if self.reward_token_pool_balance < reward:
                raise InsufficientBalanceError("Insufficient reward tokens to claim")
            tx.assign(self, "reward_token_pool_balance", self.reward_token_pool_balance - reward)
            position.staked = False
            tx.assign_item(self._positions, caller, position)
            self._emit(
                tx,
                EventType.UNSTAKED,
                {
                    "staker": caller,
                    "amount": amount,
                    "total_staked_token_amount": self.total_staked_token_amount,
                    "total_staker_count": self.total_staker_count,
                    "reward": reward,
                },
            )
            self._pay(caller, amount)
            if reward > 0:
                self._pay(caller, reward)
            self._publish_gauges(tx)
        self._logger.info("Unstaked %d %s for %s with reward %d", amount, self.token_address, caller, reward)
        return reward

    def set_interest_rate(self, caller: str, interest_rate: int) -> None:
        with self._atomic("set_interest_rate") as tx:
            self._require_admin(caller, "Only administrators are allowed to set the interest rate")
            if interest_rate < 0:
                raise ValidationError("Interest rate cannot be negative")
            tx.assign(self, "interest_rate", interest_rate)
            self._emit(tx, EventType.INTEREST_RATE_CHANGED, {"interest_rate": interest_rate})

    def set_staking_enabled(self, caller: str, enabled: bool) -> None:
        with self._atomic("set_staking_enabled") as tx:
            self._require_admin(caller, "Only administrators are allowed to set staking enabled or disabled")
            tx.assign(self, "staking_enabled", bool(enabled))
            self._emit(tx, EventType.STAKING_ENABLED, {"enabled": bool(enabled)})

    def set_unstaking_enabled(self, caller: str, enabled: bool) -> None:
        with self._atomic("set_unstaking_enabled") as tx:
            self._require_admin(caller, "Only administrators are allowed to set unstaking enabled or disabled")
            tx.assign(self, "unstaking_enabled", bool(enabled))
            self._emit(tx, EventType.UNSTAKING_ENABLED, {"enabled": bool(enabled)})

    def _publish_gauges(self, tx) -> None:
        self._publish_gauge(tx, "total_staked", lambda: self.total_staked_token_amount)
        self._publish_gauge(tx, "reward_pool", lambda: self.reward_token_pool_balance)


__all__ = ["StakeLedger"]
