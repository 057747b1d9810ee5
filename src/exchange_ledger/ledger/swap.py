"""Ratio-based exchange between two custodial pools with a royalty skim."""

from __future__ import annotations

from typing import Dict, Optional, Tuple

from ..datalake.schemas import SwapQuote
from ..monitoring.event_bus import EventType
from ..utils.constants import MAX_ALLOWANCE, PERCENT_SCALE, ZERO_ADDRESS, fixed_point_base, is_null_address
from .balances import BalanceLedger
from .custody import CustodialAccount
from .errors import InsufficientBalanceError, StateGateError, ValidationError
from .pool import Pool
from .roles import RoleAuthority
from .transaction import TransactionManager


class SwapEngine(CustodialAccount):
    """Exchanges token one for token two through their registered pools.

    The engine holds funds only for the duration of a swap. It needs the
    ``DEPOSITOR`` role on every token-one pool and ``WITHDRAWER`` on every
    token-two pool it routes through; granting those is a deployment step.

    ``check_output_pool`` selects which balance guards the payout. When false
    the token-one pool's token-one balance is compared with the net payout,
    matching the deployed contracts. When true the token-two pool's token-two
    balance is checked instead.
    """

    component = "swap"

    def __init__(
        self,
        address: str,
        royalty_fee_wallet_address: str,
        *,
        ledger: BalanceLedger,
        authority: RoleAuthority,
        transactions: TransactionManager,
        native_token: str = "native",
        royalty_fee_percentage: int = 500_000,
        swap_enabled: bool = True,
        check_output_pool: bool = False,
    ) -> None:
        if is_null_address(royalty_fee_wallet_address):
            raise ValidationError("Royalty fee wallet address cannot be the zero address")
        super().__init__(
            address,
            ledger=ledger,
            authority=authority,
            transactions=transactions,
            native_token=native_token,
        )
        self._royalty_fee_wallet_address = royalty_fee_wallet_address
        self.royalty_fee_percentage = royalty_fee_percentage
        self.swap_enabled = swap_enabled
        self.check_output_pool = check_output_pool
        self._token_pools: Dict[str, Pool] = {}
        self._token_ratios: Dict[Tuple[str, str], int] = {}

    @property
    def royalty_fee_wallet_address(self) -> str:
        return self._royalty_fee_wallet_address

    def get_token_ratio(self, token_one: str, token_two: str) -> int:
        return self._token_ratios.get((token_one, token_two), 0)

    def get_token_pool_address(self, token: str) -> str:
        pool = self._token_pools.get(token)
        return pool.address if pool is not None else ZERO_ADDRESS

    def get_token_pool(self, token: str) -> Optional[Pool]:
        return self._token_pools.get(token)

    def quote(self, token_one: str, token_one_decimals: int, token_two: str, token_one_amount: int) -> SwapQuote:
        """Compute gross output, royalty fee and net output without moving funds."""

        if token_one_decimals < 0:
            raise ValidationError("Token decimals cannot be negative")
        ratio = self.get_token_ratio(token_one, token_two)
        if ratio <= 0:
            raise ValidationError("Token ratio is not set for this token pair")
        base = fixed_point_base(token_one_decimals)
        gross = token_one_amount * ratio // base
        if gross <= 0:
            raise ValidationError("Not enough token one amount")
        fee = gross * self.royalty_fee_percentage // (PERCENT_SCALE * base)
        # The fee is paid out of the token-one input.
        if fee >= token_one_amount:
            raise ValidationError("Royalty fee exceeds the token one amount")
        return SwapQuote(
            token_one=token_one,
            token_two=token_two,
            token_one_amount=token_one_amount,
            token_one_decimals=token_one_decimals,
            ratio=ratio,
            gross_token_two_amount=gross,
            royalty_fee_amount=fee,
            token_two_amount=gross - fee,
        )

    def swap_tokens(
        self,
        caller: str,
        token_one: str,
        token_one_decimals: int,
        token_two: str,
        token_one_amount: int,
    ) -> SwapQuote:
        with self._atomic("swap_tokens") as tx:
            if not self.swap_enabled:
                raise StateGateError("Swapping is currently disabled")
            if token_one == token_two:
                raise ValidationError("Tokens must be different")
            if token_one_amount <= 0:
                raise ValidationError("Not enough token one amount")
            if self._ledger.balance_of(caller, token_one) < token_one_amount:
                raise InsufficientBalanceError("This address does not have enough tokens")

            quote = self.quote(token_one, token_one_decimals, token_two, token_one_amount)
            pool_one = self._token_pools.get(token_one)
            pool_two = self._token_pools.get(token_two)
            if pool_one is None or pool_two is None:
                raise ValidationError("Token pool address is not set for this token pair")
            self._check_liquidity(pool_one, pool_two, quote)

            self._pull(caller, token_one_amount, token_one)
            pool_one.deposit(self._address, quote.token_one_deposit_amount)
            if quote.royalty_fee_amount > 0:
                self._pay(self._royalty_fee_wallet_address, quote.royalty_fee_amount, token_one)
            pool_two.withdraw(self._address, caller, quote.token_two_amount)
            self._emit(
                tx,
                EventType.SWAPPED,
                {
                    "caller": caller,
                    "date": tx.timestamp,
                    "token_one_address": token_one,
                    "token_two_address": token_two,
                    "token_one_amount": token_one_amount,
                    "token_two_amount": quote.token_two_amount,
                    "royalty_fee_amount": quote.royalty_fee_amount,
                },
            )
        self._logger.info(
            "Swapped %d %s for %d %s (fee %d)",
            token_one_amount,
            token_one,
            quote.token_two_amount,
            token_two,
            quote.royalty_fee_amount,
            extra={"caller": caller},
        )
        return quote

    def set_swap_enabled(self, caller: str, enabled: bool) -> None:
        with self._atomic("set_swap_enabled") as tx:
            self._require_admin(caller, "Only administrators are allowed to set swap enabled or disabled")
            tx.assign(self, "swap_enabled", bool(enabled))
            self._emit(tx, EventType.SWAP_ENABLED, {"enabled": bool(enabled)})

    def set_token_pool_address(self, caller: str, token: str, pool: Pool) -> None:
        """Register ``pool`` for ``token`` and let it pull from the engine without limit."""

        with self._atomic("set_token_pool_address") as tx:
            self._require_admin(caller, "Only administrators are allowed to set the token pool address")
            if is_null_address(token):
                raise ValidationError("Token contract address cannot be the zero address")
            if pool.token_address != token:
                raise ValidationError("Token pool does not custody this token")
            tx.assign_item(self._token_pools, token, pool)
            self._ledger.approve(self._address, pool.address, token, MAX_ALLOWANCE)
            self._emit(
                tx,
                EventType.TOKEN_POOL_ADDRESS_CHANGED,
                {"token_address": token, "token_pool_address": pool.address},
            )

    def set_royalty_fee_percentage(self, caller: str, royalty_fee_percentage: int) -> None:
        with self._atomic("set_royalty_fee_percentage") as tx:
            self._require_admin(caller, "Only administrators are allowed to set the royalty fee percentage")
            if royalty_fee_percentage < 0:
                raise ValidationError("Royalty fee percentage cannot be negative")
            tx.assign(self, "royalty_fee_percentage", royalty_fee_percentage)
            self._emit(
                tx,
                EventType.ROYALTY_FEE_PERCENTAGE_CHANGED,
                {"royalty_fee_percentage": royalty_fee_percentage},
            )

    def set_token_ratio(self, caller: str, token_one: str, token_two: str, token_ratio: int) -> None:
        """Set the directional conversion rate for the ordered pair."""

        with self._atomic("set_token_ratio") as tx:
            self._require_admin(caller, "Only administrators are allowed to set the token ratio")
            if token_ratio < 0:
                raise ValidationError("Token ratio cannot be negative")
            tx.assign_item(self._token_ratios, (token_one, token_two), token_ratio)
            self._emit(
                tx,
                EventType.TOKEN_RATIO_CHANGED,
                {"token_one_address": token_one, "token_two_address": token_two, "token_ratio": token_ratio},
            )

    def _check_liquidity(self, pool_one: Pool, pool_two: Pool, quote: SwapQuote) -> None:
        if self.check_output_pool:
            if pool_two.balance_of(quote.token_two) < quote.token_two_amount:
                raise InsufficientBalanceError("The token two pool has not enough tokens to exchange")
        elif pool_one.balance_of(quote.token_one) < quote.token_two_amount:
            raise InsufficientBalanceError("The token one pool has not enough tokens to exchange")


__all__ = ["SwapEngine"]
