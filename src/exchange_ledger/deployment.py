"""Assemble a ready-to-use set of ledger components from configuration."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from .config.settings import AppConfig, get_app_config
from .ledger.balances import InMemoryBalanceLedger
from .ledger.errors import ValidationError
from .ledger.lock import TokenLock
from .ledger.pool import Pool
from .ledger.roles import Role, RoleAuthority
from .ledger.stake import StakeLedger
from .ledger.swap import SwapEngine
from .ledger.transaction import TransactionManager
from .monitoring.event_bus import EventBus
from .monitoring.logger import get_logger
from .monitoring.metrics import MetricsRegistry
from .utils.constants import utc_now

logger = get_logger(__name__)


def pool_address(token: str) -> str:
    return f"pool:{token}"


@dataclass(slots=True)
class Deployment:
    """Components sharing one ledger, one transaction manager and one admin."""

    config: AppConfig
    admin: str
    transactions: TransactionManager
    ledger: InMemoryBalanceLedger
    swap: SwapEngine
    pools: Dict[str, Pool] = field(default_factory=dict)
    stake: Optional[StakeLedger] = None
    lock: Optional[TokenLock] = None

    def pool(self, token: str) -> Pool:
        try:
            return self.pools[token]
        except KeyError as exc:
            raise ValidationError(f"No pool is deployed for {token}") from exc

    def summary(self) -> Dict[str, Any]:
        return {
            "admin": self.admin,
            "pools": {token: pool.address for token, pool in self.pools.items()},
            "stake": self.stake.address if self.stake else None,
            "swap": self.swap.address,
            "lock": self.lock.address if self.lock else None,
            "royalty_fee_wallet_address": self.swap.royalty_fee_wallet_address,
            "check_output_pool": self.swap.check_output_pool,
        }


def build_deployment(
    config: Optional[AppConfig] = None,
    *,
    event_bus: Optional[EventBus] = None,
    metrics: Optional[MetricsRegistry] = None,
    clock: Callable[[], datetime] = utc_now,
) -> Deployment:
    """Create pools, stake ledger, swap engine and time-lock and wire them together.

    The swap engine is granted ``DEPOSITOR`` and ``WITHDRAWER`` on every pool
    and each pool is registered with the engine, so swaps work as soon as the
    pools hold liquidity and ratios are configured.
    """

    cfg = config or get_app_config()
    admin = cfg.deployment.admin_address
    native = cfg.ledger.native_token
    transactions = TransactionManager(event_bus=event_bus, metrics=metrics, clock=clock)
    ledger = InMemoryBalanceLedger(transactions)

    swap = SwapEngine(
        "swap",
        cfg.swap.royalty_fee_wallet_address,
        ledger=ledger,
        authority=RoleAuthority(transactions, admin, name="swap"),
        transactions=transactions,
        native_token=native,
        royalty_fee_percentage=cfg.swap.royalty_fee_percentage,
        swap_enabled=cfg.swap.swap_enabled,
        check_output_pool=cfg.swap.check_output_pool,
    )
    deployment = Deployment(config=cfg, admin=admin, transactions=transactions, ledger=ledger, swap=swap)

    for token in cfg.deployment.pool_tokens:
        address = pool_address(token)
        authority = RoleAuthority(transactions, admin, name=address)
        pool = Pool(
            address,
            token,
            ledger=ledger,
            authority=authority,
            transactions=transactions,
            native_token=native,
            depositing_enabled=cfg.pool.depositing_enabled,
        )
        authority.grant_role(admin, Role.DEPOSITOR, swap.address)
        authority.grant_role(admin, Role.WITHDRAWER, swap.address)
        swap.set_token_pool_address(admin, token, pool)
        deployment.pools[token] = pool

    for token_one, token_two, ratio in cfg.swap.ratio_pairs():
        swap.set_token_ratio(admin, token_one, token_two, ratio)

    if cfg.stake.token_address:
        deployment.stake = StakeLedger(
            "stake",
            cfg.stake.token_address,
            ledger=ledger,
            authority=RoleAuthority(transactions, admin, name="stake"),
            transactions=transactions,
            native_token=native,
            token_decimals=cfg.ledger.token_decimals,
            interest_rate=cfg.stake.interest_rate,
            staking_enabled=cfg.stake.staking_enabled,
            unstaking_enabled=cfg.stake.unstaking_enabled,
        )
    if cfg.lock.token_address:
        deployment.lock = TokenLock(
            "lock",
            cfg.lock.token_address,
            ledger=ledger,
            authority=RoleAuthority(transactions, admin, name="lock"),
            transactions=transactions,
            native_token=native,
            claiming_enabled=cfg.lock.claiming_enabled,
        )

    logger.info("Deployment ready", extra={"deployment": deployment.summary()})
    return deployment


__all__ = ["Deployment", "build_deployment", "pool_address"]
