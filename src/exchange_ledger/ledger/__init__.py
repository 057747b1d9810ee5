"""Accounting and authorization core: balances, roles and the contract components."""

from .balances import BalanceLedger, InMemoryBalanceLedger
from .custody import CustodialAccount
from .errors import (
    AuthorizationError,
    InsufficientBalanceError,
    LedgerError,
    ManagedTokenSweepError,
    StateGateError,
    TransferFailureError,
    ValidationError,
)
from .lock import TokenLock
from .pool import Pool
from .roles import Role, RoleAuthority
from .stake import StakeLedger
from .swap import SwapEngine
from .transaction import Transaction, TransactionManager

__all__ = [
    "AuthorizationError",
    "BalanceLedger",
    "CustodialAccount",
    "InMemoryBalanceLedger",
    "InsufficientBalanceError",
    "LedgerError",
    "ManagedTokenSweepError",
    "Pool",
    "Role",
    "RoleAuthority",
    "StakeLedger",
    "StateGateError",
    "SwapEngine",
    "TokenLock",
    "Transaction",
    "TransactionManager",
    "TransferFailureError",
    "ValidationError",
]
