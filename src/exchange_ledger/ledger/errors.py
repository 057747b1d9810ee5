"""Failure taxonomy shared by every ledger component.

Every error aborts the whole operation; the transaction manager rolls back any
effect applied before the failure. Nothing here is retried automatically.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for rejected ledger operations."""

    code = "ledger_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class AuthorizationError(LedgerError):
    """The caller lacks the role the operation requires."""

    code = "authorization"


class StateGateError(LedgerError):
    """The feature is currently disabled (depositing, staking, swapping, ...)."""

    code = "state_gate"


class ValidationError(LedgerError):
    """Bad input: zero amount, null address, identical tokens, unknown entry."""

    code = "validation"


class ManagedTokenSweepError(ValidationError):
    """An administrator tried to sweep the token a component custodies."""

    code = "managed_token_sweep"


class InsufficientBalanceError(LedgerError):
    """A ledger, pool, stake or reward balance is too low."""

    code = "insufficient_balance"


class TransferFailureError(LedgerError):
    """The balance ledger refused a transfer."""

    code = "transfer_failure"


__all__ = [
    "AuthorizationError",
    "InsufficientBalanceError",
    "LedgerError",
    "ManagedTokenSweepError",
    "StateGateError",
    "TransferFailureError",
    "ValidationError",
]
