"""Data models shared by the ledger components and the storage layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional


@dataclass(slots=True)
class StakePosition:
    """A staker's principal, the interest rate locked at entry and its timestamp."""

    date: Optional[datetime] = None
    interest_rate: int = 0
    amount: int = 0
    staked: bool = False


@dataclass(slots=True)
class LockPosition:
    """Tokens held by the time-lock on behalf of a claimer."""

    date: Optional[datetime] = None
    amount: int = 0
    locked: bool = False
    claimed: bool = False


@dataclass(slots=True, frozen=True)
class SwapQuote:
    """Amounts produced by the swap engine's fixed-point conversion."""

    token_one: str
    token_two: str
    token_one_amount: int
    token_one_decimals: int
    ratio: int
    gross_token_two_amount: int
    royalty_fee_amount: int
    token_two_amount: int

    @property
    def token_one_deposit_amount(self) -> int:
        """Portion of the input that ends up in the token-one pool."""

        return self.token_one_amount - self.royalty_fee_amount


@dataclass(slots=True)
class EventLogRecord:
    """Persisted representation of a bus event."""

    timestamp: datetime
    event_type: str
    severity: str
    payload: Dict[str, Any] = field(default_factory=dict)
    source: Optional[str] = None
    correlation_id: Optional[str] = None
    id: Optional[int] = None


__all__ = ["EventLogRecord", "LockPosition", "StakePosition", "SwapQuote"]
