"""Shared constants for ledger accounting."""

from datetime import datetime, timezone

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


# Utility function to get timezone-aware UTC datetime
def utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)

# Unbounded transfer permission, mirrors the EVM max uint256 allowance.
MAX_ALLOWANCE = 2**256 - 1

PERCENT_SCALE = 100


def is_null_address(address: object) -> bool:
    return not address or address == ZERO_ADDRESS


def fixed_point_base(decimals: int) -> int:
    """Scale factor for a fixed-point value with ``decimals`` places."""
    if decimals < 0:
        raise ValueError("decimals must be non-negative")
    return 10**decimals


__all__ = [
    "utc_now",
    "MAX_ALLOWANCE",
    "PERCENT_SCALE",
    "ZERO_ADDRESS",
    "fixed_point_base",
    "is_null_address",
]
