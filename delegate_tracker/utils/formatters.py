"""Shared formatting utilities for CLI output."""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from rich.console import Console

# Shared console instance
console = Console()


def format_address(address: str, length: int = 10) -> str:
    """
    Format an address to show first and last characters.

    Args:
        address: Account address
        length: Addresses at or below this length are returned as-is

    Returns:
        Formatted address like "0x1234...5678"
    """
    if not address:
        return "N/A"
    if len(address) <= length:
        return address
    return f"{address[:6]}...{address[-4:]}"


def format_timestamp(
    timestamp: Optional[float], format_str: str = "%Y-%m-%d %H:%M"
) -> str:
    """Format a Unix timestamp (seconds) as a UTC date string."""
    if not timestamp:
        return "N/A"
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).strftime(
        format_str
    )


def format_voting_power(amount: int, decimals: int = 18) -> str:
    """Format a raw token amount with thousands separators."""
    value = Decimal(amount) / (Decimal(10) ** decimals)
    return f"{value:,.2f}"


def format_duration(seconds: Optional[float]) -> str:
    if seconds is None:
        return "unknown"
    seconds = int(seconds)
    minutes, secs = divmod(seconds, 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}h {minutes}m"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"
