"""
Amount parsing and display.

Accepted amount forms:
- "0.001", "1.5"       decimal number with a point: bitcoin
- "150000"             integer: satoshis
- "0.5btc", "2 btc"    explicit bitcoin
- "1000sats", "1 sat"  explicit satoshis
- "50k", "1.5m"        thousands / millions of satoshis
"""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation

from chainfund.constants import TOKENS_PER_BTC

AMOUNT_PATTERN = re.compile(r"^(\d+(?:\.\d+)?|\.\d+)\s*(btc|sats?|k|m)?$")

UNIT_MULTIPLIERS = {
    "btc": Decimal(TOKENS_PER_BTC),
    "sat": Decimal(1),
    "sats": Decimal(1),
    "k": Decimal(1_000),
    "m": Decimal(1_000_000),
}


def parse_amount(amount: str) -> int:
    """
    Parse a human amount string into satoshis.

    Args:
        amount: Amount string, e.g. "0.001" or "25k"

    Returns:
        Amount in satoshis

    Raises:
        ValueError: If the string is not a recognised, whole-satoshi amount
    """
    if not isinstance(amount, str) or not amount.strip():
        raise ValueError("ExpectedAmountToParse")

    match = AMOUNT_PATTERN.match(amount.strip().lower())
    if match is None:
        raise ValueError(f"FailedToParseAmount: {amount}")

    number, unit = match.groups()
    if unit is None:
        unit = "btc" if "." in number else "sats"

    try:
        tokens = Decimal(number) * UNIT_MULTIPLIERS[unit]
    except InvalidOperation as e:
        raise ValueError(f"FailedToParseAmount: {amount}") from e

    if tokens != tokens.to_integral_value():
        raise ValueError(f"UnexpectedFractionalSatoshisInAmount: {amount}")

    return int(tokens)


def format_tokens(tokens: int) -> str:
    """Render satoshis in bitcoin with eight decimal places."""
    return f"{Decimal(tokens) / TOKENS_PER_BTC:.8f}"
