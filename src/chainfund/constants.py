"""
Funding workflow constants.
"""

from __future__ import annotations

# Smallest output value accepted for a funding destination (satoshis)
DUST_VALUE = 293

# Coins offered for interactive selection need at least this many confirmations
MIN_CONFIRMATIONS = 1

# Confirmation target used when asking the node for a fee rate
DEFAULT_FEE_CONF_TARGET = 6

# Satoshis per bitcoin
TOKENS_PER_BTC = 100_000_000
