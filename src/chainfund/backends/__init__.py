"""
Node wallet backend implementations.

Available backends:
- LndBackend: lnd REST API (walletrpc PSBT funding, leases)
- BitcoinCoreBackend: Bitcoin Core wallet RPC (walletcreatefundedpsbt, lockunspent)
"""

from chainfund.backends.base import WalletBackend, funded_transaction_from_psbt
from chainfund.backends.bitcoin_core import BitcoinCoreBackend
from chainfund.backends.lnd import LndBackend

__all__ = [
    "BitcoinCoreBackend",
    "LndBackend",
    "WalletBackend",
    "funded_transaction_from_psbt",
]
