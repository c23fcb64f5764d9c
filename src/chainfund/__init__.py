"""
chainfund: fund, sign and dry-run on-chain spends with a node wallet.
"""

from chainfund.errors import (
    AmountParseError,
    DustOutputError,
    EmptyWalletError,
    ExternalServiceError,
    FundTransactionError,
    InsufficientFundsError,
    PreconditionError,
)
from chainfund.funding import fund_transaction, validate_request
from chainfund.models import FundRequest, Outpoint, Output, SignedResult, Utxo

__version__ = "0.1.0"

__all__ = [
    "AmountParseError",
    "DustOutputError",
    "EmptyWalletError",
    "ExternalServiceError",
    "FundRequest",
    "FundTransactionError",
    "InsufficientFundsError",
    "Outpoint",
    "Output",
    "PreconditionError",
    "SignedResult",
    "Utxo",
    "fund_transaction",
    "validate_request",
]
