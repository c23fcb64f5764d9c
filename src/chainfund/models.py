"""
Data models for the funding workflow.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

OUTPOINT_PATTERN = re.compile(r"^[0-9a-f]{64}:[0-9]{1,6}$", re.IGNORECASE)
PUBLIC_KEY_PATTERN = re.compile(r"^0[2-3][0-9a-f]{64}$", re.IGNORECASE)


def is_outpoint(value: Any) -> bool:
    """Check for the canonical ``<txid>:<vout>`` form."""
    return isinstance(value, str) and bool(OUTPOINT_PATTERN.match(value))


def is_public_key(value: Any) -> bool:
    """Check for a hex compressed public key."""
    return isinstance(value, str) and bool(PUBLIC_KEY_PATTERN.match(value))


@dataclass(frozen=True)
class Outpoint:
    """Reference to a specific output of a specific transaction."""

    transaction_id: str
    transaction_vout: int

    @classmethod
    def parse(cls, value: str) -> Outpoint:
        if not is_outpoint(value):
            raise ValueError(f"Invalid outpoint: {value!r}")
        txid, vout = value.split(":")
        return cls(transaction_id=txid, transaction_vout=int(vout))

    def __str__(self) -> str:
        return f"{self.transaction_id}:{self.transaction_vout}"


@dataclass
class Utxo:
    """Unspent coin reported by the node wallet"""

    transaction_id: str
    transaction_vout: int
    tokens: int
    confirmation_count: int = 0
    address: str = ""

    @property
    def outpoint(self) -> Outpoint:
        return Outpoint(self.transaction_id, self.transaction_vout)


@dataclass
class Output:
    """Destination address and amount in satoshis"""

    address: str
    tokens: int


@dataclass
class FundedInput:
    """Input consumed by a funded transaction and the lock the node holds on it."""

    transaction_id: str
    transaction_vout: int
    lock_id: str = ""

    @property
    def outpoint(self) -> Outpoint:
        return Outpoint(self.transaction_id, self.transaction_vout)


@dataclass
class FundedOutput:
    """Output paid by a funded transaction."""

    tokens: int
    output_script: str = ""
    is_change: bool = False


@dataclass
class FundedTransaction:
    """Funded, unsigned transaction returned by the node."""

    psbt: str
    inputs: list[FundedInput] = field(default_factory=list)
    outputs: list[FundedOutput] = field(default_factory=list)

    @property
    def change(self) -> FundedOutput | None:
        return next((out for out in self.outputs if out.is_change), None)


@dataclass
class SignedResult:
    """Result of a funding invocation."""

    signed_transaction: str


@dataclass
class FundRequest:
    """
    Request to fund and sign a transaction.

    Field types are intentionally loose: requests come from the CLI or from
    library callers and are checked by ``validate_request`` before use.

    Attributes:
        addresses: Destination addresses, paired with ``amounts`` by position
        amounts: Amount strings (see ``chainfund.amounts.parse_amount``)
        utxos: Explicit coins to spend as ``<txid>:<vout>`` strings
        fee_tokens_per_vbyte: Fee rate override; estimated by the node when unset
        is_dry_run: Release the coin locks after signing
        is_selecting_utxos: Pick coins interactively
    """

    addresses: Any = field(default_factory=list)
    amounts: Any = field(default_factory=list)
    utxos: Any = field(default_factory=list)
    fee_tokens_per_vbyte: int | None = None
    is_dry_run: bool = False
    is_selecting_utxos: bool = False
