"""
Test configuration for chainfund tests.
"""

from __future__ import annotations

import base64
from collections.abc import Callable, Iterator
from typing import Any

import pytest
from loguru import logger

from chainfund.backends.base import WalletBackend
from chainfund.errors import InsufficientFundsError
from chainfund.models import (
    FundedInput,
    FundedOutput,
    FundedTransaction,
    Outpoint,
    Output,
    Utxo,
)
from chainfund.selection import SelectPrompt

SIGNED_TX_HEX = "0200000001" + "ab" * 32 + "00000000"


class FakeBackend(WalletBackend):
    """Call-recording wallet backend."""

    def __init__(
        self,
        fee_rate: int = 4,
        utxos: list[Utxo] | None = None,
        funded: FundedTransaction | None = None,
        signed: str = SIGNED_TX_HEX,
    ):
        self.fee_rate = fee_rate
        self.utxos = utxos if utxos is not None else []
        self.funded = funded or FundedTransaction(psbt="cHNidP8BAA==")
        self.signed = signed
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.failures: dict[str, Exception] = {}
        self.closed = False

    def _record(self, name: str, **kwargs: Any) -> None:
        self.calls.append((name, kwargs))
        if name in self.failures:
            raise self.failures[name]

    def called(self, name: str) -> list[dict[str, Any]]:
        return [kwargs for call, kwargs in self.calls if call == name]

    async def get_chain_fee_rate(self) -> int:
        self._record("get_chain_fee_rate")
        return self.fee_rate

    async def get_utxos(self, min_confirmations: int) -> list[Utxo]:
        self._record("get_utxos", min_confirmations=min_confirmations)
        return self.utxos

    async def fund_psbt(
        self,
        outputs: list[Output],
        inputs: list[Outpoint] | None,
        fee_tokens_per_vbyte: int,
    ) -> FundedTransaction:
        self._record(
            "fund_psbt",
            outputs=outputs,
            inputs=inputs,
            fee_tokens_per_vbyte=fee_tokens_per_vbyte,
        )
        return self.funded

    async def sign_psbt(self, psbt: str) -> str:
        self._record("sign_psbt", psbt=psbt)
        return self.signed

    async def unlock_utxo(self, lock_id: str, outpoint: Outpoint) -> None:
        self._record("unlock_utxo", lock_id=lock_id, outpoint=outpoint)

    async def close(self) -> None:
        self.closed = True


class RecordingAsk:
    """Ask capability answering with a fixed selection."""

    def __init__(self, answer: list[str] | None = None):
        self.answer = answer or []
        self.prompts: list[SelectPrompt] = []

    async def __call__(self, prompt: SelectPrompt) -> list[str]:
        self.prompts.append(prompt)
        verdict = prompt.validate(self.answer)
        if verdict is not True:
            raise InsufficientFundsError(verdict or "Nothing selected")
        return self.answer


@pytest.fixture
def funded_two_inputs() -> FundedTransaction:
    return FundedTransaction(
        psbt="cHNidP8BAA==",
        inputs=[
            FundedInput(transaction_id="aa" * 32, transaction_vout=0, lock_id="01" * 32),
            FundedInput(transaction_id="bb" * 32, transaction_vout=1, lock_id="02" * 32),
        ],
        outputs=[
            FundedOutput(tokens=100_000, output_script="0014" + "11" * 20),
            FundedOutput(tokens=49_000, output_script="0014" + "22" * 20, is_change=True),
        ],
    )


@pytest.fixture
def backend(funded_two_inputs: FundedTransaction) -> FakeBackend:
    return FakeBackend(funded=funded_two_inputs)


@pytest.fixture
def ask() -> RecordingAsk:
    return RecordingAsk()


@pytest.fixture
def wallet_utxos() -> list[Utxo]:
    return [
        Utxo(transaction_id="cc" * 32, transaction_vout=0, tokens=60_000, confirmation_count=3),
        Utxo(transaction_id="dd" * 32, transaction_vout=2, tokens=50_000, confirmation_count=10),
    ]


@pytest.fixture
def log_messages() -> Iterator[list[str]]:
    """Capture loguru messages."""
    messages: list[str] = []
    handler_id = logger.add(lambda msg: messages.append(msg.record["message"]), level="DEBUG")
    yield messages
    logger.remove(handler_id)


def varint(n: int) -> bytes:
    if n < 0xFD:
        return bytes([n])
    if n <= 0xFFFF:
        return b"\xfd" + n.to_bytes(2, "little")
    return b"\xfe" + n.to_bytes(4, "little")


def serialize_unsigned_tx(inputs: list[tuple[str, int]], outputs: list[tuple[int, bytes]]) -> bytes:
    tx = (2).to_bytes(4, "little") + varint(len(inputs))
    for txid, vout in inputs:
        tx += bytes.fromhex(txid)[::-1] + vout.to_bytes(4, "little") + b"\x00" + b"\xff" * 4
    tx += varint(len(outputs))
    for value, script in outputs:
        tx += value.to_bytes(8, "little") + varint(len(script)) + script
    return tx + b"\x00" * 4


@pytest.fixture
def make_psbt() -> Callable[[list[tuple[str, int]], list[tuple[int, bytes]]], str]:
    """Build a base64 PSBT holding just an unsigned transaction."""

    def build(inputs: list[tuple[str, int]], outputs: list[tuple[int, bytes]]) -> str:
        tx = serialize_unsigned_tx(inputs, outputs)
        data = b"psbt\xff" + varint(1) + b"\x00" + varint(len(tx)) + tx + b"\x00"
        data += b"\x00" * (len(inputs) + len(outputs))
        return base64.b64encode(data).decode()

    return build
