"""
Base wallet backend interface.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager

from chainfund.errors import ExternalServiceError
from chainfund.models import FundedInput, FundedOutput, FundedTransaction, Outpoint, Output, Utxo
from chainfund.psbt import PsbtDecodeError, decode_psbt


class WalletBackend(ABC):
    """
    Abstract node wallet interface.

    Implementations hold the keys and do the funding and signing; the
    funding workflow only orchestrates these calls. Failures are raised as
    ``ExternalServiceError`` with the node's message.
    """

    @abstractmethod
    async def get_chain_fee_rate(self) -> int:
        """Get the suggested fee rate in sat/vbyte"""

    @abstractmethod
    async def get_utxos(self, min_confirmations: int) -> list[Utxo]:
        """Get wallet coins with at least min_confirmations"""

    @abstractmethod
    async def fund_psbt(
        self,
        outputs: list[Output],
        inputs: list[Outpoint] | None,
        fee_tokens_per_vbyte: int,
    ) -> FundedTransaction:
        """Fund a PSBT paying outputs and lock the coins it spends.
        Passing inputs=None lets the wallet choose the coins."""

    @abstractmethod
    async def sign_psbt(self, psbt: str) -> str:
        """Sign and finalize a funded PSBT, returns raw transaction hex"""

    @abstractmethod
    async def unlock_utxo(self, lock_id: str, outpoint: Outpoint) -> None:
        """Release a coin locked by fund_psbt"""

    async def close(self) -> None:
        """Close backend connection"""
        pass


def funded_transaction_from_psbt(
    psbt: str,
    change_index: int | None,
    lock_ids: dict[Outpoint, str] | None = None,
) -> FundedTransaction:
    """
    Describe a funded PSBT.

    Args:
        psbt: Base64 funded PSBT
        change_index: Index of the change output, None or -1 when there is none
        lock_ids: Lock identifier per spent outpoint, for nodes that issue them

    Returns:
        FundedTransaction listing spent coins and paid outputs
    """
    tx = decode_psbt(psbt)
    lock_ids = lock_ids or {}

    inputs = [
        FundedInput(
            transaction_id=inp.txid,
            transaction_vout=inp.vout,
            lock_id=lock_ids.get(Outpoint(inp.txid, inp.vout), ""),
        )
        for inp in tx.inputs
    ]
    outputs = [
        FundedOutput(tokens=out.value, output_script=out.script.hex(), is_change=i == change_index)
        for i, out in enumerate(tx.outputs)
    ]

    return FundedTransaction(psbt=psbt, inputs=inputs, outputs=outputs)


@contextmanager
def node_response(service: str) -> Iterator[None]:
    """
    Read a node reply, turning missing or malformed fields into
    ExternalServiceError.
    """
    try:
        yield
    except PsbtDecodeError as e:
        raise ExternalServiceError(f"{service} returned an unreadable PSBT: {e}") from e
    except (KeyError, IndexError, TypeError, ValueError, AttributeError, ArithmeticError) as e:
        raise ExternalServiceError(f"Unexpected response from {service}: {e!r}") from e
