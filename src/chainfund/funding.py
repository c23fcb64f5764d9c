"""
Fund and sign a transaction.

The workflow runs as a dependency graph:

    validate -> get_fee, outputs, get_utxos    (concurrently)
    get_utxos, outputs -> utxos                (explicit, interactive or automatic coins)
    get_fee, outputs, utxos -> fund            (node funds and locks coins)
    fund -> unlock, sign                       (concurrently; unlock only on dry runs)
    sign -> funded
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

from loguru import logger

from chainfund.amounts import format_tokens, parse_amount
from chainfund.backends.base import WalletBackend
from chainfund.constants import DUST_VALUE, MIN_CONFIRMATIONS
from chainfund.errors import AmountParseError, DustOutputError, PreconditionError
from chainfund.graph import TaskGraph
from chainfund.models import (
    FundedTransaction,
    FundRequest,
    Outpoint,
    Output,
    SignedResult,
    Utxo,
    is_outpoint,
    is_public_key,
)
from chainfund.selection import Ask, select_utxos

AmountParser = Callable[[str], int]


def _is_list(value: Any) -> bool:
    return isinstance(value, (list, tuple))


def validate_request(request: FundRequest, backend: WalletBackend | None, ask: Ask | None) -> None:
    """
    Check a funding request before anything is sent to the node.

    Raises:
        PreconditionError: Describing the first problem found
    """
    if not backend:
        raise PreconditionError("ExpectedAuthenticatedBackendToFundTransaction")

    if not _is_list(request.amounts):
        raise PreconditionError("ExpectedAmountsToFundTransaction")

    if not _is_list(request.addresses):
        raise PreconditionError("ExpectedAddressesToFundTransaction")

    if not request.addresses:
        raise PreconditionError("ExpectedAddressToSendFundsToInTransaction")

    if len(request.addresses) != len(request.amounts):
        raise PreconditionError("ExpectedAmountOfFundsToSendToAddress")

    if any(is_public_key(address) for address in request.addresses):
        raise PreconditionError("ExpectedFundPayingToAddressesNotPublicKeys")

    if not ask:
        raise PreconditionError("ExpectedAskFunctionToFundTransaction")

    if not _is_list(request.utxos):
        raise PreconditionError("ExpectedArrayOfUtxosToSpendToFundTransaction")

    if not all(is_outpoint(utxo) for utxo in request.utxos):
        raise PreconditionError("ExpectedOutpointFormattedUtxoToFundTransaction")

    if request.utxos and request.is_selecting_utxos:
        raise PreconditionError("ExpectedEitherSelectUtxosOrExplicitUtxosNotBoth")


def check_dust(outputs: list[Output], dust_value: int) -> None:
    if any(output.tokens < dust_value for output in outputs):
        raise DustOutputError("ExpectedNonDustAmountValueForFundingAmount")


class FundingWorkflow:
    """
    One funding invocation. Each step method receives only the results of
    the steps it depends on.
    """

    def __init__(
        self,
        request: FundRequest,
        backend: WalletBackend,
        ask: Ask,
        dust_value: int = DUST_VALUE,
        min_confirmations: int = MIN_CONFIRMATIONS,
        amount_parser: AmountParser = parse_amount,
    ):
        self.request = request
        self.backend = backend
        self.ask = ask
        self.dust_value = dust_value
        self.min_confirmations = min_confirmations
        self.amount_parser = amount_parser

    def graph(self) -> TaskGraph:
        return (
            TaskGraph()
            .add("validate", self.validate)
            .add("get_fee", self.get_fee, ("validate",))
            .add("outputs", self.outputs, ("validate",))
            .add("get_utxos", self.get_utxos, ("validate",))
            .add("utxos", self.utxos, ("get_utxos", "outputs"))
            .add("fund", self.fund, ("get_fee", "outputs", "utxos"))
            .add("unlock", self.unlock, ("fund",))
            .add("sign", self.sign, ("fund",))
            .add("funded", self.funded, ("sign",))
        )

    async def run(self) -> SignedResult:
        results = await self.graph().run()
        return results["funded"]

    async def validate(self) -> None:
        validate_request(self.request, self.backend, self.ask)

    async def get_fee(self, validate: None) -> int:
        if self.request.fee_tokens_per_vbyte:
            return self.request.fee_tokens_per_vbyte
        return await self.backend.get_chain_fee_rate()

    async def outputs(self, validate: None) -> list[Output]:
        outputs = []
        for address, amount in zip(self.request.addresses, self.request.amounts):
            try:
                tokens = self.amount_parser(amount)
            except ValueError as e:
                raise AmountParseError(str(e)) from e
            outputs.append(Output(address=address, tokens=tokens))
        return outputs

    async def get_utxos(self, validate: None) -> list[Utxo] | None:
        # Coins are only listed when they are going to be offered
        if not self.request.is_selecting_utxos:
            return None
        return await self.backend.get_utxos(self.min_confirmations)

    async def utxos(self, get_utxos: list[Utxo] | None, outputs: list[Output]) -> list[str]:
        if self.request.utxos:
            return list(self.request.utxos)

        if not self.request.is_selecting_utxos:
            return []

        return await select_utxos(self.ask, get_utxos or [], outputs)

    async def fund(
        self, get_fee: int, outputs: list[Output], utxos: list[str]
    ) -> FundedTransaction:
        inputs = [Outpoint.parse(utxo) for utxo in utxos]

        check_dust(outputs, self.dust_value)

        send_to = ", ".join(f"{out.address}: {format_tokens(out.tokens)}" for out in outputs)
        logger.info(f"Funding transaction at {get_fee} sat/vB, sending to {send_to}")

        return await self.backend.fund_psbt(
            outputs=outputs,
            inputs=inputs or None,
            fee_tokens_per_vbyte=get_fee,
        )

    async def unlock(self, fund: FundedTransaction) -> None:
        # Locks stay held for the real spend
        if not self.request.is_dry_run:
            return

        await asyncio.gather(
            *(self.backend.unlock_utxo(inp.lock_id, inp.outpoint) for inp in fund.inputs)
        )
        logger.info(f"Dry run: released {len(fund.inputs)} locked coins")

    async def sign(self, fund: FundedTransaction) -> str:
        change = fund.change
        total = sum(out.tokens for out in fund.outputs)
        spending = ", ".join(str(inp.outpoint) for inp in fund.inputs)

        change_display = format_tokens(change.tokens) if change and change.tokens else "none"
        logger.info(
            f"Signing transaction: change {change_display}, "
            f"sum of outputs {format_tokens(total)}, spending {spending}"
        )

        return await self.backend.sign_psbt(fund.psbt)

    async def funded(self, sign: str) -> SignedResult:
        return SignedResult(signed_transaction=sign)


async def fund_transaction(
    request: FundRequest,
    backend: WalletBackend,
    ask: Ask,
    dust_value: int = DUST_VALUE,
    min_confirmations: int = MIN_CONFIRMATIONS,
    amount_parser: AmountParser = parse_amount,
) -> SignedResult:
    """
    Fund and sign a transaction paying the requested outputs.

    Coins come from ``request.utxos`` when given, from an interactive
    selection when ``request.is_selecting_utxos`` is set, and are otherwise
    chosen by the node. The node locks the coins it funds with. On a dry run
    those locks are released again; otherwise they are kept for the spend.

    If signing fails after funding succeeded, the locks are NOT released:
    the coins stay reserved until the caller releases them or the node's
    lease expires.

    Args:
        request: What to pay and how to pick coins
        backend: Node wallet backend
        ask: Interactive multi-select capability
        dust_value: Minimum output value in sats
        min_confirmations: Confirmations required for selectable coins
        amount_parser: Converts amount strings to sats

    Returns:
        SignedResult with the signed transaction hex

    Raises:
        FundTransactionError: Subclass for the first step that failed
    """
    workflow = FundingWorkflow(
        request,
        backend,
        ask,
        dust_value=dust_value,
        min_confirmations=min_confirmations,
        amount_parser=amount_parser,
    )
    return await workflow.run()
