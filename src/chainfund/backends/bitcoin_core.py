"""
Bitcoin Core wallet RPC backend.
Funds and signs with the node's loaded wallet (walletcreatefundedpsbt).
"""

from __future__ import annotations

import math
from decimal import Decimal
from typing import Any

import httpx
from loguru import logger

from chainfund.amounts import format_tokens
from chainfund.backends.base import WalletBackend, funded_transaction_from_psbt, node_response
from chainfund.constants import DEFAULT_FEE_CONF_TARGET, TOKENS_PER_BTC
from chainfund.errors import ExternalServiceError
from chainfund.models import FundedTransaction, Outpoint, Output, Utxo

# Timeout for regular RPC calls (seconds)
DEFAULT_RPC_TIMEOUT = 30.0


class BitcoinCoreBackend(WalletBackend):
    """
    Wallet backend using Bitcoin Core RPC.
    Coins are locked with lockUnspents while funding; Core has no lock
    identifiers so every lock id is the empty string.
    """

    def __init__(
        self,
        rpc_url: str = "http://127.0.0.1:8332",
        rpc_user: str = "rpcuser",
        rpc_password: str = "rpcpassword",
        wallet: str = "",
        fee_conf_target: int = DEFAULT_FEE_CONF_TARGET,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.rpc_url = rpc_url.rstrip("/")
        if wallet:
            self.rpc_url = f"{self.rpc_url}/wallet/{wallet}"
        self.rpc_user = rpc_user
        self.fee_conf_target = fee_conf_target
        self.client = httpx.AsyncClient(
            timeout=DEFAULT_RPC_TIMEOUT, auth=(rpc_user, rpc_password), transport=transport
        )
        self._request_id = 0

    async def _rpc_call(self, method: str, params: list | None = None) -> Any:
        """
        Make an RPC call to Bitcoin Core.

        Raises:
            ExternalServiceError: On RPC errors and connection/timeout errors
        """
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params or [],
        }

        try:
            response = await self.client.post(self.rpc_url, json=payload)
        except httpx.HTTPError as e:
            logger.error(f"RPC call failed: {method} - {e}")
            raise ExternalServiceError(f"RPC call {method} failed: {e}") from e

        # Core reports RPC errors with a non-2xx status and a JSON body
        try:
            data = response.json()
        except ValueError:
            data = None

        if isinstance(data, dict) and data.get("error"):
            error_info = data["error"]
            error_code = error_info.get("code", "unknown")
            error_msg = error_info.get("message", str(error_info))
            logger.error(f"RPC error from {method}: {error_code} {error_msg}")
            raise ExternalServiceError(f"RPC error {error_code}: {error_msg}")

        if response.is_error or not isinstance(data, dict):
            logger.error(f"RPC call failed: {method} - HTTP {response.status_code}")
            raise ExternalServiceError(f"RPC call {method} failed: HTTP {response.status_code}")

        return data.get("result")

    async def get_chain_fee_rate(self) -> int:
        result = await self._rpc_call("estimatesmartfee", [self.fee_conf_target])

        with node_response("Bitcoin Core"):
            if "feerate" not in result:
                errors = "; ".join(result.get("errors", [])) or "no estimate"
                raise ExternalServiceError(f"Fee estimation unavailable: {errors}")

            # BTC/kvB to sat/vB
            sat_per_vbyte = math.ceil(Decimal(str(result["feerate"])) * TOKENS_PER_BTC / 1000)

        logger.debug(f"Estimated fee for {self.fee_conf_target} blocks: {sat_per_vbyte} sat/vB")
        return sat_per_vbyte

    async def get_utxos(self, min_confirmations: int) -> list[Utxo]:
        result = await self._rpc_call("listunspent", [min_confirmations])

        with node_response("Bitcoin Core"):
            utxos = [
                Utxo(
                    transaction_id=utxo_data["txid"],
                    transaction_vout=utxo_data["vout"],
                    tokens=round(utxo_data["amount"] * TOKENS_PER_BTC),
                    confirmation_count=utxo_data.get("confirmations", 0),
                    address=utxo_data.get("address", ""),
                )
                for utxo_data in result
                if utxo_data.get("spendable", True)
            ]

        logger.debug(f"Found {len(utxos)} coins with {min_confirmations}+ confirmations")
        return utxos

    async def fund_psbt(
        self,
        outputs: list[Output],
        inputs: list[Outpoint] | None,
        fee_tokens_per_vbyte: int,
    ) -> FundedTransaction:
        rpc_inputs = [
            {"txid": inp.transaction_id, "vout": inp.transaction_vout} for inp in inputs or []
        ]
        # Amounts as strings so they are not rounded through floats
        rpc_outputs = [{out.address: format_tokens(out.tokens)} for out in outputs]
        options = {
            "fee_rate": fee_tokens_per_vbyte,
            "lockUnspents": True,
            "add_inputs": inputs is None,
        }

        result = await self._rpc_call(
            "walletcreatefundedpsbt", [rpc_inputs, rpc_outputs, 0, options]
        )

        with node_response("Bitcoin Core"):
            return funded_transaction_from_psbt(result["psbt"], result.get("changepos", -1))

    async def sign_psbt(self, psbt: str) -> str:
        processed = await self._rpc_call("walletprocesspsbt", [psbt])
        with node_response("Bitcoin Core"):
            processed_psbt = processed["psbt"]

        finalized = await self._rpc_call("finalizepsbt", [processed_psbt])
        with node_response("Bitcoin Core"):
            if not finalized.get("complete"):
                raise ExternalServiceError("Wallet could not fully sign the funded PSBT")

            return finalized["hex"]

    async def unlock_utxo(self, lock_id: str, outpoint: Outpoint) -> None:
        unlocked = await self._rpc_call(
            "lockunspent",
            [True, [{"txid": outpoint.transaction_id, "vout": outpoint.transaction_vout}]],
        )
        if not unlocked:
            raise ExternalServiceError(f"Failed to unlock {outpoint}")
        logger.debug(f"Unlocked {outpoint}")

    async def close(self) -> None:
        await self.client.aclose()
