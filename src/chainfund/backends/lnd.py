"""
LND wallet backend.

Talks to the lnd REST gateway (walletrpc sub-server) over TLS with a
macaroon. Funded coins are leased by lnd; the lease ids it returns are kept
as hex lock ids and sent back on release.
"""

from __future__ import annotations

import base64
import math
import ssl
from pathlib import Path
from typing import Any

import httpx
from loguru import logger

from chainfund.backends.base import WalletBackend, funded_transaction_from_psbt, node_response
from chainfund.constants import DEFAULT_FEE_CONF_TARGET
from chainfund.errors import ExternalServiceError, PreconditionError
from chainfund.models import FundedTransaction, Outpoint, Output, Utxo

DEFAULT_REST_TIMEOUT = 30.0

# lnd treats max_confs=0 as "only unconfirmed"; use the int32 ceiling instead
MAX_CONFS = 2_147_483_647

# Weight units per virtual byte
WU_PER_VBYTE = 4


def load_macaroon(macaroon_path: Path) -> str:
    """Read a binary macaroon file as hex."""
    return macaroon_path.read_bytes().hex()


class LndBackend(WalletBackend):
    """Wallet backend using the lnd REST API."""

    def __init__(
        self,
        rest_url: str = "https://127.0.0.1:8080",
        macaroon: str = "",
        tls_cert: Path | None = None,
        fee_conf_target: int = DEFAULT_FEE_CONF_TARGET,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize lnd backend.

        Args:
            rest_url: URL of lnd's REST listener
            macaroon: Hex encoded macaroon with onchain read/write permissions
            tls_cert: Path to lnd's tls.cert (system trust store when None)
            fee_conf_target: Confirmation target for fee estimation
            transport: Optional httpx transport, mainly for tests
        """
        self.rest_url = rest_url.rstrip("/")
        self.fee_conf_target = fee_conf_target

        verify: ssl.SSLContext | bool = True
        if tls_cert is not None:
            verify = ssl.create_default_context(cafile=str(tls_cert))

        self.client = httpx.AsyncClient(
            base_url=self.rest_url,
            timeout=DEFAULT_REST_TIMEOUT,
            headers={"Grpc-Metadata-macaroon": macaroon},
            verify=verify,
            transport=transport,
        )

    async def _api_call(
        self,
        method: str,
        endpoint: str,
        data: dict[str, Any] | None = None,
    ) -> Any:
        """
        Make an API call to lnd.

        Raises:
            ExternalServiceError: On lnd errors and connection/timeout errors
        """
        try:
            if method == "GET":
                response = await self.client.get(endpoint)
            elif method == "POST":
                response = await self.client.post(endpoint, json=data or {})
            else:
                raise ValueError(f"Unsupported HTTP method: {method}")
        except httpx.HTTPError as e:
            logger.error(f"lnd API call failed: {endpoint} - {e}")
            raise ExternalServiceError(f"lnd API call {endpoint} failed: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = None

        if response.is_error:
            message = body.get("message") if isinstance(body, dict) else None
            message = message or f"HTTP {response.status_code}"
            logger.error(f"lnd API error from {endpoint}: {message}")
            raise ExternalServiceError(message)

        return body if body is not None else {}

    async def get_chain_fee_rate(self) -> int:
        result = await self._api_call("GET", f"/v2/wallet/estimatefee/{self.fee_conf_target}")

        with node_response("lnd"):
            sat_per_kw = int(result["sat_per_kw"])
        sat_per_vbyte = math.ceil(sat_per_kw * WU_PER_VBYTE / 1000)
        logger.debug(f"Estimated fee for {self.fee_conf_target} blocks: {sat_per_vbyte} sat/vB")
        return sat_per_vbyte

    async def get_utxos(self, min_confirmations: int) -> list[Utxo]:
        result = await self._api_call(
            "POST",
            "/v2/wallet/utxos",
            {"min_confs": min_confirmations, "max_confs": MAX_CONFS},
        )

        utxos = []
        with node_response("lnd"):
            for utxo_data in result.get("utxos", []):
                outpoint = utxo_data["outpoint"]
                utxos.append(
                    Utxo(
                        transaction_id=outpoint["txid_str"],
                        transaction_vout=int(outpoint.get("output_index", 0)),
                        tokens=int(utxo_data["amount_sat"]),
                        confirmation_count=int(utxo_data.get("confirmations", 0)),
                        address=utxo_data.get("address", ""),
                    )
                )

        logger.debug(f"Found {len(utxos)} coins with {min_confirmations}+ confirmations")
        return utxos

    async def fund_psbt(
        self,
        outputs: list[Output],
        inputs: list[Outpoint] | None,
        fee_tokens_per_vbyte: int,
    ) -> FundedTransaction:
        raw_outputs: dict[str, str] = {}
        for output in outputs:
            # The template maps address to amount
            if output.address in raw_outputs:
                raise PreconditionError(f"CannotPaySameAddressTwiceInTransaction: {output.address}")
            raw_outputs[output.address] = str(output.tokens)

        template: dict[str, Any] = {"outputs": raw_outputs}
        # No inputs key at all lets lnd pick the coins
        if inputs is not None:
            template["inputs"] = [
                {"txid_str": inp.transaction_id, "output_index": inp.transaction_vout}
                for inp in inputs
            ]

        result = await self._api_call(
            "POST",
            "/v2/wallet/psbt/fund",
            {"raw": template, "sat_per_vbyte": str(fee_tokens_per_vbyte)},
        )

        with node_response("lnd"):
            lock_ids = {}
            for lease in result.get("locked_utxos", []):
                outpoint = lease["outpoint"]
                key = Outpoint(outpoint["txid_str"], int(outpoint.get("output_index", 0)))
                lock_ids[key] = base64.b64decode(lease["id"]).hex()

            return funded_transaction_from_psbt(
                result["funded_psbt"],
                int(result.get("change_output_index", -1)),
                lock_ids,
            )

    async def sign_psbt(self, psbt: str) -> str:
        result = await self._api_call("POST", "/v2/wallet/psbt/finalize", {"funded_psbt": psbt})

        with node_response("lnd"):
            raw_final_tx = result.get("raw_final_tx")
            if not raw_final_tx:
                raise ExternalServiceError("lnd did not return a final transaction")

            return base64.b64decode(raw_final_tx, validate=True).hex()

    async def unlock_utxo(self, lock_id: str, outpoint: Outpoint) -> None:
        await self._api_call(
            "POST",
            "/v2/wallet/utxos/release",
            {
                "id": base64.b64encode(bytes.fromhex(lock_id)).decode(),
                "outpoint": {
                    "txid_str": outpoint.transaction_id,
                    "output_index": outpoint.transaction_vout,
                },
            },
        )
        logger.debug(f"Released lease on {outpoint}")

    async def close(self) -> None:
        await self.client.aclose()
