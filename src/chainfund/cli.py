"""
Command-line interface for chainfund.
"""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Annotated

import typer
from loguru import logger

from chainfund.amounts import format_tokens
from chainfund.backends import BitcoinCoreBackend, LndBackend, WalletBackend
from chainfund.backends.lnd import load_macaroon
from chainfund.config import Settings, get_settings
from chainfund.errors import FundTransactionError
from chainfund.funding import fund_transaction
from chainfund.models import FundRequest, Utxo
from chainfund.prompt import checkbox_prompt

app = typer.Typer(
    name="chainfund",
    help="Fund and sign on-chain transactions with a node wallet",
    add_completion=False,
)


def setup_logging(level: str) -> None:
    """Configure loguru logging."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}",
    )


def build_backend(settings: Settings) -> WalletBackend:
    """Create the configured wallet backend."""
    if settings.backend == "bitcoin_core":
        return BitcoinCoreBackend(
            rpc_url=settings.rpc_url,
            rpc_user=settings.rpc_user,
            rpc_password=settings.rpc_password,
            wallet=settings.rpc_wallet,
            fee_conf_target=settings.fee_conf_target,
        )

    if settings.backend != "lnd":
        raise ValueError(f"Unknown backend: {settings.backend}")

    if not settings.lnd_macaroon_path.exists():
        raise ValueError(f"Macaroon file not found: {settings.lnd_macaroon_path}")

    tls_cert = settings.lnd_tls_cert_path if settings.lnd_tls_cert_path.exists() else None
    return LndBackend(
        rest_url=settings.lnd_rest_url,
        macaroon=load_macaroon(settings.lnd_macaroon_path),
        tls_cert=tls_cert,
        fee_conf_target=settings.fee_conf_target,
    )


def _apply_overrides(
    settings: Settings,
    backend_type: str | None,
    lnd_rest_url: str | None,
    macaroon: Path | None,
    tls_cert: Path | None,
    rpc_url: str | None,
) -> Settings:
    overrides = {
        "backend": backend_type,
        "lnd_rest_url": lnd_rest_url,
        "lnd_macaroon_path": macaroon,
        "lnd_tls_cert_path": tls_cert,
        "rpc_url": rpc_url,
    }
    updates = {key: value for key, value in overrides.items() if value is not None}
    return settings.model_copy(update=updates) if updates else settings


BackendOption = Annotated[
    str | None, typer.Option("--backend", "-b", help="Backend: lnd | bitcoin_core")
]
LndUrlOption = Annotated[str | None, typer.Option("--lnd-rest-url", help="lnd REST URL")]
MacaroonOption = Annotated[Path | None, typer.Option("--macaroon", help="lnd macaroon path")]
TlsCertOption = Annotated[Path | None, typer.Option("--tls-cert", help="lnd TLS certificate")]
RpcUrlOption = Annotated[str | None, typer.Option("--rpc-url", help="Bitcoin Core RPC URL")]
LogLevelOption = Annotated[str | None, typer.Option("--log-level", "-l", help="Log level")]


@app.command()
def fund(
    addresses: Annotated[
        list[str], typer.Option("--address", "-a", help="Destination address (repeatable)")
    ],
    amounts: Annotated[
        list[str],
        typer.Option("--amount", help="Amount for the address at the same position (repeatable)"),
    ],
    utxos: Annotated[
        list[str] | None,
        typer.Option("--utxo", "-u", help="Coin to spend as txid:vout (repeatable)"),
    ] = None,
    select_utxos: Annotated[
        bool, typer.Option("--select-utxos", help="Pick coins to spend interactively")
    ] = False,
    dry_run: Annotated[
        bool, typer.Option("--dry-run", help="Sign but release the coin locks afterwards")
    ] = False,
    fee_rate: Annotated[
        int | None, typer.Option("--fee-rate", min=1, help="Fee rate in sat/vbyte")
    ] = None,
    backend_type: BackendOption = None,
    lnd_rest_url: LndUrlOption = None,
    macaroon: MacaroonOption = None,
    tls_cert: TlsCertOption = None,
    rpc_url: RpcUrlOption = None,
    log_level: LogLevelOption = None,
) -> None:
    """Fund and sign a transaction paying the given addresses."""
    settings = _apply_overrides(
        get_settings(), backend_type, lnd_rest_url, macaroon, tls_cert, rpc_url
    )
    setup_logging(log_level or settings.log_level)

    request = FundRequest(
        addresses=addresses,
        amounts=amounts,
        utxos=utxos or [],
        fee_tokens_per_vbyte=fee_rate,
        is_dry_run=dry_run,
        is_selecting_utxos=select_utxos,
    )

    try:
        backend = build_backend(settings)
    except ValueError as e:
        logger.error(str(e))
        raise typer.Exit(1)

    try:
        result = asyncio.run(_run_fund(request, backend, settings))
    except FundTransactionError as e:
        logger.error(f"Funding failed: {e.message}")
        raise typer.Exit(1)

    typer.echo(json.dumps({"signed_transaction": result}, indent=2))


async def _run_fund(request: FundRequest, backend: WalletBackend, settings: Settings) -> str:
    try:
        result = await fund_transaction(
            request,
            backend,
            checkbox_prompt,
            dust_value=settings.dust_value,
            min_confirmations=settings.min_confirmations,
        )
    finally:
        await backend.close()

    if request.is_dry_run:
        logger.info("Dry run complete, coins were released")
    return result.signed_transaction


@app.command()
def coins(
    min_confirmations: Annotated[
        int | None, typer.Option("--min-confs", min=0, help="Minimum confirmations")
    ] = None,
    backend_type: BackendOption = None,
    lnd_rest_url: LndUrlOption = None,
    macaroon: MacaroonOption = None,
    tls_cert: TlsCertOption = None,
    rpc_url: RpcUrlOption = None,
    log_level: LogLevelOption = None,
) -> None:
    """List wallet coins as outpoints usable with --utxo."""
    settings = _apply_overrides(
        get_settings(), backend_type, lnd_rest_url, macaroon, tls_cert, rpc_url
    )
    setup_logging(log_level or settings.log_level)

    try:
        backend = build_backend(settings)
    except ValueError as e:
        logger.error(str(e))
        raise typer.Exit(1)

    confs = settings.min_confirmations if min_confirmations is None else min_confirmations
    try:
        utxos = asyncio.run(_list_coins(backend, confs))
    except FundTransactionError as e:
        logger.error(f"Listing coins failed: {e.message}")
        raise typer.Exit(1)

    if not utxos:
        typer.echo("No confirmed coins")
        return

    for utxo in utxos:
        typer.echo(
            f"{format_tokens(utxo.tokens)}  {utxo.outpoint}  ({utxo.confirmation_count} confs)"
        )


async def _list_coins(backend: WalletBackend, min_confirmations: int) -> list[Utxo]:
    try:
        return await backend.get_utxos(min_confirmations)
    finally:
        await backend.close()


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
