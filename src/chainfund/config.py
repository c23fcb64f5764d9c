"""
Configuration management using pydantic-settings.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from chainfund.constants import DEFAULT_FEE_CONF_TARGET, DUST_VALUE, MIN_CONFIRMATIONS


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="CHAINFUND_", env_file=".env", env_file_encoding="utf-8", case_sensitive=False
    )

    backend: Literal["lnd", "bitcoin_core"] = "lnd"

    # lnd REST
    lnd_rest_url: str = "https://127.0.0.1:8080"
    lnd_macaroon_path: Path = Path.home() / ".lnd/data/chain/bitcoin/mainnet/admin.macaroon"
    lnd_tls_cert_path: Path = Path.home() / ".lnd/tls.cert"

    # Bitcoin Core RPC
    rpc_url: str = "http://127.0.0.1:8332"
    rpc_user: str = ""
    rpc_password: str = ""
    rpc_wallet: str = ""

    # Funding policy
    dust_value: int = Field(default=DUST_VALUE, ge=0, description="Minimum output in sats")
    min_confirmations: int = Field(
        default=MIN_CONFIRMATIONS, ge=0, description="Confirmations for selectable coins"
    )
    fee_conf_target: int = Field(default=DEFAULT_FEE_CONF_TARGET, ge=1)

    log_level: str = "INFO"


def get_settings() -> Settings:
    return Settings()
