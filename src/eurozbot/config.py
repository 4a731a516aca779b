from __future__ import annotations

import re
from decimal import Decimal
from enum import StrEnum

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")

SEPOLIA_CHAIN_ID = 11155111


class WalletMode(StrEnum):
    PRIVATE_KEY = "private_key"
    EXTERNAL_SIGNER = "external_signer"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    rpc_url: str = Field(default="https://ethereum-sepolia-rpc.publicnode.com", alias="RPC_URL")
    chain_id: int = Field(default=SEPOLIA_CHAIN_ID, alias="CHAIN_ID")
    euroz_address: str = Field(
        default="0xED1B7De57918f6B7c8a7a7767557f09A80eC2a35", alias="EUROZ_ADDRESS"
    )
    ceuroz_address: str = Field(
        default="0xCD25e0e4972e075C371948c7137Bcd498C1F4e89", alias="CEUROZ_ADDRESS"
    )
    token_decimals: int = Field(default=6, alias="TOKEN_DECIMALS")
    explorer_tx_url: str = Field(
        default="https://sepolia.etherscan.io/tx/{tx_hash}", alias="EXPLORER_TX_URL"
    )
    tx_confirm_timeout_seconds: float = Field(default=180.0, alias="TX_CONFIRM_TIMEOUT_SECONDS")
    rpc_timeout_seconds: float = Field(default=15.0, alias="RPC_TIMEOUT_SECONDS")

    wallet_mode: WalletMode = Field(default=WalletMode.PRIVATE_KEY, alias="WALLET_MODE")
    wallet_private_key: SecretStr | None = Field(default=None, alias="WALLET_PRIVATE_KEY")

    mint_threshold: Decimal = Field(default=Decimal("3"), alias="MINT_THRESHOLD")
    approve_threshold: Decimal = Field(default=Decimal("10"), alias="APPROVE_THRESHOLD")
    approve_min_amount: int = Field(default=1000, alias="APPROVE_MIN_AMOUNT")
    approve_max_amount: int = Field(default=10000, alias="APPROVE_MAX_AMOUNT")
    wrap_min_amount: Decimal = Field(default=Decimal("0.1"), alias="WRAP_MIN_AMOUNT")
    wrap_max_amount: Decimal = Field(default=Decimal("3"), alias="WRAP_MAX_AMOUNT")
    wrap_max_decimals: int = Field(default=4, alias="WRAP_MAX_DECIMALS")
    wraps_per_cycle: int = Field(default=3, alias="WRAPS_PER_CYCLE")

    pause_min_seconds: float = Field(default=2.0, alias="PAUSE_MIN_SECONDS")
    pause_max_seconds: float = Field(default=40.0, alias="PAUSE_MAX_SECONDS")
    cycle_delay_min_seconds: float = Field(default=300.0, alias="CYCLE_DELAY_MIN_SECONDS")
    cycle_delay_max_seconds: float = Field(default=360.0, alias="CYCLE_DELAY_MAX_SECONDS")
    countdown_interval_seconds: float = Field(default=1.0, alias="COUNTDOWN_INTERVAL_SECONDS")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    observability_enabled: bool = Field(default=False, alias="OBSERVABILITY_ENABLED")
    observability_metrics_exporter: str = Field(
        default="none", alias="OBSERVABILITY_METRICS_EXPORTER"
    )
    observability_otlp_endpoint: str | None = Field(
        default=None, alias="OBSERVABILITY_OTLP_ENDPOINT"
    )
    observability_prometheus_port: int = Field(
        default=9464, alias="OBSERVABILITY_PROMETHEUS_PORT"
    )

    @field_validator("euroz_address", "ceuroz_address")
    def validate_address(cls, value: str) -> str:
        candidate = value.strip()
        if not _ADDRESS_RE.match(candidate):
            raise ValueError("contract address must be 0x followed by 40 hex characters")
        return candidate

    @field_validator("rpc_url")
    def validate_rpc_url(cls, value: str) -> str:
        candidate = value.strip()
        if not candidate.startswith(("http://", "https://")):
            raise ValueError("RPC_URL must be an http(s) URL")
        return candidate

    @field_validator("token_decimals")
    def validate_token_decimals(cls, value: int) -> int:
        if not 0 <= value <= 36:
            raise ValueError("TOKEN_DECIMALS must be within [0, 36]")
        return value

    @field_validator("mint_threshold", "approve_threshold", "wrap_min_amount")
    def validate_positive_decimal(cls, value: Decimal) -> Decimal:
        if value <= 0:
            raise ValueError("thresholds and minimum amounts must be > 0")
        return value

    @field_validator("wrap_max_decimals")
    def validate_wrap_max_decimals(cls, value: int) -> int:
        if value < 0:
            raise ValueError("WRAP_MAX_DECIMALS must be >= 0")
        return value

    @field_validator("wraps_per_cycle")
    def validate_wraps_per_cycle(cls, value: int) -> int:
        if value < 1:
            raise ValueError("WRAPS_PER_CYCLE must be >= 1")
        return value

    @field_validator(
        "pause_min_seconds",
        "cycle_delay_min_seconds",
        "countdown_interval_seconds",
        "tx_confirm_timeout_seconds",
        "rpc_timeout_seconds",
    )
    def validate_positive_seconds(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("durations must be > 0")
        return value

    @model_validator(mode="after")
    def validate_ranges(self) -> Settings:
        if self.approve_min_amount < 1 or self.approve_max_amount < self.approve_min_amount:
            raise ValueError("APPROVE_MIN_AMOUNT must be >= 1 and <= APPROVE_MAX_AMOUNT")
        if self.wrap_max_amount < self.wrap_min_amount:
            raise ValueError("WRAP_MAX_AMOUNT must be >= WRAP_MIN_AMOUNT")
        if self.wrap_max_decimals > self.token_decimals:
            raise ValueError("WRAP_MAX_DECIMALS must be <= TOKEN_DECIMALS")
        if self.pause_max_seconds < self.pause_min_seconds:
            raise ValueError("PAUSE_MAX_SECONDS must be >= PAUSE_MIN_SECONDS")
        if self.cycle_delay_max_seconds < self.cycle_delay_min_seconds:
            raise ValueError("CYCLE_DELAY_MAX_SECONDS must be >= CYCLE_DELAY_MIN_SECONDS")
        return self

    def explorer_link(self, tx_hash: str) -> str:
        return self.explorer_tx_url.format(tx_hash=tx_hash)

    def private_key_value(self) -> str | None:
        if self.wallet_private_key is None:
            return None
        value = self.wallet_private_key.get_secret_value().strip()
        return value or None
