from __future__ import annotations

from enum import StrEnum


class WalletErrorCategory(StrEnum):
    USER_REJECTED = "user_rejected"
    CONTRACT_REVERTED = "contract_reverted"
    NETWORK = "network"
    VALIDATION = "validation"
    UNKNOWN = "unknown"


class WalletError(RuntimeError):
    """Base class for failures of a wallet or contract interaction."""

    category = WalletErrorCategory.UNKNOWN

    def __init__(self, message: str, *, tx_hash: str | None = None) -> None:
        super().__init__(message)
        self.tx_hash = tx_hash


class UserRejectedError(WalletError):
    """The signer declined the transaction."""

    category = WalletErrorCategory.USER_REJECTED


class ContractRevertedError(WalletError):
    """The contract rejected the call (paused, insufficient allowance, ...)."""

    category = WalletErrorCategory.CONTRACT_REVERTED


class NetworkError(WalletError):
    """RPC transport failure or confirmation timeout."""

    category = WalletErrorCategory.NETWORK


class ValidationError(WalletError, ValueError):
    """Raised when a manually entered amount or key is unusable."""

    category = WalletErrorCategory.VALIDATION


class ConfigurationError(ValueError):
    """Raised when required runtime configuration is missing or invalid."""
