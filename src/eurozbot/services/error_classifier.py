from __future__ import annotations

from dataclasses import dataclass

import aiohttp
import httpx
from web3.exceptions import ContractLogicError, TimeExhausted

from eurozbot.domain.errors import (
    ContractRevertedError,
    NetworkError,
    UserRejectedError,
    ValidationError,
    WalletError,
    WalletErrorCategory,
)
from eurozbot.security.redaction import sanitize_text

_USER_REJECTED_MARKERS = ("user rejected", "user denied", "rejected by user")
_PAUSED_MARKERS = ("enforcedpause", "paused")
_ALLOWANCE_MARKERS = ("insufficient allowance", "erc20insufficientallowance")
_REVERT_MARKERS = ("execution reverted", "revert")

_ERROR_TYPES: dict[WalletErrorCategory, type[WalletError]] = {
    WalletErrorCategory.USER_REJECTED: UserRejectedError,
    WalletErrorCategory.CONTRACT_REVERTED: ContractRevertedError,
    WalletErrorCategory.NETWORK: NetworkError,
    WalletErrorCategory.VALIDATION: ValidationError,
    WalletErrorCategory.UNKNOWN: WalletError,
}


@dataclass(frozen=True)
class ClassifiedError:
    category: WalletErrorCategory
    reason: str


def _message(exc: BaseException) -> str:
    text = str(exc).strip()
    return sanitize_text(text) if text else type(exc).__name__


def classify_wallet_error(exc: BaseException) -> WalletErrorCategory:
    if isinstance(exc, WalletError):
        return exc.category
    lowered = str(exc).casefold()
    if any(marker in lowered for marker in _USER_REJECTED_MARKERS):
        return WalletErrorCategory.USER_REJECTED
    if isinstance(exc, ContractLogicError):
        return WalletErrorCategory.CONTRACT_REVERTED
    if isinstance(exc, TimeExhausted | TimeoutError):
        return WalletErrorCategory.NETWORK
    if isinstance(exc, aiohttp.ClientError | httpx.TransportError | ConnectionError):
        return WalletErrorCategory.NETWORK
    if any(marker in lowered for marker in _REVERT_MARKERS):
        return WalletErrorCategory.CONTRACT_REVERTED
    if isinstance(exc, OSError):
        return WalletErrorCategory.NETWORK
    return WalletErrorCategory.UNKNOWN


def human_reason(exc: BaseException) -> str:
    category = classify_wallet_error(exc)
    lowered = str(exc).casefold()
    if category is WalletErrorCategory.USER_REJECTED:
        return "Transaction rejected by user"
    if any(marker in lowered for marker in _PAUSED_MARKERS):
        return "Contract is paused"
    if any(marker in lowered for marker in _ALLOWANCE_MARKERS):
        return "Insufficient allowance - please approve first"
    return _message(exc)


def describe_error(exc: BaseException) -> ClassifiedError:
    return ClassifiedError(category=classify_wallet_error(exc), reason=human_reason(exc))


def as_wallet_error(exc: BaseException, *, tx_hash: str | None = None) -> WalletError:
    if isinstance(exc, WalletError):
        return exc
    category = classify_wallet_error(exc)
    error = _ERROR_TYPES[category](_message(exc), tx_hash=tx_hash)
    error.__cause__ = exc
    return error
