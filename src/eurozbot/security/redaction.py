from __future__ import annotations

import re
import threading
from collections.abc import Iterable, Mapping
from typing import Any

REDACTED = "***REDACTED***"

SENSITIVE_KEYS = {
    "PRIVATE_KEY",
    "WALLET_PRIVATE_KEY",
    "SECRET",
    "SIGNATURE",
    "AUTHORIZATION",
    "PASSWORD",
    "PASSPHRASE",
    "MNEMONIC",
    "SEED_PHRASE",
}

_SENSITIVE_PARTS = tuple(part.casefold() for part in SENSITIVE_KEYS)
_SENSITIVE_EXACT_KEYS = {
    "pk",
    "privkey",
    "private_key",
    "secret",
    "passphrase",
    "password",
    "access_token",
    "signature",
    "authorization",
    "mnemonic",
}
_SENSITIVE_EXACT_COMPACT_KEYS = {k.replace("_", "") for k in _SENSITIVE_EXACT_KEYS}

# Tx hashes share the 64-hex shape of a private key, so keys are only matched
# when labelled or registered as known secrets.
_PLAIN_SECRET_PATTERNS = (
    re.compile(r"(?im)(authorization\s*[:=]\s*)(bearer\s+)?([^\s,;]+)"),
    re.compile(r"(?im)(private[_ -]?key\s*[:=]\s*)([^\s,;]+)"),
    re.compile(r"(?im)(mnemonic\s*[:=]\s*)([^,;\n]+)"),
)
_JSON_KEY_VALUE_PATTERN = re.compile(
    r'("(?:private_key|privateKey|secret|password|mnemonic)"\s*:\s*")([^"]+)(")',
    re.IGNORECASE,
)

_KNOWN_SECRETS: set[str] = set()
_KNOWN_SECRETS_LOCK = threading.Lock()


def register_secret(value: str | None) -> None:
    if not value:
        return
    with _KNOWN_SECRETS_LOCK:
        _KNOWN_SECRETS.add(value)
        if value.startswith("0x"):
            _KNOWN_SECRETS.add(value[2:])


def forget_secret(value: str | None) -> None:
    if not value:
        return
    with _KNOWN_SECRETS_LOCK:
        _KNOWN_SECRETS.discard(value)
        if value.startswith("0x"):
            _KNOWN_SECRETS.discard(value[2:])


def known_secrets() -> tuple[str, ...]:
    with _KNOWN_SECRETS_LOCK:
        # longest first so a prefixed key is replaced before its bare form
        return tuple(sorted(_KNOWN_SECRETS, key=len, reverse=True))


def _is_sensitive_key(key: object) -> bool:
    normalized = str(key).replace("-", "_").casefold()
    compact = normalized.replace("_", "")
    return compact in _SENSITIVE_EXACT_COMPACT_KEYS or any(
        part in normalized for part in _SENSITIVE_PARTS
    )


def _mask_secret(value: str) -> str:
    if not value:
        return REDACTED
    if len(value) > 8:
        return f"{value[:4]}{'*' * (len(value) - 8)}{value[-4:]}"
    if len(value) <= 2:
        return "*" * len(value)
    return f"{'*' * (len(value) - 2)}{value[-2:]}"


def _redact_match(match: re.Match[str]) -> str:
    prefix = match.group(1)
    optional_scheme = ""
    if match.lastindex and match.lastindex >= 3:
        optional_scheme = match.group(2) or ""
    return f"{prefix}{optional_scheme}[REDACTED]"


def sanitize_text(text: str, known: Iterable[str] = ()) -> str:
    try:
        redacted = str(text)
        for secret in (*tuple(known), *known_secrets()):
            if secret:
                redacted = redacted.replace(secret, REDACTED)

        for pattern in _PLAIN_SECRET_PATTERNS:
            redacted = pattern.sub(_redact_match, redacted)

        return _JSON_KEY_VALUE_PATTERN.sub(
            lambda m: f"{m.group(1)}{_mask_secret(m.group(2))}{m.group(3)}", redacted
        )
    except Exception:  # noqa: BLE001
        return REDACTED


def sanitize_mapping(d: Mapping[str, Any]) -> dict[str, Any]:
    sanitized: dict[str, Any] = {}
    for key, value in d.items():
        key_str = str(key)
        if _is_sensitive_key(key_str):
            sanitized[key_str] = REDACTED if value is not None else None
            continue
        sanitized[key_str] = redact_data(value)
    return sanitized


def redact_data(value: Any) -> Any:
    try:
        if isinstance(value, Mapping):
            return sanitize_mapping(value)
        if isinstance(value, list):
            return [redact_data(item) for item in value]
        if isinstance(value, tuple):
            return tuple(redact_data(item) for item in value)
        if isinstance(value, str):
            return sanitize_text(value)
        return value
    except Exception:  # noqa: BLE001
        return REDACTED


def safe_repr(obj: object) -> str:
    if isinstance(obj, Mapping):
        return repr(sanitize_mapping(obj))
    return sanitize_text(repr(obj))
