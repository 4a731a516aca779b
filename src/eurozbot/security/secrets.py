from __future__ import annotations

import getpass
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from eurozbot.domain.errors import ValidationError
from eurozbot.security.redaction import REDACTED

_HEX_KEY_RE = re.compile(r"^0x[0-9a-fA-F]{64}$")


class SecretProvider(Protocol):
    def get(self, key: str) -> str | None: ...


@dataclass(frozen=True)
class EnvSecretProvider:
    def get(self, key: str) -> str | None:
        value = os.getenv(key)
        if value is None:
            return None
        trimmed = value.strip()
        return trimmed or None


@dataclass(frozen=True)
class DotenvSecretProvider:
    env_file: str

    def get(self, key: str) -> str | None:
        path = Path(self.env_file)
        if not path.exists():
            return None
        try:
            for line in path.read_text(encoding="utf-8").splitlines():
                stripped = line.strip()
                if not stripped or stripped.startswith("#"):
                    continue
                if stripped.startswith("export "):
                    stripped = stripped[len("export ") :].strip()
                if not stripped.startswith(f"{key}="):
                    continue
                raw = stripped.split("=", 1)[1].strip()
                return raw.strip("\"'") or None
        except OSError:
            return None
        return None


@dataclass(frozen=True)
class ChainedSecretProvider:
    providers: tuple[SecretProvider, ...]

    def get(self, key: str) -> str | None:
        for provider in self.providers:
            value = provider.get(key)
            if value:
                return value
        return None


def build_default_provider(*, env_file: str | None = None) -> ChainedSecretProvider:
    providers: list[SecretProvider] = [EnvSecretProvider()]
    if env_file:
        providers.append(DotenvSecretProvider(env_file=env_file))
    return ChainedSecretProvider(tuple(providers))


def inject_runtime_secrets(provider: SecretProvider, *, keys: tuple[str, ...]) -> None:
    for key in keys:
        if os.getenv(key):
            continue
        value = provider.get(key)
        if value:
            os.environ[key] = value


def normalize_private_key(raw: str | None) -> str:
    key = (raw or "").strip()
    if not key:
        raise ValidationError("Please enter a private key")
    if not key.startswith("0x"):
        key = "0x" + key
    if len(key) != 66:
        raise ValidationError("Invalid private key length (should be 64 hex characters)")
    if not _HEX_KEY_RE.match(key):
        raise ValidationError("Private key must contain only hex characters")
    return key


def prompt_private_key(prompt: str = "Private key (input hidden): ") -> str:
    return normalize_private_key(getpass.getpass(prompt))


def redact_secret_presence(key: str, value: str | None) -> dict[str, str]:
    return {"key": key, "value": REDACTED if value else "<missing>"}
