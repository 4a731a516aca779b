from __future__ import annotations

from decimal import Decimal
from pathlib import Path

from eurozbot.config import Settings, WalletMode

ENV_EXAMPLE = Path(__file__).resolve().parents[1] / ".env.example"


def _env_lines() -> list[str]:
    env_example = ENV_EXAMPLE.read_text(encoding="utf-8")
    return [
        line.strip()
        for line in env_example.splitlines()
        if line.strip() and not line.strip().startswith("#")
    ]


def test_env_example_is_multiline_and_key_value() -> None:
    lines = _env_lines()

    assert len(lines) > 1
    assert all("=" in line for line in lines)


def test_env_example_documents_every_setting() -> None:
    keys = {line.split("=", 1)[0] for line in _env_lines()}
    aliases = {field.alias for field in Settings.model_fields.values() if field.alias}

    assert aliases == keys


def test_env_example_values_load_into_settings(monkeypatch, tmp_path: Path) -> None:
    env_file = tmp_path / ".env.local"
    env_file.write_text(ENV_EXAMPLE.read_text(encoding="utf-8"), encoding="utf-8")
    monkeypatch.chdir(tmp_path)

    settings = Settings(_env_file=str(env_file))

    assert settings.wallet_mode is WalletMode.PRIVATE_KEY
    assert settings.private_key_value() is None
    assert settings.chain_id == 11155111
    assert settings.wrap_max_amount == Decimal("3")
    assert settings.cycle_delay_max_seconds == 360.0
    assert settings.explorer_link("0x1") == "https://sepolia.etherscan.io/tx/0x1"
    assert settings.log_level == "INFO"
    assert settings.observability_enabled is False
