from eurozbot.security.redaction import (
    REDACTED,
    SENSITIVE_KEYS,
    forget_secret,
    redact_data,
    register_secret,
    safe_repr,
    sanitize_mapping,
    sanitize_text,
)
from eurozbot.security.secrets import (
    ChainedSecretProvider,
    DotenvSecretProvider,
    EnvSecretProvider,
    build_default_provider,
    inject_runtime_secrets,
    normalize_private_key,
    prompt_private_key,
)

__all__ = [
    "REDACTED",
    "SENSITIVE_KEYS",
    "forget_secret",
    "redact_data",
    "register_secret",
    "safe_repr",
    "sanitize_mapping",
    "sanitize_text",
    "EnvSecretProvider",
    "DotenvSecretProvider",
    "ChainedSecretProvider",
    "build_default_provider",
    "inject_runtime_secrets",
    "normalize_private_key",
    "prompt_private_key",
]
