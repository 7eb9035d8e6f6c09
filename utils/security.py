import re
from typing import Mapping, Optional


def redact_secrets(text: str) -> str:
    """Redact common secret patterns from logs and error strings."""
    if not isinstance(text, str):
        return text

    redacted = text

    # Query params like apiKey=, api_key=, key=, token=, access_token=
    redacted = re.sub(r"(?i)(api[_-]?key|access_token|key|token|secret)=([^&\s]+)", r"\1=***REDACTED***", redacted)

    # Authorization: Bearer <token>
    redacted = re.sub(r"(?i)Authorization:\s*Bearer\s+[A-Za-z0-9._\-]+", "Authorization: Bearer ***REDACTED***", redacted)

    # Generic bearer tokens without header prefix
    redacted = re.sub(r"(?i)Bearer\s+[A-Za-z0-9._\-]+", "Bearer ***REDACTED***", redacted)

    # GitHub personal access tokens
    redacted = re.sub(r"gh[pousr]_[A-Za-z0-9]{20,}", "***REDACTED***", redacted)

    return redacted


def is_configured_key(value: Optional[str]) -> bool:
    """Return True if an env var-like key is configured (not empty or placeholder)."""
    if not value:
        return False
    s = value.strip()
    if not s:
        return False
    return ('YOUR_' not in s) and ('your_' not in s)


def has_env_key(env: Mapping[str, str], var_name: Optional[str]) -> bool:
    if not var_name:
        return False
    return is_configured_key(env.get(var_name))
