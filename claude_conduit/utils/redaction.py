"""Secret redaction for log output."""

import re
from typing import Any, Dict, List

# Patterns that match the whole secret
SECRET_PATTERNS: List[re.Pattern] = [
    # Anthropic (sk-ant-) and other sk- style keys
    re.compile(r"sk-[a-zA-Z0-9_-]{16,}"),
    # GitHub tokens
    re.compile(r"ghp_[A-Za-z0-9]{36}"),
    re.compile(r"github_pat_[A-Za-z0-9_]{22,}"),
    # AWS access key ids
    re.compile(r"AKIA[0-9A-Z]{16}"),
    # Bearer headers
    re.compile(r"(?<=Bearer )[A-Za-z0-9._~+/=-]{16,}"),
]

# key=value / key: value, keeping the key
KEY_VALUE_PATTERN = re.compile(
    r"(\b(api_key|apikey|api-key|token|access_token|auth_token|password|secret)\b)"
    r"\s*[:=]\s*['\"]?[^'\"\\\s]{8,}['\"]?",
    re.IGNORECASE,
)

# Env var names whose values are never logged
SENSITIVE_ENV_NAMES = re.compile(r"KEY|TOKEN|SECRET|PASSWORD|CREDENTIAL", re.IGNORECASE)


def redact_secrets(text: str) -> str:
    """Redact common secret patterns from text.

    Args:
        text: Text that may contain secrets

    Returns:
        Text with secrets replaced by `***`
    """
    if not text:
        return text

    for pattern in SECRET_PATTERNS:
        text = pattern.sub("***", text)

    return KEY_VALUE_PATTERN.sub(lambda m: f"{m.group(1)}=***", text)


def redact_env(env: Dict[str, Any]) -> Dict[str, Any]:
    """Copy of an environment mapping with sensitive values masked."""
    return {
        key: "***" if SENSITIVE_ENV_NAMES.search(key) else value
        for key, value in env.items()
    }
