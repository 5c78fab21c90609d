"""Error taxonomy for claude-conduit.

Every failure the pipeline can produce is a subclass of ConduitError so callers
can catch the whole family with one clause, or single out a kind.
"""

import re
from enum import Enum
from typing import Any, Dict, List, Optional, Type


class ConduitError(Exception):
    """Base exception for all claude-conduit errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message
        self.correlation_id: Optional[str] = None

    def annotate(self, correlation_id: str) -> "ConduitError":
        """Tag the error with a correlation id (prefixes the message once)."""
        if self.correlation_id is None:
            self.correlation_id = correlation_id
            self.message = f"[{correlation_id}] {self.message}"
            self.args = (self.message,) + self.args[1:]
        return self

    def __str__(self) -> str:
        return self.message


class TransportError(ConduitError):
    """The CLI process could not be spawned, crashed, or exited non-zero."""

    def __init__(
        self,
        message: str,
        return_code: Optional[int] = None,
        stderr: str = "",
        timed_out: bool = False,
    ):
        super().__init__(message)
        self.return_code = return_code
        self.stderr = stderr
        self.timed_out = timed_out


class CLINotFoundError(TransportError):
    """Raised when the claude executable cannot be located."""

    def __init__(self, searched_paths: List[str], message: Optional[str] = None):
        self.searched_paths = searched_paths
        if message is None:
            searched = "\n".join(f"  {p}" for p in searched_paths) or "  (none)"
            message = (
                "Claude Code CLI is not installed or not in PATH.\n\n"
                "To install:\n"
                "  npm install -g @anthropic-ai/claude-code\n\n"
                f"Searched:\n{searched}"
            )
        super().__init__(message, return_code=127)


class ParseError(ConduitError):
    """A raw record could not be decoded, or JSON extraction from text failed."""

    def __init__(self, message: str, raw: Optional[str] = None):
        super().__init__(message)
        self.raw = raw


class AgentErrorKind(str, Enum):
    """Classification of an error record reported by the CLI itself."""

    AUTHENTICATION = "authentication"
    RATE_LIMIT = "rate_limit"
    PERMISSION_DENIED = "permission_denied"
    NETWORK = "network"
    TIMEOUT = "timeout"
    GENERIC = "generic"


class AgentReportedError(ConduitError):
    """An `error` record emitted by the CLI process."""

    kind = AgentErrorKind.GENERIC

    def __init__(
        self,
        message: str,
        detail: Optional[Dict[str, Any]] = None,
        kind: Optional[AgentErrorKind] = None,
    ):
        super().__init__(message)
        self.detail = detail or {}
        if kind is not None:
            self.kind = kind


class AuthenticationError(AgentReportedError):
    kind = AgentErrorKind.AUTHENTICATION


class RateLimitError(AgentReportedError):
    kind = AgentErrorKind.RATE_LIMIT

    def __init__(
        self,
        message: str,
        detail: Optional[Dict[str, Any]] = None,
        kind: Optional[AgentErrorKind] = None,
    ):
        super().__init__(message, detail, kind)
        self.retry_after = _parse_retry_after(message, self.detail)


class PermissionDeniedError(AgentReportedError):
    kind = AgentErrorKind.PERMISSION_DENIED


class NetworkError(AgentReportedError):
    kind = AgentErrorKind.NETWORK


class AgentTimeoutError(AgentReportedError):
    kind = AgentErrorKind.TIMEOUT


class InterceptorTimeoutError(ConduitError):
    """The interceptor chain exceeded its configured time budget."""

    def __init__(self, timeout_ms: int):
        super().__init__(f"Interceptor chain timed out after {timeout_ms}ms")
        self.timeout_ms = timeout_ms


class InterceptorChainError(ConduitError):
    """A middleware failed or violated the chain contract."""

    def __init__(self, message: str, interceptor_name: Optional[str] = None):
        super().__init__(f"Interceptor chain error: {message}")
        self.interceptor_name = interceptor_name


class CancellationError(ConduitError):
    """The invocation was aborted by an external cancel signal."""

    def __init__(self, message: str = "Query was cancelled"):
        super().__init__(message)


# Ordered: first match wins. Best effort only - the CLI's wording is not a
# stable contract, so anything unmatched falls through to GENERIC.
ERROR_PATTERNS: List[tuple] = [
    (
        AgentErrorKind.AUTHENTICATION,
        re.compile(
            r"invalid api key|authentication|unauthorized|not logged in|"
            r"please run /login|\b401\b|oauth token",
            re.IGNORECASE,
        ),
    ),
    (
        AgentErrorKind.RATE_LIMIT,
        re.compile(
            r"rate limit|rate_limit|too many requests|\b429\b|quota|overloaded",
            re.IGNORECASE,
        ),
    ),
    (
        AgentErrorKind.PERMISSION_DENIED,
        re.compile(
            r"permission denied|not permitted|forbidden|\b403\b|"
            r"requires approval|access denied",
            re.IGNORECASE,
        ),
    ),
    (
        AgentErrorKind.TIMEOUT,
        re.compile(r"timed out|timeout|deadline exceeded", re.IGNORECASE),
    ),
    (
        AgentErrorKind.NETWORK,
        re.compile(
            r"network|econnrefused|econnreset|enotfound|connection (refused|reset)|"
            r"socket hang up|dns",
            re.IGNORECASE,
        ),
    ),
]

ERROR_CLASSES: Dict[AgentErrorKind, Type[AgentReportedError]] = {
    AgentErrorKind.AUTHENTICATION: AuthenticationError,
    AgentErrorKind.RATE_LIMIT: RateLimitError,
    AgentErrorKind.PERMISSION_DENIED: PermissionDeniedError,
    AgentErrorKind.NETWORK: NetworkError,
    AgentErrorKind.TIMEOUT: AgentTimeoutError,
    AgentErrorKind.GENERIC: AgentReportedError,
}

_RETRY_AFTER_RE = re.compile(r"retry[ -]after[:\s]+(\d+)", re.IGNORECASE)


def detect_error_kind(message: str) -> AgentErrorKind:
    """
    Classify an error message reported by the CLI.

    The classification is pattern matching over message text and is not
    exhaustive; callers must treat GENERIC as a valid, common outcome.

    Args:
        message: Error text from the CLI's error record

    Returns:
        The detected AgentErrorKind
    """
    if not message:
        return AgentErrorKind.GENERIC

    for kind, pattern in ERROR_PATTERNS:
        if pattern.search(message):
            return kind

    return AgentErrorKind.GENERIC


def create_typed_error(
    kind: AgentErrorKind,
    message: str,
    detail: Optional[Dict[str, Any]] = None,
) -> AgentReportedError:
    """Build the AgentReportedError subclass matching a classified kind."""
    error_cls = ERROR_CLASSES.get(kind, AgentReportedError)
    return error_cls(message, detail)


def _parse_retry_after(message: str, detail: Dict[str, Any]) -> Optional[int]:
    value = detail.get("retry_after") if isinstance(detail, dict) else None
    if value is not None:
        try:
            return int(value)
        except (TypeError, ValueError):
            return None

    match = _RETRY_AFTER_RE.search(message or "")
    if match:
        return int(match.group(1))
    return None
