"""
claude-conduit: drive the Claude Code CLI from asyncio.

Quick start:
    from claude_conduit import claude

    text = await claude().with_model("sonnet").query("Say hello").as_text()
"""

from logging import NullHandler, getLogger

from claude_conduit.client import ConduitClient, query
from claude_conduit.errors import (
    AgentErrorKind,
    AgentReportedError,
    AgentTimeoutError,
    AuthenticationError,
    CancellationError,
    CLINotFoundError,
    ConduitError,
    InterceptorChainError,
    InterceptorTimeoutError,
    NetworkError,
    ParseError,
    PermissionDeniedError,
    RateLimitError,
    TransportError,
)
from claude_conduit.fluent import QueryBuilder, claude
from claude_conduit.interceptors import (
    CachingInterceptor,
    InterceptorConfig,
    InterceptorContext,
    InterceptorRequest,
    InterceptorResponse,
    ResponseCache,
    ResponseMetadata,
)
from claude_conduit.logging import setup_logging
from claude_conduit.messages import (
    AssistantMessage,
    Message,
    ResultMessage,
    SystemMessage,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
)
from claude_conduit.options import ClaudeOptions
from claude_conduit.response import ResponseParser, ToolExecution, UsageStats
from claude_conduit.roles import RoleConfig, RoleNotFoundError, RoleRegistry, apply_role
from claude_conduit.session import Session

__version__ = "0.1.0"

getLogger(__name__).addHandler(NullHandler())

__all__ = [
    "ConduitClient",
    "setup_logging",
    "query",
    "claude",
    "QueryBuilder",
    "Session",
    "ResponseParser",
    "ToolExecution",
    "UsageStats",
    "ClaudeOptions",
    "InterceptorConfig",
    "InterceptorContext",
    "InterceptorRequest",
    "InterceptorResponse",
    "ResponseMetadata",
    "ResponseCache",
    "CachingInterceptor",
    "RoleConfig",
    "RoleRegistry",
    "RoleNotFoundError",
    "apply_role",
    "Message",
    "AssistantMessage",
    "ResultMessage",
    "SystemMessage",
    "TextBlock",
    "ToolUseBlock",
    "ToolResultBlock",
    "ConduitError",
    "TransportError",
    "CLINotFoundError",
    "ParseError",
    "AgentErrorKind",
    "AgentReportedError",
    "AuthenticationError",
    "RateLimitError",
    "PermissionDeniedError",
    "NetworkError",
    "AgentTimeoutError",
    "InterceptorTimeoutError",
    "InterceptorChainError",
    "CancellationError",
]
