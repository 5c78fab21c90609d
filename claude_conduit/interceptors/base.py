"""
Interceptor types.

An interceptor is an async callable `(request, context, next) -> response`.
It may mutate the request/context and call `next` once, return a response
without calling `next` (short-circuit), or raise.
"""

import dataclasses
from dataclasses import dataclass, field
from typing import (
    Any,
    AsyncIterator,
    Awaitable,
    Callable,
    Dict,
    List,
    Literal,
    Optional,
    Protocol,
)

from pydantic import BaseModel, ConfigDict, Field

from claude_conduit.config import Settings
from claude_conduit.messages import Message
from claude_conduit.options import ClaudeOptions

Complexity = Literal["low", "medium", "high"]


@dataclass
class InterceptorMetrics:
    """Timing and size figures; times are epoch milliseconds."""

    start_time: Optional[int] = None
    end_time: Optional[int] = None
    token_count: Optional[int] = None
    latency: Optional[int] = None


@dataclass
class InterceptorContext:
    """
    Per-invocation bag shared by reference across the whole chain.

    The typed fields cover what the built-in interceptors use. Anything else
    goes in `extras` (also reachable as `context["key"]`); the chain never
    reads or rewrites those keys.
    """

    request_id: Optional[str] = None
    session_id: Optional[str] = None
    correlation_id: Optional[str] = None
    timestamp: Optional[int] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    category: Optional[str] = None
    complexity: Optional[Complexity] = None
    suggested_model: Optional[str] = None
    metrics: InterceptorMetrics = field(default_factory=InterceptorMetrics)
    debug: bool = False
    extras: Dict[str, Any] = field(default_factory=dict)

    def __getitem__(self, key: str) -> Any:
        return self.extras[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self.extras[key] = value

    def __contains__(self, key: object) -> bool:
        return key in self.extras

    def get(self, key: str, default: Any = None) -> Any:
        return self.extras.get(key, default)

    def to_dict(self) -> Dict[str, Any]:
        """Shallow dict view; extras and metadata are not copied."""
        data = {f.name: getattr(self, f.name) for f in dataclasses.fields(self)}
        data["metrics"] = dataclasses.asdict(self.metrics)
        return data


@dataclass
class InterceptorRequest:
    prompt: str
    options: ClaudeOptions = field(default_factory=ClaudeOptions)
    original_prompt: Optional[str] = None

    def replace(self, **changes: Any) -> "InterceptorRequest":
        """Return a modified copy, leaving this request untouched."""
        return dataclasses.replace(self, **changes)


@dataclass
class ResponseMetadata:
    model: Optional[str] = None
    token_count: Optional[int] = None
    latency: Optional[int] = None
    cached: bool = False
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass
class InterceptorResponse:
    messages: AsyncIterator[Message]
    metadata: ResponseMetadata = field(default_factory=ResponseMetadata)

    def replace(self, **changes: Any) -> "InterceptorResponse":
        return dataclasses.replace(self, **changes)


Next = Callable[[InterceptorRequest, InterceptorContext], Awaitable[InterceptorResponse]]


class Interceptor(Protocol):
    def __call__(
        self,
        request: InterceptorRequest,
        context: InterceptorContext,
        next: Next,
    ) -> Awaitable[InterceptorResponse]: ...


class InterceptorConfig(BaseModel):
    """Configuration for the interceptor chain."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    interceptors: List[Callable[..., Any]] = Field(default_factory=list)
    debug: bool = False
    timeout: Optional[int] = Field(
        30000, description="Chain timeout in milliseconds; None or 0 disables", ge=0
    )
    max_context_size: int = Field(
        1024 * 1024,
        description="Advisory ceiling on serialized context size, in bytes",
        ge=0,
    )

    @classmethod
    def from_settings(
        cls, settings: Settings, interceptors: Optional[List[Callable[..., Any]]] = None
    ) -> "InterceptorConfig":
        return cls(
            interceptors=list(interceptors or []),
            debug=settings.interceptors.debug,
            timeout=settings.interceptors.timeout_ms,
            max_context_size=settings.interceptors.max_context_size,
        )
