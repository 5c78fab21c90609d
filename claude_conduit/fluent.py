"""
Fluent API for building queries with chainable methods.

Example:
    text = await (
        claude()
        .with_model("opus")
        .allow_tools("Read", "Write")
        .skip_permissions()
        .with_timeout(30000)
        .on_message(lambda m: print("Got:", m.type))
        .query("Create a README file")
        .as_text()
    )
"""

import asyncio
import logging
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

from claude_conduit.client import query as run_query
from claude_conduit.config import Settings, get_settings
from claude_conduit.interceptors.base import InterceptorConfig
from claude_conduit.messages import AssistantMessage, Message, ToolUseBlock
from claude_conduit.options import ClaudeOptions, PermissionMode
from claude_conduit.response import MessageHandler, ResponseParser
from claude_conduit.roles import RoleRegistry, apply_role
from claude_conduit.session import Session

logger = logging.getLogger(__name__)


class QueryBuilder:
    """Accumulates options and handlers, then runs queries with them."""

    def __init__(self, settings: Optional[Settings] = None):
        self._options = ClaudeOptions()
        self._handlers: List[MessageHandler] = []
        self._interceptors: List[Callable[..., Any]] = []
        self._interceptor_config: Optional[InterceptorConfig] = None
        self._cancel_event: Optional[asyncio.Event] = None
        self._settings = settings
        self._default_prompt: Optional[str] = None

    @property
    def options(self) -> ClaudeOptions:
        return self._options

    def _set(self, **changes: Any) -> "QueryBuilder":
        options = self._options.model_copy(deep=True)
        for name, value in changes.items():
            setattr(options, name, value)  # validated on assignment
        self._options = options
        return self

    def with_model(self, model: str) -> "QueryBuilder":
        return self._set(model=model)

    def allow_tools(self, *tools: str) -> "QueryBuilder":
        return self._set(allowed_tools=list(tools))

    def deny_tools(self, *tools: str) -> "QueryBuilder":
        return self._set(denied_tools=list(tools))

    def with_permissions(self, mode: PermissionMode) -> "QueryBuilder":
        return self._set(permission_mode=mode)

    def skip_permissions(self) -> "QueryBuilder":
        """Shorthand for the bypassPermissions mode."""
        return self._set(permission_mode="bypassPermissions")

    def accept_edits(self) -> "QueryBuilder":
        return self._set(permission_mode="acceptEdits")

    def in_directory(self, cwd: str) -> "QueryBuilder":
        return self._set(cwd=cwd)

    def with_cli_path(self, path: str) -> "QueryBuilder":
        """Use a specific claude executable instead of searching for one."""
        return self._set(cli_path=path)

    def with_env(self, env: Dict[str, str]) -> "QueryBuilder":
        return self._set(env={**self._options.env, **env})

    def add_directories(self, *directories: str) -> "QueryBuilder":
        return self._set(
            add_directories=self._options.add_directories
            + [d for d in directories if d not in self._options.add_directories]
        )

    def with_timeout(self, ms: int) -> "QueryBuilder":
        return self._set(timeout=ms)

    def with_session_id(self, session_id: str) -> "QueryBuilder":
        """Continue an existing conversation."""
        return self._set(session_id=session_id)

    def debug(self, enabled: bool = True) -> "QueryBuilder":
        return self._set(debug=enabled)

    def with_role(
        self, name: str, registry: Optional[RoleRegistry] = None
    ) -> "QueryBuilder":
        """
        Apply a role preset. Options already set on this builder win.

        Args:
            name: Role name
            registry: Registry to look the role up in (built-ins by default)

        Raises:
            RoleNotFoundError: If the role is unknown
        """
        role = (registry or RoleRegistry()).get(name)
        self._options = apply_role(role, self._options)
        if role.default_prompt:
            self._default_prompt = role.default_prompt
        return self

    def with_interceptors(self, *interceptors: Callable[..., Any]) -> "QueryBuilder":
        self._interceptors.extend(interceptors)
        return self

    def with_interceptor_config(self, config: InterceptorConfig) -> "QueryBuilder":
        self._interceptor_config = config
        return self

    def with_cancel_event(self, event: asyncio.Event) -> "QueryBuilder":
        """Setting the event aborts in-flight queries built from here."""
        self._cancel_event = event
        return self

    def on_message(self, handler: MessageHandler) -> "QueryBuilder":
        self._handlers.append(handler)
        return self

    def on_assistant(self, handler: Callable[[List[Any]], Any]) -> "QueryBuilder":
        """Handler receives the content blocks of each assistant message."""

        def dispatch(message: Message) -> Any:
            if isinstance(message, AssistantMessage):
                return handler(message.content)
            return None

        self._handlers.append(dispatch)
        return self

    def on_tool_use(self, handler: Callable[[ToolUseBlock], Any]) -> "QueryBuilder":
        """Handler receives every tool_use block, in order."""

        async def dispatch(message: Message) -> None:
            if not isinstance(message, AssistantMessage):
                return
            for block in message.content:
                if isinstance(block, ToolUseBlock):
                    result = handler(block)
                    if asyncio.iscoroutine(result):
                        await result

        self._handlers.append(dispatch)
        return self

    def query(self, prompt: Optional[str] = None) -> ResponseParser:
        """
        Build a parser for the prompt. Nothing runs until a view is awaited.

        Args:
            prompt: Prompt text; defaults to the applied role's default prompt
        """
        return ResponseParser(self._run(self._resolve_prompt(prompt)), self._handlers)

    async def query_raw(self, prompt: Optional[str] = None) -> AsyncIterator[Message]:
        """Yield messages directly, running handlers on each one first."""
        messages = self._run(self._resolve_prompt(prompt))
        try:
            async for message in messages:
                for handler in self._handlers:
                    try:
                        result = handler(message)
                        if asyncio.iscoroutine(result):
                            await result
                    except asyncio.CancelledError:
                        raise
                    except Exception as e:
                        logger.warning(f"[FLUENT] Message handler failed: {e}")
                yield message
        finally:
            await messages.aclose()

    def with_session(self) -> Session:
        """A Session that carries these options and handlers across queries."""
        return Session(
            self._options.model_copy(deep=True),
            list(self._handlers),
            interceptor_config=self._build_interceptor_config(),
            cancel_event=self._cancel_event,
            settings=self._settings,
        )

    def _resolve_prompt(self, prompt: Optional[str]) -> str:
        if prompt is not None:
            return prompt
        if self._default_prompt is not None:
            return self._default_prompt
        raise ValueError("A prompt is required when no role default prompt is set")

    def _build_interceptor_config(self) -> Optional[InterceptorConfig]:
        config = self._interceptor_config
        if not self._interceptors:
            return config
        if config is None:
            return InterceptorConfig.from_settings(
                self._settings or get_settings(), list(self._interceptors)
            )
        return config.model_copy(
            update={"interceptors": [*config.interceptors, *self._interceptors]}
        )

    def _run(self, prompt: str) -> AsyncIterator[Message]:
        return run_query(
            prompt,
            self._options,
            interceptor_config=self._build_interceptor_config(),
            cancel_event=self._cancel_event,
            settings=self._settings,
        )


def claude(settings: Optional[Settings] = None) -> QueryBuilder:
    """Create a new query builder."""
    return QueryBuilder(settings)
