"""
ResponseParser: many views over one message stream.

The first view requested drains the stream into a cache; every later view,
of any kind, reads the cache. The underlying pipeline (and therefore the CLI
process) runs at most once per parser.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import (
    Any,
    AsyncIterator,
    Awaitable,
    Callable,
    Dict,
    List,
    Optional,
    Union,
)

from claude_conduit.errors import CancellationError, ParseError
from claude_conduit.messages import (
    AssistantMessage,
    Message,
    ResultMessage,
    ToolResultBlock,
    ToolUseBlock,
    message_text,
)
from claude_conduit.utils.json_extractor import parse_json

logger = logging.getLogger(__name__)

MessageHandler = Callable[[Message], Union[None, Awaitable[None]]]
ConsumedHook = Callable[["ResponseParser"], None]


@dataclass
class ToolExecution:
    """A tool call paired with its result, when the result was seen."""

    name: str
    input: Dict[str, Any]
    tool_use_id: str
    result: Any = None
    is_error: bool = False


@dataclass
class UsageStats:
    input_tokens: int = 0
    output_tokens: int = 0
    cache_creation_tokens: int = 0
    cache_read_tokens: int = 0
    total_tokens: int = 0
    total_cost: Optional[float] = None


async def _invoke(callback: Callable[[Message], Any], message: Message) -> None:
    result = callback(message)
    if inspect.isawaitable(result):
        await result


class ResponseParser:
    """
    Idempotent extraction views over a single-pass message stream.

    Example:
        parser = ResponseParser(query("List the files"))
        text = await parser.as_text()
        usage = await parser.get_usage()  # no second CLI run
    """

    def __init__(
        self,
        messages: AsyncIterator[Message],
        handlers: Optional[List[MessageHandler]] = None,
    ):
        """
        Args:
            messages: The stream to consume; iterated at most once
            handlers: Called for every message as it is drained
        """
        self._source = messages
        self._handlers = list(handlers or [])
        self._messages: List[Message] = []
        self._consumed = False
        self._error: Optional[BaseException] = None
        self._lock = asyncio.Lock()
        self._draining_task: Optional[asyncio.Task] = None
        self._consumed_hooks: List[ConsumedHook] = []

    @property
    def consumed(self) -> bool:
        return self._consumed

    def on_consumed(self, hook: ConsumedHook) -> None:
        """Register a hook that runs once after the stream is drained."""
        if self._consumed:
            self._run_hook(hook)
        else:
            self._consumed_hooks.append(hook)

    async def stream(self, callback: Callable[[Message], Any]) -> None:
        """
        Deliver each message to callback as it arrives, filling the cache.

        If the stream was already drained, the cached messages are replayed
        instead. Messages delivered before a failure are not retracted. Views
        awaited from inside the callback see the messages received so far.

        Args:
            callback: Sync or async callable taking one message
        """
        await self._consume(callback)

    async def as_messages(self) -> List[Message]:
        await self._consume()
        return list(self._messages)

    async def as_text(self) -> str:
        """Concatenated text blocks of all assistant messages."""
        await self._consume()
        return "".join(message_text(m) for m in self._messages)

    async def as_result(self) -> Optional[str]:
        """Content of the last result message, or None if there was none."""
        await self._consume()
        for message in reversed(self._messages):
            if isinstance(message, ResultMessage):
                return message.content
        return None

    async def as_json(self) -> Any:
        """
        Parse structured data out of the assistant text.

        Falls back to the result content when the assistant text holds no
        JSON. Markdown code fences are tolerated.

        Raises:
            ParseError: If neither source contains valid JSON
        """
        text = await self.as_text()
        try:
            return parse_json(text)
        except ParseError:
            result = await self.as_result()
            if not result or result == text:
                raise
            return parse_json(result)

    async def as_tool_executions(self) -> List[ToolExecution]:
        await self._consume()

        executions: List[ToolExecution] = []
        by_id: Dict[str, ToolExecution] = {}
        for message in self._messages:
            if not isinstance(message, AssistantMessage):
                continue
            for block in message.content:
                if isinstance(block, ToolUseBlock):
                    execution = ToolExecution(
                        name=block.name, input=block.input, tool_use_id=block.id
                    )
                    executions.append(execution)
                    by_id[block.id] = execution
                elif isinstance(block, ToolResultBlock):
                    execution = by_id.get(block.tool_use_id)
                    if execution is not None:
                        execution.result = block.content
                        execution.is_error = block.is_error

        return executions

    async def find_tool_results(self, tool_name: str) -> List[Any]:
        """Results of every execution of tool_name, in call order (errors skipped)."""
        return [
            execution.result
            for execution in await self.as_tool_executions()
            if execution.name == tool_name and not execution.is_error
        ]

    async def find_tool_result(self, tool_name: str) -> Optional[Any]:
        results = await self.find_tool_results(tool_name)
        return results[0] if results else None

    async def get_usage(self) -> Optional[UsageStats]:
        """
        Token usage and cost summed over all result messages.

        Returns:
            UsageStats, or None when no result message carried usage or cost
        """
        await self._consume()

        stats = UsageStats()
        seen = False
        for message in self._messages:
            if not isinstance(message, ResultMessage):
                continue
            if message.usage:
                seen = True
                usage = message.usage
                stats.input_tokens += int(usage.get("input_tokens") or 0)
                stats.output_tokens += int(usage.get("output_tokens") or 0)
                stats.cache_creation_tokens += int(
                    usage.get("cache_creation_input_tokens") or 0
                )
                stats.cache_read_tokens += int(usage.get("cache_read_input_tokens") or 0)
            if message.cost.total_cost is not None:
                seen = True
                stats.total_cost = (stats.total_cost or 0.0) + message.cost.total_cost

        if not seen:
            return None
        stats.total_tokens = stats.input_tokens + stats.output_tokens
        return stats

    async def get_cost(self) -> Optional[float]:
        usage = await self.get_usage()
        return usage.total_cost if usage else None

    async def succeeded(self) -> bool:
        """True when the stream drained without error. Never raises."""
        try:
            await self._consume()
        except asyncio.CancelledError:
            raise
        except Exception:
            return False
        return True

    async def get_session_id(self) -> Optional[str]:
        await self._consume()
        return self.session_id_from_cache()

    def session_id_from_cache(self) -> Optional[str]:
        """First session id carried by any cached message (no draining)."""
        # SystemMessage exposes data["session_id"] through the same property
        for message in self._messages:
            if message.session_id:
                return message.session_id
        return None

    async def _consume(self, callback: Optional[Callable[[Message], Any]] = None) -> None:
        if self._draining_task is not None and asyncio.current_task() is self._draining_task:
            # Called from a handler or stream callback: the lock is already
            # held by this task, so serve what has arrived so far
            if callback is not None:
                for message in list(self._messages):
                    await _invoke(callback, message)
            return

        async with self._lock:
            if self._consumed:
                if callback is not None:
                    for message in self._messages:
                        await _invoke(callback, message)
            else:
                await self._drain(callback)

        if self._error is not None:
            raise self._error

    async def _drain(self, callback: Optional[Callable[[Message], Any]]) -> None:
        self._draining_task = asyncio.current_task()
        try:
            async for message in self._source:
                self._messages.append(message)
                await self._run_handlers(message)
                if callback is not None:
                    await _invoke(callback, message)
        except asyncio.CancelledError:
            self._error = CancellationError()
            self._consumed = True
            raise
        except Exception as e:
            logger.debug(f"[RESPONSE] Stream failed after {len(self._messages)} messages: {e}")
            self._error = e
        finally:
            self._draining_task = None
            aclose = getattr(self._source, "aclose", None)
            if aclose is not None:
                await aclose()

        self._consumed = True
        hooks, self._consumed_hooks = self._consumed_hooks, []
        for hook in hooks:
            self._run_hook(hook)

    async def _run_handlers(self, message: Message) -> None:
        for handler in self._handlers:
            try:
                await _invoke(handler, message)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"[RESPONSE] Message handler failed: {e}", exc_info=True)

    def _run_hook(self, hook: ConsumedHook) -> None:
        try:
            hook(self)
        except Exception as e:
            logger.warning(f"[RESPONSE] on_consumed hook failed: {e}", exc_info=True)
