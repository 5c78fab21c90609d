"""
Pipeline driver: interceptor chain -> transport -> normalizer.

With no interceptors configured the client runs the transport and normalizer
directly; no request or context objects are built.
"""

import asyncio
import logging
from typing import Any, AsyncIterator, Callable, List, Optional

from claude_conduit.config import Settings, get_settings
from claude_conduit.errors import (
    ConduitError,
    InterceptorChainError,
    InterceptorTimeoutError,
)
from claude_conduit.interceptors.base import (
    InterceptorConfig,
    InterceptorContext,
    InterceptorRequest,
    InterceptorResponse,
    ResponseMetadata,
)
from claude_conduit.interceptors.builtin import generate_id, now_ms
from claude_conduit.interceptors.chain import build_chain, run_chain
from claude_conduit.messages import Message
from claude_conduit.normalizer import normalize_stream
from claude_conduit.options import ClaudeOptions, apply_settings_defaults
from claude_conduit.transport import SubprocessCLITransport

logger = logging.getLogger(__name__)


class ConduitClient:
    """Runs one prompt through the full pipeline."""

    def __init__(
        self,
        prompt: str,
        options: Optional[ClaudeOptions] = None,
        interceptor_config: Optional[InterceptorConfig] = None,
        *,
        cancel_event: Optional[asyncio.Event] = None,
        settings: Optional[Settings] = None,
    ):
        self._settings = settings or get_settings()
        self._prompt = prompt
        self._options = apply_settings_defaults(options, self._settings)
        self._interceptor_config = interceptor_config
        self._cancel_event = cancel_event

    @property
    def options(self) -> ClaudeOptions:
        return self._options

    async def process_query(self) -> AsyncIterator[Message]:
        """
        Yield the typed messages of one invocation.

        Raises:
            ConduitError: (or a subclass) for any pipeline failure
        """
        config = self._interceptor_config
        if config is None or not config.interceptors:
            stream = self._stream(self._prompt, self._options)
            try:
                async for message in stream:
                    yield message
            finally:
                await stream.aclose()
            return

        context = InterceptorContext(
            request_id=generate_id("req"),
            session_id=self._options.session_id,
            timestamp=now_ms(),
            debug=config.debug,
        )
        request = InterceptorRequest(
            prompt=self._prompt,
            options=self._options,
            original_prompt=self._prompt,
        )
        chain = build_chain(config.interceptors, self._terminal, debug=config.debug)

        if config.debug:
            logger.debug(
                f"[CLIENT] Running {len(config.interceptors)} interceptors "
                f"(request_id={context.request_id})"
            )

        messages: Optional[AsyncIterator[Message]] = None
        try:
            response = await run_chain(chain, request, context, config)
            messages = response.messages
            async for message in messages:
                yield message
        except (InterceptorTimeoutError, InterceptorChainError):
            raise
        except ConduitError as e:
            if context.correlation_id:
                raise e.annotate(context.correlation_id)
            raise
        except Exception as e:
            if context.correlation_id:
                raise ConduitError(f"[{context.correlation_id}] {e}") from e
            raise
        finally:
            aclose = getattr(messages, "aclose", None)
            if aclose is not None:
                await aclose()

    async def _terminal(
        self, request: InterceptorRequest, context: InterceptorContext
    ) -> InterceptorResponse:
        """Innermost chain stage; the process only starts when the stream is iterated."""
        options = self._options.merged(request.options)
        return InterceptorResponse(
            messages=self._stream(request.prompt, options),
            metadata=ResponseMetadata(
                model=options.model,
                token_count=context.metrics.token_count,
                latency=context.metrics.latency,
            ),
        )

    async def _stream(
        self, prompt: str, options: ClaudeOptions
    ) -> AsyncIterator[Message]:
        transport = SubprocessCLITransport(
            prompt,
            options,
            cancel_event=self._cancel_event,
            settings=self._settings,
        )
        records = None
        messages = None
        try:
            await transport.connect()
            records = transport.receive_messages()
            messages = normalize_stream(records)
            async for message in messages:
                yield message
        finally:
            if messages is not None:
                await messages.aclose()
            if records is not None:
                await records.aclose()
            await transport.disconnect()


def query(
    prompt: str,
    options: Optional[ClaudeOptions] = None,
    *,
    interceptors: Optional[List[Callable[..., Any]]] = None,
    interceptor_config: Optional[InterceptorConfig] = None,
    cancel_event: Optional[asyncio.Event] = None,
    settings: Optional[Settings] = None,
) -> AsyncIterator[Message]:
    """
    Run a prompt and iterate its messages.

    Args:
        prompt: Prompt text
        options: Invocation options
        interceptors: Interceptors appended to the configured chain
        interceptor_config: Chain configuration (defaults from settings)
        cancel_event: Setting this event aborts the invocation
        settings: Settings override

    Returns:
        Async iterator of typed messages

    Example:
        async for message in query("Say hello"):
            print(message)
    """
    settings = settings or get_settings()
    if interceptors:
        if interceptor_config is None:
            interceptor_config = InterceptorConfig.from_settings(settings, interceptors)
        else:
            interceptor_config = interceptor_config.model_copy(
                update={
                    "interceptors": [*interceptor_config.interceptors, *interceptors]
                }
            )

    client = ConduitClient(
        prompt,
        options,
        interceptor_config,
        cancel_event=cancel_event,
        settings=settings,
    )
    return client.process_query()
