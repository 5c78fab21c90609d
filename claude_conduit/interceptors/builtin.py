"""
Pre-built interceptors.

Each one is a plain async function with the interceptor signature, so they
compose with user interceptors in any order.
"""

import logging
import time
import uuid
from typing import Any, AsyncIterator, Dict

from claude_conduit.interceptors.base import (
    InterceptorContext,
    InterceptorRequest,
    InterceptorResponse,
    Next,
)
from claude_conduit.messages import Message, ResultMessage, message_text

logger = logging.getLogger(__name__)

PROMPT_PREVIEW_CHARS = 100


def now_ms() -> int:
    return int(time.time() * 1000)


def generate_id(prefix: str) -> str:
    """Build ids like `req-1718000000000-3f9a1c`."""
    return f"{prefix}-{now_ms()}-{uuid.uuid4().hex[:6]}"


async def logging_interceptor(
    request: InterceptorRequest, context: InterceptorContext, next: Next
) -> InterceptorResponse:
    """Record start/end/latency metrics and log the request lifecycle."""
    start_time = now_ms()
    context.metrics.start_time = start_time

    if context.debug:
        logger.debug(f"[INTERCEPTOR] Request: {request.prompt[:PROMPT_PREVIEW_CHARS]}...")

    try:
        response = await next(request, context)
    except Exception as e:
        logger.info(
            f"[INTERCEPTOR] Request {context.request_id} failed after "
            f"{now_ms() - start_time}ms: {e}"
        )
        raise

    context.metrics.end_time = now_ms()
    context.metrics.latency = context.metrics.end_time - start_time
    logger.debug(
        f"[INTERCEPTOR] Request {context.request_id} resolved in {context.metrics.latency}ms"
    )
    return response


async def correlation_interceptor(
    request: InterceptorRequest, context: InterceptorContext, next: Next
) -> InterceptorResponse:
    """Ensure correlation and request ids are set, and stamp the context."""
    if not context.correlation_id:
        context.correlation_id = generate_id("claude")

    if not context.request_id:
        context.request_id = generate_id("req")

    context.timestamp = now_ms()

    return await next(request, context)


# Checked in order; first keyword hit decides the category
CLASSIFICATION_RULES = [
    (("debug", "error", "fix"), "debug", "medium"),
    (("explain", "what", "how"), "explain", "low"),
    (("create", "build", "implement"), "code", "high"),
    (("test", "spec"), "test", "medium"),
]


async def classification_interceptor(
    request: InterceptorRequest, context: InterceptorContext, next: Next
) -> InterceptorResponse:
    """Heuristic query classification into category and complexity."""
    prompt = request.prompt.lower()

    context.category, context.complexity = "query", "low"
    for keywords, category, complexity in CLASSIFICATION_RULES:
        if any(keyword in prompt for keyword in keywords):
            context.category, context.complexity = category, complexity
            break

    return await next(request, context)


async def stream_metrics_interceptor(
    request: InterceptorRequest, context: InterceptorContext, next: Next
) -> InterceptorResponse:
    """
    Count messages and characters as the response streams.

    Totals land in context.metadata["stream"]; token usage from the result
    message goes to context.metrics.token_count and the response metadata.
    """
    response = await next(request, context)
    stats: Dict[str, Any] = {"messages": 0, "characters": 0, "completed": False}
    context.metadata["stream"] = stats

    async def counted() -> AsyncIterator[Message]:
        try:
            async for message in response.messages:
                stats["messages"] += 1
                stats["characters"] += len(message_text(message))
                if isinstance(message, ResultMessage) and message.usage:
                    tokens = int(message.usage.get("input_tokens") or 0) + int(
                        message.usage.get("output_tokens") or 0
                    )
                    context.metrics.token_count = tokens
                    response.metadata.token_count = tokens
                yield message
        finally:
            aclose = getattr(response.messages, "aclose", None)
            if aclose is not None:
                await aclose()
        stats["completed"] = True

    return response.replace(messages=counted())
