"""
Interceptor chain composition and execution.

build_chain() folds the interceptors right-to-left around the terminal
handler, so interceptors[0] is the outermost stage: it sees the request first
and the response last. Each stage hands its interceptor a single-use `next`.
"""

import asyncio
import json
import logging
from typing import Any, Callable, Optional, Sequence

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
    Next,
)

logger = logging.getLogger(__name__)


def interceptor_name(interceptor: Any) -> str:
    """
    Name used in error messages and debug logs.

    Resolution order: a `name` attribute, the function's `__name__`
    (lambdas become "anonymous"), the wrapped function of a
    functools.partial, then the class name.
    """
    name = getattr(interceptor, "name", None)
    if isinstance(name, str) and name:
        return name

    name = getattr(interceptor, "__name__", None)
    if isinstance(name, str) and name:
        return "anonymous" if name == "<lambda>" else name

    func = getattr(interceptor, "func", None)
    if func is not None:
        return interceptor_name(func)

    return type(interceptor).__name__


def build_chain(
    interceptors: Sequence[Callable[..., Any]],
    terminal: Next,
    *,
    debug: bool = False,
) -> Next:
    """
    Compose interceptors around the terminal handler.

    Args:
        interceptors: Interceptors, outermost first
        terminal: Innermost handler that performs the invocation
        debug: Log entry and exit of every stage

    Returns:
        The composed handler; `terminal` itself when there are no interceptors
    """
    chain = terminal
    for interceptor in reversed(list(interceptors)):
        if not callable(interceptor):
            raise InterceptorChainError(
                f"Interceptor {interceptor!r} is not callable",
                interceptor_name=interceptor_name(interceptor),
            )
        chain = _wrap_stage(interceptor, chain, debug)
    return chain


def _wrap_stage(interceptor: Callable[..., Any], inner: Next, debug: bool) -> Next:
    name = interceptor_name(interceptor)

    async def stage(
        request: InterceptorRequest, context: InterceptorContext
    ) -> InterceptorResponse:
        calls = 0

        async def next_once(
            next_request: InterceptorRequest, next_context: InterceptorContext
        ) -> InterceptorResponse:
            nonlocal calls
            calls += 1
            if calls > 1:
                raise InterceptorChainError(
                    f"Interceptor '{name}' called next() more than once",
                    interceptor_name=name,
                )
            return await inner(next_request, next_context)

        if debug:
            logger.debug(f"[CHAIN] -> {name}")

        try:
            response = await interceptor(request, context, next_once)
        except ConduitError:
            # Pipeline errors and inner chain errors pass through unchanged
            raise
        except Exception as e:
            logger.debug(f"[CHAIN] Interceptor '{name}' raised {type(e).__name__}: {e}")
            raise InterceptorChainError(
                f"Interceptor '{name}' failed: {e}", interceptor_name=name
            ) from e

        if not isinstance(response, InterceptorResponse):
            raise InterceptorChainError(
                f"Interceptor '{name}' returned {type(response).__name__}, "
                "expected InterceptorResponse",
                interceptor_name=name,
            )

        if debug:
            logger.debug(f"[CHAIN] <- {name}")
        return response

    return stage


async def run_chain(
    chain: Next,
    request: InterceptorRequest,
    context: InterceptorContext,
    config: InterceptorConfig,
) -> InterceptorResponse:
    """
    Run a composed chain under the configured timeout.

    On expiry the chain's task is cancelled, which unwinds any transport it
    had started through the transport's own cleanup.

    Raises:
        InterceptorTimeoutError: If the chain does not resolve in time
    """
    timeout_ms = config.timeout

    if timeout_ms:
        try:
            response = await asyncio.wait_for(
                chain(request, context), timeout=timeout_ms / 1000
            )
        except asyncio.TimeoutError:
            logger.warning(f"[CHAIN] Timed out after {timeout_ms}ms")
            raise InterceptorTimeoutError(timeout_ms) from None
    else:
        response = await chain(request, context)

    check_context_size(context, config.max_context_size)
    return response


def check_context_size(
    context: InterceptorContext, max_context_size: int
) -> Optional[int]:
    """
    Measure the serialized size of the context's open-ended maps.

    The ceiling is advisory: exceeding it logs a warning and nothing else.

    Returns:
        Size in bytes, or None when unmeasured
    """
    if not max_context_size:
        return None

    try:
        size = len(
            json.dumps(
                {"metadata": context.metadata, "extras": context.extras}, default=str
            ).encode("utf-8")
        )
    except (TypeError, ValueError) as e:
        logger.debug(f"[CHAIN] Could not measure context size: {e}")
        return None

    if size > max_context_size:
        logger.warning(
            f"[CHAIN] Context size {size} bytes exceeds max_context_size "
            f"{max_context_size} (request_id={context.request_id})"
        )
    return size
