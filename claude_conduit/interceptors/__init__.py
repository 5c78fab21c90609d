"""
Interceptor (middleware) system.

Interceptors wrap every invocation: they can rewrite the request, enrich the
shared context, short-circuit with their own response, or wrap the message
stream.
"""

from claude_conduit.interceptors.base import (
    Interceptor,
    InterceptorConfig,
    InterceptorContext,
    InterceptorMetrics,
    InterceptorRequest,
    InterceptorResponse,
    Next,
    ResponseMetadata,
)
from claude_conduit.interceptors.builtin import (
    classification_interceptor,
    correlation_interceptor,
    logging_interceptor,
    stream_metrics_interceptor,
)
from claude_conduit.interceptors.caching import CachingInterceptor, ResponseCache
from claude_conduit.interceptors.chain import build_chain, interceptor_name, run_chain

__all__ = [
    "Interceptor",
    "InterceptorConfig",
    "InterceptorContext",
    "InterceptorMetrics",
    "InterceptorRequest",
    "InterceptorResponse",
    "Next",
    "ResponseMetadata",
    "classification_interceptor",
    "correlation_interceptor",
    "logging_interceptor",
    "stream_metrics_interceptor",
    "CachingInterceptor",
    "ResponseCache",
    "build_chain",
    "interceptor_name",
    "run_chain",
]
