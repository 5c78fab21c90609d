"""
Unit Tests: Built-in interceptors.
"""

import re

import pytest


def terminal_with(*messages):
    from claude_conduit.interceptors import InterceptorResponse

    async def terminal(request, context):
        async def stream():
            for message in messages:
                yield message

        return InterceptorResponse(messages=stream())

    return terminal


class TestCorrelationInterceptor:
    @pytest.mark.asyncio
    async def test_sets_ids_and_timestamp(self):
        from claude_conduit.interceptors import (
            InterceptorContext,
            InterceptorRequest,
            build_chain,
            correlation_interceptor,
        )

        context = InterceptorContext()
        await build_chain([correlation_interceptor], terminal_with())(
            InterceptorRequest(prompt="hi"), context
        )

        assert re.fullmatch(r"claude-\d+-[0-9a-f]{6}", context.correlation_id)
        assert re.fullmatch(r"req-\d+-[0-9a-f]{6}", context.request_id)
        assert context.timestamp is not None

    @pytest.mark.asyncio
    async def test_keeps_existing_ids(self):
        from claude_conduit.interceptors import (
            InterceptorContext,
            InterceptorRequest,
            build_chain,
            correlation_interceptor,
        )

        context = InterceptorContext(request_id="req-given", correlation_id="cid-given")
        await build_chain([correlation_interceptor], terminal_with())(
            InterceptorRequest(prompt="hi"), context
        )

        assert context.request_id == "req-given"
        assert context.correlation_id == "cid-given"


class TestClassificationInterceptor:
    @pytest.mark.parametrize(
        "prompt,category,complexity",
        [
            ("Fix the error in main.py", "debug", "medium"),
            ("Explain this function", "explain", "low"),
            ("Implement a cache layer", "code", "high"),
            ("Write a test for parse()", "test", "medium"),
            ("Hello there", "query", "low"),
        ],
    )
    @pytest.mark.asyncio
    async def test_categories(self, prompt, category, complexity):
        from claude_conduit.interceptors import (
            InterceptorContext,
            InterceptorRequest,
            build_chain,
            classification_interceptor,
        )

        context = InterceptorContext()
        await build_chain([classification_interceptor], terminal_with())(
            InterceptorRequest(prompt=prompt), context
        )

        assert context.category == category
        assert context.complexity == complexity


class TestLoggingInterceptor:
    @pytest.mark.asyncio
    async def test_records_metrics(self):
        from claude_conduit.interceptors import (
            InterceptorContext,
            InterceptorRequest,
            build_chain,
            logging_interceptor,
        )

        context = InterceptorContext(debug=True)
        await build_chain([logging_interceptor], terminal_with())(
            InterceptorRequest(prompt="hi"), context
        )

        assert context.metrics.start_time is not None
        assert context.metrics.end_time >= context.metrics.start_time
        assert context.metrics.latency == context.metrics.end_time - context.metrics.start_time


class TestStreamMetricsInterceptor:
    @pytest.mark.asyncio
    async def test_counts_messages_and_tokens(self):
        """
        Given: A stream with one assistant message and a result carrying usage
        When: The wrapped stream is fully iterated
        Then: Message and character counts and token usage are recorded
        """
        from claude_conduit.interceptors import (
            InterceptorContext,
            InterceptorRequest,
            build_chain,
            stream_metrics_interceptor,
        )
        from claude_conduit.messages import AssistantMessage, ResultMessage, TextBlock

        context = InterceptorContext()
        response = await build_chain(
            [stream_metrics_interceptor],
            terminal_with(
                AssistantMessage(content=[TextBlock(text="Hello")]),
                ResultMessage(content="Hello", usage={"input_tokens": 7, "output_tokens": 3}),
            ),
        )(InterceptorRequest(prompt="hi"), context)

        assert context.metadata["stream"]["completed"] is False
        messages = [m async for m in response.messages]

        assert len(messages) == 2
        assert context.metadata["stream"] == {"messages": 2, "characters": 5, "completed": True}
        assert context.metrics.token_count == 10
        assert response.metadata.token_count == 10

    @pytest.mark.asyncio
    async def test_closing_wrapper_closes_inner_stream(self):
        from claude_conduit.interceptors import (
            InterceptorContext,
            InterceptorRequest,
            InterceptorResponse,
            build_chain,
            stream_metrics_interceptor,
        )
        from claude_conduit.messages import AssistantMessage, TextBlock

        closed = []

        async def terminal(request, context):
            async def stream():
                try:
                    yield AssistantMessage(content=[TextBlock(text="one")])
                    yield AssistantMessage(content=[TextBlock(text="two")])
                finally:
                    closed.append(True)

            return InterceptorResponse(messages=stream())

        context = InterceptorContext()
        response = await build_chain([stream_metrics_interceptor], terminal)(
            InterceptorRequest(prompt="hi"), context
        )
        await response.messages.__anext__()
        await response.messages.aclose()

        assert closed == [True]
        assert context.metadata["stream"]["completed"] is False
