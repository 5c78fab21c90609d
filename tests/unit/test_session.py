"""
Unit Tests: Session continuation.
"""

import pytest


def scripted_query(responses, calls):
    """query_fn stand-in: records options and replays scripted message lists."""

    def query_fn(prompt, options):
        calls.append((prompt, options))
        messages = responses[len(calls) - 1]

        async def stream():
            for message in messages:
                yield message

        return stream()

    return query_fn


class TestSessionContinuation:
    @pytest.mark.asyncio
    async def test_captured_id_is_sent_on_next_query(self):
        """
        Given: A first response carrying session id S1
        When: A second query runs in the same session
        Then: The second invocation carries session_id S1
        """
        from claude_conduit.messages import ResultMessage
        from claude_conduit.session import Session

        calls = []
        session = Session(
            query_fn=scripted_query(
                [[ResultMessage(content="7", session_id="S1")], [ResultMessage(content="7")]],
                calls,
            )
        )

        assert await session.query("Pick a number").as_result() == "7"
        assert session.session_id == "S1"
        await session.query("Which number?").as_text()

        assert calls[0][1].session_id is None
        assert calls[1][1].session_id == "S1"

    @pytest.mark.asyncio
    async def test_first_id_wins(self):
        from claude_conduit.messages import ResultMessage
        from claude_conduit.session import Session

        calls = []
        session = Session(
            query_fn=scripted_query(
                [
                    [ResultMessage(session_id="S1")],
                    [ResultMessage(session_id="S2")],
                    [ResultMessage()],
                ],
                calls,
            )
        )

        for prompt in ("a", "b", "c"):
            await session.query(prompt).as_messages()

        assert session.session_id == "S1"
        assert calls[2][1].session_id == "S1"

    @pytest.mark.asyncio
    async def test_stored_id_overrides_caller_option(self):
        from claude_conduit.messages import ResultMessage
        from claude_conduit.options import ClaudeOptions
        from claude_conduit.session import Session

        calls = []
        session = Session(
            ClaudeOptions(session_id="OLD", model="sonnet"),
            query_fn=scripted_query([[ResultMessage(session_id="S1")], []], calls),
        )

        await session.query("a").as_text()
        await session.query("b").as_text()

        assert calls[0][1].session_id == "OLD"
        assert calls[1][1].session_id == "S1"
        assert calls[1][1].model == "sonnet"

    @pytest.mark.asyncio
    async def test_no_id_means_stateless(self):
        from claude_conduit.messages import ResultMessage
        from claude_conduit.session import Session

        calls = []
        session = Session(
            query_fn=scripted_query([[ResultMessage(content="x")], [ResultMessage()]], calls)
        )

        await session.query("a").as_text()
        await session.query("b").as_text()

        assert session.session_id is None
        assert calls[1][1].session_id is None

    @pytest.mark.asyncio
    async def test_failed_first_query_captures_partial_id(self):
        from claude_conduit.errors import TransportError
        from claude_conduit.messages import AssistantMessage, TextBlock
        from claude_conduit.session import Session

        def query_fn(prompt, options):
            async def stream():
                yield AssistantMessage(content=[TextBlock(text="hi")], session_id="S1")
                raise TransportError("crashed")

            return stream()

        session = Session(query_fn=query_fn)

        assert await session.query("a").succeeded() is False
        assert session.session_id == "S1"

    @pytest.mark.asyncio
    async def test_resume_flag_reaches_cli(self, fake_cli, settings):
        """
        Given: A fake CLI whose first run reports session S1
        When: Two queries run through a real session
        Then: The second CLI invocation gets --resume S1
        """
        from claude_conduit.options import ClaudeOptions
        from claude_conduit.session import Session

        fake_cli.configure(
            [{"type": "system", "subtype": "init", "session_id": "S1"},
             {"type": "result", "result": "ok", "session_id": "S1"}]
        )
        session = Session(ClaudeOptions(cli_path=str(fake_cli.path)), settings=settings)

        await session.query("first").as_text()
        await session.query("second").as_text()

        first_argv, second_argv = (i["argv"] for i in fake_cli.invocations)
        assert "--resume" not in first_argv
        assert second_argv[second_argv.index("--resume") + 1] == "S1"
