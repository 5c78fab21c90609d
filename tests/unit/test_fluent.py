"""
Unit Tests: Fluent query builder.
"""

import asyncio

import pytest

TOOL_TURN = {
    "type": "assistant",
    "session_id": "S1",
    "message": {
        "content": [
            {"type": "text", "text": "Listing"},
            {"type": "tool_use", "id": "t1", "name": "LS", "input": {"path": "."}},
        ]
    },
}
DONE = {"type": "result", "result": "Listing", "session_id": "S1", "total_cost_usd": 0.01}


class TestBuilderOptions:
    def test_chained_setters(self):
        from claude_conduit.fluent import claude

        builder = (
            claude()
            .with_model("opus")
            .allow_tools("Read", "Write")
            .deny_tools("Bash")
            .skip_permissions()
            .in_directory("/tmp")
            .with_env({"A": "1"})
            .with_env({"B": "2"})
            .add_directories("/x", "/y")
            .add_directories("/x")
            .with_timeout(30000)
            .with_session_id("S0")
            .debug()
        )
        options = builder.options

        assert options.model == "opus"
        assert options.allowed_tools == ["Read", "Write"]
        assert options.denied_tools == ["Bash"]
        assert options.permission_mode == "bypassPermissions"
        assert options.cwd == "/tmp"
        assert options.env == {"A": "1", "B": "2"}
        assert options.add_directories == ["/x", "/y"]
        assert options.timeout == 30000
        assert options.session_id == "S0"
        assert options.debug is True

    def test_accept_edits_and_permissions(self):
        from claude_conduit.fluent import claude

        assert claude().accept_edits().options.permission_mode == "acceptEdits"
        assert claude().with_permissions("plan").options.permission_mode == "plan"

    def test_invalid_permission_mode_rejected(self):
        from pydantic import ValidationError

        from claude_conduit.fluent import claude

        with pytest.raises(ValidationError):
            claude().with_permissions("yolo")

    def test_with_role_respects_explicit_settings(self):
        from claude_conduit.fluent import claude

        builder = claude().with_model("opus").with_role("fileManager")

        assert builder.options.model == "opus"
        assert builder.options.permission_mode == "acceptEdits"
        assert builder.options.allowed_tools == ["Read", "Write", "LS", "Bash"]

    def test_with_role_custom_registry(self):
        from claude_conduit.fluent import claude
        from claude_conduit.roles import RoleConfig, RoleRegistry

        registry = RoleRegistry(include_builtins=False)
        registry.register(RoleConfig(name="tiny", model="haiku"))

        assert claude().with_role("tiny", registry).options.model == "haiku"

    def test_prompt_required_without_role_default(self):
        from claude_conduit.fluent import claude

        with pytest.raises(ValueError):
            claude().query()


class TestBuilderQueries:
    @pytest.mark.asyncio
    async def test_query_runs_handlers_and_views(self, fake_cli, settings):
        """
        Given: A builder with message, assistant and tool-use handlers
        When: A query runs and several views are read
        Then: Each handler fires and the CLI ran once
        """
        from claude_conduit.fluent import claude

        fake_cli.configure([TOOL_TURN, DONE])
        all_types, assistant_blocks, tools = [], [], []

        parser = (
            claude(settings)
            .on_message(lambda m: all_types.append(m.type))
            .on_assistant(lambda content: assistant_blocks.append(len(content)))
            .on_tool_use(lambda block: tools.append(block.name))
            .with_cli_path(str(fake_cli.path))
            .query("List files")
        )

        assert await parser.as_text() == "Listing"
        assert await parser.get_cost() == 0.01
        assert all_types == ["assistant", "result"]
        assert assistant_blocks == [2]
        assert tools == ["LS"]
        assert fake_cli.call_count == 1

    @pytest.mark.asyncio
    async def test_query_uses_role_default_prompt(self, fake_cli, settings):
        from claude_conduit.fluent import claude

        fake_cli.configure([DONE])

        await claude(settings).with_role("quickChat").with_cli_path(str(fake_cli.path)).query().as_text()

        assert fake_cli.invocations[0]["prompt"] == "Hello! How can I help you?"

    @pytest.mark.asyncio
    async def test_query_raw_yields_and_isolates_handler_errors(self, fake_cli, settings):
        from claude_conduit.fluent import claude

        fake_cli.configure([TOOL_TURN, DONE])

        def broken(message):
            raise RuntimeError("handler bug")

        builder = claude(settings).on_message(broken).with_cli_path(str(fake_cli.path))
        types = [m.type async for m in builder.query_raw("hi")]

        assert types == ["assistant", "result"]

    @pytest.mark.asyncio
    async def test_interceptors_run(self, fake_cli, settings):
        from claude_conduit.fluent import claude

        fake_cli.configure([DONE])
        seen = []

        async def spy(request, context, next):
            seen.append(request.prompt)
            return await next(request, context)

        await (
            claude(settings)
            .with_interceptors(spy)
            .with_cli_path(str(fake_cli.path))
            .query("hi")
            .as_text()
        )

        assert seen == ["hi"]

    @pytest.mark.asyncio
    async def test_with_session_continues(self, fake_cli, settings):
        from claude_conduit.fluent import claude

        fake_cli.configure([TOOL_TURN, DONE])
        session = claude(settings).with_model("sonnet").with_cli_path(str(fake_cli.path)).with_session()

        await session.query("first").as_text()
        await session.query("second").as_text()

        second_argv = fake_cli.invocations[1]["argv"]
        assert second_argv[second_argv.index("--resume") + 1] == "S1"
        assert second_argv[second_argv.index("--model") + 1] == "sonnet"

    @pytest.mark.asyncio
    async def test_cancel_event(self, fake_cli, settings):
        from claude_conduit.errors import CancellationError
        from claude_conduit.fluent import claude

        fake_cli.configure([TOOL_TURN], sleep_after=30)
        cancel = asyncio.Event()

        parser = (
            claude(settings)
            .with_cancel_event(cancel)
            .with_cli_path(str(fake_cli.path))
            .on_message(lambda m: cancel.set())
            .query("hi")
        )

        with pytest.raises(CancellationError):
            await parser.as_text()
