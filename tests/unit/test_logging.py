"""
Unit tests for logging setup and secret redaction.
"""

import logging

import pytest


@pytest.fixture
def restore_package_logger():
    app_logger = logging.getLogger("claude_conduit")
    handlers = list(app_logger.handlers)
    level, propagate = app_logger.level, app_logger.propagate
    yield app_logger

    from claude_conduit.logging import shutdown_logging

    shutdown_logging()
    app_logger.handlers = handlers
    app_logger.setLevel(level)
    app_logger.propagate = propagate


class TestRedaction:
    def test_api_keys_are_redacted(self):
        from claude_conduit.utils.redaction import redact_secrets

        text = "using sk-ant-REDACTED and ghp_" + "a" * 36

        redacted = redact_secrets(text)

        assert "abcdefghijklmnop" not in redacted
        assert "ghp_" not in redacted
        assert redacted.count("***") == 2

    def test_key_value_pairs_keep_key(self):
        from claude_conduit.utils.redaction import redact_secrets

        assert redact_secrets("token=abcdef123456") == "token=***"
        assert redact_secrets("password: 'hunter2hunter2'") == "password=***"

    def test_plain_text_untouched(self):
        from claude_conduit.utils.redaction import redact_secrets

        assert redact_secrets("Hello world") == "Hello world"
        assert redact_secrets("") == ""

    def test_redact_env(self):
        from claude_conduit.utils.redaction import redact_env

        assert redact_env({"ANTHROPIC_API_KEY": "x", "HOME": "/home/me"}) == {
            "ANTHROPIC_API_KEY": "***",
            "HOME": "/home/me",
        }


class TestRedactionFilter:
    def test_filter_rewrites_message_and_args(self):
        from claude_conduit.utils.logging_filter import RedactionFilter

        record = logging.LogRecord(
            "claude_conduit", logging.INFO, __file__, 1,
            "key %s", ("sk-ant-REDACTED",), None,
        )

        assert RedactionFilter().filter(record) is True
        assert record.getMessage() == "key ***"

    def test_large_messages_skipped(self):
        from claude_conduit.utils.logging_filter import RedactionFilter

        big = "token=abcdefghijk " + "x" * (RedactionFilter.MAX_REDACTION_SIZE + 1)
        record = logging.LogRecord("claude_conduit", logging.INFO, __file__, 1, big, None, None)

        RedactionFilter().filter(record)
        assert record.msg == big


class TestSetupLogging:
    def test_default_is_null_handler(self, restore_package_logger):
        from claude_conduit.config import Settings
        from claude_conduit.logging import setup_logging

        app_logger = setup_logging(Settings())

        assert [type(h) for h in app_logger.handlers] == [logging.NullHandler]
        assert app_logger.level == logging.INFO

    def test_stderr_handler_redacts(self, restore_package_logger, capsys):
        """
        Given: stderr logging enabled at DEBUG
        When: A record containing an API key is logged and logging shuts down
        Then: stderr shows the record with the key redacted
        """
        from claude_conduit.config import LoggingConfig, Settings
        from claude_conduit.logging import setup_logging, shutdown_logging

        app_logger = setup_logging(
            Settings(logging=LoggingConfig(level="DEBUG", stderr_enabled=True))
        )
        assert app_logger.propagate is False

        logging.getLogger("claude_conduit.transport").debug(
            "[TRANSPORT] env ANTHROPIC_API_KEY=sk-ant-REDACTED"
        )
        shutdown_logging()

        err = capsys.readouterr().err
        assert "[TRANSPORT] env" in err
        assert "abcdefghijklmnop" not in err
