"""Shared fixtures: environment isolation and a scriptable fake `claude` executable."""

import json
import os
import stat
import sys
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

import pytest

from claude_conduit.config import CLIConfig, Settings, get_settings

ENV_VARS_TO_CLEAR = [
    "CLAUDE_CLI_PATH",
    "CLAUDE_MODEL",
    "CLAUDE_PERMISSION_MODE",
    "CONDUIT_LOG_LEVEL",
    "CONDUIT_INTERCEPTOR_TIMEOUT_MS",
    "CONDUIT_CONFIG_FILE",
]

FAKE_CLI_TEMPLATE = """#!{python}
import json
import sys
import time

with open({config_path!r}) as f:
    config = json.load(f)

prompt = sys.stdin.read() if config.get("read_stdin", True) else ""

if config.get("record"):
    with open(config["record"], "a") as f:
        f.write(json.dumps({{"argv": sys.argv[1:], "prompt": prompt}}) + "\\n")

time.sleep(config.get("sleep_before", 0))

for line in config["lines"]:
    sys.stdout.write(line + "\\n")
    sys.stdout.flush()
    time.sleep(config.get("line_delay", 0))

if config.get("stderr"):
    sys.stderr.write(config["stderr"])
    sys.stderr.flush()

time.sleep(config.get("sleep_after", 0))
sys.exit(config.get("exit_code", 0))
"""


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch):
    """Keep the developer's environment out of settings resolution."""
    for var in ENV_VARS_TO_CLEAR:
        monkeypatch.delenv(var, raising=False)
    for var in list(os.environ):
        if var.startswith("CONDUIT_"):
            monkeypatch.delenv(var, raising=False)

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings() -> Settings:
    """Settings with a short terminate grace period."""
    return Settings(cli=CLIConfig(terminate_grace_seconds=1.0))


class FakeCLI:
    """A Python script posing as the claude executable."""

    def __init__(self, directory: Path):
        self.directory = directory
        self.path = directory / "claude"
        self.record_path = directory / "invocations.jsonl"
        self._config_path = directory / "fake_cli_config.json"
        self.path.write_text(
            FAKE_CLI_TEMPLATE.format(
                python=sys.executable, config_path=str(self._config_path)
            )
        )
        self.path.chmod(self.path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP)
        self.configure()

    def configure(
        self,
        records: Iterable[Union[Dict[str, Any], str]] = (),
        *,
        exit_code: int = 0,
        stderr: str = "",
        sleep_before: float = 0.0,
        sleep_after: float = 0.0,
        line_delay: float = 0.0,
        read_stdin: bool = True,
    ) -> "FakeCLI":
        """Set what the next invocation prints. Strings are written verbatim."""
        lines = [r if isinstance(r, str) else json.dumps(r) for r in records]
        self._config_path.write_text(
            json.dumps(
                {
                    "lines": lines,
                    "exit_code": exit_code,
                    "stderr": stderr,
                    "sleep_before": sleep_before,
                    "sleep_after": sleep_after,
                    "line_delay": line_delay,
                    "read_stdin": read_stdin,
                    "record": str(self.record_path),
                }
            )
        )
        return self

    @property
    def invocations(self) -> List[Dict[str, Any]]:
        if not self.record_path.exists():
            return []
        return [
            json.loads(line)
            for line in self.record_path.read_text().splitlines()
            if line.strip()
        ]

    @property
    def call_count(self) -> int:
        return len(self.invocations)

    def last_argv(self) -> Optional[List[str]]:
        invocations = self.invocations
        return invocations[-1]["argv"] if invocations else None


@pytest.fixture
def fake_cli(tmp_path) -> FakeCLI:
    return FakeCLI(tmp_path)

