"""
Claude CLI command building.

Translates resolved ClaudeOptions into CLI arguments. The prompt itself is
written to stdin by the transport, never placed on the command line.

Command formats:
- New session: claude --print --output-format stream-json --verbose [flags]
- Resume:      claude --print --output-format stream-json --verbose --resume <id> [flags]
"""

import logging
import os
from typing import Dict, List

from claude_conduit.options import ClaudeOptions
from claude_conduit.utils.redaction import redact_env

logger = logging.getLogger(__name__)

BASE_ARGS = ["--print", "--output-format", "stream-json", "--verbose"]


def build_command_args(options: ClaudeOptions) -> List[str]:
    """
    Build CLI arguments (not including the executable).

    Args:
        options: Resolved invocation options

    Returns:
        List of command arguments
    """
    args = list(BASE_ARGS)

    if options.model:
        args.extend(["--model", options.model])

    if options.allowed_tools:
        args.extend(["--allowedTools", ",".join(options.allowed_tools)])

    if options.denied_tools:
        args.extend(["--disallowedTools", ",".join(options.denied_tools)])

    if options.permission_mode and options.permission_mode != "default":
        args.extend(["--permission-mode", options.permission_mode])

    # Add context directories
    for dir_path in options.add_directories:
        args.extend(["--add-dir", dir_path])

    if options.session_id:
        args.extend(["--resume", options.session_id])

    if options.system_prompt:
        args.extend(["--system-prompt", options.system_prompt])

    if options.append_system_prompt:
        args.extend(["--append-system-prompt", options.append_system_prompt])

    if options.max_turns:
        args.extend(["--max-turns", str(options.max_turns)])

    if options.mcp_config:
        args.extend(["--mcp-config", options.mcp_config])

    # Power-user escape hatch, appended last so it can override anything above
    args.extend(options.extra_args)

    return args


def build_environment(options: ClaudeOptions) -> Dict[str, str]:
    """
    Build the subprocess environment: the current process env plus options.env.

    Args:
        options: Resolved invocation options

    Returns:
        Environment dict for create_subprocess_exec
    """
    env = os.environ.copy()
    env.update(options.env)

    if options.env:
        logger.debug(f"[COMMAND] Injected env vars: {redact_env(options.env)}")

    return env
