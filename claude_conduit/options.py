"""Resolved configuration for one CLI invocation."""

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from claude_conduit.config import Settings

PermissionMode = Literal["default", "acceptEdits", "bypassPermissions", "plan"]


class ClaudeOptions(BaseModel):
    """
    Options handed to the Process Transport.

    Values are already in the library's vocabulary; `command.build_command_args`
    translates them to CLI flags.
    """

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    model: Optional[str] = None
    allowed_tools: List[str] = Field(default_factory=list)
    denied_tools: List[str] = Field(default_factory=list)
    permission_mode: Optional[PermissionMode] = None
    cwd: Optional[str] = None
    env: Dict[str, str] = Field(default_factory=dict)
    add_directories: List[str] = Field(default_factory=list)
    timeout: Optional[int] = Field(
        None, description="Whole-process budget in milliseconds", gt=0
    )
    session_id: Optional[str] = None
    system_prompt: Optional[str] = None
    append_system_prompt: Optional[str] = None
    max_turns: Optional[int] = Field(None, gt=0)
    mcp_config: Optional[str] = None
    cli_path: Optional[str] = None
    debug: bool = False
    extra_args: List[str] = Field(default_factory=list)

    def merged(self, other: "ClaudeOptions") -> "ClaudeOptions":
        """Return a copy with every field explicitly set on `other` applied."""
        return self.model_copy(update=other.model_dump(exclude_unset=True), deep=True)


def apply_settings_defaults(
    options: Optional[ClaudeOptions], settings: Settings
) -> ClaudeOptions:
    """
    Fill unset options from settings. Caller-provided values always win.

    Args:
        options: Caller options (None means all defaults)
        settings: Loaded settings

    Returns:
        A new ClaudeOptions instance
    """
    options = options.model_copy(deep=True) if options else ClaudeOptions()
    updates = {}

    if options.model is None and settings.cli.default_model:
        updates["model"] = settings.cli.default_model
    if options.permission_mode is None and settings.cli.default_permission_mode:
        updates["permission_mode"] = settings.cli.default_permission_mode

    if not updates:
        return options
    return ClaudeOptions(**{**options.model_dump(exclude_unset=True), **updates})
