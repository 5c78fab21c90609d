"""
Role System: reusable option presets.

Supports built-in roles and custom roles from project directories. Custom
roles live in `<project>/.claude-conduit/roles/*.yaml` and override built-ins
of the same name.
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from claude_conduit.errors import ConduitError
from claude_conduit.options import ClaudeOptions, PermissionMode

logger = logging.getLogger(__name__)

ROLES_DIR = Path(".claude-conduit") / "roles"


class RoleNotFoundError(ConduitError):
    def __init__(self, name: str, available: List[str]):
        super().__init__(
            f"Role '{name}' not found. Available roles: {', '.join(available)}"
        )
        self.name = name


class RoleConfig(BaseModel):
    """A named preset of invocation options."""

    model_config = ConfigDict(extra="forbid")

    name: str
    description: Optional[str] = None
    default_prompt: Optional[str] = None
    model: Optional[str] = None
    allowed_tools: List[str] = Field(default_factory=list)
    denied_tools: List[str] = Field(default_factory=list)
    permission_mode: Optional[PermissionMode] = None
    timeout: Optional[int] = Field(None, gt=0)
    add_directories: List[str] = Field(default_factory=list)
    system_prompt: Optional[str] = None
    debug: Optional[bool] = None


BUILTIN_ROLES: List[RoleConfig] = [
    RoleConfig(
        name="codeAnalyzer",
        description="Analyze codebases with read-only tools",
        default_prompt="Analyze this codebase",
        allowed_tools=["Read", "Grep", "LS", "Glob"],
        model="sonnet",
        timeout=60000,
    ),
    RoleConfig(
        name="codeWriter",
        description="Write and modify code with full tool access",
        default_prompt="Help me write code",
        allowed_tools=["Read", "Write", "Edit", "MultiEdit", "Bash", "Grep", "LS", "Glob"],
        model="sonnet",
        permission_mode="acceptEdits",
        timeout=120000,
    ),
    RoleConfig(
        name="debugger",
        description="Debug code issues with analysis and execution tools",
        default_prompt="Help me debug this issue",
        allowed_tools=["Read", "Bash", "Grep", "LS", "Glob", "Edit"],
        model="sonnet",
        debug=True,
        timeout=90000,
    ),
    RoleConfig(
        name="quickChat",
        description="Quick conversations without tools",
        default_prompt="Hello! How can I help you?",
        model="haiku",
        timeout=30000,
    ),
    RoleConfig(
        name="researcher",
        description="Research and analysis with web search capabilities",
        default_prompt="Help me research this topic",
        allowed_tools=["Read", "WebSearch", "WebFetch", "Grep", "LS"],
        model="sonnet",
        timeout=180000,
    ),
    RoleConfig(
        name="fileManager",
        description="File operations and organization",
        default_prompt="Help me manage files",
        allowed_tools=["Read", "Write", "LS", "Bash"],
        model="haiku",
        permission_mode="acceptEdits",
        timeout=60000,
    ),
]


class RoleRegistry:
    """
    Holds the roles available to a builder.

    Each registry is independent; there is no process-wide registry.
    """

    def __init__(
        self,
        project_dir: Optional[Union[str, Path]] = None,
        include_builtins: bool = True,
    ):
        """
        Initialize the registry.

        Args:
            project_dir: Project directory to search for custom roles
            include_builtins: Seed the registry with the built-in roles
        """
        self._roles: Dict[str, RoleConfig] = {}
        if include_builtins:
            for role in BUILTIN_ROLES:
                self.register(role.model_copy(deep=True))

        self._project_dir = Path(project_dir) if project_dir else None
        if self._project_dir:
            self.load_custom_roles(self._project_dir)

    def register(self, role: RoleConfig) -> None:
        self._roles[role.name] = role

    def get(self, name: str) -> RoleConfig:
        """
        Look up a role.

        Raises:
            RoleNotFoundError: If no role has that name
        """
        role = self._roles.get(name)
        if role is None:
            raise RoleNotFoundError(name, self.names())
        return role

    def has(self, name: str) -> bool:
        return name in self._roles

    def list(self) -> List[RoleConfig]:
        return list(self._roles.values())

    def names(self) -> List[str]:
        return list(self._roles)

    def remove(self, name: str) -> bool:
        return self._roles.pop(name, None) is not None

    def clear(self) -> None:
        self._roles.clear()

    def load_custom_roles(self, project_dir: Union[str, Path]) -> List[str]:
        """
        Load every `*.yaml` role file under the project's roles directory.

        A file's role name defaults to its stem. Files that fail to parse or
        validate are skipped with a warning.

        Returns:
            Names of the roles loaded
        """
        roles_dir = Path(project_dir) / ROLES_DIR
        if not roles_dir.is_dir():
            return []

        loaded = []
        for role_file in sorted(roles_dir.glob("*.yaml")):
            try:
                data = yaml.safe_load(role_file.read_text()) or {}
                if not isinstance(data, dict):
                    raise ValueError("role file must contain a mapping")
                data.setdefault("name", role_file.stem)
                role = RoleConfig(**data)
            except (yaml.YAMLError, ValidationError, ValueError, OSError) as e:
                logger.warning(f"Skipping invalid role file {role_file}: {e}")
                continue

            logger.debug(f"Loaded custom role '{role.name}' from {role_file}")
            self.register(role)
            loaded.append(role.name)

        return loaded


def _union(base: List[str], extra: List[str]) -> List[str]:
    return base + [item for item in extra if item not in base]


def apply_role(role: RoleConfig, options: Optional[ClaudeOptions] = None) -> ClaudeOptions:
    """
    Merge a role into options.

    Scalars the caller set explicitly win over the role's values. Tool and
    directory lists are unioned, caller entries first, without duplicates.

    Args:
        role: Role to apply
        options: Caller options

    Returns:
        A new ClaudeOptions instance
    """
    options = options or ClaudeOptions()
    caller_set = options.model_fields_set
    updates = {}

    for field_name in ("model", "permission_mode", "timeout", "system_prompt", "debug"):
        value = getattr(role, field_name)
        if value is not None and field_name not in caller_set:
            updates[field_name] = value

    for field_name in ("allowed_tools", "denied_tools", "add_directories"):
        role_values = getattr(role, field_name)
        if role_values:
            updates[field_name] = _union(getattr(options, field_name), role_values)

    return ClaudeOptions(**{**options.model_dump(exclude_unset=True), **updates})
