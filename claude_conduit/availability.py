"""
CLI Availability Checker: Locate the Claude Code executable.

Provides clear error messages with installation instructions.
"""

import logging
import os
import shutil
from pathlib import Path
from typing import Dict, List, Optional

from claude_conduit.config import Settings, get_settings
from claude_conduit.errors import CLINotFoundError

logger = logging.getLogger(__name__)

# Install locations checked when the executable is not on PATH
FALLBACK_LOCATIONS = [
    "~/.claude/local/claude",
    "~/.npm-global/bin/claude",
    "/usr/local/bin/claude",
    "~/.local/bin/claude",
    "~/node_modules/.bin/claude",
    "~/.yarn/bin/claude",
]


class CLIAvailabilityChecker:
    """
    Finds the claude executable and caches the answer per lookup key.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self._settings = settings or get_settings()
        self._cache: Dict[str, str] = {}

    def find_cli(self, explicit_path: Optional[str] = None) -> str:
        """
        Resolve the CLI executable path.

        Args:
            explicit_path: Path from ClaudeOptions.cli_path, checked first

        Returns:
            Absolute path (or PATH-resolvable name) of the executable

        Raises:
            CLINotFoundError: If no candidate is an executable file
        """
        cache_key = explicit_path or ""
        if cache_key in self._cache:
            return self._cache[cache_key]

        searched: List[str] = []

        if explicit_path:
            searched.append(explicit_path)
            resolved = self._check_candidate(explicit_path)
            if resolved is None:
                # An explicit path that doesn't work is a configuration error;
                # don't silently fall back to some other install
                raise CLINotFoundError(searched)
            self._cache[cache_key] = resolved
            return resolved

        executable = self._settings.cli.executable
        searched.append(f"PATH:{executable}")
        resolved = shutil.which(executable)

        if resolved is None:
            for location in FALLBACK_LOCATIONS:
                candidate = str(Path(location).expanduser())
                searched.append(candidate)
                resolved = self._check_candidate(candidate)
                if resolved:
                    break

        if resolved is None:
            logger.warning(f"[AVAILABILITY] Claude CLI not found (searched {len(searched)})")
            raise CLINotFoundError(searched)

        logger.debug(f"[AVAILABILITY] Using Claude CLI at {resolved}")
        self._cache[cache_key] = resolved
        return resolved

    def is_available(self, explicit_path: Optional[str] = None) -> bool:
        """Check whether the CLI can be located."""
        try:
            self.find_cli(explicit_path)
        except CLINotFoundError:
            return False
        return True

    @staticmethod
    def _check_candidate(candidate: str) -> Optional[str]:
        path = Path(candidate).expanduser()
        if path.is_file() and os.access(path, os.X_OK):
            return str(path)
        # Bare names such as "claude-beta" still go through PATH
        if os.sep not in candidate:
            return shutil.which(candidate)
        return None
