"""
Git adapter: version control operations for tool fetching.

Arguments are git subcommands; the adapter prefixes ``git`` and
launches it through the same machinery as the shell adapter:

    git.run(["clone", "--", url, "/opt/depot_tools"], env=...)
    git.run(["rev-parse", "--is-inside-work-tree"], cwd="/opt/depot_tools")
"""

from __future__ import annotations

import logging
import shutil

from provisioner.adapters.shell.command import ShellCommandAdapter
from provisioner.core.models.invocation import Invocation

logger = logging.getLogger(__name__)

VALID_OPERATIONS = frozenset(
    {"clone", "fetch", "pull", "rev-parse", "remote", "config", "status", "checkout"}
)


class GitAdapter(ShellCommandAdapter):
    """Git CLI operations. Never raw API calls."""

    def __init__(self, executable: str = "git"):
        super().__init__(adapter_name="git")
        self._executable = executable

    def is_available(self) -> bool:
        return shutil.which(self._executable) is not None

    def validate(self, invocation: Invocation) -> tuple[bool, str]:
        if not invocation.args:
            return False, "Missing git operation"

        operation = invocation.args[0]
        if operation not in VALID_OPERATIONS:
            return False, (
                f"Unknown operation '{operation}'. "
                f"Valid: {', '.join(sorted(VALID_OPERATIONS))}"
            )

        return super().validate(invocation)

    def command_for(self, invocation: Invocation) -> list[str]:
        return [self._executable, *invocation.args]
