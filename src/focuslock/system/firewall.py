"""Outbound firewall rules through ``netsh advfirewall`` (Windows)."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from focuslock.core.exceptions import PermissionDeniedError

logger = logging.getLogger(__name__)


class FirewallRules:
    """Creates and removes named outbound block rules.

    *privilege_check* decides whether the process may edit the firewall. The
    ``focuslock firewall`` commands pass the hosts-file check, which needs the
    same elevation.
    """

    def __init__(self, privilege_check: Callable[[], bool], timeout: float = 30.0):
        self._privilege_check = privilege_check
        self.timeout = timeout

    async def create_outbound_block_rule(self, name: str, program_path: str) -> bool:
        """Block all outbound traffic from *program_path*.

        Raises:
            PermissionDeniedError: Not running elevated.
        """
        self._require_privileges("create")
        code, _ = await self._netsh(
            "advfirewall", "firewall", "add", "rule",
            f"name={name}", "dir=out", f"program={program_path}", "action=block",
        )
        if code == 0:
            logger.info(f"Firewall rule created: {name}")
        return code == 0

    async def remove_rule(self, name: str) -> bool:
        """Delete every rule called *name*.

        Raises:
            PermissionDeniedError: Not running elevated.
        """
        self._require_privileges("remove")
        code, _ = await self._netsh("advfirewall", "firewall", "delete", "rule", f"name={name}")
        if code == 0:
            logger.info(f"Firewall rule removed: {name}")
        return code == 0

    async def rule_exists(self, name: str) -> bool:
        code, output = await self._netsh("advfirewall", "firewall", "show", "rule", f"name={name}")
        return code == 0 and name in output and "No rules match" not in output

    def _require_privileges(self, verb: str) -> None:
        if not self._privilege_check():
            raise PermissionDeniedError(
                f"Administrator privileges are required to {verb} firewall rules."
            )

    async def _netsh(self, *args: str) -> tuple[int, str]:
        """Run netsh and return (exit code, stdout). Failure to run gives code -1."""
        try:
            proc = await asyncio.create_subprocess_exec(
                "netsh",
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.error(f"Failed to run netsh: {e}")
            return -1, ""

        try:
            stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            logger.error(f"netsh timed out after {self.timeout}s")
            return -1, ""

        return proc.returncode or 0, stdout.decode(errors="replace")
