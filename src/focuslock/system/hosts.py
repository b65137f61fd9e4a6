"""Website blocking through the system hosts file."""

from __future__ import annotations

import asyncio
import logging
import os
import sys
from collections.abc import Iterable
from pathlib import Path

from focuslock.core.exceptions import PermissionDeniedError

logger = logging.getLogger(__name__)

ENTRY_MARKER = "# focuslock"


def default_hosts_path() -> Path:
    if sys.platform == "win32":
        system_root = os.environ.get("SystemRoot", r"C:\Windows")
        return Path(system_root) / "System32" / "drivers" / "etc" / "hosts"
    return Path("/etc/hosts")


def _entry_domain(line: str) -> str | None:
    """Domain of a hosts line written by us, or None for any other line."""
    stripped = line.strip()
    if not stripped.endswith(ENTRY_MARKER) or stripped.startswith("#"):
        return None
    parts = stripped[: -len(ENTRY_MARKER)].split()
    return parts[1].lower() if len(parts) >= 2 else None


class HostsFileBlocker:
    """Adds and removes loopback entries for blocked domains.

    Only lines tagged with ``# focuslock`` are ever removed, so entries the
    user wrote by hand survive an unblock.
    """

    def __init__(self, hosts_path: Path | None = None):
        self.hosts_path = hosts_path or default_hosts_path()

    def has_admin_privileges(self) -> bool:
        """True if the hosts file can be opened for writing."""
        try:
            with open(self.hosts_path, "r+"):
                return True
        except OSError:
            return False

    async def block_domains(
        self, domains: Iterable[str], backup_path: Path | None = None
    ) -> bool:
        """Redirect *domains* to the loopback address.

        Raises:
            PermissionDeniedError: The hosts file is not writable.
        """
        domains = sorted({d.strip().lower() for d in domains if d.strip()})
        self._require_privileges()

        if backup_path is not None and not await self.create_backup(backup_path):
            logger.warning("Could not back up hosts file, continuing without backup")

        try:
            lines = await asyncio.to_thread(self._read_lines)
            wanted = set(domains)
            lines = [line for line in lines if _entry_domain(line) not in wanted]
            for domain in domains:
                lines.append(f"127.0.0.1\t{domain}\t{ENTRY_MARKER}")
                lines.append(f"::1\t\t{domain}\t{ENTRY_MARKER}")
            await asyncio.to_thread(self._write_lines, lines)
        except OSError as e:
            logger.error(f"Failed to block domains: {e}")
            return False

        logger.info(f"Blocked {len(domains)} domain(s) in {self.hosts_path}")
        return True

    async def unblock_domains(self, domains: Iterable[str] | None = None) -> bool:
        """Remove our entries for *domains*, or all of our entries when None.

        Raises:
            PermissionDeniedError: The hosts file is not writable.
        """
        self._require_privileges()
        wanted = None if domains is None else {d.strip().lower() for d in domains}

        try:
            lines = await asyncio.to_thread(self._read_lines)
            kept = []
            for line in lines:
                domain = _entry_domain(line)
                if domain is not None and (wanted is None or domain in wanted):
                    continue
                kept.append(line)
            await asyncio.to_thread(self._write_lines, kept)
        except OSError as e:
            logger.error(f"Failed to unblock domains: {e}")
            return False

        logger.info(f"Removed {len(lines) - len(kept)} hosts entries")
        return True

    async def create_backup(self, backup_path: Path) -> bool:
        try:
            content = await asyncio.to_thread(self.hosts_path.read_text, encoding="utf-8")
            backup_path.parent.mkdir(parents=True, exist_ok=True)
            await asyncio.to_thread(backup_path.write_text, content, encoding="utf-8")
            return True
        except OSError as e:
            logger.error(f"Failed to back up hosts file: {e}")
            return False

    async def restore_backup(self, backup_path: Path) -> bool:
        """Overwrite the hosts file with a previous backup.

        Raises:
            PermissionDeniedError: The hosts file is not writable.
        """
        self._require_privileges()
        if not backup_path.exists():
            return False

        try:
            content = await asyncio.to_thread(backup_path.read_text, encoding="utf-8")
            await asyncio.to_thread(self.hosts_path.write_text, content, encoding="utf-8")
            return True
        except OSError as e:
            logger.error(f"Failed to restore hosts file: {e}")
            return False

    def _require_privileges(self) -> None:
        if not self.has_admin_privileges():
            raise PermissionDeniedError(
                "Administrator privileges are required to modify the hosts file."
            )

    def _read_lines(self) -> list[str]:
        return self.hosts_path.read_text(encoding="utf-8").splitlines()

    def _write_lines(self, lines: list[str]) -> None:
        self.hosts_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
