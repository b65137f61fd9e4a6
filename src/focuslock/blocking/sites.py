"""Site guard: mirrors the active site rules into the hosts file during enforcement."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from focuslock.blocking.rules import is_enforcement_active
from focuslock.core.exceptions import PermissionDeniedError
from focuslock.focus.timer import SessionState, SessionTimer, TimerEvent, TimerEventType

if TYPE_CHECKING:
    from focuslock.core.settings import SettingsManager
    from focuslock.system.hosts import HostsFileBlocker

logger = logging.getLogger(__name__)


class SiteGuard:
    """Blocks the active site rules' domains while enforcement is active.

    Hosts-file failures are logged and never reach the timer.
    """

    def __init__(
        self,
        timer: SessionTimer,
        settings: SettingsManager,
        hosts: HostsFileBlocker,
        backup_path: Path | None = None,
    ):
        self._timer = timer
        self._settings = settings
        self._hosts = hosts
        self._backup_path = backup_path
        self._blocked: list[str] = []
        self._attached = False

    @property
    def blocked_domains(self) -> list[str]:
        return list(self._blocked)

    def attach(self) -> None:
        if not self._attached:
            self._timer.subscribe(self._on_timer_event)
            self._attached = True

    def detach(self) -> None:
        if self._attached:
            self._timer.unsubscribe(self._on_timer_event)
            self._attached = False

    async def close(self) -> None:
        """Detach and remove anything still blocked."""
        self.detach()
        await self.release()

    async def engage(self, state: SessionState) -> bool:
        """Block the active site domains if enforcement applies to *state*."""
        rules = self._settings.block_rules
        if not is_enforcement_active(rules, state.mode, state.is_running):
            return False

        domains = sorted({d for rule in rules.active_sites() for d in rule.hosts_entries()})
        if not domains or domains == self._blocked:
            return bool(domains)

        if self._blocked:
            await self.release()

        try:
            ok = await self._hosts.block_domains(domains, backup_path=self._backup_path)
        except PermissionDeniedError as e:
            logger.warning(f"Site blocking skipped: {e}")
            return False

        if ok:
            self._blocked = domains
        else:
            logger.warning("Site blocking failed, sites remain reachable")
        return ok

    async def release(self) -> bool:
        """Remove the domains this guard blocked."""
        if not self._blocked:
            return True

        try:
            ok = await self._hosts.unblock_domains(self._blocked)
        except PermissionDeniedError as e:
            logger.warning(f"Could not unblock sites: {e}")
            return False

        if ok:
            logger.info(f"Unblocked {len(self._blocked)} domain(s)")
            self._blocked = []
        return ok

    async def _on_timer_event(self, event: TimerEvent) -> None:
        if event.type in (TimerEventType.PAUSED, TimerEventType.COMPLETED, TimerEventType.RESET):
            await self.release()
        elif event.type in (TimerEventType.STARTED, TimerEventType.MODE_CHANGED):
            if not await self.engage(event.state):
                await self.release()
