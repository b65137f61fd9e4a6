"""Focus engine: wires the timer, recorder, block monitor and site guard together."""

from __future__ import annotations

import asyncio
import logging
import signal
import time
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any

from focuslock.blocking.monitor import BlockMonitor
from focuslock.blocking.sites import SiteGuard
from focuslock.core.config import Config, get_config
from focuslock.core.settings import SettingsManager
from focuslock.focus.auto_continue import AutoContinuePolicy
from focuslock.focus.clock import Stopwatch
from focuslock.focus.recorder import SessionRecorder
from focuslock.focus.timer import SessionTimer, TimerEvent, TimerEventType, TimerMode
from focuslock.storage.database import Database
from focuslock.storage.session_store import SessionStore
from focuslock.storage.settings_store import SettingsStore
from focuslock.system.hosts import HostsFileBlocker
from focuslock.system.notifications import NotificationSink, SessionComplete, SystemNotifier
from focuslock.trackers.process_inspector import ProcessInspector

logger = logging.getLogger(__name__)


class FocusEngine:
    """Composition root for a running Focus Lock instance.

    Settings are loaded and awaited before anything that depends on them is
    built. Listener order on the timer matters: the recorder sees
    ``COMPLETED`` first, then the monitor, site guard and completion
    notification, and the auto-continue policy last, so that a new session
    it starts is never mistaken for the one that just ended.
    """

    def __init__(
        self,
        config: Config | None = None,
        notifier: NotificationSink | None = None,
        inspector: ProcessInspector | None = None,
        hosts: HostsFileBlocker | None = None,
        clock: Callable[[], float] = time.monotonic,
        stopwatch: Stopwatch | None = None,
    ):
        self.config = config or get_config()
        self.notifier = notifier or SystemNotifier(
            enabled=self.config.notifications.enabled,
            timeout=self.config.notifications.command_timeout_seconds,
        )
        self.inspector = inspector or ProcessInspector()
        self._hosts = hosts
        self._clock = clock
        self._stopwatch = stopwatch

        self._running = False
        self._started_at: datetime | None = None
        self._stopped: asyncio.Event | None = None
        self._stop_task: asyncio.Task | None = None

        # Initialized in start()
        self.settings: SettingsManager | None = None
        self.db: Database | None = None
        self.session_store: SessionStore | None = None
        self.recorder: SessionRecorder | None = None
        self.timer: SessionTimer | None = None
        self.monitor: BlockMonitor | None = None
        self.site_guard: SiteGuard | None = None
        self.auto_continue: AutoContinuePolicy | None = None

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Load settings, open storage and attach every component to the timer."""
        if self._running:
            logger.warning("Engine already running")
            return

        logger.info("Starting Focus Lock engine...")
        self._stopped = asyncio.Event()

        try:
            self.config.ensure_directories()

            self.settings = SettingsManager(SettingsStore(self.config.settings_file))
            settings = await self.settings.initialize()

            self.db = Database(self.config.db_path)
            await self.db.connect()
            self.session_store = SessionStore(self.db)

            self.timer = SessionTimer(
                tick_interval=self.config.timer.tick_interval_seconds,
                stopwatch=self._stopwatch,
            )
            await self.timer.initialize(settings)

            self.recorder = SessionRecorder(self.session_store)
            self.recorder.attach(self.timer)

            self.monitor = BlockMonitor(
                self.timer,
                self.settings,
                self.inspector,
                self.notifier,
                config=self.config.monitor,
                clock=self._clock,
            )

            if self.config.monitor.site_blocking_enabled:
                self.site_guard = SiteGuard(
                    self.timer,
                    self.settings,
                    self._hosts or HostsFileBlocker(),
                    backup_path=self.config.hosts_backup_file,
                )
                self.site_guard.attach()

            self.timer.subscribe(self._on_timer_event)

            self.auto_continue = AutoContinuePolicy(self.timer, self.settings.snapshot)
            self.auto_continue.attach()

            self._running = True
            self._started_at = datetime.now(timezone.utc)
            logger.info("Focus Lock engine started")

        except Exception as e:
            logger.error(f"Failed to start engine: {e}")
            await self.stop()
            raise

    async def stop(self) -> None:
        """Stop enforcement, interrupt any open session and close storage."""
        if not self._running and self.db is None:
            return

        logger.info("Stopping Focus Lock engine...")
        self._running = False

        if self.auto_continue:
            self.auto_continue.detach()
            self.auto_continue = None

        if self.monitor:
            await self.monitor.shutdown()
            self.monitor = None

        if self.site_guard:
            await self.site_guard.close()
            self.site_guard = None

        if self.recorder:
            if self.recorder.current_session is not None:
                await self.recorder.interrupt_current_session(
                    int(self.timer.state.elapsed.total_seconds() // 60) if self.timer else None
                )
            self.recorder.detach()

        if self.timer:
            await self.timer.close()
            self.timer = None

        if self.db:
            await self.db.close()
            self.db = None

        if self._stopped is not None:
            self._stopped.set()

        logger.info("Focus Lock engine stopped")

    async def wait_until_stopped(self) -> None:
        if self._stopped is not None:
            await self._stopped.wait()

    def install_signal_handlers(self) -> None:
        """Stop the engine on SIGINT / SIGTERM."""
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(sig, self._handle_signal, sig)
            except NotImplementedError:
                logger.debug(f"Signal handlers not supported for {sig.name}")

    async def start_session(
        self,
        mode: TimerMode = TimerMode.FOCUS,
        minutes: int | None = None,
        label: str = "",
        category: str = "",
    ) -> None:
        """Load a session of *mode* (default length unless *minutes*) and start it."""
        timer = self._require_timer()
        duration = (
            timedelta(minutes=minutes)
            if minutes is not None
            else self.settings.snapshot().duration_for(mode)
        )
        await timer.set_mode(mode, duration, label=label, category=category)
        await timer.start()

    async def set_mode(self, mode: TimerMode, minutes: int | None = None) -> None:
        timer = self._require_timer()
        duration = (
            timedelta(minutes=minutes)
            if minutes is not None
            else self.settings.snapshot().duration_for(mode)
        )
        await timer.set_mode(mode, duration)

    async def pause(self) -> None:
        await self._require_timer().pause()

    async def resume(self) -> None:
        await self._require_timer().start()

    async def reset(self) -> None:
        await self._require_timer().reset()

    def get_status(self) -> dict[str, Any]:
        """Snapshot of the engine for display."""
        status: dict[str, Any] = {
            "status": "running" if self._running else "stopped",
            "uptime_seconds": (
                (datetime.now(timezone.utc) - self._started_at).total_seconds()
                if self._started_at and self._running
                else 0.0
            ),
            "database_connected": bool(self.db and self.db.is_connected),
        }

        if self.timer:
            state = self.timer.state
            status["timer"] = {
                "mode": state.mode.value,
                "is_running": state.is_running,
                "remaining": state.remaining_display,
                "progress_percent": round(state.progress_percent, 1),
                "label": state.label,
            }

        if self.monitor:
            stats = self.monitor.stats
            status["monitor"] = {
                "is_monitoring": self.monitor.is_monitoring,
                "scans_completed": stats.scans_completed,
                "scans_failed": stats.scans_failed,
                "scans_skipped": stats.scans_skipped,
                "actions_dispatched": stats.actions_dispatched,
            }

        if self.site_guard:
            status["blocked_domains"] = self.site_guard.blocked_domains

        if self.auto_continue:
            status["focus_sessions_completed"] = self.auto_continue.focus_sessions_completed

        if self.recorder and self.recorder.current_session:
            status["current_session_id"] = self.recorder.current_session.id

        return status

    def _require_timer(self) -> SessionTimer:
        if self.timer is None or self.settings is None:
            raise RuntimeError("Engine not started")
        return self.timer

    async def _on_timer_event(self, event: TimerEvent) -> None:
        if event.type != TimerEventType.COMPLETED:
            return
        if not self.settings or not self.settings.snapshot().notifications_enabled:
            return

        await asyncio.to_thread(self.notifier.notify, SessionComplete(event.state.mode))

    def _handle_signal(self, sig: signal.Signals) -> None:
        logger.info(f"Received signal {sig.name}, initiating shutdown...")
        self._stop_task = asyncio.create_task(self.stop())


async def run_engine(
    config: Config | None = None,
    mode: TimerMode | None = TimerMode.FOCUS,
    minutes: int | None = None,
    label: str = "",
    category: str = "",
) -> None:
    """Run an engine until it is stopped by a signal or interrupted."""
    engine = FocusEngine(config)

    try:
        await engine.start()
        engine.install_signal_handlers()
        if mode is not None:
            await engine.start_session(mode, minutes, label=label, category=category)
        await engine.wait_until_stopped()
    except (KeyboardInterrupt, asyncio.CancelledError):
        logger.info("Interrupted")
    finally:
        await engine.stop()
