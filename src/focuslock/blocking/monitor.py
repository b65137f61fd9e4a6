"""Block monitor: scans running processes during enforcement and acts on matches."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import TYPE_CHECKING

from focuslock.blocking.rules import (
    RESERVED_ACTIONS,
    AppBlockRule,
    BlockAction,
    is_enforcement_active,
    normalize_process_name,
)
from focuslock.core.config import MonitorConfig
from focuslock.focus.timer import SessionState, SessionTimer, TimerEvent, TimerEventType
from focuslock.system.notifications import FocusLockTriggered, NotificationSink

if TYPE_CHECKING:
    from focuslock.core.settings import Settings, SettingsManager
    from focuslock.trackers.process_inspector import ProcessInspector

logger = logging.getLogger(__name__)

_STOP_EVENTS = frozenset(
    {TimerEventType.PAUSED, TimerEventType.COMPLETED, TimerEventType.RESET}
)


class ActionResult(str, Enum):
    """What happened to a matched rule during a pass."""

    NOTIFIED = "notified"
    THROTTLED = "throttled"
    GRACE_PENDING = "grace_pending"
    TERMINATED = "terminated"
    TERMINATION_FAILED = "termination_failed"
    NOT_ENFORCED = "not_enforced"
    ERROR = "error"


@dataclass(frozen=True)
class ActionOutcome:
    rule_id: str
    display_name: str
    action: BlockAction
    result: ActionResult
    detail: str = ""


@dataclass
class ScanReport:
    """Result of one scan pass."""

    active: bool = True
    matched: list[str] = field(default_factory=list)
    outcomes: list[ActionOutcome] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def outcome_for(self, rule_id: str) -> ActionOutcome | None:
        return next((o for o in self.outcomes if o.rule_id == rule_id), None)


@dataclass(frozen=True)
class MonitorStats:
    scans_completed: int = 0
    scans_inactive: int = 0
    scans_failed: int = 0
    scans_skipped: int = 0
    actions_dispatched: int = 0
    last_report: ScanReport | None = None


class BlockMonitor:
    """Enforces the app block rules while a focus session is running.

    The monitor follows the session timer: ``STARTED`` starts the scan loop
    when enforcement is active, ``PAUSED``, ``COMPLETED`` and ``RESET`` stop
    it, and ``MODE_CHANGED`` or a settings change re-evaluates.

    Stopping is cooperative: ``stop_monitoring()`` prevents any new pass, but
    a pass already running is allowed to finish. ``wait_stopped()`` awaits
    that pass.

    Usage:
        monitor = BlockMonitor(timer, settings_manager, ProcessInspector(), notifier)
        ...
        await monitor.shutdown()
    """

    def __init__(
        self,
        timer: SessionTimer,
        settings: SettingsManager,
        inspector: ProcessInspector,
        notifier: NotificationSink,
        config: MonitorConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._timer = timer
        self._settings = settings
        self._inspector = inspector
        self._notifier = notifier
        self._config = config or MonitorConfig()
        self._clock = clock

        self._task: asyncio.Task | None = None
        self._stop_event: asyncio.Event | None = None
        self._monitoring = False
        self._disposed = False

        # rule id -> monotonic time the blocked process was first seen
        self._first_seen: dict[str, float] = {}
        self._last_warned: dict[str, float] = {}
        self._stats = MonitorStats()

        self._timer.subscribe(self._on_timer_event)
        self._settings.subscribe(self._on_settings_changed)
        self._evaluate(self._timer.state)

    @property
    def is_monitoring(self) -> bool:
        return self._monitoring

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    @property
    def stats(self) -> MonitorStats:
        return self._stats

    def start_monitoring(self) -> None:
        """Start the scan loop. No-op if already monitoring or disposed.

        The first pass runs immediately. Must be called from the event loop.
        """
        if self._monitoring or self._disposed:
            return

        previous = self._task
        self._stop_event = asyncio.Event()
        self._monitoring = True
        self._task = asyncio.create_task(self._scan_loop(self._stop_event, previous))
        logger.info(
            f"Block monitor started (every {self._config.scan_interval_seconds}s)"
        )

    def stop_monitoring(self) -> None:
        """Stop scheduling passes. An in-flight pass still completes."""
        self._first_seen.clear()
        self._last_warned.clear()
        if not self._monitoring:
            return

        self._monitoring = False
        if self._stop_event is not None:
            self._stop_event.set()
        logger.info("Block monitor stopped")

    async def wait_stopped(self) -> None:
        """Wait for the loop to exit after ``stop_monitoring()``.

        Returns immediately while monitoring is still active.
        """
        task = self._task
        if task is None or self._monitoring:
            return
        await asyncio.wait({task})

    def dispose(self) -> None:
        """Unsubscribe from the timer and settings and stop. Safe to call twice."""
        if self._disposed:
            return

        self._timer.unsubscribe(self._on_timer_event)
        self._settings.unsubscribe(self._on_settings_changed)
        self.stop_monitoring()
        self._disposed = True

    async def shutdown(self) -> None:
        self.dispose()
        await self.wait_stopped()

    async def scan_once(self) -> ScanReport:
        """Run one pass against fresh timer and settings snapshots."""
        settings = self._settings.snapshot()
        rules = settings.block_rules
        state = self._timer.state

        if not is_enforcement_active(rules, state.mode, state.is_running):
            self._stats = replace(self._stats, scans_inactive=self._stats.scans_inactive + 1)
            return ScanReport(active=False)

        report = ScanReport()
        active_rules = rules.active_apps()
        self._forget_missing_rules({rule.id for rule in active_rules})

        try:
            running = await asyncio.to_thread(self._inspector.running_names)
        except Exception as e:
            logger.error(f"Process enumeration failed: {e}")
            report.errors.append(f"enumeration: {e}")
            self._stats = replace(
                self._stats, scans_failed=self._stats.scans_failed + 1, last_report=report
            )
            return report

        for rule in active_rules:
            try:
                outcome = await self._apply_rule(rule, running, report)
            except Exception as e:
                logger.error(f"Error enforcing rule {rule.display_name}: {e}")
                report.errors.append(f"{rule.display_name}: {e}")
                outcome = ActionOutcome(
                    rule.id, rule.display_name, rule.action, ActionResult.ERROR, str(e)
                )
            if outcome is not None:
                report.matched.append(rule.id)
                report.outcomes.append(outcome)

        dispatched = sum(
            1
            for o in report.outcomes
            if o.result
            in (ActionResult.NOTIFIED, ActionResult.TERMINATED, ActionResult.TERMINATION_FAILED)
        )
        self._stats = replace(
            self._stats,
            scans_completed=self._stats.scans_completed + 1,
            actions_dispatched=self._stats.actions_dispatched + dispatched,
            last_report=report,
        )
        return report

    async def _apply_rule(
        self, rule: AppBlockRule, running: set[str], report: ScanReport
    ) -> ActionOutcome | None:
        if normalize_process_name(rule.process_name) not in running:
            self._first_seen.pop(rule.id, None)
            return None

        if rule.action in RESERVED_ACTIONS:
            logger.debug(f"{rule.action.value} is not enforced ({rule.display_name})")
            return ActionOutcome(
                rule.id, rule.display_name, rule.action, ActionResult.NOT_ENFORCED
            )

        now = self._clock()

        if rule.action == BlockAction.WARN:
            cooldown = self._config.warn_cooldown_seconds
            last = self._last_warned.get(rule.id)
            if cooldown > 0 and last is not None and now - last < cooldown:
                return ActionOutcome(
                    rule.id, rule.display_name, rule.action, ActionResult.THROTTLED
                )
            self._last_warned[rule.id] = now
            delivered = await self._notify(rule)
            logger.info(f"Warned about blocked app: {rule.display_name}")
            return ActionOutcome(
                rule.id,
                rule.display_name,
                rule.action,
                ActionResult.NOTIFIED,
                "" if delivered else "notification not delivered",
            )

        first_seen = self._first_seen.setdefault(rule.id, now)
        waited = now - first_seen
        if waited < rule.grace_period_seconds:
            return ActionOutcome(
                rule.id,
                rule.display_name,
                rule.action,
                ActionResult.GRACE_PENDING,
                f"{rule.grace_period_seconds - waited:.1f}s left",
            )

        detail = ""
        try:
            terminated = await asyncio.to_thread(
                self._inspector.kill_by_name,
                rule.process_name,
                self._config.kill_timeout_seconds,
            )
        except Exception as e:
            terminated = False
            detail = str(e)
            report.errors.append(f"{rule.display_name}: {e}")

        if terminated:
            self._first_seen.pop(rule.id, None)
            logger.info(f"Terminated blocked app: {rule.display_name}")
        else:
            logger.warning(f"Could not terminate blocked app: {rule.display_name} {detail}".rstrip())

        await self._notify(rule)
        return ActionOutcome(
            rule.id,
            rule.display_name,
            rule.action,
            ActionResult.TERMINATED if terminated else ActionResult.TERMINATION_FAILED,
            detail,
        )

    async def _notify(self, rule: AppBlockRule) -> bool:
        try:
            notification_id = await asyncio.to_thread(
                self._notifier.notify, FocusLockTriggered(rule.display_name)
            )
        except Exception as e:
            logger.warning(f"Notification failed for {rule.display_name}: {e}")
            return False
        return notification_id is not None

    def _forget_missing_rules(self, active_ids: set[str]) -> None:
        for rule_id in list(self._first_seen):
            if rule_id not in active_ids:
                del self._first_seen[rule_id]
        for rule_id in list(self._last_warned):
            if rule_id not in active_ids:
                del self._last_warned[rule_id]

    async def _scan_loop(self, stop: asyncio.Event, previous: asyncio.Task | None) -> None:
        """Run passes every scan interval until *stop* is set."""
        if previous is not None and not previous.done():
            # A restart waits for the previous loop's in-flight pass
            await asyncio.wait({previous})

        loop = asyncio.get_running_loop()
        interval = self._config.scan_interval_seconds
        next_due = loop.time()

        try:
            while not stop.is_set():
                try:
                    await self.scan_once()
                except Exception as e:
                    logger.error(f"Error in block monitor scan: {e}")
                    self._stats = replace(self._stats, scans_failed=self._stats.scans_failed + 1)

                if stop.is_set():
                    break

                now = loop.time()
                next_due += interval
                if next_due <= now:
                    missed = int((now - next_due) // interval) + 1
                    next_due += missed * interval
                    self._stats = replace(
                        self._stats, scans_skipped=self._stats.scans_skipped + missed
                    )
                    logger.debug(f"Scan overran its slot, skipped {missed}")

                try:
                    await asyncio.wait_for(stop.wait(), timeout=next_due - now)
                except asyncio.TimeoutError:
                    pass
        finally:
            if stop.is_set():
                self._first_seen.clear()

    def _evaluate(self, state: SessionState) -> None:
        if self._disposed:
            return
        rules = self._settings.block_rules
        if is_enforcement_active(rules, state.mode, state.is_running):
            self.start_monitoring()
        else:
            self.stop_monitoring()

    def _on_timer_event(self, event: TimerEvent) -> None:
        if event.type in _STOP_EVENTS:
            self.stop_monitoring()
        elif event.type in (TimerEventType.STARTED, TimerEventType.MODE_CHANGED):
            self._evaluate(event.state)

    def _on_settings_changed(self, settings: Settings) -> None:
        self._evaluate(self._timer.state)
