"""Tests for the block monitor: grace gating, dispatch and the scan loop."""

import asyncio

import pytest

from focuslock.blocking.monitor import ActionResult, BlockMonitor
from focuslock.blocking.rules import AppBlockRule, BlockAction, BlockRuleSet
from focuslock.core.config import MonitorConfig
from focuslock.core.settings import Settings, SettingsManager
from focuslock.focus.timer import TimerEventType, TimerMode
from focuslock.system.notifications import FocusLockTriggered, LogNotifier

from conftest import BlockingInspector, FakeInspector, FakeTimer, idle_state, running_state


def make_settings(*rules: AppBlockRule, **rule_set) -> SettingsManager:
    return SettingsManager(settings=Settings(block_rules=BlockRuleSet(apps=rules, **rule_set)))


def make_monitor(settings, inspector, clock, timer=None, **config):
    timer = timer or FakeTimer(idle_state())
    notifier = LogNotifier()
    monitor = BlockMonitor(
        timer,
        settings,
        inspector,
        notifier,
        config=MonitorConfig(**config),
        clock=clock,
    )
    return monitor, timer, notifier


def triggered(notifier):
    return [n.app_name for n in notifier.sent if isinstance(n, FocusLockTriggered)]


# ------------------------------------------------------------------
# Grace period
# ------------------------------------------------------------------

class TestGracePeriod:
    async def test_not_terminated_before_grace(self, clock):
        rule = AppBlockRule(process_name="slack", grace_period_seconds=5)
        inspector = FakeInspector({"slack"})
        monitor, timer, notifier = make_monitor(make_settings(rule), inspector, clock)
        timer.state = running_state()

        first = await monitor.scan_once()
        clock.advance(4.9)
        second = await monitor.scan_once()

        assert first.outcome_for(rule.id).result == ActionResult.GRACE_PENDING
        assert second.outcome_for(rule.id).result == ActionResult.GRACE_PENDING
        assert inspector.killed == []
        assert notifier.sent == []

    async def test_terminated_on_first_scan_after_grace(self, clock):
        rule = AppBlockRule(process_name="slack", friendly_name="Slack", grace_period_seconds=5)
        inspector = FakeInspector({"slack"})
        monitor, timer, notifier = make_monitor(make_settings(rule), inspector, clock)
        timer.state = running_state()

        await monitor.scan_once()
        clock.advance(5)
        report = await monitor.scan_once()

        assert report.outcome_for(rule.id).result == ActionResult.TERMINATED
        assert inspector.killed == ["slack"]
        assert triggered(notifier) == ["Slack"]

    async def test_zero_grace_terminates_immediately(self, clock):
        rule = AppBlockRule(process_name="slack", grace_period_seconds=0)
        inspector = FakeInspector({"Slack.exe"})
        monitor, timer, _ = make_monitor(make_settings(rule), inspector, clock)
        timer.state = running_state()

        report = await monitor.scan_once()

        assert report.outcome_for(rule.id).result == ActionResult.TERMINATED
        assert inspector.killed == ["slack"]

    async def test_grace_restarts_when_process_disappears(self, clock):
        rule = AppBlockRule(process_name="slack", grace_period_seconds=5)
        inspector = FakeInspector({"slack"})
        monitor, timer, _ = make_monitor(make_settings(rule), inspector, clock)
        timer.state = running_state()

        await monitor.scan_once()
        clock.advance(3)
        inspector.running.clear()
        assert (await monitor.scan_once()).outcomes == []

        clock.advance(1)
        inspector.running.add("slack")
        await monitor.scan_once()
        clock.advance(4)
        assert (await monitor.scan_once()).outcome_for(rule.id).result == ActionResult.GRACE_PENDING
        clock.advance(1)
        assert (await monitor.scan_once()).outcome_for(rule.id).result == ActionResult.TERMINATED

    async def test_grace_forgotten_after_stop(self, clock):
        rule = AppBlockRule(process_name="slack", grace_period_seconds=5)
        inspector = FakeInspector({"slack"})
        monitor, timer, _ = make_monitor(make_settings(rule), inspector, clock)
        timer.state = running_state()

        await monitor.scan_once()
        monitor.stop_monitoring()
        clock.advance(10)

        report = await monitor.scan_once()
        assert report.outcome_for(rule.id).result == ActionResult.GRACE_PENDING

    async def test_failed_termination_still_notifies(self, clock):
        rule = AppBlockRule(process_name="slack", grace_period_seconds=0)
        inspector = FakeInspector({"slack"})
        inspector.kill_result = False
        monitor, timer, notifier = make_monitor(make_settings(rule), inspector, clock)
        timer.state = running_state()

        report = await monitor.scan_once()

        assert report.outcome_for(rule.id).result == ActionResult.TERMINATION_FAILED
        assert triggered(notifier) == ["slack"]


# ------------------------------------------------------------------
# Action dispatch
# ------------------------------------------------------------------

class TestDispatch:
    async def test_warn_leaves_process_running(self, clock):
        rule = AppBlockRule(process_name="chrome", action=BlockAction.WARN)
        inspector = FakeInspector({"chrome"})
        monitor, timer, notifier = make_monitor(make_settings(rule), inspector, clock)
        timer.state = running_state()

        report = await monitor.scan_once()

        assert report.outcome_for(rule.id).result == ActionResult.NOTIFIED
        assert inspector.killed == []
        assert triggered(notifier) == ["chrome"]

    async def test_warn_cooldown(self, clock):
        rule = AppBlockRule(process_name="chrome", action=BlockAction.WARN)
        inspector = FakeInspector({"chrome"})
        monitor, timer, notifier = make_monitor(
            make_settings(rule), inspector, clock, warn_cooldown_seconds=30
        )
        timer.state = running_state()

        await monitor.scan_once()
        clock.advance(10)
        throttled = await monitor.scan_once()
        clock.advance(25)
        await monitor.scan_once()

        assert throttled.outcome_for(rule.id).result == ActionResult.THROTTLED
        assert triggered(notifier) == ["chrome", "chrome"]

    async def test_warns_on_every_scan_by_default(self, clock):
        rule = AppBlockRule(process_name="chrome", action=BlockAction.WARN)
        monitor, timer, notifier = make_monitor(make_settings(rule), FakeInspector({"chrome"}), clock)
        timer.state = running_state()

        for _ in range(3):
            report = await monitor.scan_once()
            assert report.outcome_for(rule.id).result == ActionResult.NOTIFIED
            clock.advance(2)

        assert triggered(notifier) == ["chrome"] * 3

    async def test_warns_again_right_after_resume(self, clock):
        rule = AppBlockRule(process_name="chrome", action=BlockAction.WARN)
        monitor, timer, notifier = make_monitor(
            make_settings(rule), FakeInspector({"chrome"}), clock, warn_cooldown_seconds=30
        )
        timer.state = running_state()

        await monitor.scan_once()
        monitor.stop_monitoring()
        clock.advance(5)
        report = await monitor.scan_once()

        assert report.outcome_for(rule.id).result == ActionResult.NOTIFIED
        assert triggered(notifier) == ["chrome", "chrome"]

    @pytest.mark.parametrize("action", [BlockAction.CLOSE_WINDOW, BlockAction.BLOCK_NETWORK])
    async def test_reserved_actions_not_enforced(self, clock, action):
        rule = AppBlockRule(process_name="chrome", action=action)
        inspector = FakeInspector({"chrome"})
        monitor, timer, notifier = make_monitor(make_settings(rule), inspector, clock)
        timer.state = running_state()

        report = await monitor.scan_once()

        assert report.outcome_for(rule.id).result == ActionResult.NOT_ENFORCED
        assert report.errors == []
        assert inspector.killed == []
        assert notifier.sent == []

    async def test_denied_kill_still_notifies(self, clock):
        failing = AppBlockRule(process_name="slack", grace_period_seconds=0)
        warn = AppBlockRule(process_name="chrome", action=BlockAction.WARN)
        inspector = FakeInspector({"slack", "chrome"})
        inspector.kill_errors["slack"] = PermissionError("access denied")
        monitor, timer, notifier = make_monitor(make_settings(failing, warn), inspector, clock)
        timer.state = running_state()

        report = await monitor.scan_once()

        failed = report.outcome_for(failing.id)
        assert failed.result == ActionResult.TERMINATION_FAILED
        assert failed.detail == "access denied"
        assert report.outcome_for(warn.id).result == ActionResult.NOTIFIED
        assert triggered(notifier) == ["slack", "chrome"]
        assert report.errors == ["slack: access denied"]

    async def test_enumeration_failure_is_recorded(self, clock):
        rule = AppBlockRule(process_name="chrome", action=BlockAction.WARN)
        inspector = FakeInspector({"chrome"})
        inspector.fail_enumeration = True
        monitor, timer, notifier = make_monitor(make_settings(rule), inspector, clock)
        timer.state = running_state()

        report = await monitor.scan_once()

        assert report.errors
        assert monitor.stats.scans_failed == 1
        assert notifier.sent == []

    async def test_inactive_rule_ignored(self, clock):
        rule = AppBlockRule(process_name="chrome", action=BlockAction.WARN, is_active=False)
        inspector = FakeInspector({"chrome"})
        monitor, timer, notifier = make_monitor(make_settings(rule), inspector, clock)
        timer.state = running_state()

        report = await monitor.scan_once()
        assert report.outcomes == []
        assert notifier.sent == []

    async def test_pass_does_nothing_when_enforcement_inactive(self, clock):
        rule = AppBlockRule(process_name="chrome", action=BlockAction.WARN)
        inspector = FakeInspector({"chrome"})
        monitor, timer, notifier = make_monitor(
            make_settings(rule, is_enabled=False), inspector, clock
        )
        timer.state = running_state()

        report = await monitor.scan_once()

        assert not report.active
        assert inspector.calls == 0
        assert notifier.sent == []


# ------------------------------------------------------------------
# Lifecycle and scan loop
# ------------------------------------------------------------------

class TestLifecycle:
    async def test_follows_timer_events(self, clock):
        rule = AppBlockRule(process_name="chrome", action=BlockAction.WARN)
        monitor, timer, _ = make_monitor(
            make_settings(rule), FakeInspector(), clock, scan_interval_seconds=0.01
        )

        await timer.emit(TimerEventType.STARTED, running_state())
        assert monitor.is_monitoring

        await timer.emit(TimerEventType.PAUSED, idle_state())
        assert not monitor.is_monitoring
        await monitor.wait_stopped()

    @pytest.mark.parametrize("stop_event", [TimerEventType.COMPLETED, TimerEventType.RESET])
    async def test_completion_and_reset_stop(self, clock, stop_event):
        monitor, timer, _ = make_monitor(make_settings(), FakeInspector(), clock)
        await timer.emit(TimerEventType.STARTED, running_state())
        await timer.emit(stop_event, idle_state())
        assert not monitor.is_monitoring
        await monitor.wait_stopped()

    async def test_short_break_never_scans(self, clock):
        rule = AppBlockRule(process_name="chrome", action=BlockAction.WARN)
        inspector = FakeInspector({"chrome"})
        monitor, timer, notifier = make_monitor(
            make_settings(rule), inspector, clock, scan_interval_seconds=0.01
        )

        await timer.emit(TimerEventType.STARTED, running_state(TimerMode.SHORT_BREAK, 5))
        await asyncio.sleep(0.05)

        assert not monitor.is_monitoring
        assert inspector.calls == 0
        assert notifier.sent == []
        assert monitor.stats.scans_completed == 0

    async def test_mode_change_reevaluates(self, clock):
        monitor, timer, _ = make_monitor(make_settings(), FakeInspector(), clock)

        await timer.emit(TimerEventType.STARTED, running_state())
        assert monitor.is_monitoring

        await timer.emit(TimerEventType.MODE_CHANGED, running_state(TimerMode.LONG_BREAK))
        assert not monitor.is_monitoring

        await timer.emit(TimerEventType.MODE_CHANGED, running_state(TimerMode.FOCUS))
        assert monitor.is_monitoring
        await monitor.shutdown()

    async def test_settings_change_reevaluates(self, clock):
        settings = make_settings()
        monitor, timer, _ = make_monitor(settings, FakeInspector(), clock)
        await timer.emit(TimerEventType.STARTED, running_state())

        await settings.set_blocking_enabled(False)
        assert not monitor.is_monitoring

        await settings.set_blocking_enabled(True)
        assert monitor.is_monitoring
        await monitor.shutdown()

    async def test_start_and_stop_are_idempotent(self, clock):
        monitor, timer, _ = make_monitor(make_settings(), FakeInspector(), clock)
        timer.state = running_state()

        monitor.start_monitoring()
        task = monitor._task
        monitor.start_monitoring()
        assert monitor._task is task

        monitor.stop_monitoring()
        monitor.stop_monitoring()
        await monitor.wait_stopped()
        assert task.done()

    async def test_dispose_is_idempotent(self, clock):
        settings = make_settings()
        monitor, timer, _ = make_monitor(settings, FakeInspector(), clock)
        await timer.emit(TimerEventType.STARTED, running_state())

        monitor.dispose()
        monitor.dispose()
        await monitor.wait_stopped()

        assert timer.listeners == []
        monitor.start_monitoring()
        assert not monitor.is_monitoring

    async def test_loop_runs_repeatedly(self, clock):
        rule = AppBlockRule(process_name="chrome", action=BlockAction.WARN)
        inspector = FakeInspector({"chrome"})
        monitor, timer, notifier = make_monitor(
            make_settings(rule), inspector, clock,
            scan_interval_seconds=0.01, warn_cooldown_seconds=0,
        )

        await timer.emit(TimerEventType.STARTED, running_state())
        await asyncio.sleep(0.1)
        await monitor.shutdown()

        assert inspector.calls >= 2
        assert len(triggered(notifier)) == inspector.calls

    async def test_loop_survives_enumeration_failures(self, clock):
        inspector = FakeInspector({"chrome"})
        inspector.fail_enumeration = True
        monitor, timer, _ = make_monitor(
            make_settings(AppBlockRule(process_name="chrome")),
            inspector, clock, scan_interval_seconds=0.01,
        )

        await timer.emit(TimerEventType.STARTED, running_state())
        await asyncio.sleep(0.1)

        assert monitor.is_monitoring
        assert monitor.stats.scans_failed >= 2
        await monitor.shutdown()


class TestCooperativeStop:
    async def test_stop_during_in_flight_scan(self, clock):
        rule = AppBlockRule(process_name="chrome", action=BlockAction.WARN)
        inspector = BlockingInspector({"chrome"})
        monitor, timer, notifier = make_monitor(
            make_settings(rule), inspector, clock, scan_interval_seconds=0.01
        )
        timer.state = running_state()

        monitor.start_monitoring()
        assert await asyncio.to_thread(inspector.entered.wait, 5)

        monitor.stop_monitoring()
        inspector.release.set()
        await asyncio.wait_for(monitor.wait_stopped(), timeout=5)
        await asyncio.sleep(0.05)

        assert inspector.calls == 1
        assert monitor.stats.scans_completed == 1
        assert triggered(notifier) == ["chrome"]

    async def test_restart_waits_for_previous_pass(self, clock):
        rule = AppBlockRule(process_name="chrome", action=BlockAction.WARN)
        inspector = BlockingInspector({"chrome"})
        monitor, timer, _ = make_monitor(
            make_settings(rule), inspector, clock, scan_interval_seconds=0.01
        )
        timer.state = running_state()

        monitor.start_monitoring()
        assert await asyncio.to_thread(inspector.entered.wait, 5)
        monitor.stop_monitoring()
        monitor.start_monitoring()

        await asyncio.sleep(0.02)
        inspector.release.set()
        await asyncio.sleep(0.1)
        await monitor.shutdown()

        assert inspector.calls >= 2
        assert inspector.max_active == 1

    async def test_overrun_skips_slots(self, clock):
        class SlowInspector(FakeInspector):
            def running_names(self):
                import time

                time.sleep(0.05)
                return super().running_names()

        inspector = SlowInspector({"chrome"})
        monitor, timer, _ = make_monitor(
            make_settings(AppBlockRule(process_name="chrome", action=BlockAction.WARN)),
            inspector, clock, scan_interval_seconds=0.01,
        )
        timer.state = running_state()

        monitor.start_monitoring()
        await asyncio.sleep(0.2)
        await monitor.shutdown()

        assert monitor.stats.scans_skipped >= 1
        assert monitor.stats.scans_completed == inspector.calls
