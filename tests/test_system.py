"""Tests for the notification, hosts-file and firewall adapters."""

import subprocess

import pytest

from focuslock.core.exceptions import PermissionDeniedError
from focuslock.focus.timer import TimerMode
from focuslock.system.firewall import FirewallRules
from focuslock.system.hosts import ENTRY_MARKER, HostsFileBlocker
from focuslock.system.notifications import (
    FocusLockTriggered,
    LogNotifier,
    SessionComplete,
    SystemNotifier,
    render,
)

ORIGINAL_HOSTS = "127.0.0.1\tlocalhost\n# my comment\n10.0.0.5\tnas.local\n"


@pytest.fixture
def hosts_file(tmp_path):
    path = tmp_path / "hosts"
    path.write_text(ORIGINAL_HOSTS)
    return path


# ------------------------------------------------------------------
# Notifications
# ------------------------------------------------------------------

class TestNotifications:
    def test_render_session_complete(self):
        assert render(SessionComplete(TimerMode.FOCUS)) == (
            "Focus session completed!",
            "Time for a break. You've earned it!",
        )
        assert render(SessionComplete(TimerMode.SHORT_BREAK))[0] == "Short break completed!"

    def test_render_focus_lock(self):
        title, message = render(FocusLockTriggered("Slack"))
        assert title == "Focus Lock Activated"
        assert message == "Blocked access to Slack during focus session"

    def test_log_notifier_records(self):
        notifier = LogNotifier()
        assert notifier.notify(FocusLockTriggered("Slack")) is not None
        assert notifier.sent == [FocusLockTriggered("Slack")]

    def test_disabled_system_notifier(self):
        assert SystemNotifier(enabled=False).notify(FocusLockTriggered("Slack")) is None

    def test_system_notifier_falls_back_to_log(self, monkeypatch):
        notifier = SystemNotifier()
        monkeypatch.setattr(notifier, "_build_command", lambda title, message: None)
        assert notifier.notify(SessionComplete(TimerMode.FOCUS)) is not None

    def test_system_notifier_failure_returns_none(self, monkeypatch):
        notifier = SystemNotifier()
        monkeypatch.setattr(notifier, "_build_command", lambda title, message: ["notify-send"])

        def failing_run(*args, **kwargs):
            raise subprocess.TimeoutExpired("notify-send", 5)

        monkeypatch.setattr(subprocess, "run", failing_run)
        assert notifier.notify(SessionComplete(TimerMode.FOCUS)) is None

    def test_system_notifier_success(self, monkeypatch):
        notifier = SystemNotifier()
        monkeypatch.setattr(notifier, "_build_command", lambda title, message: ["notify-send"])
        monkeypatch.setattr(
            subprocess,
            "run",
            lambda *a, **kw: subprocess.CompletedProcess(a[0], 0, stdout="", stderr=""),
        )
        assert notifier.notify(FocusLockTriggered("Slack")) is not None


# ------------------------------------------------------------------
# Hosts file
# ------------------------------------------------------------------

class TestHostsFileBlocker:
    async def test_block_adds_tagged_entries(self, hosts_file):
        blocker = HostsFileBlocker(hosts_file)

        assert await blocker.block_domains(["YouTube.com", "reddit.com"])

        lines = hosts_file.read_text().splitlines()
        tagged = [line for line in lines if line.endswith(ENTRY_MARKER)]
        assert len(tagged) == 4
        assert any(line.startswith("127.0.0.1") and "youtube.com" in line for line in tagged)
        assert any(line.startswith("::1") and "reddit.com" in line for line in tagged)
        assert "10.0.0.5\tnas.local" in lines

    async def test_block_twice_does_not_duplicate(self, hosts_file):
        blocker = HostsFileBlocker(hosts_file)
        await blocker.block_domains(["reddit.com"])
        await blocker.block_domains(["reddit.com"])
        assert hosts_file.read_text().count("reddit.com") == 2

    async def test_unblock_all_restores_user_lines(self, hosts_file):
        blocker = HostsFileBlocker(hosts_file)
        await blocker.block_domains(["youtube.com", "reddit.com"])

        assert await blocker.unblock_domains()
        assert hosts_file.read_text() == ORIGINAL_HOSTS

    async def test_unblock_some(self, hosts_file):
        blocker = HostsFileBlocker(hosts_file)
        await blocker.block_domains(["youtube.com", "reddit.com"])

        await blocker.unblock_domains(["reddit.com"])

        content = hosts_file.read_text()
        assert "reddit.com" not in content
        assert "youtube.com" in content

    async def test_backup_and_restore(self, hosts_file, tmp_path):
        blocker = HostsFileBlocker(hosts_file)
        backup = tmp_path / "backup" / "hosts.bak"

        await blocker.block_domains(["youtube.com"], backup_path=backup)
        assert backup.read_text() == ORIGINAL_HOSTS

        assert await blocker.restore_backup(backup)
        assert hosts_file.read_text() == ORIGINAL_HOSTS

    async def test_restore_missing_backup(self, hosts_file, tmp_path):
        assert not await HostsFileBlocker(hosts_file).restore_backup(tmp_path / "missing")

    async def test_permission_denied(self, hosts_file, monkeypatch):
        blocker = HostsFileBlocker(hosts_file)
        monkeypatch.setattr(blocker, "has_admin_privileges", lambda: False)

        with pytest.raises(PermissionDeniedError):
            await blocker.block_domains(["youtube.com"])
        with pytest.raises(PermissionDeniedError):
            await blocker.unblock_domains()
        assert hosts_file.read_text() == ORIGINAL_HOSTS

    def test_missing_hosts_file_has_no_privileges(self, tmp_path):
        assert not HostsFileBlocker(tmp_path / "nope").has_admin_privileges()


# ------------------------------------------------------------------
# Firewall
# ------------------------------------------------------------------

class TestFirewallRules:
    async def test_requires_privileges(self):
        rules = FirewallRules(privilege_check=lambda: False)
        with pytest.raises(PermissionDeniedError):
            await rules.create_outbound_block_rule("FocusLock-chrome", r"C:\chrome.exe")
        with pytest.raises(PermissionDeniedError):
            await rules.remove_rule("FocusLock-chrome")

    async def test_missing_netsh_fails_closed(self, monkeypatch):
        async def no_netsh(*args, **kwargs):
            raise FileNotFoundError("netsh")

        monkeypatch.setattr("asyncio.create_subprocess_exec", no_netsh)
        rules = FirewallRules(privilege_check=lambda: True)

        assert not await rules.create_outbound_block_rule("FocusLock-chrome", r"C:\chrome.exe")
        assert not await rules.remove_rule("FocusLock-chrome")
        assert not await rules.rule_exists("FocusLock-chrome")
