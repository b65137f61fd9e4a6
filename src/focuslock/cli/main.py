"""CLI commands for Focus Lock using Typer."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from focuslock import __version__
from focuslock.blocking.rules import AppBlockRule, BlockAction, BlockRuleSet, SiteBlockRule
from focuslock.core.config import Config, get_config
from focuslock.core.exceptions import PermissionDeniedError, SettingsValidationError
from focuslock.core.settings import Settings, SettingsManager
from focuslock.focus.timer import TimerMode
from focuslock.storage.settings_store import SettingsStore

app = typer.Typer(
    name="focuslock",
    help="Focus timer that keeps distracting apps closed while you work.",
    add_completion=False,
)
settings_app = typer.Typer(help="Show and change timer settings.")
rules_app = typer.Typer(help="Manage app and site block rules.")
firewall_app = typer.Typer(help="Block network access for a program (Windows, needs admin rights).")
app.add_typer(settings_app, name="settings")
app.add_typer(rules_app, name="rules")
app.add_typer(firewall_app, name="firewall")

console = Console()


def setup_logging(log_level: str, log_file: Path | None = None) -> None:
    """Configure logging for the application."""
    level = getattr(logging, log_level.upper(), logging.INFO)

    handlers: list[logging.Handler] = [logging.StreamHandler()]

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=handlers,
    )

    # Reduce noise from external libraries
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def _settings_manager(config: Config) -> SettingsManager:
    return SettingsManager(SettingsStore(config.settings_file))


def _resolve_rule_id(rules: BlockRuleSet, prefix: str) -> str | None:
    """Full id of the app or site rule whose id starts with *prefix*."""
    ids = [rule.id for rule in (*rules.apps, *rules.sites) if rule.id.startswith(prefix)]
    if len(ids) != 1:
        return None
    return ids[0]


def _print_settings(settings: Settings) -> None:
    table = Table(title="Focus Lock Settings", show_header=True, header_style="bold cyan")
    table.add_column("Setting")
    table.add_column("Value")

    table.add_row("[bold]Durations[/bold]", "")
    table.add_row("  Focus", f"{settings.default_focus_minutes} min")
    table.add_row("  Short Break", f"{settings.short_break_minutes} min")
    table.add_row("  Long Break", f"{settings.long_break_minutes} min")
    interval = settings.long_break_interval
    table.add_row("  Long Break Every", f"{interval} sessions" if interval else "never")
    table.add_row("  Auto-start Next", str(settings.auto_start_next))

    table.add_row("[bold]Notifications[/bold]", "")
    table.add_row("  Enabled", str(settings.notifications_enabled))
    table.add_row("  Sound", str(settings.play_sound))

    rules = settings.block_rules
    table.add_row("[bold]Blocking[/bold]", "")
    table.add_row("  Enabled", str(rules.is_enabled))
    table.add_row("  Focus Sessions Only", str(rules.focus_sessions_only))
    table.add_row("  App Rules", f"{len(rules.active_apps())}/{len(rules.apps)} active")
    table.add_row("  Site Rules", f"{len(rules.active_sites())}/{len(rules.sites)} active")

    console.print(table)


@app.command()
def run(
    mode: TimerMode = typer.Option(TimerMode.FOCUS, "--mode", "-m", help="Session mode"),
    minutes: int = typer.Option(None, "--minutes", "-t", min=1, help="Session length in minutes"),
    label: str = typer.Option("", "--label", help="What you are working on"),
    category: str = typer.Option("", "--category", "-c", help="Session category"),
    log_level: str = typer.Option(
        "INFO",
        "--log-level",
        "-l",
        help="Log level (DEBUG, INFO, WARNING, ERROR)",
    ),
) -> None:
    """Start a session and enforce block rules until interrupted."""
    from focuslock.core.engine import run_engine

    config = get_config()
    setup_logging(log_level, config.log_dir / "focuslock.log")

    length = f"{minutes} min" if minutes else "default length"
    console.print(f"[green]Starting {mode.value} session ({length})...[/green]")
    console.print("Press Ctrl+C to stop\n")

    try:
        asyncio.run(run_engine(config, mode, minutes, label=label, category=category))
    except KeyboardInterrupt:
        pass

    console.print("\n[yellow]Focus Lock stopped[/yellow]")


@app.command()
def sessions(
    days: int = typer.Option(7, "--days", "-d", min=1, help="Number of days to show"),
    category: str = typer.Option(None, "--category", "-c", help="Only this category"),
) -> None:
    """Show recent sessions."""
    from focuslock.focus.recorder import SessionRecorder
    from focuslock.storage.database import Database
    from focuslock.storage.session_store import SessionStore

    config = get_config()

    async def load():
        db = Database(config.db_path)
        await db.connect()
        try:
            recorder = SessionRecorder(SessionStore(db))
            since = datetime.now(timezone.utc) - timedelta(days=days)
            found = await recorder.get_sessions(from_date=since)
            total = await recorder.get_total_focus_time(from_date=since)
            return found, total
        finally:
            await db.close()

    try:
        found, total = asyncio.run(load())
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    if category:
        found = [s for s in found if s.category.lower() == category.lower()]

    if not found:
        console.print(f"[dim]No sessions in the last {days} days[/dim]")
        return

    table = Table(title=f"Sessions (last {days} days)", show_header=True, header_style="bold cyan")
    table.add_column("Started")
    table.add_column("Mode")
    table.add_column("Duration", justify="right")
    table.add_column("Label")
    table.add_column("Category")
    table.add_column("Status")

    for session in found:
        status = "[yellow]interrupted[/yellow]" if session.was_interrupted else "[green]completed[/green]"
        table.add_row(
            session.start_time.astimezone().strftime("%Y-%m-%d %H:%M"),
            session.mode.value,
            session.formatted_duration,
            session.label or "-",
            session.category or "-",
            status,
        )

    console.print(table)
    console.print(f"Total: [bold]{int(total.total_seconds() // 60)} min[/bold]")


@app.command()
def processes(
    name_filter: str = typer.Option(None, "--filter", "-f", help="Only names containing this text"),
) -> None:
    """List running processes (useful for writing app rules)."""
    from focuslock.trackers.process_inspector import ProcessInspector

    found = ProcessInspector().list_processes()
    if name_filter:
        found = [p for p in found if name_filter.lower() in p.name.lower()]

    table = Table(title="Running Processes", show_header=True, header_style="bold cyan")
    table.add_column("PID", justify="right")
    table.add_column("Name")
    table.add_column("Rule Name")

    for proc in found:
        table.add_row(str(proc.pid), proc.name, proc.normalized_name)

    console.print(table)


@settings_app.command("show")
def settings_show() -> None:
    """Show current settings."""
    manager = _settings_manager(get_config())
    _print_settings(asyncio.run(manager.initialize()))


@settings_app.command("set")
def settings_set(
    focus: int = typer.Option(None, "--focus", help="Focus length in minutes"),
    short_break: int = typer.Option(None, "--short-break", help="Short break in minutes"),
    long_break: int = typer.Option(None, "--long-break", help="Long break in minutes"),
    long_break_interval: int = typer.Option(
        None, "--long-break-interval", help="Long break after every N focus sessions (0 = never)"
    ),
    auto_start: bool = typer.Option(None, "--auto-start/--no-auto-start", help="Start the next session automatically"),
    notifications: bool = typer.Option(None, "--notifications/--no-notifications", help="Desktop notifications"),
    focus_only: bool = typer.Option(
        None, "--focus-only/--always", help="Block only during focus sessions"
    ),
) -> None:
    """Change settings. Invalid combinations are rejected and nothing is saved."""
    changes = {
        "default_focus_minutes": focus,
        "short_break_minutes": short_break,
        "long_break_minutes": long_break,
        "long_break_interval": long_break_interval,
        "auto_start_next": auto_start,
        "notifications_enabled": notifications,
    }
    changes = {key: value for key, value in changes.items() if value is not None}

    if not changes and focus_only is None:
        console.print("[yellow]Nothing to change[/yellow]")
        raise typer.Exit(1)

    manager = _settings_manager(get_config())

    async def apply() -> Settings:
        await manager.initialize()
        settings = manager.snapshot()
        if changes:
            settings = await manager.update(**changes)
        if focus_only is not None:
            settings = await manager.set_focus_sessions_only(focus_only)
        return settings

    try:
        settings = asyncio.run(apply())
    except SettingsValidationError as e:
        console.print(f"[red]{e.message}[/red]")
        raise typer.Exit(1)

    console.print("[green]Settings saved[/green]")
    _print_settings(settings)


@rules_app.command("list")
def rules_list() -> None:
    """List app and site rules."""
    manager = _settings_manager(get_config())
    rules = asyncio.run(manager.initialize()).block_rules

    state = "[green]enabled[/green]" if rules.is_enabled else "[red]disabled[/red]"
    scope = "focus sessions only" if rules.focus_sessions_only else "all sessions"
    console.print(f"Blocking is {state} ({scope})")

    if not rules.apps and not rules.sites:
        console.print("[dim]No rules yet. Add one with 'focuslock rules add-app'.[/dim]")
        return

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("ID")
    table.add_column("Type")
    table.add_column("Target")
    table.add_column("Name")
    table.add_column("Action")
    table.add_column("Grace", justify="right")
    table.add_column("Active")

    for app_rule in rules.apps:
        table.add_row(
            app_rule.id[:8],
            "app",
            app_rule.process_name,
            app_rule.display_name,
            app_rule.action.value,
            f"{app_rule.grace_period_seconds}s",
            "yes" if app_rule.is_active else "no",
        )
    for site_rule in rules.sites:
        table.add_row(
            site_rule.id[:8],
            "site",
            site_rule.domain,
            site_rule.display_name,
            site_rule.action.value,
            "-",
            "yes" if site_rule.is_active else "no",
        )

    console.print(table)


@rules_app.command("add-app")
def rules_add_app(
    process_name: str = typer.Argument(..., help="Process name, e.g. chrome or Slack.exe"),
    name: str = typer.Option("", "--name", "-n", help="Friendly name"),
    action: BlockAction = typer.Option(BlockAction.KILL_PROCESS, "--action", "-a", help="What to do on a match"),
    grace: int = typer.Option(5, "--grace", "-g", min=0, help="Seconds before terminating"),
) -> None:
    """Block a desktop application."""
    manager = _settings_manager(get_config())

    async def add() -> AppBlockRule:
        await manager.initialize()
        rule = AppBlockRule(
            process_name=process_name,
            friendly_name=name,
            action=action,
            grace_period_seconds=grace,
        )
        await manager.add_app_rule(rule)
        return rule

    try:
        rule = asyncio.run(add())
    except (SettingsValidationError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    console.print(f"[green]Added app rule {rule.id[:8]} for {rule.display_name}[/green]")


@rules_app.command("add-site")
def rules_add_site(
    domain: str = typer.Argument(..., help="Domain, e.g. youtube.com"),
    name: str = typer.Option("", "--name", "-n", help="Friendly name"),
    subdomains: bool = typer.Option(True, "--subdomains/--exact", help="Also block www."),
) -> None:
    """Block a website (needs site blocking enabled and admin rights)."""
    manager = _settings_manager(get_config())

    async def add() -> SiteBlockRule:
        await manager.initialize()
        rule = SiteBlockRule(domain=domain, friendly_name=name, include_subdomains=subdomains)
        await manager.add_site_rule(rule)
        return rule

    try:
        rule = asyncio.run(add())
    except (SettingsValidationError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    console.print(f"[green]Added site rule {rule.id[:8]} for {rule.domain}[/green]")


@rules_app.command("remove")
def rules_remove(rule_id: str = typer.Argument(..., help="Rule id or id prefix")) -> None:
    """Delete a rule."""
    manager = _settings_manager(get_config())

    async def remove() -> bool:
        rules = (await manager.initialize()).block_rules
        full_id = _resolve_rule_id(rules, rule_id)
        if full_id is None:
            return False
        if rules.get_app_rule(full_id):
            await manager.remove_app_rule(full_id)
        else:
            await manager.remove_site_rule(full_id)
        return True

    if not asyncio.run(remove()):
        console.print(f"[red]No unique rule matches {rule_id!r}[/red]")
        raise typer.Exit(1)

    console.print(f"[green]Removed rule {rule_id}[/green]")


def _set_active(rule_id: str | None, active: bool) -> None:
    manager = _settings_manager(get_config())
    word = "enabled" if active else "disabled"

    async def apply() -> bool:
        rules = (await manager.initialize()).block_rules
        if rule_id is None:
            await manager.set_blocking_enabled(active)
            return True

        full_id = _resolve_rule_id(rules, rule_id)
        if full_id is None:
            return False
        app_rule = rules.get_app_rule(full_id)
        if app_rule is not None:
            await manager.replace_app_rule(app_rule.model_copy(update={"is_active": active}))
        else:
            site_rule = rules.get_site_rule(full_id)
            await manager.replace_site_rule(site_rule.model_copy(update={"is_active": active}))
        return True

    if not asyncio.run(apply()):
        console.print(f"[red]No unique rule matches {rule_id!r}[/red]")
        raise typer.Exit(1)

    target = f"Rule {rule_id}" if rule_id else "Blocking"
    console.print(f"[green]{target} {word}[/green]")


@rules_app.command("enable")
def rules_enable(
    rule_id: str = typer.Argument(None, help="Rule id or prefix; omit to enable blocking"),
) -> None:
    """Enable a rule, or blocking as a whole."""
    _set_active(rule_id, True)


@rules_app.command("disable")
def rules_disable(
    rule_id: str = typer.Argument(None, help="Rule id or prefix; omit to disable blocking"),
) -> None:
    """Disable a rule, or blocking as a whole."""
    _set_active(rule_id, False)


FIREWALL_RULE_PREFIX = "FocusLock-"


def _firewall_rules():
    from focuslock.system.firewall import FirewallRules
    from focuslock.system.hosts import HostsFileBlocker

    return FirewallRules(privilege_check=HostsFileBlocker().has_admin_privileges)


def _firewall_rule_name(name: str) -> str:
    return name if name.startswith(FIREWALL_RULE_PREFIX) else f"{FIREWALL_RULE_PREFIX}{name}"


@firewall_app.command("block")
def firewall_block(
    program_path: Path = typer.Argument(..., help="Executable to cut off from the network"),
    name: str = typer.Option("", "--name", "-n", help="Rule name (default: program name)"),
) -> None:
    """Add an outbound block rule for a program."""
    rule_name = _firewall_rule_name(name or program_path.stem)

    try:
        created = asyncio.run(
            _firewall_rules().create_outbound_block_rule(rule_name, str(program_path))
        )
    except PermissionDeniedError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    if not created:
        console.print(f"[red]Could not create firewall rule {rule_name}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Blocked network access for {program_path} ({rule_name})[/green]")


@firewall_app.command("unblock")
def firewall_unblock(name: str = typer.Argument(..., help="Rule name")) -> None:
    """Remove an outbound block rule."""
    rule_name = _firewall_rule_name(name)

    try:
        removed = asyncio.run(_firewall_rules().remove_rule(rule_name))
    except PermissionDeniedError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    if not removed:
        console.print(f"[red]Could not remove firewall rule {rule_name}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Removed firewall rule {rule_name}[/green]")


@firewall_app.command("status")
def firewall_status(name: str = typer.Argument(..., help="Rule name")) -> None:
    """Check whether a block rule exists."""
    rule_name = _firewall_rule_name(name)
    if asyncio.run(_firewall_rules().rule_exists(rule_name)):
        console.print(f"[green]{rule_name} is active[/green]")
    else:
        console.print(f"[yellow]{rule_name} not found[/yellow]")


@app.command()
def version() -> None:
    """Show version information."""
    console.print(f"Focus Lock v{__version__}")


@app.callback()
def main_callback() -> None:
    """Focus Lock - focus timer with app blocking."""
    pass


if __name__ == "__main__":
    app()
