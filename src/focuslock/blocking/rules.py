"""Block rule models and enforcement evaluation."""

from __future__ import annotations

import uuid
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from focuslock.focus.timer import TimerMode


class BlockAction(str, Enum):
    """What the monitor does when a rule matches."""

    WARN = "warn"
    KILL_PROCESS = "kill_process"
    CLOSE_WINDOW = "close_window"  # reserved, not enforced
    BLOCK_NETWORK = "block_network"  # reserved, not enforced


RESERVED_ACTIONS = frozenset({BlockAction.CLOSE_WINDOW, BlockAction.BLOCK_NETWORK})


def _new_id() -> str:
    return str(uuid.uuid4())


def normalize_process_name(name: str) -> str:
    """Lower-case a process name and drop a trailing ``.exe``."""
    normalized = name.strip().lower()
    if normalized.endswith(".exe"):
        normalized = normalized[: -len(".exe")]
    return normalized


def process_name_matches(rule_name: str, process_name: str | None) -> bool:
    """Case-insensitive exact match; ``chrome`` matches ``Chrome.exe`` but not ``chromedriver``."""
    if not process_name or not rule_name:
        return False
    return normalize_process_name(rule_name) == normalize_process_name(process_name)


class AppBlockRule(BaseModel):
    """Blocks a desktop application by process name."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    process_name: str = Field(min_length=1)
    friendly_name: str = ""
    action: BlockAction = BlockAction.KILL_PROCESS
    grace_period_seconds: int = Field(default=5, ge=0)
    is_active: bool = True

    @field_validator("process_name")
    @classmethod
    def _strip_process_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Process name must not be blank")
        return value

    @property
    def display_name(self) -> str:
        return self.friendly_name or self.process_name

    def matches(self, process_name: str | None) -> bool:
        return process_name_matches(self.process_name, process_name)


class SiteBlockRule(BaseModel):
    """Blocks a website by domain through the hosts file."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    domain: str = Field(min_length=1)
    friendly_name: str = ""
    action: BlockAction = BlockAction.WARN
    include_subdomains: bool = True
    is_active: bool = True

    @field_validator("domain")
    @classmethod
    def _normalize_domain(cls, value: str) -> str:
        value = value.strip().lower().rstrip(".")
        for prefix in ("https://", "http://"):
            if value.startswith(prefix):
                value = value[len(prefix):]
        value = value.split("/", 1)[0]
        if not value:
            raise ValueError("Domain must not be blank")
        return value

    @property
    def display_name(self) -> str:
        return self.friendly_name or self.domain

    def hosts_entries(self) -> list[str]:
        """Host names to redirect for this rule."""
        entries = [self.domain]
        if self.include_subdomains and not self.domain.startswith("www."):
            entries.append(f"www.{self.domain}")
        return entries


class BlockRuleSet(BaseModel):
    """User-configured block rules plus the global switches."""

    model_config = ConfigDict(frozen=True)

    is_enabled: bool = True
    focus_sessions_only: bool = True
    apps: tuple[AppBlockRule, ...] = ()
    sites: tuple[SiteBlockRule, ...] = ()

    @model_validator(mode="after")
    def _check_unique_ids(self) -> BlockRuleSet:
        for label, rules in (("app", self.apps), ("site", self.sites)):
            seen: set[str] = set()
            for rule in rules:
                if rule.id in seen:
                    raise ValueError(f"Duplicate {label} rule id: {rule.id}")
                seen.add(rule.id)
        return self

    def active_apps(self) -> list[AppBlockRule]:
        return [rule for rule in self.apps if rule.is_active]

    def active_sites(self) -> list[SiteBlockRule]:
        return [rule for rule in self.sites if rule.is_active]

    def get_app_rule(self, rule_id: str) -> AppBlockRule | None:
        return next((rule for rule in self.apps if rule.id == rule_id), None)

    def get_site_rule(self, rule_id: str) -> SiteBlockRule | None:
        return next((rule for rule in self.sites if rule.id == rule_id), None)

    def with_app_rule(self, rule: AppBlockRule) -> BlockRuleSet:
        """Return a copy with *rule* replacing the rule of the same id, or appended."""
        if self.get_app_rule(rule.id) is None:
            apps = (*self.apps, rule)
        else:
            apps = tuple(rule if existing.id == rule.id else existing for existing in self.apps)
        return self.model_copy(update={"apps": apps})

    def without_app_rule(self, rule_id: str) -> BlockRuleSet:
        return self.model_copy(
            update={"apps": tuple(rule for rule in self.apps if rule.id != rule_id)}
        )

    def with_site_rule(self, rule: SiteBlockRule) -> BlockRuleSet:
        """Return a copy with *rule* replacing the rule of the same id, or appended."""
        if self.get_site_rule(rule.id) is None:
            sites = (*self.sites, rule)
        else:
            sites = tuple(rule if existing.id == rule.id else existing for existing in self.sites)
        return self.model_copy(update={"sites": sites})

    def without_site_rule(self, rule_id: str) -> BlockRuleSet:
        return self.model_copy(
            update={"sites": tuple(rule for rule in self.sites if rule.id != rule_id)}
        )


def is_enforcement_active(rule_set: BlockRuleSet, mode: TimerMode, is_running: bool) -> bool:
    """Whether the block monitor should be scanning right now."""
    if not rule_set.is_enabled or not is_running:
        return False
    return not rule_set.focus_sessions_only or mode == TimerMode.FOCUS
