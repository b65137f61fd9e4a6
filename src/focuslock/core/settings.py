"""User settings model and the manager that owns the live instance."""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Awaitable, Callable
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from focuslock.blocking.rules import AppBlockRule, BlockRuleSet, SiteBlockRule
from focuslock.core.exceptions import SettingsValidationError
from focuslock.focus.timer import TimerMode

if TYPE_CHECKING:
    from focuslock.storage.settings_store import SettingsStore

logger = logging.getLogger(__name__)

SETTINGS_SCHEMA_VERSION = 1


class Settings(BaseModel):
    """Durations, preferences and block rules chosen by the user."""

    model_config = ConfigDict(frozen=True)

    schema_version: int = SETTINGS_SCHEMA_VERSION
    default_focus_minutes: int = 50
    short_break_minutes: int = 10
    long_break_minutes: int = 25
    long_break_interval: int = Field(
        default=0, ge=0, description="Long break after every N focus sessions (0 = never)"
    )
    auto_start_next: bool = True

    notifications_enabled: bool = True
    play_sound: bool = True
    custom_sound_path: str | None = None

    block_rules: BlockRuleSet = Field(default_factory=BlockRuleSet)

    @model_validator(mode="after")
    def _check_durations(self) -> Settings:
        error = self.validation_error()
        if error:
            raise ValueError(error)
        return self

    def validation_error(self) -> str:
        """Return the first problem with the durations, or an empty string."""
        if self.default_focus_minutes <= 0:
            return "Focus duration must be greater than 0."
        if self.short_break_minutes <= 0 or self.long_break_minutes <= 0:
            return "Break durations must be greater than 0."
        if self.short_break_minutes >= self.default_focus_minutes:
            return "Short break should be shorter than focus session."
        return ""

    def duration_for(self, mode: TimerMode) -> timedelta:
        """Default session length for *mode*. Custom sessions reuse the focus length."""
        if mode == TimerMode.SHORT_BREAK:
            return timedelta(minutes=self.short_break_minutes)
        if mode == TimerMode.LONG_BREAK:
            return timedelta(minutes=self.long_break_minutes)
        return timedelta(minutes=self.default_focus_minutes)


def _validation_message(exc: ValidationError) -> str:
    messages = []
    for error in exc.errors():
        message = error.get("msg", "")
        # Model validators report "Value error, <message>"
        messages.append(message.removeprefix("Value error, "))
    return "; ".join(messages) or str(exc)


SettingsListener = Callable[[Settings], Awaitable[None] | None]


class SettingsManager:
    """Single owner of the live settings.

    Readers take ``snapshot()`` and work on that immutable object; writers go
    through ``update()`` or the rule helpers, which validate a full copy and
    swap it in under a lock. A reader therefore never sees a half-written rule.
    """

    def __init__(self, store: SettingsStore | None = None, settings: Settings | None = None):
        self._store = store
        self._settings = settings or Settings()
        self._lock = threading.Lock()
        self._listeners: list[SettingsListener] = []
        self._initialized = store is None

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> Settings:
        """Load settings from the store. Must be awaited before dependents start."""
        if self._store is not None:
            loaded = await self._store.load()
            with self._lock:
                self._settings = loaded
        self._initialized = True
        logger.info("Settings initialized")
        return self.snapshot()

    def snapshot(self) -> Settings:
        """Get the current settings (immutable)."""
        with self._lock:
            return self._settings

    @property
    def block_rules(self) -> BlockRuleSet:
        return self.snapshot().block_rules

    def subscribe(self, listener: SettingsListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: SettingsListener) -> None:
        """Remove a change listener. Removing an unknown listener is a no-op."""
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def update(self, **changes: Any) -> Settings:
        """Validate and apply field changes.

        Raises:
            SettingsValidationError: The changes are invalid; nothing is applied.
        """
        return await self._apply(lambda current: {**current.model_dump(), **changes})

    async def set_blocking_enabled(self, enabled: bool) -> Settings:
        return await self._replace_rules(
            lambda rules: rules.model_copy(update={"is_enabled": enabled})
        )

    async def set_focus_sessions_only(self, focus_only: bool) -> Settings:
        return await self._replace_rules(
            lambda rules: rules.model_copy(update={"focus_sessions_only": focus_only})
        )

    async def add_app_rule(self, rule: AppBlockRule) -> Settings:
        if self.block_rules.get_app_rule(rule.id) is not None:
            raise SettingsValidationError(f"Duplicate app rule id: {rule.id}")
        return await self._replace_rules(lambda rules: rules.with_app_rule(rule))

    async def replace_app_rule(self, rule: AppBlockRule) -> Settings:
        """Swap in a new version of an existing app rule (matched by id)."""
        if self.block_rules.get_app_rule(rule.id) is None:
            raise SettingsValidationError(f"Unknown app rule id: {rule.id}")
        return await self._replace_rules(lambda rules: rules.with_app_rule(rule))

    async def remove_app_rule(self, rule_id: str) -> Settings:
        return await self._replace_rules(lambda rules: rules.without_app_rule(rule_id))

    async def add_site_rule(self, rule: SiteBlockRule) -> Settings:
        if self.block_rules.get_site_rule(rule.id) is not None:
            raise SettingsValidationError(f"Duplicate site rule id: {rule.id}")
        return await self._replace_rules(lambda rules: rules.with_site_rule(rule))

    async def replace_site_rule(self, rule: SiteBlockRule) -> Settings:
        """Swap in a new version of an existing site rule (matched by id)."""
        if self.block_rules.get_site_rule(rule.id) is None:
            raise SettingsValidationError(f"Unknown site rule id: {rule.id}")
        return await self._replace_rules(lambda rules: rules.with_site_rule(rule))

    async def remove_site_rule(self, rule_id: str) -> Settings:
        return await self._replace_rules(lambda rules: rules.without_site_rule(rule_id))

    async def _replace_rules(
        self, change: Callable[[BlockRuleSet], BlockRuleSet]
    ) -> Settings:
        def build(current: Settings) -> dict[str, Any]:
            data = current.model_dump()
            data["block_rules"] = change(current.block_rules).model_dump()
            return data

        return await self._apply(build)

    async def _apply(self, build: Callable[[Settings], dict[str, Any]]) -> Settings:
        with self._lock:
            current = self._settings
            try:
                updated = Settings.model_validate(build(current))
            except ValidationError as e:
                message = _validation_message(e)
                logger.warning(f"Rejected settings update: {message}")
                raise SettingsValidationError(message) from e
            self._settings = updated

        if self._store is not None:
            saved = await self._store.save(updated)
            if not saved:
                logger.warning("Settings applied but could not be saved")

        await self._notify(updated)
        return updated

    async def _notify(self, settings: Settings) -> None:
        for listener in list(self._listeners):
            try:
                result = listener(settings)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.error(f"Error in settings listener: {e}")
