"""Block rules and their enforcement."""

from focuslock.blocking.rules import (
    AppBlockRule,
    BlockAction,
    BlockRuleSet,
    SiteBlockRule,
    is_enforcement_active,
)

__all__ = [
    "AppBlockRule",
    "BlockAction",
    "BlockRuleSet",
    "SiteBlockRule",
    "is_enforcement_active",
]
