"""
SBO Core Config — Public API
===============================
Admin-configurable rules (currency precision).
"""

from core.config.rules import (
    ConfigStore,
    CurrencyRule,
    DEFAULT_MINOR_UNITS,
    InMemoryConfigStore,
    currency_rules_from_settings,
)

__all__ = [
    "CurrencyRule",
    "ConfigStore",
    "DEFAULT_MINOR_UNITS",
    "InMemoryConfigStore",
    "currency_rules_from_settings",
]
