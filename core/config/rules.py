"""
SBO Core Config — Admin-Configurable Rules
=============================================
Currency precision comes from configuration, never from engine code.

Rules are loaded from Django settings (SALES_CURRENCY_MINOR_UNITS)
or registered directly on a store in tests.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional, Protocol

DEFAULT_MINOR_UNITS = 2
MAX_MINOR_UNITS = 4


# ══════════════════════════════════════════════════════════════
# CURRENCY RULE
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class CurrencyRule:
    """
    Rounding precision of one currency.

    minor_units: digits after the decimal point (JPY 0, EUR 2, KWD 3).
    """

    currency_code: str
    minor_units: int = DEFAULT_MINOR_UNITS

    def __post_init__(self) -> None:
        if (
            not isinstance(self.currency_code, str)
            or len(self.currency_code) != 3
            or not self.currency_code.isalpha()
        ):
            raise ValueError(
                f"currency_code must be 3-letter ISO 4217 code, "
                f"got {self.currency_code!r}."
            )
        if not self.currency_code.isupper():
            object.__setattr__(
                self, "currency_code", self.currency_code.upper()
            )
        if (
            not isinstance(self.minor_units, int)
            or isinstance(self.minor_units, bool)
            or not 0 <= self.minor_units <= MAX_MINOR_UNITS
        ):
            raise ValueError(
                f"minor_units must be between 0 and {MAX_MINOR_UNITS}, "
                f"got {self.minor_units!r}."
            )

    @property
    def quantum(self) -> Decimal:
        """Smallest representable amount: 0.01 for two minor units."""
        return Decimal(1).scaleb(-self.minor_units)


# ══════════════════════════════════════════════════════════════
# CONFIG STORE PROTOCOL
# ══════════════════════════════════════════════════════════════

class ConfigStore(Protocol):
    """Protocol for admin-configured rule storage."""

    def get_currency_rule(self, currency_code: str) -> Optional[CurrencyRule]:
        ...  # pragma: no cover


# ══════════════════════════════════════════════════════════════
# IN-MEMORY CONFIG STORE
# ══════════════════════════════════════════════════════════════

class InMemoryConfigStore:
    """Simple in-memory config store for testing and bootstrap."""

    def __init__(self) -> None:
        self._currency_rules: Dict[str, CurrencyRule] = {}

    def add_currency_rule(self, rule: CurrencyRule) -> None:
        self._currency_rules[rule.currency_code] = rule

    def get_currency_rule(self, currency_code: str) -> Optional[CurrencyRule]:
        if not currency_code:
            return None
        return self._currency_rules.get(currency_code.upper())

    def resolve_currency_rule(self, currency_code: str) -> CurrencyRule:
        """Configured rule, or the two-minor-unit default."""
        rule = self.get_currency_rule(currency_code)
        if rule is not None:
            return rule
        return CurrencyRule(currency_code=currency_code.upper())


def currency_rules_from_settings(settings: Any = None) -> InMemoryConfigStore:
    """
    Build a config store from SALES_CURRENCY_MINOR_UNITS.

        SALES_CURRENCY_MINOR_UNITS = {"JPY": 0, "KWD": 3}

    With no settings argument, django.conf.settings is used.
    """
    if settings is None:
        from django.conf import settings as django_settings
        settings = django_settings

    store = InMemoryConfigStore()
    configured = getattr(settings, "SALES_CURRENCY_MINOR_UNITS", None) or {}
    for currency_code, minor_units in sorted(configured.items()):
        store.add_currency_rule(
            CurrencyRule(currency_code=currency_code, minor_units=minor_units)
        )
    return store
