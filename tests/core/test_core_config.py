"""SBO Core Config — currency rule tests."""

from decimal import Decimal
from types import SimpleNamespace

import pytest

from core.config import (
    CurrencyRule,
    DEFAULT_MINOR_UNITS,
    InMemoryConfigStore,
    currency_rules_from_settings,
)


class TestCurrencyRule:
    def test_default_quantum(self):
        assert CurrencyRule("EUR").quantum == Decimal("0.01")

    def test_zero_minor_units(self):
        assert CurrencyRule("JPY", minor_units=0).quantum == Decimal("1")

    def test_three_minor_units(self):
        assert CurrencyRule("KWD", minor_units=3).quantum == Decimal("0.001")

    def test_code_is_upper_cased(self):
        assert CurrencyRule("usd").currency_code == "USD"

    @pytest.mark.parametrize("code", ["EU", "EURO", "E1R", 978])
    def test_invalid_code(self, code):
        with pytest.raises(ValueError, match="ISO 4217"):
            CurrencyRule(code)

    @pytest.mark.parametrize("minor_units", [-1, 5, True, "2"])
    def test_invalid_minor_units(self, minor_units):
        with pytest.raises(ValueError, match="minor_units"):
            CurrencyRule("EUR", minor_units=minor_units)


class TestConfigStore:
    def test_unknown_currency_defaults(self):
        rule = InMemoryConfigStore().resolve_currency_rule("chf")
        assert rule.currency_code == "CHF"
        assert rule.minor_units == DEFAULT_MINOR_UNITS

    def test_configured_rule_wins(self):
        store = InMemoryConfigStore()
        store.add_currency_rule(CurrencyRule("JPY", minor_units=0))
        assert store.resolve_currency_rule("jpy").minor_units == 0
        assert store.get_currency_rule("EUR") is None

    def test_from_settings_object(self):
        settings = SimpleNamespace(SALES_CURRENCY_MINOR_UNITS={"JPY": 0, "BHD": 3})
        store = currency_rules_from_settings(settings)
        assert store.resolve_currency_rule("JPY").minor_units == 0
        assert store.resolve_currency_rule("BHD").minor_units == 3

    def test_from_settings_without_key(self):
        store = currency_rules_from_settings(SimpleNamespace())
        assert store.resolve_currency_rule("EUR").minor_units == 2

    def test_from_django_settings(self):
        store = currency_rules_from_settings()
        assert store.resolve_currency_rule("KWD").minor_units == 3
