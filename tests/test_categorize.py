from __future__ import annotations

import datetime
from decimal import Decimal

import pytest
from pydantic import ValidationError

from extracto.categorize import CategoryRule, PatternType, RuleCategorizer, StaticRuleProvider
from extracto.config import ExtractoSettings
from extracto.models import AccountStatement, BankStatement, ParseResult, Transaction


def _result(*descriptions: str) -> ParseResult:
    txs = [
        Transaction.create(
            date=datetime.date(2024, 1, i + 1),
            amount=Decimal("-10"),
            balance=Decimal("100"),
            description=d,
        )
        for i, d in enumerate(descriptions)
    ]
    return ParseResult(statement=BankStatement(bank="BBVA", accounts=[AccountStatement(transactions=txs)]))


def _rule(rule_id: str, pattern: str, kind: PatternType, category: str, priority: int = 100, enabled=True):
    return CategoryRule(
        rule_id=rule_id,
        pattern=pattern,
        pattern_type=kind,
        category=category,
        priority=priority,
        enabled=enabled,
    )


def test_rules_by_priority_and_disabled_rules():
    provider = StaticRuleProvider(
        bank_rules={
            "bbva": [
                _rule("desactivada", "PAGO TARJETA VISA", PatternType.EQUALS, "Nunca", priority=1, enabled=False),
                _rule("generica", "PAGO", PatternType.CONTAINS, "Pagos", priority=50),
                _rule("visa", "visa", PatternType.ENDS_WITH, "Tarjetas", priority=20),
            ]
        }
    )
    result = _result("PAGO TARJETA VISA", "PAGO SERVICIOS", "Sin regla")
    hits = RuleCategorizer(provider).apply(result, "BBVA", "u1")

    cats = [t.category for t in result.statement.all_transactions()]
    assert cats == ["Tarjetas", "Pagos", None], cats
    assert hits == 2
    assert result.statement.all_transactions()[0].category_source == "BankRule"


def test_regex_rules_and_accents():
    provider = StaticRuleProvider(
        bank_rules={
            "bbva": [
                _rule("imp", r"^imp(uesto)?\b", PatternType.REGEX, "Impuestos"),
                _rule("rota", "(", PatternType.REGEX, "Nunca", priority=1),
                _rule("deb", "Débitos", PatternType.CONTAINS, "Debitos", priority=200),
            ]
        }
    )
    result = _result("Impuesto ley 25413", "Débitos varios")
    hits = RuleCategorizer(provider).apply(result, "bbva", "u1")

    # la regex inválida se ignora sin cortar la categorización
    assert [t.category for t in result.statement.all_transactions()] == ["Impuestos", "Debitos"]
    assert hits == 2


def test_no_rules_means_no_changes():
    result = _result("PAGO")
    assert RuleCategorizer(StaticRuleProvider()).apply(result, "bbva", "u1") == 0
    assert result.statement.all_transactions()[0].category is None


def test_settings_from_environment(monkeypatch):
    monkeypatch.setenv("EXTRACTO_MONTHLY_LIMIT", "5")
    monkeypatch.setenv("EXTRACTO_LOG_LEVEL", "debug")
    s = ExtractoSettings()
    assert s.MONTHLY_LIMIT == 5
    assert s.LOG_LEVEL == "DEBUG"

    with pytest.raises(ValidationError):
        ExtractoSettings(REGEX_TIMEOUT=0)
