from __future__ import annotations

import json
from decimal import Decimal

import pytest

from extracto.categorize import CategoryRule, PatternType, RuleCategorizer, RuleSource, StaticRuleProvider
from extracto.config import ExtractoSettings
from extracto.errors import ParseCancelledError, UsageLimitExceededError
from extracto.pipeline import main
from extracto.service import CancellationToken, PdfParsingService
from extracto.usage import InMemoryUsageTracker, ParseUsage

GALICIA_TEXT = "\n".join(
    [
        "<<PAGE:1>>>",
        "Cuenta Corriente N° 4008123-4 001-2@@@",
        "Saldos $ 10.000,00 $ 8.500,00@@@",
        "Movimientos@@@",
        "01/02/2024 PAGO TARJETA VISA 1.500,00- 8.500,00@@@",
        "Total $ 1.500,00@@@",
        "",
    ]
)


class _FakeExtractor:
    """Reemplaza la lectura del PDF: devuelve texto fijo y registra las llamadas."""

    def __init__(self, text: str = GALICIA_TEXT):
        self.text = text
        self.calls = []

    def __call__(self, pdf, page_filter, cancel=None):
        self.calls.append((pdf, page_filter))
        return self.text


def _service(limit: int = 10, **kwargs):
    tracker = InMemoryUsageTracker()
    extractor = _FakeExtractor()
    service = PdfParsingService(
        tracker, settings=ExtractoSettings(MONTHLY_LIMIT=limit), extractor=extractor, **kwargs
    )
    return service, tracker, extractor


def test_parse_records_usage():
    service, tracker, extractor = _service()
    result = service.parse(b"%PDF", "Galicia", "u1")

    assert result is not None
    assert result.transaction_count() == 1
    assert result.statement.accounts[0].transactions[0].amount == Decimal("-1500.00")
    assert len(extractor.calls) == 1
    assert [(r.user_id, r.bank) for r in tracker.records] == [("u1", "galicia")]


def test_quota_is_checked_before_reading_the_pdf():
    service, tracker, extractor = _service(limit=1)
    tracker.record(ParseUsage(user_id="u1", bank="galicia"))

    with pytest.raises(UsageLimitExceededError) as exc:
        service.parse(b"%PDF", "galicia", "u1")

    assert exc.value.limit == 1
    assert exc.value.to_dict()["details"] == {"limit": 1, "used": 1}
    assert extractor.calls == []
    assert len(tracker.records) == 1

    # otro usuario no se ve afectado
    assert service.parse(b"%PDF", "galicia", "u2") is not None


def test_unknown_bank_returns_none():
    service, tracker, extractor = _service()
    assert service.parse(b"%PDF", "hsbc", "u1") is None
    assert extractor.calls == []
    assert tracker.records == []


def test_cancellation_before_and_during_parse():
    service, tracker, _ = _service()

    token = CancellationToken()
    token.cancel()
    with pytest.raises(ParseCancelledError):
        service.parse(b"%PDF", "galicia", "u1", cancel=token)

    # cancelación desde el callback de progreso, a mitad del parseo
    token = CancellationToken()
    seen = []

    def progress(update):
        seen.append(update.stage)
        if update.current == 2:
            token.cancel()

    with pytest.raises(ParseCancelledError) as exc:
        service.parse(b"%PDF", "galicia", "u1", cancel=token, progress=progress)

    assert len(seen) == 2
    assert exc.value.details["stage"] == seen[-1]
    assert tracker.records == []


def test_parse_applies_categorizer():
    rules = StaticRuleProvider(
        bank_rules={
            "galicia": [
                CategoryRule(rule_id="b1", pattern="PAGO", category="Pagos", priority=50),
            ]
        },
        user_rules={
            "u1": [
                CategoryRule(
                    rule_id="u1-visa",
                    pattern="PAGO TARJETA",
                    pattern_type=PatternType.STARTS_WITH,
                    category="Tarjetas",
                    subcategory="Visa",
                    priority=10,
                    source=RuleSource.USER,
                )
            ]
        },
    )
    service, _, _ = _service(categorizer=RuleCategorizer(rules))
    tx = service.parse(b"%PDF", "galicia", "u1").statement.accounts[0].transactions[0]

    assert (tx.category, tx.subcategory) == ("Tarjetas", "Visa")
    assert tx.category_source == "UserLearned"
    assert tx.category_rule_id == "u1-visa"


def test_cli_text_mode(tmp_path):
    src = tmp_path / "galicia.txt"
    src.write_text(GALICIA_TEXT, encoding="utf-8")
    out = tmp_path / "out" / "galicia.json"

    assert main([str(src), "--bank", "galicia", "--text", "--out", str(out)]) == 0
    payload = json.loads(out.read_text(encoding="utf-8"))

    assert payload["bank"] == "Banco Galicia"
    assert payload["periodStart"] == "2024-02-01"
    acc = payload["accounts"][0]
    assert acc["accountNumber"] == "4008123-4 001-2"
    assert acc["transactions"][0]["amount"] == -1500.0
    assert acc["transactions"][0]["type"] == "debit"
    assert "isSuspicious" in acc["transactions"][0]
    assert isinstance(payload["warnings"], list)

    assert main([str(src), "--bank", "hsbc", "--text"]) == 2


def test_bank_rules_are_looked_up_by_bank_key():
    """Las reglas del banco se guardan con la clave del pedido ('galicia'), no con el nombre visible."""
    rules = StaticRuleProvider(
        bank_rules={"galicia": [CategoryRule(rule_id="b1", pattern="PAGO", category="Pagos")]}
    )
    service, _, _ = _service(categorizer=RuleCategorizer(rules))
    tx = service.parse(b"%PDF", "Galicia", "u1").statement.accounts[0].transactions[0]

    assert tx.category == "Pagos"
    assert tx.category_source == "BankRule"
    assert tx.category_rule_id == "b1"
