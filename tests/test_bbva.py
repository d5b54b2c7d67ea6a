from __future__ import annotations

import datetime
from decimal import Decimal

from extracto.banks.bbva import BbvaParser, account_ref, year_hint
from extracto.banks.bbva_text import post_process, rebuild_words, sanitize_description
from extracto.matching import Matcher

TODAY = datetime.date(2024, 2, 15)

ARS_BLOCK = [
    "MOVIMIENTOS EN CUENTAS",
    "CC $ 123-456789/0",
    "FECHA ORIGEN CONCEPTO DEBITO CREDITO SALDO",
    "SALDO ANTERIOR 10.000,00",
    "05/01 123 PAGO TARJETA VISA -1.500,00 8.500,00",
    "10/01 456 DEPOSITO EFECTIVO 2.000,00 10.500,00",
    "SALDO AL 31 DE ENERO 10.500,00",
]

USD_BLOCK = [
    "MOVIMIENTOS EN CUENTAS",
    "CC U$S 123-987654/1",
    "FECHA ORIGEN CONCEPTO DEBITO CREDITO SALDO",
    "SALDO ANTERIOR 100,00",
    "12/01 789 DEPOSITO 50,00 150,00",
    "SALDO AL 31 DE ENERO 150,00",
]


def _ocr_text(*blocks) -> str:
    """Arma el texto como sale de la extracción: '@@@' al final de cada línea."""
    lines = ["<<PAGE:1>>>"]
    for block in blocks:
        lines.extend(ln + "@@@" for ln in block)
    return "\n".join(lines) + "\n"


def test_bbva_pesos_account():
    result = BbvaParser(today=TODAY).parse(_ocr_text(ARS_BLOCK))
    st = result.statement

    assert st.bank == "BBVA"
    assert len(st.accounts) == 1
    acc = st.accounts[0]
    assert (acc.account_number, acc.currency) == ("123-456789/0", "ARS")
    assert acc.opening_balance == Decimal("10000.00")
    assert acc.closing_balance == Decimal("10500.00")

    txs = acc.transactions
    assert [(t.date, t.amount) for t in txs] == [
        (datetime.date(2024, 1, 5), Decimal("-1500.00")),
        (datetime.date(2024, 1, 10), Decimal("2000.00")),
    ]
    # el código de origen no queda en la descripción
    assert [t.description for t in txs] == ["PAGO TARJETA VISA", "DEPOSITO EFECTIVO"]

    # período: primera fecha y fecha del "SALDO AL"
    assert st.period_start == datetime.date(2024, 1, 5)
    assert st.period_end == datetime.date(2024, 1, 31)
    assert not any(w.startswith("[balance-mismatch]") for w in result.warnings), result.warnings


def test_bbva_two_accounts_with_currencies():
    result = BbvaParser(today=TODAY).parse(_ocr_text(ARS_BLOCK, USD_BLOCK))
    accounts = result.statement.accounts

    assert [(a.account_number, a.currency) for a in accounts] == [
        ("123-456789/0", "ARS"),
        ("123-987654/1", "USD"),
    ]
    usd = accounts[1]
    assert usd.opening_balance == Decimal("100.00")
    assert [t.amount for t in usd.transactions] == [Decimal("50.00")]
    assert result.transaction_count() == 3


def test_bbva_repeated_block_is_deduplicated():
    result = BbvaParser(today=TODAY).parse(_ocr_text(ARS_BLOCK, ARS_BLOCK))
    assert result.transaction_count() == 2


def test_bbva_headers_only():
    result = BbvaParser(today=TODAY).parse(_ocr_text(ARS_BLOCK[:3]))

    assert any(w.startswith("[no-anchors] 123-456789/0") for w in result.warnings), result.warnings
    assert "No se detectaron movimientos." in result.warnings


def test_bbva_empty_text():
    result = BbvaParser().parse("")
    assert result.statement.bank == "BBVA"
    assert result.warnings == ["[empty] texto vacío: no hay nada para parsear"]


def test_bbva_account_ref_and_year_hint():
    m = Matcher()
    ref = account_ref("C C  U $ S  1 2 3 - 4 5 6 7 8 9 / 0", m)
    assert (ref.number, ref.currency) == ("123-456789/0", "USD")
    assert account_ref("sin cuenta", m) is None

    assert year_hint("Emitido el 03/02/2023 ...", m, TODAY) == 2023
    assert year_hint("05/01 sin año", m, TODAY) == 2024


def test_bbva_description_rebuild():
    # letra por letra: se juntan las letras de cada palabra
    assert sanitize_description("P A G O   T A R J E T A") == "PAGO TARJETA"
    # texto normal: no se pegan las palabras entre sí
    assert sanitize_description("PAGO TARJETA VISA") == "PAGO TARJETA VISA"
    assert rebuild_words("S.A.") == ["SA"]
    assert post_process("IVATASAGENERAL x") == "IVA TASA GENERAL"
