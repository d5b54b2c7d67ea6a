from __future__ import annotations

import datetime
from decimal import Decimal

import pytest

from extracto.dates import expand_year, parse_ddmmyy
from extracto.matching import Matcher
from extracto.money import find_money_tokens, parse_money, try_parse_money
from extracto.normalize import canonical_chars, normalize_line, normalize_text, strip_accents


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("1 .528,00", "1.528,00"),
        ("1.528.895,1 1", "1.528.895,11"),
        ("895 ,11", "895,11"),
        ("- 333,41", "-333,41"),
        ("1.234,99 -", "1.234,99-"),
        ("1 5/01/24 PAGO", "15/01/24 PAGO"),
        ("15 / 01 / 2024 PAGO", "15/01/2024 PAGO"),
        ("15/01/24PAGO", "15/01/24 PAGO"),
        ("  CUIT   20123456789  ", "CUIT 20123456789"),
    ],
)
def test_normalize_line_repairs(raw, expected):
    assert normalize_line(raw) == expected


def test_normalize_line_is_idempotent():
    samples = [
        "15/01/2024   PAGO TARJETA VISA   1 .500 ,00 -   10.000,00",
        "1 5/01/24 TRF INMED PROVEED - 333,41 9.666,59",
        "Saldos $ 10.000,00 $ 7.000,00",
        "",
        "   ",
    ]
    for s in samples:
        once = normalize_line(s)
        assert normalize_line(once) == once, f"No es idempotente: {s!r} -> {once!r}"


def test_normalize_line_keeps_unrelated_hyphens():
    # guiones de números de cuenta/CUIT no se pegan a nada
    assert normalize_line("Cuenta N° 4008123-4 001-2") == "Cuenta N° 4008123-4 001-2"
    assert normalize_line("CUIT 20-12345678-9") == "CUIT 20-12345678-9"


def test_canonical_chars_and_text():
    assert canonical_chars("A B–C\r\nD") == "A B-C\nD"
    assert normalize_text("a  b\n\n1 .500,00") == "a b\n\n1.500,00"
    assert strip_accents("Débito Crédito año") == "Debito Credito ano"


def test_parse_money_formats():
    assert parse_money("1.500,00") == Decimal("1500.00")
    assert parse_money("-333,41") == Decimal("-333.41")
    assert parse_money("99,00-") == Decimal("-99.00")
    assert parse_money("$ 1.234,56") == Decimal("1234.56")
    assert parse_money("U$S 10,00") == Decimal("10.00")
    assert parse_money("+5,00") == Decimal("5.00")

    with pytest.raises(ValueError):
        parse_money("1.500")
    assert try_parse_money("abc") is None


def test_find_money_tokens_strict():
    m = Matcher()
    _, tokens = find_money_tokens("PAGO 1.500,00- 10.000,00", m)
    assert [t.value for t in tokens] == [Decimal("-1500.00"), Decimal("10000.00")]
    assert tokens[0].trailing_minus and tokens[0].signed
    assert not tokens[1].signed

    # pegado a letras o identificadores largos: no es un monto
    _, tokens = find_money_tokens("ABC1.500,00 CUIT 20123456789", m)
    assert tokens == []



def test_dates():
    assert parse_ddmmyy("15/01/24") == datetime.date(2024, 1, 15)
    assert parse_ddmmyy("15/01/2024") == datetime.date(2024, 1, 15)
    assert parse_ddmmyy("15-01-99") == datetime.date(1999, 1, 15)
    assert parse_ddmmyy("31/02/24") is None
    assert parse_ddmmyy("hola") is None
    assert expand_year(69) == 2069
    assert expand_year(70) == 1970
