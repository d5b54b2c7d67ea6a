from __future__ import annotations

import datetime
from decimal import Decimal

from extracto.banks.santander import SantanderParser, day_rows, tidy_money
from extracto.matching import Matcher
from extracto.segment import Block

STATEMENT = "\n".join(
    [
        "<<PAGE:1>>>",
        "Desde: 01/06/24 Hasta: 30/06/24@@@",
        "Cuenta Corriente Nº 123-456789/0@@@",
        "Movimientos en pesos@@@",
        "Fecha Comprobante Movimiento Débito Crédito Saldo en cuenta@@@",
        "30/05/24 Saldo Inicial $ 10.000,00@@@",
        "03/06/24 1234 Transferencia recibida $ 5.000,00 $ 15.000,00@@@",
        "Compra con tarjeta -$ 2.000,00 $ 13.000,00@@@",
        "Saldo total $ 13.000,00@@@",
        "Movimientos en dólares@@@",
        "Cuenta Corriente especial U$S Nº 123-987654/1@@@",
        "30/05/24 Saldo Inicial U$S 100,00@@@",
        "04/06/24 Deposito U$S 50,00 U$S 150,00@@@",
        "Saldo total U$S 150,00@@@",
        "Detalle impositivo@@@",
        "",
    ]
)


def test_santander_pesos_and_dollars():
    result = SantanderParser().parse(STATEMENT)
    st = result.statement

    assert st.bank == "Banco Santander"
    # período explícito del encabezado
    assert st.period_start == datetime.date(2024, 6, 1)
    assert st.period_end == datetime.date(2024, 6, 30)

    # 1) dos cuentas, cada una con su moneda
    assert [(a.account_number, a.currency) for a in st.accounts] == [
        ("123-456789/0", "ARS"),
        ("123-987654/1", "USD"),
    ]
    ars, usd = st.accounts

    # 2) pesos: varias filas bajo la misma fecha
    assert ars.opening_balance == Decimal("10000.00")
    assert ars.closing_balance == Decimal("13000.00")
    assert [(t.date.day, t.amount, t.balance) for t in ars.transactions] == [
        (3, Decimal("5000.00"), Decimal("15000.00")),
        (3, Decimal("-2000.00"), Decimal("13000.00")),
    ]
    assert ars.transactions[0].description == "1234 Transferencia recibida"
    assert ars.transactions[1].description == "Compra con tarjeta"

    # 3) dólares
    assert usd.opening_balance == Decimal("100.00")
    assert usd.closing_balance == Decimal("150.00")
    assert [t.amount for t in usd.transactions] == [Decimal("50.00")]

    assert not any(w.startswith("[balance-mismatch]") for w in result.warnings), result.warnings


def test_santander_dollars_without_movements():
    text = "\n".join(
        [
            "Cuenta Corriente Nº 123-456789/0",
            "Movimientos en pesos",
            "Saldo total $ 0,00",
            "Movimientos en dólares",
            "Cuenta Corriente especial U$S Nº 123-987654/1",
            "Saldo Inicial U$S 100,00",
            "No tenés movimientos",
            "Saldo total U$S 100,00",
        ]
    )
    result = SantanderParser().parse(text)
    usd = result.statement.accounts[1]

    assert usd.currency == "USD"
    assert usd.transactions == []
    assert usd.opening_balance == Decimal("100.00")
    assert usd.closing_balance == Decimal("100.00")


def test_santander_missing_sections():
    result = SantanderParser().parse("texto cualquiera")
    assert "[santander] cuenta (pesos) no encontrada" in result.warnings
    assert "[santander] sección 'Movimientos en pesos' no encontrada" in result.warnings


def test_tidy_money_and_day_rows():
    m = Matcher()
    assert tidy_money("Compra -$ 2.000,00 $ 13.000,00", m) == "Compra $ -2.000,00 $ 13.000,00"
    assert tidy_money("Saldo Inicial + U$S 10,00", m) == "Saldo Inicial U$S 10,00"

    block = Block(
        date=datetime.date(2024, 6, 3),
        date_text="03/06/24",
        first_line="",
        lines=["Uno $ 1,00 $ 11,00 Dos", "detalle $ 2,00 $ 13,00", "Suelto 5,00"],
    )
    rows, leftover = day_rows(block, m)
    assert [r.description for r in rows] == ["Uno", "Dos detalle"]
    assert [r.tokens[0].value for r in rows] == [Decimal("1.00"), Decimal("2.00")]
    assert leftover == 1


def test_santander_single_amount_rows_are_skipped():
    """Líneas con un solo monto (solo saldo) no alcanzan para armar un movimiento."""
    text = "\n".join(
        [
            "Cuenta Corriente Nº 123-456789/0",
            "Movimientos en pesos",
            "Saldo Inicial $ 10.000,00",
            "03/06/24 Transferencia recibida $ 15.000,00",
            "04/06/24 Compra con tarjeta $ 13.000,00",
            "Saldo total $ 13.000,00",
        ]
    )
    result = SantanderParser().parse(text)
    ars = result.statement.accounts[0]

    # 1) ningún movimiento inventado a partir de la diferencia de saldos
    assert ars.transactions == [], [(t.amount, t.description) for t in ars.transactions]
    assert ars.opening_balance == Decimal("10000.00")

    # 2) cada día queda informado como salteado
    assert "[skip] 03/06/24 - insuficientes montos: 1" in result.warnings, result.warnings
    assert "[skip] 04/06/24 - insuficientes montos: 1" in result.warnings, result.warnings
