from __future__ import annotations

from decimal import Decimal

from extracto.banks.supervielle import SupervielleParser, split_by_accounts
from extracto.matching import Matcher

STATEMENT = "\n".join(
    [
        "<<PAGE:1>>>",
        "INFORMACION SOBRE EL SALDO DE SUS CUENTAS NUMERO DE CUENTA 0123-45678/9",
        "Saldo del período anterior 10.000,00",
        "Detalle de Movimientos",
        "Fecha Concepto Débito Crédito Saldo",
        "01/03/24 Credito interbancario 5.000,00 15.000,00",
        "02/03/24 Impuesto Débitos y Créditos/DB 30,00 14.970,00",
        "03/03/24 Débitos varios 970,00 14.000,00",
        "04/03/24 Embargo Judicial 1.000,00 13.000,00",
        "SALDO PERIODO ACTUAL 13.000,00",
    ]
)


def test_supervielle_statement_structure_and_integrity():
    result = SupervielleParser().parse(STATEMENT)
    st = result.statement

    assert st.bank == "Banco Supervielle"
    assert [a.account_number for a in st.accounts] == ["0123-45678/9"]
    acc = st.accounts[0]
    assert acc.opening_balance == Decimal("10000.00")
    assert acc.closing_balance == Decimal("13000.00")

    # 1) descripciones canónicas, original conservado
    assert [t.description for t in acc.transactions] == [
        "CREDITO INTERBANCARIO",
        "IMPUESTO DEBITOS Y CREDITOS (DB)",
        "DEBITOS VARIOS",
        "EMBARGO JUDICIAL",
    ]
    assert acc.transactions[3].original_description == "Embargo Judicial"

    # 2) los débitos vienen sin signo: el saldo corrige
    assert [t.amount for t in acc.transactions] == [
        Decimal("5000.00"),
        Decimal("-30.00"),
        Decimal("-970.00"),
        Decimal("-1000.00"),
    ]

    # 3) avisos propios del banco
    assert "[precheck] 0123-45678/9 anclas_fecha=4" in result.warnings
    assert any(w.startswith("[ledger] 3 filas") for w in result.warnings), result.warnings
    assert not any(w.startswith("[balance-mismatch]") for w in result.warnings)


def test_supervielle_split_by_accounts():
    m = Matcher()
    text = "NUMERO DE CUENTA 111\nfilas a\nNUMERO DE CUENTA 222\nfilas b"
    parts = split_by_accounts(text, m)
    assert [n for n, _ in parts] == ["111", "222"]
    assert parts[0][1].startswith("NUMERO DE CUENTA 111") and "filas b" not in parts[0][1]

    assert split_by_accounts("sin cuentas", m) == [("", "sin cuentas")]


def test_supervielle_headers_only_drops_account():
    text = "NUMERO DE CUENTA 1\nDetalle de Movimientos\nFecha Concepto Saldo"
    result = SupervielleParser().parse(text)

    assert result.statement.accounts == []
    assert any(w.startswith("[no-anchors] 1") for w in result.warnings), result.warnings


def test_supervielle_empty_text():
    result = SupervielleParser().parse("")
    assert result.statement.bank == "Banco Supervielle"
    assert result.warnings[0].startswith("[empty]")
