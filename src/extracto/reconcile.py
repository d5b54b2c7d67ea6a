"""
Reconciliación contra saldos impresos.

El saldo que imprime el banco después de cada movimiento es la verdad:
    esperado(i) = saldo(i) - saldo(i-1)
Si el importe parseado no coincide se corrige (o se le da vuelta el signo)
y se deja registro en warnings y en el reporte.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional

from .models import AccountStatement, ParseResult, Transaction
from .money import cents
from .signs import infer_sign

logger = logging.getLogger(__name__)

AMOUNT_TOLERANCE = Decimal("0.01")
SIGN_TOLERANCE = Decimal("0.05")
CLOSING_TOLERANCE = Decimal("0.02")
COLLAPSE_FLOOR = Decimal("100000")

FLIP_SIGN = "flip_sign"
FORCE_DELTA = "force_delta"
INFER_SIGN = "infer_sign"


@dataclass(frozen=True)
class Correction:
    index: int
    kind: str
    before: Decimal
    after: Decimal


@dataclass
class ReconcileReport:
    account_number: str = ""
    corrections: List[Correction] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    closing_difference: Optional[Decimal] = None

    @property
    def ok(self) -> bool:
        return not self.warnings


def _fmt(v: Decimal) -> str:
    return f"{v:,.2f}"


def _label(t: Transaction) -> str:
    return f"{t.date:%d/%m/%y} '{t.description}'"


def _first_row(t: Transaction, index: int, report: ReconcileReport) -> None:
    # sin saldo previo no se puede validar: queda sospechosa
    t.is_suspicious = True
    if t.has_explicit_sign:
        return
    sign = infer_sign(t.original_description or t.description)
    if sign is None:
        return
    new = abs(t.amount) * sign
    if new != t.amount:
        report.corrections.append(Correction(index, INFER_SIGN, t.amount, new))
        t.set_amount(new)


def reconcile_account(
    account: AccountStatement,
    tolerance: Decimal = AMOUNT_TOLERANCE,
    sign_tolerance: Decimal = SIGN_TOLERANCE,
    closing_tolerance: Decimal = CLOSING_TOLERANCE,
    collapse_floor: Decimal = COLLAPSE_FLOOR,
) -> ReconcileReport:
    report = ReconcileReport(account_number=account.account_number)
    txs = account.transactions

    prev: Optional[Decimal] = account.opening_balance
    prev_date = None

    for i, t in enumerate(txs):
        if prev_date is not None and t.date < prev_date:
            report.warnings.append(f"[order] {_label(t)} anterior a {prev_date:%d/%m/%y}")
        prev_date = t.date if prev_date is None else max(prev_date, t.date)

        if prev is None:
            _first_row(t, i, report)
            prev = t.balance
            continue

        parsed = t.amount
        expected = cents(t.balance - prev)

        if abs(parsed - expected) <= tolerance:
            pass
        elif (parsed < 0) != (expected < 0) and abs(abs(parsed) - abs(expected)) <= sign_tolerance:
            t.set_amount(expected)
            report.corrections.append(Correction(i, FLIP_SIGN, parsed, expected))
            report.warnings.append(f"[flip-sign] {_label(t)} {_fmt(parsed)} → {_fmt(expected)}")
        else:
            t.set_amount(expected)
            t.is_suspicious = True
            t.suggested_amount = expected
            report.corrections.append(Correction(i, FORCE_DELTA, parsed, expected))
            report.warnings.append(f"[amount-fix] {_label(t)} {_fmt(parsed)} → {_fmt(expected)}")

        # saldo grande que cae a ~0 con un importe chico: bloque mal segmentado
        big = abs(prev)
        if big >= collapse_floor and abs(t.balance) <= big / 100 and abs(parsed) < big / 2:
            t.is_suspicious = True
            report.warnings.append(
                f"[balance-collapse] {_label(t)} saldo {_fmt(prev)} → {_fmt(t.balance)} con importe {_fmt(parsed)}"
            )

        prev = t.balance

    _check_closing(account, report, closing_tolerance)

    if report.corrections:
        logger.debug("cuenta %s: %s correcciones", account.account_number, len(report.corrections))
    return report


def _check_closing(account: AccountStatement, report: ReconcileReport, tol: Decimal) -> None:
    closing = account.closing_balance
    if closing is None:
        return
    if account.opening_balance is not None:
        computed = account.opening_balance + sum((t.amount for t in account.transactions), Decimal("0"))
    elif account.transactions:
        computed = account.transactions[-1].balance
    else:
        return

    diff = abs(computed - closing)
    if diff > tol:
        report.closing_difference = diff
        report.warnings.append(
            f"[balance-mismatch] {account.account_number or '?'} Diferencia: {_fmt(diff)} "
            f"(calculado: {_fmt(computed)}, esperado: {_fmt(closing)})"
        )


def reconcile_statement(
    result: ParseResult,
    tolerance: Decimal = AMOUNT_TOLERANCE,
    sign_tolerance: Decimal = SIGN_TOLERANCE,
    closing_tolerance: Decimal = CLOSING_TOLERANCE,
    collapse_floor: Decimal = COLLAPSE_FLOOR,
) -> List[ReconcileReport]:
    """Reconcilia cada cuenta por separado y agrega sus warnings al resultado."""
    reports = []
    for account in result.statement.accounts:
        rep = reconcile_account(account, tolerance, sign_tolerance, closing_tolerance, collapse_floor)
        result.warnings.extend(rep.warnings)
        reports.append(rep)
    return reports
