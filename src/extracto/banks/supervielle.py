from __future__ import annotations

import logging
from decimal import Decimal
from typing import List, Optional, Tuple

from ..dates import DATE_AT_START_RE
from ..description import canonicalize, compile_canon, dedup_segments
from ..matching import Matcher, rx
from ..models import AccountStatement, Transaction
from ..money import find_money_tokens
from ..normalize import normalize_text
from ..parse import parse_block
from ..segment import find_region, segment_blocks
from .base import ParserOptions, ParseSession, ProgressCallback, split_lines

logger = logging.getLogger(__name__)

BANK_NAME = "Banco Supervielle"

RIGHT_WINDOW = 160
MIN_MONEY_ROWS = 4
LEDGER_TOLERANCE = Decimal("0.01")

_ACCOUNT_BREAK_RE = rx(r"(?i)(NUMERO\s+DE\s+CUENTA)")
_DETAIL_BREAK_RE = rx(r"(?i)(Detalle\s+de\s+Movimientos)")

ACCOUNT_HEADER_RE = rx(r"(?i)NUMERO\s+DE\s+CUENTA\s+([0-9\-/]+)")
MOVS_START_RE = rx(r"(?i)^\s*Detalle\s+de\s+Movimientos\s*$")
OPENING_RE = rx(r"(?i)Saldo\s+del\s+per[ií]odo\s+anterior")
CLOSING_RE = rx(r"(?i)SALDO\s+PER[IÍ]ODO\s+ACTUAL")

HEADER_RE = rx(
    r"(?i)^(?:Detalle\s+de\s+Movimientos\b|Saldo del per[ií]odo anterior\b|SALDO PER[IÍ]ODO ACTUAL\b|"
    r"INFORMACION SOBRE EL SALDO DE SUS CUENTAS\b|TARJETA VISA\b|Acuerdos\b|Servicio\b|"
    r"Los dep[oó]sitos\b|PARA CONSUMIDOR\b|IMPORTANTE:|Canales de atenci[oó]n\b)"
)

CANON = compile_canon(
    [
        (r"\bCRED\s+BCA\s+ELECTR\s+INTERBANC\s+EXEN\b", "CREDITO INTERBANCARIO"),
        (r"\bCREDITO\s+INTERBANCARIO\b", "CREDITO INTERBANCARIO"),
        (r"\bD[ée]bitos?\s+varios\b", "DEBITOS VARIOS"),
        (r"\bD[ée]bito\s+por\s+Pago\s+Sueldos\b", "PAGO SUELDOS"),
        (r"\bImpuesto\s+D[ée]bitos?\s+y\s+Cr[ée]ditos?/DB\b", "IMPUESTO DEBITOS Y CREDITOS (DB)"),
        (r"\bDB\.?\.?Autom-?Leasing\s+Seguros\b", "DEBITO AUTOMATICO LEASING SEGUROS"),
        (r"\bDB\.?\.?Autom-?Leasing\s+Canon\b", "DEBITO AUTOMATICO LEASING CANON"),
        (r"\bEmbargo\s+Judicial\b", "EMBARGO JUDICIAL"),
        (r"\bCobranzas\s+ResumenVisa\b", "COBRANZAS VISA"),
        (r"\bTrf\.\s+Masivas\s+PagoProveedores\b", "TRANSFERENCIA MASIVA PROVEEDORES"),
    ]
)


def _preprocess(text: str, m: Matcher) -> str:
    # cada "NUMERO DE CUENTA" y cada "Detalle de Movimientos" en su propia línea
    t = text.replace("\f", "\n")
    t = m.sub(_ACCOUNT_BREAK_RE, lambda g: "\n" + g.group(1) + " ", t)
    t = m.sub(_DETAIL_BREAK_RE, lambda g: "\n" + g.group(1) + "\n", t)
    return t.strip()


def split_by_accounts(text: str, m: Matcher) -> List[Tuple[str, str]]:
    """[(número de cuenta, porción del texto)]; sin marcador => [("", texto)]."""
    _, found = m.findall(ACCOUNT_HEADER_RE, text)
    if not found:
        return [("", text)]
    out = []
    for i, hit in enumerate(found):
        end = found[i + 1].start() if i + 1 < len(found) else len(text)
        out.append((hit.group(1).strip(), text[hit.start() : end]))
    return out


def _money_rows(lines: List[str], m: Matcher, enough: int) -> int:
    n = 0
    for ln in lines:
        _, tokens = find_money_tokens(ln, m)
        if len(tokens) >= 2:
            n += 1
            if n >= enough:
                break
    return n


def _labelled_amount(lines: List[str], pattern, m: Matcher) -> Optional[Decimal]:
    for ln in lines:
        r = m.search(pattern, ln)
        if not r.ok:
            continue
        _, tokens = find_money_tokens(ln[r.end():], m)
        if tokens:
            return tokens[-1].value
    return None


def ledger_mismatches(account: AccountStatement, tol: Decimal = LEDGER_TOLERANCE) -> int:
    """Filas donde saldo(i-1) + importe(i) no da saldo(i)."""
    txs = account.transactions
    return sum(
        1 for prev, cur in zip(txs, txs[1:]) if abs(prev.balance + cur.amount - cur.balance) > tol
    )


class SupervielleParser:
    """
    Resumen de Supervielle: varias cuentas, cada una abre con
    "NUMERO DE CUENTA <n>" y su tabla "Detalle de Movimientos".
    """

    bank_name = BANK_NAME

    def __init__(self, options: Optional[ParserOptions] = None):
        self.options = options or ParserOptions()

    def parse(self, text: str, progress: Optional[ProgressCallback] = None):
        s = ParseSession(self.bank_name, self.options, progress)
        m = s.matcher
        timeout = self.options.regex_timeout

        s.report("Normalizando", 1, 6)
        s.dump_raw(text)
        if s.is_empty(text):
            return s.result

        s.report("Preprocesando", 2, 6)
        full = normalize_text(_preprocess(text, m), timeout)

        s.report("Detectando cuentas", 3, 6)
        slices = split_by_accounts(full, m)

        s.report("Parseando movimientos", 4, 6)
        for idx, (number, section) in enumerate(slices, start=1):
            s.report(f"Cuenta {idx}/{len(slices)}", idx, len(slices))
            account = self._parse_account(s, number, split_lines(section))
            if account.transactions:
                s.statement.accounts.append(account)
            else:
                logger.debug("cuenta %r sin movimientos: se descarta", number)

        s.report("Armando cabecera", 5, 6)
        bad = sum(ledger_mismatches(a) for a in s.statement.accounts)
        if bad:
            s.warn(f"[ledger] {bad} filas con saldo no consistente (tol. 0,01).")

        result = s.finish()
        s.report("Listo", 6, 6)
        return result

    def _parse_account(self, s: ParseSession, number: str, lines: List[str]) -> AccountStatement:
        m = s.matcher
        timeout = self.options.regex_timeout
        account = AccountStatement(account_number=number)
        account.opening_balance = _labelled_amount(lines, OPENING_RE, m)
        account.closing_balance = _labelled_amount(lines, CLOSING_RE, m)

        region = find_region(lines, MOVS_START_RE, (), m)
        movs = lines
        if region is not None:
            candidate = lines[region[0] : region[1]]
            if _money_rows(candidate, m, MIN_MONEY_ROWS) >= MIN_MONEY_ROWS:
                movs = candidate

        anchors = sum(1 for ln in movs if m.match(DATE_AT_START_RE, ln).ok)
        s.warn(f"[precheck] {number} anclas_fecha={anchors}")

        seg = segment_blocks(
            movs,
            m,
            terminator_re=HEADER_RE,
            queue_limit_factor=self.options.queue_limit_factor,
            label=number,
        )
        s.warnings.extend(seg.warnings)

        for block in seg.blocks:
            parsed, warning = parse_block(
                block, m, self.options.amount_ceiling, right_window=RIGHT_WINDOW
            )
            if warning:
                s.warn(warning)
                continue
            original = " | ".join(dedup_segments(parsed.description_parts))
            account.transactions.append(
                Transaction.create(
                    date=parsed.date,
                    amount=parsed.amount,
                    balance=parsed.balance,
                    description=canonicalize(original, CANON, timeout),
                    original_description=original,
                    explicit_sign=parsed.explicit_sign,
                )
            )
        return account
