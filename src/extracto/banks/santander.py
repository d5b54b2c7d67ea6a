from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional, Tuple

from ..dates import parse_ddmmyy
from ..description import tight
from ..matching import Matcher, rx
from ..models import AccountStatement, Transaction
from ..money import MoneyToken, find_money_tokens, try_parse_money
from ..normalize import normalize_line
from ..segment import Block, segment_blocks
from .base import ParserOptions, ParseSession, ProgressCallback, split_lines

logger = logging.getLogger(__name__)

BANK_NAME = "Banco Santander"

PERIOD_FROM_RE = rx(r"Desde:\s*([0-3]?\d/[01]?\d/\d{2,4})")
PERIOD_TO_RE = rx(r"Hasta:\s*([0-3]?\d/[01]?\d/\d{2,4})")

ACCOUNT_ARS_RE = rx(r"(?i)Cuenta\s+Corriente\s+N[º°]\s*([0-9]{3}-[0-9]{6}/[0-9])")
ACCOUNT_USD_RE = rx(r"(?i)Cuenta\s+Corriente\s+especial\s*U\$S\s+N[º°]\s*([0-9]{3}-[0-9]{6}/[0-9])")

PESOS_MARK_RE = rx(r"(?i)Movimientos\s+en\s+pesos")
DOLLARS_MARK_RE = rx(r"(?i)Movimientos\s+en\s+d[oó]lares")
TAX_DETAIL_RE = rx(r"(?i)Detalle\s+impositivo")
NO_MOVEMENTS_RE = rx(r"(?i)No\s+ten[eé]s\s+movimientos")

OPENING_RE = rx(
    r"(?i)Saldo\s+Inicial\s+(?:(?P<sign>[+\-])\s*)?(?:U\$S|\$)?\s*(?:(?P<sign2>[+\-])\s*)?"
    r"(?P<num>\d{1,3}(?:\.\d{3})*,\d{2})"
)
CLOSING_PESOS_RE = rx(r"(?i)^\s*Saldo\s+total\s+\$?\s*([-]?\$?\s*[0-9.\s]+,[0-9]{2})\s*$")
CLOSING_CURRENCY_RE = rx(
    r"(?i)^\s*Saldo\s+total\s+(?P<cur>U\$S|\$)\s*(?P<amt>[-+]?\s*[0-9.\s]+,[0-9]{2})\s*$"
)

TERMINATOR_RE = rx(r"(?i)^\s*Saldo\s+total\b")
NOISE_RE = rx(
    r"(?i)^\s*<<PAGE:\s*\d+\s*>>>\s*$|^\s*Cuenta\s+Corriente\s+N[º°]|"
    r"^\s*Fecha\s+Comprobante\b|Saldo\s+en\s+cuenta\s*$"
)

# "-$ 1.500,00" / "$ -1.500,00" / "+ U$S 10,00" -> "$ -1.500,00" / "U$S 10,00"
_SIGN_CURRENCY_RE = rx(
    r"(?<![\p{L}\p{Nd}])(?:(?P<s1>[-+])\s*(?P<c1>U\$S|\$)|(?P<c2>U\$S|\$)\s*(?P<s2>[-+]))\s*(?=\d)"
)
_PLUS_RE = rx(r"(?<![\p{L}\p{Nd}])\+\s*(?=\d)")
_CURRENCY_TAIL_RE = rx(r"\s*(?:U\$S|\$)\s*$")


def _sign_currency(g) -> str:
    cur = g.group("c1") or g.group("c2")
    sign = g.group("s1") or g.group("s2")
    return f"{cur} -" if sign == "-" else f"{cur} "


def tidy_money(line: str, m: Matcher) -> str:
    """Deja el signo pegado al número para que el token estricto lo vea."""
    t = m.sub(_SIGN_CURRENCY_RE, _sign_currency, line)
    return m.sub(_PLUS_RE, "", t)


@dataclass
class Row:
    date: datetime.date
    parts: List[str] = field(default_factory=list)
    tokens: List[MoneyToken] = field(default_factory=list)

    @property
    def description(self) -> str:
        return " ".join(p for p in self.parts if p).strip()


def _index_of(lines: List[str], pattern, m: Matcher, start: int = 0) -> int:
    for i in range(max(0, start), len(lines)):
        if m.search(pattern, lines[i]).ok:
            return i
    return -1


def _first_group(lines: List[str], pattern, m: Matcher) -> Optional[str]:
    for ln in lines:
        r = m.search(pattern, ln)
        if r.ok:
            return r.group(1).strip()
    return None


def _explicit_date(lines: List[str], pattern, m: Matcher) -> Optional[datetime.date]:
    raw = _first_group(lines, pattern, m)
    if raw is None:
        return None
    d, mo, y = raw.split("/")
    return parse_ddmmyy(f"{int(d):02d}/{int(mo):02d}/{y}")


def opening_balance(lines: List[str], m: Matcher) -> Optional[Decimal]:
    for ln in lines:
        r = m.search(OPENING_RE, ln)
        if r.ok:
            sign = r.group("sign") or r.group("sign2") or ""
            return try_parse_money(f"{sign}{r.group('num')}")
    return None


def closing_balance(lines: List[str], m: Matcher, usd: bool = False) -> Optional[Decimal]:
    # el último "Saldo total" de la sección
    for ln in reversed(lines):
        if usd:
            r = m.search(CLOSING_CURRENCY_RE, ln)
            if r.ok and r.group("cur").upper().startswith("U$S"):
                return try_parse_money(r.group("amt"))
        else:
            r = m.search(CLOSING_PESOS_RE, ln)
            if r.ok:
                return try_parse_money(r.group(1))
    return None


def day_rows(block: Block, m: Matcher) -> Tuple[List[Row], int]:
    """
    Un bloque de Santander es un día: varias filas "desc importe saldo"
    comparten la fecha. Cada par de montos cierra una fila; el texto entre
    pares es la descripción. Devuelve (filas, montos sueltos al final).
    """
    rows: List[Row] = []
    cur = Row(block.date)
    for ln in block.lines:
        if not ln:
            continue
        _, tokens = find_money_tokens(ln, m)
        pos = 0
        for tok in tokens:
            cur.parts.append(m.sub(_CURRENCY_TAIL_RE, "", ln[pos : tok.start]).strip())
            cur.tokens.append(tok)
            pos = tok.end
            if len(cur.tokens) == 2:
                rows.append(cur)
                cur = Row(block.date)
        cur.parts.append(ln[pos:].strip())
    return rows, len(cur.tokens)


class SantanderParser:
    """
    Resumen de Santander: cuenta en pesos y, si existe, la cuenta especial
    en dólares. Las filas de un mismo día vienen agrupadas bajo una fecha.
    """

    bank_name = BANK_NAME

    def __init__(self, options: Optional[ParserOptions] = None):
        self.options = options or ParserOptions()

    def parse(self, text: str, progress: Optional[ProgressCallback] = None):
        s = ParseSession(self.bank_name, self.options, progress)
        m = s.matcher

        s.report("start", 0, 3)
        s.dump_raw(text)
        if s.is_empty(text):
            return s.result

        timeout = self.options.regex_timeout
        lines = [tidy_money(normalize_line(ln, timeout), m) for ln in split_lines(text)]
        lines = [ln for ln in lines if ln]

        s.statement.period_start = _explicit_date(lines, PERIOD_FROM_RE, m)
        s.statement.period_end = _explicit_date(lines, PERIOD_TO_RE, m)

        number = _first_group(lines, ACCOUNT_ARS_RE, m)
        if number is None:
            s.warn("[santander] cuenta (pesos) no encontrada")
        ars = AccountStatement(account_number=number or "", currency="ARS")
        s.statement.accounts.append(ars)

        idx_pesos = _index_of(lines, PESOS_MARK_RE, m)
        idx_usd = _index_of(lines, DOLLARS_MARK_RE, m, idx_pesos + 1)
        if idx_pesos < 0:
            s.warn("[santander] sección 'Movimientos en pesos' no encontrada")
        else:
            end = len(lines)
            idx_tax = _index_of(lines, TAX_DETAIL_RE, m, idx_pesos + 1)
            for cut in (idx_usd, idx_tax):
                if cut >= 0:
                    end = min(end, cut)
            self._fill(s, ars, lines[idx_pesos + 1 : end], usd=False)

        s.report("parsed", 2, 3)

        if idx_usd >= 0:
            usd_lines = lines[idx_usd + 1 :]
            idx_tax = _index_of(usd_lines, TAX_DETAIL_RE, m)
            if idx_tax >= 0:
                usd_lines = usd_lines[:idx_tax]
            usd_number = _first_group(usd_lines, ACCOUNT_USD_RE, m) or _first_group(lines, ACCOUNT_USD_RE, m)
            usd = AccountStatement(account_number=usd_number or "", currency="USD")
            s.statement.accounts.append(usd)
            if any(m.test(NO_MOVEMENTS_RE, ln) for ln in usd_lines):
                usd.opening_balance = opening_balance(usd_lines, m)
                usd.closing_balance = closing_balance(usd_lines, m, usd=True)
            else:
                self._fill(s, usd, usd_lines, usd=True)

        result = s.finish()
        s.report("done", 3, 3)
        return result

    def _fill(self, s: ParseSession, account: AccountStatement, lines: List[str], usd: bool) -> None:
        m = s.matcher
        account.opening_balance = opening_balance(lines, m)
        account.closing_balance = closing_balance(lines, m, usd=usd)

        seg = segment_blocks(
            [self._drop_opening(ln, m) for ln in lines],
            m,
            terminator_re=TERMINATOR_RE,
            noise_re=NOISE_RE,
            queue_limit_factor=self.options.queue_limit_factor,
            label=account.account_number,
        )
        s.warnings.extend(seg.warnings)

        ceiling = self.options.usd_balance_ceiling if usd else self.options.amount_ceiling
        for block in seg.blocks:
            rows, leftover = day_rows(block, m)
            if leftover:
                s.warn(f"[skip] {block.date:%d/%m/%y} - insuficientes montos: {leftover}")
            for row in rows:
                tx = self._to_transaction(s, row, ceiling)
                if tx is not None:
                    account.transactions.append(tx)

    def _drop_opening(self, line: str, m: Matcher) -> str:
        # "30/06/24 Saldo Inicial $ 100,00" conserva solo la fecha del día
        r = m.search(OPENING_RE, line)
        return line[: r.start()].strip() if r.ok else line

    def _to_transaction(self, s: ParseSession, row: Row, ceiling: Decimal) -> Optional[Transaction]:
        amount_tok, balance_tok = row.tokens
        amount, balance = amount_tok.value, balance_tok.value
        if abs(amount) > self.options.amount_ceiling or abs(balance) > ceiling:
            s.warn(
                f"[skip-outlier] {row.date:%d/%m/%y} amount={amount:,.2f} balance={balance:,.2f} - montos excesivos"
            )
            return None
        desc = tight(row.description, self.options.regex_timeout)
        return Transaction.create(
            date=row.date,
            amount=amount,
            balance=balance,
            description=desc or "Movimiento",
            original_description=f"{desc}  {amount_tok.text} {balance_tok.text}".strip(),
            explicit_sign=amount_tok.signed,
        )
