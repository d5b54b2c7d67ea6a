from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Optional, Set, Tuple

from ..dates import DATE_ANY_RE, month_from_name, safe_date
from ..matching import Matcher, Outcome, rx
from ..models import AccountStatement, Transaction
from ..normalize import canonical_chars
from .base import ParserOptions, ParseSession, ProgressCallback
from .bbva_text import (
    AMOUNT_SPACED_RE,
    DDMM_RE,
    ORIGIN_RE,
    amount_value,
    compact,
    is_decor,
    post_process,
    readable_line,
    reflow,
    sanitize_description,
    tidy_for_amounts,
)

logger = logging.getLogger(__name__)

BANK_NAME = "BBVA"

TITLE_KEY = "MOVIMIENTOSENCUENTAS"
HEADER_KEY = "FECHAORIGENCONCEPTODEBITOCREDITOSALDO"
PAGE_PREFIX = "<<PAGE:"

ARS_BALANCE_LIMIT = Decimal("1000000000000")

ACCOUNT_NUMBER_RE = rx(r"(?P<acc>\d{3}-\d{6}/\d)")
CLOSING_COMPACT_RE = rx(r"SALDOAL(?P<dd>\d{1,2})DE(?P<mes>[A-Z]+)")
_PART_SPLIT_RE = rx(r"@@@|\n")
_CONTROL_RE = rx(r"\p{C}+")

OPENING_SEARCH = 10
ACCOUNT_LOOKAHEAD = 12
HEADER_LOOKAHEAD = 20
ACCOUNT_LOOKBACK = 200


@dataclass(frozen=True)
class AccountRef:
    number: str
    currency: str

    @property
    def key(self) -> str:
        return f"{self.number}|{self.currency}"


def account_ref(line: str, m: Matcher) -> Optional[AccountRef]:
    """'CC $ 123-456789/0' (ARS) o 'CC U$S ...' (USD), sobre texto compacto."""
    c = compact(line)
    currency, marker = "ARS", "CC$"
    idx = c.find(marker)
    if idx < 0:
        currency, marker = "USD", "CCU$S"
        idx = c.find(marker)
    if idx < 0:
        return None
    r = m.search(ACCOUNT_NUMBER_RE, c[idx + len(marker) :])
    if not r.ok:
        return None
    return AccountRef(r.group("acc"), currency)


def is_title(line: str) -> bool:
    return TITLE_KEY in compact(line)


def is_header(line: str) -> bool:
    return HEADER_KEY in compact(line)


def is_page(line: str) -> bool:
    return line.startswith(PAGE_PREFIX)


def year_hint(text: str, m: Matcher, today: Optional[datetime.date] = None) -> int:
    """Primer dd/mm/yyyy del documento; si no hay, el año actual."""
    _, found = m.findall(DATE_ANY_RE, text)
    for hit in found:
        if len(hit.group("yy")) == 4:
            return int(hit.group("yy"))
    return (today or datetime.date.today()).year


def _last_amount(line: str, m: Matcher, timeout: float) -> Optional[Decimal]:
    _, amounts = m.findall(AMOUNT_SPACED_RE, tidy_for_amounts(line, timeout))
    if not amounts:
        return None
    return amount_value(amounts[-1].group(0))


@dataclass
class RawRow:
    line: str
    date: datetime.date
    amount: Decimal
    balance: Decimal
    explicit_sign: bool
    description: str


class BbvaParser:
    """
    Resumen de BBVA (texto OCR con delimitador '@@@').

    Cada bloque de movimientos arranca en el título "MOVIMIENTOS EN CUENTAS"
    y/o la cabecera "FECHA ORIGEN CONCEPTO DEBITO CREDITO SALDO", y pertenece
    a la cuenta "CC $ ..." / "CC U$S ..." más cercana. Varios bloques de la
    misma cuenta se acumulan.
    """

    bank_name = BANK_NAME

    def __init__(self, options: Optional[ParserOptions] = None, today: Optional[datetime.date] = None):
        self.options = options or ParserOptions()
        self.today = today

    def parse(self, text: str, progress: Optional[ProgressCallback] = None):
        s = ParseSession(self.bank_name, self.options, progress)
        m = s.matcher

        s.report("start", 0, 3)
        s.dump_raw(text)
        if s.is_empty(text):
            return s.result

        parts = [
            m.sub(_CONTROL_RE, " ", p).strip()
            for p in m.split(_PART_SPLIT_RE, canonical_chars(text))
        ]
        parts = [p for p in parts if p]
        hint = year_hint(text, m, self.today)

        accounts: Dict[str, AccountStatement] = {}
        for p in parts:
            ref = account_ref(p, m)
            if ref is not None and ref.key not in accounts:
                accounts[ref.key] = AccountStatement(account_number=ref.number, currency=ref.currency)

        seen: Dict[str, Set[str]] = {}
        used_headers: Set[int] = set()
        last_ref: Optional[AccountRef] = None
        closing_date: Optional[datetime.date] = None

        for i, ln in enumerate(parts):
            title = is_title(ln)
            header = is_header(ln)
            if not title and not header:
                continue
            if header and not title and i in used_headers:
                continue

            ref, header_idx, ref_idx = self._locate(parts, i, title, last_ref, m)
            if ref is None or header_idx < 0:
                continue
            used_headers.add(header_idx)
            last_ref = ref

            account = accounts.setdefault(
                ref.key, AccountStatement(account_number=ref.number, currency=ref.currency)
            )
            block = self._collect(parts, header_idx, ref_idx, m)
            if not block:
                s.warn(f"[no-anchors] {ref.number} bloque sin filas")
                continue

            block, found_date = self._balances(account, block, hint, m)
            if found_date is not None and (closing_date is None or found_date > closing_date):
                closing_date = found_date

            block_hint = closing_date.year if closing_date else hint
            rows = self._rows(s, block, block_hint, ref.currency)
            if not rows:
                s.warn(f"[no-anchors] {ref.number} no se encontraron filas con fecha")

            keys = seen.setdefault(ref.key, set())
            for row in rows:
                k = f"{row.date.isoformat()}|{row.amount}|{row.balance}|{compact(row.line)}"
                if k in keys:
                    continue
                keys.add(k)
                account.transactions.append(
                    Transaction.create(
                        date=row.date,
                        amount=row.amount,
                        balance=row.balance,
                        description=post_process(row.description, self.options.regex_timeout) or "Movimiento",
                        original_description=readable_line(row.line, self.options.regex_timeout),
                        explicit_sign=row.explicit_sign,
                    )
                )

        s.report("parsed", 2, 3)

        for account in accounts.values():
            if account.closing_balance is None and account.transactions:
                account.closing_balance = account.transactions[-1].balance
        s.statement.accounts.extend(accounts.values())

        result = s.finish()
        st = result.statement
        if closing_date is not None and (st.period_end is None or closing_date > st.period_end):
            st.period_end = closing_date

        if not st.accounts:
            s.warn("No se detectaron cuentas.")
        if result.transaction_count() == 0:
            s.warn("No se detectaron movimientos.")
        if st.period_start is None or st.period_end is None:
            s.warn("No se pudo inferir el periodo (min/max).")

        s.report("done", 3, 3)
        return result

    def _locate(
        self, parts: List[str], i: int, title: bool, last_ref: Optional[AccountRef], m: Matcher
    ) -> Tuple[Optional[AccountRef], int, int]:
        """(cuenta, índice de la cabecera, índice de la línea de cuenta usada)."""
        ref: Optional[AccountRef] = None
        ref_idx = -1
        header_idx = -1
        n = len(parts)

        if title:
            for j in range(i + 1, min(n, i + 1 + ACCOUNT_LOOKAHEAD)):
                ref = account_ref(parts[j], m)
                if ref is not None:
                    ref_idx = j
                    break
                if is_page(parts[j]):
                    break
            if is_header(parts[i]):
                header_idx = i
            for j in range(i + 1, min(n, i + 1 + HEADER_LOOKAHEAD)):
                if header_idx >= 0:
                    break
                if is_header(parts[j]):
                    header_idx = j
                    break
                if is_page(parts[j]):
                    break
            if ref is None:
                ref = last_ref
            if ref is None:
                for j in range(i - 1, max(-1, i - 1 - ACCOUNT_LOOKBACK), -1):
                    ref = account_ref(parts[j], m)
                    if ref is not None or is_header(parts[j]):
                        break
            return ref, header_idx, ref_idx

        header_idx = i
        for j in range(i - 1, max(-1, i - 1 - ACCOUNT_LOOKAHEAD), -1):
            ref = account_ref(parts[j], m)
            if ref is not None:
                return ref, header_idx, j
            if is_title(parts[j]):
                break
        for j in range(i + 1, min(n, i + 1 + ACCOUNT_LOOKAHEAD)):
            ref = account_ref(parts[j], m)
            if ref is not None:
                return ref, header_idx, j
            if is_title(parts[j]) or is_header(parts[j]):
                break
        return last_ref, header_idx, ref_idx

    def _collect(self, parts: List[str], header_idx: int, ref_idx: int, m: Matcher) -> List[str]:
        block: List[str] = []
        skipped_ref = False
        for j in range(header_idx + 1, len(parts)):
            ln = parts[j]
            if is_title(ln) or is_header(ln) or is_page(ln):
                break
            if account_ref(ln, m) is not None:
                if not skipped_ref and j == ref_idx:
                    skipped_ref = True
                    continue
                break
            if is_decor(ln):
                continue
            block.append(ln)
        return block

    def _balances(
        self, account: AccountStatement, block: List[str], hint: int, m: Matcher
    ) -> Tuple[List[str], Optional[datetime.date]]:
        """Saca 'SALDO ANTERIOR' y 'SALDO AL ...' del bloque y los carga en la cuenta."""
        timeout = self.options.regex_timeout
        block = list(block)

        for k in range(min(OPENING_SEARCH, len(block))):
            if "SALDOANTERIOR" not in compact(block[k]):
                continue
            value = _last_amount(block[k], m, timeout)
            if value is not None:
                if account.opening_balance is None:
                    account.opening_balance = value
                del block[k]
                break

        found_date = None
        for k in range(len(block) - 1, -1, -1):
            c = compact(block[k])
            if "SALDOAL" not in c:
                continue
            value = _last_amount(block[k], m, timeout)
            if value is None:
                continue
            account.closing_balance = value
            r = m.search(CLOSING_COMPACT_RE, c)
            if r.ok:
                month = month_from_name(r.group("mes"))
                if month is not None:
                    found_date = safe_date(int(r.group("dd")), month, hint)
            del block[k]
            break

        return block, found_date

    def _rows(self, s: ParseSession, block: List[str], hint: int, currency: str) -> List[RawRow]:
        m = s.matcher
        timeout = self.options.regex_timeout
        limit = self.options.usd_balance_ceiling if currency == "USD" else ARS_BALANCE_LIMIT
        rows: List[RawRow] = []

        for line in reflow(block, m):
            if is_decor(line):
                continue
            outcome, amounts = m.findall(AMOUNT_SPACED_RE, line)
            if outcome is Outcome.TIMEOUT:
                s.warn(f"[timeout] línea omitida: {line[:60]}")
                continue
            if len(amounts) < 2:
                continue
            mov, bal = amounts[-2], amounts[-1]

            _, dates = m.findall(DDMM_RE, line)
            after = [d for d in dates if d.start() >= bal.end()]
            before = [d for d in dates if d.end() <= mov.start()]
            if after:
                date_m = after[0]
                tail = line[date_m.end():]
            elif before:
                date_m = before[0]
                tail = line[date_m.end() : mov.start()]
            else:
                continue

            amount = amount_value(mov.group(0))
            balance = amount_value(bal.group(0))
            if amount is None or balance is None:
                continue
            when = self._date(date_m, hint)
            if when is None:
                continue
            if abs(balance) > limit or abs(amount) > self.options.amount_ceiling:
                s.warn(
                    f"[skip-outlier] {when:%d/%m/%y} amount={amount:,.2f} balance={balance:,.2f} - montos excesivos"
                )
                continue

            origin = m.match(ORIGIN_RE, tail)
            if origin.ok:
                tail = tail[origin.end():]

            rows.append(
                RawRow(
                    line=line,
                    date=when,
                    amount=amount,
                    balance=balance,
                    explicit_sign="-" in mov.group(0),
                    description=sanitize_description(tail),
                )
            )
        logger.debug("bbva: %s filas en bloque de %s líneas", len(rows), len(block))
        return rows

    @staticmethod
    def _date(hit, hint: int) -> Optional[datetime.date]:
        dd = int("".join(hit.group("dd").split()))
        mm = int("".join(hit.group("mm").split()))
        yy = hit.group("yy")
        return safe_date(dd, mm, int(yy) if yy else hint)
