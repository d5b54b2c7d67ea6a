from __future__ import annotations

import logging
from decimal import Decimal
from typing import List, Optional, Tuple

from ..description import build_line_description, canonicalize, compile_canon, strip_trailing_codes
from ..matching import Matcher, rx
from ..models import AccountStatement, Transaction
from ..money import find_money_tokens
from ..normalize import normalize_line
from ..parse import ParsedBlock, parse_block
from ..segment import Block, find_region, segment_blocks
from .base import ParserOptions, ParseSession, ProgressCallback, split_lines

logger = logging.getLogger(__name__)

BANK_NAME = "Banco Galicia"
NO_ACCOUNT = "Cuenta no detectada"

ACCOUNT_RE = rx(r"(?i)N[°º]?\s*(\d{7}-\d)\s*(\d{3}-\d)")
ACCOUNT_SIMPLE_RE = rx(r"(\d{7}-\d)\s*(\d{3}-\d)")
SALDOS_RE = rx(r"(?i)\bSaldos\b")
MOVS_START_RE = rx(r"(?i)^\s*Movimientos\s*$")
TOTAL_RE = rx(r"(?i)^\s*Total\s*\$")

# cierran un bloque sin abrir otro
TERMINATOR_RE = rx(
    r"(?i)^\s*(?:Total\b|Resumen de Cuenta|Fecha\s+Descripci[oó]n|Saldos\b|Consolidado\b)"
)

CANON = compile_canon(
    [
        (r"\bTRANSFERENCIA\s+DE\s+CUENTA\s*PROPIA\b", "TRANSFERENCIA ENTRE CUENTAS PROPIAS"),
        (r"\bSERVICIO\s+ACREDITAMIENTO\s+DE\s*HABERES\b", "ACREDITACION HABERES"),
        (r"\bIMP\.\s*DEB\.\s*LEY\s*25413\s*GRAL\.", "IMPUESTO DEBITOS LEY 25413"),
        (r"\bCOMISION\s+SERVICIO\s+DE\s+CUENTA\b", "COMISION MANTENIMIENTO CUENTA"),
        (r"\bPERCEP\.\s*IVA\b", "PERCEPCION IVA"),
        (r"\bINTERESES\s+SOBRE\s+SALDOS\s*DEUDORES\b", "INTERESES SOBREGIRO"),
        (r"\bIMPUESTO\s+DE\s+SELLOS\b", "IMPUESTO SELLOS"),
        (r"\bPAGO\s+VISA\s+EMPRESA\b", "PAGO TARJETA VISA"),
        (r"\bPAGO\s+TARJETA\s*VISA\b", "PAGO TARJETA VISA"),
        (r"\bTRANSFERENCIAS\s+CASH\s*PROVEEDORES\b", "TRANSFERENCIA PROVEEDORES"),
        (r"\bING\.\s*BRUTOS\s+S/\s*CRED\b", "INGRESOS BRUTOS CREDITO"),
        (r"\bIMP\.\s*CRE\.\s*LEY\s*25413\b", "IMPUESTO CREDITOS LEY 25413"),
        (r"\bDEB\.\s*AUTOM\.\s*DE\s*SERV\.", "DEBITO AUTOMATICO"),
        (r"\bSUSCRIPCION\s+FIMA\b", "SUSCRIPCION FONDO"),
        (r"\bRESCATE\s+FIMA\b", "RESCATE FONDO"),
        (r"\bTRF\s+INMED\s+PROVEED\b", "TRANSFERENCIA INMEDIATA PROVEEDOR"),
    ]
)


class GaliciaParser:
    """
    Resumen de Cuenta Corriente de Galicia: una sola cuenta en pesos.

    La página 1 llega completa (cuenta, saldos); el resto solo trae filas
    de la tabla de movimientos (ver layout.galicia_filter).
    """

    bank_name = BANK_NAME

    def __init__(self, options: Optional[ParserOptions] = None):
        self.options = options or ParserOptions()

    def parse(self, text: str, progress: Optional[ProgressCallback] = None):
        s = ParseSession(self.bank_name, self.options, progress)
        m = s.matcher

        s.report("Normalizando texto", 1, 6)
        s.dump_raw(text)
        if s.is_empty(text):
            return s.result
        lines = [normalize_line(ln, self.options.regex_timeout) for ln in split_lines(text)]

        s.report("Detectando cuenta", 2, 6)
        account = AccountStatement(account_number=_account_number(lines, m) or NO_ACCOUNT)
        s.statement.accounts.append(account)

        s.report("Extrayendo saldos", 3, 6)
        account.opening_balance, account.closing_balance = _balances(lines, m)

        s.report("Extrayendo movimientos", 4, 6)
        region = find_region(lines, MOVS_START_RE, (TOTAL_RE,), m)
        movs = lines[region[0] : region[1]] if region else lines
        if region is None:
            s.diag("sin marcador 'Movimientos': se escanea todo el texto")

        seg = segment_blocks(
            movs,
            m,
            terminator_re=TERMINATOR_RE,
            queue_limit_factor=self.options.queue_limit_factor,
            label=account.account_number,
        )
        s.warnings.extend(seg.warnings)

        for block in seg.blocks:
            parsed, warning = parse_block(block, m, self.options.amount_ceiling)
            if warning:
                s.warn(warning)
                continue
            account.transactions.append(self._to_transaction(block, parsed))

        s.report("Validando consistencia", 5, 6)
        result = s.finish()
        s.diag(f"opening={account.opening_balance} closing={account.closing_balance}")

        s.report("Finalizando", 6, 6)
        return result

    def _to_transaction(self, block: Block, parsed: ParsedBlock) -> Transaction:
        timeout = self.options.regex_timeout
        head = parsed.description_parts[0] if parsed.description_parts else ""
        title = strip_trailing_codes(canonicalize(head, CANON, timeout), timeout)
        description = build_line_description(title, block.lines[1:], timeout, canon=CANON)
        return Transaction.create(
            date=parsed.date,
            amount=parsed.amount,
            balance=parsed.balance,
            description=description or "Movimiento",
            original_description=parsed.raw_text,
            explicit_sign=parsed.explicit_sign,
        )


def _account_number(lines: List[str], m: Matcher) -> Optional[str]:
    text = "\n".join(lines)
    for pattern in (ACCOUNT_RE, ACCOUNT_SIMPLE_RE):
        r = m.search(pattern, text)
        if r.ok:
            return f"{r.group(1)} {r.group(2)}"
    return None


def _balances(lines: List[str], m: Matcher) -> Tuple[Optional[Decimal], Optional[Decimal]]:
    """
    Primer encabezado 'Saldos' antes de 'Movimientos': primer monto = saldo
    inicial, segundo = saldo final. Si la línea del encabezado no trae montos,
    se leen de la línea siguiente.
    """
    for i, ln in enumerate(lines):
        if m.test(MOVS_START_RE, ln):
            break
        r = m.search(SALDOS_RE, ln)
        if not r.ok:
            continue
        _, tokens = find_money_tokens(ln[r.end():], m)
        if not tokens:
            nxt = next((x for x in lines[i + 1 :] if x.strip()), "")
            if not m.test(MOVS_START_RE, nxt):
                _, tokens = find_money_tokens(nxt, m)
        if len(tokens) >= 2:
            return tokens[0].value, tokens[1].value
        return None, None
    return None, None
