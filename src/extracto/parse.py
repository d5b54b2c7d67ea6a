from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional, Tuple

from .description import dedup_segments
from .matching import Matcher, Outcome
from .money import MoneyToken, find_money_tokens
from .segment import Block


@dataclass
class ParsedBlock:
    date: datetime.date
    amount: Decimal
    balance: Decimal
    explicit_sign: bool
    description_parts: List[str] = field(default_factory=list)
    raw_text: str = ""


def _line_tokens(
    line: str, matcher: Matcher, right_window: Optional[int]
) -> Tuple[Outcome, List[MoneyToken], str]:
    """Montos de una línea y el texto previo al primer monto."""
    offset = 0
    scan = line
    if right_window and len(line) > right_window:
        offset = len(line) - right_window
        scan = line[offset:]
    outcome, tokens = find_money_tokens(scan, matcher)
    if not tokens:
        return outcome, tokens, line.strip()
    prefix = line[: offset + tokens[0].start].strip()
    return outcome, tokens, prefix


def parse_block(
    block: Block,
    matcher: Matcher,
    amount_ceiling: Decimal,
    balance_ceiling: Optional[Decimal] = None,
    right_window: Optional[int] = None,
) -> Tuple[Optional[ParsedBlock], Optional[str]]:
    """
    Bloque -> (ParsedBlock, None) o (None, warning).

    - último monto del bloque = saldo, anteúltimo = importe
    - '-' adelante o atrás del importe => débito
    - '-' en el saldo => saldo negativo
    - descripción = texto antes del primer monto de cada línea
    """
    when = block.date.strftime("%d/%m/%y")
    tokens: List[MoneyToken] = []
    parts: List[str] = []

    for ln in block.lines:
        if not ln:
            continue
        outcome, found, prefix = _line_tokens(ln, matcher, right_window)
        if outcome is Outcome.TIMEOUT:
            return None, f"[timeout] {when} bloque omitido (montos)"
        tokens.extend(found)
        if prefix:
            parts.append(prefix)

    if len(tokens) < 2:
        return None, f"[skip] {when} - insuficientes montos: {len(tokens)}"

    amount_tok, balance_tok = tokens[-2], tokens[-1]
    amount, balance = amount_tok.value, balance_tok.value

    ceiling_bal = balance_ceiling if balance_ceiling is not None else amount_ceiling
    if abs(amount) > amount_ceiling or abs(balance) > ceiling_bal:
        return None, f"[skip-outlier] {when} amount={amount:,.2f} balance={balance:,.2f} - montos excesivos"

    return (
        ParsedBlock(
            date=block.date,
            amount=amount,
            balance=balance,
            explicit_sign=amount_tok.signed,
            description_parts=list(dedup_segments(parts)),
            raw_text=f"{block.date_text} {block.text}".strip(),
        ),
        None,
    )
