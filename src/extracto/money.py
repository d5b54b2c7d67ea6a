"""
Montos en formato latinoamericano: miles con '.', decimales con ',' y
exactamente dos dígitos. El signo puede venir adelante ("-1.500,00") o
atrás ("1.500,00-").
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import List, Optional, Tuple

import regex

from .matching import Matcher, Outcome, rx

# Token ESTRICTO: no puede estar pegado a letras/dígitos a ninguno de los lados
STRICT_MONEY_RE = rx(
    r"(?<![\p{L}\p{Nd}.,])(?P<lead>-)?(?P<num>(?:\d{1,3}(?:\.\d{3})+|\d{1,9}),\d{2})(?P<trail>-)?(?![\p{L}\p{Nd}]|,\d)"
)

_NUMBER_RE = regex.compile(r"(?:\d{1,3}(?:\.\d{3})*|\d+),\d{2}")

CENT = Decimal("0.01")


@dataclass(frozen=True)
class MoneyToken:
    text: str
    value: Decimal
    leading_minus: bool
    trailing_minus: bool
    start: int
    end: int

    @property
    def signed(self) -> bool:
        return self.leading_minus or self.trailing_minus


def parse_money(raw: str) -> Decimal:
    """
    "1.500,00" -> 1500.00 | "-333,41" -> -333.41 | "99,00-" -> -99.00
    Acepta "$", "U$S", "+" y espacios internos. ValueError si no es un monto.
    """
    s = (raw or "").strip()
    s = s.replace("U$S", "").replace("$", "").replace(" ", "").replace(" ", "")
    negative = s.startswith("-") or s.endswith("-")
    s = s.strip("+-")
    if not _NUMBER_RE.fullmatch(s):
        raise ValueError(f"Monto inválido: {raw!r}")
    try:
        value = Decimal(s.replace(".", "").replace(",", "."))
    except InvalidOperation as exc:
        raise ValueError(f"Monto inválido: {raw!r}") from exc
    return -value if negative else value


def try_parse_money(raw: str) -> Optional[Decimal]:
    try:
        return parse_money(raw)
    except ValueError:
        return None


def token_from_match(m) -> MoneyToken:
    lead = bool(m.group("lead"))
    trail = bool(m.group("trail"))
    value = parse_money(m.group("num"))
    if lead or trail:
        value = -value
    return MoneyToken(
        text=m.group(0),
        value=value,
        leading_minus=lead,
        trailing_minus=trail,
        start=m.start(),
        end=m.end(),
    )


def find_money_tokens(text: str, matcher: Matcher) -> Tuple[Outcome, List[MoneyToken]]:
    """Todos los montos estrictos de `text`, en orden de aparición."""
    outcome, found = matcher.findall(STRICT_MONEY_RE, text or "")
    return outcome, [token_from_match(m) for m in found]


def cents(value: Decimal) -> Decimal:
    return value.quantize(CENT)
