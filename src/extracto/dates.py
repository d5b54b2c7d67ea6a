from __future__ import annotations

import datetime
from typing import Optional

from .matching import rx

# dd/mm/yy o dd/mm/yyyy al inicio de la línea
DATE_AT_START_RE = rx(r"^\s*(?P<date>\d{2}/\d{2}/(?:\d{4}|\d{2}))(?!\d)")

# dd/mm/yy(yy) en cualquier lugar
DATE_ANY_RE = rx(r"(?<!\d)(?P<dd>\d{2})/(?P<mm>\d{2})/(?P<yy>\d{4}|\d{2})(?!\d)")

MONTHS_ES = {
    "ENERO": 1,
    "FEBRERO": 2,
    "MARZO": 3,
    "ABRIL": 4,
    "MAYO": 5,
    "JUNIO": 6,
    "JULIO": 7,
    "AGOSTO": 8,
    "SEPTIEMBRE": 9,
    "SETIEMBRE": 9,
    "OCTUBRE": 10,
    "NOVIEMBRE": 11,
    "DICIEMBRE": 12,
}


def expand_year(yy: int) -> int:
    if yy >= 100:
        return yy
    return 1900 + yy if yy >= 70 else 2000 + yy


def safe_date(d: int, m: int, y: int) -> Optional[datetime.date]:
    try:
        return datetime.date(expand_year(y), m, d)
    except ValueError:
        return None


def parse_ddmmyy(text: str) -> Optional[datetime.date]:
    """
    "15/01/24" y "15/01/2024" -> date(2024, 1, 15). También acepta "-".
    Devuelve None si no es una fecha válida (p.ej. 31/02/24).
    """
    parts = (text or "").strip().replace("-", "/").split("/")
    if len(parts) != 3 or not all(p.isdigit() for p in parts):
        return None
    dd, mm, yy = (int(p) for p in parts)
    return safe_date(dd, mm, yy)


def month_from_name(name: str) -> Optional[int]:
    return MONTHS_ES.get((name or "").strip().upper())
