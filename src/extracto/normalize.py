from __future__ import annotations

import unicodedata
from typing import Callable, List

from .matching import DEFAULT_TIMEOUT, rx, safe_sub

_SPACES = "           "
_DASHES = "‐‑‒–—―−﹣－"

_SPACE_TABLE = {ord(c): " " for c in _SPACES}
_DASH_TABLE = {ord(c): "-" for c in _DASHES}

_HSPACE_RE = rx(r"[ \t\v]+")

# fechas rotas: "1 5/01/24", "15 / 01 / 2024", "15/0 1/24"
_DATE_SPLIT_DAY_RE = rx(r"(?<!\d)(\d)\s+(\d)\s*/\s*(\d{2})\s*/\s*(\d{2,4})(?!\d)")
_DATE_SPLIT_MONTH_RE = rx(r"(?<!\d)(\d{2})\s*/\s*(\d)\s+(\d)\s*/\s*(\d{2,4})(?!\d)")
_DATE_SPACED_RE = rx(r"(?<!\d)(\d{2})\s*/\s*(\d{2})\s*/\s*(\d{4}|\d{2})(?!\d)")
_DATE_GLUED_RE = rx(r"(?<=(?<!\d)\d{2}/\d{2}/(?:\d{4}|\d{2}))(?=\p{L})")

# signo separado del número: "- 333,41" -> "-333,41" (solo si sigue un monto)
_LEAD_MINUS_RE = rx(r"(?<![\p{L}\p{Nd}])-\s+(?=\d[\d.\s]*,\s*\d\s?\d(?!\d))")
# "1.500,99 -" -> "1.500,99-"  (el guion no puede estar antes de otro número)
_TRAIL_MINUS_RE = rx(r"(?<=\d,\d{2})\s+-(?=$|\s+(?!-?\d))")

# Reparación conservadora de montos: solo ventanas con forma de monto
# (grupos de dígitos junto a '.' o ',' y terminando en ',dd')
_THOUSANDS_GAP_RE = rx(r"(?<=\d)\s*\.\s*(?=\d{3}(?:\s*\.\s*\d{3})*\s*,\s*\d\s?\d(?![\p{Nd}]))")
_DECIMAL_GAP_RE = rx(r"(?<=\d)\s*,\s*(?=\d\s?\d(?![\p{Nd}.,/]))")
_CENTS_GAP_RE = rx(r"(?<=\d),(\d)\s(\d)(?![\p{Nd}.,/])")

_MAX_PASSES = 8


def strip_accents(text: str) -> str:
    norm = unicodedata.normalize("NFD", text or "")
    out = "".join(ch for ch in norm if unicodedata.category(ch) != "Mn")
    return unicodedata.normalize("NFC", out)


def canonical_chars(text: str) -> str:
    """Espacios raros -> ' ', guiones Unicode -> '-', saltos -> '\\n'."""
    t = (text or "").translate(_SPACE_TABLE).translate(_DASH_TABLE)
    t = t.replace("\r\n", "\n").replace("\r", "\n").replace("\f", "\n")
    return t


def _until_stable(fn: Callable[[str], str], s: str) -> str:
    for _ in range(_MAX_PASSES):
        nxt = fn(s)
        if nxt == s:
            break
        s = nxt
    return s


def _repair_pass(s: str, timeout: float) -> str:
    s = safe_sub(_HSPACE_RE, " ", s, timeout).strip()

    s = safe_sub(_DATE_SPLIT_DAY_RE, r"\1\2/\3/\4", s, timeout)
    s = safe_sub(_DATE_SPLIT_MONTH_RE, r"\1/\2\3/\4", s, timeout)
    s = safe_sub(_DATE_SPACED_RE, r"\1/\2/\3", s, timeout)

    s = safe_sub(_THOUSANDS_GAP_RE, ".", s, timeout)
    s = safe_sub(_DECIMAL_GAP_RE, ",", s, timeout)
    s = safe_sub(_CENTS_GAP_RE, r",\1\2", s, timeout)

    s = safe_sub(_LEAD_MINUS_RE, "-", s, timeout)
    s = safe_sub(_TRAIL_MINUS_RE, "-", s, timeout)

    s = safe_sub(_DATE_GLUED_RE, " ", s, timeout)
    return s


def normalize_line(line: str, timeout: float = DEFAULT_TIMEOUT) -> str:
    """
    Limpieza determinística de una línea antes de cualquier regex de banco:
    - colapsa espacios horizontales y recorta
    - une montos partidos por el OCR ("1.528.895,1 1" -> "1.528.895,11")
    - pega signos sueltos ("- 333,41" -> "-333,41", "99,00 -" -> "99,00-")
    - une fechas partidas ("1 5/01/24" -> "15/01/24")
    Es idempotente: normalize_line(normalize_line(x)) == normalize_line(x).
    """
    if not line or not line.strip():
        return ""
    s = canonical_chars(line).replace("\n", " ")
    return _until_stable(lambda x: _repair_pass(x, timeout), s)


def normalize_text(text: str, timeout: float = DEFAULT_TIMEOUT) -> str:
    """normalize_line sobre cada línea; conserva las líneas vacías."""
    if not text:
        return ""
    lines: List[str] = canonical_chars(text).split("\n")
    return "\n".join(normalize_line(ln, timeout) for ln in lines)
