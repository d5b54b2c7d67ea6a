from __future__ import annotations

from typing import Iterable, Iterator, List, Optional, Sequence, Tuple

import regex

from .matching import DEFAULT_TIMEOUT, Pattern, rx, safe_sub
from .money import STRICT_MONEY_RE
from .normalize import strip_accents

CanonMap = Sequence[Tuple[Pattern, str]]

_WS_RE = rx(r"\s+")
_PIPE_RE = rx(r"\s*\|\s*")
_PIPES_RE = rx(r"(?:\s*\|\s*){2,}")


def compile_canon(entries: Iterable[Tuple[str, str]]) -> List[Tuple[Pattern, str]]:
    return [(rx(pattern, regex.IGNORECASE), label) for pattern, label in entries]


def dedup_segments(parts: Iterable[str]) -> Iterator[str]:
    """Descarta segmentos vacíos y los repetidos inmediatamente (sin mayúsculas)."""
    prev = None
    for p in parts:
        cur = (p or "").strip()
        if not cur:
            continue
        if prev is None or prev.lower() != cur.lower():
            yield cur
        prev = cur


def tight(text: str, timeout: float = DEFAULT_TIMEOUT) -> str:
    return safe_sub(_WS_RE, " ", text or "", timeout).strip()


def canonicalize(text: str, canon: CanonMap, timeout: float = DEFAULT_TIMEOUT) -> str:
    """Aplica la tabla (patrón -> etiqueta) y prolija los separadores ' | '."""
    cleaned = tight(text, timeout)
    for pattern, label in canon:
        cleaned = safe_sub(pattern, label, cleaned, timeout)
    cleaned = safe_sub(_PIPE_RE, " | ", cleaned, timeout)
    cleaned = safe_sub(_PIPES_RE, " | ", cleaned, timeout)
    return tight(cleaned, timeout).strip(" |")


# === Colas de códigos (Galicia) ===

_TAIL_LONG_DIGITS_RE = rx(r"\s*\d{10,}\s*$")
_TAIL_ALNUM_REF_RE = rx(r"\s*[A-Z0-9]{10,}\s*$")
_TAIL_VARIOS_RE = rx(r"\s*VARIOS\d+[A-Z0-9]*\s*$")


def strip_trailing_codes(text: str, timeout: float = DEFAULT_TIMEOUT) -> str:
    s = safe_sub(_TAIL_LONG_DIGITS_RE, "", text or "", timeout)
    s = safe_sub(_TAIL_ALNUM_REF_RE, "", s, timeout)
    s = safe_sub(_TAIL_VARIOS_RE, "", s, timeout)
    return s.strip()


# === Descripción línea por línea (Galicia) ===

_BROKEN_FRAGMENT_RE = rx(r"(?<![\p{L}\p{Nd}])-?\d{1,3}(?:\.\d{3})*(?!,\d)(?![\p{L}\p{Nd}])")
_DATE_HEAD_RE = rx(r"^\s*\d{2}/\d{2}/\d{2,4}\s*")
_LONELY_MINUS_ONE_RE = rx(r"\s?-1\s?$")
_DANGLING_PESO_RE = rx(r"\s*\$\s*$")

_PAGE_NOISE_RE = rx(r"(?i)<<PAGE:|^\s*P[aá]gina\s+\d+(?:\s+\d+)?\s*/\s*\d+\s*$")
_INLINE_PAGE_RE = rx(r"(?i)\bP[aá]gina\s+\d+(?:\s+\d+)?\s*/\s*\d+\b")
_PAGE_FRACTION_RE = rx(r"^\s*\d+(?:\s+\d+)?\s*/\s*\d+\s*$")
_BOILERPLATE_RE = rx(
    r"(?i)Resumen de|Cuenta Corriente en Pesos|CBU|Dispon[eé]s de 30 d[ií]as|cr[eé]dito fiscal|"
    r"Tasa Extraordinaria|Promedio\s+\d{6}|Saldos\s*Deudores|Datos de la cuenta|Per[ií]odo de mov"
)
_HEADER_COLS_RE = rx(r"(?i)\b(?:Fecha|Descripci[oó]n|Origen|Cr[eé]dito|D[eé]bito|Saldo)\b")
_CUIT_LINE_RE = rx(r"^\s*\d{2}-\d{8}-\d\s*$")
_CBU_LINE_RE = rx(r"^\s*\d{22}\s*$")
_LONG_DIGITS_RE = rx(r"\b\d{10,}\b")
_ZEROS_RE = rx(r"0{6,}")
_NUMERIC_ONLY_RE = rx(r"^[\d.,\-\s]+$")
_HAS_LETTER_RE = rx(r"\p{L}")

_EMPTY_ORIGINS = {"PROPIA", "VARIOS", "CUENTA ORIGEN"}


def _cut_before_amount(line: str, timeout: float) -> str:
    m = None
    try:
        m = STRICT_MONEY_RE.search(line, timeout=timeout)
    except TimeoutError:
        m = None
    pure = line[: m.start()] if m else line
    pure = safe_sub(_DATE_HEAD_RE, "", pure, timeout)
    pure = tight(pure, timeout)
    pure = safe_sub(_LONELY_MINUS_ONE_RE, "", pure, timeout).strip()
    return safe_sub(_DANGLING_PESO_RE, "", pure, timeout).strip()


def _drop_broken_fragments(s: str, timeout: float) -> str:
    s = safe_sub(_BROKEN_FRAGMENT_RE, "", s, timeout)
    return tight(s, timeout).strip(" ·-()")


def is_useful_line(line: str) -> bool:
    """Filtra ruido de página, boilerplate, encabezados e identificadores sueltos."""
    t = (line or "").strip()
    if not t:
        return False
    for pattern in (_PAGE_NOISE_RE, _BOILERPLATE_RE, _PAGE_FRACTION_RE, _HEADER_COLS_RE, _INLINE_PAGE_RE):
        if pattern.search(t):
            return False
    if _CUIT_LINE_RE.match(t) or _CBU_LINE_RE.match(t):
        return False
    if _LONG_DIGITS_RE.search(t) or _ZEROS_RE.search(t) or _NUMERIC_ONLY_RE.match(t):
        return False
    if not _HAS_LETTER_RE.search(t):
        return False
    return strip_accents(t).upper() not in _EMPTY_ORIGINS


def useful_lines(lines: Iterable[str], timeout: float = DEFAULT_TIMEOUT) -> List[str]:
    out = []
    for raw in lines:
        ln = _drop_broken_fragments(_cut_before_amount(raw or "", timeout), timeout)
        if is_useful_line(ln):
            out.append(ln)
    return out


def build_line_description(
    title: str,
    lines: Iterable[str],
    timeout: float = DEFAULT_TIMEOUT,
    canon: Optional[CanonMap] = None,
) -> str:
    """
    "TITULO | extra1 · extra2"

    El título viene ya limpio/canonizado; los extras salen de las líneas
    útiles del bloque (sin repetir el título ni entre sí). Con `canon`, cada
    extra pasa también por la tabla.
    """
    title = tight(title, timeout)
    seen = {title.lower()} if title else set()
    extras: List[str] = []
    for ln in useful_lines(lines, timeout):
        if canon:
            ln = canonicalize(ln, canon, timeout)
        key = ln.lower()
        if key in seen:
            continue
        seen.add(key)
        extras.append(ln)

    if not title:
        if not extras:
            return ""
        title, extras = extras[0], extras[1:]
    if not extras:
        return title
    return f"{title} | {' · '.join(extras)}"
