"""
Limpieza de texto OCR de BBVA.

El texto de BBVA suele venir con letras y dígitos separados por espacios
("P A G O  T A R J E T A", "1 . 5 0 0 , 0 0"). Acá viven los patrones
tolerantes a esos espacios y la reconstrucción de descripciones.
"""

from __future__ import annotations

from decimal import Decimal
from typing import List, Optional

from ..matching import DEFAULT_TIMEOUT, Matcher, rx, safe_sub
from ..money import try_parse_money
from ..normalize import strip_accents

# monto con espacios internos; no arranca pegado a dígitos, '.', ',' o '/'
AMOUNT_SPACED_RE = rx(r"(?<![\p{Nd}.,/])\$?\s*[+-]?\s*(?:\d\s*){1,3}(?:\.\s*(?:\d\s*){3})*\s*,\s*\d\s*\d")
DDMM_RE = rx(r"(?<![\p{Nd}/])(?P<dd>\d\s*\d)\s*/\s*(?P<mm>\d\s*\d)(?:\s*/\s*(?P<yy>\d{4}|\d{2})(?!\d))?")
ORIGIN_RE = rx(r"^\s*(?:[DC]\s*[\-:.]?\s*)?(?P<code>\d{3})\b")
DECOR_RE = rx(r"^\s*(?:[-–—]|\d)?\s*$")

_WS_RE = rx(r"\s+")
_MULTI_WS_RE = rx(r"\s{2,}")
_WORD_SPLIT_RE = rx(r" {3,}")
_ATOM_RE = rx(r"\p{L}|\d|\.")
_SPACED_LETTERS_RE = rx(r"(?<=\p{L})\s(?=\p{L})")
_SPACED_DIGITS_RE = rx(r"(?<=\d)\s+(?=\d)")
_AROUND_SEP_RE = rx(r"(?<=\d)\s+(?=[.,])|(?<=[.,])\s+(?=\d)")
_MINUS_GAP_RE = rx(r"-\s+(?=[\d$])")
_PESO_GAP_RE = rx(r"\$\s+")

STOP_WORDS = (
    "SALDO ANTERIOR",
    "SALDO AL",
    "TOTAL MOVIMIENTOS",
    "IMPUESTO A LOS DEBITOS",
    "LEGALES",
    "AVISOS",
    "RESUMEN",
    "CONSOLIDADO",
    "TRANSFERENCIAS",
    "RECIBIDAS",
    "ENVIADAS",
    "TARJETAS DE DEBITO",
    "COMPRAS VISA DEBITO",
    "DETALLE",
    "FECHA TARJETA COMERCIO",
)


def compact(text: str) -> str:
    """Sin espacios, sin tildes y en mayúsculas. Solo para comparar."""
    return "".join(strip_accents(text or "").split()).upper()


def is_decor(line: str) -> bool:
    return bool(DECOR_RE.match(line or ""))


def looks_like_header_or_totals(line: str) -> bool:
    upper = strip_accents(line or "").upper()
    return any(w in upper for w in STOP_WORDS)


def amount_value(token: str) -> Optional[Decimal]:
    """'- 1 . 5 0 0 , 0 0' -> Decimal('-1500.00')."""
    return try_parse_money("".join((token or "").split()))


def tidy_for_amounts(text: str, timeout: float = DEFAULT_TIMEOUT) -> str:
    s = safe_sub(_WS_RE, " ", text or "", timeout)
    s = safe_sub(_AROUND_SEP_RE, "", s, timeout)
    s = safe_sub(_PESO_GAP_RE, "$", s, timeout)
    s = safe_sub(_MINUS_GAP_RE, "-", s, timeout)
    return s.strip()


def readable_line(line: str, timeout: float = DEFAULT_TIMEOUT) -> str:
    """Línea original legible: si viene letra por letra, se vuelven a juntar."""
    s = tidy_for_amounts(line, timeout)
    if _letter_spaced(s):
        s = safe_sub(_SPACED_LETTERS_RE, "", s, timeout)
        s = safe_sub(_SPACED_DIGITS_RE, "", s, timeout)
    return safe_sub(_MULTI_WS_RE, " ", s, timeout).strip()


# === Reconstrucción de palabras ===


def _is_letter(a: str) -> bool:
    return len(a) == 1 and a.isalpha()


def _is_digit(a: str) -> bool:
    return len(a) == 1 and a.isdigit()


def rebuild_words(segment: str) -> List[str]:
    """
    Átomos letra/dígito/punto -> palabras:
    - dígitos (con puntos internos) => un número
    - L . L . L => sigla ("S.A." -> "SA")
    - letras contiguas => una palabra; un punto suelto separa
    """
    atoms = _ATOM_RE.findall(segment or "")
    out: List[str] = []
    i, n = 0, len(atoms)
    while i < n:
        a = atoms[i]
        if _is_digit(a):
            j = i
            while j < n and (_is_digit(atoms[j]) or atoms[j] == "."):
                j += 1
            out.append("".join(atoms[i:j]))
            i = j
            continue
        if _is_letter(a):
            j = i
            letters = []
            acronym = False
            while j < n and _is_letter(atoms[j]):
                letters.append(atoms[j])
                j += 1
                if j + 1 < n and atoms[j] == "." and _is_letter(atoms[j + 1]):
                    acronym = True
                    j += 1
                    continue
                break
            if acronym:
                if j < n and atoms[j] == ".":
                    j += 1
                out.append("".join(letters))
                i = j
                continue
            j = i
            while j < n and _is_letter(atoms[j]):
                j += 1
            out.append("".join(atoms[i:j]))
            i = j + 1 if j < n and atoms[j] == "." else j
            continue
        i += 1
    return out


def _letter_spaced(segment: str) -> bool:
    tokens = segment.split()
    if len(tokens) < 3:
        return False
    singles = sum(1 for t in tokens if len(t) == 1)
    return singles * 10 >= len(tokens) * 6


def sanitize_description(raw: str) -> str:
    """
    Descripción desde el texto crudo. 3+ espacios separan palabras; dentro
    de un segmento con letras sueltas ("P A G O") se juntan los átomos, si
    no, cada palabra se reconstruye por separado.
    """
    words: List[str] = []
    for segment in _WORD_SPLIT_RE.split(raw or ""):
        if not segment.strip():
            continue
        if _letter_spaced(segment):
            words.extend(rebuild_words(segment))
        else:
            for tok in segment.split():
                words.extend(rebuild_words(tok))
    return " ".join(w for w in words if w).strip()


# === Post-proceso ===

_I = "(?i)"

COMMON_OCR_FIXES = [
    (rx(_I + r"\bIVATASAGENERALV?\b"), "IVA TASA GENERAL"),
    (rx(_I + r"\bCOMITRANSFERENCIAR?\b"), "COMI TRANSFERENCIA"),
    (rx(_I + r"\bCAPITALDOCUM\b"), "CAPITAL DOCUM"),
    (rx(_I + r"\bINTERESESDOCUM\b"), "INTERESES DOCUM"),
    (rx(_I + r"\bIMPUESTOSDOCUM\b"), "IMPUESTOS DOCUM"),
    (rx(_I + r"\bOPERACIONENEFECTIVO\b"), "OPERACION EN EFECTIVO"),
    (rx(_I + r"\bDEPOSITOAUTOSERVICIOPLUS\b"), "DEPOSITO AUTOSERVICIO PLUS"),
    (rx(_I + r"\bPERC\s*\.?\s*CABAING\s*\.?\s*BRUTOS\b"), "PERC CABA ING BRUTOS"),
    # primera letra perdida
    (rx(_I + r"(?<=^|\s)MP\s+LEY\b"), "IMP LEY"),
    (rx(_I + r"(?<=^|\s)EY(?=\s+(?:NRO|\d))"), "LEY"),
    (rx(_I + r"\bBRUTOSA\b"), "BRUTOS"),
    (rx(r"\s*\.\s*"), " "),
]

EXTRA_OCR_FIXES = [
    (rx(_I + r"\bIVAR?\s*\.?\s*I\s*\.?(?=\s|$)"), "IVA RI"),
    (rx(_I + r"\bLEY\s*NRO?\s*25\s*\.?\s*413\b"), "LEY NRO 25.413"),
    (rx(_I + r"\bSOBRECREDITV?\b"), "SOBRE CREDITOS"),
    (rx(_I + r"\bDEBITOCUOTA\b"), "DEBITO CUOTA"),
    (rx(_I + r"\bDB\s*/?\s*CRPORPAGODESUELDOS\b"), "DB/CR POR PAGO DE SUELDOS"),
    (rx(_I + r"\bDEBITOPORPAGODEHABERES[A-Za-z]{0,3}\b"), "DEBITO POR PAGO DE HABERES"),
    (rx(_I + r"\bACRED\s*\.?\s*PRESTAMO\s*NRO\s*:?"), "ACRED PRESTAMO NRO "),
    (rx(_I + r"\bTRANSF\s*\.?\s*CLIENTECTA\s*\.?\s*CAP\b"), "TRANSF CLIENTE CTA CAP"),
    (rx(_I + r"\b(DEPOSITO AUTOSERVICIO PLUS)\s+[A-Za-z]\b"), r"\1"),
    # cortes al final de la columna
    (rx(_I + r"\bCOMI\s+TRANSFEREN\b"), "COMI TRANSFERENCIA"),
    (rx(_I + r"\bIVA\s+TASA\s+GENE\b"), "IVA TASA GENERAL"),
    (rx(_I + r"\bPERC\s+CABA\s+ING\s+BRU\b"), "PERC CABA ING BRUTOS"),
    (rx(_I + r"\bOPERACION\s+EN\s+EFECTIVO\s*TARJE\b"), "OPERACION EN EFECTIVO TARJETA"),
    (rx(_I + r"\bPAGO\s+TARJETA\s+VISA\s+EMPR\b"), "PAGO TARJETA VISA EMPRESA"),
]

_LOWERCASE_RE = rx(r"\p{Ll}+")
_LONELY_LETTER_RE = rx(r"\b\p{L}\.?(?=\s|$)")
_TRAIL_JUNK_RE = rx(r"[^\p{L}\p{N}\s]+$")
_LEAD_JUNK_RE = rx(r"^[^\p{L}\p{N}\s]+")
_ORIGIN_PREFIX_RE = rx(r"^\s*\d{3}\s+")


def _apply(table, s: str, timeout: float) -> str:
    for pattern, repl in table:
        s = safe_sub(pattern, repl, s, timeout)
    return safe_sub(_MULTI_WS_RE, " ", s, timeout).strip()


def post_process(description: str, timeout: float = DEFAULT_TIMEOUT) -> str:
    s = _apply(COMMON_OCR_FIXES, description or "", timeout)
    s = _apply(EXTRA_OCR_FIXES, s, timeout)
    s = safe_sub(_LOWERCASE_RE, "", s, timeout)
    s = safe_sub(_LONELY_LETTER_RE, " ", s, timeout)
    s = safe_sub(_TRAIL_JUNK_RE, "", s.strip(), timeout)
    s = safe_sub(_LEAD_JUNK_RE, "", s, timeout)
    s = safe_sub(_ORIGIN_PREFIX_RE, "", s, timeout)
    return safe_sub(_MULTI_WS_RE, " ", s, timeout).strip()


def reflow(lines: List[str], m: Matcher) -> List[str]:
    """
    Junta líneas físicas en líneas lógicas: acumula hasta tener al menos
    dos montos y una fecha dd/mm. Los rótulos/totales cortan el buffer.
    """
    out: List[str] = []
    buf: List[str] = []
    for raw in lines:
        if not (raw or "").strip():
            continue
        if looks_like_header_or_totals(raw):
            if buf:
                out.append(" ".join(buf))
                buf = []
            continue
        buf.append(raw.strip())
        cur = " ".join(buf)
        _, amounts = m.findall(AMOUNT_SPACED_RE, cur)
        if len(amounts) >= 2 and m.search(DDMM_RE, cur).ok:
            out.append(cur)
            buf = []
    if buf:
        out.append(" ".join(buf))
    return out
