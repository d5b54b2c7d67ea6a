"""
Reconstrucción de texto por página a partir de la geometría de los glifos.

pdfplumber entrega cada carácter con su posición; acá se agrupan en filas
por Y (con tolerancia), se ordenan por X y se insertan espacios donde el
hueco entre glifos supera la mitad del ancho del glifo más grande.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from typing import BinaryIO, Callable, Dict, Iterable, List, Optional, Union

import pdfplumber

from .errors import PdfExtractionError
from .matching import rx

logger = logging.getLogger(__name__)

PAGE_MARKER = "<<PAGE:{n}>>>"
LINE_DELIMITER = "@@@"

Y_TOLERANCE = 1.5
GAP_FACTOR = 0.5

PageFilter = Callable[[int, List[str]], List[str]]

_MULTISPACE_RE = rx(r"\s{2,}")

# Galicia
_BANNER_RE = rx(r"(?i)^Resumen de Cuenta Corriente.*P[aá]gina\s+\d+\s*/\s*\d+")
_DOC_ID_RE = rx(r"^\d{10,}P$")
_MOVS_HEADER_RE = rx(
    r"(?i)\bFecha\b.*\bDescripci[oó]n\b.*\bOrigen\b.*\bCr[eé]dito\b.*\bD[eé]bito\b.*\bSaldo\b"
)
_TOTAL_RE = rx(r"(?i)^\s*Total\b")


@dataclass(frozen=True)
class Glyph:
    ch: str
    x: float
    y: float
    width: float


def glyphs_from_chars(chars: Iterable[Dict]) -> List[Glyph]:
    """Adapta los dicts de `page.chars` de pdfplumber (y0 = línea base)."""
    out: List[Glyph] = []
    for c in chars:
        text = c.get("text") or ""
        if not text:
            continue
        out.append(
            Glyph(
                ch=text,
                x=float(c.get("x0", 0.0)),
                y=float(c.get("y0", 0.0)),
                width=float(c.get("width", 0.0) or 0.0),
            )
        )
    return out


def rebuild_lines(glyphs: Iterable[Glyph], y_tolerance: float = Y_TOLERANCE) -> List[str]:
    """
    Filas de arriba hacia abajo (Y descendente en coordenadas PDF).
    Una fila acepta glifos cuya Y está a <= y_tolerance de la Y del primero.
    """
    visible = [g for g in glyphs if g.ch and not g.ch[0].isspace()]
    visible.sort(key=lambda g: (-g.y, g.x))

    rows: List[List[Glyph]] = []
    for g in visible:
        if rows and abs(g.y - rows[-1][0].y) <= y_tolerance:
            rows[-1].append(g)
        else:
            rows.append([g])

    lines: List[str] = []
    for row in rows:
        row.sort(key=lambda g: g.x)
        parts: List[str] = []
        prev: Optional[Glyph] = None
        for g in row:
            if prev is not None:
                gap = g.x - (prev.x + prev.width)
                if gap > max(prev.width, g.width) * GAP_FACTOR:
                    parts.append(" ")
            parts.append(g.ch)
            prev = g
        line = _MULTISPACE_RE.sub(" ", "".join(parts)).rstrip()
        if line:
            lines.append(line)
    return lines


def rebuild_fallback(text: Optional[str]) -> List[str]:
    t = (text or "").replace("\r\n", "\n")
    return [ln.rstrip() for ln in t.split("\n")]


# === Filtros por página ===

def keep_all(page_number: int, lines: List[str]) -> List[str]:
    return [ln.rstrip() for ln in lines]


def galicia_filter(page_number: int, lines: List[str]) -> List[str]:
    """
    Página 1: completa (titular, cuenta, saldos), sin banner ni doc-id.
    Páginas >= 2: solo la tabla de movimientos, sin encabezado ni "Total".
    """
    if page_number == 1:
        out = []
        for ln in lines:
            clean = ln.rstrip()
            if _BANNER_RE.search(clean) or _DOC_ID_RE.match(clean):
                continue
            out.append(clean)
        return out

    out = []
    capture = False
    for ln in lines:
        line = ln.rstrip()
        if not line:
            if capture:
                out.append(line)
            continue
        if _MOVS_HEADER_RE.search(line):
            capture = True
            continue
        if capture and _TOTAL_RE.match(line):
            capture = False
            continue
        if capture:
            out.append(line)
    return out


def render_pages(pages: Iterable[List[str]], page_filter: PageFilter = keep_all) -> str:
    """
    Texto para los parsers:
        <<PAGE:1>>>
        linea@@@
        linea@@@
        (línea vacía)
    """
    out: List[str] = []
    for n, lines in enumerate(pages, start=1):
        out.append(PAGE_MARKER.format(n=n))
        for ln in page_filter(n, list(lines)):
            out.append(ln + LINE_DELIMITER)
        out.append("")
    return "\n".join(out) + ("\n" if out else "")


def _page_lines(page) -> List[str]:
    chars = page.chars or []
    if chars:
        return rebuild_lines(glyphs_from_chars(chars))
    return rebuild_fallback(page.extract_text())


def extract_text(
    pdf: Union[bytes, BinaryIO],
    page_filter: PageFilter = keep_all,
    cancel=None,
) -> str:
    """
    Abre el PDF con pdfplumber y arma el texto reconstruido de todas las páginas.
    Una página que falla se reemplaza por su texto plano (o queda vacía).
    """
    source = io.BytesIO(pdf) if isinstance(pdf, (bytes, bytearray)) else pdf
    try:
        doc = pdfplumber.open(source)
    except Exception as exc:
        raise PdfExtractionError("No se pudo abrir el PDF", original_error=str(exc)) from exc

    pages: List[List[str]] = []
    with doc:
        total = len(doc.pages)
        for idx, page in enumerate(doc.pages, start=1):
            if cancel is not None:
                cancel.raise_if_cancelled(stage=f"page {idx}/{total}")
            try:
                lines = _page_lines(page)
            except Exception:
                logger.warning("página %s: fallo en glifos, uso texto plano", idx, exc_info=True)
                try:
                    lines = rebuild_fallback(page.extract_text())
                except Exception:
                    logger.warning("página %s: sin texto", idx, exc_info=True)
                    lines = []
            logger.debug("página %s/%s: %s líneas", idx, total, len(lines))
            pages.append(lines)

    return render_pages(pages, page_filter)
