from __future__ import annotations

import datetime
import enum
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, List, Optional, Tuple

from .dates import DATE_AT_START_RE, parse_ddmmyy
from .matching import Matcher, Pattern, rx

logger = logging.getLogger(__name__)

# fila pegada a la siguiente: "... 1.000,00 16/01/24 OTRO MOV ..."
INLINE_SPLIT_RE = rx(r"(?<=\d,\d{2}-?)\s+(?=\d{2}/\d{2}/(?:\d{4}|\d{2})(?!\d))")

PAGE_MARKER_RE = rx(r"^\s*<<PAGE:\s*\d+\s*>>>\s*$")


class State(enum.Enum):
    SCANNING = "scanning_for_date"
    IN_BLOCK = "in_block"


@dataclass
class Block:
    date: datetime.date
    date_text: str
    first_line: str
    lines: List[str] = field(default_factory=list)  # [resto de la 1ra línea, continuaciones...]

    @property
    def text(self) -> str:
        return " ".join(ln for ln in self.lines if ln)


@dataclass
class SegmentResult:
    blocks: List[Block] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    anchors: int = 0
    aborted: bool = False


def find_region(
    lines: List[str],
    start_re: Pattern,
    end_res: Tuple[Pattern, ...],
    matcher: Matcher,
) -> Optional[Tuple[int, int]]:
    """
    Región de movimientos dentro de `lines`:
    - inicio: la línea siguiente al marcador de inicio
    - fin: antes del primer marcador de fin (o fin de las líneas)
    None si no hay marcador de inicio.
    """
    start = None
    for i, ln in enumerate(lines):
        if matcher.search(start_re, ln).ok:
            start = i + 1
            break
    if start is None:
        return None

    end = len(lines)
    for i in range(start, len(lines)):
        if any(matcher.search(e, lines[i]).ok for e in end_res):
            end = i
            break
    return start, end


def _split_inline(line: str, matcher: Matcher, pos: int = 0) -> Tuple[str, Optional[str]]:
    r = matcher.search(INLINE_SPLIT_RE, line, pos)
    if not r.ok:
        return line, None
    left = line[: r.start()].rstrip()
    right = line[r.end():].strip()
    return left, (right or None)


def segment_blocks(
    lines: List[str],
    matcher: Matcher,
    terminator_re: Optional[Pattern] = None,
    noise_re: Optional[Pattern] = PAGE_MARKER_RE,
    split_inline: bool = True,
    queue_limit_factor: int = 3,
    label: str = "",
    anchor_re: Pattern = DATE_AT_START_RE,
) -> SegmentResult:
    """
    Máquina de estados sobre una cola FIFO de líneas:

        SCANNING --(línea con fecha)--> IN_BLOCK
        IN_BLOCK --(otra fecha)--> emite bloque, IN_BLOCK
        IN_BLOCK --(terminador)--> emite bloque, SCANNING
        IN_BLOCK --(otra línea)--> continuación

    Si una línea trae una segunda fila pegada ("... 1.000,00 16/01/24 ..."),
    el resto se vuelve a encolar al frente. La cantidad de reinserciones se
    limita a queue_limit_factor * len(lines).

    Un timeout en la prueba de fecha (la que controla el loop) aborta la
    segmentación de esta región; un timeout en otras pruebas solo saltea la línea.
    La prueba de fecha es `anchor_re` (por defecto, fecha dd/mm/aa al inicio).
    """
    res = SegmentResult()
    tag = f" {label}" if label else ""

    queue: Deque[str] = deque(lines)
    limit = max(1, len(lines)) * max(1, queue_limit_factor)
    reinserted = 0
    safety_warned = False

    state = State.SCANNING
    current: Optional[Block] = None

    def emit() -> None:
        nonlocal current, state
        if current is not None:
            res.blocks.append(current)
        current = None
        state = State.SCANNING

    def requeue(rest: Optional[str]) -> None:
        nonlocal reinserted, safety_warned
        if rest is None:
            return
        if reinserted >= limit:
            if not safety_warned:
                res.warnings.append(
                    f"[safety]{tag} límite de reinserciones ({limit}) alcanzado; se descartan filas pegadas"
                )
                safety_warned = True
            return
        reinserted += 1
        queue.appendleft(rest)

    while queue:
        line = queue.popleft().strip()
        if not line:
            continue

        if noise_re is not None and matcher.search(noise_re, line).ok:
            continue

        anchor = matcher.match(anchor_re, line)
        if anchor.timed_out:
            res.warnings.append(f"[timeout]{tag} segmentación abortada (prueba de fecha)")
            res.aborted = True
            current = None
            break

        if terminator_re is not None:
            term = matcher.search(terminator_re, line)
            if term.timed_out:
                res.warnings.append(f"[timeout]{tag} línea omitida: {line[:60]}")
                continue
            if term.ok:
                emit()
                continue

        date = parse_ddmmyy(anchor.group("date")) if anchor.ok else None
        if date is not None:
            emit()
            res.anchors += 1
            head = line[anchor.end():].strip()
            rest = None
            if split_inline:
                head, rest = _split_inline(head, matcher)
            current = Block(date=date, date_text=anchor.group("date"), first_line=line, lines=[head])
            state = State.IN_BLOCK
            requeue(rest)
            continue

        if state is State.SCANNING:
            continue

        rest = None
        if split_inline:
            line, rest = _split_inline(line, matcher)
        current.lines.append(line)
        requeue(rest)

    if not res.aborted:
        emit()

    if res.anchors == 0 and not res.aborted:
        res.warnings.append(f"[no-anchors]{tag} no se encontraron líneas que empiecen con fecha")

    logger.debug(
        "segmentación%s: %s bloques, %s anclas, %s reinserciones",
        tag, len(res.blocks), res.anchors, reinserted,
    )
    return res
