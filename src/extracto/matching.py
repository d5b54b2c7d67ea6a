"""
Matching con timeout.

`regex` acepta un timeout por llamada y lanza TimeoutError cuando se vence.
Acá lo convertimos en un resultado explícito (match / no-match / timeout)
para que los parsers distingan "no hay match" de "se abortó por input
patológico" sin usar excepciones como control de flujo.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Tuple, Union

import regex

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 1.0

Pattern = Any  # regex.Pattern
Replacement = Union[str, Callable[[Any], str]]


class Outcome(enum.Enum):
    MATCH = "match"
    NO_MATCH = "no_match"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class MatchResult:
    outcome: Outcome
    match: Optional[Any] = None

    @property
    def ok(self) -> bool:
        return self.outcome is Outcome.MATCH

    @property
    def timed_out(self) -> bool:
        return self.outcome is Outcome.TIMEOUT

    def group(self, *names):
        if self.match is None:
            return None
        return self.match.group(*names)

    def start(self, *names) -> int:
        return self.match.start(*names) if self.match is not None else -1

    def end(self, *names) -> int:
        return self.match.end(*names) if self.match is not None else -1


NO_MATCH = MatchResult(Outcome.NO_MATCH)
TIMED_OUT = MatchResult(Outcome.TIMEOUT)


def rx(pattern: str, flags: int = 0) -> Pattern:
    return regex.compile(pattern, flags)


def safe_sub(pattern: Pattern, repl: Replacement, text: str, timeout: float = DEFAULT_TIMEOUT) -> str:
    """sub() que ante timeout devuelve el texto sin cambios."""
    try:
        return pattern.sub(repl, text, timeout=timeout)
    except TimeoutError:
        logger.warning("regex timeout en sub: %s", pattern.pattern[:60])
        return text


class Matcher:
    """
    Ejecuta patrones con un timeout fijo y cuenta los timeouts ocurridos.
    Una instancia por parseo (no se comparte entre llamadas).
    """

    def __init__(self, timeout: float = DEFAULT_TIMEOUT):
        self.timeout = timeout
        self.timeouts = 0

    def _timed_out(self, pattern: Pattern) -> MatchResult:
        self.timeouts += 1
        logger.warning("regex timeout (%ss): %s", self.timeout, pattern.pattern[:60])
        return TIMED_OUT

    def search(self, pattern: Pattern, text: str, pos: int = 0) -> MatchResult:
        try:
            m = pattern.search(text, pos, timeout=self.timeout)
        except TimeoutError:
            return self._timed_out(pattern)
        return MatchResult(Outcome.MATCH, m) if m else NO_MATCH

    def match(self, pattern: Pattern, text: str, pos: int = 0) -> MatchResult:
        try:
            m = pattern.match(text, pos, timeout=self.timeout)
        except TimeoutError:
            return self._timed_out(pattern)
        return MatchResult(Outcome.MATCH, m) if m else NO_MATCH

    def test(self, pattern: Pattern, text: str) -> bool:
        """True solo si hay match; un timeout cuenta como 'no'."""
        return self.search(pattern, text).ok

    def findall(self, pattern: Pattern, text: str) -> Tuple[Outcome, List[Any]]:
        """Devuelve los match objects (no strings) o TIMEOUT con lista vacía."""
        try:
            found = list(pattern.finditer(text, timeout=self.timeout))
        except TimeoutError:
            self._timed_out(pattern)
            return Outcome.TIMEOUT, []
        return (Outcome.MATCH if found else Outcome.NO_MATCH), found

    def sub(self, pattern: Pattern, repl: Replacement, text: str) -> str:
        try:
            return pattern.sub(repl, text, timeout=self.timeout)
        except TimeoutError:
            self._timed_out(pattern)
            return text

    def split(self, pattern: Pattern, text: str) -> List[str]:
        try:
            return pattern.split(text, timeout=self.timeout)
        except TimeoutError:
            self._timed_out(pattern)
            return [text]
