from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, List, Optional, Protocol

from ..config import ExtractoSettings, get_settings
from ..layout import LINE_DELIMITER
from ..matching import DEFAULT_TIMEOUT, Matcher
from ..models import BankStatement, ParseResult
from ..reconcile import reconcile_statement

logger = logging.getLogger(__name__)

RAW_CHUNK_SIZE = 900


@dataclass(frozen=True)
class ProgressUpdate:
    stage: str
    current: int
    total: int


ProgressCallback = Callable[[ProgressUpdate], None]


@dataclass(frozen=True)
class ParserOptions:
    diagnostic: bool = False
    dump_raw: bool = False
    regex_timeout: float = DEFAULT_TIMEOUT
    amount_ceiling: Decimal = Decimal("1000000000")
    usd_balance_ceiling: Decimal = Decimal("50000000")
    queue_limit_factor: int = 3
    amount_tolerance: Decimal = Decimal("0.01")
    sign_tolerance: Decimal = Decimal("0.05")
    closing_tolerance: Decimal = Decimal("0.02")
    collapse_floor: Decimal = Decimal("100000")

    @classmethod
    def from_settings(cls, settings: Optional[ExtractoSettings] = None) -> "ParserOptions":
        s = settings or get_settings()
        return cls(
            diagnostic=s.DIAGNOSTIC,
            dump_raw=s.DUMP_RAW,
            regex_timeout=s.REGEX_TIMEOUT,
            amount_ceiling=s.AMOUNT_CEILING,
            usd_balance_ceiling=s.USD_BALANCE_CEILING,
            queue_limit_factor=s.QUEUE_LIMIT_FACTOR,
            amount_tolerance=s.AMOUNT_TOLERANCE,
            sign_tolerance=s.SIGN_TOLERANCE,
            closing_tolerance=s.CLOSING_TOLERANCE,
            collapse_floor=s.COLLAPSE_FLOOR,
        )


class BankStatementParser(Protocol):
    bank_name: str

    def parse(self, text: str, progress: Optional[ProgressCallback] = None) -> ParseResult:
        ...


def split_lines(text: str) -> List[str]:
    """Líneas del texto reconstruido, sin el delimitador de fin de línea."""
    return (text or "").replace("\r\n", "\n").replace("\r", "\n").replace(LINE_DELIMITER, "").split("\n")


def chunks(text: str, size: int = RAW_CHUNK_SIZE) -> List[str]:
    return [text[i : i + size] for i in range(0, len(text or ""), size)]


class ParseSession:
    """
    Estado de UNA llamada a parse(): resultado, warnings, matcher y progreso.
    Los parsers crean una por llamada y no guardan nada entre llamadas.
    """

    def __init__(
        self,
        bank: str,
        options: ParserOptions,
        progress: Optional[ProgressCallback] = None,
    ):
        self.options = options
        self.progress = progress
        self.matcher = Matcher(options.regex_timeout)
        self.result = ParseResult(statement=BankStatement(bank=bank))

    @property
    def statement(self) -> BankStatement:
        return self.result.statement

    @property
    def warnings(self) -> List[str]:
        return self.result.warnings

    def report(self, stage: str, current: int, total: int) -> None:
        if self.progress is not None:
            self.progress(ProgressUpdate(stage, current, total))

    def warn(self, message: str) -> None:
        self.result.warnings.append(message)

    def diag(self, message: str) -> None:
        if self.options.diagnostic:
            self.result.warnings.append(f"[diag] {message}")

    def dump_raw(self, text: str) -> None:
        if not self.options.dump_raw:
            return
        parts = chunks(text or "")
        for idx, c in enumerate(parts, start=1):
            self.warn(f"[raw-full #{idx}] {c}")
        self.warn(f"[raw-full] total_chunks={len(parts)}, total_chars={len(text or '')}")

    def is_empty(self, text: str) -> bool:
        if text and text.strip():
            return False
        self.warn("[empty] texto vacío: no hay nada para parsear")
        return True

    def finish(self, reconcile: bool = True) -> ParseResult:
        if reconcile:
            reconcile_statement(
                self.result,
                tolerance=self.options.amount_tolerance,
                sign_tolerance=self.options.sign_tolerance,
                closing_tolerance=self.options.closing_tolerance,
                collapse_floor=self.options.collapse_floor,
            )
        self.statement.fill_period_from_transactions()

        if self.matcher.timeouts:
            self.diag(f"regex timeouts={self.matcher.timeouts}")
        self.diag(
            f"bank={self.statement.bank} accounts={len(self.statement.accounts)} "
            f"parsed={self.result.transaction_count()} "
            f"period={self.statement.period_start} to {self.statement.period_end}"
        )
        logger.debug(
            "%s: %s cuentas, %s movimientos, %s warnings",
            self.statement.bank,
            len(self.statement.accounts),
            self.result.transaction_count(),
            len(self.warnings),
        )
        return self.result
