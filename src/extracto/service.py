"""
Orquestador: cuota -> parser por banco -> extracción -> parseo ->
categorización -> registro de uso.
"""

from __future__ import annotations

import datetime
import logging
import threading
from typing import BinaryIO, Callable, Dict, Optional, Type, Union

from .banks.base import BankStatementParser, ParserOptions, ProgressCallback, ProgressUpdate
from .banks.bbva import BbvaParser
from .banks.galicia import GaliciaParser
from .banks.santander import SantanderParser
from .banks.supervielle import SupervielleParser
from .categorize import RuleCategorizer
from .config import ExtractoSettings, get_settings
from .errors import ParseCancelledError, UsageLimitExceededError
from .layout import PageFilter, extract_text, galicia_filter, keep_all
from .models import ParseResult
from .usage import ParseUsage, UsageTracker, month_start

logger = logging.getLogger(__name__)

PARSERS: Dict[str, Type] = {
    "galicia": GaliciaParser,
    "supervielle": SupervielleParser,
    "santander": SantanderParser,
    "bbva": BbvaParser,
}

# Galicia repite encabezados en cada página; el resto necesita todas las páginas
PAGE_FILTERS: Dict[str, PageFilter] = {
    "galicia": galicia_filter,
}

Extractor = Callable[..., str]


class CancellationToken:
    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, stage: str = "") -> None:
        if self._event.is_set():
            raise ParseCancelledError(stage)


def bank_key(bank: str) -> str:
    return (bank or "").strip().lower()


class PdfParsingService:
    def __init__(
        self,
        usage_tracker: UsageTracker,
        settings: Optional[ExtractoSettings] = None,
        parsers: Optional[Dict[str, BankStatementParser]] = None,
        categorizer: Optional[RuleCategorizer] = None,
        extractor: Extractor = extract_text,
    ):
        self.usage_tracker = usage_tracker
        self.settings = settings or get_settings()
        self.categorizer = categorizer
        self.extractor = extractor
        if parsers is None:
            options = ParserOptions.from_settings(self.settings)
            parsers = {key: cls(options) for key, cls in PARSERS.items()}
        self.parsers = {bank_key(k): p for k, p in parsers.items()}

    def parser_for(self, bank: str) -> Optional[BankStatementParser]:
        return self.parsers.get(bank_key(bank))

    def check_quota(self, user_id: str, now: Optional[datetime.datetime] = None) -> int:
        now = now or datetime.datetime.now(datetime.timezone.utc)
        used = self.usage_tracker.count_by_user(user_id, month_start(now), now)
        limit = self.settings.MONTHLY_LIMIT
        if used >= limit:
            logger.info("usuario %s: cuota mensual agotada (%s/%s)", user_id, used, limit)
            raise UsageLimitExceededError(limit, used)
        return used

    def parse(
        self,
        pdf: Union[bytes, BinaryIO],
        bank: str,
        user_id: str,
        cancel: Optional[CancellationToken] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> Optional[ParseResult]:
        """
        Parsea un PDF. None si el banco no está soportado.
        UsageLimitExceededError si el usuario agotó la cuota (antes de leer el PDF).
        ParseCancelledError si se canceló en el medio.
        """
        self.check_quota(user_id)

        parser = self.parser_for(bank)
        if parser is None:
            logger.info("banco no soportado: %r", bank)
            return None

        key = bank_key(bank)
        text = self.extractor(pdf, PAGE_FILTERS.get(key, keep_all), cancel)
        if cancel is not None:
            cancel.raise_if_cancelled(stage="extracted")

        result = parser.parse(text, self._progress(cancel, progress))
        if cancel is not None:
            cancel.raise_if_cancelled(stage="parsed")

        if self.categorizer is not None:
            self.categorizer.apply(result, key, user_id)

        try:
            self.usage_tracker.record(ParseUsage(user_id=user_id, bank=key))
        except Exception:
            logger.exception("no se pudo registrar el uso de %s", user_id)

        logger.info(
            "%s: %s cuentas, %s movimientos, %s warnings",
            parser.bank_name,
            len(result.statement.accounts),
            result.transaction_count(),
            len(result.warnings),
        )
        return result

    def parse_text(self, text: str, bank: str) -> Optional[ParseResult]:
        """Parsea texto ya extraído. Sin cuota ni registro de uso."""
        parser = self.parser_for(bank)
        if parser is None:
            return None
        return parser.parse(text)

    @staticmethod
    def _progress(
        cancel: Optional[CancellationToken], downstream: Optional[ProgressCallback]
    ) -> Optional[ProgressCallback]:
        if cancel is None and downstream is None:
            return None

        def report(update: ProgressUpdate) -> None:
            logger.debug("progreso %s %s/%s", update.stage, update.current, update.total)
            if downstream is not None:
                downstream(update)
            if cancel is not None:
                cancel.raise_if_cancelled(stage=update.stage)

        return report
