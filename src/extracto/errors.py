"""
Excepciones del extractor.

Solo lo que es realmente excepcional llega acá: los problemas de calidad
de datos de un resumen se reportan como warnings en el ParseResult.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class ExtractoError(Exception):
    """Excepción base del paquete"""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self):
        if self.code:
            return f"[{self.code}] {self.message}"
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        """Convierte la excepción a diccionario para la capa API"""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "details": self.details,
        }


class UsageLimitExceededError(ExtractoError):
    """El usuario agotó su cuota mensual de parseos"""

    def __init__(self, limit: int, used: Optional[int] = None):
        details: Dict[str, Any] = {"limit": limit}
        if used is not None:
            details["used"] = used
        super().__init__(
            f"Monthly usage limit of {limit} has been exceeded.",
            "USAGE_LIMIT",
            details,
        )
        self.limit = limit


class ParseCancelledError(ExtractoError):
    """El caller canceló el parseo; no hay resultado parcial"""

    def __init__(self, stage: str = ""):
        details = {"stage": stage} if stage else {}
        super().__init__("Parse cancelled", "CANCELLED", details)


class PdfExtractionError(ExtractoError):
    """No se pudo abrir el PDF"""

    def __init__(self, message: str, original_error: Optional[str] = None):
        details = {}
        if original_error:
            details["original_error"] = original_error
        super().__init__(message, "PDF_ERROR", details)
