from __future__ import annotations

from decimal import Decimal
from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ExtractoSettings(BaseSettings):
    # === Cuota mensual ===
    MONTHLY_LIMIT: int = 100

    # === Parsers ===
    REGEX_TIMEOUT: float = 1.0          # segundos por match
    DIAGNOSTIC: bool = False            # agrega warnings [diag]
    DUMP_RAW: bool = False              # vuelca el texto crudo en warnings [raw-full]
    AMOUNT_CEILING: Decimal = Decimal("1000000000")
    USD_BALANCE_CEILING: Decimal = Decimal("50000000")
    QUEUE_LIMIT_FACTOR: int = 3

    # === Reconciliación ===
    AMOUNT_TOLERANCE: Decimal = Decimal("0.01")
    SIGN_TOLERANCE: Decimal = Decimal("0.05")
    CLOSING_TOLERANCE: Decimal = Decimal("0.02")
    COLLAPSE_FLOOR: Decimal = Decimal("100000")

    # === Logging ===
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="EXTRACTO_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def _normalize_log_level(cls, v: str) -> str:
        return str(v).strip().upper()

    @field_validator("REGEX_TIMEOUT")
    @classmethod
    def _positive_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("REGEX_TIMEOUT debe ser > 0")
        return v


@lru_cache(maxsize=1)
def get_settings() -> ExtractoSettings:
    return ExtractoSettings()
