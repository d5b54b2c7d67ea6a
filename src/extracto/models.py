from __future__ import annotations

import datetime
from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, model_validator
from pydantic.alias_generators import to_camel

TxType = Literal["debit", "credit"]


def type_for(amount: Decimal) -> TxType:
    return "credit" if amount >= 0 else "debit"


class _Model(BaseModel):
    # snake_case en Python, camelCase en la salida (accountNumber, isSuspicious...)
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Transaction(_Model):
    date: datetime.date = Field(..., description="Fecha del movimiento, sin hora")
    description: str = Field("", description="Descripción limpia/canónica para la UI")
    original_description: Optional[str] = Field(None, description="Texto tal cual salió del PDF")
    amount: Decimal = Field(..., description="Signed amount. Negative=debit, Positive=credit")
    type: TxType = "debit"
    balance: Decimal = Field(..., description="Saldo impreso por el banco luego del movimiento")
    is_suspicious: bool = False
    suggested_amount: Optional[Decimal] = None

    # los completa el categorizador externo
    category: Optional[str] = None
    subcategory: Optional[str] = None
    category_source: Optional[str] = None
    category_rule_id: Optional[str] = None

    _explicit_sign: bool = PrivateAttr(default=False)

    @classmethod
    def create(
        cls,
        date: datetime.date,
        amount: Decimal,
        balance: Decimal,
        description: str = "",
        original_description: Optional[str] = None,
        explicit_sign: bool = False,
    ) -> "Transaction":
        t = cls(
            date=date,
            description=description,
            original_description=original_description,
            amount=amount,
            balance=balance,
        )
        t.mark_explicit_sign(explicit_sign)
        return t

    @model_validator(mode="after")
    def _sync_type(self) -> "Transaction":
        self.type = type_for(self.amount)
        return self

    def set_amount(self, value: Decimal) -> None:
        """Cambia el monto manteniendo `type` consistente con el signo."""
        self.amount = value
        self.type = type_for(value)

    @property
    def has_explicit_sign(self) -> bool:
        """True si el token del monto traía '-' (prefijo o sufijo) en el PDF."""
        return self._explicit_sign

    def mark_explicit_sign(self, explicit: bool = True) -> None:
        self._explicit_sign = explicit


class AccountStatement(_Model):
    account_number: str = ""
    currency: str = "ARS"
    opening_balance: Optional[Decimal] = None
    closing_balance: Optional[Decimal] = None
    transactions: List[Transaction] = Field(default_factory=list)


class BankStatement(_Model):
    bank: str
    period_start: Optional[datetime.date] = None
    period_end: Optional[datetime.date] = None
    accounts: List[AccountStatement] = Field(default_factory=list)

    def all_transactions(self) -> List[Transaction]:
        return [t for a in self.accounts for t in a.transactions]

    def fill_period_from_transactions(self) -> None:
        """
        Completa el período con min/max de fechas de todas las cuentas.
        Las fechas explícitas del encabezado (si las hay) tienen prioridad.
        """
        dates = [t.date for t in self.all_transactions()]
        if not dates:
            return
        if self.period_start is None:
            self.period_start = min(dates)
        if self.period_end is None:
            self.period_end = max(dates)


class ParseResult(BaseModel):
    statement: BankStatement
    warnings: List[str] = Field(default_factory=list)

    def transaction_count(self) -> int:
        return sum(len(a.transactions) for a in self.statement.accounts)

    def to_payload(self) -> Dict[str, Any]:
        """
        Forma de salida independiente de la serialización:
        { bank, periodStart, periodEnd, accounts:[...], warnings:[...] }
        """
        payload = self.statement.model_dump(by_alias=True)
        payload["warnings"] = list(self.warnings)
        return _jsonable(payload)


def _jsonable(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_jsonable(v) for v in value]
    if isinstance(value, Decimal):
        return float(round(value, 2))
    if isinstance(value, datetime.date):
        return value.isoformat()
    return value
