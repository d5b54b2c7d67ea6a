from __future__ import annotations

from typing import Optional

from .normalize import strip_accents

# Impuestos y cargos: siempre salen de la cuenta aunque mencionen "creditos"
# (p.ej. "IMPUESTO DEBITOS Y CREDITOS")
CHARGES = (
    "impuesto",
    "imp.",
    "comision",
    "percepcion",
    "perc.",
    " iva ",
    "sellos",
    "multa",
    "retiro",
)

INFLOW = (
    "credito",
    "cred ",
    "transferencia recibida",
    "transf recibida",
    "deposito",
    "acreditacion",
    "acred",
    "haberes recib",
    "cobro",
    "cobranza",
    "devol",
    "rescate",
    "valores",
    "echeq",
    "clearing",
    "intereses ganados",
)

OUTFLOW = (
    "debito",
    "deb.",
    "db.",
    "transferencia realizada",
    "transferencia pagos a terceros",
    "pago",
    "compra",
    "suscripcion",
    "embargo",
    "extraccion",
)


def infer_sign(description: str) -> Optional[int]:
    """
    Signo probable según palabras clave de la descripción:
    -1 débito, +1 crédito, None si no hay señales.

    Orden de prioridad:
    1) cargos/impuestos (débito)
    2) señales de ingreso
    3) señales de egreso
    Solo se usa cuando no hay saldo previo para reconciliar.
    """
    d = " " + strip_accents(description or "").lower() + " "
    if not d.strip():
        return None

    if any(k in d for k in CHARGES):
        return -1
    if any(k in d for k in INFLOW):
        return 1
    if any(k in d for k in OUTFLOW):
        return -1
    return None