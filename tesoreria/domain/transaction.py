"""
Ledger entries (movimientos): ingresos y egresos

amount is a positive integer in the minor currency unit (CLP has no decimals).
Entries with source=payment_request are written only by the execution of a
payment request and are read-only afterwards.
"""
from datetime import date
from enum import Enum
from typing import Any

from tesoreria.utils.validation import is_positive_int, parse_iso_date, validate_rut


class TransactionType(str, Enum):
    INGRESO = "ingreso"
    EGRESO = "egreso"


class TransactionSource(str, Enum):
    MANUAL = "manual"
    PAYMENT_REQUEST = "payment_request"


# Fields a manual entry may change after creation
EDITABLE_FIELDS = (
    "amount",
    "category_id",
    "description",
    "date",
    "payer_name",
    "payer_rut",
    "beneficiary",
)


def validate_transaction_fields(
    type_: str | None,
    amount: Any,
    date_value: Any,
    payer_rut: str | None = None,
) -> dict[str, str]:
    """
    Validate ledger entry input.

    Returns:
        dict field -> message (empty when valid)
    """
    errors: dict[str, str] = {}
    if not type_:
        errors["type"] = "El tipo es requerido"
    elif type_ not in (TransactionType.INGRESO.value, TransactionType.EGRESO.value):
        errors["type"] = "Tipo debe ser ingreso o egreso"

    if amount is None or amount == "":
        errors["amount"] = "El monto es requerido"
    elif not is_positive_int(amount):
        errors["amount"] = "Monto debe ser un número entero positivo"

    if date_value is None or date_value == "":
        errors["date"] = "La fecha es requerida"
    elif parse_iso_date(date_value) is None:
        errors["date"] = "La fecha ingresada no es válida"

    if payer_rut and payer_rut.strip() and not validate_rut(payer_rut.strip()):
        errors["payer_rut"] = "El RUT ingresado no es válido. Formato: 12.345.678-9"
    return errors


def _jsonable(value: Any) -> Any:
    if isinstance(value, date):
        return value.isoformat()
    return value


class TransactionAudit:
    """Builders for the `changes` payload of ledger audit entries"""

    @staticmethod
    def snapshot(tx: Any) -> dict[str, Any]:
        return {
            "type": tx.type,
            "amount": tx.amount,
            "category_id": tx.category_id,
            "description": tx.description,
            "date": _jsonable(tx.date),
            "payer_name": tx.payer_name,
            "payer_rut": tx.payer_rut,
            "beneficiary": tx.beneficiary,
            "source": tx.source,
        }

    @staticmethod
    def diff(before: dict[str, Any], after: dict[str, Any]) -> dict[str, Any]:
        """{field: {"from", "to"}} for every field whose value changed"""
        changes: dict[str, Any] = {}
        for key, new_value in after.items():
            old_value = before.get(key)
            if _jsonable(old_value) != _jsonable(new_value):
                changes[key] = {"from": _jsonable(old_value), "to": _jsonable(new_value)}
        return changes
