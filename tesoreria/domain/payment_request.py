"""
Payment request (solicitud de pago) state machine.

States:
  borrador  - draft, editable by its creator
  pendiente - submitted, awaiting presidente approval
  aprobado  - approved, awaiting execution by secretaria
  rechazado - rejected with a mandatory comment (terminal)
  ejecutado - paid, ledger entry created (terminal)

Each state owns a fixed set of payload fields. validate_state_payload()
rejects any combination where fields of another state are populated, so a
row cannot claim to be both approved and rejected.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any

from tesoreria.domain.permissions import Action


class PaymentRequestStatus(str, Enum):
    BORRADOR = "borrador"
    PENDIENTE = "pendiente"
    APROBADO = "aprobado"
    RECHAZADO = "rechazado"
    EJECUTADO = "ejecutado"


TERMINAL_STATES = frozenset({PaymentRequestStatus.RECHAZADO, PaymentRequestStatus.EJECUTADO})

# Only drafts may change amount/description/beneficiary/category
EDITABLE_STATES = frozenset({PaymentRequestStatus.BORRADOR})


@dataclass(frozen=True)
class Transition:
    action: Action
    source: PaymentRequestStatus
    target: PaymentRequestStatus
    audit_action: str
    conflict_message: str


TRANSITIONS: dict[Action, Transition] = {
    Action.SUBMIT_PAYMENT_REQUEST: Transition(
        Action.SUBMIT_PAYMENT_REQUEST,
        PaymentRequestStatus.BORRADOR,
        PaymentRequestStatus.PENDIENTE,
        "submitted",
        "Solo se pueden enviar borradores",
    ),
    Action.APPROVE_PAYMENT_REQUEST: Transition(
        Action.APPROVE_PAYMENT_REQUEST,
        PaymentRequestStatus.PENDIENTE,
        PaymentRequestStatus.APROBADO,
        "approved",
        "Solo se pueden aprobar solicitudes pendientes",
    ),
    Action.REJECT_PAYMENT_REQUEST: Transition(
        Action.REJECT_PAYMENT_REQUEST,
        PaymentRequestStatus.PENDIENTE,
        PaymentRequestStatus.RECHAZADO,
        "rejected",
        "Solo se pueden rechazar solicitudes pendientes",
    ),
    Action.EXECUTE_PAYMENT_REQUEST: Transition(
        Action.EXECUTE_PAYMENT_REQUEST,
        PaymentRequestStatus.APROBADO,
        PaymentRequestStatus.EJECUTADO,
        "executed",
        "Solo se pueden ejecutar solicitudes aprobadas",
    ),
}


class PaymentRequestStateError(ValueError):
    """Payload fields do not match the status"""
    pass


_APPROVAL_FIELDS = ("approved_by", "approved_at")
_REJECTION_FIELDS = ("rejected_by", "rejected_at", "rejection_comment")
_EXECUTION_FIELDS = ("executed_by", "executed_at", "transaction_id", "proof_reference")

# status -> (required fields, forbidden fields)
_STATE_FIELDS: dict[PaymentRequestStatus, tuple[tuple[str, ...], tuple[str, ...]]] = {
    PaymentRequestStatus.BORRADOR: ((), _APPROVAL_FIELDS + _REJECTION_FIELDS + _EXECUTION_FIELDS),
    PaymentRequestStatus.PENDIENTE: ((), _APPROVAL_FIELDS + _REJECTION_FIELDS + _EXECUTION_FIELDS),
    PaymentRequestStatus.APROBADO: (_APPROVAL_FIELDS, _REJECTION_FIELDS + _EXECUTION_FIELDS),
    PaymentRequestStatus.RECHAZADO: (_REJECTION_FIELDS, _APPROVAL_FIELDS + _EXECUTION_FIELDS),
    PaymentRequestStatus.EJECUTADO: (_APPROVAL_FIELDS + _EXECUTION_FIELDS, _REJECTION_FIELDS),
}


def validate_state_payload(status: str, fields: dict[str, Any]) -> None:
    """
    Check that exactly the fields belonging to `status` are populated.

    Args:
        status: one of PaymentRequestStatus values
        fields: current values of the state-specific columns (missing keys count as None)

    Raises:
        PaymentRequestStateError
    """
    try:
        state = PaymentRequestStatus(status)
    except ValueError:
        raise PaymentRequestStateError(f"Estado desconocido: {status}")

    required, forbidden = _STATE_FIELDS[state]
    for name in required:
        value = fields.get(name)
        if value is None or (isinstance(value, str) and not value.strip()):
            raise PaymentRequestStateError(f"Estado {state.value} requiere {name}")
    for name in forbidden:
        if fields.get(name) is not None:
            raise PaymentRequestStateError(f"Estado {state.value} no admite {name}")


def state_fields_of(obj: Any) -> dict[str, Any]:
    """Collect the state-specific attributes of a row-like object."""
    names = _APPROVAL_FIELDS + _REJECTION_FIELDS + _EXECUTION_FIELDS
    return {name: getattr(obj, name, None) for name in names}


def validate_request_fields(
    amount: Any,
    description: str | None,
    beneficiary: str | None,
) -> dict[str, str]:
    """
    Validate the editable fields of a request.

    Returns:
        dict field -> message (empty when everything is valid)
    """
    errors: dict[str, str] = {}
    if amount is None or amount == "":
        errors["amount"] = "El monto es requerido"
    elif isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        errors["amount"] = "Monto debe ser un número entero positivo"
    if not description or not description.strip():
        errors["description"] = "La descripción es requerida"
    if not beneficiary or not beneficiary.strip():
        errors["beneficiary"] = "El beneficiario es requerido"
    return errors


class PaymentRequestAudit:
    """Builders for the `changes` payload of payment request audit entries"""

    @staticmethod
    def created(
        status: str,
        amount: int,
        description: str,
        beneficiary: str,
        category_id: int | None,
    ) -> dict[str, Any]:
        return {
            "status": {"from": None, "to": status},
            "amount": amount,
            "description": description,
            "beneficiary": beneficiary,
            "category_id": category_id,
            "comment": "Solicitud creada",
        }

    @staticmethod
    def edited(old: dict[str, Any], new: dict[str, Any]) -> dict[str, Any]:
        """Diff of the editable fields: {field: {"from", "to"}}"""
        diff: dict[str, Any] = {}
        for key, new_value in new.items():
            if old.get(key) != new_value:
                diff[key] = {"from": old.get(key), "to": new_value}
        diff["comment"] = "Solicitud editada"
        return diff

    @staticmethod
    def transition(
        transition: Transition,
        comment: str | None = None,
        **extra: Any,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "status": {"from": transition.source.value, "to": transition.target.value},
        }
        if comment:
            payload["comment"] = comment
        payload.update(extra)
        return payload
