"""
In-app notifications: types and message templates.

Templates are rendered with str.format; every notification row is
addressed to exactly one user.
"""
from enum import Enum


class NotificationType(str, Enum):
    SOLICITUD_CREADA = "solicitud_creada"
    SOLICITUD_APROBADA = "solicitud_aprobada"
    SOLICITUD_RECHAZADA = "solicitud_rechazada"
    SOLICITUD_EJECUTADA = "solicitud_ejecutada"
    RECORDATORIO = "recordatorio"


REFERENCE_PAYMENT_REQUEST = "payment_request"

# template code -> type, title, message
TEMPLATES: dict[str, dict[str, str]] = {
    "REQUEST_SUBMITTED": {
        "type": NotificationType.SOLICITUD_CREADA.value,
        "title": "Solicitud creada",
        "message": '{creator} ha enviado la solicitud "{description}" para aprobación',
    },
    "REQUEST_APPROVED_CREATOR": {
        "type": NotificationType.SOLICITUD_APROBADA.value,
        "title": "Solicitud aprobada",
        "message": 'Tu solicitud "{description}" ha sido aprobada',
    },
    "REQUEST_APPROVED_TREASURY": {
        "type": NotificationType.SOLICITUD_APROBADA.value,
        "title": "Solicitud aprobada",
        "message": 'La solicitud "{description}" ha sido aprobada y está lista para ejecución',
    },
    "REQUEST_REJECTED": {
        "type": NotificationType.SOLICITUD_RECHAZADA.value,
        "title": "Solicitud rechazada",
        "message": 'Tu solicitud "{description}" ha sido rechazada: {comment}',
    },
    "REQUEST_EXECUTED_CREATOR": {
        "type": NotificationType.SOLICITUD_EJECUTADA.value,
        "title": "Pago ejecutado",
        "message": 'El pago de tu solicitud "{description}" ha sido ejecutado',
    },
    "REQUEST_EXECUTED_APPROVER": {
        "type": NotificationType.SOLICITUD_EJECUTADA.value,
        "title": "Pago ejecutado",
        "message": 'La solicitud "{description}" que aprobaste ha sido ejecutada',
    },
    "REQUEST_EXECUTED_PRESIDENTE": {
        "type": NotificationType.SOLICITUD_EJECUTADA.value,
        "title": "Pago ejecutado",
        "message": 'La solicitud "{description}" ha sido ejecutada',
    },
    "REQUEST_REMINDER": {
        "type": NotificationType.RECORDATORIO.value,
        "title": "Recordatorio: solicitud pendiente",
        "message": 'La solicitud "{description}" de {creator} lleva más de {days} días pendiente de aprobación',
    },
}

UNKNOWN_CREATOR = "Un delegado"


def render(code: str, **ctx) -> tuple[str, str, str]:
    """Return (type, title, message) for a template code."""
    tmpl = TEMPLATES[code]
    return tmpl["type"], tmpl["title"].format(**ctx), tmpl["message"].format(**ctx)
