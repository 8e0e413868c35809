"""
Categories (categorías) for ingresos and egresos
"""
from enum import Enum


class CategoryType(str, Enum):
    INGRESO = "ingreso"
    EGRESO = "egreso"


# Created for every new organization
DEFAULT_INCOME_CATEGORIES = ["Cuota Mensual", "Evento", "Taller", "Donación", "Otro"]
DEFAULT_EXPENSE_CATEGORIES = ["Materiales", "Servicios", "Eventos", "Infraestructura", "Otro"]

MAX_NAME_LENGTH = 100


def default_categories() -> list[tuple[str, CategoryType]]:
    return (
        [(name, CategoryType.INGRESO) for name in DEFAULT_INCOME_CATEGORIES]
        + [(name, CategoryType.EGRESO) for name in DEFAULT_EXPENSE_CATEGORIES]
    )
