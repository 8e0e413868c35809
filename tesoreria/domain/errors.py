"""
Error taxonomy shared by every use case.

All errors are detected locally and raised synchronously; nothing is retried.
The HTTP layer maps them to 400 / 403 / 409 / 404.
"""


class TesoreriaError(Exception):
    """Base class for domain errors"""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(TesoreriaError, ValueError):
    """Entrada mal formada, faltante o fuera de rango"""

    def __init__(self, message: str, fields: dict[str, str] | None = None):
        super().__init__(message)
        self.fields = fields or {}


class ForbiddenError(TesoreriaError):
    """El rol (o el usuario) no puede realizar la acción"""
    pass


class ConflictError(TesoreriaError):
    """La operación no es válida en el estado actual"""
    pass


class NotFoundError(TesoreriaError):
    """No existe, o no pertenece a la organización del usuario"""
    pass
