"""
FastAPI application factory
"""
import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.sessions import SessionMiddleware

from tesoreria.api.v1 import auth, categories, dashboard, notifications, payment_requests, transactions, users
from tesoreria.config import get_settings
from tesoreria.domain.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from tesoreria.infrastructure.db.session import check_db_connection

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class ErrorLoggingMiddleware(BaseHTTPMiddleware):
    """Logs every unhandled exception with its traceback and answers 500"""

    async def dispatch(self, request, call_next):
        try:
            return await call_next(request)
        except Exception:
            tb_str = traceback.format_exc()
            logger.error("\n%s\nERROR on %s %s\n%s%s", "=" * 60, request.method, request.url.path, tb_str, "=" * 60)
            return JSONResponse({"detail": "Error interno del servidor"}, status_code=500)


def register_error_handlers(app: FastAPI) -> None:
    """Domain errors -> 400 / 403 / 404 / 409"""

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError):
        content = {"detail": exc.message}
        if exc.fields:
            content["fields"] = exc.fields
        return JSONResponse(status_code=400, content=content)

    @app.exception_handler(ForbiddenError)
    async def forbidden_handler(request: Request, exc: ForbiddenError):
        logger.info("Forbidden on %s %s: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=403, content={"detail": exc.message})

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=404, content={"detail": exc.message})

    @app.exception_handler(ConflictError)
    async def conflict_handler(request: Request, exc: ConflictError):
        logger.info("Conflict on %s %s: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=409, content={"detail": exc.message})


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    if settings.SCHEDULER_ENABLED:
        from tesoreria.application.scheduler import shutdown_scheduler, start_scheduler

        start_scheduler()
        try:
            yield
        finally:
            shutdown_scheduler()
    else:
        yield


def create_app() -> FastAPI:
    """
    Application factory - crea y configura la aplicación FastAPI

    Returns:
        FastAPI app configurada
    """
    settings = get_settings()

    app = FastAPI(
        title="Tesorería",
        debug=settings.DEBUG,
        lifespan=lifespan,
    )

    app.add_middleware(ErrorLoggingMiddleware)
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.SECRET_KEY
    )

    register_error_handlers(app)

    app.include_router(auth.router)
    app.include_router(payment_requests.router)
    app.include_router(transactions.router)
    app.include_router(categories.router)
    app.include_router(notifications.router)
    app.include_router(users.router)
    app.include_router(dashboard.router)

    # Health checks
    @app.get("/health", response_class=PlainTextResponse, tags=["system"])
    def health():
        """Health check endpoint"""
        return "ok"

    @app.get("/ready", response_class=PlainTextResponse, tags=["system"])
    def ready():
        """Readiness check endpoint (verifica la base de datos)"""
        check_db_connection()
        return "ok"

    return app


# Create app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "tesoreria.main:app",
        host="127.0.0.1",
        port=8000,
        reload=True,
    )
