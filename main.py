from typing import Dict

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from auth.routes import router as auth_router
from transactions.transaction_routes import incomes_router, expenses_router
from users.user_routes import router as users_router
from settings.db import init_db, close_db
import logging
from settings.config import settings
from settings.logging_config import configure_logging
from settings.request_logging import RequestLogMiddleware
from pipeline.errors import PipelineError, ValidationError, ValidationFailure

logger = logging.getLogger(__name__)


def error_body(message: str, details) -> Dict:
    return {"success": False, "error": {"message": message, "details": details}}


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(PipelineError)
    async def pipeline_error_handler(request: Request, exc: PipelineError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=exc.body())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = [
            ValidationError(
                field=".".join(str(part) for part in err.get("loc", ())[1:]) or "request",
                message=err.get("msg", "Invalid value"),
                location=str(err.get("loc", ("body",))[0]),
            )
            for err in exc.errors()
        ]
        failure = ValidationFailure(errors)
        return JSONResponse(status_code=failure.status_code, content=failure.body())

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        details = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(details, details),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        details = "An internal error occurred" if settings.is_production else str(exc)
        return JSONResponse(status_code=500, content=error_body("Internal server error", details))


def get_app() -> FastAPI:
    configure_logging()
    logger.info("Starting Finance Tracker API")
    app = FastAPI(title="Finance Tracker API")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ALLOW_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLogMiddleware)
    register_exception_handlers(app)

    # DB lifecycle
    @app.on_event("startup")
    async def on_startup() -> None:
        logger.info("Initializing database")
        await init_db()

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        logger.info("Closing database")
        await close_db()

    # Routers
    app.include_router(auth_router)
    app.include_router(incomes_router)
    app.include_router(expenses_router)
    app.include_router(users_router)
    logger.info("Routers initialized successfully")

    # Health
    @app.get("/health")
    async def health_check() -> Dict[str, str]:
        return {"status": "ok"}

    logger.info("API started")
    return app


# ASGI app instance
app = get_app()
