# Filename: clouddrive/main.py
import logging
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

# Routers
from .routers import (
    auth as auth_router,
    billing as billing_router,
    files as files_router,
    realtime as realtime_router,
    root as root_router,
    shares as shares_router,
    users as users_router,
    versions as versions_router,
)
from .config import settings
from .context import AppContext
from .logger import setup_logging

logger = logging.getLogger(__name__)


def _split(value: str):
    return ["*"] if value == "*" else [v.strip() for v in value.split(",") if v.strip()]


def create_app(context: Optional[AppContext] = None) -> FastAPI:
    setup_logging(settings.log_level)
    app = FastAPI(title=settings.app_name, version=settings.app_version, debug=settings.debug)
    app.state.context = context or AppContext.from_settings(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_split(settings.cors_allow_origins),
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=_split(settings.cors_allow_methods),
        allow_headers=_split(settings.cors_allow_headers),
    )

    app.include_router(auth_router.router)
    # files before versions: /blob/{token} must win over /{file_id}/...
    app.include_router(files_router.router)
    app.include_router(versions_router.router)
    app.include_router(shares_router.router)
    app.include_router(users_router.router)
    app.include_router(billing_router.router)
    app.include_router(root_router.router)
    app.include_router(realtime_router.router)

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": jsonable_encoder(exc.errors())},
        )

    @app.exception_handler(SQLAlchemyError)
    async def database_error(request: Request, exc: SQLAlchemyError):
        logger.error("database error on %s %s", request.method, request.url.path, exc_info=exc)
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"detail": "Internal server error"})

    @app.on_event("startup")
    def on_startup():
        app.state.context.init()
        logger.info("%s %s started", settings.app_name, settings.app_version)

    @app.on_event("shutdown")
    def on_shutdown():
        app.state.context.dispose()

    return app


app = create_app()
