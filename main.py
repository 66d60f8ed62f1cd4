"""
User account backend — application entry point.
"""

from __future__ import annotations

import logging
import pathlib
import sys
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from api.middleware import register_exception_handlers, register_middleware
from auth.jwt import TokenIssuer
from auth.routes import router as users_router
from config.settings import Settings, config
from connectors.base import BaseUploader
from connectors.cloudinary import CloudinaryUploader
from core.profile import ProfileService
from core.session_manager import SessionManager
from database.session import Database
from database.user_store import UserStore

logging.basicConfig(
    level=logging.DEBUG if config.debug else logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(name)s — %(message)s",
    stream=sys.stdout,
)
for _noisy in ("httpcore", "httpx", "urllib3", "sqlalchemy.engine", "aiosqlite", "asyncio"):
    logging.getLogger(_noisy).setLevel(logging.WARNING)
logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    uploader: Optional[BaseUploader] = None,
) -> FastAPI:
    settings = settings or config
    settings.check_secrets()

    app = FastAPI(
        title="User Account Backend",
        version="1.0.0",
        description="Registration, login and refresh-token sessions.",
    )

    database = Database(settings.database_url, **settings.engine_options())
    store = UserStore(database, timeout=settings.store_timeout_seconds)
    issuer = TokenIssuer.from_settings(settings)
    uploader = uploader or CloudinaryUploader.from_settings(settings)

    app.state.settings = settings
    app.state.database = database
    app.state.token_issuer = issuer
    app.state.session_manager = SessionManager(
        store, issuer, uploader, password_rounds=settings.bcrypt_rounds,
    )
    app.state.profile_service = ProfileService(store, uploader)

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_middleware(app)
    register_exception_handlers(app)

    # Routes
    app.include_router(users_router, prefix="/api/v1/users")

    public_dir = pathlib.Path(__file__).resolve().parent / "public"
    if public_dir.is_dir():
        app.mount("/static", StaticFiles(directory=str(public_dir)), name="public")

    @app.on_event("startup")
    async def on_startup():
        await database.connect()
        if settings.database_auto_create:
            await database.create_all()
        if not uploader.is_configured():
            logger.warning("Media uploader %s is not configured, uploads will fail", uploader.provider_name)
        logger.info("Application ready to accept requests.")

    @app.on_event("shutdown")
    async def on_shutdown():
        await database.close()

    return app


if __name__ == "__main__":
    uvicorn.run(
        "main:create_app",
        factory=True,
        host=config.host,
        port=config.port,
        reload=config.debug,
        log_level="debug" if config.debug else "info",
    )
