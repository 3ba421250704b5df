from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse

from finacco.api.http import (
    account_router, admin_router, api_keys_router, auth_router,
    documents_router, health_router, tax_assistant_router,
)
from finacco.core.config import settings
from finacco.core.db import init_db
from finacco.core.errors import register_exception_handlers
from finacco.core.logging import configure_logging


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    yield


def create_app(use_lifespan: bool = True) -> FastAPI:
    configure_logging(settings.log_level)

    app = FastAPI(
        title="Finacco Solutions",
        description="Accounts, document templates and the AI tax assistant",
        version="1.0.0",
        lifespan=lifespan if use_lifespan else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.site_url],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(account_router)
    app.include_router(documents_router)
    app.include_router(admin_router)
    app.include_router(tax_assistant_router)
    app.include_router(api_keys_router)

    @app.get("/")
    async def root():
        return {
            "message": "Finacco Solutions API",
            "version": "1.0.0",
            "docs": "/docs",
            "health": "/health",
        }

    # Registered last so every real route wins
    @app.get("/{path:path}", include_in_schema=False)
    async def fallback(path: str):
        return RedirectResponse("/")

    return app


app = create_app()
