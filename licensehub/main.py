"""
FastAPI application factory.

Assembles the app, registers all routers and the kernel error handler,
and wires up the kernel lifecycle.  Database schema is managed by
Alembic, NOT create_all.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from licensehub.controllers.admin_controller import router as admin_router
from licensehub.controllers.auth_controller import router as auth_router
from licensehub.controllers.errors import register_error_handlers
from licensehub.controllers.license_controller import router as license_router
from licensehub.controllers.manage_controller import router as manage_router
from licensehub.controllers.system_controller import router as system_router
from licensehub.core.config import settings
from licensehub.kernel import Kernel, build_kernel

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


def create_app(kernel: Kernel | None = None) -> FastAPI:
    """
    Build the application.

    A pre-built kernel (tests) is used as-is and left for its owner to
    close; otherwise one is built on startup and closed on shutdown.
    NOTE: run `alembic upgrade head` before starting the app.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = getattr(app.state, "kernel", None) is None
        if owned:
            app.state.kernel = build_kernel()
            logger.info("Kernel started.")
        yield
        if owned:
            await app.state.kernel.close()
            logger.info("Kernel closed.")

    app = FastAPI(
        title=settings.APP_NAME,
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    if kernel is not None:
        app.state.kernel = kernel

    # ── Register routers ─────────────────────────────────────────────
    app.include_router(auth_router)
    app.include_router(license_router)
    app.include_router(manage_router)
    app.include_router(admin_router)
    app.include_router(system_router)
    register_error_handlers(app)

    # ── Health check ─────────────────────────────────────────────────
    @app.get("/health", tags=["Health"])
    async def health():
        return {"status": "ok"}

    return app


app = create_app()
