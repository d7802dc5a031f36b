"""
webcron - FastAPI application.

Serves the web cron trigger and runs opportunistic web-scope passes after
ordinary page requests.
"""
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from starlette.background import BackgroundTask
import logging

from webcron.core.config import settings
from webcron.core.memory.db import init_db
from webcron.core.api import cron
from webcron.core.cron.models import Scope
from webcron.core.cron.service import get_cron

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# Lifespan event handlers
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle application startup and shutdown."""
    logger.info("Initializing database...")
    init_db()
    logger.info(
        "webcron binding on %s:%s with %s cron job(s)",
        settings.api_host,
        settings.api_port,
        len(get_cron().jobs),
    )
    yield
    logger.info("webcron shutting down")


app = FastAPI(
    title="webcron",
    description="Cron coordinator with web and CLI triggers",
    version="0.1.0",
    lifespan=lifespan,
)


def _run_web_cron() -> None:
    get_cron().run(Scope.WEB)


# Opportunistic cron: after a successful GET page request, run a web pass
# once the response has been sent.
@app.middleware("http")
async def web_cron_listener(request: Request, call_next):
    """Attach a web-scope cron pass to successful GET responses outside /_*."""
    response = await call_next(request)
    if (
        settings.cron_web_listener
        and request.method == "GET"
        and not request.url.path.startswith("/_")
        and response.status_code < 400
        and getattr(response, "background", None) is None
    ):
        response.background = BackgroundTask(_run_web_cron)
    return response


# Request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all HTTP requests. Cron trigger requests at DEBUG to reduce log spam."""
    path = request.url.path
    level = logger.debug if path.startswith("/_cron") else logger.info
    level(f"{request.method} {path}")
    response = await call_next(request)
    level(f"{request.method} {path} - {response.status_code}")
    return response


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle general exceptions."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": "Internal server error",
            "error": str(exc) if settings.debug else None,
        },
    )


app.include_router(cron.router)


@app.get("/")
async def root():
    """Root endpoint."""
    return {"name": "webcron", "status": "running"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "webcron.core.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
    )
