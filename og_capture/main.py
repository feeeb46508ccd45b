"""Main FastAPI application."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded

from og_capture.api.config import settings
from og_capture.api.routes import capture
from og_capture.core.runtime import BrowserRuntimeProvider
from og_capture.utils.metrics import configure_logging

logger = logging.getLogger(__name__)


async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> Response:
    """Handle rate limit exceeded errors."""
    from fastapi.responses import PlainTextResponse

    return PlainTextResponse(
        status_code=429,
        content="Rate limit exceeded. Please try again later.",
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application lifespan events."""
    configure_logging(log_level=settings.log_level, log_format=settings.log_format)
    logger.info("Starting application...")

    # Single runtime per process; it owns the shared Chromium binary cache
    app.state.runtime = BrowserRuntimeProvider.from_settings(settings)
    logger.info("Application started successfully")

    yield

    logger.info("Shutting down application...")
    logger.info("Application shut down successfully")


app = FastAPI(
    title="OG Preview Capture Service",
    description="Renders the preview element of a docs page as a cacheable PNG",
    version="1.0.0",
    lifespan=lifespan,
)

app.state.limiter = capture.limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_handler)  # type: ignore[arg-type]

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET"],
    allow_headers=["*"],
)

app.include_router(capture.router)


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "service": "OG Preview Capture Service",
        "version": "1.0.0",
        "docs": "/docs",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "og_capture.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=True,
        log_level=settings.log_level.lower(),
    )
