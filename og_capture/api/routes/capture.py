"""Preview capture API endpoint."""

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import PlainTextResponse, Response
from pydantic import ValidationError
from slowapi import Limiter
from slowapi.util import get_remote_address

from og_capture.api.config import settings
from og_capture.api.models import CaptureRequest, HealthResponse, RuntimeStatus
from og_capture.core.cache import apply_cache_headers
from og_capture.core.capture import PreviewCaptureEngine
from og_capture.core.errors import CaptureError, ElementNotFound, InvalidInput
from og_capture.core.runtime import BrowserRuntimeProvider, RuntimeMode
from og_capture.core.target import resolve_target_url
from og_capture.utils.query import (
    decode_query_value,
    get_string_query_param,
    is_truthy_query_param,
)

logger = logging.getLogger(__name__)

limiter = Limiter(key_func=get_remote_address, enabled=settings.rate_limit_enabled)

router = APIRouter(prefix="/api/v1")


def get_runtime_provider(request: Request) -> BrowserRuntimeProvider:
    """Get the process-wide runtime provider created at startup."""
    runtime: Optional[BrowserRuntimeProvider] = getattr(request.app.state, "runtime", None)
    if runtime is None:
        runtime = BrowserRuntimeProvider.from_settings(settings)
        request.app.state.runtime = runtime
    return runtime


def get_capture_engine(
    runtime: BrowserRuntimeProvider = Depends(get_runtime_provider),
) -> PreviewCaptureEngine:
    """Get capture engine bound to the shared runtime."""
    return PreviewCaptureEngine.from_settings(runtime, settings)


def get_docs_base_url() -> str:
    """Get origin used to resolve relative preview paths."""
    return settings.docs_base_url


def _error(status_code: int, message: str) -> PlainTextResponse:
    return PlainTextResponse(content=message, status_code=status_code)


@router.get("/capture")
@limiter.limit(f"{settings.rate_limit_per_minute}/minute")
@limiter.limit(f"{settings.rate_limit_per_hour}/hour")
async def capture_preview(
    request: Request,
    url: Optional[str] = Query(default=None, description="URL or docs path to capture"),
    fresh: Optional[list[str]] = Query(
        default=None, description="Bypass caching: bare flag, '1' or 'true'"
    ),
    build_time: Optional[str] = Query(
        default=None, alias="buildTime", description="Build fingerprint"
    ),
    engine: PreviewCaptureEngine = Depends(get_capture_engine),
    docs_base_url: str = Depends(get_docs_base_url),
) -> Response:
    """
    Capture the preview element of a docs page as a PNG.

    Returns the image with cache headers, or a plain-text error.
    """
    raw_url = get_string_query_param(url)
    if raw_url is None:
        return _error(400, "Missing `url` query param")

    try:
        capture_request = CaptureRequest(
            raw_url=raw_url,
            fresh=is_truthy_query_param(fresh),
            build_time=decode_query_value(get_string_query_param(build_time)),
        )
        target = resolve_target_url(capture_request.raw_url, docs_base_url)
    except (InvalidInput, ValidationError) as e:
        logger.info(f"Rejected capture request for {raw_url!r}: {e}")
        return _error(400, str(e))

    try:
        result = await asyncio.wait_for(
            engine.capture(target), timeout=settings.request_timeout_seconds
        )

    except asyncio.TimeoutError:
        logger.error(f"Capture timeout after {settings.request_timeout_seconds}s")
        return _error(
            500,
            f"Capture timeout: processing took longer than "
            f"{settings.request_timeout_seconds}s",
        )

    except ElementNotFound as e:
        logger.warning(str(e))
        return _error(404, str(e))

    except CaptureError as e:
        logger.error(f"OG screenshot error: {e}")
        return _error(500, str(e))

    except Exception as e:
        logger.error(f"Unexpected error capturing preview: {e}", exc_info=True)
        return _error(500, "An error occurred while generating the OG screenshot.")

    headers = {
        "Content-Disposition": 'inline; filename="og-image.png"',
        "X-Image-Width": str(result.width),
        "X-Image-Height": str(result.height),
    }
    apply_cache_headers(headers, capture_request.build_time, capture_request.fresh)

    return Response(content=result.png_bytes, media_type="image/png", headers=headers)


@router.get("/health", response_model=HealthResponse)
async def health_check(
    runtime: BrowserRuntimeProvider = Depends(get_runtime_provider),
) -> HealthResponse:
    """
    Health check endpoint.

    Reports the browser runtime mode and binary cache state.
    """
    status = runtime.status()
    overall = "healthy"
    if runtime.mode is RuntimeMode.MANAGED and not status["executable_cached"]:
        # First managed capture will pay for the download
        overall = "degraded"

    return HealthResponse(status=overall, runtime=RuntimeStatus(**status))
