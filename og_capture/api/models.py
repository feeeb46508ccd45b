"""API request and response models."""

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class CaptureRequest(BaseModel):
    """Parameters of a single preview capture request."""

    model_config = ConfigDict(frozen=True)

    raw_url: str = Field(
        ..., min_length=1, description="Absolute URL or docs-relative path to capture"
    )
    fresh: bool = Field(default=False, description="Bypass HTTP caching for this response")
    build_time: Optional[str] = Field(
        default=None, description="Build fingerprint echoed as X-Build-Time"
    )


class RuntimeStatus(BaseModel):
    """Browser runtime state reported by the health check."""

    mode: Literal["managed", "local"]
    executable_cached: bool
    download_in_progress: bool


class HealthResponse(BaseModel):
    """Health check response."""

    status: Literal["healthy", "degraded"]
    runtime: RuntimeStatus
