"""Application configuration and constants."""

from dataclasses import dataclass
from typing import Optional, Tuple

from pydantic_settings import BaseSettings, SettingsConfigDict


@dataclass(frozen=True)
class ViewportProfile:
    """Viewport the preview page is rendered in."""

    width: int
    height: int
    device_scale_factor: float


# Open Graph image size, rendered at 2x so text and borders stay crisp
OG_VIEWPORT = ViewportProfile(width=1200, height=630, device_scale_factor=2)

DEFAULT_DOCS_BASE_URL = "https://ui-web-nine.vercel.app"
PREVIEW_SELECTOR = ".sl-bejamas-component-preview"
PREVIEW_MODE_PARAM = ("og", "1")

# Serverless Chromium pack: brotli-compressed binary plus bundled libraries and fonts
DEFAULT_CHROMIUM_PACK_URL = (
    "https://github.com/gabenunez/puppeteer-on-vercel/raw/refs/heads/main/"
    "example/chromium-dont-use-in-prod.tar"
)
CHROMIUM_PACK_FILENAME = "chromium-pack.tar"

# Flags for running Chromium inside a constrained serverless sandbox
MANAGED_CHROMIUM_ARGS: Tuple[str, ...] = (
    "--allow-running-insecure-content",
    "--autoplay-policy=user-gesture-required",
    "--disable-component-update",
    "--disable-domain-reliability",
    "--disable-features=AudioServiceOutOfProcess,IsolateOrigins,site-per-process",
    "--disable-print-preview",
    "--disable-setuid-sandbox",
    "--disable-site-isolation-trials",
    "--disable-speech-api",
    "--disable-web-security",
    "--disk-cache-size=33554432",
    "--enable-features=SharedArrayBuffer",
    "--hide-scrollbars",
    "--ignore-gpu-blocklist",
    "--in-process-gpu",
    "--mute-audio",
    "--no-default-browser-check",
    "--no-pings",
    "--no-sandbox",
    "--no-zygote",
    "--use-gl=angle",
    "--use-angle=swiftshader",
    "--window-size=1920,1080",
    "--single-process",
)

NAVIGATION_TIMEOUT_MS = 15_000
SELECTOR_TIMEOUT_MS = 5_000
CLIP_PADDING_PX = 8
REQUEST_TIMEOUT_SECONDS = 30
BINARY_DOWNLOAD_TIMEOUT_SECONDS = 120


class Settings(BaseSettings):
    """Application configuration from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    docs_base_url: str = DEFAULT_DOCS_BASE_URL
    preview_selector: str = PREVIEW_SELECTOR

    vercel: Optional[str] = None
    vercel_project_production_url: Optional[str] = None
    chromium_pack_url: Optional[str] = None
    binary_download_timeout_seconds: int = BINARY_DOWNLOAD_TIMEOUT_SECONDS

    viewport_width: int = OG_VIEWPORT.width
    viewport_height: int = OG_VIEWPORT.height
    device_scale_factor: float = OG_VIEWPORT.device_scale_factor

    navigation_timeout_ms: int = NAVIGATION_TIMEOUT_MS
    selector_timeout_ms: int = SELECTOR_TIMEOUT_MS
    clip_padding_px: int = CLIP_PADDING_PX
    request_timeout_seconds: int = REQUEST_TIMEOUT_SECONDS

    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_cors_origins: str = "*"

    log_level: str = "INFO"
    log_format: str = "json"

    rate_limit_enabled: bool = True
    rate_limit_per_minute: int = 60
    rate_limit_per_hour: int = 1000

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins from comma-separated string."""
        if self.api_cors_origins == "*":
            return ["*"]
        return [origin.strip() for origin in self.api_cors_origins.split(",")]

    @property
    def is_production(self) -> bool:
        """Whether the deployment flag marks this process as production."""
        return self.vercel == "1"

    @property
    def resolved_chromium_pack_url(self) -> str:
        """
        URL of the Chromium pack used in managed mode.

        An explicit CHROMIUM_PACK_URL wins; otherwise the pack is expected to
        be served by the production deployment itself.
        """
        if self.chromium_pack_url:
            return self.chromium_pack_url
        if self.vercel_project_production_url:
            return (
                f"https://{self.vercel_project_production_url}/{CHROMIUM_PACK_FILENAME}"
            )
        return DEFAULT_CHROMIUM_PACK_URL

    @property
    def viewport(self) -> ViewportProfile:
        """Viewport profile assembled from the individual settings."""
        return ViewportProfile(
            width=self.viewport_width,
            height=self.viewport_height,
            device_scale_factor=self.device_scale_factor,
        )


settings = Settings()
