"""Preview element capture: navigate, locate, measure, crop and screenshot."""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Optional

from og_capture.api.config import (
    CLIP_PADDING_PX,
    NAVIGATION_TIMEOUT_MS,
    PREVIEW_SELECTOR,
    SELECTOR_TIMEOUT_MS,
    Settings,
)
from og_capture.core.browser import (
    BrowserOperationError,
    BrowserTimeout,
    PreviewElement,
    PreviewPage,
)
from og_capture.core.errors import (
    ElementNotFound,
    NavigationError,
    NavigationTimeout,
    ScreenshotError,
)
from og_capture.core.geometry import BoundingBox, compute_clip, is_usable_box
from og_capture.core.runtime import BrowserRuntimeProvider
from og_capture.core.target import ResolvedTarget
from og_capture.utils.metrics import elapsed_ms, log_duration
from og_capture.utils.png import InvalidPngError, png_dimensions

logger = logging.getLogger(__name__)


@dataclass
class CaptureResult:
    """Complete PNG of a preview element."""

    png_bytes: bytes
    width: int
    height: int
    strategy: str  # "clip" or "element"


async def _dispose_quietly(element: PreviewElement) -> None:
    try:
        await element.dispose()
    except Exception as e:
        logger.debug(f"Ignoring error while disposing element handle: {e}")


class PreviewCaptureEngine:
    """Captures the preview element of a page as a tightly cropped PNG."""

    def __init__(
        self,
        runtime: BrowserRuntimeProvider,
        selector: str = PREVIEW_SELECTOR,
        navigation_timeout_ms: int = NAVIGATION_TIMEOUT_MS,
        selector_timeout_ms: int = SELECTOR_TIMEOUT_MS,
        padding: int = CLIP_PADDING_PX,
    ):
        self.runtime = runtime
        self.selector = selector
        self.navigation_timeout_ms = navigation_timeout_ms
        self.selector_timeout_ms = selector_timeout_ms
        self.padding = padding

    @classmethod
    def from_settings(
        cls, runtime: BrowserRuntimeProvider, settings: Settings
    ) -> "PreviewCaptureEngine":
        return cls(
            runtime=runtime,
            selector=settings.preview_selector,
            navigation_timeout_ms=settings.navigation_timeout_ms,
            selector_timeout_ms=settings.selector_timeout_ms,
            padding=settings.clip_padding_px,
        )

    async def capture(
        self, target: ResolvedTarget, selector: Optional[str] = None
    ) -> CaptureResult:
        """
        Capture the element matching ``selector`` on the target page.

        The browser session is closed before this returns or raises.

        Args:
            target: Resolved preview URL
            selector: CSS selector of the preview element (configured one if None)

        Returns:
            CaptureResult with validated PNG bytes

        Raises:
            NavigationTimeout: If the page did not settle in time
            NavigationError: If the page failed to load
            ElementNotFound: If the selector never appeared
            ScreenshotError: If measuring or screenshotting failed
            InfrastructureError: If the browser could not be started
        """
        selector = selector or self.selector
        start = time.perf_counter()

        async with self.runtime.session() as page:
            with log_duration(logger, "navigation"):
                await self._navigate(page, target)

            element = await self._locate(page, target, selector)
            try:
                png_bytes, strategy = await self._shoot(page, element)
            finally:
                await _dispose_quietly(element)

        try:
            width, height = png_dimensions(png_bytes)
        except InvalidPngError as e:
            raise ScreenshotError(f"Browser returned an invalid PNG: {e}") from e

        logger.info(
            f"Captured {target.url}: {width}x{height} via {strategy} "
            f"({len(png_bytes)} bytes, {elapsed_ms(start)}ms)"
        )
        return CaptureResult(
            png_bytes=png_bytes, width=width, height=height, strategy=strategy
        )

    async def _navigate(self, page: PreviewPage, target: ResolvedTarget) -> None:
        try:
            await page.navigate(target.url, self.navigation_timeout_ms)
        except BrowserTimeout as e:
            raise NavigationTimeout(
                f"Timed out after {self.navigation_timeout_ms}ms loading {target.url}"
            ) from e
        except BrowserOperationError as e:
            raise NavigationError(f"Failed to load {target.url}: {e}") from e

    async def _locate(
        self, page: PreviewPage, target: ResolvedTarget, selector: str
    ) -> PreviewElement:
        try:
            element = await page.wait_for_selector(selector, self.selector_timeout_ms)
        except BrowserTimeout:
            element = None
        except BrowserOperationError as e:
            raise NavigationError(f"Failed waiting for {selector}: {e}") from e

        if element is None:
            raise ElementNotFound(selector, target.url)
        return element

    async def _measure(self, element: PreviewElement) -> Optional[list[Optional[BoundingBox]]]:
        """Read the boxes of the element's direct children; None if it has none."""
        children = await element.children()
        if not children:
            return None

        async def read_box(child: PreviewElement) -> Optional[BoundingBox]:
            try:
                return await child.bounding_box()
            finally:
                await _dispose_quietly(child)

        results = await asyncio.gather(
            *(read_box(child) for child in children), return_exceptions=True
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result
        return list(results)  # type: ignore[arg-type]

    async def _shoot(self, page: PreviewPage, element: PreviewElement) -> tuple[bytes, str]:
        try:
            boxes = await self._measure(element)

            if boxes is None:
                logger.debug("Preview element has no children, capturing element")
                return await element.screenshot(), "element"

            usable = [box for box in boxes if is_usable_box(box)]
            if not usable:
                logger.debug(
                    f"No usable geometry among {len(boxes)} children, capturing element"
                )
                return await element.screenshot(), "element"

            clip = compute_clip(usable, page.viewport(), self.padding)
            logger.debug(f"Clip from {len(usable)}/{len(boxes)} child boxes: {clip}")
            return await page.screenshot(clip), "clip"

        except BrowserOperationError as e:
            raise ScreenshotError(f"Failed to capture preview element: {e}") from e
