"""Narrow browser interface used by the capture engine, backed by Playwright."""

import logging
from typing import Any, Mapping, Optional, Protocol, Sequence

from playwright.async_api import (
    Browser,
    ElementHandle,
    Error as PlaywrightError,
    Page,
    Playwright,
    TimeoutError as PlaywrightTimeoutError,
    async_playwright,
)

from og_capture.api.config import ViewportProfile
from og_capture.core.geometry import BoundingBox, Clip, Viewport

logger = logging.getLogger(__name__)

CHILDREN_SELECTOR = ":scope > *"


class BrowserOperationError(Exception):
    """Raised when a browser call fails."""

    pass


class BrowserTimeout(BrowserOperationError):
    """Raised when a browser call exceeds its timeout."""

    pass


class PreviewElement(Protocol):
    async def children(self) -> list["PreviewElement"]: ...

    async def bounding_box(self) -> Optional[BoundingBox]: ...

    async def screenshot(self) -> bytes: ...

    async def dispose(self) -> None: ...


class PreviewPage(Protocol):
    async def navigate(self, url: str, timeout_ms: int) -> None: ...

    async def wait_for_selector(
        self, selector: str, timeout_ms: int
    ) -> Optional[PreviewElement]: ...

    async def screenshot(self, clip: Clip) -> bytes: ...

    def viewport(self) -> Optional[Viewport]: ...

    async def close(self) -> None: ...


class PreviewBrowser(Protocol):
    async def new_page(self, viewport: ViewportProfile) -> PreviewPage: ...

    async def close(self) -> None: ...


async def _call(operation: str, awaitable: Any) -> Any:
    """Await a Playwright call, translating its errors."""
    try:
        return await awaitable
    except PlaywrightTimeoutError as e:
        raise BrowserTimeout(f"{operation} timed out: {e}") from e
    except PlaywrightError as e:
        raise BrowserOperationError(f"{operation} failed: {e}") from e


class PlaywrightElement:
    """PreviewElement over a Playwright element handle."""

    def __init__(self, handle: ElementHandle):
        self._handle = handle

    async def children(self) -> list[PreviewElement]:
        handles = await _call(
            "query children", self._handle.query_selector_all(CHILDREN_SELECTOR)
        )
        return [PlaywrightElement(handle) for handle in handles]

    async def bounding_box(self) -> Optional[BoundingBox]:
        box = await _call("bounding box", self._handle.bounding_box())
        return BoundingBox.from_mapping(box)

    async def screenshot(self) -> bytes:
        data: bytes = await _call("element screenshot", self._handle.screenshot(type="png"))
        return data

    async def dispose(self) -> None:
        await _call("dispose", self._handle.dispose())


class PlaywrightPage:
    """PreviewPage over a Playwright page."""

    def __init__(self, page: Page):
        self._page = page

    async def navigate(self, url: str, timeout_ms: int) -> None:
        await _call(
            "navigation",
            self._page.goto(url, wait_until="networkidle", timeout=timeout_ms),
        )

    async def wait_for_selector(
        self, selector: str, timeout_ms: int
    ) -> Optional[PreviewElement]:
        handle = await _call(
            "wait for selector",
            self._page.wait_for_selector(selector, state="attached", timeout=timeout_ms),
        )
        if handle is None:
            return None
        return PlaywrightElement(handle)

    async def screenshot(self, clip: Clip) -> bytes:
        data: bytes = await _call(
            "page screenshot", self._page.screenshot(type="png", clip=clip.as_dict())
        )
        return data

    def viewport(self) -> Optional[Viewport]:
        size = self._page.viewport_size
        if not size:
            return None
        return Viewport(width=size["width"], height=size["height"])

    async def close(self) -> None:
        await _call("page close", self._page.close())


class PlaywrightBrowser:
    """PreviewBrowser owning a Playwright driver and one Chromium process."""

    def __init__(self, playwright: Playwright, browser: Browser):
        self._playwright = playwright
        self._browser = browser

    async def new_page(self, viewport: ViewportProfile) -> PreviewPage:
        page = await _call(
            "new page",
            self._browser.new_page(
                viewport={"width": viewport.width, "height": viewport.height},
                device_scale_factor=viewport.device_scale_factor,
            ),
        )
        return PlaywrightPage(page)

    async def close(self) -> None:
        try:
            await _call("browser close", self._browser.close())
        finally:
            await self._playwright.stop()


async def launch_chromium(
    executable_path: Optional[str] = None,
    args: Sequence[str] = (),
    env: Optional[Mapping[str, str]] = None,
) -> PreviewBrowser:
    """
    Start the Playwright driver and launch headless Chromium.

    Args:
        executable_path: Chromium binary to use; Playwright's bundled one if None
        args: Extra command line flags
        env: Environment for the browser process; inherited if None

    Returns:
        PreviewBrowser owning both the driver and the browser process
    """
    playwright = await async_playwright().start()
    try:
        browser = await _call(
            "browser launch",
            playwright.chromium.launch(
                headless=True,
                executable_path=executable_path,
                args=list(args),
                env=dict(env) if env is not None else None,
            ),
        )
    except BaseException:
        await playwright.stop()
        raise

    logger.debug(f"Launched chromium {browser.version}")
    return PlaywrightBrowser(playwright, browser)
