"""Pytest configuration and fixtures."""

import asyncio
from io import BytesIO
from typing import Mapping, Optional, Sequence

import pytest
from PIL import Image

from og_capture.api.config import ViewportProfile
from og_capture.core.browser import BrowserTimeout
from og_capture.core.capture import PreviewCaptureEngine
from og_capture.core.geometry import BoundingBox, Clip, Viewport
from og_capture.core.runtime import BrowserRuntimeProvider, RuntimeMode


def make_png(width: int = 64, height: int = 32) -> bytes:
    """Encode a solid PNG of the given size."""
    buffer = BytesIO()
    Image.new("RGB", (width, height), color=(244, 245, 248)).save(buffer, format="PNG")
    return buffer.getvalue()


class FakeElement:
    """In-memory stand-in for a browser element handle."""

    def __init__(
        self,
        box: Optional[BoundingBox] = None,
        children: Optional[list["FakeElement"]] = None,
        screenshot_bytes: bytes = b"",
        box_error: Optional[Exception] = None,
        screenshot_error: Optional[Exception] = None,
    ):
        self.box = box
        self._children = children or []
        self.screenshot_bytes = screenshot_bytes
        self.box_error = box_error
        self.screenshot_error = screenshot_error
        self.dispose_calls = 0
        self.screenshot_calls = 0

    async def children(self) -> list["FakeElement"]:
        return list(self._children)

    async def bounding_box(self) -> Optional[BoundingBox]:
        if self.box_error:
            raise self.box_error
        return self.box

    async def screenshot(self) -> bytes:
        self.screenshot_calls += 1
        if self.screenshot_error:
            raise self.screenshot_error
        return self.screenshot_bytes

    async def dispose(self) -> None:
        self.dispose_calls += 1


class FakePage:
    """In-memory stand-in for a browser page."""

    def __init__(
        self,
        element: Optional[FakeElement] = None,
        viewport_size: Optional[Viewport] = Viewport(width=1200, height=630),
        screenshot_bytes: bytes = b"",
        navigate_error: Optional[Exception] = None,
        wait_error: Optional[Exception] = None,
        screenshot_error: Optional[Exception] = None,
        close_error: Optional[Exception] = None,
        navigate_hangs: bool = False,
    ):
        self.element = element
        self.viewport_size = viewport_size
        self.screenshot_bytes = screenshot_bytes
        self.navigate_error = navigate_error
        self.wait_error = wait_error
        self.screenshot_error = screenshot_error
        self.close_error = close_error
        self.navigate_hangs = navigate_hangs
        self.navigated: list[tuple[str, int]] = []
        self.selectors: list[tuple[str, int]] = []
        self.clips: list[Clip] = []
        self.close_calls = 0

    async def navigate(self, url: str, timeout_ms: int) -> None:
        self.navigated.append((url, timeout_ms))
        if self.navigate_hangs:
            await asyncio.Event().wait()
        if self.navigate_error:
            raise self.navigate_error

    async def wait_for_selector(self, selector: str, timeout_ms: int) -> Optional[FakeElement]:
        self.selectors.append((selector, timeout_ms))
        if self.wait_error:
            raise self.wait_error
        return self.element

    async def screenshot(self, clip: Clip) -> bytes:
        self.clips.append(clip)
        if self.screenshot_error:
            raise self.screenshot_error
        return self.screenshot_bytes

    def viewport(self) -> Optional[Viewport]:
        return self.viewport_size

    async def close(self) -> None:
        self.close_calls += 1
        if self.close_error:
            raise self.close_error


class FakeBrowser:
    """In-memory stand-in for a launched browser."""

    def __init__(
        self,
        page: FakePage,
        new_page_error: Optional[Exception] = None,
        close_error: Optional[Exception] = None,
    ):
        self.page = page
        self.new_page_error = new_page_error
        self.close_error = close_error
        self.viewports: list[ViewportProfile] = []
        self.close_calls = 0

    async def new_page(self, viewport: ViewportProfile) -> FakePage:
        self.viewports.append(viewport)
        if self.new_page_error:
            raise self.new_page_error
        return self.page

    async def close(self) -> None:
        self.close_calls += 1
        if self.close_error:
            raise self.close_error


class RecordingLauncher:
    """Launcher returning a fixed browser and recording its arguments."""

    def __init__(self, browser: FakeBrowser, error: Optional[Exception] = None):
        self.browser = browser
        self.error = error
        self.calls: list[tuple[Optional[str], tuple[str, ...]]] = []
        self.envs: list[Optional[Mapping[str, str]]] = []

    async def __call__(
        self,
        executable_path: Optional[str],
        args: Sequence[str],
        env: Optional[Mapping[str, str]] = None,
    ) -> FakeBrowser:
        self.calls.append((executable_path, tuple(args)))
        self.envs.append(env)
        if self.error:
            raise self.error
        return self.browser


@pytest.fixture
def png_bytes() -> bytes:
    """Create a small valid PNG."""
    return make_png(272, 132)


@pytest.fixture
def preview_element(png_bytes: bytes) -> FakeElement:
    """Create a preview element with two visible children."""
    return FakeElement(
        children=[
            FakeElement(box=BoundingBox(x=10, y=10, width=20, height=20)),
            FakeElement(box=BoundingBox(x=100, y=50, width=30, height=10)),
        ],
        screenshot_bytes=png_bytes,
    )


@pytest.fixture
def fake_page(preview_element: FakeElement, png_bytes: bytes) -> FakePage:
    """Create a page containing the preview element."""
    return FakePage(element=preview_element, screenshot_bytes=png_bytes)


@pytest.fixture
def fake_browser(fake_page: FakePage) -> FakeBrowser:
    """Create a browser serving the fake page."""
    return FakeBrowser(fake_page)


@pytest.fixture
def launcher(fake_browser: FakeBrowser) -> RecordingLauncher:
    """Create a launcher returning the fake browser."""
    return RecordingLauncher(fake_browser)


@pytest.fixture
def runtime(launcher: RecordingLauncher) -> BrowserRuntimeProvider:
    """Create a local-mode runtime backed by the fake browser."""
    return BrowserRuntimeProvider(
        mode=RuntimeMode.LOCAL,
        pack_url="https://example.test/chromium-pack.tar",
        launcher=launcher,
    )


@pytest.fixture
def engine(runtime: BrowserRuntimeProvider) -> PreviewCaptureEngine:
    """Create a capture engine over the fake runtime."""
    return PreviewCaptureEngine(runtime)


@pytest.fixture
def selector_timeout() -> BrowserTimeout:
    return BrowserTimeout("wait for selector timed out: Timeout 5000ms exceeded")
