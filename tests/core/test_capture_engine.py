"""Tests for preview capture."""

import pytest

from conftest import FakeBrowser, FakeElement, FakePage, RecordingLauncher, make_png

from og_capture.api.config import NAVIGATION_TIMEOUT_MS, PREVIEW_SELECTOR, SELECTOR_TIMEOUT_MS
from og_capture.core.browser import BrowserOperationError, BrowserTimeout
from og_capture.core.capture import PreviewCaptureEngine
from og_capture.core.errors import (
    ElementNotFound,
    NavigationError,
    NavigationTimeout,
    ScreenshotError,
)
from og_capture.core.geometry import BoundingBox, Clip
from og_capture.core.runtime import BrowserRuntimeProvider, RuntimeMode
from og_capture.core.target import ResolvedTarget

TARGET = ResolvedTarget(url="https://docs.example/components/button?og=1")


def _engine_for(page: FakePage) -> tuple[PreviewCaptureEngine, FakeBrowser]:
    browser = FakeBrowser(page)
    runtime = BrowserRuntimeProvider(
        RuntimeMode.LOCAL,
        "https://example.test/chromium-pack.tar",
        launcher=RecordingLauncher(browser),
    )
    return PreviewCaptureEngine(runtime), browser


class TestCaptureSuccess:
    """Test the happy paths of the capture state machine."""

    @pytest.mark.asyncio
    async def test_crops_to_children(
        self,
        engine: PreviewCaptureEngine,
        fake_page: FakePage,
        preview_element: FakeElement,
        fake_browser: FakeBrowser,
    ) -> None:
        """Test the page is clipped to the padded union of the children."""
        result = await engine.capture(TARGET)

        assert result.strategy == "clip"
        assert (result.width, result.height) == (272, 132)
        assert fake_page.navigated == [(TARGET.url, NAVIGATION_TIMEOUT_MS)]
        assert fake_page.selectors == [(PREVIEW_SELECTOR, SELECTOR_TIMEOUT_MS)]
        assert fake_page.clips == [Clip(x=2, y=2, width=136, height=66)]
        assert preview_element.screenshot_calls == 0

        assert fake_page.close_calls == 1
        assert fake_browser.close_calls == 1

    @pytest.mark.asyncio
    async def test_child_handles_disposed(
        self, engine: PreviewCaptureEngine, preview_element: FakeElement
    ) -> None:
        """Test every measured child handle is released."""
        children = await preview_element.children()

        await engine.capture(TARGET)

        assert [child.dispose_calls for child in children] == [1, 1]
        assert preview_element.dispose_calls == 1

    @pytest.mark.asyncio
    async def test_custom_selector(self, engine: PreviewCaptureEngine, fake_page: FakePage) -> None:
        """Test an explicit selector overrides the configured one."""
        await engine.capture(TARGET, selector="#hero")
        assert fake_page.selectors[0][0] == "#hero"

    @pytest.mark.asyncio
    async def test_no_children_captures_element(self) -> None:
        """Test an element without children is captured directly."""
        element = FakeElement(screenshot_bytes=make_png(40, 20))
        page = FakePage(element=element)
        engine, browser = _engine_for(page)

        result = await engine.capture(TARGET)

        assert result.strategy == "element"
        assert (result.width, result.height) == (40, 20)
        assert page.clips == []
        assert page.close_calls == 1
        assert browser.close_calls == 1

    @pytest.mark.asyncio
    async def test_no_usable_children_captures_element(self) -> None:
        """Test children without usable geometry fall back to the element."""
        children = [
            FakeElement(box=None),
            FakeElement(box=BoundingBox(x=0, y=0, width=0, height=12)),
            FakeElement(box=BoundingBox(x=float("nan"), y=0, width=5, height=5)),
        ]
        element = FakeElement(children=children, screenshot_bytes=make_png(40, 20))
        page = FakePage(element=element)
        engine, _ = _engine_for(page)

        result = await engine.capture(TARGET)

        assert result.strategy == "element"
        assert element.screenshot_calls == 1
        assert page.clips == []
        assert [child.dispose_calls for child in children] == [1, 1, 1]

    @pytest.mark.asyncio
    async def test_unusable_children_ignored_in_clip(self) -> None:
        """Test only usable children contribute to the clip."""
        children = [
            FakeElement(box=BoundingBox(x=50, y=40, width=100, height=20)),
            FakeElement(box=BoundingBox(x=0, y=0, width=0, height=0)),
        ]
        page = FakePage(
            element=FakeElement(children=children), screenshot_bytes=make_png(232, 72)
        )
        engine, _ = _engine_for(page)

        await engine.capture(TARGET)

        assert page.clips == [Clip(x=42, y=32, width=116, height=36)]

    @pytest.mark.asyncio
    async def test_close_errors_do_not_fail_capture(self, png_bytes: bytes) -> None:
        """Test teardown failures are swallowed after a good capture."""
        element = FakeElement(screenshot_bytes=png_bytes)
        page = FakePage(element=element, close_error=BrowserOperationError("closed"))
        engine, browser = _engine_for(page)
        browser.close_error = RuntimeError("already exited")

        result = await engine.capture(TARGET)

        assert result.png_bytes == png_bytes
        assert page.close_calls == 1
        assert browser.close_calls == 1


class TestCaptureFailures:
    """Test failure states always release the session exactly once."""

    @pytest.mark.asyncio
    async def test_navigation_timeout(self, preview_element: FakeElement) -> None:
        page = FakePage(element=preview_element, navigate_error=BrowserTimeout("goto"))
        engine, browser = _engine_for(page)

        with pytest.raises(NavigationTimeout, match="Timed out"):
            await engine.capture(TARGET)

        assert page.selectors == []
        assert page.close_calls == 1
        assert browser.close_calls == 1

    @pytest.mark.asyncio
    async def test_navigation_error(self, preview_element: FakeElement) -> None:
        page = FakePage(
            element=preview_element,
            navigate_error=BrowserOperationError("net::ERR_NAME_NOT_RESOLVED"),
        )
        engine, browser = _engine_for(page)

        with pytest.raises(NavigationError) as exc_info:
            await engine.capture(TARGET)

        assert not isinstance(exc_info.value, NavigationTimeout)
        assert page.close_calls == 1
        assert browser.close_calls == 1

    @pytest.mark.asyncio
    async def test_element_not_found_on_timeout(self, selector_timeout: BrowserTimeout) -> None:
        page = FakePage(element=None, wait_error=selector_timeout)
        engine, browser = _engine_for(page)

        with pytest.raises(ElementNotFound) as exc_info:
            await engine.capture(TARGET)

        assert exc_info.value.selector == PREVIEW_SELECTOR
        assert exc_info.value.url == TARGET.url
        assert page.close_calls == 1
        assert browser.close_calls == 1

    @pytest.mark.asyncio
    async def test_element_not_found_when_missing(self) -> None:
        page = FakePage(element=None)
        engine, browser = _engine_for(page)

        with pytest.raises(ElementNotFound):
            await engine.capture(TARGET)

        assert page.close_calls == 1
        assert browser.close_calls == 1

    @pytest.mark.asyncio
    async def test_page_screenshot_error(self, preview_element: FakeElement) -> None:
        page = FakePage(
            element=preview_element, screenshot_error=BrowserOperationError("crashed")
        )
        engine, browser = _engine_for(page)

        with pytest.raises(ScreenshotError, match="crashed"):
            await engine.capture(TARGET)

        assert preview_element.dispose_calls == 1
        assert page.close_calls == 1
        assert browser.close_calls == 1

    @pytest.mark.asyncio
    async def test_element_screenshot_error(self) -> None:
        element = FakeElement(screenshot_error=BrowserOperationError("detached"))
        page = FakePage(element=element)
        engine, browser = _engine_for(page)

        with pytest.raises(ScreenshotError):
            await engine.capture(TARGET)

        assert page.close_calls == 1
        assert browser.close_calls == 1

    @pytest.mark.asyncio
    async def test_measure_error_disposes_all_children(self, png_bytes: bytes) -> None:
        children = [
            FakeElement(box_error=BrowserOperationError("node detached")),
            FakeElement(box=BoundingBox(x=1, y=1, width=5, height=5)),
        ]
        page = FakePage(element=FakeElement(children=children), screenshot_bytes=png_bytes)
        engine, browser = _engine_for(page)

        with pytest.raises(ScreenshotError, match="node detached"):
            await engine.capture(TARGET)

        assert [child.dispose_calls for child in children] == [1, 1]
        assert page.clips == []
        assert browser.close_calls == 1

    @pytest.mark.asyncio
    async def test_partial_png_rejected(self, png_bytes: bytes, preview_element: FakeElement) -> None:
        """Test truncated image data never leaves the engine."""
        page = FakePage(element=preview_element, screenshot_bytes=png_bytes[:-12])
        engine, browser = _engine_for(page)

        with pytest.raises(ScreenshotError, match="invalid PNG"):
            await engine.capture(TARGET)

        assert page.close_calls == 1
        assert browser.close_calls == 1
