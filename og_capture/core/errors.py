"""Exceptions raised while resolving and capturing preview targets."""


class CaptureError(Exception):
    """Base class for every preview capture failure."""

    pass


class InvalidInput(CaptureError):
    """Raised when the caller supplied a missing or malformed parameter."""

    pass


class InvalidTargetUrl(InvalidInput):
    """Raised when the target URL cannot be resolved to an http(s) URL."""

    pass


class ElementNotFound(CaptureError):
    """Raised when the preview selector never appeared on the page."""

    def __init__(self, selector: str, url: str):
        super().__init__(f"Element {selector} not found on {url}")
        self.selector = selector
        self.url = url


class NavigationError(CaptureError):
    """Raised when the target page failed to load."""

    pass


class NavigationTimeout(NavigationError):
    """Raised when the target page did not settle within the timeout."""

    pass


class ScreenshotError(CaptureError):
    """Raised when the browser failed to produce a complete PNG."""

    pass


class InfrastructureError(CaptureError):
    """Raised when the browser runtime itself is unavailable."""

    pass


class BinaryAcquisitionError(InfrastructureError):
    """Raised when the managed browser binary could not be downloaded."""

    pass


class BrowserLaunchError(InfrastructureError):
    """Raised when the browser process could not be started."""

    pass
