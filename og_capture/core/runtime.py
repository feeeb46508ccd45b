"""Headless browser runtime: binary acquisition and scoped browser sessions."""

import asyncio
import enum
import io
import logging
import os
import shutil
import stat
import sys
import tarfile
import tempfile
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Awaitable, Callable, Mapping, Optional, Sequence

import brotli
import httpx

from og_capture.api.config import (
    BINARY_DOWNLOAD_TIMEOUT_SECONDS,
    CHROMIUM_PACK_FILENAME,
    MANAGED_CHROMIUM_ARGS,
    OG_VIEWPORT,
    Settings,
    ViewportProfile,
)
from og_capture.core.browser import (
    BrowserOperationError,
    PreviewBrowser,
    PreviewPage,
    launch_chromium,
)
from og_capture.core.errors import BinaryAcquisitionError, BrowserLaunchError

logger = logging.getLogger(__name__)

CHROMIUM_EXECUTABLE_NAMES = ("chromium", "chrome", "headless_shell", "chrome-headless-shell")
CHROMIUM_INSTALL_DIR = Path(tempfile.gettempdir()) / "og-capture-chromium"
# Written last, so an install dir without it is a partial extraction
INSTALL_COMPLETE_MARKER = ".install-complete"
BROTLI_SUFFIX = ".br"

# Shared libraries shipped next to the binary in serverless Chromium packs
PACK_LIBRARY_DIRS = (Path("al2023") / "lib", Path("swiftshader"))
PACK_FONTS_DIR = Path("fonts")

ExecutableFetcher = Callable[[str], Awaitable[str]]
BrowserLauncher = Callable[
    [Optional[str], Sequence[str], Optional[Mapping[str, str]]], Awaitable[PreviewBrowser]
]


class RuntimeMode(str, enum.Enum):
    """Where the Chromium binary comes from."""

    MANAGED = "managed"
    LOCAL = "local"


def select_runtime_mode(platform: str, production: bool) -> RuntimeMode:
    """
    Pick the runtime mode from environment signals.

    Production Linux deployments have no preinstalled browser and download a
    Chromium pack once per process; everything else uses Playwright's bundled
    Chromium.
    """
    if production and platform.startswith("linux"):
        return RuntimeMode.MANAGED
    return RuntimeMode.LOCAL


def _find_executable(root: Path) -> Optional[Path]:
    for name in CHROMIUM_EXECUTABLE_NAMES:
        for candidate in sorted(root.rglob(name)):
            if candidate.is_file():
                return candidate
    return None


def _inflate_brotli_members(root: Path) -> None:
    """
    Decompress the ``*.br`` members of an extracted pack in place.

    ``chromium.br`` becomes ``chromium``; nested archives such as
    ``al2023.tar.br`` are unpacked into a directory named after them
    (``al2023/``).
    """
    for compressed in sorted(root.rglob(f"*{BROTLI_SUFFIX}")):
        data = brotli.decompress(compressed.read_bytes())
        target = compressed.with_suffix("")

        if target.suffix == ".tar":
            with tarfile.open(fileobj=io.BytesIO(data), mode="r:") as nested:
                nested.extractall(target.with_suffix(""), filter="data")
        else:
            target.write_bytes(data)

        compressed.unlink()
        logger.debug(f"Inflated {compressed.name}")


def _extract_pack(archive_path: Path, target_dir: Path) -> str:
    """
    Extract a Chromium pack into ``target_dir`` and return its executable.

    Plain packs carry the executable directly. Serverless packs carry
    brotli-compressed members (``chromium.br``, ``al2023.tar.br``,
    ``fonts.tar.br``, ``swiftshader.tar.br``) which are inflated first.
    """
    target_dir.mkdir(parents=True, exist_ok=True)
    with tarfile.open(archive_path, "r:*") as archive:
        archive.extractall(target_dir, filter="data")
    _inflate_brotli_members(target_dir)

    executable = _find_executable(target_dir)
    if executable is None:
        raise FileNotFoundError(f"No Chromium executable found in {archive_path.name}")

    mode = executable.stat().st_mode
    executable.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return str(executable)


def _install_pack(archive_path: Path, scratch_dir: Path, install_dir: Path) -> str:
    """Extract into a scratch dir, then move the finished tree into place."""
    unpack_dir = scratch_dir / "pack"
    executable = Path(_extract_pack(archive_path, unpack_dir))
    (unpack_dir / INSTALL_COMPLETE_MARKER).write_text(executable.name)

    if install_dir.exists():
        shutil.rmtree(install_dir)
    unpack_dir.rename(install_dir)
    return str(install_dir / executable.relative_to(unpack_dir))


def _installed_executable(install_dir: Path) -> Optional[Path]:
    if not (install_dir / INSTALL_COMPLETE_MARKER).is_file():
        return None
    existing = _find_executable(install_dir)
    if existing is None or not os.access(existing, os.X_OK):
        return None
    return existing


async def download_chromium_pack(
    pack_url: str,
    install_dir: Path = CHROMIUM_INSTALL_DIR,
    timeout_seconds: float = BINARY_DOWNLOAD_TIMEOUT_SECONDS,
    client: Optional[httpx.AsyncClient] = None,
) -> str:
    """
    Download and unpack a Chromium pack, returning the executable path.

    A complete install left in ``install_dir`` by an earlier process is
    reused. Downloads and extraction happen in a scratch directory next to
    ``install_dir`` so an interrupted attempt never looks installed.

    Args:
        pack_url: URL of a tar archive containing a Chromium build
        install_dir: Directory the pack ends up in
        timeout_seconds: Timeout for the whole download
        client: HTTP client to use; a new one is created and closed if None

    Returns:
        Absolute path of the Chromium executable
    """
    existing = _installed_executable(install_dir)
    if existing is not None:
        logger.info(f"Reusing extracted Chromium at {existing}")
        return str(existing)

    install_dir.parent.mkdir(parents=True, exist_ok=True)
    scratch_dir = Path(
        tempfile.mkdtemp(prefix=f".{install_dir.name}-", dir=install_dir.parent)
    )
    archive_path = scratch_dir / CHROMIUM_PACK_FILENAME

    owns_client = client is None
    if client is None:
        client = httpx.AsyncClient(
            follow_redirects=True, timeout=httpx.Timeout(timeout_seconds)
        )

    try:
        logger.info(f"Downloading Chromium pack from {pack_url}")
        async with client.stream("GET", pack_url) as response:
            response.raise_for_status()
            with open(archive_path, "wb") as archive:
                async for chunk in response.aiter_bytes():
                    archive.write(chunk)

        logger.info(
            f"Downloaded Chromium pack: {archive_path.stat().st_size / (1024 * 1024):.2f}MB"
        )

        # Extraction is blocking filesystem work
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, _install_pack, archive_path, scratch_dir, install_dir
        )
    finally:
        if owns_client:
            await client.aclose()
        shutil.rmtree(scratch_dir, ignore_errors=True)


def managed_chromium_env(
    executable_path: str, base_env: Optional[Mapping[str, str]] = None
) -> dict[str, str]:
    """
    Environment for a Chromium binary unpacked from a serverless pack.

    Puts the pack's bundled shared libraries on ``LD_LIBRARY_PATH`` and points
    fontconfig at its fonts. Directories missing from the pack are skipped.
    """
    root = Path(executable_path).parent
    env = dict(os.environ if base_env is None else base_env)

    library_dirs = [str(root / d) for d in PACK_LIBRARY_DIRS if (root / d).is_dir()]
    if library_dirs:
        if env.get("LD_LIBRARY_PATH"):
            library_dirs.append(env["LD_LIBRARY_PATH"])
        env["LD_LIBRARY_PATH"] = os.pathsep.join(library_dirs)

    fonts_dir = root / PACK_FONTS_DIR
    if fonts_dir.is_dir():
        env["FONTCONFIG_PATH"] = str(fonts_dir)

    return env


def _consume_exception(task: "asyncio.Task[str]") -> None:
    # Every waiter may have been cancelled before a failure lands
    if not task.cancelled():
        task.exception()


async def _close_quietly(name: str, resource: PreviewPage | PreviewBrowser) -> None:
    try:
        await resource.close()
    except Exception as e:
        logger.warning(f"Ignoring error while closing {name}: {e}")


class BrowserRuntimeProvider:
    """
    Process-wide source of browser sessions.

    Created once at startup. In managed mode the Chromium binary is fetched
    by the first request; concurrent requests share that single download and
    later requests reuse the cached path.
    """

    def __init__(
        self,
        mode: RuntimeMode,
        pack_url: str,
        viewport: ViewportProfile = OG_VIEWPORT,
        fetch_executable: Optional[ExecutableFetcher] = None,
        launcher: Optional[BrowserLauncher] = None,
    ):
        """Initialize the provider; nothing is downloaded or launched yet."""
        self.mode = mode
        self.pack_url = pack_url
        self.viewport = viewport
        self._fetch_executable = fetch_executable or download_chromium_pack
        self._launcher = launcher or launch_chromium
        self._executable_path: Optional[str] = None
        self._pending: Optional[asyncio.Task[str]] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "BrowserRuntimeProvider":
        """Build the provider from application settings."""
        mode = select_runtime_mode(sys.platform, settings.is_production)
        logger.info(f"Browser runtime mode: {mode.value}")
        return cls(
            mode=mode,
            pack_url=settings.resolved_chromium_pack_url,
            viewport=settings.viewport,
        )

    @property
    def executable_path(self) -> Optional[str]:
        return self._executable_path

    async def get_executable_path(self) -> str:
        """
        Return the managed Chromium executable path, downloading it once.

        Raises:
            BinaryAcquisitionError: If the download or extraction failed
        """
        if self._executable_path is not None:
            return self._executable_path

        if self._pending is None:
            self._pending = asyncio.ensure_future(self._acquire())
            self._pending.add_done_callback(_consume_exception)

        # Shielded so a cancelled request does not abort the shared download
        return await asyncio.shield(self._pending)

    async def _acquire(self) -> str:
        try:
            path = await self._fetch_executable(self.pack_url)
        except Exception as e:
            logger.error(f"Failed to get Chromium path: {e}")
            raise BinaryAcquisitionError(f"Failed to get Chromium binary: {e}") from e
        finally:
            # A failed attempt must not block later retries
            self._pending = None

        self._executable_path = path
        logger.info(f"Chromium path resolved: {path}")
        return path

    async def launch(self) -> PreviewBrowser:
        """
        Launch one headless browser for the current runtime mode.

        Raises:
            BinaryAcquisitionError: If the managed binary is unavailable
            BrowserLaunchError: If the browser process failed to start
        """
        executable_path: Optional[str] = None
        args: Sequence[str] = ()
        env: Optional[dict[str, str]] = None

        if self.mode is RuntimeMode.MANAGED:
            executable_path = await self.get_executable_path()
            args = MANAGED_CHROMIUM_ARGS
            env = managed_chromium_env(executable_path)
            logger.info(f"Launching browser with executable path: {executable_path}")

        try:
            return await self._launcher(executable_path, args, env)
        except Exception as e:
            logger.error(f"Browser launch failed: {e}")
            raise BrowserLaunchError(f"Failed to launch browser: {e}") from e

    @asynccontextmanager
    async def session(self) -> AsyncIterator[PreviewPage]:
        """
        Launch a browser, open one page and close both on exit.

        Close failures are logged and never replace the original outcome.
        """
        browser = await self.launch()
        page: Optional[PreviewPage] = None
        try:
            try:
                page = await browser.new_page(self.viewport)
            except BrowserOperationError as e:
                raise BrowserLaunchError(f"Failed to open page: {e}") from e
            yield page
        finally:
            if page is not None:
                await _close_quietly("page", page)
            await _close_quietly("browser", browser)

    def status(self) -> dict[str, object]:
        """Summarize runtime state for health checks."""
        return {
            "mode": self.mode.value,
            "executable_cached": self._executable_path is not None,
            "download_in_progress": self._pending is not None,
        }
