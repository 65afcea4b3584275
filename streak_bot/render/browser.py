# streak_bot/render/browser.py
"""
Shared headless Chromium.

One browser serves every channel. It is launched on first use and replaced
once it gets older than BROWSER_MAX_AGE_SECONDS or loses its connection.
Callers arriving while a launch is in flight wait for that launch instead
of starting their own.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from playwright.async_api import Browser, Error as PlaywrightError, Page, Playwright, async_playwright

from streak_bot.config import BROWSER_MAX_AGE_SECONDS
from streak_bot.errors import ResourceLaunchError

logger = logging.getLogger(__name__)

VIEWPORT = {"width": 1280, "height": 720}

LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-accelerated-2d-canvas",
    "--no-first-run",
    "--no-zygote",
    "--disable-gpu",
    "--disable-extensions",
]


@dataclass
class RenderResource:
    browser: Browser
    created_at: float
    base_page: Optional[Page] = None

    @property
    def alive(self) -> bool:
        try:
            return self.browser.is_connected()
        except PlaywrightError:
            return False


class BrowserPool:
    def __init__(
        self,
        max_age: float = BROWSER_MAX_AGE_SECONDS,
        launcher: Optional[Callable[[], Awaitable[Any]]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_age = max_age
        self._launcher = launcher or self._launch_chromium
        self._clock = clock

        self._playwright: Optional[Playwright] = None
        self._resource: Optional[RenderResource] = None
        self._launching: Optional[asyncio.Future] = None

    @property
    def resource(self) -> Optional[RenderResource]:
        return self._resource

    def _expired(self) -> bool:
        resource = self._resource
        if resource is None or not resource.alive:
            return True
        return self._clock() - resource.created_at > self.max_age

    async def acquire(self) -> Optional[RenderResource]:
        """
        Return the shared browser, launching or recycling it if needed.
        Returns None when the launch failed; the next call tries again.
        """
        if self._launching is not None:
            return await asyncio.shield(self._launching)

        if not self._expired():
            return self._resource

        loop = asyncio.get_running_loop()
        self._launching = loop.create_future()
        try:
            await self._discard_current()
            try:
                self._resource = await self._start()
            except ResourceLaunchError as e:
                logger.error("Failed to launch browser: %s", e)
                self._resource = None
            self._launching.set_result(self._resource)
            return self._resource
        except BaseException as e:
            if not self._launching.done():
                self._launching.set_exception(e)
                # Waiters own the exception now; don't warn about it
                self._launching.exception()
            raise
        finally:
            self._launching = None

    async def _start(self) -> RenderResource:
        try:
            browser = await self._launcher()
            base_page = await browser.new_page(viewport=VIEWPORT, device_scale_factor=1)
        except Exception as e:
            raise ResourceLaunchError(f"{type(e).__name__}: {e}") from e

        logger.info("Browser launched.")
        return RenderResource(browser=browser, created_at=self._clock(), base_page=base_page)

    async def _launch_chromium(self) -> Browser:
        if self._playwright is None:
            self._playwright = await async_playwright().start()
        return await self._playwright.chromium.launch(headless=True, args=LAUNCH_ARGS)

    async def _discard_current(self) -> None:
        resource, self._resource = self._resource, None
        if resource is None:
            return
        try:
            await resource.browser.close()
            logger.info("Closed browser after %.0fs", self._clock() - resource.created_at)
        except PlaywrightError:
            logger.exception("Error closing old browser")

    async def close(self) -> None:
        await self._discard_current()
        if self._playwright is not None:
            try:
                await self._playwright.stop()
            except PlaywrightError:
                logger.exception("Error stopping playwright")
            self._playwright = None
