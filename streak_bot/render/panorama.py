# streak_bot/render/panorama.py

from __future__ import annotations

import asyncio
import io
import logging
from dataclasses import dataclass
from typing import Optional

from PIL import Image
from playwright.async_api import Error as PlaywrightError, TimeoutError as PlaywrightTimeoutError

from streak_bot.errors import RenderError
from streak_bot.render.browser import VIEWPORT, BrowserPool

logger = logging.getLogger(__name__)

# requestAnimationFrame only runs once the viewer starts drawing, so it
# doubles as a readiness signal when pixels can't be read back.
RAF_HOOK_SCRIPT = """
() => {
  window._canvasReady = false;
  const originalRequestAnimationFrame = window.requestAnimationFrame;
  window.requestAnimationFrame = function (callback) {
    window._canvasReady = true;
    return originalRequestAnimationFrame(callback);
  };
}
"""

CANVAS_PRESENT_SCRIPT = """
() => {
  const canvas = document.querySelector('canvas');
  return !!canvas && canvas.offsetWidth > 0;
}
"""

CANVAS_READY_SCRIPT = """
([stride, threshold, minSamples]) => {
  const canvas = document.querySelector('canvas');
  if (!canvas) return false;

  try {
    const ctx = canvas.getContext('2d');
    const data = ctx.getImageData(0, 0, canvas.width, canvas.height).data;

    let bright = 0;
    for (let i = 0; i < data.length; i += stride) {
      if (data[i] > threshold || data[i + 1] > threshold || data[i + 2] > threshold) bright++;
      if (bright > minSamples) return true;
    }
    return false;
  } catch (e) {
    return !!window._canvasReady;
  }
}
"""


@dataclass(frozen=True)
class RenderSettings:
    navigation_timeout: float = 50.0
    canvas_timeout: float = 5.0
    ready_budget: float = 3.0
    ready_interval: float = 1.5
    settle_delay: float = 0.5

    pixel_stride: int = 30000
    pixel_threshold: int = 20
    min_bright_samples: int = 3

    clip_offset_y: int = -3
    output_size: tuple[int, int] = (1280, 715)
    jpeg_quality: int = 65


def postprocess_screenshot(raw: bytes, size: tuple[int, int], quality: int) -> bytes:
    """Resize a PNG screenshot and re-encode it as JPEG."""
    with Image.open(io.BytesIO(raw)) as image:
        resized = image.convert("RGB").resize(size, Image.Resampling.LANCZOS)
    out = io.BytesIO()
    resized.save(out, format="JPEG", quality=quality)
    return out.getvalue()


class PanoramaRenderer:
    def __init__(self, pool: BrowserPool, settings: Optional[RenderSettings] = None):
        self.pool = pool
        self.settings = settings or RenderSettings()

    async def render(self, url: str, label: str = "") -> bytes:
        """
        Screenshot a street-view embed once its canvas shows real imagery.

        Raises RenderError if the browser is unavailable, navigation fails
        or the capture fails. A canvas that never becomes ready is not an
        error: the capture is taken anyway once the budget runs out.
        """
        resource = await self.pool.acquire()
        if resource is None:
            raise RenderError("Browser is not available")

        page = None
        try:
            page = await resource.browser.new_page(
                viewport=VIEWPORT,
                device_scale_factor=1,
                extra_http_headers={"Accept-Language": "en-US,en;q=0.9"},
            )
            await page.add_init_script(RAF_HOOK_SCRIPT)

            logger.info("Navigating to %s for %s", url, label or "render")
            try:
                await page.goto(
                    url,
                    wait_until="networkidle",
                    timeout=self.settings.navigation_timeout * 1000,
                )
            except PlaywrightError as e:
                raise RenderError(f"Navigation failed: {e}") from e

            await self._nudge_viewer(page)
            await self._wait_for_canvas(page)
            await self._wait_until_painted(page)
            await asyncio.sleep(self.settings.settle_delay)

            raw = await page.screenshot(
                full_page=False,
                type="png",
                clip={
                    "x": 0,
                    "y": self.settings.clip_offset_y,
                    "width": VIEWPORT["width"],
                    "height": VIEWPORT["height"],
                },
            )
        except PlaywrightError as e:
            raise RenderError(f"Capture failed: {e}") from e
        finally:
            if page is not None:
                try:
                    await page.close()
                except PlaywrightError:
                    logger.exception("Error closing page")

        try:
            return await asyncio.to_thread(
                postprocess_screenshot,
                raw,
                self.settings.output_size,
                self.settings.jpeg_quality,
            )
        except OSError as e:
            raise RenderError(f"Could not encode screenshot: {e}") from e

    async def _nudge_viewer(self, page) -> None:
        # Panorama viewers only start streaming tiles after a pointer event
        cx, cy = VIEWPORT["width"] // 2, VIEWPORT["height"] // 2
        await page.mouse.move(cx, cy)
        await page.mouse.down()
        await page.mouse.move(cx + 10, cy, steps=2)
        await page.mouse.up()

    async def _wait_for_canvas(self, page) -> bool:
        try:
            await page.wait_for_function(
                CANVAS_PRESENT_SCRIPT,
                timeout=self.settings.canvas_timeout * 1000,
            )
            return True
        except PlaywrightTimeoutError:
            logger.info("No canvas found, attempting to capture anyway")
            return False

    async def _wait_until_painted(self, page) -> bool:
        s = self.settings
        loop = asyncio.get_running_loop()
        deadline = loop.time() + s.ready_budget

        while True:
            ready = await page.evaluate(
                CANVAS_READY_SCRIPT,
                [s.pixel_stride, s.pixel_threshold, s.min_bright_samples],
            )
            if ready:
                return True
            if loop.time() >= deadline:
                logger.info("Canvas still blank after %.1fs, capturing anyway", s.ready_budget)
                return False
            await asyncio.sleep(s.ready_interval)
