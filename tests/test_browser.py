"""Tests for the shared browser pool."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from playwright.async_api import Error as PlaywrightError

from streak_bot.render.browser import BrowserPool


def make_browser(connected=True):
    browser = MagicMock()
    browser.is_connected = MagicMock(return_value=connected)
    browser.new_page = AsyncMock(return_value=MagicMock())
    browser.close = AsyncMock()
    return browser


class SlowLauncher:
    """Launcher that yields to the loop a few times before returning."""

    def __init__(self, fail_first=0):
        self.calls = 0
        self.fail_first = fail_first
        self.browsers = []

    async def __call__(self):
        self.calls += 1
        for _ in range(3):
            await asyncio.sleep(0)
        if self.calls <= self.fail_first:
            raise PlaywrightError("Executable doesn't exist")
        browser = make_browser()
        self.browsers.append(browser)
        return browser


class Seconds:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


@pytest.mark.asyncio
async def test_concurrent_acquire_launches_once():
    launcher = SlowLauncher()
    pool = BrowserPool(max_age=600, launcher=launcher)

    results = await asyncio.gather(*(pool.acquire() for _ in range(5)))

    assert launcher.calls == 1
    assert all(r is results[0] for r in results)
    assert results[0].browser is launcher.browsers[0]


@pytest.mark.asyncio
async def test_reuses_resource_while_fresh():
    clock = Seconds()
    launcher = SlowLauncher()
    pool = BrowserPool(max_age=600, launcher=launcher, clock=clock)

    first = await pool.acquire()
    clock.now = 599
    second = await pool.acquire()

    assert first is second
    assert launcher.calls == 1


@pytest.mark.asyncio
async def test_recycles_after_max_age():
    clock = Seconds()
    launcher = SlowLauncher()
    pool = BrowserPool(max_age=600, launcher=launcher, clock=clock)

    first = await pool.acquire()
    clock.now = 601
    second = await pool.acquire()

    assert second is not first
    assert launcher.calls == 2
    first.browser.close.assert_awaited_once()
    assert second.created_at == 601


@pytest.mark.asyncio
async def test_relaunches_disconnected_browser():
    launcher = SlowLauncher()
    pool = BrowserPool(max_age=600, launcher=launcher)

    first = await pool.acquire()
    first.browser.is_connected.return_value = False
    second = await pool.acquire()

    assert second is not first
    assert launcher.calls == 2


@pytest.mark.asyncio
async def test_old_browser_close_error_is_tolerated():
    clock = Seconds()
    launcher = SlowLauncher()
    pool = BrowserPool(max_age=10, launcher=launcher, clock=clock)

    first = await pool.acquire()
    first.browser.close.side_effect = PlaywrightError("Target closed")
    clock.now = 11

    assert await pool.acquire() is not None


@pytest.mark.asyncio
async def test_launch_failure_returns_none_then_retries():
    launcher = SlowLauncher(fail_first=1)
    pool = BrowserPool(max_age=600, launcher=launcher)

    assert await pool.acquire() is None
    assert pool.resource is None

    resource = await pool.acquire()
    assert resource is not None
    assert launcher.calls == 2


@pytest.mark.asyncio
async def test_waiters_see_failed_launch():
    launcher = SlowLauncher(fail_first=1)
    pool = BrowserPool(max_age=600, launcher=launcher)

    results = await asyncio.gather(*(pool.acquire() for _ in range(3)))

    assert results == [None, None, None]
    assert launcher.calls == 1


@pytest.mark.asyncio
async def test_close_closes_browser():
    launcher = SlowLauncher()
    pool = BrowserPool(max_age=600, launcher=launcher)

    resource = await pool.acquire()
    await pool.close()

    resource.browser.close.assert_awaited_once()
    assert pool.resource is None
