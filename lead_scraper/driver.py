"""
Browser driver used by the scraper.

The scraper only talks to the small BrowserDriver surface below, so tests can
hand it a scripted fake and the Playwright details stay in this module.
"""

import logging
from typing import Any, Protocol

from playwright.async_api import async_playwright

from .config import BROWSER_EXECUTABLE_PATH, HEADLESS
from .errors import DriverLaunchError

logger = logging.getLogger(__name__)

VIEWPORT = {'width': 1920, 'height': 1080}
USER_AGENT = ('Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 '
              '(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36')
LAUNCH_ARGS = [
    '--no-sandbox',
    '--disable-setuid-sandbox',
    '--disable-dev-shm-usage',
    '--disable-blink-features=AutomationControlled',
    '--window-size=1920,1080',
]
LAUNCH_TIMEOUT_MS = 60000
CLICK_TIMEOUT_MS = 5000


class BrowserDriver(Protocol):
    async def navigate(self, url: str, wait_until: str = 'domcontentloaded', timeout: int = 30000): ...

    async def evaluate(self, script: str, arg: Any = None) -> Any: ...

    async def query(self, selector: str) -> Any: ...

    async def click(self, element: Any): ...

    async def set_viewport(self, width: int, height: int): ...

    async def close(self): ...


class PlaywrightDriver:
    """One Chromium browser with a single page. Owned by exactly one job."""

    def __init__(self, playwright, browser, page):
        self._playwright = playwright
        self._browser = browser
        self.page = page

    async def navigate(self, url: str, wait_until: str = 'domcontentloaded', timeout: int = 30000):
        await self.page.goto(url, wait_until=wait_until, timeout=timeout)

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        return await self.page.evaluate(script, arg)

    async def query(self, selector: str):
        return await self.page.query_selector(selector)

    async def click(self, element):
        await element.click(timeout=CLICK_TIMEOUT_MS)

    async def set_viewport(self, width: int, height: int):
        await self.page.set_viewport_size({'width': width, 'height': height})

    async def close(self):
        try:
            await self._browser.close()
        finally:
            await self._playwright.stop()


async def launch_playwright_driver(headless: bool = HEADLESS,
                                   executable_path: str | None = BROWSER_EXECUTABLE_PATH) -> PlaywrightDriver:
    """Default driver factory. Any failure to start the browser is a DriverLaunchError."""
    playwright = None
    try:
        playwright = await async_playwright().start()
        browser = await playwright.chromium.launch(
            headless=headless,
            executable_path=executable_path,
            args=LAUNCH_ARGS,
            timeout=LAUNCH_TIMEOUT_MS,
        )
        ctx = await browser.new_context(viewport=VIEWPORT, user_agent=USER_AGENT, locale='en-US')
        page = await ctx.new_page()
    except Exception as e:
        if playwright is not None:
            await playwright.stop()
        raise DriverLaunchError(f"Could not launch browser: {e}") from e
    logger.debug('Launched Chromium (headless=%s)', headless)
    return PlaywrightDriver(playwright, browser, page)
