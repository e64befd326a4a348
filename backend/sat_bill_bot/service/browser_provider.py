from __future__ import annotations

from typing import Optional

import aiohttp
from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright

from ..core.config import Settings
from ..utils.logging import setup_logger
from .errors import BrowserConnectionError

logger = setup_logger(__name__)


class BrowserProvider:
    """Launches Chromium, or attaches to one over CDP, and hands out fresh pages"""

    def __init__(self, settings: Settings):
        self.settings = settings
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        logger.debug(
            "BrowserProvider initialized",
            extra={"cdp_url": settings.cdp_url, "headless": settings.headless},
        )

    async def _check_cdp_ready(self, cdp_url: str) -> None:
        # ws:// endpoints (e.g. Selenium Grid) have no /json/version
        if cdp_url.lower().startswith(("ws://", "wss://")):
            return

        timeout = aiohttp.ClientTimeout(total=self.settings.navigation_timeout_ms / 1000)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(f"{cdp_url.rstrip('/')}/json/version") as response:
                    if response.status != 200:
                        raise BrowserConnectionError(
                            f"Browser at {cdp_url} returned status code: {response.status}"
                        )
                    data = await response.json()
                    logger.info(
                        "CDP is ready",
                        extra={"cdp_url": cdp_url, "browser": data.get("Browser", "Unknown")},
                    )
        except aiohttp.ClientError as e:
            raise BrowserConnectionError(f"Cannot connect to browser at {cdp_url}: {e}") from e

    async def connect(self) -> Browser:
        if self._browser is not None and self._browser.is_connected():
            return self._browser

        try:
            if self._playwright is None:
                self._playwright = await async_playwright().start()
                logger.debug("Playwright started")

            if self.settings.cdp_url:
                await self._check_cdp_ready(self.settings.cdp_url)
                self._browser = await self._playwright.chromium.connect_over_cdp(self.settings.cdp_url)
                logger.info("Playwright connected over CDP", extra={"cdp_url": self.settings.cdp_url})
            else:
                self._browser = await self._playwright.chromium.launch(headless=self.settings.headless)
                logger.info("Chromium launched", extra={"headless": self.settings.headless})
        except BrowserConnectionError:
            raise
        except Exception as e:
            logger.error("Failed to connect to browser", extra={"error": str(e)})
            raise BrowserConnectionError(f"Failed to connect to browser: {e}") from e

        return self._browser

    async def create_page(self) -> Page:
        browser = await self.connect()
        try:
            context: BrowserContext = await browser.new_context(
                viewport={"width": self.settings.viewport_width, "height": self.settings.viewport_height}
            )
            return await context.new_page()
        except Exception as e:
            raise BrowserConnectionError(f"Failed to open a page: {e}") from e

    async def close(self) -> None:
        logger.info("Closing browser")
        if self._browser is not None:
            await self._browser.close()
            self._browser = None

        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None

    async def __aenter__(self) -> "BrowserProvider":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
