from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Optional, TypeVar

from playwright.async_api import ElementHandle, Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from ..schemas.bot_config import BotConfiguration
from ..utils.logging import setup_logger
from .errors import ElementNotFoundError
from .retry_orchestrator import RetryOrchestrator

logger = setup_logger(__name__)

T = TypeVar("T")

AUTOCOMPLETE_POLL_INTERVAL = 0.1

CLEAR_INPUT_SCRIPT = """el => {
    el.value = '';
    el.dispatchEvent(new Event('change'));
}"""

DISPATCH_CHANGE_SCRIPT = "el => el.dispatchEvent(new Event('change'))"

CLICK_SCRIPT = "el => el.click()"

READ_VALUE_SCRIPT = "el => el.value"

PAGE_LOADED_SCRIPT = "() => document.body.className.trim() === 'pace-done'"

MENU_VISIBLE_SCRIPT = """selector => Array.from(document.querySelectorAll(selector))
    .some(menu => menu.style.display !== 'none')"""


def id_prefix_selector(key: str) -> str:
    return f'[id^="{key}"]'


class FormInteractionEngine:
    """Primitive DOM operations against one page, each under the retry policy.

    The page handle stays private so every interaction goes through the
    wait/retry discipline below.
    """

    def __init__(self, page: Page, config: BotConfiguration, orchestrator: RetryOrchestrator):
        self._page = page
        self._config = config
        self._orchestrator = orchestrator
        self._page.set_default_timeout(config.timeouts.page)
        self._page.set_default_navigation_timeout(config.timeouts.navigation)

    async def _execute(
        self,
        name: str,
        operation: Callable[[], Awaitable[T]],
        context: Optional[dict[str, Any]] = None,
    ) -> T:
        """Run ``operation`` once, then hand the same operation to the orchestrator"""
        try:
            return await operation()
        except Exception as error:
            logger.warning(
                f"{name} failed, retrying",
                extra={"operation": name, "error": str(error), "context": context or {}},
            )
            return await self._orchestrator.run(
                operation,
                context={"operation": name, **(context or {})},
                retries=self._config.retries,
            )

    async def _delay(self) -> None:
        await asyncio.sleep(self._config.retries.base_delay_ms / 1000)

    async def goto(self, url: str) -> None:
        await self._page.goto(url, wait_until="domcontentloaded")

    async def wait_for_element(self, selector: str, visible: bool = True) -> ElementHandle:
        try:
            try:
                element = await self._page.wait_for_selector(
                    selector,
                    state="visible" if visible else "attached",
                    timeout=self._config.timeouts.element,
                )
            except PlaywrightTimeoutError as error:
                raise ElementNotFoundError(selector, str(error)) from error
            if element is None:
                raise ElementNotFoundError(selector)
            return element
        except Exception as error:
            self._orchestrator.log_only(error, {"selector": selector, "visible": visible})
            raise

    async def click_element(self, selector: str) -> None:
        async def click() -> None:
            element = await self.wait_for_element(selector)
            await self._delay()
            await element.click()

        await self._execute("click_element", click, {"selector": selector})

    async def _type_into(self, selector: str, value: str) -> None:
        element = await self.wait_for_element(selector)
        await element.focus()
        await self._page.eval_on_selector(selector, CLEAR_INPUT_SCRIPT)
        # Keystrokes keep the portal's input masks working
        await element.type(value)

    async def set_text_input(self, selector: str, value: str) -> None:
        await self._execute(
            "set_text_input",
            lambda: self._type_into(selector, value),
            {"selector": selector},
        )

    async def set_file_input(self, selector: str, file_path: str) -> None:
        async def upload() -> None:
            element = await self.wait_for_element(selector)
            await element.set_input_files(file_path)

        await self._execute("set_file_input", upload, {"selector": selector, "file_path": file_path})

    async def set_autocomplete_input(self, key: str, value: str) -> None:
        selector = id_prefix_selector(key)

        async def autocomplete() -> None:
            await self.set_text_input(selector, value)
            await asyncio.wait_for(
                self._wait_for_autocomplete_menu(),
                timeout=self._config.timeouts.element / 1000,
            )
            element = await self.wait_for_element(selector)
            await element.press("ArrowDown")
            await element.press("Enter")
            await self._page.eval_on_selector(selector, DISPATCH_CHANGE_SCRIPT)

        await self._execute("set_autocomplete_input", autocomplete, {"key": key})

    async def set_select_input(self, key: str, value: str) -> None:
        selector = id_prefix_selector(key)

        async def select() -> None:
            element = await self.wait_for_element(selector)
            await element.select_option(value)

        await self._execute("set_select_input", select, {"key": key, "value": value})

    async def set_checkbox_input(self, key: str) -> None:
        selector = id_prefix_selector(key)
        await self._execute(
            "set_checkbox_input",
            lambda: self._page.eval_on_selector(selector, CLICK_SCRIPT),
            {"key": key},
        )

    async def check_result_input(self, key: str, expected: str) -> bool:
        try:
            value = await self._page.eval_on_selector(id_prefix_selector(key), READ_VALUE_SCRIPT)
        except Exception as error:
            self._orchestrator.log_only(error, {"key": key, "expected": expected})
            return False
        return value == expected

    async def wait_for_page_load(self) -> None:
        await self._page.wait_for_function(PAGE_LOADED_SCRIPT, timeout=self._config.timeouts.page)

    async def screenshot(self) -> bytes:
        return await self._page.screenshot(full_page=True)

    async def _wait_for_autocomplete_menu(self) -> None:
        # No timeout here, the caller's retry/element timeouts bound it
        selector = self._config.selectors.autocomplete_menu
        while not await self._page.evaluate(MENU_VISIBLE_SCRIPT, selector):
            await asyncio.sleep(AUTOCOMPLETE_POLL_INTERVAL)
