"""
Browser capability used by the session orchestrator.

The orchestrator only needs to navigate, wait for an element, click, type and
evaluate a script in the page. Every call is bounded by a timeout and reports
failures as `DriverTimeout` or `DriverError`.
"""

import asyncio
from pathlib import Path
from typing import Any, Optional, Protocol

from playwright.async_api import async_playwright, Error, TimeoutError

from chatrelay.utils.errors import DriverError, DriverTimeout
from chatrelay.utils.logs import report

logger = report.settings(__file__)

LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
]


class BrowserDriver(Protocol):
    """Capability set the orchestrator sequences."""

    async def start(self, user_data_dir: Path, headless: bool, user_agent: str,
                    executable_path: Optional[str], timeout_ms: int) -> None: ...

    async def navigate(self, url: str, timeout_ms: int) -> None: ...

    async def wait_for(self, selector: str, timeout_ms: int) -> None: ...

    async def click(self, selector: str, timeout_ms: int) -> None: ...

    async def type(self, selector: str, text: str, timeout_ms: int) -> None: ...

    async def pause(self, ms: int) -> None: ...

    async def evaluate(self, script: str, arg: Any, timeout_ms: int) -> Any: ...

    async def close(self) -> None: ...


class PlaywrightDriver:
    """Chromium through Playwright, bound to a persistent profile directory."""

    def __init__(self):
        self._playwright = None
        self.context = None
        self.page = None

    async def start(self, user_data_dir: Path, headless: bool, user_agent: str,
                    executable_path: Optional[str], timeout_ms: int) -> None:
        """Launch Chromium with the stored profile so login state carries over."""
        try:
            self._playwright = await async_playwright().start()
            self.context = await self._playwright.chromium.launch_persistent_context(
                user_data_dir=str(user_data_dir),
                headless=headless,
                executable_path=executable_path or None,
                user_agent=user_agent,
                args=LAUNCH_ARGS,
                timeout=timeout_ms,
            )
            self.page = self.context.pages[0] if self.context.pages else await self.context.new_page()
        except TimeoutError as exc:
            raise DriverTimeout(f"browser launch exceeded {timeout_ms} ms") from exc
        except Error as exc:
            raise DriverError(f"browser launch failed: {exc}") from exc
        logger.debug("Persistent context started on %s (headless=%s)", user_data_dir, headless)

    async def navigate(self, url: str, timeout_ms: int) -> None:
        try:
            await self.page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)
        except TimeoutError as exc:
            raise DriverTimeout(f"navigation to {url} exceeded {timeout_ms} ms") from exc
        except Error as exc:
            raise DriverError(f"navigation to {url} failed: {exc}") from exc

    async def wait_for(self, selector: str, timeout_ms: int) -> None:
        try:
            await self.page.wait_for_selector(selector, state="visible", timeout=timeout_ms)
        except TimeoutError as exc:
            raise DriverTimeout(f"{selector} not visible after {timeout_ms} ms") from exc
        except Error as exc:
            raise DriverError(f"waiting for {selector} failed: {exc}") from exc

    async def click(self, selector: str, timeout_ms: int) -> None:
        try:
            await self.page.click(selector, timeout=timeout_ms)
        except TimeoutError as exc:
            raise DriverTimeout(f"click on {selector} exceeded {timeout_ms} ms") from exc
        except Error as exc:
            raise DriverError(f"click on {selector} failed: {exc}") from exc

    async def type(self, selector: str, text: str, timeout_ms: int) -> None:
        try:
            await self.page.locator(selector).first.press_sequentially(text, timeout=timeout_ms)
        except TimeoutError as exc:
            raise DriverTimeout(f"typing into {selector} exceeded {timeout_ms} ms") from exc
        except Error as exc:
            raise DriverError(f"typing into {selector} failed: {exc}") from exc

    async def pause(self, ms: int) -> None:
        await asyncio.sleep(ms / 1000)

    async def evaluate(self, script: str, arg: Any, timeout_ms: int) -> Any:
        try:
            return await asyncio.wait_for(self.page.evaluate(script, arg), timeout_ms / 1000)
        except asyncio.TimeoutError as exc:
            raise DriverTimeout(f"page script exceeded {timeout_ms} ms") from exc
        except Error as exc:
            raise DriverError(f"page script failed: {exc}") from exc

    async def close(self) -> None:
        """Release the context and the Playwright server; safe after a failed start."""
        try:
            if self.context is not None:
                await self.context.close()
        except Error as exc:
            logger.warning("Closing browser context failed: %s", exc)
        finally:
            self.context = None
            self.page = None
            if self._playwright is not None:
                playwright, self._playwright = self._playwright, None
                try:
                    await playwright.stop()
                except Error as exc:
                    logger.warning("Stopping Playwright failed: %s", exc)
