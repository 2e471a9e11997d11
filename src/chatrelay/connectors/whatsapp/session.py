#!/usr/bin/env python3
"""
WhatsApp Web session orchestrator.

A run drives one browser session through a fixed sequence:

    STARTING -> READY | AWAITING_LOGIN -> CONTACT_SELECTED -> MESSAGES_EXTRACTED

with FAILED reachable from every step. The browser is released exactly once
per opened session, whichever step raises. `run()` is the single entry point
that wraps the whole sequence.
"""

import asyncio
from pathlib import Path
from datetime import date
from dataclasses import dataclass, replace
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Dict, List

from chatrelay.connectors.whatsapp import extractor
from chatrelay.connectors.whatsapp.driver import BrowserDriver, PlaywrightDriver
from chatrelay.connectors.whatsapp.models import (
    LoadOutcome,
    LoadStatus,
    Message,
    SearchRequest,
    SessionState,
)
from chatrelay.utils.cfg.schema import WhatsApp as WhatsAppSettings
from chatrelay.utils.dates.normalize import to_display_label
from chatrelay.utils.errors import (
    ContactNotFound,
    DriverError,
    DriverTimeout,
    ExtractionTimeout,
    LoadTimeout,
    LoginRequired,
    SessionFault,
)
from chatrelay.utils.logs import report

logger = report.settings(__file__)

DriverFactory = Callable[[], BrowserDriver]

# One lock per session directory: a browser profile cannot be opened by two
# browsers at once, so runs sharing a directory take turns.
_storage_locks: Dict[str, asyncio.Lock] = {}


def _storage_lock(session_dir: Path) -> asyncio.Lock:
    key = str(session_dir.resolve())
    if key not in _storage_locks:
        _storage_locks[key] = asyncio.Lock()
    return _storage_locks[key]


# -------------- Session Handle ----------------------------------------------

@dataclass
class SessionHandle:
    """Exclusive ownership of one live browser session and its page."""
    driver: BrowserDriver
    settings: WhatsAppSettings
    state: SessionState = SessionState.STARTING
    closed: bool = False

    def advance(self, state: SessionState) -> None:
        """Move to `state`, logging the transition."""
        logger.debug("Session %s -> %s", self.state.value, state.value)
        self.state = state

    def require(self, state: SessionState) -> None:
        """Refuse to run a step out of order."""
        if self.state is not state:
            raise SessionFault(
                f"session is {self.state.value}, expected {state.value}"
            )


def _escape_attr(value: str) -> str:
    """Escape a value for use inside a double-quoted CSS attribute selector."""
    return value.replace("\\", "\\\\").replace('"', '\\"')


# -------------- Steps -------------------------------------------------------

async def _ensure_session_dir(settings: WhatsAppSettings) -> None:
    if not settings.session_dir.exists():
        settings.session_dir.mkdir(parents=True, exist_ok=True)
        logger.info("Created session directory %s", settings.session_dir)


async def _wait_until_loaded(handle: SessionHandle) -> LoadOutcome:
    """Race the chat list against the QR code, bounded by the load timeout."""
    settings = handle.settings
    driver = handle.driver
    timeout_ms = settings.load_timeout_ms

    ready = asyncio.create_task(driver.wait_for(settings.chat_list_selector, timeout_ms))
    login = asyncio.create_task(driver.wait_for(settings.qr_selector, timeout_ms))
    pending = {ready, login}
    fault = ""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout_ms / 1000

    try:
        while pending:
            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            done, pending = await asyncio.wait(
                pending, timeout=remaining, return_when=asyncio.FIRST_COMPLETED
            )
            if not done:
                break
            # Prefer the chat list when both resolve in the same tick
            for task in sorted(done, key=lambda t: t is not ready):
                exc = task.exception()
                if exc is None:
                    if task is ready:
                        return LoadOutcome(LoadStatus.READY)
                    return LoadOutcome(LoadStatus.LOGIN_REQUIRED)
                if isinstance(exc, DriverTimeout):
                    continue
                fault = str(exc)
    finally:
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    if fault:
        return LoadOutcome(LoadStatus.FAULT, fault)
    return LoadOutcome(LoadStatus.TIMEOUT, f"WhatsApp Web did not load within {timeout_ms} ms")


async def _launch(handle: SessionHandle) -> None:
    settings = handle.settings
    driver = handle.driver

    await _ensure_session_dir(settings)
    print("🌐 Starting browser…")
    try:
        await driver.start(
            user_data_dir=settings.session_dir,
            headless=settings.headless,
            user_agent=settings.user_agent,
            executable_path=settings.executable_path or None,
            timeout_ms=settings.launch_timeout_ms,
        )
        logger.info("Loading %s", settings.url)
        await driver.navigate(settings.url, settings.navigation_timeout_ms)
    except DriverTimeout as exc:
        raise LoadTimeout(str(exc)) from exc
    except DriverError as exc:
        raise SessionFault(str(exc)) from exc

    outcome = await _wait_until_loaded(handle)
    if outcome.status is LoadStatus.READY:
        handle.advance(SessionState.READY)
        logger.info("WhatsApp Web loaded with a stored session")
        return
    if outcome.status is LoadStatus.LOGIN_REQUIRED:
        handle.advance(SessionState.AWAITING_LOGIN)
        logger.error("QR code shown: no stored WhatsApp session")
        raise LoginRequired(
            "WhatsApp session not found. Run `wa-relay --login` once in a visible "
            "browser and scan the QR code."
        )
    if outcome.status is LoadStatus.FAULT:
        raise SessionFault(outcome.detail)
    raise LoadTimeout(outcome.detail)


async def open_session(settings: WhatsAppSettings,
                       driver_factory: DriverFactory = PlaywrightDriver) -> SessionHandle:
    """Launch the browser on the stored profile and wait for the chat list.

    Raises LoginRequired when the QR code is shown, LoadTimeout when neither
    appears in time. The browser is released before any error propagates.
    """
    handle = SessionHandle(driver=driver_factory(), settings=settings)
    try:
        await _launch(handle)
    except BaseException:
        handle.advance(SessionState.FAILED)
        await close_session(handle)
        raise
    return handle


async def select_contact(handle: SessionHandle, name: str) -> SessionHandle:
    """Search for `name` and open the first result whose title contains it."""
    handle.require(SessionState.READY)
    settings = handle.settings
    driver = handle.driver

    logger.info("Searching contact: %s", name)
    try:
        await driver.click(settings.search_selector, settings.step_timeout_ms)
        await driver.type(settings.search_selector, name, settings.step_timeout_ms)
    except DriverTimeout as exc:
        raise LoadTimeout(f"search box unavailable: {exc}") from exc
    except DriverError as exc:
        raise SessionFault(str(exc)) from exc

    await driver.pause(settings.search_settle_ms)

    result = f'{settings.chat_list_selector} [title*="{_escape_attr(name)}"]'
    try:
        await driver.wait_for(result, settings.contact_timeout_ms)
        await driver.click(result, settings.step_timeout_ms)
    except DriverTimeout as exc:
        logger.error("Contact %s not found", name)
        raise ContactNotFound(f"Contact '{name}' not found in WhatsApp search results") from exc
    except DriverError as exc:
        raise SessionFault(str(exc)) from exc

    handle.advance(SessionState.CONTACT_SELECTED)
    logger.info("Contact %s selected", name)
    return handle


async def extract_messages(handle: SessionHandle, target_date: date, locale: str) -> List[Message]:
    """Messages rendered in the open conversation under `target_date`'s separator."""
    handle.require(SessionState.CONTACT_SELECTED)
    settings = handle.settings
    driver = handle.driver
    label = to_display_label(target_date, locale)
    selectors = {
        "message": settings.message_selector,
        "separator": settings.separator_selector,
        "text": settings.text_selector,
        "time": settings.time_selector,
    }

    logger.info("Reading messages dated %s", label)
    try:
        await driver.wait_for(settings.message_selector, settings.extraction_timeout_ms)
        rows = await driver.evaluate(
            extractor.SNAPSHOT_SCRIPT, selectors, settings.extraction_timeout_ms
        )
    except DriverTimeout as exc:
        raise ExtractionTimeout(f"conversation messages did not render: {exc}") from exc
    except DriverError as exc:
        raise SessionFault(str(exc)) from exc

    messages = extractor.extract(rows or [], label)
    handle.advance(SessionState.MESSAGES_EXTRACTED)
    logger.info("Found %d messages dated %s", len(messages), label)
    return messages


async def close_session(handle: SessionHandle) -> None:
    """Release the browser. Later calls are no-ops."""
    if handle.closed:
        return
    handle.closed = True
    try:
        await handle.driver.close()
    except (DriverError, OSError) as exc:
        logger.warning("Closing browser failed: %s", exc)
    logger.info("Browser closed")


@asynccontextmanager
async def session(settings: WhatsAppSettings,
                  driver_factory: DriverFactory = PlaywrightDriver) -> AsyncIterator[SessionHandle]:
    """Open a session, hand it out, and close it on every exit path."""
    async with _storage_lock(settings.session_dir):
        handle = await open_session(settings, driver_factory)
        try:
            yield handle
        except BaseException:
            handle.advance(SessionState.FAILED)
            raise
        finally:
            await close_session(handle)


async def run(request: SearchRequest, settings: WhatsAppSettings,
              driver_factory: DriverFactory = PlaywrightDriver) -> List[Message]:
    """Open, select the contact, extract `request.target_date`, close."""
    label = to_display_label(request.target_date, request.locale)
    logger.info("Starting lookup for %s on %s", request.contact_name, label)
    async with session(settings, driver_factory) as handle:
        await select_contact(handle, request.contact_name)
        messages = await extract_messages(handle, request.target_date, request.locale)
    logger.info("Lookup finished: %d messages", len(messages))
    return messages


async def login_interactively(settings: WhatsAppSettings,
                              driver_factory: DriverFactory = PlaywrightDriver) -> None:
    """Open a visible browser and wait for the operator to scan the QR code.

    The login is stored in the session directory for later headless runs.
    """
    visible = replace(settings, headless=False, load_timeout_ms=settings.login_timeout_s * 1000)
    print("📱 Scan the QR code in the browser window to link this device.")
    print(f"   Waiting up to {settings.login_timeout_s // 60} minutes…")
    async with _storage_lock(visible.session_dir):
        handle = SessionHandle(driver=driver_factory(), settings=visible)
        try:
            await _ensure_session_dir(visible)
            try:
                await handle.driver.start(
                    user_data_dir=visible.session_dir,
                    headless=False,
                    user_agent=visible.user_agent,
                    executable_path=visible.executable_path or None,
                    timeout_ms=visible.launch_timeout_ms,
                )
                await handle.driver.navigate(visible.url, visible.navigation_timeout_ms)
                await handle.driver.wait_for(visible.chat_list_selector, visible.load_timeout_ms)
            except DriverTimeout as exc:
                handle.advance(SessionState.FAILED)
                raise LoadTimeout(f"login not completed: {exc}") from exc
            except DriverError as exc:
                handle.advance(SessionState.FAILED)
                raise SessionFault(str(exc)) from exc
            handle.advance(SessionState.READY)
            logger.info("Interactive login completed, session stored in %s", visible.session_dir)
            print("✅ Session stored. Headless runs will reuse it.")
        finally:
            await close_session(handle)
