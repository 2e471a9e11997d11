"""
Shared fixtures: an in-memory browser driver and a ready-to-use Config.

The fake driver stands in for Playwright. It records every call, counts
close() invocations and renders whatever chat list, contacts and message rows
a test gives it.
"""

import re
import asyncio
from dataclasses import replace

import pytest

from chatrelay.utils.cfg.schema import Config, Slack, WhatsApp, Region
from chatrelay.utils.errors import DriverError, DriverTimeout

CHAT_LIST = '[data-testid="chat-list"]'
QR = 'canvas[aria-label="Scan me!"]'
MESSAGES = '[data-testid="msg-container"]'

_TITLE = re.compile(r'\[title\*="(.*)"\]$')


class FakeDriver:
    """Browser double driven by what the test says is on screen."""

    def __init__(self, *, logged_in=True, qr=False, contacts=(), rows=(),
                 fail_on=None, error=DriverTimeout):
        self.logged_in = logged_in
        self.qr = qr
        self.contacts = list(contacts)
        self.rows = list(rows)
        self.fail_on = fail_on
        self.error = error
        self.calls = []
        self.close_calls = 0
        self.started_with = None

    def _maybe_fail(self, step):
        if self.fail_on == step:
            raise self.error(f"{step} failed")

    async def start(self, user_data_dir, headless, user_agent, executable_path, timeout_ms):
        self.calls.append("start")
        self.started_with = {"user_data_dir": user_data_dir, "headless": headless}
        self._maybe_fail("start")

    async def navigate(self, url, timeout_ms):
        self.calls.append("navigate")
        self._maybe_fail("navigate")

    async def wait_for(self, selector, timeout_ms):
        self.calls.append(("wait_for", selector))
        await asyncio.sleep(0)
        if selector == CHAT_LIST:
            if self.fail_on == "load":
                raise self.error("chat list failed")
            if self.logged_in:
                return
        elif selector == QR:
            if self.qr:
                return
        elif selector == MESSAGES:
            self._maybe_fail("messages")
            return
        else:
            match = _TITLE.search(selector)
            if match and any(match.group(1) in c for c in self.contacts):
                return
        raise DriverTimeout(f"{selector} not visible")

    async def click(self, selector, timeout_ms):
        self.calls.append(("click", selector))
        self._maybe_fail("click")

    async def type(self, selector, text, timeout_ms):
        self.calls.append(("type", text))

    async def pause(self, ms):
        self.calls.append("pause")

    async def evaluate(self, script, arg, timeout_ms):
        self.calls.append("evaluate")
        self._maybe_fail("evaluate")
        return list(self.rows)

    async def close(self):
        self.calls.append("close")
        self.close_calls += 1


@pytest.fixture
def make_driver():
    """Factory for FakeDriver instances."""
    def _make(**kwargs):
        return FakeDriver(**kwargs)
    return _make


@pytest.fixture
def whatsapp_settings(tmp_path):
    """WhatsApp settings with a throwaway session directory and short waits."""
    return replace(
        WhatsApp(),
        session_dir=tmp_path / "whatsapp-session",
        load_timeout_ms=500,
        search_settle_ms=0,
    )


@pytest.fixture
def cfg(whatsapp_settings):
    """A validated-looking Config pointing at fake Slack URLs."""
    config = Config()
    config.slack = replace(Slack(), webhook_url="https://hooks.slack.test/T000/B000/XXX",
                           verification_token="s3cret")
    config.whatsapp = whatsapp_settings
    config.region = Region(timezone="America/Mexico_City", locale="es-MX")
    return config


@pytest.fixture
def rows_feb_14():
    """Conversation snapshot spanning two days."""
    return [
        {"kind": "separator", "label": "13/02/2024"},
        {"kind": "message", "time": "18:00", "text": "Hasta mañana"},
        {"kind": "separator", "label": "14/02/2024"},
        {"kind": "message", "time": "09:00", "text": "Hola"},
        {"kind": "message", "time": "09:05", "text": "¿Vienes?"},
    ]
