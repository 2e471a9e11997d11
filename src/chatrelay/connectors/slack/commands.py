"""
Deferred response protocol for the slash command.

Slack gives a command three seconds to answer, while a WhatsApp lookup takes
much longer. A command therefore moves through

    RECEIVED -> ACKNOWLEDGED -> COMPLETED | FAILED

The acknowledgement is built and returned without touching the browser; the
lookup runs afterwards as an asyncio task and its single outcome is posted to
the command's `response_url`.
"""

import hmac
import asyncio
import contextlib
from enum import Enum
from datetime import datetime
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Set

from chatrelay.connectors.slack import notify
from chatrelay.connectors.whatsapp.models import Message, SearchRequest
from chatrelay.utils.cfg.schema import Config
from chatrelay.utils.dates.normalize import local_now, normalize, to_display_label
from chatrelay.utils.errors import Unauthorized, describe_error
from chatrelay.utils.logs import report

logger = report.settings(__file__)

Runner = Callable[[SearchRequest], Awaitable[List[Message]]]
Deliver = Callable[[Dict[str, Any], str, float], bool]

_active_tasks: Set[asyncio.Task] = set()


class CommandState(Enum):
    """Progress of one slash command."""
    RECEIVED = "received"
    ACKNOWLEDGED = "acknowledged"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class DeferredCommand:
    """An accepted slash command, consumed once by the background step."""
    requester_id: str
    raw_argument: str
    callback_url: str

    @classmethod
    def from_fields(cls, fields: Mapping[str, Any]) -> "DeferredCommand":
        """Build from Slack's form fields (`user_name`, `text`, `response_url`)."""
        return cls(
            requester_id=str(fields.get("user_name") or fields.get("user_id") or "unknown"),
            raw_argument=str(fields.get("text") or ""),
            callback_url=str(fields.get("response_url") or ""),
        )


def verify_token(expected: str, provided: Optional[str]) -> None:
    """Raise Unauthorized on mismatch. An empty `expected` disables the check."""
    if not expected:
        return
    if not hmac.compare_digest(expected.encode("utf-8"), (provided or "").encode("utf-8")):
        raise Unauthorized("Invalid Slack verification token")


# -------------- Background tasks --------------------------------------------

def active_task_count() -> int:
    """Number of lookups still running."""
    return len(_active_tasks)


def schedule(coroutine: Awaitable[Any], requester: str) -> asyncio.Task:
    """Run `coroutine` as a task the caller does not await."""
    task = asyncio.create_task(coroutine)
    _active_tasks.add(task)
    task.add_done_callback(_on_task_done)
    logger.info("Scheduled lookup for %s (%d active)", requester, len(_active_tasks))
    return task


def _on_task_done(task: asyncio.Task) -> None:
    _active_tasks.discard(task)
    with contextlib.suppress(asyncio.CancelledError):
        exc = task.exception()
        if exc is not None:
            logger.error("Background lookup crashed: %s", describe_error(exc))


async def drain_tasks(timeout_s: float = 30.0) -> None:
    """Wait for running lookups at shutdown; cancel what is left after `timeout_s`.

    Cancelling a lookup unwinds its session, which closes the browser.
    """
    if not _active_tasks:
        return
    pending_now = list(_active_tasks)
    logger.info("Waiting for %d background lookups", len(pending_now))
    _, pending = await asyncio.wait(pending_now, timeout=timeout_s)
    if not pending:
        return
    for task in pending:
        task.cancel()
    await asyncio.gather(*pending, return_exceptions=True)
    logger.warning("Cancelled %d background lookups at shutdown", len(pending))


# -------------- Protocol ----------------------------------------------------

async def process_command(command: DeferredCommand, cfg: Config, runner: Runner,
                          deliver: Deliver, now: Optional[datetime] = None) -> CommandState:
    """Run the lookup and post exactly one terminal response to the callback URL."""
    locale = cfg.region.locale
    contact = cfg.whatsapp.contact_name
    user = command.requester_id

    try:
        logger.info("Processing command from %s: %r", user, command.raw_argument)
        reference = local_now(cfg.region.timezone, now)
        target = normalize(command.raw_argument, reference, cfg.region.timezone)
        request = SearchRequest(
            target_date=target,
            contact_name=contact,
            timezone=cfg.region.timezone,
            locale=locale,
        )
        messages = await runner(request)
    except Exception as exc:  # every run failure is reported to the requester
        logger.error("Command from %s failed: %s", user, describe_error(exc))
        payload = notify.command_error(exc, user, locale)
        state = CommandState.FAILED
    else:
        logger.info("Command from %s found %d messages for %s",
                    user, len(messages), to_display_label(target, locale))
        payload = notify.command_result(messages, contact, target, user, locale)
        state = CommandState.COMPLETED

    if command.callback_url:
        await asyncio.to_thread(deliver, payload, command.callback_url, cfg.slack.delivery_timeout)
    else:
        logger.warning("Command from %s had no response_url; result dropped", user)
    return state


def accept_command(fields: Mapping[str, Any], cfg: Config, runner: Runner,
                   deliver: Deliver, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Validate the command, schedule the lookup and return the acknowledgement.

    Raises Unauthorized without scheduling anything when the token is wrong.
    Must be called from a running event loop.
    """
    user = str(fields.get("user_name") or "unknown")
    try:
        verify_token(cfg.slack.verification_token, fields.get("token"))
    except Unauthorized:
        logger.error("Invalid Slack token from user %s", user)
        raise

    command = DeferredCommand.from_fields(fields)
    logger.info("Slash command received from %s: %s %s",
                user, fields.get("command", ""), command.raw_argument)
    ack = notify.command_ack(cfg.whatsapp.contact_name, command.requester_id, cfg.region.locale)
    schedule(process_command(command, cfg, runner, deliver, now), command.requester_id)
    return ack
