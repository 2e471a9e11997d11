#!/usr/bin/env python3
"""
WhatsApp -> Slack relay job.

Looks up the day's messages with the configured contact and posts them to the
Slack incoming webhook. Runs on a weekly cadence, once on demand, or opens a
visible browser so the operator can link the device.
"""

import sys
import signal
import asyncio
import argparse
from pathlib import Path
from datetime import datetime
from typing import List, Optional

from chatrelay.connectors.slack import notify
from chatrelay.connectors.slack.commands import Deliver, Runner
from chatrelay.connectors.whatsapp import session
from chatrelay.connectors.whatsapp.models import Message, SearchRequest
from chatrelay.connectors.whatsapp._playwright_setup import ensure_chromium_installed
from chatrelay.jobs import cron
from chatrelay.utils.cfg import engine
from chatrelay.utils.cfg.schema import Config, WhatsApp as WhatsAppSettings
from chatrelay.utils.dates.normalize import local_now, normalize, to_display_label
from chatrelay.utils.errors import RelayError, describe_error
from chatrelay.utils.logs import report
from chatrelay.utils.style import ansi

logger = report.settings(__file__)


def make_runner(settings: WhatsAppSettings) -> Runner:
    """Bind the session orchestrator to one WhatsApp configuration."""
    async def _search(request: SearchRequest) -> List[Message]:
        return await session.run(request, settings)
    return _search


def build_request(cfg: Config, raw_date: str = "", now: Optional[datetime] = None) -> SearchRequest:
    """Search request for the configured contact on the date `raw_date` names."""
    reference = local_now(cfg.region.timezone, now)
    return SearchRequest(
        target_date=normalize(raw_date, reference, cfg.region.timezone),
        contact_name=cfg.whatsapp.contact_name,
        timezone=cfg.region.timezone,
        locale=cfg.region.locale,
    )


async def run_scheduled(cfg: Config, raw_date: str = "", now: Optional[datetime] = None,
                        runner: Optional[Runner] = None,
                        deliver: Optional[Deliver] = None) -> List[Message]:
    """Relay one day's messages to the webhook.

    On failure the error notice goes to the same webhook and the error is
    re-raised for the caller to log.
    """
    runner = runner or make_runner(cfg.whatsapp)
    deliver = deliver or notify.deliver
    slack = cfg.slack
    request = build_request(cfg, raw_date, now)
    label = to_display_label(request.target_date, request.locale)

    try:
        logger.info("Relay run started for %s", label)
        messages = await runner(request)
    except Exception as exc:  # reported to the channel, then re-raised
        logger.error("Relay run failed: %s", describe_error(exc))
        payload = notify.webhook_error_payload(exc, slack.username, slack.error_icon_emoji,
                                               cfg.region.locale)
        await asyncio.to_thread(deliver, payload, slack.webhook_url, slack.delivery_timeout)
        raise

    text = notify.format_digest(messages, request.contact_name, request.target_date,
                                request.locale)
    payload = notify.webhook_payload(text, slack.username, slack.icon_emoji)
    await asyncio.to_thread(deliver, payload, slack.webhook_url, slack.delivery_timeout)
    logger.info("Relay run completed: %d messages for %s", len(messages), label)
    return messages


# -------------- CLI ----------------------------------------------------------

def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="wa-relay",
        description="Relay a day's WhatsApp messages with one contact to Slack.",
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--test", action="store_true",
                      help="run once for today and exit")
    mode.add_argument("--date", metavar="TEXT",
                      help="run once for a date: DD/MM/YYYY, DD/MM, ayer/yesterday, hoy/today")
    mode.add_argument("--login", action="store_true",
                      help="open a visible browser to scan the WhatsApp QR code")
    parser.add_argument("--config", type=Path, default=None,
                        help="path to config.ini (default: ./config.ini)")
    return parser.parse_args(argv)


async def _main(args: argparse.Namespace, cfg: Config) -> int:
    # Cancel the running job on SIGTERM so its browser session is closed
    loop = asyncio.get_running_loop()
    current = asyncio.current_task()
    try:
        loop.add_signal_handler(signal.SIGTERM, current.cancel)
        handles_sigterm = True
    except (NotImplementedError, RuntimeError):
        handles_sigterm = False

    try:
        return await _dispatch(args, cfg)
    finally:
        if handles_sigterm:
            loop.remove_signal_handler(signal.SIGTERM)


async def _dispatch(args: argparse.Namespace, cfg: Config) -> int:
    if args.login:
        await session.login_interactively(cfg.whatsapp)
        return 0

    if args.test or args.date is not None:
        print("🧪 Single run")
        try:
            messages = await run_scheduled(cfg, raw_date=args.date or "")
        except RelayError as exc:
            print(f"❌ {ansi.red}{describe_error(exc)}{ansi.reset}")
            return 1
        print(f"✅ Relayed {ansi.green}{len(messages)}{ansi.reset} messages")
        return 0

    await cron.serve_forever(cfg, lambda: run_scheduled(cfg))
    return 0


def run_main(argv: Optional[List[str]] = None) -> None:
    """Entry point for `wa-relay`."""
    args = _parse_args(argv)
    try:
        cfg = engine.validate(engine.load(args.config))
    except RelayError as exc:
        print(f"❌ {ansi.red}{describe_error(exc)}{ansi.reset}")
        sys.exit(2)

    report.configure(cfg.runtime.debug)
    ensure_chromium_installed(cfg.whatsapp.executable_path)

    try:
        code = asyncio.run(_main(args, cfg))
    except (KeyboardInterrupt, asyncio.CancelledError):
        print("\n⚠️  Bot stopped.")
        logger.warning("Relay stopped by signal")
        code = 0
    sys.exit(code)


if __name__ == "__main__":
    run_main()
