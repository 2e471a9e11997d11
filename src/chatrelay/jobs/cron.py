"""
Weekly cadence for the scheduled relay.

The loop runs the job inline, so a run that outlasts the next slot delays it
instead of overlapping. Only one loop per process is expected; running two
processes against the same session directory is an operator error.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, FrozenSet, Optional

from chatrelay.utils.cfg.schema import Config
from chatrelay.utils.dates.normalize import local_now
from chatrelay.utils.errors import ConfigError, describe_error
from chatrelay.utils.logs import report

logger = report.settings(__file__)

DAY_NAMES = ["mon", "tue", "wed", "thu", "fri", "sat", "sun"]


def parse_days(text: str) -> FrozenSet[int]:
    """Weekday numbers (Monday = 0) from `mon,wed` or `mon-fri` style text."""
    days = set()
    for part in (p.strip().lower() for p in text.split(",")):
        if not part:
            continue
        if "-" in part:
            first, last = (p.strip()[:3] for p in part.split("-", 1))
            if first not in DAY_NAMES or last not in DAY_NAMES:
                raise ConfigError(f"Unknown weekday range: {part}")
            start, end = DAY_NAMES.index(first), DAY_NAMES.index(last)
            span = range(start, end + 1) if start <= end else [*range(start, 7), *range(0, end + 1)]
            days.update(span)
        elif part[:3] in DAY_NAMES:
            days.add(DAY_NAMES.index(part[:3]))
        else:
            raise ConfigError(f"Unknown weekday: {part}")
    if not days:
        raise ConfigError("Schedule has no weekdays")
    return frozenset(days)


def _utc(moment: datetime) -> datetime:
    return moment.astimezone(timezone.utc)


def next_run(now: datetime, days: FrozenSet[int], hour: int, minute: int) -> datetime:
    """First slot strictly after `now` on one of `days` at `hour:minute`.

    `now` must carry the schedule's time zone. Slots are wall-clock times in
    that zone; the comparison is made in UTC so DST changes are respected.
    """
    candidate = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    for offset in range(8):
        slot = candidate + timedelta(days=offset)
        if slot.weekday() in days and _utc(slot) > _utc(now):
            return slot
    raise ConfigError("Schedule has no weekdays")


def seconds_until(slot: datetime, now: datetime) -> float:
    """Elapsed real time between two zone-aware datetimes."""
    return (_utc(slot) - _utc(now)).total_seconds()


async def serve_forever(cfg: Config, job: Callable[[], Awaitable[object]],
                        now: Optional[Callable[[], datetime]] = None) -> None:
    """Sleep until each configured slot and run `job`; failures are logged."""
    days = parse_days(cfg.schedule.days)
    clock = now or (lambda: local_now(cfg.region.timezone))
    logger.info("Schedule: %s at %02d:%02d (%s)",
                cfg.schedule.days, cfg.schedule.hour, cfg.schedule.minute, cfg.region.timezone)

    while True:
        current = clock()
        slot = next_run(current, days, cfg.schedule.hour, cfg.schedule.minute)
        delay = seconds_until(slot, current)
        print(f"⏰ Next run: {slot.strftime('%a %Y-%m-%d %H:%M %Z')}")
        logger.info("Next run at %s (in %.0f s)", slot.isoformat(), delay)
        await asyncio.sleep(delay)

        logger.info("Running scheduled relay")
        try:
            await job()
        except Exception as exc:  # keep the schedule alive
            logger.error("Scheduled relay failed: %s", describe_error(exc))
