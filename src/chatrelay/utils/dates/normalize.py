"""
Turn free-form date requests into calendar dates and render them the way the
messaging client and the chat digest expect.

Parsing is lenient: anything that is not a recognised token, or names an
impossible day, resolves to today and is logged as a warning.
"""

import re
from datetime import date, datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from chatrelay.utils.logs import report

logger = report.settings(__file__)

TODAY_TOKENS = {"", "hoy", "today"}
YESTERDAY_TOKENS = {"ayer", "yesterday"}

FULL_DATE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")
DAY_MONTH = re.compile(r"^(\d{1,2})/(\d{1,2})$")

WEEKDAYS = {
    "es": ["lunes", "martes", "miércoles", "jueves", "viernes", "sábado", "domingo"],
    "en": ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"],
}
MONTHS = {
    "es": ["enero", "febrero", "marzo", "abril", "mayo", "junio", "julio",
           "agosto", "septiembre", "octubre", "noviembre", "diciembre"],
    "en": ["January", "February", "March", "April", "May", "June", "July",
           "August", "September", "October", "November", "December"],
}


def language(locale: str) -> str:
    """Two-letter language of a locale tag, limited to the supported tables."""
    lang = (locale or "").replace("_", "-").split("-")[0].lower()
    return lang if lang in MONTHS else "en"


def local_now(timezone: str, now: Optional[datetime] = None) -> datetime:
    """`now` (default: current time) expressed in `timezone`.

    A naive `now` is taken to be local to `timezone` already.
    """
    zone = ZoneInfo(timezone)
    if now is None:
        return datetime.now(zone)
    if now.tzinfo is None:
        return now.replace(tzinfo=zone)
    return now.astimezone(zone)


def today(timezone: str, now: Optional[datetime] = None) -> date:
    """Calendar date of `now` in `timezone`."""
    return local_now(timezone, now).date()


def normalize(raw_text: Optional[str], reference_now: datetime, timezone: str) -> date:
    """Resolve a date request relative to `reference_now` in `timezone`."""
    current = today(timezone, reference_now)
    text = (raw_text or "").strip().lower()

    if text in TODAY_TOKENS:
        return current
    if text in YESTERDAY_TOKENS:
        return current - timedelta(days=1)

    match = FULL_DATE.match(text)
    if match:
        day, month, year = (int(g) for g in match.groups())
        return _safe_date(year, month, day, current, raw_text)

    match = DAY_MONTH.match(text)
    if match:
        day, month = (int(g) for g in match.groups())
        return _safe_date(current.year, month, day, current, raw_text)

    logger.warning("Unrecognised date %r, using today (%s)", raw_text, current.isoformat())
    return current


def _safe_date(year: int, month: int, day: int, fallback: date, raw_text: str) -> date:
    try:
        return date(year, month, day)
    except ValueError:
        logger.warning("Impossible date %r, using today (%s)", raw_text, fallback.isoformat())
        return fallback


def to_display_label(day: date, locale: str) -> str:
    """Label WhatsApp Web renders in its in-conversation date separators.

    Only this function knows the separator format; adjust it here if the
    client changes how it prints dates.
    """
    if locale.lower() == "en-us":
        return f"{day.month:02d}/{day.day:02d}/{day.year:04d}"
    return f"{day.day:02d}/{day.month:02d}/{day.year:04d}"


def to_human_label(day: date, locale: str) -> str:
    """Long, human-readable form used in digest headers."""
    lang = language(locale)
    weekday = WEEKDAYS[lang][day.weekday()]
    month = MONTHS[lang][day.month - 1]
    if lang == "es":
        return f"{weekday}, {day.day} de {month} de {day.year}"
    return f"{weekday}, {month} {day.day}, {day.year}"
