"""Value types shared by the WhatsApp session orchestrator and its callers."""

from enum import Enum
from datetime import date
from dataclasses import dataclass, asdict
from typing import Dict


@dataclass(frozen=True)
class SearchRequest:
    """One lookup: every message exchanged with `contact_name` on `target_date`."""
    target_date: date
    contact_name: str
    timezone: str
    locale: str = "es-MX"


@dataclass(frozen=True)
class Message:
    """A single rendered message, in conversation order."""
    time: str
    text: str
    date: str

    def to_dict(self) -> Dict[str, str]:
        """Plain mapping for JSON responses."""
        return asdict(self)


class SessionState(Enum):
    """Lifecycle of a browser session during one run."""
    STARTING = "starting"
    AWAITING_LOGIN = "awaiting_login"
    READY = "ready"
    CONTACT_SELECTED = "contact_selected"
    MESSAGES_EXTRACTED = "messages_extracted"
    FAILED = "failed"


class LoadStatus(Enum):
    """What the client showed after navigation."""
    READY = "ready"
    LOGIN_REQUIRED = "login_required"
    TIMEOUT = "timeout"
    FAULT = "fault"


@dataclass(frozen=True)
class LoadOutcome:
    """Tagged result of waiting for the client to load."""
    status: LoadStatus
    detail: str = ""
