"""
This file is used to define the schema for the config file.

Sections are frozen so the settings handed to a run cannot be mutated by it;
the engine builds updated copies with `dataclasses.replace`.
"""
from pathlib import Path
from dataclasses import dataclass, field


@dataclass(frozen=True)
class Slack:
    """Chat destinations and the slash-command shared secret."""
    webhook_url:        str   = ""
    verification_token: str   = ""
    username:           str   = "WhatsApp Bot"
    icon_emoji:         str   = ":speech_balloon:"
    error_icon_emoji:   str   = ":warning:"
    delivery_timeout:   float = 10.0


@dataclass(frozen=True)
class WhatsApp:
    """Browser session against WhatsApp Web."""
    url:                   str  = "https://web.whatsapp.com"
    contact_name:          str  = "Anafre"
    session_dir:           Path = Path("whatsapp-session")
    headless:              bool = True
    executable_path:       str  = ""
    user_agent:            str  = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/119.0.0.0 Safari/537.36"
    )
    launch_timeout_ms:     int  = 30000
    navigation_timeout_ms: int  = 60000
    load_timeout_ms:       int  = 30000
    step_timeout_ms:       int  = 10000
    search_settle_ms:      int  = 2000
    contact_timeout_ms:    int  = 5000
    extraction_timeout_ms: int  = 10000
    login_timeout_s:       int  = 300
    chat_list_selector:    str  = '[data-testid="chat-list"]'
    qr_selector:           str  = 'canvas[aria-label="Scan me!"]'
    search_selector:       str  = '[data-testid="search-input"]'
    message_selector:      str  = '[data-testid="msg-container"]'
    separator_selector:    str  = '[data-testid="date-trans"]'
    text_selector:         str  = '[data-testid="msg-text"]'
    time_selector:         str  = '[data-testid="msg-time"]'


@dataclass(frozen=True)
class Region:
    """Time zone and language used for dates and chat copy."""
    timezone: str = "America/Mexico_City"
    locale:   str = "es-MX"


@dataclass(frozen=True)
class Schedule:
    """Weekly cadence of the scheduled relay (weekday names, local time)."""
    days:   str = "mon,tue,wed,thu,fri"
    hour:   int = 10
    minute: int = 0


@dataclass(frozen=True)
class Server:
    """Slash-command HTTP server."""
    host:         str = "0.0.0.0"
    port:         int = 3000
    command_path: str = "/slack/anafre"


@dataclass(frozen=True)
class Runtime:
    """Process-wide switches."""
    debug: bool = False


@dataclass
class Config:
    """Main configuration container aggregating all sections."""
    slack:    Slack    = field(default_factory=Slack)
    whatsapp: WhatsApp = field(default_factory=WhatsApp)
    region:   Region   = field(default_factory=Region)
    schedule: Schedule = field(default_factory=Schedule)
    server:   Server   = field(default_factory=Server)
    runtime:  Runtime  = field(default_factory=Runtime)
