"""
Configuration engine: load dataclass defaults first, merge INI overrides, then
environment overrides (a `.env` file in the working directory is honoured).
On first run, a template `config.ini` mirroring the dataclass defaults is written
so the user has something to tweak.
"""

import os
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple
from dataclasses import asdict, replace
from configparser import ConfigParser
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

from chatrelay.utils.cfg.schema import Config
from chatrelay.utils.errors import ConfigError
from chatrelay.utils.logs import report

logger = report.settings(__file__)


# Paths
INI_FILE = Path("config.ini")

# Environment variable -> (section, key)
ENV_OVERRIDES: Dict[str, Tuple[str, str]] = {
    "SLACK_WEBHOOK_URL":        ("slack", "webhook_url"),
    "SLACK_VERIFICATION_TOKEN": ("slack", "verification_token"),
    "WHATSAPP_CONTACT_NAME":    ("whatsapp", "contact_name"),
    "WHATSAPP_SESSION_DIR":     ("whatsapp", "session_dir"),
    "CHROME_EXECUTABLE_PATH":   ("whatsapp", "executable_path"),
    "HEADLESS":                 ("whatsapp", "headless"),
    "TIMEZONE":                 ("region", "timezone"),
    "LOCALE":                   ("region", "locale"),
    "DEBUG":                    ("runtime", "debug"),
    "HOST":                     ("server", "host"),
    "PORT":                     ("server", "port"),
}

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


# Helpers
def _cast(template_value, raw: str, name: str):
    """Cast the raw INI/env string back to the dataclass field type."""
    t = type(template_value)
    if t is bool:
        lowered = raw.strip().lower()
        if lowered in _TRUE:
            return True
        if lowered in _FALSE:
            return False
        raise ConfigError(f"{name}: expected a boolean, got {raw!r}")
    if isinstance(template_value, Path):
        return Path(raw)
    try:
        return t(raw)
    except ValueError as exc:
        raise ConfigError(f"{name}: expected {t.__name__}, got {raw!r}") from exc


def _create_config(cfg: Config, path: Path) -> None:
    """Write a template INI that mirrors the dataclass defaults."""
    cp = ConfigParser(interpolation=None)
    for section, mapping in asdict(cfg).items():
        cp[section] = {k: str(v) for k, v in mapping.items()}
    with path.open("w", encoding="utf-8") as f:
        cp.write(f)


def _apply(cfg: Config, section: str, key: str, raw: str) -> None:
    """Replace one field of a frozen section with the cast value."""
    current = getattr(cfg, section)
    value = _cast(getattr(current, key), raw, f"{section}.{key}")
    setattr(cfg, section, replace(current, **{key: value}))


# Public API
def load(path: Optional[Path] = None, environ: Optional[Mapping[str, str]] = None) -> Config:
    """Load configuration from INI file and environment and return Config object."""
    cfg = Config()
    ini = path or INI_FILE

    # Create template on first run so users have something to tweak
    if not ini.exists():
        _create_config(cfg, ini)
        logger.info("Wrote configuration template to %s", ini)

    cp = ConfigParser(interpolation=None)
    cp.read(ini, encoding="utf-8")

    for sect in cp.sections():
        if not hasattr(cfg, sect):
            continue
        dst = getattr(cfg, sect)
        for key, raw in cp.items(sect):
            if hasattr(dst, key):
                _apply(cfg, sect, key, raw)

    if environ is None:
        load_dotenv()
        environ = os.environ
    for var, (sect, key) in ENV_OVERRIDES.items():
        if var in environ:
            _apply(cfg, sect, key, environ[var])

    return cfg


def validate(cfg: Config) -> Config:
    """Fail fast on settings the relay cannot run without."""
    if not cfg.slack.webhook_url:
        raise ConfigError("SLACK_WEBHOOK_URL is required (set it in .env or config.ini)")
    try:
        ZoneInfo(cfg.region.timezone)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ConfigError(f"Unknown time zone: {cfg.region.timezone}") from exc
    if not cfg.slack.verification_token:
        logger.warning("SLACK_VERIFICATION_TOKEN not set - slash commands will not be verified")
    return cfg
