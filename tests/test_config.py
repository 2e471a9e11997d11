"""
Tests for chatrelay.utils.cfg.engine
"""

from pathlib import Path
from dataclasses import replace
from configparser import ConfigParser

import pytest

from chatrelay.utils.cfg import engine
from chatrelay.utils.cfg.schema import Config
from chatrelay.utils.errors import ConfigError


def test_first_load_writes_template_matching_defaults(tmp_path):
    """
    A missing config.ini is created from the dataclass defaults and reads back unchanged.
    """
    ini = tmp_path / "config.ini"

    cfg = engine.load(ini, environ={})

    assert ini.exists()
    assert "[whatsapp]" in ini.read_text(encoding="utf-8")
    assert cfg == Config()
    assert cfg.whatsapp.session_dir == Path("whatsapp-session")


def test_ini_values_override_defaults(tmp_path):
    ini = tmp_path / "config.ini"
    ini.write_text(
        "[whatsapp]\ncontact_name = Mamá\nheadless = no\nload_timeout_ms = 1500\n"
        "[schedule]\ndays = mon-wed\n"
        "[unknown]\nkey = ignored\n",
        encoding="utf-8",
    )

    cfg = engine.load(ini, environ={})

    assert cfg.whatsapp.contact_name == "Mamá"
    assert cfg.whatsapp.headless is False
    assert cfg.whatsapp.load_timeout_ms == 1500
    assert cfg.schedule.days == "mon-wed"


def test_environment_wins_over_ini(tmp_path):
    ini = tmp_path / "config.ini"
    ini.write_text("[slack]\nwebhook_url = https://from-ini\n", encoding="utf-8")

    cfg = engine.load(ini, environ={
        "SLACK_WEBHOOK_URL": "https://from-env",
        "WHATSAPP_SESSION_DIR": "/var/lib/relay/session",
        "HEADLESS": "TRUE",
        "PORT": "8080",
        "TIMEZONE": "Europe/Madrid",
    })

    assert cfg.slack.webhook_url == "https://from-env"
    assert cfg.whatsapp.session_dir == Path("/var/lib/relay/session")
    assert cfg.whatsapp.headless is True
    assert cfg.server.port == 8080
    assert cfg.region.timezone == "Europe/Madrid"


@pytest.mark.parametrize("env", [{"HEADLESS": "maybe"}, {"PORT": "eighty"}])
def test_bad_values_raise_config_error(tmp_path, env):
    with pytest.raises(ConfigError):
        engine.load(tmp_path / "config.ini", environ=env)


class TestValidate:
    def test_webhook_is_required(self):
        with pytest.raises(ConfigError, match="SLACK_WEBHOOK_URL"):
            engine.validate(Config())

    def test_unknown_time_zone(self, cfg):
        cfg.region = replace(cfg.region, timezone="Mars/Olympus_Mons")
        with pytest.raises(ConfigError, match="time zone"):
            engine.validate(cfg)

    def test_missing_token_is_allowed(self, cfg):
        cfg.slack = replace(cfg.slack, verification_token="")
        assert engine.validate(cfg) is cfg


def test_template_only_lists_settings_the_relay_reads(tmp_path):
    """
    Locale is a region setting; the browser section carries none.
    """
    ini = tmp_path / "config.ini"
    engine.load(ini, environ={})

    cp = ConfigParser(interpolation=None)
    cp.read(ini, encoding="utf-8")
    assert "locale" not in cp["whatsapp"]
    assert cp["region"]["locale"] == "es-MX"
