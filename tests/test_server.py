"""
Tests for chatrelay.connectors.slack.server over FastAPI's TestClient.

Leaving the `with TestClient(...)` block runs the shutdown hook, which waits
for background lookups, so deliveries are visible right after it.
"""

from dataclasses import replace

import pytest
import uvicorn
from fastapi.testclient import TestClient

from chatrelay.connectors.slack import server
from chatrelay.connectors.whatsapp.models import Message
from chatrelay.utils.errors import LoginRequired

CALLBACK = "https://hooks.slack.test/commands/T000/456"


class Recorder:
    def __init__(self):
        self.calls = []

    def __call__(self, payload, url, timeout):
        self.calls.append((payload, url))
        return True


def _runner_returning(messages):
    async def _runner(request):
        return list(messages)
    return _runner


def test_health(cfg):
    app = server.create_app(cfg, runner=_runner_returning([]), deliver=Recorder())
    with TestClient(app) as client:
        r = client.get("/health")

    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "OK"
    assert body["service"] == "WhatsApp Slack Bot Server"
    assert "timestamp" in body


def test_slash_command_acks_then_posts_result(cfg):
    deliver = Recorder()
    messages = [Message(time="09:00", text="Hola", date="14/02/2024")]
    app = server.create_app(cfg, runner=_runner_returning(messages), deliver=deliver)

    with TestClient(app) as client:
        r = client.post("/slack/anafre", data={
            "token": "s3cret",
            "command": "/anafre",
            "user_name": "ana",
            "text": "14/02/2024",
            "response_url": CALLBACK,
        })
        assert r.status_code == 200
        assert r.json()["response_type"] == "in_channel"
        assert "Anafre" in r.json()["text"]

    assert len(deliver.calls) == 1
    payload, url = deliver.calls[0]
    assert url == CALLBACK
    assert "miércoles, 14 de febrero de 2024" in payload["text"]
    assert "Hola" in payload["text"]


def test_slash_command_rejects_bad_token(cfg):
    deliver = Recorder()
    app = server.create_app(cfg, runner=_runner_returning([]), deliver=deliver)

    with TestClient(app) as client:
        r = client.post("/slack/anafre", data={"token": "nope", "response_url": CALLBACK})

    assert r.status_code == 401
    assert r.json() == {"error": "Unauthorized"}
    assert deliver.calls == []


def test_slash_command_accepts_json_body(cfg):
    app = server.create_app(cfg, runner=_runner_returning([]), deliver=Recorder())

    with TestClient(app) as client:
        r = client.post("/slack/anafre", json={"token": "s3cret", "user_name": "ana"})

    assert r.status_code == 200
    assert r.json()["attachments"][0]["text"] == "Solicitado por @ana"


def test_test_endpoint_reports_messages(cfg):
    messages = [Message(time="09:00", text="Hola", date="14/02/2024")]
    app = server.create_app(cfg, runner=_runner_returning(messages), deliver=Recorder())

    with TestClient(app) as client:
        r = client.get("/test")

    body = r.json()
    assert r.status_code == 200
    assert body["success"] is True
    assert body["messagesFound"] == 1
    assert body["messages"] == [{"time": "09:00", "text": "Hola", "date": "14/02/2024"}]


def test_test_endpoint_reports_failure(cfg):
    async def _runner(request):
        raise LoginRequired("WhatsApp session not found")

    app = server.create_app(cfg, runner=_runner, deliver=Recorder())
    with TestClient(app) as client:
        r = client.get("/test")

    assert r.status_code == 500
    assert r.json() == {"success": False, "error": "LoginRequired: WhatsApp session not found"}


def test_unknown_route(cfg):
    app = server.create_app(cfg, runner=_runner_returning([]), deliver=Recorder())
    with TestClient(app) as client:
        r = client.get("/nope")

    assert r.status_code == 404
    assert r.json() == {"error": "Endpoint not found"}


def test_malformed_json_body_is_rejected(cfg):
    deliver = Recorder()
    app = server.create_app(cfg, runner=_runner_returning([]), deliver=deliver)

    with TestClient(app) as client:
        r = client.post("/slack/anafre", content=b"{not json",
                        headers={"content-type": "application/json"})

    assert r.status_code == 400
    assert r.json() == {"error": "Malformed JSON body"}
    assert deliver.calls == []


def test_main_installs_browser_before_serving(cfg, monkeypatch):
    steps = []
    monkeypatch.setattr(server.engine, "load", lambda: cfg)
    monkeypatch.setattr(server, "ensure_chromium_installed",
                        lambda path: steps.append(("chromium", path)))
    monkeypatch.setattr(uvicorn, "run",
                        lambda app, host, port: steps.append(("serve", host, port)))

    server.main()

    assert steps == [("chromium", ""), ("serve", "0.0.0.0", 3000)]


def test_main_exits_two_on_bad_config(cfg, monkeypatch):
    cfg.slack = replace(cfg.slack, webhook_url="")
    monkeypatch.setattr(server.engine, "load", lambda: cfg)

    with pytest.raises(SystemExit) as info:
        server.main()

    assert info.value.code == 2
