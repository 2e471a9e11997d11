"""
Notification sink: format message digests and errors as Slack payloads and
post them.

Delivery is best-effort. A failed POST is logged and reported as False; it is
never raised to a caller that has already answered its own request.
"""

import time
from datetime import date
from typing import Any, Dict, List

import requests

from chatrelay.connectors.whatsapp.models import Message
from chatrelay.utils.dates.normalize import language, to_human_label
from chatrelay.utils.errors import DeliveryFailure, describe_error
from chatrelay.utils.logs import report

logger = report.settings(__file__)

GREEN = "#36a64f"
ORANGE = "#ff9500"
DANGER = "danger"

PHRASES = {
    "es": {
        "header": "📱 *Mensajes de {contact}* - {date}",
        "empty": "No se encontraron mensajes de {contact} para el {date} 📭",
        "searching": "🔍 Buscando mensajes de {contact}... esto puede tomar unos segundos.",
        "requested_by": "Solicitado por @{user}",
        "completed": "✅ Búsqueda completada • Solicitado por @{user}",
        "command_error": "❌ Error procesando la búsqueda: {error}",
        "webhook_error": "🚨 *Error en WhatsApp Bot*\n```{error}```",
    },
    "en": {
        "header": "📱 *Messages from {contact}* - {date}",
        "empty": "No messages from {contact} found for {date} 📭",
        "searching": "🔍 Looking up messages from {contact}... this may take a few seconds.",
        "requested_by": "Requested by @{user}",
        "completed": "✅ Search completed • Requested by @{user}",
        "command_error": "❌ Error while searching: {error}",
        "webhook_error": "🚨 *WhatsApp Bot error*\n```{error}```",
    },
}


def _phrase(locale: str, key: str, **values: Any) -> str:
    return PHRASES[language(locale)][key].format(**values)


def _attachment(color: str, text: str) -> Dict[str, Any]:
    return {"color": color, "text": text, "ts": int(time.time())}


# -------------- Formatting --------------------------------------------------

def format_digest(messages: List[Message], contact: str, day: date, locale: str) -> str:
    """Header naming the contact and date, then one `time`/`text` block per message.

    An empty list yields the fixed no-messages sentence.
    """
    human = to_human_label(day, locale)
    if not messages:
        return _phrase(locale, "empty", contact=contact, date=human)

    text = _phrase(locale, "header", contact=contact, date=human) + "\n\n"
    for msg in messages:
        text += f"*{msg.time}*\n{msg.text}\n\n"
    return text


def webhook_payload(text: str, username: str, icon_emoji: str) -> Dict[str, Any]:
    """Incoming-webhook body used by the scheduled path."""
    return {"text": text, "username": username, "icon_emoji": icon_emoji}


def webhook_error_payload(error: BaseException, username: str, icon_emoji: str,
                          locale: str) -> Dict[str, Any]:
    """Webhook body announcing a failed scheduled run."""
    text = _phrase(locale, "webhook_error", error=describe_error(error))
    return webhook_payload(text, username, icon_emoji)


def command_ack(contact: str, user: str, locale: str) -> Dict[str, Any]:
    """Immediate answer to a slash command, sent before any browser work."""
    return {
        "response_type": "in_channel",
        "text": _phrase(locale, "searching", contact=contact),
        "attachments": [_attachment(GREEN, _phrase(locale, "requested_by", user=user))],
    }


def command_result(messages: List[Message], contact: str, day: date, user: str,
                   locale: str) -> Dict[str, Any]:
    """Delayed response carrying the digest."""
    color = GREEN if messages else ORANGE
    return {
        "response_type": "in_channel",
        "text": format_digest(messages, contact, day, locale),
        "attachments": [_attachment(color, _phrase(locale, "completed", user=user))],
    }


def command_error(error: BaseException, user: str, locale: str) -> Dict[str, Any]:
    """Delayed response visible only to the requester."""
    return {
        "response_type": "ephemeral",
        "text": _phrase(locale, "command_error", error=describe_error(error)),
        "attachments": [_attachment(DANGER, _phrase(locale, "requested_by", user=user))],
    }


# -------------- Delivery ----------------------------------------------------

def _post(payload: Dict[str, Any], url: str, timeout: float) -> None:
    try:
        r = requests.post(url, json=payload, timeout=timeout)
        r.raise_for_status()
    except requests.exceptions.RequestException as exc:
        raise DeliveryFailure(f"POST to Slack failed: {exc}") from exc


def deliver(payload: Dict[str, Any], url: str, timeout: float = 10.0) -> bool:
    """POST `payload` as JSON to `url`. Returns False instead of raising."""
    try:
        _post(payload, url, timeout)
    except DeliveryFailure as exc:
        logger.error("%s", describe_error(exc))
        return False
    logger.info("Delivered Slack payload (%d chars)", len(payload.get("text", "")))
    return True
