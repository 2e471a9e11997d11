"""
Date-filtered message extraction over a snapshot of the conversation view.

The in-page script only serialises the rendered rows in document order; the
scan-and-match is plain Python so it can be tested without a browser.
"""

from typing import Any, Dict, Iterable, List, Optional

from chatrelay.connectors.whatsapp.models import Message

# Serialises separators and message containers in document order. A separator
# nested inside a message container is emitted just before that message.
SNAPSHOT_SCRIPT = """
(sel) => {
  const rows = [];
  const nodes = document.querySelectorAll(`${sel.separator}, ${sel.message}`);
  nodes.forEach((node) => {
    if (node.matches(sel.message)) {
      const inner = node.querySelector(sel.separator);
      if (inner) {
        rows.push({ kind: "separator", label: inner.textContent.trim() });
      }
      const textEl = node.querySelector(sel.text);
      const timeEl = node.querySelector(sel.time);
      rows.push({
        kind: "message",
        text: textEl ? textEl.textContent.trim() : null,
        time: timeEl ? timeEl.textContent.trim() : "",
      });
    } else if (!node.closest(sel.message)) {
      rows.push({ kind: "separator", label: node.textContent.trim() });
    }
  });
  return rows;
}
"""

SEPARATOR = "separator"
MESSAGE = "message"


def extract(rows: Iterable[Dict[str, Any]], target_label: str) -> List[Message]:
    """Return the messages rendered under the `target_label` separator.

    Messages without a separator of their own inherit the most recent one;
    messages seen before any separator never match. Rows without a text body
    are skipped.
    """
    current: Optional[str] = None
    found: List[Message] = []

    for row in rows:
        kind = row.get("kind")
        if kind == SEPARATOR:
            current = (row.get("label") or "").strip()
            continue
        if kind != MESSAGE or current != target_label:
            continue

        text = (row.get("text") or "").strip()
        if not text:
            continue
        found.append(Message(time=(row.get("time") or "").strip(), text=text, date=current))

    return found
