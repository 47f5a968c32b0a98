from __future__ import annotations

import json

import regex as re

from kana.orchestrator.events import Outcome

EMBEDDED_OUTCOME = re.compile(r'\{.*"display".*"speak".*\}', re.DOTALL)


def normalize(text: str | None) -> Outcome:
    """Reduce a raw handler or model reply to a display/speak pair.

    Replies are asked to carry ``{"display": ..., "speak": ...}`` but often
    arrive as prose, fenced JSON or JSON with chatter around it. Anything that
    does not parse is used verbatim for both fields.
    """
    raw = text or ""
    match = EMBEDDED_OUTCOME.search(raw)
    if match is None:
        return Outcome.text(raw)
    try:
        payload = json.loads(match.group(0))
    except ValueError:
        return Outcome.text(raw)
    if not isinstance(payload, dict):
        return Outcome.text(raw)

    display = payload.get("display")
    speak = payload.get("speak")
    if not isinstance(display, str):
        return Outcome.text(raw)
    if not isinstance(speak, str) or not speak:
        speak = display
    return Outcome(display=display, speak=speak)


__all__ = ["normalize"]
