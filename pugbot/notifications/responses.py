"""Reply keyword classification."""

from __future__ import annotations

from enum import Enum


class ResponseKind(str, Enum):
    AFFIRM = "ready"
    RETAIN = "active"
    CANCEL = "cancel"
    UNRECOGNIZED = "unrecognized"


_KEYWORDS: dict[str, ResponseKind] = {
    **dict.fromkeys(("ready", "!ready", "y"), ResponseKind.AFFIRM),
    **dict.fromkeys(("active", "!active", "keep", "k"), ResponseKind.RETAIN),
    **dict.fromkeys(("cancel", "!cancel", "leave", "n"), ResponseKind.CANCEL),
}


def normalize(raw_text: str | None) -> str:
    return (raw_text or "").strip().casefold()


def classify_response(raw_text: str | None) -> ResponseKind:
    return _KEYWORDS.get(normalize(raw_text), ResponseKind.UNRECOGNIZED)
