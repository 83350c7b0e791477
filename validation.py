# validation.py
import html
import json
from typing import Any, List

import pydantic

from models import ChatRequest, ChatTurn, ValidationKind

MAX_MESSAGE_LENGTH = 4000


class ValidationError(Exception):
    """Caller input defect; the kind decides the 400 message."""

    def __init__(self, kind: ValidationKind):
        self.kind = kind
        super().__init__(kind.value)


def escape(text: str) -> str:
    return html.escape(text, quote=True)


def _turn_from(entry: Any) -> ChatTurn:
    # Entries that do not fit keep their slot as an empty turn; the windower drops them.
    try:
        return ChatTurn.model_validate(entry)
    except pydantic.ValidationError:
        return ChatTurn()


def _history_from(raw: Any) -> List[ChatTurn]:
    if not isinstance(raw, list):
        return []
    return [_turn_from(entry) for entry in raw]


def validate(raw_body: bytes) -> ChatRequest:
    """Parse and check an inbound chat payload.

    Raises ValidationError with one of EmptyBody, MalformedJSON, EmptyMessage
    or MessageTooLong. History entries are kept unescaped; the windower
    escapes them.
    """
    if not raw_body:
        raise ValidationError(ValidationKind.EMPTY_BODY)

    try:
        payload = json.loads(raw_body)
    except (UnicodeDecodeError, ValueError):
        raise ValidationError(ValidationKind.MALFORMED_JSON)
    if not isinstance(payload, dict):
        raise ValidationError(ValidationKind.MALFORMED_JSON)

    message = payload.get("message")
    if not isinstance(message, str):
        raise ValidationError(ValidationKind.EMPTY_MESSAGE)
    message = message.strip()
    if not message:
        raise ValidationError(ValidationKind.EMPTY_MESSAGE)
    if len(message) > MAX_MESSAGE_LENGTH:
        raise ValidationError(ValidationKind.MESSAGE_TOO_LONG)

    return ChatRequest(
        message=escape(message),
        history=_history_from(payload.get("chatHistory")),
    )
