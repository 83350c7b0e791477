# relay.py
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

import httpx

from history import window
from mapper import extract
from models import ChatReply, ErrorBody, Failure, TransportKind, ValidationKind
from settings import Settings
from upstream import LOGGED_BODY_LIMIT, TransportError, send
from validation import MAX_MESSAGE_LENGTH, ValidationError, validate

logger = logging.getLogger(__name__)

SERVICE_UNAVAILABLE = "Service temporarily unavailable"
AI_SERVICE_UNAVAILABLE = "AI service unavailable"
INVALID_UPSTREAM_RESPONSE = "Invalid response from AI service"

VALIDATION_MESSAGES = {
    ValidationKind.EMPTY_BODY: "Request body is required",
    ValidationKind.MALFORMED_JSON: "Invalid JSON format",
    ValidationKind.EMPTY_MESSAGE: "Message is required",
    ValidationKind.MESSAGE_TOO_LONG: f"Message too long. Maximum {MAX_MESSAGE_LENGTH} characters allowed",
}


@dataclass(frozen=True)
class RelayOutcome:
    status_code: int
    body: Dict[str, Any]


def error_outcome(status_code: int, message: str) -> RelayOutcome:
    return RelayOutcome(status_code, ErrorBody(error=message).model_dump())


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def relay_chat(
    raw_body: bytes,
    config: Settings,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    now: Callable[[], datetime] = _utc_now,
) -> RelayOutcome:
    """Run one chat turn through validate -> window -> send -> extract.

    Every failure comes back as a RelayOutcome carrying a fixed client-facing
    message; details only go to the server log.
    """
    try:
        request = validate(raw_body)
    except ValidationError as exc:
        logger.info("Rejected chat request: %s", exc.kind.value)
        return error_outcome(400, VALIDATION_MESSAGES[exc.kind])

    contents = window(request.history, request.message)
    logger.info(
        "Relaying chat turn: message_len=%d history_turns=%d contents=%d",
        len(request.message),
        len(request.history),
        len(contents),
    )

    try:
        raw = send(contents, config, transport=transport)
    except TransportError as exc:
        if exc.kind is TransportKind.UPSTREAM_HTTP_ERROR:
            return error_outcome(503, AI_SERVICE_UNAVAILABLE)
        return error_outcome(503, SERVICE_UNAVAILABLE)

    result = extract(raw)
    if isinstance(result, Failure):
        logger.error("Unexpected upstream response: %s", result.detail[:LOGGED_BODY_LIMIT])
        return error_outcome(500, INVALID_UPSTREAM_RESPONSE)

    reply = ChatReply(
        reply=result.reply_text,
        timestamp=now().isoformat(timespec="seconds"),
        model=config.model_name,
    )
    return RelayOutcome(200, reply.model_dump())
