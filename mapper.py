# mapper.py
import re
from typing import Optional

import pydantic
from google.genai import types

from models import ErrorKind, Failure, Success, UpstreamResult
from upstream import RawUpstreamResponse

# Tags, comments and doctypes; a bare "<" followed by a space or digit is text.
TAG_PATTERN = re.compile(r"<!--.*?-->|<[A-Za-z/!?][^>]*>", re.DOTALL)


def strip_tags(text: str) -> str:
    return TAG_PATTERN.sub("", text)


def reply_text(response: types.GenerateContentResponse) -> Optional[str]:
    """Return candidates[0].content.parts[0].text, or None if the path is missing."""
    if not response.candidates:
        return None
    content = response.candidates[0].content
    if content is None or not content.parts:
        return None
    return content.parts[0].text


def extract(raw: RawUpstreamResponse) -> UpstreamResult:
    try:
        response = types.GenerateContentResponse.model_validate_json(raw.body)
    except (pydantic.ValidationError, ValueError, RecursionError):
        return Failure(kind=ErrorKind.INVALID_UPSTREAM_SHAPE, detail=raw.body)

    text = reply_text(response)
    if text is None:
        return Failure(kind=ErrorKind.INVALID_UPSTREAM_SHAPE, detail=raw.body)

    return Success(reply_text=strip_tags(text).strip())
