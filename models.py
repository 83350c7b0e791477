# models.py
from enum import Enum
from typing import List, Literal, Optional, Union

from google.genai import types
from pydantic import BaseModel, ConfigDict, Field, StrictStr


class ValidationKind(str, Enum):
    EMPTY_BODY = "EmptyBody"
    MALFORMED_JSON = "MalformedJSON"
    EMPTY_MESSAGE = "EmptyMessage"
    MESSAGE_TOO_LONG = "MessageTooLong"


class TransportKind(str, Enum):
    TIMEOUT = "Timeout"
    CONNECTION_FAILED = "ConnectionFailed"
    UPSTREAM_HTTP_ERROR = "UpstreamHTTPError"


class ErrorKind(str, Enum):
    INVALID_UPSTREAM_SHAPE = "InvalidUpstreamShape"


class ChatTurn(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    sender: Optional[StrictStr] = Field(None, description="'user' or 'assistant'")
    text: Optional[StrictStr] = Field(None, alias="message", description="Turn text as sent by the client")


class ChatRequest(BaseModel):
    message: str = Field(..., description="Trimmed, HTML-escaped user message")
    history: List[ChatTurn] = Field(default_factory=list)


class UpstreamContent(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Literal["user", "model"]
    text: str

    def to_wire(self) -> types.Content:
        return types.Content(role=self.role, parts=[types.Part(text=self.text)])


class Success(BaseModel):
    outcome: Literal["success"] = "success"
    reply_text: str


class Failure(BaseModel):
    outcome: Literal["failure"] = "failure"
    kind: ErrorKind
    detail: str = ""


UpstreamResult = Union[Success, Failure]


class ChatReply(BaseModel):
    reply: str
    timestamp: str
    model: str


class ErrorBody(BaseModel):
    error: str
