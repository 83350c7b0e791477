# upstream.py
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence

import httpx
from google.genai import types

from models import TransportKind, UpstreamContent
from settings import Settings

logger = logging.getLogger(__name__)

# httpx logs every request line at INFO, query string (and so the key) included.
for _name in ("httpx", "httpcore"):
    logging.getLogger(_name).setLevel(logging.WARNING)

MAX_OUTPUT_TOKENS = 1000
TEMPERATURE = 0.7
CONNECT_TIMEOUT_SECONDS = 10.0
TOTAL_TIMEOUT_SECONDS = 30.0
USER_AGENT = "ChatBot/1.0"

# Upstream bodies can be large; only this much goes into a log line.
LOGGED_BODY_LIMIT = 2000


class TransportError(Exception):
    """The upstream call failed or returned a non-200 status."""

    def __init__(self, kind: TransportKind, status_code: Optional[int] = None, detail: str = ""):
        self.kind = kind
        self.status_code = status_code
        self.detail = detail
        message = kind.value if status_code is None else f"{kind.value} ({status_code})"
        super().__init__(message)


@dataclass(frozen=True)
class RawUpstreamResponse:
    status_code: int
    body: str


def build_body(contents: Sequence[UpstreamContent]) -> Dict[str, Any]:
    generation_config = types.GenerationConfig(
        max_output_tokens=MAX_OUTPUT_TOKENS,
        temperature=TEMPERATURE,
    )
    return {
        "contents": [
            content.to_wire().model_dump(mode="json", by_alias=True, exclude_none=True)
            for content in contents
        ],
        "generationConfig": generation_config.model_dump(mode="json", by_alias=True, exclude_none=True),
    }


def build_client(config: Settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=httpx.Timeout(TOTAL_TIMEOUT_SECONDS, connect=CONNECT_TIMEOUT_SECONDS),
        verify=config.verify_tls,
        follow_redirects=False,
        headers={"User-Agent": USER_AGENT},
        transport=transport,
    )


async def _exchange(
    body: Dict[str, Any],
    config: Settings,
    transport: Optional[httpx.AsyncBaseTransport],
) -> httpx.Response:
    async with build_client(config, transport) as client:
        return await client.post(
            config.endpoint,
            params={"key": config.api_key.get_secret_value()},
            json=body,
        )


async def _exchange_within_deadline(
    body: Dict[str, Any],
    config: Settings,
    transport: Optional[httpx.AsyncBaseTransport],
) -> httpx.Response:
    # httpx bounds each connect/read/write on its own; the whole exchange,
    # header phase included, also has to fit in TOTAL_TIMEOUT_SECONDS.
    return await asyncio.wait_for(_exchange(body, config, transport), timeout=TOTAL_TIMEOUT_SECONDS)


def send(
    contents: Sequence[UpstreamContent],
    config: Settings,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> RawUpstreamResponse:
    """POST the contents to the model's generateContent endpoint once.

    Raises TransportError on timeout, connection failure or any non-200
    status. The key travels only as a query parameter and is never logged.
    Must not be called from a thread that already runs an event loop.
    """
    body = build_body(contents)
    logger.debug("Calling %s with %d content entries", config.endpoint, len(body["contents"]))

    try:
        response = asyncio.run(_exchange_within_deadline(body, config, transport))
    except asyncio.TimeoutError:
        logger.error("Upstream call exceeded %ss calling %s", TOTAL_TIMEOUT_SECONDS, config.endpoint)
        raise TransportError(TransportKind.TIMEOUT, detail="deadline exceeded") from None
    # Causes are dropped: the httpx request they carry holds the keyed URL.
    except httpx.TimeoutException as exc:
        logger.error("Upstream timeout (%s) calling %s", type(exc).__name__, config.endpoint)
        raise TransportError(TransportKind.TIMEOUT, detail=type(exc).__name__) from None
    except httpx.TransportError as exc:
        logger.error("Upstream connection failed (%s) calling %s", type(exc).__name__, config.endpoint)
        raise TransportError(TransportKind.CONNECTION_FAILED, detail=type(exc).__name__) from None

    text = response.text
    if response.status_code != 200:
        logger.error(
            "Upstream HTTP error %s: %s",
            response.status_code,
            text[:LOGGED_BODY_LIMIT],
        )
        raise TransportError(
            TransportKind.UPSTREAM_HTTP_ERROR,
            status_code=response.status_code,
            detail=text,
        )

    return RawUpstreamResponse(status_code=response.status_code, body=text)
