"""Shared test helpers for stubbing the upstream API."""

import json
from typing import Any, Callable, Dict, List

import httpx


def gemini_body(text: str) -> str:
    return json.dumps({"candidates": [{"content": {"parts": [{"text": text}], "role": "model"}}]})


class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps every request it handled."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]):
        self.requests: List[httpx.Request] = []

        def _record(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        super().__init__(_record)

    def last_json(self) -> Dict[str, Any]:
        return json.loads(self.requests[-1].content)


def failing_transport(exc_type: type) -> RecordingTransport:
    def _raise(request: httpx.Request) -> httpx.Response:
        raise exc_type("simulated failure", request=request)

    return RecordingTransport(_raise)
