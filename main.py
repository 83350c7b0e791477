# main.py
import html
import json
import logging
import os
import platform
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exception_handlers import http_exception_handler
from fastapi.responses import HTMLResponse, JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from relay import SERVICE_UNAVAILABLE, relay_chat
from settings import (
    ConfigError,
    EnvSource,
    Settings,
    diagnostics_enabled,
    get_env_source,
    get_settings,
    resolve_log_level,
)

source = get_env_source()

logging.basicConfig(
    level=getattr(logging, resolve_log_level(source), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Gemini Chat Relay", version="1.0.0")

# --- CORS ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=(source.get("CORS_ALLOW_ORIGINS") or "*").split(","),
    allow_credentials=False,
    allow_methods=["POST", "OPTIONS"],
    allow_headers=["Content-Type"],
)

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Access-Control-Allow-Origin": "*",
}

PREFLIGHT_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}

PLACEHOLDER_PAGE = (
    "<!DOCTYPE html><html><head><title>Gemini Chatbot</title></head><body>"
    "<h1>Gemini AI Chatbot</h1><p>API is running. Please use a proper frontend interface.</p>"
    "</body></html>"
)


class RelayJSONResponse(JSONResponse):
    media_type = "application/json; charset=UTF-8"

    def __init__(self, content: Any, status_code: int = 200, headers: Optional[Dict[str, str]] = None):
        merged = dict(SECURITY_HEADERS)
        merged.update(headers or {})
        super().__init__(content, status_code=status_code, headers=merged)

    def render(self, content: Any) -> bytes:
        return json.dumps(content, ensure_ascii=False, separators=(",", ":")).encode("utf-8")


# --- Error handlers ---
@app.exception_handler(ConfigError)
async def config_error_handler(request: Request, exc: ConfigError) -> Response:
    logger.error("Configuration error: missing %s", ", ".join(exc.missing_vars))
    return RelayJSONResponse({"error": SERVICE_UNAVAILABLE}, status_code=503)


@app.exception_handler(StarletteHTTPException)
async def method_not_allowed_handler(request: Request, exc: StarletteHTTPException) -> Response:
    if exc.status_code != 405:
        return await http_exception_handler(request, exc)
    return RelayJSONResponse({"error": "Method not allowed"}, status_code=405, headers=exc.headers)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> Response:
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return RelayJSONResponse({"error": "Internal server error"}, status_code=500)


# --- Routes ---
@app.get("/healthz")
def healthz():
    return {"ok": True}


def interface_path(env: EnvSource) -> str:
    return env.get("INTERFACE_FILE", "index.html")


def smoke_test_page(env: EnvSource) -> str:
    key_set = bool(env.first("PROVIDER_API_KEY", "GEMINI_API_KEY"))
    items = {
        "APP_ENV": env.get("APP_ENV") or "not set",
        "MODEL_NAME": env.first("MODEL_NAME", "GEMINI_MODEL_NAME") or "not set",
        "PROVIDER_API_KEY": "set (hidden)" if key_set else "not set",
    }
    env_rows = "".join(
        f"<li>{html.escape(name)}: {html.escape(value)}</li>" for name, value in items.items()
    )
    interface_exists = os.path.isfile(interface_path(env))
    return (
        "<!DOCTYPE html><html><head><title>Deployment check</title></head><body>"
        "<h2>Relay is running</h2>"
        f"<p>Python version: {html.escape(platform.python_version())}</p>"
        f"<h3>Environment variables</h3><ul>{env_rows}</ul>"
        "<h3>Files</h3><ul>"
        f"<li>Interface document: {'present' if interface_exists else 'missing'}</li>"
        "</ul><hr><p><a href='/'>Back to main app</a></p></body></html>"
    )


@app.get("/test")
def smoke_test(env: EnvSource = Depends(get_env_source)):
    if not diagnostics_enabled(env):
        return RelayJSONResponse({"error": "Not found"}, status_code=404)
    return HTMLResponse(
        smoke_test_page(env),
        headers={"X-Content-Type-Options": "nosniff", "X-Frame-Options": "DENY"},
    )


@app.options("/{path:path}")
def preflight(path: str):
    return Response(status_code=200, headers=PREFLIGHT_HEADERS)


@app.get("/{path:path}")
def interface(path: str, env: EnvSource = Depends(get_env_source)):
    headers = {"X-Content-Type-Options": "nosniff", "X-Frame-Options": "SAMEORIGIN"}
    document = interface_path(env)
    if os.path.isfile(document):
        with open(document, encoding="utf-8") as handle:
            return HTMLResponse(handle.read(), headers=headers)
    return HTMLResponse(PLACEHOLDER_PAGE, headers=headers)


async def raw_body(request: Request) -> bytes:
    return await request.body()


@app.post("/{path:path}")
def chat(path: str, body: bytes = Depends(raw_body), config: Settings = Depends(get_settings)):
    outcome = relay_chat(body, config)
    return RelayJSONResponse(outcome.body, status_code=outcome.status_code)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
