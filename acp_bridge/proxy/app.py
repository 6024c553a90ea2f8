"""
FastAPI 应用

Routes:
- GET  {health_check_path}   -> {"ok": true}
- POST /v1/chat/completions  -> chat pipeline
- POST /chat/completions     -> chat pipeline
- anything else              -> 404 {"error": "Unsupported path: ..."}
"""

from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from log import log

from .. import __version__
from .formatter import create_error_body
from .handler import ChatCompletionsHandler
from .types import ProxyConfig

__all__ = ["create_app", "CHAT_COMPLETIONS_PATHS"]

CHAT_COMPLETIONS_PATHS = ("/v1/chat/completions", "/chat/completions")

_ALL_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "HEAD"]

_SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def create_app(config: ProxyConfig, handler: Optional[ChatCompletionsHandler] = None) -> FastAPI:
    """
    Build a fresh app for one ProxyServer.

    Without a handler only the health check is served.
    """
    app = FastAPI(
        title="cursor-acp proxy",
        version=__version__,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            create_error_body(str(exc.detail), "invalid_request_error"),
            status_code=exc.status_code,
        )

    @app.get(config.health_check_path)
    async def health():
        return {"ok": True}

    if handler is not None:

        async def chat_completions(request: Request):
            try:
                body = await request.json()
            except ValueError:
                raise HTTPException(status_code=400, detail="Invalid JSON body")
            if not isinstance(body, dict):
                raise HTTPException(status_code=400, detail="Request body must be a JSON object")

            try:
                result = await handler.handle(body)
            except ValidationError as e:
                raise HTTPException(status_code=400, detail=f"Invalid request: {e.errors()[0]['msg']}")
            except Exception as e:
                log.error(f"chat.completions failed: {type(e).__name__}: {e}", tag="PROXY")
                return JSONResponse(create_error_body(str(e) or type(e).__name__), status_code=500)

            if isinstance(result, dict):
                return JSONResponse(result)
            return StreamingResponse(result, media_type="text/event-stream", headers=_SSE_HEADERS)

        for path in CHAT_COMPLETIONS_PATHS:
            app.add_api_route(path, chat_completions, methods=["POST"])

    @app.api_route("/{path:path}", methods=_ALL_METHODS)
    async def unsupported_path(request: Request):
        return JSONResponse({"error": f"Unsupported path: {request.url.path}"}, status_code=404)

    return app
