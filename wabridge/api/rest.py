"""REST API for wabridge.

Endpoints:
  POST /v1/chat/completions - OpenAI-style chat completion (JSON or SSE)
  POST /v1/channel/events   - Webhook for bridge notifications
  POST /v1/auth/login       - Start WhatsApp pairing, returns QR code URL
  POST /v1/auth/logout      - End the WhatsApp session
  GET  /v1/health           - Liveness + channel status
"""

from __future__ import annotations

import json
import logging
from typing import Any

from pydantic import ValidationError
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.requests import Request
from starlette.responses import JSONResponse, StreamingResponse
from starlette.routing import Route

from wabridge.api.rate_limit import FixedWindowLimiter, RateLimitMiddleware
from wabridge.api.schemas import (
    ChatCompletionRequest,
    completion_response,
    error_body,
    validation_message,
)
from wabridge.channel.protocol import ChannelNotification
from wabridge.config import Settings
from wabridge.events import Event, EventBus
from wabridge.relay import RelayError, RequestCorrelator, StreamRegistry

logger = logging.getLogger(__name__)

WEBHOOK_PATH = "/v1/channel/events"


def _relay_error(exc: RelayError) -> JSONResponse:
    return JSONResponse(
        error_body(exc.status_code, exc.message, exc.code),
        status_code=exc.status_code,
    )


def _sse(payload: Any) -> str:
    data = payload if isinstance(payload, str) else json.dumps(payload)
    return f"data: {data}\n\n"


def create_app(
    correlator: RequestCorrelator,
    registry: StreamRegistry,
    channel: Any,
    bus: EventBus,
    settings: Settings,
    lifespan: Any | None = None,
) -> Starlette:
    """Create the Starlette ASGI app with all routes."""

    async def chat_completions(request: Request) -> JSONResponse | StreamingResponse:
        """POST /v1/chat/completions - Single reply or SSE delta stream."""
        try:
            body = await request.json()
        except Exception:
            return JSONResponse(error_body(400, "Invalid JSON body"), status_code=400)

        try:
            payload = ChatCompletionRequest.model_validate(body)
        except ValidationError as e:
            return JSONResponse(error_body(400, validation_message(e)), status_code=400)

        message = payload.user_message
        model = settings.completion_model

        if payload.stream:
            return _stream_reply(message)

        try:
            result = await correlator.send(message)
        except RelayError as e:
            logger.warning("Chat completion failed: %s", e.message)
            return _relay_error(e)
        except Exception as e:
            logger.error("Chat completion error: %s", e)
            return JSONResponse(error_body(500, str(e) or "Internal server error"), status_code=500)

        if not result.content:
            logger.error("Empty reply from Meta AI")
            return JSONResponse(
                error_body(500, "Invalid response from WhatsApp service"),
                status_code=500,
            )
        return JSONResponse(completion_response(result, message, model))

    def _stream_reply(message: str) -> JSONResponse | StreamingResponse:
        try:
            sink = correlator.open_stream(message)
        except RelayError as e:
            logger.warning("Chat stream rejected: %s", e.message)
            return _relay_error(e)

        async def event_generator():
            try:
                async for item in sink:
                    yield _sse(item)
            except RelayError as e:
                logger.warning("Stream error: %s", e.message)
                yield _sse(error_body(e.status_code, e.message, e.code))
            except Exception as e:
                logger.error("Stream error: %s", e)
                yield _sse(error_body(500, str(e)))
            finally:
                # Client gone or stream done; later writes are dropped by the registry
                sink.close()

        return StreamingResponse(
            event_generator(),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                "X-Accel-Buffering": "no",
            },
        )

    async def channel_events(request: Request) -> JSONResponse:
        """POST /v1/channel/events - Bridge notification webhook."""
        if settings.bridge_token and request.headers.get("X-Bridge-Token") != settings.bridge_token:
            return JSONResponse(error_body(401, "Invalid bridge token"), status_code=401)

        try:
            body = await request.json()
        except Exception:
            return JSONResponse(error_body(400, "Invalid JSON body"), status_code=400)

        try:
            notification = ChannelNotification.model_validate(body)
        except ValidationError as e:
            return JSONResponse(error_body(400, validation_message(e)), status_code=400)

        queued = await bus.emit(Event(type=notification.event, data=notification.model_dump()))
        if not queued:
            return JSONResponse(error_body(503, "Notification queue full"), status_code=503)
        return JSONResponse({"status": "queued"}, status_code=202)

    async def login(request: Request) -> JSONResponse:
        """POST /v1/auth/login - Start pairing unless already logged in."""
        if channel.ready:
            return JSONResponse({"message": "Client is already logged in.", "qr_code_url": None})
        try:
            qr_code_url = await channel.login()
        except Exception as e:
            logger.error("Login error: %s", e)
            return JSONResponse(
                {
                    "error": {
                        "status": 500,
                        "message": "Failed to initialize WhatsApp client.",
                        "details": str(e),
                    }
                },
                status_code=500,
            )
        return JSONResponse(
            {"message": "QR code generated. Please scan to log in.", "qr_code_url": qr_code_url}
        )

    async def logout(request: Request) -> JSONResponse:
        """POST /v1/auth/logout - End the WhatsApp session."""
        try:
            await channel.logout()
        except Exception as e:
            logger.error("Logout error: %s", e)
            return JSONResponse(
                {"error": {"status": 500, "message": "Failed to log out.", "details": str(e)}},
                status_code=500,
            )
        return JSONResponse({"message": "Logged out successfully."})

    async def health(request: Request) -> JSONResponse:
        """GET /v1/health - Health check."""
        status = getattr(channel, "status", None)
        return JSONResponse(
            {
                "status": "OK",
                "message": "WhatsApp Meta AI API is running.",
                "channel": status() if callable(status) else {"ready": channel.ready},
                "in_flight": correlator.busy,
                "active_streams": len(registry),
                "queued_events": bus.pending,
            }
        )

    routes = [
        Route("/v1/chat/completions", chat_completions, methods=["POST"]),
        Route(WEBHOOK_PATH, channel_events, methods=["POST"]),
        Route("/v1/auth/login", login, methods=["POST"]),
        Route("/v1/auth/logout", logout, methods=["POST"]),
        Route("/v1/health", health),
    ]

    limiter = FixedWindowLimiter(
        limit=settings.rate_limit_requests,
        window=settings.rate_limit_window,
    )
    middleware = [
        Middleware(RateLimitMiddleware, limiter=limiter, exempt_paths=(WEBHOOK_PATH,)),
    ]

    kwargs: dict[str, Any] = {"routes": routes, "middleware": middleware}
    if lifespan is not None:
        kwargs["lifespan"] = lifespan
    return Starlette(**kwargs)
