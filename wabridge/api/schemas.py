"""Pydantic DTOs for the chat completion API."""

from __future__ import annotations

import time
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from wabridge.relay.sinks import ChatResult


class ChatMessage(BaseModel):
    model_config = ConfigDict(extra="allow")

    role: str | None = None
    content: str | None = None


class ChatCompletionRequest(BaseModel):
    """Body of POST /v1/chat/completions. Only the last user message is sent."""

    model_config = ConfigDict(extra="allow")

    messages: list[ChatMessage] = Field(default_factory=list)
    stream: bool = False
    model: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _check_shape(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            raise ValueError("Invalid request: body must be a JSON object.")
        messages = data.get("messages")
        if not isinstance(messages, list) or not messages:
            raise ValueError("Invalid request: 'messages' must be a non-empty array.")
        return data

    @model_validator(mode="after")
    def _check_messages(self) -> "ChatCompletionRequest":
        if not self.messages:
            raise ValueError("Invalid request: 'messages' must be a non-empty array.")
        last = self.messages[-1]
        if last.role != "user" or not last.content:
            raise ValueError(
                "Invalid request: The last message must have 'role' as 'user' and a 'content' field."
            )
        return self

    @property
    def user_message(self) -> str:
        return self.messages[-1].content or ""


def validation_message(exc: ValidationError) -> str:
    """First human-readable message from a ValidationError."""
    errors = exc.errors()
    if not errors:
        return "Invalid request."
    msg = errors[0].get("msg", "Invalid request.")
    # pydantic prefixes messages raised from validators
    return msg.removeprefix("Value error, ")


def completion_response(result: ChatResult, prompt: str, model: str) -> dict[str, Any]:
    """OpenAI chat.completion body. Usage counts characters, not tokens."""
    return {
        "id": str(uuid4()),
        "object": "chat.completion",
        "created": int(time.time()),
        "model": model,
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": result.content},
                "finish_reason": "stop",
            }
        ],
        "usage": {
            "prompt_tokens": len(prompt),
            "completion_tokens": len(result.content),
            "total_tokens": len(prompt) + len(result.content),
        },
    }


def error_body(status: int, message: str, code: str | None = None) -> dict[str, Any]:
    error: dict[str, Any] = {"status": status, "message": message}
    if code:
        error["code"] = code
    return {"error": error}
