from __future__ import annotations

import os
import time
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Protocol

from google import genai
from google.genai import types

from deachat.assistant.errors import InputError, OrchestrationError
from deachat.assistant.models import ToolInvocationRequest, ToolResult, Turn
from deachat.logging import get_logger


logger = get_logger(__name__)


@dataclass(frozen=True)
class ModelReply:
    text: str
    tool_calls: tuple[ToolInvocationRequest, ...] = ()

    @property
    def wants_tools(self) -> bool:
        return bool(self.tool_calls)


class ModelChat(Protocol):
    """One open conversation with the model."""

    async def send_message(self, message: str) -> ModelReply: ...

    async def send_tool_results(self, results: Sequence[ToolResult]) -> ModelReply: ...

    async def aclose(self) -> None: ...


def gemini_api_key() -> str | None:
    raw = (os.getenv("GEMINI_API_KEY") or "").strip()
    return raw or None


def resolve_api_key(explicit: str | None) -> str:
    """Prefer the key sent with the request, then ``GEMINI_API_KEY``."""

    key = (explicit or "").strip() or gemini_api_key()
    if not key:
        raise InputError(
            "API key is required. Please provide one in the input field "
            "or set GEMINI_API_KEY in the environment."
        )
    return key


def gemini_model() -> str:
    return (os.getenv("DEACHAT_GEMINI_MODEL") or "gemini-2.5-flash").strip()


def _gemini_timeout_seconds() -> float:
    raw = (os.getenv("DEACHAT_GEMINI_TIMEOUT_SECONDS") or "").strip()
    if not raw:
        return 120.0
    try:
        return max(1.0, float(raw))
    except ValueError:
        return 120.0


def _assistant_temperature() -> float:
    raw = (os.getenv("DEACHAT_ASSISTANT_TEMPERATURE") or "").strip()
    if not raw:
        return 0.7
    try:
        value = float(raw)
    except ValueError:
        return 0.7
    if value < 0:
        value = 0.0
    if value > 2:
        value = 2.0
    return value


def _max_output_tokens() -> int:
    raw = (os.getenv("DEACHAT_ASSISTANT_MAX_OUTPUT_TOKENS") or "").strip()
    if not raw:
        return 2048
    try:
        return max(1, int(raw))
    except ValueError:
        return 2048


def _history_contents(turns: Sequence[Turn]) -> list[types.Content]:
    return [
        types.Content(role=turn.role, parts=[types.Part(text=turn.content)])
        for turn in turns
    ]


def _generation_config(
    *,
    system_instruction: str,
    declarations: Sequence[dict[str, Any]] | None,
) -> types.GenerateContentConfig:
    kwargs: dict[str, Any] = {
        "system_instruction": system_instruction,
        "temperature": _assistant_temperature(),
        "max_output_tokens": _max_output_tokens(),
    }
    # Omit the tools capability entirely when there is nothing to declare.
    if declarations:
        kwargs["tools"] = [
            types.Tool(
                function_declarations=[
                    types.FunctionDeclaration(
                        name=item["name"],
                        description=item.get("description") or "",
                        parameters_json_schema=item.get("parameters"),
                    )
                    for item in declarations
                ]
            )
        ]
    return types.GenerateContentConfig(**kwargs)


def reply_from_response(response: Any) -> ModelReply:
    """Split a ``GenerateContentResponse`` into text and pending tool calls.

    Raises
    ------
    OrchestrationError
        If the response carries no candidate at all (e.g. a blocked prompt).
    """

    candidates = getattr(response, "candidates", None)
    if not candidates:
        feedback = getattr(response, "prompt_feedback", None)
        block_reason = getattr(feedback, "block_reason", None)
        detail = f" (block reason: {block_reason})" if block_reason else ""
        raise OrchestrationError(f"Model returned no candidates{detail}")

    content = getattr(candidates[0], "content", None)
    texts: list[str] = []
    calls: list[ToolInvocationRequest] = []
    for part in getattr(content, "parts", None) or []:
        function_call = getattr(part, "function_call", None)
        if function_call is not None and function_call.name:
            calls.append(
                ToolInvocationRequest(
                    name=function_call.name,
                    arguments=dict(function_call.args or {}),
                )
            )
            continue
        text = getattr(part, "text", None)
        if text and not getattr(part, "thought", False):
            texts.append(text)

    return ModelReply(text="".join(texts), tool_calls=tuple(calls))


class GeminiChat:
    """:class:`ModelChat` backed by a ``google-genai`` async chat."""

    def __init__(self, chat: Any, *, model: str, client: Any | None = None):
        self._chat = chat
        self._client = client
        self.model = model

    async def aclose(self) -> None:
        """Release the HTTP transport of the underlying client."""

        if self._client is None:
            return
        client, self._client = self._client, None
        await client.aio.aclose()

    async def send_message(self, message: str) -> ModelReply:
        return await self._send(message)

    async def send_tool_results(self, results: Sequence[ToolResult]) -> ModelReply:
        parts = [
            types.Part.from_function_response(name=result.name, response=result.to_response_payload())
            for result in results
        ]
        return await self._send(parts)

    async def _send(self, payload: Any) -> ModelReply:
        started = time.monotonic()
        try:
            response = await self._chat.send_message(payload)
        except Exception as exc:
            error = f"{type(exc).__name__}: {exc}"
            logger.warning("Gemini request failed (%s): %s", self.model, error)
            raise OrchestrationError(error) from exc
        elapsed_ms = int((time.monotonic() - started) * 1000)

        reply = reply_from_response(response)
        logger.debug(
            "Gemini replied in %d ms (%d chars, %d tool calls)",
            elapsed_ms,
            len(reply.text),
            len(reply.tool_calls),
        )
        return reply


def open_chat(
    *,
    api_key: str,
    system_instruction: str,
    declarations: Sequence[dict[str, Any]] | None,
    history: Sequence[Turn],
) -> GeminiChat:
    """Open a fresh model chat seeded with the prior turns."""

    model = gemini_model()
    try:
        client = genai.Client(
            api_key=api_key,
            http_options=types.HttpOptions(timeout=int(_gemini_timeout_seconds() * 1000)),
        )
        chat = client.aio.chats.create(
            model=model,
            config=_generation_config(
                system_instruction=system_instruction,
                declarations=declarations,
            ),
            history=_history_contents(history),
        )
    except Exception as exc:
        error = f"{type(exc).__name__}: {exc}"
        logger.warning("Could not open Gemini chat (%s): %s", model, error)
        raise OrchestrationError(error) from exc

    logger.info(
        "Model %s initialized with %d tools",
        model,
        len(declarations) if declarations else 0,
    )
    return GeminiChat(chat, model=model, client=client)


__all__ = [
    "GeminiChat",
    "ModelChat",
    "ModelReply",
    "gemini_api_key",
    "gemini_model",
    "open_chat",
    "reply_from_response",
    "resolve_api_key",
]
