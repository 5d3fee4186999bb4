from __future__ import annotations

import asyncio
import json
import os
from collections.abc import Sequence
from typing import Any

from deachat.assistant.errors import ToolExecutionError
from deachat.assistant.models import ToolFailure, ToolInvocationRequest, ToolResult, ToolSuccess
from deachat.logging import get_logger


logger = get_logger(__name__)

_LOG_PREVIEW_CHARS = 200


def _tool_timeout_seconds() -> float | None:
    raw = (os.getenv("DEACHAT_TOOL_TIMEOUT_SECONDS") or "").strip()
    if not raw:
        return 60.0
    try:
        value = float(raw)
    except ValueError:
        return 60.0
    return value if value > 0 else None


def _content_text(result: Any) -> str:
    """Join the text items of an MCP ``CallToolResult``."""

    texts = [
        str(item.text)
        for item in (getattr(result, "content", None) or [])
        if getattr(item, "type", None) == "text" and getattr(item, "text", None) is not None
    ]
    if texts:
        return "\n".join(texts)

    structured = getattr(result, "structuredContent", None)
    if structured:
        return json.dumps(structured, ensure_ascii=False)
    return ""


class ToolExecutionClient:
    """Invoke tools on the connected tool server.

    Every call yields a :class:`ToolResult`; failures come back as
    :class:`ToolFailure` so the model can read them.
    """

    def __init__(self, session: Any | None, *, timeout: float | None = None):
        self._session = session
        self._timeout = timeout

    @classmethod
    def from_env(cls, session: Any | None) -> "ToolExecutionClient":
        return cls(session, timeout=_tool_timeout_seconds())

    async def _call(self, request: ToolInvocationRequest) -> str:
        if self._session is None:
            raise ToolExecutionError(request.name, "tool server is not connected")

        call = self._session.call_tool(request.name, dict(request.arguments))
        try:
            if self._timeout is not None:
                result = await asyncio.wait_for(call, timeout=self._timeout)
            else:
                result = await call
        except asyncio.TimeoutError as exc:
            raise ToolExecutionError(
                request.name, f"timed out after {self._timeout:g} seconds"
            ) from exc
        except Exception as exc:
            raise ToolExecutionError(request.name, str(exc) or type(exc).__name__) from exc

        text = _content_text(result)
        if getattr(result, "isError", False):
            raise ToolExecutionError(request.name, text or "tool reported an error")
        return text

    async def invoke(self, request: ToolInvocationRequest) -> ToolResult:
        logger.info("Calling tool %s with args %s", request.name, json.dumps(request.arguments, default=str))
        try:
            text = await self._call(request)
        except ToolExecutionError as exc:
            logger.warning("Tool %s failed: %s", request.name, exc)
            return ToolFailure(name=request.name, error=f"Error calling tool: {exc}")

        logger.info("Tool %s result: %s", request.name, text[:_LOG_PREVIEW_CHARS])
        return ToolSuccess(name=request.name, text=text)

    async def invoke_all(self, requests: Sequence[ToolInvocationRequest]) -> list[ToolResult]:
        """Run all requests of one model response concurrently.

        Results are returned in the order the requests were given.
        """

        return list(await asyncio.gather(*(self.invoke(request) for request in requests)))


__all__ = ["ToolExecutionClient"]
