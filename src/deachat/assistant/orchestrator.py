"""The bounded model/tool loop behind one chat request.

::

    AWAITING_MODEL -> INSPECTING_RESPONSE -> DONE
                              |
                              v
                       EXECUTING_TOOLS -> AWAITING_MODEL

Every tool call in a response is executed and all results go back to the
model as one reply. After ``MAX_TOOL_ROUND_TRIPS`` round trips the loop stops
and the last model text is the answer, even if it still asks for tools.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from deachat.assistant.models import ToolInvocationRequest, ToolResult
from deachat.assistant.service import ModelChat, ModelReply
from deachat.logging import get_logger


logger = get_logger(__name__)

MAX_TOOL_ROUND_TRIPS = 5


class OrchestratorState(str, Enum):
    awaiting_model = "awaiting_model"
    inspecting_response = "inspecting_response"
    executing_tools = "executing_tools"
    done = "done"


class ToolExecutor(Protocol):
    async def invoke_all(self, requests: Sequence[ToolInvocationRequest]) -> list[ToolResult]: ...


@dataclass(frozen=True)
class OrchestrationResult:
    text: str
    round_trips: int = 0
    truncated: bool = False
    tool_calls: list[dict[str, Any]] = field(default_factory=list)


class ToolCallOrchestrator:
    def __init__(
        self,
        chat: ModelChat,
        tools: ToolExecutor,
        *,
        max_round_trips: int = MAX_TOOL_ROUND_TRIPS,
    ):
        self._chat = chat
        self._tools = tools
        self._max_round_trips = max(0, int(max_round_trips))

    async def run(self, message: str) -> OrchestrationResult:
        """Drive the exchange for ``message`` until the model stops asking for tools.

        Model failures propagate as :class:`OrchestrationError`; tool failures
        never do.
        """

        state = OrchestratorState.awaiting_model
        reply: ModelReply | None = None
        pending_results: list[ToolResult] | None = None
        round_trips = 0
        truncated = False
        audit: list[dict[str, Any]] = []

        while state is not OrchestratorState.done:
            if state is OrchestratorState.awaiting_model:
                if pending_results is None:
                    reply = await self._chat.send_message(message)
                else:
                    logger.info("Sending %d tool result(s) back to model", len(pending_results))
                    reply = await self._chat.send_tool_results(pending_results)
                    pending_results = None
                state = OrchestratorState.inspecting_response

            elif state is OrchestratorState.inspecting_response:
                assert reply is not None
                if not reply.wants_tools:
                    state = OrchestratorState.done
                elif round_trips >= self._max_round_trips:
                    truncated = True
                    logger.warning(
                        "Tool round trip cap (%d) reached; returning last model text "
                        "with %d tool call(s) unanswered",
                        self._max_round_trips,
                        len(reply.tool_calls),
                    )
                    state = OrchestratorState.done
                else:
                    state = OrchestratorState.executing_tools

            elif state is OrchestratorState.executing_tools:
                assert reply is not None
                round_trips += 1
                logger.info(
                    "Tool round trip %d: %s",
                    round_trips,
                    ", ".join(call.name for call in reply.tool_calls),
                )
                pending_results = await self._tools.invoke_all(reply.tool_calls)
                for call, result in zip(reply.tool_calls, pending_results):
                    audit.append(
                        {
                            "name": call.name,
                            "arguments": dict(call.arguments),
                            "ok": result.ok,
                            "error": None if result.ok else result.to_response_payload()["error"],
                        }
                    )
                state = OrchestratorState.awaiting_model

        assert reply is not None
        return OrchestrationResult(
            text=reply.text,
            round_trips=round_trips,
            truncated=truncated,
            tool_calls=audit,
        )


__all__ = [
    "MAX_TOOL_ROUND_TRIPS",
    "OrchestrationResult",
    "OrchestratorState",
    "ToolCallOrchestrator",
    "ToolExecutor",
]
