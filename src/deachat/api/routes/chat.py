from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from deachat.assistant.context import build_system_instruction
from deachat.assistant.errors import InputError
from deachat.assistant.models import ActiveContext, SelectedGene, Turn
from deachat.assistant.orchestrator import ToolCallOrchestrator
from deachat.assistant.service import gemini_api_key, open_chat, resolve_api_key
from deachat.assistant.session import ConversationSession
from deachat.logging import get_logger
from deachat.tools.client import ToolExecutionClient
from deachat.tools.registry import ToolRegistry, get_tool_registry


logger = get_logger(__name__)

router = APIRouter(tags=["Chat"])


class ChatRequest(BaseModel):
    message: str | None = None
    history: list[Turn] = Field(default_factory=list)
    selectedGenes: list[SelectedGene] = Field(default_factory=list)
    context: ActiveContext | None = None
    apiKey: str | None = None


class ChatResponse(BaseModel):
    response: str
    history: list[Turn]


class ToolSummary(BaseModel):
    name: str
    description: str


class ToolsResponse(BaseModel):
    tools: list[ToolSummary]


class HealthResponse(BaseModel):
    status: str
    mcpConnected: bool
    availableTools: int
    hasApiKey: bool


@router.post("/chat", response_model=ChatResponse)
async def chat(
    payload: ChatRequest,
    registry: ToolRegistry = Depends(get_tool_registry),
):
    if not payload.message:
        raise InputError("Message is required")
    api_key = resolve_api_key(payload.apiKey)

    logger.info(
        "Chat request: %d chars, %d history turns, %d legacy genes, context=%s, custom key=%s, tools connected=%s",
        len(payload.message),
        len(payload.history),
        len(payload.selectedGenes),
        payload.context is not None and not payload.context.is_empty(),
        bool(payload.apiKey),
        registry.connected,
    )

    system_instruction = build_system_instruction(payload.context, payload.selectedGenes)
    logger.debug("System instruction:\n%s", system_instruction)

    session = ConversationSession(payload.history)
    model_chat = open_chat(
        api_key=api_key,
        system_instruction=system_instruction,
        declarations=registry.advertised_declarations(),
        history=session.prior_turns,
    )
    orchestrator = ToolCallOrchestrator(model_chat, ToolExecutionClient.from_env(registry.session))

    session.start_turn(payload.message)
    try:
        result = await orchestrator.run(payload.message)
    finally:
        await model_chat.aclose()
    session.finish_turn(result.text)

    logger.info(
        "Chat reply: %d chars after %d tool round trip(s)%s",
        len(result.text),
        result.round_trips,
        " (truncated at cap)" if result.truncated else "",
    )
    return ChatResponse(response=result.text, history=session.history())


@router.get("/health", response_model=HealthResponse)
def health(registry: ToolRegistry = Depends(get_tool_registry)):
    return HealthResponse(
        status="ok",
        mcpConnected=registry.connected,
        availableTools=len(registry),
        hasApiKey=gemini_api_key() is not None,
    )


@router.get("/tools", response_model=ToolsResponse)
def list_tools(registry: ToolRegistry = Depends(get_tool_registry)):
    return ToolsResponse(tools=[ToolSummary(**tool.summary()) for tool in registry.list_tools()])
