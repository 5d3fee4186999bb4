from __future__ import annotations

from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

import deachat.api.routes.chat as chat_routes
from deachat.api.main import app
from deachat.assistant.errors import OrchestrationError
from deachat.assistant.models import ToolDescriptor, ToolInvocationRequest
from deachat.assistant.service import ModelReply
from deachat.tools.registry import ToolRegistry, get_tool_registry


class _FakeChat:
    """Scripted model chat: returns the queued replies in order."""

    def __init__(self, replies):
        self._replies = list(replies)
        self.sent = []
        self.closed = False

    async def _next(self):
        reply = self._replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def send_message(self, message):
        self.sent.append(("message", message))
        return await self._next()

    async def send_tool_results(self, results):
        self.sent.append(("tools", list(results)))
        return await self._next()

    async def aclose(self):
        self.closed = True


class _FakeSession:
    def __init__(self):
        self.calls = []
        self.errors = {}

    async def call_tool(self, name, arguments):
        self.calls.append((name, arguments))
        if name in self.errors:
            raise self.errors[name]
        return SimpleNamespace(content=[SimpleNamespace(type="text", text="TP53\tMDM2\t0.999")], isError=False)


@pytest.fixture
def opened(monkeypatch):
    """Record every ``open_chat`` call and serve scripted replies."""

    calls = []
    script = {"replies": [ModelReply(text="Hello from the model")]}

    def _fake_open_chat(**kwargs):
        chat = _FakeChat(script["replies"])
        calls.append({**kwargs, "chat": chat})
        return chat

    monkeypatch.setattr(chat_routes, "open_chat", _fake_open_chat)
    monkeypatch.setenv("GEMINI_API_KEY", "env-key")
    return calls, script


@pytest.fixture
def registry():
    session = _FakeSession()
    snapshot = ToolRegistry(
        [ToolDescriptor(name="get_interactions", description="STRING interaction partners")],
        session=session,
    )
    app.dependency_overrides[get_tool_registry] = lambda: snapshot
    yield snapshot
    app.dependency_overrides.pop(get_tool_registry, None)


@pytest.fixture
def client():
    return TestClient(app)


def test_missing_message_is_rejected_without_model_call(client, opened, registry):
    calls, _ = opened

    response = client.post("/api/chat", json={"history": []})

    assert response.status_code == 400
    assert response.json() == {"error": "Message is required"}
    assert calls == []


def test_empty_message_is_rejected(client, opened, registry):
    response = client.post("/api/chat", json={"message": ""})
    assert response.status_code == 400
    assert opened[0] == []


def test_missing_api_key_is_rejected(client, opened, registry, monkeypatch):
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)

    response = client.post("/api/chat", json={"message": "hi"})

    assert response.status_code == 400
    assert "API key is required" in response.json()["error"]
    assert opened[0] == []


def test_chat_appends_user_and_model_turns(client, opened, registry):
    calls, _ = opened
    prior = [
        {"role": "user", "content": "What is TP53?"},
        {"role": "model", "content": "A tumour suppressor."},
    ]

    response = client.post(
        "/api/chat",
        json={"message": "And MDM2?", "history": prior, "apiKey": "request-key"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["response"] == "Hello from the model"
    assert body["history"] == prior + [
        {"role": "user", "content": "And MDM2?"},
        {"role": "model", "content": "Hello from the model"},
    ]
    (call,) = calls
    assert call["api_key"] == "request-key"
    assert [turn.content for turn in call["history"]] == ["What is TP53?", "A tumour suppressor."]
    assert call["declarations"][0]["name"] == "get_interactions"


def test_tool_round_trip_stays_out_of_history(client, opened, registry):
    calls, script = opened
    script["replies"] = [
        ModelReply(
            text="",
            tool_calls=(ToolInvocationRequest("get_interactions", {"identifiers": "TP53"}),),
        ),
        ModelReply(text="TP53 binds MDM2."),
    ]

    response = client.post("/api/chat", json={"message": "Who binds TP53?"})

    assert response.status_code == 200
    body = response.json()
    assert body["response"] == "TP53 binds MDM2."
    assert [turn["role"] for turn in body["history"]] == ["user", "model"]
    assert registry.session.calls == [("get_interactions", {"identifiers": "TP53"})]
    kinds = [kind for kind, _ in calls[0]["chat"].sent]
    assert kinds == ["message", "tools"]


def test_model_failure_is_500_without_history(client, opened, registry):
    _, script = opened
    script["replies"] = [OrchestrationError("RuntimeError: 503 UNAVAILABLE")]

    response = client.post("/api/chat", json={"message": "hi"})

    assert response.status_code == 500
    assert response.json() == {
        "error": "Failed to process chat message",
        "details": "RuntimeError: 503 UNAVAILABLE",
    }


def test_active_context_shapes_system_instruction(client, opened, registry):
    calls, _ = opened

    response = client.post(
        "/api/chat",
        json={
            "message": "Summarise",
            "context": {"disease-type": "Lung Adenocarcinoma", "comparison-groups": "Tumor vs Normal"},
            "selectedGenes": [{"gene": "EGFR", "log2FC": 2.1, "padj": 0.001}],
        },
    )

    assert response.status_code == 200
    instruction = calls[0]["system_instruction"]
    assert "Lung Adenocarcinoma" in instruction
    assert "Tumor vs Normal" in instruction
    assert "EGFR" not in instruction


def test_disconnected_registry_advertises_no_tools(client, opened):
    calls, _ = opened
    app.dependency_overrides[get_tool_registry] = lambda: ToolRegistry.unavailable("tool server disabled")
    try:
        response = client.post("/api/chat", json={"message": "hi"})
    finally:
        app.dependency_overrides.pop(get_tool_registry, None)

    assert response.status_code == 200
    assert calls[0]["declarations"] is None


def test_health_reports_registry_snapshot(client, registry, monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEY", "env-key")

    response = client.get("/api/health")

    assert response.status_code == 200
    assert response.json() == {
        "status": "ok",
        "mcpConnected": True,
        "availableTools": 1,
        "hasApiKey": True,
    }


def test_health_without_tool_server(client, monkeypatch):
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    app.dependency_overrides[get_tool_registry] = lambda: ToolRegistry.unavailable("tool server disabled")
    try:
        response = client.get("/api/health")
    finally:
        app.dependency_overrides.pop(get_tool_registry, None)

    assert response.json() == {
        "status": "ok",
        "mcpConnected": False,
        "availableTools": 0,
        "hasApiKey": False,
    }


def test_tools_lists_names_and_descriptions(client, registry):
    response = client.get("/api/tools")

    assert response.status_code == 200
    assert response.json() == {
        "tools": [{"name": "get_interactions", "description": "STRING interaction partners"}]
    }
    assert registry.session.calls == []


def test_throwing_tool_is_reported_to_model_and_reply_still_returned(client, opened, registry):
    calls, script = opened
    registry.session.errors["get_interactions"] = RuntimeError("STRING API returned 502")
    script["replies"] = [
        ModelReply(
            text="",
            tool_calls=(ToolInvocationRequest("get_interactions", {"identifiers": "TP53"}),),
        ),
        ModelReply(text="STRING is unreachable right now."),
    ]
    prior = [{"role": "user", "content": "hi"}, {"role": "model", "content": "hello"}]

    response = client.post("/api/chat", json={"message": "Who binds TP53?", "history": prior})

    assert response.status_code == 200
    body = response.json()
    assert body["response"] == "STRING is unreachable right now."
    assert len(body["history"]) == len(prior) + 2
    kind, results = calls[0]["chat"].sent[1]
    assert kind == "tools"
    assert [result.to_response_payload() for result in results] == [
        {"error": "Error calling tool: STRING API returned 502"}
    ]


def test_numeric_gene_ids_are_accepted(client, opened, registry):
    calls, _ = opened

    response = client.post(
        "/api/chat",
        json={
            "message": "What is this gene?",
            "selectedGenes": [{"gene": 7157, "log2FC": 1.0, "padj": 0.01}],
        },
    )

    assert response.status_code == 200
    assert "selected 1 genes from the volcano plot: 7157" in calls[0]["system_instruction"]


def test_malformed_body_uses_error_shape(client, opened, registry):
    response = client.post(
        "/api/chat",
        json={"message": "hi", "history": [{"role": "assistant", "content": "x"}]},
    )

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "Invalid request body"
    assert body["details"][0]["loc"] == ["body", "history", 0, "role"]
    assert opened[0] == []


def test_model_chat_is_closed_after_success_and_failure(client, opened, registry):
    calls, script = opened
    client.post("/api/chat", json={"message": "hi"})

    script["replies"] = [OrchestrationError("RuntimeError: boom")]
    client.post("/api/chat", json={"message": "hi again"})

    assert [call["chat"].closed for call in calls] == [True, True]
