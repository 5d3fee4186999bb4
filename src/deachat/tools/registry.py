from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from deachat.assistant.models import ToolDescriptor


class ToolRegistry:
    """Snapshot of the tools exposed by the tool server.

    Built once at startup and read-only afterwards. When the server could not
    be reached the registry is *unavailable*: it has no session, no tools and
    a ``reason`` explaining why.
    """

    def __init__(
        self,
        tools: Iterable[ToolDescriptor] = (),
        *,
        session: Any | None = None,
        reason: str | None = None,
    ):
        descriptors = tuple(tools)
        names = [tool.name for tool in descriptors]
        if len(names) != len(set(names)):
            raise ValueError(f"duplicate tool names in registry snapshot: {names}")
        self._tools = descriptors
        self._by_name = {tool.name: tool for tool in descriptors}
        self._session = session
        self._reason = reason

    @classmethod
    def unavailable(cls, reason: str) -> "ToolRegistry":
        return cls((), session=None, reason=reason)

    @property
    def connected(self) -> bool:
        return self._session is not None

    @property
    def session(self) -> Any | None:
        return self._session

    @property
    def reason(self) -> str | None:
        return self._reason

    def __len__(self) -> int:
        return len(self._tools)

    def list_tools(self) -> tuple[ToolDescriptor, ...]:
        return self._tools

    def get(self, name: str) -> ToolDescriptor | None:
        return self._by_name.get(name)

    def to_model_declarations(self) -> list[dict[str, Any]]:
        return [tool.to_declaration() for tool in self._tools]

    def advertised_declarations(self) -> list[dict[str, Any]] | None:
        """Declarations to advertise, or ``None`` when there is nothing to offer.

        Some model backends reject an empty tool list, so an empty or
        unavailable registry advertises no tools capability at all.
        """

        if not self.connected or not self._tools:
            return None
        return self.to_model_declarations()


_UNINITIALIZED = ToolRegistry.unavailable("tool server not initialized")
_registry: ToolRegistry = _UNINITIALIZED


def install_registry(registry: ToolRegistry) -> ToolRegistry:
    """Replace the process-wide registry and return the previous one."""

    global _registry
    previous = _registry
    _registry = registry
    return previous


def get_tool_registry() -> ToolRegistry:
    """Return the process-wide registry (FastAPI dependency)."""

    return _registry


__all__ = ["ToolRegistry", "get_tool_registry", "install_registry"]
