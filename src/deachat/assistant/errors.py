from __future__ import annotations


class AssistantError(Exception):
    """Base class for failures raised by the chat assistant."""


class InputError(AssistantError):
    """The request cannot be served as given (no message, no credential).

    Raised before any model or tool call is attempted.
    """


class ToolExecutionError(AssistantError):
    """A single tool invocation failed.

    Never escapes :class:`deachat.tools.client.ToolExecutionClient`; it is
    converted to a failure result the model gets to read.
    """

    def __init__(self, tool_name: str, message: str):
        super().__init__(message)
        self.tool_name = tool_name


class OrchestrationError(AssistantError):
    """The conversational model call failed; fatal for the current request."""


class RegistryUnavailable(AssistantError):
    """The tool server could not be reached at startup."""


__all__ = [
    "AssistantError",
    "InputError",
    "ToolExecutionError",
    "OrchestrationError",
    "RegistryUnavailable",
]
