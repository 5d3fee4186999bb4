"""Core package for deachat.

deachat serves a chat assistant for differential-expression results. The
assistant talks to Gemini and can call tools exposed by an MCP server.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
