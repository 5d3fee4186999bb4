from __future__ import annotations

# src/deachat/api/main.py
import os
from contextlib import AsyncExitStack, asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from deachat.api.routes.chat import router as chat_router
from deachat.assistant.errors import InputError, OrchestrationError
from deachat.logging import get_logger
from deachat.tools.connect import connect_tool_registry
from deachat.tools.registry import ToolRegistry, install_registry


logger = get_logger(__name__)


def _parse_csv_list(raw: str | None) -> list[str]:
    if not raw:
        return []
    return [part.strip() for part in raw.split(",") if part.strip()]


_DEFAULT_CORS_ORIGINS = [
    "http://127.0.0.1:3000",
    "http://localhost:3000",
    "http://127.0.0.1:5173",
    "http://localhost:5173",
]

cors_origins = _parse_csv_list(os.getenv("DEACHAT_CORS_ORIGINS")) or _DEFAULT_CORS_ORIGINS


@asynccontextmanager
async def lifespan(app: FastAPI):
    async with AsyncExitStack() as stack:
        registry = await connect_tool_registry(stack)
        install_registry(registry)
        if not registry.connected:
            logger.warning("Tool server not connected - chat will work without tools")
        try:
            yield
        finally:
            logger.info("Shutting down tool server connection")
            install_registry(ToolRegistry.unavailable("server shut down"))


app = FastAPI(title="deachat", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)


@app.exception_handler(InputError)
async def input_error(request: Request, exc: InputError):
    logger.info("Rejected %s: %s", request.url.path, exc)
    return JSONResponse(status_code=400, content={"error": str(exc)})


@app.exception_handler(RequestValidationError)
async def validation_error(request: Request, exc: RequestValidationError):
    logger.info("Rejected malformed body on %s: %d error(s)", request.url.path, len(exc.errors()))
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request body", "details": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(OrchestrationError)
async def orchestration_error(request: Request, exc: OrchestrationError):
    logger.error("Chat failed on %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=500,
        content={"error": "Failed to process chat message", "details": str(exc)},
    )


app.include_router(chat_router, prefix="/api")

# Must stay below the API routers: the mount matches every path.
static_dir = (os.getenv("DEACHAT_STATIC_DIR") or "").strip()
if static_dir and Path(static_dir).expanduser().is_dir():
    app.mount("/", StaticFiles(directory=Path(static_dir).expanduser(), html=True), name="static")
