from __future__ import annotations

import logging
import sys

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api import router
from .config import Settings, get_settings
from .errors import AuthenticationMissing, ChatNotFound
from .executor import TurnExecutor
from .runtime import AgentRuntime, build_runtime
from .store import ChatStore, create_chat_store

# Configure logging for the entire chat_agent_server package
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)

logging.getLogger("chat_agent_server").setLevel(logging.INFO)

logger = logging.getLogger(__name__)


async def _authentication_missing(request: Request, exc: AuthenticationMissing) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_401_UNAUTHORIZED, content={"detail": str(exc)})


async def _chat_not_found(request: Request, exc: ChatNotFound) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


def create_app(
    settings: Settings | None = None,
    *,
    runtime: AgentRuntime | None = None,
    chat_store: ChatStore | None = None,
) -> FastAPI:
    """Build the FastAPI app; the runtime is created at startup unless one is given."""

    resolved = settings or get_settings()
    app = FastAPI(
        title="Chat Agent Server",
        description="Tool-calling chat agent with streamed turns",
        version="0.1.0",
        debug=resolved.debug,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(AuthenticationMissing, _authentication_missing)
    app.add_exception_handler(ChatNotFound, _chat_not_found)
    app.include_router(router)
    app.dependency_overrides[get_settings] = lambda: resolved

    @app.on_event("startup")
    async def startup_event():
        logger.info("Chat Agent Server starting up")
        app.state.runtime = runtime or await build_runtime(resolved)
        app.state.executor = TurnExecutor(app.state.runtime)
        app.state.chat_store = chat_store or create_chat_store(resolved)

    @app.on_event("shutdown")
    async def shutdown_event():
        logger.info("Chat Agent Server shutting down")
        await app.state.runtime.aclose()

    return app


app = create_app()


def run() -> None:
    settings = get_settings()
    uvicorn.run(app, host=settings.app_host, port=settings.app_port)


if __name__ == "__main__":
    run()
