"""ChitChat Server - FastAPI backend for the ChitChat social network."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import Settings
from .errors import ChitChatError
from .routes import auth, chat, follow, friends, posts, profile
from .services import Services

logger = logging.getLogger(__name__)

VERSION = "0.1.0"


def setup_logging(settings: Settings) -> None:
    """Configure logging based on settings."""
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    if settings.log_format == "json":
        formatter = logging.Formatter(
            '{"time":"%(asctime)s","level":"%(levelname)s","logger":"%(name)s","message":"%(message)s"}'
        )
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("pymongo").setLevel(logging.WARNING)


def create_app(services: Optional[Services] = None, settings: Optional[Settings] = None) -> FastAPI:
    """Create the application.

    When `services` is given it is used as-is and left open on shutdown;
    otherwise live clients are built from settings at startup.
    """
    if settings is None:
        settings = services.settings if services else Settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if services is not None:
            yield
            return
        setup_logging(settings)
        live = Services.from_settings(settings)
        await live.db.ensure_indexes()
        app.state.services = live
        logger.info("ChitChat server started")
        yield
        await live.close()

    app = FastAPI(
        title="ChitChat",
        description="Social networking backend: friends, posts, likes, comments and chat",
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ChitChatError)
    async def chitchat_error(request: Request, exc: ChitChatError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def invalid_request(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"message": "Invalid request", "error": str(exc.errors())},
        )

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return JSONResponse(status_code=500, content={"message": "Server error", "error": str(exc)})

    for module in (auth, profile, posts, friends, follow, chat):
        app.include_router(module.router, prefix="/api")

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        """Clients send {"type": "joinRoom" | "leaveRoom", "room": ...}."""
        manager = websocket.app.state.services.fanout
        await manager.connect(websocket)
        try:
            while True:
                try:
                    signal = await websocket.receive_json()
                except ValueError:
                    signal = None
                room = signal.get("room") if isinstance(signal, dict) else None
                kind = signal.get("type") if isinstance(signal, dict) else None
                if kind == "joinRoom" and room:
                    manager.join(room, websocket)
                elif kind == "leaveRoom" and room:
                    manager.leave(room, websocket)
                else:
                    await websocket.send_json({"event": "error", "data": "Unknown signal"})
        except WebSocketDisconnect:
            pass
        finally:
            manager.disconnect(websocket)

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"status": "ok", "version": VERSION}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
