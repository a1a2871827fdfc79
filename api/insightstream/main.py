from __future__ import annotations
import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import Config, load_config
from .conversation import SessionStore
from .data_service import DataService
from .dispatch import Dispatcher
from .errors import InsightStreamError
from .llm import LLMGateway
from . import redis_store
from .store import DatasetStore
from .routers.chat import router as chat_router
from .routers.data import router as data_router
from .routers.llm import router as llm_router
from .routers.logs import router as logs_router

logger = logging.getLogger(__name__)


def create_app(
    config: Optional[Config] = None,
    gateway: Optional[LLMGateway] = None,
    store: Optional[DatasetStore] = None,
) -> FastAPI:
    """
    Build the API with its own dataset store, session registry and LLM
    gateway.  Tests pass their own gateway/store; the server uses the config.
    """
    cfg = config or load_config()
    app = FastAPI(title="InsightStream API")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    store = store if store is not None else DatasetStore(
        ttl_seconds=cfg.storage.dataset_ttl_seconds,
        max_entries=cfg.storage.max_datasets,
    )
    gateway = gateway if gateway is not None else LLMGateway(cfg.llm)
    service = DataService(store, gateway, preview_rows=cfg.storage.preview_rows)

    app.state.config = cfg
    redis_store.configure(cfg.storage)
    app.state.store = store
    app.state.gateway = gateway
    app.state.data_service = service
    app.state.sessions = SessionStore(store, ttl_seconds=cfg.storage.session_ttl_seconds)
    app.state.dispatcher = Dispatcher(service, keywords=cfg.dispatch.command_keywords)

    app.include_router(llm_router)
    app.include_router(data_router)
    app.include_router(chat_router)
    app.include_router(logs_router)

    @app.exception_handler(InsightStreamError)
    async def insightstream_error(request: Request, exc: InsightStreamError):
        if exc.status_code >= 500:
            logger.error("%s on %s %s: %s", exc.kind, request.method, request.url.path, exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "message": exc.message, "error": exc.kind},
        )

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content={"success": False, "message": "Something went wrong!", "error": str(exc)},
        )

    @app.get("/", include_in_schema=False)
    def index():
        return {"message": "InsightStream API is running"}

    @app.get("/health")
    def health():
        return {"status": "ok", "service": "insightstream"}

    return app


app = create_app()
