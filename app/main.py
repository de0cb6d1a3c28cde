from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from config.settings import Settings, get_settings
from relay.clients.completion import CompletionClient
from relay.clients.record_store import RecordStoreClient
from relay.core.session_store import SessionStore
from relay.errors import RelayError, ValidationError
from relay.orchestrator import ChatOrchestrator


logging.basicConfig(level=logging.INFO, format="[%(asctime)s] %(levelname)s - %(message)s")
logger = logging.getLogger("relay")


def create_app(
    settings: Optional[Settings] = None,
    orchestrator: Optional[ChatOrchestrator] = None,
) -> FastAPI:
    """Build the application.

    Without an ``orchestrator`` the lifespan wires one from settings, sharing
    a single HTTP client for the record store. Either way the orchestrator's
    session store runs its sweep for the lifetime of the app.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        http_client: Optional[httpx.AsyncClient] = None
        chat = orchestrator
        if chat is None:
            http_client = httpx.AsyncClient(timeout=settings.record_store_timeout)
            chat = ChatOrchestrator.from_settings(
                settings,
                SessionStore(ttl=settings.session_ttl, sweep_interval=settings.sweep_interval),
                CompletionClient(
                    settings.openai_api_key,
                    temperature=settings.temperature,
                    timeout=settings.completion_timeout,
                ),
                RecordStoreClient(
                    settings.kintone_domain,
                    timeout=settings.record_store_timeout,
                    client=http_client,
                ),
            )
        logger.info(
            "Config: thread_model=%s messages_model=%s openai_key_set=%s kintone_domain=%s",
            settings.thread_default_model,
            settings.messages_default_model,
            bool(settings.openai_api_key),
            settings.kintone_domain,
        )
        app.state.orchestrator = chat
        chat.sessions.start()
        try:
            yield
        finally:
            await chat.sessions.stop()
            if http_client is not None:
                await http_client.aclose()

    app = FastAPI(title="Ephemeral Chat Relay", version="1.0.2", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type"],
    )

    @app.post("/assist/thread-chat")
    async def thread_chat(request: Request):
        content_length = request.headers.get("content-length")
        if content_length and content_length.isdigit() and int(content_length) > settings.max_body_bytes:
            return JSONResponse(status_code=413, content={"error": "Request body too large"})

        try:
            body = await request.json()
        except ValueError:
            return JSONResponse(status_code=400, content={"error": "Request body must be valid JSON"})

        chat: ChatOrchestrator = request.app.state.orchestrator
        try:
            result = await chat.handle_chat(body)
        except ValidationError as e:
            logger.info("Rejected chat request: %s", e)
            return JSONResponse(status_code=e.status_code, content={"error": str(e)})
        except RelayError as e:
            logger.error("/assist/thread-chat failed: %s", e)
            return JSONResponse(status_code=e.status_code, content={"error": str(e)})
        except Exception as e:
            logger.exception("Chat processing failed: %s", e)
            return JSONResponse(status_code=500, content={"error": str(e)})
        return result.model_dump()

    @app.get("/", response_class=PlainTextResponse)
    def root() -> str:
        return "Ephemeral chat relay running (history in record store, volatile server memory)"

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=get_settings().port)
