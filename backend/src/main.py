import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Optional

import uvicorn
from fastapi import FastAPI, HTTPException, Request, Response, WebSocket
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from models import Broadcaster, IngestionQueue, Registry, Sequencer
from schemas import Message, SubmitMessageRequest
from storage import PersistenceError, make_store
from transports import PushSession, pull_message
from utilities import Settings, make_ack

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    '''
    Build the per-process components and run the Broadcaster.

    The sequencer resumes after the highest persisted id so ids are never
    reused when the log survives a restart.
    '''
    settings: Settings = app.state.settings
    store = make_store(settings)
    history = await store.load_all()
    last_id = max((m.id for m in history), default=0)

    app.state.store = store
    app.state.registry = Registry()
    app.state.ingestion = IngestionQueue()
    app.state.sequencer = Sequencer(start=last_id + 1)
    app.state.broadcaster = Broadcaster(app.state.ingestion, store, app.state.registry, app.state.sequencer)
    app.state.started_at = datetime.now(timezone.utc)

    app.state.broadcaster.start()
    logger.info("Chat server started (store=%s, %d messages in history)", settings.store, len(history))
    try:
        yield
    finally:
        await app.state.broadcaster.stop()
        logger.info("Chat server stopped")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings()
    app = FastAPI(title="Chat fan-out server", lifespan=lifespan)
    app.state.settings = settings

    @app.exception_handler(RequestValidationError)
    async def invalid_body(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"detail": "Invalid request body"})

    # -------------- WebSocket handling --------------
    @app.websocket("/ws")
    async def websocket_endpoint(ws: WebSocket, watermark: Optional[int] = None):
        await ws.accept()
        state = ws.app.state
        session = PushSession(
            ws,
            state.registry,
            state.ingestion,
            state.store,
            watermark=watermark,
            queue_size=state.settings.subscriber_queue_size,
        )
        await session.run()

    # -------------- REST endpoints --------------
    @app.post("/send")
    @app.post("/messages")
    async def rest_send_message(req: SubmitMessageRequest, request: Request):
        future = request.app.state.ingestion.submit(req.to_message())
        try:
            message = await future
        except PersistenceError as exc:
            logger.error("Send failed: %s", exc)
            raise HTTPException(status_code=500, detail="message could not be stored")
        return make_ack(message.id)

    @app.get("/receive", response_model=Message, responses={204: {"description": "No message within the wait period"}})
    async def rest_receive_message(request: Request):
        state = request.app.state
        message = await pull_message(state.registry, state.settings.poll_wait_period)
        if message is None:
            return Response(status_code=204)
        return message

    @app.get("/past_messages", response_model=List[Message])
    @app.get("/history", response_model=List[Message])
    async def rest_history(request: Request):
        try:
            return await request.app.state.store.load_all()
        except PersistenceError as exc:
            logger.error("History load failed: %s", exc)
            raise HTTPException(status_code=500, detail="failed to get past messages")

    @app.get("/health")
    async def rest_health(request: Request):
        state = request.app.state
        now = datetime.now(timezone.utc)
        uptime_sec = int((now - state.started_at).total_seconds())
        return {
            "uptime_sec": uptime_sec,
            "subscribers": len(state.registry),
            "messages": state.broadcaster.messages_published,
            "pending": state.ingestion.qsize(),
        }

    return app


def main():
    settings = Settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


app = create_app()

if __name__ == "__main__":
    main()
