import asyncio
import json
import logging
from typing import Optional

import anyio
from fastapi import WebSocket, WebSocketDisconnect, status
from pydantic import ValidationError
from starlette.websockets import WebSocketState

from models import IngestionQueue, PushSubscriber, Registry
from schemas import SubmitMessageRequest
from storage import MessageStore, PersistenceError
from utilities import SUBSCRIBER_QUEUE_SIZE, make_ack, make_error

logger = logging.getLogger(__name__)


class PushSession:
    '''
    One WebSocket connection: a subscriber that may also publish.

    The session registers before loading history, replays everything above
    the client's watermark, then runs two duties until either one stops:
    reading submissions from the socket and forwarding broadcasts to it.
    Messages at or below the watermark are never sent twice.
    '''

    def __init__(
        self,
        websocket: WebSocket,
        registry: Registry,
        queue: IngestionQueue,
        store: MessageStore,
        watermark: Optional[int] = None,
        queue_size: int = SUBSCRIBER_QUEUE_SIZE,
    ):
        self.websocket = websocket
        self.registry = registry
        self.queue = queue
        self.store = store
        self.subscriber = PushSubscriber(watermark, queue_size)
        self.subscriber_id: Optional[int] = None
        self._send_lock = asyncio.Lock()

    async def send(self, payload: dict):
        # acks and broadcasts come from different tasks
        async with self._send_lock:
            await self.websocket.send_text(json.dumps(payload))

    async def run(self):
        self.subscriber_id = await self.registry.register(self.subscriber)
        logger.info("Push subscriber %d connected (watermark=%s)", self.subscriber_id, self.subscriber.watermark)
        close_code = status.WS_1000_NORMAL_CLOSURE
        try:
            await self.replay()
            close_code = await self.serve()
        except WebSocketDisconnect:
            pass
        except PersistenceError as exc:
            logger.error("History unavailable for subscriber %d: %s", self.subscriber_id, exc)
            close_code = status.WS_1011_INTERNAL_ERROR
        except Exception as exc:
            # broken pipe / closed socket during replay
            logger.info("Push subscriber %d failed during replay: %s", self.subscriber_id, exc)
        finally:
            await self.registry.unregister(self.subscriber_id)
            self.subscriber.close()
            await self.close(close_code)
            logger.info("Push subscriber %d disconnected", self.subscriber_id)

    async def replay(self):
        history = await self.store.load_all()
        for message in history:
            if self.subscriber.seen(message):
                continue
            await self.send(message.model_dump())
            self.subscriber.mark_sent(message)

    async def serve(self) -> int:
        '''Run both duties; returns the close code once either has stopped.'''
        dropped = False

        async with anyio.create_task_group() as tg:

            async def forward():
                nonlocal dropped
                try:
                    await self.sender_loop()
                    # dropped by the Broadcaster as a slow consumer
                    dropped = True
                except Exception as exc:
                    logger.info("Push subscriber %d write failed: %r", self.subscriber_id, exc)
                tg.cancel_scope.cancel()

            async def receive():
                try:
                    await self.receiver_loop()
                except Exception as exc:
                    logger.info("Push subscriber %d read failed: %r", self.subscriber_id, exc)
                tg.cancel_scope.cancel()

            tg.start_soon(forward)
            tg.start_soon(receive)

        if dropped:
            return status.WS_1013_TRY_AGAIN_LATER
        return status.WS_1000_NORMAL_CLOSURE

    async def sender_loop(self):
        '''Forward broadcasts; ends once the subscriber is dropped and drained.'''
        sub = self.subscriber
        while sub.connected or not sub.outbox.empty():
            message = await sub.outbox.get()
            if sub.seen(message):
                continue
            await self.send(message.model_dump())
            sub.mark_sent(message)

    async def receiver_loop(self):
        '''Submit inbound messages; returns when the peer closes.'''
        while True:
            try:
                data = await self.websocket.receive_text()
            except WebSocketDisconnect:
                return
            try:
                payload = json.loads(data)
            except json.JSONDecodeError:
                await self.send(make_error("BAD_REQUEST", "invalid json"))
                continue
            try:
                request = SubmitMessageRequest.model_validate(payload)
            except ValidationError:
                await self.send(make_error("BAD_REQUEST", "expected an object with string author and body"))
                continue

            try:
                message = await self.queue.submit(request.to_message())
            except PersistenceError as exc:
                logger.warning("Submission from subscriber %d not persisted: %s", self.subscriber_id, exc)
                await self.send(make_error("PERSISTENCE_FAILED", "message could not be stored"))
                continue
            await self.send(make_ack(message.id))

    async def close(self, code: int):
        if self.websocket.client_state != WebSocketState.CONNECTED:
            return
        try:
            await self.websocket.close(code=code)
        except (RuntimeError, OSError):
            # peer already gone
            pass
