import asyncio
import logging
from typing import Optional

from schemas import Message
from storage import MessageStore
from .models import Registry, Sequencer

logger = logging.getLogger(__name__)


class IngestionQueue:
    '''
    Unbounded FIFO of authored messages waiting for the Broadcaster.

    Any number of transports submit; only the Broadcaster consumes.
    '''

    def __init__(self):
        self._queue: asyncio.Queue = asyncio.Queue()

    def submit(self, message: Message, wait: bool = True) -> Optional[asyncio.Future]:
        '''
        Enqueue `message` without blocking.

        With wait=True the returned future resolves to the persisted message
        (id assigned) or raises the persistence error. With wait=False the
        submission is fire-and-forget and failures are only logged.
        '''
        future = asyncio.get_running_loop().create_future() if wait else None
        self._queue.put_nowait((message, future))
        return future

    async def get(self):
        return await self._queue.get()

    def qsize(self) -> int:
        return self._queue.qsize()


class Broadcaster:
    '''
    Single consumer of the ingestion queue and single writer of history.

    Each message is sequenced, persisted, then fanned out to a registry
    snapshot. Persisting before fan-out keeps visibility behind durability.
    '''

    def __init__(self, queue: IngestionQueue, store: MessageStore, registry: Registry, sequencer: Sequencer):
        self.queue = queue
        self.store = store
        self.registry = registry
        self.sequencer = sequencer
        self.task: Optional[asyncio.Task] = None
        # stats
        self.messages_published = 0

    def start(self) -> asyncio.Task:
        if self.task is None or self.task.done():
            self.task = asyncio.create_task(self.run(), name="broadcaster")
        return self.task

    async def stop(self):
        if self.task:
            self.task.cancel()
            try:
                await self.task
            except asyncio.CancelledError:
                pass
            self.task = None

    async def run(self):
        while True:
            message, future = await self.queue.get()
            try:
                await self.process(message, future)
            except Exception:
                # nothing may stop the loop
                logger.exception("Unexpected error while broadcasting message %s", message.id)

    async def process(self, message: Message, future: Optional[asyncio.Future] = None) -> Optional[Message]:
        if message.id is None:
            message = message.with_id(self.sequencer.next())

        try:
            await self.store.append(message)
        except Exception as exc:
            if future is not None and not future.done():
                future.set_exception(exc)
            else:
                logger.error("Dropping message %s, persistence failed: %s", message.id, exc)
            return None

        self.messages_published += 1
        if future is not None and not future.done():
            future.set_result(message)

        await self.fan_out(message)
        return message

    async def fan_out(self, message: Message) -> int:
        '''Deliver to every registered subscriber; returns how many accepted it.'''
        subscribers = await self.registry.snapshot()

        # fan-out outside lock
        delivered = 0
        for subscriber_id, handle in subscribers:
            try:
                ok = handle.deliver(message)
            except Exception:
                logger.exception("Delivery to subscriber %d raised", subscriber_id)
                ok = False
            if ok:
                delivered += 1
                continue
            logger.info("Dropping subscriber %d, delivery of message %s failed", subscriber_id, message.id)
            await self.registry.unregister(subscriber_id)
            handle.close()
        return delivered
