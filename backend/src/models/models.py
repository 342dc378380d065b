import asyncio
import itertools
import threading
from typing import Dict, List, Optional, Tuple

from schemas import Message
from utilities import SUBSCRIBER_QUEUE_SIZE


class Sequencer:
    '''Issues strictly increasing message ids, starting at `start`.'''

    def __init__(self, start: int = 1):
        self._counter = itertools.count(start)
        self._lock = threading.Lock()

    def next(self) -> int:
        with self._lock:
            return next(self._counter)


# ------------ Delivery handles ------------
# The Broadcaster only ever calls deliver() and close() on a handle.
# deliver() must not block: it returns False when the handle is saturated
# or closed, and the Broadcaster then drops the subscriber.

class PushSubscriber:
    ''' Outbound side of one WebSocket connection.'''

    def __init__(self, watermark: Optional[int] = None, queue_size: int = SUBSCRIBER_QUEUE_SIZE):
        # highest id already sent (or known) to the client
        self.watermark = watermark

        # per subscriber message buffer
        # the Broadcaster never waits for a slow subscriber
        # if the buffer fills up the subscriber is dropped, not the message stream
        self.outbox: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self.connected = True

    def deliver(self, message: Message) -> bool:
        if not self.connected:
            return False
        try:
            self.outbox.put_nowait(message)
        except asyncio.QueueFull:
            return False
        return True

    def close(self):
        self.connected = False

    def seen(self, message: Message) -> bool:
        return self.watermark is not None and message.id <= self.watermark

    def mark_sent(self, message: Message):
        if self.watermark is None or message.id > self.watermark:
            self.watermark = message.id


class PullSubscriber:
    ''' Single-slot handle for one long poll request.'''

    def __init__(self):
        self.slot: asyncio.Queue = asyncio.Queue(maxsize=1)
        self.connected = True

    def deliver(self, message: Message) -> bool:
        if not self.connected:
            return False
        try:
            self.slot.put_nowait(message)
        except asyncio.QueueFull:
            return False
        return True

    def close(self):
        self.connected = False

    async def wait(self, timeout: float) -> Optional[Message]:
        try:
            return await asyncio.wait_for(self.slot.get(), timeout)
        except asyncio.TimeoutError:
            # a delivery may have landed as the wait expired
            try:
                return self.slot.get_nowait()
            except asyncio.QueueEmpty:
                return None
        finally:
            self.connected = False


# ------------ Registry ------------
class Registry:
    '''
    Subscribers allowed to receive the next broadcast.

    The lock only guards dict operations; it is never held while a message
    is delivered.
    '''

    def __init__(self):
        self._subscribers: Dict[int, object] = {}
        self._ids = itertools.count(1)
        self.lock = asyncio.Lock()

    async def register(self, handle) -> int:
        async with self.lock:
            subscriber_id = next(self._ids)
            self._subscribers[subscriber_id] = handle
        return subscriber_id

    async def unregister(self, subscriber_id: int):
        async with self.lock:
            return self._subscribers.pop(subscriber_id, None)

    async def snapshot(self) -> List[Tuple[int, object]]:
        async with self.lock:
            return list(self._subscribers.items())

    def __len__(self):
        return len(self._subscribers)

    def __contains__(self, subscriber_id):
        return subscriber_id in self._subscribers
