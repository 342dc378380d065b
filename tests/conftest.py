"""Shared fixtures and fakes for the chat server tests."""

import asyncio
import json
from typing import List

import pytest
from fastapi import WebSocketDisconnect
from starlette.websockets import WebSocketState

from models import Broadcaster, IngestionQueue, Registry, Sequencer
from schemas import Message
from storage import MemoryMessageStore, MessageStore, PersistenceError


class FailingStore(MessageStore):
    """Store whose writes always fail."""

    def __init__(self, history: List[Message] = ()):
        self.history = list(history)

    async def append(self, message: Message) -> None:
        raise PersistenceError("disk full")

    async def load_all(self) -> List[Message]:
        return list(self.history)


class FakeWebSocket:
    """
    Minimal stand-in for a Starlette WebSocket.

    Put text frames on `inbound`; None simulates the peer closing and an
    exception instance is raised from the read. Sent frames are decoded
    into `sent`. Clearing `gate` stalls every send.
    """

    def __init__(self):
        self.inbound: asyncio.Queue = asyncio.Queue()
        self.sent: list = []
        self.gate = asyncio.Event()
        self.gate.set()
        self.fail_sends = False
        self.client_state = WebSocketState.CONNECTED
        self.close_code = None

    async def receive_text(self) -> str:
        item = await self.inbound.get()
        if item is None:
            self.client_state = WebSocketState.DISCONNECTED
            raise WebSocketDisconnect(code=1000)
        if isinstance(item, Exception):
            raise item
        return item

    async def send_text(self, data: str):
        await self.gate.wait()
        if self.fail_sends:
            raise RuntimeError("broken pipe")
        self.sent.append(json.loads(data))

    async def close(self, code: int = 1000):
        self.client_state = WebSocketState.DISCONNECTED
        self.close_code = code

    def messages(self):
        """Broadcast frames only (acks and errors carry a type)."""
        return [f for f in self.sent if "type" not in f]


async def until(predicate, timeout: float = 2.0):
    """Yield to the loop until predicate() holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


def make_messages(*bodies, author="alice", start=1):
    return [Message(id=start + i, author=author, body=body) for i, body in enumerate(bodies)]


@pytest.fixture
def store():
    return MemoryMessageStore()


@pytest.fixture
def registry():
    return Registry()


@pytest.fixture
def ingestion():
    return IngestionQueue()


@pytest.fixture
def broadcaster(ingestion, store, registry):
    return Broadcaster(ingestion, store, registry, Sequencer())
