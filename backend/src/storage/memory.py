from typing import List

from schemas import Message
from .base import MessageStore


class MemoryMessageStore(MessageStore):
    '''Keeps the log in a list; history is lost on restart.'''

    def __init__(self):
        self._messages: List[Message] = []

    async def append(self, message: Message) -> None:
        self._messages.append(message)

    async def load_all(self) -> List[Message]:
        return list(self._messages)
