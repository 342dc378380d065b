from abc import ABC, abstractmethod
from typing import List

from schemas import Message


class PersistenceError(Exception):
    '''Raised when the message log cannot be written or read.'''


class MessageStore(ABC):
    '''
    Append-only message log.

    Only the Broadcaster calls append(); load_all() may run concurrently from
    any transport at connect/request time and returns messages in id order.
    '''

    @abstractmethod
    async def append(self, message: Message) -> None:
        ...

    @abstractmethod
    async def load_all(self) -> List[Message]:
        ...
