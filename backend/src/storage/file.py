import asyncio
import logging
import os
from pathlib import Path
from typing import List

from pydantic import ValidationError

from schemas import Message
from .base import MessageStore, PersistenceError

logger = logging.getLogger(__name__)


class FileMessageStore(MessageStore):
    '''
    Stores one JSON document per line.

    The file is created on first use. Blocking file I/O runs in a worker
    thread so the event loop keeps serving subscribers.
    '''

    def __init__(self, path):
        self.path = Path(path)

    async def append(self, message: Message) -> None:
        try:
            await asyncio.to_thread(self._append_line, message.model_dump_json())
        except OSError as exc:
            raise PersistenceError(f"could not append to {self.path}: {exc}") from exc

    async def load_all(self) -> List[Message]:
        try:
            lines = await asyncio.to_thread(self._read_lines)
        except (OSError, UnicodeDecodeError) as exc:
            raise PersistenceError(f"could not read {self.path}: {exc}") from exc
        messages = []
        for lineno, line in enumerate(lines, start=1):
            if not line.strip():
                continue
            try:
                message = Message.model_validate_json(line)
            except ValidationError:
                # a torn final line from a crash mid-append is skipped
                logger.warning("Skipping unreadable line %d in %s", lineno, self.path)
                continue
            if message.id is None:
                logger.warning("Skipping line %d in %s, no message id", lineno, self.path)
                continue
            messages.append(message)
        messages.sort(key=lambda m: m.id)
        return messages

    def _append_line(self, line: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a+b") as fh:
            # terminate a torn last line so this record starts on its own line
            if fh.seek(0, os.SEEK_END) > 0:
                fh.seek(-1, os.SEEK_END)
                if fh.read(1) != b"\n":
                    fh.write(b"\n")
            fh.write(line.encode("utf-8") + b"\n")
            fh.flush()

    def _read_lines(self) -> List[str]:
        if not self.path.exists():
            return []
        with self.path.open("r", encoding="utf-8") as fh:
            return fh.readlines()
