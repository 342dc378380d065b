import asyncio
import logging
from typing import List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from schemas import Message
from .base import MessageStore, PersistenceError

logger = logging.getLogger(__name__)


class DynamoMessageStore(MessageStore):
    '''
    Keeps the log in a DynamoDB table keyed by message id.

    Scan returns items in no particular order, so load_all() sorts by id.
    boto3 is synchronous; calls run in a worker thread.
    '''

    def __init__(self, table: str, client=None, region: Optional[str] = None, endpoint_url: Optional[str] = None):
        self.table = table
        self.client = client or boto3.client("dynamodb", region_name=region, endpoint_url=endpoint_url)

    async def append(self, message: Message) -> None:
        item = {
            "id": {"N": str(message.id)},
            "author": {"S": message.author},
            "body": {"S": message.body},
        }
        try:
            await asyncio.to_thread(
                self.client.put_item,
                TableName=self.table,
                Item=item,
                # ids are never reused, so an existing item means a conflict
                ConditionExpression="attribute_not_exists(id)",
            )
        except (ClientError, BotoCoreError) as exc:
            raise PersistenceError(f"put_item on {self.table} failed: {exc}") from exc

    async def load_all(self) -> List[Message]:
        try:
            items = await asyncio.to_thread(self._scan)
        except (ClientError, BotoCoreError) as exc:
            raise PersistenceError(f"scan of {self.table} failed: {exc}") from exc
        messages = []
        for item in items:
            try:
                messages.append(Message(
                    id=int(item["id"]["N"]),
                    author=item["author"]["S"],
                    body=item["body"]["S"],
                ))
            except (KeyError, TypeError, ValueError):
                logger.warning("Skipping malformed item in %s: %r", self.table, item)
        messages.sort(key=lambda m: m.id)
        return messages

    def _scan(self) -> list:
        paginator = self.client.get_paginator("scan")
        items = []
        for page in paginator.paginate(TableName=self.table, ConsistentRead=True):
            items.extend(page.get("Items", []))
        return items
