from .base import MessageStore, PersistenceError
from .memory import MemoryMessageStore
from .file import FileMessageStore
from .dynamo import DynamoMessageStore


def make_store(settings) -> MessageStore:
    '''Pick the persistence backend named by settings.store.'''
    if settings.store == "file":
        return FileMessageStore(settings.storage_file)
    if settings.store == "dynamo":
        return DynamoMessageStore(
            settings.dynamo_table,
            region=settings.dynamo_region,
            endpoint_url=settings.dynamo_endpoint,
        )
    return MemoryMessageStore()
