"""
Server configuration loaded from CHAT_* environment variables.

Defaults come from utilities.constants.
"""
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import (
    DYNAMO_REGION,
    DYNAMO_TABLE,
    HOST,
    LOG_LEVEL,
    POLL_WAIT_PERIOD,
    PORT,
    STORAGE_FILE,
    STORE_BACKEND,
    SUBSCRIBER_QUEUE_SIZE,
)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="CHAT_")

    store: Literal["memory", "file", "dynamo"] = Field(default=STORE_BACKEND, description="Persistence backend")
    storage_file: str = Field(default=STORAGE_FILE, description="Message log path for the file backend")
    dynamo_table: str = Field(default=DYNAMO_TABLE, description="Table for the dynamo backend")
    dynamo_region: str = Field(default=DYNAMO_REGION, description="AWS region for the dynamo backend")
    dynamo_endpoint: Optional[str] = Field(default=None, description="Endpoint override, e.g. a local DynamoDB")
    poll_wait_period: float = Field(default=POLL_WAIT_PERIOD, gt=0, description="Long poll wait in seconds")
    subscriber_queue_size: int = Field(default=SUBSCRIBER_QUEUE_SIZE, ge=1, description="Push subscriber outbox size")
    log_level: str = Field(default=LOG_LEVEL, description="Root log level")
    host: str = Field(default=HOST)
    port: int = Field(default=PORT)
