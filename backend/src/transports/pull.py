import logging
from typing import Optional

from models import PullSubscriber, Registry
from schemas import Message
from utilities import POLL_WAIT_PERIOD

logger = logging.getLogger(__name__)


async def pull_message(registry: Registry, timeout: float = POLL_WAIT_PERIOD) -> Optional[Message]:
    '''
    Wait up to `timeout` seconds for the next broadcast message.

    The subscription is single-shot: it is removed whether or not a message
    arrived, and the caller polls again to keep receiving. Returns None when
    the wait elapsed.
    '''
    subscriber = PullSubscriber()
    subscriber_id = await registry.register(subscriber)
    try:
        message = await subscriber.wait(timeout)
    finally:
        await registry.unregister(subscriber_id)
    if message is None:
        logger.debug("Pull subscriber %d timed out after %.1fs", subscriber_id, timeout)
    return message
