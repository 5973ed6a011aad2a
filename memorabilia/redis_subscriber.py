import asyncio
import json
import logging
from typing import Callable

from pydantic import ValidationError
from redis.asyncio import Redis
from redis.exceptions import RedisError

from memorabilia.models.dc_models import AccountUpdate

HEART_BEAT = 15


class RedisSubscriber:
    """Push-update channel: subscribe to a topic and hand every update to a callback."""

    def __init__(
        self,
        redis_factory: Callable[[], Redis],
        topic: str,
        initial_backoff: float = 0.5,
        max_backoff: float = 30.0,
    ):
        """Initialize RedisSubscriber with a connection factory and the topic name."""
        self.redis_factory = redis_factory
        self.topic: str = topic
        self.initial_backoff = initial_backoff
        self.max_backoff = max_backoff
        self.reconnects: int = 0

    async def run(self, on_update: Callable[[AccountUpdate], None]) -> None:
        """Listen until cancelled, reconnecting with exponential backoff on transport failures.

        Args:
            on_update (Callable[[AccountUpdate], None]): Called once per incoming update
        """
        backoff = self.initial_backoff
        while True:
            redis = self.redis_factory()
            pubsub = redis.pubsub()
            try:
                await pubsub.subscribe(self.topic)
                logging.info(f"Subscribed to {self.topic}")
                backoff = self.initial_backoff
                while True:
                    msg = await pubsub.get_message(ignore_subscribe_messages=True, timeout=HEART_BEAT)
                    if msg and msg["type"] == "message":
                        self._dispatch(msg["data"], on_update)
            except (RedisError, OSError) as e:
                self.reconnects += 1
                logging.warning(f"Update channel {self.topic} lost ({e}), retrying in {backoff}s")
            finally:
                await self._close(pubsub, redis)
            await asyncio.sleep(backoff)
            backoff = min(backoff * 2, self.max_backoff)

    def _dispatch(self, data, on_update: Callable[[AccountUpdate], None]) -> None:
        try:
            payload = json.loads(data)
            update = AccountUpdate.model_validate(payload)
        except (ValueError, ValidationError) as e:
            logging.warning(f"Skipping malformed update on {self.topic}: {e}")
            return
        logging.debug(f"Payload: {payload}")
        try:
            on_update(update)
        except Exception as e:
            logging.error(f"Update callback failed: {e}")

    async def _close(self, pubsub, redis: Redis) -> None:
        logging.info("Unsubscribing from channel")
        # each step runs even when the one before failed on a dead transport
        for step in (lambda: pubsub.unsubscribe(self.topic), pubsub.aclose, redis.aclose):
            try:
                await step()
            except (RedisError, OSError) as e:
                logging.debug(f"Ignoring error while closing {self.topic}: {e}")
