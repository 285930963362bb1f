"""Delivery backends for outbox messages.

Push and SMS delivery belong to external services. The default sender hands
each message to them over Redis pub/sub on ``pubsub:outbox:<message_type>``.
Pub/sub keeps nothing for absent listeners, so a publish that reaches no
subscriber counts as a failed delivery and the message is retried.
"""

from __future__ import annotations

import logging
from typing import Protocol

import redis.asyncio as aioredis

from shiftwatch.db.models import OutboxMessage
from shiftwatch.redis_client import publish_json

logger = logging.getLogger(__name__)

CHANNEL_PREFIX = "pubsub:outbox:"


class NoSubscribers(RuntimeError):
    """Raised when a publish reached no delivery service."""


class MessageSender(Protocol):
    async def send(self, message: OutboxMessage) -> None:
        """Deliver one message; raise on failure."""


def serialize(message: OutboxMessage) -> dict:
    return {
        "id": message.id,
        "type": message.message_type,
        "recipient": message.recipient,
        "user_id": message.user_id,
        "payload": message.payload,
        "attempt": message.retry_count + 1,
    }


class RedisPubSubSender:
    """Publish messages for the delivery services subscribed on Redis."""

    def __init__(self, redis: aioredis.Redis) -> None:
        self.redis = redis

    async def send(self, message: OutboxMessage) -> None:
        receivers = await publish_json(self.redis, f"{CHANNEL_PREFIX}{message.message_type}", serialize(message))
        if receivers == 0:
            msg = f"no subscribers on {CHANNEL_PREFIX}{message.message_type}"
            raise NoSubscribers(msg)


class LogSender:
    """Write messages to the log instead of delivering them (local development)."""

    async def send(self, message: OutboxMessage) -> None:
        logger.info("Outbox %s -> %s: %s", message.message_type, message.recipient, message.payload)
