"""Per-user event relay on top of Redis pub/sub.

Every affected user gets its own channel (``user-<id>`` by default). Events
are JSON objects of the form ``{"event": <name>, "data": {...}}``. Delivery
is fire-and-forget: a subscriber that is offline misses the event and has to
refresh through the JSON API.
"""
from flask import current_app
import json
import logging
import time

import redis

logger = logging.getLogger(__name__)

EVENT_NEW_MESSAGE = 'new-message'
EVENT_MESSAGE_DELETED = 'message-deleted'
EVENT_ORDER_STATUS = 'order-status'
EVENT_NOTIFICATION = 'notification'


class RelayClient:

    def __init__(self, url: str = '', channel_prefix: str = 'user-'):
        self.url = url
        self.channel_prefix = channel_prefix
        # from_url does not connect until the first command
        self._redis = (
            redis.Redis.from_url(url, decode_responses=True) if url else None
        )

    @property
    def enabled(self) -> bool:
        return self._redis is not None

    def channel_for(self, user_id) -> str:
        return f'{self.channel_prefix}{user_id}'

    def publish(self, user_id, event: str, data: dict) -> bool:
        """Publish one event to a user channel. Returns False on failure."""
        if not self.enabled:
            logger.debug(
                "Relay disabled, dropping %s for user %s", event, user_id)
            return False

        body = json.dumps(
            {'event': event, 'data': data},
            ensure_ascii=False,
            default=str)
        try:
            self._redis.publish(self.channel_for(user_id), body)
        except redis.RedisError as e:
            logger.warning(
                "Relay publish failed event=%s user=%s: %s", event, user_id, e)
            return False
        return True

    def publish_many(self, user_ids, event: str, data: dict) -> int:
        delivered = 0
        for user_id in dict.fromkeys(user_ids):
            if self.publish(user_id, event, data):
                delivered += 1
        return delivered

    def listen(self, user_id, timeout: float = 1.0, should_stop=None):
        """Yield decoded events published to a user channel.

        Runs until ``should_stop()`` returns true, or forever when no
        callback is given. Frames that are not valid JSON are skipped.
        """
        if not self.enabled:
            raise RuntimeError('Relay is not configured (RELAY_URL is empty)')

        channel = self.channel_for(user_id)
        pubsub = self._redis.pubsub()
        pubsub.subscribe(channel)
        logger.info("Subscribed to %s", channel)

        try:
            while should_stop is None or not should_stop():
                message = pubsub.get_message(
                    ignore_subscribe_messages=True, timeout=timeout)
                if not message:
                    time.sleep(0.1)
                    continue
                if message['type'] != 'message':
                    continue
                try:
                    event = json.loads(message['data'])
                except (TypeError, ValueError):
                    logger.warning(
                        "Skipping malformed frame on %s: %r",
                        channel,
                        message['data'])
                    continue
                if not isinstance(event, dict) or 'event' not in event:
                    continue
                yield event
        finally:
            pubsub.unsubscribe(channel)
            pubsub.close()


def init_relay(app):
    app.extensions['relay'] = RelayClient(
        app.config.get('RELAY_URL', ''),
        app.config.get('RELAY_CHANNEL_PREFIX', 'user-'),
    )
    if not app.config.get('RELAY_URL'):
        logger.info("RELAY_URL not set, real-time events are disabled")


def get_relay():
    return current_app.extensions['relay']


def publish_to_users(user_ids, event, data):
    """Publish after commit. Never raises on relay trouble."""
    return get_relay().publish_many(
        [uid for uid in user_ids if uid is not None], event, data)
