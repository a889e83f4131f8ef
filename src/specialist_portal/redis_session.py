from datetime import timedelta
from typing import List

import redis

from .config import settings
from .models import FlashNotice

redis_client = redis.from_url(settings.REDIS_URL, decode_responses=True)


def get_redis():
    return redis_client


def _flash_key(session_id: str) -> str:
    return f"flash:{session_id}"


def push_flash(session_id: str, category: str, message: str) -> None:
    """Queues a one-shot notice for the next page the browser loads."""
    key = _flash_key(session_id)
    client = get_redis()
    client.rpush(key, FlashNotice(category=category, message=message).model_dump_json())
    client.expire(key, timedelta(minutes=settings.SESSION_TIMEOUT_MINUTES))


def pop_flashes(session_id: str) -> List[FlashNotice]:
    key = _flash_key(session_id)
    client = get_redis()
    raw = client.lrange(key, 0, -1)
    client.delete(key)
    return [FlashNotice.model_validate_json(item) for item in raw]
