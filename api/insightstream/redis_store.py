from __future__ import annotations
import os, json, time
import logging
from typing import Any, Dict, List, Optional

import redis
"""
Per-session event log kept in Redis.  Every helper here is best-effort: when
Redis is unreachable the event is dropped and the request carries on.
"""

from insightstream.config import StorageConfig, load_config

SAVE_LOGS = os.environ.get("SAVE_LOGS","true").lower()=="true"
REDIS_URL = os.environ.get("REDIS_URL","redis://redis:6379/0")
# after a failed connect, skip Redis for this long before dialing again
RETRY_SECONDS = 30.0

logger = logging.getLogger(__name__)

_client: Optional[redis.Redis] = None
_down_until = 0.0
_storage: Optional[StorageConfig] = None


def configure(storage: StorageConfig):
    """Use the app's storage settings (key prefix, TTL) instead of re-reading the YAML."""
    global _storage
    _storage = storage


def _settings() -> StorageConfig:
    global _storage
    if _storage is None:
        _storage = load_config().storage
    return _storage


def client() -> Optional[redis.Redis]:
    """
    Lazily create and return a Redis client.  If the server cannot be
    reached, return ``None`` so callers skip logging instead of failing, and
    don't try again for RETRY_SECONDS.
    """
    global _client, _down_until
    if _client is not None:
        return _client
    if time.monotonic() < _down_until:
        return None
    try:
        c = redis.Redis.from_url(REDIS_URL, decode_responses=True, socket_connect_timeout=1)
        c.ping()
    except (redis.RedisError, OSError) as e:
        _down_until = time.monotonic() + RETRY_SECONDS
        logger.warning("Redis unavailable at %s, retrying in %.0fs: %s", REDIS_URL, RETRY_SECONDS, e)
        return None
    _client = c
    return _client

def _key(session_id: str) -> str:
    return f"{_settings().logs_key_prefix}:{session_id}"

def log_event(session_id: str, kind: str, payload: Dict[str, Any]):
    if not SAVE_LOGS:
        return
    c = client()
    if c is None:
        return
    key = _key(session_id)
    entry = {"ts": int(time.time()), "kind": kind, **payload}
    try:
        c.rpush(key, json.dumps(entry, ensure_ascii=False, default=str))
        c.expire(key, _settings().ttl_seconds)
    except redis.RedisError as e:
        logger.warning("Dropping event %s for %s: %s", kind, session_id, e)

def read_logs(session_id: str, last_n: int = 200) -> List[Dict[str, Any]]:
    if not SAVE_LOGS:
        return []
    c = client()
    if c is None:
        return []
    try:
        items = c.lrange(_key(session_id), -last_n, -1)
    except redis.RedisError as e:
        logger.warning("Could not read logs for %s: %s", session_id, e)
        return []
    return [json.loads(x) for x in items]
