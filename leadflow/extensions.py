"""
Shared client instances — Redis and the RQ job queue.

The Redis client connects lazily on first command, so importing this module is
always safe (even when Redis is down during tests).
"""
import logging
import redis

from leadflow.config import REDIS_URL

logger = logging.getLogger('leadflow.extensions')

# ── Redis ─────────────────────────────────────────────────────────────────────
redis_client = redis.from_url(REDIS_URL, decode_responses=True)

# ── RQ (lazy, avoids import-time queue setup) ─────────────────────────────────
_queue = None


def get_queue():
    global _queue
    if _queue is None:
        from rq import Queue
        _queue = Queue(connection=redis_client)
        logger.info("RQ queue initialized (%s)", _queue.name)
    return _queue
