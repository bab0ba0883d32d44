"""
Per-session Redis locks.

Deduplication of one session must not run twice at the same time; different
sessions never contend. The lock expires on its own after DEDUP_LOCK_TIMEOUT
so a crashed worker cannot wedge a session forever.
"""
import logging
from contextlib import contextmanager

from redis.exceptions import LockError

from leadflow import extensions
from leadflow.config import DEDUP_LOCK_TIMEOUT, DEDUP_LOCK_WAIT
from leadflow.errors import DeduplicationInProgress

logger = logging.getLogger('services.locks')

PREFIX = 'lock:dedup'


def lock_key(session_id) -> str:
    return f'{PREFIX}:{session_id}'


@contextmanager
def session_lock(session_id, timeout=DEDUP_LOCK_TIMEOUT, wait=DEDUP_LOCK_WAIT):
    """Hold the dedup lock for a session or raise DeduplicationInProgress."""
    lock = extensions.redis_client.lock(lock_key(session_id), timeout=timeout)
    acquired = lock.acquire(blocking=wait > 0, blocking_timeout=wait or None)
    if not acquired:
        logger.info("Dedup lock busy for session %s", session_id)
        raise DeduplicationInProgress(session_id)
    try:
        yield lock
    finally:
        try:
            lock.release()
        except LockError:
            # expired mid-run and possibly taken by someone else
            logger.warning("Dedup lock for session %s expired before release", session_id)
