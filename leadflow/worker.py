"""
RQ worker entry point — runs background jobs such as session rescoring.

Usage:
    python -m leadflow.worker
"""
import logging

from rq import Worker

from leadflow import extensions
from leadflow.logging_config import configure_logging

logger = logging.getLogger('leadflow.worker')


def main():
    configure_logging()
    queue = extensions.get_queue()
    logger.info("Worker listening on queue '%s'", queue.name)
    Worker([queue], connection=extensions.redis_client).work()


if __name__ == '__main__':
    main()
