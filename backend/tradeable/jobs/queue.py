from __future__ import annotations

from redis import Redis
from rq import Queue
from rq.job import Job

from tradeable.config.settings import settings
from tradeable.jobs.news_refresh import run_news_refresh


def get_redis_connection() -> Redis:
    return Redis.from_url(settings.redis_url)


def get_queue(name: str | None = None) -> Queue:
    queue_name = name or settings.news_queue_name
    return Queue(name=queue_name, connection=get_redis_connection())


def enqueue_news_refresh() -> Job:
    queue = get_queue()
    return queue.enqueue(run_news_refresh)
