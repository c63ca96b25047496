import asyncio
import json
from typing import Any

import redis
import redis.asyncio as aioredis

from services.generation.job_store import JobStore
from shared.errors import JobNotFoundError
from shared.models import JobQuery, JobRecord
from shared.utils import config, setup_logging

logger = setup_logging("redis-job-store")

RECORD_KEY = "generation:job:{job_id}"
INDEX_KEY = "generation:jobs"


class RedisJobStore(JobStore):
    """Job records as JSON strings, indexed by creation time in a sorted set."""

    def __init__(self, redis_url: str | None = None, client: Any = None) -> None:
        self.redis_url = redis_url or config.get("redis_url")
        self.redis = client or aioredis.Redis.from_url(self.redis_url, decode_responses=True)
        self._connection_checked = False

    async def _ensure_connection(self, max_retries: int = 3, retry_delay: float = 1.0) -> None:
        """Lazy connection check, retried with a doubling delay."""
        if self._connection_checked:
            return

        for attempt in range(max_retries):
            try:
                await self.redis.ping()
                self._connection_checked = True
                logger.info(f"Connected to Redis at {self.redis_url}")
                return
            except redis.RedisError as e:
                if attempt == max_retries - 1:
                    logger.error(f"Failed to connect to Redis at {self.redis_url} after {max_retries} attempts: {e}")
                    raise ConnectionError(f"Redis connection failed: {e}") from e
                logger.warning(f"Redis connection attempt {attempt + 1} failed, retrying in {retry_delay}s: {e}")
                await asyncio.sleep(retry_delay)
                retry_delay *= 2

    async def _write(self, record: JobRecord) -> None:
        await self._ensure_connection()
        try:
            pipe = self.redis.pipeline()
            pipe.set(RECORD_KEY.format(job_id=record.id), record.model_dump_json())
            pipe.zadd(INDEX_KEY, {record.id: record.created_at.timestamp()})
            await pipe.execute()
        except redis.RedisError as e:
            # Force a fresh ping on the next call
            self._connection_checked = False
            raise ConnectionError(f"Redis write failed: {e}") from e

    async def _read(self, job_id: str) -> JobRecord | None:
        await self._ensure_connection()
        try:
            raw = await self.redis.get(RECORD_KEY.format(job_id=job_id))
        except redis.RedisError as e:
            self._connection_checked = False
            raise ConnectionError(f"Redis read failed: {e}") from e
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        return JobRecord.model_validate(json.loads(raw))

    async def create(self, record: JobRecord) -> JobRecord:
        await self._write(record)
        return record

    async def update(self, job_id: str, **fields: Any) -> JobRecord:
        record = await self._read(job_id)
        if record is None:
            raise JobNotFoundError(job_id)
        updated = self._merge(record, fields)
        await self._write(updated)
        return updated

    async def get(self, job_id: str) -> JobRecord | None:
        return await self._read(job_id)

    async def query(self, job_filter: JobQuery | None = None) -> list[JobRecord]:
        job_filter = job_filter or JobQuery()
        await self._ensure_connection()
        records = []
        for job_id in await self.redis.zrevrange(INDEX_KEY, 0, -1):
            record = await self._read(job_id)
            if record is None or not self._matches(record, job_filter):
                continue
            records.append(record)
            if job_filter.limit and len(records) >= job_filter.limit:
                break
        return records
