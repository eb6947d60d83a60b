import json
import os
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import redis.asyncio as redis
from loguru import logger
from pydantic import BaseModel
from redis.exceptions import RedisError, WatchError

from graph.models import Job, ReportStatus
from tools.errors import JobNotFound, StoreUnavailable

KEY_PREFIX = "report:"
CREATED_INDEX = "reports:by_created"


def _encode(value: Any) -> str:
    if isinstance(value, BaseModel):
        return value.model_dump_json()
    if isinstance(value, ReportStatus):
        return json.dumps(value.value)
    if isinstance(value, datetime):
        return json.dumps(value.isoformat())
    return json.dumps(value)


class RedisJobStore:
    """Durable job records, one Redis hash per job with JSON-encoded fields."""

    def __init__(self, client: redis.Redis):
        self.r = client

    @classmethod
    def from_url(cls, url: Optional[str] = None) -> "RedisJobStore":
        redis_url = url or os.getenv("REDIS_URL", "redis://localhost:6379")
        logger.info(f"Using Redis job store at {redis_url}")
        return cls(redis.from_url(redis_url, decode_responses=True))

    @staticmethod
    def _key(job_id: str) -> str:
        return f"{KEY_PREFIX}{job_id}"

    async def ping(self) -> bool:
        try:
            return bool(await self.r.ping())
        except RedisError as e:
            raise StoreUnavailable(f"Job store unreachable: {e}")

    async def close(self):
        await self.r.aclose()

    async def create(self, email: str) -> str:
        """Insert a new job in `processing` state and return its id."""
        job_id = uuid.uuid4().hex
        created_at = datetime.now(timezone.utc)
        record = {
            "id": job_id,
            "email": email,
            "status": ReportStatus.PROCESSING,
            "enrichment": None,
            "report": None,
            "lead_data": None,
            "error": None,
            "created_at": created_at,
        }
        try:
            async with self.r.pipeline(transaction=True) as pipe:
                pipe.hset(self._key(job_id), mapping={k: _encode(v) for k, v in record.items()})
                pipe.zadd(CREATED_INDEX, {job_id: created_at.timestamp()})
                await pipe.execute()
        except RedisError as e:
            raise StoreUnavailable(f"Failed to create report: {e}")
        return job_id

    async def update(self, job_id: str, **fields: Any):
        """Merge the given fields into an existing job (last writer wins)."""
        if not fields:
            return
        key = self._key(job_id)
        try:
            if not await self.r.exists(key):
                raise JobNotFound(job_id)
            await self.r.hset(key, mapping={k: _encode(v) for k, v in fields.items()})
        except RedisError as e:
            raise StoreUnavailable(f"Failed to update report {job_id}: {e}")

    async def update_if_active(self, job_id: str, **fields: Any) -> bool:
        """
        Merge fields only while the job is still non-terminal.

        The status check and the write run under WATCH/MULTI, so a job another
        worker has already completed or failed is left untouched.

        Returns:
            True if the fields were written, False if the job had already finished
        """
        key = self._key(job_id)
        mapping = {k: _encode(v) for k, v in fields.items()}
        try:
            async with self.r.pipeline(transaction=True) as pipe:
                while True:
                    try:
                        await pipe.watch(key)
                        raw_status = await pipe.hget(key, "status")
                        if raw_status is None:
                            raise JobNotFound(job_id)
                        if ReportStatus(json.loads(raw_status)).is_terminal:
                            return False
                        if not mapping:
                            return True
                        pipe.multi()
                        pipe.hset(key, mapping=mapping)
                        await pipe.execute()
                        return True
                    except WatchError:
                        logger.debug(f"Report {job_id} changed during update, retrying")
        except RedisError as e:
            raise StoreUnavailable(f"Failed to update report {job_id}: {e}")

    async def get(self, job_id: str) -> Job:
        try:
            raw = await self.r.hgetall(self._key(job_id))
        except RedisError as e:
            raise StoreUnavailable(f"Failed to read report {job_id}: {e}")
        if not raw:
            raise JobNotFound(job_id)
        return self._decode(raw)

    async def list_all(self) -> List[Job]:
        """All jobs, newest first."""
        try:
            ids = await self.r.zrevrange(CREATED_INDEX, 0, -1)
            async with self.r.pipeline(transaction=False) as pipe:
                for job_id in ids:
                    pipe.hgetall(self._key(job_id))
                rows = await pipe.execute()
        except RedisError as e:
            raise StoreUnavailable(f"Failed to list reports: {e}")
        return [self._decode(row) for row in rows if row]

    async def list_stale(self, older_than: datetime) -> List[Job]:
        """Non-terminal jobs created before `older_than`."""
        try:
            ids = await self.r.zrangebyscore(CREATED_INDEX, "-inf", f"({older_than.timestamp()}")
        except RedisError as e:
            raise StoreUnavailable(f"Failed to scan reports: {e}")
        stale = []
        for job_id in ids:
            try:
                job = await self.get(job_id)
            except JobNotFound:
                continue
            if not job.status.is_terminal:
                stale.append(job)
        return stale

    @staticmethod
    def _decode(raw: Dict[str, str]) -> Job:
        return Job.model_validate({k: json.loads(v) for k, v in raw.items()})
