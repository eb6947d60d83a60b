import asyncio
import os
import sys
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import fakeredis
import pytest
from fakeredis import aioredis as fake_aioredis
from redis.exceptions import ConnectionError as RedisConnectionError

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from graph.models import EnrichmentResult, ReportStatus
from tools.errors import JobNotFound, StoreUnavailable
from tools.job_store import CREATED_INDEX, RedisJobStore
from tools.llm import build_lead_projection


def run_with_store(scenario):
    """Run `scenario(store)` against a fresh in-process Redis."""
    async def wrapper():
        store = RedisJobStore(fake_aioredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True))
        try:
            return await scenario(store)
        finally:
            await store.close()

    return asyncio.run(wrapper())


class TestRedisJobStore:
    """Test job persistence on Redis."""

    def test_create_starts_processing_with_empty_fields(self):
        async def scenario(store):
            job_id = await store.create("jane@acme.com")
            return job_id, await store.get(job_id)

        job_id, job = run_with_store(scenario)

        assert job.id == job_id
        assert job.email == "jane@acme.com"
        assert job.status == ReportStatus.PROCESSING
        assert job.enrichment is None
        assert job.report is None
        assert job.lead_data is None
        assert job.error is None
        assert job.created_at.tzinfo is not None

    def test_ids_are_unique(self):
        async def scenario(store):
            return [await store.create("jane@acme.com") for _ in range(20)]

        ids = run_with_store(scenario)

        assert len(set(ids)) == 20

    def test_partial_update_merges_fields(self):
        enrichment = EnrichmentResult(name="Jane Doe", title="CTO")

        async def scenario(store):
            job_id = await store.create("jane@acme.com")
            await store.update(job_id, enrichment=enrichment, status=ReportStatus.FETCHING_ENRICHMENT)
            await store.update(
                job_id,
                report="# Jane Doe",
                lead_data=build_lead_projection(enrichment),
                status=ReportStatus.COMPLETED,
            )
            return await store.get(job_id)

        job = run_with_store(scenario)

        assert job.status == ReportStatus.COMPLETED
        assert job.email == "jane@acme.com"
        assert job.enrichment == enrichment
        assert job.report == "# Jane Doe"
        assert job.lead_data.name == "Jane Doe"

    def test_get_unknown_id(self):
        async def scenario(store):
            await store.get("missing")

        with pytest.raises(JobNotFound):
            run_with_store(scenario)

    def test_update_unknown_id(self):
        async def scenario(store):
            await store.update("missing", status=ReportStatus.FAILED, error="x")

        with pytest.raises(JobNotFound):
            run_with_store(scenario)

    def test_conditional_update_writes_active_job(self):
        async def scenario(store):
            job_id = await store.create("jane@acme.com")
            written = await store.update_if_active(job_id, status=ReportStatus.FETCHING_ENRICHMENT)
            return written, await store.get(job_id)

        written, job = run_with_store(scenario)

        assert written is True
        assert job.status == ReportStatus.FETCHING_ENRICHMENT

    def test_conditional_update_leaves_finished_job_alone(self):
        async def scenario(store):
            job_id = await store.create("jane@acme.com")
            await store.update(job_id, status=ReportStatus.FAILED, error="Report processing timed out")
            written = await store.update_if_active(
                job_id, report="# Jane Doe", error=None, status=ReportStatus.COMPLETED
            )
            return written, await store.get(job_id)

        written, job = run_with_store(scenario)

        assert written is False
        assert job.status == ReportStatus.FAILED
        assert job.error == "Report processing timed out"
        assert job.report is None

    def test_conditional_update_unknown_id(self):
        async def scenario(store):
            await store.update_if_active("missing", status=ReportStatus.FAILED, error="x")

        with pytest.raises(JobNotFound):
            run_with_store(scenario)

    def test_list_all_newest_first(self):
        async def scenario(store):
            ids = [await store.create(f"user{i}@acme.com") for i in range(3)]
            for offset, job_id in enumerate(ids):
                await store.r.zadd(CREATED_INDEX, {job_id: 1_700_000_000 + offset})
            return ids, await store.list_all()

        ids, jobs = run_with_store(scenario)

        assert [job.id for job in jobs] == list(reversed(ids))

    def test_list_stale_skips_terminal_jobs(self):
        async def scenario(store):
            stuck = await store.create("stuck@acme.com")
            done = await store.create("done@acme.com")
            await store.update(done, status=ReportStatus.FAILED, error="nope")
            recent = await store.create("recent@acme.com")
            for job_id in (stuck, done):
                await store.r.zadd(CREATED_INDEX, {job_id: 1_000_000})
            cutoff = datetime.now(timezone.utc) - timedelta(minutes=5)
            return stuck, await store.list_stale(cutoff)

        stuck, stale = run_with_store(scenario)

        assert [job.id for job in stale] == [stuck]

    def test_redis_errors_become_store_unavailable(self):
        async def scenario(store):
            store.r.hgetall = AsyncMock(side_effect=RedisConnectionError("connection refused"))
            await store.get("anything")

        with pytest.raises(StoreUnavailable):
            run_with_store(scenario)

    def test_ping(self):
        async def scenario(store):
            return await store.ping()

        assert run_with_store(scenario) is True
