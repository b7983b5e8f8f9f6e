"""
Tests for the pass scheduler and the in-process pass runner.
"""
import pytest
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock, patch

from leadflow.services.automations.types import Channel, DispatchResult, EnrollmentResult
from leadflow.workers.passes import run_pass
from leadflow.workers.scheduler import JOBS, execute_job, matches_cron_field, parse_cron, should_run
from tests.factories import make_mock_redis


class TestCron:

    def test_parse(self):
        assert parse_cron("*/5 * * * *")["minute"] == "*/5"

    def test_parse_invalid(self):
        with pytest.raises(ValueError):
            parse_cron("* * *")

    def test_fields(self):
        assert matches_cron_field("*", 7)
        assert matches_cron_field("*/5", 10)
        assert not matches_cron_field("*/5", 11)
        assert matches_cron_field("1,2,3", 2)
        assert matches_cron_field("8", 8)

    def test_should_run(self):
        assert should_run("*/5 * * * *", datetime(2024, 1, 1, 10, 15))
        assert not should_run("*/5 * * * *", datetime(2024, 1, 1, 10, 16))
        assert should_run("0 9 * * 1", datetime(2024, 1, 1, 9, 0))  # monday
        assert not should_run("0 9 * * 1", datetime(2024, 1, 2, 9, 0))
        assert not should_run("bad", datetime(2024, 1, 1, 9, 0))

    def test_every_channel_has_both_passes(self):
        endpoints = {job["endpoint"] for job in JOBS}

        for channel in ("email", "whatsapp"):
            assert f"/jobs/process-enrollments?channel={channel}" in endpoints
            assert f"/jobs/dispatch-due-executions?channel={channel}" in endpoints


class TestExecuteJob:

    @pytest.mark.asyncio
    async def test_posts_endpoint(self):
        client = MagicMock()
        client.post = AsyncMock(return_value=MagicMock(status_code=200, text="{}"))
        client.__aenter__ = AsyncMock(return_value=client)
        client.__aexit__ = AsyncMock(return_value=False)

        with patch("leadflow.workers.scheduler.httpx.AsyncClient", return_value=client):
            await execute_job({"name": "dispatch_email", "endpoint": "/jobs/dispatch-due-executions?channel=email"})

        assert client.post.call_args.args[0].endswith("/jobs/dispatch-due-executions?channel=email")

    @pytest.mark.asyncio
    async def test_errors_do_not_raise(self):
        with patch("leadflow.workers.scheduler.httpx.AsyncClient", side_effect=RuntimeError("boom")):
            await execute_job({"name": "x", "endpoint": "/x"})


class TestRunPass:
    """run_pass: one pass in-process under its lock."""

    @pytest.fixture(autouse=True)
    def _patches(self):
        redis = make_mock_redis()
        with patch("leadflow.core.distributed_lock.redis_client", redis), \
                patch("leadflow.workers.passes.get_supabase_client", return_value=MagicMock()), \
                patch("leadflow.workers.passes.close_http_client", AsyncMock()):
            self.redis = redis
            yield

    @pytest.mark.asyncio
    async def test_enrollment(self):
        with patch(
            "leadflow.workers.passes.EnrollmentService.run_enrollment_pass",
            AsyncMock(return_value=EnrollmentResult(leads_processed=3)),
        ) as run:
            result = await run_pass("enrollment", Channel.EMAIL)

        run.assert_awaited_once_with(Channel.EMAIL)
        assert result["leads_processed"] == 3

    @pytest.mark.asyncio
    async def test_dispatch(self):
        with patch(
            "leadflow.workers.passes.DueExecutionDispatcher.run_dispatch_pass",
            AsyncMock(return_value=DispatchResult(processed=2, sent=2)),
        ):
            result = await run_pass("dispatch", Channel.WHATSAPP)

        assert result["sent"] == 2

    @pytest.mark.asyncio
    async def test_skipped_when_locked(self):
        self.redis.set = AsyncMock(return_value=None)

        assert await run_pass("dispatch", Channel.EMAIL) is None

    @pytest.mark.asyncio
    async def test_unknown_pass(self):
        with pytest.raises(ValueError):
            await run_pass("cleanup", Channel.EMAIL)
