"""
Tests for the enrollment pass and manual enrollment.
"""
import pytest
from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

from leadflow.core.exceptions import DatabaseError, NotFoundError, ValidationError
from leadflow.repositories.executions import ExecutionRepository
from leadflow.services.automations.enrollment import EnrollmentService
from leadflow.services.automations.types import Channel
from tests.factories import campaign_row, lead_row, make_settings, step_row


NOW = datetime(2024, 1, 1, 6, 0, tzinfo=timezone.utc)

CAMPAIGNS = "lead_automation_campaigns"
STEPS = "lead_automation_steps"
EXECUTIONS = "lead_automation_executions"


@pytest.fixture
def seeded_db(fake_db):
    """One ZAPPER lead, an untargeted campaign and a Vesuviano campaign."""
    fake_db.seed("leads", [lead_row("lead-1", pipeline="ZAPPER")])
    fake_db.seed(CAMPAIGNS, [
        campaign_row("camp-all"),
        campaign_row("camp-ves", target_pipeline="Vesuviano"),
    ])
    fake_db.seed(STEPS, [
        step_row("s1", "camp-all", 1),
        step_row("s2", "camp-all", 2, delay_days=1, delay_hours=2),
        step_row("s3", "camp-all", 3, trigger_type="button_reply", trigger_from_step_id="s1"),
        step_row("s4", "camp-all", 4, is_active=False),
        step_row("v1", "camp-ves", 1),
    ])
    return fake_db


@pytest.fixture
def service(seeded_db):
    return EnrollmentService(seeded_db, config=make_settings())


class TestRunEnrollmentPass:
    """EnrollmentService.run_enrollment_pass."""

    @pytest.mark.asyncio
    async def test_creates_one_execution_per_active_delay_step(self, service, seeded_db):
        result = await service.run_enrollment_pass(Channel.EMAIL, now=NOW)

        assert result.leads_processed == 1
        assert result.executions_created == 2
        assert result.skipped_unmatched == 1
        assert result.errors == 0

        rows = {r["step_id"]: r for r in seeded_db.rows(EXECUTIONS)}
        assert set(rows) == {"s1", "s2"}
        assert all(r["status"] == "pending" for r in rows.values())
        assert all(r["campaign_id"] == "camp-all" for r in rows.values())
        assert rows["s1"]["scheduled_at"] == "2024-01-01T00:00:00+00:00"
        assert rows["s2"]["scheduled_at"] == "2024-01-02T02:00:00+00:00"

    @pytest.mark.asyncio
    async def test_second_pass_creates_nothing(self, service, seeded_db):
        await service.run_enrollment_pass(Channel.EMAIL, now=NOW)

        result = await service.run_enrollment_pass(Channel.EMAIL, now=NOW)

        assert result.executions_created == 0
        assert result.skipped_enrolled == 1
        assert len(seeded_db.rows(EXECUTIONS)) == 2

    @pytest.mark.asyncio
    async def test_failed_insert_does_not_block_other_steps(self, service, seeded_db):
        seeded_db.fail_when(EXECUTIONS, "insert", predicate=lambda data: data["step_id"] == "s1")

        result = await service.run_enrollment_pass(Channel.EMAIL, now=NOW)

        assert result.executions_created == 1
        assert result.errors == 1
        assert [r["step_id"] for r in seeded_db.rows(EXECUTIONS)] == ["s2"]

    @pytest.mark.asyncio
    async def test_unique_conflict_is_treated_as_enrolled(self, service, seeded_db):
        """A runner that loses the race sees conflicts, not errors."""
        await service.run_enrollment_pass(Channel.EMAIL, now=NOW)

        with patch.object(ExecutionRepository, "is_enrolled", AsyncMock(return_value=False)):
            result = await service.run_enrollment_pass(Channel.EMAIL, now=NOW)

        assert result.executions_created == 0
        assert result.skipped_enrolled == 1
        assert result.errors == 0
        assert len(seeded_db.rows(EXECUTIONS)) == 2

    @pytest.mark.asyncio
    async def test_leads_outside_window_are_ignored(self, service):
        later = datetime(2024, 1, 5, tzinfo=timezone.utc)

        result = await service.run_enrollment_pass(Channel.EMAIL, now=later)

        assert result.leads_processed == 0
        assert result.executions_created == 0

    @pytest.mark.asyncio
    async def test_leads_without_contact_are_ignored(self, service, seeded_db):
        seeded_db.seed("leads", [lead_row("lead-2", email=None)])

        result = await service.run_enrollment_pass(Channel.EMAIL, now=NOW)

        assert result.leads_processed == 1

    @pytest.mark.asyncio
    async def test_error_on_one_lead_does_not_stop_the_next(self, service, seeded_db):
        seeded_db.seed("leads", [lead_row("lead-2", created_at="2024-01-01T01:00:00+00:00")])
        seeded_db.fail_when(EXECUTIONS, "select")

        result = await service.run_enrollment_pass(Channel.EMAIL, now=NOW)

        assert result.leads_processed == 2
        assert result.errors == 2

    @pytest.mark.asyncio
    async def test_lead_read_failure_fails_the_pass(self, service, seeded_db):
        seeded_db.fail_when("leads", "select")

        with pytest.raises(DatabaseError):
            await service.run_enrollment_pass(Channel.EMAIL, now=NOW)

    @pytest.mark.asyncio
    async def test_no_active_campaigns(self, fake_db):
        fake_db.seed("leads", [lead_row("lead-1")])
        fake_db.seed(CAMPAIGNS, [campaign_row("camp-off", is_active=False)])
        service = EnrollmentService(fake_db, config=make_settings())

        result = await service.run_enrollment_pass(Channel.EMAIL, now=NOW)

        assert result.leads_processed == 1
        assert result.executions_created == 0

    @pytest.mark.asyncio
    async def test_whatsapp_channel_uses_its_own_tables(self, fake_db):
        fake_db.seed("leads", [lead_row("lead-1")])
        fake_db.seed("whatsapp_automation_campaigns", [campaign_row("wa-camp", trigger_type="lead_created")])
        fake_db.seed("whatsapp_automation_steps", [step_row("wa-s1", "wa-camp", template_name="welcome")])
        service = EnrollmentService(fake_db, config=make_settings())

        result = await service.run_enrollment_pass(Channel.WHATSAPP, now=NOW)

        assert result.executions_created == 1
        assert fake_db.rows("whatsapp_automation_executions")[0]["step_id"] == "wa-s1"
        assert fake_db.rows(EXECUTIONS) == []


class TestEnrollLeads:
    """EnrollmentService.enroll_leads."""

    @pytest.mark.asyncio
    async def test_enrolls_old_lead_from_now(self, service, seeded_db):
        now = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)

        result = await service.enroll_leads(Channel.EMAIL, "camp-all", ["lead-1"], now=now)

        assert result.executions_created == 2
        rows = {r["step_id"]: r for r in seeded_db.rows(EXECUTIONS)}
        assert rows["s1"]["scheduled_at"] == "2024-03-01T09:00:00+00:00"
        assert rows["s2"]["scheduled_at"] == "2024-03-02T11:00:00+00:00"

    @pytest.mark.asyncio
    async def test_segment_filter_not_applied(self, service, seeded_db):
        result = await service.enroll_leads(Channel.EMAIL, "camp-ves", ["lead-1"], now=NOW)

        assert result.executions_created == 1

    @pytest.mark.asyncio
    async def test_already_enrolled_lead_is_skipped(self, service):
        await service.enroll_leads(Channel.EMAIL, "camp-all", ["lead-1"], now=NOW)

        result = await service.enroll_leads(Channel.EMAIL, "camp-all", ["lead-1"], now=NOW)

        assert result.executions_created == 0
        assert result.skipped_enrolled == 1

    @pytest.mark.asyncio
    async def test_unknown_lead_counts_as_error(self, service):
        result = await service.enroll_leads(Channel.EMAIL, "camp-all", ["lead-1", "ghost"], now=NOW)

        assert result.leads_processed == 1
        assert result.errors == 1

    @pytest.mark.asyncio
    async def test_empty_lead_list(self, service):
        with pytest.raises(ValidationError):
            await service.enroll_leads(Channel.EMAIL, "camp-all", [])

    @pytest.mark.asyncio
    async def test_unknown_campaign(self, service):
        with pytest.raises(NotFoundError):
            await service.enroll_leads(Channel.EMAIL, "nope", ["lead-1"])

    @pytest.mark.asyncio
    async def test_campaign_without_steps(self, service, seeded_db):
        seeded_db.seed(CAMPAIGNS, [campaign_row("camp-empty")])

        with pytest.raises(ValidationError) as exc_info:
            await service.enroll_leads(Channel.EMAIL, "camp-empty", ["lead-1"])

        assert "No active steps" in exc_info.value.message
