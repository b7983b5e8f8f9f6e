"""
Tests for the conditional step activator.
"""
import pytest
from datetime import datetime, timezone

from leadflow.services.automations.conditional import ConditionalStepActivator, reply_matches
from leadflow.services.automations.types import ReplyEvent
from tests.factories import campaign_row, execution_row, lead_row, make_settings, step_row


WA_CAMPAIGNS = "whatsapp_automation_campaigns"
WA_STEPS = "whatsapp_automation_steps"
WA_EXECUTIONS = "whatsapp_automation_executions"

REPLIED_AT = datetime(2024, 1, 2, 12, 0, tzinfo=timezone.utc)


def _event(payload="Sì", step_id=None, message_id="wamid.reply1"):
    return ReplyEvent(
        lead_id="lead-1",
        payload=payload,
        occurred_at=REPLIED_AT,
        step_id=step_id,
        message_id=message_id,
    )


@pytest.fixture
def wa_db(fake_db):
    fake_db.seed("leads", [lead_row("lead-1")])
    fake_db.seed(WA_CAMPAIGNS, [campaign_row("wa-camp")])
    fake_db.seed(WA_STEPS, [
        step_row("wa-s1", "wa-camp", 1),
        step_row(
            "wa-yes", "wa-camp", 2,
            trigger_type="button_reply", trigger_from_step_id="wa-s1",
            trigger_button_text="Sì", delay_hours=1,
        ),
        step_row(
            "wa-any", "wa-camp", 3,
            trigger_type="button_reply", trigger_from_step_id="wa-s1",
        ),
        step_row(
            "wa-other", "wa-camp", 4,
            trigger_type="button_reply", trigger_from_step_id="wa-s9",
        ),
        step_row(
            "wa-off", "wa-camp", 5,
            trigger_type="button_reply", trigger_from_step_id="wa-s1", is_active=False,
        ),
    ])
    fake_db.seed(WA_EXECUTIONS, [
        execution_row("w1", "wa-s1", campaign_id="wa-camp", status="sent"),
    ])
    return fake_db


def _activator(db, **settings):
    return ConditionalStepActivator(db, config=make_settings(**settings))


class TestReplyMatches:
    """reply_matches."""

    def test_empty_trigger_accepts_anything(self):
        assert reply_matches(None, "whatever")
        assert reply_matches("  ", "")

    def test_case_insensitive_equality(self):
        assert reply_matches("Sì", " sì ")

    def test_contained_text(self):
        assert reply_matches("info", "Voglio più info")

    def test_different_text(self):
        assert not reply_matches("Sì", "No grazie")


class TestHandleReply:
    """ConditionalStepActivator.handle_reply."""

    @pytest.mark.asyncio
    async def test_activates_matching_children(self, wa_db):
        result = await _activator(wa_db).handle_reply(_event("Sì"))

        assert result.created == 2
        rows = {r["step_id"]: r for r in wa_db.rows(WA_EXECUTIONS) if r["step_id"] != "wa-s1"}
        assert set(rows) == {"wa-yes", "wa-any"}
        assert rows["wa-yes"]["scheduled_at"] == "2024-01-02T13:00:00+00:00"
        assert rows["wa-any"]["scheduled_at"] == "2024-01-02T12:00:00+00:00"
        assert all(r["status"] == "pending" for r in rows.values())
        assert all(r["campaign_id"] == "wa-camp" for r in rows.values())

    @pytest.mark.asyncio
    async def test_non_matching_reply_is_skipped(self, wa_db):
        result = await _activator(wa_db).handle_reply(_event("No grazie"))

        assert result.created == 1
        assert result.skipped == 1

    @pytest.mark.asyncio
    async def test_redelivered_reply_creates_nothing(self, wa_db):
        activator = _activator(wa_db)
        await activator.handle_reply(_event("Sì"))

        result = await activator.handle_reply(_event("Sì"))

        assert result.created == 0
        assert result.skipped == 2
        assert len(wa_db.rows(WA_EXECUTIONS)) == 3

    @pytest.mark.asyncio
    async def test_lead_without_executions(self, wa_db):
        event = ReplyEvent(lead_id="lead-unknown", payload="Sì", occurred_at=REPLIED_AT)

        result = await _activator(wa_db).handle_reply(event)

        assert result.to_dict() == {"created": 0, "skipped": 0, "errors": 0}

    @pytest.mark.asyncio
    async def test_replied_step_narrows_priors(self, wa_db):
        result = await _activator(wa_db).handle_reply(_event("Sì", step_id="wa-s9"))

        assert result.created == 0

    @pytest.mark.asyncio
    async def test_pending_prior_accepted_by_default(self, wa_db):
        wa_db.tables[WA_EXECUTIONS][0]["status"] = "pending"

        result = await _activator(wa_db).handle_reply(_event("Sì"))

        assert result.created == 2

    @pytest.mark.asyncio
    async def test_pending_prior_rejected_when_sent_required(self, wa_db):
        wa_db.tables[WA_EXECUTIONS][0]["status"] = "pending"

        result = await _activator(wa_db, CONDITIONAL_REQUIRE_PRIOR_SENT=True).handle_reply(_event("Sì"))

        assert result.created == 0

    @pytest.mark.asyncio
    async def test_insert_error_is_counted(self, wa_db):
        wa_db.fail_when(WA_EXECUTIONS, "insert", predicate=lambda data: data["step_id"] == "wa-yes")

        result = await _activator(wa_db).handle_reply(_event("Sì"))

        assert result.errors == 1
        assert result.created == 1
