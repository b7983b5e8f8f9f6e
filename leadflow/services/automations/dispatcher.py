"""
Due-execution dispatcher.

Sends every pending execution whose scheduled_at has passed, oldest first,
and moves it to a terminal state. Errors on one execution are written to its
ledger row and never abort the batch; nothing is retried.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

from leadflow.core.config import settings
from leadflow.core.exceptions import DatabaseError
from leadflow.core.timezone import utc_now
from leadflow.repositories.deps import ChannelRepositories, create_channel_repos
from leadflow.services.automations.rendering import (
    build_template_params,
    language_candidates,
    language_for_country,
    render_text,
    today_string,
)
from leadflow.services.automations.types import (
    Campaign,
    Channel,
    DispatchResult,
    Execution,
    ExecutionStatus,
    Lead,
    MessageKind,
    Step,
)
from leadflow.services.transports import (
    EmailTransport,
    TransportResult,
    WhatsAppTransport,
    get_email_transport,
    get_whatsapp_transport,
)

logger = logging.getLogger(__name__)

NO_RECIPIENT = "no recipient"
DEFAULT_EMAIL_LANGUAGE = "en"


@dataclass
class SendOutcome:
    """Transport result plus extra ledger columns to record."""

    result: TransportResult
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def failure(cls, error: str, **extra) -> "SendOutcome":
        return cls(TransportResult(success=False, error=error), dict(extra))


class DueExecutionDispatcher:
    """
    Dispatch pass of one channel.

    Usage:
        dispatcher = DueExecutionDispatcher(supabase)
        result = await dispatcher.run_dispatch_pass(Channel.EMAIL)
    """

    def __init__(
        self,
        db_client: Any,
        email_transport: Optional[EmailTransport] = None,
        whatsapp_transport_factory: Optional[Callable[..., WhatsAppTransport]] = None,
        config=None,
    ):
        self.db = db_client
        self._email_transport = email_transport
        self._whatsapp_factory = whatsapp_transport_factory or get_whatsapp_transport
        self.config = config or settings

    @property
    def email_transport(self) -> EmailTransport:
        if self._email_transport is None:
            self._email_transport = get_email_transport()
        return self._email_transport

    async def run_dispatch_pass(
        self,
        channel: Channel,
        now: Optional[datetime] = None,
        batch_size: Optional[int] = None,
    ) -> DispatchResult:
        """
        Dispatch the due executions of a channel.

        Args:
            channel: Channel to dispatch
            now: Reference time (default: current UTC time)
            batch_size: Max executions this pass (default: DISPATCH_BATCH_SIZE)

        Returns:
            DispatchResult with aggregate counters

        Raises:
            DatabaseError: If the batch read fails
        """
        now = now or utc_now()
        limit = batch_size or self.config.DISPATCH_BATCH_SIZE
        repos = create_channel_repos(self.db, channel)
        result = DispatchResult()

        not_before = None
        if self.config.DISPATCH_MAX_AGE_DAYS > 0:
            not_before = now - timedelta(days=self.config.DISPATCH_MAX_AGE_DAYS)

        # 1. Batch read (the only step allowed to fail the pass)
        due = await repos.executions.list_due(now, limit, not_before=not_before)
        if not due:
            logger.info(f"[dispatch:{channel.value}] No due executions")
            return result

        logger.info(f"[dispatch:{channel.value}] {len(due)} due executions")

        leads, campaigns, steps = await self._load_references(repos, due)

        # 2. One execution at a time, oldest first
        for execution in due:
            result.processed += 1
            try:
                status = await asyncio.wait_for(
                    self._dispatch_one(
                        repos,
                        execution,
                        leads.get(execution.lead_id),
                        campaigns.get(execution.campaign_id),
                        steps.get(execution.step_id),
                        now,
                    ),
                    timeout=self.config.ITEM_TIMEOUT_SECONDS,
                )
            except asyncio.TimeoutError:
                logger.error(f"[dispatch:{channel.value}] Timeout on execution {execution.id}")
                status = await self._fail(
                    repos,
                    execution,
                    f"Timed out after {self.config.ITEM_TIMEOUT_SECONDS}s",
                )
            except Exception as e:
                logger.error(f"[dispatch:{channel.value}] Error on execution {execution.id}: {e}")
                status = await self._fail(repos, execution, str(e) or e.__class__.__name__)

            self._tally(result, status)

        logger.info(
            f"[dispatch:{channel.value}] Processed {result.processed}: {result.sent} sent, "
            f"{result.failed} failed, {result.cancelled} cancelled, {result.skipped} skipped"
        )
        return result

    async def _load_references(self, repos: ChannelRepositories, due: List[Execution]):
        leads = await repos.leads.get_many([e.lead_id for e in due])
        campaigns = await repos.campaigns.get_many([e.campaign_id for e in due])
        steps = await repos.steps.get_many([e.step_id for e in due])
        return leads, campaigns, steps

    @staticmethod
    def _tally(result: DispatchResult, status: Optional[ExecutionStatus]) -> None:
        if status == ExecutionStatus.SENT:
            result.sent += 1
        elif status == ExecutionStatus.FAILED:
            result.failed += 1
        elif status == ExecutionStatus.CANCELLED:
            result.cancelled += 1
        else:
            result.skipped += 1

    async def _fail(
        self,
        repos: ChannelRepositories,
        execution: Execution,
        error: str,
        extra: Optional[dict] = None,
    ) -> Optional[ExecutionStatus]:
        """Mark failed; None when the row could not be transitioned."""
        try:
            marked = await repos.executions.mark_failed(execution.id, error, utc_now(), extra=extra)
        except Exception as e:
            logger.error(f"Could not mark execution {execution.id} failed: {e}")
            return None
        return ExecutionStatus.FAILED if marked else None

    async def _dispatch_one(
        self,
        repos: ChannelRepositories,
        execution: Execution,
        lead: Optional[Lead],
        campaign: Optional[Campaign],
        step: Optional[Step],
        now: datetime,
    ) -> Optional[ExecutionStatus]:
        """
        Resolve, render, send and record one execution.

        Returns:
            Terminal status written, or None when the row was no longer pending
        """
        # Resolution
        missing = [
            name
            for name, value in (("campaign", campaign), ("step", step), ("lead", lead))
            if value is None
        ]
        if missing:
            logger.warning(f"Execution {execution.id}: missing {', '.join(missing)}")
            return await self._fail(repos, execution, f"Missing {', '.join(missing)} data")

        if not campaign.is_active and self.config.CANCEL_ON_CAMPAIGN_INACTIVE:
            logger.info(f"Execution {execution.id}: campaign {campaign.id} inactive, cancelling")
            marked = await repos.executions.mark_cancelled(
                execution.id, "Campaign is inactive", utc_now()
            )
            return ExecutionStatus.CANCELLED if marked else None

        recipient = lead.recipient_for(repos.channel)
        if not recipient:
            field_name = "email address" if repos.channel == Channel.EMAIL else "phone number"
            logger.info(f"Execution {execution.id}: lead {lead.id} has no {field_name}")
            return await self._fail(repos, execution, f"{NO_RECIPIENT}: lead has no {field_name}")

        # Render + send
        if repos.channel == Channel.EMAIL:
            outcome = await self._send_email(repos, recipient, lead, campaign, step)
        else:
            outcome = await self._send_whatsapp(repos, recipient, lead, campaign, step, now)

        # Record
        if outcome.result.success:
            marked = await repos.executions.mark_sent(
                execution.id,
                sent_at=utc_now(),
                provider_message_id=outcome.result.message_id,
                extra=outcome.extra,
            )
            if marked:
                logger.info(
                    f"Execution {execution.id} sent to lead {lead.id} "
                    f"(step {step.step_order} of '{campaign.name}')"
                )
                return ExecutionStatus.SENT
            return None

        logger.warning(f"Execution {execution.id} failed: {outcome.result.error}")
        return await self._fail(
            repos,
            execution,
            outcome.result.error or "Unknown error",
            extra=outcome.extra,
        )

    async def _email_language(self, repos: ChannelRepositories, lead: Lead) -> str:
        """Mapping table first, then the built-in country map."""
        if not lead.country:
            return DEFAULT_EMAIL_LANGUAGE
        try:
            mapped = await repos.country_languages.language_for(lead.country)
        except DatabaseError as e:
            logger.warning(f"Country mapping unavailable for '{lead.country}': {e}")
            mapped = None
        return mapped or language_for_country(lead.country)

    async def _email_content(
        self,
        repos: ChannelRepositories,
        lead: Lead,
        step: Step,
    ) -> Tuple[Optional[str], Optional[str], str]:
        """
        Subject and body in the lead's language.

        Steps are written in English. Other languages come from the step
        translations; a missing translation falls back to the step content.

        Returns:
            (subject, html_content, language used)
        """
        language = await self._email_language(repos, lead)
        if language == DEFAULT_EMAIL_LANGUAGE:
            return step.subject, step.html_content, language

        try:
            translation = await repos.translations.find(step.id, language)
        except DatabaseError as e:
            logger.warning(f"Translation lookup failed for step {step.id}/{language}: {e}")
            translation = None

        if translation is None or not translation.html_content:
            logger.info(f"No {language} translation for step {step.id}, using default content")
            return step.subject, step.html_content, DEFAULT_EMAIL_LANGUAGE

        return translation.subject or step.subject, translation.html_content, language

    async def _send_email(
        self,
        repos: ChannelRepositories,
        recipient: str,
        lead: Lead,
        campaign: Campaign,
        step: Step,
    ) -> SendOutcome:
        subject_template, html_template, language = await self._email_content(repos, lead, step)

        html = render_text(html_template, lead)
        if not html:
            return SendOutcome.failure("Step has no email content")

        subject = render_text(subject_template, lead)
        sender_name = campaign.sender_name or self.config.EMAIL_SENDER_NAME
        sender_email = campaign.sender_email or self.config.EMAIL_SENDER_ADDRESS

        logger.debug(f"Sending email to {recipient} from {sender_name} <{sender_email}> in {language}")
        result = await self.email_transport.send(
            to=recipient,
            subject=subject,
            html=html,
            sender_name=sender_name,
            sender_email=sender_email,
        )
        return SendOutcome(result)

    async def _send_whatsapp(
        self,
        repos: ChannelRepositories,
        recipient: str,
        lead: Lead,
        campaign: Campaign,
        step: Step,
        now: datetime,
    ) -> SendOutcome:
        # Sender account: the campaign's, else the configured default
        phone_number_id = access_token = None
        if campaign.whatsapp_account_id:
            account = await repos.accounts.get_by_id(campaign.whatsapp_account_id)
            if account is None:
                return SendOutcome.failure("WhatsApp account not found")
            if not account.access_token or not account.phone_number_id:
                return SendOutcome.failure("Access token not configured for this account")
            phone_number_id, access_token = account.phone_number_id, account.access_token
        elif not self.config.whatsapp_configured:
            return SendOutcome.failure("No WhatsApp account configured for campaign")

        transport = self._whatsapp_factory(phone_number_id, access_token)

        if step.message_type == MessageKind.TEXT:
            text = render_text(step.text_content, lead)
            if not text:
                return SendOutcome.failure("Step has no text content")
            return SendOutcome(await transport.send_text(recipient, text))

        if not step.template_name:
            return SendOutcome.failure("No template name configured")

        if campaign.auto_select_language:
            selected = language_for_country(lead.country)
        else:
            selected = step.template_language or "en"

        template = None
        for language in language_candidates(selected):
            template = await repos.templates.find_approved(step.template_name, language)
            if template is not None:
                break

        if template is None:
            return SendOutcome.failure(
                f"Template not found: {step.template_name}",
                selected_language=selected,
            )

        params = build_template_params(
            step,
            lead,
            template.body_text,
            today_string(now, self.config.BUSINESS_TIMEZONE),
        )
        logger.debug(
            f"Sending template {template.name} ({template.language}) to {recipient} "
            f"with {len(params)} params"
        )
        result = await transport.send_template(recipient, template.name, template.language, params)
        return SendOutcome(
            result,
            {"selected_language": template.language, "template_used_id": template.id},
        )
