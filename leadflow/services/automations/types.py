"""
Types and enums for lead automations.

Row shapes follow the record store: one campaign/step/execution table per
channel, leads shared by every channel.
"""
import hashlib
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import List, Optional

from leadflow.core.timezone import parse_timestamp


class Channel(str, Enum):
    """Outbound channels."""

    EMAIL = "email"
    WHATSAPP = "whatsapp"


@dataclass(frozen=True)
class ChannelTables:
    """Store tables backing one channel."""

    campaigns: str
    steps: str
    executions: str


CHANNEL_TABLES = {
    Channel.EMAIL: ChannelTables(
        campaigns="lead_automation_campaigns",
        steps="lead_automation_steps",
        executions="lead_automation_executions",
    ),
    Channel.WHATSAPP: ChannelTables(
        campaigns="whatsapp_automation_campaigns",
        steps="whatsapp_automation_steps",
        executions="whatsapp_automation_executions",
    ),
}

# Campaign trigger types meaning "a new lead was created"
NEW_LEAD_TRIGGERS = ("new_lead", "lead_created")


class ExecutionStatus(str, Enum):
    """Execution states. Everything but PENDING is terminal."""

    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self != ExecutionStatus.PENDING


class StepTrigger(str, Enum):
    """How a step is fired."""

    DELAY = "delay"
    BUTTON_REPLY = "button_reply"


class MessageKind(str, Enum):
    """WhatsApp message kinds a step can send."""

    TEMPLATE = "template"
    TEXT = "text"


def _as_int(value) -> int:
    """Delay columns may be NULL; negative offsets are not allowed."""
    try:
        return max(0, int(value or 0))
    except (TypeError, ValueError):
        return 0


@dataclass
class Lead:
    """A prospective customer. Read-only for the engine."""

    id: str
    created_at: datetime
    email: Optional[str] = None
    phone: Optional[str] = None
    contact_name: Optional[str] = None
    company_name: Optional[str] = None
    pipeline: Optional[str] = None
    country: Optional[str] = None
    configurator_link: Optional[str] = None
    external_configurator_link: Optional[str] = None

    @classmethod
    def from_db_row(cls, row: dict) -> "Lead":
        return cls(
            id=row["id"],
            created_at=parse_timestamp(row.get("created_at")),
            email=row.get("email") or None,
            phone=row.get("phone") or None,
            contact_name=row.get("contact_name"),
            company_name=row.get("company_name"),
            pipeline=row.get("pipeline"),
            country=row.get("country"),
            configurator_link=row.get("configurator_link"),
            external_configurator_link=row.get("external_configurator_link"),
        )

    @property
    def first_name(self) -> str:
        parts = (self.contact_name or "").split()
        return parts[0] if parts else ""

    @property
    def last_name(self) -> str:
        parts = (self.contact_name or "").split()
        return " ".join(parts[1:])

    @property
    def configurator_url(self) -> str:
        return self.external_configurator_link or self.configurator_link or ""

    def recipient_for(self, channel: Channel) -> Optional[str]:
        """Address used by the channel, or None when the lead has none."""
        if channel == Channel.EMAIL:
            return self.email
        return self.phone


@dataclass
class Campaign:
    """A named automation on one channel."""

    id: str
    name: str
    channel: Channel
    is_active: bool = False
    trigger_type: str = "new_lead"
    target_pipeline: Optional[str] = None
    activated_at: Optional[datetime] = None
    sender_name: Optional[str] = None
    sender_email: Optional[str] = None
    whatsapp_account_id: Optional[str] = None
    auto_select_language: bool = False

    @classmethod
    def from_db_row(cls, row: dict, channel: Channel) -> "Campaign":
        return cls(
            id=row["id"],
            name=row.get("name") or "",
            channel=channel,
            is_active=bool(row.get("is_active")),
            trigger_type=row.get("trigger_type") or "new_lead",
            target_pipeline=row.get("target_pipeline") or None,
            activated_at=parse_timestamp(row.get("activated_at")),
            sender_name=row.get("sender_name"),
            sender_email=row.get("sender_email"),
            whatsapp_account_id=row.get("whatsapp_account_id"),
            auto_select_language=bool(row.get("auto_select_language")),
        )


@dataclass
class Step:
    """
    One unit of content + timing of a campaign.

    A delay step fires at origin + (days, hours, minutes). A conditional step
    references the step whose reply triggers it; its own delay counts from
    the reply time.
    """

    id: str
    campaign_id: str
    step_order: int = 0
    delay_days: int = 0
    delay_hours: int = 0
    delay_minutes: int = 0
    is_active: bool = True
    trigger_type: Optional[str] = None
    trigger_from_step_id: Optional[str] = None
    trigger_button_text: Optional[str] = None
    # email content
    subject: Optional[str] = None
    html_content: Optional[str] = None
    # whatsapp content
    message_type: MessageKind = MessageKind.TEMPLATE
    template_name: Optional[str] = None
    template_language: Optional[str] = None
    template_params: List[str] = field(default_factory=list)
    text_content: Optional[str] = None

    @classmethod
    def from_db_row(cls, row: dict) -> "Step":
        try:
            message_type = MessageKind(row.get("message_type") or MessageKind.TEMPLATE.value)
        except ValueError:
            message_type = MessageKind.TEMPLATE

        return cls(
            id=row["id"],
            campaign_id=row.get("campaign_id"),
            step_order=int(row.get("step_order") or 0),
            delay_days=_as_int(row.get("delay_days")),
            delay_hours=_as_int(row.get("delay_hours")),
            delay_minutes=_as_int(row.get("delay_minutes")),
            is_active=row.get("is_active", True) is not False,
            trigger_type=row.get("trigger_type"),
            trigger_from_step_id=row.get("trigger_from_step_id"),
            trigger_button_text=row.get("trigger_button_text"),
            subject=row.get("subject"),
            html_content=row.get("html_content"),
            message_type=message_type,
            template_name=row.get("template_name"),
            template_language=row.get("template_language"),
            template_params=list(row.get("template_params") or []),
            text_content=row.get("text_content") or row.get("message"),
        )

    @property
    def is_conditional(self) -> bool:
        """Anything other than a plain delay waits for an external event."""
        return bool(self.trigger_type) and self.trigger_type != StepTrigger.DELAY.value

    @property
    def delay(self) -> timedelta:
        return timedelta(
            days=self.delay_days,
            hours=self.delay_hours,
            minutes=self.delay_minutes,
        )


@dataclass
class Execution:
    """One step being (or to be) dispatched to one lead."""

    id: str
    lead_id: str
    campaign_id: str
    step_id: str
    status: ExecutionStatus
    scheduled_at: datetime
    sent_at: Optional[datetime] = None
    error_message: Optional[str] = None
    provider_message_id: Optional[str] = None

    @classmethod
    def from_db_row(cls, row: dict) -> "Execution":
        try:
            status = ExecutionStatus(row.get("status"))
        except ValueError:
            status = ExecutionStatus.FAILED

        return cls(
            id=row["id"],
            lead_id=row["lead_id"],
            campaign_id=row["campaign_id"],
            step_id=row["step_id"],
            status=status,
            scheduled_at=parse_timestamp(row.get("scheduled_at")),
            sent_at=parse_timestamp(row.get("sent_at")),
            error_message=row.get("error_message"),
            provider_message_id=row.get("provider_message_id"),
        )


@dataclass
class ReplyEvent:
    """Inbound reply that may activate conditional steps."""

    lead_id: str
    payload: str
    occurred_at: datetime
    step_id: Optional[str] = None
    message_id: Optional[str] = None
    channel: Channel = Channel.WHATSAPP

    def fingerprint(self) -> str:
        """Content key used to drop redelivered events."""
        raw = "|".join([
            self.channel.value,
            self.lead_id,
            self.step_id or "",
            (self.payload or "").strip().lower(),
            self.message_id or self.occurred_at.isoformat(),
        ])
        return hashlib.sha256(raw.encode("utf-8")).hexdigest()


@dataclass
class EnrollmentResult:
    """Outcome counters of an enrollment pass."""

    leads_processed: int = 0
    executions_created: int = 0
    skipped_enrolled: int = 0
    skipped_unmatched: int = 0
    errors: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class DispatchResult:
    """Outcome counters of a dispatch pass."""

    processed: int = 0
    sent: int = 0
    failed: int = 0
    cancelled: int = 0
    skipped: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ActivationResult:
    """Outcome counters of one reply event."""

    created: int = 0
    skipped: int = 0
    errors: int = 0

    def to_dict(self) -> dict:
        return asdict(self)
