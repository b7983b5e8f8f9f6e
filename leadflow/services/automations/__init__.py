"""
Lead automations.

Structure:
- types: entities, enums and pass results
- matcher: which campaigns a lead qualifies for
- scheduler: step fire times and pending executions
- enrollment: enrollment pass and manual enrollment
- conditional: steps activated by a reply
- rendering: placeholder substitution and template parameters
- dispatcher: dispatch pass over due executions
- reply_queue: de-duplicating queue in front of the activator
"""
from leadflow.services.automations.types import (
    ActivationResult,
    Campaign,
    Channel,
    DispatchResult,
    EnrollmentResult,
    Execution,
    ExecutionStatus,
    Lead,
    ReplyEvent,
    Step,
)

__all__ = [
    "Channel",
    "ExecutionStatus",
    "Lead",
    "Campaign",
    "Step",
    "Execution",
    "ReplyEvent",
    "EnrollmentResult",
    "DispatchResult",
    "ActivationResult",
]
