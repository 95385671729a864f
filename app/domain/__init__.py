"""Domain layer: entities, inbound events and dispatch results."""

from .entities import ActivityLogEntry, AutomationRule, ConnectedAccount, RuleKind, RuleStats
from .events import CommentEvent, InboundEvent, MessageEvent
from .outcomes import (
    DeliverySummary,
    EventResult,
    EventStatus,
    RuleMatch,
    RuleResult,
    SendOutcome,
    SendStatus,
)

__all__ = [
    "ActivityLogEntry",
    "AutomationRule",
    "ConnectedAccount",
    "RuleKind",
    "RuleStats",
    "CommentEvent",
    "InboundEvent",
    "MessageEvent",
    "DeliverySummary",
    "EventResult",
    "EventStatus",
    "RuleMatch",
    "RuleResult",
    "SendOutcome",
    "SendStatus",
]
