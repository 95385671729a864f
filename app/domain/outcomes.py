"""
Result values for webhook dispatch.

Each stage reports what happened instead of raising, so the router can
aggregate a per-delivery summary while failures stay contained to the rule
or event that caused them.
"""

import enum
from dataclasses import dataclass, field
from typing import List, Optional

from .entities import AutomationRule
from .events import InboundEvent


class SendStatus(str, enum.Enum):
    SENT = "sent"
    SEND_FAILED = "send_failed"  # Transient: API error, timeout
    CONFIG_ERROR = "config_error"  # Permanent until the user fixes the account or rule
    GENERATION_FAILED = "generation_failed"


class EventStatus(str, enum.Enum):
    PROCESSED = "processed"  # At least one rule fired
    NO_ACCOUNT = "no_account"
    NO_MATCH = "no_match"
    DUPLICATE = "duplicate"
    ERROR = "error"


@dataclass
class RuleMatch:
    """A rule whose trigger condition evaluated true for an event."""

    rule: AutomationRule
    matched_keyword: Optional[str] = None  # None for match-all DM rules


@dataclass
class SendOutcome:
    status: SendStatus
    text: Optional[str] = None  # What was (or would have been) sent
    message_id: Optional[str] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status == SendStatus.SENT

    @classmethod
    def sent(cls, text: str, message_id: Optional[str] = None) -> "SendOutcome":
        return cls(status=SendStatus.SENT, text=text, message_id=message_id)

    @classmethod
    def failed(cls, status: SendStatus, error: str, text: Optional[str] = None) -> "SendOutcome":
        return cls(status=status, text=text, error=error)


@dataclass
class RuleResult:
    rule_id: str
    outcome: SendOutcome
    recorded: bool = False


@dataclass
class EventResult:
    event: InboundEvent
    status: EventStatus
    rule_results: List[RuleResult] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def sent_count(self) -> int:
        return sum(1 for r in self.rule_results if r.outcome.success)

    @property
    def failed_count(self) -> int:
        return sum(1 for r in self.rule_results if not r.outcome.success)


@dataclass
class DeliverySummary:
    """Aggregate of one webhook delivery, logged once per delivery."""

    events_received: int = 0
    items_skipped: int = 0  # Malformed or unsupported items dropped while parsing
    results: List[EventResult] = field(default_factory=list)

    def add(self, result: EventResult) -> None:
        self.results.append(result)

    def count(self, status: EventStatus) -> int:
        return sum(1 for r in self.results if r.status == status)

    @property
    def rules_fired(self) -> int:
        return sum(len(r.rule_results) for r in self.results)

    @property
    def replies_sent(self) -> int:
        return sum(r.sent_count for r in self.results)

    @property
    def replies_failed(self) -> int:
        return sum(r.failed_count for r in self.results)

    def describe(self) -> str:
        return (
            f"events={self.events_received}, skipped_items={self.items_skipped}, "
            f"fired={self.rules_fired}, sent={self.replies_sent}, failed={self.replies_failed}, "
            f"no_account={self.count(EventStatus.NO_ACCOUNT)}, "
            f"no_match={self.count(EventStatus.NO_MATCH)}, "
            f"duplicates={self.count(EventStatus.DUPLICATE)}, "
            f"errors={self.count(EventStatus.ERROR)}"
        )
