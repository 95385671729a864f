"""
Domain Entities - plain business objects the automation engine works with.

The ORM models in app/db/models.py are mapped to these by the repository so
that the matching and dispatch code never touches SQLAlchemy state.
"""

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


class RuleKind(str, enum.Enum):
    """Automation types the engine reacts to. Other stored types are inert."""
    COMMENT_TO_DM = "comment_to_dm"
    AUTO_DM_REPLY = "auto_dm_reply"


def _string_list(value: Any) -> List[str]:
    """Normalize a configured word list, dropping blanks and non-strings."""
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)):
        return []
    return [item for item in value if isinstance(item, str) and item.strip()]


@dataclass
class ConnectedAccount:
    """
    Instagram account under automation.

    Invariant: at most one account per (user_id, instagram_user_id).
    ig_business_account_id starts empty and is back-filled from webhook
    deliveries, which identify the account by its business ID.
    """

    id: str
    user_id: str
    instagram_user_id: str
    username: str
    ig_business_account_id: Optional[str] = None
    access_token: Optional[str] = None  # Decrypted; None when missing or unreadable
    token_expires_at: Optional[datetime] = None
    is_active: bool = True

    @property
    def has_credential(self) -> bool:
        return bool(self.access_token and self.access_token.strip())

    def __repr__(self) -> str:
        # Never include the access token
        return (
            f"ConnectedAccount(id={self.id}, username={self.username}, "
            f"business_id={self.ig_business_account_id})"
        )


@dataclass
class RuleStats:
    """Per-rule counters, stored as JSON on the automation row."""

    total_replies: int = 0
    last_triggered: Optional[str] = None  # ISO-8601, UTC
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "RuleStats":
        data = dict(data or {})
        total = data.pop("total_replies", 0)
        last = data.pop("last_triggered", None)
        try:
            total = int(total or 0)
        except (TypeError, ValueError):
            total = 0
        return cls(total_replies=total, last_triggered=last, extra=data)

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.extra,
            "total_replies": self.total_replies,
            "last_triggered": self.last_triggered,
        }

    def bumped(self, now: Optional[datetime] = None) -> "RuleStats":
        """Stats after one more successful reply."""
        now = now or datetime.now(timezone.utc)
        return RuleStats(
            total_replies=self.total_replies + 1,
            last_triggered=now.isoformat(),
            extra=dict(self.extra),
        )


@dataclass
class AutomationRule:
    """
    User-defined reaction to comments or direct messages.

    config is free-form; absent keys mean "no filter" or "empty" depending on
    the kind (see RuleMatcher).
    """

    id: str
    user_id: str
    account_id: str
    kind: str
    title: str
    is_active: bool
    config: Dict[str, Any] = field(default_factory=dict)
    stats: RuleStats = field(default_factory=RuleStats)

    def is_kind(self, kind: RuleKind) -> bool:
        return self.kind == kind.value

    @property
    def keywords(self) -> List[str]:
        return _string_list(self.config.get("keywords"))

    @property
    def trigger_words(self) -> List[str]:
        return _string_list(self.config.get("trigger_words"))

    @property
    def media_id(self) -> Optional[str]:
        value = self.config.get("media_id")
        return str(value) if value else None

    @property
    def message_template(self) -> str:
        return self.config.get("message_template") or ""

    @property
    def prompt(self) -> str:
        return self.config.get("prompt") or ""


@dataclass
class ActivityLogEntry:
    """Append-only audit record. Written by the engine, never updated."""

    user_id: str
    action: str
    automation_id: Optional[str] = None
    target_username: Optional[str] = None
    details: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
