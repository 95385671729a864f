"""
Outcome recording for fired automation rules.
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from app.core.interfaces import IAutomationStore
from app.domain.entities import ActivityLogEntry, AutomationRule, ConnectedAccount
from app.domain.events import CommentEvent, InboundEvent, MessageEvent
from app.domain.outcomes import RuleMatch, SendOutcome

logger = logging.getLogger(__name__)

# Length of the inbound DM excerpt kept in activity details
MESSAGE_EXCERPT_LENGTH = 50


class OutcomeRecorder:
    """
    Updates rule statistics and the activity log after a rule fires.

    Successful sends bump the rule's counters and append one activity entry,
    written together. Failed sends leave counters alone and are only logged,
    unless record_failures is set, in which case a failure entry is appended.
    """

    def __init__(self, store: IAutomationStore, record_failures: bool = False):
        self._store = store
        self._record_failures = record_failures

    async def record_fire(
        self,
        account: ConnectedAccount,
        match: RuleMatch,
        outcome: SendOutcome,
        event: InboundEvent,
        now: Optional[datetime] = None
    ) -> bool:
        """
        Record the result of one fired rule.

        Returns:
            True if something was persisted, False otherwise (including
            storage errors, which are logged and not raised)
        """
        rule = match.rule
        try:
            if outcome.success:
                entry = self._success_entry(account, rule, match, event)
                stats = await self._store.record_fire(rule.id, entry, now or datetime.now(timezone.utc))
                if stats is None:
                    return False
                rule.stats = stats
                return True

            logger.error(
                f"❌ Automation {rule.id} fired but reply was not sent "
                f"({outcome.status.value}): {outcome.error}"
            )
            if self._record_failures:
                await self._store.append_activity_log(self._failure_entry(account, rule, outcome, event))
                return True
            return False

        except Exception as e:
            logger.error(f"❌ Failed to record outcome for automation {rule.id}: {e}", exc_info=True)
            return False

    @staticmethod
    def _success_entry(
        account: ConnectedAccount,
        rule: AutomationRule,
        match: RuleMatch,
        event: InboundEvent
    ) -> ActivityLogEntry:
        if isinstance(event, CommentEvent):
            return ActivityLogEntry(
                user_id=account.user_id,
                automation_id=rule.id,
                action="comment_dm_sent",
                target_username=event.author_username or "unknown",
                details=f'Sent DM for keyword "{match.matched_keyword}" on comment',
            )
        if isinstance(event, MessageEvent):
            return ActivityLogEntry(
                user_id=account.user_id,
                automation_id=rule.id,
                action="dm_auto_reply",
                target_username=event.sender_id,
                details=f'Auto-replied to DM: "{_excerpt(event.text)}"',
            )
        raise TypeError(f"Unsupported event type: {type(event).__name__}")

    @staticmethod
    def _failure_entry(
        account: ConnectedAccount,
        rule: AutomationRule,
        outcome: SendOutcome,
        event: InboundEvent
    ) -> ActivityLogEntry:
        if isinstance(event, CommentEvent):
            action = "comment_dm_failed"
            target = event.author_username or "unknown"
        elif isinstance(event, MessageEvent):
            action = "dm_auto_reply_failed"
            target = event.sender_id
        else:
            raise TypeError(f"Unsupported event type: {type(event).__name__}")

        return ActivityLogEntry(
            user_id=account.user_id,
            automation_id=rule.id,
            action=action,
            target_username=target,
            details=f"Reply not sent ({outcome.status.value}): {outcome.error}",
        )


def _excerpt(text: str) -> str:
    if len(text) <= MESSAGE_EXCERPT_LENGTH:
        return text
    return f"{text[:MESSAGE_EXCERPT_LENGTH]}..."
