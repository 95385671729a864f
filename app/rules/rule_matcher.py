"""
Trigger evaluation for automation rules.

Matching is case-insensitive substring containment, not word matching:
"guide" fires on "guidebook".
"""
import logging
from typing import List, Optional

from app.core.interfaces import IAutomationStore
from app.domain.entities import AutomationRule, ConnectedAccount, RuleKind
from app.domain.events import CommentEvent, MessageEvent
from app.domain.outcomes import RuleMatch

logger = logging.getLogger(__name__)


def find_keyword(text: str, keywords: List[str]) -> Optional[str]:
    """Return the first keyword contained in text (case-insensitive), or None."""
    text = (text or "").lower()
    for keyword in keywords:
        if keyword.lower() in text:
            return keyword
    return None


class RuleMatcher:
    """Selects the rules of an account that fire for an inbound event."""

    def __init__(self, store: IAutomationStore):
        self._store = store

    async def _active_rules(self, account: ConnectedAccount, kind: RuleKind) -> List[AutomationRule]:
        rules = await self._store.find_rules_by_account(account.id)
        return [rule for rule in rules if rule.is_active and rule.is_kind(kind)]

    async def match_comment(self, account: ConnectedAccount, event: CommentEvent) -> List[RuleMatch]:
        """
        Active comment_to_dm rules whose keywords appear in the comment.

        A rule targeting a specific post is skipped for comments on other
        posts. A rule without keywords never fires.
        """
        matches = []
        for rule in await self._active_rules(account, RuleKind.COMMENT_TO_DM):
            if rule.media_id and rule.media_id != event.media_id:
                continue

            keyword = find_keyword(event.text, rule.keywords)
            if keyword is None:
                continue

            logger.info(f"🎯 Keyword '{keyword}' matched automation {rule.id} on comment {event.comment_id}")
            matches.append(RuleMatch(rule=rule, matched_keyword=keyword))
        return matches

    async def match_message(self, account: ConnectedAccount, event: MessageEvent) -> List[RuleMatch]:
        """
        Active auto_dm_reply rules triggered by the message.

        A rule with no trigger words replies to every message.
        """
        matches = []
        for rule in await self._active_rules(account, RuleKind.AUTO_DM_REPLY):
            trigger_words = rule.trigger_words
            if not trigger_words:
                matches.append(RuleMatch(rule=rule))
                continue

            keyword = find_keyword(event.text, trigger_words)
            if keyword is not None:
                logger.info(f"🎯 Trigger word '{keyword}' matched automation {rule.id}")
                matches.append(RuleMatch(rule=rule, matched_keyword=keyword))
        return matches
