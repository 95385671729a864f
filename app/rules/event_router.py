"""
Webhook event routing.

Decodes an Instagram webhook delivery into CommentEvent / MessageEvent items
and runs each through resolve -> match -> dispatch -> record. Items are
independent: a malformed item is dropped while parsing, and an error while
processing one event becomes an EventResult with status ERROR.
"""
import hmac
import logging
from typing import Any, List, Optional, Tuple

from app.core.interfaces import IAutomationStore
from app.domain.events import CommentEvent, InboundEvent, MessageEvent
from app.domain.outcomes import DeliverySummary, EventResult, EventStatus, RuleResult, SendOutcome, SendStatus
from app.rules.account_resolver import AccountResolver
from app.rules.outcome_recorder import OutcomeRecorder
from app.rules.reply_dispatcher import ReplyDispatcher
from app.rules.rule_matcher import RuleMatcher

logger = logging.getLogger(__name__)

WEBHOOK_OBJECT = "instagram"


def handle_verification(
    mode: Optional[str],
    token: Optional[str],
    challenge: Optional[str],
    verify_token: str
) -> Optional[str]:
    """
    Check a webhook subscription handshake.

    Returns:
        The challenge to echo back byte-for-byte, or None when the request
        must be rejected
    """
    if mode != "subscribe" or not verify_token or token is None:
        return None
    if not hmac.compare_digest(token.encode("utf-8"), verify_token.encode("utf-8")):
        return None
    return challenge if challenge is not None else ""


def _as_id(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (dict, list, bool)):
        return None
    value = str(value).strip()
    return value or None


def _parse_comment(change: Any, account_id: str) -> Optional[CommentEvent]:
    if not isinstance(change, dict) or change.get("field") != "comments":
        return None

    value = change.get("value")
    if not isinstance(value, dict):
        return None

    comment_id = _as_id(value.get("id"))
    if comment_id is None:
        return None

    author = value.get("from") if isinstance(value.get("from"), dict) else {}
    media = value.get("media") if isinstance(value.get("media"), dict) else {}
    text = value.get("text")

    return CommentEvent(
        comment_id=comment_id,
        text=text if isinstance(text, str) else "",
        platform_account_id=account_id,
        media_id=_as_id(media.get("id")),
        author_username=author.get("username"),
        author_id=_as_id(author.get("id")),
    )


def _parse_message(messaging_event: Any, entry_id: Optional[str]) -> Optional[MessageEvent]:
    if not isinstance(messaging_event, dict):
        return None

    message = messaging_event.get("message")
    if not isinstance(message, dict):
        # read receipts, reactions, postbacks, delivery receipts
        return None
    if message.get("is_echo") or message.get("is_deleted"):
        return None

    text = message.get("text")
    sender = messaging_event.get("sender") if isinstance(messaging_event.get("sender"), dict) else {}
    recipient = messaging_event.get("recipient") if isinstance(messaging_event.get("recipient"), dict) else {}
    sender_id = _as_id(sender.get("id"))
    account_id = entry_id or _as_id(recipient.get("id"))

    if not isinstance(text, str) or not text.strip() or sender_id is None or account_id is None:
        return None
    if sender_id == account_id:
        # Our own outbound message
        return None

    return MessageEvent(
        sender_id=sender_id,
        text=text,
        platform_account_id=account_id,
        message_id=_as_id(message.get("mid")),
    )


def parse_envelope(body: Any) -> Tuple[List[InboundEvent], int]:
    """
    Decode a webhook delivery.

    Args:
        body: Parsed JSON body of the POST request

    Returns:
        (events, items_skipped) - items_skipped counts items that were
        malformed or not a comment/message
    """
    events: List[InboundEvent] = []
    skipped = 0

    if not isinstance(body, dict):
        logger.warning("Invalid webhook payload: not a dictionary")
        return events, skipped
    if body.get("object") != WEBHOOK_OBJECT:
        logger.warning(f"Ignoring webhook for object type: {body.get('object')}")
        return events, skipped

    entries = body.get("entry")
    if not isinstance(entries, list):
        logger.warning("Invalid webhook payload: missing 'entry' list")
        return events, skipped

    for entry in entries:
        if not isinstance(entry, dict):
            skipped += 1
            continue

        entry_id = _as_id(entry.get("id"))

        changes = entry.get("changes") or []
        for change in changes if isinstance(changes, list) else []:
            try:
                event = _parse_comment(change, entry_id) if entry_id else None
            except Exception as e:
                logger.warning(f"Skipping malformed change item: {e}")
                event = None
            if event is None:
                field = change.get("field") if isinstance(change, dict) else None
                logger.info(f"ℹ️ Skipped change item (field: {field})")
                skipped += 1
                continue
            events.append(event)

        messaging = entry.get("messaging") or []
        for messaging_event in messaging if isinstance(messaging, list) else []:
            try:
                event = _parse_message(messaging_event, entry_id)
            except Exception as e:
                logger.warning(f"Skipping malformed messaging item: {e}")
                event = None
            if event is None:
                logger.info("ℹ️ Skipped non-text, echo or unsupported messaging event")
                skipped += 1
                continue
            events.append(event)

    return events, skipped


class WebhookEventRouter:
    """Runs decoded webhook events through the automation pipeline."""

    def __init__(
        self,
        resolver: AccountResolver,
        matcher: RuleMatcher,
        dispatcher: ReplyDispatcher,
        recorder: OutcomeRecorder,
        store: Optional[IAutomationStore] = None,
        dedupe_events: bool = False
    ):
        self._resolver = resolver
        self._matcher = matcher
        self._dispatcher = dispatcher
        self._recorder = recorder
        self._store = store
        self._dedupe_events = dedupe_events and store is not None

    @classmethod
    def build(
        cls,
        store: IAutomationStore,
        dispatcher: ReplyDispatcher,
        dedupe_events: bool = False,
        record_failures: bool = False
    ) -> "WebhookEventRouter":
        """Wire the standard pipeline around one store."""
        return cls(
            resolver=AccountResolver(store),
            matcher=RuleMatcher(store),
            dispatcher=dispatcher,
            recorder=OutcomeRecorder(store, record_failures=record_failures),
            store=store,
            dedupe_events=dedupe_events,
        )

    async def handle_delivery(self, body: Any) -> DeliverySummary:
        """Parse a delivery and process every event in it. Never raises."""
        try:
            events, skipped = parse_envelope(body)
        except Exception as e:
            logger.error(f"Error parsing webhook payload: {e}", exc_info=True)
            events, skipped = [], 0
        return await self.handle_events(events, items_skipped=skipped)

    async def handle_events(self, events: List[InboundEvent], items_skipped: int = 0) -> DeliverySummary:
        summary = DeliverySummary(events_received=len(events), items_skipped=items_skipped)

        for event in events:
            try:
                result = await self.process_event(event)
            except Exception as e:
                logger.error(f"Error processing {event.kind} event {event.event_id}: {e}", exc_info=True)
                result = EventResult(event=event, status=EventStatus.ERROR, error=str(e))
            summary.add(result)

        logger.info(f"✅ Webhook delivery processed - {summary.describe()}")
        return summary

    async def process_event(self, event: InboundEvent) -> EventResult:
        if isinstance(event, CommentEvent):
            account = await self._resolver.resolve(event.platform_account_id, event.media_id)
        elif isinstance(event, MessageEvent):
            account = await self._resolver.resolve(event.platform_account_id)
        else:
            raise TypeError(f"Unsupported event type: {type(event).__name__}")

        if account is None:
            return EventResult(event=event, status=EventStatus.NO_ACCOUNT)

        if isinstance(event, CommentEvent):
            matches = await self._matcher.match_comment(account, event)
        else:
            matches = await self._matcher.match_message(account, event)

        if not matches:
            logger.info(f"No automation matched {event.kind} event {event.event_id}")
            return EventResult(event=event, status=EventStatus.NO_MATCH)

        if self._dedupe_events and event.event_id:
            if not await self._store.claim_event(event.event_id, event.kind):
                logger.info(f"ℹ️ {event.kind} event {event.event_id} already processed, skipping replies")
                return EventResult(event=event, status=EventStatus.DUPLICATE)

        result = EventResult(event=event, status=EventStatus.PROCESSED)
        for match in matches:
            try:
                if isinstance(event, CommentEvent):
                    outcome = await self._dispatcher.dispatch_comment(account, match.rule, event)
                else:
                    outcome = await self._dispatcher.dispatch_message(account, match.rule, event)
                recorded = await self._recorder.record_fire(account, match, outcome, event)
            except Exception as e:
                logger.error(f"Error dispatching automation {match.rule.id}: {e}", exc_info=True)
                outcome = SendOutcome.failed(SendStatus.SEND_FAILED, str(e))
                recorded = False
            result.rule_results.append(RuleResult(rule_id=match.rule.id, outcome=outcome, recorded=recorded))

        return result
