"""
Tests for the full resolve -> match -> dispatch -> record pipeline.
"""
import pytest
from sqlalchemy import select

from app.db.models import ActivityLogModel, AutomationModel
from app.domain.events import CommentEvent, MessageEvent
from app.domain.outcomes import EventStatus, SendStatus
from app.rules.event_router import WebhookEventRouter
from app.rules.reply_dispatcher import ReplyDispatcher
from app.utils.webhook_simulator import WebhookSimulator
from tests.fakes import FakeReplyGenerator, FakeReplySender


def build_router(store, sender=None, generator=None, dedupe_events=True, record_failures=False):
    dispatcher = ReplyDispatcher(sender or FakeReplySender(), generator or FakeReplyGenerator())
    return WebhookEventRouter.build(store, dispatcher, dedupe_events=dedupe_events, record_failures=record_failures)


class TestPartialFailureIsolation:

    @pytest.mark.asyncio
    async def test_failing_rule_does_not_block_sibling(self, store, db_session, make_account, make_rule):
        """Rule A's send fails, rule B's succeeds: only B's stats change."""
        db_account = await make_account(business_id="biz_1")
        rule_a = await make_rule(db_account, title="A", config={"keywords": ["guide"], "message_template": "Broken"})
        rule_b = await make_rule(db_account, title="B", config={"keywords": ["guide"], "message_template": "Works"})

        class OneBadTemplateSender(FakeReplySender):
            async def send_private_reply(self, access_token, business_account_id, comment_id, message_text):
                if message_text == "Broken":
                    raise RuntimeError("socket closed")
                return await super().send_private_reply(access_token, business_account_id, comment_id, message_text)

        sender = OneBadTemplateSender()
        router = build_router(store, sender=sender)
        event = CommentEvent(comment_id="c_1", text="guide please", platform_account_id="biz_1")

        result = await router.process_event(event)

        assert result.status == EventStatus.PROCESSED
        outcomes = {r.rule_id: r.outcome.status for r in result.rule_results}
        assert outcomes == {rule_a.id: SendStatus.SEND_FAILED, rule_b.id: SendStatus.SENT}
        assert result.sent_count == 1
        assert result.failed_count == 1

        stored_a = await db_session.get(AutomationModel, rule_a.id)
        stored_b = await db_session.get(AutomationModel, rule_b.id)
        assert stored_a.stats.get("total_replies", 0) == 0
        assert stored_b.stats["total_replies"] == 1

        logs = (await db_session.execute(select(ActivityLogModel))).scalars().all()
        assert [log.automation_id for log in logs] == [rule_b.id]

    @pytest.mark.asyncio
    async def test_error_in_one_event_does_not_stop_the_next(self, store, make_account, make_rule):
        db_account = await make_account(business_id="biz_1")
        await make_rule(db_account, config={"keywords": ["guide"], "message_template": "Here"})
        sender = FakeReplySender()
        router = build_router(store, sender=sender)

        async def broken_resolve(platform_account_id, media_id=None):
            if platform_account_id == "boom":
                raise RuntimeError("resolver crashed")
            return await original_resolve(platform_account_id, media_id)

        original_resolve = router._resolver.resolve
        router._resolver.resolve = broken_resolve

        summary = await router.handle_events([
            CommentEvent(comment_id="c_1", text="guide", platform_account_id="boom"),
            CommentEvent(comment_id="c_2", text="guide", platform_account_id="biz_1"),
        ])

        assert [r.status for r in summary.results] == [EventStatus.ERROR, EventStatus.PROCESSED]
        assert summary.results[0].error == "resolver crashed"
        assert [s["comment_id"] for s in sender.private_replies] == ["c_2"]


class TestDeliveryHandling:

    @pytest.mark.asyncio
    async def test_summary_counts(self, store, make_account, make_rule):
        db_account = await make_account(business_id="biz_1")
        await make_rule(db_account, config={"keywords": ["guide"], "message_template": "Here"})
        await make_rule(db_account, kind="auto_dm_reply", config={"trigger_words": ["price"]})
        router = build_router(store)

        body = WebhookSimulator.envelope([
            WebhookSimulator.comment_entry(account_id="biz_1", text="guide", comment_id="c_1"),
            WebhookSimulator.comment_entry(account_id="biz_1", text="nice photo", comment_id="c_2"),
            WebhookSimulator.comment_entry(account_id="unknown", text="guide", comment_id="c_3"),
            WebhookSimulator.message_entry(account_id="biz_1", sender_id="u_1", text="price?", message_id="mid_1"),
            {"id": "biz_1", "changes": [{"field": "comments", "value": {}}]},
        ])

        summary = await router.handle_delivery(body)

        assert summary.events_received == 4
        assert summary.items_skipped == 1
        assert summary.count(EventStatus.PROCESSED) == 2
        assert summary.count(EventStatus.NO_MATCH) == 1
        assert summary.count(EventStatus.NO_ACCOUNT) == 1
        assert summary.rules_fired == 2
        assert summary.replies_sent == 2
        assert summary.replies_failed == 0
        assert "sent=2" in summary.describe()

    @pytest.mark.asyncio
    async def test_garbage_body_never_raises(self, store):
        summary = await build_router(store).handle_delivery("not a delivery")

        assert summary.events_received == 0
        assert summary.results == []


class TestDuplicateSuppression:

    @pytest.mark.asyncio
    async def test_redelivered_comment_is_skipped(self, store, db_session, make_account, make_rule):
        db_account = await make_account(business_id="biz_1")
        rule = await make_rule(db_account, config={"keywords": ["guide"], "message_template": "Here"})
        sender = FakeReplySender()
        router = build_router(store, sender=sender)
        event = CommentEvent(comment_id="c_1", text="guide", platform_account_id="biz_1")

        first = await router.process_event(event)
        second = await router.process_event(event)

        assert first.status == EventStatus.PROCESSED
        assert second.status == EventStatus.DUPLICATE
        assert len(sender.private_replies) == 1

        stored = await db_session.get(AutomationModel, rule.id)
        assert stored.stats["total_replies"] == 1

    @pytest.mark.asyncio
    async def test_dedupe_disabled_replies_again(self, store, make_account, make_rule):
        db_account = await make_account(business_id="biz_1")
        await make_rule(db_account, config={"keywords": ["guide"], "message_template": "Here"})
        sender = FakeReplySender()
        router = build_router(store, sender=sender, dedupe_events=False)
        event = CommentEvent(comment_id="c_1", text="guide", platform_account_id="biz_1")

        await router.process_event(event)
        await router.process_event(event)

        assert len(sender.private_replies) == 2

    @pytest.mark.asyncio
    async def test_message_without_id_is_never_deduplicated(self, store, make_account, make_rule):
        db_account = await make_account(business_id="biz_1")
        await make_rule(db_account, kind="auto_dm_reply", config={})
        sender = FakeReplySender()
        router = build_router(store, sender=sender)
        event = MessageEvent(sender_id="u_1", text="hello", platform_account_id="biz_1")

        await router.process_event(event)
        await router.process_event(event)

        assert len(sender.direct_messages) == 2

    @pytest.mark.asyncio
    async def test_unmatched_event_is_not_claimed(self, store, make_account, make_rule):
        """A comment that matched nothing can still fire once a rule is added."""
        db_account = await make_account(business_id="biz_1")
        sender = FakeReplySender()
        router = build_router(store, sender=sender)
        event = CommentEvent(comment_id="c_1", text="guide", platform_account_id="biz_1")

        assert (await router.process_event(event)).status == EventStatus.NO_MATCH

        await make_rule(db_account, config={"keywords": ["guide"], "message_template": "Here"})
        assert (await router.process_event(event)).status == EventStatus.PROCESSED
        assert len(sender.private_replies) == 1


class TestFailureRecording:

    @pytest.mark.asyncio
    async def test_generation_failure_recorded_when_enabled(self, store, db_session, make_account, make_rule):
        db_account = await make_account(business_id="biz_1")
        await make_rule(db_account, kind="auto_dm_reply", config={"trigger_words": []})
        router = build_router(store, generator=FakeReplyGenerator(fail=True), record_failures=True)
        event = MessageEvent(sender_id="u_1", text="hello", platform_account_id="biz_1", message_id="mid_1")

        result = await router.process_event(event)

        assert result.rule_results[0].outcome.status == SendStatus.GENERATION_FAILED
        assert result.rule_results[0].recorded is True

        logs = (await db_session.execute(select(ActivityLogModel))).scalars().all()
        assert [log.action for log in logs] == ["dm_auto_reply_failed"]
        assert logs[0].target_username == "u_1"
