"""
Tests for webhook envelope decoding and subscription verification.
"""
from app.domain.events import CommentEvent, MessageEvent
from app.rules.event_router import handle_verification, parse_envelope
from app.utils.webhook_simulator import WebhookSimulator


class TestHandleVerification:

    def test_numeric_challenge_is_returned_unchanged(self):
        assert handle_verification("subscribe", "secret", "1158201444", "secret") == "1158201444"

    def test_challenge_is_not_normalized(self):
        for challenge in ("007", "1_000", " 12 "):
            assert handle_verification("subscribe", "secret", challenge, "secret") == challenge

    def test_missing_challenge_echoes_empty_string(self):
        assert handle_verification("subscribe", "secret", None, "secret") == ""

    def test_text_challenge_is_returned_as_is(self):
        assert handle_verification("subscribe", "secret", "abc-123", "secret") == "abc-123"

    def test_wrong_token(self):
        assert handle_verification("subscribe", "nope", "1", "secret") is None

    def test_missing_token(self):
        assert handle_verification("subscribe", None, "1", "secret") is None

    def test_wrong_mode(self):
        assert handle_verification("unsubscribe", "secret", "1", "secret") is None

    def test_blank_verify_token_never_matches(self):
        assert handle_verification("subscribe", "", "1", "") is None


class TestCommentParsing:

    def test_comment_change(self):
        entry = WebhookSimulator.comment_entry(
            account_id="17841400000000000",
            text="Send me the guide",
            media_id="post-42",
            comment_id="c_1",
            username="jane_doe",
            user_id="999"
        )

        events, skipped = parse_envelope(WebhookSimulator.envelope([entry]))

        assert skipped == 0
        assert events == [
            CommentEvent(
                comment_id="c_1",
                text="Send me the guide",
                platform_account_id="17841400000000000",
                media_id="post-42",
                author_username="jane_doe",
                author_id="999",
            )
        ]

    def test_comment_without_text_defaults_to_empty(self):
        entry = {"id": "acc", "changes": [{"field": "comments", "value": {"id": "c_2"}}]}

        events, skipped = parse_envelope(WebhookSimulator.envelope([entry]))

        assert len(events) == 1
        assert events[0].text == ""
        assert events[0].media_id is None
        assert events[0].author_username is None

    def test_numeric_ids_are_normalized_to_strings(self):
        entry = {
            "id": 17841400000000000,
            "changes": [{"field": "comments", "value": {"id": 123, "text": "hi", "media": {"id": 42}}}]
        }

        events, _ = parse_envelope(WebhookSimulator.envelope([entry]))

        assert events[0].comment_id == "123"
        assert events[0].media_id == "42"
        assert events[0].platform_account_id == "17841400000000000"

    def test_other_change_fields_are_skipped(self):
        entry = {
            "id": "acc",
            "changes": [
                {"field": "mentions", "value": {"id": "m_1"}},
                {"field": "comments", "value": {"id": "c_3", "text": "ok"}},
            ]
        }

        events, skipped = parse_envelope(WebhookSimulator.envelope([entry]))

        assert [e.comment_id for e in events] == ["c_3"]
        assert skipped == 1

    def test_malformed_changes_are_skipped(self):
        entry = {
            "id": "acc",
            "changes": [
                "garbage",
                {"field": "comments", "value": "not-a-dict"},
                {"field": "comments", "value": {"text": "missing id"}},
                {"field": "comments", "value": {"id": "c_4", "text": "fine"}},
            ]
        }

        events, skipped = parse_envelope(WebhookSimulator.envelope([entry]))

        assert [e.comment_id for e in events] == ["c_4"]
        assert skipped == 3

    def test_comment_in_entry_without_id_is_skipped(self):
        entry = {"changes": [{"field": "comments", "value": {"id": "c_5"}}]}

        events, skipped = parse_envelope(WebhookSimulator.envelope([entry]))

        assert events == []
        assert skipped == 1


class TestMessageParsing:

    def test_text_message(self):
        entry = WebhookSimulator.message_entry(
            account_id="acc_1",
            sender_id="user_1",
            text="Hello!",
            message_id="mid_1"
        )

        events, skipped = parse_envelope(WebhookSimulator.envelope([entry]))

        assert skipped == 0
        assert events == [
            MessageEvent(sender_id="user_1", text="Hello!", platform_account_id="acc_1", message_id="mid_1")
        ]

    def test_account_falls_back_to_recipient(self):
        entry = {
            "messaging": [{
                "sender": {"id": "user_1"},
                "recipient": {"id": "acc_2"},
                "message": {"mid": "mid_2", "text": "hi"}
            }]
        }

        events, _ = parse_envelope(WebhookSimulator.envelope([entry]))

        assert events[0].platform_account_id == "acc_2"

    def test_echo_is_skipped(self):
        entry = WebhookSimulator.message_entry(account_id="acc_1", sender_id="user_1", text="Our reply", is_echo=True)

        events, skipped = parse_envelope(WebhookSimulator.envelope([entry]))

        assert events == []
        assert skipped == 1

    def test_own_outbound_message_without_echo_flag_is_skipped(self):
        entry = {
            "id": "acc_1",
            "messaging": [{
                "sender": {"id": "acc_1"},
                "recipient": {"id": "user_1"},
                "message": {"mid": "mid_3", "text": "Our reply"}
            }]
        }

        events, skipped = parse_envelope(WebhookSimulator.envelope([entry]))

        assert events == []
        assert skipped == 1

    def test_non_text_events_are_skipped(self):
        entry = {
            "id": "acc_1",
            "messaging": [
                {"sender": {"id": "u"}, "recipient": {"id": "acc_1"}, "read": {"mid": "mid_1"}},
                {"sender": {"id": "u"}, "recipient": {"id": "acc_1"}, "delivery": {"mids": ["mid_1"]}},
                {"sender": {"id": "u"}, "recipient": {"id": "acc_1"},
                 "message": {"mid": "mid_4", "attachments": [{"type": "image"}]}},
                {"sender": {"id": "u"}, "recipient": {"id": "acc_1"},
                 "message": {"mid": "mid_5", "is_deleted": True}},
                {"sender": {"id": "u"}, "recipient": {"id": "acc_1"},
                 "message": {"mid": "mid_6", "text": "   "}},
                {"recipient": {"id": "acc_1"}, "message": {"mid": "mid_7", "text": "no sender"}},
            ]
        }

        events, skipped = parse_envelope(WebhookSimulator.envelope([entry]))

        assert events == []
        assert skipped == 6


class TestEnvelope:

    def test_mixed_entries(self):
        payload = WebhookSimulator.envelope([
            WebhookSimulator.comment_entry(account_id="acc_1", text="guide", comment_id="c_1"),
            WebhookSimulator.message_entry(account_id="acc_1", sender_id="user_1", text="hi", message_id="mid_1"),
            "not-an-entry",
        ])

        events, skipped = parse_envelope(payload)

        assert [type(e) for e in events] == [CommentEvent, MessageEvent]
        assert skipped == 1

    def test_wrong_object_type(self):
        events, skipped = parse_envelope({"object": "page", "entry": [{"id": "1"}]})
        assert events == []
        assert skipped == 0

    def test_not_a_dict(self):
        assert parse_envelope(["instagram"]) == ([], 0)
        assert parse_envelope(None) == ([], 0)

    def test_missing_entry_list(self):
        assert parse_envelope({"object": "instagram"}) == ([], 0)
        assert parse_envelope({"object": "instagram", "entry": "x"}) == ([], 0)
