"""
Tests for InstagramClient using httpx.MockTransport.
"""
import json
import pytest
import httpx

from app.clients.instagram_client import InstagramAPIError, InstagramClient, MAX_MESSAGE_LENGTH
from app.config import Settings


def make_client(handler) -> tuple:
    requests = []

    def recording_handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return handler(request)

    http_client = httpx.AsyncClient(transport=httpx.MockTransport(recording_handler))
    settings = Settings()
    settings.instagram_graph_url = "https://graph.instagram.test/v21.0"
    settings.facebook_graph_url = "https://graph.facebook.test/v21.0/"
    return InstagramClient(http_client=http_client, settings=settings), requests


def graph_error(status_code: int, message: str, code: int = 10) -> httpx.Response:
    return httpx.Response(status_code, json={"error": {"message": message, "type": "OAuthException", "code": code}})


class TestSendPrivateReply:

    @pytest.mark.asyncio
    async def test_instagram_graph_success(self):
        client, requests = make_client(
            lambda request: httpx.Response(200, json={"recipient_id": "user_1", "message_id": "mid_1"})
        )

        response = await client.send_private_reply("IGAAtoken", "biz_1", "c_1", "Here is the guide")

        assert response.success
        assert response.message_id == "mid_1"
        assert len(requests) == 1
        request = requests[0]
        assert str(request.url) == "https://graph.instagram.test/v21.0/me/messages"
        assert request.headers["Authorization"] == "Bearer IGAAtoken"
        assert json.loads(request.content) == {
            "recipient": {"comment_id": "c_1"},
            "message": {"text": "Here is the guide"}
        }

    @pytest.mark.asyncio
    async def test_falls_back_to_facebook_graph(self):
        def handler(request):
            if request.url.host == "graph.instagram.test":
                return graph_error(400, "Invalid OAuth access token", code=190)
            return httpx.Response(200, json={"message_id": "mid_fb"})

        client, requests = make_client(handler)

        response = await client.send_private_reply("EAAtoken", "biz_1", "c_1", "Hi")

        assert response.message_id == "mid_fb"
        assert [str(r.url) for r in requests] == [
            "https://graph.instagram.test/v21.0/me/messages",
            "https://graph.facebook.test/v21.0/biz_1/messages",
        ]

    @pytest.mark.asyncio
    async def test_both_endpoints_fail(self):
        client, requests = make_client(lambda request: graph_error(400, "(#100) Invalid parameter", code=100))

        with pytest.raises(InstagramAPIError) as exc_info:
            await client.send_private_reply("IGAAtoken", "biz_1", "c_1", "Hi")

        assert exc_info.value.status_code == 400
        assert exc_info.value.error_code == 100
        assert len(requests) == 2

    @pytest.mark.asyncio
    async def test_no_fallback_without_business_id(self):
        client, requests = make_client(lambda request: graph_error(400, "nope"))

        with pytest.raises(InstagramAPIError):
            await client.send_private_reply("IGAAtoken", "", "c_1", "Hi")

        assert len(requests) == 1

    @pytest.mark.asyncio
    async def test_invalid_arguments(self):
        client, requests = make_client(lambda request: httpx.Response(200, json={"message_id": "x"}))

        with pytest.raises(ValueError):
            await client.send_private_reply("IGAAtoken", "biz_1", "", "Hi")
        with pytest.raises(ValueError):
            await client.send_private_reply("IGAAtoken", "biz_1", "c_1", "   ")
        with pytest.raises(ValueError):
            await client.send_private_reply("IGAAtoken", "biz_1", "c_1", "x" * (MAX_MESSAGE_LENGTH + 1))

        assert requests == []


class TestSendDirectMessage:

    @pytest.mark.asyncio
    async def test_success(self):
        client, requests = make_client(
            lambda request: httpx.Response(200, json={"recipient_id": "user_9", "message_id": "mid_2"})
        )

        response = await client.send_direct_message("IGAAtoken", "user_9", "Hello!")

        assert response.message_id == "mid_2"
        assert response.recipient_id == "user_9"
        assert json.loads(requests[0].content) == {"recipient": {"id": "user_9"}, "message": {"text": "Hello!"}}

    @pytest.mark.asyncio
    async def test_missing_message_id_is_an_error(self):
        client, _ = make_client(lambda request: httpx.Response(200, json={"recipient_id": "user_9"}))

        with pytest.raises(InstagramAPIError) as exc_info:
            await client.send_direct_message("IGAAtoken", "user_9", "Hello!")

        assert "missing message_id" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_timeout_becomes_api_error(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        client, _ = make_client(handler)

        with pytest.raises(InstagramAPIError) as exc_info:
            await client.send_direct_message("IGAAtoken", "user_9", "Hello!")

        assert "timeout" in exc_info.value.message.lower()
        assert exc_info.value.status_code is None

    @pytest.mark.asyncio
    async def test_connection_error_becomes_api_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client, _ = make_client(handler)

        with pytest.raises(InstagramAPIError):
            await client.send_direct_message("IGAAtoken", "user_9", "Hello!")

    @pytest.mark.asyncio
    async def test_empty_token_rejected(self):
        client, requests = make_client(lambda request: httpx.Response(200, json={"message_id": "x"}))

        with pytest.raises(ValueError):
            await client.send_direct_message("", "user_9", "Hello!")

        assert requests == []
