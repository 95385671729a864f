"""
Instagram Graph API client for sending replies.

Each call takes the connected account's own access token; the client holds
no per-account state and can be shared by every event in a delivery.
"""
import httpx
import logging
from dataclasses import dataclass
from typing import Optional
from app.config import Settings
from app.core.interfaces import IReplySender

logger = logging.getLogger(__name__)

# Instagram rejects text messages longer than this
MAX_MESSAGE_LENGTH = 1000


@dataclass
class SendMessageResponse:
    """Response from Instagram Send API"""
    message_id: str
    recipient_id: Optional[str]
    success: bool
    error_message: Optional[str] = None


class InstagramAPIError(Exception):
    """Exception raised when Instagram API request fails"""
    def __init__(self, message: str, status_code: Optional[int] = None, response_body: Optional[dict] = None):
        self.message = message
        self.status_code = status_code
        self.response_body = response_body
        super().__init__(self.message)

    @property
    def error_code(self) -> Optional[int]:
        if not isinstance(self.response_body, dict):
            return None
        return self.response_body.get("error", {}).get("code")


class InstagramClient(IReplySender):
    """
    Client for the Instagram messaging endpoints.

    Private replies go through graph.instagram.com first (Instagram Login
    tokens) and fall back to graph.facebook.com/{business_id}/messages
    (Facebook Login tokens). Which one works depends on how the account
    was connected, so both are tried before giving up.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        settings: Settings,
        logger_instance: logging.Logger = logger
    ):
        """
        Initialize Instagram API client.

        Args:
            http_client: httpx AsyncClient for making HTTP requests
            settings: Application settings (API base URLs and timeout)
            logger_instance: Logger for tracking API calls
        """
        self._http_client = http_client
        self._logger = logger_instance
        self._instagram_graph_url = settings.instagram_graph_url.rstrip("/")
        self._facebook_graph_url = settings.facebook_graph_url.rstrip("/")
        self._timeout = settings.instagram_api_timeout

    async def send_private_reply(
        self,
        access_token: str,
        business_account_id: str,
        comment_id: str,
        message_text: str
    ) -> SendMessageResponse:
        """
        Send a private reply to the author of a comment.

        Args:
            access_token: The connected account's access token
            business_account_id: Instagram business account ID (sender context for the fallback endpoint)
            comment_id: ID of the comment being answered
            message_text: Reply text

        Returns:
            SendMessageResponse with message_id

        Raises:
            ValueError: If an argument is invalid
            InstagramAPIError: If both endpoints rejected the request
        """
        if not comment_id or not comment_id.strip():
            raise ValueError("comment_id cannot be empty")
        self._validate_text(message_text)

        payload = {
            "recipient": {"comment_id": comment_id},
            "message": {"text": message_text}
        }

        self._logger.info(f"Sending private reply to comment {comment_id}")

        try:
            return await self._post_message(
                f"{self._instagram_graph_url}/me/messages", access_token, payload
            )
        except InstagramAPIError as ig_error:
            if not business_account_id:
                raise
            self._logger.warning(
                f"⚠️ Instagram Graph API rejected private reply ({ig_error.message}), "
                f"retrying via Facebook Graph API for business account {business_account_id}"
            )

        try:
            return await self._post_message(
                f"{self._facebook_graph_url}/{business_account_id}/messages", access_token, payload
            )
        except InstagramAPIError as fb_error:
            if fb_error.error_code == 100:
                self._logger.error(
                    "❌ Private reply rejected with code 100 - the account must be a Business/Creator "
                    "account linked to a Facebook Page with messaging enabled"
                )
            raise

    async def send_direct_message(
        self,
        access_token: str,
        recipient_id: str,
        message_text: str
    ) -> SendMessageResponse:
        """
        Send a text message to an Instagram user.

        Args:
            access_token: The connected account's access token
            recipient_id: Instagram-scoped ID of the user
            message_text: The text message to send

        Raises:
            ValueError: If recipient_id or message_text is invalid
            InstagramAPIError: If the API request fails
        """
        if not recipient_id or not recipient_id.strip():
            raise ValueError("recipient_id cannot be empty")
        self._validate_text(message_text)

        payload = {
            "recipient": {"id": recipient_id},
            "message": {"text": message_text}
        }

        self._logger.info(f"Sending message to recipient {recipient_id}")
        return await self._post_message(f"{self._instagram_graph_url}/me/messages", access_token, payload)

    @staticmethod
    def _validate_text(message_text: str) -> None:
        if not message_text or not message_text.strip():
            raise ValueError("message_text cannot be empty")
        if len(message_text) > MAX_MESSAGE_LENGTH:
            raise ValueError(
                f"message_text exceeds {MAX_MESSAGE_LENGTH} character limit (got {len(message_text)} characters)"
            )

    async def _post_message(self, url: str, access_token: str, payload: dict) -> SendMessageResponse:
        if not access_token:
            raise ValueError("access_token cannot be empty")

        try:
            response = await self._http_client.post(
                url,
                headers={"Authorization": f"Bearer {access_token}"},
                json=payload,
                timeout=self._timeout
            )
        except httpx.TimeoutException as e:
            self._logger.error(f"❌ Request timeout calling {url}: {e}")
            raise InstagramAPIError(message=f"Request timeout: {str(e)}") from e
        except httpx.RequestError as e:
            self._logger.error(f"❌ Request error calling {url}: {e}")
            raise InstagramAPIError(message=f"Request error: {str(e)}") from e

        try:
            response_data = response.json() if response.text else {}
        except ValueError:
            response_data = {}

        if response.status_code == 200:
            message_id = response_data.get("message_id")
            if not message_id:
                raise InstagramAPIError(
                    "Invalid API response: missing message_id",
                    status_code=200,
                    response_body=response_data
                )

            self._logger.info(f"✅ Message sent successfully - message_id: {message_id}")
            return SendMessageResponse(
                message_id=message_id,
                recipient_id=response_data.get("recipient_id"),
                success=True
            )

        error = response_data.get("error", {}) if isinstance(response_data, dict) else {}
        error_message = error.get("message", "Unknown error")
        self._logger.error(
            f"❌ Instagram API error - "
            f"status: {response.status_code}, "
            f"code: {error.get('code')}, "
            f"message: {error_message}"
        )
        raise InstagramAPIError(
            message=f"Instagram API error: {error_message}",
            status_code=response.status_code,
            response_body=response_data
        )
