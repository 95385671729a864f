"""
Webhook Simulator Utility

Builds Instagram webhook deliveries (comments and direct messages) with
valid HMAC-SHA256 signatures, for exercising automations locally without
real Instagram traffic.
"""

import hmac
import hashlib
import json
import time
import uuid
from typing import List, Optional


class WebhookSimulator:
    """
    Generate Instagram webhook payloads for local testing.

    Usage:
        simulator = WebhookSimulator(app_secret="your_instagram_app_secret")
        entry = simulator.comment_entry(
            account_id="17841400000000000",
            text="Send me the guide",
            media_id="post-42"
        )
        payload_bytes, signature = simulator.sign(simulator.envelope([entry]))

        response = httpx.post(
            "http://localhost:8000/webhooks/instagram",
            content=payload_bytes,
            headers={"X-Hub-Signature-256": signature, "Content-Type": "application/json"}
        )
    """

    def __init__(self, app_secret: str = ""):
        """
        Args:
            app_secret: INSTAGRAM_APP_SECRET used to sign payloads (may be empty
                when the server does not validate signatures)
        """
        self.app_secret = app_secret

    @staticmethod
    def comment_entry(
        account_id: str,
        text: str,
        media_id: Optional[str] = None,
        comment_id: Optional[str] = None,
        username: str = "test_user",
        user_id: str = "1234567890",
        timestamp: Optional[int] = None
    ) -> dict:
        """Entry with one "comments" change, as sent for a new comment."""
        value = {
            "id": comment_id or f"comment_{uuid.uuid4().hex[:12]}",
            "text": text,
            "from": {"id": user_id, "username": username},
        }
        if media_id:
            value["media"] = {"id": media_id, "media_product_type": "FEED"}

        return {
            "id": account_id,
            "time": timestamp or int(time.time()),
            "changes": [{"field": "comments", "value": value}],
        }

    @staticmethod
    def message_entry(
        account_id: str,
        sender_id: str,
        text: Optional[str],
        message_id: Optional[str] = None,
        is_echo: bool = False,
        timestamp_ms: Optional[int] = None
    ) -> dict:
        """Entry with one messaging event, as sent for a new direct message."""
        timestamp_ms = timestamp_ms or int(time.time() * 1000)
        message = {"mid": message_id or f"mid_{uuid.uuid4().hex[:16]}"}
        if text is not None:
            message["text"] = text
        if is_echo:
            message["is_echo"] = True

        return {
            "id": account_id,
            "time": timestamp_ms // 1000,  # entry.time is in seconds
            "messaging": [
                {
                    "sender": {"id": account_id if is_echo else sender_id},
                    "recipient": {"id": sender_id if is_echo else account_id},
                    "timestamp": timestamp_ms,
                    "message": message,
                }
            ],
        }

    @staticmethod
    def envelope(entries: List[dict]) -> dict:
        return {"object": "instagram", "entry": entries}

    def sign(self, payload: dict) -> tuple[bytes, str]:
        """
        Serialize a payload and compute its X-Hub-Signature-256 header.

        Returns:
            (payload_bytes, signature_header)
        """
        payload_bytes = json.dumps(payload, separators=(',', ':')).encode('utf-8')
        signature = hmac.new(
            self.app_secret.encode('utf-8'),
            payload_bytes,
            hashlib.sha256
        ).hexdigest()
        return payload_bytes, f"sha256={signature}"
