"""Outbound API clients"""
from app.clients.instagram_client import InstagramClient, SendMessageResponse, InstagramAPIError
from app.clients.openai_client import OpenAIReplyGenerator, ReplyGenerationError

__all__ = [
    "InstagramClient",
    "SendMessageResponse",
    "InstagramAPIError",
    "OpenAIReplyGenerator",
    "ReplyGenerationError",
]
