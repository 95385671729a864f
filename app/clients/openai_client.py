"""
OpenAI client for generating direct-message replies.
"""
import logging
from typing import Optional

from openai import AsyncOpenAI, OpenAIError

from app.config import Settings
from app.core.interfaces import IReplyGenerator

logger = logging.getLogger(__name__)

DEFAULT_REPLY_PROMPT = """You are an Instagram automation assistant. Generate a friendly, helpful response to the following message.

Message received: "{message}"

Requirements:
- Be warm and professional
- Keep response concise (1-2 sentences)
- Include an emoji if appropriate
- Sound natural and human-like

Respond only with the reply message."""


class ReplyGenerationError(Exception):
    """Raised when a reply could not be generated"""
    pass


class OpenAIReplyGenerator(IReplyGenerator):
    """
    Generates DM replies with a chat completion.

    A rule's custom prompt is sent as the system message with the inbound
    DM as the user message; without a custom prompt the default template
    embeds the DM.
    """

    def __init__(self, settings: Settings, openai_client: AsyncOpenAI = None):
        self._settings = settings
        self._model = settings.openai_model
        self._client = openai_client

    def _get_client(self) -> AsyncOpenAI:
        # Created on first use: AsyncOpenAI raises when no API key is configured
        if self._client is None:
            self._client = AsyncOpenAI(
                api_key=self._settings.openai_api_key or None,
                timeout=self._settings.openai_timeout,
                max_retries=0,  # At most one attempt per fired rule
            )
        return self._client

    async def generate_reply(self, message: str, prompt: Optional[str] = None) -> str:
        if prompt and prompt.strip():
            messages = [
                {"role": "system", "content": prompt.strip()},
                {"role": "user", "content": message},
            ]
        else:
            messages = [
                {"role": "user", "content": DEFAULT_REPLY_PROMPT.format(message=message)},
            ]

        try:
            response = await self._get_client().chat.completions.create(
                model=self._model,
                messages=messages,
            )
        except OpenAIError as e:
            logger.error(f"❌ Reply generation failed: {e}")
            raise ReplyGenerationError(str(e)) from e

        content = response.choices[0].message.content if response.choices else None
        if not content or not content.strip():
            raise ReplyGenerationError("Model returned an empty reply")

        return content.strip()
