"""
Reply dispatch for fired automation rules.

Every collaborator failure is turned into a SendOutcome so one rule's
failure never reaches the other rules of the same event.
"""
import logging

from app.clients.instagram_client import InstagramAPIError
from app.clients.openai_client import ReplyGenerationError
from app.core.interfaces import IReplyGenerator, IReplySender
from app.domain.entities import AutomationRule, ConnectedAccount
from app.domain.events import CommentEvent, MessageEvent
from app.domain.outcomes import SendOutcome, SendStatus

logger = logging.getLogger(__name__)


class ReplyDispatcher:
    """Builds the reply text for a fired rule and sends it."""

    def __init__(self, sender: IReplySender, generator: IReplyGenerator):
        self._sender = sender
        self._generator = generator

    async def dispatch_comment(
        self,
        account: ConnectedAccount,
        rule: AutomationRule,
        event: CommentEvent
    ) -> SendOutcome:
        """
        Send the rule's message template as a private reply to the comment.

        A missing template or access token is a configuration error: it is
        reported, not retried, and only affects this rule.
        """
        text = rule.message_template
        if not text.strip():
            logger.error(f"❌ Automation {rule.id} has no message template")
            return SendOutcome.failed(SendStatus.CONFIG_ERROR, "Automation has no message template")

        if not account.has_credential:
            logger.error(f"❌ Missing access token for account {account.id}")
            return SendOutcome.failed(SendStatus.CONFIG_ERROR, "Account access token is missing", text=text)

        business_id = account.ig_business_account_id or event.platform_account_id

        try:
            response = await self._sender.send_private_reply(
                access_token=account.access_token,
                business_account_id=business_id,
                comment_id=event.comment_id,
                message_text=text
            )
        except InstagramAPIError as e:
            logger.error(f"❌ Failed to send private reply for automation {rule.id}: {e.message}")
            return SendOutcome.failed(SendStatus.SEND_FAILED, e.message, text=text)
        except ValueError as e:
            logger.error(f"❌ Invalid private reply for automation {rule.id}: {e}")
            return SendOutcome.failed(SendStatus.CONFIG_ERROR, str(e), text=text)
        except Exception as e:
            logger.error(f"❌ Unexpected error sending private reply for automation {rule.id}: {e}", exc_info=True)
            return SendOutcome.failed(SendStatus.SEND_FAILED, str(e), text=text)

        logger.info(f"✅ Private reply sent for automation {rule.id} on comment {event.comment_id}")
        return SendOutcome.sent(text, message_id=response.message_id)

    async def dispatch_message(
        self,
        account: ConnectedAccount,
        rule: AutomationRule,
        event: MessageEvent
    ) -> SendOutcome:
        """
        Generate a reply with the rule's prompt and send it back to the sender.

        If generation fails the rule is skipped; a blank reply is never sent.
        """
        try:
            text = await self._generator.generate_reply(event.text, rule.prompt)
        except ReplyGenerationError as e:
            logger.error(f"❌ Failed to generate auto-reply for automation {rule.id}: {e}")
            return SendOutcome.failed(SendStatus.GENERATION_FAILED, str(e))
        except Exception as e:
            logger.error(f"❌ Unexpected error generating auto-reply for automation {rule.id}: {e}", exc_info=True)
            return SendOutcome.failed(SendStatus.GENERATION_FAILED, str(e))

        if not text or not text.strip():
            return SendOutcome.failed(SendStatus.GENERATION_FAILED, "Generated reply is empty")

        if not account.has_credential:
            logger.error(f"❌ Missing access token for account {account.id}")
            return SendOutcome.failed(SendStatus.CONFIG_ERROR, "Account access token is missing", text=text)

        try:
            response = await self._sender.send_direct_message(
                access_token=account.access_token,
                recipient_id=event.sender_id,
                message_text=text
            )
        except InstagramAPIError as e:
            logger.error(f"❌ Failed to send auto-reply for automation {rule.id}: {e.message}")
            return SendOutcome.failed(SendStatus.SEND_FAILED, e.message, text=text)
        except ValueError as e:
            logger.error(f"❌ Invalid auto-reply for automation {rule.id}: {e}")
            return SendOutcome.failed(SendStatus.SEND_FAILED, str(e), text=text)
        except Exception as e:
            logger.error(f"❌ Unexpected error sending auto-reply for automation {rule.id}: {e}", exc_info=True)
            return SendOutcome.failed(SendStatus.SEND_FAILED, str(e), text=text)

        logger.info(f"✅ Auto-reply sent for automation {rule.id} to {event.sender_id}")
        return SendOutcome.sent(text, message_id=response.message_id)
