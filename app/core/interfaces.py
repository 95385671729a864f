"""
Core interfaces for the automation engine.

The webhook pipeline depends only on these contracts; the SQLAlchemy store,
the Instagram Graph API client and the OpenAI generator are the production
implementations, and tests substitute their own.
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from app.clients.instagram_client import SendMessageResponse
    from app.domain.entities import ActivityLogEntry, AutomationRule, ConnectedAccount, RuleStats


class IAutomationStore(ABC):
    """Interface for account, automation and activity persistence"""

    @abstractmethod
    async def find_account_by_business_id(self, business_id: str) -> Optional['ConnectedAccount']:
        """Get account by its Instagram business account ID"""
        pass

    @abstractmethod
    async def find_account_by_instagram_user_id(self, instagram_user_id: str) -> Optional['ConnectedAccount']:
        """Get account by the Instagram user ID stored at connect time"""
        pass

    @abstractmethod
    async def get_account(self, account_id: str) -> Optional['ConnectedAccount']:
        """Get account by database ID"""
        pass

    @abstractmethod
    async def find_active_rules_all_accounts(self, kind: str) -> List['AutomationRule']:
        """Get active rules of one kind across every account, oldest first"""
        pass

    @abstractmethod
    async def find_rules_by_account(self, account_id: str) -> List['AutomationRule']:
        """Get all rules of an account, oldest first"""
        pass

    @abstractmethod
    async def update_account_business_id(self, account_id: str, business_id: str) -> None:
        """Store the business ID discovered from a webhook delivery"""
        pass

    @abstractmethod
    async def update_rule_stats(self, rule_id: str, stats: 'RuleStats') -> None:
        """Replace a rule's statistics"""
        pass

    @abstractmethod
    async def append_activity_log(self, entry: 'ActivityLogEntry') -> None:
        """Append an activity log entry"""
        pass

    @abstractmethod
    async def record_fire(
        self,
        rule_id: str,
        entry: 'ActivityLogEntry',
        now: Optional[datetime] = None
    ) -> Optional['RuleStats']:
        """
        Count one successful reply on the rule and append the activity entry
        in one transaction. The increment applies to the stored counters.

        Returns:
            The updated stats, or None if the rule no longer exists
        """
        pass

    @abstractmethod
    async def claim_event(self, event_id: str, kind: str) -> bool:
        """
        Mark a platform event as processed.

        Returns:
            True if this is the first time the event is seen, False for a redelivery
        """
        pass


class IReplySender(ABC):
    """Interface for sending replies through the Instagram platform"""

    @abstractmethod
    async def send_private_reply(
        self,
        access_token: str,
        business_account_id: str,
        comment_id: str,
        message_text: str
    ) -> 'SendMessageResponse':
        """
        Send a private reply (DM) to the author of a comment.

        Raises:
            InstagramAPIError: If every endpoint rejected the request
        """
        pass

    @abstractmethod
    async def send_direct_message(
        self,
        access_token: str,
        recipient_id: str,
        message_text: str
    ) -> 'SendMessageResponse':
        """
        Send a direct message to an Instagram user.

        Raises:
            InstagramAPIError: If the request failed
        """
        pass


class IReplyGenerator(ABC):
    """Interface for generating reply text with a language model"""

    @abstractmethod
    async def generate_reply(self, message: str, prompt: Optional[str] = None) -> str:
        """
        Generate a reply to an inbound direct message.

        Raises:
            ReplyGenerationError: If generation failed or produced no text
        """
        pass
