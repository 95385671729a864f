"""
Account resolution for webhook deliveries.

Webhook entries identify the account with whichever ID the platform picked
for that app and payload type: usually the business account ID, sometimes
the Instagram user ID we stored at connect time. Neither is guaranteed, so
lookups fall back in order and the business ID is back-filled once found.
"""
import logging
from typing import Optional

from app.core.interfaces import IAutomationStore
from app.domain.entities import ConnectedAccount, RuleKind

logger = logging.getLogger(__name__)


class AccountResolver:
    """Maps a platform account ID (and optionally a media ID) to a connected account."""

    def __init__(self, store: IAutomationStore):
        self._store = store

    async def resolve(self, platform_account_id: str, media_id: Optional[str] = None) -> Optional[ConnectedAccount]:
        """
        Find the connected account a webhook entry belongs to.

        Resolution order:
        1. Stored business account ID
        2. Stored Instagram user ID
        3. Owner of the first active comment_to_dm rule targeting media_id
           (or targeting all media), when media_id is given

        Args:
            platform_account_id: entry.id from the webhook payload
            media_id: ID of the post a comment was made on, if any

        Returns:
            The account, or None when nothing matched
        """
        account = await self._store.find_account_by_business_id(platform_account_id)
        if account is not None and account.is_active:
            return account

        account = await self._store.find_account_by_instagram_user_id(platform_account_id)

        if (account is None or not account.is_active) and media_id:
            account = await self._resolve_by_media(media_id)

        if account is None or not account.is_active:
            logger.info(
                f"No connected account found for webhook account ID {platform_account_id} - "
                f"the user may need to reconnect their Instagram account"
            )
            return None

        if not account.ig_business_account_id:
            await self._store.update_account_business_id(account.id, platform_account_id)
            account.ig_business_account_id = platform_account_id

        return account

    async def _resolve_by_media(self, media_id: str) -> Optional[ConnectedAccount]:
        # Linear scan over every active comment rule
        # TODO: index automations by media_id once rule counts make this scan noticeable
        rules = await self._store.find_active_rules_all_accounts(RuleKind.COMMENT_TO_DM.value)
        for rule in rules:
            if rule.media_id and rule.media_id != media_id:
                continue
            account = await self._store.get_account(rule.account_id)
            if account is not None and account.is_active:
                logger.info(f"Resolved account {account.id} via automation {rule.id} targeting media {media_id}")
                return account
        return None
