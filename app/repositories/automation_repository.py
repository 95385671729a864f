"""
Automation store backed by SQLAlchemy.

Handles conversion between ORM models (app/db/models.py) and the domain
entities used by the webhook pipeline, and decrypts access tokens on the way
out.

Each write commits on its own: one event's outcome stays durable even if
a later event in the same delivery fails.
"""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from app.core.interfaces import IAutomationStore
from app.db.models import (
    ActivityLogModel,
    AutomationModel,
    InstagramAccountModel,
    ProcessedEventModel,
)
from app.domain.entities import ActivityLogEntry, AutomationRule, ConnectedAccount, RuleStats
from app.services.encryption_service import decrypt_credential

logger = logging.getLogger(__name__)

# Attempts at a stats write before a concurrent-update conflict is raised
STATS_UPDATE_ATTEMPTS = 3


class AutomationRepository(IAutomationStore):
    """SQLAlchemy implementation of IAutomationStore"""

    def __init__(self, session: AsyncSession):
        self._db = session

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    async def find_account_by_business_id(self, business_id: str) -> Optional[ConnectedAccount]:
        result = await self._db.execute(
            select(InstagramAccountModel)
            .where(InstagramAccountModel.ig_business_account_id == business_id)
            .order_by(InstagramAccountModel.created_at)
        )
        return self._account_from_orm(result.scalars().first())

    async def find_account_by_instagram_user_id(self, instagram_user_id: str) -> Optional[ConnectedAccount]:
        result = await self._db.execute(
            select(InstagramAccountModel)
            .where(InstagramAccountModel.instagram_user_id == instagram_user_id)
            .order_by(InstagramAccountModel.created_at)
        )
        return self._account_from_orm(result.scalars().first())

    async def get_account(self, account_id: str) -> Optional[ConnectedAccount]:
        db_account = await self._db.get(InstagramAccountModel, account_id)
        return self._account_from_orm(db_account)

    async def update_account_business_id(self, account_id: str, business_id: str) -> None:
        db_account = await self._db.get(InstagramAccountModel, account_id)
        if db_account is None:
            logger.warning(f"Cannot link business ID: account {account_id} no longer exists")
            return
        db_account.ig_business_account_id = business_id
        await self._commit()
        logger.info(f"🔗 Linked business ID {business_id} to account {account_id}")

    # ------------------------------------------------------------------
    # Automations
    # ------------------------------------------------------------------

    async def find_active_rules_all_accounts(self, kind: str) -> List[AutomationRule]:
        result = await self._db.execute(
            select(AutomationModel)
            .where(AutomationModel.type == kind, AutomationModel.is_active.is_(True))
            .order_by(AutomationModel.created_at)
        )
        return [self._rule_from_orm(row) for row in result.scalars().all()]

    async def find_rules_by_account(self, account_id: str) -> List[AutomationRule]:
        result = await self._db.execute(
            select(AutomationModel)
            .where(AutomationModel.instagram_account_id == account_id)
            .order_by(AutomationModel.created_at)
        )
        return [self._rule_from_orm(row) for row in result.scalars().all()]

    async def update_rule_stats(self, rule_id: str, stats: RuleStats) -> None:
        db_rule = await self._load_rule_for_update(rule_id)
        if db_rule is None:
            logger.warning(f"Cannot update stats: automation {rule_id} no longer exists")
            return
        # Assign a new dict so the JSON column is flagged as modified
        db_rule.stats = stats.to_dict()
        await self._commit()

    # ------------------------------------------------------------------
    # Activity
    # ------------------------------------------------------------------

    async def append_activity_log(self, entry: ActivityLogEntry) -> None:
        self._db.add(self._entry_to_orm(entry))
        await self._commit()

    async def record_fire(
        self,
        rule_id: str,
        entry: ActivityLogEntry,
        now: Optional[datetime] = None
    ) -> Optional[RuleStats]:
        """
        Count one successful reply and append its activity entry.

        The counter is bumped from the row as currently stored, never from
        stats loaded earlier. If another writer commits in between, the
        versioned UPDATE fails and the whole write is redone on a fresh read.

        Returns:
            The stats now stored, or None if the automation no longer exists

        Raises:
            StaleDataError: if every attempt lost to a concurrent update
        """
        for attempt in range(1, STATS_UPDATE_ATTEMPTS + 1):
            db_rule = await self._load_rule_for_update(rule_id)
            if db_rule is None:
                logger.warning(f"Cannot update stats: automation {rule_id} no longer exists")
                return None

            stats = RuleStats.from_dict(db_rule.stats).bumped(now)
            db_rule.stats = stats.to_dict()
            self._db.add(self._entry_to_orm(entry))

            try:
                await self._db.commit()
            except StaleDataError:
                await self._db.rollback()
                if attempt == STATS_UPDATE_ATTEMPTS:
                    raise
                logger.warning(
                    f"⚠️ Automation {rule_id} was updated concurrently, "
                    f"retrying stats write ({attempt}/{STATS_UPDATE_ATTEMPTS})"
                )
            except Exception:
                await self._db.rollback()
                raise
            else:
                return stats

    async def claim_event(self, event_id: str, kind: str) -> bool:
        self._db.add(ProcessedEventModel(event_id=event_id, kind=kind))
        try:
            await self._db.commit()
        except IntegrityError:
            await self._db.rollback()
            return False
        return True

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _load_rule_for_update(self, rule_id: str) -> Optional[AutomationModel]:
        # populate_existing overwrites whatever this session cached for the row
        result = await self._db.execute(
            select(AutomationModel)
            .where(AutomationModel.id == rule_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def _commit(self) -> None:
        try:
            await self._db.commit()
        except Exception:
            await self._db.rollback()
            raise

    @staticmethod
    def _account_from_orm(db_account: Optional[InstagramAccountModel]) -> Optional[ConnectedAccount]:
        if db_account is None:
            return None

        access_token = None
        if db_account.access_token_encrypted:
            try:
                access_token = decrypt_credential(db_account.access_token_encrypted)
            except ValueError as e:
                # Treated as a missing credential; replies fail until the account reconnects
                logger.error(f"❌ Cannot decrypt access token for account {db_account.id}: {e}")

        return ConnectedAccount(
            id=db_account.id,
            user_id=db_account.user_id,
            instagram_user_id=db_account.instagram_user_id,
            username=db_account.username,
            ig_business_account_id=db_account.ig_business_account_id,
            access_token=access_token,
            token_expires_at=db_account.token_expires_at,
            is_active=bool(db_account.is_active),
        )

    @staticmethod
    def _rule_from_orm(db_rule: AutomationModel) -> AutomationRule:
        return AutomationRule(
            id=db_rule.id,
            user_id=db_rule.user_id,
            account_id=db_rule.instagram_account_id,
            kind=db_rule.type,
            title=db_rule.title,
            is_active=bool(db_rule.is_active),
            config=dict(db_rule.config or {}),
            stats=RuleStats.from_dict(db_rule.stats),
        )

    @staticmethod
    def _entry_to_orm(entry: ActivityLogEntry) -> ActivityLogModel:
        return ActivityLogModel(
            user_id=entry.user_id,
            automation_id=entry.automation_id,
            action=entry.action,
            target_username=entry.target_username,
            details=entry.details,
            created_at=entry.created_at,
        )
