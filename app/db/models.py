"""
SQLAlchemy ORM models for database tables.

Only the tables the automation engine reads or writes. Accounts and
automations are created by the dashboard (or the operator CLI).
"""
import uuid

from sqlalchemy import Column, String, Text, DateTime, Index, ForeignKey, Boolean, Integer, JSON, UniqueConstraint
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


def _new_id() -> str:
    return str(uuid.uuid4())


class User(Base):
    """Owner of connected Instagram accounts."""
    __tablename__ = "users"

    id = Column(String(50), primary_key=True, default=_new_id)
    external_id = Column(String(100), unique=True, nullable=False)  # ID from the auth provider
    email = Column(String(255), nullable=False)
    created_at = Column(DateTime, nullable=False, default=func.now())


class InstagramAccountModel(Base):
    """
    Connected Instagram account.

    ig_business_account_id is unknown at connect time for most accounts; the
    webhook engine back-fills it the first time a delivery resolves.
    """
    __tablename__ = "instagram_accounts"

    id = Column(String(50), primary_key=True, default=_new_id)
    user_id = Column(String(50), ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    instagram_user_id = Column(String(50), nullable=False)  # ID returned by the OAuth exchange
    ig_business_account_id = Column(String(50), nullable=True)  # ID used in webhook entries
    username = Column(String(100), nullable=False)
    access_token_encrypted = Column(Text, nullable=True)  # Fernet-encrypted access token
    token_expires_at = Column(DateTime, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=func.now())
    updated_at = Column(DateTime, nullable=False, default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint('user_id', 'instagram_user_id', name='uq_user_instagram_user'),
        Index('idx_ig_business_account_id', 'ig_business_account_id'),
        Index('idx_instagram_user_id', 'instagram_user_id'),
    )

    automations = relationship(
        "AutomationModel",
        back_populates="account",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class AutomationModel(Base):
    """
    User-defined automation rule.

    config keys by type:
    - comment_to_dm: keywords, media_id, message_template
    - auto_dm_reply: trigger_words, prompt
    stats keys: total_replies, last_triggered

    version is bumped on every ORM update; an UPDATE against an outdated
    version raises StaleDataError instead of overwriting newer stats.
    """
    __tablename__ = "automations"

    id = Column(String(50), primary_key=True, default=_new_id)
    user_id = Column(String(50), ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    instagram_account_id = Column(
        String(50),
        ForeignKey('instagram_accounts.id', ondelete='CASCADE'),
        nullable=False
    )
    type = Column(String(50), nullable=False)
    title = Column(String(200), nullable=False)
    is_active = Column(Boolean, nullable=False, default=False)
    config = Column(JSON, nullable=True)
    stats = Column(JSON, nullable=True, default=dict)
    created_at = Column(DateTime, nullable=False, default=func.now())
    updated_at = Column(DateTime, nullable=False, default=func.now(), onupdate=func.now())
    version = Column(Integer, nullable=False)

    __table_args__ = (
        Index('idx_automation_account', 'instagram_account_id'),
        Index('idx_automation_type_active', 'type', 'is_active'),
    )
    __mapper_args__ = {"version_id_col": version}

    account = relationship("InstagramAccountModel", back_populates="automations")


class ActivityLogModel(Base):
    """Append-only audit trail shown on the dashboard."""
    __tablename__ = "activity_log"

    id = Column(String(50), primary_key=True, default=_new_id)
    user_id = Column(String(50), ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    automation_id = Column(String(50), ForeignKey('automations.id', ondelete='SET NULL'), nullable=True)
    action = Column(String(50), nullable=False)
    target_username = Column(String(100), nullable=True)
    details = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=func.now())

    __table_args__ = (
        Index('idx_activity_user_created', 'user_id', 'created_at'),
    )


class ProcessedEventModel(Base):
    """Platform event IDs already dispatched (webhook redelivery suppression)."""
    __tablename__ = "processed_events"

    event_id = Column(String(200), primary_key=True)  # comment ID or message mid
    kind = Column(String(20), nullable=False)  # 'comment' or 'message'
    created_at = Column(DateTime, nullable=False, default=func.now())
