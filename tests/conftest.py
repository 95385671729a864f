"""
Pytest configuration and shared fixtures.
"""
import os

# Must be set before app.config is imported anywhere
os.environ["ENVIRONMENT"] = "development"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["SESSION_SECRET"] = "test-session-secret"
os.environ["INSTAGRAM_WEBHOOK_VERIFY_TOKEN"] = "test_verify_token"
os.environ["INSTAGRAM_APP_SECRET"] = ""
os.environ["OPENAI_API_KEY"] = ""
os.environ["DEDUPE_EVENTS"] = "true"
os.environ["RECORD_FAILED_REPLIES"] = "false"

import pytest
import pytest_asyncio

from app.db.connection import init_db, close_db, get_session_maker
from app.db.models import AutomationModel, InstagramAccountModel, User
from app.repositories.automation_repository import AutomationRepository
from app.services.encryption_service import encrypt_credential, reset_encryption_service
from tests.fakes import FakeReplyGenerator, FakeReplySender


@pytest_asyncio.fixture(scope="function", autouse=True)
async def clean_database():
    """
    Fresh in-memory database for each test.

    StaticPool keeps a single connection per engine, so every init_db()
    starts from empty tables.
    """
    reset_encryption_service()
    await init_db()

    yield

    await close_db()
    reset_encryption_service()


@pytest_asyncio.fixture
async def db_session():
    async with get_session_maker()() as session:
        yield session


@pytest_asyncio.fixture
async def store(db_session):
    return AutomationRepository(db_session)


@pytest_asyncio.fixture
async def user(db_session):
    db_user = User(external_id="user_ext_1", email="owner@example.com")
    db_session.add(db_user)
    await db_session.commit()
    return db_user


@pytest.fixture
def make_account(db_session, user):
    """Factory for connected accounts (access token stored encrypted)."""

    async def _make_account(
        instagram_user_id: str = "17841400000000001",
        business_id: str = None,
        username: str = "mybrand",
        access_token: str = "IGAAtesttoken123",
        is_active: bool = True
    ) -> InstagramAccountModel:
        account = InstagramAccountModel(
            user_id=user.id,
            instagram_user_id=instagram_user_id,
            ig_business_account_id=business_id,
            username=username,
            access_token_encrypted=encrypt_credential(access_token) if access_token else None,
            is_active=is_active,
        )
        db_session.add(account)
        await db_session.commit()
        return account

    return _make_account


@pytest.fixture
def make_rule(db_session):
    """Factory for automations."""

    async def _make_rule(
        account: InstagramAccountModel,
        kind: str = "comment_to_dm",
        config: dict = None,
        is_active: bool = True,
        title: str = "Test automation",
        stats: dict = None
    ) -> AutomationModel:
        rule = AutomationModel(
            user_id=account.user_id,
            instagram_account_id=account.id,
            type=kind,
            title=title,
            is_active=is_active,
            config=config if config is not None else {},
            stats=stats if stats is not None else {},
        )
        db_session.add(rule)
        await db_session.commit()
        return rule

    return _make_rule


@pytest.fixture
def fake_sender():
    return FakeReplySender()


@pytest.fixture
def fake_generator():
    return FakeReplyGenerator()
