#!/usr/bin/env python3
"""
CLI tool to manage connected accounts and automations without the dashboard.

Usage:
    python -m app.cli.manage_automations create-user --external-id user_1 --email me@example.com
    python -m app.cli.manage_automations connect-account --user-id <id> --instagram-user-id 1784... \
        --username mybrand --access-token IGAA...
    python -m app.cli.manage_automations add-rule --account-id <id> --type comment_to_dm \
        --title "Guide" --keywords guide,pdf --message "Here is the guide: https://..."
    python -m app.cli.manage_automations add-rule --account-id <id> --type auto_dm_reply \
        --title "Assistant" --prompt "You answer questions about our store"
    python -m app.cli.manage_automations list-rules --account-id <id>
    python -m app.cli.manage_automations activity --user-id <id> --limit 20
    python -m app.cli.manage_automations simulate-comment --account-id 1784... --text "guide please"
"""
import argparse
import asyncio
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

import httpx
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from app.config import settings
from app.db.connection import close_db, get_session_maker, init_db
from app.db.models import ActivityLogModel, AutomationModel, InstagramAccountModel, User
from app.domain.entities import RuleKind
from app.services.encryption_service import encrypt_credential
from app.utils.webhook_simulator import WebhookSimulator


def _split_words(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [word.strip() for word in value.split(",") if word.strip()]


async def create_user(external_id: str, email: str):
    """Create the owner of connected accounts"""
    async with get_session_maker()() as session:
        user = User(external_id=external_id, email=email)
        session.add(user)
        try:
            await session.commit()
        except IntegrityError:
            await session.rollback()
            print(f"[ERROR] User with external ID '{external_id}' already exists")
            return
        print(f"[SUCCESS] User created: {user.id}")


async def connect_account(
    user_id: str,
    instagram_user_id: str,
    username: str,
    access_token: str,
    business_id: Optional[str] = None,
    expires_in_days: Optional[int] = None
):
    """Store a connected account with an encrypted access token"""
    async with get_session_maker()() as session:
        if await session.get(User, user_id) is None:
            print(f"[ERROR] User '{user_id}' not found")
            return

        expires_at = None
        if expires_in_days:
            expires_at = datetime.now(timezone.utc) + timedelta(days=expires_in_days)

        account = InstagramAccountModel(
            user_id=user_id,
            instagram_user_id=instagram_user_id,
            ig_business_account_id=business_id,
            username=username,
            access_token_encrypted=encrypt_credential(access_token),
            token_expires_at=expires_at,
        )
        session.add(account)
        try:
            await session.commit()
        except IntegrityError:
            await session.rollback()
            print(f"[ERROR] Instagram user {instagram_user_id} is already connected for this user")
            return
        print(f"[SUCCESS] Account connected: {account.id} (@{username})")


async def add_rule(
    account_id: str,
    rule_type: str,
    title: str,
    keywords: List[str],
    media_id: Optional[str],
    message: Optional[str],
    prompt: Optional[str],
    inactive: bool = False
):
    """Create an automation for a connected account"""
    if rule_type == RuleKind.COMMENT_TO_DM.value:
        if not keywords or not message:
            print("[ERROR] comment_to_dm automations need --keywords and --message")
            return
        config = {"keywords": keywords, "message_template": message}
        if media_id:
            config["media_id"] = media_id
    else:
        config = {"trigger_words": keywords, "prompt": prompt or ""}

    async with get_session_maker()() as session:
        account = await session.get(InstagramAccountModel, account_id)
        if account is None:
            print(f"[ERROR] Account '{account_id}' not found")
            return

        rule = AutomationModel(
            user_id=account.user_id,
            instagram_account_id=account.id,
            type=rule_type,
            title=title,
            is_active=not inactive,
            config=config,
            stats={},
        )
        session.add(rule)
        await session.commit()
        print(f"[SUCCESS] Automation created: {rule.id} ({rule_type}, active={rule.is_active})")


async def list_rules(account_id: str):
    """List automations of an account with their statistics"""
    async with get_session_maker()() as session:
        result = await session.execute(
            select(AutomationModel)
            .where(AutomationModel.instagram_account_id == account_id)
            .order_by(AutomationModel.created_at)
        )
        rules = result.scalars().all()

    if not rules:
        print("No automations found")
        return

    print(f"{'ID':<38} {'TYPE':<15} {'ACTIVE':<7} {'REPLIES':<8} {'LAST TRIGGERED':<32} TITLE")
    print("-" * 120)
    for rule in rules:
        stats = rule.stats or {}
        print(
            f"{rule.id:<38} {rule.type:<15} {str(rule.is_active):<7} "
            f"{stats.get('total_replies', 0):<8} {str(stats.get('last_triggered') or '-'):<32} {rule.title}"
        )


async def show_activity(user_id: str, limit: int):
    """Show the latest activity log entries of a user"""
    async with get_session_maker()() as session:
        result = await session.execute(
            select(ActivityLogModel)
            .where(ActivityLogModel.user_id == user_id)
            .order_by(ActivityLogModel.created_at.desc())
            .limit(limit)
        )
        entries = result.scalars().all()

    if not entries:
        print("No activity yet")
        return

    for entry in entries:
        print(f"{entry.created_at:%Y-%m-%d %H:%M:%S}  {entry.action:<22} @{entry.target_username or '-':<20} {entry.details or ''}")


async def simulate(url: str, entry: dict):
    """POST a signed webhook delivery to a running server"""
    simulator = WebhookSimulator(settings.instagram_app_secret)
    payload_bytes, signature = simulator.sign(simulator.envelope([entry]))

    async with httpx.AsyncClient() as client:
        response = await client.post(
            url,
            content=payload_bytes,
            headers={"Content-Type": "application/json", "X-Hub-Signature-256": signature},
            timeout=10.0,
        )
    print(f"📊 Status Code: {response.status_code}")
    print(f"📄 Response: {response.text}")


async def run(args: argparse.Namespace):
    if args.command == "simulate-comment":
        entry = WebhookSimulator.comment_entry(
            account_id=args.account_id,
            text=args.text,
            media_id=args.media_id,
            username=args.username,
        )
        await simulate(args.url, entry)
        return
    if args.command == "simulate-message":
        entry = WebhookSimulator.message_entry(
            account_id=args.account_id,
            sender_id=args.sender_id,
            text=args.text,
        )
        await simulate(args.url, entry)
        return

    await init_db()
    try:
        if args.command == "create-user":
            await create_user(args.external_id, args.email)
        elif args.command == "connect-account":
            await connect_account(
                args.user_id,
                args.instagram_user_id,
                args.username,
                args.access_token,
                business_id=args.business_id,
                expires_in_days=args.expires_in_days,
            )
        elif args.command == "add-rule":
            await add_rule(
                args.account_id,
                args.type,
                args.title,
                _split_words(args.keywords),
                args.media_id,
                args.message,
                args.prompt,
                inactive=args.inactive,
            )
        elif args.command == "list-rules":
            await list_rules(args.account_id)
        elif args.command == "activity":
            await show_activity(args.user_id, args.limit)
    finally:
        await close_db()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Manage Instagram automations")
    subparsers = parser.add_subparsers(dest="command", required=True)

    create_user_parser = subparsers.add_parser("create-user", help="Create an account owner")
    create_user_parser.add_argument("--external-id", required=True)
    create_user_parser.add_argument("--email", required=True)

    connect_parser = subparsers.add_parser("connect-account", help="Connect an Instagram account")
    connect_parser.add_argument("--user-id", required=True)
    connect_parser.add_argument("--instagram-user-id", required=True)
    connect_parser.add_argument("--username", required=True)
    connect_parser.add_argument("--access-token", required=True)
    connect_parser.add_argument("--business-id", help="Business account ID, if already known")
    connect_parser.add_argument("--expires-in-days", type=int)

    rule_parser = subparsers.add_parser("add-rule", help="Create an automation")
    rule_parser.add_argument("--account-id", required=True)
    rule_parser.add_argument("--type", required=True, choices=[kind.value for kind in RuleKind])
    rule_parser.add_argument("--title", required=True)
    rule_parser.add_argument("--keywords", help="Comma-separated keywords / trigger words")
    rule_parser.add_argument("--media-id", help="Only react to comments on this post")
    rule_parser.add_argument("--message", help="Private reply text (comment_to_dm)")
    rule_parser.add_argument("--prompt", help="Reply prompt (auto_dm_reply)")
    rule_parser.add_argument("--inactive", action="store_true", help="Create the automation disabled")

    list_parser = subparsers.add_parser("list-rules", help="List automations with stats")
    list_parser.add_argument("--account-id", required=True)

    activity_parser = subparsers.add_parser("activity", help="Show recent activity")
    activity_parser.add_argument("--user-id", required=True)
    activity_parser.add_argument("--limit", type=int, default=20)

    default_url = f"http://localhost:{settings.port}/webhooks/instagram"

    comment_parser = subparsers.add_parser("simulate-comment", help="Send a fake comment webhook")
    comment_parser.add_argument("--account-id", required=True, help="Webhook entry ID (business or user ID)")
    comment_parser.add_argument("--text", required=True)
    comment_parser.add_argument("--media-id")
    comment_parser.add_argument("--username", default="test_user")
    comment_parser.add_argument("--url", default=default_url)

    message_parser = subparsers.add_parser("simulate-message", help="Send a fake direct-message webhook")
    message_parser.add_argument("--account-id", required=True)
    message_parser.add_argument("--sender-id", required=True)
    message_parser.add_argument("--text", required=True)
    message_parser.add_argument("--url", default=default_url)

    return parser


def main():
    args = build_parser().parse_args()
    asyncio.run(run(args))


if __name__ == "__main__":
    main()
