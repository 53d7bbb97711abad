#!/usr/bin/env python3
"""
Maintenance jobs for cron or a container scheduler.

Usage:
    ballotbox-jobs send-invitations
    ballotbox-jobs create-admin --email EMAIL --name NAME --password PASSWORD
"""
import argparse
import asyncio
import logging
import sys

from sqlalchemy import select

from ballotbox.core.config import settings
from ballotbox.core.security import get_password_hash
from ballotbox.db.base import init_db, session_scope
from ballotbox.models.user import User, UserRole
from ballotbox.services.reminders import send_pending_invitations

logger = logging.getLogger("ballotbox.jobs")


async def run_invitations() -> int:
    async with session_scope() as db:
        run = await send_pending_invitations(db)
    for error in run.errors:
        logger.warning(error)
    print(f"Processed {run.polls_processed} polls, sent {run.emails_sent} emails, {len(run.errors)} errors")
    return 1 if run.errors else 0


async def create_admin(email: str, name: str, password: str) -> int:
    await init_db()
    async with session_scope() as db:
        result = await db.execute(select(User).where(User.email == email.lower()))
        if result.scalar_one_or_none() is not None:
            print(f"User {email} already exists")
            return 1
        db.add(User(
            email=email.lower(),
            name=name,
            password_hash=get_password_hash(password),
            role=UserRole.ADMIN,
            group_ids=[],
        ))
    print(f"Admin {email} created")
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Ballotbox maintenance jobs")
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("send-invitations", help="Mail pending invitations of running polls")

    admin = commands.add_parser("create-admin", help="Create an admin account")
    admin.add_argument("--email", required=True)
    admin.add_argument("--name", required=True)
    admin.add_argument("--password", required=True)

    args = parser.parse_args()
    logging.basicConfig(level=settings.LOG_LEVEL)

    if args.command == "send-invitations":
        code = asyncio.run(run_invitations())
    else:
        code = asyncio.run(create_admin(args.email, args.name, args.password))
    sys.exit(code)


if __name__ == "__main__":
    main()
