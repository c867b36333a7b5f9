#!/usr/bin/env python3
"""Create (or reuse) a user and print a development access token.

Usage:
    python scripts/issue_token.py artist@example.com --role artist
    python scripts/issue_token.py venue1@example.com --role venue --name "The Lantern"
    python scripts/issue_token.py admin@example.com --role admin --minutes 120
"""

import argparse
import asyncio
import sys
from datetime import timedelta
from pathlib import Path

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from sqlalchemy import select

from app.core.security import create_user_token
from app.database import async_session_maker, close_db
from app.models.user import User

ROLES = ("artist", "venue", "admin")


async def issue_token(email: str, role: str, display_name: str | None, minutes: int) -> str:
    """Ensure the user exists with the given role and return a token for it."""
    async with async_session_maker() as session:
        result = await session.execute(select(User).where(User.email == email))
        user = result.scalar_one_or_none()

        if user:
            user.role = role
            user.is_active = True
            if display_name:
                user.display_name = display_name
            print(f"Using existing user: {email} ({role})", file=sys.stderr)
        else:
            user = User(email=email, role=role, display_name=display_name, is_active=True)
            session.add(user)
            print(f"Created user: {email} ({role})", file=sys.stderr)

        await session.commit()
        await session.refresh(user)
        return create_user_token(str(user.id), user.role, timedelta(minutes=minutes))


def main() -> None:
    parser = argparse.ArgumentParser(description="Issue a development access token")
    parser.add_argument("email")
    parser.add_argument("--role", choices=ROLES, default="artist")
    parser.add_argument("--name", dest="display_name", default=None)
    parser.add_argument("--minutes", type=int, default=60)
    args = parser.parse_args()

    async def run() -> str:
        try:
            return await issue_token(args.email, args.role, args.display_name, args.minutes)
        finally:
            await close_db()

    print(asyncio.run(run()))


if __name__ == "__main__":
    main()
