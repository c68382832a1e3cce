"""
Create the first admin user if it does not exist yet.

Usage (example):

    python -m spot_tracker.scripts.seed_admin --email admin@example.com --name "System Admin"
"""

from __future__ import annotations

import argparse
import asyncio
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..database import SessionLocal
from ..models import User, UserRole
from ..services.users import create_user

logger = logging.getLogger(__name__)


async def seed_admin(
    email: str,
    name: str,
    session_factory: async_sessionmaker[AsyncSession] = SessionLocal,
) -> tuple[User, bool]:
    """Return the admin and whether it was created by this call."""
    async with session_factory() as session:
        result = await session.execute(select(User).where(User.email == email.strip().lower()))
        existing: User | None = result.scalar_one_or_none()
        if existing is not None:
            return existing, False

        user = await create_user(session, name, email, UserRole.ADMIN)
        await session.commit()
        return user, True


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Seed the initial admin user.")
    parser.add_argument("--email", default="admin@example.com")
    parser.add_argument("--name", default="System Admin")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")

    user, created = asyncio.run(seed_admin(args.email, args.name))
    if created:
        logger.info("Admin created: id=%s email=%s", user.id, user.email)
    else:
        logger.info("Admin already exists: id=%s email=%s", user.id, user.email)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
