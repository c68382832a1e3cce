"""
Local mirror of the user directory.

Authentication lives elsewhere; this only keeps what the core needs to check
assignees (role and active flag) and to label reports.
"""

import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..errors import ConflictError, NotFoundError
from ..models import User, UserRole

logger = logging.getLogger(__name__)


async def create_user(
    session: AsyncSession, name: str, email: str, role: UserRole = UserRole.USER
) -> User:
    user = User(name=name.strip(), email=email.strip().lower(), role=role, is_active=True)
    session.add(user)
    try:
        await session.flush()
    except IntegrityError as exc:
        raise ConflictError("Email already exists", email=user.email) from exc
    logger.info("Created %s user %s (%s)", role.value, user.id, user.email)
    return user


async def list_users(session: AsyncSession) -> list[User]:
    result = await session.execute(select(User).order_by(User.created_at.desc(), User.id.desc()))
    return list(result.scalars().all())


async def set_user_status(session: AsyncSession, user_id: int, is_active: bool) -> User:
    user = await session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found", user_id=user_id)
    user.is_active = is_active
    await session.flush()
    logger.info("User %s is_active=%s", user_id, is_active)
    return user
