from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import IntakePolicy
from ..database import get_session
from ..models import User, UserRole
from ..services.intake import IntakeEngine
from ..storage import ProofStorage


@dataclass(frozen=True)
class Caller:
    """The authenticated actor. Identity is established upstream."""

    user_id: int
    role: UserRole


async def get_caller(
    x_user_id: int = Header(..., alias="X-User-Id"),
    session: AsyncSession = Depends(get_session),
) -> Caller:
    user = await session.get(User, x_user_id)
    if user is None or not user.is_active:
        raise HTTPException(status_code=401, detail="Unknown or inactive user")
    return Caller(user_id=user.id, role=user.role)


def require_role(role: UserRole) -> Callable[..., Awaitable[Caller]]:
    async def dependency(caller: Caller = Depends(get_caller)) -> Caller:
        if caller.role != role:
            raise HTTPException(status_code=403, detail="Forbidden")
        return caller

    return dependency


def get_intake(request: Request) -> IntakeEngine:
    return request.app.state.intake


def get_intake_policy(request: Request) -> IntakePolicy:
    return request.app.state.intake.policy


def get_proof_storage(request: Request) -> ProofStorage:
    return request.app.state.proof_storage
