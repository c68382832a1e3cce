import logging

from fastapi import APIRouter, Depends
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import IntakePolicy, get_settings
from ..database import get_session
from ..models import Spot
from .deps import get_intake_policy

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health", summary="Health check")
async def health_check(
    session: AsyncSession = Depends(get_session),
    policy: IntakePolicy = Depends(get_intake_policy),
) -> dict:
    """Report database reachability and the matching policy in force."""
    settings = get_settings()

    try:
        spots = (await session.execute(select(func.count(Spot.id)))).scalar_one()
        database = {"ok": True, "spots": spots}
    except SQLAlchemyError as exc:
        logger.warning("Health check could not reach the database: %s", exc)
        database = {"ok": False, "message": str(exc)}

    return {
        "status": "ok" if database["ok"] else "degraded",
        "app": settings.app_name,
        "environment": settings.environment,
        "database": database,
        "policy": {
            "match_radius_m": policy.match_radius_m,
            "max_assign_distance_m": policy.max_assign_distance_m,
            "cooldown_months": policy.cooldown_months,
            "enforce_cooldown_on_assignments": policy.enforce_cooldown_on_assignments,
        },
    }
