import logging
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .clock import Clock, utcnow
from .config import IntakePolicy, get_policy, get_settings
from .database import SessionLocal
from .errors import TrackerError
from .routes import admin, health, user
from .services.intake import IntakeEngine
from .storage import ProofStorage

logger = logging.getLogger(__name__)


async def handle_tracker_error(request: Request, exc: TrackerError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


def create_app(
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    policy: IntakePolicy | None = None,
    clock: Clock = utcnow,
    upload_dir: str | None = None,
) -> FastAPI:
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    app = FastAPI(title=settings.app_name)

    # Basic CORS setup for the admin and worker frontends.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.intake = IntakeEngine(
        session_factory or SessionLocal,
        policy or get_policy(),
        clock=clock,
    )
    proofs_dir = upload_dir or settings.upload_dir
    app.state.proof_storage = ProofStorage(proofs_dir, settings.upload_url_prefix)

    app.add_exception_handler(TrackerError, handle_tracker_error)  # type: ignore[arg-type]

    # Routers
    app.include_router(health.router)
    app.include_router(user.router)
    app.include_router(admin.router)

    # Stored proof files
    Path(proofs_dir).mkdir(parents=True, exist_ok=True)
    app.mount(
        settings.upload_url_prefix,
        StaticFiles(directory=proofs_dir),
        name="proofs",
    )

    return app


app = create_app()
