import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from agentproof.core.exceptions import ProofPipelineError
from agentproof.database import init_db
from agentproof.models import *  # noqa: F403

APP_VERSION = "0.1.0"
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # Startup: create tables
    await init_db()

    from agentproof.config import settings
    from agentproof.database import async_session

    proof_task = None
    if settings.proof_schedule_enabled:
        from agentproof.services.proof_pipeline import scheduled_proof_loop

        proof_task = asyncio.create_task(
            scheduled_proof_loop(async_session, settings.proof_schedule_interval_hours)
        )
        logger.info(
            "Scheduled proof generation every %s hours", settings.proof_schedule_interval_hours
        )

    yield

    # Shutdown: cancel background tasks and dispose connection pool
    if proof_task is not None:
        proof_task.cancel()
    from agentproof.core.async_tasks import drain_background_tasks
    await drain_background_tasks(timeout_seconds=5.0)
    from agentproof.database import dispose_engine
    await dispose_engine()


async def proof_pipeline_error_handler(request: Request, exc: ProofPipelineError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", exc.kind, request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.kind, "detail": exc.message},
    )


def create_app() -> FastAPI:
    app = FastAPI(
        title="Agent Reputation Proofs",
        description="Zero-knowledge reputation proofs for AI agents, aggregated through a relayer",
        version=APP_VERSION,
        lifespan=lifespan,
    )

    from agentproof.config import settings
    allowed_origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
    if allowed_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=allowed_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.add_exception_handler(ProofPipelineError, proof_pipeline_error_handler)

    from agentproof.api import API_PREFIX, API_ROUTERS
    for router in API_ROUTERS:
        app.include_router(router, prefix=API_PREFIX)

    return app


app = create_app()
