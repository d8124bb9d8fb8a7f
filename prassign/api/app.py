"""FastAPI application exposing the assignment engine over HTTP."""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Awaitable, TypeVar

from fastapi import APIRouter, Depends, FastAPI, Query, Request

from prassign.api.errors import install_error_handlers
from prassign.api.schemas import (
    CreatePullRequestRequest,
    MergePullRequestRequest,
    PullRequestResponse,
    ReassignResponse,
    ReassignReviewerRequest,
    SetIsActiveRequest,
    StatsResponse,
    TeamResponse,
    UserResponse,
    UserReviewsResponse,
)
from prassign.assignment.engine import AssignmentEngine
from prassign.config import AssignmentConfig
from prassign.errors import DeadlineExceeded
from prassign.models.schemas import Team

logger = logging.getLogger(__name__)

APP_VERSION = "0.1.0"

T = TypeVar("T")


def get_engine(request: Request) -> AssignmentEngine:
    return request.app.state.engine


async def run_command(engine: AssignmentEngine, command: Awaitable[T]) -> T:
    """Await an engine command under the configured per-call deadline."""
    try:
        return await asyncio.wait_for(command, timeout=engine.config.command_timeout)
    except asyncio.TimeoutError as exc:
        raise DeadlineExceeded(
            f"command exceeded {engine.config.command_timeout:.1f}s"
        ) from exc


# ── Teams ────────────────────────────────────────────────────────────────────

team_router = APIRouter(prefix="/team", tags=["Teams"])


@team_router.post("/add", response_model=TeamResponse, status_code=201)
async def create_team(
    team: Team, engine: AssignmentEngine = Depends(get_engine)
) -> TeamResponse:
    """Create a team together with its members."""
    created = await run_command(engine, engine.create_team(team))
    return TeamResponse(team=created)


@team_router.get("/get", response_model=Team)
async def get_team(
    team_name: str = Query(..., min_length=1),
    engine: AssignmentEngine = Depends(get_engine),
) -> Team:
    return await run_command(engine, engine.get_team(team_name))


# ── Users ────────────────────────────────────────────────────────────────────

users_router = APIRouter(prefix="/users", tags=["Users"])


@users_router.post("/setIsActive", response_model=UserResponse)
async def set_is_active(
    body: SetIsActiveRequest, engine: AssignmentEngine = Depends(get_engine)
) -> UserResponse:
    user = await run_command(
        engine, engine.set_user_active(body.user_id, body.is_active)
    )
    return UserResponse(user=user)


@users_router.get("/getReview", response_model=UserReviewsResponse)
async def get_review(
    user_id: str = Query(..., min_length=1),
    engine: AssignmentEngine = Depends(get_engine),
) -> UserReviewsResponse:
    """List pull requests the user is assigned to review."""
    prs = await run_command(engine, engine.get_reviews_for_user(user_id))
    return UserReviewsResponse(user_id=user_id, pull_requests=prs)


# ── Pull requests ────────────────────────────────────────────────────────────

pr_router = APIRouter(prefix="/pullRequest", tags=["PullRequests"])


@pr_router.post("/create", response_model=PullRequestResponse, status_code=201)
async def create_pr(
    body: CreatePullRequestRequest, engine: AssignmentEngine = Depends(get_engine)
) -> PullRequestResponse:
    """Create a pull request and assign up to two reviewers from the author's team."""
    pr = await run_command(
        engine,
        engine.create_pr(body.pull_request_id, body.pull_request_name, body.author_id),
    )
    return PullRequestResponse(pr=pr)


@pr_router.post("/merge", response_model=PullRequestResponse)
async def merge_pr(
    body: MergePullRequestRequest, engine: AssignmentEngine = Depends(get_engine)
) -> PullRequestResponse:
    pr = await run_command(engine, engine.set_merge(body.pull_request_id))
    return PullRequestResponse(pr=pr)


@pr_router.post("/reassign", response_model=ReassignResponse)
async def reassign_reviewer(
    body: ReassignReviewerRequest, engine: AssignmentEngine = Depends(get_engine)
) -> ReassignResponse:
    """Replace one reviewer with another active member of the author's team."""
    result = await run_command(
        engine, engine.reassign_reviewer(body.pull_request_id, body.old_user_id)
    )
    return ReassignResponse(pr=result.pull_request, replaced_by=result.replaced_by)


# ── Misc ─────────────────────────────────────────────────────────────────────

misc_router = APIRouter(tags=["Misc"])


@misc_router.get("/stats", response_model=StatsResponse)
async def get_stats(engine: AssignmentEngine = Depends(get_engine)) -> StatsResponse:
    stats = await run_command(engine, engine.get_review_stats())
    return StatsResponse(stats=stats)


@misc_router.get("/health")
async def health_check() -> dict[str, str]:
    return {"status": "ok", "version": APP_VERSION}


# ── Application ──────────────────────────────────────────────────────────────


def create_app(
    config: AssignmentConfig | None = None,
    engine: AssignmentEngine | None = None,
) -> FastAPI:
    """Build the FastAPI app.

    When ``engine`` is given it is used as is and its storage is left open on
    shutdown. Otherwise storage is created from ``config`` at startup.
    """
    config = config or (engine.config if engine else AssignmentConfig.from_env())

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        if engine is not None:
            yield
            return

        storage = config.create_storage()
        await storage.init_schema()
        app.state.engine = AssignmentEngine.from_storage(storage, config=config)
        logger.info("Storage ready at %s", config.database_url.split("@")[-1])
        try:
            yield
        finally:
            await storage.close()

    app = FastAPI(
        title="prassign",
        description="Reviewer assignment service",
        version=APP_VERSION,
        lifespan=lifespan,
    )
    if engine is not None:
        app.state.engine = engine

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        logger.info(
            "%s %s -> %d (%.1f ms)",
            request.method,
            request.url.path,
            response.status_code,
            (time.perf_counter() - started) * 1000,
        )
        return response

    install_error_handlers(app)
    app.include_router(team_router)
    app.include_router(users_router)
    app.include_router(pr_router)
    app.include_router(misc_router)
    return app
