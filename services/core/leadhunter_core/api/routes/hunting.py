"""Hunting session API routes.

Provides endpoints for:
- GET /hunting/session - Get the tenant's hunting session
- PUT /hunting/session/config - Update subreddits, keywords and thresholds
- POST /hunting/session/resume - Start background hunting
- POST /hunting/session/pause - Pause background hunting
- POST /hunting/session/run - Queue a manual hunting run
"""

import logging

from fastapi import APIRouter, HTTPException, status

from leadhunter_core.api.deps import CeleryAppDep, CurrentTenant, HuntingSessionServiceDep
from leadhunter_core.api.schemas.hunting import (
    HuntingSessionResponse,
    PauseSessionRequest,
    RunQueuedResponse,
    UpdateSessionConfigRequest,
)
from leadhunter_core.api.schemas.leads import ensure_utc

router = APIRouter(prefix="/hunting", tags=["hunting"])
logger = logging.getLogger(__name__)


def _session_response(hunting) -> HuntingSessionResponse:
    response = HuntingSessionResponse.model_validate(hunting)
    response.last_run_at = ensure_utc(response.last_run_at)
    return response


@router.get(
    "/session",
    response_model=HuntingSessionResponse,
    summary="Get hunting session",
    description="Get the tenant's hunting session, creating an idle one on first use.",
)
async def get_session(tenant: CurrentTenant, sessions: HuntingSessionServiceDep):
    return _session_response(sessions.get_or_create(tenant.id))


@router.put(
    "/session/config",
    response_model=HuntingSessionResponse,
    summary="Update hunting config",
)
async def update_config(
    request: UpdateSessionConfigRequest,
    tenant: CurrentTenant,
    sessions: HuntingSessionServiceDep,
):
    try:
        hunting = sessions.update_config(tenant.id, **request.model_dump(exclude_unset=True))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    return _session_response(hunting)


@router.post(
    "/session/resume",
    response_model=HuntingSessionResponse,
    summary="Resume hunting",
    description="Put the session into monitoring so the scheduler picks it up.",
)
async def resume(tenant: CurrentTenant, sessions: HuntingSessionServiceDep):
    return _session_response(await sessions.resume(tenant.id))


@router.post(
    "/session/pause",
    response_model=HuntingSessionResponse,
    summary="Pause hunting",
)
async def pause(
    tenant: CurrentTenant,
    sessions: HuntingSessionServiceDep,
    request: PauseSessionRequest | None = None,
):
    reason = request.reason if request and request.reason else ""
    return _session_response(await sessions.pause(tenant.id, reason))


@router.post(
    "/session/run",
    response_model=RunQueuedResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Run hunting now",
    description="Queue a one-off hunting run for the tenant on the worker.",
)
async def run_now(tenant: CurrentTenant, sessions: HuntingSessionServiceDep, celery_app: CeleryAppDep):
    hunting = sessions.get_session(tenant.id)
    if hunting is None or not hunting.subreddits:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Configure at least one subreddit before running",
        )

    task = celery_app.send_task(
        "hunting.run_tenant",
        kwargs={"tenant_id": tenant.id},
        queue="hunting",
    )
    logger.info(f"Queued manual hunting run {task.id} for tenant {tenant.id}")
    return RunQueuedResponse(job_id=task.id)
