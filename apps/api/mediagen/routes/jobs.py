"""Generation job routes."""

from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends, Path, Query, Request, status

from mediagen.routes.dependencies import get_authenticated_principal, get_orchestrator, get_sweeper
from mediagen.schemas.auth import AuthPrincipal
from mediagen.schemas.error import (
    ErrorResponse,
    InsufficientCreditsError,
    NotFoundError,
    ProviderSubmissionError,
    ValidationErrorResponse,
)
from mediagen.schemas.job import CostEstimate, JobList, JobStatus, JobView, SubmitJobRequest, SubmitJobResponse
from mediagen.services.orchestrator import JobOrchestrator
from mediagen.services.sweeper import RecoverySweeper

router = APIRouter(tags=["Jobs"])

_COST_RESERVED_QUERY_KEYS = {"modelId"}


@router.post(
    "/jobs",
    response_model=SubmitJobResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses={
        400: {"model": ValidationErrorResponse},
        401: {"model": ErrorResponse},
        402: {"model": InsufficientCreditsError},
        500: {"model": ProviderSubmissionError},
    },
)
def submit_job(
    payload: SubmitJobRequest,
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    orchestrator: Annotated[JobOrchestrator, Depends(get_orchestrator)],
) -> SubmitJobResponse:
    job = orchestrator.submit(
        owner_id=principal.user_id,
        model_id=payload.model_id,
        source_asset_id=payload.source_asset_id,
        end_asset_id=payload.end_asset_id,
        params=payload.params,
    )
    return SubmitJobResponse(job_id=job.id, status=job.status)


@router.get("/jobs", response_model=JobList, responses={400: {"model": ValidationErrorResponse}})
def list_jobs(
    background_tasks: BackgroundTasks,
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    orchestrator: Annotated[JobOrchestrator, Depends(get_orchestrator)],
    sweeper: Annotated[RecoverySweeper, Depends(get_sweeper)],
    status_filter: Annotated[JobStatus | None, Query(alias="status")] = None,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> JobList:
    jobs = orchestrator.list_jobs(owner_id=principal.user_id, status=status_filter, limit=limit, offset=offset)
    background_tasks.add_task(sweeper.sweep_quietly, principal.user_id)
    return jobs


@router.get("/jobs/cost", response_model=CostEstimate, responses={400: {"model": ValidationErrorResponse}})
def estimate_cost(
    request: Request,
    _: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    orchestrator: Annotated[JobOrchestrator, Depends(get_orchestrator)],
    model_id: Annotated[str | None, Query(alias="modelId")] = None,
) -> CostEstimate:
    params = {key: value for key, value in request.query_params.items() if key not in _COST_RESERVED_QUERY_KEYS}
    return orchestrator.estimate_cost(model_id=model_id, params=params)


@router.get("/jobs/{jobId}", response_model=JobView, responses={404: {"model": NotFoundError}})
def get_job(
    job_id: Annotated[str, Path(alias="jobId")],
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    orchestrator: Annotated[JobOrchestrator, Depends(get_orchestrator)],
) -> JobView:
    return orchestrator.get_job(owner_id=principal.user_id, job_id=job_id)
