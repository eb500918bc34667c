"""
Transition API Routes
Create transition -> scrape (background) -> analyze -> plan, plus dashboard reads
"""
from functools import lru_cache

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.ext.asyncio import AsyncSession

from transition_ai.config import get_settings
from transition_ai.database import get_db
from transition_ai.errors import (
    NotFoundError,
    ParseError,
    StageConflictError,
    TransitionPipelineError,
    UpstreamAPIError,
)
from transition_ai.schemas.transition import (
    AnalyzeResponse,
    CorrectionItem,
    JobStatusResponse,
    PlanResponse,
    ScrapeAcceptedResponse,
    StageRequest,
    TransitionCreatedResponse,
    TransitionInsights,
    TransitionOverview,
    TransitionRequest,
)
from transition_ai.services import job_manager
from transition_ai.services.perplexity_client import PerplexityClient
from transition_ai.services.transition_pipeline import TransitionPipeline
from transition_ai.utils.logger import logger


router = APIRouter(prefix="/api", tags=["transitions"])
limiter = Limiter(key_func=get_remote_address, enabled=get_settings().rate_limit_enabled)


@lru_cache()
def get_pipeline() -> TransitionPipeline:
    settings = get_settings()
    return TransitionPipeline(
        search_client=PerplexityClient.from_settings(settings),
        config=settings.pipeline_config(),
    )


def to_http_error(e: TransitionPipelineError) -> HTTPException:
    """Map a pipeline error onto the status code the frontend expects."""
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, StageConflictError):
        return HTTPException(
            status_code=409,
            detail={
                "message": str(e),
                "currentStatus": e.current_status,
                "stageVersion": e.current_version,
            },
        )
    if isinstance(e, ParseError):
        return HTTPException(status_code=500, detail={"stage": e.stage, "message": str(e)})
    if isinstance(e, UpstreamAPIError):
        return HTTPException(status_code=500, detail={"stage": UpstreamAPIError.stage, "message": str(e)})
    return HTTPException(status_code=500, detail=str(e))


@router.post("/transition")
@limiter.limit("20/minute")
async def create_transition(
    request: Request,
    data: TransitionRequest,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    pipeline: TransitionPipeline = Depends(get_pipeline),
) -> TransitionCreatedResponse:
    """
    Get or create the transition for a role pair.

    A scrape job is queued for new transitions (and for ones that never
    finished scraping); its id is returned for polling via /api/jobs.
    """
    current_role = data.current_role.strip()
    target_role = data.target_role.strip()
    logger.info(f"Transition requested: {current_role} -> {target_role}")

    try:
        transition, ticket = await pipeline.start_transition(db, current_role, target_role)
    except TransitionPipelineError as e:
        raise to_http_error(e)

    if ticket and ticket.is_new:
        background_tasks.add_task(pipeline.run_scrape_job, ticket.job_id, transition.id)

    return TransitionCreatedResponse(
        transition_id=transition.id,
        job_id=ticket.job_id if ticket else None,
    )


@router.post("/scrape", status_code=202)
@limiter.limit("10/minute")
async def scrape_transition(
    request: Request,
    data: StageRequest,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    pipeline: TransitionPipeline = Depends(get_pipeline),
) -> ScrapeAcceptedResponse:
    """Queue a (re-)scrape. A scrape already in flight is reused."""
    try:
        ticket = await pipeline.enqueue_scrape(db, data.transition_id)
    except TransitionPipelineError as e:
        raise to_http_error(e)

    if ticket.is_new:
        background_tasks.add_task(pipeline.run_scrape_job, ticket.job_id, data.transition_id)

    return ScrapeAcceptedResponse(accepted=True, job_id=ticket.job_id)


@router.post("/analyze")
@limiter.limit("10/minute")
async def analyze_transition(
    request: Request,
    data: StageRequest,
    db: AsyncSession = Depends(get_db),
    pipeline: TransitionPipeline = Depends(get_pipeline),
) -> AnalyzeResponse:
    try:
        result = await pipeline.analyze(db, data.transition_id, data.expected_version)
    except TransitionPipelineError as e:
        logger.error(f"Analyze failed for transition {data.transition_id}: {e}")
        raise to_http_error(e)

    return AnalyzeResponse(
        accepted=True,
        skill_gap_count=result.skill_gap_count,
        stage_version=result.stage_version,
        corrections=[CorrectionItem(**c.to_dict()) for c in result.corrections],
    )


@router.post("/plan")
@limiter.limit("10/minute")
async def plan_transition(
    request: Request,
    data: StageRequest,
    db: AsyncSession = Depends(get_db),
    pipeline: TransitionPipeline = Depends(get_pipeline),
) -> PlanResponse:
    try:
        result = await pipeline.plan(db, data.transition_id, data.expected_version)
    except TransitionPipelineError as e:
        logger.error(f"Plan failed for transition {data.transition_id}: {e}")
        raise to_http_error(e)

    return PlanResponse(
        plan_id=result.plan_id,
        milestone_count=result.milestone_count,
        stage_version=result.stage_version,
        corrections=[CorrectionItem(**c.to_dict()) for c in result.corrections],
    )


@router.get("/insights/{transition_id}")
@limiter.limit("20/minute")
async def get_transition_overview(
    request: Request,
    transition_id: int,
    db: AsyncSession = Depends(get_db),
    pipeline: TransitionPipeline = Depends(get_pipeline),
) -> TransitionOverview:
    """Success rate, average time and common paths, computed on demand"""
    try:
        return await pipeline.overview(db, transition_id)
    except TransitionPipelineError as e:
        raise to_http_error(e)


@router.get("/stories-analysis/{transition_id}")
@limiter.limit("20/minute")
async def get_story_insights(
    request: Request,
    transition_id: int,
    db: AsyncSession = Depends(get_db),
    pipeline: TransitionPipeline = Depends(get_pipeline),
) -> TransitionInsights:
    try:
        return await pipeline.story_insights(db, transition_id)
    except TransitionPipelineError as e:
        raise to_http_error(e)


@router.get("/dashboard/{transition_id}")
async def get_dashboard(
    transition_id: int,
    db: AsyncSession = Depends(get_db),
    pipeline: TransitionPipeline = Depends(get_pipeline),
):
    try:
        return await pipeline.dashboard(db, transition_id)
    except TransitionPipelineError as e:
        raise to_http_error(e)


@router.get("/jobs/{job_id}")
async def get_job_status(job_id: str, db: AsyncSession = Depends(get_db)) -> JobStatusResponse:
    """Poll a background job"""
    status = await job_manager.get_job_status(db, job_id)
    if status is None:
        raise HTTPException(status_code=404, detail=f"Job {job_id} not found")
    return JobStatusResponse(**status)
