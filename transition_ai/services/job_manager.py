"""
Database-backed record of background jobs.

Usage:
    job_id = await job_manager.enqueue_job(db, "scrape", transition_id)
    await job_manager.start_job(db, job_id, "Searching forums...")
    await job_manager.complete_job(db, job_id, {"storyCount": 4})
    status = await job_manager.get_job_status(db, job_id)
"""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from datetime import datetime, timezone
from typing import Optional, Dict, Any
import uuid

from transition_ai.models.async_job import AsyncJob, ACTIVE_JOB_STATUSES
from transition_ai.utils.logger import logger
from transition_ai.utils.metrics import inc


async def enqueue_job(
    db: AsyncSession,
    job_type: str,
    transition_id: Optional[int] = None,
    input_data: Optional[Dict[str, Any]] = None,
) -> str:
    """Create a new pending job and return its ID"""
    job_id = str(uuid.uuid4())
    job = AsyncJob(
        id=job_id,
        transition_id=transition_id,
        job_type=job_type,
        status="pending",
        message="Queued",
        input_data=input_data or {},
    )
    db.add(job)
    await db.commit()
    inc(f"job.{job_type}.enqueued")
    logger.info("job.enqueued", extra={"job_id": job_id, "job_type": job_type, "transition_id": transition_id})
    return job_id


def serialize_job(job: AsyncJob) -> Dict[str, Any]:
    response = {
        "job_id": job.id,
        "transition_id": job.transition_id,
        "job_type": job.job_type,
        "status": job.status,
        "message": job.message,
        "created_at": job.created_at.isoformat() if job.created_at else None,
        "updated_at": job.updated_at.isoformat() if job.updated_at else None,
    }

    if job.status == "succeeded" and job.result_data:
        response["result"] = job.result_data
    if job.status == "failed" and job.error_message:
        response["error"] = job.error_message

    return response


async def get_job(db: AsyncSession, job_id: str) -> Optional[AsyncJob]:
    """Get the raw AsyncJob ORM object"""
    result = await db.execute(
        select(AsyncJob).where(AsyncJob.id == job_id).execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_job_status(db: AsyncSession, job_id: str) -> Optional[Dict[str, Any]]:
    """Get job status, message, and result or error"""
    job = await get_job(db, job_id)
    if not job:
        return None
    return serialize_job(job)


async def get_latest_job(db: AsyncSession, transition_id: int, job_type: Optional[str] = None) -> Optional[AsyncJob]:
    query = select(AsyncJob).where(AsyncJob.transition_id == transition_id)
    if job_type:
        query = query.where(AsyncJob.job_type == job_type)
    query = query.order_by(AsyncJob.created_at.desc(), AsyncJob.updated_at.desc()).limit(1)
    result = await db.execute(query.execution_options(populate_existing=True))
    return result.scalar_one_or_none()


async def get_active_job(db: AsyncSession, transition_id: int, job_type: str) -> Optional[AsyncJob]:
    """A pending or running job of this type for the transition, if any"""
    result = await db.execute(
        select(AsyncJob)
        .where(
            AsyncJob.transition_id == transition_id,
            AsyncJob.job_type == job_type,
            AsyncJob.status.in_(ACTIVE_JOB_STATUSES),
        )
        .order_by(AsyncJob.created_at.desc())
        .limit(1)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def start_job(db: AsyncSession, job_id: str, message: str = "Running") -> None:
    await db.execute(
        update(AsyncJob)
        .where(AsyncJob.id == job_id)
        .values(status="running", message=message, updated_at=datetime.now(timezone.utc))
    )
    await db.commit()
    logger.info("job.started", extra={"job_id": job_id})


async def complete_job(
    db: AsyncSession,
    job_id: str,
    result_data: Dict[str, Any],
) -> None:
    """Mark job as succeeded with result data"""
    now = datetime.now(timezone.utc)
    await db.execute(
        update(AsyncJob)
        .where(AsyncJob.id == job_id)
        .values(
            status="succeeded",
            message="Completed",
            result_data=result_data,
            completed_at=now,
            updated_at=now,
        )
    )
    await db.commit()
    inc("job.succeeded")
    logger.info("job.succeeded", extra={"job_id": job_id})


async def fail_job(
    db: AsyncSession,
    job_id: str,
    error: str,
) -> None:
    """Mark job as failed with error message"""
    now = datetime.now(timezone.utc)
    await db.execute(
        update(AsyncJob)
        .where(AsyncJob.id == job_id)
        .values(
            status="failed",
            message="Failed",
            error_message=error,
            completed_at=now,
            updated_at=now,
        )
    )
    await db.commit()
    inc("job.failed")
    logger.error("job.failed", extra={"job_id": job_id, "error": error})
