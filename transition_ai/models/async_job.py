"""
SQLAlchemy model for the async_jobs table: durable record of background scrape jobs.
"""
from sqlalchemy import Column, String, Integer, DateTime, Text, JSON, ForeignKey, func
import uuid

from transition_ai.database import Base

ACTIVE_JOB_STATUSES = ("pending", "running")


class AsyncJob(Base):
    __tablename__ = "async_jobs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    transition_id = Column(Integer, ForeignKey("transitions.id", ondelete="CASCADE"), nullable=True, index=True)
    job_type = Column(String(100), nullable=False, index=True)

    # Status: pending → running → succeeded | failed
    status = Column(String(20), nullable=False, default="pending", index=True)
    message = Column(String(500), nullable=True, default="Queued")

    # Payload and result
    input_data = Column(JSON, nullable=True)
    result_data = Column(JSON, nullable=True)
    error_message = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)
