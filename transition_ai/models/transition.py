from sqlalchemy import Column, Integer, String, DateTime, Boolean, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime
from transition_ai.database import Base

# created -> scraping -> scraped -> analyzed -> planned -> complete, or failed


class Transition(Base):
    __tablename__ = "transitions"
    __table_args__ = (UniqueConstraint("current_role", "target_role", name="uq_transition_roles"),)

    id = Column(Integer, primary_key=True, index=True)
    current_role = Column(String(200), nullable=False, index=True)
    target_role = Column(String(200), nullable=False, index=True)

    status = Column(String(20), nullable=False, default="created", index=True)
    # Bumped on every status write; callers pass it back as expectedVersion
    stage_version = Column(Integer, nullable=False, default=0)
    is_complete = Column(Boolean, nullable=False, default=False)
    failure_reason = Column(Text, nullable=True)

    # Relationships
    stories = relationship("ScrapedData", back_populates="transition", cascade="all, delete-orphan")
    skill_gaps = relationship("SkillGap", back_populates="transition", cascade="all, delete-orphan")
    plans = relationship("Plan", back_populates="transition", cascade="all, delete-orphan")
    insights = relationship("Insight", back_populates="transition", cascade="all, delete-orphan")

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
