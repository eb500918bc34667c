from sqlalchemy import Column, Integer, String, DateTime, Text, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
from transition_ai.database import Base


class Plan(Base):
    __tablename__ = "plans"

    id = Column(Integer, primary_key=True, index=True)
    transition_id = Column(Integer, ForeignKey("transitions.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(500), nullable=False)
    description = Column(Text, default="")
    status = Column(String(20), nullable=False, default="planned")

    transition = relationship("Transition", back_populates="plans")
    milestones = relationship(
        "Milestone", back_populates="plan", cascade="all, delete-orphan", order_by="Milestone.order"
    )

    created_at = Column(DateTime, default=datetime.utcnow)


class Milestone(Base):
    __tablename__ = "milestones"

    id = Column(Integer, primary_key=True, index=True)
    plan_id = Column(Integer, ForeignKey("plans.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(500), nullable=False)
    description = Column(Text, default="")
    priority = Column(String(10), nullable=False, default="Medium")
    duration_weeks = Column(Integer, nullable=False, default=2)
    order = Column(Integer, nullable=False)
    progress = Column(Integer, nullable=False, default=0)

    plan = relationship("Plan", back_populates="milestones")
    resources = relationship("Resource", back_populates="milestone", cascade="all, delete-orphan")


class Resource(Base):
    __tablename__ = "resources"

    id = Column(Integer, primary_key=True, index=True)
    milestone_id = Column(Integer, ForeignKey("milestones.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(500), default="")
    url = Column(String(1000), default="")
    type = Column(String(50), default="Resource")

    milestone = relationship("Milestone", back_populates="resources")
