from sqlalchemy import Column, Integer, String, DateTime, Text, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
from transition_ai.database import Base


class SkillGap(Base):
    __tablename__ = "skill_gaps"

    id = Column(Integer, primary_key=True, index=True)
    transition_id = Column(Integer, ForeignKey("transitions.id", ondelete="CASCADE"), nullable=False, index=True)
    skill_name = Column(String(200), nullable=False)
    gap_level = Column(String(10), nullable=False, default="Medium")  # Low | Medium | High
    confidence_score = Column(Integer, nullable=False, default=70)
    mention_count = Column(Integer, nullable=False, default=1)
    context_summary = Column(Text, default="")

    transition = relationship("Transition", back_populates="skill_gaps")

    created_at = Column(DateTime, default=datetime.utcnow)
