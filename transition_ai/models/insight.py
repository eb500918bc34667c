from sqlalchemy import Column, Integer, String, DateTime, Text, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
from transition_ai.database import Base


class Insight(Base):
    __tablename__ = "insights"

    id = Column(Integer, primary_key=True, index=True)
    transition_id = Column(Integer, ForeignKey("transitions.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(String(20), nullable=False, index=True)  # observation | challenge | story
    content = Column(Text, nullable=False)
    source = Column(String(200), nullable=True)

    transition = relationship("Transition", back_populates="insights")

    created_at = Column(DateTime, default=datetime.utcnow)
