from sqlalchemy import Column, Integer, String, DateTime, Text, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
from transition_ai.database import Base


class ScrapedData(Base):
    """One forum story collected for a transition"""
    __tablename__ = "scraped_data"

    id = Column(Integer, primary_key=True, index=True)
    transition_id = Column(Integer, ForeignKey("transitions.id", ondelete="CASCADE"), nullable=False, index=True)
    source = Column(String(200), nullable=False)
    content = Column(Text, nullable=False)
    url = Column(String(1000))
    post_date = Column(String(100))  # ISO date, "Not provided", or the unparsed original

    transition = relationship("Transition", back_populates="stories")

    created_at = Column(DateTime, default=datetime.utcnow)
