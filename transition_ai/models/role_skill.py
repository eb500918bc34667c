from sqlalchemy import Column, Integer, String, UniqueConstraint
from transition_ai.database import Base


class RoleSkill(Base):
    """Skills known to be held by someone in a given role; seeded at startup"""
    __tablename__ = "role_skills"
    __table_args__ = (UniqueConstraint("role_name", "skill_name", name="uq_role_skill"),)

    id = Column(Integer, primary_key=True, index=True)
    role_name = Column(String(200), nullable=False, index=True)
    skill_name = Column(String(200), nullable=False)
