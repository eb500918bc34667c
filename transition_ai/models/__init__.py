# Database models package
from transition_ai.models.transition import Transition
from transition_ai.models.scraped_data import ScrapedData
from transition_ai.models.skill_gap import SkillGap
from transition_ai.models.plan import Plan, Milestone, Resource
from transition_ai.models.insight import Insight
from transition_ai.models.role_skill import RoleSkill
from transition_ai.models.async_job import AsyncJob

__all__ = [
    "Transition",
    "ScrapedData",
    "SkillGap",
    "Plan",
    "Milestone",
    "Resource",
    "Insight",
    "RoleSkill",
    "AsyncJob",
]
