"""
Persistence helpers for transitions and everything hanging off them.

All functions take the caller's AsyncSession; none of them commit except
where noted, so a stage can write its records and its status change in one
transaction.
"""
from typing import Dict, List, Optional, Tuple

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from transition_ai.errors import NotFoundError
from transition_ai.models.insight import Insight
from transition_ai.models.plan import Milestone as MilestoneRow, Plan, Resource as ResourceRow
from transition_ai.models.role_skill import RoleSkill
from transition_ai.models.scraped_data import ScrapedData
from transition_ai.models.skill_gap import SkillGap
from transition_ai.models.transition import Transition
from transition_ai.schemas.transition import (
    NOT_PROVIDED,
    Milestone,
    ScrapedStory,
    SkillGapRecord,
    TransitionInsights,
)
from transition_ai.utils.logger import logger

# Known skills for roles we have profiles for
DEFAULT_ROLE_SKILLS: Dict[str, List[str]] = {
    "Microsoft Level 63": [
        "C#", ".NET", "Azure", "SQL Server", "Windows Development",
        "Team Leadership", "Agile Methodology", "Microservices",
    ],
    "Google L6": [
        "Python", "Go", "Java", "System Design", "Distributed Systems",
        "Algorithm Optimization", "TensorFlow", "Kubernetes", "Leadership", "Mentorship",
    ],
}


# ========== Transitions ==========

async def get_transition(db: AsyncSession, transition_id: int) -> Transition:
    transition = await db.get(Transition, transition_id)
    if transition is None:
        raise NotFoundError(f"Transition {transition_id} not found")
    return transition


async def find_transition(db: AsyncSession, current_role: str, target_role: str) -> Optional[Transition]:
    result = await db.execute(
        select(Transition).where(
            Transition.current_role == current_role,
            Transition.target_role == target_role,
        )
    )
    return result.scalar_one_or_none()


async def get_or_create_transition(db: AsyncSession, current_role: str, target_role: str) -> Tuple[Transition, bool]:
    """Return (transition, created). Commits when a row is created."""
    existing = await find_transition(db, current_role, target_role)
    if existing is not None:
        return existing, False

    transition = Transition(current_role=current_role, target_role=target_role, status="created", stage_version=0)
    db.add(transition)
    try:
        await db.commit()
    except IntegrityError:
        # lost a race with a concurrent create for the same role pair
        await db.rollback()
        existing = await find_transition(db, current_role, target_role)
        if existing is None:
            raise
        return existing, False

    await db.refresh(transition)
    logger.info("transition.created", extra={"transition_id": transition.id})
    return transition, True


def set_status(transition: Transition, status: str, failure_reason: Optional[str] = None) -> int:
    """Apply a status write and bump the stage version. Caller commits."""
    transition.status = status
    transition.stage_version = (transition.stage_version or 0) + 1
    transition.failure_reason = failure_reason
    transition.is_complete = status == "complete"
    return transition.stage_version


# ========== Stories ==========

async def replace_stories(db: AsyncSession, transition_id: int, stories: List[ScrapedStory]) -> None:
    await db.execute(delete(ScrapedData).where(ScrapedData.transition_id == transition_id))
    for story in stories:
        db.add(ScrapedData(
            transition_id=transition_id,
            source=story.source,
            content=story.content,
            url=story.url,
            post_date=story.date,
        ))


async def load_stories(db: AsyncSession, transition_id: int) -> List[ScrapedStory]:
    result = await db.execute(
        select(ScrapedData).where(ScrapedData.transition_id == transition_id).order_by(ScrapedData.id)
    )
    return [
        ScrapedStory(
            source=row.source,
            content=row.content,
            url=row.url or NOT_PROVIDED,
            date=row.post_date or NOT_PROVIDED,
        )
        for row in result.scalars().all()
    ]


async def count_stories(db: AsyncSession, transition_id: int) -> int:
    result = await db.execute(
        select(func.count(ScrapedData.id)).where(ScrapedData.transition_id == transition_id)
    )
    return result.scalar_one()


# ========== Skill gaps ==========

async def replace_skill_gaps(db: AsyncSession, transition_id: int, gaps: List[SkillGapRecord]) -> None:
    await db.execute(delete(SkillGap).where(SkillGap.transition_id == transition_id))
    for gap in gaps:
        db.add(SkillGap(
            transition_id=transition_id,
            skill_name=gap.skill_name,
            gap_level=gap.gap_level,
            confidence_score=gap.confidence_score,
            mention_count=gap.mention_count,
            context_summary=gap.context_summary,
        ))


async def load_skill_gaps(db: AsyncSession, transition_id: int) -> List[SkillGapRecord]:
    result = await db.execute(
        select(SkillGap).where(SkillGap.transition_id == transition_id).order_by(SkillGap.id)
    )
    return [
        SkillGapRecord(
            skill_name=row.skill_name,
            gap_level=row.gap_level,
            confidence_score=row.confidence_score,
            mention_count=row.mention_count,
            context_summary=row.context_summary or "",
        )
        for row in result.scalars().all()
    ]


# ========== Insights ==========

async def replace_insights(db: AsyncSession, transition_id: int, insights: TransitionInsights) -> None:
    """Rewrite the observation and challenge insights for a transition."""
    await db.execute(
        delete(Insight).where(
            Insight.transition_id == transition_id,
            Insight.type.in_(("observation", "challenge")),
        )
    )
    for text in insights.key_observations:
        db.add(Insight(transition_id=transition_id, type="observation", content=text))
    for text in insights.common_challenges:
        db.add(Insight(transition_id=transition_id, type="challenge", content=text))


async def load_insights(db: AsyncSession, transition_id: int) -> List[Insight]:
    result = await db.execute(
        select(Insight).where(Insight.transition_id == transition_id).order_by(Insight.id)
    )
    return list(result.scalars().all())


# ========== Plans ==========

async def create_plan(db: AsyncSession, transition: Transition) -> Plan:
    plan = Plan(
        transition_id=transition.id,
        title=f"{transition.current_role} to {transition.target_role} Plan",
        description=f"Development plan for transitioning from {transition.current_role} to {transition.target_role}",
        status="planned",
    )
    db.add(plan)
    await db.flush()
    return plan


async def add_milestones(db: AsyncSession, plan: Plan, milestones: List[Milestone]) -> None:
    for milestone in milestones:
        row = MilestoneRow(
            plan_id=plan.id,
            title=milestone.title,
            description=milestone.description,
            priority=milestone.priority,
            duration_weeks=milestone.duration_weeks,
            order=milestone.order,
            progress=milestone.progress,
        )
        db.add(row)
        await db.flush()
        for resource in milestone.resources:
            db.add(ResourceRow(milestone_id=row.id, title=resource.title, url=resource.url, type=resource.type))


async def get_latest_plan(db: AsyncSession, transition_id: int) -> Optional[Plan]:
    result = await db.execute(
        select(Plan)
        .where(Plan.transition_id == transition_id)
        .options(selectinload(Plan.milestones).selectinload(MilestoneRow.resources))
        .order_by(Plan.id.desc())
        .limit(1)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


# ========== Role skills ==========

async def get_role_skills(db: AsyncSession, role_name: str) -> List[str]:
    result = await db.execute(
        select(RoleSkill.skill_name).where(RoleSkill.role_name == role_name).order_by(RoleSkill.id)
    )
    return list(result.scalars().all())


async def seed_role_skills(db: AsyncSession, role_skills: Optional[Dict[str, List[str]]] = None) -> int:
    """Insert missing role/skill pairs. Commits. Returns the number inserted."""
    role_skills = role_skills or DEFAULT_ROLE_SKILLS
    inserted = 0
    for role_name, skills in role_skills.items():
        existing = set(await get_role_skills(db, role_name))
        for skill in skills:
            if skill not in existing:
                db.add(RoleSkill(role_name=role_name, skill_name=skill))
                inserted += 1
    await db.commit()
    if inserted:
        logger.info(f"Seeded {inserted} role skills")
    return inserted
