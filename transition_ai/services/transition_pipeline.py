"""
Transition Pipeline
Sequences scrape -> analyze -> plan for one transition and persists each
stage's output.

Stage writes for a transition are serialized by a per-transition asyncio
lock. Every status write bumps ``Transition.stage_version``; callers may pass
the version they last saw and get a StageConflictError when it is stale.
"""
import asyncio
import weakref
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from transition_ai.config import PipelineConfig
from transition_ai.errors import NotFoundError, StageConflictError, TransitionPipelineError
from transition_ai.models.transition import Transition
from transition_ai.schemas.transition import (
    JobStatusResponse,
    SkillGapRecord,
    TransitionInsights,
    TransitionOverview,
)
from transition_ai.services import job_manager
from transition_ai.services import transition_store as store
from transition_ai.services.forum_search_service import ForumSearchService
from transition_ai.services.insight_service import InsightSynthesizer
from transition_ai.services.overview_service import TransitionOverviewAggregator
from transition_ai.services.plan_service import PlanGenerator
from transition_ai.services.record_validation import Correction
from transition_ai.services.skill_gap_service import SkillGapAnalyzer
from transition_ai.utils.logger import logger
from transition_ai.utils.metrics import inc, observe

SCRAPE_JOB = "scrape"

# analyze needs a finished scrape; failed stays failed until a new scrape
ANALYZE_READY = ("scraped", "analyzed", "planned", "complete")
PLAN_READY = ("analyzed", "planned", "complete")
RESTARTABLE = ("created", "failed")

_LEVEL_RANK = {"High": 3, "Medium": 2, "Low": 1}


@dataclass(frozen=True)
class ScrapeTicket:
    job_id: str
    is_new: bool


@dataclass
class AnalyzeResult:
    skill_gap_count: int
    stage_version: int
    corrections: List[Correction] = field(default_factory=list)


@dataclass
class PlanResult:
    plan_id: int
    milestone_count: int
    stage_version: int
    corrections: List[Correction] = field(default_factory=list)


def prioritize_skills(gaps: List[SkillGapRecord], limit: int) -> List[SkillGapRecord]:
    """Highest gap level first, then most mentioned."""
    ranked = sorted(gaps, key=lambda g: (_LEVEL_RANK.get(g.gap_level, 0), g.mention_count), reverse=True)
    return ranked[:limit]


class TransitionPipeline:

    def __init__(
        self,
        search_client,
        config: Optional[PipelineConfig] = None,
        session_factory=None,
        forum_search: Optional[ForumSearchService] = None,
        analyzer: Optional[SkillGapAnalyzer] = None,
        plan_generator: Optional[PlanGenerator] = None,
        overview_aggregator: Optional[TransitionOverviewAggregator] = None,
        insight_synthesizer: Optional[InsightSynthesizer] = None,
    ):
        self.config = config or PipelineConfig()
        if session_factory is None:
            from transition_ai.database import AsyncSessionLocal
            session_factory = AsyncSessionLocal
        self.session_factory = session_factory

        self.forum_search = forum_search or ForumSearchService(search_client, self.config)
        self.analyzer = analyzer or SkillGapAnalyzer(search_client, self.config)
        self.plan_generator = plan_generator or PlanGenerator(search_client, self.config)
        self.overview_aggregator = overview_aggregator or TransitionOverviewAggregator(search_client, self.config)
        self.insight_synthesizer = insight_synthesizer or InsightSynthesizer(search_client, self.config)

        # an entry lives only while some caller holds or waits on the lock
        self._locks: "weakref.WeakValueDictionary[int, asyncio.Lock]" = weakref.WeakValueDictionary()

    def lock_for(self, transition_id: int) -> asyncio.Lock:
        lock = self._locks.get(transition_id)
        if lock is None:
            lock = self._locks[transition_id] = asyncio.Lock()
        return lock

    # ========== Helpers ==========

    @staticmethod
    def _check_version(transition: Transition, expected_version: Optional[int]) -> None:
        if expected_version is not None and expected_version != transition.stage_version:
            raise StageConflictError(
                f"Transition {transition.id} is at stage version {transition.stage_version}, "
                f"not {expected_version}",
                current_status=transition.status,
                current_version=transition.stage_version,
            )

    @staticmethod
    def _require_status(transition: Transition, allowed: Tuple[str, ...], operation: str) -> None:
        if transition.status not in allowed:
            raise StageConflictError(
                f"Cannot {operation} transition {transition.id} while it is {transition.status}",
                current_status=transition.status,
                current_version=transition.stage_version,
            )

    async def _mark_failed(self, db: AsyncSession, transition_id: int, reason: str, stage: str) -> None:
        await db.rollback()
        transition = await db.get(Transition, transition_id, populate_existing=True)
        if transition is None:
            return
        version = store.set_status(transition, "failed", failure_reason=reason)
        await db.commit()
        inc(f"pipeline.{stage}.failed")
        logger.error(
            "transition.failed",
            extra={"transition_id": transition_id, "stage": stage, "stage_version": version, "reason": reason},
        )

    # ========== Scrape ==========

    async def enqueue_scrape(self, db: AsyncSession, transition_id: int) -> ScrapeTicket:
        """Create a scrape job, or reuse the one already pending/running."""
        await store.get_transition(db, transition_id)
        active = await job_manager.get_active_job(db, transition_id, SCRAPE_JOB)
        if active is not None:
            return ScrapeTicket(job_id=active.id, is_new=False)
        job_id = await job_manager.enqueue_job(db, SCRAPE_JOB, transition_id, {"transitionId": transition_id})
        return ScrapeTicket(job_id=job_id, is_new=True)

    async def start_transition(
        self,
        db: AsyncSession,
        current_role: str,
        target_role: str,
    ) -> Tuple[Transition, Optional[ScrapeTicket]]:
        """
        Get or create the transition for a role pair.

        New transitions, and ones still in created/failed, get a scrape job.
        Otherwise the latest job (if any) is reported without scheduling work.
        """
        transition, created = await store.get_or_create_transition(db, current_role, target_role)

        if created or transition.status in RESTARTABLE:
            return transition, await self.enqueue_scrape(db, transition.id)

        latest = await job_manager.get_latest_job(db, transition.id, SCRAPE_JOB)
        return transition, ScrapeTicket(job_id=latest.id, is_new=False) if latest else None

    async def run_scrape_job(self, job_id: str, transition_id: int) -> None:
        """
        Background task body. Uses its own session; failures are recorded on
        the job and the transition and never raised.
        """
        loop = asyncio.get_running_loop()
        started = loop.time()
        async with self.session_factory() as db:
            async with self.lock_for(transition_id):
                try:
                    await job_manager.start_job(db, job_id, "Searching forums")
                    transition = await store.get_transition(db, transition_id)
                    await db.refresh(transition)
                    store.set_status(transition, "scraping")
                    await db.commit()

                    stories = await self.forum_search.search_forums(transition.current_role, transition.target_role)

                    await store.replace_stories(db, transition_id, stories)
                    version = store.set_status(transition, "scraped")
                    await db.commit()
                    await job_manager.complete_job(db, job_id, {"storyCount": len(stories)})

                    observe("pipeline.scrape.duration_ms", (loop.time() - started) * 1000)
                    logger.info(
                        "transition.scraped",
                        extra={
                            "transition_id": transition_id,
                            "job_id": job_id,
                            "story_count": len(stories),
                            "stage_version": version,
                        },
                    )
                except Exception as e:
                    reason = str(e) or type(e).__name__
                    logger.exception(
                        "scrape.failed",
                        extra={"transition_id": transition_id, "job_id": job_id, "error_type": type(e).__name__},
                    )
                    try:
                        await db.rollback()
                        await job_manager.fail_job(db, job_id, reason)
                    except Exception:
                        logger.exception("scrape.fail_job_error", extra={"job_id": job_id})
                    try:
                        await self._mark_failed(db, transition_id, reason, "scrape")
                    except Exception:
                        logger.exception("scrape.mark_failed_error", extra={"transition_id": transition_id})

    # ========== Analyze ==========

    async def analyze(
        self,
        db: AsyncSession,
        transition_id: int,
        expected_version: Optional[int] = None,
    ) -> AnalyzeResult:
        transition = await store.get_transition(db, transition_id)

        async with self.lock_for(transition_id):
            await db.refresh(transition)
            self._check_version(transition, expected_version)
            self._require_status(transition, ANALYZE_READY, "analyze")

            stories = await store.load_stories(db, transition_id)
            known_skills = await store.get_role_skills(db, transition.current_role)
            corrections: List[Correction] = []

            try:
                gaps = await self.analyzer.analyze(
                    transition.current_role, transition.target_role, stories, known_skills, corrections
                )
            except TransitionPipelineError as e:
                await self._mark_failed(db, transition_id, str(e), "analyze")
                raise

            await store.replace_skill_gaps(db, transition_id, gaps)

            try:
                insights = await self.insight_synthesizer.synthesize(
                    transition.current_role, transition.target_role, stories
                )
                await store.replace_insights(db, transition_id, insights)
            except TransitionPipelineError as e:
                inc("pipeline.insights.skipped")
                logger.warning(
                    "analyze.insights_skipped",
                    extra={"transition_id": transition_id, "reason": str(e)},
                )

            version = store.set_status(transition, "analyzed")
            await db.commit()

        inc("pipeline.analyze.succeeded")
        logger.info(
            "transition.analyzed",
            extra={"transition_id": transition_id, "skill_gap_count": len(gaps), "stage_version": version},
        )
        return AnalyzeResult(skill_gap_count=len(gaps), stage_version=version, corrections=corrections)

    # ========== Plan ==========

    async def plan(
        self,
        db: AsyncSession,
        transition_id: int,
        expected_version: Optional[int] = None,
    ) -> PlanResult:
        transition = await store.get_transition(db, transition_id)

        async with self.lock_for(transition_id):
            await db.refresh(transition)
            self._check_version(transition, expected_version)
            self._require_status(transition, PLAN_READY, "plan")

            gaps = await store.load_skill_gaps(db, transition_id)
            if not gaps:
                raise NotFoundError(f"No skill gaps found for transition {transition_id}")

            prioritized = prioritize_skills(gaps, self.config.max_plan_skills)
            corrections: List[Correction] = []

            plan_row = await store.create_plan(db, transition)
            try:
                milestones = await self.plan_generator.generate(
                    transition.current_role, transition.target_role, prioritized, corrections
                )
            except TransitionPipelineError as e:
                await self._mark_failed(db, transition_id, str(e), "plan")
                raise

            await store.add_milestones(db, plan_row, milestones)
            store.set_status(transition, "planned")
            await db.commit()

            version = store.set_status(transition, "complete")
            await db.commit()

        inc("pipeline.plan.succeeded")
        logger.info(
            "transition.planned",
            extra={"transition_id": transition_id, "milestone_count": len(milestones), "stage_version": version},
        )
        return PlanResult(
            plan_id=plan_row.id,
            milestone_count=len(milestones),
            stage_version=version,
            corrections=corrections,
        )

    # ========== On-demand reads ==========

    async def overview(self, db: AsyncSession, transition_id: int) -> TransitionOverview:
        transition = await store.get_transition(db, transition_id)
        stories = await store.load_stories(db, transition_id)
        if not stories:
            raise NotFoundError(f"No scraped stories for transition {transition_id}")
        return await self.overview_aggregator.aggregate(transition.current_role, transition.target_role, stories)

    async def story_insights(self, db: AsyncSession, transition_id: int) -> TransitionInsights:
        transition = await store.get_transition(db, transition_id)
        stories = await store.load_stories(db, transition_id)
        if not stories:
            raise NotFoundError(f"No scraped stories for transition {transition_id}")
        return await self.insight_synthesizer.synthesize(transition.current_role, transition.target_role, stories)

    async def dashboard(self, db: AsyncSession, transition_id: int) -> Dict[str, Any]:
        transition = await store.get_transition(db, transition_id)
        await db.refresh(transition)
        gaps = await store.load_skill_gaps(db, transition_id)
        plan_row = await store.get_latest_plan(db, transition_id)
        insights = await store.load_insights(db, transition_id)
        scraped_count = await store.count_stories(db, transition_id)
        latest_job = await job_manager.get_latest_job(db, transition_id)

        milestones = []
        plan_data = None
        if plan_row is not None:
            plan_data = {
                "id": plan_row.id,
                "title": plan_row.title,
                "description": plan_row.description,
                "status": plan_row.status,
            }
            for m in plan_row.milestones:
                milestones.append({
                    "id": m.id,
                    "title": m.title,
                    "description": m.description,
                    "priority": m.priority,
                    "durationWeeks": m.duration_weeks,
                    "order": m.order,
                    "progress": m.progress,
                    "resources": [{"title": r.title, "url": r.url, "type": r.type} for r in m.resources],
                })

        return {
            "transition": {
                "id": transition.id,
                "currentRole": transition.current_role,
                "targetRole": transition.target_role,
                "status": transition.status,
                "stageVersion": transition.stage_version,
                "failureReason": transition.failure_reason,
                "isComplete": transition.is_complete,
            },
            "skillGaps": [g.model_dump(by_alias=True) for g in gaps],
            "plan": plan_data,
            "milestones": milestones,
            "insights": [{"id": i.id, "type": i.type, "content": i.content, "source": i.source} for i in insights],
            "scrapedCount": scraped_count,
            "isComplete": transition.is_complete,
            "latestJob": (
                JobStatusResponse(**job_manager.serialize_job(latest_job)).model_dump(by_alias=True)
                if latest_job else None
            ),
        }
