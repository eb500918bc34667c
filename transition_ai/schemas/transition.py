"""
Pydantic schemas for the transition pipeline.

Domain records (stories, skill gaps, milestones, overview, insights) are
built only from already-coerced values (see services/record_validation.py);
the Field bounds here are the last line of defence. JSON uses camelCase.
"""
from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

NOT_PROVIDED = "Not provided"

Level = Literal["Low", "Medium", "High"]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ========== Pipeline Records ==========
class ScrapedStory(CamelModel):
    """One first-person transition account with provenance"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    source: str = Field(..., min_length=1)
    content: str
    url: str = NOT_PROVIDED
    date: str = NOT_PROVIDED


class SkillGapRecord(CamelModel):
    skill_name: str = Field(..., min_length=1)
    gap_level: Level = "Medium"
    confidence_score: int = Field(70, ge=0, le=100)
    mention_count: int = Field(1, ge=0)
    context_summary: str = ""


class Resource(CamelModel):
    title: str
    url: str
    type: str = "Resource"


class Milestone(CamelModel):
    title: str
    description: str = ""
    priority: Level = "Medium"
    duration_weeks: int = Field(..., gt=0)
    order: int = Field(..., ge=1)
    progress: int = Field(0, ge=0, le=100)
    resources: List[Resource] = Field(default_factory=list)


class CommonPath(CamelModel):
    path: str
    count: int = Field(..., ge=1)


class TransitionOverview(CamelModel):
    success_rate: float = Field(..., ge=0, le=100)
    avg_transition_time_months: float = Field(..., ge=1)
    common_paths: List[CommonPath] = Field(default_factory=list)


class TransitionInsights(CamelModel):
    key_observations: List[str] = Field(default_factory=list)
    common_challenges: List[str] = Field(default_factory=list)


# ========== API Request/Response Schemas ==========
class TransitionRequest(CamelModel):
    current_role: str = Field(..., min_length=2, max_length=200)
    target_role: str = Field(..., min_length=2, max_length=200)


class TransitionCreatedResponse(CamelModel):
    transition_id: int
    job_id: Optional[str] = None


class StageRequest(CamelModel):
    """Body for scrape/analyze/plan. expected_version rejects stale calls."""
    transition_id: int
    expected_version: Optional[int] = None


class ScrapeAcceptedResponse(CamelModel):
    accepted: bool = True
    job_id: str


class CorrectionItem(CamelModel):
    field: str
    received: Any = None
    applied: Any = None
    reason: str


class AnalyzeResponse(CamelModel):
    accepted: bool = True
    skill_gap_count: int
    stage_version: int
    corrections: List[CorrectionItem] = Field(default_factory=list)


class PlanResponse(CamelModel):
    plan_id: int
    milestone_count: int
    stage_version: int
    corrections: List[CorrectionItem] = Field(default_factory=list)


class JobStatusResponse(CamelModel):
    job_id: str
    transition_id: Optional[int] = None
    job_type: str
    status: str
    message: Optional[str] = None
    error: Optional[str] = None
    result: Optional[Dict[str, Any]] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
