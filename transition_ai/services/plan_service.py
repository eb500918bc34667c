"""
Plan Generator and Resource Finder
Builds a milestone learning plan for the prioritized skill gaps and backfills
learning resources for milestones that came back without any.
"""
from typing import List, Optional

from transition_ai.config import PipelineConfig
from transition_ai.errors import ParseError, TransitionPipelineError
from transition_ai.schemas.transition import Milestone, Resource, SkillGapRecord
from transition_ai.services.record_validation import (
    Correction,
    CorrectionLog,
    clamp_number,
    coerce_level,
    coerce_text,
    only_dicts,
    to_number,
)
from transition_ai.utils.json_extract import JSONExtractionError, extract_json_array
from transition_ai.utils.logger import logger
from transition_ai.utils.metrics import inc

PLAN_STAGE = "plan_generation"
RESOURCE_STAGE = "resource_search"


def validate_resources(items, field: str, log: CorrectionLog) -> List[Resource]:
    """Coerce resource dicts; entries with neither title nor url are dropped."""
    if items is None:
        return []
    if not isinstance(items, list):
        log.record(field, items, [], "not a list")
        return []

    resources = []
    for index, item in enumerate(only_dicts(items, field, log)):
        title = coerce_text(item.get("title"), f"{field}[{index}].title", log)
        url = coerce_text(item.get("url"), f"{field}[{index}].url", log)
        if not title and not url:
            log.record(f"{field}[{index}]", item, None, "dropped: no title or url")
            continue
        resource_type = coerce_text(item.get("type"), f"{field}[{index}].type", log) or "Resource"
        resources.append(Resource(title=title, url=url, type=resource_type))
    return resources


class ResourceFinder:
    """Finds learning resources for one skill or milestone"""

    def __init__(self, search_client, config: Optional[PipelineConfig] = None):
        self.search_client = search_client
        self.config = config or PipelineConfig()

    def build_prompt(self, skill: str, context: str) -> str:
        return f"""Find the best learning resources for "{skill}" in the context of "{context}".
Search for high-quality YouTube tutorials, courses, books, and GitHub repositories.

For each resource:
1. Find the exact title
2. Find the exact URL
3. Categorize the type (Video, Course, Book, GitHub, etc.)

Focus on resources with clear learning paths, good reviews, up-to-date content and practical exercises.

Return as a JSON array:
[
  {{"title": "Exact resource title", "url": "https://exact.url.com", "type": "Video"}}
]

Return ONLY the JSON array with no other text."""

    async def find_resources(
        self,
        skill: str,
        context: str,
        corrections: Optional[List[Correction]] = None,
    ) -> List[Resource]:
        response = await self.search_client.search(
            self.build_prompt(skill, context), self.config.resource_max_tokens
        )
        try:
            data = extract_json_array(response)
        except JSONExtractionError as e:
            raise ParseError(RESOURCE_STAGE, f"Failed to parse resource search results: {e}") from e
        if not isinstance(data, list):
            raise ParseError(RESOURCE_STAGE, f"Expected a JSON array of resources, got {type(data).__name__}")

        return validate_resources(data, "resources", CorrectionLog(RESOURCE_STAGE, corrections))


class PlanGenerator:
    """Asks for 4-6 milestones covering the prioritized skills"""

    def __init__(
        self,
        search_client,
        config: Optional[PipelineConfig] = None,
        resource_finder: Optional[ResourceFinder] = None,
    ):
        self.search_client = search_client
        self.config = config or PipelineConfig()
        self.resource_finder = resource_finder or ResourceFinder(search_client, self.config)

    def build_prompt(self, current_role: str, target_role: str, skills: List[SkillGapRecord]) -> str:
        skill_lines = "\n".join(
            f"- {s.skill_name} (gap: {s.gap_level}, mentioned {s.mention_count} times)" for s in skills
        )
        return f"""Create a development plan for someone transitioning from {current_role} to {target_role}.

The plan should focus on developing these skills, in priority order:
{skill_lines or "- General preparation for the target role"}

Create 4-6 milestones that form a logical learning progression.
For each milestone:
1. Give it a clear, specific title
2. Provide a detailed description of what to learn and accomplish
3. Assign a priority (Low, Medium, High) and an estimated duration in weeks
4. Include 2-3 specific learning resources, especially YouTube tutorials and courses

Format your response as a JSON array:
[
  {{
    "title": "Milestone name",
    "description": "Detailed description",
    "priority": "High",
    "durationWeeks": 3,
    "order": 1,
    "resources": [
      {{"title": "Exact resource title", "url": "https://exact.url.com", "type": "Video"}}
    ]
  }}
]

Return ONLY valid JSON with no other text."""

    def parse_response(self, response: str, corrections: Optional[List[Correction]] = None) -> List[Milestone]:
        try:
            data = extract_json_array(response)
        except JSONExtractionError as e:
            raise ParseError(PLAN_STAGE, f"Failed to parse development plan: {e}") from e

        if isinstance(data, dict) and isinstance(data.get("milestones"), list):
            data = data["milestones"]
        if not isinstance(data, list):
            raise ParseError(PLAN_STAGE, f"Expected a JSON array of milestones, got {type(data).__name__}")

        log = CorrectionLog(PLAN_STAGE, corrections)
        ranked = []
        for index, item in enumerate(only_dicts(data, "milestones", log)):
            prefix = f"milestones[{index}]"
            requested = to_number(item.get("order"))
            if requested is None:
                if item.get("order") is not None:
                    log.record(f"{prefix}.order", item.get("order"), index + 1, "not a number")
                requested = index + 1

            title = coerce_text(item.get("title"), f"{prefix}.title", log)
            if not title:
                title = f"Milestone {index + 1}"
                log.record(f"{prefix}.title", item.get("title"), title, "missing title")

            duration = self._duration(item.get("durationWeeks"), f"{prefix}.durationWeeks", log)
            ranked.append((requested, index, {
                "title": title,
                "description": coerce_text(item.get("description"), f"{prefix}.description", log),
                "priority": coerce_level(item.get("priority"), f"{prefix}.priority", log),
                "duration_weeks": duration,
                "resources": validate_resources(item.get("resources"), f"{prefix}.resources", log),
            }))

        # stable on the original position when the requested order ties
        ranked.sort(key=lambda entry: (entry[0], entry[1]))
        milestones = []
        for position, (requested, _, fields) in enumerate(ranked, start=1):
            if requested != position:
                log.record(f"milestones[{fields['title']}].order", requested, position, "renumbered")
            milestones.append(Milestone(order=position, progress=0, **fields))
        return milestones

    def _duration(self, value, field: str, log: CorrectionLog) -> int:
        # zero or negative weeks is not a duration; use the configured default
        default = self.config.default_milestone_weeks
        number = to_number(value)
        if number is not None and number <= 0:
            log.record(field, value, default, "not a positive number")
            return default
        return clamp_number(value, field, log, low=1, default=default, integer=True)

    async def backfill_resources(
        self,
        milestones: List[Milestone],
        current_role: str,
        target_role: str,
        corrections: Optional[List[Correction]] = None,
    ) -> List[Milestone]:
        """Fill in resources for milestones that have none. Failures leave the milestone as is."""
        context = f"{current_role} to {target_role} transition"
        filled = []
        for milestone in milestones:
            if milestone.resources:
                filled.append(milestone)
                continue
            try:
                resources = await self.resource_finder.find_resources(milestone.title, context, corrections)
            except TransitionPipelineError as e:
                inc("plan.backfill.failed")
                logger.warning(
                    "plan.backfill_failed",
                    extra={"stage": RESOURCE_STAGE, "reason": str(e)},
                )
                filled.append(milestone)
                continue
            inc("plan.backfill.succeeded")
            filled.append(milestone.model_copy(update={"resources": resources}))
        return filled

    async def generate(
        self,
        current_role: str,
        target_role: str,
        prioritized_skills: List[SkillGapRecord],
        corrections: Optional[List[Correction]] = None,
    ) -> List[Milestone]:
        prompt = self.build_prompt(current_role, target_role, prioritized_skills)
        response = await self.search_client.search(prompt, self.config.plan_max_tokens)
        milestones = self.parse_response(response, corrections)
        milestones = await self.backfill_resources(milestones, current_role, target_role, corrections)

        logger.info(
            f"Generated {len(milestones)} milestones for {current_role} -> {target_role}",
            extra={"stage": PLAN_STAGE, "milestone_count": len(milestones)},
        )
        return milestones
