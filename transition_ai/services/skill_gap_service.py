"""
Skill Gap Analyzer
Combines the scraped story corpus with the user's known skills and asks the
search model which target-role skills are missing.
"""
from typing import List, Optional

from transition_ai.config import PipelineConfig
from transition_ai.errors import AnalysisParseError
from transition_ai.schemas.transition import ScrapedStory, SkillGapRecord
from transition_ai.services.record_validation import (
    Correction,
    CorrectionLog,
    clamp_number,
    coerce_level,
    coerce_text,
    only_dicts,
)
from transition_ai.utils.json_extract import JSONExtractionError, extract_json_array
from transition_ai.utils.logger import logger

STAGE = "skill_gap_analysis"


class SkillGapAnalyzer:
    """Prompts for a JSON array of skill gaps and validates every element"""

    def __init__(self, search_client, config: Optional[PipelineConfig] = None):
        self.search_client = search_client
        self.config = config or PipelineConfig()

    def build_prompt(
        self,
        current_role: str,
        target_role: str,
        stories: List[ScrapedStory],
        known_skills: List[str],
    ) -> str:
        corpus = "\n\n---\n\n".join(f"Source: {s.source}\n{s.content}" for s in stories)
        skills = ", ".join(known_skills) if known_skills else "not specified"

        return f"""You are a career transition analyst specializing in identifying skill gaps.

CURRENT ROLE: {current_role}
TARGET ROLE: {target_role}

Skills the person already has: {skills}

Here is data about people who have made this transition ({len(stories)} stories):
{corpus or "No stories were found; rely on web research."}

Analyze the skill gaps this person would have when transitioning from {current_role} to {target_role}.
Search the web for additional information about skills needed for {target_role} roles.

For each required skill:
1. Determine the gap level (Low/Medium/High) based on the known skills and typical {current_role} background
2. Assign a confidence score (0-100) based on frequency in job postings and career stories
3. Count approximately how many times each skill is mentioned in the data
4. Provide a brief context summary about why each skill is important, citing a source where possible

Return a JSON array of objects with these properties:
- skillName: string
- gapLevel: exactly "Low", "Medium", or "High"
- confidenceScore: number between 0 and 100
- mentionCount: number
- contextSummary: string

Return ONLY valid JSON with no explanation or other text."""

    def parse_response(self, response: str, corrections: Optional[List[Correction]] = None) -> List[SkillGapRecord]:
        """
        Parse the bracketed JSON array (or the whole response as JSON).

        Raises AnalysisParseError when neither yields a list. Individual
        records are coerced; a malformed one never sinks the batch.
        """
        try:
            data = extract_json_array(response)
        except JSONExtractionError as e:
            raise AnalysisParseError(f"Failed to parse skill gap analysis results: {e}") from e

        if isinstance(data, dict) and isinstance(data.get("skillGaps"), list):
            data = data["skillGaps"]
        if not isinstance(data, list):
            raise AnalysisParseError(f"Expected a JSON array of skill gaps, got {type(data).__name__}")

        log = CorrectionLog(STAGE, corrections)
        records = []
        for index, item in enumerate(only_dicts(data, "skillGaps", log)):
            record = self._validate_item(item, index, log)
            if record is not None:
                records.append(record)
        return records

    def _validate_item(self, item: dict, index: int, log: CorrectionLog) -> Optional[SkillGapRecord]:
        prefix = f"skillGaps[{index}]"
        name = coerce_text(item.get("skillName"), f"{prefix}.skillName", log)
        if not name:
            log.record(f"{prefix}.skillName", item.get("skillName"), None, "dropped: empty skill name")
            return None

        return SkillGapRecord(
            skill_name=name,
            gap_level=coerce_level(item.get("gapLevel"), f"{prefix}.gapLevel", log),
            confidence_score=clamp_number(
                item.get("confidenceScore"), f"{prefix}.confidenceScore", log,
                low=0, high=100, default=self.config.default_confidence_score, integer=True,
            ),
            mention_count=clamp_number(
                item.get("mentionCount"), f"{prefix}.mentionCount", log,
                low=0, default=1, integer=True,
            ),
            context_summary=coerce_text(item.get("contextSummary"), f"{prefix}.contextSummary", log),
        )

    async def analyze(
        self,
        current_role: str,
        target_role: str,
        stories: List[ScrapedStory],
        known_skills: List[str],
        corrections: Optional[List[Correction]] = None,
    ) -> List[SkillGapRecord]:
        prompt = self.build_prompt(current_role, target_role, stories, known_skills)
        response = await self.search_client.search(prompt, self.config.analysis_max_tokens)
        records = self.parse_response(response, corrections)

        logger.info(
            f"Identified {len(records)} skill gaps for {current_role} -> {target_role}",
            extra={"stage": STAGE, "skill_gap_count": len(records), "story_count": len(stories)},
        )
        return records
