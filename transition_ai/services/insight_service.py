"""
Insight Synthesizer
Extracts key observations and common challenges from the transition stories.
"""
from typing import Any, List, Optional

from transition_ai.config import PipelineConfig
from transition_ai.errors import ParseError
from transition_ai.schemas.transition import ScrapedStory, TransitionInsights
from transition_ai.services.overview_service import story_corpus
from transition_ai.utils.json_extract import JSONExtractionError, extract_json_object
from transition_ai.utils.logger import logger

STAGE = "story_insights"


def _as_strings(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if item is not None]


class InsightSynthesizer:

    def __init__(self, search_client, config: Optional[PipelineConfig] = None):
        self.search_client = search_client
        self.config = config or PipelineConfig()

    def build_prompt(self, current_role: str, target_role: str, stories: List[ScrapedStory]) -> str:
        return f"""Analyze these real career transition stories from {current_role} to {target_role}:

{story_corpus(stories, include_date=False)}

Extract:
1. Key observations - important insights from people who made this transition
2. Common challenges - difficulties most people faced during the transition

For each point:
- Include a direct quote or reference from the stories when possible
- Include the source platform (Reddit, Quora, etc.)
- Focus on actionable insights that would help someone make this transition

Format your response as JSON:
{{
  "keyObservations": ["Key insight: [observation text with quote] Source: [platform]"],
  "commonChallenges": ["Challenge: [challenge text with quote] Source: [platform]"]
}}

Return ONLY valid JSON with no other text."""

    def parse_response(self, response: str) -> TransitionInsights:
        try:
            data = extract_json_object(response)
        except JSONExtractionError as e:
            raise ParseError(STAGE, f"Failed to parse transition stories analysis: {e}") from e
        if not isinstance(data, dict):
            raise ParseError(STAGE, f"Expected a JSON object, got {type(data).__name__}")

        return TransitionInsights(
            key_observations=_as_strings(data.get("keyObservations")),
            common_challenges=_as_strings(data.get("commonChallenges")),
        )

    async def synthesize(
        self,
        current_role: str,
        target_role: str,
        stories: List[ScrapedStory],
    ) -> TransitionInsights:
        prompt = self.build_prompt(current_role, target_role, stories)
        response = await self.search_client.search(prompt, self.config.insight_max_tokens)
        insights = self.parse_response(response)

        logger.info(
            f"Extracted {len(insights.key_observations)} observations and "
            f"{len(insights.common_challenges)} challenges",
            extra={"stage": STAGE, "story_count": len(stories)},
        )
        return insights
