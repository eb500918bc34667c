"""
Transition Overview Aggregator
Estimates success rate, average transition time and common paths from the
scraped stories.
"""
from typing import List, Optional

from transition_ai.config import PipelineConfig
from transition_ai.errors import ParseError
from transition_ai.schemas.transition import CommonPath, ScrapedStory, TransitionOverview
from transition_ai.services.record_validation import (
    Correction,
    CorrectionLog,
    clamp_number,
    coerce_text,
    only_dicts,
    to_number,
)
from transition_ai.utils.json_extract import JSONExtractionError, extract_json_object
from transition_ai.utils.logger import logger

STAGE = "transition_overview"


def story_corpus(stories: List[ScrapedStory], include_date: bool = True) -> str:
    blocks = []
    for story in stories:
        block = f"SOURCE: {story.source}\nURL: {story.url}\nCONTENT: {story.content}"
        if include_date:
            block += f"\nDATE: {story.date}"
        blocks.append(block + "\n---\n")
    return "\n".join(blocks)


class TransitionOverviewAggregator:

    def __init__(self, search_client, config: Optional[PipelineConfig] = None):
        self.search_client = search_client
        self.config = config or PipelineConfig()

    def build_prompt(self, current_role: str, target_role: str, stories: List[ScrapedStory]) -> str:
        return f"""You are a career transition analyst.

I have {len(stories)} real stories from people who transitioned from {current_role} to {target_role}.

Here are the stories:

{story_corpus(stories)}

Based ONLY on this real data (do not invent statistics), provide:
1. Success Rate (percentage) - estimate how many transitions were successful
2. Average Transition Time (in months) - time it took to complete the transition
3. Common Paths - list the most common strategies people used to transition

Search the web to find additional real transition stories to validate your estimates.
Cite specific sources for your statistics.

Format your response as JSON:
{{
  "successRate": number,
  "avgTransitionTimeMonths": number,
  "commonPaths": [
    {{"path": "description with source citation", "count": number}}
  ]
}}

The counts should reflect the actual number of times a path was mentioned.
Return only the JSON object with no other text."""

    def parse_response(
        self,
        response: str,
        corpus_size: int,
        corrections: Optional[List[Correction]] = None,
    ) -> TransitionOverview:
        try:
            data = extract_json_object(response)
        except JSONExtractionError as e:
            raise ParseError(STAGE, f"Failed to parse transition overview: {e}") from e
        if not isinstance(data, dict):
            raise ParseError(STAGE, f"Expected a JSON object, got {type(data).__name__}")

        avg_key = "avgTransitionTimeMonths" if "avgTransitionTimeMonths" in data else "avgTransitionTime"
        if to_number(data.get("successRate")) is None or to_number(data.get(avg_key)) is None:
            raise ParseError(STAGE, "Incomplete data generated - missing successRate or average transition time")
        if not isinstance(data.get("commonPaths"), list):
            raise ParseError(STAGE, "Incomplete data generated - commonPaths is not a list")

        log = CorrectionLog(STAGE, corrections)
        success_rate = clamp_number(data["successRate"], "successRate", log, low=0, high=100)
        avg_months = clamp_number(data[avg_key], avg_key, log, low=1)
        if avg_months is None:
            raise ParseError(STAGE, f"Incomplete data generated - {avg_key} is not a finite number")

        ceiling = max(corpus_size, self.config.path_count_floor)
        paths = []
        for index, item in enumerate(only_dicts(data["commonPaths"], "commonPaths", log)):
            path = coerce_text(item.get("path"), f"commonPaths[{index}].path", log)
            if not path:
                log.record(f"commonPaths[{index}]", item, None, "dropped: no path")
                continue
            count = clamp_number(
                item.get("count"), f"commonPaths[{index}].count", log,
                low=1, high=ceiling, default=1, integer=True,
            )
            paths.append(CommonPath(path=path, count=count))

        return TransitionOverview(
            success_rate=success_rate,
            avg_transition_time_months=avg_months,
            common_paths=paths,
        )

    async def aggregate(
        self,
        current_role: str,
        target_role: str,
        stories: List[ScrapedStory],
        corrections: Optional[List[Correction]] = None,
    ) -> TransitionOverview:
        prompt = self.build_prompt(current_role, target_role, stories)
        response = await self.search_client.search(prompt, self.config.overview_max_tokens)
        overview = self.parse_response(response, len(stories), corrections)

        logger.info(
            f"Overview for {current_role} -> {target_role}: {overview.success_rate}% success",
            extra={"stage": STAGE, "story_count": len(stories)},
        )
        return overview
