"""
Forum Search Service
Uses the search model to collect first-hand transition stories from Reddit, Quora, Blind and similar forums
"""
from typing import List, Optional

from transition_ai.config import PipelineConfig
from transition_ai.schemas.transition import ScrapedStory
from transition_ai.services.story_parser import ForumStoryParser
from transition_ai.utils.logger import logger


class ForumSearchService:
    """Runs the forum-search prompt and parses the response into stories"""

    def __init__(self, search_client, config: Optional[PipelineConfig] = None, parser: Optional[ForumStoryParser] = None):
        self.search_client = search_client
        self.config = config or PipelineConfig()
        self.parser = parser or ForumStoryParser(
            min_content_length=self.config.min_story_length,
            order_hint=self.config.date_order_hint,
        )

    def build_prompt(self, current_role: str, target_role: str) -> str:
        return f"""I need detailed stories from people who have transitioned from {current_role} to {target_role} careers.
Search across Reddit, Quora, Blind, Medium and any relevant forums.

For each story you find:
1. Include the EXACT full text of the person's story (at least a few sentences)
2. Provide the exact source platform (Reddit, Quora, etc.) and the complete URL
3. Include the publication date of the post
4. Make sure the story is from someone who has ACTUALLY made this career transition

Return the stories as a JSON array:
[
  {{"source": "Reddit", "url": "https://...", "date": "YYYY-MM-DD", "content": "full story text"}}
]

If you cannot produce JSON, format each result as:
- Source: [platform name]
- URL: [complete URL]
- Date: [publication date]
- Content: [full text of the transition story]

Return at least 3-5 real examples with full citations. Do not invent stories or URLs."""

    async def search_forums(self, current_role: str, target_role: str) -> List[ScrapedStory]:
        """
        Search forums for transition stories.

        Raises UpstreamAPIError if the search call fails; an unparseable
        response yields an empty list.
        """
        prompt = self.build_prompt(current_role, target_role)
        response = await self.search_client.search(prompt, self.config.forum_search_max_tokens)
        stories = self.parser.parse(response)

        logger.info(
            f"Found {len(stories)} transition stories for {current_role} -> {target_role}",
            extra={"story_count": len(stories)},
        )
        return stories
