"""
Shared fixtures: a throwaway SQLite database, a canned search client and an
HTTP client wired to the app with that search client injected.
"""
import os
import tempfile

# Must be set before transition_ai.config / transition_ai.database are imported
_DB_DIR = tempfile.mkdtemp(prefix="transition_ai_tests_")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_DB_DIR}/test.db"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["PERPLEXITY_API_KEY"] = ""
os.environ.setdefault("LOG_LEVEL", "WARNING")

import json

import pytest
from httpx import ASGITransport, AsyncClient

from transition_ai.database import AsyncSessionLocal, drop_db, init_db
from transition_ai.services import transition_store
from transition_ai.utils import metrics


# ---------------------------------------------------------------------------
# Canned upstream responses
# ---------------------------------------------------------------------------

def _text(length: int) -> str:
    base = (
        "I spent six years on Azure services at Microsoft before joining Google. "
        "System design interviews were the hardest part and I practiced for months. "
    )
    return (base * 4)[:length].rstrip() + "."


STORY_CONTENTS = [_text(80), _text(120), _text(200)]

FORUM_RESPONSE = "Here are transition stories I found:\n\n" + json.dumps([
    {"source": "Reddit", "url": "https://www.reddit.com/r/cscareerquestions/comments/abc", "date": "2023-04-07",
     "content": STORY_CONTENTS[0]},
    {"source": "Blind", "url": "https://www.teamblind.com/post/xyz", "date": "March 3, 2024",
     "content": STORY_CONTENTS[1]},
    # no URL, but a date keeps it
    {"source": "Quora", "url": "", "date": "2 months ago", "content": STORY_CONTENTS[2]},
], indent=2)

SKILL_GAP_RESPONSE = """Based on the stories, here is the analysis:

```json
[
  {"skillName": "System Design", "gapLevel": "High", "confidenceScore": 92, "mentionCount": 7,
   "contextSummary": "Every story mentions system design interviews (Reddit)."},
  "not an object",
  {"skillName": "Distributed Systems", "gapLevel": "Critical", "confidenceScore": 150, "mentionCount": 4,
   "contextSummary": "Scale expectations at Google are higher."},
  {"skillName": "Go", "gapLevel": "low", "confidenceScore": "80%",
   "contextSummary": "Useful for infrastructure teams."},
  {"skillName": "", "gapLevel": "High", "confidenceScore": 50, "mentionCount": 2}
]
```"""

INSIGHT_RESPONSE = """{
  "keyObservations": ["Key insight: system design prep took 3-6 months. Source: Reddit", null, 42],
  "commonChallenges": ["Challenge: adapting from C# to Go. Source: Blind"]
}"""

PLAN_RESPONSE = """[
  {"title": "Distributed systems fundamentals", "description": "Consensus, replication, sharding",
   "priority": "High", "durationWeeks": 4, "order": 2,
   "resources": [{"title": "Designing Data-Intensive Applications", "url": "https://dataintensive.net", "type": "Book"}]},
  {"title": "System design interview prep", "description": "Practice end-to-end designs",
   "priority": "urgent", "durationWeeks": 0, "order": 1,
   "resources": [{"title": "", "url": ""}, {"title": "System Design Primer", "url": "https://github.com/donnemartin/system-design-primer"}]},
  {"title": "", "description": "Learn Go", "priority": "Medium", "order": "third", "resources": []}
]"""

RESOURCE_RESPONSE = """[
  {"title": "A Tour of Go", "url": "https://go.dev/tour", "type": "Course"},
  {"title": "Go by Example", "url": "https://gobyexample.com"}
]"""

OVERVIEW_RESPONSE = """{
  "successRate": "75%",
  "avgTransitionTime": 8,
  "commonPaths": [
    {"path": "Internal referral after system design prep (Reddit)", "count": 9},
    {"path": "Leetcode grind then direct application", "count": "two"},
    {"count": 3}
  ]
}"""


class FakeSearchClient:
    """
    Stands in for PerplexityClient. Responses are picked by the first
    marker found in the prompt; an Exception value is raised instead.
    """

    DEFAULT_ROUTES = {
        "detailed stories": FORUM_RESPONSE,
        "identifying skill gaps": SKILL_GAP_RESPONSE,
        "Create a development plan": PLAN_RESPONSE,
        "best learning resources": RESOURCE_RESPONSE,
        "Success Rate": OVERVIEW_RESPONSE,
        "Key observations": INSIGHT_RESPONSE,
    }

    def __init__(self, routes=None):
        self.routes = dict(self.DEFAULT_ROUTES)
        if routes:
            self.routes.update(routes)
        self.calls = []

    def prompts_containing(self, marker: str):
        return [prompt for prompt, _ in self.calls if marker in prompt]

    async def search(self, prompt: str, max_tokens: int = 1000) -> str:
        self.calls.append((prompt, max_tokens))
        for marker, response in self.routes.items():
            if marker in prompt:
                if isinstance(response, Exception):
                    raise response
                return response
        raise AssertionError(f"No canned response for prompt: {prompt[:80]}")


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def reset_metrics():
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def fake_search():
    return FakeSearchClient()


@pytest.fixture
async def database():
    await drop_db()
    await init_db()
    async with AsyncSessionLocal() as session:
        await transition_store.seed_role_skills(session)
    yield
    await drop_db()


@pytest.fixture
async def db_session(database):
    async with AsyncSessionLocal() as session:
        yield session


@pytest.fixture
def make_pipeline():
    from transition_ai.config import PipelineConfig
    from transition_ai.services.transition_pipeline import TransitionPipeline

    def _make(search_client, **config):
        return TransitionPipeline(
            search_client=search_client,
            config=PipelineConfig(**config),
            session_factory=AsyncSessionLocal,
        )

    return _make


@pytest.fixture
async def client(database, fake_search, make_pipeline):
    from transition_ai.main import app
    from transition_ai.routes.transitions import get_pipeline

    pipeline = make_pipeline(fake_search)
    app.dependency_overrides[get_pipeline] = lambda: pipeline
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http:
        yield http
    app.dependency_overrides.clear()
