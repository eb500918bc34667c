import pytest

from conftest import FakeSearchClient, SKILL_GAP_RESPONSE
from transition_ai.config import PipelineConfig
from transition_ai.errors import AnalysisParseError, UpstreamAPIError
from transition_ai.schemas.transition import ScrapedStory
from transition_ai.services.skill_gap_service import SkillGapAnalyzer
from transition_ai.utils.metrics import get_counter

STORIES = [
    ScrapedStory(source="Reddit", content="Story one " * 10, url="https://reddit.com/1", date="2023-01-01"),
    ScrapedStory(source="Blind", content="Story two " * 10, url="https://teamblind.com/2", date="Not provided"),
]


async def test_analyze_validates_each_record():
    search = FakeSearchClient()
    analyzer = SkillGapAnalyzer(search)
    corrections = []

    gaps = await analyzer.analyze("Microsoft Level 63", "Google L6", STORIES, ["C#", "Azure"], corrections)

    assert [g.skill_name for g in gaps] == ["System Design", "Distributed Systems", "Go"]
    system_design, distributed, go = gaps
    assert system_design.gap_level == "High" and system_design.confidence_score == 92
    # unknown level falls back to Medium, score clamped
    assert distributed.gap_level == "Medium"
    assert distributed.confidence_score == 100
    # case-insensitive level, percent string, default mention count
    assert go.gap_level == "Low"
    assert go.confidence_score == 80
    assert go.mention_count == 1

    fields = {c.field for c in corrections}
    assert "skillGaps[1]" in fields  # the bare string
    assert any(c.field.endswith("gapLevel") and c.received == "Critical" for c in corrections)
    assert any(c.field.endswith("skillName") and "empty" in c.reason for c in corrections)
    assert get_counter("validation.skill_gap_analysis.corrected") == len(corrections)


async def test_prompt_carries_corpus_and_known_skills():
    search = FakeSearchClient()
    await SkillGapAnalyzer(search).analyze("Microsoft Level 63", "Google L6", STORIES, ["C#", "Azure"])

    prompt, max_tokens = search.calls[0]
    assert max_tokens == 1500
    assert "Source: Reddit" in prompt and "Source: Blind" in prompt
    assert prompt.count("\n\n---\n\n") == len(STORIES) - 1
    assert "C#, Azure" in prompt


async def test_missing_confidence_uses_configured_default():
    search = FakeSearchClient({"identifying skill gaps": '[{"skillName": "Kubernetes", "gapLevel": "High"}]'})
    analyzer = SkillGapAnalyzer(search, PipelineConfig(default_confidence_score=55))

    gaps = await analyzer.analyze("A", "B", STORIES, [])

    assert gaps[0].confidence_score == 55


async def test_wrapped_object_is_unwrapped():
    search = FakeSearchClient({
        "identifying skill gaps": '{"skillGaps": [{"skillName": "Go", "gapLevel": "Low", "confidenceScore": 60}]}'
    })
    gaps = await SkillGapAnalyzer(search).analyze("A", "B", STORIES, [])
    assert [g.skill_name for g in gaps] == ["Go"]


@pytest.mark.parametrize("response", [
    "I'm sorry, I could not find enough information.",
    '{"summary": "no gaps"}',
])
async def test_unparseable_response_raises(response):
    search = FakeSearchClient({"identifying skill gaps": response})
    with pytest.raises(AnalysisParseError) as exc_info:
        await SkillGapAnalyzer(search).analyze("A", "B", STORIES, [])
    assert exc_info.value.stage == "skill_gap_analysis"


async def test_upstream_error_propagates():
    search = FakeSearchClient({"identifying skill gaps": UpstreamAPIError("boom")})
    with pytest.raises(UpstreamAPIError):
        await SkillGapAnalyzer(search).analyze("A", "B", STORIES, [])


def test_parse_response_directly():
    gaps = SkillGapAnalyzer(FakeSearchClient()).parse_response(SKILL_GAP_RESPONSE)
    assert len(gaps) == 3


def test_oversized_numbers_are_clamped_not_fatal():
    huge = "1" + "0" * 400
    response = (
        '[{"skillName": "Go", "gapLevel": "High", "confidenceScore": "%s", "mentionCount": %s},'
        ' {"skillName": "Rust", "gapLevel": "Low", "confidenceScore": -%s}]' % (huge, huge, huge)
    )
    corrections = []

    gaps = SkillGapAnalyzer(FakeSearchClient()).parse_response(response, corrections)

    assert [g.skill_name for g in gaps] == ["Go", "Rust"]
    assert gaps[0].confidence_score == 100
    # no upper bound on mentions, so an infinite count falls back to the default
    assert gaps[0].mention_count == 1
    assert gaps[1].confidence_score == 0
    assert {c.field for c in corrections} >= {
        "skillGaps[0].confidenceScore", "skillGaps[0].mentionCount", "skillGaps[1].confidenceScore",
    }
