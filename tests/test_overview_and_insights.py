import pytest

from conftest import FakeSearchClient
from transition_ai.config import PipelineConfig
from transition_ai.errors import ParseError
from transition_ai.schemas.transition import ScrapedStory
from transition_ai.services.insight_service import InsightSynthesizer
from transition_ai.services.overview_service import TransitionOverviewAggregator


def _stories(n):
    return [
        ScrapedStory(source="Reddit", content=f"Story {i} " * 12, url=f"https://reddit.com/{i}", date="2023-01-01")
        for i in range(n)
    ]


async def test_overview_coerces_and_clamps():
    search = FakeSearchClient()
    corrections = []

    overview = await TransitionOverviewAggregator(search).aggregate("A", "B", _stories(3), corrections)

    assert overview.success_rate == 75
    assert overview.avg_transition_time_months == 8
    # the entry without a path is dropped
    assert len(overview.common_paths) == 2
    assert overview.common_paths[0].count == 5  # 9 clamped to max(3, 5)
    assert overview.common_paths[1].count == 1  # "two" is not a number
    assert any("dropped" in c.reason for c in corrections)

    prompt, max_tokens = search.calls[0]
    assert "I have 3 real stories" in prompt
    assert "DATE: 2023-01-01" in prompt
    assert max_tokens == 1500


async def test_path_counts_bounded_by_corpus_size_when_larger_than_floor():
    response = '{"successRate": 140, "avgTransitionTimeMonths": 0.5, "commonPaths": [{"path": "x", "count": 40}]}'
    search = FakeSearchClient({"Success Rate": response})

    overview = await TransitionOverviewAggregator(search).aggregate("A", "B", _stories(8))

    assert overview.success_rate == 100
    assert overview.avg_transition_time_months == 1
    assert overview.common_paths[0].count == 8


async def test_path_count_floor_is_configurable():
    response = '{"successRate": 50, "avgTransitionTime": 6, "commonPaths": [{"path": "x", "count": 4}]}'
    search = FakeSearchClient({"Success Rate": response})
    aggregator = TransitionOverviewAggregator(search, PipelineConfig(path_count_floor=2))

    overview = await aggregator.aggregate("A", "B", _stories(1))

    assert overview.common_paths[0].count == 2


@pytest.mark.parametrize("response", [
    '{"avgTransitionTime": 6, "commonPaths": []}',
    '{"successRate": "unknown", "avgTransitionTime": 6, "commonPaths": []}',
    '{"successRate": 60, "commonPaths": []}',
    '{"successRate": 60, "avgTransitionTime": 6, "commonPaths": "many"}',
    "There is not enough data.",
])
async def test_incomplete_overview_raises(response):
    search = FakeSearchClient({"Success Rate": response})
    with pytest.raises(ParseError) as exc_info:
        await TransitionOverviewAggregator(search).aggregate("A", "B", _stories(2))
    assert exc_info.value.stage == "transition_overview"


async def test_insights_coerce_items_to_strings():
    search = FakeSearchClient()

    insights = await InsightSynthesizer(search).synthesize("A", "B", _stories(2))

    assert insights.key_observations == ["Key insight: system design prep took 3-6 months. Source: Reddit", "42"]
    assert insights.common_challenges == ["Challenge: adapting from C# to Go. Source: Blind"]


async def test_insights_non_list_fields_become_empty():
    search = FakeSearchClient({"Key observations": '{"keyObservations": "none", "commonChallenges": null}'})
    insights = await InsightSynthesizer(search).synthesize("A", "B", _stories(1))
    assert insights.key_observations == []
    assert insights.common_challenges == []


async def test_unparseable_insights_raise():
    search = FakeSearchClient({"Key observations": "No insights available."})
    with pytest.raises(ParseError) as exc_info:
        await InsightSynthesizer(search).synthesize("A", "B", _stories(1))
    assert exc_info.value.stage == "story_insights"


def test_oversized_overview_numbers_are_clamped():
    huge = "1" + "0" * 400
    response = (
        '{"successRate": %s, "avgTransitionTimeMonths": 7, '
        '"commonPaths": [{"path": "x", "count": "%s"}, {"path": "y", "count": -%s}]}' % (huge, huge, huge)
    )
    corrections = []

    overview = TransitionOverviewAggregator(FakeSearchClient()).parse_response(response, 3, corrections)

    assert overview.success_rate == 100
    assert [p.count for p in overview.common_paths] == [5, 1]
    assert "successRate" in {c.field for c in corrections}


def test_infinite_average_time_is_incomplete():
    response = '{"successRate": 60, "avgTransitionTime": %s, "commonPaths": []}' % ("9" * 400)
    with pytest.raises(ParseError) as exc_info:
        TransitionOverviewAggregator(FakeSearchClient()).parse_response(response, 2)
    assert exc_info.value.stage == "transition_overview"
