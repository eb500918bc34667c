import pytest

from conftest import FakeSearchClient
from transition_ai.config import PipelineConfig
from transition_ai.errors import ParseError, UpstreamAPIError
from transition_ai.schemas.transition import SkillGapRecord
from transition_ai.services.plan_service import PlanGenerator, ResourceFinder
from transition_ai.services.transition_pipeline import prioritize_skills

SKILLS = [
    SkillGapRecord(skill_name="System Design", gap_level="High", mention_count=7),
    SkillGapRecord(skill_name="Go", gap_level="Low", mention_count=2),
]


async def test_generate_orders_defaults_and_backfills():
    search = FakeSearchClient()
    corrections = []

    milestones = await PlanGenerator(search).generate("Microsoft Level 63", "Google L6", SKILLS, corrections)

    assert [m.order for m in milestones] == [1, 2, 3]
    first, second, third = milestones
    assert first.title == "System design interview prep"
    assert first.priority == "Medium"
    assert first.duration_weeks == 2  # 0 weeks replaced by the default
    assert [r.title for r in first.resources] == ["System Design Primer"]
    assert first.resources[0].type == "Resource"

    assert second.title == "Distributed systems fundamentals"
    assert second.duration_weeks == 4

    assert third.title == "Milestone 3"
    assert third.duration_weeks == 2
    assert [r.title for r in third.resources] == ["A Tour of Go", "Go by Example"]
    assert all(m.progress == 0 for m in milestones)

    # only the milestone without resources triggered a lookup
    lookups = search.prompts_containing("best learning resources")
    assert len(lookups) == 1
    assert '"Milestone 3"' in lookups[0]
    assert "Microsoft Level 63 to Google L6 transition" in lookups[0]

    reasons = {c.field: c.reason for c in corrections}
    assert any(field.endswith("priority") for field in reasons)
    assert any("no title or url" in reason for reason in reasons.values())


async def test_backfill_failure_keeps_milestone_without_resources():
    search = FakeSearchClient({"best learning resources": UpstreamAPIError("timeout")})

    milestones = await PlanGenerator(search).generate("A", "B", SKILLS)

    assert len(milestones) == 3
    assert milestones[2].resources == []


async def test_unparseable_backfill_is_tolerated():
    search = FakeSearchClient({"best learning resources": "No resources found."})
    milestones = await PlanGenerator(search).generate("A", "B", SKILLS)
    assert milestones[2].resources == []


async def test_configured_default_duration():
    search = FakeSearchClient({
        "Create a development plan": '[{"title": "Learn Go", "resources": [{"title": "Tour", "url": "https://go.dev/tour"}]}]'
    })
    milestones = await PlanGenerator(search, PipelineConfig(default_milestone_weeks=3)).generate("A", "B", SKILLS)
    assert milestones[0].duration_weeks == 3
    assert milestones[0].order == 1


@pytest.mark.parametrize("weeks", ["0", "-3", '"-1 weeks"', "1" + "0" * 400])
def test_non_positive_or_oversized_duration_uses_default(weeks):
    response = '[{"title": "Learn Go", "durationWeeks": %s}]' % weeks
    corrections = []

    milestones = PlanGenerator(FakeSearchClient(), PipelineConfig(default_milestone_weeks=3)).parse_response(
        response, corrections
    )

    assert milestones[0].duration_weeks == 3
    assert any(c.field == "milestones[0].durationWeeks" for c in corrections)


def test_fractional_duration_rounds_up_to_one_week():
    milestones = PlanGenerator(FakeSearchClient()).parse_response('[{"title": "Learn Go", "durationWeeks": 0.3}]')
    assert milestones[0].duration_weeks == 1


async def test_unparseable_plan_raises_parse_error():
    search = FakeSearchClient({"Create a development plan": "Here is a great plan: study hard."})
    with pytest.raises(ParseError) as exc_info:
        await PlanGenerator(search).generate("A", "B", SKILLS)
    assert exc_info.value.stage == "plan_generation"


async def test_resource_finder_drops_empty_entries():
    search = FakeSearchClient({
        "best learning resources": '[{"title": "", "url": ""}, {"url": "https://kubernetes.io/docs"}]'
    })
    resources = await ResourceFinder(search).find_resources("Kubernetes", "A to B transition")
    assert len(resources) == 1
    assert resources[0].url == "https://kubernetes.io/docs"
    assert resources[0].type == "Resource"


def test_prioritize_skills_by_level_then_mentions():
    gaps = [
        SkillGapRecord(skill_name="a", gap_level="Low", mention_count=50),
        SkillGapRecord(skill_name="b", gap_level="High", mention_count=1),
        SkillGapRecord(skill_name="c", gap_level="High", mention_count=9),
        SkillGapRecord(skill_name="d", gap_level="Medium", mention_count=3),
    ]
    assert [g.skill_name for g in prioritize_skills(gaps, 3)] == ["c", "b", "d"]
