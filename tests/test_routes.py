from conftest import FakeSearchClient
from transition_ai.errors import UpstreamAPIError
from transition_ai.routes.transitions import get_pipeline

ROLES = {"currentRole": "Microsoft Level 63", "targetRole": "Google L6"}


async def _create(client):
    resp = await client.post("/api/transition", json=ROLES)
    assert resp.status_code == 200
    return resp.json()


async def test_full_flow_over_http(client):
    created = await _create(client)
    transition_id = created["transitionId"]

    # the background scrape has run by the time the response is returned
    job = await client.get(f"/api/jobs/{created['jobId']}")
    assert job.status_code == 200
    assert job.json()["status"] == "succeeded"
    assert job.json()["result"] == {"storyCount": 3}

    dashboard = (await client.get(f"/api/dashboard/{transition_id}")).json()
    assert dashboard["transition"]["status"] == "scraped"
    version = dashboard["transition"]["stageVersion"]

    analyzed = await client.post("/api/analyze", json={"transitionId": transition_id, "expectedVersion": version})
    assert analyzed.status_code == 200
    body = analyzed.json()
    assert body["accepted"] is True
    assert body["skillGapCount"] == 3
    assert {"field", "received", "applied", "reason"} <= set(body["corrections"][0])

    planned = await client.post("/api/plan", json={"transitionId": transition_id})
    assert planned.status_code == 200
    assert planned.json()["milestoneCount"] == 3

    overview = await client.get(f"/api/insights/{transition_id}")
    assert overview.status_code == 200
    assert overview.json()["successRate"] == 75
    assert all(p["count"] <= 5 for p in overview.json()["commonPaths"])

    stories = await client.get(f"/api/stories-analysis/{transition_id}")
    assert stories.status_code == 200
    assert len(stories.json()["keyObservations"]) == 2

    dashboard = (await client.get(f"/api/dashboard/{transition_id}")).json()
    assert dashboard["isComplete"] is True
    assert len(dashboard["milestones"]) == 3


async def test_create_is_idempotent(client):
    first = await _create(client)
    second = await _create(client)
    assert first["transitionId"] == second["transitionId"]
    # already scraped, so no new job
    assert second["jobId"] == first["jobId"]


async def test_stale_version_conflicts(client):
    created = await _create(client)
    resp = await client.post("/api/analyze", json={"transitionId": created["transitionId"], "expectedVersion": 0})
    assert resp.status_code == 409
    assert resp.json()["detail"]["currentStatus"] == "scraped"


async def test_plan_before_analyze_conflicts(client):
    created = await _create(client)
    resp = await client.post("/api/plan", json={"transitionId": created["transitionId"]})
    assert resp.status_code == 409


async def test_unknown_ids_are_404(client):
    assert (await client.post("/api/analyze", json={"transitionId": 4242})).status_code == 404
    assert (await client.get("/api/dashboard/4242")).status_code == 404
    assert (await client.get("/api/jobs/not-a-job")).status_code == 404


async def test_invalid_body_is_422(client):
    resp = await client.post("/api/transition", json={"currentRole": "x"})
    assert resp.status_code == 422


async def test_parse_failure_reports_stage(client, make_pipeline):
    from transition_ai.main import app

    pipeline = make_pipeline(FakeSearchClient({"identifying skill gaps": "no json"}))
    app.dependency_overrides[get_pipeline] = lambda: pipeline

    created = await _create(client)
    resp = await client.post("/api/analyze", json={"transitionId": created["transitionId"]})

    assert resp.status_code == 500
    assert resp.json()["detail"]["stage"] == "skill_gap_analysis"


async def test_failed_scrape_is_visible_and_restartable(client, make_pipeline):
    from transition_ai.main import app

    failing = make_pipeline(FakeSearchClient({"detailed stories": UpstreamAPIError("down")}))
    app.dependency_overrides[get_pipeline] = lambda: failing

    created = await _create(client)
    job = (await client.get(f"/api/jobs/{created['jobId']}")).json()
    assert job["status"] == "failed"
    assert job["error"] == "down"

    resp = await client.post("/api/analyze", json={"transitionId": created["transitionId"]})
    assert resp.status_code == 409

    working = make_pipeline(FakeSearchClient())
    app.dependency_overrides[get_pipeline] = lambda: working
    rescrape = await client.post("/api/scrape", json={"transitionId": created["transitionId"]})
    assert rescrape.status_code == 202
    assert rescrape.json()["accepted"] is True

    resp = await client.post("/api/analyze", json={"transitionId": created["transitionId"]})
    assert resp.status_code == 200


async def test_health_and_metrics(client):
    health = await client.get("/health")
    assert health.status_code == 200
    assert "circuits" in health.json()

    await _create(client)
    metrics = (await client.get("/metrics")).json()
    assert metrics["counters"]["story_parser.json_array.hit"] == 1


async def test_correlation_id_is_echoed(client):
    resp = await client.get("/health", headers={"X-Correlation-ID": "abc-123"})
    assert resp.headers["X-Correlation-ID"] == "abc-123"


async def test_oversized_scores_do_not_fail_analysis(client, make_pipeline):
    from transition_ai.main import app

    huge = "1" + "0" * 400
    response = '[{"skillName": "Go", "gapLevel": "High", "confidenceScore": "%s", "mentionCount": %s}]' % (huge, huge)
    pipeline = make_pipeline(FakeSearchClient({"identifying skill gaps": response}))
    app.dependency_overrides[get_pipeline] = lambda: pipeline

    created = await _create(client)
    resp = await client.post("/api/analyze", json={"transitionId": created["transitionId"]})

    assert resp.status_code == 200
    assert resp.json()["skillGapCount"] == 1
    dashboard = (await client.get(f"/api/dashboard/{created['transitionId']}")).json()
    assert dashboard["skillGaps"][0]["confidenceScore"] == 100
