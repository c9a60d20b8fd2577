"""
Integration Tests for the FastAPI Backend

Tests for API endpoints: health checks, stage reference, matching and the
progress stream. The matching service is swapped for one built around
in-memory collaborators.
Uses async httpx for ASGI app testing.
"""
import json

import httpx
import pytest

from trialscout.config import Settings
from trialscout.core.pipeline import PipelineCoordinator
from trialscout.core.execution import CancellationToken
from trialscout.main import app, get_matching_service, stream_pipeline
from trialscout.services.matching import MatchingService
from trialscout.utils import DiscoveryError, PipelineCancelledError
from conftest import (
    POSSIBLE_INCLUSION,
    STRONG_INCLUSION,
    FakeDiscovery,
    FakeExtraction,
    FakeSummarizer,
    make_criteria,
)

PROFILE_REQUEST = {
    "condition": "Non-small cell lung cancer",
    "stage": "IV",
    "biomarkers": ["EGFR"],
    "performance_status": 1,
    "prior_treatments": ["Carboplatin"],
    "zipcode": "10001",
    "travel_radius_miles": 50,
    "language": "en",
}


@pytest.fixture
async def async_client():
    """Create async test client."""
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://test"
    ) as client:
        yield client


@pytest.fixture
def use_service(fast_retry):
    """Install a matching service built from the given collaborators."""
    def factory(discovery, extraction=None, summarizer=None):
        coordinator = PipelineCoordinator(
            discovery=discovery,
            extraction=extraction or FakeExtraction(),
            summarization=summarizer or FakeSummarizer(),
            retry=fast_retry,
        )
        service = MatchingService(coordinator, config=Settings(max_candidates=5))
        app.dependency_overrides[get_matching_service] = lambda: service
        return service

    yield factory
    app.dependency_overrides.clear()


@pytest.fixture
def matched_service(use_service, five_candidates):
    criteria = {
        c.candidate_id: make_criteria(c.candidate_id, inclusion=POSSIBLE_INCLUSION)
        for c in five_candidates
    }
    criteria["NCT00000003"] = make_criteria("NCT00000003", inclusion=STRONG_INCLUSION)
    return use_service(FakeDiscovery(five_candidates, total_found=12), FakeExtraction(criteria))


def parse_events(body: str):
    return [
        json.loads(chunk[len("data: "):])
        for chunk in body.split("\n\n")
        if chunk.startswith("data: ")
    ]


@pytest.mark.asyncio
class TestHealthEndpoints:
    """Tests for health check endpoints."""

    async def test_root_endpoint(self, async_client):
        """Test root endpoint returns health info."""
        response = await async_client.get("/")
        assert response.status_code == 200

        data = response.json()
        assert data["status"] == "healthy"
        assert "version" in data

    async def test_health_endpoint(self, async_client):
        """Test /health endpoint."""
        response = await async_client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    async def test_list_stages(self, async_client):
        """Stages come back in execution order with their weights."""
        response = await async_client.get("/api/v1/stages")
        assert response.status_code == 200

        data = response.json()
        assert [s["id"] for s in data] == ["discovery", "extraction", "matching", "summarization"]
        assert [s["weight"] for s in data] == [15, 35, 35, 15]
        assert data[0]["name"] == "Finding Trials"


@pytest.mark.asyncio
class TestMatchEndpoint:
    """Tests for the single-response match endpoint."""

    async def test_successful_run(self, async_client, matched_service):
        """Test a full run returns ranked outcomes and a summary."""
        response = await async_client.post("/api/v1/match", json=PROFILE_REQUEST)
        assert response.status_code == 200

        data = response.json()
        assert len(data["candidates"]) == 5
        assert data["outcomes"][0]["candidate_id"] == "NCT00000003"
        assert data["outcomes"][0]["category"] == "strong_match"
        scores = [o["score"] for o in data["outcomes"]]
        assert scores == sorted(scores, reverse=True)
        assert data["summary"]["language"] == "en"
        assert data["overall_progress"] == 100
        assert data["status_message"] == "Complete"
        assert all(s["status"] == "complete" for s in data["stages"])
        assert any("Found 12 trials, processing top 5" in line for line in data["log"])

    async def test_no_trials_found(self, async_client, use_service):
        use_service(FakeDiscovery([]))
        response = await async_client.post("/api/v1/match", json=PROFILE_REQUEST)
        assert response.status_code == 200

        data = response.json()
        assert data["candidates"] == []
        assert data["outcomes"] == []
        assert data["summary"] is None
        assert data["overall_progress"] == 100

    async def test_extraction_exhausted(self, async_client, use_service, five_candidates):
        """Every extraction failing still returns 200 with the raw candidates."""
        use_service(FakeDiscovery(five_candidates), FakeExtraction())
        response = await async_client.post("/api/v1/match", json=PROFILE_REQUEST)
        assert response.status_code == 200

        data = response.json()
        assert len(data["candidates"]) == 5
        assert data["outcomes"] == []
        assert data["overall_progress"] == 50
        assert data["status_message"] == "Error: No eligibility criteria could be extracted"

    async def test_discovery_failure(self, async_client, use_service):
        """Test a failed trial search maps to 502."""
        use_service(FakeDiscovery(error=DiscoveryError("ClinicalTrials.gov API error: 503")))
        response = await async_client.post("/api/v1/match", json=PROFILE_REQUEST)
        assert response.status_code == 502

        data = response.json()
        assert data["error"] == "DISCOVERY_FAILED"
        assert "503" in data["message"]

    @pytest.mark.parametrize("field,value", [
        ("zipcode", "1234"),
        ("zipcode", "ABCDE"),
        ("condition", "  a "),
        ("performance_status", 5),
        ("travel_radius_miles", 5),
        ("stage", "V"),
        ("language", "xx"),
    ])
    async def test_invalid_profile(self, async_client, use_service, field, value):
        """Test invalid profiles are rejected before the pipeline runs."""
        discovery = FakeDiscovery([])
        use_service(discovery)

        response = await async_client.post("/api/v1/match", json={**PROFILE_REQUEST, field: value})
        assert response.status_code == 422
        assert discovery.calls == []

    async def test_condition_is_stripped(self, async_client, use_service):
        discovery = FakeDiscovery([])
        use_service(discovery)

        payload = {**PROFILE_REQUEST, "condition": "  Melanoma  "}
        response = await async_client.post("/api/v1/match", json=payload)
        assert response.status_code == 200
        assert discovery.calls == [("Melanoma", "10001", 50)]


@pytest.mark.asyncio
class TestMatchStream:
    """Tests for the server-sent progress stream."""

    async def test_stream_events(self, async_client, matched_service):
        response = await async_client.post("/api/v1/match/stream", json=PROFILE_REQUEST)
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")

        events = parse_events(response.text)
        progress = [e for e in events if e["type"] == "progress"]

        assert progress[0]["stage"]["id"] == "discovery"
        assert progress[0]["stage"]["status"] == "running"
        overall = [e["overall_progress"] for e in progress]
        assert overall == sorted(overall)
        assert overall[-1] == 100

        assert events[-1]["type"] == "result"
        assert len(events[-1]["run"]["outcomes"]) == 5
        assert events[-1]["run"]["status_message"] == "Complete"

    async def test_stream_log_lines_sent_once(self, async_client, matched_service):
        response = await async_client.post("/api/v1/match/stream", json=PROFILE_REQUEST)
        events = parse_events(response.text)

        streamed = [line for e in events if e["type"] == "progress" for line in e["log"]]
        final_log = events[-1]["run"]["log"]
        assert len(streamed) == len(set(streamed))
        assert streamed == final_log[:len(streamed)]

    async def test_stream_discovery_failure(self, async_client, use_service):
        use_service(FakeDiscovery(error=DiscoveryError("ClinicalTrials.gov API error: 503")))
        response = await async_client.post("/api/v1/match/stream", json=PROFILE_REQUEST)
        assert response.status_code == 200

        events = parse_events(response.text)
        assert events[-1]["type"] == "error"
        assert events[-1]["error"] == "DISCOVERY_FAILED"
        error_states = [e["stage"] for e in events if e["type"] == "progress" and e["stage"]["status"] == "error"]
        assert error_states[0]["id"] == "discovery"

    async def test_disconnect_mid_stream_settles_run(self, profile, fast_retry, five_candidates):
        """A disconnect during extraction cancels the run and the stream waits for it to end."""

        class RecordingService(MatchingService):
            error = None

            async def run(self, *args, **kwargs):
                try:
                    return await super().run(*args, **kwargs)
                except Exception as e:
                    self.error = e
                    raise

        criteria = {
            c.candidate_id: make_criteria(c.candidate_id, inclusion=POSSIBLE_INCLUSION)
            for c in five_candidates
        }
        extraction = FakeExtraction(criteria, delay=0.05)
        coordinator = PipelineCoordinator(
            discovery=FakeDiscovery(five_candidates),
            extraction=extraction,
            summarization=FakeSummarizer(),
            retry=fast_retry,
        )
        service = RecordingService(
            coordinator, config=Settings(max_candidates=5, extraction_concurrency=2)
        )
        token = CancellationToken()

        async def is_disconnected():
            return bool(extraction.calls)

        frames = [
            frame async for frame in
            stream_pipeline(service, profile, is_disconnected, token, poll_seconds=0.01)
        ]

        assert token.is_cancelled
        assert isinstance(service.error, PipelineCancelledError)
        # the first chunk settled and no later chunk started
        assert len(extraction.calls) == 2
        assert extraction.in_flight == 0
        assert not any('"type": "result"' in frame for frame in frames)
