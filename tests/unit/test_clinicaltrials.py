"""
Unit Tests for the ClinicalTrials.gov Adapters

The HTTP layer is replaced with an httpx.MockTransport.
"""
import httpx
import pytest

from trialscout.core.adapters.clinicaltrials import (
    ClinicalTrialsDiscovery,
    ClinicalTrialsExtraction,
    ClinicalTrialsGovClient,
    localize,
    map_phase,
    study_to_candidate,
)
from trialscout.core.records import CriterionCategory
from trialscout.utils import DiscoveryError, ErrorKind, ExtractionError

BASE_URL = "https://ctgov.test/api/v2"


def site(facility, city, state, zipcode, country="United States"):
    return {"facility": facility, "city": city, "state": state, "zip": zipcode, "country": country}


def study(nct_id, locations=(), eligibility="Inclusion Criteria:\n- Stage IV NSCLC"):
    return {
        "protocolSection": {
            "identificationModule": {"nctId": nct_id, "briefTitle": f"Trial {nct_id}"},
            "statusModule": {"overallStatus": "RECRUITING"},
            "sponsorCollaboratorsModule": {"leadSponsor": {"name": "National Cancer Institute"}},
            "conditionsModule": {"conditions": ["Non-Small Cell Lung Cancer"]},
            "designModule": {"phases": ["PHASE2", "PHASE3"]},
            "armsInterventionsModule": {"interventions": [{"name": "Pembrolizumab"}, {}]},
            "contactsLocationsModule": {"locations": list(locations)},
            "eligibilityModule": {"eligibilityCriteria": eligibility, "minimumAge": "18 Years"},
        }
    }


MSK = site("Memorial Sloan Kettering", "New York", "New York", "10065")
PENN = site("Penn Medicine", "Philadelphia", "Pennsylvania", "19102")
SEATTLE = site("Fred Hutch", "Seattle", "Washington", "98101")
TORONTO = site("Princess Margaret", "Toronto", "Ontario", "M5G 2M9", country="Canada")


@pytest.fixture
async def client_for():
    """Factory building clients around a request handler; closes them afterwards."""
    clients = []

    def factory(handler):
        client = ClinicalTrialsGovClient(
            base_url=BASE_URL, page_size=20, transport=httpx.MockTransport(handler)
        )
        clients.append(client)
        return client

    yield factory
    for client in clients:
        await client.aclose()


def respond(status_code=200, payload=None, **kwargs):
    def handler(request):
        return httpx.Response(status_code, json=payload, **kwargs)
    return handler


class TestStudyMapping:
    """Tests for mapping API studies to candidate records."""

    @pytest.mark.parametrize("phases,expected", [
        (["PHASE2", "PHASE3"], "Phase 2"),
        (["EARLY_PHASE1"], "Phase 1"),
        (["NA"], "N/A"),
        ([], "N/A"),
        (None, "N/A"),
    ])
    def test_map_phase(self, phases, expected):
        assert map_phase(phases) == expected

    def test_study_to_candidate(self):
        candidate = study_to_candidate(study("NCT04613596", [MSK, TORONTO]))

        assert candidate.candidate_id == "NCT04613596"
        assert candidate.title == "Trial NCT04613596"
        assert candidate.phase == "Phase 2"
        assert candidate.status == "RECRUITING"
        assert candidate.sponsor == "National Cancer Institute"
        assert candidate.interventions == ("Pembrolizumab",)
        assert [loc.facility for loc in candidate.locations] == ["Memorial Sloan Kettering"]
        assert candidate.url == "https://clinicaltrials.gov/study/NCT04613596"

    def test_sparse_study(self):
        candidate = study_to_candidate({"protocolSection": {"identificationModule": {"nctId": "NCT1"}}})
        assert candidate.sponsor == "Unknown"
        assert candidate.phase == "N/A"
        assert candidate.locations == ()


class TestLocalize:
    """Tests for radius filtering of candidate sites."""

    def test_keeps_sites_in_range(self):
        candidate = study_to_candidate(study("NCT1", [PENN, MSK, SEATTLE]))
        localized = localize(candidate, "10001", 100)

        assert [loc.facility for loc in localized.locations] == ["Memorial Sloan Kettering", "Penn Medicine"]
        assert localized.nearest_distance < 5

    def test_no_site_in_range(self):
        candidate = study_to_candidate(study("NCT1", [SEATTLE]))
        assert localize(candidate, "10001", 50) is None

    def test_candidate_without_sites_is_kept(self):
        candidate = study_to_candidate(study("NCT1"))
        assert localize(candidate, "10001", 50) == candidate

    def test_unknown_origin_keeps_sites(self):
        candidate = study_to_candidate(study("NCT1", [SEATTLE, MSK]))
        localized = localize(candidate, "67001", 50)

        assert len(localized.locations) == 2
        assert all(loc.distance_miles is None for loc in localized.locations)


@pytest.mark.asyncio
class TestClinicalTrialsGovClient:
    """Tests for request building and error mapping."""

    async def test_search_parameters(self, client_for):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"studies": [], "totalCount": 0})

        await client_for(handler).search_studies("Lung cancer", "10001", 50)

        params = seen[0].url.params
        assert seen[0].url.path == "/api/v2/studies"
        assert params["query.cond"] == "Lung cancer"
        assert params["filter.overallStatus"] == "RECRUITING"
        assert params["pageSize"] == "20"
        assert params["countTotal"] == "true"
        assert params["filter.geo"] == "distance(40.7484,-73.9967,50mi)"

    async def test_search_without_zipcode(self, client_for):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"studies": []})

        await client_for(handler).search_studies("Melanoma")
        assert "filter.geo" not in seen[0].url.params

    async def test_search_unknown_zipcode_omits_geo_filter(self, client_for):
        """A postal code without a known centroid sends no geo filter."""
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"studies": []})

        await client_for(handler).search_studies("Melanoma", "67001", 50)
        assert "filter.geo" not in seen[0].url.params

    async def test_rate_limit_is_retryable(self, client_for):
        with pytest.raises(DiscoveryError) as exc_info:
            await client_for(respond(429)).search_studies("Lung cancer")
        assert exc_info.value.code == "RATE_LIMITED"
        assert exc_info.value.kind is ErrorKind.RETRYABLE

    async def test_timeout_is_retryable(self, client_for):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(ExtractionError) as exc_info:
            await client_for(handler).get_study("NCT1")
        assert exc_info.value.code == "TIMEOUT"
        assert exc_info.value.retryable

    async def test_server_error_is_fatal(self, client_for):
        with pytest.raises(DiscoveryError) as exc_info:
            await client_for(respond(500, text="boom")).search_studies("Lung cancer")
        assert exc_info.value.code == "UPSTREAM_ERROR"
        assert exc_info.value.kind is ErrorKind.FATAL
        assert exc_info.value.details["status_code"] == 500

    async def test_connection_error_is_fatal(self, client_for):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(DiscoveryError) as exc_info:
            await client_for(handler).search_studies("Lung cancer")
        assert exc_info.value.code == "UPSTREAM_ERROR"
        assert not exc_info.value.retryable

    async def test_not_found(self, client_for):
        with pytest.raises(ExtractionError) as exc_info:
            await client_for(respond(404)).get_study("NCT99999999")
        assert exc_info.value.code == "NOT_FOUND"
        assert exc_info.value.details["candidate_id"] == "NCT99999999"

    async def test_undecodable_body(self, client_for):
        with pytest.raises(ExtractionError) as exc_info:
            await client_for(respond(200, content=b"<html>")).get_study("NCT1")
        assert exc_info.value.code == "MALFORMED_RESPONSE"


@pytest.mark.asyncio
class TestCollaborators:
    """Tests for the discovery and extraction collaborators."""

    async def test_discovery_filters_and_sorts(self, client_for):
        payload = {
            "studies": [
                study("NCT-PENN", [PENN]),
                study("NCT-MSK", [SEATTLE, MSK]),
                study("NCT-SEATTLE", [SEATTLE]),
                study("NCT-NOSITES"),
            ],
            "totalCount": 42,
        }
        discovery = ClinicalTrialsDiscovery(client_for(respond(200, payload)))
        result = await discovery.discover("Lung cancer", "10001", 100)

        assert [c.candidate_id for c in result.candidates] == ["NCT-MSK", "NCT-PENN", "NCT-NOSITES"]
        assert result.total_found == 42

    async def test_discovery_empty(self, client_for):
        discovery = ClinicalTrialsDiscovery(client_for(respond(200, {"studies": []})))
        result = await discovery.discover("Rare condition", "10001", 50)
        assert result.candidates == ()
        assert result.total_found == 0

    async def test_extraction(self, client_for):
        eligibility = "Inclusion Criteria:\n- EGFR mutation positive\nExclusion Criteria:\n- Prior osimertinib"
        extraction = ClinicalTrialsExtraction(
            client_for(respond(200, study("NCT1", eligibility=eligibility)))
        )
        criteria = await extraction.extract("NCT1")

        assert criteria.candidate_id == "NCT1"
        assert [c.category for c in criteria.inclusion] == [CriterionCategory.BIOMARKER]
        assert [c.category for c in criteria.exclusion] == [CriterionCategory.TREATMENT]
        assert criteria.age_range.min_age == 18

    async def test_extraction_without_eligibility(self, client_for):
        extraction = ClinicalTrialsExtraction(client_for(respond(200, study("NCT1", eligibility=""))))
        with pytest.raises(ExtractionError) as exc_info:
            await extraction.extract("NCT1")
        assert exc_info.value.code == "MALFORMED_RESPONSE"
