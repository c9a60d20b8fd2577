"""
ClinicalTrials.gov Adapters

Default Discovery and Extraction collaborators backed by the public
ClinicalTrials.gov v2 REST API.

Error mapping (attached where raised, never inferred from text):
    429                 → retryable  RATE_LIMITED
    httpx timeout       → retryable  TIMEOUT
    404                 → fatal      NOT_FOUND
    other non-2xx       → fatal      UPSTREAM_ERROR
    undecodable body    → fatal      MALFORMED_RESPONSE
"""
from dataclasses import replace
from typing import Any, Dict, List, Optional, Type

import httpx

from trialscout.core.records import CandidateRecord, CriteriaSet, DiscoveryResult, Location
from trialscout.utils import AdapterError, DiscoveryError, ExtractionError, get_logger
from .eligibility import parse_eligibility
from .geo import add_distances, filter_by_radius, get_coordinates

logger = get_logger(__name__)

STUDY_URL = "https://clinicaltrials.gov/study/{nct_id}"
US_COUNTRY = "United States"


class ClinicalTrialsGovClient:
    """Thin async client for the v2 ``/studies`` endpoints."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        page_size: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        from trialscout.config import settings

        self.base_url = (base_url or settings.clinicaltrials_api_base).rstrip("/")
        self.page_size = page_size or settings.discovery_page_size
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout if timeout is not None else settings.request_timeout_seconds,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    async def search_studies(
        self, condition: str, zipcode: str = "", radius_miles: float = 50.0
    ) -> Dict[str, Any]:
        """Recruiting interventional studies for a condition, optionally near a zipcode."""
        params = {
            "query.cond": condition,
            "filter.overallStatus": "RECRUITING",
            "pageSize": str(self.page_size),
            "countTotal": "true",
        }
        # Postal codes without a known centroid send no geo filter
        coords = get_coordinates(zipcode) if zipcode else None
        if coords is not None:
            lat, lon = coords
            params["filter.geo"] = f"distance({lat},{lon},{radius_miles:g}mi)"

        return await self._get("/studies", params, DiscoveryError, condition=condition)

    async def get_study(self, nct_id: str) -> Dict[str, Any]:
        return await self._get(f"/studies/{nct_id}", None, ExtractionError, candidate_id=nct_id)

    async def _get(
        self,
        path: str,
        params: Optional[Dict[str, str]],
        error_cls: Type[AdapterError],
        **context: Any,
    ) -> Dict[str, Any]:
        try:
            response = await self._client.get(path, params=params)
        except httpx.TimeoutException as e:
            raise error_cls.timed_out(f"ClinicalTrials.gov request timed out: {path}", **context) from e
        except httpx.HTTPError as e:
            raise error_cls(
                f"ClinicalTrials.gov request failed: {e}",
                code="UPSTREAM_ERROR",
                details=context,
            ) from e

        status = response.status_code
        if status == 429:
            raise error_cls.rate_limited("Rate limit exceeded. Please try again later.", **context)
        if status == 404:
            raise error_cls.not_found(f"Not found on ClinicalTrials.gov: {path}", **context)
        if not response.is_success:
            logger.error(f"ClinicalTrials.gov error {status} for {path}: {response.text[:200]}")
            raise error_cls(
                f"ClinicalTrials.gov API error: {status} {response.reason_phrase}",
                code="UPSTREAM_ERROR",
                details={"status_code": status, **context},
            )

        try:
            return response.json()
        except ValueError as e:
            raise error_cls(
                f"Undecodable response from ClinicalTrials.gov for {path}",
                code="MALFORMED_RESPONSE",
                details=context,
            ) from e

    async def aclose(self) -> None:
        await self._client.aclose()


# ── Study → record mapping ───────────────────────────────────────────────────

def map_phase(phases: Optional[List[str]]) -> str:
    """First listed phase as "Phase N", or "N/A"."""
    if not phases:
        return "N/A"
    phase = phases[0].upper()
    for digit in ("1", "2", "3", "4"):
        if digit in phase:
            return f"Phase {digit}"
    return "N/A"


def study_to_candidate(study: Dict[str, Any]) -> CandidateRecord:
    section = study.get("protocolSection") or {}
    identification = section.get("identificationModule") or {}
    nct_id = identification.get("nctId", "")

    locations = tuple(
        Location(
            facility=loc.get("facility") or "Unknown Facility",
            city=loc.get("city") or "",
            state=loc.get("state") or "",
            zipcode=loc.get("zip") or "",
        )
        for loc in (section.get("contactsLocationsModule") or {}).get("locations") or []
        if loc.get("country") == US_COUNTRY
    )
    interventions = tuple(
        i.get("name", "")
        for i in (section.get("armsInterventionsModule") or {}).get("interventions") or []
        if i.get("name")
    )

    return CandidateRecord(
        candidate_id=nct_id,
        title=identification.get("briefTitle", ""),
        phase=map_phase((section.get("designModule") or {}).get("phases")),
        status=(section.get("statusModule") or {}).get("overallStatus", ""),
        sponsor=((section.get("sponsorCollaboratorsModule") or {}).get("leadSponsor") or {}).get("name")
        or "Unknown",
        conditions=tuple((section.get("conditionsModule") or {}).get("conditions") or ()),
        interventions=interventions,
        locations=locations,
        url=STUDY_URL.format(nct_id=nct_id),
    )


def localize(
    candidate: CandidateRecord, zipcode: str, radius_miles: float
) -> Optional[CandidateRecord]:
    """
    Attach distances and keep only sites within the radius, nearest first.

    Returns None when the candidate has sites but none in range. Candidates
    without listed sites, or an origin zipcode that cannot be placed, keep
    their sites with unknown distances.
    """
    if not candidate.locations or get_coordinates(zipcode) is None:
        return replace(candidate, locations=tuple(add_distances(candidate.locations, zipcode)))

    nearby = filter_by_radius(candidate.locations, zipcode, radius_miles)
    if not nearby:
        return None
    return replace(candidate, locations=tuple(nearby))


def _distance_key(candidate: CandidateRecord) -> float:
    distance = candidate.nearest_distance
    return distance if distance is not None else float("inf")


# ── Collaborators ────────────────────────────────────────────────────────────

class ClinicalTrialsDiscovery:
    """Discovery collaborator: recruiting trials near the patient."""

    def __init__(self, client: ClinicalTrialsGovClient):
        self.client = client

    async def discover(
        self, condition: str, location_code: str, radius_miles: float
    ) -> DiscoveryResult:
        data = await self.client.search_studies(condition, location_code, radius_miles)
        studies = data.get("studies") or []

        candidates = []
        for study in studies:
            candidate = localize(study_to_candidate(study), location_code, radius_miles)
            if candidate is not None:
                candidates.append(candidate)
        candidates.sort(key=_distance_key)

        logger.info(
            f"ClinicalTrialsDiscovery: {len(studies)} studies returned, "
            f"{len(candidates)} within {radius_miles:g} miles of {location_code or 'any location'}"
        )
        return DiscoveryResult(
            candidates=tuple(candidates),
            total_found=data.get("totalCount", len(studies)),
        )


class ClinicalTrialsExtraction:
    """Extraction collaborator: parses a study's published eligibility text."""

    def __init__(self, client: ClinicalTrialsGovClient):
        self.client = client

    async def extract(self, candidate_id: str) -> CriteriaSet:
        study = await self.client.get_study(candidate_id)
        module = (study.get("protocolSection") or {}).get("eligibilityModule")
        criteria = parse_eligibility(candidate_id, module)
        logger.debug(
            f"ClinicalTrialsExtraction [{candidate_id}]: "
            f"{len(criteria.inclusion)} inclusion, {len(criteria.exclusion)} exclusion"
        )
        return criteria
