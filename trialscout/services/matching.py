"""
Matching Service

Wires settings into the default collaborators and the pipeline coordinator.
One instance lives for the lifetime of the application so the HTTP client and
the extracted-criteria cache are shared across runs.
"""
from typing import Optional

from trialscout.config import Settings, settings as default_settings
from trialscout.core.adapters import (
    ClinicalTrialsDiscovery,
    ClinicalTrialsExtraction,
    ClinicalTrialsGovClient,
    CriteriaCache,
    DiskCriteriaCache,
    InMemoryCriteriaCache,
    RuleBasedMatcher,
    ScriptSummarizer,
)
from trialscout.core.execution import CancellationToken, RetryExecutor, RetryPolicy
from trialscout.core.pipeline import PipelineCoordinator, ProgressCallback, RunOptions
from trialscout.core.records import EvidenceProfile, PipelineRun
from trialscout.utils import get_logger

logger = get_logger(__name__)


def build_cache(config: Settings) -> Optional[CriteriaCache]:
    if not config.criteria_cache_enabled:
        return None
    if config.criteria_cache_dir:
        return DiskCriteriaCache(config.criteria_cache_dir)
    return InMemoryCriteriaCache()


class MatchingService:
    """Entry point for running the matching pipeline."""

    def __init__(
        self,
        coordinator: PipelineCoordinator,
        config: Optional[Settings] = None,
        client: Optional[ClinicalTrialsGovClient] = None,
    ):
        self.coordinator = coordinator
        self.config = config or default_settings
        self._client = client

    @classmethod
    def from_settings(cls, config: Optional[Settings] = None) -> "MatchingService":
        config = config or default_settings
        client = ClinicalTrialsGovClient(
            base_url=config.clinicaltrials_api_base,
            timeout=config.request_timeout_seconds,
            page_size=config.discovery_page_size,
        )
        coordinator = PipelineCoordinator(
            discovery=ClinicalTrialsDiscovery(client),
            extraction=ClinicalTrialsExtraction(client),
            summarization=ScriptSummarizer(),
            matcher=RuleBasedMatcher(),
            retry=RetryExecutor(RetryPolicy.from_settings(config)),
            cache=build_cache(config),
        )
        logger.info(
            f"MatchingService ready (api={config.clinicaltrials_api_base}, "
            f"max_candidates={config.max_candidates})"
        )
        return cls(coordinator, config=config, client=client)

    async def run(
        self,
        profile: EvidenceProfile,
        progress_callback: Optional[ProgressCallback] = None,
        cancellation_token: Optional[CancellationToken] = None,
    ) -> PipelineRun:
        options = RunOptions.from_settings(self.config, cancellation_token=cancellation_token)
        return await self.coordinator.run(profile, progress_callback, options)

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
        cache = self.coordinator.cache
        if isinstance(cache, DiskCriteriaCache):
            cache.close()
