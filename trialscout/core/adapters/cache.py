"""
Extracted-criteria caches.

Keys are candidate ids; a candidate's criteria are written at most once per
process, so no per-key locking is needed. Neither cache evicts.
"""
from typing import Dict, Optional

from diskcache import Cache

from trialscout.core.records import CriteriaSet
from trialscout.utils import get_logger

logger = get_logger(__name__)


class InMemoryCriteriaCache:
    """Process-local dict cache."""

    def __init__(self):
        self._store: Dict[str, CriteriaSet] = {}

    def get(self, candidate_id: str) -> Optional[CriteriaSet]:
        return self._store.get(candidate_id)

    def set(self, candidate_id: str, criteria: CriteriaSet) -> None:
        self._store[candidate_id] = criteria

    def __len__(self) -> int:
        return len(self._store)


class DiskCriteriaCache:
    """
    Persistent cache backed by diskcache.

    Criteria are stored as plain dicts so the cache survives code changes to
    the record classes.
    """

    KEY_PREFIX = "criteria_"

    def __init__(self, directory: str):
        self.directory = directory
        self._cache = Cache(directory)
        logger.info(f"DiskCriteriaCache: using {directory}")

    def _key(self, candidate_id: str) -> str:
        return f"{self.KEY_PREFIX}{candidate_id}"

    def get(self, candidate_id: str) -> Optional[CriteriaSet]:
        data = self._cache.get(self._key(candidate_id))
        if data is None:
            return None
        try:
            return CriteriaSet.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"DiskCriteriaCache: discarding unreadable entry for {candidate_id}: {e}")
            self._cache.delete(self._key(candidate_id))
            return None

    def set(self, candidate_id: str, criteria: CriteriaSet) -> None:
        self._cache.set(self._key(candidate_id), criteria.to_dict())

    def close(self) -> None:
        self._cache.close()
