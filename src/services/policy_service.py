"""Hot-reloadable access to the admission policy."""

from __future__ import annotations

from typing import Callable, Optional

from models.policy import ValidationPolicy
from utils.cache_service import LRUCache
from utils.logging_config import get_logger

logger = get_logger(__name__)

_POLICY_KEY = "validation-policy"


class PolicyProvider:
    """Serve the current ValidationPolicy, re-reading it after ``reload_seconds``.

    Each evaluation receives one immutable policy object, so a reload never
    changes a decision already in progress or history already recorded.
    """

    def __init__(
        self,
        loader: Callable[[], ValidationPolicy] = ValidationPolicy.from_environment,
        reload_seconds: float = 60.0,
        cache: Optional[LRUCache] = None,
    ):
        self._loader = loader
        self._cache = cache or LRUCache(max_size=1, ttl_seconds=reload_seconds)

    def _load(self) -> ValidationPolicy:
        policy = self._loader()
        logger.info(
            "Validation policy loaded",
            extra={
                "max_scan_count": policy.max_scan_count,
                "scan_window_days": policy.scan_window_days,
            },
        )
        return policy

    def current(self) -> ValidationPolicy:
        """Return the cached policy; ConfigurationError propagates on a bad reload."""
        return self._cache.get_or_load(_POLICY_KEY, self._load)

    def invalidate(self) -> None:
        self._cache.delete(_POLICY_KEY)
