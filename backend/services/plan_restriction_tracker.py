"""Tracks securities whose price data requires a higher market-data plan."""

import logging
import re
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Optional

from config import settings
from services.cache import InMemoryTTLCache, TTLCache, namespaced_key

logger = logging.getLogger(__name__)

CACHE_NAMESPACE = "security_plan_restriction"

# e.g. "This symbol is available starting with Grow plan"
PLAN_UPGRADE_PATTERN = re.compile(r"available starting with (\w+)", re.IGNORECASE)


def extract_required_plan(error_message: Optional[str]) -> Optional[str]:
    """Return the plan named in a provider error message, if any."""
    if not error_message:
        return None
    match = PLAN_UPGRADE_PATTERN.search(error_message)
    return match.group(1) if match else None


class PlanRestrictionTracker:
    """Records plan restrictions in an injected cache.

    Keys are namespaced by market-data provider and security id, so two
    providers never see each other's restrictions.
    """

    def __init__(self, cache: TTLCache, ttl: timedelta = timedelta(days=7)):
        self._cache = cache
        self._ttl = ttl

    def record(self, security_id: str, error_message: str, provider: str) -> bool:
        """Remember a restriction if the message names a required plan.

        Returns:
            True if a restriction was recorded.
        """
        required_plan = extract_required_plan(error_message)
        if not required_plan:
            return False
        self._cache.set(
            namespaced_key(CACHE_NAMESPACE, provider, security_id),
            {
                "required_plan": required_plan,
                "provider": provider,
                "recorded_at": datetime.now(timezone.utc).isoformat(),
            },
            self._ttl,
        )
        logger.info(
            "Recorded plan restriction for security %s (%s requires %s)",
            security_id, provider, required_plan,
        )
        return True

    def clear(self, security_id: str, provider: str) -> None:
        self._cache.delete(namespaced_key(CACHE_NAMESPACE, provider, security_id))

    def restriction_for(self, security_id: str, provider: str) -> Optional[dict]:
        return self._cache.get(namespaced_key(CACHE_NAMESPACE, provider, security_id))


@lru_cache
def get_plan_restriction_tracker() -> PlanRestrictionTracker:
    """Process-wide tracker backed by the in-memory cache (cached)."""
    return PlanRestrictionTracker(
        InMemoryTTLCache(), ttl=timedelta(days=settings.PLAN_RESTRICTION_TTL_DAYS)
    )
