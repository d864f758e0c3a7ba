"""
In-memory entitlement gate.

Each user starts with the configured allowance of actionable predictions.
Users listed as unlimited are never charged.
"""

import asyncio
import logging
from collections import defaultdict

from config import get_config

logger = logging.getLogger(__name__)


class InMemoryEntitlementGate:
    """EntitlementGate keeping balances in a dict, one lock per user."""

    def __init__(
        self,
        default_allowance: int | None = None,
        unlimited_users: list[str] | None = None,
    ):
        settings = get_config().entitlements
        self._default = settings.default_allowance if default_allowance is None else default_allowance
        self._unlimited = set(settings.unlimited_users if unlimited_users is None else unlimited_users)
        self._balances: dict[str, int] = {}
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    def _current(self, user_id: str) -> int:
        return self._balances.setdefault(user_id, self._default)

    async def has_allowance(self, user_id: str) -> bool:
        if user_id in self._unlimited:
            return True
        return self._current(user_id) > 0

    async def consume(self, user_id: str) -> bool:
        if user_id in self._unlimited:
            return True
        async with self._locks[user_id]:
            remaining = self._current(user_id)
            if remaining <= 0:
                logger.info(f"Allowance exhausted for {user_id}")
                return False
            self._balances[user_id] = remaining - 1
            logger.debug(f"Consumed one unit for {user_id}, {remaining - 1} left")
            return True

    async def balance(self, user_id: str) -> int | None:
        if user_id in self._unlimited:
            return None
        return self._current(user_id)

    def grant(self, user_id: str, units: int) -> None:
        """Add units to a user's balance."""
        if units < 0:
            raise ValueError(f"units must be >= 0, got {units}")
        self._balances[user_id] = self._current(user_id) + units
