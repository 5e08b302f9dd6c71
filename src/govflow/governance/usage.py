# src/govflow/governance/usage.py
"""
Usage accounting and rate limiting.

Two independent, additive gates live here:

- :class:`UsageLedger` keeps per-tenant hourly token/request counters,
  the storage total and the number of in-flight jobs, and checks them
  against the tenant's :class:`~govflow.models.ResourceLimits`.
- :class:`UserRateLimiter` caps each (tenant, user) pair at a fixed number
  of actions per sliding hour.

Hourly window rule:
    Counters belong to a calendar-hour bucket: the UTC timestamp floored to
    the hour.  They reset as soon as "now" falls in a different bucket than
    the last request.  Because buckets are absolute datetimes (not an
    hour-of-day number), a gap of more than an hour always lands in a new
    bucket too.

Example:
    ledger = UsageLedger(tenants)
    if ledger.check_and_reserve("acme", estimate=300):
        try:
            result = await run_generation()
        except Exception:
            ledger.release("acme", reserved=300)
            raise
        ledger.commit("acme", actual=result.tokens_used, reserved=300)
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Deque, Dict, List, Optional, Tuple

from ..models import ResourceLimits, UsageCounters
from .tenants import TenantDirectory

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def hour_bucket(moment: datetime) -> datetime:
    """Floor an aware datetime to the start of its UTC hour."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).replace(minute=0, second=0, microsecond=0)


class Budget(str, Enum):
    """Tenant budgets checked by the ledger."""

    TOKENS = "tokens_per_hour"
    REQUESTS = "calls_per_hour"
    STORAGE = "storage_bytes"
    CONCURRENCY = "concurrent_jobs"


def exceeded(counters: UsageCounters, limits: ResourceLimits, estimate: int, storage_bytes: int = 0) -> List[Budget]:
    """Budgets that one more request of ``estimate`` tokens would exceed."""
    budgets: List[Budget] = []
    if counters.hourly_token_count + estimate > limits.max_tokens_per_hour:
        budgets.append(Budget.TOKENS)
    if counters.hourly_request_count + 1 > limits.max_calls_per_hour:
        budgets.append(Budget.REQUESTS)
    if counters.storage_bytes + storage_bytes > limits.max_storage_bytes:
        budgets.append(Budget.STORAGE)
    if counters.concurrent_jobs + 1 > limits.max_concurrent_jobs:
        budgets.append(Budget.CONCURRENCY)
    return budgets


class UsageLedger:
    """
    Per-tenant usage counters with linearizable check-and-reserve.

    Each tenant has its own lock; a reservation and its later commit or
    release for the same tenant never interleave with another request's
    check.  Callers only ever receive copies of the counters.
    """

    def __init__(self, tenants: TenantDirectory, clock: Optional[Clock] = None):
        self._tenants = tenants
        self._clock = clock or _utcnow
        self._counters: Dict[str, UsageCounters] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()
        tenants.on_delete(self.forget)

    def _lock_for(self, tenant_id: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(tenant_id)
            if lock is None:
                lock = self._locks[tenant_id] = threading.Lock()
            return lock

    def _rolled(self, tenant_id: str, now: datetime) -> Tuple[UsageCounters, bool]:
        """Counters for the bucket containing ``now``; the bool tells whether a reset is pending."""
        counters = self._counters.get(tenant_id) or UsageCounters()
        bucket = hour_bucket(now)
        if counters.window_start is not None and counters.window_start == bucket:
            return counters, False
        return counters.model_copy(
            update={"hourly_token_count": 0, "hourly_request_count": 0, "window_start": bucket}
        ), True

    def _roll(self, tenant_id: str, now: datetime) -> UsageCounters:
        counters, reset = self._rolled(tenant_id, now)
        if reset and tenant_id in self._counters:
            logger.debug(f"Hourly usage window reset for tenant '{tenant_id}' at {counters.window_start}")
        self._counters[tenant_id] = counters
        return counters

    def exceeded_budgets(self, tenant_id: str, estimate: int, storage_bytes: int = 0) -> List[Budget]:
        """
        Budgets a request of ``estimate`` tokens would exceed right now.

        Read-only: the stored counters are never modified, even when the
        hourly window has rolled over.
        """
        limits = self._tenants.get_tenant(tenant_id).resource_limits
        with self._lock_for(tenant_id):
            counters, _ = self._rolled(tenant_id, self._clock())
            return exceeded(counters, limits, estimate, storage_bytes)

    def check_and_reserve(self, tenant_id: str, estimate: int, storage_bytes: int = 0) -> bool:
        """
        Atomically check every budget and, if all hold, reserve one request.

        A reservation counts ``estimate`` tokens, one call and one concurrent
        job. Returns False (and reserves nothing) if any budget would be
        exceeded.
        """
        limits = self._tenants.get_tenant(tenant_id).resource_limits
        with self._lock_for(tenant_id):
            now = self._clock()
            counters = self._roll(tenant_id, now)
            over = exceeded(counters, limits, estimate, storage_bytes)
            if over:
                logger.info(
                    f"Reservation of {estimate} tokens rejected for tenant '{tenant_id}': "
                    f"{', '.join(b.value for b in over)}"
                )
                return False
            counters.hourly_token_count += estimate
            counters.hourly_request_count += 1
            counters.concurrent_jobs += 1
            counters.last_request_time = now
            return True

    def commit(self, tenant_id: str, actual: int, reserved: int = 0, storage_bytes: int = 0) -> UsageCounters:
        """Replace a reservation's estimate with the actual token count and finish the job."""
        with self._lock_for(tenant_id):
            counters = self._roll(tenant_id, self._clock())
            counters.hourly_token_count = max(0, counters.hourly_token_count + actual - reserved)
            counters.concurrent_jobs = max(0, counters.concurrent_jobs - 1)
            counters.storage_bytes += max(0, storage_bytes)
            return counters.model_copy()

    def release(self, tenant_id: str, reserved: int) -> None:
        """Undo a reservation whose action never completed."""
        with self._lock_for(tenant_id):
            counters = self._roll(tenant_id, self._clock())
            counters.hourly_token_count = max(0, counters.hourly_token_count - reserved)
            counters.hourly_request_count = max(0, counters.hourly_request_count - 1)
            counters.concurrent_jobs = max(0, counters.concurrent_jobs - 1)

    def current_usage(self, tenant_id: str) -> UsageCounters:
        with self._lock_for(tenant_id):
            counters, _ = self._rolled(tenant_id, self._clock())
            return counters.model_copy()

    def forget(self, tenant_id: str) -> None:
        """Drop all counters for a tenant (used when the tenant is deleted)."""
        with self._registry_lock:
            self._counters.pop(tenant_id, None)
            self._locks.pop(tenant_id, None)


class UserRateLimiter:
    """
    Sliding-window action ceiling per (tenant, user).

    Independent of the tenant budgets in :class:`UsageLedger`; both gates
    must pass for a governed action to run.
    """

    def __init__(self, limit: int = 100, window: timedelta = timedelta(hours=1), clock: Optional[Clock] = None):
        self.limit = limit
        self.window = window
        self._clock = clock or _utcnow
        self._events: Dict[Tuple[str, str], Deque[datetime]] = {}
        self._lock = threading.Lock()

    def _prune(self, key: Tuple[str, str], now: datetime) -> Deque[datetime]:
        events = self._events.setdefault(key, deque())
        horizon = now - self.window
        while events and events[0] <= horizon:
            events.popleft()
        return events

    def check(self, tenant_id: str, user_id: str) -> bool:
        """Record one action and return True, or return False if the ceiling is reached."""
        key = (tenant_id, user_id)
        with self._lock:
            now = self._clock()
            events = self._prune(key, now)
            if len(events) >= self.limit:
                logger.warning(f"Rate limit reached for user '{user_id}' of tenant '{tenant_id}' ({self.limit}/h)")
                return False
            events.append(now)
            return True

    def refund(self, tenant_id: str, user_id: str) -> None:
        """Give back the most recent slot of an action that was then rejected elsewhere."""
        with self._lock:
            events = self._events.get((tenant_id, user_id))
            if events:
                events.pop()

    def remaining(self, tenant_id: str, user_id: str) -> int:
        with self._lock:
            events = self._prune((tenant_id, user_id), self._clock())
            return max(0, self.limit - len(events))
