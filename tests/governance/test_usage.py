# tests/governance/test_usage.py
"""Tests for the UsageLedger hourly budgets and the per-user rate limiter."""

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone

import pytest

from govflow.governance import Budget, TenantDirectory, UsageLedger, UserRateLimiter, hour_bucket
from govflow.models import ResourceLimits, Tenant


class FakeClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 3, 10, 12, 30, tzinfo=timezone.utc))


@pytest.fixture
def directory():
    tenants = TenantDirectory()
    tenants.create_tenant(
        Tenant(
            id="small",
            resource_limits=ResourceLimits(
                max_tokens_per_hour=100, max_calls_per_hour=3, max_concurrent_jobs=2, max_storage_bytes=1000
            ),
        )
    )
    return tenants


@pytest.fixture
def ledger(directory, clock):
    return UsageLedger(directory, clock=clock)


class TestHourBucket:
    """Tests for the UTC calendar-hour window."""

    def test_floors_to_hour(self):
        moment = datetime(2024, 3, 10, 12, 59, 59, tzinfo=timezone.utc)
        assert hour_bucket(moment) == datetime(2024, 3, 10, 12, tzinfo=timezone.utc)

    def test_naive_treated_as_utc(self):
        assert hour_bucket(datetime(2024, 3, 10, 7, 15)) == datetime(2024, 3, 10, 7, tzinfo=timezone.utc)

    def test_same_hour_of_day_different_day(self):
        """A gap of a full day lands in a different bucket."""
        a = datetime(2024, 3, 10, 12, 5, tzinfo=timezone.utc)
        assert hour_bucket(a) != hour_bucket(a + timedelta(days=1))


class TestUsageLedger:
    """Tests for check_and_reserve, commit and release."""

    def test_reserve_counts_tokens_request_and_job(self, ledger):
        assert ledger.check_and_reserve("small", 40) is True
        usage = ledger.current_usage("small")
        assert usage.hourly_token_count == 40
        assert usage.hourly_request_count == 1
        assert usage.concurrent_jobs == 1

    def test_reserve_rejects_over_token_budget(self, ledger):
        """Nothing is reserved when the estimate would exceed the budget."""
        assert ledger.check_and_reserve("small", 101) is False
        usage = ledger.current_usage("small")
        assert usage.hourly_token_count == 0
        assert usage.hourly_request_count == 0

    def test_commit_replaces_estimate(self, ledger):
        ledger.check_and_reserve("small", 40)
        counters = ledger.commit("small", actual=25, reserved=40, storage_bytes=10)
        assert counters.hourly_token_count == 25
        assert counters.concurrent_jobs == 0
        assert counters.storage_bytes == 10

    def test_release_undoes_reservation(self, ledger):
        ledger.check_and_reserve("small", 40)
        ledger.release("small", reserved=40)
        usage = ledger.current_usage("small")
        assert usage.hourly_token_count == 0
        assert usage.hourly_request_count == 0
        assert usage.concurrent_jobs == 0

    def test_request_budget(self, ledger):
        for _ in range(3):
            assert ledger.check_and_reserve("small", 1)
            ledger.commit("small", 1, reserved=1)
        assert ledger.check_and_reserve("small", 1) is False
        assert Budget.REQUESTS in ledger.exceeded_budgets("small", 1)

    def test_concurrency_budget(self, ledger):
        assert ledger.check_and_reserve("small", 1)
        assert ledger.check_and_reserve("small", 1)
        assert ledger.check_and_reserve("small", 1) is False
        assert ledger.exceeded_budgets("small", 1) == [Budget.CONCURRENCY]

    def test_storage_budget(self, ledger):
        assert ledger.exceeded_budgets("small", 1, storage_bytes=2000) == [Budget.STORAGE]

    def test_window_reset_next_hour(self, ledger, clock):
        """Counters reset when the clock enters a new hour bucket."""
        ledger.check_and_reserve("small", 90)
        ledger.commit("small", 90, reserved=90)
        assert ledger.check_and_reserve("small", 20) is False

        clock.now = clock.now + timedelta(hours=1)
        assert ledger.check_and_reserve("small", 20) is True
        assert ledger.current_usage("small").hourly_token_count == 20

    def test_exceeded_budgets_does_not_mutate(self, ledger, clock):
        """Querying after a window rollover leaves the stored counters alone."""
        ledger.check_and_reserve("small", 50)
        clock.now = clock.now + timedelta(hours=2)
        assert ledger.exceeded_budgets("small", 10) == []
        clock.now = clock.now - timedelta(hours=2)
        assert ledger.current_usage("small").hourly_token_count == 50

    def test_current_usage_is_copy(self, ledger):
        ledger.check_and_reserve("small", 10)
        usage = ledger.current_usage("small")
        usage.hourly_token_count = 9999
        assert ledger.current_usage("small").hourly_token_count == 10

    def test_forget_on_tenant_delete(self, ledger, directory):
        ledger.check_and_reserve("small", 10)
        directory.delete_tenant("small")
        directory.create_tenant(Tenant(id="small"))
        assert ledger.current_usage("small").hourly_token_count == 0


class TestConcurrentReservations:
    """check_and_reserve under contention from many threads."""

    def test_only_what_fits_is_reserved(self):
        tenants = TenantDirectory()
        tenants.create_tenant(
            Tenant(
                id="burst",
                resource_limits=ResourceLimits(
                    max_tokens_per_hour=1000, max_calls_per_hour=10_000, max_concurrent_jobs=10_000
                ),
            )
        )
        ledger = UsageLedger(tenants)
        start = threading.Barrier(16)

        def reserve(index):
            if index < 16:
                start.wait(timeout=10)
            return ledger.check_and_reserve("burst", 30)

        with ThreadPoolExecutor(max_workers=16) as pool:
            outcomes = list(pool.map(reserve, range(100)))

        assert outcomes.count(True) == 1000 // 30
        usage = ledger.current_usage("burst")
        assert usage.hourly_token_count == 990
        assert usage.hourly_request_count == 33
        assert usage.concurrent_jobs == 33


class TestUserRateLimiter:
    """Tests for the sliding-hour per-user ceiling."""

    def test_limit_reached(self, clock):
        limiter = UserRateLimiter(limit=2, clock=clock)
        assert limiter.check("t", "alice")
        assert limiter.check("t", "alice")
        assert limiter.check("t", "alice") is False
        assert limiter.remaining("t", "alice") == 0

    def test_users_are_independent(self, clock):
        limiter = UserRateLimiter(limit=1, clock=clock)
        assert limiter.check("t", "alice")
        assert limiter.check("t", "bob")
        assert limiter.check("other", "alice")

    def test_window_slides(self, clock):
        limiter = UserRateLimiter(limit=1, clock=clock)
        assert limiter.check("t", "alice")
        clock.now = clock.now + timedelta(minutes=59)
        assert limiter.check("t", "alice") is False
        clock.now = clock.now + timedelta(minutes=2)
        assert limiter.check("t", "alice") is True

    def test_refund_returns_a_slot(self, clock):
        limiter = UserRateLimiter(limit=1, clock=clock)
        assert limiter.check("t", "alice")
        limiter.refund("t", "alice")
        assert limiter.remaining("t", "alice") == 1
        assert limiter.check("t", "alice")

    def test_refund_without_slots(self, clock):
        limiter = UserRateLimiter(limit=1, clock=clock)
        limiter.refund("t", "alice")
        assert limiter.remaining("t", "alice") == 1
