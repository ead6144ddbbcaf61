"""Tests for the daily generation quota."""

import threading
from datetime import timedelta

import pytest

from shortseo.clock import ManualClock
from shortseo.models import BonusGrantRecord, QuotaRecord
from shortseo.quota import QuotaExceededError, QuotaPolicy
from shortseo.storage import InMemoryQuotaStore


def make_policy(**kwargs):
    clock = kwargs.pop("clock", None) or ManualClock()
    store = kwargs.pop("store", None)
    if store is None:
        store = InMemoryQuotaStore()
    return QuotaPolicy(store=store, clock=clock, **kwargs), clock, store


class TestResolve:
    """Test cycle initialization and lazy reset."""

    def test_new_key_starts_full(self):
        """A key with no state gets a full allowance."""
        policy, clock, store = make_policy()

        record, bonus = policy.resolve("1.2.3.4")

        assert record.remaining == 5
        assert record.cycle_start == clock.now()
        assert bonus.granted_cycle_start is None
        assert store.get("1.2.3.4") is not None

    def test_resolve_within_cycle_keeps_state(self):
        """State is untouched before the reset time."""
        policy, clock, store = make_policy()
        start = clock.now()
        store.put("k", QuotaRecord(remaining=2, cycle_start=start), BonusGrantRecord())

        clock.advance(hours=23, minutes=59)
        record, _ = policy.resolve("k")

        assert record.remaining == 2
        assert record.cycle_start == start

    def test_reset_exactly_at_boundary(self):
        """now == cycle_start + cycle_length starts a new cycle."""
        policy, clock, store = make_policy()
        start = clock.now()
        store.put("k", QuotaRecord(remaining=0, cycle_start=start), BonusGrantRecord())

        clock.advance(hours=24)
        record, bonus = policy.resolve("k")

        assert record.remaining == 5
        assert record.cycle_start == start + timedelta(hours=24)
        assert bonus.granted_cycle_start is None

    def test_reset_anchors_to_evaluation_time(self):
        """A long-idle key starts its new cycle at the time it is read."""
        policy, clock, store = make_policy()
        store.put("k", QuotaRecord(remaining=0, cycle_start=clock.now()), BonusGrantRecord())

        clock.advance(days=3, hours=5)
        record, _ = policy.resolve("k")

        assert record.cycle_start == clock.now()

    def test_remaining_clamped_to_current_max(self):
        """Out-of-range persisted state is clamped, not trusted."""
        policy, clock, store = make_policy()
        store.put("k", QuotaRecord(remaining=40, cycle_start=clock.now()), BonusGrantRecord())

        record, _ = policy.resolve("k")

        assert record.remaining == 5
        assert store.get("k")[0].remaining == 5

    def test_custom_limits(self):
        """Limits can be set per policy."""
        policy, _, _ = make_policy(base_max=2, bonus_amount=1, cycle_length=timedelta(hours=1))

        record, _ = policy.resolve("k")

        assert record.remaining == 2
        assert policy.cap == 3


class TestConsume:
    """Test recording generations."""

    def test_consume_decrements(self):
        """Each consume uses one generation."""
        policy, _, store = make_policy()
        record, bonus = policy.resolve("k")

        record = policy.consume("k", record, bonus)

        assert record.remaining == 4
        assert store.get("k")[0].remaining == 4

    def test_consume_floors_at_zero(self):
        """remaining never goes negative."""
        policy, clock, _ = make_policy()
        record = QuotaRecord(remaining=0, cycle_start=clock.now())

        updated = policy.consume("k", record, BonusGrantRecord())

        assert updated.remaining == 0

    def test_five_successes_exhaust_quota(self):
        """The fifth generation leaves nothing; the sixth is refused."""
        policy, _, _ = make_policy()

        for _ in range(5):
            record, bonus = policy.check("k")
            record = policy.consume("k", record, bonus)

        assert record.remaining == 0
        with pytest.raises(QuotaExceededError) as exc_info:
            policy.check("k")

        assert exc_info.value.key == "k"
        assert exc_info.value.limit == 5
        assert "Daily generation limit of 5 reached" in str(exc_info.value)

    def test_authorize(self):
        """Only a positive remaining count is authorized."""
        policy, clock, _ = make_policy()

        assert policy.authorize(QuotaRecord(remaining=1, cycle_start=clock.now()))
        assert not policy.authorize(QuotaRecord(remaining=0, cycle_start=clock.now()))


class TestBonus:
    """Test the once-per-cycle email bonus."""

    def test_bonus_adds_generations(self):
        """A first claim adds bonus_amount and raises the max."""
        policy, _, _ = make_policy()
        record, bonus = policy.resolve("k")
        record = policy.consume("k", record, bonus)

        grant = policy.grant_bonus("k", record, bonus)

        assert grant.granted is True
        assert grant.record.remaining == 9
        assert policy.current_max(grant.record, grant.bonus) == 10

    def test_bonus_on_exhausted_quota(self):
        """Claiming at zero gives exactly bonus_amount."""
        policy, clock, store = make_policy()
        store.put("k", QuotaRecord(remaining=0, cycle_start=clock.now()), BonusGrantRecord())
        record, bonus = policy.resolve("k")

        grant = policy.grant_bonus("k", record, bonus)

        assert grant.record.remaining == 5
        assert policy.snapshot(grant.record, grant.bonus).max == 10

    def test_second_claim_same_cycle_rejected(self):
        """The bonus cannot be claimed twice in one cycle."""
        policy, _, _ = make_policy()
        record, bonus = policy.resolve("k")
        first = policy.grant_bonus("k", record, bonus)

        second = policy.grant_bonus("k", first.record, first.bonus)

        assert second.granted is False
        assert second.reason == "already_claimed"
        assert second.record.remaining == 10

    def test_bonus_reclaimable_next_cycle(self):
        """A new cycle makes the bonus available again."""
        policy, clock, _ = make_policy()
        record, bonus = policy.resolve("k")
        policy.grant_bonus("k", record, bonus)

        clock.advance(hours=24)
        record, bonus = policy.resolve("k")

        assert record.remaining == 5
        assert policy.current_max(record, bonus) == 5
        assert policy.grant_bonus("k", record, bonus).granted is True

    def test_bonus_capped(self):
        """remaining never exceeds base_max + bonus_amount."""
        policy, _, _ = make_policy(base_max=5, bonus_amount=10)
        record, bonus = policy.resolve("k")

        grant = policy.grant_bonus("k", record, bonus)

        assert grant.record.remaining == 15
        assert grant.record.remaining <= policy.cap


class TestSnapshot:
    """Test caller-facing quota views."""

    def test_usage_does_not_consume(self):
        """usage() never changes the count."""
        policy, _, _ = make_policy()

        policy.usage("k")
        snapshot = policy.usage("k")

        assert snapshot.remaining == 5
        assert snapshot.max == 5
        assert snapshot.bonus_claimed is False

    def test_snapshot_reset_time(self):
        """Reset time is cycle start plus cycle length."""
        policy, clock, _ = make_policy()
        start = clock.now()

        snapshot = policy.usage("k")

        assert snapshot.reset_at == start + timedelta(hours=24)
        assert snapshot.to_dict()["resetAt"] == (start + timedelta(hours=24)).isoformat()


class TestConcurrency:
    """Test that per-key updates are serialized."""

    def test_parallel_consumes_never_oversell(self):
        """Concurrent check-and-consume grants at most base_max generations."""
        policy, _, _ = make_policy(base_max=5)
        granted = []

        def worker():
            with policy.key_lock("k"):
                record, bonus = policy.resolve("k")
                if policy.authorize(record):
                    policy.consume("k", record, bonus)
                    granted.append(1)

        threads = [threading.Thread(target=worker) for _ in range(20)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(granted) == 5
        assert policy.usage("k").remaining == 0

    def test_keys_are_independent(self):
        """One key's usage does not affect another's."""
        policy, _, _ = make_policy()
        record, bonus = policy.resolve("a")
        policy.consume("a", record, bonus)

        assert policy.usage("a").remaining == 4
        assert policy.usage("b").remaining == 5

    def test_idle_key_locks_are_released(self):
        """Per-key locks are dropped once nobody holds or waits on them."""
        policy, _, _ = make_policy()

        for i in range(50):
            policy.usage(f"10.0.0.{i}")
        with policy.key_lock("busy"):
            assert list(policy._locks) == ["busy"]

        assert policy._locks == {}
