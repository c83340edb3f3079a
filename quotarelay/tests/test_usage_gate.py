"""Tests for the usage gate (consume, strict lookup, free-tier view)."""
import threading

import pytest

from quotarelay.core.config import Settings
from quotarelay.core.errors import NotFoundError
from quotarelay.features.entitlements.gate import UsageGate, free_tier_plan
from quotarelay.features.entitlements.store import EntitlementRecord
from quotarelay.features.plans.catalog import PlanDescriptor


FREE = PlanDescriptor("", "free", 10)


@pytest.fixture
def gate(fake_store):
    return UsageGate(fake_store, free_plan=FREE)


def test_fresh_customer_gets_free_tier_and_eleventh_call_is_denied(gate, fake_store):
    first = gate.consume("user_new")
    assert first.allowed is True
    assert first.remaining == 9
    assert first.record.plan == "free"

    results = [gate.consume("user_new") for _ in range(10)]

    assert all(r.allowed for r in results[:9])
    assert results[-1].allowed is False
    assert fake_store.get("user_new").messages_used == 10


def test_denied_does_not_mutate(gate, fake_store):
    fake_store.seed(EntitlementRecord("cus_full", "Starter", 50, 50))

    decision = gate.consume("cus_full")

    assert decision.allowed is False
    assert fake_store.get("cus_full").messages_used == 50


def test_unlimited_reports_no_remaining(gate, fake_store):
    fake_store.seed(EntitlementRecord("cus_vip", "Premium", None, 1000))

    decision = gate.consume("cus_vip")

    assert decision.allowed is True
    assert decision.remaining is None
    assert fake_store.get("cus_vip").messages_used == 1001


def test_usage_is_monotonic_and_bounded(gate, fake_store):
    fake_store.seed(EntitlementRecord("cus_1", "Tiny", 3, 0))
    seen = []
    for _ in range(6):
        gate.consume("cus_1")
        seen.append(fake_store.get("cus_1").messages_used)

    assert seen == sorted(seen)
    assert max(seen) == 3


def test_consume_without_autoprovision_raises_not_found(fake_store):
    gate = UsageGate(fake_store, free_plan=FREE, autoprovision=False)

    with pytest.raises(NotFoundError):
        gate.consume("user_ghost")
    assert fake_store.get("user_ghost") is None


def test_lookup_is_strict(gate, fake_store):
    with pytest.raises(NotFoundError):
        gate.lookup("user_ghost")

    fake_store.seed(EntitlementRecord("cus_1", "Standard", 200, 7))
    assert gate.lookup("cus_1").messages_used == 7


def test_view_falls_back_to_free_tier_without_writing(gate, fake_store):
    record = gate.view("user_ghost")

    assert record == EntitlementRecord("user_ghost", "free", 10, 0)
    assert fake_store.get("user_ghost") is None


def test_concurrent_consume_admits_exactly_remaining(gate, fake_store):
    fake_store.seed(EntitlementRecord("cus_race", "Tiny", 4, 1))  # k = 3
    results = []
    lock = threading.Lock()

    def worker():
        decision = gate.consume("cus_race")
        with lock:
            results.append(decision.allowed)

    threads = [threading.Thread(target=worker) for _ in range(12)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert results.count(True) == 3
    assert results.count(False) == 9


def test_free_tier_plan_from_settings():
    plan = free_tier_plan(Settings(_env_file=None, FREE_PLAN_NAME="Free", FREE_MESSAGE_LIMIT=25))

    assert plan.name == "Free"
    assert plan.message_limit == 25
