"""
Pricing engine tests: end-to-end totals, caching, invalidation, in-flight sharing.

Tests:
1-6.   Full calculation from a snapshot
7-11.  Calculation cache (TTL, invalidation, force, errors)
12-15. Stale results after invalidation or force
16-18. Concurrent calls for the same quote
"""

import threading
import time
from decimal import Decimal

import pytest

from stonequote.cache import CalculationCache, SingleFlight
from stonequote.calculators.types import (
    AdjustmentType, EdgeProfile, EdgeSide, MaterialPricing, MaterialPricingBasis,
    Piece, PricingConfiguration, PricingContext, PricingRule, QuoteData, QuoteSnapshot,
    ServiceRate, ServiceType,
)
from stonequote.errors import QuoteNotFoundError, QuoteValidationError
from stonequote.pricing_engine import PricingEngine


def _snapshot(length=2000, width=600, tax_rate=None, rules=(), rates=(), version=1):
    """One 2000 × 600 piece at $500/m², top and bottom at $30/m, 10% tax."""
    piece = Piece(
        piece_id="p-1", length_mm=length, width_mm=width, thickness_mm=20,
        edges={EdgeSide.TOP: "square", EdgeSide.BOTTOM: "square"},
        material=MaterialPricing(material_id="m-1", price_per_sqm=Decimal("500")),
    )
    return QuoteSnapshot(
        quote=QuoteData(quote_id="42", version=version, tax_rate=tax_rate, pieces=(piece,)),
        context=PricingContext(
            organisation_id="org-1",
            material_pricing_basis=MaterialPricingBasis.PER_SQUARE_METRE,
            tax_rate=Decimal("10"),
        ),
        pricing=PricingConfiguration(
            edge_profiles=(EdgeProfile(edge_type_id="square", name="Square",
                                       base_rate=Decimal("30")),),
            service_rates=tuple(rates),
            pricing_rules=tuple(rules),
        ),
    )


class FakeLoader:
    """Counts loads; optionally blocks, after reading its snapshot, until released."""

    def __init__(self, snapshot=None, release=None):
        self.snapshot = snapshot or _snapshot()
        self.release = release
        self.loads = 0
        self._lock = threading.Lock()

    def load(self, quote_id):
        with self._lock:
            self.loads += 1
            snapshot, release = self.snapshot, self.release
        # snapshot is taken before blocking
        if release is not None:
            release.wait(timeout=5)
        if snapshot is None:
            raise QuoteNotFoundError(quote_id)
        return snapshot


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def _wait_until(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not reached")
        time.sleep(0.01)


@pytest.fixture
def engine():
    e = PricingEngine(cache=CalculationCache(ttl_seconds=300))
    yield e
    e.shutdown()


# ============================================================
# Full calculation
# ============================================================

def test_end_to_end_totals(engine):
    result = engine.calculate_from_data(_snapshot())
    assert result.materials.total == Decimal("690.00")
    assert result.edges.total == Decimal("36.00")
    assert result.subtotal == Decimal("726.00")
    assert result.discount == Decimal("0.00")
    assert result.tax_amount == Decimal("72.60")
    assert result.total == Decimal("798.60")
    assert result.currency == "AUD"


def test_quote_tax_rate_overrides_organisation(engine):
    result = engine.calculate_from_data(_snapshot(tax_rate=Decimal("15")))
    assert result.tax_amount == Decimal("108.90")
    assert result.total == Decimal("834.90")


def test_rule_discount_reduces_taxable_amount(engine):
    rule = PricingRule(rule_id="1", name="Trade", adjustment_type=AdjustmentType.FIXED,
                       adjustment_value=Decimal("26"))
    result = engine.calculate_from_data(_snapshot(rules=[rule]))
    assert result.discount == Decimal("26.00")
    assert result.tax_amount == Decimal("70.00")
    assert result.total == Decimal("770.00")
    assert result.applied_rules[0].rule_name == "Trade"


def test_joins_added_to_subtotal(engine):
    join_rate = ServiceRate(service_type=ServiceType.JOIN, name="Join",
                            rate_20mm=Decimal("100"), rate_40mm=Decimal("100"))
    result = engine.calculate_from_data(_snapshot(length=4000, rates=[join_rate]))
    assert len(result.joins) == 1
    assert result.joins[0].total == Decimal("60.00")
    # 2.4 m² × $500 × 1.15 + 1.2 m edges × $30 + join
    assert result.subtotal == Decimal("1476.00")
    assert ServiceType.JOIN not in {i.service_type for i in result.services.items}


def test_invalid_piece_fails_whole_calculation(engine):
    with pytest.raises(QuoteValidationError) as exc:
        engine.calculate_from_data(_snapshot(length=0))
    assert exc.value.field == "length_mm"


def test_recalculation_is_identical_apart_from_timestamp(engine):
    first = engine.calculate_from_data(_snapshot())
    second = engine.calculate_from_data(_snapshot())
    assert first.monetary_fields() == second.monetary_fields()


# ============================================================
# Cache
# ============================================================

def test_cache_expires_at_ttl():
    clock = FakeClock()
    cache = CalculationCache(ttl_seconds=10, clock=clock)
    result = PricingEngine(cache=None).calculate_from_data(_snapshot())
    cache.set("42", result)
    clock.now = 9.999
    assert cache.get("42") is result
    clock.now = 10.0
    assert cache.get("42") is None
    assert len(cache) == 0


def test_second_call_served_from_cache(engine):
    loader = FakeLoader()
    first = engine.calculate("42", loader)
    second = engine.calculate("42", loader)
    assert loader.loads == 1
    assert second is first


def test_force_bypasses_cache(engine):
    loader = FakeLoader()
    engine.calculate("42", loader)
    engine.calculate("42", loader, force=True)
    assert loader.loads == 2


def test_invalidate_then_miss(engine):
    loader = FakeLoader()
    engine.calculate("42", loader)
    assert engine.invalidate("42") is True
    assert engine.invalidate("42") is False
    loader.snapshot = _snapshot(width=1000, version=2)
    result = engine.calculate("42", loader)
    assert loader.loads == 2
    assert result.version == 2
    assert result.total == Decimal("1331.00")


def test_errors_are_not_cached(engine):
    loader = FakeLoader()
    loader.snapshot = None
    for _ in range(2):
        with pytest.raises(QuoteNotFoundError):
            engine.calculate("404", loader)
    assert loader.loads == 2


# ============================================================
# Stale results
# ============================================================

def test_set_with_old_generation_is_dropped():
    cache = CalculationCache(ttl_seconds=300)
    result = PricingEngine(cache=None).calculate_from_data(_snapshot())
    generation = cache.generation("42")
    cache.invalidate("42")
    assert cache.set("42", result, generation) is False
    assert cache.get("42") is None
    assert cache.set("42", result, cache.generation("42")) is True
    assert cache.get("42") is result


def _start_blocked_calculation(engine, loader, results):
    thread = threading.Thread(target=lambda: results.append(engine.calculate("42", loader)))
    thread.start()
    _wait_until(lambda: loader.loads >= 1)
    return thread


def test_invalidate_during_calculation_discards_its_result(engine):
    release = threading.Event()
    loader = FakeLoader(release=release)
    results = []
    thread = _start_blocked_calculation(engine, loader, results)

    engine.invalidate("42")
    release.set()
    thread.join(timeout=5)

    assert results[0].version == 1
    assert engine.cache.get("42") is None

    loader.snapshot = _snapshot(width=1000, version=2)
    loader.release = None
    assert engine.calculate("42", loader).version == 2


def test_call_after_invalidate_does_not_join_older_calculation(engine):
    release = threading.Event()
    loader = FakeLoader(release=release)
    results = []
    thread = _start_blocked_calculation(engine, loader, results)

    engine.invalidate("42")
    loader.snapshot = _snapshot(width=1000, version=2)
    loader.release = None
    fresh = engine.calculate("42", loader)
    release.set()
    thread.join(timeout=5)

    assert loader.loads == 2
    assert fresh.version == 2
    assert engine.cache.get("42") is fresh


def test_force_during_calculation_recomputes_and_wins(engine):
    release = threading.Event()
    loader = FakeLoader(release=release)
    results = []
    thread = _start_blocked_calculation(engine, loader, results)

    loader.snapshot = _snapshot(width=1000, version=2)
    loader.release = None
    forced = engine.calculate("42", loader, force=True)
    release.set()
    thread.join(timeout=5)

    assert loader.loads == 2
    assert forced.total == Decimal("1331.00")
    assert results[0].version == 1
    assert engine.cache.get("42") is forced


# ============================================================
# Concurrency
# ============================================================

def test_concurrent_calls_share_one_computation(engine):
    release = threading.Event()
    loader = FakeLoader(release=release)
    results = []

    def worker():
        results.append(engine.calculate("42", loader))

    threads = [threading.Thread(target=worker) for _ in range(5)]
    for t in threads:
        t.start()
    _wait_until(lambda: loader.loads >= 1)
    time.sleep(0.1)
    release.set()
    for t in threads:
        t.join(timeout=5)

    assert loader.loads == 1
    assert len(results) == 5
    assert all(r is results[0] for r in results)


def test_single_flight_shares_errors():
    flight = SingleFlight()
    release = threading.Event()
    errors = []

    def failing():
        release.wait(timeout=5)
        raise RuntimeError("boom")

    def caller():
        try:
            flight.do("k", failing)
        except RuntimeError as e:
            errors.append(e)

    leader = threading.Thread(target=caller)
    leader.start()
    _wait_until(lambda: flight.in_flight("k"))
    follower = threading.Thread(target=caller)
    follower.start()
    time.sleep(0.1)
    release.set()
    leader.join(timeout=5)
    follower.join(timeout=5)

    assert len(errors) == 2
    assert not flight.in_flight("k")


def test_single_flight_runs_again_after_completion():
    flight = SingleFlight()
    calls = []
    assert flight.do("k", lambda: calls.append(1) or "first") == "first"
    assert flight.do("k", lambda: calls.append(1) or "second") == "second"
    assert len(calls) == 2
