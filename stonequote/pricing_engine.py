"""
Quote Calculation Orchestrator.

Combines the component calculators into one QuoteCalculationResult.
Pure decimal math over an immutable snapshot; the only I/O is the loader call.

Input: quote id + a loader that returns a QuoteSnapshot
Output: QuoteCalculationResult (frozen), cached per quote id
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from .cache import CalculationCache, SingleFlight
from .calculators.cutout_calculator import CutoutCalculator
from .calculators.edge_calculator import EdgeCalculator
from .calculators.join_estimator import HeuristicJoinEstimator, JoinCalculator, JoinEstimator
from .calculators.material_calculator import (
    DEFAULT_WASTE_FACTOR, MaterialCalculator, piece_area_total,
)
from .calculators.money import percent_of, round_money, sum_decimals, to_decimal
from .calculators.pricing_rules import PricingRuleSelector
from .calculators.service_calculator import FlexibleServiceCalculator
from .calculators.types import (
    QuoteCalculationResult, QuoteSnapshot, RuleScope, ServiceType,
)

logger = logging.getLogger(__name__)

DEFAULT_WORKERS = 6


class PricingEngine:
    """
    Owns the worker pool, the cache and the in-flight table. Create one per
    process and share it; every method is safe to call from many threads.
    """

    def __init__(self, cache: Optional[CalculationCache] = None,
                 max_workers: int = DEFAULT_WORKERS,
                 join_estimator: Optional[JoinEstimator] = None,
                 default_waste_factor: Decimal = DEFAULT_WASTE_FACTOR):
        self.cache = cache
        self.join_estimator = join_estimator or HeuristicJoinEstimator()
        self.default_waste_factor = to_decimal(default_waste_factor)
        self._executor = ThreadPoolExecutor(max_workers=max_workers,
                                            thread_name_prefix="quote-calc")
        self._in_flight = SingleFlight()

    def calculate(self, quote_id, loader, force: bool = False) -> QuoteCalculationResult:
        """
        Cached result unless `force`; otherwise load and compute. Concurrent
        calls for the same quote and cache generation share one computation
        and its outcome. A forced call starts a new generation, so it never
        joins a computation already running and nothing older can overwrite
        its result. Loader errors (missing quote, missing pricing settings)
        propagate and nothing is cached.
        """
        key = str(quote_id)
        if self.cache is None:
            if force:
                return self._load_and_calculate(key, loader, None)
            return self._in_flight.do(
                (key, None), lambda: self._load_and_calculate(key, loader, None))

        if force:
            self.cache.invalidate(key)
        else:
            cached = self.cache.get(key)
            if cached is not None:
                logger.debug("Cache hit for quote %s", key, extra={"quote_id": key, "cache": "hit"})
                return cached

        generation = self.cache.generation(key)
        return self._in_flight.do(
            (key, generation), lambda: self._load_and_calculate(key, loader, generation))

    def invalidate(self, quote_id) -> bool:
        if self.cache is None:
            return False
        return self.cache.invalidate(str(quote_id))

    def _load_and_calculate(self, key: str, loader, generation) -> QuoteCalculationResult:
        started = time.perf_counter()
        snapshot = loader.load(key)
        result = self.calculate_from_data(snapshot)
        if self.cache is not None:
            self.cache.set(key, result, generation)
        duration_ms = round((time.perf_counter() - started) * 1000, 1)
        logger.info("Calculated quote %s v%s: total %s %s (%.1fms)",
                    key, result.version, result.total, result.currency, duration_ms,
                    extra={"quote_id": key, "duration_ms": duration_ms})
        return result

    def calculate_from_data(self, snapshot: QuoteSnapshot) -> QuoteCalculationResult:
        """Compute a result from an already-loaded snapshot. No cache, no I/O."""
        quote, context, pricing = snapshot.quote, snapshot.context, snapshot.pricing
        pieces = quote.pieces
        fabrication_discount = context.fabrication_discount_percent

        material_calc = MaterialCalculator(self.default_waste_factor)
        material_calc.validate_pieces(pieces)

        edge_calc = EdgeCalculator(pricing.edge_profiles, fabrication_discount)
        cutout_calc = CutoutCalculator(pricing.cutout_types, fabrication_discount)
        service_calc = FlexibleServiceCalculator(
            context.service_units, pricing.service_rates,
            fabrication_discount, self.join_estimator,
        )

        # --- Independent components, concurrently ---
        futures = {
            "materials": self._executor.submit(
                material_calc.calculate, pieces, context, quote.slab_count, quote.material_category),
            "edges": self._executor.submit(edge_calc.calculate, pieces),
            "cutouts": self._executor.submit(cutout_calc.calculate, pieces),
            # Joins are priced per piece below; keep them out of the service lines
            "services": self._executor.submit(service_calc.calculate, pieces, False),
            "delivery": self._executor.submit(service_calc.delivery_breakdown, quote),
            "templating": self._executor.submit(
                service_calc.templating_breakdown, quote, piece_area_total(pieces)),
        }
        parts = {name: future.result() for name, future in futures.items()}
        materials, edges, cutouts, services = (
            parts["materials"], parts["edges"], parts["cutouts"], parts["services"])
        delivery, templating = parts["delivery"], parts["templating"]

        # --- Joins ---
        join_rate = next(
            (r for r in pricing.service_rates if r.service_type == ServiceType.JOIN), None)
        joins = JoinCalculator(self.join_estimator, join_rate, fabrication_discount).calculate(pieces)

        # --- Subtotal ---
        subtotal = round_money(
            materials.total + edges.total + cutouts.total + services.total
            + delivery.final_cost + templating.final_cost
            + sum_decimals(j.total for j in joins)
        )

        # --- Pricing rules ---
        fabrication_total = edges.total + cutouts.total + services.total
        scope_totals = {
            RuleScope.ALL: subtotal,
            RuleScope.MATERIALS: materials.total,
            RuleScope.EDGES: edges.total,
            RuleScope.CUTOUTS: cutouts.total,
            RuleScope.SERVICES: services.total,
            RuleScope.FABRICATION: fabrication_total,
        }
        selector = PricingRuleSelector(pricing.pricing_rules)
        rules = selector.select(
            context, subtotal, {p.thickness_mm for p in pieces}, scope_totals)
        applied_rules, discount = selector.apply(rules, subtotal)

        # --- Tax and total ---
        tax_rate = quote.tax_rate if quote.tax_rate is not None else context.tax_rate
        taxable = subtotal - discount
        tax_amount = round_money(percent_of(taxable, tax_rate))

        return QuoteCalculationResult(
            quote_id=quote.quote_id,
            version=quote.version,
            materials=materials,
            edges=edges,
            cutouts=cutouts,
            services=services,
            delivery=delivery,
            templating=templating,
            joins=joins,
            applied_rules=applied_rules,
            subtotal=subtotal,
            discount=discount,
            tax_rate=to_decimal(tax_rate),
            tax_amount=tax_amount,
            total=round_money(taxable + tax_amount),
            currency=context.currency,
            calculated_at=datetime.now(timezone.utc),
            pricing_context=context,
        )

    def shutdown(self) -> None:
        self._executor.shutdown(wait=True)
