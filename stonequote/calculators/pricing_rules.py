"""
Pricing rule selection and rule discount.

Client matching is OR-combined: a rule fires when its client type OR its client
tier OR its customer equals the quote's, and an unset rule field equals an
unset quote field. A rule scoped to one customer therefore also fires for any
quote without a client tier when the rule has no tier either. Tests pin this.

Every matching rule contributes. Percentage rules are taken on the
pre-discount subtotal, fixed rules at face value, and the sum is capped at the
subtotal so the net total never goes negative.
"""

import logging
from decimal import Decimal
from typing import Iterable, List, Mapping, Optional, Tuple

from .money import ZERO, percent_of, round_money, sum_decimals, to_decimal
from .types import (
    AdjustmentType, AppliedPricingRule, PricingContext, PricingRule, RuleScope,
)

logger = logging.getLogger(__name__)


def matches_client(rule: PricingRule, context: PricingContext) -> bool:
    return (
        rule.client_type_id == context.client_type_id
        or rule.client_tier_id == context.client_tier_id
        or rule.customer_id == context.customer_id
    )


def matches_quote_value(rule: PricingRule, quote_value: Decimal) -> bool:
    """Both bounds inclusive."""
    if rule.min_quote_value is not None and quote_value < rule.min_quote_value:
        return False
    if rule.max_quote_value is not None and quote_value > rule.max_quote_value:
        return False
    return True


class PricingRuleSelector:
    """Filters an organisation's rule table down to the rules one quote earns."""

    def __init__(self, rules: Iterable[PricingRule]):
        self.rules = list(rules)

    def select(self, context: PricingContext, quote_value: Decimal = ZERO,
               thicknesses: Iterable[int] = (),
               scope_totals: Optional[Mapping[RuleScope, Decimal]] = None) -> List[PricingRule]:
        """
        Active rules matching the client, quote value, thickness and scope,
        highest priority first (ties broken by rule id).
        """
        quote_value = to_decimal(quote_value)
        thicknesses = set(thicknesses)
        matched = []
        for rule in self.rules:
            if not rule.is_active:
                continue
            if not matches_client(rule, context):
                continue
            if not matches_quote_value(rule, quote_value):
                continue
            if rule.thickness_mm is not None and rule.thickness_mm not in thicknesses:
                continue
            if scope_totals is not None and rule.applies_to != RuleScope.ALL:
                if to_decimal(scope_totals.get(rule.applies_to)) <= ZERO:
                    continue
            matched.append(rule)

        matched.sort(key=lambda r: r.rule_id)
        matched.sort(key=lambda r: r.priority, reverse=True)
        logger.debug("%d of %d pricing rules apply", len(matched), len(self.rules))
        return matched

    @staticmethod
    def contribution(rule: PricingRule, subtotal: Decimal) -> Decimal:
        if rule.adjustment_type == AdjustmentType.PERCENTAGE:
            return percent_of(subtotal, rule.adjustment_value)
        return to_decimal(rule.adjustment_value)

    def apply(self, rules: Iterable[PricingRule],
              subtotal: Decimal) -> Tuple[Tuple[AppliedPricingRule, ...], Decimal]:
        """Returns (applied rule records, total rule discount capped at the subtotal)."""
        subtotal = to_decimal(subtotal)
        applied = []
        for rule in rules:
            applied.append(AppliedPricingRule(
                rule_id=rule.rule_id,
                rule_name=rule.name,
                priority=rule.priority,
                discount_type=rule.adjustment_type,
                discount_value=to_decimal(rule.adjustment_value),
                applies_to=rule.applies_to,
                amount=round_money(self.contribution(rule, subtotal)),
            ))
        discount = sum_decimals(a.amount for a in applied)
        return tuple(applied), round_money(min(discount, max(subtotal, ZERO)))
