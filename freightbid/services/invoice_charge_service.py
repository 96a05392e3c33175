"""
Invoice Charge Service - addon charged on the declared invoice value.

Handles:
1. The simple {enabled, percentage, minimumAmount} setting
2. General rule trees (see schemas/invoice_rule.py)
3. Settings validation and a human-readable breakdown

Evaluation never raises; anything unusable counts as a zero charge.
"""
import logging
import math
from typing import Any, Dict, List, Mapping, Optional

from freightbid.config import settings
from freightbid.core.money import round_half_up, round_whole
from freightbid.schemas.invoice_rule import (
    CompositeRule, ConditionalRule, FlatRule, InvoiceValueCharges,
    PercentageRule, PerUnitRule, SlabRule,
    parse_invoice_rule, parse_invoice_value_charges,
)

logger = logging.getLogger(__name__)

DEFAULT_DESCRIPTION = "Invoice Value Handling Charges"


def clamp_number(raw: float, low: Optional[float] = None, high: Optional[float] = None) -> int:
    """Apply finite bounds, then round to a whole unit."""
    if raw is None or not math.isfinite(raw):
        return 0
    value = raw
    if low is not None and math.isfinite(low):
        value = max(value, low)
    if high is not None and math.isfinite(high):
        value = min(value, high)
    return round_whole(value)


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


class InvoiceRuleEvaluator:
    """Evaluates a parsed rule tree against an invoice value."""

    def __init__(self, max_depth: Optional[int] = None):
        self.max_depth = max_depth or settings.INVOICE_RULE_MAX_DEPTH

    def evaluate(self, rule: Any, invoice_value: float, context: Optional[Mapping[str, Any]] = None) -> int:
        node = parse_invoice_rule(rule, self.max_depth)
        if node is None:
            return 0
        try:
            return self._evaluate(node, float(invoice_value), context or {}, depth=1)
        except (ArithmeticError, ValueError, TypeError) as e:
            logger.warning(f"Invoice rule evaluation failed, charging 0: {e}")
            return 0

    def _evaluate(self, node: Any, value: float, context: Mapping[str, Any], depth: int) -> int:
        if node is None:
            return 0
        if depth > self.max_depth:
            logger.warning(f"Invoice rule nested deeper than {self.max_depth}, ignoring node")
            return 0

        if isinstance(node, PercentageRule):
            return clamp_number(value * node.percent / 100, node.min, node.max)

        if isinstance(node, FlatRule):
            return clamp_number(node.amount, node.min, node.max)

        if isinstance(node, PerUnitRule):
            if node.unit <= 0:
                return 0
            ratio = value / node.unit
            units = math.ceil(ratio) if node.round_up else math.floor(ratio)
            return clamp_number(units * node.amount_per_unit, node.min, node.max)

        if isinstance(node, SlabRule):
            slab = next((s for s in node.slabs if s.contains(value)), None)
            if slab is None:
                return 0
            return clamp_number(value * slab.percent / 100, node.min, node.max)

        if isinstance(node, ConditionalRule):
            for condition in node.conditions:
                if self._matches(condition.when, context):
                    return self._evaluate(condition.rule, value, context, depth + 1)
            return self._evaluate(node.default, value, context, depth + 1)

        if isinstance(node, CompositeRule):
            total = sum(self._evaluate(part, value, context, depth + 1) for part in node.parts)
            return clamp_number(total, node.min, node.max)

        return 0

    @staticmethod
    def _matches(checks: Mapping[str, Any], context: Mapping[str, Any]) -> bool:
        for key, expected in checks.items():
            actual = context.get(key)
            if actual is None or _stringify(actual) != _stringify(expected):
                return False
        return True


# ============================================
# SIMPLE INVOICE VALUE CHARGE
# ============================================

def calculate_invoice_value_charge(invoice_value: float, charges: Any) -> int:
    """enabled ? max(value * percentage / 100, minimumAmount) : 0, rounded."""
    config = parse_invoice_value_charges(charges)
    if config is None or not config.enabled:
        return 0
    if invoice_value is None or not math.isfinite(invoice_value) or invoice_value <= 0:
        return 0
    return round_whole(max(invoice_value * config.percentage / 100, config.minimum_amount))


def calculate_invoice_addon(
    invoice_value: float,
    invoice_value_charges: Any = None,
    invoice_rule: Any = None,
    context: Optional[Mapping[str, Any]] = None,
    evaluator: Optional[InvoiceRuleEvaluator] = None,
) -> int:
    """
    Addon for one rate card.
    An enabled simple setting takes precedence; otherwise the rule tree is used.
    """
    simple = parse_invoice_value_charges(invoice_value_charges)
    if simple is not None and simple.enabled:
        return calculate_invoice_value_charge(invoice_value, simple)
    if invoice_rule:
        return (evaluator or InvoiceRuleEvaluator()).evaluate(invoice_rule, invoice_value, context)
    return 0


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def validate_invoice_charge_settings(charges: Optional[Mapping[str, Any]]) -> List[str]:
    """Return a list of problems; empty means the settings are usable."""
    if not charges:
        return ["Invoice charge settings are required"]
    if isinstance(charges, InvoiceValueCharges):
        charges = charges.model_dump(by_alias=False)

    errors = []
    if charges.get("enabled"):
        percentage = charges.get("percentage")
        minimum = charges.get("minimumAmount", charges.get("minimum_amount"))
        if not _is_number(percentage) or not 0 <= percentage <= 100:
            errors.append("Percentage must be a number between 0 and 100")
        if not _is_number(minimum) or minimum < 0:
            errors.append("Minimum amount must be a non-negative number")
        if percentage == 0 and minimum == 0:
            errors.append("Either percentage or minimum amount must be greater than 0 when enabled")
    return errors


def explain_invoice_charge(invoice_value: float, charges: Any) -> Optional[Dict[str, Any]]:
    """Breakdown of the simple charge for display. None when no charge applies."""
    config = parse_invoice_value_charges(charges)
    if config is None or not config.enabled or not invoice_value or invoice_value <= 0:
        return None

    percentage_charge = invoice_value * config.percentage / 100
    final_charge = max(percentage_charge, config.minimum_amount)
    is_minimum_applied = percentage_charge < config.minimum_amount

    if is_minimum_applied:
        description = (
            f"Minimum charge of {config.minimum_amount:g} applied "
            f"(higher than {config.percentage:g}% of {invoice_value:g})"
        )
    else:
        description = f"{config.percentage:g}% of {invoice_value:g} = {percentage_charge:.2f}"

    return {
        "invoice_value": float(round_half_up(invoice_value, 2)),
        "percentage": config.percentage,
        "percentage_charge": float(round_half_up(percentage_charge, 2)),
        "minimum_amount": config.minimum_amount,
        "is_minimum_applied": is_minimum_applied,
        "final_charge": float(round_half_up(final_charge, 2)),
        "label": config.description or DEFAULT_DESCRIPTION,
        "description": description,
    }
