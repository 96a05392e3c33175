"""Tests for invoice value addons and the rule evaluator."""
import pytest

from freightbid.schemas.invoice_rule import PercentageRule, parse_invoice_rule
from freightbid.services.invoice_charge_service import (
    InvoiceRuleEvaluator,
    calculate_invoice_addon,
    calculate_invoice_value_charge,
    clamp_number,
    explain_invoice_charge,
    validate_invoice_charge_settings,
)


def nested_composite(depth: int) -> dict:
    """A composite chain `depth` levels deep ending in a flat 10."""
    rule = {"type": "flat", "amount": 10}
    for _ in range(depth - 1):
        rule = {"type": "composite", "parts": [rule]}
    return rule


# =============================================================================
# SIMPLE SETTING
# =============================================================================

class TestInvoiceValueCharge:

    def test_minimum_applies(self):
        """2% of 1000 is 20, below the 100 minimum."""
        charges = {"enabled": True, "percentage": 2, "minimumAmount": 100}
        assert calculate_invoice_value_charge(1000, charges) == 100

    def test_percentage_applies(self):
        charges = {"enabled": True, "percentage": 2, "minimumAmount": 100}
        assert calculate_invoice_value_charge(10000, charges) == 200

    def test_disabled_or_missing(self):
        assert calculate_invoice_value_charge(1000, {"enabled": False, "percentage": 50}) == 0
        assert calculate_invoice_value_charge(1000, None) == 0

    def test_rounds_half_up(self):
        charges = {"enabled": True, "percentage": 0.25, "minimumAmount": 0}
        assert calculate_invoice_value_charge(1002, charges) == 3  # 2.505


class TestInvoiceAddon:

    def test_enabled_setting_wins_over_rule(self):
        addon = calculate_invoice_addon(
            1000,
            invoice_value_charges={"enabled": True, "percentage": 2, "minimumAmount": 100},
            invoice_rule={"type": "flat", "amount": 5},
        )
        assert addon == 100

    def test_rule_used_when_setting_disabled(self):
        addon = calculate_invoice_addon(
            1000,
            invoice_value_charges={"enabled": False},
            invoice_rule={"type": "flat", "amount": 5},
        )
        assert addon == 5

    def test_setting_and_equivalent_rule_agree(self):
        setting = {"enabled": True, "percentage": 1.5, "minimumAmount": 40}
        rule = {"type": "percentage", "percent": 1.5, "min": 40}
        for value in (100, 2666, 50000):
            assert calculate_invoice_addon(value, invoice_value_charges=setting) == \
                calculate_invoice_addon(value, invoice_rule=rule)

    def test_nothing_configured(self):
        assert calculate_invoice_addon(1000) == 0


# =============================================================================
# RULE EVALUATOR
# =============================================================================

class TestInvoiceRuleEvaluator:

    def setup_method(self):
        self.evaluator = InvoiceRuleEvaluator(max_depth=10)

    def test_percentage_with_clamp(self):
        rule = {"type": "PERCENTAGE", "percentage": 1, "min": 50, "max": 300}
        assert self.evaluator.evaluate(rule, 1000) == 50
        assert self.evaluator.evaluate(rule, 20000) == 200
        assert self.evaluator.evaluate(rule, 90000) == 300

    def test_per_unit(self):
        rule = {"type": "per_unit", "unit": 1000, "amountPerUnit": 7}
        assert self.evaluator.evaluate(rule, 2500) == 14
        assert self.evaluator.evaluate({**rule, "roundUp": True}, 2500) == 21

    def test_per_unit_with_non_positive_unit(self):
        assert self.evaluator.evaluate({"type": "per_unit", "unit": 0, "amountPerUnit": 7}, 2500) == 0

    def test_slab(self):
        rule = {
            "type": "slab",
            "max": 400,
            "slabs": [
                {"min": 0, "max": 10000, "percent": 1},
                {"min": 10000.01, "percent": 0.5},
            ],
        }
        assert self.evaluator.evaluate(rule, 5000) == 50
        assert self.evaluator.evaluate(rule, 40000) == 200
        assert self.evaluator.evaluate(rule, 100000) == 400

    def test_slab_gap_is_zero(self):
        rule = {"type": "slab", "slabs": [{"min": 0, "max": 100, "percent": 1}]}
        assert self.evaluator.evaluate(rule, 5000) == 0

    def test_conditional(self):
        rule = {
            "type": "conditional",
            "conditions": [
                {"if": {"mode": "Air"}, "rule": {"type": "flat", "amount": 500}},
                {"if": {"is_oda": True}, "rule": {"type": "flat", "amount": 250}},
            ],
            "default": {"type": "flat", "amount": 100},
        }
        assert self.evaluator.evaluate(rule, 1000, {"mode": "Air"}) == 500
        assert self.evaluator.evaluate(rule, 1000, {"mode": "Road", "is_oda": True}) == 250
        assert self.evaluator.evaluate(rule, 1000, {"mode": "Road"}) == 100

    def test_composite_sums_then_clamps(self):
        rule = {
            "type": "composite",
            "max": 120,
            "parts": [
                {"type": "flat", "amount": 50},
                {"type": "percentage", "percent": 10},
            ],
        }
        assert self.evaluator.evaluate(rule, 500) == 100
        assert self.evaluator.evaluate(rule, 5000) == 120

    def test_depth_limit(self):
        assert self.evaluator.evaluate(nested_composite(10), 1000) == 10
        assert self.evaluator.evaluate(nested_composite(11), 1000) == 0

    def test_very_deep_rule_charges_nothing(self):
        assert self.evaluator.evaluate(nested_composite(3000), 1000) == 0

    def test_deep_branch_dropped_shallow_parts_kept(self):
        rule = {
            "type": "composite",
            "parts": [{"type": "flat", "amount": 25}, nested_composite(3000)],
        }
        assert self.evaluator.evaluate(rule, 1000) == 25

    def test_deep_conditional_default(self):
        rule = {"type": "flat", "amount": 10}
        for _ in range(2000):
            rule = {"type": "conditional", "conditions": [], "default": rule}
        assert self.evaluator.evaluate(rule, 1000) == 0

    def test_deep_condition_payload_charges_nothing(self):
        when = {"mode": "road"}
        for _ in range(5000):
            when = {"nested": when}
        rule = {
            "type": "conditional",
            "conditions": [{"when": when, "rule": {"type": "flat", "amount": 10}}],
        }
        assert parse_invoice_rule(rule) is None
        assert self.evaluator.evaluate(rule, 1000) == 0

    @pytest.mark.parametrize("rule", [
        None,
        {},
        {"type": "mystery", "amount": 5},
        {"type": "flat", "amount": "lots"},
        ["not", "a", "rule"],
    ])
    def test_malformed_rules_charge_nothing(self, rule):
        assert self.evaluator.evaluate(rule, 1000) == 0

    def test_accepts_parsed_rules(self):
        node = parse_invoice_rule({"type": "percentage", "percent": 3})
        assert isinstance(node, PercentageRule)
        assert self.evaluator.evaluate(node, 1000) == 30


class TestClampNumber:

    def test_ignores_non_finite_bounds(self):
        assert clamp_number(12.5, float("-inf"), float("nan")) == 13

    def test_non_finite_value(self):
        assert clamp_number(float("inf")) == 0


# =============================================================================
# VALIDATION AND DISPLAY
# =============================================================================

class TestValidateSettings:

    def test_valid(self):
        assert validate_invoice_charge_settings({"enabled": True, "percentage": 2, "minimumAmount": 100}) == []

    def test_disabled_is_always_valid(self):
        assert validate_invoice_charge_settings({"enabled": False, "percentage": 500}) == []

    def test_problems_reported(self):
        errors = validate_invoice_charge_settings({"enabled": True, "percentage": 150, "minimumAmount": -1})
        assert len(errors) == 2

    def test_both_zero(self):
        errors = validate_invoice_charge_settings({"enabled": True, "percentage": 0, "minimumAmount": 0})
        assert errors == ["Either percentage or minimum amount must be greater than 0 when enabled"]

    def test_missing(self):
        assert validate_invoice_charge_settings(None) == ["Invoice charge settings are required"]


class TestExplainInvoiceCharge:

    def test_minimum_applied(self):
        info = explain_invoice_charge(1000, {"enabled": True, "percentage": 2, "minimumAmount": 100})
        assert info["percentage_charge"] == 20.0
        assert info["final_charge"] == 100.0
        assert info["is_minimum_applied"] is True
        assert info["label"] == "Invoice Value Handling Charges"

    def test_percentage_applied(self):
        info = explain_invoice_charge(
            10000,
            {"enabled": True, "percentage": 2, "minimumAmount": 100, "description": "FOV"},
        )
        assert info["final_charge"] == 200.0
        assert info["is_minimum_applied"] is False
        assert info["label"] == "FOV"

    def test_nothing_to_explain(self):
        assert explain_invoice_charge(1000, {"enabled": False}) is None
        assert explain_invoice_charge(0, {"enabled": True, "percentage": 2}) is None
