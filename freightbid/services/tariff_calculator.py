"""
Tariff Calculator - prices one shipment against one vendor rate card.

Steps:
1. Actual / volumetric / chargeable weight
2. Unit price for the zone pair
3. Base freight and the configured charge components
4. Invoice value addon
5. Totals, rounded half-up to whole units

Invalid inputs are not errors: calculate() returns a TariffExclusion that
names the reason, and the caller drops the vendor.
"""
import logging
import math
from typing import Any, Dict, Mapping, Optional, Union

from freightbid.config import settings
from freightbid.core.money import round_half_up, round_whole
from freightbid.schemas.quote import ShipmentRequest
from freightbid.schemas.rate_card import ChargeRule, PriceRate
from freightbid.services.invoice_charge_service import (
    InvoiceRuleEvaluator, calculate_invoice_addon, explain_invoice_charge,
)
from freightbid.services.rate_card_store import RateCardRecord

logger = logging.getLogger(__name__)

__all__ = [
    "TariffBreakdown",
    "TariffCalculator",
    "TariffExclusion",
    "WeightBreakdown",
    "lookup_unit_price",
    "round_half_up",
]


class TariffExclusion:
    """Why a vendor could not be priced."""

    def __init__(self, reason: str, vendor_id=None, vendor_name: Optional[str] = None):
        self.reason = reason
        self.vendor_id = vendor_id
        self.vendor_name = vendor_name

    def to_dict(self) -> dict:
        return {
            "vendor_id": str(self.vendor_id) if self.vendor_id else None,
            "vendor_name": self.vendor_name,
            "reason": self.reason,
        }

    def __repr__(self) -> str:
        return f"<TariffExclusion({self.vendor_name}: {self.reason})>"


class WeightBreakdown:
    def __init__(self, actual: float, volumetric: float, chargeable: float, k_factor: float):
        self.actual = actual
        self.volumetric = volumetric
        self.chargeable = chargeable
        self.k_factor = k_factor

    def to_dict(self) -> dict:
        return {
            "actual_weight": float(round_half_up(self.actual, 2)),
            "volumetric_weight": float(round_half_up(self.volumetric, 2)),
            "chargeable_weight": float(round_half_up(self.chargeable, 2)),
            "k_factor": self.k_factor,
        }


class TariffBreakdown:
    """Itemized price of one shipment for one vendor."""

    COMPONENTS = (
        "docket_charge", "min_charges", "green_tax", "dacc_charges", "misc_charges",
        "fuel_charges", "rov_charges", "insurance_charges", "oda_charges",
        "handling_charges", "fm_charges", "appointment_charges",
    )

    def __init__(self, weights: WeightBreakdown, unit_price: float, is_oda: bool):
        self.weights = weights
        self.unit_price = unit_price
        self.is_oda = is_oda
        self.base_freight = unit_price * weights.chargeable
        self.components: Dict[str, float] = {name: 0.0 for name in self.COMPONENTS}
        self.invoice_addon: int = 0
        self.invoice_addon_detail: Optional[Dict[str, Any]] = None
        self.total_without_addon: int = 0
        self.total: int = 0

    @property
    def subtotal(self) -> float:
        return self.base_freight + sum(self.components.values())

    def finalize(self, invoice_addon: int, detail: Optional[Dict[str, Any]] = None) -> "TariffBreakdown":
        self.invoice_addon = invoice_addon
        self.invoice_addon_detail = detail
        self.total_without_addon = round_whole(self.subtotal)
        self.total = round_whole(self.subtotal + invoice_addon)
        return self

    def to_dict(self) -> dict:
        data = self.weights.to_dict()
        data.update({
            "unit_price": self.unit_price,
            "base_freight": float(round_half_up(self.base_freight, 2)),
        })
        data.update({name: float(round_half_up(value, 2)) for name, value in self.components.items()})
        data.update({
            "is_oda": self.is_oda,
            "invoice_addon": self.invoice_addon,
            "invoice_addon_detail": self.invoice_addon_detail,
            "total_without_addon": self.total_without_addon,
            "total": self.total,
        })
        return data


def lookup_unit_price(chart: Mapping[str, Mapping[str, float]], origin: str, destination: str) -> Optional[float]:
    """chart[origin][dest], falling back to chart[dest][origin]. Zones compared upper-case."""
    origin_zone = (origin or "").strip().upper()
    dest_zone = (destination or "").strip().upper()
    for row_key, col_key in ((origin_zone, dest_zone), (dest_zone, origin_zone)):
        row = chart.get(row_key)
        if row and row.get(col_key) is not None:
            return row[col_key]
    return None


def _finite_positive(value: Optional[float]) -> bool:
    return value is not None and math.isfinite(value) and value > 0


def _max_of(rule: ChargeRule, base_freight: float) -> float:
    return max(rule.variable / 100 * base_freight, rule.fixed)


def _fixed_plus(rule: ChargeRule, chargeable: float) -> float:
    return rule.fixed + chargeable * rule.variable / 100


class TariffCalculator:
    """Stateless pricing of a shipment against one normalized rate card."""

    def __init__(self, evaluator: Optional[InvoiceRuleEvaluator] = None):
        self.evaluator = evaluator or InvoiceRuleEvaluator()

    # ----------------------------------------
    # Weights
    # ----------------------------------------

    @staticmethod
    def k_factor_for(price_rate: PriceRate) -> float:
        if price_rate.k_factor is not None:
            return price_rate.k_factor
        if price_rate.divisor is not None:
            return price_rate.divisor
        return settings.DEFAULT_K_FACTOR

    def calculate_weights(
        self, shipment: ShipmentRequest, price_rate: PriceRate
    ) -> Union[WeightBreakdown, TariffExclusion]:
        k = self.k_factor_for(price_rate)
        if not _finite_positive(k):
            return TariffExclusion(f"invalid volumetric divisor {k}")

        if shipment.has_packages:
            actual = sum(line.weight * line.count for line in shipment.packages)
            volumetric = sum(
                math.ceil(line.length * line.width * line.height * line.count / k)
                for line in shipment.packages
            )
        else:
            boxes = shipment.no_of_boxes or 0
            actual = (shipment.weight or 0) * boxes
            volumetric = math.ceil(
                (shipment.length or 0) * (shipment.width or 0) * (shipment.height or 0) * boxes / k
            )

        chargeable = max(actual, volumetric, price_rate.min_weight)
        if not _finite_positive(chargeable):
            return TariffExclusion(f"chargeable weight {chargeable} is not positive")
        return WeightBreakdown(actual=actual, volumetric=volumetric, chargeable=chargeable, k_factor=k)

    # ----------------------------------------
    # Full calculation
    # ----------------------------------------

    def calculate(
        self,
        rate_card: RateCardRecord,
        origin_zone: str,
        destination_zone: str,
        shipment: ShipmentRequest,
        is_oda: bool = False,
        context: Optional[Mapping[str, Any]] = None,
    ) -> Union[TariffBreakdown, TariffExclusion]:
        weights = self.calculate_weights(shipment, rate_card.price_rate)
        if isinstance(weights, TariffExclusion):
            weights.vendor_id = rate_card.vendor_id
            weights.vendor_name = rate_card.vendor_name
            return weights

        unit_price = lookup_unit_price(rate_card.price_chart, origin_zone, destination_zone)
        if not _finite_positive(unit_price):
            return TariffExclusion(
                f"no price for zone pair {origin_zone}->{destination_zone}",
                vendor_id=rate_card.vendor_id,
                vendor_name=rate_card.vendor_name,
            )

        breakdown = TariffBreakdown(weights, unit_price, is_oda)
        self._apply_charges(breakdown, rate_card.price_rate)

        rule_context = {
            "mode": shipment.mode,
            "origin_zone": origin_zone,
            "destination_zone": destination_zone,
            "is_oda": is_oda,
            "chargeable_weight": weights.chargeable,
        }
        rule_context.update(context or {})
        addon = calculate_invoice_addon(
            shipment.invoice_value,
            invoice_value_charges=rate_card.invoice_value_charges,
            invoice_rule=rate_card.invoice_rule,
            context=rule_context,
            evaluator=self.evaluator,
        )
        detail = explain_invoice_charge(shipment.invoice_value, rate_card.invoice_value_charges)
        return breakdown.finalize(addon, detail)

    @staticmethod
    def _apply_charges(breakdown: TariffBreakdown, pr: PriceRate) -> None:
        base = breakdown.base_freight
        chargeable = breakdown.weights.chargeable
        c = breakdown.components

        # Fixed amounts
        c["docket_charge"] = pr.docket_charges
        c["min_charges"] = pr.min_charges
        c["green_tax"] = pr.green_tax
        c["dacc_charges"] = pr.dacc_charges
        c["misc_charges"] = pr.misc_charges

        c["fuel_charges"] = pr.fuel / 100 * base

        # max(% of freight, fixed floor)
        c["rov_charges"] = _max_of(pr.rov_charges, base)
        c["insurance_charges"] = _max_of(pr.insurance_charges, base)
        c["fm_charges"] = _max_of(pr.fm_charges, base)
        c["appointment_charges"] = _max_of(pr.appointment_charges, base)

        # fixed + per-kg percentage
        c["handling_charges"] = _fixed_plus(pr.handling_charges, chargeable)
        c["oda_charges"] = _fixed_plus(pr.oda_charges, chargeable) if breakdown.is_oda else 0.0
