"""
Invoice-value addon rule schemas.

Two shapes are stored on rate cards:
1. InvoiceValueCharges - the simple {enabled, percentage, minimumAmount} form
2. InvoiceRule - a small tagged rule tree (percentage, flat, per_unit, slab,
   conditional, composite)

Stored JSON is free-form, so parse_invoice_rule() never raises: anything that
does not validate is treated as "no rule".
"""
import logging
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import (
    AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter, ValidationError,
)

from freightbid.config import settings

logger = logging.getLogger(__name__)


class _RuleBase(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class _ClampedRule(_RuleBase):
    min: Optional[float] = None
    max: Optional[float] = None


class PercentageRule(_ClampedRule):
    """invoice_value * percent / 100."""
    type: Literal["percentage"] = "percentage"
    percent: float = Field(
        default=0,
        validation_alias=AliasChoices("percent", "percentage"),
    )


class FlatRule(_ClampedRule):
    """Fixed amount regardless of invoice value."""
    type: Literal["flat"] = "flat"
    amount: float = 0


class PerUnitRule(_ClampedRule):
    """amount_per_unit for every `unit` of invoice value."""
    type: Literal["per_unit"] = "per_unit"
    unit: float = Field(
        default=1,
        validation_alias=AliasChoices("unit", "unitAmount", "unit_amount"),
    )
    amount_per_unit: float = Field(
        default=0,
        validation_alias=AliasChoices("amount_per_unit", "amountPerUnit", "amount"),
    )
    round_up: bool = Field(
        default=False,
        validation_alias=AliasChoices("round_up", "roundUp"),
    )


class Slab(_RuleBase):
    """Inclusive invoice value band; open bounds allowed."""
    min: Optional[float] = None
    max: Optional[float] = None
    percent: float = Field(
        default=0,
        validation_alias=AliasChoices("percent", "percentage"),
    )

    def contains(self, value: float) -> bool:
        low = self.min if self.min is not None else float("-inf")
        high = self.max if self.max is not None else float("inf")
        return low <= value <= high


class SlabRule(_ClampedRule):
    type: Literal["slab"] = "slab"
    slabs: List[Slab] = Field(default_factory=list)


class RuleCondition(_RuleBase):
    """`when` holds key/value pairs that must all equal the evaluation context."""
    when: Dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("if", "when"),
    )
    rule: Optional["InvoiceRule"] = None


class ConditionalRule(_RuleBase):
    type: Literal["conditional"] = "conditional"
    conditions: List[RuleCondition] = Field(default_factory=list)
    default: Optional["InvoiceRule"] = None


class CompositeRule(_ClampedRule):
    """Sum of parts, then clamped."""
    type: Literal["composite"] = "composite"
    parts: List["InvoiceRule"] = Field(default_factory=list)


InvoiceRule = Annotated[
    Union[PercentageRule, FlatRule, PerUnitRule, SlabRule, ConditionalRule, CompositeRule],
    Field(discriminator="type"),
]

RuleCondition.model_rebuild()
ConditionalRule.model_rebuild()
CompositeRule.model_rebuild()

_rule_adapter = TypeAdapter(InvoiceRule)


def _normalize_types(raw: Any, max_depth: int, depth: int = 1) -> Any:
    """
    Lower-case every `type` tag in a raw rule tree.
    Rule nodes nested deeper than max_depth are dropped, so they charge nothing.
    """
    if isinstance(raw, dict):
        is_rule = "type" in raw
        if is_rule and depth > max_depth:
            return None
        child_depth = depth + 1 if is_rule else depth
        normalized = {key: _normalize_types(value, max_depth, child_depth) for key, value in raw.items()}
        if isinstance(normalized.get("type"), str):
            normalized["type"] = normalized["type"].strip().lower()
        return normalized
    if isinstance(raw, list):
        return [
            _normalize_types(item, max_depth, depth)
            for item in raw
            if not (isinstance(item, dict) and "type" in item and depth > max_depth)
        ]
    return raw


def parse_invoice_rule(raw: Any, max_depth: Optional[int] = None) -> Optional[InvoiceRule]:
    """Validate a stored rule document. Returns None for missing or malformed rules."""
    if raw is None:
        return None
    if isinstance(raw, (PercentageRule, FlatRule, PerUnitRule, SlabRule, ConditionalRule, CompositeRule)):
        return raw
    if not isinstance(raw, dict) or not raw:
        return None
    try:
        return _rule_adapter.validate_python(
            _normalize_types(raw, max_depth or settings.INVOICE_RULE_MAX_DEPTH)
        )
    except ValidationError as e:
        logger.warning(f"Ignoring malformed invoice rule: {e.error_count()} validation error(s)")
        return None
    except RecursionError:
        logger.warning("Ignoring invoice rule nested too deeply to parse")
        return None


class InvoiceValueCharges(_RuleBase):
    """Simple invoice-value charge: max(value * percentage / 100, minimumAmount)."""
    enabled: bool = False
    percentage: float = Field(default=0, ge=0, le=100)
    minimum_amount: float = Field(
        default=0,
        ge=0,
        validation_alias=AliasChoices("minimumAmount", "minimum_amount"),
    )
    description: Optional[str] = None


def parse_invoice_value_charges(raw: Any) -> Optional[InvoiceValueCharges]:
    if raw is None:
        return None
    if isinstance(raw, InvoiceValueCharges):
        return raw
    if not isinstance(raw, dict) or not raw:
        return None
    try:
        return InvoiceValueCharges.model_validate(raw)
    except ValidationError as e:
        logger.warning(f"Ignoring malformed invoice value charges: {e.error_count()} validation error(s)")
        return None
