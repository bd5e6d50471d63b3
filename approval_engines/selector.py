"""
approval_engines.selector -- Workflow template selection policy.

Responsibility:
    Map an application snapshot to the id of the template that should
    review it.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Deterministic, evaluated top to bottom, first match wins:
        1. amount strictly above ``high_value_threshold``  -> enhanced
        2. risk tier in ``high_risk_tiers``                 -> enhanced
        3. otherwise                                        -> standard
      Amount alone can force the enhanced path even for a low-risk
      application.
    - A missing or non-numeric amount never counts as high value.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from approval_engines.conditions import MISSING, resolve_field, to_decimal

STANDARD_TEMPLATE_ID = "standard-investment-approval"
ENHANCED_TEMPLATE_ID = "high-value-investment-approval"


@dataclass(frozen=True)
class SelectorPolicy:
    """Thresholds and field paths for ``select_template``."""

    high_value_threshold: Decimal = Decimal("500000")
    high_risk_tiers: frozenset[str] = frozenset({"HIGH", "VERY_HIGH"})
    amount_field: str = "amount"
    risk_tier_field: str = "risk_tier"
    standard_template_id: str = STANDARD_TEMPLATE_ID
    enhanced_template_id: str = ENHANCED_TEMPLATE_ID


DEFAULT_SELECTOR_POLICY = SelectorPolicy()


def is_high_value(snapshot: Any, policy: SelectorPolicy = DEFAULT_SELECTOR_POLICY) -> bool:
    amount = to_decimal(resolve_field(snapshot, policy.amount_field))
    return amount is not None and amount > policy.high_value_threshold


def is_high_risk(snapshot: Any, policy: SelectorPolicy = DEFAULT_SELECTOR_POLICY) -> bool:
    tier = resolve_field(snapshot, policy.risk_tier_field)
    if tier is MISSING or tier is None:
        return False
    return str(tier).upper() in policy.high_risk_tiers


def select_template(
    snapshot: Any,
    policy: SelectorPolicy = DEFAULT_SELECTOR_POLICY,
) -> str:
    """Return the template id for ``snapshot`` under ``policy``."""
    if is_high_value(snapshot, policy):
        return policy.enhanced_template_id
    if is_high_risk(snapshot, policy):
        return policy.enhanced_template_id
    return policy.standard_template_id
