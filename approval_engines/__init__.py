"""
Module: approval_engines
Responsibility:
    Re-exports the pure engines: auto-approval condition evaluation and
    workflow template selection.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import approval_kernel/domain/.
    MUST NOT import approval_services or approval_config.
"""

from approval_engines.conditions import (
    MISSING,
    evaluate_all,
    evaluate_condition,
    failed_conditions,
    resolve_field,
    to_decimal,
)
from approval_engines.selector import (
    DEFAULT_SELECTOR_POLICY,
    ENHANCED_TEMPLATE_ID,
    STANDARD_TEMPLATE_ID,
    SelectorPolicy,
    is_high_risk,
    is_high_value,
    select_template,
)

__all__ = [
    "MISSING",
    "evaluate_all",
    "evaluate_condition",
    "failed_conditions",
    "resolve_field",
    "to_decimal",
    "DEFAULT_SELECTOR_POLICY",
    "ENHANCED_TEMPLATE_ID",
    "STANDARD_TEMPLATE_ID",
    "SelectorPolicy",
    "is_high_risk",
    "is_high_value",
    "select_template",
]
