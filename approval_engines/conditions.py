"""
approval_engines.conditions -- Pure auto-approval condition evaluation.

Responsibility:
    Decide whether an ``ApprovalCondition`` holds for an application
    record: resolve the condition's dot-separated field path, then apply
    its operator to the resolved value and the comparison value.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import approval_kernel/domain/ types.

Invariants enforced:
    - Never raises for record content: a missing path segment, a ``None``
      value or an operand of the wrong type means "condition not met".
    - Numeric operators compare as ``Decimal`` and fail closed on anything
      that is not a number (booleans and NaN included).
    - ``evaluate_all`` requires at least one condition; an empty list is
      never "vacuously true".

Failure modes:
    - None.  An operator outside ``ConditionOperator`` is "not met";
      template validation rejects such operators before registration.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from decimal import Decimal, InvalidOperation
from typing import Any

from approval_kernel.domain.workflow import ApprovalCondition, ConditionOperator

MISSING: Any = object()

_MEMBERSHIP_TYPES = (list, tuple, set, frozenset)


def resolve_field(record: Any, path: str) -> Any:
    """Walk ``path`` (``"project.riskLevel"``) through nested mappings.

    Segments are looked up as mapping keys, then as object attributes;
    an all-digit segment indexes into a list or tuple.

    Returns:
        The resolved value, or ``MISSING`` if any segment is absent.
    """
    if not path:
        return MISSING
    current = record
    for segment in path.split("."):
        if current is None:
            return MISSING
        if isinstance(current, Mapping):
            if segment not in current:
                return MISSING
            current = current[segment]
        elif isinstance(current, (list, tuple)) and segment.isascii() and segment.isdigit():
            index = int(segment)
            if index >= len(current):
                return MISSING
            current = current[index]
        else:
            current = getattr(current, segment, MISSING)
            if current is MISSING:
                return MISSING
    return current


def to_decimal(value: Any) -> Decimal | None:
    """Coerce ``value`` to ``Decimal``; None for non-numbers, booleans and NaN."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float, str)):
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation:
            return None
    else:
        return None
    if result.is_nan():
        return None
    return result


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def _compare(operator: ConditionOperator, left: Any, right: Any) -> bool:
    lhs = to_decimal(left)
    rhs = to_decimal(right)
    if lhs is None or rhs is None:
        return False
    if operator == ConditionOperator.GT:
        return lhs > rhs
    if operator == ConditionOperator.LT:
        return lhs < rhs
    if operator == ConditionOperator.GTE:
        return lhs >= rhs
    return lhs <= rhs


def evaluate_condition(record: Any, condition: ApprovalCondition) -> bool:
    """Evaluate one condition against ``record``.

    Args:
        record: Application snapshot (nested mappings and/or objects).
        condition: The condition to check.

    Returns:
        True only if the field resolves and the operator holds.
    """
    value = resolve_field(record, condition.field)
    if value is MISSING or value is None:
        return False

    try:
        operator = ConditionOperator(condition.operator)
    except ValueError:
        return False
    expected = condition.value

    if operator in (
        ConditionOperator.GT,
        ConditionOperator.LT,
        ConditionOperator.GTE,
        ConditionOperator.LTE,
    ):
        return _compare(operator, value, expected)

    if operator == ConditionOperator.EQ:
        if isinstance(value, bool) != isinstance(expected, bool):
            return False
        if _is_number(value) and _is_number(expected):
            lhs, rhs = to_decimal(value), to_decimal(expected)
            return lhs is not None and rhs is not None and lhs == rhs
        return value == expected

    if operator == ConditionOperator.IN:
        if not isinstance(expected, _MEMBERSHIP_TYPES):
            return False
        return any(value == candidate for candidate in expected)

    if operator == ConditionOperator.CONTAINS:
        return str(expected) in str(value)

    return False


def evaluate_all(record: Any, conditions: Sequence[ApprovalCondition]) -> bool:
    """True when ``conditions`` is non-empty and every condition holds."""
    if not conditions:
        return False
    return all(evaluate_condition(record, c) for c in conditions)


def failed_conditions(
    record: Any,
    conditions: Sequence[ApprovalCondition],
) -> tuple[ApprovalCondition, ...]:
    """Conditions that do not hold, in declaration order (for logging)."""
    return tuple(c for c in conditions if not evaluate_condition(record, c))
