"""
Template Validator (``approval_config.validator``).

Responsibility
--------------
Checks a ``WorkflowTemplate`` for structural integrity before it can be
registered, so malformed templates fail fast at registration rather than
at instance-creation time.

Architecture position
---------------------
**Config layer** -- build/registration-time validation.  Called by the
loader for every YAML template and by the template registry for every
``register`` call.  Depends only on kernel domain types.

Invariants enforced
-------------------
* Non-empty ``id`` and ``name``.
* Non-empty step list whose ``order`` values are exactly ``0..n-1`` and
  appear in list order.
* Unique step ids.
* Every step names at least one role, as a list or tuple of non-empty
  strings.
* An auto-approve step declares at least one condition (an auto-approve
  step with no conditions is a configuration error, not "always approve").
* Every condition has a field path and a known operator; ``in``
  conditions carry a list value.

Failure modes
-------------
* Errors (``TemplateValidationResult.errors``) -> template MUST NOT be
  registered.
* Warnings -> template may be registered but should be reviewed.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from approval_kernel.domain.workflow import (
    ApprovalStep,
    ConditionOperator,
    NotificationTrigger,
    WorkflowTemplate,
)

_KNOWN_OPERATORS = frozenset(op.value for op in ConditionOperator)


@dataclass
class TemplateValidationResult:
    """
    Result of template validation.

    ``is_valid`` returns ``True`` only when ``errors`` is empty.
    """

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)


def validate_template(template: WorkflowTemplate) -> TemplateValidationResult:
    """Validate one template; see module docstring for the rules."""
    result = TemplateValidationResult()

    if not template.id:
        result.add_error("template id must be non-empty")
    if not template.name:
        result.add_error("template name must be non-empty")

    _validate_step_order(template, result)
    _validate_step_ids(template, result)
    for step in template.steps:
        _validate_step(step, result)
    _validate_notifications(template, result)

    return result


def _validate_step_order(template: WorkflowTemplate, result: TemplateValidationResult) -> None:
    if not template.steps:
        result.add_error("template must declare at least one step")
        return
    orders = [step.order for step in template.steps]
    if orders != list(range(len(orders))):
        result.add_error(
            f"step orders must be 0..{len(orders) - 1} in list order, got {orders}"
        )


def _validate_step_ids(template: WorkflowTemplate, result: TemplateValidationResult) -> None:
    seen: set[str] = set()
    for step in template.steps:
        if not step.id:
            result.add_error(f"step at order {step.order} has an empty id")
        elif step.id in seen:
            result.add_error(f"duplicate step id: {step.id}")
        seen.add(step.id)


def _validate_step(step: ApprovalStep, result: TemplateValidationResult) -> None:
    roles = step.required_roles
    if not isinstance(roles, (list, tuple)):
        result.add_error(
            f"step {step.id!r}: required_roles must be a list of role names, "
            f"got {type(roles).__name__}"
        )
    elif not roles:
        result.add_error(f"step {step.id!r} must name at least one required role")
    elif not all(isinstance(role, str) and role for role in roles):
        result.add_error(f"step {step.id!r} has an empty or non-string role name")

    if step.auto_approve and not step.conditions:
        result.add_error(
            f"step {step.id!r} is auto-approve but declares no conditions"
        )
    elif step.conditions and not step.auto_approve:
        result.add_warning(
            f"step {step.id!r} declares conditions but is not auto-approve; "
            "they are never evaluated"
        )

    for condition in step.conditions:
        if not condition.field:
            result.add_error(f"step {step.id!r} has a condition with no field path")
        if not isinstance(condition.operator, str) or condition.operator not in _KNOWN_OPERATORS:
            result.add_error(
                f"step {step.id!r}: unknown condition operator {condition.operator!r}"
            )
        elif condition.operator == ConditionOperator.IN and not isinstance(
            condition.value, (list, tuple, set, frozenset)
        ):
            result.add_error(
                f"step {step.id!r}: 'in' condition on {condition.field!r} "
                "requires a list value"
            )


def _validate_notifications(template: WorkflowTemplate, result: TemplateValidationResult) -> None:
    for rule in template.notifications:
        if not isinstance(rule.trigger, NotificationTrigger):
            result.add_error(f"unknown notification trigger: {rule.trigger!r}")
        if not rule.recipients:
            result.add_warning(
                f"notification rule for {getattr(rule.trigger, 'value', rule.trigger)} "
                "has no recipients"
            )
