"""
Approval workflow domain types (``approval_kernel.domain.workflow``).

Responsibility
--------------
Value objects for workflow templates (steps, conditions, notification
rules) and the mutable runtime entities that track one run of a template
against one application (``WorkflowInstance`` / ``StepInstance``).

Architecture position
---------------------
**Kernel domain layer**.  ZERO I/O.  No imports from ``db/``, ``models/``,
``services/`` or outer layers.

Invariants enforced
-------------------
* Instance lifecycle -- ``INSTANCE_TRANSITIONS`` lists the only legal status
  changes; terminal statuses have no outgoing edges, so a closed instance
  is never reopened.
* Step lifecycle -- ``STEP_TRANSITIONS`` likewise for step statuses.
* Templates are frozen and shared by reference; instances own their step
  list exclusively.
* At most one step per instance is ``IN_PROGRESS`` (``active_step`` relies
  on it).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from approval_kernel.exceptions import InvalidInstanceTransitionError


# =========================================================================
# Template definition
# =========================================================================


class ConditionOperator(str, Enum):
    """Comparison operators available to auto-approval conditions."""

    GT = "gt"
    LT = "lt"
    EQ = "eq"
    GTE = "gte"
    LTE = "lte"
    IN = "in"
    CONTAINS = "contains"


@dataclass(frozen=True)
class ApprovalCondition:
    """A machine-checkable predicate over one field of the application record.

    ``field`` is a dot-separated path (``project.riskLevel``) resolved
    against a snapshot of the application.
    """

    field: str
    operator: ConditionOperator
    value: Any
    description: str = ""


@dataclass(frozen=True)
class ApprovalStep:
    """One stage of a template.

    Any holder of any role in ``required_roles`` may act on the step.
    ``order`` is the zero-based position of the step in its template.
    """

    id: str
    name: str
    order: int
    required_roles: tuple[str, ...]
    is_required: bool = True
    auto_approve: bool = False
    conditions: tuple[ApprovalCondition, ...] = ()
    description: str = ""


class NotificationTrigger(str, Enum):
    """Points in the lifecycle at which notifications fire."""

    STEP_START = "step_start"
    STEP_COMPLETE = "step_complete"
    WORKFLOW_COMPLETE = "workflow_complete"
    WORKFLOW_REJECTED = "workflow_rejected"


@dataclass(frozen=True)
class NotificationRule:
    """Who is told, and how, when ``trigger`` fires."""

    trigger: NotificationTrigger
    recipients: tuple[str, ...]
    template: str = ""
    channels: tuple[str, ...] = ()


@dataclass(frozen=True)
class WorkflowTemplate:
    """A named, versioned approval process.

    Contract: frozen; a changed template is registered under a new id.
    """

    id: str
    name: str
    steps: tuple[ApprovalStep, ...]
    notifications: tuple[NotificationRule, ...] = ()
    description: str = ""

    def rules_for(self, trigger: NotificationTrigger) -> tuple[NotificationRule, ...]:
        return tuple(r for r in self.notifications if r.trigger == trigger)


# =========================================================================
# Lifecycle state machines
# =========================================================================


class InstanceStatus(str, Enum):
    """Workflow instance lifecycle states."""

    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


INSTANCE_TRANSITIONS: dict[InstanceStatus, frozenset[InstanceStatus]] = {
    # PENDING -> COMPLETED happens when every step auto-approves
    InstanceStatus.PENDING: frozenset({
        InstanceStatus.IN_PROGRESS,
        InstanceStatus.COMPLETED,
        InstanceStatus.CANCELLED,
    }),
    InstanceStatus.IN_PROGRESS: frozenset({
        InstanceStatus.COMPLETED,
        InstanceStatus.REJECTED,
        InstanceStatus.CANCELLED,
    }),
    InstanceStatus.COMPLETED: frozenset(),
    InstanceStatus.REJECTED: frozenset(),
    InstanceStatus.CANCELLED: frozenset(),
}

TERMINAL_INSTANCE_STATUSES: frozenset[InstanceStatus] = frozenset({
    InstanceStatus.COMPLETED,
    InstanceStatus.REJECTED,
    InstanceStatus.CANCELLED,
})


class StepStatus(str, Enum):
    """Step lifecycle states.

    ``SKIPPED`` is reserved for steps a template marks "not applicable";
    nothing in the engine produces it today.
    """

    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    SKIPPED = "SKIPPED"


STEP_TRANSITIONS: dict[StepStatus, frozenset[StepStatus]] = {
    # PENDING -> APPROVED is the auto-approval path
    StepStatus.PENDING: frozenset({
        StepStatus.IN_PROGRESS,
        StepStatus.APPROVED,
        StepStatus.SKIPPED,
    }),
    StepStatus.IN_PROGRESS: frozenset({
        StepStatus.APPROVED,
        StepStatus.REJECTED,
        StepStatus.SKIPPED,
    }),
    StepStatus.APPROVED: frozenset(),
    StepStatus.REJECTED: frozenset(),
    StepStatus.SKIPPED: frozenset(),
}


class Decision(str, Enum):
    """Decisions a human approver can submit for the active step."""

    APPROVE = "APPROVE"
    REJECT = "REJECT"
    REQUEST_INFO = "REQUEST_INFO"


# =========================================================================
# Runtime entities
# =========================================================================


@dataclass
class StepInstance:
    """Runtime progress of one template step inside one instance."""

    step_id: str
    status: StepStatus = StepStatus.PENDING
    assigned_to: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    comments: str | None = None
    decision: Decision | None = None
    decision_reason: str | None = None


@dataclass(frozen=True)
class UnassignableStep:
    """The current step could not be assigned to any role holder.

    A recoverable state: an external scheduler retries or escalates.
    """

    step_id: str
    step_index: int


@dataclass
class WorkflowInstance:
    """One run of a template against one application."""

    id: str
    application_id: str
    template_id: str
    started_at: datetime
    current_step: int = 0
    status: InstanceStatus = InstanceStatus.PENDING
    completed_at: datetime | None = None
    steps: list[StepInstance] = field(default_factory=list)
    # Store revision; every successful save bumps it by one.
    version: int = 0

    @property
    def is_closed(self) -> bool:
        return self.status in TERMINAL_INSTANCE_STATUSES

    @property
    def active_step(self) -> StepInstance | None:
        """The step currently awaiting a human decision, if any."""
        for step in self.steps:
            if step.status == StepStatus.IN_PROGRESS:
                return step
        return None

    @property
    def unassignable_step(self) -> UnassignableStep | None:
        """Set while the instance is open and parked on an unassigned step."""
        if self.is_closed or not 0 <= self.current_step < len(self.steps):
            return None
        step = self.steps[self.current_step]
        if step.status != StepStatus.PENDING:
            return None
        return UnassignableStep(step_id=step.step_id, step_index=self.current_step)

    def step(self, step_id: str) -> StepInstance | None:
        for step in self.steps:
            if step.step_id == step_id:
                return step
        return None

    def move_to(self, new_status: InstanceStatus) -> None:
        """Apply a status change allowed by ``INSTANCE_TRANSITIONS``."""
        if new_status not in INSTANCE_TRANSITIONS[self.status]:
            raise InvalidInstanceTransitionError(
                self.id, self.status.value, new_status.value,
            )
        self.status = new_status

    def move_step_to(self, step: StepInstance, new_status: StepStatus) -> None:
        """Apply a step status change allowed by ``STEP_TRANSITIONS``."""
        if new_status not in STEP_TRANSITIONS[step.status]:
            raise InvalidInstanceTransitionError(
                f"{self.id}/{step.step_id}", step.status.value, new_status.value,
            )
        step.status = new_status
