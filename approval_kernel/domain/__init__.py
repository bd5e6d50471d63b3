"""
Domain layer.

Value objects, runtime entities and collaborator protocols with NO
dependencies on the ORM, the database or any I/O.
"""

from approval_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from approval_kernel.domain.collaborators import (
    ApplicationSource,
    ApproverDirectory,
    NotificationDispatcher,
    WorkflowInstanceStore,
)
from approval_kernel.domain.records import instance_from_record, instance_to_record
from approval_kernel.domain.workflow import (
    INSTANCE_TRANSITIONS,
    STEP_TRANSITIONS,
    TERMINAL_INSTANCE_STATUSES,
    ApprovalCondition,
    ApprovalStep,
    ConditionOperator,
    Decision,
    InstanceStatus,
    NotificationRule,
    NotificationTrigger,
    StepInstance,
    StepStatus,
    UnassignableStep,
    WorkflowInstance,
    WorkflowTemplate,
)

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "ApplicationSource",
    "ApproverDirectory",
    "NotificationDispatcher",
    "WorkflowInstanceStore",
    "instance_from_record",
    "instance_to_record",
    "INSTANCE_TRANSITIONS",
    "STEP_TRANSITIONS",
    "TERMINAL_INSTANCE_STATUSES",
    "ApprovalCondition",
    "ApprovalStep",
    "ConditionOperator",
    "Decision",
    "InstanceStatus",
    "NotificationRule",
    "NotificationTrigger",
    "StepInstance",
    "StepStatus",
    "UnassignableStep",
    "WorkflowInstance",
    "WorkflowTemplate",
]
