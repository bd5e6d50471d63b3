"""ORM models for workflow persistence."""

from approval_kernel.models.workflow_instance import (
    StepInstanceModel,
    WorkflowInstanceModel,
)

__all__ = [
    "StepInstanceModel",
    "WorkflowInstanceModel",
]
