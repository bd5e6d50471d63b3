"""
Plain-record serialization for workflow instances.

A record mirrors ``WorkflowInstance`` / ``StepInstance`` field for field:
enums become their string values, timestamps ISO-8601 strings, and nothing
derived (active step, unassignable state) is stored.  Reloading a record is
therefore enough to recover an instance after a crash.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from approval_kernel.domain.workflow import (
    Decision,
    InstanceStatus,
    StepInstance,
    StepStatus,
    WorkflowInstance,
)


def _ts(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_ts(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value is not None else None


def step_to_record(step: StepInstance) -> dict[str, Any]:
    return {
        "step_id": step.step_id,
        "status": step.status.value,
        "assigned_to": step.assigned_to,
        "started_at": _ts(step.started_at),
        "completed_at": _ts(step.completed_at),
        "comments": step.comments,
        "decision": step.decision.value if step.decision is not None else None,
        "decision_reason": step.decision_reason,
    }


def step_from_record(data: dict[str, Any]) -> StepInstance:
    decision = data.get("decision")
    return StepInstance(
        step_id=data["step_id"],
        status=StepStatus(data["status"]),
        assigned_to=data.get("assigned_to"),
        started_at=_parse_ts(data.get("started_at")),
        completed_at=_parse_ts(data.get("completed_at")),
        comments=data.get("comments"),
        decision=Decision(decision) if decision is not None else None,
        decision_reason=data.get("decision_reason"),
    )


def instance_to_record(instance: WorkflowInstance) -> dict[str, Any]:
    """Serialize an instance into a JSON-compatible dict."""
    return {
        "id": instance.id,
        "application_id": instance.application_id,
        "template_id": instance.template_id,
        "current_step": instance.current_step,
        "status": instance.status.value,
        "started_at": _ts(instance.started_at),
        "completed_at": _ts(instance.completed_at),
        "version": instance.version,
        "steps": [step_to_record(s) for s in instance.steps],
    }


def instance_from_record(data: dict[str, Any]) -> WorkflowInstance:
    """Rebuild an instance from ``instance_to_record`` output.

    Raises:
        KeyError: if a required field is missing.
        ValueError: if a status, decision or timestamp is malformed.
    """
    return WorkflowInstance(
        id=data["id"],
        application_id=data["application_id"],
        template_id=data["template_id"],
        current_step=data["current_step"],
        status=InstanceStatus(data["status"]),
        started_at=datetime.fromisoformat(data["started_at"]),
        completed_at=_parse_ts(data.get("completed_at")),
        steps=[step_from_record(s) for s in data.get("steps", [])],
        version=data.get("version", 0),
    )
