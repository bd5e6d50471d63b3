"""
Module: approval_kernel.models.workflow_instance
Responsibility: ORM persistence for workflow instances and their step records.

Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ (for DTO conversion).

Invariants enforced:
    - Columns mirror ``WorkflowInstance`` / ``StepInstance`` exactly; no
      derived state is stored, so recovery only re-loads rows.
    - Valid status values are enforced by check constraints.
    - Step rows are unique per (instance_id, position) and per
      (instance_id, step_id) and always load in position order.
    - At most one open instance per application is enforced by the
      services layer under the per-application lock.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from approval_kernel.db.base import Base
from approval_kernel.domain.workflow import (
    Decision,
    InstanceStatus,
    StepInstance,
    StepStatus,
    WorkflowInstance,
)


class WorkflowInstanceModel(Base):
    """Persistent workflow instance."""

    __tablename__ = "workflow_instances"

    __table_args__ = (
        CheckConstraint(
            "status IN ('PENDING', 'IN_PROGRESS', 'COMPLETED', 'REJECTED', 'CANCELLED')",
            name="ck_workflow_instances_valid_status",
        ),
        Index("ix_workflow_instances_application", "application_id", "started_at"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    application_id: Mapped[str] = mapped_column(String(100), nullable=False)
    template_id: Mapped[str] = mapped_column(String(100), nullable=False)
    current_step: Mapped[int] = mapped_column(nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    started_at: Mapped[datetime] = mapped_column(nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    version: Mapped[int] = mapped_column(nullable=False, default=0)

    steps: Mapped[list["StepInstanceModel"]] = relationship(
        "StepInstanceModel",
        back_populates="instance",
        order_by="StepInstanceModel.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return (
            f"<WorkflowInstance {self.id} app={self.application_id} "
            f"template={self.template_id} status={self.status}>"
        )

    def to_dto(self) -> WorkflowInstance:
        """Convert ORM model to a detached domain instance."""
        return WorkflowInstance(
            id=self.id,
            application_id=self.application_id,
            template_id=self.template_id,
            current_step=self.current_step,
            status=InstanceStatus(self.status),
            started_at=self.started_at,
            completed_at=self.completed_at,
            steps=[s.to_dto() for s in self.steps],
            version=self.version,
        )

    @classmethod
    def from_dto(cls, dto: WorkflowInstance) -> WorkflowInstanceModel:
        """Create ORM model (with step rows) from a domain instance."""
        model = cls(
            id=dto.id,
            application_id=dto.application_id,
            template_id=dto.template_id,
            current_step=dto.current_step,
            status=dto.status.value,
            started_at=dto.started_at,
            completed_at=dto.completed_at,
            version=dto.version,
        )
        model.steps = [
            StepInstanceModel.from_dto(dto.id, position, step)
            for position, step in enumerate(dto.steps)
        ]
        return model

    def apply(self, dto: WorkflowInstance) -> None:
        """Copy mutable state from ``dto`` onto this row and its step rows."""
        self.current_step = dto.current_step
        self.status = dto.status.value
        self.completed_at = dto.completed_at
        rows = {row.step_id: row for row in self.steps}
        for position, step in enumerate(dto.steps):
            row = rows.get(step.step_id)
            if row is None:
                self.steps.append(StepInstanceModel.from_dto(dto.id, position, step))
            else:
                row.update_from(step)


class StepInstanceModel(Base):
    """Persistent step record, owned by exactly one workflow instance."""

    __tablename__ = "workflow_step_instances"

    __table_args__ = (
        CheckConstraint(
            "status IN ('PENDING', 'IN_PROGRESS', 'APPROVED', 'REJECTED', 'SKIPPED')",
            name="ck_workflow_step_instances_valid_status",
        ),
        CheckConstraint(
            "decision IS NULL OR decision IN ('APPROVE', 'REJECT', 'REQUEST_INFO')",
            name="ck_workflow_step_instances_valid_decision",
        ),
        UniqueConstraint("instance_id", "position", name="uq_step_instances_position"),
        UniqueConstraint("instance_id", "step_id", name="uq_step_instances_step"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    instance_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("workflow_instances.id", ondelete="CASCADE"),
        nullable=False,
    )
    position: Mapped[int] = mapped_column(nullable=False)
    step_id: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    assigned_to: Mapped[str | None] = mapped_column(String(200), nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    decision: Mapped[str | None] = mapped_column(String(20), nullable=True)
    decision_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    instance: Mapped["WorkflowInstanceModel"] = relationship(
        "WorkflowInstanceModel", back_populates="steps",
    )

    def __repr__(self) -> str:
        return f"<StepInstance {self.instance_id}/{self.step_id} status={self.status}>"

    def to_dto(self) -> StepInstance:
        return StepInstance(
            step_id=self.step_id,
            status=StepStatus(self.status),
            assigned_to=self.assigned_to,
            started_at=self.started_at,
            completed_at=self.completed_at,
            comments=self.comments,
            decision=Decision(self.decision) if self.decision is not None else None,
            decision_reason=self.decision_reason,
        )

    @classmethod
    def from_dto(cls, instance_id: str, position: int, dto: StepInstance) -> StepInstanceModel:
        model = cls(instance_id=instance_id, position=position, step_id=dto.step_id)
        model.update_from(dto)
        return model

    def update_from(self, dto: StepInstance) -> None:
        self.status = dto.status.value
        self.assigned_to = dto.assigned_to
        self.started_at = dto.started_at
        self.completed_at = dto.completed_at
        self.comments = dto.comments
        self.decision = dto.decision.value if dto.decision is not None else None
        self.decision_reason = dto.decision_reason
