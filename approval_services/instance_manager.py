"""
approval_services.instance_manager -- Workflow instance lifecycle.

Responsibility:
    Creates workflow instances from registered templates and drives them
    forward: auto-approves steps whose conditions hold, assigns the first
    step that needs a human to an available role holder, and completes the
    instance once every step has been approved.  Also handles cancellation.

Architecture position:
    Services -- stateful orchestration.  Delegates condition evaluation to
    ``approval_engines.conditions``, approver lookup to the
    ``ApproverDirectory``, persistence to the ``WorkflowInstanceStore`` and
    notification delivery to the ``NotificationRouter``.

Invariants enforced:
    - At most one step per instance is IN_PROGRESS.
    - ``advance`` runs an explicit loop bounded by the template's step
      count; an all-auto-approvable template completes in one call.
    - ``advance`` on an instance whose current step is already IN_PROGRESS
      is a no-op, so a retry never produces duplicate assignments or
      duplicate notifications.
    - State is persisted before any notification is dispatched.
    - One open instance per application.
    - ``start`` stores the instance only after its first advance succeeds;
      a failure there (e.g. the application source raising) leaves nothing
      behind.
    - All mutations of an instance happen while holding its lock, against
      a copy freshly loaded from the store.

Failure modes:
    - TemplateNotFoundError from ``start`` for an unknown template id.
    - ActiveInstanceExistsError from ``start`` when the application already
      has an open instance.
    - InstanceNotFoundError / InstanceAlreadyClosedError from ``cancel``.
    - OptimisticLockError from ``advance`` / ``cancel`` when a writer in
      another process saved the instance first.  Nothing is notified.
    - No approver available (or the directory raising): not an error.  The
      step stays PENDING and ``instance.unassignable_step`` is set.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any
from uuid import uuid4

from approval_engines.conditions import evaluate_all, failed_conditions
from approval_kernel.domain.clock import Clock, SystemClock
from approval_kernel.domain.collaborators import (
    ApplicationSource,
    ApproverDirectory,
    WorkflowInstanceStore,
)
from approval_kernel.domain.workflow import (
    ApprovalStep,
    ConditionOperator,
    InstanceStatus,
    NotificationTrigger,
    StepInstance,
    StepStatus,
    WorkflowInstance,
    WorkflowTemplate,
)
from approval_kernel.exceptions import (
    ActiveInstanceExistsError,
    InstanceAlreadyClosedError,
    InstanceNotFoundError,
)
from approval_kernel.logging_config import LogContext, get_logger
from approval_services.locking import InstanceLocks
from approval_services.notifications import NotificationRouter
from approval_services.registry import WorkflowTemplateRegistry

logger = get_logger("services.instance_manager")

_PendingEvent = tuple[NotificationTrigger, dict[str, Any]]


class WorkflowInstanceManager:
    """Starts, advances and cancels workflow instances."""

    def __init__(
        self,
        registry: WorkflowTemplateRegistry,
        store: WorkflowInstanceStore,
        applications: ApplicationSource,
        directory: ApproverDirectory,
        notifier: NotificationRouter,
        clock: Clock | None = None,
        locks: InstanceLocks | None = None,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self._registry = registry
        self._store = store
        self._applications = applications
        self._directory = directory
        self._notifier = notifier
        self._clock = clock or SystemClock()
        self._locks = locks or InstanceLocks()
        self._id_factory = id_factory or (lambda: str(uuid4()))

    @property
    def locks(self) -> InstanceLocks:
        return self._locks

    # =========================================================================
    # Start
    # =========================================================================

    def start(self, application_id: str, template_id: str) -> WorkflowInstance:
        """Create an instance of ``template_id`` for ``application_id`` and advance it.

        Raises:
            TemplateNotFoundError: If the template is not registered.
            ActiveInstanceExistsError: If the application has an open instance.
        """
        template = self._registry.get(template_id)

        with self._locks.hold(f"application:{application_id}"):
            existing = self._store.find_open_for_application(application_id)
            if existing is not None:
                raise ActiveInstanceExistsError(application_id, existing.id)

            instance = WorkflowInstance(
                id=self._id_factory(),
                application_id=application_id,
                template_id=template.id,
                started_at=self._clock.now(),
                steps=[StepInstance(step_id=step.id) for step in template.steps],
            )

            with LogContext.bind(instance_id=instance.id, application_id=application_id):
                with self._locks.hold(instance.id):
                    events = self._progress(instance, template)
                    self._store.add(instance)
                    logger.info(
                        "workflow_started",
                        extra={
                            "template_id": template.id,
                            "step_count": len(template.steps),
                            "status": instance.status,
                        },
                    )
                    self._dispatch(template, instance, events)
                    return instance

    # =========================================================================
    # Advance
    # =========================================================================

    def advance(self, instance: WorkflowInstance) -> WorkflowInstance:
        """Move ``instance`` forward until it needs a human or is complete.

        The instance is re-loaded from the store under its lock; the
        argument only identifies it.  A closed instance is returned as is.

        Raises:
            InstanceNotFoundError: If the instance is not stored.
        """
        with self._locks.hold(instance.id):
            current = self._load(instance.id)
            if current.is_closed:
                return current
            template = self._registry.get(current.template_id)
            with LogContext.bind(
                instance_id=current.id, application_id=current.application_id,
            ):
                return self._advance_locked(current, template)

    def retry_assignment(self, instance_id: str) -> WorkflowInstance:
        """Retry a step parked as unassignable.  No-op when nothing is parked."""
        return self.advance(self._load(instance_id))

    def _advance_locked(
        self,
        instance: WorkflowInstance,
        template: WorkflowTemplate,
    ) -> WorkflowInstance:
        events = self._progress(instance, template)
        self._store.save(instance)
        self._dispatch(template, instance, events)
        return instance

    def _progress(
        self,
        instance: WorkflowInstance,
        template: WorkflowTemplate,
    ) -> list[_PendingEvent]:
        """Apply auto-approvals, the next assignment or completion in memory.

        Returns the notifications to send once the result is persisted.
        """
        events: list[_PendingEvent] = []
        snapshot: Mapping[str, Any] | None = None
        snapshot_loaded = False
        step_count = len(template.steps)

        for _ in range(step_count + 1):
            if instance.current_step >= step_count:
                self._complete(instance, events)
                break

            step_def = template.steps[instance.current_step]
            step = instance.steps[instance.current_step]

            if step.status == StepStatus.IN_PROGRESS:
                break
            if step.status in (StepStatus.APPROVED, StepStatus.SKIPPED):
                instance.current_step += 1
                continue

            if step_def.auto_approve:
                if not snapshot_loaded:
                    snapshot = self._applications.get_snapshot(instance.application_id)
                    snapshot_loaded = True
                if self._try_auto_approve(instance, step, step_def, snapshot):
                    instance.current_step += 1
                    continue

            self._assign(instance, step, step_def, events)
            break

        return events

    def _try_auto_approve(
        self,
        instance: WorkflowInstance,
        step: StepInstance,
        step_def: ApprovalStep,
        snapshot: Mapping[str, Any] | None,
    ) -> bool:
        if snapshot is None:
            logger.warning(
                "application_snapshot_missing",
                extra={"step_id": step_def.id},
            )
            return False

        if not evaluate_all(snapshot, step_def.conditions):
            logger.info(
                "step_conditions_not_met",
                extra={
                    "step_id": step_def.id,
                    "failed_conditions": [
                        c.description
                        or f"{c.field} {ConditionOperator(c.operator).value} {c.value!r}"
                        for c in failed_conditions(snapshot, step_def.conditions)
                    ],
                },
            )
            return False

        instance.move_step_to(step, StepStatus.APPROVED)
        step.completed_at = self._clock.now()
        logger.info(
            "step_auto_approved",
            extra={"step_id": step_def.id, "step_index": instance.current_step},
        )
        return True

    def _assign(
        self,
        instance: WorkflowInstance,
        step: StepInstance,
        step_def: ApprovalStep,
        events: list[_PendingEvent],
    ) -> None:
        try:
            assignee = self._directory.find_available(step_def.required_roles)
        except Exception:
            logger.warning(
                "approver_lookup_failed",
                extra={"step_id": step_def.id, "roles": list(step_def.required_roles)},
                exc_info=True,
            )
            assignee = None

        if not assignee:
            logger.warning(
                "step_unassignable",
                extra={
                    "step_id": step_def.id,
                    "step_index": instance.current_step,
                    "roles": list(step_def.required_roles),
                },
            )
            return

        instance.move_step_to(step, StepStatus.IN_PROGRESS)
        step.assigned_to = assignee
        step.started_at = self._clock.now()
        if instance.status == InstanceStatus.PENDING:
            instance.move_to(InstanceStatus.IN_PROGRESS)

        logger.info(
            "step_assigned",
            extra={
                "step_id": step_def.id,
                "step_index": instance.current_step,
                "assignee": assignee,
            },
        )
        events.append((
            NotificationTrigger.STEP_START,
            {"step_id": step_def.id, "step_name": step_def.name, "assignee": assignee},
        ))

    def _complete(self, instance: WorkflowInstance, events: list[_PendingEvent]) -> None:
        instance.move_to(InstanceStatus.COMPLETED)
        instance.completed_at = self._clock.now()
        logger.info(
            "workflow_completed",
            extra={"template_id": instance.template_id},
        )
        events.append((NotificationTrigger.WORKFLOW_COMPLETE, {}))

    # =========================================================================
    # Cancel
    # =========================================================================

    def cancel(self, instance_id: str, reason: str | None = None) -> WorkflowInstance:
        """Cancel an open instance.  Sends no notifications.

        Raises:
            InstanceNotFoundError: If the instance is not stored.
            InstanceAlreadyClosedError: If the instance is terminal.
        """
        with self._locks.hold(instance_id):
            instance = self._load(instance_id)
            if instance.is_closed:
                raise InstanceAlreadyClosedError(instance_id, instance.status.value)

            instance.move_to(InstanceStatus.CANCELLED)
            instance.completed_at = self._clock.now()
            self._store.save(instance)

            with LogContext.bind(
                instance_id=instance.id, application_id=instance.application_id,
            ):
                logger.info(
                    "workflow_cancelled",
                    extra={"reason": reason, "step_index": instance.current_step},
                )
            return instance

    # =========================================================================
    # Helpers
    # =========================================================================

    def load(self, instance_id: str) -> WorkflowInstance:
        """Load an instance or raise InstanceNotFoundError."""
        return self._load(instance_id)

    def _load(self, instance_id: str) -> WorkflowInstance:
        instance = self._store.get(instance_id)
        if instance is None:
            raise InstanceNotFoundError(instance_id)
        return instance

    def notify(
        self,
        trigger: NotificationTrigger,
        instance: WorkflowInstance,
        **details: Any,
    ) -> None:
        """Route ``trigger`` for an already persisted instance."""
        template = self._registry.get(instance.template_id)
        self._notifier.notify(trigger, template, instance, **details)

    def _dispatch(
        self,
        template: WorkflowTemplate,
        instance: WorkflowInstance,
        events: list[_PendingEvent],
    ) -> None:
        for trigger, details in events:
            self._notifier.notify(trigger, template, instance, **details)
