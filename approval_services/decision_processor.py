"""
approval_services.decision_processor -- Human decisions on the active step.

Responsibility:
    Applies an approver's decision (APPROVE / REJECT / REQUEST_INFO) to the
    step currently awaiting one, persists the result, notifies, and hands
    an approved instance back to the instance manager to continue.

Architecture position:
    Services -- shares the instance manager's lock table so a decision and
    a concurrent ``advance`` / ``cancel`` of the same instance serialize.

Invariants enforced:
    - Only the step that is IN_PROGRESS accepts a decision, and only while
      the instance is open.  Of two racing decisions on one step exactly one
      wins; the loser sees StepNotActiveError or InstanceAlreadyClosedError.
      This also holds across processes sharing one store: the store rejects
      the stale save and the loser gets the same errors.
    - REJECT closes the instance; later steps stay PENDING.
    - REQUEST_INFO records the request and changes no status.
    - State is persisted before any notification is dispatched.

Failure modes:
    - InstanceNotFoundError for an unknown instance id.
    - InstanceAlreadyClosedError for a terminal instance.
    - StepNotActiveError when ``step_id`` is not the IN_PROGRESS step.
    - InvalidDecisionError for an unknown decision value.
    - OptimisticLockError when a concurrent writer changed the instance
      but the step is still the active one (e.g. two REQUEST_INFO calls).
"""

from __future__ import annotations

from approval_kernel.domain.clock import Clock, SystemClock
from approval_kernel.domain.collaborators import WorkflowInstanceStore
from approval_kernel.domain.workflow import (
    Decision,
    InstanceStatus,
    NotificationTrigger,
    StepStatus,
    WorkflowInstance,
)
from approval_kernel.exceptions import (
    InstanceAlreadyClosedError,
    InvalidDecisionError,
    OptimisticLockError,
    StepNotActiveError,
)
from approval_kernel.logging_config import LogContext, get_logger
from approval_services.instance_manager import WorkflowInstanceManager

logger = get_logger("services.decision_processor")


def parse_decision(decision: Decision | str) -> Decision:
    """Accept a ``Decision`` or its string value."""
    if isinstance(decision, Decision):
        return decision
    try:
        return Decision(str(decision).upper())
    except ValueError:
        raise InvalidDecisionError(str(decision)) from None


class DecisionProcessor:
    """Records approver decisions and applies their state transitions."""

    def __init__(
        self,
        manager: WorkflowInstanceManager,
        store: WorkflowInstanceStore,
        clock: Clock | None = None,
    ) -> None:
        self._manager = manager
        self._store = store
        self._clock = clock or SystemClock()

    def decide(
        self,
        instance_id: str,
        step_id: str,
        decision: Decision | str,
        approver_id: str,
        comments: str | None = None,
        reason: str | None = None,
    ) -> WorkflowInstance:
        """Apply ``decision`` to step ``step_id`` of instance ``instance_id``.

        Args:
            instance_id: Instance to act on.
            step_id: Step the approver is deciding; must be the active step.
            decision: APPROVE, REJECT or REQUEST_INFO.
            approver_id: Identity of the approver (logged, not stored).
            comments: Free-text comments recorded on the step.
            reason: Decision reason recorded on the step.

        Returns:
            The instance after the decision (and any subsequent advance).
        """
        parsed = parse_decision(decision)

        with self._manager.locks.hold(instance_id):
            instance = self._manager.load(instance_id)
            with LogContext.bind(
                instance_id=instance.id,
                application_id=instance.application_id,
                actor_id=approver_id,
            ):
                if instance.is_closed:
                    raise InstanceAlreadyClosedError(instance_id, instance.status.value)

                active = instance.active_step
                if active is None or active.step_id != step_id:
                    raise StepNotActiveError(
                        instance_id, step_id, active.step_id if active else None,
                    )

                active.decision = parsed
                active.comments = comments

                logger.info(
                    "decision_recorded",
                    extra={
                        "step_id": step_id,
                        "decision": parsed.value,
                        "approver_id": approver_id,
                    },
                )

                if parsed == Decision.REQUEST_INFO:
                    active.decision_reason = reason
                    self._save(instance, step_id)
                    logger.info("info_requested", extra={"step_id": step_id})
                    return instance

                if parsed == Decision.REJECT:
                    return self._reject(instance, step_id, approver_id, comments, reason)

                return self._approve(instance, step_id, approver_id, comments)

    def _reject(
        self,
        instance: WorkflowInstance,
        step_id: str,
        approver_id: str,
        comments: str | None,
        reason: str | None,
    ) -> WorkflowInstance:
        step = instance.step(step_id)
        now = self._clock.now()
        step.decision_reason = reason
        instance.move_step_to(step, StepStatus.REJECTED)
        step.completed_at = now
        instance.move_to(InstanceStatus.REJECTED)
        instance.completed_at = now
        self._save(instance, step_id)

        logger.info(
            "workflow_rejected",
            extra={"step_id": step_id, "reason": reason},
        )
        self._manager.notify(
            NotificationTrigger.WORKFLOW_REJECTED,
            instance,
            step_id=step_id,
            decision=Decision.REJECT.value,
            approver_id=approver_id,
            comments=comments,
            reason=reason,
        )
        return instance

    def _approve(
        self,
        instance: WorkflowInstance,
        step_id: str,
        approver_id: str,
        comments: str | None,
    ) -> WorkflowInstance:
        step = instance.step(step_id)
        instance.move_step_to(step, StepStatus.APPROVED)
        step.completed_at = self._clock.now()
        instance.current_step += 1
        self._save(instance, step_id)

        logger.info("step_approved", extra={"step_id": step_id})
        self._manager.notify(
            NotificationTrigger.STEP_COMPLETE,
            instance,
            step_id=step_id,
            decision=Decision.APPROVE.value,
            approver_id=approver_id,
            comments=comments,
        )
        return self._manager.advance(instance)

    def _save(self, instance: WorkflowInstance, step_id: str) -> None:
        """Persist a decision; a writer that lost the race sees the usual errors.

        Another process may have decided the same step between our load and
        our save.  The store rejects the stale write, and the caller gets the
        error it would have got had it loaded after the winner.
        """
        try:
            self._store.save(instance)
        except OptimisticLockError:
            current = self._manager.load(instance.id)
            logger.warning(
                "decision_superseded",
                extra={"step_id": step_id, "stored_version": current.version},
            )
            if current.is_closed:
                raise InstanceAlreadyClosedError(
                    instance.id, current.status.value,
                ) from None
            active = current.active_step
            if active is None or active.step_id != step_id:
                raise StepNotActiveError(
                    instance.id, step_id, active.step_id if active else None,
                ) from None
            raise
