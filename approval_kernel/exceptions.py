"""
Typed exception hierarchy for the approval kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the engine (an HTTP layer, a scheduler, a batch job) must branch on
the *kind* of failure, not on message text:

    try:
        engine.decide(instance_id, step_id, Decision.APPROVE, approver_id)
    except StepNotActiveError as e:        # stale client, do not retry
        api_response(409, code=e.code, active_step=e.active_step_id)
    except InstanceAlreadyClosedError as e:
        api_response(409, code=e.code, status=e.status)

Every exception carries:
  1. a ``code`` class attribute (machine-readable, API-safe)
  2. structured attributes describing the failure

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ApprovalWorkflowError (base)
    |
    +-- TemplateError
    |   +-- TemplateNotFoundError
    |   +-- MalformedTemplateError
    |
    +-- InstanceError
    |   +-- InstanceNotFoundError
    |   +-- InstanceAlreadyClosedError
    |   +-- StepNotActiveError
    |   +-- ActiveInstanceExistsError
    |   +-- InvalidInstanceTransitionError
    |
    +-- DecisionError
    |   +-- InvalidDecisionError
    |
    +-- ApplicationError
    |   +-- ApplicationNotFoundError
    |
    +-- ConcurrencyError
        +-- OptimisticLockError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                         | When Raised
-------------|------------------------------|------------------------------------
Template     | TEMPLATE_NOT_FOUND           | Unregistered template id
             | MALFORMED_TEMPLATE           | Registration-time validation failed
-------------|------------------------------|------------------------------------
Instance     | INSTANCE_NOT_FOUND           | Unknown workflow instance id
             | INSTANCE_ALREADY_CLOSED      | Mutation of a terminal instance
             | STEP_NOT_ACTIVE              | Decision for a non-current step
             | ACTIVE_INSTANCE_EXISTS       | Second open instance for application
             | INVALID_INSTANCE_TRANSITION  | Status change not in state machine
-------------|------------------------------|------------------------------------
Decision     | INVALID_DECISION             | Unknown decision value
-------------|------------------------------|------------------------------------
Application  | APPLICATION_NOT_FOUND        | Source has no snapshot for the id
-------------|------------------------------|------------------------------------
Concurrency  | OPTIMISTIC_LOCK_CONFLICT     | Stored instance changed since load

An unassignable step is NOT an exception: it is an expected, recoverable
state exposed as ``WorkflowInstance.unassignable_step``.
"""


class ApprovalWorkflowError(Exception):
    """
    Base exception for all approval workflow errors.

    All subclasses must have a ``code`` class attribute for
    machine-readable error identification.
    """

    code: str = "APPROVAL_WORKFLOW_ERROR"


# Template-related exceptions


class TemplateError(ApprovalWorkflowError):
    """Base exception for workflow template errors."""

    code: str = "TEMPLATE_ERROR"


class TemplateNotFoundError(TemplateError):
    """No template is registered under the given id."""

    code: str = "TEMPLATE_NOT_FOUND"

    def __init__(self, template_id: str):
        self.template_id = template_id
        super().__init__(f"Workflow template not found: {template_id}")


class MalformedTemplateError(TemplateError):
    """
    Template failed registration-time validation.

    Fatal: a malformed template is never stored, so no instance can ever
    be created from it.
    """

    code: str = "MALFORMED_TEMPLATE"

    def __init__(self, template_id: str, errors: list[str]):
        self.template_id = template_id
        self.errors = list(errors)
        super().__init__(
            f"Malformed workflow template {template_id!r}: " + "; ".join(self.errors)
        )


# Instance-related exceptions


class InstanceError(ApprovalWorkflowError):
    """Base exception for workflow instance errors."""

    code: str = "INSTANCE_ERROR"


class InstanceNotFoundError(InstanceError):
    """Workflow instance with given id was not found."""

    code: str = "INSTANCE_NOT_FOUND"

    def __init__(self, instance_id: str):
        self.instance_id = instance_id
        super().__init__(f"Workflow instance not found: {instance_id}")


class InstanceAlreadyClosedError(InstanceError):
    """
    Instance is in a terminal status (completed, rejected, cancelled).

    Terminal instances are never reopened; callers must not retry.
    """

    code: str = "INSTANCE_ALREADY_CLOSED"

    def __init__(self, instance_id: str, status: str):
        self.instance_id = instance_id
        self.status = status
        super().__init__(
            f"Workflow instance {instance_id} is already closed (status={status})"
        )


class StepNotActiveError(InstanceError):
    """
    Decision submitted for a step that is not the one currently in progress.

    Usually a stale or duplicate submission (double click after the
    instance already advanced).
    """

    code: str = "STEP_NOT_ACTIVE"

    def __init__(self, instance_id: str, step_id: str, active_step_id: str | None):
        self.instance_id = instance_id
        self.step_id = step_id
        self.active_step_id = active_step_id
        super().__init__(
            f"Step {step_id} is not active on workflow instance {instance_id} "
            f"(active step: {active_step_id or 'none'})"
        )


class ActiveInstanceExistsError(InstanceError):
    """The application already has an open workflow instance."""

    code: str = "ACTIVE_INSTANCE_EXISTS"

    def __init__(self, application_id: str, instance_id: str):
        self.application_id = application_id
        self.instance_id = instance_id
        super().__init__(
            f"Application {application_id} already has an open workflow "
            f"instance: {instance_id}"
        )


class InvalidInstanceTransitionError(InstanceError):
    """Requested status change is not allowed by the instance state machine."""

    code: str = "INVALID_INSTANCE_TRANSITION"

    def __init__(self, instance_id: str, from_status: str, to_status: str):
        self.instance_id = instance_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Invalid transition for workflow instance {instance_id}: "
            f"{from_status} -> {to_status}"
        )


# Decision-related exceptions


class DecisionError(ApprovalWorkflowError):
    """Base exception for decision input errors."""

    code: str = "DECISION_ERROR"


class InvalidDecisionError(DecisionError):
    """Decision value is not one of APPROVE, REJECT, REQUEST_INFO."""

    code: str = "INVALID_DECISION"

    def __init__(self, decision: str):
        self.decision = decision
        super().__init__(f"Invalid decision: {decision!r}")


# Application-related exceptions


class ApplicationError(ApprovalWorkflowError):
    """Base exception for application source errors."""

    code: str = "APPLICATION_ERROR"


class ApplicationNotFoundError(ApplicationError):
    """The application source has no snapshot for the given id."""

    code: str = "APPLICATION_NOT_FOUND"

    def __init__(self, application_id: str):
        self.application_id = application_id
        super().__init__(f"Application not found: {application_id}")


# Concurrency-related exceptions


class ConcurrencyError(ApprovalWorkflowError):
    """Base exception for concurrent modification errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """
    The stored instance changed since this copy was loaded.

    Raised by ``WorkflowInstanceStore.save`` when another writer (typically
    in another process) saved first.  The losing write is discarded.
    """

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, instance_id: str, expected_version: int, stored_version: int):
        self.instance_id = instance_id
        self.expected_version = expected_version
        self.stored_version = stored_version
        super().__init__(
            f"Optimistic lock conflict on workflow instance {instance_id}: "
            f"expected version {expected_version}, stored version {stored_version}"
        )
