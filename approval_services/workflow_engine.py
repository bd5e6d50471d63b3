"""
approval_services.workflow_engine -- Approval workflow facade.

Responsibility:
    Wires registry, instance manager, decision processor and notification
    routing around the four collaborators, and exposes the engine's
    external surface: start, decide, cancel, status queries, assignment
    retry and template management.

Architecture position:
    Services -- outermost layer of the engine.  Callers (web handlers, a
    scheduler, CLI tools) talk to this class only.

Invariants enforced:
    - ``get_status`` / ``get_status_for_application`` never mutate state.
    - Instance manager and decision processor share one lock table.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from pathlib import Path
from uuid import uuid4

from approval_config import get_workflow_config
from approval_engines.selector import DEFAULT_SELECTOR_POLICY, SelectorPolicy, select_template
from approval_kernel.domain.clock import Clock, SystemClock
from approval_kernel.domain.collaborators import (
    ApplicationSource,
    ApproverDirectory,
    NotificationDispatcher,
    WorkflowInstanceStore,
)
from approval_kernel.domain.workflow import Decision, WorkflowInstance, WorkflowTemplate
from approval_kernel.exceptions import ApplicationNotFoundError
from approval_kernel.logging_config import LogContext, get_logger
from approval_kernel.services.instance_store import InMemoryInstanceStore
from approval_services.decision_processor import DecisionProcessor
from approval_services.instance_manager import WorkflowInstanceManager
from approval_services.locking import InstanceLocks
from approval_services.notifications import LoggingNotificationDispatcher, NotificationRouter
from approval_services.registry import WorkflowTemplateRegistry

logger = get_logger("services.workflow_engine")


class ApprovalWorkflowEngine:
    """External surface of the approval workflow engine."""

    def __init__(
        self,
        applications: ApplicationSource,
        directory: ApproverDirectory,
        dispatcher: NotificationDispatcher | None = None,
        store: WorkflowInstanceStore | None = None,
        registry: WorkflowTemplateRegistry | None = None,
        selector: SelectorPolicy = DEFAULT_SELECTOR_POLICY,
        clock: Clock | None = None,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self._applications = applications
        self._store = store if store is not None else InMemoryInstanceStore()
        self._registry = registry if registry is not None else WorkflowTemplateRegistry()
        self._selector = selector
        clock = clock or SystemClock()

        locks = InstanceLocks()
        router = NotificationRouter(
            dispatcher if dispatcher is not None else LoggingNotificationDispatcher()
        )
        self._manager = WorkflowInstanceManager(
            registry=self._registry,
            store=self._store,
            applications=applications,
            directory=directory,
            notifier=router,
            clock=clock,
            locks=locks,
            id_factory=id_factory,
        )
        self._processor = DecisionProcessor(self._manager, self._store, clock=clock)

    @classmethod
    def from_config(
        cls,
        applications: ApplicationSource,
        directory: ApproverDirectory,
        dispatcher: NotificationDispatcher | None = None,
        store: WorkflowInstanceStore | None = None,
        config_path: Path | str | None = None,
        clock: Clock | None = None,
        id_factory: Callable[[], str] | None = None,
    ) -> ApprovalWorkflowEngine:
        """Build an engine whose templates and selector come from YAML config."""
        config = get_workflow_config(config_path)
        return cls(
            applications=applications,
            directory=directory,
            dispatcher=dispatcher,
            store=store,
            registry=WorkflowTemplateRegistry(config.templates),
            selector=config.selector,
            clock=clock,
            id_factory=id_factory,
        )

    @property
    def registry(self) -> WorkflowTemplateRegistry:
        return self._registry

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    def start_workflow(
        self,
        application_id: str,
        template_id: str | None = None,
    ) -> WorkflowInstance:
        """Start a workflow for an application.

        When ``template_id`` is None the selector policy picks it from the
        application snapshot.

        Raises:
            ApplicationNotFoundError: If the source has no such application.
            TemplateNotFoundError: If the template is not registered.
            ActiveInstanceExistsError: If the application has an open instance.
        """
        with LogContext.bind(correlation_id=str(uuid4()), application_id=application_id):
            snapshot = self._applications.get_snapshot(application_id)
            if snapshot is None:
                raise ApplicationNotFoundError(application_id)
            if template_id is None:
                template_id = select_template(snapshot, self._selector)
                logger.info("template_selected", extra={"template_id": template_id})
            return self._manager.start(application_id, template_id)

    def decide(
        self,
        instance_id: str,
        step_id: str,
        decision: Decision | str,
        approver_id: str,
        comments: str | None = None,
        reason: str | None = None,
    ) -> WorkflowInstance:
        with LogContext.bind(correlation_id=str(uuid4())):
            return self._processor.decide(
                instance_id, step_id, decision, approver_id,
                comments=comments, reason=reason,
            )

    def cancel_workflow(self, instance_id: str, reason: str | None = None) -> WorkflowInstance:
        with LogContext.bind(correlation_id=str(uuid4())):
            return self._manager.cancel(instance_id, reason)

    def retry_assignment(self, instance_id: str) -> WorkflowInstance:
        """Scheduler hook: retry assignment of a parked (unassignable) step."""
        with LogContext.bind(correlation_id=str(uuid4())):
            return self._manager.retry_assignment(instance_id)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_status(self, instance_id: str) -> WorkflowInstance | None:
        return self._store.get(instance_id)

    def get_status_for_application(self, application_id: str) -> WorkflowInstance | None:
        """Latest instance started for the application, open or closed."""
        instances = self._store.list_for_application(application_id)
        return instances[-1] if instances else None

    # -------------------------------------------------------------------------
    # Templates
    # -------------------------------------------------------------------------

    def list_templates(self) -> list[WorkflowTemplate]:
        return self._registry.list()

    def register_template(self, template: WorkflowTemplate) -> None:
        self._registry.register(template)

    def register_templates(self, templates: Iterable[WorkflowTemplate]) -> None:
        for template in templates:
            self._registry.register(template)
