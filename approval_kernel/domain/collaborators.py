"""
Collaborator protocols (``approval_kernel.domain.collaborators``).

The engine depends on four external systems, each consumed through a
structural protocol so that production adapters (a relational store, an
identity directory, an email/SMS gateway) can be swapped for in-memory
fakes in tests.

* ``ApplicationSource`` -- the record under review, queried by field path.
* ``ApproverDirectory`` -- resolves "an available holder of role R".
* ``NotificationDispatcher`` -- delivers a notification.  The engine only
  decides *that* and *to whom* it fires.
* ``WorkflowInstanceStore`` -- durable CRUD for workflow instances.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Protocol, runtime_checkable

from approval_kernel.domain.workflow import WorkflowInstance


@runtime_checkable
class ApplicationSource(Protocol):
    def get_snapshot(self, application_id: str) -> Mapping[str, Any] | None:
        """Return the current application record, or None if unknown."""
        ...


@runtime_checkable
class ApproverDirectory(Protocol):
    def find_available(self, roles: Sequence[str]) -> str | None:
        """Return the identity of an available holder of any of ``roles``."""
        ...


@runtime_checkable
class NotificationDispatcher(Protocol):
    def send(
        self,
        trigger: str,
        recipients: Sequence[str],
        context: Mapping[str, Any],
    ) -> None:
        """Deliver one notification.  May raise; callers isolate failures."""
        ...


@runtime_checkable
class WorkflowInstanceStore(Protocol):
    def add(self, instance: WorkflowInstance) -> None:
        """Persist a newly created instance."""
        ...

    def get(self, instance_id: str) -> WorkflowInstance | None:
        """Load an instance by id.  Returns a detached copy."""
        ...

    def save(self, instance: WorkflowInstance) -> None:
        """Persist the current state of an existing instance.

        Compare-and-swap on ``instance.version``: raises
        ``OptimisticLockError`` if the stored version differs, otherwise
        stores the state and increments ``instance.version``.
        """
        ...

    def find_open_for_application(self, application_id: str) -> WorkflowInstance | None:
        """Return the application's non-terminal instance, if any."""
        ...

    def list_for_application(self, application_id: str) -> list[WorkflowInstance]:
        """All instances of an application, oldest first."""
        ...
