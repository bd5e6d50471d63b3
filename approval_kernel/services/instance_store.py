"""
approval_kernel.services.instance_store -- Workflow instance persistence.

Responsibility:
    Durable CRUD for ``WorkflowInstance`` behind the ``WorkflowInstanceStore``
    protocol.  Two backends:

    * ``InMemoryInstanceStore`` keeps plain records (``domain.records``) so
      every ``get`` hands out a fresh, detached instance.
    * ``SqlInstanceStore`` persists through SQLAlchemy sessions, one short
      transaction per call.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/.

Invariants enforced:
    - Callers never share a live object with the store; mutations become
      visible only through ``save``.
    - ``add`` refuses an id that already exists.
    - ``save`` is a compare-and-swap on ``WorkflowInstance.version``: it
      succeeds only if the stored version equals the caller's, then bumps
      both by one.

Failure modes:
    - InstanceNotFoundError from ``save`` for an id never added.
    - OptimisticLockError from ``save`` when another writer saved first.
    - ValueError from ``add`` for a duplicate id.
"""

from __future__ import annotations

import threading
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.orm import Session, sessionmaker

from approval_kernel.db.engine import session_scope
from approval_kernel.domain.records import instance_from_record, instance_to_record
from approval_kernel.domain.workflow import (
    TERMINAL_INSTANCE_STATUSES,
    InstanceStatus,
    WorkflowInstance,
)
from approval_kernel.exceptions import InstanceNotFoundError, OptimisticLockError
from approval_kernel.logging_config import get_logger
from approval_kernel.models.workflow_instance import WorkflowInstanceModel

logger = get_logger("services.instance_store")

_OPEN_STATUSES = tuple(
    s.value for s in InstanceStatus if s not in TERMINAL_INSTANCE_STATUSES
)


class InMemoryInstanceStore:
    """Process-local store.  Data does not survive a restart."""

    def __init__(self) -> None:
        self._records: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()

    def add(self, instance: WorkflowInstance) -> None:
        with self._lock:
            if instance.id in self._records:
                raise ValueError(f"Workflow instance already stored: {instance.id}")
            self._records[instance.id] = instance_to_record(instance)

    def get(self, instance_id: str) -> WorkflowInstance | None:
        with self._lock:
            record = self._records.get(instance_id)
        return instance_from_record(record) if record is not None else None

    def save(self, instance: WorkflowInstance) -> None:
        with self._lock:
            stored = self._records.get(instance.id)
            if stored is None:
                raise InstanceNotFoundError(instance.id)
            if stored["version"] != instance.version:
                raise OptimisticLockError(instance.id, instance.version, stored["version"])
            record = instance_to_record(instance)
            record["version"] = instance.version + 1
            self._records[instance.id] = record
            instance.version += 1

    def find_open_for_application(self, application_id: str) -> WorkflowInstance | None:
        for instance in self.list_for_application(application_id):
            if not instance.is_closed:
                return instance
        return None

    def list_for_application(self, application_id: str) -> list[WorkflowInstance]:
        with self._lock:
            records = [
                r for r in self._records.values()
                if r["application_id"] == application_id
            ]
        instances = [instance_from_record(r) for r in records]
        return sorted(instances, key=lambda i: i.started_at)


class SqlInstanceStore:
    """SQLAlchemy-backed store.

    Each call runs in its own ``session_scope``.  ``save`` first claims the
    row with ``UPDATE ... SET version = v + 1 WHERE version = v``; the
    database serializes competing claims, so exactly one writer per version
    succeeds, across processes as well as threads.
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def add(self, instance: WorkflowInstance) -> None:
        with session_scope(self._session_factory) as session:
            if session.get(WorkflowInstanceModel, instance.id) is not None:
                raise ValueError(f"Workflow instance already stored: {instance.id}")
            session.add(WorkflowInstanceModel.from_dto(instance))
        logger.debug("instance_inserted", extra={"instance_id": instance.id})

    def get(self, instance_id: str) -> WorkflowInstance | None:
        with session_scope(self._session_factory) as session:
            model = session.get(WorkflowInstanceModel, instance_id)
            return model.to_dto() if model is not None else None

    def save(self, instance: WorkflowInstance) -> None:
        expected = instance.version
        with session_scope(self._session_factory) as session:
            claimed = session.execute(
                update(WorkflowInstanceModel)
                .where(
                    WorkflowInstanceModel.id == instance.id,
                    WorkflowInstanceModel.version == expected,
                )
                .values(version=expected + 1)
                .execution_options(synchronize_session=False)
            ).rowcount
            if claimed != 1:
                stored = session.execute(
                    select(WorkflowInstanceModel.version)
                    .where(WorkflowInstanceModel.id == instance.id)
                ).scalar_one_or_none()
                if stored is None:
                    raise InstanceNotFoundError(instance.id)
                logger.warning(
                    "instance_save_conflict",
                    extra={
                        "instance_id": instance.id,
                        "expected_version": expected,
                        "stored_version": stored,
                    },
                )
                raise OptimisticLockError(instance.id, expected, stored)

            model = session.get(WorkflowInstanceModel, instance.id)
            model.apply(instance)
        instance.version = expected + 1

    def find_open_for_application(self, application_id: str) -> WorkflowInstance | None:
        with session_scope(self._session_factory) as session:
            model = session.execute(
                select(WorkflowInstanceModel)
                .where(
                    WorkflowInstanceModel.application_id == application_id,
                    WorkflowInstanceModel.status.in_(_OPEN_STATUSES),
                )
                .order_by(WorkflowInstanceModel.started_at.desc())
            ).scalars().first()
            return model.to_dto() if model is not None else None

    def list_for_application(self, application_id: str) -> list[WorkflowInstance]:
        with session_scope(self._session_factory) as session:
            models = session.execute(
                select(WorkflowInstanceModel)
                .where(WorkflowInstanceModel.application_id == application_id)
                .order_by(WorkflowInstanceModel.started_at)
            ).scalars().all()
            return [m.to_dto() for m in models]
