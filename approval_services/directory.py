"""
approval_services.directory -- Reference collaborator implementations.

Responsibility:
    Dict-backed implementations of the ``ApproverDirectory`` and
    ``ApplicationSource`` protocols from ``approval_kernel.domain``.
    Suitable for tests, demos and single-process deployments; replace with
    an identity-provider or database-backed adapter in production.

Architecture position:
    Services -- adapters at the edge of the engine.
"""

from __future__ import annotations

import copy
import threading
from collections.abc import Iterable, Mapping, Sequence
from typing import Any


class StaticApproverDirectory:
    """ApproverDirectory backed by a role -> identities map.

    Roles are tried in the order the step lists them; within a role,
    identities are tried in the order they were configured.  The first
    identity not marked unavailable wins.  No load balancing.
    """

    def __init__(
        self,
        role_map: Mapping[str, Sequence[str]] | None = None,
        unavailable: Iterable[str] = (),
    ) -> None:
        self._role_map: dict[str, list[str]] = {
            role: list(ids) for role, ids in (role_map or {}).items()
        }
        self._unavailable: set[str] = set(unavailable)
        self._lock = threading.Lock()

    def find_available(self, roles: Sequence[str]) -> str | None:
        with self._lock:
            for role in roles:
                for identity in self._role_map.get(role, ()):
                    if identity not in self._unavailable:
                        return identity
        return None

    def add(self, role: str, identity: str) -> None:
        with self._lock:
            holders = self._role_map.setdefault(role, [])
            if identity not in holders:
                holders.append(identity)

    def mark_unavailable(self, identity: str) -> None:
        with self._lock:
            self._unavailable.add(identity)

    def mark_available(self, identity: str) -> None:
        with self._lock:
            self._unavailable.discard(identity)


class InMemoryApplicationSource:
    """ApplicationSource backed by a dict of application snapshots.

    ``get_snapshot`` returns a deep copy, so conditions never observe a
    record mutated mid-evaluation.
    """

    def __init__(self, applications: Mapping[str, Mapping[str, Any]] | None = None) -> None:
        self._applications: dict[str, dict[str, Any]] = {
            app_id: dict(record) for app_id, record in (applications or {}).items()
        }
        self._lock = threading.Lock()

    def get_snapshot(self, application_id: str) -> Mapping[str, Any] | None:
        with self._lock:
            record = self._applications.get(application_id)
            return copy.deepcopy(record) if record is not None else None

    def put(self, application_id: str, record: Mapping[str, Any]) -> None:
        with self._lock:
            self._applications[application_id] = dict(record)
