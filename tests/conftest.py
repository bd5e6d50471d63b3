"""
Pytest fixtures for the approval workflow test suite.

Provides:
- Structured-log capture and LogContext isolation
- A deterministic clock
- Recording / failing fakes for the notification dispatcher
- In-memory collaborators and a fully wired engine built from the
  default YAML configuration
- A SQLite-backed session factory for persistence tests
"""

import itertools
import json
import logging
from collections.abc import Mapping, Sequence
from io import StringIO
from typing import Any

import pytest

from approval_kernel.db.engine import create_tables, drop_tables, get_session_factory, init_engine_from_url, reset_engine
from approval_kernel.domain.clock import DeterministicClock
from approval_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from approval_kernel.services.instance_store import InMemoryInstanceStore
from approval_services.directory import InMemoryApplicationSource, StaticApproverDirectory
from approval_services.workflow_engine import ApprovalWorkflowEngine


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "concurrency: mark test as exercising multiple threads"
    )


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture approval_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, engine):
            engine.start_workflow("app-1")
            logs = captured_logs()
            assert any(r["message"] == "workflow_started" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("approval_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


@pytest.fixture
def deterministic_clock():
    """Provide a deterministic clock for testing."""
    return DeterministicClock()


# =============================================================================
# Collaborator fakes
# =============================================================================


class RecordingDispatcher:
    """NotificationDispatcher that remembers every call."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, tuple[str, ...], dict[str, Any]]] = []

    def send(self, trigger: str, recipients: Sequence[str], context: Mapping[str, Any]) -> None:
        self.calls.append((trigger, tuple(recipients), dict(context)))

    def triggers(self) -> list[str]:
        return [c[0] for c in self.calls]


class FailingDispatcher(RecordingDispatcher):
    """Records, then raises on every call."""

    def send(self, trigger: str, recipients: Sequence[str], context: Mapping[str, Any]) -> None:
        super().send(trigger, recipients, context)
        raise ConnectionError("notification gateway unavailable")


class ExplodingDirectory:
    """ApproverDirectory whose backend is down."""

    def find_available(self, roles: Sequence[str]) -> str | None:
        raise TimeoutError("directory lookup timed out")


class FlakyApplicationSource:
    """ApplicationSource that fails ``failures`` times, then serves ``delegate``."""

    def __init__(self, delegate: Any, failures: int = 1) -> None:
        self._delegate = delegate
        self.failures = failures

    def get_snapshot(self, application_id: str) -> Mapping[str, Any] | None:
        if self.failures > 0:
            self.failures -= 1
            raise ConnectionError("application service unavailable")
        return self._delegate.get_snapshot(application_id)


#: Every role used by the default templates, one holder each.
DEFAULT_ROLE_MAP = {
    "INVESTMENT_ANALYST": ["ana.analyst"],
    "COMPLIANCE_OFFICER": ["carl.compliance"],
    "RISK_MANAGER": ["rita.risk"],
    "SENIOR_ANALYST": ["sam.senior"],
    "INVESTMENT_MANAGER": ["ivan.manager"],
    "SENIOR_MANAGER": ["sue.senior"],
    "FINANCIAL_ANALYST": ["fred.finance"],
    "RISK_COMMITTEE_MEMBER": ["rob.committee"],
    "EXECUTIVE_COMMITTEE": ["eve.exec"],
    "CEO": ["cleo.ceo"],
    "CIO": ["cian.cio"],
}


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def failing_dispatcher():
    return FailingDispatcher()


@pytest.fixture
def directory():
    return StaticApproverDirectory(DEFAULT_ROLE_MAP)


@pytest.fixture
def applications():
    return InMemoryApplicationSource({
        "app-standard": {"amount": 75000, "risk_tier": "MEDIUM"},
        "app-high-value": {"amount": 600000, "risk_tier": "LOW"},
        "app-high-risk": {"amount": 20000, "risk_tier": "high"},
    })


@pytest.fixture
def store():
    return InMemoryInstanceStore()


@pytest.fixture
def id_sequence():
    """Deterministic instance ids: wf-1, wf-2, ..."""
    counter = itertools.count(1)

    def _next() -> str:
        return f"wf-{next(counter)}"

    return _next


@pytest.fixture
def engine(applications, directory, dispatcher, store, deterministic_clock, id_sequence):
    """Engine loaded from the default YAML configuration."""
    return ApprovalWorkflowEngine.from_config(
        applications=applications,
        directory=directory,
        dispatcher=dispatcher,
        store=store,
        clock=deterministic_clock,
        id_factory=id_sequence,
    )


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def session_factory():
    """Fresh in-memory SQLite schema per test."""
    init_engine_from_url("sqlite:///:memory:")
    create_tables()
    yield get_session_factory()
    drop_tables()
    reset_engine()
