"""
Concurrency tests: racing decisions and starts on the same workflow.

Threads are released together through a Barrier so the operations
genuinely overlap.  Exactly one writer may win each race; the losers must
fail with a typed error, never corrupt state.
"""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from approval_kernel.domain.clock import DeterministicClock
from approval_kernel.domain.workflow import InstanceStatus, StepStatus
from approval_kernel.exceptions import (
    ActiveInstanceExistsError,
    ApprovalWorkflowError,
    InstanceAlreadyClosedError,
    StepNotActiveError,
)
from approval_kernel.services.instance_store import InMemoryInstanceStore, SqlInstanceStore
from approval_services.workflow_engine import ApprovalWorkflowEngine
from tests.conftest import RecordingDispatcher

pytestmark = pytest.mark.concurrency

THREADS = 8


def race(n: int, fn):
    """Run ``fn(i)`` on ``n`` threads released at once; return results or exceptions."""
    barrier = threading.Barrier(n)

    def _run(i):
        barrier.wait()
        try:
            return fn(i)
        except ApprovalWorkflowError as exc:
            return exc

    with ThreadPoolExecutor(max_workers=n) as pool:
        return list(pool.map(_run, range(n)))


class TestDecisionRace:
    def test_two_approvals_one_wins(self, engine):
        instance = engine.start_workflow("app-standard")

        results = race(2, lambda i: engine.decide(
            instance.id, "initial-review", "APPROVE", f"approver-{i}",
        ))

        winners = [r for r in results if not isinstance(r, Exception)]
        losers = [r for r in results if isinstance(r, Exception)]
        assert len(winners) == 1
        assert len(losers) == 1
        assert isinstance(losers[0], (StepNotActiveError, InstanceAlreadyClosedError))

        final = engine.get_status(instance.id)
        assert final.current_step == 1
        assert final.steps[0].status == StepStatus.APPROVED
        assert final.steps[1].status == StepStatus.IN_PROGRESS

    def test_approve_against_reject(self, engine):
        instance = engine.start_workflow("app-standard")
        decisions = ["APPROVE", "REJECT"] * (THREADS // 2)

        results = race(THREADS, lambda i: engine.decide(
            instance.id, "initial-review", decisions[i], f"approver-{i}",
        ))

        assert sum(1 for r in results if not isinstance(r, Exception)) == 1
        final = engine.get_status(instance.id)
        in_progress = [s for s in final.steps if s.status == StepStatus.IN_PROGRESS]
        assert len(in_progress) <= 1
        if final.status == InstanceStatus.REJECTED:
            assert final.steps[0].status == StepStatus.REJECTED
            assert final.steps[1].status == StepStatus.PENDING
        else:
            assert final.steps[0].status == StepStatus.APPROVED

    def test_decide_against_cancel(self, engine):
        instance = engine.start_workflow("app-standard")

        def _act(i):
            if i == 0:
                return engine.cancel_workflow(instance.id)
            return engine.decide(instance.id, "initial-review", "APPROVE", "ana.analyst")

        results = race(2, _act)
        final = engine.get_status(instance.id)
        if isinstance(results[0], Exception):
            pytest.fail(f"cancel raised unexpectedly: {results[0]!r}")
        assert final.status == InstanceStatus.CANCELLED
        assert sum(1 for s in final.steps if s.status == StepStatus.IN_PROGRESS) <= 1


class TestStartRace:
    def test_only_one_open_instance_per_application(self, engine, store):
        results = race(THREADS, lambda i: engine.start_workflow("app-standard"))

        started = [r for r in results if not isinstance(r, Exception)]
        refused = [r for r in results if isinstance(r, Exception)]
        assert len(started) == 1
        assert all(isinstance(r, ActiveInstanceExistsError) for r in refused)
        assert len(store.list_for_application("app-standard")) == 1

    def test_different_instances_do_not_contend(self, engine):
        ids = ["app-standard", "app-high-value", "app-high-risk"]
        results = race(3, lambda i: engine.start_workflow(ids[i]))
        assert all(not isinstance(r, Exception) for r in results)
        assert len({r.id for r in results}) == 3


# =============================================================================
# Engines in separate processes sharing one store
# =============================================================================


class InterleavingClock(DeterministicClock):
    """Runs ``interleave`` once, the next time the clock is read.

    A decision reads the clock after it has validated the loaded instance
    and before it saves, so the interleaved call lands exactly in that gap.
    """

    def __init__(self) -> None:
        super().__init__()
        self.interleave = None

    def now(self):
        action, self.interleave = self.interleave, None
        if action is not None:
            action()
        return super().now()


@pytest.fixture(params=["memory", "sql"])
def shared_store(request):
    if request.param == "memory":
        return InMemoryInstanceStore()
    return SqlInstanceStore(request.getfixturevalue("session_factory"))


def build_engine(store, applications, directory, clock):
    """Engine with its own lock table, as a second process would have."""
    return ApprovalWorkflowEngine.from_config(
        applications=applications,
        directory=directory,
        dispatcher=RecordingDispatcher(),
        store=store,
        clock=clock,
    )


class TestSharedStore:
    @pytest.fixture
    def engines(self, shared_store, applications, directory):
        clock = InterleavingClock()
        first = build_engine(shared_store, applications, directory, clock)
        second = build_engine(shared_store, applications, directory, DeterministicClock())
        return first, second, clock

    def test_second_approval_of_same_step_is_refused(self, engines, captured_logs):
        first, second, clock = engines
        instance = first.start_workflow("app-standard")
        clock.interleave = lambda: second.decide(
            instance.id, "initial-review", "APPROVE", "carl.compliance",
        )

        with pytest.raises(StepNotActiveError) as exc_info:
            first.decide(instance.id, "initial-review", "APPROVE", "ana.analyst")

        assert exc_info.value.active_step_id == "risk-assessment"
        final = first.get_status(instance.id)
        assert final.current_step == 1
        assert final.steps[0].status == StepStatus.APPROVED
        assert final.steps[1].status == StepStatus.IN_PROGRESS

        logs = captured_logs()
        assigned = [
            r for r in logs
            if r["message"] == "step_assigned" and r["step_id"] == "risk-assessment"
        ]
        assert len(assigned) == 1
        approved = [r for r in logs if r["message"] == "step_approved"]
        assert len(approved) == 1
        assert any(r["message"] == "decision_superseded" for r in logs)

    def test_approval_after_remote_rejection_is_refused(self, engines):
        first, second, clock = engines
        instance = first.start_workflow("app-standard")
        clock.interleave = lambda: second.decide(
            instance.id, "initial-review", "REJECT", "carl.compliance", reason="incomplete",
        )

        with pytest.raises(InstanceAlreadyClosedError):
            first.decide(instance.id, "initial-review", "APPROVE", "ana.analyst")

        final = first.get_status(instance.id)
        assert final.status == InstanceStatus.REJECTED
        assert final.steps[0].status == StepStatus.REJECTED
        assert final.steps[0].decision_reason == "incomplete"
        assert final.steps[1].status == StepStatus.PENDING
