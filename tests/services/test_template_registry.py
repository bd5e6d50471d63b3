"""
Tests for WorkflowTemplateRegistry.
"""

import pytest

from approval_config import get_workflow_config
from approval_kernel.domain.workflow import ApprovalCondition, ApprovalStep, WorkflowTemplate
from approval_kernel.exceptions import MalformedTemplateError, TemplateNotFoundError
from approval_services.registry import WorkflowTemplateRegistry


def make_template(template_id: str = "tpl", name: str = "Template", orders=(0, 1)) -> WorkflowTemplate:
    return WorkflowTemplate(
        id=template_id,
        name=name,
        steps=tuple(
            ApprovalStep(id=f"s{i}", name=f"Step {i}", order=o, required_roles=("REVIEWER",))
            for i, o in enumerate(orders)
        ),
    )


class TestRegister:
    def test_register_and_get(self):
        registry = WorkflowTemplateRegistry()
        template = make_template()
        registry.register(template)

        assert registry.get("tpl") is template
        assert registry.contains("tpl")
        assert "tpl" in registry

    def test_malformed_template_is_never_stored(self, captured_logs):
        registry = WorkflowTemplateRegistry()
        with pytest.raises(MalformedTemplateError) as exc_info:
            registry.register(make_template(orders=(0, 2)))

        assert exc_info.value.errors
        assert not registry.contains("tpl")
        assert any(r["message"] == "template_rejected" for r in captured_logs())

    def test_unknown_condition_operator_rejected(self):
        template = WorkflowTemplate(
            id="bad-op",
            name="Bad operator",
            steps=(
                ApprovalStep(
                    id="s0", name="Step 0", order=0, required_roles=("REVIEWER",),
                    auto_approve=True,
                    conditions=(ApprovalCondition("amount", "between", 5),),
                ),
            ),
        )
        with pytest.raises(MalformedTemplateError, match="unknown condition operator"):
            WorkflowTemplateRegistry([template])

    def test_overwrite_replaces_and_warns(self, captured_logs):
        registry = WorkflowTemplateRegistry([make_template(name="First")])
        registry.register(make_template(name="Second"))

        assert registry.get("tpl").name == "Second"
        overwritten = [r for r in captured_logs() if r["message"] == "template_overwritten"]
        assert overwritten[0]["level"] == "WARNING"
        assert overwritten[0]["template_id"] == "tpl"

    def test_registration_logged(self, captured_logs):
        WorkflowTemplateRegistry([make_template()])
        registered = [r for r in captured_logs() if r["message"] == "template_registered"]
        assert registered[0]["step_count"] == 2


class TestLookup:
    def test_unknown_id(self):
        with pytest.raises(TemplateNotFoundError) as exc_info:
            WorkflowTemplateRegistry().get("nope")
        assert exc_info.value.template_id == "nope"

    def test_list_sorted_by_id(self):
        registry = WorkflowTemplateRegistry([make_template("zeta"), make_template("alpha")])
        assert [t.id for t in registry.list()] == ["alpha", "zeta"]

    def test_registries_are_independent(self):
        first = WorkflowTemplateRegistry([make_template()])
        second = WorkflowTemplateRegistry()
        assert first.contains("tpl")
        assert not second.contains("tpl")

    def test_loads_default_configuration(self):
        registry = WorkflowTemplateRegistry(get_workflow_config().templates)
        assert len(registry.list()) == 2
