"""
Tests for workflow configuration loading.

Covers:
- Loader parse_* functions -- YAML dict to frozen domain dataclasses
- get_workflow_config -- default set, custom files, validation failures
- Checksum determinism and the WORKFLOW_CONFIG_TRACE audit log
"""

from __future__ import annotations

import textwrap
from decimal import Decimal

import pytest
import yaml

from approval_config import DEFAULT_CONFIG_PATH, get_workflow_config
from approval_config.loader import (
    compute_checksum,
    load_yaml_file,
    parse_condition,
    parse_notification_rule,
    parse_selector_policy,
    parse_step,
    parse_template,
)
from approval_engines.selector import DEFAULT_SELECTOR_POLICY
from approval_kernel.domain.workflow import ConditionOperator, NotificationTrigger
from approval_kernel.exceptions import MalformedTemplateError


def write_config(tmp_path, text: str):
    path = tmp_path / "workflows.yaml"
    path.write_text(textwrap.dedent(text))
    return path


# =========================================================================
# 1. Parse functions
# =========================================================================


class TestParse:
    def test_parse_condition(self):
        c = parse_condition({"field": "risk_tier", "operator": "in", "value": ["LOW", "MEDIUM"]})
        assert c.operator == ConditionOperator.IN
        assert c.value == ("LOW", "MEDIUM")
        assert c.description == ""

    def test_parse_condition_unknown_operator(self):
        with pytest.raises(ValueError):
            parse_condition({"field": "amount", "operator": "between", "value": 1})

    def test_parse_step_defaults(self):
        step = parse_step({"id": "s", "name": "S", "order": 0, "required_roles": "CEO"})
        assert step.required_roles == ("CEO",)
        assert step.is_required is True
        assert step.auto_approve is False
        assert step.conditions == ()

    def test_parse_step_missing_roles(self):
        with pytest.raises(KeyError):
            parse_step({"id": "s", "name": "S", "order": 0})

    def test_parse_notification_rule(self):
        rule = parse_notification_rule({
            "trigger": "workflow_rejected",
            "recipients": ["applicant"],
            "template": "application-rejected",
            "channels": ["email"],
        })
        assert rule.trigger == NotificationTrigger.WORKFLOW_REJECTED
        assert rule.recipients == ("applicant",)
        assert rule.channels == ("email",)

    def test_parse_template_without_notifications(self):
        template = parse_template({
            "id": "t",
            "name": "T",
            "steps": [{"id": "s", "name": "S", "order": 0, "required_roles": ["CEO"]}],
        })
        assert template.notifications == ()
        assert template.steps[0].id == "s"

    def test_selector_policy_defaults(self):
        assert parse_selector_policy(None) == DEFAULT_SELECTOR_POLICY

    def test_selector_policy_override(self):
        policy = parse_selector_policy({"high_value_threshold": 250000, "high_risk_tiers": ["red"]})
        assert policy.high_value_threshold == Decimal("250000")
        assert policy.high_risk_tiers == frozenset({"RED"})
        assert policy.amount_field == "amount"


# =========================================================================
# 2. Default configuration set
# =========================================================================


class TestDefaultConfiguration:
    def test_ships_both_templates(self):
        config = get_workflow_config()
        assert {t.id for t in config.templates} == {
            "standard-investment-approval",
            "high-value-investment-approval",
        }

    def test_standard_template_shape(self):
        standard = get_workflow_config().template("standard-investment-approval")
        assert [s.id for s in standard.steps] == [
            "initial-review", "risk-assessment", "senior-approval",
        ]
        assert [s.order for s in standard.steps] == [0, 1, 2]
        assert standard.steps[0].required_roles == ("INVESTMENT_ANALYST", "COMPLIANCE_OFFICER")
        assert {r.trigger for r in standard.notifications} == {
            NotificationTrigger.STEP_START,
            NotificationTrigger.WORKFLOW_COMPLETE,
            NotificationTrigger.WORKFLOW_REJECTED,
        }

    def test_high_value_template_shape(self):
        high_value = get_workflow_config().template("high-value-investment-approval")
        assert len(high_value.steps) == 4
        assert high_value.steps[-1].required_roles == ("EXECUTIVE_COMMITTEE", "CEO", "CIO")
        start_rule = high_value.rules_for(NotificationTrigger.STEP_START)[0]
        assert start_rule.recipients == ("assignee", "supervisor")

    def test_selector_policy_loaded(self):
        assert get_workflow_config().selector == DEFAULT_SELECTOR_POLICY

    def test_checksum_is_deterministic(self):
        raw = load_yaml_file(DEFAULT_CONFIG_PATH)
        assert get_workflow_config().checksum == compute_checksum(raw)
        assert get_workflow_config().checksum == get_workflow_config().checksum

    def test_config_trace_logged(self, captured_logs):
        config = get_workflow_config()
        traces = [r for r in captured_logs() if r["message"] == "WORKFLOW_CONFIG_TRACE"]
        assert len(traces) == 1
        assert traces[0]["checksum"] == config.checksum
        assert traces[0]["template_count"] == 2


# =========================================================================
# 3. Custom files and failures
# =========================================================================


class TestCustomConfiguration:
    def test_custom_file(self, tmp_path):
        path = write_config(tmp_path, """
            templates:
              - id: quick
                name: Quick Approval
                steps:
                  - id: only
                    name: Only Step
                    order: 0
                    required_roles: [CEO]
        """)
        config = get_workflow_config(path)
        assert [t.id for t in config.templates] == ["quick"]
        assert config.source == str(path)

    def test_sparse_step_order_rejected(self, tmp_path):
        path = write_config(tmp_path, """
            templates:
              - id: gappy
                name: Gappy
                steps:
                  - {id: a, name: A, order: 0, required_roles: [CEO]}
                  - {id: b, name: B, order: 2, required_roles: [CEO]}
        """)
        with pytest.raises(MalformedTemplateError) as exc_info:
            get_workflow_config(path)
        assert exc_info.value.template_id == "gappy"
        assert exc_info.value.code == "MALFORMED_TEMPLATE"

    def test_duplicate_template_ids_rejected(self, tmp_path):
        step = "{id: a, name: A, order: 0, required_roles: [CEO]}"
        path = write_config(tmp_path, f"""
            templates:
              - {{id: dup, name: One, steps: [{step}]}}
              - {{id: dup, name: Two, steps: [{step}]}}
        """)
        with pytest.raises(MalformedTemplateError):
            get_workflow_config(path)

    def test_validation_warning_logged(self, tmp_path, captured_logs):
        path = write_config(tmp_path, """
            templates:
              - id: t
                name: T
                steps:
                  - id: a
                    name: A
                    order: 0
                    required_roles: [CEO]
                    conditions:
                      - {field: amount, operator: lt, value: 5}
        """)
        get_workflow_config(path)
        warnings = [r for r in captured_logs() if r["message"] == "template_validation_warning"]
        assert warnings and warnings[0]["template_id"] == "t"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_workflow_config(tmp_path / "absent.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("templates: [unclosed")
        with pytest.raises(yaml.YAMLError):
            get_workflow_config(path)

    def test_non_mapping_document(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ValueError):
            load_yaml_file(path)
