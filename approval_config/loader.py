"""
Configuration Loader (``approval_config.loader``).

Responsibility
--------------
Loads a YAML workflow configuration file and parses it into the typed
kernel dataclasses (``WorkflowTemplate`` and friends) plus the engine's
``SelectorPolicy``.  The single public entry point for runtime config is
``approval_config.get_workflow_config()``.

Architecture position
---------------------
**Config layer** -- infrastructure tooling.  Depends on kernel domain
types and the selector policy from ``approval_engines``; nothing in the
kernel or engines imports from here.

Invariants enforced
-------------------
* All parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; no silent defaults for required fields.
* Every parsed object is a frozen dataclass.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the raw
  configuration for identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Unknown operator / trigger  -> ``ValueError`` from the enum constructor.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml

from approval_engines.selector import SelectorPolicy
from approval_kernel.domain.workflow import (
    ApprovalCondition,
    ApprovalStep,
    ConditionOperator,
    NotificationRule,
    NotificationTrigger,
    WorkflowTemplate,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top-level document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top-level YAML document must be a mapping")
    return data


def _as_tuple(value: Any) -> tuple:
    if value is None:
        return ()
    if isinstance(value, (list, tuple)):
        return tuple(value)
    return (value,)


def parse_condition(data: dict[str, Any]) -> ApprovalCondition:
    """Parse an ``ApprovalCondition``.  ``in`` values are kept as tuples."""
    operator = ConditionOperator(data["operator"])
    value = data["value"]
    if operator == ConditionOperator.IN and isinstance(value, list):
        value = tuple(value)
    return ApprovalCondition(
        field=data["field"],
        operator=operator,
        value=value,
        description=data.get("description", ""),
    )


def parse_step(data: dict[str, Any]) -> ApprovalStep:
    """Parse an ``ApprovalStep`` from a dict."""
    return ApprovalStep(
        id=data["id"],
        name=data["name"],
        order=int(data["order"]),
        required_roles=_as_tuple(data["required_roles"]),
        is_required=bool(data.get("is_required", True)),
        auto_approve=bool(data.get("auto_approve", False)),
        conditions=tuple(parse_condition(c) for c in data.get("conditions") or ()),
        description=data.get("description", ""),
    )


def parse_notification_rule(data: dict[str, Any]) -> NotificationRule:
    """Parse a ``NotificationRule`` from a dict."""
    return NotificationRule(
        trigger=NotificationTrigger(data["trigger"]),
        recipients=_as_tuple(data["recipients"]),
        template=data.get("template", ""),
        channels=_as_tuple(data.get("channels")),
    )


def parse_template(data: dict[str, Any]) -> WorkflowTemplate:
    """
    Parse a ``WorkflowTemplate`` from a dict.

    Structural rules (dense step order, roles, auto-approve conditions)
    are NOT checked here; see ``approval_config.validator``.
    """
    return WorkflowTemplate(
        id=data["id"],
        name=data["name"],
        description=data.get("description", ""),
        steps=tuple(parse_step(s) for s in data["steps"]),
        notifications=tuple(
            parse_notification_rule(n) for n in data.get("notifications") or ()
        ),
    )


def parse_selector_policy(data: dict[str, Any] | None) -> SelectorPolicy:
    """Parse a ``SelectorPolicy``; absent keys keep the engine defaults."""
    if not data:
        return SelectorPolicy()
    kwargs: dict[str, Any] = {}
    if "high_value_threshold" in data:
        kwargs["high_value_threshold"] = Decimal(str(data["high_value_threshold"]))
    if "high_risk_tiers" in data:
        kwargs["high_risk_tiers"] = frozenset(
            str(t).upper() for t in data["high_risk_tiers"]
        )
    for key in (
        "amount_field",
        "risk_tier_field",
        "standard_template_id",
        "enhanced_template_id",
    ):
        if key in data:
            kwargs[key] = str(data[key])
    return SelectorPolicy(**kwargs)


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
