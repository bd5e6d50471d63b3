"""
approval_config -- single public entrypoint for workflow configuration.

Responsibility:
    Provides the ONLY way to obtain workflow templates and the template
    selection policy at runtime through ``get_workflow_config()``.  YAML
    loading and validation are internal tooling.

Architecture position:
    Configuration -- YAML-driven template definitions, load-time
    validation.  Sits above ``approval_kernel`` / ``approval_engines`` and
    below ``approval_services``.  The kernel MUST NEVER import from
    ``approval_config``.

Invariants enforced:
    - Every returned template has passed ``validate_template``.
    - Deterministic: the same YAML always produces the same checksum.

Failure modes:
    - ``FileNotFoundError`` / ``yaml.YAMLError`` -- unreadable file.
    - ``KeyError`` / ``ValueError`` -- missing keys or unknown enum values.
    - ``MalformedTemplateError`` -- a template failed validation.

Audit relevance:
    Every successful call emits a ``WORKFLOW_CONFIG_TRACE`` log entry with
    the source path, checksum and template ids.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from approval_config.loader import (
    compute_checksum,
    load_yaml_file,
    parse_selector_policy,
    parse_template,
)
from approval_config.validator import TemplateValidationResult, validate_template
from approval_engines.selector import SelectorPolicy
from approval_kernel.domain.workflow import WorkflowTemplate
from approval_kernel.exceptions import MalformedTemplateError
from approval_kernel.logging_config import get_logger

_logger = get_logger("config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


@dataclass(frozen=True)
class WorkflowConfiguration:
    """Validated templates plus the selector policy they were loaded with."""

    templates: tuple[WorkflowTemplate, ...]
    selector: SelectorPolicy
    checksum: str
    source: str = ""

    def template(self, template_id: str) -> WorkflowTemplate | None:
        for t in self.templates:
            if t.id == template_id:
                return t
        return None


def get_workflow_config(path: Path | str | None = None) -> WorkflowConfiguration:
    """The ONLY public configuration entrypoint.

    Args:
        path: YAML file to load.  Defaults to ``approval_config/sets/default.yaml``.

    Returns:
        WorkflowConfiguration with every template validated.

    Raises:
        MalformedTemplateError: If any template fails validation.
    """
    source = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    raw = load_yaml_file(source)

    templates: list[WorkflowTemplate] = []
    for template_data in raw.get("templates") or ():
        template = parse_template(template_data)
        result = validate_template(template)
        if not result.is_valid:
            raise MalformedTemplateError(template.id, result.errors)
        for warning in result.warnings:
            _logger.warning(
                "template_validation_warning",
                extra={"template_id": template.id, "warning": warning},
            )
        templates.append(template)

    ids = [t.id for t in templates]
    duplicates = sorted({i for i in ids if ids.count(i) > 1})
    if duplicates:
        raise MalformedTemplateError(
            duplicates[0], [f"template id defined more than once in {source}"],
        )

    config = WorkflowConfiguration(
        templates=tuple(templates),
        selector=parse_selector_policy(raw.get("selector")),
        checksum=compute_checksum(raw),
        source=str(source),
    )

    _logger.info(
        "WORKFLOW_CONFIG_TRACE",
        extra={
            "trace_type": "WORKFLOW_CONFIG_TRACE",
            "source": config.source,
            "checksum": config.checksum,
            "template_ids": ids,
            "template_count": len(templates),
        },
    )
    return config


__all__ = [
    "DEFAULT_CONFIG_PATH",
    "TemplateValidationResult",
    "WorkflowConfiguration",
    "get_workflow_config",
    "validate_template",
]
