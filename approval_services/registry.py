"""
approval_services.registry -- Workflow template registry.

Responsibility:
    Holds the set of registered ``WorkflowTemplate`` objects and gives
    id-based lookup.  Every template is validated on registration, so a
    template that can be fetched is always structurally sound.

Architecture position:
    Services -- stateful, owns a template map.  Injected into the instance
    manager and the engine facade; there is no process-global registry.

Invariants enforced:
    - Only templates passing ``validate_template`` are stored.
    - Templates are frozen and handed out by reference.
    - Re-registering an id replaces the old template; instances already
      started keep running against the template id they were created with.

Failure modes:
    - MalformedTemplateError from ``register``.
    - TemplateNotFoundError from ``get``.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable

from approval_config.validator import validate_template
from approval_kernel.domain.workflow import WorkflowTemplate
from approval_kernel.exceptions import MalformedTemplateError, TemplateNotFoundError
from approval_kernel.logging_config import get_logger

logger = get_logger("services.registry")


class WorkflowTemplateRegistry:
    """Validated, id-keyed template store."""

    def __init__(self, templates: Iterable[WorkflowTemplate] = ()) -> None:
        self._templates: dict[str, WorkflowTemplate] = {}
        self._lock = threading.Lock()
        for template in templates:
            self.register(template)

    def register(self, template: WorkflowTemplate) -> None:
        """Validate and store ``template``.

        Raises:
            MalformedTemplateError: If validation reports any error.
        """
        result = validate_template(template)
        if not result.is_valid:
            logger.warning(
                "template_rejected",
                extra={"template_id": template.id, "errors": result.errors},
            )
            raise MalformedTemplateError(template.id, result.errors)

        with self._lock:
            replaced = template.id in self._templates
            self._templates[template.id] = template

        if replaced:
            logger.warning("template_overwritten", extra={"template_id": template.id})
        logger.info(
            "template_registered",
            extra={
                "template_id": template.id,
                "step_count": len(template.steps),
                "warnings": result.warnings,
            },
        )

    def get(self, template_id: str) -> WorkflowTemplate:
        with self._lock:
            template = self._templates.get(template_id)
        if template is None:
            raise TemplateNotFoundError(template_id)
        return template

    def contains(self, template_id: str) -> bool:
        with self._lock:
            return template_id in self._templates

    def __contains__(self, template_id: object) -> bool:
        return isinstance(template_id, str) and self.contains(template_id)

    def list(self) -> list[WorkflowTemplate]:
        """All templates, sorted by id."""
        with self._lock:
            return sorted(self._templates.values(), key=lambda t: t.id)
