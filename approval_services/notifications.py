"""
approval_services.notifications -- Notification routing.

Responsibility:
    Turns a lifecycle event (``NotificationTrigger``) on an instance into
    dispatcher calls: one ``send`` per template rule registered for the
    trigger, carrying the rule's recipients, message template and channels
    together with the instance context.

Architecture position:
    Services -- sits between the instance manager / decision processor and
    the ``NotificationDispatcher`` collaborator.

Invariants enforced:
    - Callers persist state BEFORE routing; a dispatcher never observes
      an event whose state change could still be rolled back.
    - Dispatcher failures are logged with traceback and never propagate:
      a broken gateway cannot fail or roll back a workflow transition.

Failure modes:
    - None raised.  ``notify`` returns the number of rules whose dispatch
      failed.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from approval_kernel.domain.collaborators import NotificationDispatcher
from approval_kernel.domain.workflow import (
    NotificationTrigger,
    WorkflowInstance,
    WorkflowTemplate,
)
from approval_kernel.logging_config import get_logger

logger = get_logger("services.notifications")


class NotificationRouter:
    """Resolves template rules for a trigger and hands them to the dispatcher."""

    def __init__(self, dispatcher: NotificationDispatcher) -> None:
        self._dispatcher = dispatcher

    def notify(
        self,
        trigger: NotificationTrigger,
        template: WorkflowTemplate,
        instance: WorkflowInstance,
        **details: Any,
    ) -> int:
        """Dispatch every rule of ``template`` registered for ``trigger``.

        Args:
            trigger: The lifecycle event.
            template: Template the instance runs against.
            instance: Instance the event happened on (already persisted).
            **details: Event data (``step_id``, ``assignee``, ``decision``,
                ``approver_id``, ``comments``, ``reason``).  None values
                are dropped.

        Returns:
            Number of rules whose dispatch raised.
        """
        base_context: dict[str, Any] = {
            "instance_id": instance.id,
            "application_id": instance.application_id,
            "template_id": template.id,
            "status": instance.status.value,
        }
        base_context.update({k: v for k, v in details.items() if v is not None})

        failures = 0
        for rule in template.rules_for(trigger):
            context = {
                **base_context,
                "template": rule.template,
                "channels": list(rule.channels),
            }
            try:
                self._dispatcher.send(trigger.value, list(rule.recipients), context)
            except Exception:
                failures += 1
                logger.error(
                    "notification_failed",
                    extra={
                        "trigger": trigger.value,
                        "notification_template": rule.template,
                        "recipients": list(rule.recipients),
                        "instance_id": instance.id,
                    },
                    exc_info=True,
                )
            else:
                logger.debug(
                    "notification_dispatched",
                    extra={
                        "trigger": trigger.value,
                        "notification_template": rule.template,
                        "instance_id": instance.id,
                    },
                )
        return failures


class LoggingNotificationDispatcher:
    """NotificationDispatcher that writes each notification to the log.

    Default dispatcher when no gateway is configured.  Also keeps the
    dispatched notifications in ``sent`` for inspection.
    """

    def __init__(self) -> None:
        self._logger = get_logger("notifications.dispatch")
        self.sent: list[tuple[str, tuple[str, ...], dict[str, Any]]] = []

    def send(
        self,
        trigger: str,
        recipients: Sequence[str],
        context: Mapping[str, Any],
    ) -> None:
        self.sent.append((trigger, tuple(recipients), dict(context)))
        self._logger.info(
            "notification_sent",
            extra={
                "trigger": trigger,
                "recipients": list(recipients),
                "notification_template": context.get("template"),
                "channels": context.get("channels"),
                "instance_id": context.get("instance_id"),
            },
        )
