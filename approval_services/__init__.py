"""
Module: approval_services
Responsibility:
    Stateful orchestration of approval workflows: template registry,
    instance lifecycle, decision processing, notification routing and the
    ``ApprovalWorkflowEngine`` facade.

Architecture position:
    Services -- outermost layer.  May import approval_kernel,
    approval_engines and approval_config.
"""

from approval_services.decision_processor import DecisionProcessor, parse_decision
from approval_services.directory import InMemoryApplicationSource, StaticApproverDirectory
from approval_services.instance_manager import WorkflowInstanceManager
from approval_services.locking import InstanceLocks
from approval_services.notifications import LoggingNotificationDispatcher, NotificationRouter
from approval_services.registry import WorkflowTemplateRegistry
from approval_services.workflow_engine import ApprovalWorkflowEngine

__all__ = [
    "ApprovalWorkflowEngine",
    "DecisionProcessor",
    "InMemoryApplicationSource",
    "InstanceLocks",
    "LoggingNotificationDispatcher",
    "NotificationRouter",
    "StaticApproverDirectory",
    "WorkflowInstanceManager",
    "WorkflowTemplateRegistry",
    "parse_decision",
]
