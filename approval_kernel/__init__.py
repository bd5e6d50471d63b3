"""
Approval Kernel

Domain types, typed errors, structured logging and persistence for a
role-gated, multi-step approval workflow engine:
- Frozen, versionable workflow templates
- Strictly sequential workflow instances with explicit state machines
- Plain-record and relational persistence of instance state
"""

__version__ = "0.1.0"
