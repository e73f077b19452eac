"""planner package: compiler that turns an `SSHConfig` into a `Plan`.

Public API:
- `compile_config_to_plan(config)`
- `compile_audit_plan(config)`
"""

from .models import (
    AuthorizeKeys,
    CollectAuthorizedKeys,
    CompilationError,
    EnsureAccount,
    EnsureGroup,
    OpType,
    Phase,
    Plan,
    Play,
    RecordDesiredKeys,
    ReportUnexpectedKeys,
    WriteSudoersFragment,
)
from .compiler import compile_audit_plan, compile_config_to_plan

__all__ = [
    "AuthorizeKeys",
    "CollectAuthorizedKeys",
    "CompilationError",
    "EnsureAccount",
    "EnsureGroup",
    "OpType",
    "Phase",
    "Plan",
    "Play",
    "RecordDesiredKeys",
    "ReportUnexpectedKeys",
    "WriteSudoersFragment",
    "compile_audit_plan",
    "compile_config_to_plan",
]
