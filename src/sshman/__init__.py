"""sshman: compile SSH and sudo access rules into an Ansible playbook.

Public API:
- `load_config(path)` / `parse_config(data)`
- `compile_config_to_plan(config)`
- `dump_playbook(plan)` / `export_plan(plan, path)`
- `Executor(...).run_plan(plan)`
"""

__version__ = "4.0.2"

from .core.intent.models import SSHConfig, ValidationError, load_config, parse_config
from .core.planner import CompilationError, Plan, compile_audit_plan, compile_config_to_plan
from .core.persistence import dump_playbook, export_plan
from .core.executor import ExecutionError, Executor

__all__ = [
    "CompilationError",
    "ExecutionError",
    "Executor",
    "Plan",
    "SSHConfig",
    "ValidationError",
    "compile_audit_plan",
    "compile_config_to_plan",
    "dump_playbook",
    "export_plan",
    "load_config",
    "parse_config",
]
