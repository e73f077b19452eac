"""Command line entrypoint for sshman.

Run with: python -m sshman {run,write,audit} CONFIG ...

Exit codes:
  0 = playbook written / ansible-playbook succeeded
  1 = playbook could not be written
  2 = invalid config
  3 = compiled plan failed its safety checks
  4 = ansible-playbook could not be started
  any other = exit code of ansible-playbook
"""
import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from dotenv import find_dotenv, load_dotenv

from sshman import __version__
from sshman.core.executor import ExecutionError, Executor
from sshman.core.intent.models import SSHConfig, ValidationError, load_config
from sshman.core.persistence import dump_playbook, export_plan
from sshman.core.planner import CompilationError, Plan, compile_audit_plan, compile_config_to_plan
from sshman.core.safety import audit_is_read_only, permission_sanity_checks, validate_plan
from sshman.settings import load_settings

log = logging.getLogger("sshman.__main__")

EXIT_WRITE_FAILED = 1
EXIT_INVALID_CONFIG = 2
EXIT_UNSAFE_PLAN = 3
EXIT_ENGINE_MISSING = 4


def build_plan(config: SSHConfig, name: str = 'sshman') -> Plan:
    """Compile `config` and refuse plans that fail the safety checks."""
    plan = compile_config_to_plan(config, name=name)
    ok, errs = validate_plan(plan)
    ok2, errs2 = permission_sanity_checks(plan)
    if not (ok and ok2):
        raise CompilationError(f"Plan validation failed: {errs + errs2}")
    return plan


def build_audit_plan(config: SSHConfig, name: str = 'sshman') -> Plan:
    plan = compile_audit_plan(config, name=f"{name}-audit")
    ok, errs = audit_is_read_only(plan)
    if not ok:
        raise CompilationError(f"Audit plan validation failed: {errs}")
    return plan


def _ansible_args(extra: Sequence[str]) -> List[str]:
    extra = list(extra)
    if extra and extra[0] == '--':
        extra = extra[1:]
    return extra


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sshman",
        description="Manage SSH and sudo access on a fleet with Ansible.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="log debug output")
    sub = parser.add_subparsers(dest="action", required=True)

    run = sub.add_parser("run", help="compile the config and apply it with ansible-playbook")
    run.add_argument("config", type=Path, help="path to the access config (YAML)")
    run.add_argument("ansible_args", nargs=argparse.REMAINDER, help="arguments passed to ansible-playbook after --")

    write = sub.add_parser("write", help="compile the config and write the playbook")
    write.add_argument("config", type=Path, help="path to the access config (YAML)")
    write.add_argument("output", help="playbook path, or - for stdout")

    audit = sub.add_parser("audit", help="report authorized keys that are not in the config")
    audit.add_argument("config", type=Path, help="path to the access config (YAML)")
    audit.add_argument("ansible_args", nargs=argparse.REMAINDER, help="arguments passed to ansible-playbook after --")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    load_dotenv(find_dotenv(usecwd=True))
    settings = load_settings()
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else settings.log_level,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        config = load_config(args.config)
    except ValidationError as exc:
        for err in exc.errors:
            log.error("Invalid config: %s", err)
        return EXIT_INVALID_CONFIG

    try:
        if args.action == "audit":
            plan = build_audit_plan(config, settings.plan_name)
        else:
            plan = build_plan(config, settings.plan_name)
    except CompilationError:
        log.exception("Refusing to use the compiled plan")
        return EXIT_UNSAFE_PLAN

    if args.action == "write":
        if args.output == "-":
            sys.stdout.write(dump_playbook(plan))
            return 0
        try:
            export_plan(plan, Path(args.output))
        except OSError as exc:
            log.error("Failed to write playbook to %s: %s", args.output, exc)
            return EXIT_WRITE_FAILED
        return 0

    try:
        executor = Executor(playbook_command=settings.playbook_command)
        return executor.run_plan(plan, _ansible_args(args.ansible_args))
    except ExecutionError as exc:
        log.error("%s", exc)
        return EXIT_ENGINE_MISSING


if __name__ == "__main__":
    raise SystemExit(main())
