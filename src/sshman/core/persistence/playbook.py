"""Render a `Plan` as an Ansible playbook.

Module arguments follow the schemas of `ansible.builtin.group`, `copy`, `user`,
`ansible.posix.authorized_key` and friends. Boolean module arguments are
written as the strings 'true'/'false'.
"""
from pathlib import Path
from typing import Any, Dict, List
import json
import logging
import os
import tempfile

import yaml

from ..planner.models import (
    AuthorizeKeys,
    CollectAuthorizedKeys,
    CompilationError,
    EnsureAccount,
    EnsureGroup,
    Operation,
    Phase,
    Plan,
    Play,
    RecordDesiredKeys,
    ReportUnexpectedKeys,
    WriteSudoersFragment,
)

logger = logging.getLogger(__name__)

# Hash value that matches no password.
LOCKED_PASSWORD = '*'


def _flag(value: bool) -> str:
    return 'true' if value else 'false'


def _ensure_group(op: EnsureGroup) -> List[Dict[str, Any]]:
    return [{
        "name": f"Create group {op.name}.",
        "ansible.builtin.group": {"name": op.name},
    }]


def _write_sudoers(op: WriteSudoersFragment) -> List[Dict[str, Any]]:
    return [{
        "name": f"Set sudo permissions for {op.group}.",
        "ansible.builtin.copy": {
            "content": op.rule_text,
            "dest": op.path,
            "mode": op.mode,
            "validate": op.validate_cmd,
        },
    }]


def _ensure_account(op: EnsureAccount) -> List[Dict[str, Any]]:
    args: Dict[str, Any] = {"name": op.name}
    if op.locked_password:
        args["password"] = LOCKED_PASSWORD
    if op.groups:
        args["groups"] = list(op.groups)
        args["append"] = _flag(True)
    if op.uid_zero:
        args["uid"] = '0'
    if op.non_unique:
        args["non_unique"] = _flag(True)
    if op.seuser is not None:
        args["seuser"] = op.seuser
    title = f"Create root alias {op.name}." if op.uid_zero else f"Create account {op.name}."
    return [{"name": title, "ansible.builtin.user": args}]


def _authorize_keys(op: AuthorizeKeys) -> List[Dict[str, Any]]:
    task: Dict[str, Any] = {
        "name": "Authorize public keys." if op.present else "Revoke public keys.",
        "ansible.posix.authorized_key": {
            "user": op.user,
            "key": op.keys,
            "exclusive": _flag(op.exclusive),
            "state": "present" if op.present else "absent",
        },
    }
    if op.tolerate_failure:
        task["ignore_errors"] = True
    return [task]


def _record_desired_keys(op: RecordDesiredKeys) -> List[Dict[str, Any]]:
    literal = json.dumps({op.user: list(op.keys)})
    return [{
        "name": f"Record desired keys for {op.user}.",
        "ansible.builtin.set_fact": {
            "desired_pubkeys": f"{{{{ desired_pubkeys | default({{}}) | combine({literal}) }}}}",
        },
    }]


def _collect_authorized_keys(op: CollectAuthorizedKeys) -> List[Dict[str, Any]]:
    return [
        {
            "name": "Read the passwd database.",
            "ansible.builtin.getent": {"database": "passwd"},
        },
        {
            # passwd entries become [password, uid, gid, gecos, home, shell, name]
            "name": "Append account names to passwd entries.",
            "ansible.builtin.set_fact": {
                "getent_passwd": "{{ getent_passwd | combine({item.key: item.value + [item.key]}) }}",
            },
            "loop": "{{ getent_passwd | dict2items }}",
        },
        {
            "name": "Read authorized_keys of every account.",
            "ansible.builtin.slurp": {"src": "{{ item[4] }}/.ssh/authorized_keys"},
            "loop": "{{ getent_passwd.values() | list }}",
            "register": "pubkey_files",
            "ignore_errors": True,
            "become": True,
        },
        {
            "name": "Record actual keys.",
            "ansible.builtin.set_fact": {
                "actual_pubkeys": (
                    "{{ actual_pubkeys | default({}) | combine({item.item[-1]: "
                    "item.content | b64decode | trim | split('\\n') | reject('equalto', '') | list}) }}"
                ),
            },
            "loop": "{{ pubkey_files.results }}",
            "when": "item.content is defined",
        },
    ]


def _report_unexpected_keys(op: ReportUnexpectedKeys) -> List[Dict[str, Any]]:
    return [
        {
            "name": "Compute keys missing from the config.",
            "ansible.builtin.set_fact": {
                "_pubkey_diff": (
                    "{{ _pubkey_diff | default({}) | combine({item.key: item.value | "
                    "reject('in', (desired_pubkeys | default({})).get(item.key, [])) | list}) }}"
                ),
            },
            "loop": "{{ actual_pubkeys | default({}) | dict2items }}",
        },
        {
            "name": "Keep accounts with unexpected keys.",
            "ansible.builtin.set_fact": {
                "pubkey_diff": "{{ pubkey_diff | default({}) | combine({item.key: item.value}) }}",
            },
            "loop": "{{ _pubkey_diff | default({}) | dict2items }}",
            "when": "item.value | length > 0",
        },
        {
            "name": "Report unexpected keys.",
            "ansible.builtin.debug": {"msg": "Unexpected keys for {{ item.key }}: {{ item.value }}"},
            "loop": "{{ pubkey_diff | default({}) | dict2items }}",
            "failed_when": "pubkey_diff | default({}) | length > 0",
        },
    ]


_RENDERERS = {
    EnsureGroup: _ensure_group,
    WriteSudoersFragment: _write_sudoers,
    EnsureAccount: _ensure_account,
    AuthorizeKeys: _authorize_keys,
    RecordDesiredKeys: _record_desired_keys,
    CollectAuthorizedKeys: _collect_authorized_keys,
    ReportUnexpectedKeys: _report_unexpected_keys,
}


def operation_to_tasks(op: Operation) -> List[Dict[str, Any]]:
    render = _RENDERERS.get(type(op))
    if render is None:
        raise CompilationError(f"No playbook rendering for operation {op!r}")
    return render(op)


def play_to_dict(play: Play) -> Dict[str, Any]:
    tasks = []
    for op in play.tasks:
        tasks.extend(operation_to_tasks(op))
    return {
        "name": play.name,
        "hosts": play.hosts,
        "gather_facts": False,
        # audit plays only escalate for the tasks that need it
        "become": play.phase is not Phase.AUDIT,
        "tasks": tasks,
    }


def plan_to_playbook(plan: Plan) -> List[Dict[str, Any]]:
    return [play_to_dict(p) for p in plan.plays]


class _PlaybookDumper(yaml.SafeDumper):
    pass


def _represent_str(dumper: yaml.SafeDumper, data: str):
    if '\n' in data:
        return dumper.represent_scalar('tag:yaml.org,2002:str', data, style='|')
    return dumper.represent_scalar('tag:yaml.org,2002:str', data)


_PlaybookDumper.add_representer(str, _represent_str)


def dump_playbook(plan: Plan) -> str:
    return yaml.dump(
        plan_to_playbook(plan),
        Dumper=_PlaybookDumper,
        sort_keys=False,
        default_flow_style=False,
        allow_unicode=True,
        width=4096,
    )


def export_plan(plan: Plan, path: Path) -> Path:
    """Write the playbook for `plan` to `path`.

    The file is written next to `path` and renamed into place, so `path` is
    either fully written or left as it was.
    """
    path = Path(path)
    text = dump_playbook(plan)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", suffix='.tmp', dir=path.parent)
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            f.write(text)
        os.replace(tmp, path)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise
    logger.info('Wrote plan %s (%d plays) to %s', plan.name, len(plan.plays), path)
    return path
