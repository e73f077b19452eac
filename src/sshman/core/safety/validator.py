from typing import List, Tuple

from ..planner.models import (
    MUTATING_OPS,
    AuthorizeKeys,
    EnsureAccount,
    OpType,
    Phase,
    Plan,
    WriteSudoersFragment,
)
from ..planner.privileges import SUDO_RULES, SUDOERS_DIR

_PHASE_ORDER = [Phase.BOOTSTRAP, Phase.ACCOUNTS, Phase.KEYS]

_PHASE_OPS = {
    Phase.BOOTSTRAP: {OpType.ENSURE_GROUP, OpType.WRITE_SUDOERS_FRAGMENT},
    Phase.ACCOUNTS: {OpType.ENSURE_ACCOUNT},
    Phase.KEYS: {OpType.AUTHORIZE_KEYS},
}


def validate_plan(plan: Plan) -> Tuple[bool, List[str]]:
    """Check the structure of a provisioning plan.

    Returns (ok, errors).
    """
    errors = []

    if not plan.plays:
        errors.append("Plan has no plays")
        return False, errors

    if any(p.phase is Phase.AUDIT for p in plan.plays):
        errors.append("Provisioning plan contains audit plays")
        return False, errors

    # Phases must appear in order, each as one contiguous run
    last = -1
    for p in plan.plays:
        idx = _PHASE_ORDER.index(p.phase)
        if idx < last:
            errors.append(f"Play {p.name!r} ({p.phase.value}) appears after a later phase")
        last = max(last, idx)

    bootstrap = plan.plays_in(Phase.BOOTSTRAP)
    if len(bootstrap) != 1:
        errors.append(f"Expected exactly one bootstrap play, found {len(bootstrap)}")
    elif bootstrap[0].hosts != 'all':
        errors.append("Bootstrap play must target all hosts")
    else:
        groups = [op.name for op in bootstrap[0].tasks if op.type is OpType.ENSURE_GROUP]
        if groups != [r.group for r in SUDO_RULES]:
            errors.append(f"Bootstrap play creates groups {groups}")

    for p in plan.plays:
        for op in p.tasks:
            if op.type not in _PHASE_OPS[p.phase]:
                errors.append(f"Operation {op.type.value} not allowed in {p.phase.value} play {p.name!r}")

    accounts = plan.plays_in(Phase.ACCOUNTS)
    keys = plan.plays_in(Phase.KEYS)
    if len(accounts) != len(keys):
        errors.append(f"{len(accounts)} account plays but {len(keys)} key plays")
    for p in accounts:
        if len(p.tasks) > 1:
            errors.append(f"Account play {p.name!r} has {len(p.tasks)} operations")
    for p in keys:
        if len(p.tasks) != 1:
            errors.append(f"Key play {p.name!r} has {len(p.tasks)} operations")

    # Each account play pairs with the key play at the same position
    for a, k in zip(accounts, keys):
        if a.hosts != k.hosts:
            errors.append(f"Key play {k.name!r} targets {k.hosts!r}, account play targets {a.hosts!r}")
            continue
        if not k.tasks or not isinstance(k.tasks[0], AuthorizeKeys):
            continue
        authorize = k.tasks[0]
        if not a.tasks and authorize.present:
            errors.append(f"Key play {k.name!r} grants keys where no account is managed")
        if a.tasks and not authorize.present:
            errors.append(f"Key play {k.name!r} revokes keys where an account is managed")

    return (len(errors) == 0), errors


def audit_is_read_only(plan: Plan) -> Tuple[bool, List[str]]:
    errors = []
    for p, op in plan.operations():
        if op.type in MUTATING_OPS:
            errors.append(f"Audit play {p.name!r} contains {op.type.value}")
    return (len(errors) == 0), errors


def permission_sanity_checks(plan: Plan) -> Tuple[bool, List[str]]:
    """Perform privilege sanity checks on a plan's operations.

    Returns (ok, errors).
    """
    errors = []
    for p, op in plan.operations():
        if isinstance(op, WriteSudoersFragment):
            if not op.path.startswith(SUDOERS_DIR + '/'):
                errors.append(f"Sudoers fragment for {op.group} written outside {SUDOERS_DIR}: {op.path}")
            if op.mode not in ('0440', '440'):
                errors.append(f"Sudoers fragment {op.path} has mode {op.mode}")
            if '%s' not in op.validate_cmd:
                errors.append(f"Sudoers fragment {op.path} is not validated before install")
        elif isinstance(op, EnsureAccount):
            if not op.locked_password:
                errors.append(f"Account {op.name} on {p.hosts!r} keeps a usable password")
            if op.uid_zero and 'root' not in op.groups:
                errors.append(f"Account {op.name} gets uid 0 without the root group")
            if op.uid_zero and not op.non_unique:
                errors.append(f"Account {op.name} gets uid 0 without allowing a non-unique uid")
        elif isinstance(op, AuthorizeKeys):
            if op.present and not op.keys.strip():
                errors.append(f"Keys for {op.user} on {p.hosts!r} are empty")
            if op.present and op.tolerate_failure:
                errors.append(f"Key grant for {op.user} on {p.hosts!r} ignores failures")
            if not op.present and not op.tolerate_failure:
                errors.append(f"Key revocation for {op.user} on {p.hosts!r} aborts on missing accounts")
            if not op.exclusive:
                errors.append(f"Keys for {op.user} on {p.hosts!r} are not exclusive")
    return (len(errors) == 0), errors
