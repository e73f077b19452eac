from typing import List, Tuple
import logging

from .models import (
    AuthorizeKeys,
    CollectAuthorizedKeys,
    EnsureAccount,
    EnsureGroup,
    Phase,
    Plan,
    Play,
    RecordDesiredKeys,
    ReportUnexpectedKeys,
    WriteSudoersFragment,
)
from .privileges import SUDO_RULES, SUDOERS_MODE, VISUDO_CHECK, privilege_for
from ..intent.models import AccessEntry, Role, SSHConfig, User

logger = logging.getLogger(__name__)


def _bootstrap_play() -> Play:
    tasks = []
    for rule in SUDO_RULES:
        tasks.append(EnsureGroup(name=rule.group))
        tasks.append(WriteSudoersFragment(
            group=rule.group,
            rule_text=rule.text,
            path=rule.path,
            validate_cmd=VISUDO_CHECK,
            mode=SUDOERS_MODE,
        ))
    return Play(name="Create groups.", hosts="all", phase=Phase.BOOTSTRAP, tasks=tuple(tasks))


def _account_groups(entry: AccessEntry, implicit: str) -> Tuple[str, ...]:
    groups: List[str] = []
    for g in (entry.groups or ()):
        if g not in groups:
            groups.append(g)
    if implicit and implicit not in groups:
        groups.append(implicit)
    return tuple(groups)


def _account_play(user: User, entry: AccessEntry) -> Play:
    privilege = privilege_for(entry.role)
    tasks = []
    # blocked scopes leave the account untouched
    if privilege.creates_account:
        tasks.append(EnsureAccount(
            name=user.name,
            locked_password=privilege.locked_password,
            groups=_account_groups(entry, privilege.implicit_group),
            uid_zero=privilege.uid_zero,
            non_unique=privilege.non_unique,
            seuser=entry.seuser,
        ))
    return Play(
        name=f"Create accounts for {user.name}.",
        hosts=entry.hosts,
        phase=Phase.ACCOUNTS,
        tasks=tuple(tasks),
    )


def _keys_play(user: User, entry: AccessEntry) -> Play:
    blocked = entry.role is Role.BLOCKED
    op = AuthorizeKeys(
        user=user.name,
        keys="\n".join(user.pubkeys),
        exclusive=True,
        present=not blocked,
        # the account may not exist on every host in a blocked scope
        tolerate_failure=blocked,
    )
    return Play(
        name=f"Authorize keys for {user.name}.",
        hosts=entry.hosts,
        phase=Phase.KEYS,
        tasks=(op,),
    )


def compile_config_to_plan(config: SSHConfig, name: str = 'sshman') -> Plan:
    """Compile an access config into the bootstrap, account and key phases.

    The phases are concatenated in that order. Within the account and key
    phases there is one play per (user, access entry), in declaration order.
    """
    plays = [_bootstrap_play()]
    plays.extend(_account_play(user, entry) for user, entry in config.entries())
    plays.extend(_keys_play(user, entry) for user, entry in config.entries())
    plan = Plan(name=name, plays=tuple(plays))
    logger.debug('Compiled plan %s: %d plays for %d users', plan.name, len(plan.plays), len(config.users))
    return plan


def compile_audit_plan(config: SSHConfig, name: str = 'sshman-audit') -> Plan:
    """Compile a read-only plan that reports authorized keys missing from the config."""
    plays = []
    for user, entry in config.entries():
        if entry.role is Role.BLOCKED:
            continue
        plays.append(Play(
            name=f"Record desired keys for {user.name}.",
            hosts=entry.hosts,
            phase=Phase.AUDIT,
            tasks=(RecordDesiredKeys(user=user.name, keys=user.pubkeys),),
        ))
    plays.append(Play(
        name="Collect authorized keys.",
        hosts="all",
        phase=Phase.AUDIT,
        tasks=(CollectAuthorizedKeys(),),
    ))
    plays.append(Play(
        name="Report unexpected keys.",
        hosts="all",
        phase=Phase.AUDIT,
        tasks=(ReportUnexpectedKeys(),),
    ))
    plan = Plan(name=name, plays=tuple(plays))
    logger.debug('Compiled audit plan %s: %d plays', plan.name, len(plan.plays))
    return plan
