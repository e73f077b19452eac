"""Role to privilege mapping.

Every `Role` has exactly one entry in `PRIVILEGES`. Adding a role means adding
its row here; the compiler reads nothing else about roles.
"""
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from ..intent.models import Role
from .models import CompilationError

SUDOER_GROUP = 'sshman-sudoer'
NOPASS_GROUP = 'sshman-nopass'

SUDOERS_DIR = '/etc/sudoers.d'
SUDOERS_MODE = '0440'
VISUDO_CHECK = 'visudo -cf %s'


@dataclass(frozen=True)
class Privilege:
    creates_account: bool
    locked_password: bool = True
    implicit_group: Optional[str] = None
    uid_zero: bool = False
    non_unique: bool = False


PRIVILEGES: Dict[Role, Privilege] = {
    Role.BLOCKED: Privilege(creates_account=False, locked_password=False),
    Role.SUDOER: Privilege(creates_account=True, implicit_group=SUDOER_GROUP),
    Role.NOPASS: Privilege(creates_account=True, implicit_group=NOPASS_GROUP),
    Role.SUPERUSER: Privilege(creates_account=True, implicit_group='root', uid_zero=True, non_unique=True),
}


@dataclass(frozen=True)
class SudoRule:
    group: str
    lines: Tuple[str, ...]

    @property
    def path(self) -> str:
        return f"{SUDOERS_DIR}/{self.group}"

    @property
    def text(self) -> str:
        return ''.join(f"{line}\n" for line in self.lines)


# Sudoers drop-ins installed on every host, in bootstrap order.
SUDO_RULES: Tuple[SudoRule, ...] = (
    SudoRule(SUDOER_GROUP, (
        f"%{SUDOER_GROUP} ALL=(ALL) ALL",
        # sudo prompts for the root password
        f"Defaults:%{SUDOER_GROUP} rootpw",
    )),
    SudoRule(NOPASS_GROUP, (
        f"%{NOPASS_GROUP} ALL=(ALL) NOPASSWD: ALL",
        f"Defaults:%{NOPASS_GROUP} !requiretty",
    )),
)


def privilege_for(role: Role) -> Privilege:
    try:
        return PRIVILEGES[role]
    except KeyError:
        raise CompilationError(f"No privilege mapping for role {role!r}") from None
