from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Iterator, List, Optional, Tuple
import logging
import re

import yaml

logger = logging.getLogger(__name__)

# Same shape as the default NAME_REGEX of useradd/groupadd.
_ACCOUNT_NAME_RE = re.compile(r'^[A-Za-z_][A-Za-z0-9_.-]*\$?$')
_ACCOUNT_NAME_MAX = 32

_USER_KEYS = {'name', 'pubkeys', 'access'}
_ACCESS_KEYS = {'hosts', 'role', 'groups', 'seuser'}


class ValidationError(Exception):
    """Raised when the access config is malformed or inconsistent.

    `errors` holds every problem found, in document order.
    """

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__('; '.join(self.errors) if self.errors else 'invalid config')


class Role(Enum):
    BLOCKED = 'blocked'
    SUDOER = 'sudoer'
    NOPASS = 'nopass'
    SUPERUSER = 'superuser'

    @classmethod
    def parse(cls, value: Any) -> 'Role':
        if isinstance(value, str):
            try:
                return cls(value)
            except ValueError:
                pass
        allowed = '|'.join(r.value for r in cls)
        raise ValueError(f"unknown role {value!r} (expected one of {allowed})")


@dataclass(frozen=True)
class AccessEntry:
    hosts: str
    role: Role
    groups: Optional[Tuple[str, ...]] = None
    seuser: Optional[str] = None


@dataclass(frozen=True)
class User:
    name: str
    pubkeys: Tuple[str, ...] = field(default_factory=tuple)
    access: Tuple[AccessEntry, ...] = field(default_factory=tuple)

    @property
    def privileged(self) -> bool:
        return any(e.role is not Role.BLOCKED for e in self.access)


@dataclass(frozen=True)
class SSHConfig:
    users: Tuple[User, ...] = field(default_factory=tuple)

    def entries(self) -> Iterator[Tuple[User, AccessEntry]]:
        """Yield (user, entry) pairs in declaration order."""
        for user in self.users:
            for entry in user.access:
                yield user, entry


def is_account_name(name: Any) -> bool:
    return (
        isinstance(name, str)
        and 0 < len(name) <= _ACCOUNT_NAME_MAX
        and _ACCOUNT_NAME_RE.match(name) is not None
    )


def _parse_groups(raw: Any, where: str, errors: List[str]) -> Optional[Tuple[str, ...]]:
    if raw is None:
        return None
    if not isinstance(raw, (list, tuple)):
        errors.append(f"{where}: groups must be a list of group names")
        return None
    groups = []
    for g in raw:
        if not is_account_name(g):
            errors.append(f"{where}: invalid group name {g!r}")
            continue
        groups.append(g)
    return tuple(groups)


def _parse_entry(raw: Any, where: str, errors: List[str]) -> Optional[AccessEntry]:
    if not isinstance(raw, dict):
        errors.append(f"{where}: access entry must be a mapping")
        return None
    unknown = sorted(map(str, set(raw) - _ACCESS_KEYS))
    if unknown:
        errors.append(f"{where}: unknown keys {', '.join(unknown)}")

    hosts = raw.get('hosts')
    if not isinstance(hosts, str) or not hosts.strip():
        errors.append(f"{where}: hosts must be a non-empty host pattern")
        hosts = None

    role = None
    try:
        role = Role.parse(raw.get('role'))
    except ValueError as exc:
        errors.append(f"{where}: {exc}")

    groups = _parse_groups(raw.get('groups'), where, errors)

    seuser = raw.get('seuser')
    if seuser is not None and (not isinstance(seuser, str) or not seuser.strip()):
        errors.append(f"{where}: seuser must be a non-empty string")
        seuser = None

    if hosts is None or role is None:
        return None
    return AccessEntry(hosts=hosts, role=role, groups=groups, seuser=seuser)


def _parse_user(raw: Any, index: int, errors: List[str]) -> Optional[User]:
    where = f"users[{index}]"
    if not isinstance(raw, dict):
        errors.append(f"{where}: user must be a mapping")
        return None
    unknown = sorted(map(str, set(raw) - _USER_KEYS))
    if unknown:
        errors.append(f"{where}: unknown keys {', '.join(unknown)}")

    name = raw.get('name')
    if not is_account_name(name):
        errors.append(f"{where}: invalid account name {name!r}")
        name = None
    else:
        where = f"user {name!r}"

    raw_keys = raw.get('pubkeys') or []
    pubkeys = []
    if not isinstance(raw_keys, (list, tuple)):
        errors.append(f"{where}: pubkeys must be a list of public keys")
    else:
        for key in raw_keys:
            if not isinstance(key, str) or not key.strip() or '\n' in key.strip():
                errors.append(f"{where}: invalid public key {key!r}")
                continue
            pubkeys.append(key.strip())

    raw_access = raw.get('access') or []
    access = []
    if not isinstance(raw_access, (list, tuple)):
        errors.append(f"{where}: access must be a list of access entries")
    else:
        for i, item in enumerate(raw_access):
            entry = _parse_entry(item, f"{where} access[{i}]", errors)
            if entry is not None:
                access.append(entry)

    if name is None:
        return None
    user = User(name=name, pubkeys=tuple(pubkeys), access=tuple(access))
    if user.privileged and not user.pubkeys:
        errors.append(f"{where}: at least one public key is required for non-blocked access")
    return user


def parse_config(data: Any) -> SSHConfig:
    """Build an `SSHConfig` from a decoded YAML document.

    All problems are collected and raised together as one `ValidationError`.
    """
    if data is None:
        data = []
    if not isinstance(data, (list, tuple)):
        raise ValidationError(["config root must be a list of users"])

    errors: List[str] = []
    users = []
    seen = set()
    for i, raw in enumerate(data):
        user = _parse_user(raw, i, errors)
        if user is None:
            continue
        if user.name in seen:
            errors.append(f"users[{i}]: duplicate user name {user.name!r}")
            continue
        seen.add(user.name)
        users.append(user)

    if errors:
        raise ValidationError(errors)
    logger.debug('Parsed config with %d users', len(users))
    return SSHConfig(users=tuple(users))


def load_config(path: Path) -> SSHConfig:
    path = Path(path)
    try:
        data = yaml.safe_load(path.read_text(encoding='utf-8'))
    except OSError as exc:
        raise ValidationError([f"cannot read {path}: {exc}"]) from exc
    except yaml.YAMLError as exc:
        raise ValidationError([f"cannot parse {path}: {exc}"]) from exc
    return parse_config(data)
