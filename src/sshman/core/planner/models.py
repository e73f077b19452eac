from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, ClassVar, Dict, Iterator, Optional, Tuple, Union


class CompilationError(Exception):
    """Raised when the compiler reaches a state a validated config cannot produce."""


class Phase(Enum):
    BOOTSTRAP = 'bootstrap'
    ACCOUNTS = 'accounts'
    KEYS = 'keys'
    AUDIT = 'audit'


class OpType(Enum):
    ENSURE_GROUP = 'ensure_group'
    WRITE_SUDOERS_FRAGMENT = 'write_sudoers_fragment'
    ENSURE_ACCOUNT = 'ensure_account'
    AUTHORIZE_KEYS = 'authorize_keys'
    RECORD_DESIRED_KEYS = 'record_desired_keys'
    COLLECT_AUTHORIZED_KEYS = 'collect_authorized_keys'
    REPORT_UNEXPECTED_KEYS = 'report_unexpected_keys'


@dataclass(frozen=True)
class EnsureGroup:
    name: str
    type: ClassVar[OpType] = OpType.ENSURE_GROUP


@dataclass(frozen=True)
class WriteSudoersFragment:
    group: str
    rule_text: str
    path: str
    validate_cmd: str
    mode: str
    type: ClassVar[OpType] = OpType.WRITE_SUDOERS_FRAGMENT


@dataclass(frozen=True)
class EnsureAccount:
    name: str
    locked_password: bool = True
    groups: Tuple[str, ...] = ()
    uid_zero: bool = False
    non_unique: bool = False
    seuser: Optional[str] = None
    type: ClassVar[OpType] = OpType.ENSURE_ACCOUNT


@dataclass(frozen=True)
class AuthorizeKeys:
    user: str
    keys: str
    exclusive: bool = True
    present: bool = True
    tolerate_failure: bool = False
    type: ClassVar[OpType] = OpType.AUTHORIZE_KEYS


@dataclass(frozen=True)
class RecordDesiredKeys:
    user: str
    keys: Tuple[str, ...]
    type: ClassVar[OpType] = OpType.RECORD_DESIRED_KEYS


@dataclass(frozen=True)
class CollectAuthorizedKeys:
    type: ClassVar[OpType] = OpType.COLLECT_AUTHORIZED_KEYS


@dataclass(frozen=True)
class ReportUnexpectedKeys:
    type: ClassVar[OpType] = OpType.REPORT_UNEXPECTED_KEYS


Operation = Union[
    EnsureGroup,
    WriteSudoersFragment,
    EnsureAccount,
    AuthorizeKeys,
    RecordDesiredKeys,
    CollectAuthorizedKeys,
    ReportUnexpectedKeys,
]

# Operations that change state on the target hosts.
MUTATING_OPS = frozenset({
    OpType.ENSURE_GROUP,
    OpType.WRITE_SUDOERS_FRAGMENT,
    OpType.ENSURE_ACCOUNT,
    OpType.AUTHORIZE_KEYS,
})


@dataclass(frozen=True)
class Play:
    name: str
    hosts: str
    phase: Phase
    tasks: Tuple[Operation, ...] = ()


@dataclass(frozen=True)
class Plan:
    name: str
    plays: Tuple[Play, ...] = field(default_factory=tuple)

    def operations(self) -> Iterator[Tuple[Play, Operation]]:
        for play in self.plays:
            for op in play.tasks:
                yield play, op

    def plays_in(self, phase: Phase) -> Tuple[Play, ...]:
        return tuple(p for p in self.plays if p.phase is phase)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "plays": [
                {
                    "name": p.name,
                    "hosts": p.hosts,
                    "phase": p.phase.value,
                    "tasks": [
                        {"type": op.type.value, "payload": asdict(op)}
                        for op in p.tasks
                    ],
                }
                for p in self.plays
            ],
        }
