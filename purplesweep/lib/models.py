#!/usr/bin/env python3
"""
Purple Sweep - Data Model
Service, ACL, finding and probe-result records shared by scanners and the
report exporter.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, List, Mapping, Tuple

from .errors import FailureKind


class StartMode(str, Enum):
    AUTO = 'Auto'
    MANUAL = 'Manual'
    DISABLED = 'Disabled'
    UNKNOWN = 'Unknown'

    @classmethod
    def parse(cls, raw: Any) -> 'StartMode':
        """Map Win32_Service StartMode strings (and sc.exe start types)."""
        if isinstance(raw, int):
            return {2: cls.AUTO, 3: cls.MANUAL, 4: cls.DISABLED}.get(raw, cls.UNKNOWN)
        text = str(raw or '').strip().lower()
        if text in ('auto', 'automatic', 'auto_start'):
            return cls.AUTO
        if text in ('manual', 'demand_start'):
            return cls.MANUAL
        if text in ('disabled',):
            return cls.DISABLED
        return cls.UNKNOWN


class AccessRight(str, Enum):
    READ = 'Read'
    WRITE = 'Write'
    MODIFY = 'Modify'
    FULL_CONTROL = 'FullControl'
    EXECUTE = 'Execute'
    OTHER = 'Other'

    @classmethod
    def parse(cls, raw: Any) -> FrozenSet['AccessRight']:
        """Translate .NET FileSystemRights (names or bitmask) into rights."""
        if isinstance(raw, int) or (isinstance(raw, str) and re.fullmatch(r'-?\d+', raw.strip())):
            return cls._from_mask(int(raw))

        rights = set()
        for token in str(raw or '').split(','):
            token = token.strip()
            if not token:
                continue
            rights |= _RIGHT_NAMES.get(token, {cls.OTHER})
        return frozenset(rights or {cls.OTHER})

    @classmethod
    def _from_mask(cls, mask: int) -> FrozenSet['AccessRight']:
        mask &= 0xFFFFFFFF
        rights = set()
        if mask & _GENERIC_ALL or mask & _FULL_CONTROL == _FULL_CONTROL:
            rights.add(cls.FULL_CONTROL)
        elif mask & _MODIFY == _MODIFY:
            rights.add(cls.MODIFY)
        if mask & (_GENERIC_WRITE | _WRITE_DATA):
            rights.add(cls.WRITE)
        if mask & (_GENERIC_READ | _READ_DATA):
            rights.add(cls.READ)
        if mask & (_GENERIC_EXECUTE | _EXECUTE_FILE):
            rights.add(cls.EXECUTE)
        return frozenset(rights or {cls.OTHER})


_GENERIC_ALL = 0x10000000
_GENERIC_EXECUTE = 0x20000000
_GENERIC_WRITE = 0x40000000
_GENERIC_READ = 0x80000000
_FULL_CONTROL = 0x001F01FF
_MODIFY = 0x000301BF
_READ_DATA = 0x00000001
_WRITE_DATA = 0x00000002
_EXECUTE_FILE = 0x00000020

_RIGHT_NAMES = {
    'FullControl': {AccessRight.FULL_CONTROL},
    'Modify': {AccessRight.MODIFY},
    'Write': {AccessRight.WRITE},
    'WriteData': {AccessRight.WRITE},
    'CreateFiles': {AccessRight.WRITE},
    'AppendData': {AccessRight.WRITE},
    'Read': {AccessRight.READ},
    'ReadData': {AccessRight.READ},
    'ReadAndExecute': {AccessRight.READ, AccessRight.EXECUTE},
    'ExecuteFile': {AccessRight.EXECUTE},
    'Traverse': {AccessRight.EXECUTE},
}


@dataclass(frozen=True)
class ServiceRecord:
    """Snapshot of one installed service."""
    name: str
    executable_path: str
    start_mode: StartMode = StartMode.UNKNOWN


@dataclass(frozen=True)
class AccessControlEntry:
    """One allow entry of a discretionary ACL."""
    identity: str
    rights: FrozenSet[AccessRight] = frozenset()

    def grants_any(self, wanted) -> bool:
        return bool(self.rights & frozenset(wanted))


AccessControlList = List[AccessControlEntry]


class FindingCategory(str, Enum):
    UNQUOTED_SERVICE_PATH = 'UnquotedServicePath'
    MODIFIABLE_SERVICE_BINARY = 'ModifiableServiceBinary'
    ALWAYS_INSTALL_ELEVATED = 'AlwaysInstallElevated'


SEVERITY_BY_CATEGORY = {
    FindingCategory.UNQUOTED_SERVICE_PATH: 'MEDIUM',
    FindingCategory.MODIFIABLE_SERVICE_BINARY: 'HIGH',
    FindingCategory.ALWAYS_INSTALL_ELEVATED: 'HIGH',
}


@dataclass(frozen=True)
class Finding:
    """A detected privilege-escalation vector. Never mutated after creation."""
    category: FindingCategory
    subject_name: str
    detail: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self):
        frozen = MappingProxyType({str(k): str(v) for k, v in dict(self.detail).items()})
        object.__setattr__(self, 'detail', frozen)

    @property
    def severity(self) -> str:
        return SEVERITY_BY_CATEGORY[self.category]

    def flag(self, key: str) -> bool:
        """Read a boolean detail field written by the detector."""
        return self.detail.get(key, '').lower() == 'true'

    def to_dict(self) -> Dict[str, Any]:
        return {
            'category': self.category.value,
            'subject': self.subject_name,
            'severity': self.severity,
            'detail': dict(self.detail),
        }


@dataclass(frozen=True)
class EvaluationGap:
    """A subject the detector could not evaluate (not a finding)."""
    rule: str
    subject_name: str
    kind: FailureKind
    reason: str = ''
    path: str = ''

    def to_dict(self) -> Dict[str, str]:
        return {
            'rule': self.rule,
            'subject': self.subject_name,
            'kind': self.kind.value,
            'path': self.path,
            'reason': self.reason,
        }


class Protocol(str, Enum):
    PING = 'Ping'
    REMOTE_MANAGEMENT = 'RemoteManagement'
    FILE_SHARE = 'FileShare'
    REMOTE_PROCEDURE_CALL = 'RemoteProcedureCall'


# Fixed evaluation and reporting order
PROTOCOL_ORDER: Tuple[Protocol, ...] = (
    Protocol.PING,
    Protocol.REMOTE_MANAGEMENT,
    Protocol.FILE_SHARE,
    Protocol.REMOTE_PROCEDURE_CALL,
)


class ProbeStatus(str, Enum):
    SUCCESS = 'Success'
    FAIL = 'Fail'
    SKIPPED = 'Skipped'


@dataclass(frozen=True)
class ProtocolResult:
    protocol: Protocol
    status: ProbeStatus
    reason: str = ''


@dataclass(frozen=True)
class HostProbeResult:
    """Reachability of one host: exactly one result per protocol, fixed order."""
    host_name: str
    results: Tuple[ProtocolResult, ...]

    def __post_init__(self):
        protocols = tuple(r.protocol for r in self.results)
        if protocols != PROTOCOL_ORDER:
            raise ValueError(f"results must cover {PROTOCOL_ORDER} in order, got {protocols}")
        ping = self.results[0].status
        if ping != ProbeStatus.SUCCESS and any(
                r.status != ProbeStatus.SKIPPED for r in self.results[1:]):
            raise ValueError("protocols after a failed ping must be Skipped")

    def status(self, protocol: Protocol) -> ProbeStatus:
        for result in self.results:
            if result.protocol == protocol:
                return result.status
        raise KeyError(protocol)

    @property
    def reachable(self) -> bool:
        return self.results[0].status == ProbeStatus.SUCCESS

    def to_row(self) -> Dict[str, str]:
        row = {'host': self.host_name}
        for result in self.results:
            row[result.protocol.value] = result.status.value
        return row

    def to_dict(self) -> Dict[str, Any]:
        return {
            'host': self.host_name,
            'results': [
                {'protocol': r.protocol.value, 'status': r.status.value, 'reason': r.reason}
                for r in self.results
            ],
        }


def unreachable_result(host_name: str, reason: str = '') -> HostProbeResult:
    """Ping failed: every other protocol is skipped, never attempted."""
    return HostProbeResult(
        host_name=host_name,
        results=(ProtocolResult(Protocol.PING, ProbeStatus.FAIL, reason),) + tuple(
            ProtocolResult(p, ProbeStatus.SKIPPED) for p in PROTOCOL_ORDER[1:]
        ),
    )


@dataclass(frozen=True)
class DirectoryTable:
    """Rows returned by one directory enumeration query."""
    name: str
    rows: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def columns(self) -> List[str]:
        seen: Dict[str, None] = {}
        for row in self.rows:
            for key in row:
                seen.setdefault(key, None)
        return list(seen)
