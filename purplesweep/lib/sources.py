#!/usr/bin/env python3
"""
Purple Sweep - Host State Sources
Read-only collaborators that feed the privilege-escalation detector:
service inventory, filesystem ACLs, and registry policy values.

Every lookup returns a ``Lookup`` so failures carry their kind
(not found, denied, unavailable, timeout, malformed) instead of being
silently swallowed.
"""

from typing import Any, Dict, List, Optional

from .errors import FailureKind, Lookup, MalformedInput, SweepError
from .logger import get_logger
from .models import AccessControlEntry, AccessRight, ServiceRecord, StartMode
from .powershell import PowerShellRunner, ensure_list, ps_quote

LOCAL_HOSTS = ('', 'localhost', '.', '127.0.0.1')

POLICY_SCOPES = {
    'HKLM': 'HKLM:',
    'HKCU': 'HKCU:',
}


class ServiceInventorySource:
    """Supplies installed services for a host."""

    def is_available(self) -> bool:
        return True

    def list_services(self, host: str = 'localhost') -> Lookup:
        raise NotImplementedError


class AclSource:
    """Supplies the discretionary ACL of a filesystem path."""

    def is_available(self) -> bool:
        return True

    def lookup(self, path: str) -> Lookup:
        raise NotImplementedError

    def __call__(self, path: str) -> Lookup:
        return self.lookup(path)


class PolicySource:
    """Supplies named integer policy values per scope (HKLM / HKCU)."""

    def is_available(self) -> bool:
        return True

    def lookup(self, scope: str, key_name: str) -> Lookup:
        raise NotImplementedError

    def __call__(self, scope: str, key_name: str) -> Lookup:
        return self.lookup(scope, key_name)


# ---------------------------------------------------------------------------
# PowerShell-backed implementations
# ---------------------------------------------------------------------------

class WindowsServiceInventory(ServiceInventorySource):
    """Service inventory from ``Win32_Service`` via CIM."""

    def __init__(self, runner: Optional[PowerShellRunner] = None, logger=None):
        self.logger = logger or get_logger('sources')
        self.runner = runner or PowerShellRunner(logger=self.logger)
        self.item_failures: List[Dict[str, str]] = []

    def is_available(self) -> bool:
        return self.runner.is_available()

    def list_services(self, host: str = 'localhost') -> Lookup:
        script = "Get-CimInstance -ClassName Win32_Service"
        if host.lower() not in LOCAL_HOSTS:
            script += f" -ComputerName {ps_quote(host)}"
        script += " -ErrorAction Stop | Select-Object Name, PathName, StartMode"

        try:
            rows = ensure_list(self.runner.run_json(script, target=host))
        except SweepError as exc:
            self.logger.warning(f"Service inventory unavailable for {host}: {exc}")
            return Lookup.from_error(exc)

        services: List[ServiceRecord] = []
        self.item_failures = []
        for row in rows:
            try:
                services.append(self._to_record(row))
            except MalformedInput as exc:
                self.item_failures.append({'item': str(row)[:120], 'reason': str(exc)})
                self.logger.debug(f"Skipping malformed service row: {exc}")

        self.logger.info(f"Enumerated {len(services)} services on {host} "
                         f"({len(self.item_failures)} skipped)")
        return Lookup.ok(services)

    @staticmethod
    def _to_record(row: Any) -> ServiceRecord:
        if not isinstance(row, dict) or not row.get('Name'):
            raise MalformedInput("service row without a name")
        return ServiceRecord(
            name=str(row['Name']),
            executable_path=str(row.get('PathName') or ''),
            start_mode=StartMode.parse(row.get('StartMode')),
        )


class WindowsAclSource(AclSource):
    """Filesystem ACLs from ``Get-Acl``."""

    def __init__(self, runner: Optional[PowerShellRunner] = None, logger=None):
        self.logger = logger or get_logger('sources')
        self.runner = runner or PowerShellRunner(timeout=30, logger=self.logger)

    def is_available(self) -> bool:
        return self.runner.is_available()

    def lookup(self, path: str) -> Lookup:
        quoted = ps_quote(path)
        script = (
            f"if (-not (Test-Path -LiteralPath {quoted})) {{ throw 'Cannot find path' }}; "
            f"(Get-Acl -LiteralPath {quoted} -ErrorAction Stop).Access "
            "| Select-Object "
            "@{n='Identity';e={$_.IdentityReference.Value}}, "
            "@{n='Rights';e={$_.FileSystemRights.ToString()}}, "
            "@{n='Type';e={$_.AccessControlType.ToString()}}"
        )
        try:
            rows = ensure_list(self.runner.run_json(script, target=path))
        except SweepError as exc:
            return Lookup.from_error(exc)

        entries = [
            AccessControlEntry(
                identity=str(row.get('Identity') or ''),
                rights=AccessRight.parse(row.get('Rights')),
            )
            for row in rows
            if isinstance(row, dict) and str(row.get('Type', 'Allow')).lower() == 'allow'
        ]
        return Lookup.ok(entries)


class WindowsPolicySource(PolicySource):
    """Registry policy values from ``Get-ItemProperty``."""

    def __init__(self, key_path: str, runner: Optional[PowerShellRunner] = None, logger=None):
        self.key_path = key_path.strip('\\')
        self.logger = logger or get_logger('sources')
        self.runner = runner or PowerShellRunner(timeout=15, logger=self.logger)

    def is_available(self) -> bool:
        return self.runner.is_available()

    def lookup(self, scope: str, key_name: str) -> Lookup:
        drive = POLICY_SCOPES.get(scope.upper())
        if drive is None:
            return Lookup.failed(FailureKind.MALFORMED, f"unknown policy scope {scope!r}")

        location = f"{drive}\\{self.key_path}"
        # A missing key or value prints nothing; a denied read must still fail
        script = (
            f"$p = {ps_quote(location)}; "
            "if (Test-Path -LiteralPath $p) { "
            "$v = (Get-ItemProperty -LiteralPath $p -ErrorAction Stop)"
            f".PSObject.Properties[{ps_quote(key_name)}]; "
            "if ($v) { $v.Value } }"
        )
        try:
            raw = self.runner.run(script, target=f"{scope}\\{self.key_path}")
        except SweepError as exc:
            return Lookup.from_error(exc)

        if not raw:
            return Lookup.ok(None)
        try:
            return Lookup.ok(int(raw.splitlines()[0].strip()))
        except ValueError:
            return Lookup.failed(FailureKind.MALFORMED, f"non-integer policy value {raw[:40]!r}")
