#!/usr/bin/env python3
"""
Purple Sweep - Privilege-Escalation Scanner

Inspects local service configuration, filesystem ACLs and installer policy
for misconfigurations an unprivileged user could turn into elevation.

Detection rules (mutually independent, each isolated from the others):
  1. Unquoted service path   - auto-start service, path with spaces, not quoted
  2. Modifiable service binary - broad principal holds Modify/FullControl
  3. AlwaysInstallElevated   - raw HKLM / HKCU policy flags, reported together

The scanner only detects and reports; nothing is modified.
"""

from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from ..lib.errors import FailureKind, Lookup, NothingToScan, SourceUnavailable, SweepError
from ..lib.models import (
    AccessRight, EvaluationGap, Finding, FindingCategory, ServiceRecord, StartMode,
)
from ..lib.sources import (
    AclSource, PolicySource, ServiceInventorySource,
    WindowsAclSource, WindowsPolicySource, WindowsServiceInventory,
)
from .base import BaseScanner

# Rights that let a principal replace the binary
WRITE_CLASS_RIGHTS = frozenset({AccessRight.MODIFY, AccessRight.FULL_CONTROL})

AclLookup = Callable[[str], Any]
PolicyLookup = Callable[[str, str], Any]


class PrincipalMatcher:
    """Matches identities against a configurable set of broad principals.

    A pattern containing a backslash (``BUILTIN\\Users``) must equal the
    whole identity; a bare pattern (``Everyone``) also matches the account
    part of a qualified identity (``CONTOSO\\Domain Users``).
    """

    def __init__(self, patterns: Iterable[str]):
        self._qualified = set()
        self._bare = set()
        for pattern in patterns:
            pattern = pattern.strip().lower()
            if not pattern:
                continue
            if '\\' in pattern:
                self._qualified.add(pattern)
            else:
                self._bare.add(pattern)

    def matches(self, identity: str) -> bool:
        ident = (identity or '').strip().lower()
        if not ident:
            return False
        if ident in self._qualified or ident in self._bare:
            return True
        return ident.rsplit('\\', 1)[-1] in self._bare


def is_quoted(path: str) -> bool:
    """True when the executable part of the path is wrapped in quotes."""
    path = path.strip()
    return path.startswith('"') and '"' in path[1:]


def is_unquoted_service_path(path: str) -> bool:
    path = (path or '').strip()
    return ' ' in path and not is_quoted(path)


def executable_path(raw_path: str, marker: str = '.exe') -> Optional[str]:
    """Cut a service command line after the executable marker, unquoted.

    Returns ``None`` when the marker does not occur.
    """
    index = (raw_path or '').lower().find(marker.lower())
    if index < 0:
        return None
    return raw_path[:index + len(marker)].strip().strip('"')


def _as_lookup(result: Any) -> Lookup:
    return result if isinstance(result, Lookup) else Lookup.ok(result)


def _failed_lookup(exc: Exception) -> Lookup:
    """Turn an exception raised by a lookup callable into a failed Lookup."""
    if isinstance(exc, SweepError):
        return Lookup.from_error(exc)
    if isinstance(exc, FileNotFoundError):
        kind = FailureKind.NOT_FOUND
    elif isinstance(exc, PermissionError):
        kind = FailureKind.DENIED
    else:
        kind = FailureKind.UNAVAILABLE
    return Lookup.failed(kind, str(exc) or type(exc).__name__)


class PrivescScanner(BaseScanner):
    """Local privilege-escalation vector detection."""

    SCANNER_NAME = "privesc"
    SCANNER_DESCRIPTION = "Local privilege-escalation misconfiguration detection"

    def __init__(self, session_id: Optional[str] = None, logger=None,
                 service_source: Optional[ServiceInventorySource] = None,
                 acl_source: Optional[AclSource] = None,
                 policy_source: Optional[PolicySource] = None,
                 principals: Optional[Iterable[str]] = None):
        super().__init__(session_id, logger)
        self.marker = self.config.get('privesc.executable_marker', '.exe')
        self.policy_key = self.config.get(
            'privesc.policy_key', 'SOFTWARE\\Policies\\Microsoft\\Windows\\Installer')
        self.policy_value = self.config.get('privesc.policy_value', 'AlwaysInstallElevated')
        self.matcher = PrincipalMatcher(
            principals if principals is not None else self.config.get_broad_principals()
        )

        self.service_source = service_source or WindowsServiceInventory(logger=self.scan_logger)
        self.acl_source = acl_source or WindowsAclSource(logger=self.scan_logger)
        self.policy_source = policy_source or WindowsPolicySource(
            self.policy_key, logger=self.scan_logger)

        self.gaps: List[EvaluationGap] = []
        self.services_scanned = 0

    # -----------------------------------------------------------------------
    # scan()
    # -----------------------------------------------------------------------

    def scan(self, targets: Optional[List[str]] = None, **kwargs) -> Dict:
        """Run all detection rules against the local host.

        Raises ``NothingToScan`` only when no source is reachable at all;
        any narrower failure degrades the affected rule instead.
        """
        self.start_time = datetime.utcnow()
        host = kwargs.get('host', 'localhost')

        sources = (self.service_source, self.acl_source, self.policy_source)
        if not any(source.is_available() for source in sources):
            self.end_time = datetime.utcnow()
            raise NothingToScan("no service, ACL or policy source is available", target=host)

        self.scan_logger.info(f"Starting privilege-escalation scan on {host}")

        services: Optional[List[ServiceRecord]] = None
        if self.service_source.is_available():
            inventory = self.service_source.list_services(host)
            if inventory.succeeded:
                services = list(inventory.value or [])
            else:
                self.mark_degraded('service_inventory',
                                   f"{inventory.failure.value}: {inventory.reason}")
        else:
            self.mark_degraded('service_inventory', 'source not available')

        self.detect(services, self.acl_source, self.policy_source)

        self.end_time = datetime.utcnow()
        if self.session_id:
            self.save_results()

        summary = self.get_summary()
        self.scan_logger.info(
            f"Privilege-escalation scan complete: {summary['findings_count']} findings, "
            f"{len(self.gaps)} unevaluated"
        )
        return {
            'scanner': self.SCANNER_NAME,
            'hostname': host,
            'services_scanned': self.services_scanned,
            'findings': [f.to_dict() for f in self.findings],
            'gaps': [g.to_dict() for g in self.gaps],
            'degraded': list(self.degraded),
            'summary': summary,
        }

    # -----------------------------------------------------------------------
    # detect()
    # -----------------------------------------------------------------------

    def detect(self, services: Optional[Sequence[ServiceRecord]],
               acl_lookup: AclLookup, policy_lookup: PolicyLookup) -> List[Finding]:
        """Apply the three rules and return the findings.

        ``services`` is ``None`` when the inventory could not be read; the
        two service rules are then marked degraded while the policy rule
        still runs. A rule that fails contributes nothing and never aborts
        the others.
        """
        self.findings = []
        self.gaps = []
        self.services_scanned = len(services) if services is not None else 0

        rules = [
            ('unquoted_service_path', lambda: self._check_unquoted_paths(services)),
            ('modifiable_service_binary',
             lambda: self._check_modifiable_binaries(services, acl_lookup)),
            ('always_install_elevated',
             lambda: self._check_always_install_elevated(policy_lookup)),
        ]

        for name, rule in rules:
            try:
                found = rule()
            except SweepError as exc:
                self.mark_degraded(name, exc)
                continue
            except Exception as exc:
                self.mark_degraded(name, f"unexpected error: {exc}")
                continue
            self.findings.extend(found)

        return list(self.findings)

    @staticmethod
    def _require(services: Optional[Sequence[ServiceRecord]]) -> Sequence[ServiceRecord]:
        if services is None:
            raise SourceUnavailable("service inventory unavailable")
        return services

    # --- Rule 1: unquoted service path ---

    def _check_unquoted_paths(self, services) -> List[Finding]:
        findings = []
        for service in self._require(services):
            if service.start_mode != StartMode.AUTO:
                continue
            if not is_unquoted_service_path(service.executable_path):
                continue
            findings.append(Finding(
                category=FindingCategory.UNQUOTED_SERVICE_PATH,
                subject_name=service.name,
                detail={
                    'path': service.executable_path,
                    'start_mode': service.start_mode.value,
                },
            ))
            self.scan_logger.info(f"Unquoted service path: {service.name}")
        return findings

    # --- Rule 2: modifiable service binary ---

    def _check_modifiable_binaries(self, services, acl_lookup: AclLookup) -> List[Finding]:
        rule = 'modifiable_service_binary'
        findings = []
        for service in self._require(services):
            binary = executable_path(service.executable_path, self.marker)
            if not binary:
                self._gap(rule, service.name, FailureKind.MALFORMED,
                          f"no '{self.marker}' in path", service.executable_path)
                continue

            try:
                acl = _as_lookup(acl_lookup(binary))
            except Exception as exc:
                acl = _failed_lookup(exc)

            if not acl.succeeded:
                self._gap(rule, service.name, acl.failure, acl.reason, binary)
                continue

            culprits = [
                entry for entry in (acl.value or [])
                if self.matcher.matches(entry.identity) and entry.grants_any(WRITE_CLASS_RIGHTS)
            ]
            if not culprits:
                continue

            identities = sorted({entry.identity for entry in culprits})
            rights = sorted({r.value for entry in culprits for r in entry.rights & WRITE_CLASS_RIGHTS})
            findings.append(Finding(
                category=FindingCategory.MODIFIABLE_SERVICE_BINARY,
                subject_name=service.name,
                detail={
                    'path': binary,
                    'identities': ', '.join(identities),
                    'rights': ', '.join(rights),
                },
            ))
            self.scan_logger.info(f"Modifiable service binary: {service.name} ({binary})")
        return findings

    # --- Rule 3: AlwaysInstallElevated ---

    def _check_always_install_elevated(self, policy_lookup: PolicyLookup) -> List[Finding]:
        hklm = self._policy_enabled(policy_lookup, 'HKLM')
        hkcu = self._policy_enabled(policy_lookup, 'HKCU')
        return [Finding(
            category=FindingCategory.ALWAYS_INSTALL_ELEVATED,
            subject_name=self.policy_value,
            detail={
                'HKLM_Enabled': str(hklm),
                'HKCU_Enabled': str(hkcu),
                'key': self.policy_key,
            },
        )]

    def _policy_enabled(self, policy_lookup: PolicyLookup, scope: str) -> bool:
        try:
            result = _as_lookup(policy_lookup(scope, self.policy_value))
        except Exception as exc:
            result = _failed_lookup(exc)

        if not result.succeeded:
            # An absent key is the normal "disabled" case
            if result.failure != FailureKind.NOT_FOUND:
                self._gap('always_install_elevated', scope, result.failure,
                          result.reason, f"{scope}\\{self.policy_key}")
            return False
        if result.value is None:
            return False
        try:
            return int(result.value) == 1
        except (TypeError, ValueError):
            self._gap('always_install_elevated', scope, FailureKind.MALFORMED,
                      f"non-integer policy value {result.value!r}",
                      f"{scope}\\{self.policy_key}")
            return False

    def _gap(self, rule: str, subject: str, kind: FailureKind, reason: str, path: str = ''):
        self.gaps.append(EvaluationGap(rule=rule, subject_name=subject, kind=kind,
                                       reason=reason, path=path))
        self.scan_logger.debug(f"{rule}: could not evaluate {subject} ({kind.value}: {reason})")

    def _extra_output(self) -> Dict[str, Any]:
        return {'gaps': [g.to_dict() for g in self.gaps]}
