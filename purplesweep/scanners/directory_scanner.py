#!/usr/bin/env python3
"""
Purple Sweep - Directory Enumeration Scanner

Read-only Active Directory enumeration using the PowerShell AD cmdlets.
Each query becomes a table (users, groups, computers) handed to the
report exporter; enabled computer objects double as the default host list
for the reachability probe.

Requires: domain-joined Windows host with RSAT / AD PowerShell module.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from ..lib.errors import SourceUnavailable, SweepError
from ..lib.models import DirectoryTable
from ..lib.powershell import PowerShellRunner, ensure_list
from .base import BaseScanner


class DirectoryScanner(BaseScanner):
    """Active Directory object enumeration."""

    SCANNER_NAME = "directory"
    SCANNER_DESCRIPTION = "Active Directory object enumeration"

    # table -> (cmdlet, properties)
    QUERIES = {
        'users': ('Get-ADUser', [
            'SamAccountName', 'Name', 'Enabled', 'LastLogonDate',
            'PasswordLastSet', 'PasswordNeverExpires', 'AdminCount',
        ]),
        'groups': ('Get-ADGroup', [
            'SamAccountName', 'Name', 'GroupCategory', 'GroupScope', 'AdminCount',
        ]),
        'computers': ('Get-ADComputer', [
            'Name', 'DNSHostName', 'Enabled', 'OperatingSystem',
            'OperatingSystemVersion', 'LastLogonDate',
        ]),
    }

    def __init__(self, session_id: Optional[str] = None, logger=None,
                 runner: Optional[PowerShellRunner] = None):
        super().__init__(session_id, logger)
        self.runner = runner or PowerShellRunner(
            timeout=self.config.get('directory.timeout', 180), logger=self.scan_logger)
        self.tables: Dict[str, DirectoryTable] = {}

    def _check_ad_module(self) -> bool:
        """Return True if the ActiveDirectory PS module is available."""
        try:
            result = self.runner.run("Import-Module ActiveDirectory -ErrorAction Stop; "
                                     "Write-Output 'OK'")
        except SweepError as exc:
            self.scan_logger.debug(f"AD module check failed: {exc}")
            return False
        return 'OK' in result

    def _query(self, table: str) -> DirectoryTable:
        cmdlet, properties = self.QUERIES[table]
        props = ','.join(properties)
        rows = ensure_list(self.runner.run_json(
            f"Import-Module ActiveDirectory -ErrorAction Stop; "
            f"{cmdlet} -Filter * -Properties {props} | Select-Object {props}",
            target=table,
        ))
        return DirectoryTable(name=table, rows=[r for r in rows if isinstance(r, dict)])

    def scan(self, targets: Optional[List[str]] = None, **kwargs) -> Dict:
        """Enumerate the configured tables; a failed query skips only that table.

        Args:
            targets: Ignored (enumerates the joined domain).
        """
        self.start_time = datetime.utcnow()
        self.tables = {}
        wanted = kwargs.get('tables') or self.config.get('directory.tables', list(self.QUERIES))

        if not self._check_ad_module():
            self.end_time = datetime.utcnow()
            self.mark_degraded('directory', 'ActiveDirectory PowerShell module not available')
            return {'scanner': self.SCANNER_NAME, 'tables': {}, 'degraded': list(self.degraded)}

        for table in wanted:
            if table not in self.QUERIES:
                self.scan_logger.warning(f"Unknown directory table: {table}")
                continue
            try:
                self.tables[table] = self._query(table)
            except SweepError as exc:
                self.mark_degraded(f"directory.{table}", exc)
                continue
            self.scan_logger.info(f"Enumerated {len(self.tables[table].rows)} {table}")

        self.results = [{'table': name, 'rows': len(t.rows)} for name, t in self.tables.items()]
        self.end_time = datetime.utcnow()
        if self.session_id:
            self.save_results()

        return {
            'scanner': self.SCANNER_NAME,
            'tables': {name: len(t.rows) for name, t in self.tables.items()},
            'degraded': list(self.degraded),
            'summary': self.get_summary(),
        }

    def enabled_hosts(self) -> List[str]:
        """Host names of enabled computer objects, in directory order.

        Raises ``SourceUnavailable`` when computers were not enumerated.
        """
        computers = self.tables.get('computers')
        if computers is None:
            raise SourceUnavailable("computer objects were not enumerated")

        hosts: List[str] = []
        seen = set()
        for row in computers.rows:
            if not _truthy(row.get('Enabled')):
                continue
            name = str(row.get('DNSHostName') or row.get('Name') or '').strip()
            if name and name.lower() not in seen:
                seen.add(name.lower())
                hosts.append(name)
        return hosts


def _truthy(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() == 'true'
    return bool(value)
