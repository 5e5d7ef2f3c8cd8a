#!/usr/bin/env python3
"""
Purple Sweep - Assessment Orchestrator
Coordinates directory enumeration, privilege-escalation detection and
reachability probing for one session, then hands everything to the
report exporter.
"""

import threading
from datetime import datetime
from typing import Dict, List, Optional

from ..lib.config import config
from ..lib.errors import NothingToScan, SweepError
from ..lib.logger import get_logger
from ..scanners.directory_scanner import DirectoryScanner
from ..scanners.lateral_scanner import LateralScanner
from ..scanners.privesc_scanner import PrivescScanner
from .exporter import ReportExporter


def new_session_id() -> str:
    return datetime.now().strftime('%Y%m%d_%H%M%S')


class AssessmentOrchestrator:
    """Orchestrates a complete posture assessment."""

    def __init__(self, session_id: Optional[str] = None, logger=None,
                 privesc: Optional[PrivescScanner] = None,
                 lateral: Optional[LateralScanner] = None,
                 directory: Optional[DirectoryScanner] = None,
                 exporter: Optional[ReportExporter] = None):
        self.session_id = session_id or new_session_id()
        self.config = config
        self.logger = logger or get_logger('orchestrator')
        self.privesc = privesc
        self.lateral = lateral
        self.directory = directory
        self.exporter = exporter

    def run(self, hosts: Optional[List[str]] = None,
            run_privesc: bool = True,
            run_lateral: bool = True,
            run_directory: bool = True,
            formats: Optional[List[str]] = None,
            cancel_event: Optional[threading.Event] = None) -> Dict:
        """
        Run the selected phases.

        Args:
            hosts: Hosts to probe; derived from enabled directory computer
                objects when omitted.
            formats: Report formats (defaults to ``reporting.formats``).

        Returns:
            Per-phase results plus ``status`` ('completed' or 'degraded').

        Raises:
            NothingToScan: every selected phase had nothing to scan.
        """
        self.logger.info(f"Starting assessment, session {self.session_id}")
        results = {
            'session_id': self.session_id,
            'start_time': datetime.utcnow().isoformat(),
            'phases': {},
            'phase_status': {},
        }
        attempted: List[str] = []
        empty: List[str] = []

        # Phase 1: Directory enumeration
        if run_directory:
            attempted.append('directory')
            self._banner("PHASE 1: Directory Enumeration")
            self.directory = self.directory or DirectoryScanner(self.session_id)
            results['phases']['directory'] = self.directory.scan()
            if not self.directory.tables:
                empty.append('directory')
            self._record(results, 'directory', self.directory)

        # Phase 2: Privilege escalation
        if run_privesc:
            attempted.append('privesc')
            self._banner("PHASE 2: Privilege-Escalation Detection")
            self.privesc = self.privesc or PrivescScanner(self.session_id)
            try:
                results['phases']['privesc'] = self.privesc.scan()
                self._record(results, 'privesc', self.privesc)
            except NothingToScan as exc:
                self.logger.error(f"Privilege-escalation phase has nothing to scan: {exc}")
                results['phase_status']['privesc'] = 'failed'
                empty.append('privesc')

        # Phase 3: Lateral movement reachability
        if run_lateral:
            attempted.append('lateral')
            self._banner("PHASE 3: Lateral-Movement Reachability")
            targets = self._resolve_hosts(hosts)
            if not targets:
                self.logger.error("No hosts to probe")
                results['phase_status']['lateral'] = 'failed'
                empty.append('lateral')
            else:
                self.lateral = self.lateral or LateralScanner(self.session_id)
                results['phases']['lateral'] = self.lateral.scan(
                    targets=targets, cancel_event=cancel_event)
                self._record(results, 'lateral', self.lateral)

        if attempted and set(attempted) <= set(empty):
            raise NothingToScan(f"nothing to scan in phases: {', '.join(attempted)}")

        results['end_time'] = datetime.utcnow().isoformat()
        results['status'] = 'completed' if all(
            status == 'completed' for status in results['phase_status'].values()
        ) else 'degraded'
        results['cancelled'] = bool(self.lateral and self.lateral.cancelled)

        results['reports'] = {
            name: str(path) for name, path in self._export(results, formats).items()
        }
        self.logger.info(f"Assessment {self.session_id} {results['status']}")
        return results

    def _resolve_hosts(self, hosts: Optional[List[str]]) -> List[str]:
        if hosts is not None:
            return list(hosts)
        if self.directory is None:
            self.logger.warning("No host list given and directory enumeration not run")
            return []
        try:
            derived = self.directory.enabled_hosts()
        except SweepError as exc:
            self.logger.warning(f"Could not derive hosts from directory: {exc}")
            return []
        self.logger.info(f"Derived {len(derived)} hosts from enabled computer objects")
        return derived

    @staticmethod
    def _record(results: Dict, phase: str, scanner) -> None:
        results['phase_status'][phase] = 'degraded' if scanner.degraded else 'completed'

    def _banner(self, title: str) -> None:
        self.logger.info("=" * 50)
        self.logger.info(title)
        self.logger.info("=" * 50)

    def _export(self, results: Dict, formats: Optional[List[str]]):
        self.exporter = self.exporter or ReportExporter(self.session_id)
        return self.exporter.export_session(
            findings=self.privesc.findings if self.privesc else [],
            gaps=self.privesc.gaps if self.privesc else [],
            reachability=self.lateral.results if self.lateral else [],
            tables=self.directory.tables if self.directory else {},
            formats=formats or self.config.get_report_formats(),
            summary={
                'status': results['status'],
                'phase_status': results['phase_status'],
            },
        )
