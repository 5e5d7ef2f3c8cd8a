#!/usr/bin/env python3
"""
Report export, directory enumeration, assessment orchestration and CLI
tests.

Usage:
    python -m pytest tests/test_exporter_orchestrator.py -v
"""

import csv
import json
import os
import shutil
import sys
import tempfile
import threading
import unittest
from pathlib import Path
from unittest import mock

# ---------------------------------------------------------------------------
# Path bootstrap
# ---------------------------------------------------------------------------
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))
sys.path.insert(0, str(Path(__file__).resolve().parent))
os.environ.setdefault('PURPLE_SWEEP_HOME', tempfile.mkdtemp(prefix='purple-sweep-test-'))

from openpyxl import load_workbook

from purplesweep import cli
from purplesweep.lib.errors import FailureKind, NothingToScan, SourceUnavailable
from purplesweep.lib.models import (
    AccessControlEntry, AccessRight, DirectoryTable, EvaluationGap, Finding,
    FindingCategory, ServiceRecord, StartMode, unreachable_result,
)
from purplesweep.lib.paths import PortablePaths
from purplesweep.scanners.directory_scanner import DirectoryScanner
from purplesweep.scanners.lateral_scanner import ConnectivityProbe, LateralScanner
from purplesweep.scanners.privesc_scanner import PrivescScanner
from purplesweep.utilities.exporter import ReportExporter, format_detail
from purplesweep.utilities.orchestrator import AssessmentOrchestrator

from fakes import FakeAcls, FakeChecks, FakePolicy, FakeRunner, FakeServices

FOO = ServiceRecord('Foo', 'C:\\Program Files\\Foo\\foo.exe', StartMode.AUTO)

COMPUTERS = [
    {'Name': 'DC01', 'DNSHostName': 'dc01.corp.local', 'Enabled': True},
    {'Name': 'OLD01', 'DNSHostName': 'old01.corp.local', 'Enabled': False},
    {'Name': 'WS01', 'DNSHostName': None, 'Enabled': 'True'},
    {'Name': 'DC01-ALIAS', 'DNSHostName': 'DC01.corp.local', 'Enabled': True},
]


def directory_responder(script):
    if 'Get-ADComputer' in script:
        return json.dumps(COMPUTERS)
    if 'Get-ADUser' in script:
        return json.dumps({'SamAccountName': 'alice', 'Name': 'Alice', 'Enabled': True})
    if 'Get-ADGroup' in script:
        return ''
    return 'OK'


def read_csv(path):
    with open(path, newline='', encoding='utf-8') as f:
        return list(csv.reader(f))


# ===================================================================
# 1. Report exporter
# ===================================================================
class TestReportExporter(unittest.TestCase):

    def setUp(self):
        self.tmpdir = Path(tempfile.mkdtemp())
        self.exporter = ReportExporter('test_export', output_dir=self.tmpdir)
        self.findings = [
            Finding(FindingCategory.UNQUOTED_SERVICE_PATH, 'Foo', {'path': FOO.executable_path}),
            Finding(FindingCategory.ALWAYS_INSTALL_ELEVATED, 'AlwaysInstallElevated',
                    {'HKLM_Enabled': 'True', 'HKCU_Enabled': 'False'}),
        ]
        self.gaps = [EvaluationGap('modifiable_service_binary', 'Bar', FailureKind.DENIED,
                                   'access denied', 'C:\\bar.exe')]
        self.reachability = [unreachable_result('dc02', 'timeout')]

    def tearDown(self):
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def test_csv_sections(self):
        written = self.exporter.export_session(
            findings=self.findings, gaps=self.gaps, reachability=self.reachability,
            formats=['csv'])
        self.assertEqual(set(written), {
            'privesc_findings.csv', 'privesc_gaps.csv', 'lateral_reachability.csv',
        })

        findings = read_csv(written['privesc_findings.csv'])
        self.assertEqual(findings[0], ['category', 'subject', 'severity', 'detail'])
        self.assertEqual(findings[1][:3], ['UnquotedServicePath', 'Foo', 'MEDIUM'])
        self.assertEqual(findings[2][3], 'HKLM_Enabled=True; HKCU_Enabled=False')

        gaps = read_csv(written['privesc_gaps.csv'])
        self.assertEqual(gaps[1], ['modifiable_service_binary', 'Bar', 'denied',
                                   'C:\\bar.exe', 'access denied'])

        reach = read_csv(written['lateral_reachability.csv'])
        self.assertEqual(reach[0], ['host', 'Ping', 'RemoteManagement', 'FileShare',
                                    'RemoteProcedureCall'])
        self.assertEqual(reach[1], ['dc02', 'Fail', 'Skipped', 'Skipped', 'Skipped'])

    def test_empty_sections_are_omitted(self):
        written = self.exporter.export_session(reachability=self.reachability,
                                               formats=['csv'])
        self.assertEqual(list(written), ['lateral_reachability.csv'])

    def test_findings_and_gaps_are_written_independently(self):
        written = self.exporter.export_session(findings=self.findings, gaps=[],
                                               formats=['csv'])
        self.assertEqual(list(written), ['privesc_findings.csv'])

        written = self.exporter.export_session(findings=[], gaps=self.gaps,
                                               formats=['csv'])
        self.assertEqual(list(written), ['privesc_gaps.csv'])

    def test_workbook_sheets(self):
        tables = {'computers': DirectoryTable('computers', COMPUTERS)}
        written = self.exporter.export_session(
            findings=self.findings, gaps=[], reachability=self.reachability,
            tables=tables, formats=['xlsx'])
        wb = load_workbook(written['assessment.xlsx'])
        self.assertEqual(wb.sheetnames, [
            'privesc_findings', 'lateral_reachability', 'directory_computers',
        ])
        ws = wb['directory_computers']
        self.assertEqual([c.value for c in ws[1]], ['Name', 'DNSHostName', 'Enabled'])
        self.assertEqual(ws.max_row, len(COMPUTERS) + 1)

    def test_long_sheet_titles_are_truncated(self):
        path = self.exporter.write_workbook('long', {'x' * 40: (['a'], [['1']])})
        self.assertEqual(load_workbook(path).sheetnames, ['x' * 31])

    def test_json_report(self):
        written = self.exporter.export_session(
            findings=self.findings, gaps=self.gaps, formats=['json'],
            summary={'status': 'completed'})
        data = json.loads(written['assessment.json'].read_text(encoding='utf-8'))
        self.assertEqual(data['session_id'], 'test_export')
        self.assertEqual(data['summary'], {'status': 'completed'})
        self.assertEqual(len(data['findings']), 2)
        self.assertEqual(data['gaps'][0]['kind'], 'denied')

    def test_format_detail(self):
        self.assertEqual(format_detail({'a': '1', 'b': '2'}), 'a=1; b=2')
        self.assertEqual(format_detail({}), '')


# ===================================================================
# 2. Directory enumeration
# ===================================================================
class TestDirectoryScanner(unittest.TestCase):

    def test_tables_and_enabled_hosts(self):
        scanner = DirectoryScanner(runner=FakeRunner(directory_responder))
        report = scanner.scan()
        self.assertEqual(report['tables'], {'users': 1, 'groups': 0, 'computers': 4})
        self.assertEqual(scanner.enabled_hosts(), ['dc01.corp.local', 'WS01'])
        self.assertEqual(scanner.degraded, [])

    def test_missing_module_is_degraded(self):
        def no_module(script):
            raise SourceUnavailable('module ActiveDirectory not loaded')

        scanner = DirectoryScanner(runner=FakeRunner(no_module))
        report = scanner.scan()
        self.assertEqual(report['tables'], {})
        self.assertEqual(scanner.degraded, ['directory'])
        with self.assertRaises(SourceUnavailable):
            scanner.enabled_hosts()

    def test_failed_table_skips_only_that_table(self):
        def responder(script):
            if 'Get-ADUser' in script:
                raise SourceUnavailable('server down')
            return directory_responder(script)

        scanner = DirectoryScanner(runner=FakeRunner(responder))
        report = scanner.scan()
        self.assertNotIn('users', report['tables'])
        self.assertIn('computers', report['tables'])
        self.assertEqual(scanner.degraded, ['directory.users'])


# ===================================================================
# 3. Orchestrator
# ===================================================================
class TestAssessmentOrchestrator(unittest.TestCase):

    def setUp(self):
        self.tmpdir = Path(tempfile.mkdtemp())

    def tearDown(self):
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def build(self, privesc=None, checks=None, directory=None):
        session_id = 'test_orchestrator'
        privesc = privesc or PrivescScanner(
            service_source=FakeServices([FOO]),
            acl_source=FakeAcls({FOO.executable_path: [
                AccessControlEntry('Everyone', frozenset({AccessRight.MODIFY}))]}),
            policy_source=FakePolicy({'HKLM': 1}),
        )
        lateral = LateralScanner(
            probe=ConnectivityProbe(checks=checks or FakeChecks(),
                                    timeouts={'ping': 0.1}),
            max_workers=2,
        )
        return AssessmentOrchestrator(
            session_id=session_id,
            privesc=privesc,
            lateral=lateral,
            directory=directory,
            exporter=ReportExporter(session_id, output_dir=self.tmpdir),
        )

    def test_full_run_completes(self):
        directory = DirectoryScanner(runner=FakeRunner(directory_responder))
        checks = FakeChecks()
        orchestrator = self.build(checks=checks, directory=directory)
        results = orchestrator.run(formats=['csv', 'json', 'xlsx'])

        self.assertEqual(results['status'], 'completed')
        self.assertEqual(results['phase_status'], {
            'directory': 'completed', 'privesc': 'completed', 'lateral': 'completed',
        })
        self.assertEqual(checks.hosts_called('ping'), ['dc01.corp.local', 'WS01'])
        self.assertEqual(len(results['phases']['privesc']['findings']), 3)
        self.assertIn('assessment.xlsx', results['reports'])
        self.assertIn('directory_computers.csv', results['reports'])
        for path in results['reports'].values():
            self.assertTrue(Path(path).exists(), path)

    def test_explicit_hosts_skip_directory(self):
        checks = FakeChecks(down={'b'})
        orchestrator = self.build(checks=checks)
        results = orchestrator.run(hosts=['a', 'b'], run_directory=False, formats=['json'])
        self.assertEqual(results['status'], 'completed')
        self.assertEqual(results['phases']['lateral']['hosts_reachable'], 1)
        self.assertNotIn('directory', results['phase_status'])

    def test_no_hosts_is_degraded(self):
        orchestrator = self.build()
        results = orchestrator.run(run_directory=False, formats=['json'])
        self.assertEqual(results['phase_status']['lateral'], 'failed')
        self.assertEqual(results['phase_status']['privesc'], 'completed')
        self.assertEqual(results['status'], 'degraded')

    def test_cancelled_probe_is_flagged(self):
        cancel = threading.Event()
        cancel.set()
        orchestrator = self.build()
        results = orchestrator.run(hosts=['a', 'b'], run_directory=False,
                                   formats=['json'], cancel_event=cancel)
        self.assertTrue(results['cancelled'])
        self.assertEqual(results['phase_status']['lateral'], 'degraded')
        self.assertEqual(results['status'], 'degraded')

    def test_nothing_to_scan(self):
        privesc = PrivescScanner(
            service_source=FakeServices(available=False),
            acl_source=FakeAcls(available=False),
            policy_source=FakePolicy(available=False),
        )
        orchestrator = self.build(privesc=privesc)
        with self.assertRaises(NothingToScan):
            orchestrator.run(hosts=[], run_directory=False)


# ===================================================================
# 4. Command line
# ===================================================================
class TestCli(unittest.TestCase):

    def test_read_hosts_file(self):
        with tempfile.NamedTemporaryFile('w', suffix='.txt', delete=False) as f:
            f.write("dc01\n\n# comment\nfs01  # file server\n   \n")
        try:
            self.assertEqual(cli.read_hosts_file(f.name), ['dc01', 'fs01'])
        finally:
            os.unlink(f.name)

    def test_parser(self):
        args = cli.build_parser().parse_args(
            ['--hosts', 'a', 'b', '--skip-directory', '--format', 'csv', 'xlsx'])
        self.assertEqual(args.hosts, ['a', 'b'])
        self.assertTrue(args.skip_directory)
        self.assertFalse(args.skip_privesc)
        self.assertEqual(args.formats, ['csv', 'xlsx'])

    def test_parser_rejects_unknown_format(self):
        with self.assertRaises(SystemExit):
            with mock.patch('sys.stderr'):
                cli.build_parser().parse_args(['--format', 'pdf'])

    def test_no_tooling_exits_nothing_to_scan(self):
        with mock.patch.object(PortablePaths, 'find_tool', return_value=None):
            with mock.patch('sys.stderr'):
                self.assertEqual(cli.main([]), cli.EXIT_NOTHING_TO_SCAN)


if __name__ == '__main__':
    unittest.main(verbosity=2)
