#!/usr/bin/env python3
"""
Purple Sweep - Production Readiness Test Suite

Validates the core modules every scanner depends on: imports, path
resolution, configuration defaults, logging, the failure taxonomy, the
shared data model and the scanner base class.

Usage:
    python -m pytest tests/test_production_ready.py -v
    python tests/test_production_ready.py
"""

import json
import logging
import os
import sys
import tempfile
import unittest
from pathlib import Path

# ---------------------------------------------------------------------------
# Path bootstrap - mirrors bin/purple-sweep.py so the package imports from
# the source tree without installation
# ---------------------------------------------------------------------------
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))
os.environ.setdefault('PURPLE_SWEEP_HOME', tempfile.mkdtemp(prefix='purple-sweep-test-'))


# ===================================================================
# 1. TestImports - verify every module can be imported
# ===================================================================
class TestImports(unittest.TestCase):
    """Verify that every expected module can be imported successfully."""

    def test_import_paths(self):
        from purplesweep.lib.paths import paths, get_paths
        self.assertIsNotNone(paths)
        self.assertIsNotNone(get_paths)

    def test_import_config(self):
        from purplesweep.lib.config import config, get_config
        self.assertIsNotNone(config)
        self.assertIsNotNone(get_config)

    def test_import_logger(self):
        from purplesweep.lib.logger import get_logger
        self.assertIsNotNone(get_logger)

    def test_import_sources(self):
        from purplesweep.lib.sources import WindowsAclSource
        self.assertIsNotNone(WindowsAclSource)

    def test_import_scanners(self):
        from purplesweep.scanners import DirectoryScanner, LateralScanner, PrivescScanner
        for scanner in (DirectoryScanner, LateralScanner, PrivescScanner):
            self.assertTrue(hasattr(scanner, 'SCANNER_NAME'))
            self.assertTrue(hasattr(scanner, 'SCANNER_DESCRIPTION'))

    def test_import_utilities(self):
        from purplesweep.utilities import AssessmentOrchestrator, ReportExporter
        self.assertIsNotNone(AssessmentOrchestrator)
        self.assertIsNotNone(ReportExporter)

    def test_import_cli(self):
        from purplesweep.cli import main
        self.assertTrue(callable(main))


# ===================================================================
# 2. TestPaths - portable path resolution
# ===================================================================
class TestPaths(unittest.TestCase):
    """Validate path singleton and directory helpers."""

    def test_singleton(self):
        from purplesweep.lib.paths import PortablePaths, get_paths
        self.assertIs(PortablePaths(), get_paths())

    def test_home_follows_environment(self):
        from purplesweep.lib.paths import paths
        self.assertEqual(paths.home, Path(os.environ['PURPLE_SWEEP_HOME']).resolve())

    def test_session_dir(self):
        from purplesweep.lib.paths import paths
        session = paths.session_dir('test_session_dir')
        self.assertTrue(session.is_dir())
        self.assertEqual(session.parent, paths.results)

    def test_ensure_directories(self):
        from purplesweep.lib.paths import paths
        paths.ensure_directories()
        self.assertTrue(paths.logs.is_dir())
        self.assertTrue(paths.config_active.parent.is_dir())

    def test_require_missing_tool(self):
        from purplesweep.lib.paths import paths
        with self.assertRaises(FileNotFoundError):
            paths.require_tool('definitely-not-a-real-tool-xyz')


# ===================================================================
# 3. TestConfig - defaults and dot-path access
# ===================================================================
class TestConfig(unittest.TestCase):
    """Validate configuration loading, defaults, and access."""

    def test_singleton(self):
        from purplesweep.lib.config import get_config
        self.assertIs(get_config(), get_config())

    def test_get_default(self):
        from purplesweep.lib.config import config
        self.assertEqual(config.get('nonexistent.key', 'default_val'), 'default_val')

    def test_broad_principals(self):
        from purplesweep.lib.config import config
        principals = config.get_broad_principals()
        self.assertIn('Everyone', principals)
        self.assertIn('BUILTIN\\Users', principals)

    def test_probe_timeouts(self):
        from purplesweep.lib.config import config
        timeouts = config.get_probe_timeouts()
        self.assertEqual(set(timeouts), {'ping', 'session', 'share', 'rpc'})
        for value in timeouts.values():
            self.assertGreater(value, 0)

    def test_max_workers_is_positive(self):
        from purplesweep.lib.config import config
        self.assertGreaterEqual(config.get_max_workers(), 1)

    def test_default_file_written(self):
        from purplesweep.lib.config import config
        from purplesweep.lib.paths import paths
        config.save()
        self.assertTrue(paths.config_active.exists())

    def test_set_get_roundtrip(self):
        from purplesweep.lib.config import config
        config.set('test.nested_key', 'test_value')
        self.assertEqual(config.get('test.nested_key'), 'test_value')
        self.assertEqual(config.to_dict()['test']['nested_key'], 'test_value')

    def test_reload(self):
        from purplesweep.lib.config import config
        # reload() should not raise
        config.reload()
        self.assertEqual(config.get('privesc.policy_value'), 'AlwaysInstallElevated')


# ===================================================================
# 4. TestLogger - logging system
# ===================================================================
class TestLogger(unittest.TestCase):
    """Validate logger creation and naming."""

    def test_get_logger(self):
        from purplesweep.lib.logger import get_logger
        lgr = get_logger('test')
        self.assertIsInstance(lgr, logging.Logger)
        self.assertIs(lgr, get_logger('test'))

    def test_logger_name(self):
        from purplesweep.lib.logger import get_logger
        lgr = get_logger('test')
        self.assertEqual(lgr.name, 'purple-sweep.test')

    def test_scan_logger_writes_session_log(self):
        from purplesweep.lib.logger import SweepLogger, get_scan_logger
        from purplesweep.lib.paths import paths
        lgr = get_scan_logger('test_scan_logger')
        lgr.info('hello')
        log_file = paths.session_dir('test_scan_logger') / 'scan.log'
        SweepLogger.release('scan.test_scan_logger')
        self.assertIn('hello', log_file.read_text(encoding='utf-8'))

    def test_set_console_level(self):
        from purplesweep.lib.logger import get_logger, set_console_level
        lgr = get_logger('test_console')
        set_console_level(logging.INFO)
        try:
            console = [h for h in lgr.handlers if type(h) is logging.StreamHandler]
            self.assertEqual(console[0].level, logging.INFO)
        finally:
            set_console_level(logging.WARNING)

    def test_console_level_applies_to_later_loggers(self):
        from purplesweep.lib.logger import (
            SweepLogger, get_logger, get_scan_logger, set_console_level,
        )
        set_console_level(logging.INFO)
        try:
            lgr = get_logger('test_console_late')
            scan = get_scan_logger('test_console_late_scan')
            for created in (lgr, scan):
                console = [h for h in created.handlers if type(h) is logging.StreamHandler]
                self.assertEqual(len(console), 1)
                self.assertEqual(console[0].level, logging.INFO)
        finally:
            set_console_level(logging.WARNING)
            SweepLogger.release('scan.test_console_late_scan')


# ===================================================================
# 5. TestErrors - failure taxonomy and Lookup
# ===================================================================
class TestErrors(unittest.TestCase):
    """Validate failure kinds carried by errors and lookups."""

    def test_error_kinds(self):
        from purplesweep.lib.errors import (
            AccessDenied, FailureKind, MalformedInput, NotFound, ProbeTimeout,
            SourceUnavailable,
        )
        self.assertEqual(AccessDenied.kind, FailureKind.DENIED)
        self.assertEqual(NotFound.kind, FailureKind.NOT_FOUND)
        self.assertEqual(ProbeTimeout.kind, FailureKind.TIMEOUT)
        self.assertEqual(MalformedInput.kind, FailureKind.MALFORMED)
        self.assertEqual(SourceUnavailable.kind, FailureKind.UNAVAILABLE)

    def test_lookup_ok(self):
        from purplesweep.lib.errors import Lookup
        lookup = Lookup.ok(None)
        self.assertTrue(lookup.succeeded)
        self.assertIsNone(lookup.unwrap())

    def test_lookup_failed_unwrap_raises(self):
        from purplesweep.lib.errors import AccessDenied, FailureKind, Lookup
        lookup = Lookup.failed(FailureKind.DENIED, 'no')
        self.assertFalse(lookup.succeeded)
        with self.assertRaises(AccessDenied):
            lookup.unwrap()

    def test_lookup_from_error(self):
        from purplesweep.lib.errors import FailureKind, Lookup, ProbeTimeout
        lookup = Lookup.from_error(ProbeTimeout('slow', target='h'))
        self.assertEqual(lookup.failure, FailureKind.TIMEOUT)
        self.assertEqual(lookup.reason, 'slow')


# ===================================================================
# 6. TestModels - findings are immutable records
# ===================================================================
class TestModels(unittest.TestCase):
    """Validate finding immutability and serialization."""

    def test_finding_detail_is_read_only(self):
        from purplesweep.lib.models import Finding, FindingCategory
        detail = {'path': 'C:\\a b\\c.exe'}
        finding = Finding(FindingCategory.UNQUOTED_SERVICE_PATH, 'Foo', detail)
        detail['path'] = 'changed'
        self.assertEqual(finding.detail['path'], 'C:\\a b\\c.exe')
        with self.assertRaises(TypeError):
            finding.detail['path'] = 'x'

    def test_finding_severity(self):
        from purplesweep.lib.models import Finding, FindingCategory
        self.assertEqual(Finding(FindingCategory.UNQUOTED_SERVICE_PATH, 'a').severity, 'MEDIUM')
        self.assertEqual(Finding(FindingCategory.MODIFIABLE_SERVICE_BINARY, 'a').severity, 'HIGH')

    def test_finding_to_dict_is_json_serializable(self):
        from purplesweep.lib.models import Finding, FindingCategory
        finding = Finding(FindingCategory.ALWAYS_INSTALL_ELEVATED, 'AlwaysInstallElevated',
                          {'HKLM_Enabled': True, 'HKCU_Enabled': False})
        data = json.loads(json.dumps(finding.to_dict()))
        self.assertEqual(data['detail']['HKLM_Enabled'], 'True')
        self.assertTrue(finding.flag('HKLM_Enabled'))


# ===================================================================
# 7. TestBaseScanner - abstract base class
# ===================================================================
class TestBaseScanner(unittest.TestCase):
    """Validate BaseScanner abstract enforcement and severity counting."""

    def _scanner_class(self):
        from purplesweep.scanners.base import BaseScanner

        class MinimalScanner(BaseScanner):
            SCANNER_NAME = 'minimal_test'
            SCANNER_DESCRIPTION = 'Minimal test scanner'

            def scan(self, targets=None, **kwargs):
                return {'status': 'ok'}

        return MinimalScanner

    def test_abstract_instantiation(self):
        from purplesweep.scanners.base import BaseScanner
        with self.assertRaises(TypeError):
            BaseScanner()

    def test_concrete_subclass(self):
        scanner = self._scanner_class()()
        self.assertEqual(scanner.SCANNER_NAME, 'minimal_test')
        self.assertEqual(scanner.degraded, [])

    def test_count_by_severity(self):
        from purplesweep.lib.models import Finding, FindingCategory
        scanner = self._scanner_class()()
        scanner.findings = [
            Finding(FindingCategory.MODIFIABLE_SERVICE_BINARY, 'a'),
            Finding(FindingCategory.UNQUOTED_SERVICE_PATH, 'b'),
        ]
        counts = scanner._count_by_severity()
        for sev in ['CRITICAL', 'HIGH', 'MEDIUM', 'LOW', 'INFO']:
            self.assertIn(sev, counts)
        self.assertEqual(counts['HIGH'], 1)
        self.assertEqual(counts['MEDIUM'], 1)

    def test_mark_degraded_in_summary(self):
        scanner = self._scanner_class()()
        scanner.mark_degraded('part', 'reason')
        self.assertEqual(scanner.get_summary()['degraded'], ['part'])

    def test_save_results(self):
        from purplesweep.lib.logger import SweepLogger
        scanner = self._scanner_class()(session_id='test_save_results')
        scanner.results = [{'x': 1}]
        output = scanner.save_results('out.json')
        SweepLogger.release('scan.test_save_results')
        data = json.loads(output.read_text())
        self.assertEqual(data['results'], [{'x': 1}])
        self.assertEqual(data['scanner'], 'minimal_test')


# ===================================================================
# Entry point
# ===================================================================
if __name__ == '__main__':
    unittest.main(verbosity=2)
