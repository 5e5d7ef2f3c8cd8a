#!/usr/bin/env python3
"""
Purple Sweep - Lateral-Movement Reachability Scanner

Determines, per target host, which remote-access protocols are viable:

  1. Ping                - gate; on failure the remaining checks are Skipped
  2. RemoteManagement    - open a PowerShell remoting session, release it
  3. FileShare           - administrative share path exists
  4. RemoteProcedureCall - fetch one remote system property over DCOM

Checks for a single host run sequentially with a hard timeout each.
Different hosts are probed concurrently on a bounded worker pool and the
results come back in input order.
"""

import subprocess
import sys
import threading
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional, Sequence

from ..lib.errors import ProbeTimeout, SourceUnavailable
from ..lib.logger import get_logger
from ..lib.models import (
    HostProbeResult, ProbeStatus, Protocol, ProtocolResult, unreachable_result,
)
from ..lib.powershell import PowerShellRunner, ps_quote
from .base import BaseScanner

# Seconds between cancellation checks while waiting on probes
POLL_INTERVAL = 0.25


class RemoteChecks:
    """Backend performing the individual remote-access checks.

    Each method raises on failure and must honour ``timeout`` (seconds).
    """

    def ping(self, host: str, timeout: float) -> None:
        raise NotImplementedError

    def remote_session(self, host: str, timeout: float):
        """Context manager yielding a session object, released on exit."""
        raise NotImplementedError

    def share_exists(self, host: str, share: str, timeout: float) -> None:
        raise NotImplementedError

    def rpc_query(self, host: str, timeout: float) -> str:
        raise NotImplementedError


class SystemRemoteChecks(RemoteChecks):
    """Checks built on the platform ``ping`` command and PowerShell."""

    def __init__(self, runner: Optional[PowerShellRunner] = None, logger=None):
        self.logger = logger or get_logger('lateral')
        self.runner = runner or PowerShellRunner(logger=self.logger)

    def ping(self, host: str, timeout: float) -> None:
        ping_flag = '-n' if sys.platform == 'win32' else '-c'
        timeout_flag = '-w' if sys.platform == 'win32' else '-W'
        # Windows -w is in milliseconds, Linux -W is in seconds
        timeout_val = str(int(timeout * 1000)) if sys.platform == 'win32' else str(max(1, int(timeout)))
        try:
            proc = subprocess.run(
                ['ping', ping_flag, '1', timeout_flag, timeout_val, host],
                capture_output=True, text=True, timeout=timeout + 1
            )
        except subprocess.TimeoutExpired:
            raise ProbeTimeout(f"ping timed out after {timeout}s", target=host)
        except OSError as exc:
            raise SourceUnavailable(f"ping unavailable: {exc}", target=host)
        if proc.returncode != 0:
            raise SourceUnavailable("no echo reply", target=host)

    @contextmanager
    def remote_session(self, host: str, timeout: float) -> Iterator[str]:
        # The session lives inside the PowerShell process, so it is removed
        # there; a killed process takes the session with it.
        seconds = max(1, int(timeout))
        script = (
            f"$opt = New-PSSessionOption -OpenTimeout {seconds * 1000}; "
            f"$s = New-PSSession -ComputerName {ps_quote(host)} -SessionOption $opt "
            "-ErrorAction Stop; "
            "try { $s.State.ToString() } "
            "finally { Remove-PSSession -Session $s -ErrorAction SilentlyContinue }"
        )
        state = self.runner.run(script, timeout=timeout, target=host)
        yield state or None

    def share_exists(self, host: str, share: str, timeout: float) -> None:
        unc = f"\\\\{host}\\{share}"
        script = (
            f"if (-not (Test-Path -LiteralPath {ps_quote(unc)})) "
            f"{{ throw 'Access is denied or share missing: {unc}' }}"
        )
        self.runner.run(script, timeout=timeout, target=host)

    def rpc_query(self, host: str, timeout: float) -> str:
        script = (
            "$opt = New-CimSessionOption -Protocol Dcom; "
            f"$c = New-CimSession -ComputerName {ps_quote(host)} -SessionOption $opt "
            f"-OperationTimeoutSec {max(1, int(timeout))} -ErrorAction Stop; "
            "try { (Get-CimInstance -CimSession $c -ClassName Win32_OperatingSystem "
            "-ErrorAction Stop).Caption } "
            "finally { Remove-CimSession -CimSession $c -ErrorAction SilentlyContinue }"
        )
        return self.runner.run(script, timeout=timeout, target=host)


class ConnectivityProbe:
    """Runs the four protocol checks against one host.

    ``probe()`` never raises: every failure becomes a ``Fail`` status.
    """

    def __init__(self, checks: Optional[RemoteChecks] = None,
                 timeouts: Optional[Dict[str, float]] = None,
                 admin_share: str = 'C$', logger=None):
        self.logger = logger or get_logger('lateral')
        self.checks = checks or SystemRemoteChecks(logger=self.logger)
        self.timeouts = {'ping': 2.0, 'session': 15.0, 'share': 10.0, 'rpc': 15.0}
        if timeouts:
            self.timeouts.update(timeouts)
        self.admin_share = admin_share

    def probe(self, host_name: str) -> HostProbeResult:
        try:
            self.checks.ping(host_name, self.timeouts['ping'])
        except Exception as exc:
            self.logger.info(f"{host_name}: ping failed ({exc}); skipping remote checks")
            return unreachable_result(host_name, str(exc))

        results = [ProtocolResult(Protocol.PING, ProbeStatus.SUCCESS)]
        steps = (
            (Protocol.REMOTE_MANAGEMENT, self._check_session),
            (Protocol.FILE_SHARE, self._check_share),
            (Protocol.REMOTE_PROCEDURE_CALL, self._check_rpc),
        )
        for protocol, step in steps:
            results.append(self._attempt(host_name, protocol, step))

        result = HostProbeResult(host_name=host_name, results=tuple(results))
        self.logger.info(f"{host_name}: " + ', '.join(
            f"{r.protocol.value}={r.status.value}" for r in result.results))
        return result

    def _attempt(self, host_name: str, protocol: Protocol, step) -> ProtocolResult:
        try:
            step(host_name)
        except Exception as exc:
            self.logger.debug(f"{host_name}: {protocol.value} failed: {exc}")
            return ProtocolResult(protocol, ProbeStatus.FAIL, str(exc)[:200])
        return ProtocolResult(protocol, ProbeStatus.SUCCESS)

    def _check_session(self, host_name: str):
        with self.checks.remote_session(host_name, self.timeouts['session']) as session:
            if session is None:
                raise SourceUnavailable("no session returned", target=host_name)

    def _check_share(self, host_name: str):
        self.checks.share_exists(host_name, self.admin_share, self.timeouts['share'])

    def _check_rpc(self, host_name: str):
        self.checks.rpc_query(host_name, self.timeouts['rpc'])


class LateralScanner(BaseScanner):
    """Fans the connectivity probe out across a host list."""

    SCANNER_NAME = "lateral"
    SCANNER_DESCRIPTION = "Lateral-movement reachability probing"

    def __init__(self, session_id: Optional[str] = None, logger=None,
                 probe: Optional[ConnectivityProbe] = None,
                 max_workers: Optional[int] = None):
        super().__init__(session_id, logger)
        self.probe = probe or ConnectivityProbe(
            timeouts=self.config.get_probe_timeouts(),
            admin_share=self.config.get('lateral.admin_share', 'C$'),
            logger=self.scan_logger,
        )
        self.max_workers = max_workers or self.config.get_max_workers()
        self.cancelled = False

    def probe_all(self, host_names: Sequence[str],
                  cancel_event: Optional[threading.Event] = None) -> List[HostProbeResult]:
        """Probe every host; one result per input host, in input order.

        Duplicate names are probed separately. When cancelled (event set or
        KeyboardInterrupt) pending probes are dropped, in-flight probes are
        abandoned, and the results completed so far are returned.
        """
        hosts = list(host_names)
        self.cancelled = False
        if not hosts:
            return []

        cancel = cancel_event or threading.Event()
        slots: List[Optional[HostProbeResult]] = [None] * len(hosts)
        executor = ThreadPoolExecutor(max_workers=min(self.max_workers, len(hosts)),
                                      thread_name_prefix='probe')
        pending = {
            executor.submit(self._probe_host, host, cancel): index
            for index, host in enumerate(hosts)
        }
        try:
            while pending:
                if cancel.is_set():
                    self.cancelled = True
                    break
                done, _ = wait(pending, timeout=POLL_INTERVAL, return_when=FIRST_COMPLETED)
                for future in done:
                    index = pending.pop(future)
                    slots[index] = future.result()
        except KeyboardInterrupt:
            self.cancelled = True
            cancel.set()
        finally:
            executor.shutdown(wait=not self.cancelled, cancel_futures=True)

        if self.cancelled:
            self.scan_logger.warning(
                f"Probing cancelled: {sum(1 for s in slots if s is not None)}/{len(hosts)} "
                f"hosts completed"
            )
        return [result for result in slots if result is not None]

    def _probe_host(self, host: str, cancel: threading.Event) -> Optional[HostProbeResult]:
        if cancel.is_set():
            return None
        try:
            return self.probe.probe(host)
        except Exception as exc:
            self.scan_logger.error(f"{host}: probe crashed: {exc}")
            return unreachable_result(host, f"probe error: {exc}")

    def scan(self, targets: Optional[List[str]] = None, **kwargs) -> Dict:
        """Probe ``targets`` and return the reachability table."""
        self.start_time = datetime.utcnow()
        hosts = list(targets or [])
        self.scan_logger.info(
            f"Starting reachability probe of {len(hosts)} hosts "
            f"({min(self.max_workers, max(1, len(hosts)))} workers)"
        )

        self.results = self.probe_all(hosts, kwargs.get('cancel_event'))
        if self.cancelled:
            self.mark_degraded('reachability',
                               f"cancelled after {len(self.results)}/{len(hosts)} hosts")

        self.end_time = datetime.utcnow()
        if self.session_id:
            self.save_results()

        reachable = sum(1 for r in self.results if r.reachable)
        self.scan_logger.info(
            f"Reachability probe complete: {reachable}/{len(self.results)} hosts answered ping"
        )
        return {
            'scanner': self.SCANNER_NAME,
            'hosts_requested': len(hosts),
            'hosts_probed': len(self.results),
            'hosts_reachable': reachable,
            'cancelled': self.cancelled,
            'results': [r.to_dict() for r in self.results],
            'summary': self.get_summary(),
        }

    def _extra_output(self) -> Dict[str, Any]:
        return {'cancelled': self.cancelled}
