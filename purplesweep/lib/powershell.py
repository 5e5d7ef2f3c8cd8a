#!/usr/bin/env python3
"""
Purple Sweep - PowerShell Runner
Executes PowerShell snippets with a hard timeout and turns failures into
typed errors so callers can tell "denied" from "unreachable" from "timed out".
"""

import json
import subprocess
from typing import Any, List, Optional

from .config import config
from .errors import AccessDenied, MalformedInput, NotFound, ProbeTimeout, SourceUnavailable
from .logger import get_logger
from .paths import paths

_DENIED_MARKERS = ('access is denied', 'unauthorizedaccess', 'permissiondenied',
                   'registry access is not allowed')
_NOT_FOUND_MARKERS = ('cannot find path', 'does not exist', 'itemnotfound', 'objectnotfound')


class PowerShellRunner:
    """Thin wrapper around ``powershell.exe -Command``."""

    def __init__(self, timeout: Optional[float] = None, logger=None,
                 executable: Optional[str] = None):
        self.timeout = timeout if timeout is not None else config.get('sources.powershell_timeout', 60)
        self.logger = logger or get_logger('powershell')
        self._executable = executable

    @property
    def executable(self) -> Optional[str]:
        if self._executable is None:
            found = paths.find_tool('powershell')
            self._executable = str(found) if found else ''
        return self._executable or None

    def is_available(self) -> bool:
        return self.executable is not None

    def _command(self, script: str) -> List[str]:
        return [
            self.executable,
            '-NoProfile',
            '-NonInteractive',
            '-ExecutionPolicy', 'Bypass',
            '-Command', script,
        ]

    def run(self, script: str, timeout: Optional[float] = None, target: str = '') -> str:
        """Execute a PowerShell command and return stdout.

        Raises ``SourceUnavailable`` when PowerShell is missing or the
        command fails, ``AccessDenied``/``NotFound`` when stderr says so,
        and ``ProbeTimeout`` when the process is killed for running too long.
        """
        if not self.is_available():
            raise SourceUnavailable("powershell not found on PATH", target=target)

        timeout = self.timeout if timeout is None else timeout
        self.logger.debug(f"PS> {script[:120]}{'...' if len(script) > 120 else ''}")
        try:
            proc = subprocess.run(
                self._command(script),
                capture_output=True,
                text=True,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired:
            raise ProbeTimeout(f"PowerShell command timed out ({timeout}s)", target=target)
        except OSError as exc:
            raise SourceUnavailable(f"PowerShell execution error: {exc}", target=target)

        if proc.returncode != 0:
            stderr = (proc.stderr or '').strip()
            lowered = stderr.lower()
            if any(marker in lowered for marker in _DENIED_MARKERS):
                raise AccessDenied(stderr[:200] or 'access denied', target=target)
            if any(marker in lowered for marker in _NOT_FOUND_MARKERS):
                raise NotFound(stderr[:200] or 'not found', target=target)
            raise SourceUnavailable(
                f"PowerShell exited {proc.returncode}: {stderr[:200]}", target=target
            )
        return (proc.stdout or '').strip()

    def run_json(self, script: str, timeout: Optional[float] = None, target: str = '',
                 depth: int = 3) -> Any:
        """Run a command piped through ``ConvertTo-Json`` and parse it.

        Empty output yields ``None``.
        """
        raw = self.run(f"{script} | ConvertTo-Json -Depth {depth} -Compress",
                       timeout=timeout, target=target)
        if not raw:
            return None
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, ValueError) as exc:
            raise MalformedInput(f"JSON parse error: {exc}", target=target)


def ensure_list(data: Any) -> list:
    """Wrap a single dict in a list; pass through lists unchanged."""
    if data is None:
        return []
    if isinstance(data, list):
        return data
    return [data]


def ps_quote(value: str) -> str:
    """Quote a value as a single-quoted PowerShell string literal."""
    return "'" + str(value).replace("'", "''") + "'"
