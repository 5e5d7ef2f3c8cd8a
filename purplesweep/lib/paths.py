#!/usr/bin/env python3
"""
Purple Sweep - Path Resolver
Provides portable path resolution for configuration, logs and results.
All paths are relative to PURPLE_SWEEP_HOME (env var or working directory).
"""

import os
import shutil
import sys
from pathlib import Path
from typing import Optional


class PortablePaths:
    """Portable path resolver - works from any installation location."""

    _instance: Optional['PortablePaths'] = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if self._initialized:
            return
        self._initialized = True
        self._resolve_home()

    def _resolve_home(self):
        """Resolve PURPLE_SWEEP_HOME from environment or the working directory."""
        if 'PURPLE_SWEEP_HOME' in os.environ:
            self.home = Path(os.environ['PURPLE_SWEEP_HOME']).resolve()
        else:
            self.home = Path.cwd().resolve()

    @property
    def config(self) -> Path:
        """Configuration directory."""
        return self.home / 'config'

    @property
    def config_active(self) -> Path:
        """Active configuration file."""
        return self.home / 'config' / 'active' / 'config.yaml'

    @property
    def data(self) -> Path:
        """Data directory (results, logs)."""
        return self.home / 'data'

    @property
    def results(self) -> Path:
        """Scan results storage."""
        return self.home / 'data' / 'results'

    @property
    def logs(self) -> Path:
        """Execution logs."""
        return self.home / 'data' / 'logs'

    def session_dir(self, session_id: str) -> Path:
        """Get directory for a specific scan session."""
        path = self.results / session_id
        path.mkdir(parents=True, exist_ok=True)
        return path

    def log_file(self, name: str) -> Path:
        """Get path for a log file."""
        self.logs.mkdir(parents=True, exist_ok=True)
        return self.logs / f"{name}.log"

    def ensure_directories(self):
        """Create all required directories if they don't exist."""
        for d in (self.config, self.config_active.parent, self.data,
                  self.results, self.logs):
            d.mkdir(parents=True, exist_ok=True)

    def find_tool(self, tool_name: str) -> Optional[Path]:
        """Find an external tool (powershell, ping) on the system PATH."""
        candidates = [tool_name]
        if sys.platform == 'win32' and not tool_name.endswith('.exe'):
            candidates.insert(0, f"{tool_name}.exe")
        if tool_name in ('powershell', 'powershell.exe'):
            # PowerShell 7 ships as pwsh on non-Windows hosts
            candidates.append('pwsh')

        for candidate in candidates:
            found = shutil.which(candidate)
            if found:
                return Path(found)
        return None

    def require_tool(self, tool_name: str) -> Path:
        """Find a tool or raise error if not found."""
        path = self.find_tool(tool_name)
        if path is None:
            raise FileNotFoundError(f"Required tool not found: {tool_name}")
        return path

    def reset(self):
        """Re-resolve the home directory (after PURPLE_SWEEP_HOME changes)."""
        self._resolve_home()

    def __str__(self) -> str:
        return f"PortablePaths(home={self.home})"

    def __repr__(self) -> str:
        return self.__str__()


# Singleton instance for easy import
paths = PortablePaths()


def get_paths() -> PortablePaths:
    """Get the singleton paths instance."""
    return paths


if __name__ == '__main__':
    p = get_paths()
    print(f"Purple Sweep Home: {p.home}")
    print(f"Results: {p.results}")
    print(f"Config: {p.config_active}")
    p.ensure_directories()
    print("All directories created successfully.")
