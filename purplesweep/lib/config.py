#!/usr/bin/env python3
"""
Purple Sweep - Configuration Manager
Loads and manages configuration with scanner and probe defaults.
"""

import copy
import yaml
from typing import Any, Dict, List, Optional

from .paths import paths


class Config:
    """Configuration manager with portable defaults."""

    _instance: Optional['Config'] = None

    DEFAULTS = {
        'version': '1.0.0',
        'privesc': {
            # Identities treated as broad / unprivileged principals.
            # Matched case-insensitively against the full identity or the
            # part after the last backslash.
            'broad_principals': [
                'Everyone',
                'BUILTIN\\Users',
                'Users',
                'Authenticated Users',
                'NT AUTHORITY\\Authenticated Users',
                'Domain Users',
                'S-1-1-0',
                'S-1-5-11',
                'S-1-5-32-545',
            ],
            'executable_marker': '.exe',
            'policy_key': 'SOFTWARE\\Policies\\Microsoft\\Windows\\Installer',
            'policy_value': 'AlwaysInstallElevated',
        },
        'lateral': {
            'ping_timeout': 2,
            'session_timeout': 15,
            'share_timeout': 10,
            'rpc_timeout': 15,
            'admin_share': 'C$',
            'max_workers': 8,
        },
        'directory': {
            'timeout': 180,
            'tables': ['users', 'groups', 'computers'],
        },
        'sources': {
            'powershell_timeout': 60,
        },
        'reporting': {
            'formats': ['csv', 'json'],
        },
    }

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if self._initialized:
            return
        self._initialized = True
        self._config: Dict[str, Any] = {}
        self._load()

    def _load(self):
        """Load configuration from file or create defaults."""
        config_file = paths.config_active

        if config_file.exists():
            try:
                with open(config_file, 'r') as f:
                    self._config = yaml.safe_load(f) or {}
                # Merge with defaults for any missing keys
                self._config = self._deep_merge(copy.deepcopy(self.DEFAULTS), self._config)
            except (OSError, yaml.YAMLError) as e:
                print(f"Warning: Failed to load config, using defaults: {e}")
                self._config = copy.deepcopy(self.DEFAULTS)
        else:
            self._config = copy.deepcopy(self.DEFAULTS)
            self.save()  # Create default config file

    def _deep_merge(self, base: Dict, override: Dict) -> Dict:
        """Deep merge override into base."""
        result = base.copy()
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value
        return result

    def save(self):
        """Save configuration to file."""
        config_file = paths.config_active
        config_file.parent.mkdir(parents=True, exist_ok=True)

        with open(config_file, 'w') as f:
            yaml.safe_dump(self._config, f, default_flow_style=False, sort_keys=False)

    def get(self, key: str, default: Any = None) -> Any:
        """Get a config value using dot notation (e.g., 'lateral.max_workers')."""
        keys = key.split('.')
        value = self._config
        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return value

    def set(self, key: str, value: Any):
        """Set a config value using dot notation."""
        keys = key.split('.')
        config = self._config
        for k in keys[:-1]:
            if k not in config:
                config[k] = {}
            config = config[k]
        config[keys[-1]] = value

    def get_broad_principals(self) -> List[str]:
        """Get the identities treated as broad / unprivileged principals."""
        return list(self.get('privesc.broad_principals', []))

    def get_probe_timeouts(self) -> Dict[str, float]:
        """Get per-step timeouts (seconds) for the connectivity probe."""
        return {
            'ping': float(self.get('lateral.ping_timeout', 2)),
            'session': float(self.get('lateral.session_timeout', 15)),
            'share': float(self.get('lateral.share_timeout', 10)),
            'rpc': float(self.get('lateral.rpc_timeout', 15)),
        }

    def get_max_workers(self) -> int:
        """Get the size of the host probing worker pool."""
        return max(1, int(self.get('lateral.max_workers', 8)))

    def get_report_formats(self) -> List[str]:
        """Get the enabled report output formats."""
        return list(self.get('reporting.formats', ['csv', 'json']))

    def to_dict(self) -> Dict[str, Any]:
        """Return full config as dictionary."""
        return copy.deepcopy(self._config)

    def reload(self):
        """Reload configuration from file."""
        self._initialized = False
        self.__init__()


# Singleton instance
config = Config()


def get_config() -> Config:
    """Get the singleton config instance."""
    return config


def load_config() -> Dict[str, Any]:
    """Load and return config as dictionary."""
    return config.to_dict()


if __name__ == '__main__':
    c = get_config()
    print(f"Config file: {paths.config_active}")
    print(f"Broad principals: {c.get_broad_principals()}")
    print(f"Probe timeouts: {c.get_probe_timeouts()}")
    print(f"Workers: {c.get_max_workers()}")
