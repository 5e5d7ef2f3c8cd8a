"""
Purple Sweep - Scanner Modules
"""

from .base import BaseScanner
from .directory_scanner import DirectoryScanner
from .lateral_scanner import ConnectivityProbe, LateralScanner, RemoteChecks, SystemRemoteChecks
from .privesc_scanner import PrincipalMatcher, PrivescScanner

__all__ = [
    'BaseScanner',
    'ConnectivityProbe',
    'DirectoryScanner',
    'LateralScanner',
    'PrincipalMatcher',
    'PrivescScanner',
    'RemoteChecks',
    'SystemRemoteChecks',
]
