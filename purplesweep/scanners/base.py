#!/usr/bin/env python3
"""
Purple Sweep - Base Scanner Class
Provides common functionality for all scanner modules.
"""

import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..lib.config import get_config
from ..lib.logger import get_logger, get_scan_logger
from ..lib.paths import get_paths


class BaseScanner(ABC):
    """Base class for all scanners."""

    SCANNER_NAME = "base"
    SCANNER_DESCRIPTION = "Base scanner class"

    def __init__(self, session_id: Optional[str] = None,
                 logger: Optional[logging.Logger] = None):
        self.paths = get_paths()
        self.config = get_config()

        self.session_id = session_id
        if logger is not None:
            self.scan_logger = logger
        elif session_id:
            self.scan_logger = get_scan_logger(session_id)
        else:
            self.scan_logger = get_logger(self.SCANNER_NAME)

        self.results: List[Any] = []
        self.findings: List[Any] = []
        self.degraded: List[str] = []
        self.start_time: Optional[datetime] = None
        self.end_time: Optional[datetime] = None

    @abstractmethod
    def scan(self, targets: Optional[List[str]] = None, **kwargs) -> Dict:
        """Execute the scan. Must be implemented by subclasses."""
        pass

    def mark_degraded(self, part: str, reason: Any):
        """Record that one part of the scan could not run to completion."""
        self.degraded.append(part)
        self.scan_logger.warning(f"{part} degraded: {reason}")

    @staticmethod
    def _serialize(item: Any) -> Any:
        return item.to_dict() if hasattr(item, 'to_dict') else item

    def save_results(self, filename: str = None) -> Path:
        """Save scan results to file."""
        if not filename:
            timestamp = datetime.utcnow().strftime('%Y%m%d_%H%M%S')
            filename = f"{self.SCANNER_NAME}_{timestamp}.json"

        if self.session_id:
            output_dir = self.paths.session_dir(self.session_id)
        else:
            output_dir = self.paths.results
            output_dir.mkdir(parents=True, exist_ok=True)

        output_path = output_dir / filename

        output_data = dict(self.get_summary())
        output_data['results'] = [self._serialize(r) for r in self.results]
        output_data['findings'] = [self._serialize(f) for f in self.findings]
        output_data.update(self._extra_output())

        with open(output_path, 'w') as f:
            json.dump(output_data, f, indent=2, default=str)

        self.scan_logger.info(f"Results saved to {output_path}")
        return output_path

    def _extra_output(self) -> Dict[str, Any]:
        """Scanner-specific sections appended to the saved results."""
        return {}

    def _count_by_severity(self) -> Dict[str, int]:
        """Count findings by severity."""
        counts = {'CRITICAL': 0, 'HIGH': 0, 'MEDIUM': 0, 'LOW': 0, 'INFO': 0}
        for finding in self.findings:
            sev = getattr(finding, 'severity', 'INFO').upper()
            if sev in counts:
                counts[sev] += 1
        return counts

    def get_summary(self) -> Dict:
        """Get scan summary."""
        return {
            'scanner': self.SCANNER_NAME,
            'session_id': self.session_id,
            'start_time': self.start_time.isoformat() if self.start_time else None,
            'end_time': self.end_time.isoformat() if self.end_time else None,
            'duration_seconds': (self.end_time - self.start_time).total_seconds()
            if self.end_time and self.start_time else None,
            'results_count': len(self.results),
            'findings_count': len(self.findings),
            'findings_by_severity': self._count_by_severity(),
            'degraded': list(self.degraded),
        }
