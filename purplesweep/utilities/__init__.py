"""
Purple Sweep - Utilities
Report export and assessment orchestration.
"""

from .exporter import ReportExporter
from .orchestrator import AssessmentOrchestrator

__all__ = ['ReportExporter', 'AssessmentOrchestrator']
