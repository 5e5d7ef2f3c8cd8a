#!/usr/bin/env python3
"""
Purple Sweep - Report Exporter
Writes findings, evaluation gaps, reachability results and directory
tables into a session's results directory as CSV, JSON and XLSX.
"""

import csv
import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill

from ..lib.logger import get_logger
from ..lib.models import (
    PROTOCOL_ORDER, DirectoryTable, EvaluationGap, Finding, HostProbeResult,
)
from ..lib.paths import get_paths

FINDING_HEADERS = ['category', 'subject', 'severity', 'detail']
GAP_HEADERS = ['rule', 'subject', 'kind', 'path', 'reason']
REACHABILITY_HEADERS = ['host'] + [p.value for p in PROTOCOL_ORDER]


def format_detail(detail) -> str:
    return '; '.join(f"{key}={value}" for key, value in detail.items())


class ReportExporter:
    """Tabular report sink for one scan session."""

    def __init__(self, session_id: str, output_dir: Optional[Path] = None, logger=None):
        self.session_id = session_id
        self.output_dir = Path(output_dir) if output_dir else get_paths().session_dir(session_id)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.logger = logger or get_logger('exporter')

    # ------------------------------------------------------------------
    # Row builders
    # ------------------------------------------------------------------

    @staticmethod
    def finding_rows(findings: Iterable[Finding]) -> List[List[str]]:
        return [
            [f.category.value, f.subject_name, f.severity, format_detail(f.detail)]
            for f in findings
        ]

    @staticmethod
    def gap_rows(gaps: Iterable[EvaluationGap]) -> List[List[str]]:
        return [[g.rule, g.subject_name, g.kind.value, g.path, g.reason] for g in gaps]

    @staticmethod
    def reachability_rows(results: Iterable[HostProbeResult]) -> List[List[str]]:
        rows = []
        for result in results:
            row = result.to_row()
            rows.append([row[h] for h in REACHABILITY_HEADERS])
        return rows

    @staticmethod
    def table_rows(table: DirectoryTable) -> List[List[str]]:
        columns = table.columns
        return [['' if row.get(c) is None else str(row.get(c)) for c in columns]
                for row in table.rows]

    # ------------------------------------------------------------------
    # Writers
    # ------------------------------------------------------------------

    def write_csv(self, name: str, headers: Sequence[str], rows: Iterable[Sequence[Any]]) -> Path:
        output_path = self.output_dir / f"{name}.csv"
        with open(output_path, 'w', newline='', encoding='utf-8') as f:
            writer = csv.writer(f)
            writer.writerow(headers)
            writer.writerows(rows)
        self.logger.info(f"CSV export saved to {output_path}")
        return output_path

    def write_json(self, name: str, data: Any) -> Path:
        output_path = self.output_dir / f"{name}.json"
        with open(output_path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, default=str)
        self.logger.info(f"JSON export saved to {output_path}")
        return output_path

    def write_workbook(self, name: str, sheets: Dict[str, tuple]) -> Path:
        """Write one worksheet per ``{title: (headers, rows)}`` entry."""
        output_path = self.output_dir / f"{name}.xlsx"
        wb = Workbook()
        wb.remove(wb.active)

        header_fill = PatternFill(start_color="667EEA", end_color="667EEA", fill_type="solid")
        header_font = Font(bold=True, color="FFFFFF")

        for title, (headers, rows) in sheets.items():
            # Excel caps sheet titles at 31 characters
            ws = wb.create_sheet(title=title[:31])
            for col, header in enumerate(headers, 1):
                cell = ws.cell(row=1, column=col)
                cell.value = header
                cell.fill = header_fill
                cell.font = header_font
                cell.alignment = Alignment(vertical='top')
            for row_index, row in enumerate(rows, 2):
                for col, value in enumerate(row, 1):
                    ws.cell(row=row_index, column=col).value = value
            ws.freeze_panes = 'A2'

        wb.save(output_path)
        self.logger.info(f"Workbook saved to {output_path}")
        return output_path

    # ------------------------------------------------------------------
    # Session export
    # ------------------------------------------------------------------

    def export_session(self, findings: Sequence[Finding] = (),
                       gaps: Sequence[EvaluationGap] = (),
                       reachability: Sequence[HostProbeResult] = (),
                       tables: Optional[Dict[str, DirectoryTable]] = None,
                       formats: Iterable[str] = ('csv', 'json'),
                       summary: Optional[Dict] = None) -> Dict[str, Path]:
        """Write every non-empty section in each requested format."""
        formats = set(formats)
        tables = tables or {}

        sheets: Dict[str, tuple] = {}
        if findings:
            sheets['privesc_findings'] = (FINDING_HEADERS, self.finding_rows(findings))
        if gaps:
            sheets['privesc_gaps'] = (GAP_HEADERS, self.gap_rows(gaps))
        if reachability:
            sheets['lateral_reachability'] = (REACHABILITY_HEADERS,
                                              self.reachability_rows(reachability))
        for name, table in tables.items():
            sheets[f"directory_{name}"] = (table.columns, self.table_rows(table))

        written: Dict[str, Path] = {}
        if 'csv' in formats:
            for name, (headers, rows) in sheets.items():
                written[f"{name}.csv"] = self.write_csv(name, headers, rows)
        if 'xlsx' in formats and sheets:
            written['assessment.xlsx'] = self.write_workbook('assessment', sheets)
        if 'json' in formats:
            written['assessment.json'] = self.write_json('assessment', {
                'session_id': self.session_id,
                'summary': summary or {},
                'findings': [f.to_dict() for f in findings],
                'gaps': [g.to_dict() for g in gaps],
                'reachability': [r.to_dict() for r in reachability],
                'directory': {name: t.rows for name, t in tables.items()},
            })
        return written
