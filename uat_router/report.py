"""
Excel export of batch routing results.

Generates a formatted workbook with one row per work item:
- Bold, colored headers
- Fixed column widths
- Failed items highlighted
"""

import logging
from pathlib import Path
from typing import Any, Union

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from .models import BatchItemError, BatchResponse, RoutingResponse


logger = logging.getLogger(__name__)


class ReportError(Exception):
    """Error during report generation."""
    pass


# Define column configuration
COLUMN_CONFIG = [
    {"header": "Work Item ID", "width": 14},
    {"header": "Status", "width": 10},
    {"header": "Routing Tag", "width": 22},
    {"header": "Assigned To", "width": 25},
    {"header": "Priority", "width": 10},
    {"header": "Service", "width": 25},
    {"header": "Solution Area", "width": 22},
    {"header": "DRI", "width": 20},
    {"header": "Requestor", "width": 30},
    {"header": "Team", "width": 10},
    {"header": "Milestone Status", "width": 18},
    {"header": "Reasoning", "width": 60},
    {"header": "Error", "width": 40},
]


def result_to_row(result: Union[RoutingResponse, BatchItemError]) -> list[Any]:
    """
    Convert one batch entry to a row of values.

    Args:
        result: Successful routing response or per-item error.

    Returns:
        List of cell values matching COLUMN_CONFIG order.
    """
    if isinstance(result, BatchItemError):
        return [result.id, "FAILED"] + [""] * (len(COLUMN_CONFIG) - 3) + [result.error]

    status = "PARSE_ERROR" if result.parse_error else "OK"
    return [
        result.id,
        status,
        result.routing.tag or "",
        result.routing.assigned_to or "",
        result.routing.priority or "",
        result.service.name,
        result.service.solution_area,
        result.service.dri,
        result.requestor.email,
        result.requestor.team,
        result.milestone.status,
        "\n".join(result.reasoning),
        result.parse_error or "",
    ]


class ExcelReportGenerator:
    """Generator for batch routing workbooks."""

    # Style configuration
    HEADER_FONT = Font(bold=True, color="FFFFFF", size=11)
    HEADER_FILL = PatternFill(start_color="2F5496", end_color="2F5496", fill_type="solid")
    HEADER_ALIGNMENT = Alignment(horizontal="center", vertical="center", wrap_text=True)

    CELL_ALIGNMENT = Alignment(vertical="top", wrap_text=True)
    CELL_BORDER = Border(
        left=Side(style="thin", color="D0D0D0"),
        right=Side(style="thin", color="D0D0D0"),
        top=Side(style="thin", color="D0D0D0"),
        bottom=Side(style="thin", color="D0D0D0"),
    )

    FAILED_FILL = PatternFill(start_color="FCE4E4", end_color="FCE4E4", fill_type="solid")

    def generate(self, batch: BatchResponse, output_path: Path) -> Path:
        """
        Write a batch result to an Excel file.

        Args:
            batch: Batch routing results, in request order.
            output_path: Destination .xlsx path.

        Returns:
            Path to the generated file.

        Raises:
            ReportError: If the workbook cannot be written.
        """
        try:
            wb = Workbook()
            ws = wb.active
            ws.title = "Routing Results"

            self._write_headers(ws)
            self._write_data(ws, batch)
            self._apply_column_widths(ws)
            ws.freeze_panes = "A2"

            output_path.parent.mkdir(parents=True, exist_ok=True)
            wb.save(output_path)

            logger.info(f"Excel report saved to: {output_path}")
            return output_path

        except Exception as e:
            logger.error(f"Failed to generate Excel report: {e}")
            raise ReportError(f"Report generation failed: {e}") from e

    def _write_headers(self, ws: Worksheet) -> None:
        """Write and style header row."""
        for col_idx, col_config in enumerate(COLUMN_CONFIG, 1):
            cell = ws.cell(row=1, column=col_idx, value=col_config["header"])
            cell.font = self.HEADER_FONT
            cell.fill = self.HEADER_FILL
            cell.alignment = self.HEADER_ALIGNMENT
            cell.border = self.CELL_BORDER

        ws.row_dimensions[1].height = 30

    def _write_data(self, ws: Worksheet, batch: BatchResponse) -> None:
        """Write data rows, highlighting failed items."""
        for row_idx, result in enumerate(batch.results, 2):
            failed = isinstance(result, BatchItemError)
            for col_idx, value in enumerate(result_to_row(result), 1):
                cell = ws.cell(row=row_idx, column=col_idx, value=value)
                cell.alignment = self.CELL_ALIGNMENT
                cell.border = self.CELL_BORDER
                if failed:
                    cell.fill = self.FAILED_FILL

    def _apply_column_widths(self, ws: Worksheet) -> None:
        """Apply column widths from configuration."""
        for col_idx, col_config in enumerate(COLUMN_CONFIG, 1):
            ws.column_dimensions[get_column_letter(col_idx)].width = col_config["width"]


def generate_batch_report(batch: BatchResponse, output_path: Path) -> Path:
    """
    Convenience function to generate a batch report.

    Args:
        batch: Batch routing results.
        output_path: Destination .xlsx path.

    Returns:
        Path to generated report.
    """
    return ExcelReportGenerator().generate(batch, output_path)
