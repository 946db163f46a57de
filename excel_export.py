"""Excel export utilities for search result workbooks"""
from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill, Alignment, Border, Side
from openpyxl.utils import get_column_letter
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE
from typing import List

SHEET_TITLE = "results"

# Style definitions
header_fill = PatternFill(start_color="1F4E78", end_color="1F4E78", fill_type="solid")
header_font = Font(bold=True, color="FFFFFF", size=11)
null_font = Font(italic=True, color="808080")
border = Border(
    left=Side(style='thin'),
    right=Side(style='thin'),
    top=Side(style='thin'),
    bottom=Side(style='thin')
)


def create_results_workbook(header: List[str]) -> Workbook:
    """
    Create a workbook with a single styled results sheet.

    Args:
        header: Column names for the first row (context columns included)

    Returns:
        Workbook whose active sheet holds the header row
    """
    wb = Workbook()
    ws = wb.active
    ws.title = SHEET_TITLE
    for col_idx, name in enumerate(header, 1):
        cell = ws.cell(row=1, column=col_idx, value=_cell_text(name))
        cell.data_type = "s"
        cell.fill = header_fill
        cell.font = header_font
        cell.border = border
        cell.alignment = Alignment(vertical='center', horizontal='left')
    ws.freeze_panes = "A2"
    return wb


def _cell_text(value):
    # openpyxl refuses control characters other than tab/newline/CR
    value = value.encode("utf-8", "surrogateescape").decode("utf-8", "replace")
    return ILLEGAL_CHARACTERS_RE.sub("", value)


def append_rows(wb: Workbook, rows: List[list]):
    """Append result rows; NULL renders as an italic NULL marker."""
    ws = wb[SHEET_TITLE]
    for row_data in rows:
        row_idx = ws.max_row + 1
        for col_idx, value in enumerate(row_data, 1):
            cell = ws.cell(row=row_idx, column=col_idx, value="NULL" if value is None else _cell_text(value))
            # Stored text starting with "=" stays text, never a formula
            cell.data_type = "s"
            cell.alignment = Alignment(wrap_text=True, vertical='top', horizontal='left')
            cell.border = border
            if value is None:
                cell.font = null_font


def save_workbook(wb: Workbook, path: str):
    ws = wb[SHEET_TITLE]
    # Auto-adjust column widths
    for column in ws.columns:
        max_length = 0
        col_letter = get_column_letter(column[0].column)
        for cell in column:
            if cell.value:
                max_length = max(max_length, len(str(cell.value)))
        ws.column_dimensions[col_letter].width = min(max_length + 2, 50)  # Cap at 50
    wb.save(path)
