import io
from typing import Iterable

from openpyxl import Workbook
from openpyxl.styles import Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from app.expenses.domain.models import SHEET_HEADER, Expense, build_sheet_row

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

COLUMN_WIDTHS = (12, 18, 20, 24, 10, 10, 14, 14, 24, 14, 20, 38)
INVALID_TITLE_CHARS = set("[]:*?/\\")


def approved_expenses_workbook(sheet_title: str, expenses: Iterable[Expense]) -> io.BytesIO:
    """Offline copy of approved expenses, same columns as the Google sheet tabs."""
    wb = Workbook()
    ws = wb.active
    # Excel rejects sheet titles over 31 characters or containing []:*?/\
    title = "".join(ch for ch in sheet_title if ch not in INVALID_TITLE_CHARS)
    ws.title = title[:31] or "Expenses"

    header_font = Font(bold=True, color="FFFFFF")
    header_fill = PatternFill(start_color="4472C4", end_color="4472C4", fill_type="solid")
    thin_border = Border(
        left=Side(style='thin'),
        right=Side(style='thin'),
        top=Side(style='thin'),
        bottom=Side(style='thin')
    )

    for col, header in enumerate(SHEET_HEADER, 1):
        cell = ws.cell(row=1, column=col, value=header)
        cell.font = header_font
        cell.fill = header_fill
        cell.border = thin_border

    for row_num, expense in enumerate(expenses, 2):
        row = build_sheet_row(
            expense,
            approved_by=expense.approved_by or "",
            approved_at=expense.approved_at or expense.updated_at,
        )
        for col, value in enumerate(row.values, 1):
            ws.cell(row=row_num, column=col, value=value).border = thin_border

    for col, width in enumerate(COLUMN_WIDTHS, 1):
        ws.column_dimensions[get_column_letter(col)].width = width

    output = io.BytesIO()
    wb.save(output)
    output.seek(0)
    return output
