"""
Statement export - formatted Excel workbook (openpyxl)

Renders a stored StatementDocument as an XLSX sheet: letterhead title,
header block, credit/debit/balance table, totals row and the closing
balance in words.
"""
import io
from datetime import datetime
from decimal import Decimal
from typing import Any

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from haulage.core.config import settings
from haulage.domain.money import quantize_money
from haulage.domain.services.statement_service import StatementDocument


# ==================== Styles ====================

_HEADER_FILL = PatternFill(start_color="1F4E79", end_color="1F4E79", fill_type="solid")
_HEADER_FONT = Font(name="Arial", bold=True, color="FFFFFF", size=11)
_TITLE_FONT = Font(name="Arial", bold=True, size=14)
_SUBTITLE_FONT = Font(name="Arial", bold=False, size=10, color="666666")
_LABEL_FONT = Font(name="Arial", bold=True, size=10)
_TOTAL_FONT = Font(name="Arial", bold=True, size=11)
_TOTAL_FILL = PatternFill(start_color="D9E2F3", end_color="D9E2F3", fill_type="solid")
_CURRENCY_FORMAT = '#,##0.00'

_THIN_BORDER = Border(
    left=Side(style="thin"),
    right=Side(style="thin"),
    top=Side(style="thin"),
    bottom=Side(style="thin"),
)

_TEXT_ALIGN = Alignment(horizontal="left", vertical="center", wrap_text=True)
_NUMBER_ALIGN = Alignment(horizontal="right", vertical="center")


def _auto_fit_columns(ws: Any) -> None:
    """Fit column widths to content"""
    for col_cells in ws.columns:
        max_length = 0
        col_letter = get_column_letter(col_cells[0].column)
        for cell in col_cells:
            if cell.value is not None:
                max_length = max(max_length, len(str(cell.value)))
        # 10 to 50 characters
        ws.column_dimensions[col_letter].width = min(max(max_length + 4, 10), 50)


def _apply_row_style(ws: Any, row: int, col_count: int, font: Any = None, fill: Any = None) -> None:
    for col in range(1, col_count + 1):
        cell = ws.cell(row=row, column=col)
        if font is not None:
            cell.font = font
        if fill is not None:
            cell.fill = fill
        cell.border = _THIN_BORDER
        if cell.alignment.horizontal is None:
            cell.alignment = _TEXT_ALIGN


def _format_currency_cell(cell: Any) -> None:
    cell.number_format = _CURRENCY_FORMAT
    cell.alignment = _NUMBER_ALIGN


# Excel treats these leading characters as a formula
_FORMULA_PREFIXES = ("=", "+", "-", "@", "\t", "\r")


def _sanitize_text(value: str) -> str:
    """Neutralise text that Excel would evaluate as a formula.

    A leading apostrophe makes Excel show the text as-is.
    """
    if isinstance(value, str) and value and value[0] in _FORMULA_PREFIXES:
        return f"'{value}"
    return value


# ==================== Amount in words ====================

_UNITS = ["", "One", "Two", "Three", "Four", "Five", "Six", "Seven", "Eight", "Nine"]
_TEENS = ["Ten", "Eleven", "Twelve", "Thirteen", "Fourteen", "Fifteen", "Sixteen",
          "Seventeen", "Eighteen", "Nineteen"]
_TENS = ["", "", "Twenty", "Thirty", "Forty", "Fifty", "Sixty", "Seventy", "Eighty", "Ninety"]
_SCALES = ["", "Thousand", "Million", "Billion", "Trillion"]


def _below_hundred(n: int) -> list[str]:
    tens, units = divmod(n, 10)
    if tens > 1:
        return [_TENS[tens]] + ([_UNITS[units]] if units else [])
    if tens == 1:
        return [_TEENS[units]]
    return [_UNITS[units]] if units else []


def _below_thousand(n: int) -> list[str]:
    hundreds, rest = divmod(n, 100)
    words = [_UNITS[hundreds], "Hundred"] if hundreds else []
    return words + _below_hundred(rest)


def _integer_words(n: int) -> str:
    if n == 0:
        return "Zero"
    groups = []
    scale = 0
    while n > 0:
        n, chunk = divmod(n, 1000)
        if chunk:
            words = _below_thousand(chunk)
            if _SCALES[scale]:
                words.append(_SCALES[scale])
            groups.insert(0, " ".join(words))
        scale += 1
    return " ".join(groups)


def amount_in_words(amount: Any) -> str:
    """``1250.50`` -> ``One Thousand Two Hundred Fifty Dirhams and Fifty Fils Only``"""
    value = quantize_money(amount)
    prefix = "Minus " if value < 0 else ""
    value = abs(value)

    whole = int(value)
    fils = int((value - whole) * 100)
    currency = settings.CURRENCY_NAME
    subunit = settings.CURRENCY_SUBUNIT_NAME

    if whole and fils:
        words = f"{_integer_words(whole)} {currency} and {_integer_words(fils)} {subunit}"
    elif fils:
        words = f"{_integer_words(fils)} {subunit}"
    else:
        words = f"{_integer_words(whole)} {currency}"
    return f"{prefix}{words} Only"


# ==================== Statement - Excel ====================


def generate_statement_excel(
    document: StatementDocument,
    letterhead: str = "",
    title: str = "",
) -> bytes:
    """
    Build the XLSX export of a statement.

    Args:
        document: stored statement snapshot
        letterhead: company letterhead shown above the title
        title: statement type, e.g. "Statement of Account"

    Returns:
        bytes - XLSX file content
    """
    wb = Workbook()
    ws = wb.active
    ws.title = "Statement"

    heading = _sanitize_text(letterhead or settings.DEFAULT_LETTERHEAD)
    subtitle = f"{_sanitize_text(title or settings.STATEMENT_TYPE)} | Generated: {datetime.now().strftime('%Y-%m-%d %H:%M')}"
    ws.cell(row=1, column=1, value=heading).font = _TITLE_FONT
    ws.cell(row=2, column=1, value=subtitle).font = _SUBTITLE_FONT

    header_block = [
        ("Contractor", document.contractor_name),
        ("Date", document.date),
        ("LPO No", document.lpo_no),
        ("Site", document.site),
    ]
    for i, (label, value) in enumerate(header_block):
        row = 4 + i
        ws.cell(row=row, column=1, value=label).font = _LABEL_FONT
        ws.cell(row=row, column=2, value=_sanitize_text(value))

    data_row = 4 + len(header_block) + 1
    headers = ["Date", "Description", "Credit", "Debit", "Balance"]
    col_count = len(headers)
    for col, header in enumerate(headers, 1):
        ws.cell(row=data_row, column=col, value=header)
    _apply_row_style(ws, data_row, col_count, font=_HEADER_FONT, fill=_HEADER_FILL)

    for i, line in enumerate(document.items):
        row = data_row + 1 + i
        ws.cell(row=row, column=1, value=_sanitize_text(line.date))
        ws.cell(row=row, column=2, value=_sanitize_text(line.description))
        for col, amount in ((3, line.credit), (4, line.debit), (5, line.balance)):
            _format_currency_cell(ws.cell(row=row, column=col, value=float(amount)))
        _apply_row_style(ws, row, col_count)

    total_row = data_row + 1 + len(document.items)
    ws.cell(row=total_row, column=1, value="Total")
    for col, amount in ((3, document.total_credit), (4, document.total_debit), (5, document.closing_balance)):
        _format_currency_cell(ws.cell(row=total_row, column=col, value=float(amount)))
    _apply_row_style(ws, total_row, col_count, font=_TOTAL_FONT, fill=_TOTAL_FILL)

    words_row = total_row + 2
    ws.cell(row=words_row, column=1, value="Balance in words").font = _LABEL_FONT
    ws.cell(row=words_row, column=2, value=amount_in_words(Decimal(document.closing_balance)))

    _auto_fit_columns(ws)

    output = io.BytesIO()
    wb.save(output)
    output.seek(0)
    return output.getvalue()
