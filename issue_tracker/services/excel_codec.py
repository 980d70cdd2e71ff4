"""
Excel (.xlsx) export and import of issues, built on openpyxl.

Export writes one row per issue followed by a summary block. Import reads
the first worksheet; columns are located by header name when the sheet
uses the export layout, otherwise by position (title, description,
address, category).
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from io import BytesIO
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Tuple

import openpyxl
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter

from ..labels import NO, YES, format_date, translate_priority, translate_status
from ..models.models import Issue, IssueStatus

logger = logging.getLogger(__name__)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
SHEET_TITLE = "Αναφορές Βλαβών"
SUMMARY_TITLE = "ΣΥΝΟΨΗ ΑΝΑΦΟΡΩΝ"
TOTAL_LABEL = "Σύνολο Αναφορών:"
EMERGENCY_LABEL = "Επείγοντα:"

# (header, width)
EXPORT_COLUMNS: List[Tuple[str, int]] = [
    ("Αρ. Αναφοράς", 15),
    ("Τίτλος", 30),
    ("Περιγραφή", 40),
    ("Διεύθυνση", 30),
    ("Κατηγορία", 20),
    ("Υποκατηγορία", 20),
    ("Κατάσταση", 15),
    ("Προτεραιότητα", 15),
    ("Επείγον", 10),
    ("Δημιουργός", 25),
    ("Email Δημιουργού", 25),
    ("Τηλέφωνο Δημιουργού", 20),
    ("Ανατέθηκε σε", 25),
    ("Ημερομηνία Δημιουργίας", 20),
    ("Ημερομηνία Ολοκλήρωσης", 20),
    ("Φωτογραφίες", 15),
    ("Σχόλια", 15),
    ("Γεωγραφικό Πλάτος", 18),
    ("Γεωγραφικό Μήκος", 18),
]
STATUS_COLUMN = 7

HEADER_FILL = PatternFill(start_color="FFE0E0E0", end_color="FFE0E0E0", fill_type="solid")
SUMMARY_FILL = PatternFill(start_color="FFD0D0D0", end_color="FFD0D0D0", fill_type="solid")
EMERGENCY_FILL = PatternFill(start_color="FFFFEBEE", end_color="FFFFEBEE", fill_type="solid")
STATUS_FILLS = {
    IssueStatus.COMPLETED: PatternFill(start_color="FFE8F5E8", end_color="FFE8F5E8", fill_type="solid"),
    IssueStatus.IN_PROGRESS: PatternFill(start_color="FFFFF3E0", end_color="FFFFF3E0", fill_type="solid"),
}

# Import field -> header used by the export layout
IMPORT_HEADERS = {
    "title": "Τίτλος",
    "description": "Περιγραφή",
    "address": "Διεύθυνση",
    "category": "Κατηγορία",
}
IMPORT_POSITIONS = {"title": 1, "description": 2, "address": 3, "category": 4}


def _full_name(user) -> str:
    return f"{user.first_name} {user.last_name}" if user else ""


def issue_row(issue: Issue) -> list:
    creator = issue.created_by
    return [
        issue.reference_number,
        issue.title,
        issue.description,
        issue.address,
        issue.category.name if issue.category else "",
        issue.subcategory.name if issue.subcategory else "",
        translate_status(issue.status),
        translate_priority(issue.priority),
        YES if issue.is_emergency else NO,
        _full_name(creator),
        creator.email if creator else "",
        (creator.phone or "") if creator else "",
        _full_name(issue.assigned_to),
        format_date(issue.created_at),
        format_date(issue.completed_at),
        issue.photo_count,
        issue.comment_count,
        issue.latitude if issue.latitude is not None else "",
        issue.longitude if issue.longitude is not None else "",
    ]


def export_issues(issues: List[Issue]) -> bytes:
    """Render issues into an .xlsx workbook and return its bytes."""
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = SHEET_TITLE

    header_font = Font(bold=True)
    for col_num, (header, width) in enumerate(EXPORT_COLUMNS, 1):
        cell = ws.cell(row=1, column=col_num)
        cell.value = header
        cell.font = header_font
        cell.fill = HEADER_FILL
        cell.alignment = Alignment(horizontal="center", vertical="center")
        ws.column_dimensions[get_column_letter(col_num)].width = width

    for row_num, issue in enumerate(issues, 2):
        for col_num, value in enumerate(issue_row(issue), 1):
            cell = ws.cell(row=row_num, column=col_num)
            cell.value = value
            # Color code emergency issues
            if issue.is_emergency:
                cell.fill = EMERGENCY_FILL
        # Color code by status
        status_fill = STATUS_FILLS.get(issue.status)
        if status_fill is not None:
            ws.cell(row=row_num, column=STATUS_COLUMN).fill = status_fill

    _write_summary(ws, issues)

    buffer = BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def _write_summary(ws, issues: List[Issue]) -> None:
    start = ws.max_row + 3
    ws.merge_cells(start_row=start, start_column=1, end_row=start, end_column=3)
    title = ws.cell(row=start, column=1)
    title.value = SUMMARY_TITLE
    title.font = Font(bold=True, size=14)
    title.fill = SUMMARY_FILL

    row = start + 1
    ws.cell(row=row, column=1, value=TOTAL_LABEL)
    ws.cell(row=row, column=2, value=len(issues))
    row += 1

    status_counts = Counter(issue.status for issue in issues)
    for status in IssueStatus:
        if status_counts.get(status):
            ws.cell(row=row, column=1, value=f"{translate_status(status)}:")
            ws.cell(row=row, column=2, value=status_counts[status])
            row += 1

    ws.cell(row=row, column=1, value=EMERGENCY_LABEL)
    ws.cell(row=row, column=2, value=sum(1 for issue in issues if issue.is_emergency))


# -------------------------------------------------------
# Import
# -------------------------------------------------------
@dataclass
class ImportRow:
    number: int  # 1-indexed data row, header excluded
    title: str
    description: str
    address: str
    category: str

    @property
    def is_complete(self) -> bool:
        return all([self.title, self.description, self.address, self.category])


@dataclass
class ImportReport:
    successful: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)

    def success(self) -> None:
        self.successful += 1

    def failure(self, row_number: int, reason: str) -> None:
        self.failed += 1
        self.errors.append(f"Row {row_number}: {reason}")

    def to_dict(self) -> Dict[str, object]:
        return {"successful": self.successful, "failed": self.failed, "errors": self.errors}


class InvalidWorkbook(Exception):
    pass


def _text(value) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _column_map(header: Iterable) -> Dict[str, int]:
    names = [_text(value) for value in header]
    located = {}
    for key, label in IMPORT_HEADERS.items():
        if label in names:
            located[key] = names.index(label) + 1
    if len(located) == len(IMPORT_HEADERS):
        return located
    return dict(IMPORT_POSITIONS)


def read_import_rows(content: bytes) -> Iterator[ImportRow]:
    """
    Yield data rows from the first worksheet.

    Blank rows are skipped but still count towards row numbers. Reading stops
    at the summary block of an exported file.
    """
    try:
        wb = openpyxl.load_workbook(BytesIO(content), data_only=True)
    except Exception as e:
        raise InvalidWorkbook(str(e)) from e

    ws = wb.worksheets[0] if wb.worksheets else None
    if ws is None:
        raise InvalidWorkbook("Workbook has no worksheets")

    rows = ws.iter_rows(values_only=True)
    header = next(rows, None)
    if header is None:
        return
    columns = _column_map(header)

    for number, values in enumerate(rows, 1):
        if values is None or all(_text(value) == "" for value in values):
            continue
        if _text(values[0]) == SUMMARY_TITLE:
            break

        def cell(key: str) -> str:
            index = columns[key] - 1
            return _text(values[index]) if index < len(values) else ""

        yield ImportRow(
            number=number,
            title=cell("title"),
            description=cell("description"),
            address=cell("address"),
            category=cell("category"),
        )


def import_issues(
    content: bytes,
    resolve_category: Callable[[str], Optional[int]],
    create_issue: Callable[[ImportRow, int], None],
) -> ImportReport:
    """
    Process every data row independently.

    `resolve_category` maps a category name to an active category id;
    `create_issue` persists one row and may raise, which fails only that row.
    """
    report = ImportReport()
    for row in read_import_rows(content):
        if not row.is_complete:
            report.failure(row.number, "Missing required fields")
            continue

        category_id = resolve_category(row.category)
        if category_id is None:
            report.failure(row.number, f"Category '{row.category}' not found")
            continue

        try:
            create_issue(row, category_id)
        except Exception as e:
            logger.warning(f"Import row {row.number} failed: {e}")
            report.failure(row.number, str(e) or e.__class__.__name__)
            continue
        report.success()
    return report
