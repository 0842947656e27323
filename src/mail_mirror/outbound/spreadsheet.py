"""Spreadsheet send batches.

The first row is a header row. Columns are matched case-insensitively:
`Email` is required, `Subject` and `Message` are optional.
"""

from __future__ import annotations

import io
from dataclasses import dataclass

from mail_mirror.exceptions import SpreadsheetError

DEFAULT_SUBJECT = "No Subject"


@dataclass(frozen=True)
class SendRow:
    row_number: int
    to: str
    subject: str
    message: str


def _cell_text(value: object) -> str:
    if value is None:
        return ""
    return str(value).strip()


def parse_send_rows(file_content: bytes) -> list[SendRow]:
    """Parse an .xlsx workbook into send rows.

    Rows without an address are skipped.

    Raises:
        SpreadsheetError: If the workbook is unreadable, empty, or has no Email column.
    """

    import openpyxl

    try:
        wb = openpyxl.load_workbook(io.BytesIO(file_content), read_only=True, data_only=True)
    except Exception as exc:  # noqa: BLE001 - openpyxl raises a wide range of errors
        raise SpreadsheetError(f"could not read workbook: {exc}") from exc

    try:
        rows = list(wb.active.iter_rows(values_only=True))
    finally:
        wb.close()

    if len(rows) < 2:
        raise SpreadsheetError("spreadsheet has no data rows")

    headers = [_cell_text(h).lower() for h in rows[0]]
    if "email" not in headers:
        raise SpreadsheetError("spreadsheet must contain an 'Email' column")

    email_idx = headers.index("email")
    subject_idx = headers.index("subject") if "subject" in headers else None
    message_idx = headers.index("message") if "message" in headers else None

    def cell(row: tuple, idx: int | None) -> str:
        if idx is None or idx >= len(row):
            return ""
        return _cell_text(row[idx])

    parsed: list[SendRow] = []
    for number, row in enumerate(rows[1:], start=2):
        to = cell(row, email_idx)
        if not to:
            continue
        parsed.append(
            SendRow(
                row_number=number,
                to=to,
                subject=cell(row, subject_idx) or DEFAULT_SUBJECT,
                message=cell(row, message_idx),
            )
        )
    return parsed
