"""Office spreadsheets (XLSX / XLS) → CSV text, one block per sheet."""

from __future__ import annotations

import csv
import io
from collections.abc import Iterable, Sequence
from typing import Any

import openpyxl
import xlrd

from hearth_rag.extraction.base import Extractor
from hearth_rag.extraction.models import ExtractResult

XLSX_MIMES = frozenset(
    {
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        "application/vnd.ms-excel",
    }
)

# Legacy BIFF workbooks are OLE2 compound files; everything else goes to openpyxl.
_OLE2_MAGIC = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"


def _cell_to_str(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def rows_to_csv(rows: Iterable[Sequence[Any]]) -> str:
    """Render *rows* as CSV, skipping rows whose cells are all blank."""
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    for row in rows:
        cells = [_cell_to_str(v) for v in row]
        if not any(c.strip() for c in cells):
            continue
        writer.writerow(cells)
    return buf.getvalue()


class XlsxExtractor(Extractor):
    """Each sheet becomes ``--- Sheet: <name> ---`` followed by its CSV."""

    name = "spreadsheet"

    def can_handle(self, mime: str, ext: str) -> bool:
        return mime in XLSX_MIMES or ext in ("xlsx", "xls")

    def extract(self, data: bytes) -> ExtractResult:
        if data.startswith(_OLE2_MAGIC):
            sheets = self._read_xls(data)
            fmt = "xls"
        else:
            sheets = self._read_xlsx(data)
            fmt = "xlsx"

        parts: list[str] = []
        for sheet_name, csv_text in sheets:
            if csv_text.strip():
                parts.append(f"--- Sheet: {sheet_name} ---\n{csv_text}")

        sheet_names = [name for name, _ in sheets]
        return ExtractResult(
            text="\n\n".join(parts),
            metadata={
                "format": fmt,
                "sheet_count": len(sheet_names),
                "sheet_names": sheet_names,
            },
        )

    @staticmethod
    def _read_xlsx(data: bytes) -> list[tuple[str, str]]:
        workbook = openpyxl.load_workbook(io.BytesIO(data), read_only=True, data_only=True)
        try:
            return [
                (ws.title, rows_to_csv(ws.iter_rows(values_only=True)))
                for ws in workbook.worksheets
            ]
        finally:
            workbook.close()

    @staticmethod
    def _read_xls(data: bytes) -> list[tuple[str, str]]:
        book = xlrd.open_workbook(file_contents=data)
        return [
            (sheet.name, rows_to_csv(sheet.row_values(i) for i in range(sheet.nrows)))
            for sheet in book.sheets()
        ]
