"""Excel file parser with multi-sheet support."""
from io import BytesIO
from typing import Any, Dict, List, Optional

try:
    from openpyxl import load_workbook
    HAS_OPENPYXL = True
except ImportError:
    HAS_OPENPYXL = False

from src.parser.source_parser import SourceParser


class ExcelParser(SourceParser):
    """Parse Excel files into records, one per row of the selected sheets."""

    def __init__(self, sheets: Optional[List[str]] = None):
        """Initialize parser with the sheets to read (all by default)."""
        self.sheets = sheets

    def parse(self, content: bytes) -> List[Dict[str, Any]]:
        """
        Parse Excel content and return records.

        The first row of each sheet is the header row.

        Raises:
            RuntimeError: If parsing fails or openpyxl not installed
        """
        if not HAS_OPENPYXL:
            raise RuntimeError(
                "openpyxl is required for Excel parsing. "
                "Install with: pip install openpyxl"
            )

        try:
            wb = load_workbook(BytesIO(content), read_only=True, data_only=True)
        except Exception as e:
            raise RuntimeError(f"Failed to parse Excel file: {str(e)}")

        records = []
        for sheet_name in wb.sheetnames:
            if self.sheets and sheet_name not in self.sheets:
                continue

            rows = wb[sheet_name].iter_rows(values_only=True)
            first = next(rows, None)
            if not first:
                continue

            headers = [
                str(value).strip() if value is not None else f"Column_{i}"
                for i, value in enumerate(first)
            ]

            for row in rows:
                if all(value is None or value == "" for value in row):
                    continue
                records.append(self.clean_row(headers, list(row)))

        wb.close()
        return records
