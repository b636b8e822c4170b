"""CSV file parser with auto-delimiter detection."""
import csv
from io import StringIO
from typing import Any, Dict, List, Union

from src.parser.source_parser import SourceParser


class CsvParser(SourceParser):
    """Parse CSV files into records keyed by the header row."""

    # Common delimiters
    DELIMITERS = [',', ';', '|', '\t']

    def parse(self, content: Union[str, bytes]) -> List[Dict[str, Any]]:
        """
        Parse CSV content and return records.

        Args:
            content: CSV file content (as string)

        Returns:
            List[Dict]: One record per data row
        """
        if isinstance(content, bytes):
            content = content.decode('utf-8-sig', errors='replace')
        elif content.startswith('\ufeff'):
            content = content[1:]

        delimiter = self._detect_delimiter(content)
        rows = self._read_csv(content, delimiter)

        if not rows:
            return []

        headers = [header.strip() for header in rows[0]]
        records = []
        for row in rows[1:]:
            # Skip blank lines
            if not any(cell.strip() for cell in row):
                continue
            records.append(self.clean_row(headers, row))

        return records

    def _detect_delimiter(self, content: str) -> str:
        """
        Auto-detect CSV delimiter.

        Returns:
            str: Most likely delimiter
        """
        # Sample first 1000 characters
        sample = content[:1000]

        counts = {}
        for delimiter in self.DELIMITERS:
            counts[delimiter] = sample.count(delimiter)

        best_delimiter = max(counts, key=counts.get)

        # Fallback to comma if no clear winner
        if counts[best_delimiter] == 0:
            return ','

        return best_delimiter

    def _read_csv(self, content: str, delimiter: str) -> List[List[str]]:
        """Read CSV content and return rows."""
        try:
            reader = csv.reader(StringIO(content), delimiter=delimiter)
            return list(reader)
        except csv.Error:
            # Fallback to comma delimiter
            reader = csv.reader(StringIO(content), delimiter=',')
            return list(reader)
