"""Abstract base class for source parsers."""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Union


class SourceParser(ABC):
    """Abstract base class for source file parsers."""

    @abstractmethod
    def parse(self, content: Union[str, bytes]) -> Any:
        """
        Parse source content and return the records.

        Args:
            content: Raw file content (CSV text, Excel bytes, JSON, XML...)

        Returns:
            List[Dict]: One dict per record, or a xml element for XML

        Raises:
            RuntimeError: If parsing fails
        """
        pass

    @staticmethod
    def detect_format(file_path: str) -> str:
        """Detect file format from extension."""
        ext = file_path.lower().split('.')[-1]
        return ext

    @staticmethod
    def clean_row(headers: List[str], row: List[Any]) -> Dict[str, Any]:
        """Build a record from headers and a row, skipping empty headers."""
        record = {}
        for i, header in enumerate(headers):
            if not header:
                continue
            record[header] = row[i] if i < len(row) else None
        return record
