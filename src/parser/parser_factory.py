"""Factory for creating appropriate parser based on file type."""
from pathlib import Path
from typing import Any, Union

from src.parser.source_parser import SourceParser
from src.parser.csv_parser import CsvParser
from src.parser.excel_parser import ExcelParser
from src.parser.json_parser import JsonParser
from src.parser.xml_parser import XmlParser


class SourceParserFactory:
    """Factory for creating source parsers."""

    # Map extensions to parser types
    PARSERS = {
        'csv': 'csv',
        'tsv': 'csv',
        'txt': 'csv',
        'xlsx': 'excel',
        'xlsm': 'excel',
        'json': 'json',
        'xml': 'xml',
    }

    BINARY_TYPES = ('excel', 'xml')

    @staticmethod
    def parser_type(file_path: Union[str, Path]) -> str:
        """
        Get the parser type of a file.

        Raises:
            ValueError: If file format is not supported
        """
        ext = SourceParser.detect_format(str(file_path)) if '.' in str(file_path) else ''
        if ext not in SourceParserFactory.PARSERS:
            raise ValueError(f"Unsupported source format: {ext}")
        return SourceParserFactory.PARSERS[ext]

    @staticmethod
    def create_parser(file_path: Union[str, Path]) -> SourceParser:
        """
        Create parser based on file extension.

        Args:
            file_path: Path to source file

        Returns:
            SourceParser: Appropriate parser instance

        Raises:
            ValueError: If file format is not supported
        """
        parser_type = SourceParserFactory.parser_type(file_path)

        if parser_type == 'csv':
            return CsvParser()
        elif parser_type == 'excel':
            return ExcelParser()
        elif parser_type == 'json':
            return JsonParser()
        return XmlParser()

    @staticmethod
    def parse_file(file_path: Union[str, Path]) -> Any:
        """
        Convenience method to parse a source file in one call.

        Returns:
            List[Dict] or a xml element
        """
        file_path = Path(file_path)
        if not file_path.exists():
            raise FileNotFoundError(f"File not found: {file_path}")

        parser = SourceParserFactory.create_parser(file_path)

        if SourceParserFactory.parser_type(file_path) in SourceParserFactory.BINARY_TYPES:
            content = file_path.read_bytes()
        else:
            with open(file_path, 'r', encoding='utf-8', errors='ignore') as f:
                content = f.read()

        return parser.parse(content)
