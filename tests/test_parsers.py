"""Tests for source parsers: CSV, Excel, JSON and XML."""
import pytest
from io import BytesIO

from src.parser.csv_parser import CsvParser
from src.parser.excel_parser import ExcelParser, HAS_OPENPYXL
from src.parser.json_parser import JsonParser
from src.parser.parser_factory import SourceParserFactory
from src.parser.xml_parser import XmlParser


class TestCsvParser:
    """Test CSV parser."""

    def test_csv_parse_simple(self):
        """Test parsing simple CSV."""
        csv_content = """name,age,city
John,30,New York

Jane,25,Los Angeles"""

        records = CsvParser().parse(csv_content)

        assert records == [
            {"name": "John", "age": "30", "city": "New York"},
            {"name": "Jane", "age": "25", "city": "Los Angeles"},
        ]

    def test_csv_parse_with_semicolon(self):
        """Test parsing CSV with semicolon delimiter."""
        csv_content = """product;price
Notebook;2500,00
Mouse;50,00"""

        records = CsvParser().parse(csv_content)

        assert records[0] == {"product": "Notebook", "price": "2500,00"}
        assert len(records) == 2

    def test_csv_parse_with_tab(self):
        """Test parsing TSV content."""
        records = CsvParser().parse("a\tb\n1\t2")
        assert records == [{"a": "1", "b": "2"}]

    def test_csv_bom(self):
        """Test that a BOM is removed from the first header."""
        assert CsvParser().parse("\ufeffname,age\nJohn,30") == [{"name": "John", "age": "30"}]
        assert CsvParser().parse(b"\xef\xbb\xbfname,age\nJohn,30") == [{"name": "John", "age": "30"}]

    def test_csv_short_rows_and_empty_headers(self):
        """Test rows shorter than the headers and empty headers."""
        assert CsvParser().parse("a,b,c\n1,2") == [{"a": "1", "b": "2", "c": None}]
        assert CsvParser().parse("a,,c\n1,2,3") == [{"a": "1", "c": "3"}]

    def test_csv_empty(self):
        """Test empty content."""
        assert CsvParser().parse("") == []


class TestExcelParser:
    """Test Excel parser."""

    @pytest.fixture
    def workbook_bytes(self):
        """Workbook with two sheets"""
        from openpyxl import Workbook

        wb = Workbook()
        ws = wb.active
        ws.title = "Items"
        ws.append(["title", "date", None])
        ws.append(["A", 2020, "x"])
        ws.append([None, None, None])
        ws.append(["B", None, None])

        other = wb.create_sheet("Other")
        other.append(["code"])
        other.append(["x"])

        buffer = BytesIO()
        wb.save(buffer)
        return buffer.getvalue()

    @pytest.mark.skipif(not HAS_OPENPYXL, reason="openpyxl not installed")
    def test_excel_parse(self, workbook_bytes):
        """Test parsing all sheets."""
        records = ExcelParser().parse(workbook_bytes)

        assert len(records) == 3
        assert records[0] == {"title": "A", "date": 2020, "Column_2": "x"}
        assert records[1]["title"] == "B"
        assert records[2] == {"code": "x"}

    @pytest.mark.skipif(not HAS_OPENPYXL, reason="openpyxl not installed")
    def test_excel_selected_sheets(self, workbook_bytes):
        """Test parsing one sheet."""
        assert ExcelParser(sheets=["Other"]).parse(workbook_bytes) == [{"code": "x"}]

    @pytest.mark.skipif(not HAS_OPENPYXL, reason="openpyxl not installed")
    def test_excel_invalid(self):
        """Test invalid content."""
        with pytest.raises(RuntimeError):
            ExcelParser().parse(b"not a workbook")


class TestJsonParser:
    """Test JSON parser."""

    def test_json_list(self):
        """Test a list of records."""
        assert JsonParser().parse('[{"a": 1}, {"a": 2}]') == [{"a": 1}, {"a": 2}]

    def test_json_object(self):
        """Test a single record."""
        assert JsonParser().parse('{"a": {"b": 1}}') == [{"a": {"b": 1}}]
        assert JsonParser().parse("null") == []

    def test_json_records_key(self):
        """Test records under a key."""
        assert JsonParser("items").parse('{"total": 1, "items": [{"a": 1}]}') == [{"a": 1}]

    def test_json_invalid(self):
        """Test invalid JSON."""
        with pytest.raises(RuntimeError):
            JsonParser().parse("{invalid")


class TestXmlParser:
    """Test XML parser."""

    def test_xml_parse(self):
        """Test parsing a xml document."""
        root = XmlParser().parse("<record><title>A</title></record>")
        assert root.tag == "record"
        assert root.findtext("title") == "A"

    def test_xml_bytes(self):
        """Test parsing bytes with a declaration."""
        root = XmlParser().parse(b'<?xml version="1.0" encoding="UTF-8"?><r/>')
        assert root.tag == "r"

    def test_xml_invalid(self):
        """Test invalid XML."""
        with pytest.raises(RuntimeError):
            XmlParser().parse("<record>")


class TestParserFactory:
    """Test parser factory."""

    def test_parser_type(self):
        """Test types by extension."""
        assert SourceParserFactory.parser_type("data.csv") == "csv"
        assert SourceParserFactory.parser_type("data.TSV") == "csv"
        assert SourceParserFactory.parser_type("data.xlsx") == "excel"
        assert SourceParserFactory.parser_type("data.json") == "json"
        assert SourceParserFactory.parser_type("data.xml") == "xml"

    def test_unsupported(self):
        """Test unsupported formats."""
        with pytest.raises(ValueError):
            SourceParserFactory.parser_type("data.pdf")
        with pytest.raises(ValueError):
            SourceParserFactory.create_parser("data")

    def test_create_parser(self):
        """Test parser instances."""
        assert isinstance(SourceParserFactory.create_parser("a.csv"), CsvParser)
        assert isinstance(SourceParserFactory.create_parser("a.xlsm"), ExcelParser)
        assert isinstance(SourceParserFactory.create_parser("a.json"), JsonParser)
        assert isinstance(SourceParserFactory.create_parser("a.xml"), XmlParser)

    def test_parse_file(self, tmp_path):
        """Test parsing files."""
        csv_file = tmp_path / "data.csv"
        csv_file.write_text("a;b\n1;2\n", encoding="utf-8")
        assert SourceParserFactory.parse_file(csv_file) == [{"a": "1", "b": "2"}]

        xml_file = tmp_path / "data.xml"
        xml_file.write_text("<r><t>1</t></r>", encoding="utf-8")
        assert SourceParserFactory.parse_file(str(xml_file)).tag == "r"

    def test_parse_missing_file(self, tmp_path):
        """Test a missing file."""
        with pytest.raises(FileNotFoundError):
            SourceParserFactory.parse_file(tmp_path / "missing.csv")
