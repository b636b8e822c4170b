"""Tests for the JSON exporter."""
import json
from datetime import date

from src.exporter.json_exporter import JsonExporter


class TestJsonExporter:
    """Test JSON export."""

    def test_export(self, tmp_path):
        """Test records and metadata."""
        output = tmp_path / "output" / "records.json"
        records = [{"dcterms:title": [{"type": "literal", "@value": "Éléphant"}]}]

        JsonExporter().export(output, records, {"source": "data.csv"})

        data = json.loads(output.read_text(encoding="utf-8"))
        assert data["records"] == records
        assert data["metadata"]["total_records"] == 1
        assert data["metadata"]["source"] == "data.csv"
        assert "created_at" in data["metadata"]
        assert "Éléphant" in output.read_text(encoding="utf-8")

    def test_export_non_json_values(self, tmp_path):
        """Test values serialized as strings."""
        output = tmp_path / "records.json"

        JsonExporter().export(output, [{"created": [date(2020, 5, 1)]}])

        data = json.loads(output.read_text(encoding="utf-8"))
        assert data["records"] == [{"created": ["2020-05-01"]}]
        assert data["metadata"]["total_records"] == 1
