"""JSON file parser."""
import json
from typing import Any, Dict, List, Optional, Union

from src.parser.source_parser import SourceParser


class JsonParser(SourceParser):
    """
    Parse JSON files into records.

    A list is a list of records and an object is a single record, unless a
    records key is set, for example "items" for {"items": [...]}.
    """

    def __init__(self, records_key: Optional[str] = None):
        self.records_key = records_key

    def parse(self, content: Union[str, bytes]) -> List[Dict[str, Any]]:
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise RuntimeError(f"Failed to parse JSON file: {str(e)}")

        if self.records_key and isinstance(data, dict):
            data = data.get(self.records_key, [])

        if isinstance(data, list):
            return data
        if data is None:
            return []
        return [data]
