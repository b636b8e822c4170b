"""Access to source values, for nested data and for xml."""
import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from lxml import etree

from src.converter.xpath import document_namespaces, node_text, node_xml, xpath_query
from src.mapper.models import Source
from src.transformer.strings import is_scalar, to_string

try:
    import jmespath
    from jmespath.exceptions import JMESPathError
    HAS_JMESPATH = True
except ImportError:
    HAS_JMESPATH = False

try:
    from jsonpath_ng import parse as jsonpath_parse
    HAS_JSONPATH = True
except ImportError:
    HAS_JSONPATH = False

logger = logging.getLogger(__name__)

FIELDS_PREFIX = "fields[]."


def flat_array(data: Any) -> Dict[str, Any]:
    """
    Flatten nested data into dot-joined keys.

    Dots and backslashes of the original keys are escaped while joining:
    {"video": {"data.format": "jpg", "creator": ["a", "b"]}} gives
    {"video.data\\.format": "jpg", "video.creator.0": "a", "video.creator.1": "b"}.
    Data that is already flat is returned as is.
    """
    if not data:
        return {}
    if isinstance(data, list):
        data = {str(i): v for i, v in enumerate(data)}
    if all(not isinstance(v, (dict, list)) for v in data.values()):
        return dict(data)

    flat: Dict[str, Any] = {}
    _flat_array_recursive(data, flat, None)
    return flat


def _flat_array_recursive(data: Any, flat: Dict[str, Any], prefix: Optional[str]) -> None:
    items = data.items() if isinstance(data, dict) else enumerate(data)
    for key, value in items:
        escaped = str(key).replace("\\", "\\\\").replace(".", "\\.")
        full_key = escaped if prefix is None else f"{prefix}.{escaped}"
        if isinstance(value, (dict, list)):
            _flat_array_recursive(value, flat, full_key)
        else:
            flat[full_key] = value


def normalize_values(values: Any) -> List[Any]:
    """Convert an extracted result into a list of values."""
    if values is None or values == "" or values == [] or values == {}:
        return []
    if isinstance(values, (list, tuple)):
        return list(values)
    return [values]


class SourceAccessor(ABC):
    """Read values from a source record, whatever its format."""

    @abstractmethod
    def values(self, source: Source, querier: str) -> List[Any]:
        """Get all values of a map source."""
        pass

    @abstractmethod
    def lookup(self, path: str, querier: str, current: Any = None) -> str:
        """Get the first value of a path used in a pattern, as string."""
        pass

    @abstractmethod
    def string_value(self, value: Any, as_xml: bool = False) -> Optional[str]:
        """Convert an extracted value to string."""
        pass

    def xml_value(self, value: Any) -> Optional[str]:
        return self.string_value(value, as_xml=True)


class ArraySource(SourceAccessor):
    """
    Nested data (dicts and lists), like json or spreadsheet rows.

    The flat data and the fields are computed on first use only.
    """

    def __init__(self, data: Any, params: Optional[Dict[str, Any]] = None):
        """Initialize source."""
        self.data = data if data is not None else {}
        self.params = params or {}
        self._flat: Optional[Dict[str, Any]] = None
        self._fields: Optional[Dict[str, List[Any]]] = None

    @property
    def flat(self) -> Dict[str, Any]:
        if self._flat is None:
            self._flat = flat_array(self.data)
        return self._flat

    @property
    def fields(self) -> Dict[str, List[Any]]:
        if self._fields is None:
            self._fields = self.extract_fields()
        return self._fields

    def values(self, source: Source, querier: str) -> List[Any]:
        if not source.path and source.index is not None:
            return normalize_values(self._by_position(source.index))
        if not source.path:
            return []
        return self.query(source.path, querier)

    def query(self, path: str, querier: str) -> List[Any]:
        """Get the values of a path with a querier."""
        if querier == "index":
            return normalize_values(self._by_key(path))

        if querier == "jmespath":
            if not HAS_JMESPATH:
                logger.debug("jmespath is not installed")
                return []
            try:
                return normalize_values(jmespath.search(path, self.data))
            except JMESPathError as e:
                logger.warning(f'Invalid jmespath "{path}": {e}')
                return []

        if querier == "jsonpath":
            if not HAS_JSONPATH:
                logger.debug("jsonpath-ng is not installed")
                return []
            try:
                expression = jsonpath_parse(path)
            except Exception as e:
                logger.warning(f'Invalid jsonpath "{path}": {e}')
                return []
            return [match.value for match in expression.find(self.data)]

        flat = self.flat
        if path in flat:
            return normalize_values(flat[path])

        # Multi-valued key: "subject" gathers "subject.0", "subject.1"...
        indexed = re.compile(re.escape(path) + r"\.\d+")
        values = [value for key, value in flat.items() if indexed.fullmatch(key)]
        if values:
            return values

        if path.startswith(FIELDS_PREFIX):
            return list(self.fields.get(path[len(FIELDS_PREFIX):], []))
        return []

    def lookup(self, path: str, querier: str, current: Any = None) -> str:
        if querier in ("xpath", "none"):
            querier = "jsdot"
        values = [v for v in self.query(path, querier) if is_scalar(v)]
        return to_string(values[0]) if values else ""

    def string_value(self, value: Any, as_xml: bool = False) -> Optional[str]:
        if value is None:
            return None
        if isinstance(value, (list, tuple)):
            return to_string(value[0]) if value else None
        return to_string(value)

    def _by_key(self, key: str) -> Any:
        if isinstance(self.data, dict):
            return self.data.get(key)
        if isinstance(self.data, list) and key.isdigit() and int(key) < len(self.data):
            return self.data[int(key)]
        return None

    def _by_position(self, index: int) -> Any:
        if isinstance(self.data, list):
            return self.data[index] if 0 <= index < len(self.data) else None
        values = list(self.data.values()) if isinstance(self.data, dict) else []
        return values[index] if 0 <= index < len(values) else None

    def extract_fields(self) -> Dict[str, List[Any]]:
        """
        Group repeated field blocks, like content-dm records.

        The param "fields" is the key of the list of fields. With the param
        "fields.key", each block is {key: "title", value: "..."}, and values
        are grouped by key. With "fields.value" only, values are grouped under
        that name. Else each block is returned by its position.
        """
        fields_key = self.params.get("fields")
        if not fields_key or not self.data:
            return {}

        prefix = f"{fields_key}."
        blocks: Dict[str, Dict[str, Any]] = {}
        for key, value in self.flat.items():
            if not key.startswith(prefix):
                continue
            parts = key[len(prefix):].split(".", 1)
            if len(parts) == 2:
                blocks.setdefault(parts[0], {})[parts[1]] = value

        if not blocks:
            return {}

        field_key = self.params.get("fields.key")
        field_value = self.params.get("fields.value")

        if field_key:
            result: Dict[str, List[Any]] = {}
            for block in blocks.values():
                if field_key in block and field_value in block:
                    result.setdefault(str(block[field_key]), []).extend(normalize_values(block[field_value]))
            return result

        if field_value:
            grouped = [block[field_value] for block in blocks.values() if field_value in block]
            return {field_value: grouped} if grouped else {}

        return {key: [block] for key, block in blocks.items()}


class XmlSource(SourceAccessor):
    """Xml document queried with xpath."""

    def __init__(self, document: Any):
        """Initialize source."""
        if isinstance(document, etree._ElementTree):
            document = document.getroot()
        self.root: etree._Element = document
        self.namespaces = document_namespaces(document)

    def values(self, source: Source, querier: str) -> List[Any]:
        if not source.path:
            return []
        return xpath_query(self.root, source.path, namespaces=self.namespaces)

    def lookup(self, path: str, querier: str, current: Any = None) -> str:
        context = current if isinstance(current, etree._Element) else None
        nodes = xpath_query(self.root, path, context=context, namespaces=self.namespaces)
        return node_text(nodes[0]) if nodes else ""

    def string_value(self, value: Any, as_xml: bool = False) -> Optional[str]:
        if value is None:
            return None
        return node_xml(value) if as_xml else node_text(value)
