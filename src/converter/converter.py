"""Conversion of source records into typed field values with a mapping."""
import logging
from typing import Any, Callable, Dict, List, Optional, Union
from urllib.parse import urlparse

from lxml import etree

from src.converter.accessors import ArraySource, SourceAccessor, XmlSource, flat_array
from src.mapper.mapping_config import MappingConfig, MappingInput, secure_xml_parser
from src.mapper.models import MapEntry, MappingDocument, Modifier, Source, Target
from src.pattern.parser import SPECIAL_PLACEHOLDERS, ParseResult, PatternParser
from src.transformer.filters import FilterEvaluator
from src.transformer.strings import is_scalar, strtr, to_string

logger = logging.getLogger(__name__)

OutputRecord = Dict[str, List[Any]]

TRUE_VALUES = ("1", "true", "yes", "on")
FALSE_VALUES = ("0", "false", "no", "off")

ID_DATATYPES = ("uri",)
ID_DATATYPE_PREFIXES = ("valuesuggest:", "valuesuggestall:")


def is_url(value: str) -> bool:
    """Check if a string looks like an absolute url."""
    parsed = urlparse(value.strip())
    return bool(parsed.scheme and parsed.netloc) and " " not in value.strip()


class Converter:
    """
    Convert a record (nested data or xml) with the current mapping.

    Each map is processed in order: a raw value is emitted as is, a map
    without source path is rendered against the whole record, and other maps
    extract all values of their path and render each of them. Values for the
    same field are appended, never deduplicated.
    """

    def __init__(
        self,
        mapping_config: Optional[MappingConfig] = None,
        evaluator: Optional[FilterEvaluator] = None,
        translator: Optional[Callable[[str], str]] = None,
    ):
        """Initialize converter."""
        self.mapping_config = mapping_config or MappingConfig(translator=translator)
        translator = translator or self.mapping_config.evaluator.translator
        self.evaluator = evaluator or FilterEvaluator(translator=translator)
        self.translator = translator or self.evaluator.translator
        self.parser: PatternParser = self.mapping_config.parser
        self.mapping_name: Optional[str] = None
        self.variables: Dict[str, Any] = {}

    def __call__(self, name: Optional[str] = None, mapping: MappingInput = None) -> "Converter":
        if name:
            if mapping is None:
                self.set_mapping_name(name)
            else:
                self.set_mapping(name, mapping)
        return self

    def set_mapping_name(self, name: str) -> "Converter":
        """Use a mapping already loaded in the config."""
        self.mapping_name = name
        return self

    def get_mapping_name(self) -> Optional[str]:
        return self.mapping_name

    def set_mapping(self, name: str, mapping: MappingInput, options: Optional[Dict[str, Any]] = None) -> "Converter":
        """Load a mapping in the config and use it."""
        self.mapping_name = name
        self.mapping_config.invoke(name, mapping, options)
        return self

    def get_mapping(self) -> Optional[MappingDocument]:
        return self.mapping_config.get_mapping(self.mapping_name)

    def set_variables(self, variables: Dict[str, Any]) -> "Converter":
        self.variables = dict(variables)
        return self

    def set_variable(self, name: str, value: Any) -> "Converter":
        self.variables[name] = value
        return self

    def get_variables(self) -> Dict[str, Any]:
        return dict(self.variables)

    # Conversion.

    def convert(self, data: Any) -> OutputRecord:
        """
        Convert a record: a dict or a list, an xml element or tree, or a
        xml string.
        """
        document = self.get_mapping()
        if document is None or document.has_error:
            if document is None:
                logger.warning(f"No mapping loaded for {self.mapping_name}")
            return {}

        source = self.source_accessor(data, document)
        if source is None:
            return {}

        record: OutputRecord = {}
        for entry in document.maps:
            self.convert_entry(record, entry, source, document)
        return record

    def source_accessor(self, data: Any, document: Optional[MappingDocument] = None) -> Optional[SourceAccessor]:
        """Wrap a record in the accessor of its format."""
        if isinstance(data, bytes):
            data = data.decode("utf-8")
        if isinstance(data, str):
            try:
                data = etree.fromstring(data.strip().encode("utf-8"), secure_xml_parser())
            except etree.XMLSyntaxError as e:
                logger.error(f"Invalid xml source: {e}")
                return None
        if isinstance(data, (etree._Element, etree._ElementTree)):
            return XmlSource(data)
        if data is None or isinstance(data, (dict, list)):
            params = document.params if document else {}
            return ArraySource(data, {k: v for k, v in params.items() if is_scalar(v)})
        logger.error(f"Unsupported source data: {type(data).__name__}")
        return None

    def querier(self, source: Source, accessor: SourceAccessor, document: MappingDocument) -> str:
        """Querier of a map: xpath for xml, else the one of the map or of the mapping."""
        if isinstance(accessor, XmlSource):
            return "xpath"
        if source.type not in ("xpath", "none"):
            return source.type
        if document.querier and document.querier not in ("xpath", "none"):
            return document.querier
        return "jsdot"

    def convert_entry(
        self,
        record: OutputRecord,
        entry: MapEntry,
        accessor: SourceAccessor,
        document: MappingDocument,
    ) -> None:
        """Convert one map and append its values to the record."""
        target, mod = entry.target, entry.mod
        if not target.field:
            return

        if mod.raw:
            self.finalize(record, target, [mod.raw])
            return

        querier = self.querier(entry.source, accessor, document)

        if entry.source.is_default:
            converted = self.convert_default(mod, accessor, querier, document)
            if converted:
                self.finalize(record, target, [mod.val or self.parser.build_pattern(mod.prepend, converted, mod.append)])
            return

        as_xml = bool(target.datatype) and target.datatype[0] == "xml"
        results = []
        for value in accessor.values(entry.source, querier):
            if isinstance(value, (dict, list, tuple)):
                continue
            converted = self.convert_value(value, mod, accessor, querier, document, as_xml)
            if not converted:
                continue
            results.append(mod.val or self.parser.build_pattern(mod.prepend, converted, mod.append))

        if results:
            self.finalize(record, target, results)

    def convert_default(
        self,
        mod: Modifier,
        accessor: SourceAccessor,
        querier: str,
        document: MappingDocument,
    ) -> Optional[str]:
        """
        Render a map without source path against the whole record.

        A pattern without placeholders is a fixed text. Else at least one
        placeholder must be filled, and the result is trimmed.
        """
        parsed = mod.parsed
        if parsed is None or not parsed.pattern:
            return None
        if not parsed.placeholders:
            return parsed.pattern.strip() or None

        variables = self.current_variables(document, None, accessor, querier)
        replace = self.replacements(parsed, accessor, querier, variables, None)
        results = self.evaluator.resolve_filters(
            variables, parsed.filters, parsed.filters_has_replace, replace, document.tables
        )
        if not any(to_string(results.get(p)).strip() for p in parsed.placeholders):
            return None
        return strtr(parsed.pattern, results).strip() or None

    def convert_value(
        self,
        value: Any,
        mod: Modifier,
        accessor: SourceAccessor,
        querier: str,
        document: Optional[MappingDocument] = None,
        as_xml: bool = False,
    ) -> Optional[str]:
        """Render one extracted value with the pattern of the map."""
        string_value = accessor.string_value(value, as_xml)
        parsed = mod.parsed
        if parsed is None or not parsed.pattern:
            return string_value or None

        if parsed.pattern.strip() == "{{ xml }}":
            return accessor.xml_value(value) or None

        variables = self.current_variables(document, string_value, accessor, querier)
        replace = self.replacements(parsed, accessor, querier, variables, value)
        tables = document.tables if document else {}
        results = self.evaluator.resolve_filters(
            variables, parsed.filters, parsed.filters_has_replace, replace, tables
        )
        result = strtr(parsed.pattern, results)

        if not self.has_replacement(string_value, result, parsed):
            return None
        return result

    def current_variables(
        self,
        document: Optional[MappingDocument],
        value: Optional[str],
        accessor: Optional[SourceAccessor] = None,
        querier: str = "jsdot",
    ) -> Dict[str, Any]:
        """
        Scalar params, then converter variables, then the current value.

        Pattern params left by the static evaluation are rendered last, in
        order, against the current record and value.
        """
        variables: Dict[str, Any] = {}
        if document:
            variables.update({k: v for k, v in document.params.items() if is_scalar(v)})
        variables.update(self.variables)
        variables["value"] = value

        if document:
            for name, param in document.params.items():
                if isinstance(param, ParseResult) and name not in self.variables:
                    variables[name] = self.render_param(param, variables, accessor, querier, document.tables)
        return variables

    def render_param(
        self,
        parsed: ParseResult,
        variables: Dict[str, Any],
        accessor: Optional[SourceAccessor],
        querier: str,
        tables: Optional[Dict[str, Dict[str, str]]] = None,
    ) -> str:
        if accessor is not None:
            replace = self.replacements(parsed, accessor, querier, variables, None)
        else:
            replace = {}
            for placeholder in parsed.replace:
                variable = variables.get(self.parser.extract_path(placeholder))
                replace[placeholder] = to_string(variable) if is_scalar(variable) else ""
        results = self.evaluator.resolve_filters(
            variables, parsed.filters, parsed.filters_has_replace, replace, tables
        )
        return strtr(parsed.pattern, results)

    def replacements(
        self,
        parsed: ParseResult,
        accessor: SourceAccessor,
        querier: str,
        variables: Dict[str, Any],
        current: Any,
    ) -> Dict[str, Any]:
        """
        Resolve the plain placeholders of a pattern.

        "{{ name }}" is a variable first, then a path. "{path}" is a path
        first, then a variable. Paths are relative to the current node for xml.
        """
        replace: Dict[str, Any] = {}
        for placeholder in parsed.replace:
            if placeholder in SPECIAL_PLACEHOLDERS:
                replace[placeholder] = to_string(variables.get(self.parser.extract_path(placeholder)))
                continue

            path = self.parser.extract_path(placeholder)
            variable = variables.get(path)
            has_variable = is_scalar(variable)
            if placeholder.startswith("{{") and has_variable:
                replace[placeholder] = to_string(variable)
                continue

            found = accessor.lookup(path, querier, current)
            if not found and has_variable:
                found = to_string(variable)
            replace[placeholder] = found

        for name, value in variables.items():
            key = "{{ " + name + " }}"
            if key not in replace and is_scalar(value):
                replace[key] = to_string(value)
        return replace

    def has_replacement(self, value: Optional[str], result: Optional[str], parsed: ParseResult) -> bool:
        """
        Check that a pattern really used the value.

        When the pattern has static text, a result equal to that text alone
        means that nothing was substituted. A pattern made only of
        placeholders accepts any non-empty result.
        """
        if value is None or value == "" or not result:
            return False
        if not parsed.pattern:
            return False

        placeholders = {p: "" for p in list(SPECIAL_PLACEHOLDERS) + parsed.replace + parsed.filters}
        static_text = strtr(parsed.pattern, placeholders)
        if not static_text.strip():
            return True
        if result == static_text:
            return False
        return strtr(value, placeholders) != result

    # Output.

    def finalize(self, record: OutputRecord, target: Target, results: List[Any]) -> None:
        """Convert results by field type and append them to the record."""
        if not results:
            return

        field_type = target.field_type
        if field_type == "skip":
            return

        if field_type in ("boolean", "booleans"):
            results = [self._to_boolean(v) for v in results]
        elif field_type in ("integer", "integers"):
            results = [self._to_integer(v) for v in results]
        elif field_type in ("string", "strings"):
            results = [to_string(v) for v in results]
        elif field_type in ("datetime", "datetimes"):
            results = [self._to_datetime(v) for v in results]
        elif field_type in ("array", "arrays"):
            base = {k: v for k, v in target.to_dict().items() if k not in ("field", "field_type")}
            results = [dict(v, **base) if isinstance(v, dict) else dict(base, __value=v) for v in results]
        else:
            results = [self.value_object(v, target) for v in results]

        record.setdefault(target.field, []).extend(results)

    @staticmethod
    def value_object(value: Any, target: Target) -> Dict[str, Any]:
        """Build {"type", "@value" or "@id", "@language", "is_public"}."""
        datatype = target.datatype[0] if target.datatype else None
        if isinstance(value, dict):
            result = dict(value)
            if datatype:
                result.setdefault("type", datatype)
            if target.language:
                result.setdefault("@language", target.language)
            if target.is_public is not None:
                result.setdefault("is_public", target.is_public)
            return result

        string_value = to_string(value)
        if datatype:
            value_type = datatype
        elif is_url(string_value):
            value_type = "uri"
        else:
            value_type = "literal"

        result = {"type": value_type}
        if value_type in ID_DATATYPES or value_type.startswith(ID_DATATYPE_PREFIXES):
            result["@id"] = string_value
        else:
            result["@value"] = string_value
        if target.language:
            result["@language"] = target.language
        if target.is_public is not None:
            result["is_public"] = target.is_public
        return result

    def _to_boolean(self, value: Any) -> Optional[bool]:
        if isinstance(value, bool):
            return value
        lower = to_string(value).strip().lower()
        if lower in TRUE_VALUES or lower in self._translated(("true", "yes", "on")):
            return True
        if lower in FALSE_VALUES or lower in self._translated(("false", "no", "off")):
            return False
        return None

    def _translated(self, words) -> List[str]:
        if not self.translator:
            return []
        return [self.translator(word).lower() for word in words]

    @staticmethod
    def _to_integer(value: Any) -> int:
        try:
            return int(float(to_string(value).strip()))
        except ValueError:
            return 0

    @staticmethod
    def _to_datetime(value: Any) -> Optional[str]:
        text = to_string(value)
        if not text:
            return None
        template = "0000-00-00 00:00:00"
        return text + template[len(text):]

    # Helpers for single values.

    def convert_string(self, value: Optional[str], map_input: Union[None, MapEntry, Dict[str, Any], str] = None) -> str:
        """Convert one string with a map, without record, like a spreadsheet cell."""
        if value is None:
            return ""
        if not map_input:
            return value

        entry = map_input if isinstance(map_input, MapEntry) else self.mapping_config.normalize_map(map_input)
        mod = entry.mod
        if mod.raw:
            return mod.raw
        if mod.val:
            return mod.val
        if mod.parsed is None:
            return value

        converted = self.convert_value(value, mod, ArraySource({}), "index", self.get_mapping())
        if not converted:
            return ""
        return self.parser.build_pattern(mod.prepend, converted, mod.append)

    def extract_value(self, data: Any, path: str, querier: str = "jsdot") -> List[Any]:
        """Get the values of a path in a record."""
        accessor = self.source_accessor(data)
        if accessor is None:
            return []
        if isinstance(accessor, XmlSource):
            querier = "xpath"
        return accessor.values(Source(type=querier, path=path), querier)

    @staticmethod
    def flat_array(data: Any) -> Dict[str, Any]:
        return flat_array(data)
