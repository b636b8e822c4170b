"""Parsing and caching of mapping documents (ini, xml, json or dict)."""
import hashlib
import json
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from lxml import etree

from config import app_config
from src.mapper.cache import MappingCache
from src.mapper.models import MapEntry, MappingDocument, empty_info
from src.mapper.normalizer import MapNormalizer
from src.mapper.references import ReferenceResolver
from src.pattern.parser import ParseResult
from src.schema.lookup import Lookup
from src.transformer.filters import FilterEvaluator
from src.transformer.strings import is_scalar, unquote

logger = logging.getLogger(__name__)

MappingInput = Union[None, str, Dict[str, Any], List[Any]]

SOURCE_ATTRIBUTES = ("xpath", "jsdot", "jsonpath", "jmespath", "index")


def secure_xml_parser() -> etree.XMLParser:
    """Xml parser without entity expansion nor network access."""
    return etree.XMLParser(resolve_entities=False, no_network=True, remove_comments=True)


class MappingConfig:
    """
    Load, parse and cache mappings by name.

    A mapping may be a reference ("module:xml/lido.xml", "user:my.ini",
    "mapping:5", a file path), a content (ini, xml or json) or a dict. The
    parsed documents are cached by name and never modified: each call returns
    a copy.
    """

    SECTIONS = ("info", "params", "default", "maps", "tables")

    # Variables that are known before the conversion of the first record.
    STATIC_VARIABLES = ("url", "filename", "filepath")

    # Variables that change for each record or each value.
    DYNAMIC_VARIABLES = ("page", "value", "url_resource", "label", "list")

    def __init__(
        self,
        normalizer: Optional[MapNormalizer] = None,
        resolver: Optional[ReferenceResolver] = None,
        cache: Optional[MappingCache] = None,
        evaluator: Optional[FilterEvaluator] = None,
        lookup: Optional[Lookup] = None,
        translator: Optional[Callable[[str], str]] = None,
    ):
        """Initialize config."""
        self.normalizer = normalizer or MapNormalizer(lookup)
        self.parser = self.normalizer.parser
        self.resolver = resolver or ReferenceResolver(app_config.mapping_dir, app_config.user_mapping_dir)
        self.cache = cache or MappingCache()
        self.evaluator = evaluator or FilterEvaluator(translator=translator)
        self.current_name: Optional[str] = None

    def __call__(self, name: Optional[str] = None, mapping: MappingInput = None, options: Optional[Dict[str, Any]] = None):
        return self.invoke(name, mapping, options)

    def invoke(self, name: Optional[str] = None, mapping: MappingInput = None, options: Optional[Dict[str, Any]] = None):
        """
        Get a mapping by name, parsing it on first use.

        Without name nor mapping, return the config itself. Without name, the
        reference string (or a hash of the content) is the name. Without
        mapping, return the cached document, if any.
        """
        if name is None and mapping is None:
            return self

        if name is None:
            name = self.name_from_reference(mapping)

        self.current_name = name

        if mapping is None:
            return self.get_mapping(name)

        return self.cache.get_or_create(name, lambda: self.parse(mapping, name, options or {}))

    @staticmethod
    def name_from_reference(mapping: MappingInput) -> str:
        """Use the reference as name, or a md5 of the content."""
        if isinstance(mapping, str) and not MappingConfig.is_content(mapping):
            return mapping
        if isinstance(mapping, str):
            serialized = mapping
        else:
            serialized = json.dumps(mapping, sort_keys=True, default=str)
        return hashlib.md5(serialized.encode("utf-8")).hexdigest()

    @staticmethod
    def is_content(text: str) -> bool:
        """Check if a string is a mapping content rather than a reference."""
        stripped = text.strip()
        return "\n" in stripped or stripped[:1] in ("<", "{", "[") or "=" in stripped

    def get_mapping(self, name: Optional[str] = None) -> Optional[MappingDocument]:
        """Get a copy of a parsed mapping (the current one by default)."""
        name = name or self.current_name
        if name is None:
            return None
        return self.cache.get(name)

    def has_error(self, name: Optional[str] = None) -> bool:
        """Check if a mapping is missing or has errors."""
        document = self.get_mapping(name)
        return document is None or document.has_error

    def get_current_name(self) -> Optional[str]:
        return self.current_name

    def get_section(self, section: str, name: Optional[str] = None) -> Any:
        """Get a section of a mapping: info, params, maps or tables."""
        document = self.get_mapping(name)
        if document is None or section not in self.SECTIONS or section == "default":
            return {} if section != "maps" else []
        return getattr(document, section)

    def get_section_setting(self, section: str, key: str, default: Any = None, name: Optional[str] = None) -> Any:
        """
        Get a setting of a section.

        For maps, the setting is the first map whose source path is the key.
        """
        document = self.get_mapping(name)
        if document is None:
            return default
        if section in ("maps", "default"):
            for entry in document.maps:
                if entry.source.path == key:
                    return entry
            return default
        if section not in self.SECTIONS:
            return default
        return getattr(document, section).get(key, default)

    def get_section_setting_sub(self, section: str, key: str, sub_key: str, default: Any = None, name: Optional[str] = None) -> Any:
        """Get a sub-setting of a section, like the label of a code in a table."""
        value = self.get_section_setting(section, key, None, name)
        if isinstance(value, dict):
            return value.get(sub_key, default)
        return default

    def normalize_map(self, map_input: Any, options: Optional[Dict[str, Any]] = None) -> MapEntry:
        """Normalize one map with the normalizer."""
        return self.normalizer.normalize(map_input, options)

    def normalize_maps(self, maps: List[Any], options: Optional[Dict[str, Any]] = None) -> List[MapEntry]:
        """Normalize a list of maps with the normalizer."""
        return self.normalizer.normalize_all(maps, options)

    # Parsing.

    def parse(
        self,
        mapping: MappingInput,
        name: str,
        options: Optional[Dict[str, Any]] = None,
        ancestry: Tuple[str, ...] = (),
    ) -> MappingDocument:
        """Parse a mapping. Errors are logged and give an empty document with has_error."""
        options = options or {}
        try:
            document = self._parse_input(mapping, name, options, ancestry)
        except Exception as e:
            logger.error(f'Mapping "{name}" could not be parsed: {e}')
            document = None

        if document is None:
            logger.error(f'Mapping "{name}" could not be loaded.')
            return MappingDocument(info=empty_info(name), has_error=True)
        return document

    def _parse_input(
        self,
        mapping: MappingInput,
        name: str,
        options: Dict[str, Any],
        ancestry: Tuple[str, ...],
    ) -> Optional[MappingDocument]:
        if not mapping:
            return MappingDocument(info=empty_info(name))

        if isinstance(mapping, dict):
            if any(key in mapping for key in self.SECTIONS):
                document = self.parse_structured(mapping, name, options)
            else:
                document = self.parse_map_list([mapping], name, options)
            return self._finalize(document, name, None, ancestry)

        if isinstance(mapping, list):
            return self._finalize(self.parse_map_list(mapping, name, options), name, None, ancestry)

        if not isinstance(mapping, str):
            logger.error(f"Unsupported mapping input: {type(mapping).__name__}")
            return None

        if self.is_content(mapping):
            return self.parse_content(mapping, name, options, None, ancestry)

        resolved = self.resolver.resolve(mapping)
        if resolved is None:
            logger.error(f"Mapping reference not found: {mapping}")
            return None
        return self.parse_content(resolved.read(), name, options, resolved.directory, ancestry)

    def parse_content(
        self,
        content: str,
        name: str,
        options: Optional[Dict[str, Any]] = None,
        context: Optional[Path] = None,
        ancestry: Tuple[str, ...] = (),
    ) -> MappingDocument:
        """Parse an ini, xml or json content."""
        options = options or {}
        content = content.strip()
        if not content:
            return MappingDocument(info=empty_info(name))

        if content.startswith("<"):
            document = self.parse_xml(content, name, options, context, ancestry)
        elif content.startswith("{"):
            document = self.parse_json(content, name, options)
        elif content.startswith("["):
            try:
                data = json.loads(content)
            except ValueError:
                document = self.parse_ini(content, name, options)
            else:
                document = self._parse_json_data(data, name, options)
        else:
            document = self.parse_ini(content, name, options)

        if document.has_error:
            return document
        return self._finalize(document, name, context, ancestry)

    def parse_ini(self, content: str, name: str, options: Optional[Dict[str, Any]] = None) -> MappingDocument:
        """
        Parse an ini mapping.

        Lines before any section are maps. Tables are set as "table.code =
        label". Unknown sections are skipped.
        """
        options = options or {}
        document = MappingDocument(info=empty_info(name))
        lines = {"default": [], "maps": []}
        section: Optional[str] = "maps"

        for line in content.splitlines():
            line = line.strip()
            if not line or line.startswith(";"):
                continue

            if line.startswith("[") and line.endswith("]"):
                section = line[1:-1].strip()
                if section not in self.SECTIONS:
                    logger.warning(f'Unknown section "[{section}]" skipped in mapping "{name}"')
                    section = None
                continue

            if section is None:
                continue

            if section in ("default", "maps"):
                lines[section].append(line)
                continue

            key, separator, value = line.partition("=")
            key = key.strip()
            if not separator or not key:
                continue
            value = unquote(value.strip())

            if section == "tables":
                table, dot, code = key.partition(".")
                if not dot:
                    logger.warning(f'Table line without code skipped: "{line}"')
                    continue
                document.tables.setdefault(table.strip(), {})[code.strip()] = value
            elif section == "info":
                document.info[key] = value
            else:
                document.params[key] = value

        document.info["label"] = document.info.get("label") or name
        map_options = self._map_options(options, document.info)
        document.maps = [
            self.normalizer.normalize(line, map_options)
            for line in lines["default"] + lines["maps"]
        ]
        return document

    def parse_xml(
        self,
        content: str,
        name: str,
        options: Optional[Dict[str, Any]] = None,
        context: Optional[Path] = None,
        ancestry: Tuple[str, ...] = (),
    ) -> MappingDocument:
        """Parse a xml mapping (<mapping> with <info>, <params>, <include>, <map> and <table>)."""
        options = options or {}
        document = MappingDocument(info=empty_info(name))
        try:
            root = etree.fromstring(content.encode("utf-8"), secure_xml_parser())
        except etree.XMLSyntaxError as e:
            logger.error(f'Invalid xml mapping "{name}": {e}')
            document.has_error = True
            return document

        default_maps: List[MapEntry] = []
        maps: List[MapEntry] = []
        map_options = self._map_options(options, {})

        for element in root:
            if not isinstance(element.tag, str):
                continue
            tag = etree.QName(element).localname

            if tag in ("info", "params"):
                section = document.info if tag == "info" else document.params
                for child in element:
                    if isinstance(child.tag, str):
                        section[etree.QName(child).localname] = (child.text or "").strip()

            elif tag == "include":
                included = self._load_included(element.get("mapping"), context, ancestry + (name,))
                if included is not None:
                    for key, value in included.params.items():
                        document.params.setdefault(key, value)
                    for table_name, table in included.tables.items():
                        document.tables.setdefault(table_name, {}).update(table)
                    maps.extend(included.maps)

            elif tag == "map":
                entry = self.normalizer.normalize_from_xml_element(element, map_options)
                source = element.find("from")
                if source is not None and any(source.get(a) for a in SOURCE_ATTRIBUTES):
                    maps.append(entry)
                else:
                    default_maps.append(entry)

            elif tag == "table":
                code = element.get("code")
                terms = element.find("list")
                if not code or terms is None:
                    continue
                for term in terms.findall("term"):
                    term_code = term.get("code")
                    if term_code:
                        document.tables.setdefault(code, {})[term_code] = (term.text or "").strip()

        document.info["label"] = document.info.get("label") or name
        document.maps = default_maps + maps
        return document

    def parse_json(self, content: str, name: str, options: Optional[Dict[str, Any]] = None) -> MappingDocument:
        """Parse a json mapping: an object with sections or a list of maps."""
        try:
            data = json.loads(content)
        except ValueError as e:
            logger.error(f'Invalid json mapping "{name}": {e}')
            return MappingDocument(info=empty_info(name), has_error=True)
        return self._parse_json_data(data, name, options or {})

    def _parse_json_data(self, data: Any, name: str, options: Dict[str, Any]) -> MappingDocument:
        if isinstance(data, list):
            return self.parse_map_list(data, name, options)
        if isinstance(data, dict):
            return self.parse_structured(data, name, options)
        logger.error(f'Json mapping "{name}" is not an object nor a list')
        return MappingDocument(info=empty_info(name), has_error=True)

    def parse_structured(self, data: Dict[str, Any], name: str, options: Optional[Dict[str, Any]] = None) -> MappingDocument:
        """Parse a dict with the sections info, params, default, maps and tables."""
        options = options or {}
        document = MappingDocument(info=empty_info(name))

        info = data.get("info") or {}
        if isinstance(info, dict):
            for key, value in info.items():
                if value is not None and is_scalar(value):
                    document.info[key] = value
        document.info["label"] = document.info.get("label") or name

        if isinstance(data.get("params"), dict):
            document.params = dict(data["params"])

        if isinstance(data.get("tables"), dict):
            document.tables = {
                str(k): {str(code): str(label) for code, label in v.items()}
                for k, v in data["tables"].items()
                if isinstance(v, dict)
            }

        map_options = self._map_options(options, document.info)
        for section in ("default", "maps"):
            maps = data.get(section) or []
            if not isinstance(maps, list):
                maps = [maps]
            document.maps.extend(self.normalizer.normalize(m, map_options) for m in maps)
        return document

    def parse_map_list(self, maps: List[Any], name: str, options: Optional[Dict[str, Any]] = None) -> MappingDocument:
        """Parse a plain list of maps, like spreadsheet headers: the querier is the index."""
        options = dict(options or {})
        document = MappingDocument(info=empty_info(options.get("label") or name))
        document.info["querier"] = "index"
        options["default_querier"] = "index"
        document.maps = self.normalizer.normalize_all(maps, options)
        return document

    @staticmethod
    def _map_options(options: Dict[str, Any], info: Dict[str, Any]) -> Dict[str, Any]:
        map_options = {k: v for k, v in options.items() if k != "index"}
        if info.get("querier"):
            map_options["default_querier"] = info["querier"]
        return map_options

    def _finalize(
        self,
        document: MappingDocument,
        name: str,
        context: Optional[Path],
        ancestry: Tuple[str, ...],
    ) -> MappingDocument:
        """Apply inheritance, parse pattern params and check their order."""
        base_reference = document.info.get("mapper")
        if base_reference:
            if base_reference == name or base_reference in ancestry:
                logger.warning(f'Mapping "{name}" cannot inherit from itself ("{base_reference}")')
            else:
                base = self._load_included(base_reference, context, ancestry + (name,))
                if base is not None:
                    document = self._merge(base, document)

        for key, value in list(document.params.items()):
            parsed = self.param_pattern(value)
            if parsed is not None:
                document.params[key] = parsed

        self.verify_param_order(document.params)
        return document

    def _load_included(
        self,
        reference: Optional[str],
        context: Optional[Path],
        ancestry: Tuple[str, ...],
    ) -> Optional[MappingDocument]:
        """Load a base or included mapping, from the cache or by reference."""
        if not reference:
            return None
        if reference in ancestry:
            logger.warning(f'Circular mapping reference skipped: "{reference}"')
            return None

        cached = self.cache.get(reference)
        if cached is not None:
            return cached

        resolved = self.resolver.resolve(reference, context)
        if resolved is None:
            logger.warning(f'Base mapping not found: "{reference}"')
            return None

        document = self.parse_content(resolved.read(), reference, {}, resolved.directory, ancestry)
        if document.has_error:
            logger.warning(f'Base mapping "{reference}" has errors')
            return None
        return self.cache.get_or_create(reference, lambda: document)

    @staticmethod
    def _merge(base: MappingDocument, child: MappingDocument) -> MappingDocument:
        """Merge a base mapping before a child mapping."""
        info = dict(child.info)
        if not info.get("querier") and base.info.get("querier"):
            info["querier"] = base.info["querier"]

        tables = {name: dict(table) for name, table in base.tables.items()}
        for name, table in child.tables.items():
            tables.setdefault(name, {}).update(table)

        return MappingDocument(
            info=info,
            params={**base.params, **child.params},
            maps=base.maps + child.maps,
            tables=tables,
            has_error=child.has_error,
        )

    # Params.

    def param_pattern(self, value: Any) -> Optional[ParseResult]:
        """Get the parsed pattern of a param ("~ pattern" or {"pattern": ...}), if any."""
        if isinstance(value, ParseResult):
            return value
        if isinstance(value, dict) and value.get("pattern"):
            return self.parser.parse(str(value["pattern"]))
        if isinstance(value, str) and value.lstrip().startswith("~"):
            return self.parser.parse(value.lstrip()[1:].strip())
        return None

    def evaluate_static_params(self, seed_vars: Optional[Dict[str, Any]] = None, name: Optional[str] = None) -> Optional[MappingDocument]:
        """
        Evaluate the pattern params that depend only on static variables.

        Params are evaluated in order, so a param may use a previous one.
        Params that use a dynamic variable (value, page...) are kept as
        patterns. The cached document is replaced by the evaluated one.
        """
        name = name or self.current_name
        document = self.get_mapping(name)
        if document is None:
            return None

        variables = dict(seed_vars or {})
        params: Dict[str, Any] = {}
        for key, value in document.params.items():
            parsed = self.param_pattern(value)
            if parsed is None:
                params[key] = value
                if is_scalar(value):
                    variables.setdefault(key, value)
                continue

            names = self.parser.referenced_names(parsed)
            if any(n in self.DYNAMIC_VARIABLES for n in names):
                params[key] = parsed
                continue

            missing = [n for n in names if n not in variables]
            if missing:
                logger.debug(f'Param "{key}" kept as pattern, missing: {", ".join(missing)}')
                params[key] = parsed
                continue

            evaluated = self.render_param(parsed, variables, document.tables)
            params[key] = evaluated
            variables[key] = evaluated

        document.params = params
        return self.cache.replace(name, document)

    def render_param(self, parsed: ParseResult, variables: Dict[str, Any], tables: Optional[Dict[str, Dict[str, str]]] = None) -> str:
        """Render a pattern param with variables."""
        replace = {}
        for placeholder in parsed.replace:
            path = self.parser.extract_path(placeholder)
            if path in variables:
                replace[placeholder] = variables[path]
        return self.evaluator.render(parsed, replace, variables, tables)

    def verify_param_order(self, params: Optional[Dict[str, Any]] = None, name: Optional[str] = None) -> List[str]:
        """Warn about params that use a param defined after them."""
        if params is None:
            document = self.get_mapping(name)
            params = document.params if document else {}

        keys = list(params)
        warnings = []
        for position, key in enumerate(keys):
            parsed = self.param_pattern(params[key])
            if parsed is None:
                continue
            for reference in self.parser.referenced_names(parsed):
                if reference in self.STATIC_VARIABLES or reference in self.DYNAMIC_VARIABLES:
                    continue
                if reference in params and keys.index(reference) > position:
                    message = f'Param "{key}" references param "{reference}" which is defined later.'
                    logger.warning(message)
                    warnings.append(message)
        return warnings
