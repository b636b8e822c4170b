"""Normalization of map definitions into MapEntry objects."""
import copy
import logging
import re
from typing import Any, Dict, List, Optional, Union

from lxml import etree

from src.mapper.models import MapEntry, Modifier, Source, Target
from src.pattern.parser import PatternParser
from src.schema.lookup import InMemoryLookup, Lookup
from src.transformer.strings import is_numeric, is_quoted, unquote

logger = logging.getLogger(__name__)

# A token is a run of non-space chars, where quoted parts may contain spaces.
FIELD_SPEC_TOKEN = re.compile(r"(?:[^\s\"']+|\"[^\"]*\"|'[^']*')+")

SOURCE_KEYS = ("xpath", "jsdot", "jsonpath", "jmespath")

MapInput = Union[None, str, Dict[str, Any], List[Any], etree._Element]


def split_ini_line(line: str) -> Optional[Dict[str, str]]:
    """
    Split a "from = to" line.

    The separator is the "=" before the first "~" when there is one, else
    the last "=" of the line. Return None when there is no "=".
    """
    tilde = line.find("~")
    if tilde >= 0:
        equals = line[:tilde].find("=")
        if equals >= 0:
            return {"from": line[:equals].strip(), "to": line[equals + 1:].strip()}

    equals = line.rfind("=")
    if equals < 0:
        return None
    return {"from": line[:equals].strip(), "to": line[equals + 1:].strip()}


class MapNormalizer:
    """
    Convert map definitions (string, dict or xml element) into MapEntry.

    Supported inputs:
    - an ini line: "source = dcterms:title ^^literal @fra §private ~ pattern";
    - a field spec alone: "dcterms:title ^^literal";
    - an xml string or element: <map><from xpath="..."/><to field="..."/></map>;
    - a dict with "from", "to" and "mod" keys, each a string or a dict.
    """

    def __init__(self, lookup: Optional[Lookup] = None, parser: Optional[PatternParser] = None):
        """Initialize normalizer."""
        self.lookup = lookup or InMemoryLookup()
        self.parser = parser or PatternParser()
        self.default_querier: Optional[str] = None
        self._custom_vocab_labels: Optional[Dict[str, int]] = None

    def set_default_querier(self, querier: Optional[str]) -> "MapNormalizer":
        """Set the querier used for string paths when no option overrides it."""
        self.default_querier = querier
        return self

    def normalize(self, map_input: MapInput, options: Optional[Dict[str, Any]] = None) -> MapEntry:
        """Normalize one map."""
        options = options or {}

        if map_input is None or (not isinstance(map_input, etree._Element) and not map_input):
            return MapEntry()
        if isinstance(map_input, MapEntry):
            return copy.deepcopy(map_input)
        if isinstance(map_input, str):
            return self._from_string(map_input, options)
        if isinstance(map_input, etree._Element):
            return self.normalize_from_xml_element(map_input, options)
        if isinstance(map_input, dict):
            return self._from_dict(map_input, options)

        logger.warning(f"Unsupported map input: {type(map_input).__name__}")
        return MapEntry()

    def normalize_all(self, maps: List[MapInput], options: Optional[Dict[str, Any]] = None) -> List[MapEntry]:
        """Normalize a list of maps, passing the position as index."""
        result = []
        for index, map_input in enumerate(maps):
            item_options = dict(options or {})
            item_options["index"] = index
            if isinstance(map_input, list):
                result.extend(self.normalize(m, item_options) for m in map_input)
            else:
                result.append(self.normalize(map_input, item_options))
        return result

    def _querier(self, options: Dict[str, Any]) -> str:
        return options.get("default_querier") or self.default_querier or "xpath"

    def _from_string(self, text: str, options: Dict[str, Any]) -> MapEntry:
        text = text.strip()
        if not text:
            return MapEntry()

        if text.startswith("<"):
            try:
                element = etree.fromstring(text, etree.XMLParser(resolve_entities=False, no_network=True))
            except etree.XMLSyntaxError as e:
                logger.warning(f"Invalid xml map: {e}")
                return MapEntry()
            return self.normalize_from_xml_element(element, options)

        parts = split_ini_line(text)
        if parts is not None:
            return self.normalize_from_ini_parts(parts["from"], parts["to"], options)

        entry = MapEntry(target=self.parse_field_spec(text))
        if options.get("index") is not None:
            entry.source = Source(type="index", index=options["index"])
        return entry

    def _from_dict(self, data: Dict[str, Any], options: Dict[str, Any]) -> MapEntry:
        return MapEntry(
            source=self._normalize_source(data.get("from"), options),
            target=self._normalize_target(data.get("to")),
            mod=self._normalize_mod(data.get("mod")),
        )

    def _normalize_source(self, source: Any, options: Dict[str, Any]) -> Source:
        if not source:
            if options.get("index") is not None:
                return Source(type="index", index=options["index"])
            return Source()

        if isinstance(source, str):
            return Source(type=self._querier(options), path=source)

        if not isinstance(source, dict):
            return Source()

        result = Source()
        if source.get("querier"):
            result.type = source["querier"]
        elif source.get("type") and source.get("type") != "none":
            result.type = source["type"]

        for key in SOURCE_KEYS:
            if source.get(key):
                if result.type == "none":
                    result.type = key
                result.path = source[key]
                break
        else:
            if source.get("path"):
                if result.type == "none":
                    result.type = self._querier(options)
                result.path = source["path"]
            elif source.get("index") is not None and str(source["index"]) != "":
                result.type = "index"

        if source.get("index") is not None and is_numeric(source.get("index")):
            result.index = int(source["index"])
        return result

    def _normalize_target(self, target: Any) -> Target:
        if not target:
            return Target()
        if isinstance(target, str):
            return self.parse_field_spec(target)
        if not isinstance(target, dict):
            return Target()

        datatype = target.get("datatype") or []
        if isinstance(datatype, str):
            datatype = datatype.split()
        result = Target(
            field=target.get("field") or None,
            property_id=target.get("property_id"),
            datatype=self.normalize_datatypes(datatype),
            language=target.get("language") or None,
            is_public=target.get("is_public"),
            field_type=target.get("field_type"),
        )
        if isinstance(result.is_public, str):
            result.is_public = result.is_public.lower() != "private"
        if result.field and not result.property_id:
            result.property_id = self.lookup.property_id(result.field)
        return result

    def _normalize_mod(self, mod: Any) -> Modifier:
        if not mod:
            return Modifier()
        if isinstance(mod, str):
            return self._build_mod(pattern=mod)
        if not isinstance(mod, dict):
            return Modifier()
        return self._build_mod(
            raw=mod.get("raw"),
            val=mod.get("val"),
            pattern=mod.get("pattern"),
            prepend=mod.get("prepend"),
            append=mod.get("append"),
        )

    def _build_mod(
        self,
        raw: Optional[str] = None,
        val: Optional[str] = None,
        pattern: Optional[str] = None,
        prepend: Optional[str] = None,
        append: Optional[str] = None,
    ) -> Modifier:
        """Build a modifier: raw wins over pattern, and a pattern is parsed once."""
        mod = Modifier(
            raw=None if raw in (None, "") else str(raw),
            val=None if val in (None, "") else str(val),
            pattern=pattern or None,
            prepend=prepend or None,
            append=append or None,
        )
        if mod.raw is not None:
            mod.type = "raw"
        elif mod.pattern:
            mod.type = "pattern"
        if mod.pattern:
            mod.parsed = self.parser.parse(mod.pattern)
        return mod

    def normalize_from_ini_parts(self, source: str, target: str, options: Optional[Dict[str, Any]] = None) -> MapEntry:
        """
        Normalize the two sides of an ini line.

        A quoted destination is a raw value: the source side is then the
        destination field. A source "~" (or empty) is a default map.
        """
        options = options or {}
        entry = MapEntry()

        if is_quoted(target):
            entry.mod = self._build_mod(raw=unquote(target))
            entry.target = self.parse_field_spec(source)
            return entry

        if source and source != "~":
            entry.source = Source(type=self._querier(options), path=source)
        elif options.get("index") is not None:
            entry.source = Source(type="index", index=options["index"])

        tilde = target.find("~")
        if tilde >= 0:
            entry.target = self.parse_field_spec(target[:tilde].strip())
            pattern = target[tilde + 1:].strip()
            if is_quoted(pattern):
                entry.mod = self._build_mod(raw=unquote(pattern))
            else:
                entry.mod = self._build_mod(pattern=pattern)
        else:
            entry.target = self.parse_field_spec(target)
        return entry

    def parse_field_spec(self, spec: str) -> Target:
        """
        Parse "dcterms:title ^^literal @fra §private".

        "^^" adds a datatype, "@" sets the language and "§" the visibility
        (private or public). The first token without prefix is the field.
        """
        result = Target()
        spec = (spec or "").strip()
        if "~" in spec:
            spec = spec[:spec.index("~")].strip()
        if not spec:
            return result

        datatypes = []
        for token in FIELD_SPEC_TOKEN.findall(spec):
            if token.startswith("^^"):
                datatypes.append(token[2:])
            elif token.startswith("@"):
                result.language = token[1:] or None
            elif token.startswith("§"):
                result.is_public = token[1:].lower() != "private"
            elif result.field is None:
                result.field = token

        result.datatype = self.normalize_datatypes(datatypes)
        if result.field:
            result.property_id = self.lookup.property_id(result.field)
        return result

    def normalize_from_xml_element(self, element: etree._Element, options: Optional[Dict[str, Any]] = None) -> MapEntry:
        """Normalize a <map> element with <from>, <to> and <mod> children."""
        options = options or {}
        entry = MapEntry()

        source = element.find("from")
        if source is not None:
            for key in SOURCE_KEYS:
                if source.get(key):
                    entry.source = Source(type=key, path=source.get(key))
                    break
            else:
                index = source.get("index") or ""
                if index.isdigit():
                    entry.source = Source(type="index", index=int(index))
                elif index:
                    entry.source = Source(type="index", path=index)

        target = element.find("to")
        if target is not None:
            field_name = target.get("field") or None
            datatype = (target.get("datatype") or "").split()
            visibility = target.get("visibility")
            entry.target = Target(
                field=field_name,
                property_id=self.lookup.property_id(field_name) if field_name else None,
                datatype=self.normalize_datatypes(datatype),
                language=target.get("language") or None,
                is_public=None if visibility is None else visibility.lower() != "private",
                field_type=target.get("type") or None,
            )

        mod = element.find("mod")
        if mod is not None:
            entry.mod = self._build_mod(
                raw=mod.get("raw"),
                val=mod.get("val"),
                pattern=mod.get("pattern"),
                prepend=mod.get("prepend"),
                append=mod.get("append"),
            )
        return entry

    def convert_from_legacy(self, data: Dict[str, Any], options: Optional[Dict[str, Any]] = None) -> MapEntry:
        """
        Convert an old flat map like {"from": "path", "to": "field",
        "type": "literal", "language": "fra", "pattern": "..."}.
        """
        options = options or {}
        if isinstance(data.get("from"), dict) and data["from"].get("type"):
            return self.normalize(data, options)

        target = data.get("to")
        if isinstance(target, str):
            target = {"field": target}
        target = dict(target or {})
        for key in ("datatype", "language", "is_public", "property_id"):
            if key in data and key not in target:
                target[key] = data[key]
        if "type" in data and "datatype" not in target:
            target["datatype"] = data["type"]

        mod = data.get("mod") or {}
        if isinstance(mod, str):
            mod = {"pattern": mod}
        mod = dict(mod)
        for key in ("raw", "val", "pattern", "prepend", "append"):
            if key in data and key not in mod:
                mod[key] = data[key]

        return self._from_dict({"from": data.get("from"), "to": target, "mod": mod}, options)

    def normalize_datatypes(self, datatypes: List[str]) -> List[str]:
        """Resolve custom vocab labels and datatype names, without duplicates."""
        result = []
        for datatype in datatypes:
            if not datatype:
                continue
            if datatype.startswith("customvocab:"):
                datatype = self.resolve_custom_vocab_datatype(datatype)
            normalized = self.lookup.data_type_name(datatype) or datatype
            if normalized not in result:
                result.append(normalized)
        return result

    def resolve_custom_vocab_datatype(self, datatype: str) -> str:
        """Convert 'customvocab:"My List"' into "customvocab:<id>" when the label is known."""
        suffix = datatype[len("customvocab:"):]
        if suffix.isdigit():
            return datatype

        label = unquote(suffix)
        if self._custom_vocab_labels is None:
            self._custom_vocab_labels = self._load_custom_vocab_labels()

        custom_vocab_id = self._custom_vocab_labels.get(label)
        if custom_vocab_id is None:
            logger.debug(f"Unknown custom vocab: {label}")
            return datatype
        return f"customvocab:{custom_vocab_id}"

    def _load_custom_vocab_labels(self) -> Dict[str, int]:
        try:
            return self.lookup.custom_vocab_labels()
        except (LookupError, OSError) as e:
            logger.warning(f"Custom vocabs are not available: {e}")
            return {}
