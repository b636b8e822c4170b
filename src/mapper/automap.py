"""Automatic mapping of column headers to property terms."""
import logging
import re
from typing import Any, Callable, Dict, List, Optional, Union

from src.schema.lookup import InMemoryLookup, Lookup
from src.transformer.strings import is_quoted, unquote

logger = logging.getLogger(__name__)

# "field ^^datatype ^^datatype @language §visibility ~ pattern", with the
# qualifiers in any order.
FIELD_PART = r"^\s*(?P<field>[^@§^~|\n\r]+)"
OPTIONAL_FIELD_PART = r"^\s*(?P<field>[^@§^~|\n\r]+)?"
ARGS_PART = (
    r"(?P<args>(?:"
    r"(?:\s*\^\^(?P<datatype>(?:customvocab:(?:\"[^\n\r\"]+\"|'[^\n\r']+')|[a-zA-Z_][\w:-]*)))"
    r"|(?:\s*@(?P<language>(?:(?:[a-zA-Z0-9]+-)*[a-zA-Z]+|)))"
    r"|(?:\s*§(?P<visibility>private|public|))"
    r")*)?"
    r"(?:\s*~\s*(?P<pattern>.*))?"
    r"\s*$"
)

PATTERN = re.compile(FIELD_PART + ARGS_PART)
PATTERN_NO_CHECK = re.compile(OPTIONAL_FIELD_PART + ARGS_PART)

PATTERN_DATATYPES = re.compile(
    r"\^\^(?P<datatype>(?:customvocab:(?:\"[^\n\r\"]+\"|'[^\n\r']+')|[a-zA-Z_][\w:-]*))"
)

OLD_PATTERN_CHECK = re.compile(
    r"(?P<prefix_with_space>(?:\^\^|@|§)\s)"
    r"|(?P<datatypes_semicolon>\^\^\s*[a-zA-Z][^\^@§~\n\r;]*;)"
    r"|(?P<unwrapped_customvocab_label>(?:\^\^|;)\s*customvocab:[^\d\"';\^\n]+)"
)

REPLACE_PATTERN = re.compile(r"\{\{( value | label | list |\S+?|\S.*?\S)\}\}")
TWIG_PATTERN = re.compile(r"\{\{ ([^{}]+) \}\}")
SPECIAL_PATTERNS = ("{{ value }}", "{{ label }}", "{{ list }}")

AutomapResult = Dict[Any, Optional[List[Union[str, Dict[str, Any]]]]]


def _unique(values: List[str]) -> List[str]:
    result = []
    for value in values:
        if value not in result:
            result.append(value)
    return result


class AutomapFields:
    """
    Map headers like "Title", "dcterms:title" or "Dublin Core : Title @fra"
    to property terms.

    A header is resolved with, in order: the custom map, the property terms,
    the property labels ("Vocabulary label:Property label") and, optionally,
    the local names and labels without vocabulary. Each list is checked
    as is, then lowercased.
    """

    DEFAULT_OPTIONS = {
        "map": {},
        "check_field": True,
        "check_names_alone": True,
        "single_target": False,
        "output_full_matches": False,
        "output_property_id": False,
    }

    def __init__(
        self,
        lookup: Optional[Lookup] = None,
        map: Optional[Dict[str, str]] = None,
        translator: Optional[Callable[[str], str]] = None,
    ):
        """Initialize automap."""
        self.lookup = lookup or InMemoryLookup()
        self.map = dict(map or {})
        self.translator = translator
        self._property_lists: Optional[Dict[str, Dict[str, str]]] = None
        self._custom_vocab_labels: Optional[Dict[str, int]] = None

    def __call__(self, fields: Union[List[str], Dict[Any, str]], options: Optional[Dict[str, Any]] = None) -> AutomapResult:
        return self.automap(fields, options)

    def automap(self, fields: Union[List[str], Dict[Any, str]], options: Optional[Dict[str, Any]] = None) -> AutomapResult:
        """
        Resolve each field spec. The result keeps the keys of the input, with
        None for unresolved specs, else a list (one item per "|" target).
        """
        options = {**self.DEFAULT_OPTIONS, **(options or {})}
        if isinstance(fields, list):
            fields = dict(enumerate(fields))

        if not options["check_field"]:
            return self._automap_no_check(fields, options)

        automaps: AutomapResult = {index: None for index in fields}
        cleaned = self.clean_strings(fields)

        full = bool(options["output_full_matches"])
        with_property_id = full and bool(options["output_property_id"])

        custom_map = {**self.map, **(options["map"] or {})}
        lists = self._prepare_property_lists(bool(options["check_names_alone"]))
        automap_lists = self._prepare_automap_lists(custom_map)

        for index, spec in cleaned.items():
            for field_spec in self._split(spec, bool(options["single_target"])):
                self.check_old_pattern(field_spec)
                match = PATTERN.match(field_spec)
                if not match:
                    continue

                field_name = match.group("field").strip()
                lower_field = field_name.lower()

                found = self._find_in_lists(field_name, lower_field, automap_lists)
                if found is not None:
                    resolved = custom_map.get(found, found)
                else:
                    found = self._find_in_lists(field_name, lower_field, lists)
                    if found is None:
                        continue
                    resolved = self._property_lists["names"].get(found, found)

                if automaps[index] is None:
                    automaps[index] = []
                if full:
                    automaps[index].append(self._build_result(resolved, match, with_property_id))
                else:
                    automaps[index].append(resolved)

        return automaps

    def _automap_no_check(self, fields: Dict[Any, str], options: Dict[str, Any]) -> AutomapResult:
        """Only parse the specs, without checking that the fields exist."""
        automaps: AutomapResult = {index: None for index in fields}
        full = bool(options["output_full_matches"])
        with_property_id = full and bool(options["output_property_id"])

        for index, spec in self.clean_strings(fields).items():
            for field_spec in self._split(spec, bool(options["single_target"])):
                self.check_old_pattern(field_spec)
                match = PATTERN_NO_CHECK.match(field_spec)
                if not match:
                    continue
                field_name = (match.group("field") or "").strip()
                if automaps[index] is None:
                    automaps[index] = []
                if full:
                    automaps[index].append(self._build_result(field_name, match, with_property_id))
                else:
                    automaps[index].append(field_name)
        return automaps

    @staticmethod
    def _split(spec: str, single_target: bool) -> List[str]:
        if single_target or "~" in spec:
            return [spec.strip()] if spec.strip() else []
        return [part.strip() for part in spec.split("|") if part.strip()]

    @staticmethod
    def clean_strings(strings: Dict[Any, str]) -> Dict[Any, str]:
        """Collapse whitespaces and remove spaces around ":"."""
        cleaned = {}
        for key, value in strings.items():
            text = re.sub(r"\s+", " ", str(value or "")).strip()
            cleaned[key] = re.sub(r"\s*:\s*", ":", text)
        return cleaned

    def check_old_pattern(self, field_spec: Optional[str]) -> bool:
        """Warn when a spec uses the old qualifier syntax."""
        if not field_spec or not OLD_PATTERN_CHECK.search(field_spec):
            return False
        logger.warning(
            f'The field pattern "{field_spec}" uses old format. Update by replacing ";" with "^^", '
            'removing spaces after "^^", "@", "§", and wrapping custom vocab labels with quotes.'
        )
        return True

    def _build_result(self, field_name: str, match: re.Match, with_property_id: bool) -> Dict[str, Any]:
        datatypes = []
        if match.group("args") and match.group("datatype"):
            datatypes = [m.group("datatype") for m in PATTERN_DATATYPES.finditer(match.group("args"))]

        result: Dict[str, Any] = {
            "field": field_name or None,
            "datatype": self.normalize_datatypes(datatypes),
            "language": (match.group("language") or "").strip() or None,
            "is_public": (match.group("visibility") or "").strip() or None,
            "pattern": (match.group("pattern") or "").strip() or None,
        }
        if with_property_id:
            result["property_id"] = self.lookup.property_id(field_name) if field_name else None
        return self.process_pattern(result)

    @staticmethod
    def process_pattern(result: Dict[str, Any]) -> Dict[str, Any]:
        """Extract raw value, replacements and filter expressions of the pattern."""
        pattern = result.get("pattern")
        if not pattern:
            return result

        if is_quoted(pattern):
            result["raw"] = unquote(pattern).strip()
            result["pattern"] = None
            return result

        if pattern in SPECIAL_PATTERNS:
            result["replace"] = [pattern]
            return result

        result["replace"] = _unique([m.group(0) for m in REPLACE_PATTERN.finditer(pattern)])
        twig = _unique([m.group(0) for m in TWIG_PATTERN.finditer(pattern)])
        result["twig"] = [t for t in twig if t not in SPECIAL_PATTERNS]
        return result

    def normalize_datatypes(self, datatypes: List[str]) -> List[str]:
        """Normalize datatypes, dropping the unknown ones."""
        result = []
        for datatype in datatypes:
            if datatype.startswith("customvocab:"):
                datatype = self._resolve_custom_vocab(datatype)
            normalized = self.lookup.data_type_name(datatype)
            if normalized and normalized not in result:
                result.append(normalized)
        return result

    def _resolve_custom_vocab(self, datatype: str) -> str:
        suffix = datatype[len("customvocab:"):]
        if suffix.isdigit():
            return datatype
        if self._custom_vocab_labels is None:
            try:
                self._custom_vocab_labels = self.lookup.custom_vocab_labels()
            except (LookupError, OSError) as e:
                logger.warning(f"Custom vocabs are not available: {e}")
                self._custom_vocab_labels = {}
        custom_vocab_id = self._custom_vocab_labels.get(unquote(suffix))
        return f"customvocab:{custom_vocab_id}" if custom_vocab_id is not None else datatype

    def _load_property_lists(self) -> Dict[str, Dict[str, str]]:
        names: Dict[str, str] = {}
        labels: Dict[str, str] = {}
        for vocabulary in self.lookup.vocabularies():
            for prop in vocabulary.properties:
                names[prop.term] = prop.term
                label = f"{vocabulary.label}:{prop.label}"
                if label in labels.values():
                    label = f"{label} (#{prop.id})"
                labels[prop.term] = label

        # "dc:title" is a common shorthand for "dcterms:title".
        for vocabulary in self.lookup.vocabularies():
            if vocabulary.prefix != "dcterms":
                continue
            for prop in vocabulary.properties:
                names.setdefault("dc:" + prop.local_name, prop.term)

        return {"names": names, "labels": labels}

    def _prepare_property_lists(self, check_names_alone: bool) -> Dict[str, Dict[str, str]]:
        if self._property_lists is None:
            self._property_lists = self._load_property_lists()

        names = {name: name for name in self._property_lists["names"]}
        labels = dict(self._property_lists["labels"])
        lists = {
            "names": names,
            "lower_names": {k: v.lower() for k, v in names.items()},
            "labels": labels,
            "lower_labels": {k: v.lower() for k, v in labels.items() if v},
        }
        if check_names_alone:
            local_names = {k: v.split(":")[-1] for k, v in names.items()}
            local_labels = {k: v.split(":")[-1] for k, v in labels.items()}
            lists["local_names"] = local_names
            lists["lower_local_names"] = {k: v.lower() for k, v in local_names.items()}
            lists["local_labels"] = local_labels
            lists["lower_local_labels"] = {k: v.lower() for k, v in local_labels.items()}
        return lists

    def _prepare_automap_lists(self, custom_map: Dict[str, str]) -> Dict[str, Dict[str, str]]:
        if not custom_map:
            return {}

        # Mapped values are keys too, and so are translated keys.
        keys = list(custom_map)
        keys.extend(value for value in custom_map.values() if value not in custom_map)
        if self.translator:
            for key in list(custom_map):
                translated = self.translator(key)
                if translated and translated not in custom_map:
                    custom_map[translated] = custom_map[key]
                    keys.append(translated)
        for value in list(custom_map.values()):
            custom_map.setdefault(value, value)

        base = {key: key for key in keys}
        lower_base = {key: key.lower() for key in keys}
        if base == lower_base:
            return {"lower_base": lower_base}
        return {"base": base, "lower_base": lower_base}

    @staticmethod
    def _find_in_lists(field_name: str, lower_field: str, lists: Dict[str, Dict[str, str]]) -> Optional[str]:
        for list_name, values in lists.items():
            searched = lower_field if list_name.startswith("lower_") else field_name
            for key, value in values.items():
                if value == searched:
                    return key
        return None
