"""Filter registry for the value pipeline."""
import html
import posixpath
import re
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import quote

from src.transformer import unimarc
from src.transformer.strings import format_number, is_numeric, strtr, to_string, unquote
from src.transformer.tables import is_iso_table, iso_lookup, lookup_table

# Date format characters used in mappings, as in "Y-m-d H:i:s".
DATE_FORMAT_CODES = {
    "d": "%d",
    "D": "%a",
    "j": "%-d",
    "l": "%A",
    "N": "%u",
    "m": "%m",
    "M": "%b",
    "F": "%B",
    "n": "%-m",
    "Y": "%Y",
    "y": "%y",
    "H": "%H",
    "G": "%-H",
    "h": "%I",
    "g": "%-I",
    "i": "%M",
    "s": "%S",
    "A": "%p",
    "T": "%Z",
    "e": "%Z",
}

DATE_INPUT_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%d-%m-%Y",
    "%Y%m%d",
    "%d %B %Y",
    "%B %d, %Y",
    "%Y",
)

DEFAULT_TRIM_MASK = " \t\n\r\0\x0b"

FilterFunction = Callable[[Any, str, "FilterContext"], Any]


@dataclass
class FilterContext:
    """Variables, tables and translator available to filters."""

    vars: Dict[str, Any] = field(default_factory=dict)
    tables: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    translator: Optional[Callable[[str], str]] = None

    def __post_init__(self):
        names = []
        for name in self.vars:
            name = str(name)
            if name.startswith("{{") and name.endswith("}}"):
                name = name[2:-2].strip()
            if name:
                names.append(name)
        alternatives = "".join(
            rf"(?<!\w){re.escape(n)}(?!\w)|" for n in sorted(set(names), key=len, reverse=True)
        )
        self._arg_pattern = re.compile(
            r"\s*(?P<arg>" + alternatives
            + r"\"[^\"]*?\"|'[^']*?'|[+-]?(?:\d*\.)?\d+)\s*,?\s*"
        )

    def variable(self, name: str) -> Any:
        """Get a variable by bare or wrapped name."""
        if name in self.vars:
            return self.vars[name]
        return self.vars.get("{{ " + name + " }}")

    def has_variable(self, name: str) -> bool:
        """Check if a variable is defined."""
        return name in self.vars or ("{{ " + name + " }}") in self.vars

    def _tokens(self, args: str) -> List[str]:
        return [m.group("arg") for m in self._arg_pattern.finditer(args or "")]

    def _resolve(self, token: str) -> str:
        if self.has_variable(token):
            return to_string(self.variable(token))
        if is_numeric(token):
            return token
        return unquote(token)

    def extract_list(self, args: str, keys: Optional[List[str]] = None):
        """
        Extract positional arguments.

        Quoted strings are unquoted, numbers kept, variable names resolved.
        With keys, the result is a dict padded with empty strings.
        """
        result = [self._resolve(token) for token in self._tokens(args)]
        if not keys:
            return result
        result = (result + [""] * len(keys))[: len(keys)]
        return dict(zip(keys, result))

    def extract_associative(self, args: str) -> Dict[str, str]:
        """Extract key/value pairs, as in an inline table {'a': 'b', 'c': 'd'}."""
        tokens = self._tokens(args)
        output = {}
        for i in range(0, len(tokens) - 1, 2):
            key, value = tokens[i], tokens[i + 1]
            key = key if is_numeric(key) else self._resolve(key)
            output[key] = self._resolve(value)
        return output

    def translate(self, text: str) -> str:
        """Translate a string when a translator is available."""
        return self.translator(text) if self.translator else text


def string_value(value: Any) -> str:
    """First element of a list, or the value as text."""
    if isinstance(value, list):
        return to_string(value[0]) if value else ""
    return to_string(value)


class FilterRegistry:
    """Registry of available filters."""

    def __init__(self):
        """Initialize registry."""
        self.filters: Dict[str, FilterFunction] = {
            "abs": self._abs,
            "basename": lambda v, a, c: posixpath.basename(string_value(v).rstrip("/")),
            "capitalize": lambda v, a, c: self._ucfirst(string_value(v)),
            "date": self._date,
            "e": self._escape,
            "escape": self._escape,
            "first": self._first,
            "format": self._format,
            "implode": self._implode,
            "join": self._implode,
            "implodev": self._implodev,
            "last": self._last,
            "length": lambda v, a, c: str(len(v) if isinstance(v, list) else len(string_value(v))),
            "lower": lambda v, a, c: string_value(v).lower(),
            "replace": self._replace,
            "slice": self._slice,
            "split": self._split,
            "striptags": lambda v, a, c: re.sub(r"<[^>]*>", "", string_value(v)),
            "table": self._table,
            "title": lambda v, a, c: self._ucwords(string_value(v)),
            "translate": lambda v, a, c: c.translate(string_value(v)),
            "trim": self._trim,
            "upper": lambda v, a, c: string_value(v).upper(),
            "url_encode": lambda v, a, c: quote(string_value(v), safe=""),
            # Library records.
            "dateIso": lambda v, a, c: unimarc.date_iso(string_value(v)),
            "dateRevert": lambda v, a, c: unimarc.date_revert(string_value(v)),
            "dateSql": lambda v, a, c: unimarc.date_sql(string_value(v)),
            "isbdName": lambda v, a, c: unimarc.isbd_name(
                c.extract_list(a, ["a", "b", "c", "d", "f", "g", "k", "o", "p", "5"])
            ),
            "isbdNameColl": lambda v, a, c: unimarc.isbd_name_coll(
                c.extract_list(a, ["a", "b", "c", "d", "e", "f", "g", "h", "o", "p", "r", "5"])
            ),
            "isbdMark": lambda v, a, c: unimarc.isbd_mark(c.extract_list(a, ["a", "b", "c"])),
            "unimarcIndex": lambda v, a, c: unimarc.unimarc_index(string_value(v), c.extract_list(a)),
            "unimarcCoordinates": lambda v, a, c: unimarc.unimarc_coordinates(string_value(v)),
            "unimarcCoordinatesHexa": lambda v, a, c: unimarc.unimarc_coordinates_hexa(string_value(v)),
            "unimarcTimeHexa": lambda v, a, c: unimarc.unimarc_time_hexa(string_value(v)),
        }

    def get(self, name: str) -> Optional[FilterFunction]:
        """Get filter by name, or None for an unknown name."""
        return self.filters.get(name)

    def register(self, name: str, function: FilterFunction) -> None:
        """Add or replace a filter."""
        self.filters[name] = function

    def names(self) -> List[str]:
        """List the filter names."""
        return sorted(self.filters)

    def apply(self, value: Any, name: str, args: str, context: FilterContext) -> Any:
        """
        Apply a filter.

        An unknown name is a variable lookup: the variable value if defined,
        else the input value unchanged.
        """
        function = self.get(name)
        if function is None:
            if context.has_variable(name):
                return context.variable(name)
            return value
        return function(value, args, context)

    @staticmethod
    def _ucfirst(text: str) -> str:
        return text[:1].upper() + text[1:]

    @staticmethod
    def _ucwords(text: str) -> str:
        return re.sub(r"(^|\s)(\S)", lambda m: m.group(1) + m.group(2).upper(), text)

    @staticmethod
    def _abs(value: Any, args: str, context: FilterContext) -> str:
        """Absolute value of a numeric string."""
        text = string_value(value)
        if not is_numeric(text):
            return text
        return format_number(abs(float(text)))

    @staticmethod
    def _date(value: Any, args: str, context: FilterContext) -> str:
        """Format a date with single character codes, or get a timestamp without format."""
        text = string_value(value)
        parsed = FilterRegistry._parse_date(text)
        if parsed is None:
            return text

        if not args:
            return str(int(time.mktime(parsed.timetuple())))

        arga = context.extract_list(args)
        date_format = arga[0] if arga else unquote(args)
        output = []
        for char in date_format:
            code = DATE_FORMAT_CODES.get(char)
            if code is None:
                output.append(char.replace("%", "%%"))
            elif code.startswith("%-"):
                output.append(str(int(parsed.strftime("%" + code[2:]))))
            else:
                output.append(code)
        try:
            return parsed.strftime("".join(output)) or text
        except ValueError:
            return text

    @staticmethod
    def _parse_date(text: str) -> Optional[datetime]:
        text = text.strip()
        if not text:
            return None
        if text.isdigit() and len(text) > 8:
            return datetime.fromtimestamp(int(text))
        try:
            return datetime.fromisoformat(text)
        except ValueError:
            pass
        for date_format in DATE_INPUT_FORMATS:
            try:
                return datetime.strptime(text, date_format)
            except ValueError:
                continue
        return None

    @staticmethod
    def _escape(value: Any, args: str, context: FilterContext) -> str:
        """Escape html special chars (double quotes, not single quotes)."""
        return html.escape(string_value(value), quote=False).replace('"', "&quot;")

    @staticmethod
    def _first(value: Any, args: str, context: FilterContext) -> str:
        if isinstance(value, list):
            return string_value(value)
        return string_value(value)[:1]

    @staticmethod
    def _last(value: Any, args: str, context: FilterContext) -> str:
        if isinstance(value, list):
            return to_string(value[-1]) if value else ""
        return string_value(value)[-1:]

    @staticmethod
    def _format(value: Any, args: str, context: FilterContext) -> str:
        """Printf-style formatting of the value with the arguments."""
        text = string_value(value)
        arga = context.extract_list(args)
        if not arga:
            return text
        try:
            return text % tuple(arga)
        except (TypeError, ValueError):
            pass
        numbers = []
        for arg in arga:
            if is_numeric(arg):
                number = float(arg)
                numbers.append(int(number) if number.is_integer() else number)
            else:
                numbers.append(arg)
        try:
            return (text % tuple(numbers)) or text
        except (TypeError, ValueError):
            return text

    @staticmethod
    def _join_items(value: Any, arga: List[str], skip_empty: bool) -> str:
        delimiter = arga[0] if arga else ""
        if len(arga) > 1:
            items = arga[1:]
        elif isinstance(value, list):
            items = [to_string(v) for v in value]
        else:
            items = [string_value(value)]
        if skip_empty:
            items = [item for item in items if item != ""]
        return delimiter.join(items)

    @staticmethod
    def _implode(value: Any, args: str, context: FilterContext) -> str:
        """Join the list value, or the arguments after the delimiter."""
        return FilterRegistry._join_items(value, context.extract_list(args), False)

    @staticmethod
    def _implodev(value: Any, args: str, context: FilterContext) -> str:
        """Join only non-empty items."""
        arga = context.extract_list(args)
        if len(arga) > 1:
            arga = [arga[0]] + [a for a in arga[1:] if a != ""]
        return FilterRegistry._join_items(value, arga, True)

    @staticmethod
    def _replace(value: Any, args: str, context: FilterContext) -> str:
        text = string_value(value)
        pairs = context.extract_associative(args)
        return strtr(text, pairs) if pairs else text

    @staticmethod
    def _slice(value: Any, args: str, context: FilterContext) -> Any:
        """Slice a list or a string: slice(start, length)."""
        arga = context.extract_list(args)
        start = int(float(arga[0])) if arga and is_numeric(arga[0]) else 0
        length = int(float(arga[1])) if len(arga) > 1 and is_numeric(arga[1]) else 1
        sequence = value if isinstance(value, list) else string_value(value)
        size = len(sequence)
        if start < 0:
            start = max(size + start, 0)
        end = start + length if length >= 0 else size + length
        return sequence[start:end]

    @staticmethod
    def _split(value: Any, args: str, context: FilterContext) -> Any:
        """
        Split a string into a list.

        A positive limit keeps the rest in the last item, a negative limit
        drops the last items. Without delimiter, the limit is a chunk size.
        """
        text = string_value(value)
        arga = context.extract_list(args)
        delimiter = arga[0] if arga else ""
        if len(arga) < 2:
            return text.split(delimiter) if delimiter else text

        limit = int(float(arga[1])) if is_numeric(arga[1]) else 0
        if not delimiter:
            if limit < 1:
                return text
            return [text[i:i + limit] for i in range(0, len(text), limit)] or [""]
        if limit > 0:
            return text.split(delimiter, limit - 1)
        if limit < 0:
            return text.split(delimiter)[:limit]
        return [text]

    @staticmethod
    def _table(value: Any, args: str, context: FilterContext) -> str:
        """Map a code through an inline, named or ISO table."""
        text = string_value(value)
        args = args.strip()

        if args.startswith("{"):
            table = context.extract_associative(args[1:-1].strip())
            return table.get(text, text)

        arga = context.extract_list(args)
        name = arga[0] if arga else ""
        if not name:
            return text
        by_code = len(arga) > 1 and arga[1] == "code"
        strict = len(arga) > 2 and arga[2] not in ("", "0", "false")

        if is_iso_table(name):
            return iso_lookup(name, text) or text

        found = lookup_table(context.tables.get(name) or {}, text, by_code, strict)
        return text if found is None else found

    @staticmethod
    def _trim(value: Any, args: str, context: FilterContext) -> str:
        """Trim with an optional mask and side ("left" or "right")."""
        text = string_value(value)
        arga = context.extract_list(args)
        mask = arga[0] if arga and arga[0] else DEFAULT_TRIM_MASK
        side = arga[1] if len(arga) > 1 else ""
        if side == "left":
            return text.lstrip(mask)
        if side == "right":
            return text.rstrip(mask)
        return text.strip(mask)
