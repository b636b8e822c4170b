"""String helpers shared by the filter pipeline and the converter."""
import re
from typing import Any, Dict, List, Optional

NUMERIC_PATTERN = re.compile(r"^\s*[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?\s*$")


def is_numeric(value: Any) -> bool:
    """Check numeric lexical form (integers, decimals, exponents)."""
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return True
    return isinstance(value, str) and bool(NUMERIC_PATTERN.match(value))


def format_number(number: float) -> str:
    """Format a number without a useless trailing ".0"."""
    if isinstance(number, float) and number.is_integer():
        return str(int(number))
    return repr(number) if isinstance(number, float) else str(number)


def to_string(value: Any) -> str:
    """Convert a scalar to text: None and False give "", True gives "1"."""
    if value is None or value is False:
        return ""
    if value is True:
        return "1"
    if isinstance(value, float):
        return format_number(value)
    if isinstance(value, list):
        return to_string(value[0]) if value else ""
    return str(value)


def is_scalar(value: Any) -> bool:
    """Check if a value is a plain scalar (not a list or a dict)."""
    return isinstance(value, (str, int, float, bool))


def strtr(text: str, replacements: Dict[str, Any]) -> str:
    """
    Replace all keys in one pass, longest keys first.

    The replaced parts are never scanned again, so a replacement value that
    looks like a placeholder stays as is.
    """
    pairs = {k: to_string(v) for k, v in replacements.items() if k != ""}
    if not pairs or not text:
        return text
    keys = sorted(pairs, key=len, reverse=True)
    regex = re.compile("|".join(re.escape(k) for k in keys))
    return regex.sub(lambda m: pairs[m.group(0)], text)


def unquote(text: Optional[str]) -> Optional[str]:
    """Remove one level of matching single or double quotes."""
    if text is None:
        return None
    if len(text) >= 2 and text[0] == text[-1] and text[0] in ("'", '"'):
        return text[1:-1]
    return text


def is_quoted(text: Optional[str]) -> bool:
    """Check if a string is wrapped in matching quotes."""
    return bool(text) and len(text) >= 2 and text[0] == text[-1] and text[0] in ("'", '"')


def split_outside_quotes(text: str, separator: str = "|") -> List[str]:
    """Split on a one-char separator, ignoring separators in quotes or brackets."""
    parts = []
    current = []
    quote = None
    depth = 0
    for char in text:
        if quote:
            current.append(char)
            if char == quote:
                quote = None
            continue
        if char in ("'", '"'):
            quote = char
        elif char in "([{":
            depth += 1
        elif char in ")]}" and depth:
            depth -= 1
        elif char == separator and not depth:
            parts.append("".join(current))
            current = []
            continue
        current.append(char)
    parts.append("".join(current))
    return parts
