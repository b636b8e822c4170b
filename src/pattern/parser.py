"""Pattern parser for replacement and filter placeholders."""
import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from src.transformer.strings import split_outside_quotes

# {path}: starts with a letter or "_", then letters, digits and "_:./-".
SINGLE_BRACE_PATTERN = re.compile(r"\{[^\W\d][\w:./\-]*\}")

QUOTED_PATTERN = re.compile(r"\"[^\"]*\"|'[^']*'")

IDENTIFIER_PATTERN = re.compile(r"^[^\W\d][\w:./\-]*$")

SPECIAL_PLACEHOLDERS = ("{{ value }}", "{{ label }}", "{{ list }}")


@dataclass
class ParseResult:
    """Placeholders found in a pattern."""

    pattern: str = ""
    replace: List[str] = field(default_factory=list)
    filters: List[str] = field(default_factory=list)
    filters_has_replace: List[bool] = field(default_factory=list)

    @property
    def is_simple(self) -> bool:
        return not self.filters

    @property
    def has_filters(self) -> bool:
        return bool(self.filters)

    @property
    def placeholders(self) -> List[str]:
        """All placeholders, filter expressions first."""
        return self.filters + [r for r in self.replace if r not in self.filters]

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "pattern": self.pattern,
            "replace": list(self.replace),
            "filters": list(self.filters),
            "filters_has_replace": list(self.filters_has_replace),
            "is_simple": self.is_simple,
            "has_filters": self.has_filters,
        }


def _mask_quotes(text: str) -> str:
    """Blank out quoted literals, keeping offsets."""
    return QUOTED_PATTERN.sub(lambda m: " " * len(m.group(0)), text)


class PatternParser:
    """
    Find placeholders in a pattern.

    Two kinds of placeholders are managed:
    - "{{ expression }}": a plain replacement, or a filter chain when it
      contains a "|" or a nested "{path}";
    - "{path}": a plain replacement, wherever it is.
    """

    def parse(self, pattern: Optional[str]) -> ParseResult:
        """Parse a pattern into replacements and filter expressions."""
        result = ParseResult(pattern=pattern or "")
        if not pattern:
            return result

        spans = self.find_double_brace_spans(pattern)

        for start, end in spans:
            expression = pattern[start:end]
            inner = expression[2:-2]
            if not inner.strip():
                continue
            masked = _mask_quotes(inner)
            has_filter = "|" in masked
            has_inner_replace = bool(SINGLE_BRACE_PATTERN.search(masked))
            if has_filter or has_inner_replace:
                if expression not in result.filters:
                    result.filters.append(expression)
                    result.filters_has_replace.append(has_inner_replace)
            elif expression not in result.replace:
                result.replace.append(expression)

        for single in self._find_single_braces(pattern, spans):
            if single not in result.replace:
                result.replace.append(single)

        return result

    def find_double_brace_spans(self, pattern: str) -> List[Tuple[int, int]]:
        """
        Find "{{ ... }}" expressions as (start, end) offsets.

        Matching is non-greedy, but a "}}" inside a quoted filter argument
        does not close the expression.
        """
        spans = []
        position = 0
        while True:
            start = pattern.find("{{", position)
            if start < 0:
                break
            close = self._find_closing(pattern, start + 2)
            if close < 0:
                break
            spans.append((start, close + 2))
            position = close + 2
        return spans

    @staticmethod
    def _find_closing(pattern: str, position: int) -> int:
        quote = None
        index = position
        while index < len(pattern) - 1:
            char = pattern[index]
            if quote:
                if char == quote:
                    quote = None
            elif char in ("'", '"'):
                quote = char
            elif pattern.startswith("}}", index):
                return index
            index += 1
        # Unbalanced quote: fall back to the first closing braces.
        return pattern.find("}}", position)

    @staticmethod
    def _find_single_braces(pattern: str, spans: List[Tuple[int, int]]) -> List[str]:
        found = []
        previous = 0
        segments = []
        for start, end in spans:
            segments.append(pattern[previous:start])
            # Quoted literals inside an expression are not placeholders.
            segments.append(_mask_quotes(pattern[start + 2:end - 2]))
            previous = end
        segments.append(pattern[previous:])
        for segment in segments:
            found.extend(SINGLE_BRACE_PATTERN.findall(segment))
        return found

    def extract_path(self, expression: str) -> str:
        """Get the bare path of a placeholder, without braces and filters."""
        path = expression.strip()
        if path.startswith("{{") and path.endswith("}}"):
            path = path[2:-2]
        elif path.startswith("{") and path.endswith("}"):
            path = path[1:-1]
        path = split_outside_quotes(path, "|")[0]
        return path.strip()

    def extract_filters(self, expression: str) -> List[str]:
        """Get the ordered filter names of a filter expression, without arguments."""
        inner = expression.strip()
        if inner.startswith("{{") and inner.endswith("}}"):
            inner = inner[2:-2]
        parts = split_outside_quotes(inner, "|")
        if len(parts) < 2:
            return []
        filters = []
        for part in parts[1:]:
            part = part.strip()
            if not part:
                continue
            filters.append(part.split("(", 1)[0].strip())
        return filters

    def referenced_names(self, parsed: ParseResult) -> List[str]:
        """
        Get the variable names used by a pattern.

        These are the paths of plain placeholders and the heads of filter
        chains, when they are identifiers.
        """
        names = []
        for expression in parsed.replace + parsed.filters:
            path = self.extract_path(expression)
            if IDENTIFIER_PATTERN.match(path) and path not in names:
                names.append(path)
        return names

    @staticmethod
    def is_literal(pattern: str) -> bool:
        """Check if a pattern has no placeholder at all."""
        return "{" not in (pattern or "")

    @staticmethod
    def is_single_replacement(pattern: str) -> bool:
        """Check if a pattern is only one plain placeholder."""
        trimmed = (pattern or "").strip()
        return bool(
            re.match(r"^\{\{\s*[^|{}]+\s*\}\}$", trimmed)
            or re.match(r"^\{[^{}]+\}$", trimmed)
        )

    @staticmethod
    def build_pattern(prepend: Optional[str], main: str, append: Optional[str]) -> str:
        """Concatenate prepend, main and append, skipping empty parts."""
        return "".join(part for part in (prepend, main, append) if part)
