"""Evaluation of filter chains inside patterns."""
import dataclasses
import logging
import re
from typing import Any, Callable, Dict, List, Optional

from src.pattern.parser import ParseResult
from src.transformer.registry import FilterContext, FilterRegistry
from src.transformer.strings import is_quoted, split_outside_quotes, strtr, to_string, unquote

logger = logging.getLogger(__name__)

CALL_PATTERN = re.compile(r"\s*(?P<function>[a-zA-Z0-9_]+)\s*\(\s*(?P<args>.*)\s*\)\s*", re.S)


class FilterEvaluator:
    """
    Evaluate "{{ value|filter(args)|... }}" expressions.

    Each expression is split on "|" and a running value, initially empty,
    goes through each call. The head of the chain is usually a variable name
    ("value"), a nested placeholder ("{path}") or a quoted literal.
    """

    def __init__(
        self,
        registry: Optional[FilterRegistry] = None,
        translator: Optional[Callable[[str], str]] = None,
    ):
        """Initialize evaluator."""
        self.registry = registry or FilterRegistry()
        self.translator = translator

    def apply_filters(
        self,
        pattern: str,
        vars: Dict[str, Any],
        filters: List[str],
        filters_has_replace: List[bool],
        replace: Dict[str, Any],
        tables: Optional[Dict[str, Dict[str, Any]]] = None,
    ) -> str:
        """
        Evaluate each filter expression and substitute it in the pattern.

        Replacements and filter results are substituted in one pass, so a
        result that looks like a placeholder is kept literally.
        """
        results = self.resolve_filters(vars, filters, filters_has_replace, replace, tables)
        return strtr(pattern, results)

    def resolve_filters(
        self,
        vars: Dict[str, Any],
        filters: List[str],
        filters_has_replace: List[bool],
        replace: Dict[str, Any],
        tables: Optional[Dict[str, Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        """Get the replacements completed with the result of each filter expression."""
        context = FilterContext(vars=vars, tables=tables or {}, translator=self.translator)
        results: Dict[str, Any] = dict(replace)
        for position, expression in enumerate(filters):
            has_replace = bool(replace) and position < len(filters_has_replace) \
                and filters_has_replace[position]
            results[expression] = self.evaluate(expression, context, replace if has_replace else None)
        return results

    def render(
        self,
        parsed: ParseResult,
        replace: Dict[str, Any],
        vars: Dict[str, Any],
        tables: Optional[Dict[str, Dict[str, Any]]] = None,
    ) -> str:
        """Render a parsed pattern with resolved placeholders and variables."""
        replacements = {}
        for name, value in vars.items():
            if isinstance(value, (str, int, float, bool)):
                replacements["{{ " + name + " }}"] = value
        replacements.update(replace)
        return self.apply_filters(
            parsed.pattern,
            vars,
            parsed.filters,
            parsed.filters_has_replace,
            replacements,
            tables,
        )

    def evaluate(
        self,
        expression: str,
        context: FilterContext,
        replace: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Evaluate one filter expression to a string."""
        if context.translator is None and self.translator is not None:
            context = dataclasses.replace(context, translator=self.translator)
        inner = expression.strip()
        if inner.startswith("{{") and inner.endswith("}}"):
            inner = inner[2:-2]
        parts = [p.strip() for p in split_outside_quotes(inner, "|") if p.strip()]

        value: Any = ""
        for position, part in enumerate(parts):
            if replace and part in replace:
                value = replace[part]
                continue
            if replace:
                part = strtr(part, replace)
            if position == 0:
                if is_quoted(part):
                    value = unquote(part)
                    continue
                if "(" not in part and context.has_variable(part):
                    value = context.variable(part)
                    continue
            value = self.process_filter(value, part, context)

        if isinstance(value, list):
            value = value[0] if value else ""
        return to_string(value)

    def process_filter(self, value: Any, call: str, context: FilterContext) -> Any:
        """Apply one filter call like "slice(1, 4)" to a value."""
        match = CALL_PATTERN.fullmatch(call)
        if match:
            name, args = match.group("function"), match.group("args").strip()
        else:
            name, args = call.strip(), ""
        try:
            return self.registry.apply(value, name, args, context)
        except (ValueError, TypeError, IndexError) as e:
            logger.warning(f"Filter {name} failed on value {value!r}: {e}")
            return value
