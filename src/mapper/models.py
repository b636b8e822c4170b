"""Models for normalized mappings."""
from dataclasses import dataclass, field as dataclass_field
from typing import Any, Dict, List, Optional

from src.pattern.parser import ParseResult

QUERIERS = ("xpath", "jsdot", "jsonpath", "jmespath", "index", "none")

MOD_TYPES = ("none", "raw", "pattern")


@dataclass
class Source:
    """Where to read the value (the "from" part of a map)."""

    type: str = "none"
    path: Optional[str] = None
    index: Optional[int] = None

    @property
    def is_default(self) -> bool:
        """A default map reads nothing from the source."""
        return not self.path and self.index is None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {"type": self.type, "path": self.path, "index": self.index}


@dataclass
class Target:
    """Where to write the value (the "to" part of a map)."""

    field: Optional[str] = None
    property_id: Optional[int] = None
    datatype: List[str] = dataclass_field(default_factory=list)
    language: Optional[str] = None
    is_public: Optional[bool] = None
    field_type: Optional[str] = None

    def to_spec(self) -> str:
        """Serialize as a field spec like "dcterms:title ^^literal @fra §private"."""
        parts = [self.field or ""]
        parts.extend(f"^^{datatype}" for datatype in self.datatype)
        if self.language:
            parts.append(f"@{self.language}")
        if self.is_public is not None:
            parts.append("§public" if self.is_public else "§private")
        return " ".join(p for p in parts if p)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        result = {
            "field": self.field,
            "property_id": self.property_id,
            "datatype": list(self.datatype),
            "language": self.language,
            "is_public": self.is_public,
        }
        if self.field_type:
            result["field_type"] = self.field_type
        return result


@dataclass
class Modifier:
    """How to produce the value (the "mod" part of a map)."""

    type: str = "none"
    raw: Optional[str] = None
    val: Optional[str] = None
    pattern: Optional[str] = None
    prepend: Optional[str] = None
    append: Optional[str] = None
    parsed: Optional[ParseResult] = None

    @property
    def replace(self) -> List[str]:
        return self.parsed.replace if self.parsed else []

    @property
    def filters(self) -> List[str]:
        return self.parsed.filters if self.parsed else []

    @property
    def filters_has_replace(self) -> List[bool]:
        return self.parsed.filters_has_replace if self.parsed else []

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        result = {
            "type": self.type,
            "raw": self.raw,
            "pattern": self.pattern,
            "prepend": self.prepend,
            "append": self.append,
        }
        if self.val is not None:
            result["val"] = self.val
        if self.parsed:
            result["replace"] = list(self.replace)
            result["filters"] = list(self.filters)
            result["filters_has_replace"] = list(self.filters_has_replace)
        return result


@dataclass
class MapEntry:
    """A normalized map: one source to one destination."""

    source: Source = dataclass_field(default_factory=Source)
    target: Target = dataclass_field(default_factory=Target)
    mod: Modifier = dataclass_field(default_factory=Modifier)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "from": self.source.to_dict(),
            "to": self.target.to_dict(),
            "mod": self.mod.to_dict(),
        }


@dataclass
class MappingDocument:
    """A parsed mapping with its sections."""

    info: Dict[str, Any] = dataclass_field(default_factory=dict)
    params: Dict[str, Any] = dataclass_field(default_factory=dict)
    maps: List[MapEntry] = dataclass_field(default_factory=list)
    tables: Dict[str, Dict[str, str]] = dataclass_field(default_factory=dict)
    has_error: bool = False

    @property
    def label(self) -> Optional[str]:
        return self.info.get("label")

    @property
    def querier(self) -> Optional[str]:
        return self.info.get("querier")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        params = {}
        for name, value in self.params.items():
            params[name] = value.to_dict() if isinstance(value, ParseResult) else value
        return {
            "info": dict(self.info),
            "params": params,
            "maps": [m.to_dict() for m in self.maps],
            "tables": {name: dict(table) for name, table in self.tables.items()},
            "has_error": self.has_error,
        }


def empty_info(label: Optional[str] = None) -> Dict[str, Any]:
    """Default info section."""
    return {
        "label": label,
        "from": None,
        "to": None,
        "querier": None,
        "mapper": None,
        "example": None,
    }
