"""Property and vocabulary lookup used to resolve field terms and datatypes."""
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class Property:
    """A property of a vocabulary, like dcterms:title."""

    id: int
    term: str
    label: str

    @property
    def local_name(self) -> str:
        return self.term.split(":")[-1]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {"id": self.id, "term": self.term, "label": self.label}


@dataclass
class Vocabulary:
    """A vocabulary with its prefix, label and properties."""

    prefix: str
    label: str
    properties: List[Property] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "prefix": self.prefix,
            "label": self.label,
            "properties": [p.to_dict() for p in self.properties],
        }


class Lookup(ABC):
    """Abstract lookup of properties, datatypes and custom vocabularies."""

    @abstractmethod
    def property_id(self, term: str) -> Optional[int]:
        """Get the id of a property term, or None."""
        pass

    @abstractmethod
    def data_type_name(self, name: str) -> Optional[str]:
        """Get the canonical name of a datatype, or None when unknown."""
        pass

    @abstractmethod
    def vocabularies(self) -> List[Vocabulary]:
        """List vocabularies with their properties."""
        pass

    @abstractmethod
    def custom_vocab_labels(self) -> Dict[str, int]:
        """Get custom vocabulary ids by label."""
        pass


class InMemoryLookup(Lookup):
    """Lookup backed by plain data, optionally loaded from a json file."""

    DATA_TYPES = [
        "literal",
        "uri",
        "html",
        "xml",
        "boolean",
        "resource",
        "resource:item",
        "resource:itemset",
        "resource:media",
        "resource:annotation",
        "numeric:integer",
        "numeric:timestamp",
        "numeric:interval",
        "numeric:duration",
        "geography",
        "geography:coordinates",
        "geometry",
        "geometry:geography",
        "geometry:geometry",
    ]

    DATA_TYPE_ALIASES = {
        "item": "resource:item",
        "items": "resource:item",
        "itemset": "resource:itemset",
        "item_set": "resource:itemset",
        "item set": "resource:itemset",
        "media": "resource:media",
        "annotation": "resource:annotation",
        "integer": "numeric:integer",
        "timestamp": "numeric:timestamp",
        "date": "numeric:timestamp",
        "interval": "numeric:interval",
        "duration": "numeric:duration",
        "text": "literal",
        "url": "uri",
    }

    # Datatypes defined by modules, with a free suffix.
    DATA_TYPE_PREFIXES = ("customvocab:", "valuesuggest:", "valuesuggestall:")

    def __init__(
        self,
        vocabularies: Optional[List[Vocabulary]] = None,
        custom_vocabs: Optional[Dict[str, int]] = None,
        data_types: Optional[List[str]] = None,
    ):
        """Initialize lookup."""
        self._vocabularies = vocabularies or []
        self._custom_vocabs = custom_vocabs or {}
        self._data_types = list(data_types) if data_types else list(self.DATA_TYPES)
        self._property_ids = {
            p.term: p.id for v in self._vocabularies for p in v.properties
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "InMemoryLookup":
        """
        Create a lookup from a dict.

        Expected keys: "vocabularies" (list of {prefix, label, properties:
        [{id, term, label}]}), "custom_vocabs" ({label: id}) and the optional
        "data_types" list.
        """
        vocabularies = []
        for vocab in data.get("vocabularies", []):
            properties = [
                Property(id=int(p["id"]), term=p["term"], label=p.get("label", p["term"]))
                for p in vocab.get("properties", [])
            ]
            vocabularies.append(
                Vocabulary(
                    prefix=vocab.get("prefix", ""),
                    label=vocab.get("label", vocab.get("prefix", "")),
                    properties=properties,
                )
            )
        custom_vocabs = {str(k): int(v) for k, v in data.get("custom_vocabs", {}).items()}
        return cls(vocabularies, custom_vocabs, data.get("data_types"))

    @classmethod
    def from_file(cls, path: str) -> "InMemoryLookup":
        """Load a lookup from a json file."""
        with open(Path(path), "r", encoding="utf-8") as f:
            data = json.load(f)
        logger.info(f"Loaded {len(data.get('vocabularies', []))} vocabularies from {path}")
        return cls.from_dict(data)

    def property_id(self, term: str) -> Optional[int]:
        return self._property_ids.get(term)

    def data_type_name(self, name: str) -> Optional[str]:
        if not name:
            return None
        if name in self._data_types:
            return name
        alias = self.DATA_TYPE_ALIASES.get(name.lower())
        if alias:
            return alias
        for prefix in self.DATA_TYPE_PREFIXES:
            if name.startswith(prefix) and len(name) > len(prefix):
                return name
        return None

    def vocabularies(self) -> List[Vocabulary]:
        return list(self._vocabularies)

    def custom_vocab_labels(self) -> Dict[str, int]:
        return dict(self._custom_vocabs)
