"""Resolution of mapping and stylesheet references."""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Union

logger = logging.getLogger(__name__)


@dataclass
class StoredMapping:
    """A mapping saved by the user."""

    id: int
    label: str
    content: str


class MappingStorage(ABC):
    """Abstract storage of saved mappings."""

    @abstractmethod
    def get(self, identifier: Union[int, str]) -> Optional[StoredMapping]:
        """Get a mapping by numeric id or by label."""
        pass


class InMemoryMappingStorage(MappingStorage):
    """Storage of mappings in a dict."""

    def __init__(self, mappings: Optional[List[StoredMapping]] = None):
        """Initialize storage."""
        self._mappings: Dict[int, StoredMapping] = {m.id: m for m in mappings or []}

    def add(self, label: str, content: str) -> StoredMapping:
        """Store a mapping and return it with its new id."""
        mapping = StoredMapping(id=max(self._mappings, default=0) + 1, label=label, content=content)
        self._mappings[mapping.id] = mapping
        return mapping

    def get(self, identifier: Union[int, str]) -> Optional[StoredMapping]:
        if isinstance(identifier, int) or str(identifier).isdigit():
            return self._mappings.get(int(identifier))
        for mapping in self._mappings.values():
            if mapping.label == identifier:
                return mapping
        return None


@dataclass
class ResolvedReference:
    """A reference resolved to a file or to stored content."""

    reference: str
    source: str  # "database", "module", "user" or "file"
    filepath: Optional[Path] = None
    content: Optional[str] = None
    label: Optional[str] = None

    @property
    def name(self) -> str:
        """File name or label, used to get the extension."""
        if self.filepath is not None:
            return self.filepath.name
        return self.label or self.reference

    @property
    def extension(self) -> str:
        return Path(self.name).suffix.lstrip(".").lower()

    @property
    def directory(self) -> Optional[Path]:
        return self.filepath.parent if self.filepath is not None else None

    def read(self) -> str:
        """Get the content, reading the file when needed."""
        if self.content is not None:
            return self.content
        with open(self.filepath, "r", encoding="utf-8") as f:
            return f.read()


class ReferenceResolver:
    """
    Resolve references like "mapping:5", "module:xml/lido.xml",
    "user:custom.ini" or a plain path.

    A plain path is searched as an absolute path, then relative to the
    context directory, then in "common/", then in the base directory.
    """

    def __init__(
        self,
        base_dir: Union[str, Path],
        user_dir: Optional[Union[str, Path]] = None,
        storage: Optional[MappingStorage] = None,
    ):
        """Initialize resolver."""
        self.base_dir = Path(base_dir)
        self.user_dir = Path(user_dir) if user_dir else None
        self.storage = storage

    def resolve(self, reference: str, context: Optional[Union[str, Path]] = None) -> Optional[ResolvedReference]:
        """Resolve a reference, or return None when it is not found."""
        if not reference:
            return None

        if reference.startswith("mapping:"):
            return self._resolve_stored(reference)

        if reference.startswith("module:"):
            filepath = self.base_dir / reference[len("module:"):]
            if filepath.is_file():
                return ResolvedReference(reference, "module", filepath=filepath)
            return None

        if reference.startswith("user:"):
            if self.user_dir is None:
                return None
            filepath = self.user_dir / reference[len("user:"):]
            if filepath.is_file():
                return ResolvedReference(reference, "user", filepath=filepath)
            return None

        filepath = self.resolve_path(reference, context)
        if filepath is not None:
            return ResolvedReference(reference, "file", filepath=filepath)
        return None

    def _resolve_stored(self, reference: str) -> Optional[ResolvedReference]:
        if self.storage is None:
            logger.debug(f"No mapping storage to resolve {reference}")
            return None
        identifier = reference[len("mapping:"):]
        mapping = self.storage.get(int(identifier) if identifier.isdigit() else identifier)
        if mapping is None:
            return None
        return ResolvedReference(reference, "database", content=mapping.content, label=mapping.label)

    def resolve_path(self, file: str, context: Optional[Union[str, Path]] = None) -> Optional[Path]:
        """Find a file by its absolute path, or relatively to context, common or base."""
        path = Path(file)
        if path.is_absolute():
            return path if path.is_file() else None

        candidates = []
        if context:
            context = Path(context)
            candidates.append(context / file if context.is_absolute() else self.base_dir / context / file)
        candidates.append(self.base_dir / "common" / file)
        candidates.append(self.base_dir / file)

        for candidate in candidates:
            if candidate.is_file():
                return candidate
        return None
