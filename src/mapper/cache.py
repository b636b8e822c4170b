"""Process-wide cache of parsed mappings."""
import copy
import logging
import threading
from typing import Callable, Dict, List, Optional

from src.mapper.models import MappingDocument

logger = logging.getLogger(__name__)


class MappingCache:
    """
    Thread-safe cache of mapping documents, keyed by name.

    Stored documents are never exposed: readers get deep copies. The factory
    of get_or_create() runs under a reentrant lock, so a mapping is parsed
    once even when threads ask for it together, and a factory may load other
    mappings (bases, includes) from the same cache.
    """

    def __init__(self):
        """Initialize cache."""
        self._documents: Dict[str, MappingDocument] = {}
        self._lock = threading.RLock()

    def get(self, name: str) -> Optional[MappingDocument]:
        """Get a copy of a cached document."""
        with self._lock:
            document = self._documents.get(name)
        return copy.deepcopy(document) if document is not None else None

    def contains(self, name: str) -> bool:
        """Check if a name is cached."""
        with self._lock:
            return name in self._documents

    def get_or_create(self, name: str, factory: Callable[[], MappingDocument]) -> MappingDocument:
        """Get a cached document, or create and store it."""
        with self._lock:
            document = self._documents.get(name)
            if document is None:
                logger.debug(f"Mapping {name} not cached, creating it")
                document = self._documents.setdefault(name, factory())
            return copy.deepcopy(document)

    def replace(self, name: str, document: MappingDocument) -> MappingDocument:
        """Store a new document under a name, replacing the previous one."""
        stored = copy.deepcopy(document)
        with self._lock:
            self._documents[name] = stored
        return copy.deepcopy(stored)

    def names(self) -> List[str]:
        """List cached names."""
        with self._lock:
            return list(self._documents)

    def clear(self) -> None:
        """Remove all documents."""
        with self._lock:
            self._documents.clear()
