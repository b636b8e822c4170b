"""Preprocessing of xml sources with a list of xsl transformations."""
import logging
from pathlib import Path
from typing import Dict, List, Optional, Union

from config import app_config
from src.mapper.references import ReferenceResolver
from src.preprocess.xslt import ProcessXslt, XsltProcessingError

logger = logging.getLogger(__name__)


class Preprocessor:
    """
    Apply successive xsl transformations to a xml content.

    Each transformation is a reference resolved like a mapping reference
    ("module:xsl/...", "user:...", "mapping:5" or a path).
    """

    SUPPORTED_TYPES = ("xsl", "xslt")

    def __init__(
        self,
        process_xslt: Optional[ProcessXslt] = None,
        resolver: Optional[ReferenceResolver] = None,
    ):
        """Initialize preprocessor."""
        if process_xslt is None:
            process_xslt = ProcessXslt(
                command=app_config.xslt.command,
                temp_dir=app_config.xslt.temp_dir,
                timeout=app_config.xslt.timeout,
            )
        self.process_xslt = process_xslt
        self.resolver = resolver or ReferenceResolver(app_config.mapping_dir, app_config.user_mapping_dir)

    def __call__(
        self,
        content: str,
        preprocess: Optional[List[str]] = None,
        params: Optional[Dict[str, str]] = None,
        context: Optional[Union[str, Path]] = None,
    ) -> Optional[str]:
        return self.process(content, preprocess, params, context)

    def process(
        self,
        content: str,
        preprocess: Optional[List[str]] = None,
        params: Optional[Dict[str, str]] = None,
        context: Optional[Union[str, Path]] = None,
    ) -> Optional[str]:
        """
        Transform the content with each stylesheet in order.

        Returns None when a stylesheet is missing or a transformation fails.
        A stylesheet of an unsupported type is skipped.
        """
        if not preprocess:
            return content

        for reference in preprocess:
            resolved = self.resolver.resolve(reference, context)
            if resolved is None:
                logger.error(f"Preprocessor: transformation not found: {reference}.")
                return None

            if resolved.extension not in self.SUPPORTED_TYPES:
                logger.warning(
                    f'Preprocessor: unsupported type "{resolved.extension}" for {reference}. '
                    f"Supported types: {', '.join(self.SUPPORTED_TYPES)}."
                )
                continue

            stylesheet = str(resolved.filepath) if resolved.filepath is not None else resolved.content
            try:
                content = self.apply_xsl(content, stylesheet, params)
            except XsltProcessingError as e:
                logger.error(f"Preprocessor: {e}")
                return None

        return content

    def apply_xsl(self, content: str, stylesheet: str, params: Optional[Dict[str, str]] = None) -> str:
        return self.process_xslt.process_string(content, stylesheet, params)

    def set_base_path(self, base_dir: Union[str, Path]) -> "Preprocessor":
        self.resolver.base_dir = Path(base_dir)
        return self

    def get_base_path(self) -> Path:
        return self.resolver.base_dir

    def set_user_base_path(self, user_dir: Optional[Union[str, Path]]) -> "Preprocessor":
        self.resolver.user_dir = Path(user_dir) if user_dir else None
        return self

    def get_user_base_path(self) -> Optional[Path]:
        return self.resolver.user_dir

    def is_xsl_available(self) -> bool:
        return self.process_xslt.is_xsl_available()

    def has_external_processor(self) -> bool:
        return self.process_xslt.has_external_processor()
