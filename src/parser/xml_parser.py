"""XML file parser."""
from typing import Union

from lxml import etree

from src.parser.source_parser import SourceParser


class XmlParser(SourceParser):
    """Parse XML files into an element queried with xpath by the converter."""

    def parse(self, content: Union[str, bytes]) -> etree._Element:
        if isinstance(content, str):
            content = content.encode('utf-8')

        parser = etree.XMLParser(resolve_entities=False, no_network=True, huge_tree=False)
        try:
            return etree.fromstring(content, parser)
        except etree.XMLSyntaxError as e:
            raise RuntimeError(f"Failed to parse XML file: {str(e)}")
