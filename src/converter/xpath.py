"""XPath queries on xml sources."""
import logging
from typing import Any, Dict, List, Optional, Union

from lxml import etree

from src.transformer.strings import format_number

logger = logging.getLogger(__name__)

# Prefixes registered for every query, used by authority records (IdRef,
# BnF...). Prefixes declared by the document override them.
COMMON_NAMESPACES = {
    "bio": "http://purl.org/vocab/bio/0.1/",
    "bnf-onto": "http://data.bnf.fr/ontology/bnf-onto/",
    "dbpedia-owl": "http://dbpedia.org/ontology/",
    "dc": "http://purl.org/dc/elements/1.1/",
    "dcterms": "http://purl.org/dc/terms/",
    "ead": "urn:isbn:1-931666-22-9",
    "foaf": "http://xmlns.com/foaf/0.1/",
    "gml": "http://www.opengis.net/gml",
    "idref": "http://www.idref.fr/",
    "isni": "https://isni.org/ontology#",
    "lido": "http://www.lido-schema.org",
    "owl": "http://www.w3.org/2002/07/owl#",
    "rdaGr2": "http://rdvocab.info/ElementsGr2/",
    "rdaGr3": "http://rdvocab.info/ElementsGr3/",
    "rdf": "http://www.w3.org/1999/02/22-rdf-syntax-ns#",
    "rdfs": "http://www.w3.org/2000/01/rdf-schema#",
    "skos": "http://www.w3.org/2004/02/skos/core#",
    "xsd": "http://www.w3.org/2001/XMLSchema#",
}

XmlDocument = Union[etree._Element, etree._ElementTree]


def root_of(document: XmlDocument) -> etree._Element:
    if isinstance(document, etree._ElementTree):
        return document.getroot()
    return document


def document_namespaces(document: XmlDocument) -> Dict[str, str]:
    """Common namespaces completed with the ones declared on the root element."""
    namespaces = dict(COMMON_NAMESPACES)
    for prefix, uri in (root_of(document).nsmap or {}).items():
        if prefix and prefix != "xml" and uri:
            namespaces[prefix] = uri
    return namespaces


def xpath_query(
    document: XmlDocument,
    query: str,
    context: Optional[etree._Element] = None,
    namespaces: Optional[Dict[str, str]] = None,
) -> List[Any]:
    """
    Evaluate a xpath on a document or relatively to a context node.

    Without context node, relative paths start from the root element.

    The result is always a list: nodes, or strings for attributes, text
    nodes and functions like "substring(...)" or "count(...)". A false or
    empty scalar gives an empty list and true gives "1".
    """
    if namespaces is None:
        namespaces = document_namespaces(document)

    node = context if context is not None else root_of(document)

    try:
        result = node.xpath(query, namespaces=namespaces)
    except etree.XPathError as e:
        logger.warning(f'Invalid xpath "{query}": {e}')
        return []

    if result is False or result is None:
        return []
    if result is True:
        return ["1"]
    if isinstance(result, float):
        return [format_number(result)]
    if isinstance(result, str):
        return [str(result)] if result != "" else []
    if isinstance(result, list):
        return [str(r) if isinstance(r, str) else r for r in result]
    return [result]


def node_text(node: Any) -> str:
    """Text of a node (all descendant text), or the string itself."""
    if isinstance(node, etree._Element):
        return "".join(node.itertext())
    if node is None:
        return ""
    return str(node)


def node_xml(node: Any) -> str:
    """Canonical xml (c14n) of an element."""
    if isinstance(node, etree._Element):
        return etree.tostring(node, method="c14n").decode("utf-8")
    return node_text(node)
