"""Tests for the converter."""
import pytest

from src.converter.accessors import flat_array
from src.converter.converter import Converter, is_url
from src.mapper.mapping_config import MappingConfig
from src.mapper.references import ReferenceResolver
from src.pattern.parser import PatternParser


@pytest.fixture
def converter(tmp_path):
    """Converter with its own mapping config"""
    return Converter(MappingConfig(resolver=ReferenceResolver(tmp_path)))


def convert(converter, mapping, record, options=None):
    converter.set_mapping("test", mapping, options)
    return converter.convert(record)


def literal(value, **extra):
    return dict({"type": "literal", "@value": value}, **extra)


class TestArraySources:
    """Conversion of nested data."""

    def test_simple_ini(self, converter):
        """Test a one line mapping with index querier."""
        result = convert(converter, "title = dcterms:title", {"title": "Hello"}, {"default_querier": "index"})
        assert result == {"dcterms:title": [literal("Hello")]}

    def test_url_detection(self, converter):
        """Test that an url without datatype is an uri."""
        result = convert(converter, "link = dcterms:source", {"link": "https://example.org/a"})
        assert result == {"dcterms:source": [{"type": "uri", "@id": "https://example.org/a"}]}

    def test_filter_chain(self, converter):
        """Test a pattern with filters."""
        result = convert(converter, "title = dcterms:title ~ {{ value|trim|upper }}", {"title": "  hi  "})
        assert result == {"dcterms:title": [literal("HI")]}

    def test_nested_path(self, converter):
        """Test a dotted path."""
        result = convert(converter, "meta.title = dcterms:title", {"meta": {"title": "T"}})
        assert result == {"dcterms:title": [literal("T")]}

    def test_multiple_values(self, converter):
        """Test that each value of a list is converted."""
        result = convert(converter, "subject = dcterms:subject", {"subject": ["A", "B"]})
        assert result == {"dcterms:subject": [literal("A"), literal("B")]}

    def test_values_are_not_deduplicated(self, converter):
        """Test two maps to the same field."""
        result = convert(converter, "a = dcterms:subject\nb = dcterms:subject", {"a": "A", "b": "A"})
        assert result == {"dcterms:subject": [literal("A"), literal("A")]}

    def test_missing_value(self, converter):
        """Test that a missing path gives nothing."""
        assert convert(converter, "title = dcterms:title", {"other": "x"}) == {}

    def test_qualifiers(self, converter):
        """Test language, visibility and datatype."""
        result = convert(
            converter,
            "title = dcterms:title @fra §private\nlink = dcterms:source ^^uri",
            {"title": "T", "link": "x"},
        )
        assert result == {
            "dcterms:title": [literal("T", **{"@language": "fra", "is_public": False})],
            "dcterms:source": [{"type": "uri", "@id": "x"}],
        }

    def test_table(self, converter):
        """Test a named table, with braces kept literally."""
        mapping = "[maps]\nlang = dcterms:language ~ {{ value|table('lang') }}\n[tables]\nlang.fr = {French}\n"
        result = convert(converter, mapping, {"lang": ["fr", "de"]})
        assert result == {"dcterms:language": [literal("{French}"), literal("de")]}

    def test_variables(self, converter):
        """Test a converter variable in a pattern."""
        converter.set_variables({"url": "https://example.org/items/"})
        result = convert(converter, "id = dcterms:identifier ~ {{ url }}{{ value }}", {"id": "42"})
        assert result == {"dcterms:identifier": [{"type": "uri", "@id": "https://example.org/items/42"}]}

    def test_jsdot_querier_from_info(self, converter):
        """Test the querier of the mapping."""
        result = convert(converter, "[info]\nquerier = jsdot\n[maps]\nmeta.title = dcterms:title", {"meta": {"title": "T"}})
        assert result == {"dcterms:title": [literal("T")]}

    def test_fields_blocks(self, converter):
        """Test repeated field blocks."""
        mapping = (
            "[params]\nfields = fields\nfields.key = key\nfields.value = value\n"
            "[maps]\nfields[].title = dcterms:title\n"
        )
        record = {"fields": [
            {"key": "title", "value": "T"},
            {"key": "date", "value": "2020"},
            {"key": "title", "value": "U"},
        ]}
        assert convert(converter, mapping, record) == {"dcterms:title": [literal("T"), literal("U")]}


class TestModifiers:
    """Raw values, default maps and prepend/append."""

    def test_raw_wins(self, converter):
        """Test that raw is emitted without evaluating the pattern."""
        mapping = {"maps": [{"from": "title", "to": "dcterms:title", "mod": {"raw": "Fixed", "pattern": "{{ value|upper }}"}}]}
        assert convert(converter, mapping, {}) == {"dcterms:title": [literal("Fixed")]}

    def test_raw_ini(self, converter):
        """Test the ini raw shorthand."""
        assert convert(converter, "dcterms:rights = 'Public domain'", {}) == {"dcterms:rights": [literal("Public domain")]}

    def test_combined_values(self, converter):
        """Test a default map combining source values."""
        mapping = {"maps": [{"to": "foaf:name", "mod": {"pattern": "{firstName} {lastName}"}}]}
        assert convert(converter, mapping, {"firstName": "John", "lastName": "Doe"}) == {"foaf:name": [literal("John Doe")]}
        assert converter.convert({"firstName": "John"}) == {"foaf:name": [literal("John")]}
        assert converter.convert({}) == {}

    def test_default_fixed_text(self, converter):
        """Test a default map with a fixed pattern."""
        mapping = {"maps": [{"to": "dcterms:publisher", "mod": {"pattern": "Museum"}}]}
        assert convert(converter, mapping, {}) == {"dcterms:publisher": [literal("Museum")]}

    def test_prefix_without_value(self, converter):
        """Test that a decorated pattern needs a value."""
        mapping = {"maps": [{"from": "title", "to": "dcterms:title", "mod": {"pattern": "prefix-{{ value }}"}}]}
        assert convert(converter, mapping, {"other": "x"}) == {}
        assert converter.convert({"title": ""}) == {}
        assert converter.convert({"title": "x"}) == {"dcterms:title": [literal("prefix-x")]}

    def test_prepend_append(self, converter):
        """Test prepend and append."""
        mapping = {"maps": [{"from": "id", "to": "dcterms:identifier", "mod": {"prepend": "ID-", "append": "!"}}]}
        assert convert(converter, mapping, {"id": "42"}) == {"dcterms:identifier": [literal("ID-42!")]}
        assert converter.convert({}) == {}

    def test_val(self, converter):
        """Test that val replaces a converted value."""
        mapping = {"maps": [{"from": "id", "to": "dcterms:type", "mod": {"val": "numbered", "pattern": "{{ value }}"}}]}
        assert convert(converter, mapping, {"id": "42"}) == {"dcterms:type": [literal("numbered")]}

    def test_has_replacement(self, converter):
        """Test the detection of real substitutions."""
        parser = PatternParser()
        decorated = parser.parse("prefix-{{ value }}")
        assert converter.has_replacement(None, "prefix-", decorated) is False
        assert converter.has_replacement("", "prefix-", decorated) is False
        assert converter.has_replacement("x", "prefix-", decorated) is False
        assert converter.has_replacement("x", "prefix-x", decorated) is True
        assert converter.has_replacement("x", "x", parser.parse("{{ value }}")) is True
        assert converter.has_replacement("x", "", parser.parse("{{ value }}")) is False


class TestPatternParams:
    """Params rendered for each record."""

    def test_param_with_value(self, converter):
        """Test a param that uses the current value."""
        mapping = "[params]\nupper_title = ~ {{ value|upper }}\n[maps]\ntitle = dcterms:title ~ {{ upper_title }}!\n"
        result = convert(converter, mapping, {"title": ["hi", "yo"]})
        assert result == {"dcterms:title": [literal("HI!"), literal("YO!")]}

    def test_param_with_record_path(self, converter):
        """Test a param that reads the record."""
        mapping = "[params]\nsite = ~ {publisher} archive\n[maps]\ntitle = dcterms:title ~ {{ value }} ({{ site }})\n"
        result = convert(converter, mapping, {"title": "T", "publisher": "Museum"})
        assert result == {"dcterms:title": [literal("T (Museum archive)")]}

    def test_converter_variable_wins(self, converter):
        """Test that a converter variable is not replaced by a param."""
        converter.set_variable("site", "Given")
        mapping = "[params]\nsite = ~ {publisher} archive\n[maps]\ntitle = dcterms:title ~ {{ value }} ({{ site }})\n"
        result = convert(converter, mapping, {"title": "T", "publisher": "Museum"})
        assert result == {"dcterms:title": [literal("T (Given)")]}

    def test_param_translated(self, tmp_path):
        """Test that the translator of the config applies to params."""
        config = MappingConfig(resolver=ReferenceResolver(tmp_path), translator=lambda w: {"Yes": "Oui"}.get(w, w))
        converter = Converter(config)
        mapping = "[params]\nanswer = ~ {{ value|translate }}\n[maps]\nflag = dcterms:title ~ {{ answer }}\n"
        assert convert(converter, mapping, {"flag": "Yes"}) == {"dcterms:title": [literal("Oui")]}

        parsed = PatternParser().parse("{{ site|translate }}")
        assert config.render_param(parsed, {"site": "Yes"}) == "Oui"


class TestFieldTypes:
    """Typed output fields."""

    def test_boolean(self, converter):
        """Test booleans."""
        mapping = {"maps": [{"from": "flag", "to": {"field": "active", "field_type": "boolean"}}]}
        assert convert(converter, mapping, {"flag": ["yes", "0", "maybe"]}) == {"active": [True, False, None]}

    def test_boolean_translated(self, tmp_path):
        """Test translated boolean words."""
        translations = {"yes": "oui", "no": "non", "true": "vrai", "false": "faux", "on": "on", "off": "off"}
        converter = Converter(MappingConfig(resolver=ReferenceResolver(tmp_path)), translator=lambda w: translations.get(w, w))
        mapping = {"maps": [{"from": "flag", "to": {"field": "active", "field_type": "boolean"}}]}
        assert convert(converter, mapping, {"flag": ["Oui", "non"]}) == {"active": [True, False]}

    def test_integer(self, converter):
        """Test integers."""
        mapping = '<mapping><map><from xpath="count(//item)"/><to field="count" type="integer"/></map></mapping>'
        assert convert(converter, mapping, "<list><item/><item/></list>") == {"count": [2]}

    def test_datetime(self, converter):
        """Test partial dates completed as datetimes."""
        mapping = {"maps": [{"from": "date", "to": {"field": "created", "field_type": "datetime"}}]}
        assert convert(converter, mapping, {"date": "2020-05"}) == {"created": ["2020-05-00 00:00:00"]}

    def test_string_and_skip(self, converter):
        """Test strings and skipped fields."""
        mapping = {"maps": [
            {"from": "a", "to": {"field": "name", "field_type": "string"}},
            {"from": "b", "to": {"field": "ignored", "field_type": "skip"}},
        ]}
        assert convert(converter, mapping, {"a": "x", "b": "y"}) == {"name": ["x"]}

    def test_array(self, converter):
        """Test values with their target properties."""
        mapping = {"maps": [{"from": "a", "to": {"field": "values", "datatype": ["literal"], "field_type": "array"}}]}
        assert convert(converter, mapping, {"a": "v"}) == {"values": [{
            "__value": "v",
            "property_id": None,
            "datatype": ["literal"],
            "language": None,
            "is_public": None,
        }]}


class TestXmlSources:
    """Conversion of xml records."""

    def test_document_namespace(self, converter):
        """Test a prefix declared only by the source document."""
        mapping = '<mapping><map><from xpath="//my:title"/><to field="dcterms:title"/></map></mapping>'
        record = '<record xmlns:my="http://example.org/my"><my:title>Hello</my:title></record>'
        assert convert(converter, mapping, record) == {"dcterms:title": [literal("Hello")]}

    def test_common_namespace(self, converter):
        """Test a prefix of the common namespaces."""
        mapping = '<mapping><map><from xpath="//dc:title"/><to field="dcterms:title"/></map></mapping>'
        record = '<record xmlns:d="http://purl.org/dc/elements/1.1/"><d:title>Hello</d:title></record>'
        assert convert(converter, mapping, record) == {"dcterms:title": [literal("Hello")]}

    def test_relative_paths(self, converter):
        """Test placeholders relative to the current node."""
        mapping = (
            '<mapping><map><from xpath="//item"/><to field="dcterms:subject"/>'
            '<mod pattern="{name} ({code})"/></map></mapping>'
        )
        record = "<list><item><name>A</name><code>1</code></item><item><name>B</name><code>2</code></item></list>"
        assert convert(converter, mapping, record) == {"dcterms:subject": [literal("A (1)"), literal("B (2)")]}

    def test_attribute(self, converter):
        """Test an attribute value."""
        mapping = '<mapping><map><from xpath="//item/@code"/><to field="dcterms:identifier"/></map></mapping>'
        assert convert(converter, mapping, '<list><item code="a"/><item code="b"/></list>') == {
            "dcterms:identifier": [literal("a"), literal("b")]
        }

    def test_xml_datatype(self, converter):
        """Test that a xml datatype keeps the markup."""
        mapping = '<mapping><map><from xpath="//note"/><to field="dcterms:description" datatype="xml"/></map></mapping>'
        assert convert(converter, mapping, "<r><note>a <b>b</b></note></r>") == {
            "dcterms:description": [{"type": "xml", "@value": "<note>a <b>b</b></note>"}]
        }

    def test_invalid_xml(self, converter):
        """Test that an invalid record gives nothing."""
        assert convert(converter, "title = dcterms:title", "<record>") == {}


class TestQueriers:
    """External queriers."""

    def test_jmespath(self, converter):
        """Test jmespath."""
        pytest.importorskip("jmespath")
        mapping = {"maps": [{"from": {"jmespath": "a.b"}, "to": "dcterms:title"}]}
        assert convert(converter, mapping, {"a": {"b": "v"}}) == {"dcterms:title": [literal("v")]}

    def test_jsonpath(self, converter):
        """Test jsonpath."""
        pytest.importorskip("jsonpath_ng")
        mapping = {"maps": [{"from": {"jsonpath": "$.items[*].name"}, "to": "dcterms:title"}]}
        record = {"items": [{"name": "A"}, {"name": "B"}]}
        assert convert(converter, mapping, record) == {"dcterms:title": [literal("A"), literal("B")]}


class TestHelpers:
    """Helpers for single values."""

    def test_no_mapping(self, converter):
        """Test a converter without mapping."""
        assert converter.set_mapping_name("unknown").convert({"a": "b"}) == {}

    def test_call(self, converter):
        """Test the callable form."""
        assert converter("test", "title = dcterms:title") is converter
        assert converter.get_mapping_name() == "test"
        assert converter.convert({"title": "T"}) == {"dcterms:title": [literal("T")]}

    def test_convert_string(self, converter):
        """Test the conversion of one string."""
        assert converter.convert_string("  hi ", "~ = dcterms:title ~ {{ value|trim|upper }}") == "HI"
        assert converter.convert_string("x", {"to": "dcterms:title", "mod": {"raw": "R"}}) == "R"
        assert converter.convert_string("x", {"to": "dcterms:title", "mod": {"pattern": "{{ value }}", "prepend": "<", "append": ">"}}) == "<x>"
        assert converter.convert_string("x") == "x"
        assert converter.convert_string(None, "~ = dcterms:title ~ {{ value }}") == ""

    def test_extract_value(self, converter):
        """Test the extraction of values."""
        assert converter.extract_value({"a": {"b": ["x", "y"]}}, "a.b") == ["x", "y"]
        assert converter.extract_value({"a": {"b": "x"}}, "a", "index") == [{"b": "x"}]
        assert converter.extract_value("<r><t>1</t><t>2</t></r>", "//t/text()") == ["1", "2"]

    def test_is_url(self):
        """Test url detection."""
        assert is_url("https://example.org/a")
        assert is_url("ftp://example.org")
        assert not is_url("example.org")
        assert not is_url("https://example.org/a b")
        assert not is_url("urn:isbn:123")


class TestFlatArray:
    """Flattening of nested data."""

    def test_nested(self):
        """Test nested keys."""
        assert flat_array({"a": {"b": "c"}}) == {"a.b": "c"}

    def test_lists(self):
        """Test list positions."""
        assert flat_array({"a": ["x", {"b": "y"}]}) == {"a.0": "x", "a.1.b": "y"}
        assert flat_array(["x", "y"]) == {"0": "x", "1": "y"}

    def test_escaping(self):
        """Test that dots and backslashes of keys are escaped."""
        assert flat_array({"video": {"data.format": "jpg", "a\\b": "c"}}) == {
            "video.data\\.format": "jpg",
            "video.a\\\\b": "c",
        }

    def test_idempotent(self):
        """Test that flat data is returned as is."""
        flat = {"a.b": "c", "d": "e"}
        assert flat_array(flat) == flat
        assert flat_array(flat_array({"a": {"b": "c"}})) == {"a.b": "c"}

    def test_empty(self):
        """Test empty data."""
        assert flat_array({}) == {}
        assert flat_array(None) == {}
