"""Tests for the mapping config: formats, sections, inheritance and params."""
import hashlib

import pytest

from src.mapper.mapping_config import MappingConfig
from src.mapper.references import ReferenceResolver
from src.pattern.parser import ParseResult

INI_MAPPING = """
; Sample mapping
[info]
label = Test
querier = jsdot

[params]
base = https://example.org

[maps]
~ = dcterms:publisher ~ 'Museum'
title = dcterms:title @fra
creator = dcterms:creator ^^literal

[tables]
lang.fr = French
lang.en = English
"""

JSON_MAPPING = """
{
    "info": {"label": "Test", "querier": "jsdot"},
    "params": {"base": "https://example.org"},
    "maps": [
        {"to": "dcterms:publisher", "mod": {"raw": "Museum"}},
        {"from": "title", "to": "dcterms:title @fra"},
        {"from": "creator", "to": "dcterms:creator ^^literal"}
    ],
    "tables": {"lang": {"fr": "French", "en": "English"}}
}
"""

XML_MAPPING = """
<mapping>
    <info>
        <label>Test</label>
        <querier>jsdot</querier>
    </info>
    <params>
        <base>https://example.org</base>
    </params>
    <map>
        <from jsdot="title"/>
        <to field="dcterms:title" language="fra"/>
    </map>
    <map>
        <from jsdot="creator"/>
        <to field="dcterms:creator" datatype="literal"/>
    </map>
    <map>
        <to field="dcterms:publisher"/>
        <mod raw="Museum"/>
    </map>
    <table code="lang">
        <list>
            <term code="fr">French</term>
            <term code="en">English</term>
        </list>
    </table>
</mapping>
"""


@pytest.fixture
def config(tmp_path):
    """Mapping config resolving references in a temp dir"""
    return MappingConfig(resolver=ReferenceResolver(tmp_path))


def fields(document):
    return [entry.target.field for entry in document.maps]


class TestFormats:
    """Same mapping written as ini, json, xml and dict."""

    def test_ini(self, config):
        """Test all sections of an ini mapping."""
        document = config("ini", INI_MAPPING)

        assert document.has_error is False
        assert document.label == "Test"
        assert document.querier == "jsdot"
        assert document.params == {"base": "https://example.org"}
        assert document.tables == {"lang": {"fr": "French", "en": "English"}}
        assert fields(document) == ["dcterms:publisher", "dcterms:title", "dcterms:creator"]
        assert document.maps[0].mod.raw == "Museum"
        assert document.maps[1].source.type == "jsdot"
        assert document.maps[1].source.path == "title"

    def test_formats_are_equivalent(self, config):
        """Test that every format gives the same document."""
        ini = config("ini", INI_MAPPING).to_dict()
        assert config("json", JSON_MAPPING).to_dict() == ini
        assert config("xml", XML_MAPPING).to_dict() == ini

    def test_dict(self, config):
        """Test a structured dict."""
        document = config("dict", {
            "info": {"label": "Test", "querier": "jsdot"},
            "maps": [{"from": "title", "to": "dcterms:title @fra"}],
        })
        assert fields(document) == ["dcterms:title"]
        assert document.maps[0].source.type == "jsdot"

    def test_map_list(self, config):
        """Test a list of maps: positions are indexes."""
        document = config("list", [{"to": "dcterms:title"}, "dcterms:creator"])
        assert document.querier == "index"
        assert [entry.source.index for entry in document.maps] == [0, 1]

    def test_single_map(self, config):
        """Test a dict without sections."""
        document = config("single", {"from": "title", "to": "dcterms:title"})
        assert document.querier == "index"
        assert document.maps[0].source.type == "index"
        assert document.maps[0].source.path == "title"

    def test_comments_and_unknown_sections(self, config):
        """Test that comments and unknown sections are skipped."""
        document = config("ini", "; comment\nfirst = dcterms:title\n[unknown]\nfoo = dcterms:creator\n[maps]\nsecond = dcterms:subject")
        assert fields(document) == ["dcterms:title", "dcterms:subject"]

    def test_label_defaults_to_name(self, config):
        """Test the label of a mapping without info."""
        assert config("my-mapping", "title = dcterms:title").label == "my-mapping"

    def test_invalid_json(self, config):
        """Test that an invalid json gives an error."""
        document = config("bad", "{not json")
        assert document.has_error is True
        assert config.has_error("bad") is True

    def test_invalid_xml(self, config):
        """Test that an invalid xml gives an error."""
        assert config("bad", "<mapping><map>").has_error is True

    def test_missing_reference(self, config):
        """Test that a missing file gives an error."""
        assert config(None, "missing.ini").has_error is True


class TestCache:
    """Caching and naming."""

    def test_without_arguments(self, config):
        """Test that the config itself is returned."""
        assert config() is config

    def test_name_from_content(self, config):
        """Test that a content is named by its hash."""
        content = "title = dcterms:title"
        config(None, content)
        assert config.get_current_name() == hashlib.md5(content.encode("utf-8")).hexdigest()

    def test_name_from_reference(self):
        """Test that a reference is its own name."""
        assert MappingConfig.name_from_reference("module:xml/lido.xml") == "module:xml/lido.xml"

    def test_is_content(self):
        """Test the detection of contents."""
        assert MappingConfig.is_content("title = dcterms:title")
        assert MappingConfig.is_content("<mapping/>")
        assert MappingConfig.is_content("[{}]")
        assert not MappingConfig.is_content("user:my.ini")

    def test_parsed_once(self, config):
        """Test that a second call returns the cached document."""
        first = config("cached", INI_MAPPING)
        second = config("cached", "title = dcterms:other")
        assert second.to_dict() == first.to_dict()

    def test_copies(self, config):
        """Test that the cached document cannot be modified by callers."""
        document = config("cached", INI_MAPPING)
        document.maps.clear()
        document.params["base"] = "changed"

        cached = config("cached")
        assert len(cached.maps) == 3
        assert cached.params["base"] == "https://example.org"

    def test_get_mapping_unknown(self, config):
        """Test an unknown name."""
        assert config.get_mapping("unknown") is None
        assert config.has_error("unknown") is True


class TestSections:
    """Access to sections and settings."""

    @pytest.fixture
    def loaded(self, config):
        """Config with the ini mapping loaded"""
        config("ini", INI_MAPPING)
        return config

    def test_get_section(self, loaded):
        """Test sections."""
        assert loaded.get_section("info")["label"] == "Test"
        assert len(loaded.get_section("maps")) == 3
        assert loaded.get_section("unknown") == {}

    def test_get_section_setting(self, loaded):
        """Test settings."""
        assert loaded.get_section_setting("info", "querier") == "jsdot"
        assert loaded.get_section_setting("params", "missing", "default") == "default"
        assert loaded.get_section_setting("maps", "title").target.field == "dcterms:title"
        assert loaded.get_section_setting_sub("tables", "lang", "fr") == "French"
        assert loaded.get_section_setting_sub("tables", "lang", "de", "?") == "?"

    def test_other_mapping(self, loaded):
        """Test settings of a mapping by name."""
        loaded("other", "[info]\nlabel = Other")
        assert loaded.get_section_setting("info", "label", name="ini") == "Test"
        assert loaded.get_section_setting("info", "label") == "Other"


class TestInheritance:
    """Base mappings and includes."""

    def test_mapper(self, config, tmp_path):
        """Test that a child mapping extends its base."""
        (tmp_path / "base.ini").write_text(
            "[info]\nquerier = jsdot\n[params]\nsite = Base\nshared = base\n"
            "[maps]\ntitle = dcterms:title\n[tables]\nlang.fr = French\n",
            encoding="utf-8",
        )
        (tmp_path / "child.ini").write_text(
            "[info]\nmapper = base.ini\n[params]\nshared = child\n"
            "[maps]\ncreator = dcterms:creator\n[tables]\nlang.en = English\n",
            encoding="utf-8",
        )

        document = config(None, "child.ini")

        assert document.has_error is False
        assert fields(document) == ["dcterms:title", "dcterms:creator"]
        assert document.params == {"site": "Base", "shared": "child"}
        assert document.tables == {"lang": {"fr": "French", "en": "English"}}
        assert document.querier == "jsdot"
        assert config.get_mapping("base.ini") is not None

    def test_self_reference(self, config, tmp_path):
        """Test that a mapping cannot inherit from itself."""
        (tmp_path / "self.ini").write_text("[info]\nmapper = self.ini\n[maps]\ntitle = dcterms:title\n", encoding="utf-8")

        document = config(None, "self.ini")

        assert document.has_error is False
        assert fields(document) == ["dcterms:title"]

    def test_cycle(self, config, tmp_path):
        """Test that circular references stop."""
        (tmp_path / "a.ini").write_text("[info]\nmapper = b.ini\n[maps]\na = dcterms:title\n", encoding="utf-8")
        (tmp_path / "b.ini").write_text("[info]\nmapper = a.ini\n[maps]\nb = dcterms:creator\n", encoding="utf-8")

        document = config(None, "a.ini")

        assert fields(document) == ["dcterms:creator", "dcterms:title"]

    def test_missing_base(self, config):
        """Test that a missing base is skipped."""
        document = config("child", "[info]\nmapper = missing.ini\n[maps]\ntitle = dcterms:title")
        assert document.has_error is False
        assert fields(document) == ["dcterms:title"]

    def test_xml_include(self, config, tmp_path):
        """Test a xml include."""
        (tmp_path / "common.xml").write_text(
            '<mapping><params><p>1</p></params>'
            '<map><from xpath="//title"/><to field="dcterms:title"/></map>'
            '<table code="t"><list><term code="a">A</term></list></table></mapping>',
            encoding="utf-8",
        )
        document = config(
            "main",
            '<mapping><include mapping="common.xml"/>'
            '<map><from xpath="//creator"/><to field="dcterms:creator"/></map></mapping>',
        )

        assert fields(document) == ["dcterms:title", "dcterms:creator"]
        assert document.params == {"p": "1"}
        assert document.tables == {"t": {"a": "A"}}


class TestParams:
    """Pattern params."""

    def test_pattern_param(self, config):
        """Test that a "~" param is parsed."""
        document = config("params", "[params]\nbase = ~ {{ url|split('/api/', -1)|first }}\n")
        assert isinstance(document.params["base"], ParseResult)
        assert document.to_dict()["params"]["base"]["has_filters"] is True

    def test_evaluate_static_params(self, config):
        """Test params evaluated with static variables."""
        config("params", "[params]\nbase = ~ {{ url|split('/api/', -1)|first }}\ntitle = Fixed\n"
                         "current = ~ {{ value|upper }}\n")

        document = config.evaluate_static_params({"url": "https://example.org/api/items"})

        assert document.params["base"] == "https://example.org"
        assert document.params["title"] == "Fixed"
        assert isinstance(document.params["current"], ParseResult)
        assert config("params").params["base"] == "https://example.org"

    def test_params_use_previous_params(self, config):
        """Test that a param can use a previous one."""
        config("params", "[params]\nsite = Museum\nlabel = ~ {{ site|upper }}\n")
        document = config.evaluate_static_params({}, "params")
        assert document.params["label"] == "MUSEUM"

    def test_missing_variable(self, config):
        """Test that a param with an unknown variable is kept."""
        config("params", "[params]\nbase = ~ {{ url|upper }}\n")
        document = config.evaluate_static_params({})
        assert isinstance(document.params["base"], ParseResult)

    def test_verify_param_order(self, config):
        """Test the warning about params defined later."""
        messages = config.verify_param_order({"a": "~ {{ b }}", "b": "x", "c": "~ {{ url }}"})
        assert messages == ['Param "a" references param "b" which is defined later.']

    def test_verify_param_order_by_name(self, config):
        """Test the check of a cached mapping."""
        config("params", "[params]\nfirst = ~ {{ second }}\nsecond = x\n")
        assert len(config.verify_param_order(name="params")) == 1
