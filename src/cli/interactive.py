"""Interactive CLI for the mapper."""
import copy
import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import click
from colorama import Fore, Style

from config import app_config
from src.converter.converter import Converter
from src.converter.xpath import xpath_query
from src.exporter.json_exporter import JsonExporter
from src.mapper.automap import AutomapFields
from src.mapper.mapping_config import MappingConfig
from src.parser.parser_factory import SourceParserFactory
from src.parser.xml_parser import XmlParser
from src.preprocess.preprocessor import Preprocessor
from src.preprocess.xslt import ProcessXslt
from src.schema.lookup import InMemoryLookup, Lookup

try:
    import questionary
    HAS_QUESTIONARY = True
except ImportError:
    HAS_QUESTIONARY = False


class InteractiveCLI:
    """Interactive CLI interface."""

    def __init__(self, lookup: Optional[Lookup] = None):
        """Initialize CLI."""
        if lookup is None and app_config.vocabularies_file:
            lookup = InMemoryLookup.from_file(app_config.vocabularies_file)
        self.lookup = lookup or InMemoryLookup()
        self.mapping_config = MappingConfig(lookup=self.lookup)
        self.exporter = JsonExporter()
        self._preprocessor: Optional[Preprocessor] = None

    @property
    def preprocessor(self) -> Preprocessor:
        if self._preprocessor is None:
            self._preprocessor = Preprocessor(
                ProcessXslt(app_config.xslt.command, app_config.xslt.temp_dir, app_config.xslt.timeout),
                self.mapping_config.resolver,
            )
        return self._preprocessor

    def print_header(self, title: str):
        """Print a section header."""
        print(f"\n{Fore.CYAN}{'━' * 45}")
        print(f"{Fore.CYAN}{title}")
        print(f"{Fore.CYAN}{'━' * 45}{Style.RESET_ALL}\n")

    @staticmethod
    def mapping_reference(mapping: str) -> str:
        """Use the absolute path of an existing file, else the reference as is."""
        path = Path(mapping)
        return str(path.resolve()) if path.is_file() else mapping

    def load_mapping(self, mapping: str, querier: Optional[str] = None):
        """Parse a mapping and return its name and document."""
        reference = self.mapping_reference(mapping)
        options = {"default_querier": querier} if querier else {}
        document = self.mapping_config(None, reference, options)
        return self.mapping_config.get_current_name(), document

    def convert(
        self,
        source_file: str,
        mapping: str,
        output: Optional[str] = None,
        xsl: Optional[List[str]] = None,
        querier: Optional[str] = None,
        records_path: Optional[str] = None,
        variables: Optional[Dict[str, str]] = None,
    ) -> bool:
        """Convert each record of a source file and export them to JSON."""
        self.print_header("Convert")

        name, document = self.load_mapping(mapping, querier)
        if document is None or document.has_error:
            click.echo(f"{Fore.RED}Invalid mapping: {mapping}")
            return False

        source_path = Path(source_file)
        try:
            if SourceParserFactory.parser_type(source_path) == "xml":
                records = self._read_xml(source_path, document.info, xsl or [], variables or {}, records_path)
            else:
                records = SourceParserFactory.parse_file(source_path)
        except (RuntimeError, ValueError) as e:
            click.echo(f"{Fore.RED}Failed to read source: {e}")
            return False

        if records is None:
            click.echo(f"{Fore.RED}Preprocessing failed for {source_file}")
            return False

        converter = Converter(self.mapping_config)
        converter.set_mapping_name(name)
        converter.set_variables({
            "url": str(source_path.resolve()),
            "filename": source_path.name,
            "filepath": str(source_path.resolve()),
            **(variables or {}),
        })
        self.mapping_config.evaluate_static_params(converter.get_variables(), name)

        results = []
        for record in records:
            converted = converter.convert(record)
            if converted:
                results.append(converted)

        click.echo(f"{Fore.GREEN}✅ Converted {len(results)} of {len(records)} records")

        output_file = Path(output) if output else Path(app_config.output_dir) / f"{source_path.stem}.json"
        self.exporter.export(output_file, results, {
            "source": source_path.name,
            "mapping": document.label or name,
        })
        click.echo(f"{Fore.GREEN}   Output: {output_file}")
        return True

    def _read_xml(
        self,
        source_path: Path,
        info: Dict[str, Any],
        xsl: List[str],
        params: Dict[str, str],
        records_path: Optional[str],
    ) -> Optional[List[Any]]:
        """Read a xml source, preprocessed first when stylesheets are set."""
        stylesheets = list(xsl)
        preprocess = info.get("preprocess")
        if isinstance(preprocess, str):
            stylesheets.extend(p.strip() for p in preprocess.split(",") if p.strip())
        elif isinstance(preprocess, list):
            stylesheets.extend(preprocess)

        content = source_path.read_text(encoding="utf-8")
        if stylesheets:
            content = self.preprocessor.process(content, stylesheets, params, source_path.parent)
            if content is None:
                return None

        root = XmlParser().parse(content)
        if records_path:
            # Each record becomes its own tree, so "//" paths stay inside it.
            return [copy.deepcopy(node) for node in xpath_query(root, records_path) if not isinstance(node, str)]
        return [root]

    def inspect(self, mapping: str, check_params: bool = False) -> bool:
        """Print a parsed mapping as JSON."""
        name, document = self.load_mapping(mapping)
        if document is None or document.has_error:
            click.echo(f"{Fore.RED}Invalid mapping: {mapping}")
            return False

        click.echo(json.dumps(document.to_dict(), indent=2, default=str, ensure_ascii=False))

        if check_params:
            self.print_header("Params")
            messages = self.mapping_config.verify_param_order(name=name)
            if not messages:
                click.echo(f"{Fore.GREEN}✅ Params are ordered")
            for message in messages:
                click.echo(f"{Fore.YELLOW}   • {message}")
            return not messages

        return True

    def automap(
        self,
        fields: List[str],
        single_target: bool = False,
        check_names_alone: bool = True,
        interactive: bool = False,
    ) -> Dict[str, Optional[List[Any]]]:
        """Map headers to property terms and print them."""
        self.print_header("Automap")

        automap = AutomapFields(self.lookup)
        results = automap(fields, {
            "single_target": single_target,
            "check_names_alone": check_names_alone,
            "output_full_matches": True,
        })

        mapped: Dict[str, Optional[List[Any]]] = {}
        for index, field in enumerate(fields):
            matches = results.get(index)
            mapped[field] = matches
            if matches:
                targets = ", ".join(str(m.get("field")) for m in matches)
                click.echo(f"{Fore.GREEN}✓ {field} → {targets}")
            else:
                click.echo(f"{Fore.YELLOW}✗ {field}")

        if interactive:
            mapped = self._confirm_automap(mapped)

        return mapped

    def automap_source(self, source_file: str, **kwargs) -> Dict[str, Optional[List[Any]]]:
        """Automap the headers of a tabular source file."""
        records = SourceParserFactory.parse_file(source_file)
        if not isinstance(records, list) or not records or not isinstance(records[0], dict):
            click.echo(f"{Fore.YELLOW}No headers found in {source_file}")
            return {}
        return self.automap(list(records[0].keys()), **kwargs)

    def _confirm_automap(self, mapped: Dict[str, Optional[List[Any]]]) -> Dict[str, Optional[List[Any]]]:
        """Let the user keep or drop each resolved header."""
        resolved = [field for field, matches in mapped.items() if matches]
        if not resolved:
            return mapped

        if HAS_QUESTIONARY:
            kept = questionary.checkbox(
                "Keep mappings:",
                choices=[questionary.Choice(field, checked=True) for field in resolved],
            ).ask() or []
        else:
            kept = [field for field in resolved if click.confirm(f"Keep {field}?", default=True)]

        return {field: (matches if field in kept else None) for field, matches in mapped.items()}

    def preprocess(
        self,
        input_file: str,
        stylesheets: List[str],
        output: Optional[str] = None,
        params: Optional[Dict[str, str]] = None,
    ) -> bool:
        """Apply stylesheets to a xml file."""
        self.print_header("Preprocess")

        input_path = Path(input_file)
        content = self.preprocessor.process(
            input_path.read_text(encoding="utf-8"), stylesheets, params or {}, input_path.parent
        )
        if content is None:
            click.echo(f"{Fore.RED}Preprocessing failed for {input_file}")
            return False

        if output:
            output_file = Path(output)
            output_file.parent.mkdir(parents=True, exist_ok=True)
            output_file.write_text(content, encoding="utf-8")
            click.echo(f"{Fore.GREEN}✅ Output: {output_file}")
        else:
            click.echo(content)
        return True
