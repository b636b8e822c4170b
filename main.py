#!/usr/bin/env python3
"""Mapper - Entry point."""
import logging
import sys
import os

# Add src to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

import click
from colorama import Fore, Style, init

from config import app_config
from src.cli.interactive import InteractiveCLI
from src.mapper.models import QUERIERS
from src.schema.lookup import InMemoryLookup

# Initialize colorama
init(autoreset=True)


def print_banner():
    """Print application banner."""
    print(f"{Fore.CYAN}{'=' * 44}")
    print(f"{Fore.CYAN}║   {Fore.WHITE}Mapper{Fore.CYAN}                               ║")
    print(f"{Fore.CYAN}║   {Fore.WHITE}Declarative Data Mapping Tool{Fore.CYAN}        ║")
    print(f"{Fore.CYAN}{'=' * 44}{Style.RESET_ALL}")
    print()


def parse_params(values):
    """Convert "name=value" options into a dict."""
    params = {}
    for value in values:
        if "=" not in value:
            raise click.BadParameter(f"Expected name=value, got {value}")
        name, val = value.split("=", 1)
        params[name.strip()] = val
    return params


@click.group()
@click.version_option(version="0.1.0")
@click.option("--verbose", "-v", is_flag=True, help="Show debug messages")
@click.option(
    "--vocabularies",
    type=click.Path(exists=True),
    default=None,
    help="JSON file with vocabularies, properties and custom vocabs",
)
@click.pass_context
def cli(ctx, verbose, vocabularies):
    """Mapper - Convert records with declarative mappings."""
    level = logging.DEBUG if verbose else getattr(logging, app_config.log_level.upper(), logging.WARNING)
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    lookup = None
    if vocabularies:
        lookup = InMemoryLookup.from_file(vocabularies)
    ctx.obj = InteractiveCLI(lookup)


@cli.command()
@click.argument("source", type=click.Path(exists=True))
@click.option("--mapping", "-m", required=True, help="Mapping file, reference (module:, user:, mapping:) or content")
@click.option("--output", "-o", type=click.Path(), default=None, help="Output JSON file")
@click.option("--xsl", multiple=True, help="Stylesheet applied to a xml source before conversion")
@click.option("--querier", type=click.Choice(QUERIERS), default=None, help="Default querier of the maps")
@click.option("--records", default=None, help="Xpath of the records of a xml source")
@click.option("--param", "-p", multiple=True, help="Variable as name=value")
@click.pass_obj
def convert(cli_tool, source, mapping, output, xsl, querier, records, param):
    """Convert a source file with a mapping."""
    print_banner()

    ok = cli_tool.convert(source, mapping, output, list(xsl), querier, records, parse_params(param))
    if not ok:
        sys.exit(1)


@cli.command()
@click.argument("mapping")
@click.option("--check-params", is_flag=True, help="Check that params only use previous params")
@click.pass_obj
def inspect(cli_tool, mapping, check_params):
    """Print a parsed mapping as JSON."""
    if not cli_tool.inspect(mapping, check_params):
        sys.exit(1)


@cli.command()
@click.argument("fields", nargs=-1)
@click.option("--source", type=click.Path(exists=True), default=None, help="Tabular file whose headers are mapped")
@click.option("--single-target", is_flag=True, help="Do not split headers on |")
@click.option("--no-names-alone", is_flag=True, help="Require a vocabulary prefix or label")
@click.option("--interactive", "-i", is_flag=True, help="Confirm each mapping")
@click.pass_obj
def automap(cli_tool, fields, source, single_target, no_names_alone, interactive):
    """Map headers to property terms."""
    print_banner()

    options = {
        "single_target": single_target,
        "check_names_alone": not no_names_alone,
        "interactive": interactive,
    }
    if source:
        cli_tool.automap_source(source, **options)
    elif fields:
        cli_tool.automap(list(fields), **options)
    else:
        click.echo(f"{Fore.RED}No fields nor source file")
        sys.exit(1)


@cli.command()
@click.argument("input_file", type=click.Path(exists=True))
@click.option("--xsl", "stylesheets", multiple=True, required=True, help="Stylesheet reference or path")
@click.option("--output", "-o", type=click.Path(), default=None, help="Output xml file (stdout by default)")
@click.option("--param", "-p", multiple=True, help="Stylesheet param as name=value")
@click.pass_obj
def preprocess(cli_tool, input_file, stylesheets, output, param):
    """Apply xsl stylesheets to a xml file."""
    if not cli_tool.preprocess(input_file, list(stylesheets), output, parse_params(param)):
        sys.exit(1)


if __name__ == "__main__":
    cli()
