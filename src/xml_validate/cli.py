"""Command-line interface for xml-validate."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler

from xml_validate.config import NamespaceMap, ValidateConfig, resolve_schema_location
from xml_validate.errors import ConfigurationError
from xml_validate.report import make_console
from xml_validate.validator import XmlValidator

KML_EXTENSIONS = {"kml"}
KMZ_EXTENSIONS = {"kml", "kmz"}


def _setup_logging(verbose: bool, debug: bool) -> None:
    level = logging.WARNING
    if debug:
        level = logging.DEBUG
    elif verbose:
        level = logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=debug)],
        force=True,
    )


def _parse_schema_location(value: str) -> tuple[str, str]:
    namespace, sep, location = value.partition("=")
    if not sep or not namespace or not location:
        raise click.BadParameter(
            f"expected namespace=location, got {value!r}", param_hint="--schema-location"
        )
    return namespace, resolve_schema_location(location)


def _build_extensions(kml: bool, kmz: bool, kmz_mode: bool, extra: str | None) -> set[str]:
    if kmz:
        extensions = set(KMZ_EXTENSIONS)
    elif kml:
        extensions = set(KML_EXTENSIONS)
    else:
        extensions = {"xml"}
    if kmz_mode:
        extensions.add("kmz")
    if extra:
        extensions.update(ext for ext in extra.split(":") if ext)
    return extensions


@click.command()
@click.argument("targets", nargs=-1, required=True)
@click.option(
    "--map",
    "map_file",
    type=click.Path(path_type=Path),
    help="Namespace map file: namespace to schema file/URI mappings.",
)
@click.option("--schema", help="Target schema file or URL; overrides --map.")
@click.option(
    "--ns",
    "namespace",
    help="Target namespace used with --schema (e.g. http://www.opengis.net/kml/2.2).",
)
@click.option(
    "--schema-location",
    "schema_locations",
    multiple=True,
    metavar="NS=LOCATION",
    help="Add or override a namespace to schema location mapping. Repeatable.",
)
@click.option(
    "--home",
    type=click.Path(file_okay=False, path_type=Path),
    envvar="XV_HOME",
    help=(
        "Directory substituted for ${XV_HOME} in the namespace map. "
        "Defaults to the current directory."
    ),
)
@click.option("--kml", is_flag=True, help="Validate .kml files only.")
@click.option("--kmz", is_flag=True, help="Validate .kml and .kmz files only.")
@click.option(
    "--extensions",
    "-x",
    metavar="EXT[:EXT...]",
    help="Additional file extensions, separated by ':' (e.g. gpx:x3d:svg).",
)
@click.option("--kml-mode", "-K", is_flag=True, help="KML mode for special KML checks.")
@click.option(
    "--kmz-mode", "-Z", is_flag=True, help="Check every KML file inside KMZ files."
)
@click.option("--summary", "-S", is_flag=True, help="Only show the final total counts.")
@click.option("--verbose", "-v", is_flag=True, help="Print every file checked.")
@click.option("--debug", is_flag=True, help="Print exception stack traces.")
@click.option(
    "--dump",
    "dump_level",
    type=click.IntRange(0, 2),
    default=0,
    is_flag=False,
    flag_value=1,
    help="Print reformatted documents: 0 never, 1 on errors (default if no value), 2 always.",
)
@click.option(
    "--max-dump",
    "dump_limit",
    type=click.IntRange(min=0),
    default=0,
    help="Maximum characters printed per dumped document (0 for unlimited).",
)
def main(
    targets: tuple[str, ...],
    map_file: Path | None,
    schema: str | None,
    namespace: str | None,
    schema_locations: tuple[str, ...],
    home: Path | None,
    kml: bool,
    kmz: bool,
    extensions: str | None,
    kml_mode: bool,
    kmz_mode: bool,
    summary: bool,
    verbose: bool,
    debug: bool,
    dump_level: int,
    dump_limit: int,
) -> None:
    """Validate XML, KML and KMZ documents against XML Schemas.

    TARGETS are files, directories or URLs. Either --map or --schema
    (with --ns for namespaced schemas) is required.
    """
    _setup_logging(verbose, debug)

    try:
        schema_map = NamespaceMap.from_file(map_file, home) if map_file else None
    except ConfigurationError as exc:
        raise click.UsageError(str(exc)) from exc
    if schema_locations:
        schema_map = schema_map or NamespaceMap()
        for value in schema_locations:
            schema_map.add(*_parse_schema_location(value))

    config = ValidateConfig(
        schema_map=schema_map,
        schema_location=resolve_schema_location(schema) if schema else None,
        namespace=namespace,
        kml_mode=kml_mode,
        kmz_mode=kmz_mode,
        summary=summary,
        verbose=verbose,
        debug=debug,
        dump_level=dump_level,
        dump_limit=dump_limit,
        extensions=_build_extensions(kml, kmz, kmz_mode, extensions),
    )

    try:
        validator = XmlValidator(config, console=make_console())
    except ConfigurationError as exc:
        raise click.UsageError(str(exc)) from exc

    validator.run(targets)
    sys.exit(0 if validator.all_valid else 1)


if __name__ == "__main__":
    main()
