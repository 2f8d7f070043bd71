#!/usr/bin/env python3
"""
GeoIP column extractor for MaxMind databases (Country, City, ASN, ISP,
Domain, Connection-Type, Anonymous-IP).

Each input address is looked up in the databases named by the requested
columns, and one delimited row is written per address:

  ip,<column 1>,<column 2>,...

Columns are dotted paths into the flattened lookup record, prefixed by the
dataset name, e.g. ``city.country.iso_code`` or ``city.city.names.en``.
Use ``--list-columns`` to see them all.

Outputs:
  - csv (default)
  - tsv
"""

from __future__ import annotations

import argparse
import csv
import dataclasses
import ipaddress
import logging
import math
import os
import sys
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Mapping, NamedTuple, Optional, Sequence, TextIO, Tuple, Union

import geoip2.database
import geoip2.errors
import maxminddb
import yaml


VERSION = "0.1.0"

DEFAULT_CONFIG_PATHS: Sequence[str] = (
    # Later entries take precedence over earlier ones.
    "~/.geoipcli.yaml",
    "~/.config/geoipcli.yaml",
)

FORMATS: Dict[str, str] = {
    "csv": ",",
    "tsv": "\t",
}

PLACEHOLDER = "[language]"
COMMA_MARKER = "<comma>"
DOUBLEQUOTES_MARKER = "<doublequotes>"

log = logging.getLogger(__name__)


class GeoIPCLIError(Exception):
    """Base class for errors raised by geoipcli."""


class ConfigError(GeoIPCLIError):
    """Bad configuration: unknown column, unopenable database, bad YAML..."""


class InvalidAddressError(GeoIPCLIError):
    """An input line is not an IPv4 or IPv6 address."""

    def __init__(self, address: str) -> None:
        super().__init__(f"invalid IP address: {address!r}")
        self.address = address


class UnsupportedValueError(GeoIPCLIError):
    """A flattened value has a type outside the coercion table."""


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Field:
    tag: str
    value: Any


@dataclass(frozen=True)
class Struct:
    """
    Ordered list of tagged fields, the shape a typed database record takes.

    Plain dicts stand for string-keyed maps (e.g. ``names``), lists are opaque
    leaves, and str/int/float/bool/None are scalars.
    """
    fields: Tuple[Field, ...] = ()


Scalar = Union[str, int, float, bool, None]
Record = Union[Struct, Dict[str, Any], List[Any], Scalar]
FlatMap = Dict[str, Any]


def _struct(*fields: Tuple[str, Any]) -> Struct:
    return Struct(tuple(Field(tag, value) for tag, value in fields))


# Zero-valued record shapes per dataset. Binding a raw database record
# against them fills every absent field with its zero value.
_CONTINENT = _struct(("code", ""), ("geoname_id", 0), ("names", {}))
_COUNTRY = _struct(
    ("geoname_id", 0),
    ("is_in_european_union", False),
    ("iso_code", ""),
    ("names", {}),
)
_REPRESENTED_COUNTRY = _struct(*((f.tag, f.value) for f in _COUNTRY.fields), ("type", ""))
_TRAITS = _struct(("is_anonymous_proxy", False), ("is_satellite_provider", False))

RECORD_SCHEMAS: Dict[str, Struct] = {
    "country": _struct(
        ("continent", _CONTINENT),
        ("country", _COUNTRY),
        ("registered_country", _COUNTRY),
        ("represented_country", _REPRESENTED_COUNTRY),
        ("traits", _TRAITS),
    ),
    "city": _struct(
        ("city", _struct(("geoname_id", 0), ("names", {}))),
        ("continent", _CONTINENT),
        ("country", _COUNTRY),
        ("location", _struct(
            ("accuracy_radius", 0),
            ("latitude", 0.0),
            ("longitude", 0.0),
            ("metro_code", 0),
            ("time_zone", ""),
        )),
        ("postal", _struct(("code", ""))),
        ("registered_country", _COUNTRY),
        ("represented_country", _REPRESENTED_COUNTRY),
        ("subdivisions", [_struct(("geoname_id", 0), ("iso_code", ""), ("names", {}))]),
        ("traits", _TRAITS),
    ),
    "asn": _struct(
        ("autonomous_system_number", 0),
        ("autonomous_system_organization", ""),
    ),
    "isp": _struct(
        ("autonomous_system_number", 0),
        ("autonomous_system_organization", ""),
        ("isp", ""),
        ("organization", ""),
    ),
    "domain": _struct(("domain", "")),
    "connection_type": _struct(("connection_type", "")),
    "anonymousip": _struct(
        ("is_anonymous", False),
        ("is_anonymous_vpn", False),
        ("is_hosting_provider", False),
        ("is_public_proxy", False),
        ("is_tor_exit_node", False),
    ),
}

DATASET_NAMES: Sequence[str] = tuple(RECORD_SCHEMAS)

# geoip2.database.Reader method used to look up each dataset.
READER_METHODS: Dict[str, str] = {
    "country": "country",
    "city": "city",
    "asn": "asn",
    "isp": "isp",
    "domain": "domain",
    "connection_type": "connection_type",
    "anonymousip": "anonymous_ip",
}

DEFAULT_COLUMNS: Dict[str, Tuple[str, ...]] = {
    "country": ("country.country.iso_code",),
    "city": ("city.country.iso_code", "city.city.names.en"),
    "asn": ("asn.autonomous_system_number", "asn.autonomous_system_organization"),
    "isp": ("isp.autonomous_system_number", "isp.autonomous_system_organization"),
    "domain": ("domain.domain",),
    "connection_type": ("connection_type.connection_type",),
    "anonymousip": ("anonymousip.is_anonymous",),
}


def bind(schema: Any, raw: Any) -> Record:
    """Conform a raw record dict to ``schema``, zero-filling gaps."""
    if isinstance(schema, Struct):
        raw_map = raw if isinstance(raw, dict) else {}
        return Struct(tuple(Field(f.tag, bind(f.value, raw_map.get(f.tag))) for f in schema.fields))

    if isinstance(schema, dict):
        if not isinstance(raw, dict):
            return {}
        return {k: v for k, v in raw.items() if isinstance(k, str) and isinstance(v, str)}

    if isinstance(schema, list):
        if not isinstance(raw, list):
            return []
        return [bind(schema[0], item) for item in raw]

    if isinstance(schema, bool):
        return raw if isinstance(raw, bool) else schema
    if isinstance(schema, int):
        return raw if isinstance(raw, int) and not isinstance(raw, bool) else schema
    if isinstance(schema, float):
        if isinstance(raw, (int, float)) and not isinstance(raw, bool):
            return float(raw)
        return schema
    if isinstance(schema, str):
        return raw if isinstance(raw, str) else schema
    return raw


# ---------------------------------------------------------------------------
# Flattening
# ---------------------------------------------------------------------------


def _flatten(value: Record, prefix: str, out: FlatMap) -> None:
    base = prefix + "." if prefix else ""

    if value is None:
        return

    if isinstance(value, dict):
        if not all(isinstance(k, str) for k in value):
            return
        if not value:
            _flatten("", base + PLACEHOLDER, out)
            return
        for key, child in value.items():
            _flatten(child, base + key, out)
        return

    if isinstance(value, Struct):
        for f in value.fields:
            _flatten(f.value, base + f.tag, out)
        return

    if prefix:
        out[prefix] = value


def flatten(record: Record) -> FlatMap:
    """
    Flatten a nested record into ``{dotted.path: leaf}``.

    An empty map becomes a single ``<path>.[language]`` leaf holding ``""``
    so that, e.g., an empty ``names`` map stays addressable.
    """
    out: FlatMap = {}
    _flatten(record, "", out)
    return out


def format_float(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    # repr() is the shortest round-trip form; Decimal expands any exponent.
    text = format(Decimal(repr(value)), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def coerce(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return format_float(value)
    raise UnsupportedValueError(f"unsupported value type {type(value).__name__}")


# ---------------------------------------------------------------------------
# Datasets
# ---------------------------------------------------------------------------


class Dataset:
    """One opened database bound to a dataset name."""

    def __init__(self, name: str, path: Path, reader: geoip2.database.Reader) -> None:
        self.name = name
        self.path = path
        self._reader = reader
        self._method = getattr(reader, READER_METHODS[name])
        self._schema = RECORD_SCHEMAS[name]
        self._warned_type = False

    @classmethod
    def open(cls, name: str, path: Union[str, Path]) -> "Dataset":
        if name not in RECORD_SCHEMAS:
            raise ConfigError(f"unknown dataset: {name}")

        db_path = Path(path).expanduser()
        try:
            reader = geoip2.database.Reader(str(db_path))
        except (OSError, ValueError, maxminddb.InvalidDatabaseError) as e:
            raise ConfigError(f"failed to open {name} database {db_path}: {e}") from e
        return cls(name, db_path, reader)

    def lookup(self, ip: Union[str, ipaddress.IPv4Address, ipaddress.IPv6Address]) -> Optional[Record]:
        """
        Look ``ip`` up and bind the result to this dataset's record shape.

        Returns None when the address is not in the database, when the
        database is of the wrong type for the dataset, or when its address
        family does not fit the database (IPv6 in an IPv4-only file).
        """
        try:
            model = self._method(ip)
        except geoip2.errors.AddressNotFoundError:
            return None
        except TypeError as e:
            if not self._warned_type:
                log.warning("%s database %s: %s", self.name, self.path, e)
                self._warned_type = True
            return None
        except ValueError as e:
            log.debug("Lookup of %s in %s failed: %s", ip, self.name, e)
            return None
        return bind(self._schema, model.to_dict())

    def close(self) -> None:
        self._reader.close()

    def __enter__(self) -> "Dataset":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def open_datasets(paths: "DatabasePaths") -> Dict[str, Dataset]:
    datasets: Dict[str, Dataset] = {}
    try:
        for name, path in paths.items():
            log.debug("Opening %s database: %s", name, path)
            datasets[name] = Dataset.open(name, path)
    except ConfigError:
        close_datasets(datasets)
        raise

    if not datasets:
        raise ConfigError("no databases (give at least one database path)")
    return datasets


def close_datasets(datasets: Mapping[str, Dataset]) -> None:
    for ds in datasets.values():
        ds.close()


# ---------------------------------------------------------------------------
# Columns
# ---------------------------------------------------------------------------


class Column(NamedTuple):
    spec: str
    dataset: str
    key: str


def parse_column(spec: str) -> Column:
    labels = spec.split(".")
    if len(labels) < 2:
        raise ConfigError(f"invalid column name: {spec}")
    if labels[0] not in RECORD_SCHEMAS:
        raise ConfigError(f"unknown column name: {spec}")
    return Column(spec=spec, dataset=labels[0], key=".".join(labels[1:]))


def default_columns(datasets: Iterable[str]) -> List[str]:
    opened = set(datasets)
    columns: List[str] = []
    for name in DATASET_NAMES:
        if name in opened:
            columns.extend(DEFAULT_COLUMNS[name])
    return columns


def resolve_columns(specs: Sequence[str], datasets: Mapping[str, Dataset]) -> List[Column]:
    """
    Parse and validate column specs against the opened datasets.

    Falls back to the default columns of every opened dataset when ``specs``
    is empty. Raises ConfigError before any lookup is made.
    """
    if not specs:
        log.debug("No output columns given, using defaults")
        specs = default_columns(datasets)
    if not specs:
        raise ConfigError("no output columns")

    columns: List[Column] = []
    for spec in specs:
        column = parse_column(spec)
        if column.dataset not in datasets:
            raise ConfigError(f"database for column not given: {spec}")
        columns.append(column)
    return columns


def extract(
    column: Union[Column, str],
    datasets: Mapping[str, Any],
    ip: Union[str, ipaddress.IPv4Address, ipaddress.IPv6Address],
    cache: Optional[Dict[str, Optional[FlatMap]]] = None,
) -> str:
    """
    Look ``ip`` up in the column's dataset and return the column value.

    A lookup miss yields ``""``. ``cache`` holds flattened records of one
    address so each dataset is looked up once per row.
    """
    if isinstance(column, str):
        column = parse_column(column)
    if column.dataset not in datasets:
        raise ConfigError(f"database for column not given: {column.spec}")

    if cache is not None and column.dataset in cache:
        flat = cache[column.dataset]
    else:
        record = datasets[column.dataset].lookup(ip)
        flat = None if record is None else flatten(record)
        if cache is not None:
            cache[column.dataset] = flat

    if flat is None:
        return ""
    return coerce(flat.get(column.key))


def parse_address(address: str) -> Union[ipaddress.IPv4Address, ipaddress.IPv6Address]:
    try:
        return ipaddress.ip_address(address)
    except ValueError:
        raise InvalidAddressError(address) from None


def lookup_row(address: str, columns: Sequence[Column], datasets: Mapping[str, Any]) -> List[str]:
    """Build one output row: the address followed by each column's value."""
    ip = parse_address(address)
    cache: Dict[str, Optional[FlatMap]] = {}
    return [address] + [extract(c, datasets, ip, cache) for c in columns]


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------


class DelimitedWriter:
    """
    Write rows as CSV/TSV lines, flushing after each one.

    ``,`` and ``"`` inside fields are replaced with ``<comma>`` and
    ``<doublequotes>`` when the matching escape option is on; the csv module
    then quotes whatever still needs it.
    """

    def __init__(
        self,
        out: TextIO,
        delimiter: str = ",",
        escape_comma: bool = True,
        escape_doublequotes: bool = True,
    ) -> None:
        self.out = out
        self.delimiter = delimiter
        self.escape_comma = escape_comma
        self.escape_doublequotes = escape_doublequotes
        self._writer = csv.writer(out, delimiter=delimiter, lineterminator="\n")

    @classmethod
    def for_format(cls, fmt: str, out: TextIO, **kwargs: bool) -> "DelimitedWriter":
        try:
            delimiter = FORMATS[fmt]
        except KeyError:
            raise ConfigError(f"unsupported output format: {fmt}") from None
        return cls(out, delimiter=delimiter, **kwargs)

    def escape(self, value: str) -> str:
        if self.escape_comma:
            value = value.replace(",", COMMA_MARKER)
        if self.escape_doublequotes:
            value = value.replace('"', DOUBLEQUOTES_MARKER)
        return value

    def write(self, row: Sequence[str]) -> None:
        self._writer.writerow([self.escape(v) for v in row])
        self.out.flush()


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DatabasePaths:
    country: str = ""
    city: str = ""
    asn: str = ""
    isp: str = ""
    domain: str = ""
    connection_type: str = ""
    anonymousip: str = ""

    def items(self) -> Iterator[Tuple[str, str]]:
        """Configured (dataset, path) pairs; blank paths are left out."""
        for f in dataclasses.fields(self):
            path = getattr(self, f.name)
            if path:
                yield f.name, path


@dataclass(frozen=True)
class OutputOptions:
    format: str = "csv"
    columns: Tuple[str, ...] = ()
    skip_invalid_ip: bool = False
    escape_comma: bool = True
    escape_doublequotes: bool = True
    header: bool = False


@dataclass(frozen=True)
class CLIConfig:
    paths: DatabasePaths = field(default_factory=DatabasePaths)
    output: OutputOptions = field(default_factory=OutputOptions)


def _is_unset(value: Any) -> bool:
    return value is None or value == "" or value == () or value == []


def _split_columns(value: Any) -> Tuple[str, ...]:
    if isinstance(value, str):
        value = value.split(",")
    if not isinstance(value, (list, tuple)):
        raise ConfigError(f"output.columns must be a list or a comma-separated string, got {value!r}")
    return tuple(str(c).strip() for c in value)


def _apply_section(current: Any, overrides: Mapping[str, Any], section: str) -> Any:
    known = {f.name: f for f in dataclasses.fields(current)}
    changes: Dict[str, Any] = {}
    for key, value in overrides.items():
        if key not in known:
            raise ConfigError(f"unknown config key: {section}.{key}")
        if _is_unset(value):
            continue
        if key == "columns":
            value = _split_columns(value)
            if not value:
                continue
        expected = type(getattr(current, key))
        if expected is bool and not isinstance(value, bool):
            raise ConfigError(f"{section}.{key} must be true or false, got {value!r}")
        if expected is str:
            value = str(value)
        changes[key] = value
    return dataclasses.replace(current, **changes)


def merge_config(config: CLIConfig, layer: Mapping[str, Any]) -> CLIConfig:
    """
    Return ``config`` with the values set in ``layer`` applied on top.

    ``layer`` has the YAML file's shape: ``{"paths": {...}, "output": {...}}``.
    Unset values (None, empty strings and lists) leave ``config`` unchanged.
    """
    paths, output = config.paths, config.output
    for section, overrides in layer.items():
        if overrides is None:
            continue
        if not isinstance(overrides, Mapping):
            raise ConfigError(f"config section {section!r} must be a mapping")
        if section == "paths":
            paths = _apply_section(paths, overrides, section)
        elif section == "output":
            output = _apply_section(output, overrides, section)
        else:
            raise ConfigError(f"unknown config section: {section}")

    if output.format not in FORMATS:
        raise ConfigError(f"unsupported output format: {output.format}")
    return CLIConfig(paths=paths, output=output)


def read_config_file(path: Union[str, Path]) -> Dict[str, Any]:
    filename = Path(path).expanduser()
    log.debug("Loading config: %s", filename)
    try:
        data = yaml.safe_load(filename.read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigError(f"failed to read config file {filename}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"failed to parse config file {filename}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"config file {filename} must hold a mapping")
    return data


def load_config(
    conffile: Optional[str] = None,
    overrides: Optional[Mapping[str, Any]] = None,
    default_paths: Sequence[str] = DEFAULT_CONFIG_PATHS,
) -> CLIConfig:
    """
    Build the final config: defaults < default files < ``conffile`` < ``overrides``.
    """
    config = CLIConfig()

    for path in default_paths:
        filename = Path(path).expanduser()
        if not filename.is_file():
            log.debug("Skipping default config (not found): %s", filename)
            continue
        config = merge_config(config, read_config_file(filename))

    if conffile:
        config = merge_config(config, read_config_file(conffile))

    if overrides:
        config = merge_config(config, overrides)

    return config


def config_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    """The config layer described by the command-line flags."""
    columns: List[str] = []
    if args.output:
        columns = [c.strip() for c in args.output.lower().split(",")]

    return {
        "paths": {
            "country": args.country,
            "city": args.city,
            "asn": args.asn,
            "isp": args.isp,
            "domain": args.domain,
            "connection_type": args.contype,
            "anonymousip": args.anonymousip,
        },
        "output": {
            "format": args.format,
            "columns": columns,
            "skip_invalid_ip": True if args.skip_invalid_ip else None,
            "escape_comma": False if args.no_escape_comma else None,
            "escape_doublequotes": False if args.no_escape_doublequotes else None,
            "header": True if args.header else None,
        },
    }


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


def iter_addresses(ips: Sequence[str], readfile: Optional[str], stdin: TextIO) -> Iterator[str]:
    """
    Yield addresses from positional args, else from ``readfile``, else stdin.

    Lines are read lazily so results for a long stream show up as they come.
    """
    if ips:
        for ip in ips:
            address = ip.strip()
            if address:
                yield address
        return

    if readfile:
        filename = Path(readfile).expanduser()
        log.debug("Reading IP addresses from: %s", filename)
        with filename.open("r", encoding="utf-8", errors="replace") as fp:
            for line in fp:
                address = line.strip()
                if address:
                    yield address
        return

    for line in stdin:
        address = line.strip()
        if address:
            yield address


def run(
    config: CLIConfig,
    columns: Sequence[Column],
    datasets: Mapping[str, Any],
    addresses: Iterable[str],
    out: TextIO,
) -> int:
    """Look up every address and write one row each. Returns rows written."""
    writer = DelimitedWriter.for_format(
        config.output.format,
        out,
        escape_comma=config.output.escape_comma,
        escape_doublequotes=config.output.escape_doublequotes,
    )

    if config.output.header:
        writer.write(["ip"] + [c.spec for c in columns])

    written = 0
    for address in addresses:
        try:
            row = lookup_row(address, columns, datasets)
        except InvalidAddressError:
            if not config.output.skip_invalid_ip:
                raise
            log.debug("Skipping invalid IP address: %s", address)
            continue

        writer.write(row)
        written += 1

    return written


def render_columns(out: TextIO) -> None:
    out.write("The following columns can be used for output (--output option).\n\n")
    out.write("List of columns:\n")
    for name, schema in RECORD_SCHEMAS.items():
        for key in flatten(bind(schema, None)):
            out.write(f"- {name}.{key}\n")
    out.write("\nNote:\n")
    out.write(f"- Replace {PLACEHOLDER} with an actual language code such as 'en' or 'ja'.\n")
    out.write("- city.subdivisions is a list and cannot be output as a column.\n\n")


def configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
    )


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Look up IP addresses in MaxMind GeoIP2/GeoLite2 databases and print selected columns as CSV/TSV.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Country code of one address
  %(prog)s --country GeoLite2-Country.mmdb 8.8.8.8

  # Selected columns for addresses read from a file
  %(prog)s --city GeoLite2-City.mmdb --output city.country.iso_code,city.city.names.ja --readfile ips.txt

  # TSV from stdin, skipping lines that are not IP addresses
  cat access.log.ips | %(prog)s --asn GeoLite2-ASN.mmdb --format tsv --skip-invalid-ip

Config files (YAML) are read from ~/.geoipcli.yaml and ~/.config/geoipcli.yaml,
then --conffile; command-line flags override all of them.
""",
    )

    parser.add_argument("ips", nargs="*", help="IP address(es) to look up (default: read from --readfile or stdin)")

    db_group = parser.add_argument_group("database options")
    db_group.add_argument("--country", help="Path to GeoIP2/GeoLite2-Country database")
    db_group.add_argument("--city", help="Path to GeoIP2/GeoLite2-City database")
    db_group.add_argument("--asn", help="Path to GeoLite2-ASN database")
    db_group.add_argument("--isp", help="Path to GeoIP2-ISP database")
    db_group.add_argument("--domain", help="Path to GeoIP2-Domain database")
    db_group.add_argument("--contype", help="Path to GeoIP2-Connection-Type database")
    db_group.add_argument("--anonymousip", help="Path to GeoIP2-Anonymous-IP database")

    output_group = parser.add_argument_group("output options")
    output_group.add_argument(
        "--output",
        help="Output columns separated by commas. See --list-columns.",
    )
    output_group.add_argument(
        "--format",
        choices=tuple(FORMATS),
        help="Output format (default: csv)",
    )
    output_group.add_argument(
        "--header",
        action="store_true",
        help="Print a header row with the column names",
    )
    output_group.add_argument(
        "--no-escape-comma",
        action="store_true",
        help="Do not replace ',' in values with '<comma>'",
    )
    output_group.add_argument(
        "--no-escape-doublequotes",
        action="store_true",
        help="Do not replace '\"' in values with '<doublequotes>'",
    )
    output_group.add_argument(
        "--skip-invalid-ip",
        action="store_true",
        help="Skip invalid IP addresses instead of exiting with an error",
    )

    misc_group = parser.add_argument_group("other options")
    misc_group.add_argument("--conffile", help="Config file (YAML)")
    misc_group.add_argument("--readfile", help="Read IP addresses from file (one per line)")
    misc_group.add_argument("--list-columns", action="store_true", help="Show all column names and exit")
    misc_group.add_argument("--version", action="store_true", help="Show version and exit")
    misc_group.add_argument("--debug", action="store_true", help="Print debug messages to stderr")

    return parser.parse_args(argv)


def _silence_stdout() -> None:
    # Python flushes stdout at exit; point it at devnull so a closed pipe
    # does not produce a second error.
    devnull = os.open(os.devnull, os.O_WRONLY)
    os.dup2(devnull, sys.stdout.fileno())


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.debug)

    if args.version:
        print(VERSION)
        return 0

    if args.list_columns:
        render_columns(sys.stdout)
        return 0

    try:
        config = load_config(args.conffile, config_overrides(args))
        datasets = open_datasets(config.paths)
    except ConfigError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2

    try:
        try:
            columns = resolve_columns(config.output.columns, datasets)
        except ConfigError as e:
            print(f"error: {e}", file=sys.stderr)
            return 2

        log.debug("Output: %s", ", ".join(c.spec for c in columns))

        try:
            run(config, columns, datasets, iter_addresses(args.ips, args.readfile, sys.stdin), sys.stdout)
        except BrokenPipeError:
            _silence_stdout()
            return 1
        except (InvalidAddressError, UnsupportedValueError, maxminddb.InvalidDatabaseError) as e:
            print(f"error: {e}", file=sys.stderr)
            return 1
        except (OSError, ValueError) as e:
            print(f"error: {e}", file=sys.stderr)
            return 1
    finally:
        close_datasets(datasets)

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
