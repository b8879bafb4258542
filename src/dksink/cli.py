"""Command-line interface for dksink."""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Iterator, Optional

from dksink.config import Config
from dksink.connect import SinkRecord, record_from_json
from dksink.doris.utils import (
    build_config_and_validate,
    get_table_descriptor,
    load_config,
    open_record_service,
)
from dksink.exceptions import ConfigError, DecodeError


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    logging.basicConfig(level=logging.INFO, format="%(message)s")

    parser = argparse.ArgumentParser(
        prog="dksink",
        description="Schema-evolving record transformation for Apache Doris",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    validate_parser = subparsers.add_parser(
        "validate", help="Validate a connector config file"
    )
    validate_parser.add_argument("config", type=Path, help="YAML connector config")

    describe_parser = subparsers.add_parser(
        "describe", help="Show the Doris schema of a table"
    )
    describe_parser.add_argument("table", help="Table name")
    describe_parser.add_argument(
        "--config",
        type=Path,
        help="YAML connector config (default: DORIS_* environment variables)",
    )

    transform_parser = subparsers.add_parser(
        "transform", help="Transform Connect JSON records into Doris rows"
    )
    transform_parser.add_argument(
        "records",
        type=Path,
        help='JSON lines file, one {"key": ..., "value": ...} object per record',
    )
    transform_parser.add_argument(
        "--topic", required=True, help="Topic the records were read from"
    )
    transform_parser.add_argument(
        "--config",
        type=Path,
        help="YAML connector config (default: DORIS_* environment variables)",
    )

    args = parser.parse_args(argv)

    if args.command == "validate":
        return cmd_validate(args)
    elif args.command == "describe":
        return cmd_describe(args)
    elif args.command == "transform":
        return cmd_transform(args)
    else:
        print(f"Command '{args.command}' not yet implemented", file=sys.stderr)
        return 1


def cmd_validate(args: argparse.Namespace) -> int:
    """Validate a connector config file."""
    try:
        config = Config.from_yaml(args.config)
        config.validate()
        print(f"Valid connector config '{config.name}':")
        print(f"  converter.mode: {config.converter_mode.value}")
        print(f"  debezium.schema.evolution: {config.schema_evolution.value}")
        print(f"  doris: {', '.join(config.doris_urls)} / {config.database}")
        if config.topics:
            for topic in config.topics:
                print(f"  - {topic} -> {config.table_for_topic(topic)}")
        else:
            print(f"  topics.regex: {config.topics_regex}")
        return 0
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2
    except Exception as e:
        print(f"Validation error: {e}", file=sys.stderr)
        return 1


def cmd_describe(args: argparse.Namespace) -> int:
    """Show the Doris schema of a table."""
    try:
        config = build_config_and_validate(args.config)
        table = get_table_descriptor(config, args.table)

        keys = f" ({table.keys_type})" if table.keys_type else ""
        print(f"{config.database}.{table.table_name}{keys}:")
        for column in table.columns:
            comment = f"  -- {column.comment}" if column.comment else ""
            print(f"  {column.column_name} {column.type_name}{comment}")
        return 0
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2
    except Exception as e:
        print(f"Describe error: {e}", file=sys.stderr)
        return 1


def read_records(path: Path, topic: str) -> Iterator[SinkRecord]:
    """Read a JSON lines file of ``{"key": ..., "value": ...}`` objects.

    Blank lines are skipped; offsets count records from zero.
    """
    offset = 0
    with open(path) as f:
        for line_no, line in enumerate(f, start=1):
            if not line.strip():
                continue
            try:
                message = json.loads(line)
            except json.JSONDecodeError as e:
                raise DecodeError(f"{path}:{line_no}: invalid JSON: {e}") from e
            if not isinstance(message, dict) or "value" not in message:
                raise DecodeError(
                    f'{path}:{line_no}: expected an object with a "value" member'
                )
            yield record_from_json(
                message.get("topic", topic),
                message["value"],
                partition=message.get("partition", 0),
                offset=message.get("offset", offset),
                key=message.get("key"),
            )
            offset += 1


def cmd_transform(args: argparse.Namespace) -> int:
    """Transform Connect JSON records into Doris rows, one per line."""
    try:
        config = load_config(args.config)
        skipped = 0
        with open_record_service(config) as service:
            for record in read_records(args.records, args.topic):
                row = service.transform(record)
                if row is None:
                    skipped += 1
                    continue
                print(row)
        if skipped:
            print(f"Skipped {skipped} tombstone record(s)", file=sys.stderr)
        return 0
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2
    except Exception as e:
        print(f"Transform error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
