#!/usr/bin/env python3
"""
Command line entry points.

    btm2lml <map.btm> <source.xsd> <target.xsd> [output.lml]
    btm2lml-tools analyze|validate|batch ...
"""

import argparse
import logging
import sys
import traceback
from pathlib import Path

import yaml

from .core.config import MigratorConfig
from .core.logging import setup_logging
from .handlers.convert import analyze_map, convert_directory, convert_map, validate_map, write_report

logger = logging.getLogger(__name__)


def _load_config(config_path: str = None) -> MigratorConfig:
    if config_path:
        return MigratorConfig.from_yaml(config_path)
    return MigratorConfig()


def _print_yaml(model) -> None:
    print(yaml.safe_dump(model.model_dump(), sort_keys=False), end="")


def main(argv: list[str] = None) -> int:
    ap = argparse.ArgumentParser(prog="btm2lml", description="Convert a BizTalk map (.btm) to LML")
    ap.add_argument("map_file", help="BizTalk map file")
    ap.add_argument("source_schema", help="Source XSD schema")
    ap.add_argument("target_schema", help="Target XSD schema")
    ap.add_argument("output_file", nargs="?", help="Output path (default: map path with .lml)")
    ap.add_argument("--config", help="YAML file overriding configuration values")
    ap.add_argument("--report", help="Write a YAML conversion report to this path")
    ap.add_argument("--log-level", help="Logging level, overrides BTM_LOG_LEVEL")
    args = ap.parse_args(argv)

    try:
        config = _load_config(args.config)
    except (OSError, ValueError, yaml.YAMLError) as e:
        print(f"Error: could not load configuration {args.config}: {e}", file=sys.stderr)
        return 1
    setup_logging(args.log_level or config.LOG_LEVEL)

    for label, path in (("Map file", args.map_file), ("Source schema", args.source_schema),
                        ("Target schema", args.target_schema)):
        if not Path(path).is_file():
            print(f"Error: {label} not found: {path}", file=sys.stderr)
            return 1

    try:
        result = convert_map(args.map_file, args.source_schema, args.target_schema, args.output_file, config)
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        traceback.print_exc()
        return 1

    print(f"Converted {result.map_file} -> {result.output_file}")
    for warning in result.warnings:
        print(f"Warning: {warning}")
    if args.report:
        write_report(result, args.report)
    return 0


def tools_main(argv: list[str] = None) -> int:
    ap = argparse.ArgumentParser(prog="btm2lml-tools", description="Inspect and batch-convert BizTalk maps")
    ap.add_argument("--config", help="YAML file overriding configuration values")
    ap.add_argument("--log-level", help="Logging level, overrides BTM_LOG_LEVEL")
    sub = ap.add_subparsers(dest="command", required=True)

    analyze = sub.add_parser("analyze", help="Functoid statistics and complexity of a map")
    analyze.add_argument("map_file")
    analyze.add_argument("--details", action="store_true", help="List every functoid")

    validate = sub.add_parser("validate", help="Check a map for conversion problems")
    validate.add_argument("map_file")
    validate.add_argument("--source-schema")
    validate.add_argument("--target-schema")

    batch = sub.add_parser("batch", help="Convert every map under a directory")
    batch.add_argument("directory")
    batch.add_argument("--output-dir")
    batch.add_argument("--source-schema-dir")
    batch.add_argument("--target-schema-dir")
    batch.add_argument("--no-recursive", action="store_true")

    for parser in (analyze, validate, batch):
        parser.add_argument("--report", help="Also write the YAML result to this path")

    args = ap.parse_args(argv)

    try:
        config = _load_config(args.config)
    except (OSError, ValueError, yaml.YAMLError) as e:
        print(f"Error: could not load configuration {args.config}: {e}", file=sys.stderr)
        return 1
    setup_logging(args.log_level or config.LOG_LEVEL)

    try:
        if args.command == "analyze":
            result = analyze_map(args.map_file, include_details=args.details, config=config)
        elif args.command == "validate":
            result = validate_map(args.map_file, args.source_schema, args.target_schema, config=config)
        else:
            result = convert_directory(
                args.directory,
                output_directory=args.output_dir,
                recursive=not args.no_recursive,
                source_schema_dir=args.source_schema_dir,
                target_schema_dir=args.target_schema_dir,
                config=config,
            )
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        traceback.print_exc()
        return 1

    _print_yaml(result)
    if args.report:
        write_report(result, args.report)

    if args.command == "validate" and result.status == "fail":
        return 1
    if args.command == "batch" and result.failed:
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
