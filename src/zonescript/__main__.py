#!/usr/bin/env python3
"""
CLI for the zonescript compiler.

Usage:
    zonescript compile [INPUT] [-o OUTPUT] [--syntax lua|native] [--stdout]
    zonescript check [INPUT] [--syntax lua|native]
    zonescript directives
    zonescript run [ENGINE_ARGS ...]

Examples:
    # Generate dnscontrol.js from dnscontrol.lua in the working directory
    zonescript compile

    # Print the generated JavaScript instead of writing it
    zonescript compile zones/main.lua --stdout

    # Evaluate and validate without writing anything
    zonescript check zones/main.lua

    # Generate, then hand over to dnscontrol
    zonescript run preview --full
"""

import argparse
import subprocess
import sys
from pathlib import Path

import structlog

from .compiler import compile_file
from .config import ConfigError, Settings, load_settings
from .dsl.errors import DslError, ZoneIOError, format_error
from .dsl.runtime.provenance import read_header_signature
from .fileio import read_source
from .logconfig import configure_logging
from .registry import get_directive_registry

log = structlog.get_logger(__name__)


def _report(error: Exception) -> int:
    print(format_error(error), file=sys.stderr)
    return 1


def cmd_compile(args, settings: Settings) -> int:
    """Compile an entrypoint to dnscontrol JavaScript."""
    input_path = args.input or settings.input
    output_path = None if args.stdout else (args.output or settings.output)

    try:
        result = compile_file(input_path, output_path, settings=settings, syntax=args.syntax)
    except (DslError, ZoneIOError) as e:
        return _report(e)

    if args.stdout:
        sys.stdout.write(result.output)
    else:
        print(f"Wrote {output_path}: {len(result.snapshot.domains)} domain(s), "
              f"{result.record_count} record(s)")
    return 0


def cmd_check(args, settings: Settings) -> int:
    """Evaluate and finalize an entrypoint without writing output."""
    input_path = args.input or settings.input

    try:
        result = compile_file(input_path, None, settings=settings, syntax=args.syntax)
    except (DslError, ZoneIOError) as e:
        return _report(e)

    snapshot = result.snapshot
    print(f"OK: {Path(input_path).name} - {len(snapshot.domains)} domain(s), "
          f"{result.record_count} record(s), {len(snapshot.providers)} provider(s)")

    # Report whether the committed output still matches this source
    output = Path(settings.output)
    if output.is_file():
        try:
            signature = read_header_signature(read_source(output))
        except ZoneIOError as e:
            return _report(e)
        if signature is None:
            print(f"  {output}: no provenance header")
        elif signature == result.evaluation.source_signature:
            print(f"  {output}: up to date")
        else:
            print(f"  {output}: stale, run 'zonescript compile'")
    return 0


def cmd_directives(args, settings: Settings) -> int:
    """List every directive scripts can call."""
    for entry in get_directive_registry().describe():
        aliases = f"  (alias: {', '.join(entry['aliases'])})" if entry["aliases"] else ""
        print(f"{entry['signature']}{aliases}")
        print(f"    {entry['summary']}")
    return 0


def cmd_run(args, settings: Settings) -> int:
    """Compile the default entrypoint, then run the engine with the remaining arguments."""
    try:
        compile_file(settings.input, settings.output, settings=settings)
    except (DslError, ZoneIOError) as e:
        return _report(e)

    command = [settings.engine, *args.engine_args]
    log.debug("engine.start", command=command)
    try:
        completed = subprocess.run(command)
    except FileNotFoundError:
        print(f"Error: engine not found: {settings.engine}", file=sys.stderr)
        return 127
    return completed.returncode


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='zonescript',
        description='Generate dnscontrol JavaScript from Lua zone scripts',
    )
    parser.add_argument('-c', '--config', metavar='FILE',
                        help='Settings file (default: zonescript.yaml if present)')
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug logging')
    parser.add_argument('--log-json', action='store_true', help='Log JSON lines to stderr')

    subparsers = parser.add_subparsers(dest='action', required=True)

    # compile command
    compile_parser = subparsers.add_parser('compile', help='Generate native source')
    compile_parser.add_argument('input', nargs='?', help='Entrypoint (default: dnscontrol.lua)')
    compile_parser.add_argument('-o', '--output', metavar='FILE',
                                help='Output file (default: dnscontrol.js)')
    compile_parser.add_argument('--syntax', choices=('lua', 'native'),
                                help='Input syntax (default: from file extension)')
    compile_parser.add_argument('--stdout', action='store_true',
                                help='Print to stdout instead of writing a file')

    # check command
    check_parser = subparsers.add_parser('check', help='Evaluate and validate without writing')
    check_parser.add_argument('input', nargs='?', help='Entrypoint (default: dnscontrol.lua)')
    check_parser.add_argument('--syntax', choices=('lua', 'native'),
                              help='Input syntax (default: from file extension)')

    # directives command
    subparsers.add_parser('directives', help='List available directives')

    # run command
    run_parser = subparsers.add_parser('run', help='Compile, then run the engine')
    run_parser.add_argument('engine_args', nargs=argparse.REMAINDER,
                            help='Arguments passed to the engine')

    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging(verbose=args.verbose, log_json=args.log_json)

    try:
        settings = load_settings(args.config)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    if args.action == 'compile':
        return cmd_compile(args, settings)
    elif args.action == 'check':
        return cmd_check(args, settings)
    elif args.action == 'directives':
        return cmd_directives(args, settings)
    elif args.action == 'run':
        return cmd_run(args, settings)
    else:
        parser.print_help()
        return 1


if __name__ == '__main__':
    sys.exit(main())
