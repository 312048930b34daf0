#!/usr/bin/env python
import argparse
import json
import sys
from typing import List, Optional

from . import __version__
from .config import Settings
from .converter import Converter
from .errors import ConfigError, ConversionError
from .formats import available_formats
from .log import configure_logging

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_IO = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="wfconvert", description="Convert WDL workflows to CWL")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log debug output to stderr")
    # -v is accepted after the subcommand too; SUPPRESS keeps a top-level -v from being reset.
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("-v", "--verbose", action="store_true", default=argparse.SUPPRESS,
                        help="Log debug output to stderr")
    subparsers = parser.add_subparsers(dest="command")

    convert = subparsers.add_parser("convert", parents=[common], help="Convert one workflow file")
    convert.add_argument("src", help="Source file (.wdl)")
    convert.add_argument("dst", help="Destination file; the suffix picks the format unless --to is given")
    convert.add_argument("--to", choices=available_formats(), help="Target format")
    convert.add_argument("--validate", action="store_true", help="Report validator warnings too")
    convert.add_argument("--best-effort", action="store_true", help="Write output despite errors")
    convert.add_argument("--strict", action="store_true", help="Stop at the first parse error")
    convert.add_argument("--allow-degraded", action="store_true",
                         help="Encode Map types as key/value records instead of failing")

    batch = subparsers.add_parser("convert-dir", parents=[common],
                                  help="Convert every matching file in a directory")
    batch.add_argument("src_dir")
    batch.add_argument("dst_dir")
    batch.add_argument("--pattern", default="*.wdl", help="Glob for source files (default: *.wdl)")
    batch.add_argument("--no-recursive", action="store_true", help="Do not descend into subdirectories")
    batch.add_argument("--workers", type=int, default=None, help="Concurrent conversions")
    batch.add_argument("--to", choices=available_formats(), help="Target format")
    batch.add_argument("--best-effort", action="store_true")
    batch.add_argument("--allow-degraded", action="store_true")

    parse = subparsers.add_parser("parse", parents=[common], help="Print the resolved IR as JSON")
    parse.add_argument("src")

    analyze = subparsers.add_parser("analyze", parents=[common], help="Print the call dependency graph as JSON")
    analyze.add_argument("src")
    return parser


def _report(diagnostics) -> None:
    for diag in diagnostics:
        print(str(diag), file=sys.stderr)


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return EXIT_OK

    try:
        settings = Settings.from_env()
    except ConfigError as e:
        print(f"[Error] {e}", file=sys.stderr)
        return EXIT_FAILED
    configure_logging(settings.log_level, verbose=args.verbose)

    try:
        if args.command == "convert":
            converter = Converter(target_format=args.to, validate=args.validate, best_effort=args.best_effort,
                                  strict=args.strict, allow_degraded=args.allow_degraded, settings=settings)
            result = converter.convert_file(args.src, args.dst)
            _report(result.diagnostics)
            print(f"[wfconvert] wrote {result.output_path} ({result.target_format})")
            return EXIT_OK

        if args.command == "convert-dir":
            converter = Converter(target_format=args.to, best_effort=args.best_effort,
                                  allow_degraded=args.allow_degraded, settings=settings)
            batch = converter.convert_dir(args.src_dir, args.dst_dir, pattern=args.pattern,
                                          recursive=not args.no_recursive, max_workers=args.workers)
            for outcome in batch.outcomes:
                if outcome.ok:
                    print(f"  OK    {outcome.source} -> {outcome.target}")
                else:
                    print(f"  FAIL  {outcome.source}: {outcome.error}")
            print(f"[wfconvert] {len(batch.succeeded)} converted, {len(batch.failed)} failed")
            return EXIT_OK if batch.ok else EXIT_FAILED

        converter = Converter(settings=settings)
        if args.command == "parse":
            workflow, diagnostics = converter.load(args.src)
            _report(diagnostics)
            print(json.dumps(workflow.to_dict(), indent=2))
            return EXIT_FAILED if any(d.is_error for d in diagnostics) else EXIT_OK

        if args.command == "analyze":
            summary = converter.analyze(args.src)
            print(json.dumps(summary, indent=2))
            return EXIT_OK if summary["is_dag"] else EXIT_FAILED
    except ConversionError as e:
        diagnostics = getattr(e, "diagnostics", None)
        if diagnostics:
            _report(diagnostics)
        print(f"[Error] {e}", file=sys.stderr)
        return EXIT_FAILED
    except (OSError, UnicodeDecodeError) as e:
        print(f"[Error] {e}", file=sys.stderr)
        return EXIT_IO

    parser.print_help()
    return EXIT_FAILED


if __name__ == "__main__":
    sys.exit(main())
