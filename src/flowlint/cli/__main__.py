"""
Main Entry Point for the flowlint CLI.

This module handles argument parsing and dispatches to the command handlers
defined in `flowlint.cli.commands`.
"""

import argparse
import sys
from pathlib import Path
from typing import List, Optional

from flowlint import __version__
from flowlint.cli import commands
from flowlint.utils.console import set_verbosity


def main(argv: Optional[List[str]] = None) -> int:
  """
  Main CLI entry point.

  Parses arguments via argparse and calls the appropriate handler function.

  Args:
      argv: Optional list of command line arguments (defaults to sys.argv).

  Returns:
      int: Exit code (0 clean, 1 findings, 2 usage errors).
  """
  parser = argparse.ArgumentParser(prog="flowlint", description="flowlint: flow-sensitive anti-pattern detectors")
  parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
  parser.add_argument("-v", "--verbose", action="store_true", help="Show debug logging")
  parser.add_argument("-q", "--quiet", action="store_true", help="Only log errors")

  subparsers = parser.add_subparsers(dest="command", required=True)

  # --- Command: CHECK ---
  cmd_check = subparsers.add_parser("check", help="Lint Python files or directories")
  cmd_check.add_argument("paths", nargs="+", type=Path, help="Input source files or directories")
  cmd_check.add_argument(
    "--select",
    nargs="+",
    default=None,
    metavar="CAT",
    help="Only run these detector categories or groups",
  )
  cmd_check.add_argument(
    "--disable",
    nargs="+",
    default=None,
    metavar="CAT",
    help="Skip these detector categories or groups",
  )
  cmd_check.add_argument("--workers", type=int, default=None, help="Worker threads (default: from toml)")
  cmd_check.add_argument("--json", action="store_true", help="Print diagnostics as JSON on stdout")
  cmd_check.add_argument(
    "--no-resolve",
    action="store_true",
    help="Skip scope/qualified-name resolution (syntactic mode)",
  )

  # --- Command: DETECTORS ---
  subparsers.add_parser("detectors", help="List registered detectors")

  args = parser.parse_args(argv)
  set_verbosity(verbose=args.verbose, quiet=args.quiet)

  if args.command == "check":
    return commands.handle_check(
      args.paths,
      select=args.select,
      disable=args.disable,
      workers=args.workers,
      json_mode=args.json,
      resolve=not args.no_resolve,
    )

  elif args.command == "detectors":
    return commands.handle_detectors()

  return 0


if __name__ == "__main__":
  sys.exit(main())
