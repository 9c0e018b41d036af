"""
CLI Command Handlers.

Implements the `check` and `detectors` commands. Handlers return process exit
codes:

*   0: no diagnostics.
*   1: diagnostics were emitted.
*   2: usage problem (missing path, invalid configuration, unknown detector).
"""

import json
from pathlib import Path
from typing import List, Optional

from rich.markup import escape
from rich.table import Table
from rich.text import Text

from flowlint.config import LintConfig
from flowlint.core.detector import DETECTOR_GROUPS, available_detectors, get_detector_class
from flowlint.core.diagnostics import Diagnostic
from flowlint.core.engine import LintEngine
from flowlint.utils.console import console, log_error, log_info, log_success, log_warning

EXIT_CLEAN = 0
EXIT_FINDINGS = 1
EXIT_USAGE = 2

_SEVERITY_STYLES = {"error": "error", "warning": "warning", "info": "info"}


def handle_check(
  paths: List[Path],
  select: Optional[List[str]] = None,
  disable: Optional[List[str]] = None,
  workers: Optional[int] = None,
  json_mode: bool = False,
  resolve: bool = True,
) -> int:
  """
  Lints files and directories and prints the findings.

  Args:
      paths: Input files or directories.
      select: Categories or groups to run exclusively.
      disable: Categories or groups to skip.
      workers: Override for the worker count.
      json_mode: If True, print a JSON document to stdout instead of text.
      resolve: If False, force syntactic mode.

  Returns:
      int: Exit code.
  """
  missing = [p for p in paths if not p.exists()]
  if missing:
    for path in missing:
      log_error(f"Path not found: {escape(str(path))}")
    return EXIT_USAGE

  try:
    config = LintConfig.load(
      workers=workers,
      resolve=None if resolve else False,
      search_path=paths[0],
    )
    engine = LintEngine(config=config, select=select, disable=disable)
  except ValueError as e:
    log_error(escape(str(e)))
    return EXIT_USAGE

  if not json_mode:
    names = ", ".join(d.category for d in engine.detectors) or "none"
    log_info(f"Checking {len(paths)} path(s) with: {names}")

  report = engine.lint_paths(paths)

  if json_mode:
    payload = {
      "diagnostics": [d.to_json() for d in report.diagnostics],
      "skipped": report.skipped,
      "files": report.files,
    }
    print(json.dumps(payload, indent=2))
    return EXIT_FINDINGS if report.diagnostics else EXIT_CLEAN

  for diagnostic in report.diagnostics:
    console.print(_render(diagnostic), highlight=False)

  if report.skipped:
    log_warning(f"Skipped {len(report.skipped)} file(s) that could not be parsed or read")

  if report.diagnostics:
    log_warning(f"Found {len(report.diagnostics)} issue(s) in {report.files} file(s)")
    return EXIT_FINDINGS

  log_success(f"No issues found in {report.files} file(s)")
  return EXIT_CLEAN


def _render(diagnostic: Diagnostic) -> Text:
  """Builds a styled line without interpreting brackets in messages as markup."""
  return Text.assemble(
    (str(diagnostic.position), "path"),
    ": ",
    (f"[{diagnostic.category}]", _SEVERITY_STYLES.get(diagnostic.severity.value, "")),
    " ",
    diagnostic.message,
  )


def handle_detectors() -> int:
  """
  Prints a table of the registered detectors and their groups.

  Returns:
      int: Always 0.
  """
  table = Table(title="Registered Detectors")
  table.add_column("Category", style="category")
  table.add_column("Severity")
  table.add_column("Groups", style="dim")
  table.add_column("Description")

  for category in available_detectors():
    cls = get_detector_class(category)
    groups = ", ".join(sorted(name for name, members in DETECTOR_GROUPS.items() if category in members))
    table.add_row(category, cls.severity.value, groups, cls.description)

  console.print(table)
  return EXIT_CLEAN
