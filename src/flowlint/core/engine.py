"""
Lint Engine.

Runs a set of detectors over units and aggregates their findings:

1.  Every file becomes its own `SourceUnit`, built inside a worker thread.
2.  Every selected detector runs over the unit; detectors never see each other's output.
3.  The unit's `SuppressionLayer` filters and stable-sorts the findings.
4.  Per-file lists are merged in input order and stable-sorted once more.

Workers share nothing but the read-only detector instances, so the merged result
of a parallel run is identical to a sequential one.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from flowlint.config import LintConfig
from flowlint.core.detector import Detector, select_detectors
from flowlint.core.diagnostics import Diagnostic
from flowlint.core.program import MalformedUnitError, SourceUnit
from flowlint.core.suppression import SuppressionLayer

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def run_all(unit: SourceUnit, detectors: Iterable[Detector]) -> List[Diagnostic]:
  """
  Runs detectors over one unit and returns the merged, suppressed, sorted findings.

  Args:
      unit (SourceUnit): The unit to analyse.
      detectors: Detector instances, run in the given order.

  Returns:
      List[Diagnostic]: Surviving diagnostics sorted by position.
  """
  layer = SuppressionLayer(unit.suppressions())
  for detector in detectors:
    layer.extend(detector.run(unit))
  return layer.collect()


@dataclass
class LintReport:
  """
  Aggregated outcome of linting several files.

  Attributes:
      diagnostics (List[Diagnostic]): Findings across all files, sorted by position.
      skipped (List[str]): Files that could not be read or parsed.
      files (int): Number of files analysed (skipped ones included).
  """

  diagnostics: List[Diagnostic] = field(default_factory=list)
  skipped: List[str] = field(default_factory=list)
  files: int = 0

  @property
  def clean(self) -> bool:
    return not self.diagnostics


class LintEngine:
  """
  Entry point for programmatic linting.
  """

  def __init__(
    self,
    config: Optional[LintConfig] = None,
    detectors: Optional[Sequence[Detector]] = None,
    select: Optional[Sequence[str]] = None,
    disable: Optional[Sequence[str]] = None,
  ):
    """
    Args:
        config: Run configuration. Defaults to built-in settings.
        detectors: Explicit detector instances; bypasses selection when given.
        select: Categories or groups to run exclusively.
        disable: Categories or groups to skip.

    Raises:
        ValueError: If `select` or `disable` name an unknown detector.
    """
    self.config = config if config is not None else LintConfig()
    if detectors is not None:
      self.detectors: Tuple[Detector, ...] = tuple(detectors)
    else:
      self.detectors = tuple(select_detectors(self.config, select=select, disable=disable))

  def run(self, unit: SourceUnit) -> List[Diagnostic]:
    """Runs the engine's detectors over a prepared unit."""
    return run_all(unit, self.detectors)

  def lint_source(self, code: str, path: str = "<string>") -> List[Diagnostic]:
    """
    Lints a source string.

    Args:
        code (str): Module source.
        path (str): Path reported in positions.

    Returns:
        List[Diagnostic]: Sorted findings.

    Raises:
        MalformedUnitError: If the code cannot be parsed.
    """
    unit = SourceUnit.parse(code, path=path, resolve=self.config.resolve)
    return self.run(unit)

  def collect_files(self, paths: Iterable[PathLike]) -> List[Path]:
    """
    Expands the given paths to Python files, honouring exclude patterns.

    Directories are searched recursively; explicit file arguments are kept even
    without a `.py` suffix.

    Raises:
        FileNotFoundError: If a path does not exist.
    """
    files: List[Path] = []
    seen = set()
    for raw in paths:
      path = Path(raw)
      if not path.exists():
        raise FileNotFoundError(f"Path not found: {path}")
      candidates = [path] if path.is_file() else sorted(path.rglob("*.py"))
      for candidate in candidates:
        if candidate in seen or self.config.is_excluded(candidate):
          continue
        seen.add(candidate)
        files.append(candidate)
    return files

  def lint_paths(self, paths: Iterable[PathLike]) -> LintReport:
    """
    Lints files and directories, in parallel when configured with several workers.

    Args:
        paths: Files or directories.

    Returns:
        LintReport: Merged findings and skipped files.
    """
    files = self.collect_files(paths)
    if self.config.workers > 1 and len(files) > 1:
      with ThreadPoolExecutor(max_workers=self.config.workers) as executor:
        results = list(executor.map(self._lint_file, files))
    else:
      results = [self._lint_file(f) for f in files]

    report = LintReport(files=len(files))
    for path, diagnostics, skipped in results:
      if skipped:
        report.skipped.append(str(path))
      report.diagnostics.extend(diagnostics)
    report.diagnostics.sort(key=Diagnostic.sort_key)
    return report

  def _lint_file(self, path: Path) -> Tuple[Path, List[Diagnostic], bool]:
    try:
      code = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
      logger.warning("Skipping %s: cannot read file (%s)", path, e)
      return path, [], True

    try:
      unit = SourceUnit.parse(code, path=str(path), resolve=self.config.resolve)
      return path, self.run(unit), False
    except MalformedUnitError as e:
      logger.warning("Skipping malformed unit %s", e)
    except Exception as e:
      logger.warning("Skipping %s: analysis failed (%s: %s)", path, type(e).__name__, e)
    return path, [], True
