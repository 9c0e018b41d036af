"""
Tests for the lint engine.

Verifies:
1.  Repeated runs over the same unit are identical.
2.  Parallel and sequential runs produce the same ordered output.
3.  Malformed files are skipped without aborting the run.
4.  A failing detector never suppresses its siblings.
5.  Exemption predicates are honoured before traversal.
"""

from pathlib import Path
from typing import Iterable
from unittest.mock import patch

import pytest

from flowlint.analysis.clock import ClockInterfaceDetector
from flowlint.analysis.resources import ResourceLifecycleDetector
from flowlint.config import LintConfig
from flowlint.core.detector import Detector, expand_names, select_detectors
from flowlint.core.diagnostics import Diagnostic
from flowlint.core.engine import LintEngine, run_all
from flowlint.core.program import SourceUnit

LEAKY = """
def read(path):
    f = open(path)
    return f.read()
"""

CLEAN = """
def read(path):
    with open(path) as f:
        return f.read()
"""

TIMED = """
import time


def wait():
    time.sleep(1)
"""


class ExplodingDetector(Detector):
  category = "exploding"

  def check(self, unit: SourceUnit) -> Iterable[Diagnostic]:
    raise RuntimeError("detector bug")


def broken_predicate(unit: SourceUnit) -> bool:
  raise KeyError(unit.path)


class FragileExemptionDetector(ResourceLifecycleDetector):
  category = "fragile-exemption"
  exemptions = (broken_predicate,)


def write_tree(root: Path) -> None:
  (root / "pkg").mkdir()
  (root / "pkg" / "a.py").write_text(LEAKY)
  (root / "pkg" / "b.py").write_text(CLEAN)
  (root / "pkg" / "c.py").write_text(TIMED)
  (root / "pkg" / "d.py").write_text(LEAKY + TIMED)
  (root / "pkg" / "broken.py").write_text("def broken(:\n")


def test_run_is_idempotent():
  engine = LintEngine(LintConfig())
  unit = SourceUnit.parse(LEAKY + TIMED, path="mod.py")
  first = engine.run(unit)
  assert first
  assert engine.run(unit) == first


def test_parallel_matches_sequential(tmp_path):
  write_tree(tmp_path)
  sequential = LintEngine(LintConfig(workers=1)).lint_paths([tmp_path])
  parallel = LintEngine(LintConfig(workers=4)).lint_paths([tmp_path])

  assert parallel.diagnostics == sequential.diagnostics
  assert parallel.skipped == sequential.skipped
  assert [Path(d.position.file).name for d in sequential.diagnostics] == ["a.py", "c.py", "d.py", "d.py"]


def test_malformed_file_is_skipped(tmp_path):
  write_tree(tmp_path)
  report = LintEngine(LintConfig(workers=1)).lint_paths([tmp_path])

  assert [Path(p).name for p in report.skipped] == ["broken.py"]
  assert report.files == 5
  assert not report.clean


def test_unit_fault_is_skipped_without_aborting_run(tmp_path):
  (tmp_path / "deep.py").write_text(LEAKY)
  (tmp_path / "ok.py").write_text(LEAKY)
  original = SourceUnit.parse

  def fragile(code, path="<string>", resolve=True):
    if path.endswith("deep.py"):
      raise RecursionError("maximum recursion depth exceeded")
    return original(code, path=path, resolve=resolve)

  with patch.object(SourceUnit, "parse", side_effect=fragile):
    report = LintEngine(LintConfig(workers=2)).lint_paths([tmp_path])

  assert [Path(p).name for p in report.skipped] == ["deep.py"]
  assert [Path(d.position.file).name for d in report.diagnostics] == ["ok.py"]


def test_deeply_nested_module_next_to_normal_one(tmp_path):
  (tmp_path / "deep.py").write_text("x = " + "+".join(["1"] * 3000) + "\n")
  (tmp_path / "ok.py").write_text(LEAKY)

  report = LintEngine(LintConfig(workers=1)).lint_paths([tmp_path])

  assert report.files == 2
  assert [Path(d.position.file).name for d in report.diagnostics] == ["ok.py"]
  assert set(Path(p).name for p in report.skipped) <= {"deep.py"}


def test_failing_detector_is_isolated():
  unit = SourceUnit.parse(LEAKY, path="mod.py")
  results = run_all(unit, [ExplodingDetector(), ResourceLifecycleDetector()])
  assert [d.category for d in results] == ["resource-lifecycle"]


def test_failing_exemption_predicate_is_isolated():
  unit = SourceUnit.parse(LEAKY, path="mod.py")
  assert FragileExemptionDetector().run(unit) == []
  results = run_all(unit, [FragileExemptionDetector(), ResourceLifecycleDetector()])
  assert [d.category for d in results] == ["resource-lifecycle"]


def test_exempt_unit_is_not_analysed():
  detector = ClockInterfaceDetector()
  assert detector.run(SourceUnit.parse(TIMED, path="app/worker.py"))
  assert detector.run(SourceUnit.parse(TIMED, path="tests/test_worker.py")) == []
  assert detector.run(SourceUnit.parse(TIMED, path="app/__main__.py")) == []
  assert detector.run(SourceUnit.parse("# @generated\n" + TIMED, path="app/worker.py")) == []


def test_results_sorted_across_detectors():
  results = LintEngine(LintConfig()).lint_source(TIMED + LEAKY, path="mod.py")
  lines = [d.position.line for d in results]
  assert lines == sorted(lines)
  assert [d.category for d in results] == ["clock-interface", "resource-lifecycle"]


def test_excluded_paths_are_not_collected(tmp_path):
  write_tree(tmp_path)
  engine = LintEngine(LintConfig(exclude=("broken.py", "c.py")))
  names = [p.name for p in engine.collect_files([tmp_path])]
  assert names == ["a.py", "b.py", "d.py"]


def test_missing_path_raises(tmp_path):
  with pytest.raises(FileNotFoundError):
    LintEngine().collect_files([tmp_path / "missing"])


def test_selection_and_groups():
  assert expand_names(["safety", "none-check"]) == ["none-check", "resource-lifecycle"]
  with pytest.raises(ValueError):
    expand_names(["no-such-detector"])

  chosen = [d.category for d in select_detectors(LintConfig(), select=["flow"], disable=["kubernetes"])]
  assert chosen == ["none-check", "resource-lifecycle"]

  config = LintConfig(detectors={"default": False, "todo-tracker": True})
  assert [d.category for d in select_detectors(config)] == ["todo-tracker"]
