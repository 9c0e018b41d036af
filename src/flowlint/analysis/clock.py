"""
Clock Interface Detector.

Business logic that reads the wall clock or sleeps directly is hard to test.
This detector flags direct calls to the standard time sources inside functions
and suggests injecting a clock object instead.

Exempt: functions named `main` or `__init__`, functions whose name starts with
`new` or `create` (constructors usually wire the real clock), functions that
already accept a clock parameter, test modules and `__main__.py` entry points.
"""

from typing import Dict, Iterable, List, Optional

import libcst as cst

from flowlint.core.detector import (
  Detector,
  is_entry_point_unit,
  is_generated_unit,
  is_test_unit,
  register_detector,
)
from flowlint.core.diagnostics import Diagnostic
from flowlint.core.program import FunctionSite, SourceUnit, dotted_name
from flowlint.enums import Severity

# Qualified callee -> kind of time access.
CLOCK_CALLS: Dict[str, str] = {
  "datetime.datetime.now": "now",
  "datetime.datetime.utcnow": "now",
  "datetime.datetime.today": "now",
  "datetime.date.today": "now",
  "time.time": "now",
  "time.time_ns": "now",
  "time.monotonic": "now",
  "time.monotonic_ns": "now",
  "time.sleep": "sleep",
  "threading.Timer": "timer",
  "sched.scheduler": "timer",
}

EXEMPT_FUNCTIONS = frozenset({"main", "__init__"})
EXEMPT_PREFIXES = ("new", "create")


def _display(qualified: str) -> str:
  """`datetime.datetime.now` -> `datetime.now`."""
  parts = qualified.split(".")
  return ".".join(parts[-2:]) if len(parts) > 2 else qualified


class _CallCollector(cst.CSTVisitor):
  """Collects calls of one function body without entering nested definitions."""

  def __init__(self) -> None:
    self.calls: List[cst.Call] = []

  def visit_FunctionDef(self, node: cst.FunctionDef) -> bool:
    return False

  def visit_ClassDef(self, node: cst.ClassDef) -> bool:
    return False

  def visit_Call(self, node: cst.Call) -> None:
    self.calls.append(node)


@register_detector
class ClockInterfaceDetector(Detector):
  """
  Reports direct use of wall-clock time, sleeps and timers in business logic.
  """

  category = "clock-interface"
  severity = Severity.INFO
  description = "Time sources should be injected (a Clock object) instead of called directly."
  exemptions = (is_generated_unit, is_test_unit, is_entry_point_unit)

  def check(self, unit: SourceUnit) -> Iterable[Diagnostic]:
    clock_class = self.find_clock_class(unit)
    diagnostics: List[Diagnostic] = []
    for site in unit.functions():
      if self.is_exempt_function(site):
        continue
      collector = _CallCollector()
      site.node.body.visit(collector)
      for call in collector.calls:
        target = self.clock_call(unit, call)
        if target is not None:
          diagnostics.append(self.report(unit, call, self._message(target, clock_class)))
    return diagnostics

  def find_clock_class(self, unit: SourceUnit) -> Optional[str]:
    """
    Returns the name of a clock abstraction defined in the module, if any.
    """
    for node in unit.classes():
      if node.name.value.endswith("Clock"):
        return node.name.value
    return None

  def is_exempt_function(self, site: FunctionSite) -> bool:
    name = site.name
    if name in EXEMPT_FUNCTIONS or name.lower().startswith(EXEMPT_PREFIXES):
      return True
    params = site.node.params
    for param in [*params.posonly_params, *params.params, *params.kwonly_params]:
      if "clock" in param.name.value.lower():
        return True
      if param.annotation is not None and "Clock" in dotted_name(param.annotation.annotation):
        return True
    return False

  def clock_call(self, unit: SourceUnit, call: cst.Call) -> Optional[str]:
    """
    Identifies a direct time-source call.

    Resolved mode matches the qualified callee exactly. Syntactic mode needs a
    dotted spelling (`time.time`, `datetime.now`) that ends a known qualified name.

    Returns:
        Optional[str]: The qualified name matched, or None.
    """
    qualified_names = unit.qualified_names(call.func)
    if qualified_names:
      return next((name for name in qualified_names if name in CLOCK_CALLS), None)
    text = dotted_name(call.func)
    if "." not in text:
      return None
    for qualified in CLOCK_CALLS:
      if qualified == text or qualified.endswith("." + text):
        return qualified
    return None

  def _message(self, qualified: str, clock_class: Optional[str]) -> str:
    kind = CLOCK_CALLS[qualified]
    shown = _display(qualified)
    if kind == "sleep":
      return (
        f"{shown}() in business logic is usually a code smell; "
        "inject a clock, wait on an event with a timeout, or return a retry delay"
      )
    if kind == "timer":
      return f"direct {shown}() call; consider abstracting time operations for testability"
    if clock_class:
      return f"direct {shown}() call in business logic; use the {clock_class} defined in this module"
    return f"direct {shown}() call in business logic; inject a Clock for testability"
