"""
Status Update Detector.

Operators built on Kubernetes clients (kopf, kubernetes, lightkube, ...) are
expected to reflect every change they make in the resource's status. This
detector looks at `reconcile` methods of classes named like `*Reconciler`,
`*Controller` or `*Operator` and reports the method when some path performs a
resource mutation and then returns without reporting status.

Mutations are calls such as `create`, `update`, `patch`, `delete`, `replace` and
the `create_namespaced_*` family. Status reports are assignments to a `status`
or `conditions` field, `.status()` subresource calls, calls whose name ends in
`_status`, and condition helpers (`set_condition`, `set_status_condition`, ...).
"""

from typing import Iterable, List, Optional

import libcst as cst

from flowlint.core.detector import Detector, is_generated_unit, is_test_unit, register_detector
from flowlint.core.diagnostics import Diagnostic
from flowlint.core.flow import Binding, FlowPolicy, Satisfaction, track
from flowlint.core.program import FunctionSite, SourceUnit, SymbolKey
from flowlint.enums import Severity

RECONCILER_MARKERS = ("Reconciler", "Controller", "Operator")
MUTATION_METHODS = frozenset({"create", "update", "patch", "delete", "replace", "apply"})
MUTATION_PREFIXES = ("create_namespaced_", "patch_namespaced_", "replace_namespaced_", "delete_namespaced_")
STATUS_FIELDS = frozenset({"status", "conditions"})

# Obligations are not tied to a program variable; a single synthetic symbol carries them.
STATUS_SYMBOL = SymbolKey("<status>")


def _call_name(call: cst.Call) -> str:
  func = call.func
  if isinstance(func, cst.Attribute):
    return func.attr.value
  if isinstance(func, cst.Name):
    return func.value
  return ""


def _chain_mentions_status(expr: cst.BaseExpression) -> bool:
  """True if an attribute/call chain passes through a `status` member."""
  current = expr
  while True:
    if isinstance(current, cst.Attribute):
      if current.attr.value in STATUS_FIELDS:
        return True
      current = current.value
    elif isinstance(current, cst.Call):
      current = current.func
    elif isinstance(current, cst.Subscript):
      current = current.value
    else:
      return False


def is_status_report(call: cst.Call) -> bool:
  """
  Classifies a call as a status report.

  Args:
      call: The call expression.

  Returns:
      bool: True for `.status()` calls, `*_status` calls, condition helpers, and
      calls made through a `status` member.
  """
  name = _call_name(call).lower()
  if name == "status" or name.endswith("_status") or "condition" in name:
    return True
  return isinstance(call.func, cst.Attribute) and _chain_mentions_status(call.func.value)


def is_mutation(call: cst.Call) -> bool:
  """
  Classifies a call as a resource mutation (status reports excluded).
  """
  if is_status_report(call):
    return False
  name = _call_name(call)
  return name in MUTATION_METHODS or name.startswith(MUTATION_PREFIXES)


def _calls(node: cst.CSTNode) -> List[cst.Call]:
  found: List[cst.Call] = []

  def walk(current: cst.CSTNode) -> None:
    if isinstance(current, cst.Lambda):
      return
    if isinstance(current, cst.Call):
      found.append(current)
    for child in current.children:
      walk(child)

  walk(node)
  return found


class StatusPolicy(FlowPolicy):
  """
  Binds an obligation at each mutation and discharges all of them at a status report.
  """

  tracks_exits = True

  def satisfies(self, node: cst.CSTNode) -> Iterable[Satisfaction]:
    if not isinstance(node, cst.BaseSmallStatement):
      return ()
    if self._assigns_status(node) or any(is_status_report(call) for call in _calls(node)):
      return (Satisfaction(STATUS_SYMBOL),)
    return ()

  def binds(self, node: cst.BaseSmallStatement) -> Iterable[Binding]:
    return [
      Binding(symbol=STATUS_SYMBOL, label=_call_name(call), node=call) for call in _calls(node) if is_mutation(call)
    ]

  def _assigns_status(self, node: cst.BaseSmallStatement) -> bool:
    if isinstance(node, cst.Assign):
      targets = [t.target for t in node.targets]
    elif isinstance(node, (cst.AnnAssign, cst.AugAssign)):
      targets = [node.target]
    else:
      return False
    return any(_chain_mentions_status(t) for t in targets if isinstance(t, (cst.Attribute, cst.Subscript)))


def is_reconcile_method(site: FunctionSite) -> bool:
  """
  Args:
      site: A function of the unit.

  Returns:
      bool: True for `reconcile` defined directly on a reconciler-like class.
  """
  if site.name.lower() != "reconcile":
    return False
  owner = site.owner_name
  return owner is not None and any(marker in owner for marker in RECONCILER_MARKERS)


@register_detector
class StatusUpdateDetector(Detector):
  """
  Reports reconcilers that can return after a mutation without reporting status.
  """

  category = "status-update"
  severity = Severity.WARNING
  description = "Reconcilers must update status on every path that mutates resources."
  exemptions = (is_generated_unit, is_test_unit)

  def check(self, unit: SourceUnit) -> Iterable[Diagnostic]:
    diagnostics = []
    for site in unit.functions():
      if not is_reconcile_method(site):
        continue
      finding = self._check_reconcile(unit, site)
      if finding is not None:
        diagnostics.append(finding)
    return diagnostics

  def _check_reconcile(self, unit: SourceUnit, site: FunctionSite) -> Optional[Diagnostic]:
    report = track(site.node.body, StatusPolicy())
    if not report.leaks:
      return None
    first = report.leaks[0].binding
    return self.report(
      unit,
      site.node,
      f"{site.owner_name}.{site.name} mutates resources ('{first.label}' on line "
      f"{unit.position(first.node).line}) but can return without updating status; "
      "set the status (or a condition) before returning",
    )
