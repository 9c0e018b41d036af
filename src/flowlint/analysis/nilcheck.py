"""
None-Check Dominance Detector.

Flags the first dereference of an optional parameter that is not dominated by a
None check. A parameter is optional when its annotation says so (`Optional[T]`,
`Union[T, None]`, `T | None`) or when it defaults to `None`.

Recognized guards::

    if p is None: return ...        # early exit on the negative outcome
    if p is not None: p.field       # positive branch
    if not p: raise ...             # truthiness
    if isinstance(p, T): ...        # type test
    assert p is not None
    x = p.a if p else None          # conditional expression
    p and p.a                       # short circuit

Rebinding the parameter (`p = p or default`) also counts as a check.
"""

from typing import Dict, Iterable, List, Optional

import libcst as cst

from flowlint.core.detector import Detector, is_generated_unit, register_detector
from flowlint.core.diagnostics import Diagnostic
from flowlint.core.flow import Binding, FlowPolicy, Guard, Satisfaction, track
from flowlint.core.program import FunctionSite, SourceUnit, SymbolKey
from flowlint.enums import Severity, TypeKind

_RECEIVER_NAMES = frozenset({"self", "cls"})
_TYPE_TESTS = frozenset({"isinstance", "callable"})


def _is_none(node: cst.BaseExpression) -> bool:
  return isinstance(node, cst.Name) and node.value == "None"


class NoneCheckPolicy(FlowPolicy):
  """
  Flow policy tracking optional parameters of one function.

  Args:
      unit: The analysed unit.
      tracked: Seed bindings keyed by symbol.
  """

  def __init__(self, unit: SourceUnit, tracked: Dict[SymbolKey, Binding]):
    self._unit = unit
    self._tracked = tracked

  def _key(self, node: cst.CSTNode) -> Optional[SymbolKey]:
    if not isinstance(node, cst.Name):
      return None
    key = self._unit.symbol(node.value, node)
    return key if key in self._tracked else None

  def _sat(self, node: cst.CSTNode) -> frozenset:
    key = self._key(node)
    return frozenset({Satisfaction(key)}) if key is not None else frozenset()

  def guard(self, test: cst.BaseExpression) -> Optional[Guard]:
    if isinstance(test, cst.Name):
      sats = self._sat(test)
      return Guard(when_true=sats) if sats else None

    if isinstance(test, cst.Comparison) and len(test.comparisons) == 1:
      target = test.comparisons[0]
      left, right, op = test.left, target.comparator, target.operator
      subject = left if _is_none(right) else right if _is_none(left) else None
      if subject is None:
        return None
      sats = self._sat(subject)
      if not sats:
        return None
      if isinstance(op, (cst.Is, cst.Equal)):
        return Guard(when_false=sats)
      if isinstance(op, (cst.IsNot, cst.NotEqual)):
        return Guard(when_true=sats)
      return None

    if isinstance(test, cst.Call) and isinstance(test.func, cst.Name) and test.func.value in _TYPE_TESTS:
      if test.args:
        sats = self._sat(test.args[0].value)
        if sats:
          return Guard(when_true=sats)
    return None

  def use_of(self, node: cst.CSTNode) -> Optional[SymbolKey]:
    if isinstance(node, (cst.Attribute, cst.Subscript)):
      return self._key(node.value)
    if isinstance(node, cst.Call):
      return self._key(node.func)
    if isinstance(node, cst.Arg) and node.star in ("*", "**"):
      return self._key(node.value)
    return None

  def satisfies(self, node: cst.CSTNode) -> Iterable[Satisfaction]:
    if isinstance(node, cst.Assign):
      if _is_none(node.value):
        return ()
      found = set()
      for target in node.targets:
        found |= self._target_sats(target.target)
      return found
    if isinstance(node, cst.AnnAssign) and node.value is not None and not _is_none(node.value):
      return self._target_sats(node.target)
    if isinstance(node, cst.AugAssign):
      return self._target_sats(node.target)
    if isinstance(node, cst.For):
      return self._target_sats(node.target)
    if isinstance(node, cst.With):
      found = set()
      for item in node.items:
        if item.asname is not None:
          found |= self._target_sats(item.asname.name)
      return found
    return ()

  def _target_sats(self, target: cst.CSTNode) -> set:
    if isinstance(target, cst.Name):
      return set(self._sat(target))
    if isinstance(target, (cst.Tuple, cst.List)):
      found = set()
      for element in target.elements:
        found |= self._target_sats(element.value)
      return found
    if isinstance(target, cst.StarredElement):
      return self._target_sats(target.value)
    return set()


@register_detector
class NoneCheckDetector(Detector):
  """
  Reports optional parameters dereferenced before a None check.
  """

  category = "none-check"
  severity = Severity.ERROR
  description = "Optional parameters must be checked for None before use."
  exemptions = (is_generated_unit,)

  def check(self, unit: SourceUnit) -> Iterable[Diagnostic]:
    diagnostics: List[Diagnostic] = []
    for site in unit.functions():
      diagnostics.extend(self._check_function(unit, site))
    return diagnostics

  def optional_params(self, unit: SourceUnit, site: FunctionSite) -> Dict[SymbolKey, Binding]:
    """
    Seeds one binding per optional, untrusted parameter.

    Args:
        unit: The analysed unit.
        site: The function.

    Returns:
        Dict[SymbolKey, Binding]: Seeds keyed by parameter symbol.
    """
    params = site.node.params
    seeds: Dict[SymbolKey, Binding] = {}
    for param in [*params.posonly_params, *params.params, *params.kwonly_params]:
      name = param.name.value
      if name in _RECEIVER_NAMES:
        continue
      descriptor = unit.resolve(param, trusted=self.config.trusted_types)
      if descriptor is None or descriptor.kind != TypeKind.OPTIONAL:
        continue
      key = unit.symbol(name, site.node.body)
      seeds[key] = Binding(symbol=key, label=name, node=param)
    return seeds

  def _check_function(self, unit: SourceUnit, site: FunctionSite) -> List[Diagnostic]:
    seeds = self.optional_params(unit, site)
    if not seeds:
      return []
    report = track(site.node.body, NoneCheckPolicy(unit, seeds), seeds.values())
    results = []
    for violation in report.violations:
      name = violation.binding.label
      results.append(
        self.report(
          unit,
          violation.node,
          f"parameter '{name}' may be None here; guard it first (e.g. 'if {name} is None: return ...')",
        )
      )
    return results
