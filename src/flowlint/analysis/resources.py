"""
Resource Lifecycle Detector.

Tracks values produced by known resource constructors (files, sockets, database
connections, ...) and reports those that are not released on every path out of
the function that created them.

A binding is created when a local name is assigned the result of a constructor
call listed in the resource table. It is discharged by:

*   a direct release call on the exact accessor path (`f.close()`, `resp.raw.close()`),
*   the same call inside a `finally` block,
*   entering it as a context manager (`with f:`, `with closing(f):`,
    `stack.enter_context(f)`),
*   a cleanup registration (`stack.callback(f.close)`, `atexit.register(f.close)`,
    `self.addCleanup(f.close)`, `weakref.finalize(obj, f.close)`), including lambdas,
*   ownership transfer: returning or yielding it, or storing it on an attribute,
    in a subscript or in a container.

`with open(path) as f:` never creates a binding in the first place.
"""

from typing import Iterable, Iterator, List, Optional, Tuple

import libcst as cst

from flowlint.config import ResourceSpec
from flowlint.core.detector import Detector, is_generated_unit, register_detector
from flowlint.core.diagnostics import Diagnostic
from flowlint.core.flow import Binding, FlowPolicy, Satisfaction, track
from flowlint.core.program import SourceUnit, SymbolKey, dotted_name, is_trusted_name
from flowlint.enums import Severity

CLEANUP_REGISTRARS = frozenset({"callback", "push", "register", "addCleanup", "addAsyncCleanup", "finalize"})
CONTEXT_ENTRIES = frozenset({"enter_context", "enter_async_context"})
CONTEXT_WRAPPERS = frozenset({"closing", "contextlib.closing", "aclosing", "contextlib.aclosing"})
CONTAINER_INSERTS = frozenset({"append", "appendleft", "add", "extend", "insert", "put", "put_nowait", "setdefault"})


def _release_target(call: cst.Call) -> Optional[Tuple[cst.Name, Optional[str], str]]:
  """
  Splits `sym.method()` or `sym.accessor.method()` into its parts.

  Returns:
      Optional[Tuple[cst.Name, Optional[str], str]]: (symbol node, accessor, method).
  """
  return _method_path(call.func)


def _method_path(func: cst.BaseExpression) -> Optional[Tuple[cst.Name, Optional[str], str]]:
  if not isinstance(func, cst.Attribute):
    return None
  method = func.attr.value
  owner = func.value
  if isinstance(owner, cst.Name):
    return owner, None, method
  if isinstance(owner, cst.Attribute) and isinstance(owner.value, cst.Name):
    return owner.value, owner.attr.value, method
  return None


def _escaping_names(expr: Optional[cst.CSTNode]) -> Iterator[cst.Name]:
  """Names whose value (not a member of it) flows out of an expression."""
  if expr is None:
    return
  if isinstance(expr, cst.Name):
    yield expr
  elif isinstance(expr, (cst.Attribute, cst.Subscript, cst.Lambda)):
    return
  elif isinstance(expr, cst.Call):
    for arg in expr.args:
      yield from _escaping_names(arg.value)
  else:
    for child in expr.children:
      yield from _escaping_names(child)


class ResourcePolicy(FlowPolicy):
  """
  Flow policy binding resources and recognizing their releases.

  Args:
      unit: The analysed unit.
      resources: The resource table.
      trusted: Caller-trusted types, never tracked.
  """

  tracks_exits = True

  def __init__(self, unit: SourceUnit, resources: Iterable[ResourceSpec], trusted: Iterable[str]):
    self._unit = unit
    self._resources = tuple(r for r in resources if not is_trusted_name(r.type, trusted))

  # --- Bindings ---

  def match_constructor(self, call: cst.Call) -> Optional[ResourceSpec]:
    """
    Finds the resource spec whose constructor the call invokes.

    Resolved mode compares qualified names exactly; otherwise the dotted spelling
    is compared exactly first, then as a suffix of a qualified constructor.
    """
    qualified = self._unit.qualified_names(call.func)
    if qualified:
      for spec in self._resources:
        if any(name in spec.constructors for name in qualified):
          return spec
      return None

    text = dotted_name(call.func)
    if not text:
      return None
    for spec in self._resources:
      if text in spec.constructors:
        return spec
    for spec in self._resources:
      if any(ctor.endswith("." + text) for ctor in spec.constructors):
        return spec
    return None

  def binds(self, node: cst.BaseSmallStatement) -> Iterable[Binding]:
    if isinstance(node, cst.Assign) and len(node.targets) == 1:
      target, value = node.targets[0].target, node.value
    elif isinstance(node, cst.AnnAssign) and node.value is not None:
      target, value = node.target, node.value
    else:
      return ()
    if not isinstance(target, cst.Name) or not isinstance(value, cst.Call):
      return ()
    spec = self.match_constructor(value)
    if spec is None:
      return ()
    callee = dotted_name(value.func) or spec.constructors[0]
    key = self._unit.symbol(target.value, target)
    return (
      Binding(
        symbol=key,
        accessor=spec.accessor,
        release=spec.release,
        label=f"{spec.label} from {callee}()",
        node=node,
      ),
    )

  # --- Releases ---

  def _key(self, name: cst.Name) -> SymbolKey:
    return self._unit.symbol(name.value, name)

  def satisfies(self, node: cst.CSTNode) -> Iterable[Satisfaction]:
    if isinstance(node, cst.With):
      return list(self._with_releases(node))
    if isinstance(node, cst.For):
      return ()
    found = list(self._direct_releases(node))
    found.extend(self._transfers(node))
    return found

  def defers(self, node: cst.BaseSmallStatement) -> Iterable[Satisfaction]:
    found = []
    for call in _calls(node):
      method = _method_path(call.func)
      name = method[2] if method else dotted_name(call.func).rsplit(".", 1)[-1]
      if name not in CLEANUP_REGISTRARS:
        continue
      for arg in call.args:
        found.extend(self._callable_releases(arg.value))
    return found

  def _callable_releases(self, value: cst.BaseExpression) -> List[Satisfaction]:
    if isinstance(value, cst.Name):
      # The object itself is handed over (ExitStack.push, a cleanup helper's argument).
      return [Satisfaction(self._key(value))]
    if isinstance(value, cst.Attribute):
      path = _method_path(value)
      if path is not None:
        sym, accessor, method = path
        return [Satisfaction(self._key(sym), accessor, method)]
      return []
    if isinstance(value, cst.Lambda):
      found = []
      for call in _calls(value.body):
        path = _release_target(call)
        if path is not None:
          sym, accessor, method = path
          found.append(Satisfaction(self._key(sym), accessor, method))
      return found
    return []

  def _direct_releases(self, node: cst.CSTNode) -> Iterator[Satisfaction]:
    for call in _calls(node):
      path = _release_target(call)
      if path is None:
        continue
      sym, accessor, method = path
      if method in CONTEXT_ENTRIES:
        for arg in call.args:
          for name in _escaping_names(arg.value):
            yield Satisfaction(self._key(name))
      else:
        yield Satisfaction(self._key(sym), accessor, method)

  def _with_releases(self, node: cst.With) -> Iterator[Satisfaction]:
    for item in node.items:
      expr = item.item
      if isinstance(expr, cst.Call) and dotted_name(expr.func) in CONTEXT_WRAPPERS and expr.args:
        expr = expr.args[0].value
      if isinstance(expr, cst.Name):
        yield Satisfaction(self._key(expr))

  def _transfers(self, node: cst.CSTNode) -> Iterator[Satisfaction]:
    if isinstance(node, cst.Return):
      for name in _escaping_names(node.value):
        yield Satisfaction(self._key(name))
      return

    for child in _yields(node):
      for name in _escaping_names(child.value if not isinstance(child.value, cst.From) else child.value.item):
        yield Satisfaction(self._key(name))

    if isinstance(node, (cst.Assign, cst.AnnAssign)):
      targets = [t.target for t in node.targets] if isinstance(node, cst.Assign) else [node.target]
      if node.value is not None and any(isinstance(t, (cst.Attribute, cst.Subscript)) for t in targets):
        for name in _escaping_names(node.value):
          yield Satisfaction(self._key(name))

    for call in _calls(node):
      path = _method_path(call.func)
      if path is not None and path[2] in CONTAINER_INSERTS:
        for arg in call.args:
          for name in _escaping_names(arg.value):
            yield Satisfaction(self._key(name))


def _calls(node: cst.CSTNode) -> List[cst.Call]:
  """Every call inside a node, in source order, without entering lambdas."""
  found: List[cst.Call] = []

  def walk(current: cst.CSTNode) -> None:
    if isinstance(current, cst.Lambda) and current is not node:
      return
    if isinstance(current, cst.Call):
      found.append(current)
    for child in current.children:
      walk(child)

  walk(node)
  return found


def _yields(node: cst.CSTNode) -> List[cst.Yield]:
  found: List[cst.Yield] = []

  def walk(current: cst.CSTNode) -> None:
    if isinstance(current, cst.Lambda):
      return
    if isinstance(current, cst.Yield) and current.value is not None:
      found.append(current)
    for child in current.children:
      walk(child)

  walk(node)
  return found


@register_detector
class ResourceLifecycleDetector(Detector):
  """
  Reports resources that are not released on every path.
  """

  category = "resource-lifecycle"
  severity = Severity.ERROR
  description = "Resources created in a function must be released before it returns."
  exemptions = (is_generated_unit,)

  def check(self, unit: SourceUnit) -> Iterable[Diagnostic]:
    diagnostics: List[Diagnostic] = []
    for site in unit.functions():
      policy = ResourcePolicy(unit, self.config.resources, self.config.trusted_types)
      report = track(site.node.body, policy)
      for leak in report.leaks:
        binding = leak.binding
        diagnostics.append(
          self.report(
            unit,
            binding.node,
            f"{binding.label} assigned to '{binding.symbol.name}' is not released on every path; "
            f"call {binding.target}.{binding.release}() (or use a 'with' block)",
          )
        )
    return diagnostics
