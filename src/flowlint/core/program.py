"""
Program Model.

Wraps a parsed LibCST module together with its (optional) metadata. Detectors
consume a `SourceUnit` read-only: they ask it for the tree, for positions, for
declaration-site symbol identity and for best-effort type descriptors.

Two modes exist:

*   **Resolved mode**: `ScopeProvider` and `QualifiedNameProvider` metadata are
    available. Symbols are keyed by declaration site and callee names are
    qualified through imports.
*   **Syntactic mode**: resolution was disabled or failed. Symbols fall back to
    textual identity and names are compared by their dotted spelling. This is a
    documented precision limit, not an error.
"""

import logging
from dataclasses import dataclass
from functools import cached_property
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Union

import libcst as cst
from libcst._metadata_dependent import LazyValue
from libcst.metadata import (
  Assignment,
  MetadataWrapper,
  PositionProvider,
  QualifiedNameProvider,
  ScopeProvider,
)

from flowlint.core.diagnostics import Position
from flowlint.core.suppression import (
  DeclarationSpan,
  SourceComment,
  SuppressionDirective,
  build_directives,
)
from flowlint.enums import TypeKind

logger = logging.getLogger(__name__)

# Spellings that carry no nullability information.
_INTERFACE_NAMES = frozenset({"Any", "typing.Any", "object", "builtins.object"})
_OPTIONAL_HEADS = frozenset({"Optional", "typing.Optional", "t.Optional"})
_UNION_HEADS = frozenset({"Union", "typing.Union", "t.Union"})
_ALIAS_DEPTH = 8


def _metadata_value(mapping: Mapping[cst.CSTNode, object], node: cst.CSTNode) -> object:
  """Looks up resolved metadata for a node, forcing lazily computed values."""
  value = mapping.get(node)
  if isinstance(value, LazyValue):
    value = value()
  return value


class MalformedUnitError(ValueError):
  """Raised when a source file cannot be parsed into a syntax tree."""


@dataclass(frozen=True)
class SymbolKey:
  """
  Identity of a tracked symbol.

  In resolved mode `line`/`column` locate the earliest declaring assignment, so two
  different variables that share a spelling never collide. In syntactic mode both
  are None and identity is the name alone.
  """

  name: str
  line: Optional[int] = None
  column: Optional[int] = None

  @property
  def is_textual(self) -> bool:
    return self.line is None


@dataclass(frozen=True)
class TypeDescriptor:
  """
  Best-effort description of a value's type.

  Attributes:
      name (str): Dotted type (or callee) name, qualified when resolution allowed it.
      kind (TypeKind): Coarse classification used by the detectors.
      inner (Optional[str]): For optional types, the wrapped type's spelling.
  """

  name: str
  kind: TypeKind
  inner: Optional[str] = None

  @property
  def is_optional(self) -> bool:
    return self.kind == TypeKind.OPTIONAL


@dataclass(frozen=True)
class FunctionSite:
  """A function definition and the class that directly owns it, if any."""

  node: cst.FunctionDef
  owner: Optional[cst.ClassDef] = None

  @property
  def name(self) -> str:
    return self.node.name.value

  @property
  def owner_name(self) -> Optional[str]:
    return self.owner.name.value if self.owner is not None else None


def dotted_name(node: Optional[cst.CSTNode]) -> str:
  """
  Flattens a Name/Attribute chain to a dot-separated string.

  Args:
      node: Typically a `cst.Name` (`x`) or `cst.Attribute` (`x.y.z`).

  Returns:
      str: The dotted spelling, or an empty string for any other shape.

  Example:
      >>> dotted_name(cst.parse_expression("os.path.join"))
      'os.path.join'
  """
  if isinstance(node, cst.Name):
    return node.value
  if isinstance(node, cst.Attribute):
    base = dotted_name(node.value)
    return f"{base}.{node.attr.value}" if base else ""
  return ""


def is_trusted_name(name: str, trusted: Iterable[str]) -> bool:
  """
  Checks a type name against the caller-trusted table.

  A bare spelling (`Request`) matches a qualified entry (`flask.Request`) so that
  syntactic mode honours the same table as resolved mode.

  Args:
      name (str): Type name to test.
      trusted: Entries of the trusted table.

  Returns:
      bool: True if the name is trusted.
  """
  if not name:
    return False
  for entry in trusted:
    if entry == name or entry.endswith("." + name) or name.endswith("." + entry):
      return True
  return False


def _is_none(node: Optional[cst.CSTNode]) -> bool:
  return isinstance(node, cst.Name) and node.value == "None"


def _code(node: cst.CSTNode) -> str:
  return cst.Module(body=[]).code_for_node(node).strip()


class _CommentCollector(cst.CSTVisitor):
  """Collects comment nodes, remembering whether code precedes them."""

  def __init__(self) -> None:
    self.found: List[cst.Comment] = []
    self.inline: Dict[int, bool] = {}

  def visit_EmptyLine(self, node: cst.EmptyLine) -> None:
    if node.comment is not None:
      self.found.append(node.comment)
      self.inline[id(node.comment)] = False

  def visit_TrailingWhitespace(self, node: cst.TrailingWhitespace) -> None:
    if node.comment is not None:
      self.found.append(node.comment)
      self.inline[id(node.comment)] = True


class _FunctionCollector(cst.CSTVisitor):
  """Collects every function and class definition with its direct owner."""

  def __init__(self) -> None:
    self.functions: List[FunctionSite] = []
    self.classes: List[cst.ClassDef] = []
    self._owners: List[Optional[cst.ClassDef]] = []

  def visit_ClassDef(self, node: cst.ClassDef) -> None:
    self.classes.append(node)
    self._owners.append(node)

  def leave_ClassDef(self, original_node: cst.ClassDef) -> None:
    self._owners.pop()

  def visit_FunctionDef(self, node: cst.FunctionDef) -> None:
    owner = self._owners[-1] if self._owners else None
    self.functions.append(FunctionSite(node=node, owner=owner))
    self._owners.append(None)

  def leave_FunctionDef(self, original_node: cst.FunctionDef) -> None:
    self._owners.pop()


class SourceUnit:
  """
  One parsed Python module plus optional resolution metadata.

  Instances are built with `SourceUnit.parse` and are never mutated by analysis.
  """

  def __init__(self, wrapper: MetadataWrapper, path: str, code: str, resolve: bool = True):
    self.path = path
    self.code = code
    self._wrapper = wrapper
    self._positions: Mapping[cst.CSTNode, object] = wrapper.resolve(PositionProvider)
    self._scopes: Optional[Mapping[cst.CSTNode, object]] = None
    self._qualified: Optional[Mapping[cst.CSTNode, object]] = None
    if resolve:
      self._resolve_metadata()

  @classmethod
  def parse(cls, code: str, path: str = "<string>", resolve: bool = True) -> "SourceUnit":
    """
    Parses source text into a unit.

    Args:
        code (str): Module source.
        path (str): Path used in diagnostic positions.
        resolve (bool): Whether to attempt scope and qualified-name resolution.

    Returns:
        SourceUnit: The parsed unit.

    Raises:
        MalformedUnitError: If the source cannot be parsed.
    """
    try:
      module = cst.parse_module(code)
    except cst.ParserSyntaxError as e:
      raise MalformedUnitError(f"{path}: {e.message} (line {e.raw_line}, column {e.raw_column})") from e
    return cls(MetadataWrapper(module), path=path, code=code, resolve=resolve)

  def _resolve_metadata(self) -> None:
    try:
      self._scopes = self._wrapper.resolve(ScopeProvider)
      self._qualified = self._wrapper.resolve(QualifiedNameProvider)
    except Exception as e:
      logger.debug("Metadata resolution failed for %s, using syntactic mode: %s", self.path, e)
      self._scopes = None
      self._qualified = None

  # --- Program model interface ---

  @property
  def resolved(self) -> bool:
    """True when scope and qualified-name metadata are available."""
    return self._scopes is not None

  def tree(self) -> cst.Module:
    """
    Returns the root syntax node.

    The wrapper owns a deep copy of the parsed module; metadata is keyed by the
    nodes of that copy, so this is the only tree detectors may walk.
    """
    return self._wrapper.module

  def position(self, node: cst.CSTNode) -> Position:
    """
    Maps a node to its source position.

    Args:
        node: A node of `tree()`.

    Returns:
        Position: 1-based line and column. Nodes without metadata map to line 1.
    """
    code_range = self._positions.get(node)
    if code_range is None:
      return Position(file=self.path, line=1, column=1)
    return Position(file=self.path, line=code_range.start.line, column=code_range.start.column + 1)

  def position_at(self, line: int, column: int = 1) -> Position:
    """Position in this unit for a raw line/column pair (1-based)."""
    return Position(file=self.path, line=max(line, 1), column=max(column, 1))

  def end_line(self, node: cst.CSTNode) -> int:
    """Last line occupied by a node (the exclusive end is folded back)."""
    code_range = self._positions.get(node)
    if code_range is None:
      return 1
    end = code_range.end
    if end.column == 0 and end.line > code_range.start.line:
      return end.line - 1
    return end.line

  def suppressions(self) -> List[SuppressionDirective]:
    """
    Returns the unit's suppression directives ordered by origin line.
    """
    return list(self._directives)

  def resolve(self, node: cst.CSTNode, trusted: Sequence[str] = ()) -> Optional[TypeDescriptor]:
    """
    Best-effort type descriptor for a parameter, a call or an annotation.

    Args:
        node: A `cst.Param`, `cst.Call` or annotation expression.
        trusted: Caller-trusted type names; matching descriptors get kind TRUSTED.

    Returns:
        Optional[TypeDescriptor]: None when nothing useful is known.
    """
    if isinstance(node, cst.Param):
      descriptor = self._describe_param(node)
    elif isinstance(node, cst.Call):
      callee = self.callee_name(node)
      descriptor = TypeDescriptor(name=callee, kind=TypeKind.VALUE) if callee else None
    elif isinstance(node, cst.Annotation):
      descriptor = self.describe_annotation(node.annotation)
    elif isinstance(node, cst.BaseExpression):
      descriptor = self.describe_annotation(node)
    else:
      descriptor = None

    if descriptor is None:
      return None
    if trusted and (is_trusted_name(descriptor.name, trusted) or is_trusted_name(descriptor.inner or "", trusted)):
      return TypeDescriptor(name=descriptor.name, kind=TypeKind.TRUSTED, inner=descriptor.inner)
    return descriptor

  # --- Symbols and names ---

  def symbol(self, name: str, anchor: cst.CSTNode) -> SymbolKey:
    """
    Declaration-site identity of `name` as seen from `anchor`.

    Args:
        name (str): The spelled name.
        anchor: Any node located in the scope the name is looked up from.

    Returns:
        SymbolKey: Keyed by the earliest declaring assignment, or textual in syntactic mode.
    """
    if self._scopes is None:
      return SymbolKey(name)
    scope = _metadata_value(self._scopes, anchor)
    if scope is None:
      return SymbolKey(name)

    sites = []
    for assignment in scope[name]:
      if isinstance(assignment, Assignment):
        code_range = self._positions.get(assignment.node)
        if code_range is not None:
          sites.append((code_range.start.line, code_range.start.column + 1))
    if not sites:
      return SymbolKey(name)
    line, column = min(sites)
    return SymbolKey(name, line, column)

  def qualified_names(self, node: cst.CSTNode) -> List[str]:
    """
    Qualified names of a node, sorted, with the `builtins.` prefix stripped.

    Returns an empty list in syntactic mode or when resolution has no answer.
    """
    if self._qualified is None:
      return []
    names = _metadata_value(self._qualified, node) or set()
    result = set()
    for qname in names:
      value = qname.name
      if value.startswith("builtins."):
        value = value[len("builtins.") :]
      result.add(value)
    return sorted(result)

  def qualified_name(self, node: cst.CSTNode) -> Optional[str]:
    """First qualified name of a node, if resolution produced any."""
    names = self.qualified_names(node)
    return names[0] if names else None

  def callee_name(self, call: cst.Call) -> str:
    """
    Name of the callable invoked by a call expression.

    Qualified through imports in resolved mode, the dotted spelling otherwise.
    """
    return self.qualified_name(call.func) or dotted_name(call.func)

  # --- Annotations ---

  def describe_annotation(self, expr: cst.BaseExpression, _depth: int = 0) -> Optional[TypeDescriptor]:
    """
    Classifies an annotation expression.

    Args:
        expr: The annotation expression (not the `cst.Annotation` wrapper).

    Returns:
        Optional[TypeDescriptor]: None if the expression is not a recognizable type.
    """
    if _depth > _ALIAS_DEPTH:
      return None

    if isinstance(expr, cst.SimpleString):
      try:
        parsed = cst.parse_expression(expr.evaluated_value)
      except (cst.ParserSyntaxError, ValueError):
        return None
      return self.describe_annotation(parsed, _depth + 1)

    if isinstance(expr, cst.Subscript):
      head = self._type_name(expr.value)
      members = [el.slice.value for el in expr.slice if isinstance(el.slice, cst.Index)]
      if head in _OPTIONAL_HEADS and members:
        inner = self._type_name(members[0]) or _code(members[0])
        return TypeDescriptor(name=inner, kind=TypeKind.OPTIONAL, inner=inner)
      if head in _UNION_HEADS:
        return self._describe_union(members)
      return TypeDescriptor(name=head or _code(expr), kind=TypeKind.VALUE)

    if isinstance(expr, cst.BinaryOperation) and isinstance(expr.operator, cst.BitOr):
      return self._describe_union(_flatten_bitor(expr))

    if isinstance(expr, (cst.Name, cst.Attribute)):
      if _is_none(expr):
        return None
      alias = self._aliases.get(dotted_name(expr))
      if alias is not None:
        return self.describe_annotation(alias, _depth + 1)
      name = self._type_name(expr)
      if not name:
        return None
      if name in _INTERFACE_NAMES:
        return TypeDescriptor(name=name, kind=TypeKind.INTERFACE)
      return TypeDescriptor(name=name, kind=TypeKind.VALUE)

    return None

  def _describe_union(self, members: List[cst.BaseExpression]) -> Optional[TypeDescriptor]:
    others = [m for m in members if not _is_none(m)]
    if not others:
      return None
    name = self._type_name(others[0]) or _code(others[0])
    if len(others) < len(members):
      return TypeDescriptor(name=name, kind=TypeKind.OPTIONAL, inner=name)
    if len(others) > 1:
      return TypeDescriptor(name=name, kind=TypeKind.INTERFACE)
    return TypeDescriptor(name=name, kind=TypeKind.VALUE)

  def _describe_param(self, param: cst.Param) -> Optional[TypeDescriptor]:
    descriptor = None
    if param.annotation is not None:
      descriptor = self.describe_annotation(param.annotation.annotation)
    defaults_to_none = param.default is not None and _is_none(param.default)
    if defaults_to_none and (descriptor is None or descriptor.kind != TypeKind.OPTIONAL):
      name = descriptor.name if descriptor is not None else "object"
      return TypeDescriptor(name=name, kind=TypeKind.OPTIONAL, inner=name)
    return descriptor

  def _type_name(self, node: cst.BaseExpression) -> str:
    return self.qualified_name(node) or dotted_name(node)

  @cached_property
  def _aliases(self) -> Dict[str, cst.BaseExpression]:
    """Module level type aliases, only followed in resolved mode."""
    if not self.resolved:
      return {}
    aliases: Dict[str, cst.BaseExpression] = {}
    for stmt in self.tree().body:
      if not isinstance(stmt, cst.SimpleStatementLine):
        continue
      for small in stmt.body:
        if isinstance(small, cst.Assign) and len(small.targets) == 1:
          target, value = small.targets[0].target, small.value
        elif isinstance(small, cst.AnnAssign) and small.value is not None:
          if not dotted_name(small.annotation.annotation).endswith("TypeAlias"):
            continue
          target, value = small.target, small.value
        else:
          continue
        if isinstance(target, cst.Name) and _looks_like_type(value):
          aliases[target.value] = value
    return aliases

  # --- Structure ---

  @cached_property
  def _structure(self) -> _FunctionCollector:
    collector = _FunctionCollector()
    self.tree().visit(collector)
    return collector

  def functions(self) -> List[FunctionSite]:
    """Every function definition of the unit (methods and nested ones included), in source order."""
    return list(self._structure.functions)

  def classes(self) -> List[cst.ClassDef]:
    """Every class definition of the unit, in source order."""
    return list(self._structure.classes)

  def comments(self) -> List[SourceComment]:
    """Every comment of the unit, in source order."""
    return list(self._comments)

  @cached_property
  def _comments(self) -> List[SourceComment]:
    collector = _CommentCollector()
    self.tree().visit(collector)
    comments = []
    for node in collector.found:
      pos = self.position(node)
      comments.append(
        SourceComment(line=pos.line, column=pos.column, text=node.value, inline=collector.inline[id(node)])
      )
    comments.sort(key=lambda c: (c.line, c.column))
    return comments

  def declaration_spans(self) -> List[DeclarationSpan]:
    """Line spans of every `def` and `class` in the unit."""
    spans = []
    nodes: List[Union[cst.FunctionDef, cst.ClassDef]] = [site.node for site in self.functions()]
    nodes.extend(self.classes())
    for node in nodes:
      header = self.position(node).line
      first = self.position(node.decorators[0]).line if node.decorators else header
      body = node.body
      colon = body.header if isinstance(body, cst.IndentedBlock) else body
      spans.append(
        DeclarationSpan(
          first_line=first,
          header_line=header,
          header_end=self.position(colon).line,
          end_line=self.end_line(node),
        )
      )
    spans.sort(key=lambda s: (s.first_line, s.header_line))
    return spans

  @cached_property
  def _directives(self) -> List[SuppressionDirective]:
    return build_directives(self.comments(), self.declaration_spans())


def _flatten_bitor(expr: cst.BaseExpression) -> List[cst.BaseExpression]:
  if isinstance(expr, cst.BinaryOperation) and isinstance(expr.operator, cst.BitOr):
    return _flatten_bitor(expr.left) + _flatten_bitor(expr.right)
  return [expr]


def _looks_like_type(value: cst.BaseExpression) -> bool:
  if isinstance(value, cst.Subscript):
    return True
  if isinstance(value, cst.BinaryOperation) and isinstance(value.operator, cst.BitOr):
    return True
  return False
