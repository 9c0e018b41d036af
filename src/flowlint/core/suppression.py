"""
Inline Suppression Directives and the Suppression Layer.

Directive grammar (inside a Python comment)::

    # nolint                      -> all categories
    # nolint: none-check          -> a single category
    # nolint: cat-a, cat-b        -> several categories
    # nolint: flowlint  /  all    -> all categories

Scoping rules:

1.  An inline directive (code precedes the comment) covers its own line.
2.  An own-line directive covers its line and the line after it.
3.  A directive attached to a declaration covers the whole `def`/`class` span.
    Attached means inline on the header (or a decorator) line, or own-line directly
    above the header or above its first decorator.

The `SuppressionLayer` is the single choke point between detectors and output:
covered diagnostics are dropped silently, the rest are kept in arrival order and
stable-sorted by position on `collect()`.
"""

import re
from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, List, Sequence

from flowlint.core.diagnostics import Diagnostic

_DIRECTIVE_RE = re.compile(r"^#\s*nolint\b(?:\s*:\s*(?P<cats>[\w\-]+(?:\s*,\s*[\w\-]+)*))?")

# Category names that mean "everything".
_ALL_MARKERS = frozenset({"all", "flowlint"})


@dataclass(frozen=True)
class SourceComment:
  """
  A comment token as seen by the program model.

  Attributes:
      line (int): 1-based line of the comment.
      column (int): 1-based column where `#` appears.
      text (str): Raw comment text including the leading `#`.
      inline (bool): True when code precedes the comment on the same line.
  """

  line: int
  column: int
  text: str
  inline: bool


@dataclass(frozen=True)
class DeclarationSpan:
  """
  Line extent of a function or class definition.

  Attributes:
      first_line (int): Line of the first decorator, or of the header if undecorated.
      header_line (int): Line holding the `def`/`class` keyword.
      header_end (int): Line holding the header's closing colon.
      end_line (int): Last line of the body.
  """

  first_line: int
  header_line: int
  header_end: int
  end_line: int


@dataclass(frozen=True)
class SuppressionDirective:
  """
  A position-scoped marker silencing some (or all) categories.

  An empty `categories` set means every category is suppressed.
  """

  start_line: int
  end_line: int
  categories: FrozenSet[str] = field(default_factory=frozenset)
  origin_line: int = 0

  def covers(self, diagnostic: Diagnostic) -> bool:
    """
    Checks whether the directive silences a diagnostic.

    Args:
        diagnostic (Diagnostic): The candidate finding.

    Returns:
        bool: True if the position is in range and the category matches.
    """
    if not self.start_line <= diagnostic.position.line <= self.end_line:
      return False
    return not self.categories or diagnostic.category in self.categories


def parse_directive_text(text: str):
  """
  Parses the category list out of a single comment.

  Args:
      text (str): The raw comment, starting with `#`.

  Returns:
      Optional[FrozenSet[str]]: None if the comment is not a directive, an empty
      set for "all categories", otherwise the named categories.
  """
  match = _DIRECTIVE_RE.match(text.strip())
  if not match:
    return None
  raw = match.group("cats")
  if not raw:
    return frozenset()
  names = {part.strip() for part in raw.split(",") if part.strip()}
  if names & _ALL_MARKERS:
    return frozenset()
  return frozenset(names)


def build_directives(
  comments: Iterable[SourceComment],
  declarations: Sequence[DeclarationSpan],
) -> List[SuppressionDirective]:
  """
  Turns comments into scoped directives.

  Args:
      comments: Comments of the unit, in any order.
      declarations: Spans of every `def`/`class` in the unit.

  Returns:
      List[SuppressionDirective]: Directives ordered by origin line.
  """
  directives: List[SuppressionDirective] = []

  for comment in comments:
    categories = parse_directive_text(comment.text)
    if categories is None:
      continue

    span = _attached_declaration(comment, declarations)
    if span is not None:
      start, end = span.first_line, span.end_line
    elif comment.inline:
      start, end = comment.line, comment.line
    else:
      start, end = comment.line, comment.line + 1

    directives.append(
      SuppressionDirective(
        start_line=min(start, comment.line),
        end_line=end,
        categories=categories,
        origin_line=comment.line,
      )
    )

  directives.sort(key=lambda d: (d.origin_line, d.start_line))
  return directives


def _attached_declaration(comment: SourceComment, declarations: Sequence[DeclarationSpan]):
  """Finds the innermost declaration a directive comment is attached to."""
  best = None
  for span in declarations:
    if comment.inline:
      attached = span.first_line <= comment.line <= span.header_end
    else:
      attached = comment.line + 1 in (span.first_line, span.header_line)
    if attached and (best is None or span.first_line >= best.first_line):
      best = span
  return best


class SuppressionLayer:
  """
  Filters raw diagnostics against a unit's directives.

  One layer exists per unit; it is never shared between workers.
  """

  def __init__(self, directives: Iterable[SuppressionDirective]):
    """
    Args:
        directives: The unit's suppression directives.
    """
    self._directives = tuple(directives)
    self._kept: List[Diagnostic] = []

  def is_suppressed(self, diagnostic: Diagnostic) -> bool:
    """
    Args:
        diagnostic (Diagnostic): The candidate finding.

    Returns:
        bool: True if any directive covers it.
    """
    return any(d.covers(diagnostic) for d in self._directives)

  def submit(self, diagnostic: Diagnostic) -> bool:
    """
    Accepts one diagnostic, dropping it silently when suppressed.

    Args:
        diagnostic (Diagnostic): Finding from a detector.

    Returns:
        bool: True if the diagnostic was kept.
    """
    if self.is_suppressed(diagnostic):
      return False
    self._kept.append(diagnostic)
    return True

  def extend(self, diagnostics: Iterable[Diagnostic]) -> None:
    """Submits every diagnostic in arrival order."""
    for diagnostic in diagnostics:
      self.submit(diagnostic)

  def collect(self) -> List[Diagnostic]:
    """
    Returns the surviving diagnostics, stable-sorted by position.

    Diagnostics sharing a position keep the order detectors produced them in.

    Returns:
        List[Diagnostic]: The sorted list (a fresh copy on every call).
    """
    return sorted(self._kept, key=Diagnostic.sort_key)
