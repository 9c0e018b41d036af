"""
TODO Tracker Detector.

Orphaned TODOs rarely get done. Every `TODO` or `FIXME` comment must name an
owner and say what needs doing::

    # TODO(alice): drop the v1 fallback once clients migrate
"""

import re
from typing import Iterable, List

from flowlint.core.detector import Detector, is_generated_unit, register_detector
from flowlint.core.diagnostics import Diagnostic
from flowlint.core.program import SourceUnit
from flowlint.core.suppression import SourceComment
from flowlint.enums import Severity

WELL_FORMED = re.compile(r"\b(TODO|FIXME)\s*\([^)]+\)\s*:\s*\S+")
ANY_MARKER = re.compile(r"\b(TODO|FIXME)\b")


@register_detector
class TodoTrackerDetector(Detector):
  """Reports TODO/FIXME comments without an owner or a description."""

  category = "todo-tracker"
  severity = Severity.INFO
  description = "TODO/FIXME comments must read 'TODO(owner): description'."
  exemptions = (is_generated_unit,)

  def check(self, unit: SourceUnit) -> Iterable[Diagnostic]:
    diagnostics: List[Diagnostic] = []
    for comment in unit.comments():
      message = self.problem(comment)
      if message:
        diagnostics.append(
          Diagnostic(
            category=self.category,
            severity=self.severity,
            message=message,
            position=unit.position_at(comment.line, comment.column),
            detector=self.name,
          )
        )
    return diagnostics

  def problem(self, comment: SourceComment) -> str:
    """
    Checks a single comment.

    Args:
        comment: The comment.

    Returns:
        str: The diagnostic message, or an empty string if the comment is fine.
    """
    text = comment.text
    match = ANY_MARKER.search(text)
    if not match or WELL_FORMED.search(text):
      return ""
    marker = match.group(1)
    rest = text[match.end() :]
    if not rest.lstrip().startswith("("):
      return f"{marker} without owner; use {marker}(username): description"
    if ":" not in rest:
      return f"{marker} without description; use {marker}(owner): what needs to be done"
    return f"{marker} appears malformed; use format: {marker}(owner): description"
