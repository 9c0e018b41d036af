"""
Diagnostic Data Structures.

Defines the immutable records every detector emits. A `Diagnostic` always
carries a `Position` that resolves back to the unit it was produced for, so the
suppression layer and the output formatters never need the syntax tree.
"""

from typing import Any, Dict, Tuple

from pydantic import BaseModel, ConfigDict, Field

from flowlint.enums import Severity


class Position(BaseModel):
  """
  Location of a finding inside a source file.

  Attributes:
      file (str): Path of the unit as given to the program model.
      line (int): 1-based line number.
      column (int): 1-based column number.
  """

  model_config = ConfigDict(frozen=True)

  file: str
  line: int = Field(ge=1)
  column: int = Field(ge=1)

  def __str__(self) -> str:
    return f"{self.file}:{self.line}:{self.column}"


class Diagnostic(BaseModel):
  """
  A single positioned finding.

  Severity is implied by the category; detectors copy their declared severity
  onto each diagnostic so consumers do not need the registry.
  """

  model_config = ConfigDict(frozen=True)

  category: str = Field(..., description="Stable category tag, used for suppression and grouping.")
  severity: Severity = Field(Severity.WARNING, description="Severity implied by the category.")
  message: str = Field(..., description="Human readable message, may embed a suggested fix.")
  position: Position
  detector: str = Field(..., description="Name of the detector class that produced the finding.")

  def sort_key(self) -> Tuple[str, int, int]:
    """
    Key used for the global, stable ordering of diagnostics.

    Returns:
        Tuple[str, int, int]: (file, line, column).
    """
    return (self.position.file, self.position.line, self.position.column)

  def render(self) -> str:
    """
    Formats the diagnostic in the conventional `file:line:col: [category] message` shape.

    Returns:
        str: The single line rendering.
    """
    return f"{self.position}: [{self.category}] {self.message}"

  def to_json(self) -> Dict[str, Any]:
    """
    Flat dictionary used by the `--json` output mode.

    Returns:
        Dict[str, Any]: JSON serializable mapping.
    """
    return {
      "file": self.position.file,
      "line": self.position.line,
      "column": self.position.column,
      "category": self.category,
      "severity": self.severity.value,
      "message": self.message,
      "detector": self.detector,
    }
