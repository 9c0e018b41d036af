"""
Enumerations for flowlint.

This module defines the standard enumerations shared by the program model,
the flow engine and the detectors.
"""

from enum import Enum


class Severity(str, Enum):
  """
  How loudly a diagnostic category should be surfaced.

  Severity is implied by the category: every detector declares exactly one.
  """

  ERROR = "error"
  WARNING = "warning"
  INFO = "info"


class TypeKind(str, Enum):
  """
  Coarse classification of a resolved type descriptor.

  Only the distinctions the detectors care about are modelled.
  """

  OPTIONAL = "optional"  # May be None (Optional[X], X | None, default None)
  INTERFACE = "interface"  # Any / object / Protocol-like, nullability unknown
  VALUE = "value"  # Concrete non-optional type
  TRUSTED = "trusted"  # Listed in the caller-trusted exemption table


class FlowValue(str, Enum):
  """
  Binary per-symbol state tracked by the flow engine.
  """

  UNKNOWN = "unknown"
  SATISFIED = "satisfied"
