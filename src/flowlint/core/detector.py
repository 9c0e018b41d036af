"""
Detector Contract and Registry.

Every rule in flowlint is a subclass of `Detector`. A detector declares a stable
category (used for suppression matching, selection and grouping), the severity
implied by that category, and a tuple of exemption predicates evaluated once per
unit before any traversal starts.

Detectors are registered explicitly with the `register_detector` decorator. The
set is closed: importing `flowlint.analysis` registers the built-in detectors and
nothing is discovered by reflection.
"""

import logging
import re
from abc import ABC, abstractmethod
from pathlib import PurePath
from typing import Callable, ClassVar, Dict, Iterable, List, Optional, Sequence, Tuple, Type

import libcst as cst

from flowlint.config import LintConfig
from flowlint.core.diagnostics import Diagnostic
from flowlint.core.program import SourceUnit
from flowlint.enums import Severity

logger = logging.getLogger(__name__)

UnitPredicate = Callable[[SourceUnit], bool]

_GENERATED_MARKER = re.compile(r"^#.*(code generated .* do not edit|@generated)", re.IGNORECASE)
_GENERATED_SUFFIXES = ("_pb2.py", "_pb2_grpc.py", "_pb2.pyi")
_HEADER_LINES = 20


def is_generated_unit(unit: SourceUnit) -> bool:
  """
  Detects machine generated modules.

  Matches protobuf outputs by file name and the conventional
  `# Code generated ... DO NOT EDIT.` / `# @generated` markers in the module header.
  """
  if unit.path.endswith(_GENERATED_SUFFIXES):
    return True
  for line in unit.code.splitlines()[:_HEADER_LINES]:
    if _GENERATED_MARKER.match(line.strip()):
      return True
  return False


def is_entry_point_unit(unit: SourceUnit) -> bool:
  """True for `__main__.py` modules."""
  return PurePath(unit.path).name == "__main__.py"


def is_test_unit(unit: SourceUnit) -> bool:
  """True for pytest style test modules, `conftest.py`, and anything under a `tests` directory."""
  path = PurePath(unit.path)
  name = path.name
  if name == "conftest.py" or name.startswith("test_") or name.endswith("_test.py"):
    return True
  return any(part in ("tests", "test") for part in path.parts[:-1])


class Detector(ABC):
  """
  Abstract base for all rules.

  Subclasses implement `check`; callers use `run`, which applies exemptions and
  isolates faults so a misbehaving detector never aborts its siblings.

  Attributes:
      category (str): Stable category tag.
      severity (Severity): Severity implied by the category.
      description (str): One line summary shown by `flowlint detectors`.
      exemptions (Tuple[UnitPredicate, ...]): Unit predicates that skip the detector.
  """

  category: ClassVar[str] = ""
  severity: ClassVar[Severity] = Severity.WARNING
  description: ClassVar[str] = ""
  exemptions: ClassVar[Tuple[UnitPredicate, ...]] = (is_generated_unit,)

  def __init__(self, config: Optional[LintConfig] = None):
    """
    Args:
        config: Immutable configuration (trusted types, resource table).
    """
    self.config = config if config is not None else LintConfig()

  @property
  def name(self) -> str:
    return type(self).__name__

  def is_exempt(self, unit: SourceUnit) -> bool:
    """
    Evaluates the exemption predicates.

    Args:
        unit (SourceUnit): The unit about to be analysed.

    Returns:
        bool: True if any predicate matches.
    """
    return any(predicate(unit) for predicate in self.exemptions)

  def run(self, unit: SourceUnit) -> List[Diagnostic]:
    """
    Runs the detector over one unit.

    Exempt units produce no diagnostics and are not traversed. Any exception
    raised by an exemption predicate or by `check` is logged at debug level
    and treated as "no findings".

    Args:
        unit (SourceUnit): The unit to analyse.

    Returns:
        List[Diagnostic]: Findings in production order.
    """
    try:
      if self.is_exempt(unit):
        return []
      return list(self.check(unit))
    except Exception as e:
      logger.debug("Detector '%s' failed on %s: %s", self.category, unit.path, e, exc_info=True)
      return []

  @abstractmethod
  def check(self, unit: SourceUnit) -> Iterable[Diagnostic]:
    """
    Produces the raw findings for a unit.

    Args:
        unit (SourceUnit): The unit to analyse.

    Returns:
        Iterable[Diagnostic]: Findings, before suppression.
    """

  def report(self, unit: SourceUnit, node: cst.CSTNode, message: str) -> Diagnostic:
    """
    Builds a diagnostic tagged with this detector's category.

    Args:
        unit: The analysed unit.
        node: Node the finding is positioned at.
        message: Human readable message.

    Returns:
        Diagnostic: The finding.
    """
    return Diagnostic(
      category=self.category,
      severity=self.severity,
      message=message,
      position=unit.position(node),
      detector=self.name,
    )


_DETECTOR_REGISTRY: Dict[str, Type[Detector]] = {}

# Static groupings, selectable by name wherever a category is accepted.
DETECTOR_GROUPS: Dict[str, Tuple[str, ...]] = {
  "flow": ("none-check", "resource-lifecycle", "status-update"),
  "safety": ("none-check", "resource-lifecycle"),
  "kubernetes": ("status-update",),
  "testability": ("clock-interface",),
  "hygiene": ("todo-tracker",),
}


def register_detector(cls: Type[Detector]) -> Type[Detector]:
  """
  Class decorator adding a detector to the registry under its category.

  Raises:
      ValueError: If the category is empty or already taken by another class.
  """
  if not cls.category:
    raise ValueError(f"Detector {cls.__name__} does not declare a category")
  existing = _DETECTOR_REGISTRY.get(cls.category)
  if existing is not None and existing is not cls:
    raise ValueError(f"Category '{cls.category}' already registered by {existing.__name__}")
  _DETECTOR_REGISTRY[cls.category] = cls
  return cls


def available_detectors() -> List[str]:
  """
  Returns:
      List[str]: Registered categories, sorted.
  """
  return sorted(_DETECTOR_REGISTRY.keys())


def get_detector_class(category: str) -> Optional[Type[Detector]]:
  return _DETECTOR_REGISTRY.get(category)


def expand_names(names: Iterable[str]) -> List[str]:
  """
  Expands group names to categories, preserving first-seen order.

  Args:
      names: Categories and/or group names.

  Returns:
      List[str]: Unique categories.

  Raises:
      ValueError: If a name is neither a registered category nor a group.
  """
  expanded: Dict[str, None] = {}
  for name in names:
    if name in DETECTOR_GROUPS:
      expanded.update(dict.fromkeys(DETECTOR_GROUPS[name]))
    elif name in _DETECTOR_REGISTRY:
      expanded[name] = None
    else:
      known = available_detectors() + sorted(DETECTOR_GROUPS)
      raise ValueError(f"Unknown detector or group: '{name}'. Known: {known}")
  return list(expanded)


def select_detectors(
  config: Optional[LintConfig] = None,
  select: Optional[Sequence[str]] = None,
  disable: Optional[Sequence[str]] = None,
) -> List[Detector]:
  """
  Instantiates the detectors enabled for a run.

  Explicit `select` wins over the configuration's `detectors` table; `disable` is
  applied last.

  Args:
      config: Configuration injected into every detector.
      select: Categories or groups to run exclusively.
      disable: Categories or groups to skip.

  Returns:
      List[Detector]: Fresh detector instances ordered by category.
  """
  config = config if config is not None else LintConfig()
  if select:
    chosen = set(expand_names(select))
  else:
    chosen = {name for name in available_detectors() if config.is_enabled(name)}
  if disable:
    chosen -= set(expand_names(disable))
  return [_DETECTOR_REGISTRY[name](config) for name in sorted(chosen)]
