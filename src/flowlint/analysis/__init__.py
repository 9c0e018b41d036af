"""
Detector Package.

Importing this package registers the built-in detectors.

Modules:
    - ``nilcheck``: Optional parameters dereferenced before a None check.
    - ``resources``: Resources not released on every path.
    - ``status``: Reconcilers returning after a mutation without a status update.
    - ``clock``: Direct wall-clock, sleep and timer calls in business logic.
    - ``todo``: TODO/FIXME comments without owner or description.
"""

from flowlint.analysis.clock import ClockInterfaceDetector
from flowlint.analysis.nilcheck import NoneCheckDetector
from flowlint.analysis.resources import ResourceLifecycleDetector
from flowlint.analysis.status import StatusUpdateDetector
from flowlint.analysis.todo import TodoTrackerDetector

__all__ = [
  "ClockInterfaceDetector",
  "NoneCheckDetector",
  "ResourceLifecycleDetector",
  "StatusUpdateDetector",
  "TodoTrackerDetector",
]
