"""
Pytest Configuration and Fixtures.

Includes:
- Syspath patching for local imports.
- In-memory console capture for CLI output checks.
"""

import io
import sys
from pathlib import Path

import pytest
from rich.console import Console

# Add src to path so we can import 'flowlint' without installing it
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from flowlint.utils.console import THEME, reset_console, set_console  # noqa: E402


class CapturedConsoles:
  """
  Report and log consoles recording into memory.

  Attributes:
      report (Console): Receives diagnostics and tables.
      log (Console): Receives log records.
  """

  def __init__(self) -> None:
    self.report = Console(file=io.StringIO(), record=True, width=200, theme=THEME)
    self.log = Console(file=io.StringIO(), record=True, width=200, theme=THEME)

  def report_text(self) -> str:
    return self.report.export_text(clear=False)

  def log_text(self) -> str:
    return self.log.export_text(clear=False)


@pytest.fixture
def consoles():
  """
  Swaps the global consoles for recording ones and restores them afterwards.
  """
  captured = CapturedConsoles()
  set_console(captured.report, log_to=captured.log)
  yield captured
  reset_console()
