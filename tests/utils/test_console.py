"""
Tests for Centralized Logging Utility and Injection Mechanics.

Verifies:
1. Proxy delegation to the active Rich console.
2. Injection capabilities (`set_console`) for reports and logs separately.
3. Verbosity switches on the root logger.
"""

import io
import logging

import pytest
from rich.console import Console

from flowlint.utils.console import (
  console,
  get_console,
  log_error,
  log_info,
  log_success,
  reset_console,
  set_console,
  set_verbosity,
)


@pytest.fixture(autouse=True)
def cleanup_console():
  """Ensures consoles and log level are reset after every test."""
  reset_console()
  yield
  reset_console()
  set_verbosity()


def recording_console() -> Console:
  return Console(file=io.StringIO(), record=True, width=120)


def test_console_proxy_delegates():
  assert isinstance(get_console(), Console)
  assert isinstance(console.width, int)
  assert hasattr(console, "export_text")


def test_reports_and_logs_can_go_to_different_consoles():
  reports = recording_console()
  logs = recording_console()
  set_console(reports, log_to=logs)

  console.print("a finding")
  log_info("progress")
  log_success("all good")

  report_text = reports.export_text()
  log_text = logs.export_text()
  assert "a finding" in report_text
  assert "progress" not in report_text
  assert "progress" in log_text
  assert "all good" in log_text


def test_reset_creates_fresh_backend():
  temp = recording_console()
  set_console(temp)
  assert get_console() is temp

  reset_console()
  assert get_console() is not temp


def test_quiet_hides_info_but_not_errors():
  logs = recording_console()
  set_console(recording_console(), log_to=logs)
  set_verbosity(quiet=True)

  log_info("hidden")
  log_error("shown")

  text = logs.export_text()
  assert "hidden" not in text
  assert "shown" in text


def test_verbose_enables_debug():
  set_verbosity(verbose=True)
  assert logging.getLogger().level == logging.DEBUG
