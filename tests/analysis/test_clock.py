"""
Tests for the Clock Interface detector.
"""

from flowlint import lint
from flowlint.config import LintConfig


def scan_code(code: str, path: str = "service.py", **config):
  return lint(code, path=path, select=["clock-interface"], config=LintConfig(**config))


def test_sleep_in_business_logic():
  code = """
import time


def wait_for(job):
    while not job.done:
        time.sleep(1)
"""
  results = scan_code(code)
  assert len(results) == 1
  diagnostic = results[0]
  assert (diagnostic.position.line, diagnostic.position.column) == (7, 9)
  assert diagnostic.severity.value == "info"
  assert diagnostic.message.startswith("time.sleep() in business logic is usually a code smell")


def test_wall_clock_read_suggests_injection():
  code = """
from datetime import datetime


def stamp(record):
    record.created = datetime.now()
"""
  (diagnostic,) = scan_code(code)
  assert diagnostic.message == "direct datetime.now() call in business logic; inject a Clock for testability"


def test_module_clock_abstraction_is_suggested():
  code = """
import time
from typing import Protocol


class Clock(Protocol):
    def now(self) -> float: ...


def elapsed(start):
    return time.monotonic() - start
"""
  (diagnostic,) = scan_code(code)
  assert diagnostic.message.endswith("use the Clock defined in this module")


def test_timers():
  code = """
import threading


def schedule(fn):
    threading.Timer(5, fn).start()
"""
  (diagnostic,) = scan_code(code)
  assert diagnostic.message.startswith("direct threading.Timer() call; consider abstracting time operations")


def test_exempt_functions():
  code = """
import time


def main():
    time.sleep(1)


class Poller:
    def __init__(self):
        self.started = time.time()


def new_poller():
    return time.time()


def create_deadline():
    return time.time() + 5


def poll(clock):
    return time.time()


def poll_typed(source: SystemClock):
    return time.time()
"""
  assert scan_code(code) == []


def test_module_level_calls_are_ignored():
  code = """
import time

START = time.time()
"""
  assert scan_code(code) == []


def test_exempt_units():
  code = """
import time


def wait():
    time.sleep(1)
"""
  assert len(scan_code(code)) == 1
  assert scan_code(code, path="tests/test_wait.py") == []
  assert scan_code(code, path="pkg/wait_test.py") == []
  assert scan_code(code, path="pkg/__main__.py") == []


def test_aliased_imports_are_resolved():
  code = """
import time as t
from time import sleep


def wait():
    t.sleep(1)
    sleep(2)
"""
  assert len(scan_code(code)) == 2


def test_syntactic_mode_needs_dotted_spelling():
  code = """
import time
from time import sleep


def wait():
    time.monotonic()
    sleep(2)
"""
  results = scan_code(code, resolve=False)
  assert [d.position.line for d in results] == [7]


def test_nested_function_calls_reported_once():
  code = """
import time


def outer():
    def inner():
        return time.time()
    return inner
"""
  assert [d.position.line for d in scan_code(code)] == [7]
