"""
Tests for the TODO Tracker detector.
"""

from flowlint import lint


def scan_code(code: str):
  return lint(code, path="mod.py", select=["todo-tracker"])


def test_marker_without_owner():
  code = """
# TODO: drop the legacy branch
x = 1
"""
  (diagnostic,) = scan_code(code)
  assert (diagnostic.position.line, diagnostic.position.column) == (2, 1)
  assert diagnostic.message == "TODO without owner; use TODO(username): description"


def test_marker_without_description():
  (diagnostic,) = scan_code("x = 1  # FIXME(bob)\n")
  assert diagnostic.position.column == 8
  assert diagnostic.message == "FIXME without description; use FIXME(owner): what needs to be done"


def test_malformed_marker():
  (diagnostic,) = scan_code("# TODO(bob):\nx = 1\n")
  assert diagnostic.message == "TODO appears malformed; use format: TODO(owner): description"


def test_well_formed_and_unrelated_comments():
  code = """
# TODO(alice): remove once v2 ships
# FIXME(bob): handle retries
# todo in lower case is prose
# TODOS are not markers
x = "TODO: inside a string"


def f():
    return 1  # TODO(carol): cache this
"""
  assert scan_code(code) == []


def test_markers_inside_functions_are_found():
  code = """
def f():
    # TODO fix this
    return 1
"""
  assert [d.position.line for d in scan_code(code)] == [3]
