"""
Tests for the Resource Lifecycle detector.
"""

from flowlint import lint
from flowlint.config import DEFAULT_RESOURCES, LintConfig, ResourceSpec


def scan_code(code: str, **config):
  return lint(code, path="mod.py", select=["resource-lifecycle"], config=LintConfig(**config))


def test_unreleased_file_is_reported_at_binding():
  code = """
def read(path):
    f = open(path)
    return f.read()
"""
  results = scan_code(code)
  assert len(results) == 1
  diagnostic = results[0]
  assert (diagnostic.position.line, diagnostic.position.column) == (3, 5)
  assert diagnostic.message == (
    "file from open() assigned to 'f' is not released on every path; call f.close() (or use a 'with' block)"
  )


def test_release_in_finally_covers_every_path():
  code = """
def read(path, strict):
    f = open(path)
    try:
        if strict:
            return f.read()
        data = f.read(10)
    finally:
        f.close()
    return data
"""
  assert scan_code(code) == []


def test_finally_release_does_not_cover_later_rebinding():
  code = """
def read_twice(path):
    fh = open(path)
    try:
        first = fh.read()
    finally:
        fh.close()
    fh = open(path)
    return first + fh.read()
"""
  assert [d.position.line for d in scan_code(code)] == [8]
  assert [d.position.line for d in scan_code(code, resolve=False)] == [8]


def test_context_managers_release():
  code = """
import contextlib


def with_statement(path):
    with open(path) as f:
        return f.read()


def entered_later(path):
    f = open(path)
    with f:
        data = f.read()
    return data


def closing_wrapper(path):
    f = open(path)
    with contextlib.closing(f):
        return f.read()


def exit_stack(path):
    with contextlib.ExitStack() as stack:
        f = open(path)
        stack.enter_context(f)
        return f.read()
"""
  assert scan_code(code) == []


def test_cleanup_registrations_release():
  code = """
import atexit
import contextlib


def callback(path):
    with contextlib.ExitStack() as stack:
        f = open(path)
        stack.callback(f.close)
        return f.read()


def registered_lambda(path):
    f = open(path)
    atexit.register(lambda: f.close())
    return f.readline()
"""
  assert scan_code(code) == []


def test_ownership_transfer_exempts_binding():
  code = """
class Holder:
    def attach(self, path):
        f = open(path)
        self.handle = f

    def produce(self, path):
        f = open(path)
        return f

    def stream(self, paths):
        for path in paths:
            f = open(path)
            yield f

    def collect(self, path, handles):
        f = open(path)
        handles.append(f)
"""
  assert scan_code(code) == []


def test_release_on_one_branch_only():
  code = """
def maybe_close(path, done):
    f = open(path)
    if done:
        f.close()
"""
  assert [d.position.line for d in scan_code(code)] == [3]


def test_reassignment_opens_a_new_binding():
  code = """
def two_files(a, b):
    f = open(a)
    f.close()
    f = open(b)
    return f.read()
"""
  assert [d.position.line for d in scan_code(code)] == [5]


def test_accessor_must_match_exactly():
  spec = ResourceSpec(
    type="requests.Response",
    constructors=("requests.get",),
    accessor="raw",
    label="HTTP response",
  )
  code = """
import requests


def fetch(url):
    resp = requests.get(url, stream=True)
    resp.close()


def fetch_raw(url):
    resp = requests.get(url, stream=True)
    resp.raw.close()
"""
  results = scan_code(code, resources=DEFAULT_RESOURCES + (spec,))
  assert [d.position.line for d in results] == [6]
  assert "call resp.raw.close()" in results[0].message
  assert "HTTP response from requests.get()" in results[0].message


def test_trusted_resource_types_are_not_tracked():
  code = """
def read(path):
    f = open(path)
    return f.read()
"""
  assert scan_code(code, trusted_types=("io.IOBase",)) == []


def test_imported_constructor_alias_is_resolved():
  code = """
from sqlite3 import connect as db_connect


def query(path):
    conn = db_connect(path)
    return conn.execute("select 1").fetchall()
"""
  results = scan_code(code)
  assert len(results) == 1
  assert "database connection from db_connect()" in results[0].message


def test_syntactic_mode_matches_dotted_text():
  code = """
import socket


def connect(host):
    sock = socket.socket()
    sock.connect((host, 80))
"""
  results = scan_code(code, resolve=False)
  assert len(results) == 1
  assert "socket from socket.socket()" in results[0].message
