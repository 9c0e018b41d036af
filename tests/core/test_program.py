"""
Tests for the program model (SourceUnit).

Verifies:
1.  Parse failures surface as `MalformedUnitError`.
2.  Type descriptors for the supported annotation spellings.
3.  Declaration-site symbol identity in resolved mode, textual identity otherwise.
4.  Positions, comments and declaration spans.
"""

from unittest.mock import patch

import libcst as cst
import libcst.matchers as m
import pytest
from libcst.metadata import MetadataWrapper, ScopeProvider

from flowlint.core.program import MalformedUnitError, SourceUnit, SymbolKey, dotted_name, is_trusted_name
from flowlint.core.suppression import DeclarationSpan, SourceComment
from flowlint.enums import TypeKind


def params_of(unit: SourceUnit, index: int = 0):
  fn = unit.functions()[index].node
  return {p.name.value: p for p in fn.params.params}


def test_malformed_source_raises():
  with pytest.raises(MalformedUnitError) as excinfo:
    SourceUnit.parse("def broken(:\n    pass\n", path="broken.py")
  assert "broken.py" in str(excinfo.value)


def test_annotation_descriptors():
  code = """
from typing import Any, Optional, Union

def f(a: Optional[str], b: Union[int, None], c: "Optional[int]", d: str | None, e=None, g: int = None, h: Any = 1, i: int = 0):
    pass
"""
  unit = SourceUnit.parse(code)
  params = params_of(unit)
  kinds = {name: unit.resolve(param).kind for name, param in params.items()}

  assert kinds == {
    "a": TypeKind.OPTIONAL,
    "b": TypeKind.OPTIONAL,
    "c": TypeKind.OPTIONAL,
    "d": TypeKind.OPTIONAL,
    "e": TypeKind.OPTIONAL,
    "g": TypeKind.OPTIONAL,
    "h": TypeKind.INTERFACE,
    "i": TypeKind.VALUE,
  }
  assert unit.resolve(params["a"]).inner == "str"
  assert unit.resolve(params["b"]).inner == "int"


def test_unannotated_parameter_without_default_is_unknown():
  unit = SourceUnit.parse("def f(x):\n    pass\n")
  assert unit.resolve(params_of(unit)["x"]) is None


def test_trusted_types_are_marked():
  code = """
from typing import Optional
from flask import Request

def view(request: Optional[Request] = None):
    pass
"""
  unit = SourceUnit.parse(code)
  descriptor = unit.resolve(params_of(unit)["request"], trusted=("flask.Request",))
  assert descriptor.kind == TypeKind.TRUSTED


def test_type_alias_followed_in_resolved_mode_only():
  code = """
from typing import Optional

MaybeUser = Optional["User"]

def f(u: MaybeUser):
    pass
"""
  resolved = SourceUnit.parse(code)
  assert resolved.resolve(params_of(resolved)["u"]).kind == TypeKind.OPTIONAL

  syntactic = SourceUnit.parse(code, resolve=False)
  assert syntactic.resolve(params_of(syntactic)["u"]).kind == TypeKind.VALUE


def test_symbols_are_keyed_by_declaration_site():
  code = """
def f(x):
    return x

def g(x):
    return x
"""
  unit = SourceUnit.parse(code)
  f, g = unit.functions()
  key_f = unit.symbol("x", f.node.body)
  key_g = unit.symbol("x", g.node.body)

  assert key_f != key_g
  assert not key_f.is_textual
  assert key_f.name == "x"


def test_symbols_are_textual_in_syntactic_mode():
  code = """
def f(x):
    return x
"""
  unit = SourceUnit.parse(code, resolve=False)
  assert not unit.resolved
  assert unit.symbol("x", unit.functions()[0].node.body) == SymbolKey("x")


def test_resolution_failure_falls_back_to_syntactic_mode():
  original = MetadataWrapper.resolve

  def flaky(self, provider):
    if provider is ScopeProvider:
      raise RuntimeError("boom")
    return original(self, provider)

  with patch.object(MetadataWrapper, "resolve", flaky):
    unit = SourceUnit.parse("x = 1\n")

  assert not unit.resolved
  assert unit.qualified_names(unit.tree().body[0]) == []


def test_qualified_names_of_builtins_and_imports():
  code = """
import time

def f(path):
    handle = open(path)
    time.sleep(1)
    return handle.read()
"""
  unit = SourceUnit.parse(code)
  opened, slept, read = m.findall(unit.tree(), m.Call())
  assert unit.qualified_names(opened.func) == ["open"]
  assert unit.qualified_names(slept.func) == ["time.sleep"]
  assert unit.qualified_names(read.func) == ["f.<locals>.handle.read"]


def test_callee_name_follows_imports():
  code = """
from os import path as p

def f():
    return p.join("a", "b")
"""
  resolved = SourceUnit.parse(code)
  call = m.findall(resolved.tree(), m.Call())[0]
  assert resolved.callee_name(call) == "os.path.join"

  syntactic = SourceUnit.parse(code, resolve=False)
  call = m.findall(syntactic.tree(), m.Call())[0]
  assert syntactic.callee_name(call) == "p.join"


def test_positions_are_one_based():
  code = """
def f():
    value = 1
"""
  unit = SourceUnit.parse(code, path="mod.py")
  fn = unit.functions()[0].node
  assign = fn.body.body[0].body[0]

  assert str(unit.position(fn)) == "mod.py:2:1"
  assert unit.position(assign.targets[0].target).column == 5


def test_comments_know_if_code_precedes_them():
  code = "# header\nx = 1  # trailing\n"
  unit = SourceUnit.parse(code)
  assert unit.comments() == [
    SourceComment(line=1, column=1, text="# header", inline=False),
    SourceComment(line=2, column=8, text="# trailing", inline=True),
  ]


def test_declaration_span_covers_decorators_and_multiline_header():
  code = """@decorator
def f(
    a,
):
    return a
"""
  unit = SourceUnit.parse(code)
  assert unit.declaration_spans() == [DeclarationSpan(first_line=1, header_line=2, header_end=4, end_line=5)]


def test_functions_know_their_owner():
  code = """
class Widget:
    def method(self):
        def helper():
            pass

def free():
    pass
"""
  unit = SourceUnit.parse(code)
  owners = {site.name: site.owner_name for site in unit.functions()}
  assert owners == {"method": "Widget", "helper": None, "free": None}
  assert [c.name.value for c in unit.classes()] == ["Widget"]


def test_name_helpers():
  assert dotted_name(cst.parse_expression("a.b.c")) == "a.b.c"
  assert dotted_name(cst.parse_expression("a().b")) == ""
  assert is_trusted_name("Request", ["flask.Request"])
  assert is_trusted_name("flask.Request", ["flask.Request"])
  assert not is_trusted_name("MyRequest", ["flask.Request"])
  assert not is_trusted_name("", ["flask.Request"])
