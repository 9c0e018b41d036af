"""
Tests for configuration loading from pyproject.toml.
"""

import pytest
from pydantic import ValidationError

from flowlint.config import DEFAULT_RESOURCES, DEFAULT_TRUSTED_TYPES, LintConfig

PYPROJECT = """
[tool.flowlint]
workers = 3
resolve = false
exclude = ["migrations"]
trusted_types = ["myapp.http.Request"]

[tool.flowlint.detectors]
default = false
None-Check = true

[[tool.flowlint.resources]]
type = "requests.Response"
constructors = ["requests.get", "requests.post"]
label = "HTTP response"
"""


def test_defaults():
  config = LintConfig()
  assert config.workers >= 1
  assert config.resolve
  assert config.is_enabled("none-check")
  assert config.trusted_types == DEFAULT_TRUSTED_TYPES
  assert config.resources == DEFAULT_RESOURCES


def test_config_is_frozen():
  config = LintConfig()
  with pytest.raises(ValidationError):
    config.workers = 2


def test_detector_switches():
  config = LintConfig(detectors={"default": False, " Todo-Tracker ": True})
  assert config.is_enabled("todo-tracker")
  assert not config.is_enabled("none-check")


def test_exclude_patterns():
  config = LintConfig(exclude=("migrations", "*_pb2.py", "build/*"))
  assert config.is_excluded("app/migrations/0001_initial.py")
  assert config.is_excluded("app/api_pb2.py")
  assert config.is_excluded("build/lib.py")
  assert not config.is_excluded("app/models.py")


def test_load_from_pyproject(tmp_path):
  (tmp_path / "pyproject.toml").write_text(PYPROJECT)
  nested = tmp_path / "src" / "pkg"
  nested.mkdir(parents=True)

  config = LintConfig.load(search_path=nested)

  assert config.workers == 3
  assert not config.resolve
  assert config.exclude == ("migrations",)
  assert config.is_enabled("none-check")
  assert not config.is_enabled("todo-tracker")
  assert config.trusted_types[-1] == "myapp.http.Request"
  assert config.trusted_types[: len(DEFAULT_TRUSTED_TYPES)] == DEFAULT_TRUSTED_TYPES
  assert config.resources[-1].constructors == ("requests.get", "requests.post")
  assert config.resources[-1].release == "close"


def test_explicit_overrides_win(tmp_path):
  (tmp_path / "pyproject.toml").write_text(PYPROJECT)
  config = LintConfig.load(workers=1, resolve=True, trusted_types=["extra.Type"], search_path=tmp_path)
  assert config.workers == 1
  assert config.resolve
  assert "extra.Type" in config.trusted_types


def test_missing_pyproject_uses_defaults(tmp_path):
  config = LintConfig.load(search_path=tmp_path)
  assert config.resources == DEFAULT_RESOURCES


def test_invalid_values_raise_value_error(tmp_path):
  (tmp_path / "pyproject.toml").write_text("[tool.flowlint]\nworkers = 0\n")
  with pytest.raises(ValueError, match="Invalid \\[tool.flowlint\\] configuration"):
    LintConfig.load(search_path=tmp_path)


def test_resource_without_constructors_is_rejected(tmp_path):
  (tmp_path / "pyproject.toml").write_text('[[tool.flowlint.resources]]\ntype = "x.Y"\nconstructors = []\n')
  with pytest.raises(ValueError):
    LintConfig.load(search_path=tmp_path)


def test_malformed_toml_raises_value_error(tmp_path):
  (tmp_path / "pyproject.toml").write_text("[tool.flowlint\n")
  with pytest.raises(ValueError, match="Cannot parse"):
    LintConfig.load(search_path=tmp_path)
