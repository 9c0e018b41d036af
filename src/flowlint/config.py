"""
Runtime Configuration Store.

Configuration is immutable data injected into the engine and every detector at
construction. Values come from the `[tool.flowlint]` table of the nearest
`pyproject.toml` and may be overridden explicitly (e.g. from the CLI).

Example::

    [tool.flowlint]
    workers = 8
    exclude = ["build/*", "*_pb2.py"]
    trusted_types = ["myapp.http.Request"]

    [tool.flowlint.detectors]
    default = true
    todo-tracker = false

    [[tool.flowlint.resources]]
    type = "requests.Response"
    constructors = ["requests.get", "requests.post"]
    release = "close"
    label = "HTTP response"
"""

import os
import sys
from fnmatch import fnmatch
from pathlib import Path, PurePath
from typing import Any, Dict, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

if sys.version_info >= (3, 11):
  import tomllib
else:
  import tomli as tomllib


class ResourceSpec(BaseModel):
  """
  One entry of the resource table.

  Attributes:
      type (str): Qualified type produced by the constructors.
      constructors (Tuple[str, ...]): Qualified callee names producing the resource.
      accessor (Optional[str]): Field holding the releasable sub-object, if any.
      release (str): Name of the releasing method.
      label (str): Human readable kind used in messages.
  """

  model_config = ConfigDict(frozen=True)

  type: str
  constructors: Tuple[str, ...] = Field(..., min_length=1)
  accessor: Optional[str] = None
  release: str = "close"
  label: str = "resource"


DEFAULT_RESOURCES: Tuple[ResourceSpec, ...] = (
  ResourceSpec(
    type="io.IOBase",
    constructors=(
      "open",
      "io.open",
      "os.fdopen",
      "codecs.open",
      "gzip.open",
      "bz2.open",
      "lzma.open",
      "tempfile.TemporaryFile",
      "tempfile.NamedTemporaryFile",
    ),
    label="file",
  ),
  ResourceSpec(type="socket.socket", constructors=("socket.socket", "socket.create_connection"), label="socket"),
  ResourceSpec(type="sqlite3.Connection", constructors=("sqlite3.connect",), label="database connection"),
  ResourceSpec(type="http.client.HTTPResponse", constructors=("urllib.request.urlopen",), label="HTTP response"),
  ResourceSpec(
    type="http.client.HTTPConnection",
    constructors=("http.client.HTTPConnection", "http.client.HTTPSConnection"),
    label="HTTP connection",
  ),
  ResourceSpec(type="zipfile.ZipFile", constructors=("zipfile.ZipFile",), label="zip archive"),
  ResourceSpec(type="tarfile.TarFile", constructors=("tarfile.open",), label="tar archive"),
  ResourceSpec(type="shelve.Shelf", constructors=("shelve.open",), label="shelf"),
)

# Types whose values are guaranteed by the caller (frameworks never pass None).
DEFAULT_TRUSTED_TYPES: Tuple[str, ...] = (
  "flask.Request",
  "django.http.HttpRequest",
  "starlette.requests.Request",
  "fastapi.Request",
  "pytest.FixtureRequest",
  "argparse.Namespace",
  "logging.Logger",
  "click.Context",
  "typer.Context",
)


class LintConfig(BaseModel):
  """
  Global configuration container for a lint run.
  """

  model_config = ConfigDict(frozen=True)

  detectors: Dict[str, bool] = Field(
    default_factory=dict, description="Per-category switches; the 'default' key applies to unlisted ones."
  )
  trusted_types: Tuple[str, ...] = Field(DEFAULT_TRUSTED_TYPES, description="Caller-trusted types, never tracked.")
  resources: Tuple[ResourceSpec, ...] = Field(DEFAULT_RESOURCES, description="Resource table.")
  exclude: Tuple[str, ...] = Field((), description="Glob patterns of paths to skip.")
  workers: int = Field(default_factory=lambda: min(8, os.cpu_count() or 1), ge=1, description="Worker threads.")
  resolve: bool = Field(True, description="Attempt scope and qualified-name resolution.")

  @field_validator("detectors")
  @classmethod
  def normalize_detectors(cls, v: Dict[str, bool]) -> Dict[str, bool]:
    """
    Normalizes category keys.

    Args:
        v (Dict[str, bool]): Raw switches.

    Returns:
        Dict[str, bool]: Switches keyed by lower-case, stripped category.
    """
    return {key.strip().lower(): bool(value) for key, value in v.items()}

  def is_enabled(self, category: str) -> bool:
    """
    Args:
        category (str): Detector category.

    Returns:
        bool: The category's switch, else the 'default' switch, else True.
    """
    if category in self.detectors:
      return self.detectors[category]
    return self.detectors.get("default", True)

  def is_excluded(self, path: Union[str, PurePath]) -> bool:
    """
    Matches a path against the exclude patterns.

    A pattern matches the whole posix path, the file name, or any single path
    component (so `migrations` skips every file below such a directory).
    """
    pure = PurePath(path)
    posix = pure.as_posix()
    for pattern in self.exclude:
      if fnmatch(posix, pattern) or fnmatch(pure.name, pattern):
        return True
      if any(fnmatch(part, pattern) for part in pure.parts[:-1]):
        return True
    return False

  @classmethod
  def load(
    cls,
    workers: Optional[int] = None,
    resolve: Optional[bool] = None,
    trusted_types: Optional[Sequence[str]] = None,
    search_path: Optional[Path] = None,
  ) -> "LintConfig":
    """
    Loads configuration from pyproject.toml and applies explicit overrides.

    Args:
        workers (Optional[int]): Override for the worker count.
        resolve (Optional[bool]): Override for resolution.
        trusted_types (Optional[Sequence[str]]): Extra trusted types.
        search_path (Optional[Path]): Directory to start searching for TOML config.

    Returns:
        LintConfig: The fully resolved configuration object.

    Raises:
        ValueError: If the TOML table is malformed or fails validation.
    """
    start_dir = search_path or Path.cwd()
    toml_config, _ = _load_toml_settings(start_dir)

    values: Dict[str, Any] = {}
    if "detectors" in toml_config:
      values["detectors"] = toml_config["detectors"]
    if "exclude" in toml_config:
      values["exclude"] = tuple(toml_config["exclude"])

    # Tables extend the built-in defaults rather than replace them.
    extra_trusted = list(toml_config.get("trusted_types", [])) + list(trusted_types or [])
    values["trusted_types"] = DEFAULT_TRUSTED_TYPES + tuple(t for t in extra_trusted if t not in DEFAULT_TRUSTED_TYPES)
    values["resources"] = DEFAULT_RESOURCES + tuple(toml_config.get("resources", []))

    if workers is not None:
      values["workers"] = workers
    elif "workers" in toml_config:
      values["workers"] = toml_config["workers"]

    if resolve is not None:
      values["resolve"] = resolve
    elif "resolve" in toml_config:
      values["resolve"] = toml_config["resolve"]

    try:
      return cls.model_validate(values)
    except ValidationError as e:
      raise ValueError(f"Invalid [tool.flowlint] configuration: {e}")


def _load_toml_settings(start_path: Path) -> Tuple[Dict[str, Any], Optional[Path]]:
  """
  Searches the directory and its parents for 'pyproject.toml' and extracts config.

  Args:
      start_path (Path): Directory to start search from.

  Returns:
      Tuple[Dict, Optional[Path]]: The `[tool.flowlint]` table and the directory it was found in.

  Raises:
      ValueError: If the nearest pyproject.toml is not valid TOML.
  """
  current = start_path.resolve()
  if current.is_file():
    current = current.parent

  for parent in [current, *current.parents]:
    toml_path = parent / "pyproject.toml"
    if toml_path.exists() and toml_path.is_file():
      try:
        with open(toml_path, "rb") as f:
          data = tomllib.load(f)
      except tomllib.TOMLDecodeError as e:
        raise ValueError(f"Cannot parse {toml_path}: {e}")

      tool_section = data.get("tool", {})
      return tool_section.get("flowlint", {}), parent

  return {}, None
