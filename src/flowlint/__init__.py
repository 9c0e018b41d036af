"""
flowlint Package.

A suite of flow-sensitive anti-pattern detectors for Python code. Modules are
parsed with LibCST; each detector inspects the syntax tree (and, where
available, scope and qualified-name metadata) and emits positioned diagnostics
that can be silenced with `# nolint` comments.

Usage
-----

.. code-block:: python

    import flowlint

    code = '''
    def read(path):
        f = open(path)
        return f.read()
    '''
    for diagnostic in flowlint.lint(code, path="reader.py"):
        print(diagnostic.render())
    # reader.py:3:5: [resource-lifecycle] file from open() assigned to 'f' ...

Advanced Usage (Engine)
^^^^^^^^^^^^^^^^^^^^^^^

.. code-block:: python

    from flowlint import LintConfig, LintEngine

    engine = LintEngine(LintConfig.load(workers=4), select=["flow"])
    report = engine.lint_paths(["src/"])
"""

from typing import List, Optional, Sequence

from flowlint.config import LintConfig, ResourceSpec
from flowlint.core.diagnostics import Diagnostic, Position
from flowlint.core.engine import LintEngine, LintReport, run_all
from flowlint.core.program import MalformedUnitError, SourceUnit

# Registers the built-in detectors.
from flowlint import analysis  # noqa: F401

__version__ = "0.1.0"


def lint(
  code: str,
  path: str = "<string>",
  select: Optional[Sequence[str]] = None,
  config: Optional[LintConfig] = None,
) -> List[Diagnostic]:
  """
  Lints a string of Python code.

  Args:
      code (str): Module source.
      path (str): Path reported in diagnostic positions. Exemptions (test files,
          entry points, generated files) are decided from it.
      select (Optional[Sequence[str]]): Categories or groups to run. Defaults to all enabled.
      config (Optional[LintConfig]): Configuration. Defaults to built-in settings.

  Returns:
      List[Diagnostic]: Findings sorted by position.

  Raises:
      MalformedUnitError: If the code cannot be parsed.
  """
  engine = LintEngine(config=config, select=select)
  return engine.lint_source(code, path=path)


__all__ = [
  "Diagnostic",
  "LintConfig",
  "LintEngine",
  "LintReport",
  "MalformedUnitError",
  "Position",
  "ResourceSpec",
  "SourceUnit",
  "__version__",
  "lint",
  "run_all",
]
