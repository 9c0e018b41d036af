"""
Central Logging and Console Utilities.

This module unifies flowlint's human-facing output on top of the standard
`logging` library, formatted by `rich`.

Diagnostics and tables are printed to stdout through `console`; log
records (progress, warnings about skipped files) go through the root logger to
a `RichHandler` bound to a stderr console, so `--json` output on stdout stays
machine readable.

Both consoles can be swapped at runtime (`set_console`), which is how tests
capture output in memory.
"""

import logging
from typing import Any, Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.theme import Theme

SUCCESS_LEVEL_NUM = 25
logging.addLevelName(SUCCESS_LEVEL_NUM, "SUCCESS")

THEME = Theme(
  {
    "logging.level.success": "green",
    "info": "dim cyan",
    "warning": "yellow",
    "error": "bold red",
    "success": "green",
    "path": "bold blue",
    "category": "bold magenta",
  }
)


class _ConsoleProxy:
  """
  A stable wrapper around a swappable `rich.console.Console`.

  Modules import the proxy once; `set_backend` changes where output goes and
  re-binds the logging handler when the proxy owns logging.

  Attributes:
      _backend (Console): The active Rich Console instance.
  """

  def __init__(self, stderr: bool = False, owns_logging: bool = False) -> None:
    self._stderr = stderr
    self._owns_logging = owns_logging
    self._backend: Console = Console(theme=THEME, stderr=stderr)
    if owns_logging:
      self._configure_logging()

  def set_backend(self, new_console: Console) -> None:
    """
    Injects a new Console backend.

    Args:
        new_console (Console): The new Rich Console instance to use.
    """
    self._backend = new_console
    if self._owns_logging:
      self._configure_logging()

  def reset(self) -> None:
    """Restores a fresh console on the original stream."""
    self.set_backend(Console(theme=THEME, stderr=self._stderr))

  @property
  def backend(self) -> Console:
    return self._backend

  def _configure_logging(self) -> None:
    """Routes the root logger to the current backend."""
    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
      if isinstance(handler, RichHandler):
        root_logger.removeHandler(handler)

    rich_handler = RichHandler(
      console=self._backend,
      show_time=False,
      omit_repeated_times=False,
      show_path=False,
      markup=False,
      rich_tracebacks=True,
    )
    root_logger.setLevel(logging.INFO)
    root_logger.addHandler(rich_handler)

  def print(self, *args: Any, **kwargs: Any) -> None:
    self._backend.print(*args, **kwargs)

  def __getattr__(self, name: str) -> Any:
    return getattr(self._backend, name)


# Report output (stdout) and log output (stderr).
console = _ConsoleProxy()
log_console = _ConsoleProxy(stderr=True, owns_logging=True)


def set_console(new_console: Console, log_to: Optional[Console] = None) -> None:
  """
  Global helper to inject console instances.

  Args:
      new_console (Console): Console receiving reports.
      log_to (Optional[Console]): Console receiving log records. Defaults to `new_console`.
  """
  console.set_backend(new_console)
  log_console.set_backend(log_to if log_to is not None else new_console)


def reset_console() -> None:
  """Resets both consoles to the standard streams."""
  console.reset()
  log_console.reset()


def get_console() -> Console:
  """
  Retrieves the currently active report console.

  Returns:
      Console: The active Rich Console.
  """
  return console.backend


def set_verbosity(verbose: bool = False, quiet: bool = False) -> None:
  """
  Adjusts the root logger level.

  Args:
      verbose (bool): Show debug records (including swallowed detector faults).
      quiet (bool): Only show errors.
  """
  if quiet:
    level = logging.ERROR
  elif verbose:
    level = logging.DEBUG
  else:
    level = logging.INFO
  logging.getLogger().setLevel(level)


def log_info(msg: str) -> None:
  """
  Logs an informational message via standard logging.

  Args:
      msg (str): The message content. Can include rich markup like [bold].
  """
  logging.info(msg, extra={"markup": True})


def log_success(msg: str) -> None:
  """
  Logs a success message via standard logging.

  Args:
      msg (str): The message content.
  """
  logging.log(SUCCESS_LEVEL_NUM, msg, extra={"markup": True})


def log_warning(msg: str) -> None:
  """
  Logs a warning message via standard logging.

  Args:
      msg (str): The message content.
  """
  logging.warning(msg, extra={"markup": True})


def log_error(msg: str) -> None:
  """
  Logs an error message via standard logging.

  Args:
      msg (str): The message content.
  """
  logging.error(msg, extra={"markup": True})
