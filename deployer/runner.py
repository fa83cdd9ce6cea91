"""Subprocess capability injected into steps that shell out."""

import logging
import subprocess
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)

# Shell convention for "command not found"
COMMAND_NOT_FOUND = 127


@dataclass(frozen=True)
class ExitOutcome:
  """Completion status and combined output of a command."""

  exit_status: int
  output: str = ""

  @property
  def ok(self) -> bool:
    return self.exit_status == 0

  def tail(self, lines: int = 20) -> str:
    """Last ``lines`` lines of output, for diagnostics."""
    return "\n".join(self.output.splitlines()[-lines:])


class CommandRunner(Protocol):
  def run(
    self, command: str, args: Sequence[str], cwd: Path | None = None
  ) -> ExitOutcome: ...


class SubprocessRunner:
  """Runs commands synchronously, blocking until they exit."""

  def run(
    self, command: str, args: Sequence[str], cwd: Path | None = None
  ) -> ExitOutcome:
    argv = [command, *args]
    if cwd is not None and not Path(cwd).is_dir():
      return ExitOutcome(1, f"working directory {cwd} not found")
    logger.debug("Running %s in %s", " ".join(argv), cwd or ".")
    try:
      proc = subprocess.run(
        argv,
        cwd=cwd,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        text=True,
        check=False,
      )
    except FileNotFoundError as e:
      return ExitOutcome(COMMAND_NOT_FOUND, f"{command}: command not found ({e})")
    except PermissionError as e:
      return ExitOutcome(126, f"{command}: {e}")

    output = proc.stdout or ""
    for line in output.splitlines():
      logger.debug("  %s", line)
    return ExitOutcome(proc.returncode, output)
