"""Lock file that keeps two update runs off the same target."""

import json
import logging
import os
import socket
from datetime import UTC, datetime
from pathlib import Path
from types import TracebackType

from deployer.errors import LockHeld, LockUnavailable

logger = logging.getLogger(__name__)


class PipelineLock:
  """Exclusive lock backed by a file created with O_EXCL.

  A crashed run leaves the file behind; remove it by hand after checking
  that no other update is running.
  """

  def __init__(self, path: Path | str) -> None:
    self.path = Path(path)
    self._held = False

  @property
  def held(self) -> bool:
    return self._held

  def acquire(self) -> None:
    """Create the lock file.

    Raises:
      LockHeld: If the file already exists
      LockUnavailable: If the file cannot be created or written
    """
    try:
      fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
    except FileExistsError as e:
      raise LockHeld(str(self.path), self._read_holder()) from e
    except OSError as e:
      raise LockUnavailable(str(self.path), e.strerror or str(e)) from e

    owner = {
      "pid": os.getpid(),
      "host": socket.gethostname() or "unknown-host",
      "acquired_at": datetime.now(UTC).isoformat(timespec="seconds"),
    }
    try:
      with os.fdopen(fd, "w") as f:
        json.dump(owner, f)
    except OSError as e:
      # A half-written lock would block every later run
      self.path.unlink(missing_ok=True)
      raise LockUnavailable(str(self.path), e.strerror or str(e)) from e
    self._held = True
    logger.debug("Acquired lock %s", self.path)

  def release(self) -> None:
    if not self._held:
      return
    self.path.unlink(missing_ok=True)
    self._held = False
    logger.debug("Released lock %s", self.path)

  def _read_holder(self) -> str:
    try:
      owner = json.loads(self.path.read_text())
      return f"pid {owner['pid']} on {owner['host']} since {owner['acquired_at']}"
    except (OSError, ValueError, KeyError, TypeError):
      return ""

  def __enter__(self) -> "PipelineLock":
    self.acquire()
    return self

  def __exit__(
    self,
    exc_type: type[BaseException] | None,
    exc: BaseException | None,
    tb: TracebackType | None,
  ) -> None:
    self.release()
