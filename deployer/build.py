"""Build step: run the application toolchain and collect its output."""

import hashlib
import logging
import shutil
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from deployer.errors import BuildFailed
from deployer.runner import CommandRunner

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 1024 * 1024


@dataclass(frozen=True)
class Artifact:
  """One file of the build output."""

  key: str
  path: Path
  size: int
  md5: str

  def read(self) -> bytes:
    return self.path.read_bytes()


@dataclass
class ArtifactTree:
  """Files produced by one build, keyed by their path relative to the root."""

  root: Path
  files: dict[str, Artifact] = field(default_factory=dict)

  def __len__(self) -> int:
    return len(self.files)

  def __iter__(self) -> Iterator[Artifact]:
    return iter(self.files.values())

  def digests(self) -> dict[str, str]:
    return {key: artifact.md5 for key, artifact in self.files.items()}

  @property
  def total_bytes(self) -> int:
    return sum(artifact.size for artifact in self.files.values())


def file_md5(path: Path) -> str:
  """Hex MD5 of a file, the digest S3 reports as ETag for single-part uploads."""
  md5 = hashlib.md5(usedforsecurity=False)
  with open(path, "rb") as f:
    for chunk in iter(lambda: f.read(_CHUNK_SIZE), b""):
      md5.update(chunk)
  return md5.hexdigest()


def scan_artifacts(root: Path | str) -> ArtifactTree:
  """Collect every regular file below ``root`` into an ArtifactTree."""
  root = Path(root)
  tree = ArtifactTree(root=root)
  for path in sorted(root.rglob("*")):
    if not path.is_file():
      continue
    key = path.relative_to(root).as_posix()
    tree.files[key] = Artifact(
      key=key,
      path=path,
      size=path.stat().st_size,
      md5=file_md5(path),
    )
  return tree


class BuildStep:
  """Invokes the build toolchain and returns a freshly produced ArtifactTree.

  No retries: a failing build is a source or environment problem.
  """

  def __init__(
    self,
    runner: CommandRunner,
    command: Sequence[str],
    output_dir: Path,
    *,
    working_dir: Path = Path("."),
    clean: bool = True,
  ) -> None:
    if not command:
      raise ValueError("build command must not be empty")
    self.runner = runner
    self.command = list(command)
    self.output_dir = Path(output_dir)
    self.working_dir = Path(working_dir)
    self.clean = clean

  def build(self) -> ArtifactTree:
    """Run the toolchain.

    Returns:
      The artifact tree scanned from the output directory

    Raises:
      BuildFailed: If the toolchain exits non-zero or leaves no output, or the
        output directory cannot be cleaned or read
    """
    if self.clean:
      self._remove_previous_output()

    logger.info("Building for production: %s", " ".join(self.command))
    outcome = self.runner.run(self.command[0], self.command[1:], cwd=self.working_dir)
    if not outcome.ok:
      raise BuildFailed(
        outcome.exit_status,
        f"build command exited with status {outcome.exit_status}",
        output=outcome.tail(),
      )

    if not self.output_dir.is_dir():
      raise BuildFailed(
        outcome.exit_status,
        f"build output directory {self.output_dir} not found after build",
      )

    try:
      tree = scan_artifacts(self.output_dir)
    except OSError as e:
      raise BuildFailed(-1, f"cannot read build output {self.output_dir}: {e}") from e
    if not tree.files:
      raise BuildFailed(
        outcome.exit_status, f"build output directory {self.output_dir} is empty"
      )

    logger.info("Build produced %d files (%d bytes)", len(tree), tree.total_bytes)
    return tree

  def _remove_previous_output(self) -> None:
    if not self.output_dir.exists():
      return
    output = self.output_dir.resolve()
    workdir = self.working_dir.resolve()
    if output == workdir or output in workdir.parents:
      raise BuildFailed(
        -1, f"refusing to clean {self.output_dir}: it contains the working directory"
      )
    logger.debug("Removing previous build output %s", self.output_dir)
    try:
      shutil.rmtree(self.output_dir)
    except OSError as e:
      raise BuildFailed(-1, f"cannot remove previous output {self.output_dir}: {e}") from e
