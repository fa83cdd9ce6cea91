"""Pipeline controller: record -> build -> sync -> invalidate.

Stages run strictly in sequence. Each stage starts only after the previous
one succeeded, and the first failure ends the run in FAILED with the stage
name and cause. Nothing is retried and nothing is rolled back: a sync
failure can leave the bucket partially updated, and an invalidation failure
leaves new content live at the origin behind a stale edge cache.

Running two pipelines against the same record concurrently is unsafe; the
optional PipelineLock guards against it on a single machine.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from functools import partial
from typing import Any

from deployer.aws import create_session, verify_credentials
from deployer.build import BuildStep
from deployer.config import DeployerConfig
from deployer.errors import (
  BuildFailed,
  DeployerError,
  InvalidationFailed,
  PreconditionError,
  SyncFailed,
)
from deployer.invalidation import ALL_PATHS, InvalidationStep, InvalidationTicket
from deployer.lock import PipelineLock
from deployer.record import DeploymentRecord, RecordStore
from deployer.runner import CommandRunner, SubprocessRunner
from deployer.sync import S3ObjectStore, SyncReport, SyncStep

logger = logging.getLogger(__name__)

STAGE_PRECONDITION = "precondition"
STAGE_BUILD = "build"
STAGE_SYNC = "sync"
STAGE_INVALIDATE = "invalidate"


class State(Enum):
  IDLE = "idle"
  RECORD_LOADED = "record_loaded"
  BUILT = "built"
  SYNCED = "synced"
  INVALIDATED = "invalidated"
  DONE = "done"
  FAILED = "failed"


@dataclass
class PipelineResult:
  """Outcome of one pipeline run."""

  state: State = State.IDLE
  history: list[State] = field(default_factory=lambda: [State.IDLE])
  record: DeploymentRecord | None = None
  sync_report: SyncReport | None = None
  invalidation: InvalidationTicket | None = None
  failed_stage: str | None = None
  error: DeployerError | None = None
  advisory: str = ""
  dry_run: bool = False

  @property
  def ok(self) -> bool:
    return self.state is State.DONE

  @property
  def url(self) -> str | None:
    return self.record.url if self.record else None

  def describe_failure(self) -> str:
    if self.error is None:
      return ""
    return f"{self.failed_stage} failed: {type(self.error).__name__}: {self.error}"


class Pipeline:
  """Sequences the update steps and tracks the run's state."""

  def __init__(
    self,
    record_store: RecordStore,
    build_step: BuildStep,
    sync_step: SyncStep,
    invalidation_step: InvalidationStep,
    *,
    lock: PipelineLock | None = None,
    preflight: Callable[[], Any] | None = None,
    propagation_advisory: str = "5-10 minutes",
    dry_run: bool = False,
  ) -> None:
    self.record_store = record_store
    self.build_step = build_step
    self.sync_step = sync_step
    self.invalidation_step = invalidation_step
    self.lock = lock
    self.preflight = preflight
    self.propagation_advisory = propagation_advisory
    self.dry_run = dry_run
    self.result = PipelineResult(dry_run=dry_run)

  @property
  def state(self) -> State:
    return self.result.state

  @classmethod
  def from_config(
    cls,
    config: DeployerConfig,
    *,
    session: Any = None,
    runner: CommandRunner | None = None,
  ) -> "Pipeline":
    """Wire the real collaborators for ``config``.

    Creating boto3 clients makes no network calls; the first AWS request is
    the credential preflight, after the record has been validated.
    """
    if session is None:
      session = create_session(config)

    preflight = partial(verify_credentials, session) if config.verify_credentials else None

    lock_file = config.lock_file
    return cls(
      RecordStore(config.record_file),
      BuildStep(
        runner or SubprocessRunner(),
        config.build_command,
        config.output_dir,
        working_dir=config.working_dir,
        clean=config.clean_build,
      ),
      SyncStep(
        S3ObjectStore(session.client("s3")),
        config.cache_control,
        dry_run=config.dry_run,
      ),
      InvalidationStep(session.client("cloudfront")),
      lock=PipelineLock(lock_file) if lock_file is not None else None,
      preflight=preflight,
      propagation_advisory=config.propagation_advisory,
      dry_run=config.dry_run,
    )

  def run(self) -> PipelineResult:
    """Run every stage once. Step errors are captured in the result, not raised."""
    self.result = PipelineResult(dry_run=self.dry_run)

    if self.lock is not None:
      try:
        self.lock.acquire()
      except PreconditionError as e:
        return self._fail(STAGE_PRECONDITION, e)

    try:
      return self._run_stages()
    finally:
      if self.lock is not None:
        self.lock.release()

  def _run_stages(self) -> PipelineResult:
    try:
      record = self.record_store.load()
      self.result.record = record
      if self.preflight is not None:
        self.preflight()
    except PreconditionError as e:
      return self._fail(STAGE_PRECONDITION, e)
    logger.info(
      "Target: bucket %s, distribution %s, domain %s",
      record.bucket_name,
      record.distribution_id,
      record.domain_name,
    )
    self._advance(State.RECORD_LOADED)

    try:
      tree = self.build_step.build()
    except BuildFailed as e:
      return self._fail(STAGE_BUILD, e)
    self._advance(State.BUILT)

    try:
      self.result.sync_report = self.sync_step.sync(record.bucket_name, tree)
    except SyncFailed as e:
      return self._fail(STAGE_SYNC, e)
    self._advance(State.SYNCED)

    if self.dry_run:
      logger.info("Dry run: skipping invalidation")
      self._advance(State.DONE)
      return self.result

    try:
      self.result.invalidation = self.invalidation_step.invalidate(
        record.distribution_id, ALL_PATHS
      )
    except InvalidationFailed as e:
      logger.warning(
        "Content is live at the origin but cached copies may persist until they expire"
      )
      return self._fail(STAGE_INVALIDATE, e)
    self._advance(State.INVALIDATED)

    self.result.advisory = (
      f"Cache invalidation in progress. Changes will be visible in "
      f"{self.propagation_advisory}."
    )
    self._advance(State.DONE)
    return self.result

  def _advance(self, state: State) -> None:
    logger.debug("%s -> %s", self.result.state.value, state.value)
    self.result.state = state
    self.result.history.append(state)

  def _fail(self, stage: str, error: DeployerError) -> PipelineResult:
    self.result.failed_stage = stage
    self.result.error = error
    self._advance(State.FAILED)
    logger.error("%s", self.result.describe_failure())
    return self.result
