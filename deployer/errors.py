"""Exception taxonomy for the update pipeline."""


class DeployerError(Exception):
  """Base class for all pipeline errors."""


class ConfigError(DeployerError):
  """Raised when the YAML configuration cannot be used."""


class PreconditionError(DeployerError):
  """A failure detected before any step runs. Never retried."""


class RecordNotFound(PreconditionError):
  """The deployment record file does not exist."""

  def __init__(self, path: str) -> None:
    self.path = path
    super().__init__(
      f"deployment record {path} not found; provision the site before updating it"
    )


class RecordMalformed(PreconditionError):
  """The deployment record exists but is unusable."""

  def __init__(self, path: str, reason: str) -> None:
    self.path = path
    self.reason = reason
    super().__init__(f"deployment record {path} is malformed: {reason}")


class LockHeld(PreconditionError):
  """Another pipeline run holds the lock for this working directory."""

  def __init__(self, path: str, holder: str = "") -> None:
    self.path = path
    self.holder = holder
    detail = f" (held by {holder})" if holder else ""
    super().__init__(f"lock file {path} exists{detail}; another update may be running")


class LockUnavailable(PreconditionError):
  """The lock file cannot be created or written."""

  def __init__(self, path: str, reason: str) -> None:
    self.path = path
    self.reason = reason
    super().__init__(f"cannot take lock file {path}: {reason}")


class CredentialsUnavailable(PreconditionError):
  """AWS credentials are missing or rejected."""


class BuildFailed(DeployerError):
  """The build toolchain reported a non-zero exit status or produced no output."""

  def __init__(self, exit_status: int, message: str, output: str = "") -> None:
    self.exit_status = exit_status
    self.output = output
    super().__init__(message)


class SyncFailed(DeployerError):
  """An object storage call failed during mirror sync.

  The remote object set may be partially updated when this is raised.
  """

  def __init__(
    self,
    operation: str,
    message: str,
    *,
    key: str | None = None,
    error_code: str | None = None,
  ) -> None:
    self.operation = operation
    self.key = key
    self.error_code = error_code
    target = f" {key}" if key else ""
    code = f" [{error_code}]" if error_code else ""
    super().__init__(f"{operation}{target} failed{code}: {message}")


class InvalidationFailed(DeployerError):
  """The CDN rejected the invalidation request."""

  def __init__(
    self, distribution_id: str, message: str, *, error_code: str | None = None
  ) -> None:
    self.distribution_id = distribution_id
    self.error_code = error_code
    code = f" [{error_code}]" if error_code else ""
    super().__init__(
      f"invalidation of distribution {distribution_id} rejected{code}: {message}"
    )
