"""Configuration loader for the update pipeline."""

import shlex
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from deployer.errors import ConfigError

DEFAULT_CONFIG_FILE = "deployer.yaml"


def _default_cache_control() -> dict[str, str]:
  # Entry points and the service worker must always be revalidated
  return {
    "*.html": "no-cache",
    "sw.js": "no-cache",
    "service-worker.js": "no-cache",
    "manifest.json": "no-cache",
  }


@dataclass
class DeployerConfig:
  """Settings for one update run."""

  record_path: Path = Path("deployment-info.json")
  build_command: list[str] = field(default_factory=lambda: ["npm", "run", "build"])
  build_dir: Path = Path("build")
  working_dir: Path = Path(".")
  clean_build: bool = True
  region: str = "us-east-1"
  profile: str | None = None
  lock_path: Path | None = Path(".deploy.lock")
  verify_credentials: bool = True
  cache_control: dict[str, str] = field(default_factory=_default_cache_control)
  propagation_advisory: str = "5-10 minutes"
  dry_run: bool = False

  @property
  def record_file(self) -> Path:
    """Deployment record location resolved against the working directory."""
    return self.working_dir / self.record_path

  @property
  def output_dir(self) -> Path:
    """Build output location resolved against the working directory."""
    return self.working_dir / self.build_dir

  @property
  def lock_file(self) -> Path | None:
    """Lock file location, or None when locking is disabled."""
    if self.lock_path is None:
      return None
    return self.working_dir / self.lock_path

  @classmethod
  def from_yaml(
    cls, path: Path | str = DEFAULT_CONFIG_FILE, env: str | None = None
  ) -> "DeployerConfig":
    """Load configuration from a YAML file.

    Args:
      path: YAML file to read
      env: Name of an entry under ``environments`` to merge over the top-level keys

    Returns:
      The merged configuration

    Raises:
      ConfigError: If the file is unreadable, invalid, or names an unknown env
    """
    try:
      with open(path) as f:
        data = yaml.safe_load(f) or {}
    except OSError as e:
      raise ConfigError(f"cannot read config {path}: {e}") from e
    except yaml.YAMLError as e:
      raise ConfigError(f"invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
      raise ConfigError(f"config {path} must be a mapping")

    environments = data.pop("environments", None) or {}
    if not isinstance(environments, dict):
      raise ConfigError(f"environments in {path} must be a mapping")
    merged = dict(data)
    if env is not None:
      if env not in environments:
        raise ConfigError(f"environment {env!r} not defined in {path}")
      overrides = environments[env] or {}
      if not isinstance(overrides, dict):
        raise ConfigError(f"environment {env!r} in {path} must be a mapping")
      # Environment-specific values override top-level ones
      merged = {**merged, **overrides}

    return cls.from_dict(merged)

  @classmethod
  def from_dict(cls, data: dict[str, Any]) -> "DeployerConfig":
    """Build a configuration from plain values, applying defaults."""
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - known)
    if unknown:
      raise ConfigError(f"unknown config keys: {', '.join(unknown)}")

    config = cls()

    if "record_path" in data:
      config.record_path = Path(data["record_path"])
    if "build_command" in data:
      config.build_command = _parse_command(data["build_command"])
    if "build_dir" in data:
      config.build_dir = Path(data["build_dir"])
    if "working_dir" in data:
      config.working_dir = Path(data["working_dir"])
    if "clean_build" in data:
      config.clean_build = bool(data["clean_build"])
    if "region" in data:
      config.region = str(data["region"])
    if "profile" in data:
      config.profile = data["profile"] or None
    if "lock_path" in data:
      lock_path = data["lock_path"]
      config.lock_path = Path(lock_path) if lock_path else None
    if "verify_credentials" in data:
      config.verify_credentials = bool(data["verify_credentials"])
    if "cache_control" in data:
      rules = data["cache_control"] or {}
      if not isinstance(rules, dict):
        raise ConfigError("cache_control must map glob patterns to header values")
      config.cache_control = {str(k): str(v) for k, v in rules.items()}
    if "propagation_advisory" in data:
      config.propagation_advisory = str(data["propagation_advisory"])
    if "dry_run" in data:
      config.dry_run = bool(data["dry_run"])

    return config


def _parse_command(value: Any) -> list[str]:
  if isinstance(value, str):
    try:
      command = shlex.split(value)
    except ValueError as e:
      raise ConfigError(f"cannot parse build_command {value!r}: {e}") from e
  elif isinstance(value, list):
    command = [str(part) for part in value]
  else:
    raise ConfigError("build_command must be a string or a list")
  if not command:
    raise ConfigError("build_command must not be empty")
  return command
