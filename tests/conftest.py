"""Pytest fixtures for update pipeline tests."""

import json
from collections.abc import Callable, Iterator, Sequence
from pathlib import Path
from typing import Any

import boto3
import pytest
from moto import mock_aws

from deployer.runner import ExitOutcome

BUCKET = "site-bucket"
REGION = "us-east-1"


class FakeRunner:
  """CommandRunner that writes a fixed file set instead of running a build."""

  def __init__(
    self,
    output_dir: Path,
    files: dict[str, bytes] | None = None,
    *,
    exit_status: int = 0,
    output: str = "",
  ) -> None:
    self.output_dir = output_dir
    self.files = files or {}
    self.exit_status = exit_status
    self.output = output
    self.calls: list[tuple[str, list[str], Path | None]] = []

  def run(
    self, command: str, args: Sequence[str], cwd: Path | None = None
  ) -> ExitOutcome:
    self.calls.append((command, list(args), cwd))
    if self.exit_status == 0:
      for key, content in self.files.items():
        path = self.output_dir / key
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
    return ExitOutcome(self.exit_status, self.output)


@pytest.fixture
def aws_credentials(monkeypatch: pytest.MonkeyPatch) -> None:
  """Set fake AWS credentials so nothing can reach a real account."""
  monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
  monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
  monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
  monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
  monkeypatch.setenv("AWS_DEFAULT_REGION", REGION)
  monkeypatch.delenv("AWS_PROFILE", raising=False)


@pytest.fixture
def s3_client(aws_credentials: None) -> Iterator[Any]:
  """moto-backed S3 client with an empty site bucket."""
  with mock_aws():
    client = boto3.client("s3", region_name=REGION)
    client.create_bucket(Bucket=BUCKET)
    yield client


@pytest.fixture
def remote_objects(s3_client: Any) -> Callable[[], dict[str, bytes]]:
  """Return a function reading every object in the site bucket."""

  def read() -> dict[str, bytes]:
    objects: dict[str, bytes] = {}
    for page in s3_client.get_paginator("list_objects_v2").paginate(Bucket=BUCKET):
      for obj in page.get("Contents", []):
        body = s3_client.get_object(Bucket=BUCKET, Key=obj["Key"])["Body"].read()
        objects[obj["Key"]] = body
    return objects

  return read


@pytest.fixture
def write_tree(tmp_path: Path) -> Callable[[dict[str, bytes]], Path]:
  """Return a function that writes files below tmp_path/build."""

  def write(files: dict[str, bytes]) -> Path:
    root = tmp_path / "build"
    for key, content in files.items():
      path = root / key
      path.parent.mkdir(parents=True, exist_ok=True)
      path.write_bytes(content)
    return root

  return write


@pytest.fixture
def record_file(tmp_path: Path) -> Path:
  """A valid deployment record in tmp_path."""
  path = tmp_path / "deployment-info.json"
  path.write_text(
    json.dumps(
      {
        "bucketName": BUCKET,
        "distributionId": "DIST123",
        "domainName": "app.example.com",
        "region": REGION,
        "deployedAt": "2025-01-01T00:00:00Z",
      }
    )
  )
  return path


@pytest.fixture
def make_runner(tmp_path: Path) -> Callable[..., FakeRunner]:
  """Return a factory for FakeRunners that build into tmp_path/build."""

  def make(files: dict[str, bytes] | None = None, **kwargs: Any) -> FakeRunner:
    return FakeRunner(tmp_path / "build", files, **kwargs)

  return make
