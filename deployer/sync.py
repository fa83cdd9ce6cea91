"""Mirror sync of an artifact tree into an S3 bucket.

The diff is a pure function over two key -> digest mappings; the I/O that acts
on each partition lives in SyncStep and the ObjectStore adapter. Sync is not
atomic. Because asset names are content-hashed, a sync interrupted part way
still serves a consistent site, and re-running it converges on the same
remote set.
"""

import fnmatch
import logging
import mimetypes
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from botocore.exceptions import BotoCoreError, ClientError

from deployer.build import ArtifactTree
from deployer.errors import SyncFailed

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"

# Types the platform mimetypes table gets wrong or lacks
_CONTENT_TYPE_OVERRIDES = {
  ".js": "text/javascript",
  ".mjs": "text/javascript",
  ".map": "application/json",
  ".webmanifest": "application/manifest+json",
  ".wasm": "application/wasm",
  ".woff2": "font/woff2",
  ".svg": "image/svg+xml",
}

_DOCUMENT_SUFFIXES = (".html", ".htm")


@dataclass(frozen=True)
class SyncPlan:
  """Partition of all known keys into upload, delete, and unchanged."""

  to_upload: tuple[str, ...] = ()
  to_delete: tuple[str, ...] = ()
  unchanged: tuple[str, ...] = ()

  @property
  def is_noop(self) -> bool:
    return not self.to_upload and not self.to_delete


def plan_sync(local: Mapping[str, str], remote: Mapping[str, str]) -> SyncPlan:
  """Compute the mirror diff between local and remote digests.

  Args:
    local: Key -> content digest of the artifact tree
    remote: Key -> content digest of the objects currently in the bucket

  Returns:
    Keys to upload (new or changed), keys to delete (remote only), and keys
    whose content is identical on both sides
  """
  to_upload = sorted(key for key, digest in local.items() if remote.get(key) != digest)
  to_delete = sorted(key for key in remote if key not in local)
  unchanged = sorted(key for key, digest in local.items() if remote.get(key) == digest)
  return SyncPlan(tuple(to_upload), tuple(to_delete), tuple(unchanged))


def normalize_etag(etag: str) -> str:
  return etag.strip().strip('"').lower()


def content_type_for(key: str) -> str:
  suffix = Path(key).suffix.lower()
  if suffix in _CONTENT_TYPE_OVERRIDES:
    return _CONTENT_TYPE_OVERRIDES[suffix]
  guessed, _ = mimetypes.guess_type(key)
  return guessed or DEFAULT_CONTENT_TYPE


class ObjectStore(Protocol):
  def list_objects(self, bucket: str) -> dict[str, str]: ...

  def put_object(
    self,
    bucket: str,
    key: str,
    path: Path,
    *,
    content_type: str,
    cache_control: str | None = None,
  ) -> None: ...

  def delete_object(self, bucket: str, key: str) -> None: ...


class S3ObjectStore:
  """ObjectStore backed by a boto3 S3 client.

  Provider errors surface as SyncFailed carrying the operation, key, and
  S3 error code.
  """

  def __init__(self, s3_client: Any) -> None:
    self.s3 = s3_client

  def list_objects(self, bucket: str) -> dict[str, str]:
    objects: dict[str, str] = {}
    try:
      paginator = self.s3.get_paginator("list_objects_v2")
      for page in paginator.paginate(Bucket=bucket):
        for obj in page.get("Contents", []):
          objects[obj["Key"]] = normalize_etag(obj.get("ETag", ""))
    except (ClientError, BotoCoreError) as e:
      raise _sync_error("list_objects", f"s3://{bucket}", e) from e
    return objects

  def put_object(
    self,
    bucket: str,
    key: str,
    path: Path,
    *,
    content_type: str,
    cache_control: str | None = None,
  ) -> None:
    extra: dict[str, str] = {"ContentType": content_type}
    if cache_control:
      extra["CacheControl"] = cache_control
    try:
      with open(path, "rb") as body:
        self.s3.put_object(Bucket=bucket, Key=key, Body=body, **extra)
    except OSError as e:
      raise SyncFailed("put_object", f"cannot read {path}: {e}", key=key) from e
    except (ClientError, BotoCoreError) as e:
      raise _sync_error("put_object", key, e) from e

  def delete_object(self, bucket: str, key: str) -> None:
    try:
      self.s3.delete_object(Bucket=bucket, Key=key)
    except (ClientError, BotoCoreError) as e:
      raise _sync_error("delete_object", key, e) from e


def _sync_error(operation: str, key: str, error: Exception) -> SyncFailed:
  if isinstance(error, ClientError):
    err = error.response.get("Error", {})
    return SyncFailed(
      operation,
      err.get("Message") or str(error),
      key=key,
      error_code=err.get("Code"),
    )
  return SyncFailed(operation, str(error), key=key, error_code=type(error).__name__)


@dataclass
class SyncReport:
  """What a sync did (or, in dry-run mode, would do)."""

  bucket: str
  plan: SyncPlan
  uploaded: list[str] = field(default_factory=list)
  deleted: list[str] = field(default_factory=list)
  dry_run: bool = False

  def summary(self) -> str:
    return (
      f"{len(self.plan.to_upload)} to upload, {len(self.plan.to_delete)} to delete, "
      f"{len(self.plan.unchanged)} unchanged"
    )


class SyncStep:
  """Reconciles a bucket so it holds exactly the artifact tree."""

  def __init__(
    self,
    store: ObjectStore,
    cache_control: Mapping[str, str] | None = None,
    *,
    dry_run: bool = False,
  ) -> None:
    self.store = store
    self.cache_control = dict(cache_control or {})
    self.dry_run = dry_run

  def cache_control_for(self, key: str) -> str | None:
    """Header value of the first glob rule matching ``key``."""
    for pattern, value in self.cache_control.items():
      if fnmatch.fnmatchcase(key, pattern):
        return value
    return None

  def sync(self, bucket: str, tree: ArtifactTree) -> SyncReport:
    """Mirror ``tree`` into ``bucket``, deleting remote objects absent locally.

    Raises:
      SyncFailed: On the first provider or transport error; the bucket may
        already be partially updated
    """
    remote = self.store.list_objects(bucket)
    plan = plan_sync(tree.digests(), remote)
    report = SyncReport(bucket=bucket, plan=plan, dry_run=self.dry_run)
    logger.info("Sync plan for s3://%s: %s", bucket, report.summary())

    if self.dry_run:
      for key in plan.to_upload:
        logger.info("(dry run) upload %s", key)
      for key in plan.to_delete:
        logger.info("(dry run) delete %s", key)
      return report

    # Documents go last so they never point at assets not yet uploaded
    ordered = sorted(plan.to_upload, key=lambda k: k.lower().endswith(_DOCUMENT_SUFFIXES))
    for key in ordered:
      artifact = tree.files[key]
      self.store.put_object(
        bucket,
        key,
        artifact.path,
        content_type=content_type_for(key),
        cache_control=self.cache_control_for(key),
      )
      report.uploaded.append(key)
      logger.debug("Uploaded %s", key)

    for key in plan.to_delete:
      self.store.delete_object(bucket, key)
      report.deleted.append(key)
      logger.debug("Deleted %s", key)

    return report
