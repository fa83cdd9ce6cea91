"""Read-only access to the deployment record written at provisioning time."""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from deployer.errors import RecordMalformed, RecordNotFound

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("bucketName", "distributionId", "domainName")


@dataclass(frozen=True)
class DeploymentRecord:
  """A previously provisioned hosting target."""

  bucket_name: str
  distribution_id: str
  domain_name: str
  region: str | None = None
  deployed_at: str | None = None

  @property
  def url(self) -> str:
    return f"https://{self.domain_name}"


class RecordStore:
  """Loads and validates the deployment record file."""

  def __init__(self, path: Path | str) -> None:
    self.path = Path(path)

  def load(self) -> DeploymentRecord:
    """Read the record.

    Raises:
      RecordNotFound: If the file does not exist
      RecordMalformed: If the file is not a JSON object with all required fields
    """
    if not self.path.is_file():
      raise RecordNotFound(str(self.path))

    try:
      data = json.loads(self.path.read_text(encoding="utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
      raise RecordMalformed(str(self.path), f"not valid JSON ({e})") from e

    if not isinstance(data, dict):
      raise RecordMalformed(str(self.path), "top level must be an object")

    values: dict[str, str] = {}
    for name in REQUIRED_FIELDS:
      value = data.get(name)
      # jq -r renders a missing field as the string "null"
      if not isinstance(value, str) or not value.strip() or value == "null":
        raise RecordMalformed(str(self.path), f"{name} is missing or empty")
      values[name] = value.strip()

    record = DeploymentRecord(
      bucket_name=values["bucketName"],
      distribution_id=values["distributionId"],
      domain_name=values["domainName"],
      region=_optional(data, "region"),
      deployed_at=_optional(data, "deployedAt"),
    )
    logger.debug("Loaded deployment record from %s", self.path)
    return record


def _optional(data: dict[str, Any], name: str) -> str | None:
  value = data.get(name)
  if isinstance(value, str) and value.strip():
    return value.strip()
  return None
