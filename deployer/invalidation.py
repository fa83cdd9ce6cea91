"""CloudFront cache invalidation."""

import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any
from uuid import uuid4

from botocore.exceptions import BotoCoreError, ClientError

from deployer.errors import InvalidationFailed

logger = logging.getLogger(__name__)

# Matches every path on the distribution
ALL_PATHS = ("/*",)


@dataclass(frozen=True)
class InvalidationTicket:
  """An accepted invalidation request. Propagation continues asynchronously."""

  invalidation_id: str
  status: str
  distribution_id: str
  paths: tuple[str, ...]


def caller_reference() -> str:
  return f"deployer-{int(time.time())}-{uuid4().hex[:8]}"


class InvalidationStep:
  """Submits invalidations and returns as soon as CloudFront accepts them."""

  def __init__(self, cloudfront_client: Any) -> None:
    self.cloudfront = cloudfront_client

  def invalidate(
    self, distribution_id: str, path_patterns: Sequence[str] = ALL_PATHS
  ) -> InvalidationTicket:
    """Request a purge of ``path_patterns`` from the distribution's edge caches.

    Args:
      distribution_id: CloudFront distribution ID
      path_patterns: Paths to purge, each starting with "/"

    Returns:
      The accepted request; does not wait for propagation

    Raises:
      InvalidationFailed: If CloudFront rejects the request or cannot be reached
    """
    paths = tuple(path_patterns)
    if not paths:
      raise ValueError("at least one path pattern is required")

    logger.info("Invalidating %s on distribution %s", ", ".join(paths), distribution_id)
    try:
      response = self.cloudfront.create_invalidation(
        DistributionId=distribution_id,
        InvalidationBatch={
          "Paths": {"Quantity": len(paths), "Items": list(paths)},
          "CallerReference": caller_reference(),
        },
      )
    except ClientError as e:
      err = e.response.get("Error", {})
      raise InvalidationFailed(
        distribution_id, err.get("Message") or str(e), error_code=err.get("Code")
      ) from e
    except BotoCoreError as e:
      raise InvalidationFailed(
        distribution_id, str(e), error_code=type(e).__name__
      ) from e

    invalidation = response["Invalidation"]
    ticket = InvalidationTicket(
      invalidation_id=invalidation["Id"],
      status=invalidation.get("Status", "InProgress"),
      distribution_id=distribution_id,
      paths=paths,
    )
    logger.info("Created invalidation: %s (%s)", ticket.invalidation_id, ticket.status)
    return ticket
