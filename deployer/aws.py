"""boto3 session helpers."""

import logging

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from deployer.config import DeployerConfig
from deployer.errors import CredentialsUnavailable

logger = logging.getLogger(__name__)


def create_session(config: DeployerConfig) -> boto3.session.Session:
  """Create a session for the configured profile and region."""
  return boto3.session.Session(profile_name=config.profile, region_name=config.region)


def verify_credentials(session: boto3.session.Session) -> str:
  """Confirm the session has working credentials.

  Returns:
    The caller ARN reported by STS

  Raises:
    CredentialsUnavailable: If no credentials are configured or STS rejects them
  """
  sts = session.client("sts")
  try:
    identity = sts.get_caller_identity()
  except ClientError as e:
    code = e.response.get("Error", {}).get("Code", "Unknown")
    raise CredentialsUnavailable(f"AWS rejected the credentials [{code}]: {e}") from e
  except BotoCoreError as e:
    raise CredentialsUnavailable(f"AWS credentials are not configured: {e}") from e

  arn = str(identity["Arn"])
  logger.info("Using AWS identity %s", arn)
  return arn
