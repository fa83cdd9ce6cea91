"""Update pipeline for a single-page app hosted on S3 behind CloudFront."""

from deployer.config import DeployerConfig
from deployer.pipeline import Pipeline, PipelineResult, State

__all__ = ["DeployerConfig", "Pipeline", "PipelineResult", "State"]

__version__ = "0.1.0"
