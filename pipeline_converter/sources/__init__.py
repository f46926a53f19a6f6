"""Pipeline source detectors, one per supported CI system."""

from pipeline_converter.sources.azure_devops import AzureDevOpsSource
from pipeline_converter.sources.base import PipelineSource
from pipeline_converter.sources.gitlab import GitLabSource
from pipeline_converter.sources.jenkins import JenkinsSource


def default_sources() -> list[PipelineSource]:
    return [GitLabSource(), AzureDevOpsSource(), JenkinsSource()]


__all__ = [
    "AzureDevOpsSource",
    "GitLabSource",
    "JenkinsSource",
    "PipelineSource",
    "default_sources",
]
