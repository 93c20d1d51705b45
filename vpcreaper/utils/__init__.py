"""Utility modules for AWS client management and configuration."""

from vpcreaper.utils.aws_client import AWSClientManager, RetryStrategy
from vpcreaper.utils.config import ConfigurationError, TeardownConfig
from vpcreaper.utils.logging import (
    log_cleanup_action,
    log_error_with_details,
    log_resource_scan,
)

__all__ = [
    "AWSClientManager",
    "ConfigurationError",
    "RetryStrategy",
    "TeardownConfig",
    "log_cleanup_action",
    "log_error_with_details",
    "log_resource_scan",
]
