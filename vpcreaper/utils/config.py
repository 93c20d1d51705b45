"""Configuration management for the VPC Resource Reaper.

Configuration is read from environment variables and may be overridden by
command-line options or invocation event keys.

Key configuration options:
- VPC_ID / CLUSTER_NAME: the teardown target (the VPC may be derived from the cluster)
- INCLUDE_RESOURCES / EXCLUDE_RESOURCES: comma-separated category names
- TRIES / RETRY_DELAY_SECONDS: outer retry policy
- WAIT_TIMEOUT_SECONDS / POLL_INTERVAL_SECONDS: bounded termination waits
- LOG_LEVEL: log verbosity (defaults to INFO)
"""

import logging
import os
from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, List, Optional

from vpcreaper.models import ResourceCategory, RetryPolicy
from vpcreaper.utils.security import InputValidator

VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

ALL_CATEGORY_NAMES: FrozenSet[str] = frozenset(c.value for c in ResourceCategory)

# Module logger for configuration warnings
_config_logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Exception raised for configuration validation errors."""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        self.message = message
        self.errors = errors or []
        super().__init__(self.message)


def parse_category_names(values: Iterable[str]) -> FrozenSet[str]:
    """Split comma-separated category lists into a set of names.

    Accepts repeated values ("Subnets", "RouteTables") as well as
    comma-joined ones ("Subnets,RouteTables"). Blank entries are dropped.
    """
    names = set()
    for value in values:
        for element in value.split(","):
            element = element.strip()
            if element:
                names.add(element)
    return frozenset(names)


def resolve_categories(names: Iterable[str]) -> FrozenSet[ResourceCategory]:
    """Map category names to ResourceCategory members.

    Raises:
        ConfigurationError: If any name is not a known category.
    """
    categories = set()
    unknown = []
    for name in names:
        try:
            categories.add(ResourceCategory.from_name(name))
        except ValueError:
            unknown.append(name)
    if unknown:
        raise ConfigurationError(
            f"Unknown resource categories: {sorted(unknown)}",
            errors=[f"Unknown resource category: {name}" for name in sorted(unknown)],
        )
    return frozenset(categories)


def _parse_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"Invalid {name}: '{raw}' is not a valid number")


def _parse_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"Invalid {name}: '{raw}' is not a valid integer")


def _parse_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.lower().strip() in ("true", "1", "yes")


@dataclass
class TeardownConfig:
    """Configuration for one teardown request.

    Attributes:
        vpc_id: Target VPC. May be empty when cluster_name is set; the VPC is
            then derived from the cluster.
        cluster_name: Optional EKS cluster identity. Scopes the autoscaling and
            elastic IP filters.
        delete_cluster: Also tear down the cluster's node groups, the cluster
            itself and its eksctl CloudFormation stacks.
        include: Category names to run. Defaults to every category.
        exclude: Category names to skip. Exclusion wins over inclusion.
        autoscaling_tag_key: Extra tag key used to find Auto Scaling groups.
        autoscaling_tag_value: Value paired with autoscaling_tag_key.
        tries: Maximum number of teardown passes.
        retry_delay_seconds: Delay between passes.
        wait_timeout_seconds: Deadline for a single termination/deletion wait.
        poll_interval_seconds: Interval between polls during a wait.
        region: AWS region for all clients.
        role_arn: Optional role to assume before creating clients.
        log_level: Log level for output.
        api_max_retries: Per-call retries for throttling errors.
    """

    vpc_id: str = ""
    cluster_name: str = ""
    delete_cluster: bool = False
    include: FrozenSet[str] = field(default_factory=lambda: ALL_CATEGORY_NAMES)
    exclude: FrozenSet[str] = field(default_factory=frozenset)
    autoscaling_tag_key: str = ""
    autoscaling_tag_value: str = "owned"
    tries: int = 1
    retry_delay_seconds: float = 10.0
    wait_timeout_seconds: float = 300.0
    poll_interval_seconds: float = 15.0
    region: str = "us-east-1"
    role_arn: str = ""
    log_level: str = "INFO"
    api_max_retries: int = 3

    @classmethod
    def from_environment(cls, validate: bool = True) -> "TeardownConfig":
        """Create configuration from environment variables.

        Args:
            validate: If True, validates the configuration and raises
                ConfigurationError if invalid.

        Returns:
            TeardownConfig instance populated from environment variables.

        Raises:
            ConfigurationError: If a numeric variable cannot be parsed, or if
                validation is enabled and the configuration is invalid.
        """
        config = cls()

        config.vpc_id = os.environ.get("VPC_ID", "").strip()
        config.cluster_name = os.environ.get("CLUSTER_NAME", "").strip()
        config.delete_cluster = _parse_bool("DELETE_CLUSTER")

        include_value = os.environ.get("INCLUDE_RESOURCES", "").strip()
        if include_value:
            config.include = parse_category_names([include_value])
        config.exclude = parse_category_names([os.environ.get("EXCLUDE_RESOURCES", "")])

        config.autoscaling_tag_key = os.environ.get("AUTOSCALING_TAG_KEY", "")
        config.autoscaling_tag_value = os.environ.get("AUTOSCALING_TAG_VALUE", "owned")

        config.tries = _parse_int("TRIES", config.tries)
        config.retry_delay_seconds = _parse_float("RETRY_DELAY_SECONDS", config.retry_delay_seconds)
        config.wait_timeout_seconds = _parse_float(
            "WAIT_TIMEOUT_SECONDS", config.wait_timeout_seconds
        )
        config.poll_interval_seconds = _parse_float(
            "POLL_INTERVAL_SECONDS", config.poll_interval_seconds
        )
        config.api_max_retries = _parse_int("API_MAX_RETRIES", config.api_max_retries)

        config.region = os.environ.get(
            "AWS_REGION", os.environ.get("AWS_DEFAULT_REGION", "us-east-1")
        )
        config.role_arn = os.environ.get("ROLE_ARN", "")

        log_level_value = os.environ.get("LOG_LEVEL", "INFO").upper().strip()
        if log_level_value in VALID_LOG_LEVELS:
            config.log_level = log_level_value
        else:
            _config_logger.warning(f"Invalid LOG_LEVEL '{log_level_value}', defaulting to INFO")
            config.log_level = "INFO"

        if validate:
            errors = config.validate()
            if errors:
                raise ConfigurationError(
                    f"Configuration validation failed: {errors}", errors=errors
                )

        return config

    def validate(self) -> List[str]:
        """Validate configuration and return list of errors.

        Returns:
            List of error messages. Empty list if configuration is valid.
        """
        errors = []

        if not self.vpc_id and not self.cluster_name:
            errors.append("VPC ID not set (provide a VPC ID or a cluster name)")

        if self.vpc_id:
            errors.extend(InputValidator.validate_vpc_id(self.vpc_id).errors)

        if self.cluster_name:
            errors.extend(InputValidator.validate_cluster_name(self.cluster_name).errors)

        if self.delete_cluster and not self.cluster_name:
            errors.append("Cluster teardown requested but no cluster name was given")

        errors.extend(InputValidator.validate_region(self.region).errors)

        if self.role_arn:
            errors.extend(InputValidator.validate_role_arn(self.role_arn).errors)

        if self.autoscaling_tag_key:
            errors.extend(InputValidator.validate_tag_key(self.autoscaling_tag_key).errors)
            errors.extend(InputValidator.validate_tag_value(self.autoscaling_tag_value).errors)

        for name in sorted(self.include | self.exclude):
            try:
                ResourceCategory.from_name(name)
            except ValueError:
                errors.append(f"Unknown resource category: {name}")

        if self.tries < 1:
            errors.append("TRIES must be a positive integer (at least 1)")

        if self.retry_delay_seconds < 0:
            errors.append("RETRY_DELAY_SECONDS cannot be negative")

        if self.wait_timeout_seconds <= 0:
            errors.append("WAIT_TIMEOUT_SECONDS must be positive")

        if self.poll_interval_seconds <= 0:
            errors.append("POLL_INTERVAL_SECONDS must be positive")

        if self.api_max_retries < 0:
            errors.append("API_MAX_RETRIES cannot be negative")

        return errors

    def enabled_categories(self) -> FrozenSet[ResourceCategory]:
        """Effective category set: include minus exclude.

        Raises:
            ConfigurationError: If either set names an unknown category.
        """
        return resolve_categories(self.include) - resolve_categories(self.exclude)

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(tries=self.tries, delay_seconds=self.retry_delay_seconds)

    def get_numeric_log_level(self) -> int:
        """Get the numeric log level for use with logging module."""
        return getattr(logging, self.log_level, logging.INFO)


def configure_logging(config: Optional["TeardownConfig"] = None) -> logging.Logger:
    """Configure logging based on LOG_LEVEL environment variable or config.

    Args:
        config: Optional TeardownConfig instance. If not provided, reads from environment.

    Returns:
        Configured logger instance for the reaper.
    """
    if config is None:
        log_level_str = os.environ.get("LOG_LEVEL", "INFO").upper().strip()
        if log_level_str not in VALID_LOG_LEVELS:
            logging.warning(f"Invalid LOG_LEVEL '{log_level_str}', defaulting to INFO")
            log_level_str = "INFO"
        log_level = getattr(logging, log_level_str)
    else:
        log_level = config.get_numeric_log_level()

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        force=True,  # Override any existing configuration
    )

    reaper_logger = logging.getLogger("vpcreaper")
    reaper_logger.setLevel(log_level)

    return reaper_logger
