"""Teardown entry points.

``execute_teardown`` wires configuration, AWS clients, the category registry
and the orchestrator together for one VPC. ``lambda_handler`` exposes the
same run as a serverless function whose event keys override the
environment configuration.
"""

import logging
from typing import Any, Optional

from botocore.exceptions import ClientError

from vpcreaper.cleanup.base import TeardownContext, is_not_found
from vpcreaper.cleanup.engine import TeardownOrchestrator
from vpcreaper.cleanup.probe import VpcDeletionProbe
from vpcreaper.cleanup.registry import build_registry
from vpcreaper.cleanup.waiter import CancellationToken, Poller
from vpcreaper.filters.tags import autoscaling_tag_filter
from vpcreaper.models import TeardownResult
from vpcreaper.utils.aws_client import AWSClientManager, RetryStrategy
from vpcreaper.utils.config import (
    ConfigurationError,
    TeardownConfig,
    configure_logging,
    parse_category_names,
)
from vpcreaper.utils.logging import log_execution_complete, log_execution_start
from vpcreaper.utils.security import LogSanitizer

logger = logging.getLogger(__name__)


def resolve_vpc_id(config: TeardownConfig, eks_client: Any) -> str:
    """Return the configured VPC, or the VPC of the configured cluster.

    Raises:
        ConfigurationError: If neither is set, or the cluster does not exist.
    """
    if config.vpc_id:
        return config.vpc_id
    if not config.cluster_name:
        raise ConfigurationError("VPC ID not set", errors=["VPC ID not set"])

    try:
        response = eks_client.describe_cluster(name=config.cluster_name)
    except ClientError as e:
        if is_not_found(e):
            message = f"Cluster {config.cluster_name} not found, cannot derive its VPC"
            raise ConfigurationError(message, errors=[message]) from e
        raise

    vpc_id = response.get("cluster", {}).get("resourcesVpcConfig", {}).get("vpcId")
    if not vpc_id:
        message = f"Cluster {config.cluster_name} has no VPC"
        raise ConfigurationError(message, errors=[message])

    logger.info(f"Derived VPC {vpc_id} from cluster {config.cluster_name}")
    return vpc_id


def build_context(config: TeardownConfig, token: CancellationToken) -> TeardownContext:
    return TeardownContext(
        token=token,
        poller=Poller(
            token=token,
            interval_seconds=config.poll_interval_seconds,
            timeout_seconds=config.wait_timeout_seconds,
        ),
        retry_strategy=RetryStrategy(max_retries=config.api_max_retries, sleep=token.sleep),
        cluster_name=config.cluster_name,
        autoscaling_filter=autoscaling_tag_filter(
            config.cluster_name, config.autoscaling_tag_key, config.autoscaling_tag_value
        ),
    )


def execute_teardown(
    config: TeardownConfig,
    client_manager: Optional[AWSClientManager] = None,
    token: Optional[CancellationToken] = None,
) -> TeardownResult:
    """
    Tear down one VPC as described by config.

    Args:
        config: Validated teardown configuration
        client_manager: AWS clients; built from config when omitted
        token: Cancellation token; a fresh one when omitted

    Returns:
        The orchestrator's TeardownResult

    Raises:
        ConfigurationError: If the target VPC cannot be determined or the
            category selection is invalid.
    """
    client_manager = client_manager or AWSClientManager(
        region=config.region, role_arn=config.role_arn or None
    )
    token = token or CancellationToken()

    vpc_id = resolve_vpc_id(config, client_manager.eks)
    context = build_context(config, token)
    registry = build_registry(client_manager, config, context)

    log_execution_start(vpc_id, config.region, registry.enabled_names(), config.tries)

    orchestrator = TeardownOrchestrator(
        registry=registry,
        probe=VpcDeletionProbe(client_manager.ec2, token),
        retry_policy=config.retry_policy(),
        token=token,
    )
    result = orchestrator.run(vpc_id)

    log_execution_complete(vpc_id, result.succeeded, result.passes, result.total_errors())
    return result


def _as_names(value: Any) -> list[str]:
    if isinstance(value, str):
        return [value]
    return [str(v) for v in value]


def apply_event_overrides(config: TeardownConfig, event: dict[str, Any]) -> TeardownConfig:
    """Override configuration fields with invocation event keys.

    Raises:
        ConfigurationError: If a numeric key cannot be parsed.
    """
    if event.get("vpc_id"):
        config.vpc_id = str(event["vpc_id"]).strip()
    if event.get("cluster_name"):
        config.cluster_name = str(event["cluster_name"]).strip()
    if "delete_cluster" in event:
        value = event["delete_cluster"]
        config.delete_cluster = value if isinstance(value, bool) else str(value).lower() in ("true", "1", "yes")
    if event.get("include"):
        config.include = parse_category_names(_as_names(event["include"]))
    if "exclude" in event:
        config.exclude = parse_category_names(_as_names(event["exclude"] or []))

    try:
        if "tries" in event:
            config.tries = int(event["tries"])
        if "retry_delay_seconds" in event:
            config.retry_delay_seconds = float(event["retry_delay_seconds"])
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid event value: {e}", errors=[str(e)]) from e

    return config


def lambda_handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    """
    Lambda entry point for the VPC Resource Reaper.

    Args:
        event: Invocation event; may override vpc_id, cluster_name,
            delete_cluster, include, exclude, tries and retry_delay_seconds
        context: Lambda context object

    Returns:
        Status code 200 when the VPC is gone, 400 for configuration errors
        and 500 when teardown failed.
    """
    try:
        config = TeardownConfig.from_environment(validate=False)
        apply_event_overrides(config, event or {})
    except ConfigurationError as e:
        configure_logging()
        logger.error(f"Configuration errors: {LogSanitizer.sanitize(e.message)}")
        return {"statusCode": 400, "body": {"errors": e.errors or [e.message]}}

    configure_logging(config)
    logger.info("Starting VPC Resource Reaper execution")

    errors = config.validate()
    if errors:
        logger.error(f"Configuration errors: {LogSanitizer.sanitize(str(errors))}")
        return {"statusCode": 400, "body": {"errors": errors}}

    try:
        result = execute_teardown(config)
    except ConfigurationError as e:
        logger.error(f"Configuration errors: {LogSanitizer.sanitize(e.message)}")
        return {"statusCode": 400, "body": {"errors": e.errors or [e.message]}}
    except ClientError as e:
        logger.error(f"Teardown could not start: {LogSanitizer.sanitize(str(e))}")
        return {"statusCode": 500, "body": {"error": LogSanitizer.sanitize(str(e))}}

    body = result.summary()
    if not result.succeeded:
        body["error"] = LogSanitizer.sanitize(result.failure_message())
    return {"statusCode": 200 if result.succeeded else 500, "body": body}
