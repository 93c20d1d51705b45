"""Command-line entry point using Typer."""

import logging
import signal
from typing import Any, List, Optional

import typer
from botocore.exceptions import ClientError

from vpcreaper.cleanup.waiter import CancellationToken
from vpcreaper.handler import execute_teardown
from vpcreaper.utils.config import (
    VALID_LOG_LEVELS,
    ConfigurationError,
    TeardownConfig,
    configure_logging,
    parse_category_names,
)

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="vpc-reaper",
    help="VPC Resource Reaper - delete a VPC and everything that depends on it",
    add_completion=False,
)


def install_signal_handlers(token: CancellationToken) -> None:
    """Cancel token on SIGINT or SIGTERM so waits and passes stop promptly."""

    def handle(signum: int, frame: Any) -> None:
        name = signal.Signals(signum).name
        logger.warning(f"Received {name}, cancelling teardown")
        token.cancel(f"cancelled by {name}")

    signal.signal(signal.SIGINT, handle)
    signal.signal(signal.SIGTERM, handle)


def build_config(
    vpc_id: Optional[str] = None,
    cluster_name: Optional[str] = None,
    delete_cluster: Optional[bool] = None,
    include: Optional[List[str]] = None,
    exclude: Optional[List[str]] = None,
    autoscaling_tag_key: Optional[str] = None,
    autoscaling_tag_value: Optional[str] = None,
    tries: Optional[int] = None,
    retry_delay: Optional[float] = None,
    wait_timeout: Optional[float] = None,
    poll_interval: Optional[float] = None,
    region: Optional[str] = None,
    role_arn: Optional[str] = None,
    log_level: Optional[str] = None,
) -> TeardownConfig:
    """Environment configuration with command-line values layered on top.

    Raises:
        ConfigurationError: If the result is invalid.
    """
    config = TeardownConfig.from_environment(validate=False)

    if vpc_id is not None:
        config.vpc_id = vpc_id.strip()
    if cluster_name is not None:
        config.cluster_name = cluster_name.strip()
    if delete_cluster is not None:
        config.delete_cluster = delete_cluster
    if include:
        config.include = parse_category_names(include)
    if exclude:
        config.exclude = parse_category_names(exclude)
    if autoscaling_tag_key is not None:
        config.autoscaling_tag_key = autoscaling_tag_key
    if autoscaling_tag_value is not None:
        config.autoscaling_tag_value = autoscaling_tag_value
    if tries is not None:
        config.tries = tries
    if retry_delay is not None:
        config.retry_delay_seconds = retry_delay
    if wait_timeout is not None:
        config.wait_timeout_seconds = wait_timeout
    if poll_interval is not None:
        config.poll_interval_seconds = poll_interval
    if region is not None:
        config.region = region
    if role_arn is not None:
        config.role_arn = role_arn
    if log_level is not None:
        config.log_level = log_level.upper().strip()

    errors = config.validate()
    if config.log_level not in VALID_LOG_LEVELS:
        errors.append(f"Invalid log level: {log_level}")
    if errors:
        raise ConfigurationError(f"Configuration validation failed: {errors}", errors=errors)
    return config


@app.command()
def teardown(
    vpc_id: Optional[str] = typer.Option(
        None, "--vpc-id", help="VPC to delete (derived from --cluster-name when omitted)"
    ),
    cluster_name: Optional[str] = typer.Option(
        None, "--cluster-name", help="EKS cluster that owns the VPC"
    ),
    delete_cluster: Optional[bool] = typer.Option(
        None, "--delete-cluster/--keep-cluster", help="Also delete node groups, the cluster and its stacks"
    ),
    include: Optional[List[str]] = typer.Option(
        None, "--include", help="Resource categories to delete (repeatable or comma-separated)"
    ),
    exclude: Optional[List[str]] = typer.Option(
        None, "--exclude", help="Resource categories to skip (repeatable or comma-separated)"
    ),
    autoscaling_tag_key: Optional[str] = typer.Option(
        None, "--autoscaling-tag-key", help="Extra tag key identifying Auto Scaling groups"
    ),
    autoscaling_tag_value: Optional[str] = typer.Option(
        None, "--autoscaling-tag-value", help="Value for --autoscaling-tag-key (default: owned)"
    ),
    tries: Optional[int] = typer.Option(None, "--tries", help="Maximum number of teardown passes (default: 1)"),
    retry_delay: Optional[float] = typer.Option(
        None, "--retry-delay", help="Seconds to wait between passes (default: 10)"
    ),
    wait_timeout: Optional[float] = typer.Option(
        None, "--wait-timeout", help="Seconds to wait for terminations and deletions (default: 300)"
    ),
    poll_interval: Optional[float] = typer.Option(
        None, "--poll-interval", help="Seconds between status polls (default: 15)"
    ),
    region: Optional[str] = typer.Option(None, "--region", help="AWS region"),
    role_arn: Optional[str] = typer.Option(None, "--role-arn", help="IAM role to assume"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Log level (default: INFO)"),
) -> None:
    """Delete every dependent of a VPC in dependency order, then the VPC."""
    try:
        config = build_config(
            vpc_id=vpc_id,
            cluster_name=cluster_name,
            delete_cluster=delete_cluster,
            include=include,
            exclude=exclude,
            autoscaling_tag_key=autoscaling_tag_key,
            autoscaling_tag_value=autoscaling_tag_value,
            tries=tries,
            retry_delay=retry_delay,
            wait_timeout=wait_timeout,
            poll_interval=poll_interval,
            region=region,
            role_arn=role_arn,
            log_level=log_level,
        )
    except ConfigurationError as e:
        for error in e.errors or [e.message]:
            typer.echo(f"Error: {error}", err=True)
        raise typer.Exit(code=1)

    configure_logging(config)

    token = CancellationToken()
    install_signal_handlers(token)

    try:
        result = execute_teardown(config, token=token)
    except ConfigurationError as e:
        typer.echo(f"Error: {e.message}", err=True)
        raise typer.Exit(code=1)
    except ClientError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)

    if not result.succeeded:
        typer.echo(result.failure_message(), err=True)
        raise typer.Exit(code=1)

    typer.echo(f"VPC {result.vpc_id} deleted after {result.passes} pass(es)")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
