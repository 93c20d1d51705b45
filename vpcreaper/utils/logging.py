"""Logging helpers for VPC teardown operations.

Every message that may carry provider output (error strings, resource
identifiers, API parameters) is passed through LogSanitizer before it is
emitted, so credentials echoed back in an error never reach the logs.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from vpcreaper.utils.security import LogSanitizer

logger = logging.getLogger(__name__)


def log_resource_scan(
    resource_type: str,
    resource_ids: List[str],
    excluded_ids: Optional[List[str]] = None,
) -> None:
    """Log the identifiers discovered for one category during a pass."""
    sanitized_ids = [LogSanitizer.sanitize(rid) for rid in resource_ids]
    message = f"[SCAN] {resource_type}: {len(sanitized_ids)} found {sanitized_ids}"

    if excluded_ids:
        sanitized_excluded = [LogSanitizer.sanitize(rid) for rid in excluded_ids]
        message += f", {len(sanitized_excluded)} not in target VPC {sanitized_excluded}"

    logger.info(message)


def log_cleanup_action(
    action: str,
    resource_type: str,
    resource_id: str,
    success: bool,
    error: Optional[str] = None,
) -> None:
    """Log the outcome of one provider operation on one resource."""
    sanitized_id = LogSanitizer.sanitize(resource_id)
    sanitized_error = LogSanitizer.sanitize(error) if error else None

    status = "SUCCESS" if success else "FAILED"
    message = f"[{action.upper()}] {resource_type} {sanitized_id}: {status}"

    if sanitized_error:
        message += f" - {sanitized_error}"

    if success:
        logger.info(message)
    else:
        logger.error(message)


def log_error_with_details(
    resource_type: str,
    resource_id: str,
    error: BaseException,
    context: Optional[Dict[str, Any]] = None,
) -> None:
    """Log an error together with its AWS error code and optional context."""
    sanitized_id = LogSanitizer.sanitize(resource_id)
    sanitized_error = LogSanitizer.sanitize(str(error))
    sanitized_context = LogSanitizer.sanitize_dict(context) if context else {}

    error_type = type(error).__name__
    response = getattr(error, "response", None)
    if isinstance(response, dict):
        error_code = response.get("Error", {}).get("Code")
        if error_code:
            error_type = f"{error_type}({error_code})"

    message = f"[ERROR] {resource_type} {sanitized_id}: {error_type} - {sanitized_error}"

    if sanitized_context:
        context_str = ", ".join(f"{k}={v}" for k, v in sanitized_context.items())
        message += f" (context: {context_str})"

    logger.error(message)


def log_debug_api_call(
    api_name: str,
    service: str,
    parameters: Optional[Dict[str, Any]] = None,
) -> None:
    """Log an AWS API call at DEBUG level."""
    if not logger.isEnabledFor(logging.DEBUG):
        return

    sanitized_params = LogSanitizer.sanitize_dict(parameters) if parameters else {}

    message = f"[DEBUG] API call: {service}.{api_name}"
    if sanitized_params:
        params_str = ", ".join(f"{k}={v}" for k, v in sanitized_params.items())
        message += f" ({params_str})"

    logger.debug(message)


def log_execution_start(vpc_id: str, region: str, categories: List[str], tries: int) -> None:
    """Log the banner that opens a teardown run."""
    logger.info("=" * 60)
    logger.info("VPC RESOURCE REAPER - EXECUTION START")
    logger.info("=" * 60)
    logger.info(f"VPC: {LogSanitizer.sanitize(vpc_id)}")
    logger.info(f"Region: {region}")
    logger.info(f"Categories: {', '.join(categories)}")
    logger.info(f"Tries: {tries}")
    logger.info(f"Timestamp: {datetime.now(timezone.utc).isoformat()}")
    logger.info("-" * 40)


def log_execution_complete(
    vpc_id: str,
    succeeded: bool,
    passes: int,
    total_errors: int,
) -> None:
    """Log the summary that closes a teardown run."""
    logger.info("-" * 40)
    logger.info("EXECUTION SUMMARY")
    logger.info("-" * 40)
    logger.info(f"VPC: {LogSanitizer.sanitize(vpc_id)}")
    logger.info(f"Deleted: {succeeded}")
    logger.info(f"Passes run: {passes}")
    logger.info(f"Total errors: {total_errors}")
    logger.info("=" * 60)
    logger.info("VPC RESOURCE REAPER - EXECUTION COMPLETE")
    logger.info("=" * 60)
