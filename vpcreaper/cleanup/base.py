"""Shared machinery for per-category teardown handlers.

Each handler owns one ResourceCategory and exposes three operations:

- ``enumerate(vpc_id)`` lists candidate resources, following pagination
- ``is_associated(resource, vpc_id)`` decides whether a candidate belongs to
  the target VPC
- ``delete(vpc_id, resources)`` attempts every resource and returns an
  AccumulatedError (empty on success)

Every provider call goes through ``_call`` (or ``_paginate``) so that the
cancellation token is checked first and throttling is retried.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from botocore.exceptions import ClientError

from vpcreaper.cleanup.accumulator import AccumulatedError, ErrorAccumulator, ResourceActionError
from vpcreaper.cleanup.waiter import CancellationToken, Poller, TeardownCancelledError
from vpcreaper.filters.tags import TagFilter
from vpcreaper.models import ResourceCategory, VpcResource
from vpcreaper.utils.aws_client import RetryStrategy
from vpcreaper.utils.logging import log_cleanup_action, log_debug_api_call, log_error_with_details

logger = logging.getLogger(__name__)


def error_code(error: BaseException) -> str:
    """AWS error code of a ClientError, or an empty string."""
    if isinstance(error, ClientError):
        return error.response.get("Error", {}).get("Code", "")
    return ""


def is_not_found(error: BaseException) -> bool:
    """True for provider errors meaning the target no longer exists."""
    code = error_code(error)
    return code.endswith(".NotFound") or code in {
        "ResourceNotFoundException",
        "LoadBalancerNotFound",
        "NotFoundException",
    }


def tags_to_dict(tags: Optional[List[Dict[str, str]]]) -> Dict[str, str]:
    return {t["Key"]: t.get("Value", "") for t in tags or [] if "Key" in t}


@dataclass
class TeardownContext:
    """Collaborators shared by every handler in a run."""

    token: CancellationToken = field(default_factory=CancellationToken)
    poller: Optional[Poller] = None
    retry_strategy: RetryStrategy = field(default_factory=RetryStrategy)
    cluster_name: str = ""
    autoscaling_filter: TagFilter = field(default_factory=TagFilter)

    def __post_init__(self) -> None:
        if self.poller is None:
            self.poller = Poller(token=self.token)


class CategoryHandler(ABC):
    """Base class for one resource category."""

    category: ResourceCategory
    service = "ec2"

    def __init__(self, client: Any, context: Optional[TeardownContext] = None):
        self.client = client
        self.context = context or TeardownContext()

    @property
    def resource_type(self) -> str:
        return self.category.value

    @abstractmethod
    def enumerate(self, vpc_id: str) -> List[VpcResource]:
        """List candidate resources for vpc_id."""
        raise NotImplementedError

    def is_associated(self, resource: VpcResource, vpc_id: str) -> bool:
        """Default association check: the resource's VPC is the target."""
        return resource.vpc_id == vpc_id

    def delete(self, vpc_id: str, resources: List[VpcResource]) -> AccumulatedError:
        """Attempt every resource, continuing past individual failures."""
        errors = ErrorAccumulator()
        for resource in resources:
            self._attempt(errors, "delete", resource.resource_id, self.delete_one, vpc_id, resource)
        return errors.combined()

    def delete_one(self, vpc_id: str, resource: VpcResource) -> None:
        raise NotImplementedError(f"{type(self).__name__} does not delete single resources")

    def _call(self, operation_name: str, **kwargs: Any) -> Any:
        """Invoke one provider operation under cancellation and retry."""
        return self._call_on(self.client, self.service, operation_name, **kwargs)

    def _call_on(self, client: Any, service: str, operation_name: str, **kwargs: Any) -> Any:
        self.context.token.raise_if_cancelled()
        log_debug_api_call(operation_name, service, kwargs)
        operation = getattr(client, operation_name)
        return self.context.retry_strategy.execute_with_retry(operation, **kwargs)

    def _paginate(self, operation_name: str, result_key: str, **kwargs: Any) -> List[Any]:
        """Collect result_key items across every page of operation_name."""
        return self._paginate_on(self.client, self.service, operation_name, result_key, **kwargs)

    def _paginate_on(
        self, client: Any, service: str, operation_name: str, result_key: str, **kwargs: Any
    ) -> List[Any]:
        self.context.token.raise_if_cancelled()
        log_debug_api_call(operation_name, service, kwargs)
        paginator = client.get_paginator(operation_name)

        def collect() -> List[Any]:
            items: List[Any] = []
            for page in paginator.paginate(**kwargs):
                self.context.token.raise_if_cancelled()
                items.extend(page.get(result_key, []))
            return items

        return self.context.retry_strategy.execute_with_retry(collect)

    def _detach_from(
        self,
        errors: ErrorAccumulator,
        resource: VpcResource,
        vpc_id: str,
        detach: Callable[[str, str], Any],
    ) -> bool:
        """Detach resource from each active attachment to vpc_id.

        Attachments to other VPCs, or already detaching, are left alone.

        Returns:
            False if any detach failed.
        """
        detached = True
        for attachment in resource.attachments:
            if not attachment.is_active_for(vpc_id):
                continue
            if not self._attempt(errors, "detach", resource.resource_id, detach, resource.resource_id, vpc_id):
                detached = False
        return detached

    def _attempt(
        self,
        errors: ErrorAccumulator,
        action: str,
        resource_id: str,
        operation: Callable[..., Any],
        *args: Any,
    ) -> bool:
        """Run one per-resource operation, recording any failure.

        A target that is already gone counts as success. Cancellation is
        never recorded here; it propagates to the orchestrator.

        Returns:
            True if the operation succeeded (or the target was absent).
        """
        try:
            operation(*args)
        except TeardownCancelledError:
            raise
        except Exception as e:
            if is_not_found(e):
                logger.info(f"{self.resource_type} {resource_id} already gone")
                return True
            log_error_with_details(self.resource_type, resource_id, e, {"action": action})
            errors.append(ResourceActionError(action, self.resource_type, resource_id, e))
            return False
        log_cleanup_action(action, self.resource_type, resource_id, success=True)
        return True
