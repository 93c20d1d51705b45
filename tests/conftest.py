"""Pytest configuration and shared fixtures."""

import os
from typing import Any, Callable, Dict, List
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from vpcreaper.cleanup.base import TeardownContext
from vpcreaper.cleanup.waiter import CancellationToken, Poller
from vpcreaper.utils.aws_client import RetryStrategy

# Set AWS region for tests
os.environ.setdefault("AWS_DEFAULT_REGION", "us-east-1")
os.environ.setdefault("AWS_REGION", "us-east-1")

VPC_ID = "vpc-12345678"
OTHER_VPC_ID = "vpc-87654321"


@pytest.fixture
def vpc_id() -> str:
    return VPC_ID


@pytest.fixture
def other_vpc_id() -> str:
    return OTHER_VPC_ID


@pytest.fixture
def make_client_error() -> Callable[..., ClientError]:
    """Factory for botocore ClientErrors with a given code."""

    def factory(code: str, operation: str = "TestOperation", message: str = "error") -> ClientError:
        return ClientError({"Error": {"Code": code, "Message": message}}, operation)

    return factory


@pytest.fixture
def token() -> CancellationToken:
    return CancellationToken()


@pytest.fixture
def context(token) -> TeardownContext:
    """Teardown context that never sleeps and never retries."""
    return TeardownContext(
        token=token,
        poller=Poller(token=token, interval_seconds=0, timeout_seconds=5),
        retry_strategy=RetryStrategy(max_retries=0, sleep=lambda _: None),
    )


@pytest.fixture
def paginated_client() -> Callable[[Dict[str, List[Dict[str, Any]]]], MagicMock]:
    """Build a MagicMock client whose paginators return canned pages.

    Pages are keyed by operation name; unknown operations yield one empty page.
    """

    def factory(pages_by_operation: Dict[str, List[Dict[str, Any]]]) -> MagicMock:
        client = MagicMock()

        def get_paginator(operation_name: str) -> MagicMock:
            paginator = MagicMock()
            paginator.paginate.return_value = pages_by_operation.get(operation_name, [{}])
            return paginator

        client.get_paginator.side_effect = get_paginator
        return client

    return factory
