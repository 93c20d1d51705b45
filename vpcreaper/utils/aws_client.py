"""AWS client management for the VPC Resource Reaper."""

import logging
import random
import time
from collections.abc import Callable
from typing import Any, TypeVar

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Bounds a single in-flight HTTP call so cancellation is observed promptly
CONNECT_TIMEOUT_SECONDS = 10
READ_TIMEOUT_SECONDS = 60


class RetryStrategy:
    """Retries a single provider call on throttling and transient server errors.

    Backoff is exponential with optional jitter. The sleep function is
    injectable so a run's cancellation token can interrupt the backoff.
    Errors outside RETRYABLE_CODES, and non-ClientError exceptions, are
    raised on the first occurrence.
    """

    # EC2 throttles with RequestLimitExceeded, ELB/EKS/CloudFormation with
    # Throttling or ThrottlingException
    RETRYABLE_CODES = frozenset(
        {
            "Throttling",
            "ThrottlingException",
            "RequestLimitExceeded",
            "TooManyRequestsException",
            "ServiceUnavailable",
            "ServiceUnavailableException",
            "InternalError",
            "InternalFailure",
            "RequestTimeout",
        }
    )

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        jitter: bool = True,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.max_retries = max(0, max_retries)
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.jitter = jitter
        self._sleep = sleep

    def execute_with_retry(self, operation: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Call operation, retrying retryable ClientErrors up to max_retries times."""
        attempt = 0
        while True:
            try:
                return operation(*args, **kwargs)
            except ClientError as e:
                code = e.response.get("Error", {}).get("Code", "")
                if attempt >= self.max_retries or not self._is_retryable_error(code):
                    raise
                delay = self._calculate_delay(attempt)
                attempt += 1
                logger.warning(f"{code}: retry {attempt}/{self.max_retries} in {delay:.2f}s")
                self._sleep(delay)

    def _is_retryable_error(self, error_code: str) -> bool:
        return error_code in self.RETRYABLE_CODES

    def _calculate_delay(self, attempt: int) -> float:
        """Calculate delay with exponential backoff and optional jitter."""
        delay: float = min(self.base_delay * (2**attempt), self.max_delay)
        if self.jitter:
            delay *= 0.5 + random.random() * 0.5
        return delay


class AWSClientManager:
    """Manages boto3 clients, with optional role assumption."""

    def __init__(
        self,
        region: str = "us-east-1",
        role_arn: str | None = None,
    ):
        self.region = region
        self.role_arn = role_arn
        self._session: boto3.Session | None = None
        self._clients: dict[str, Any] = {}

    def _get_session(self) -> boto3.Session:
        """Get or create boto3 session, with role assumption if configured."""
        if self._session is not None:
            return self._session

        if self.role_arn:
            sts_client = boto3.client("sts", region_name=self.region)
            response = sts_client.assume_role(
                RoleArn=self.role_arn,
                RoleSessionName="VpcResourceReaper",
                DurationSeconds=3600,
            )
            credentials = response["Credentials"]
            self._session = boto3.Session(
                aws_access_key_id=credentials["AccessKeyId"],
                aws_secret_access_key=credentials["SecretAccessKey"],
                aws_session_token=credentials["SessionToken"],
                region_name=self.region,
            )
        else:
            self._session = boto3.Session(region_name=self.region)

        return self._session

    def get_client(self, service_name: str) -> Any:
        """Get boto3 client for specified service."""
        if service_name not in self._clients:
            session = self._get_session()
            config = Config(
                retries={"max_attempts": 0},  # We handle retries ourselves
                connect_timeout=CONNECT_TIMEOUT_SECONDS,
                read_timeout=READ_TIMEOUT_SECONDS,
            )
            self._clients[service_name] = session.client(
                service_name,
                config=config,
                region_name=self.region,  # type: ignore[call-overload]
            )
        return self._clients[service_name]

    @property
    def ec2(self) -> Any:
        return self.get_client("ec2")

    @property
    def autoscaling(self) -> Any:
        return self.get_client("autoscaling")

    @property
    def elb(self) -> Any:
        """Classic Elastic Load Balancing client."""
        return self.get_client("elb")

    @property
    def elbv2(self) -> Any:
        """Application/Network/Gateway load balancer client."""
        return self.get_client("elbv2")

    @property
    def eks(self) -> Any:
        return self.get_client("eks")

    @property
    def cloudformation(self) -> Any:
        return self.get_client("cloudformation")
