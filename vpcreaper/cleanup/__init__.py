"""Category handlers and the teardown orchestrator."""

from vpcreaper.cleanup.accumulator import AccumulatedError, ErrorAccumulator, ResourceActionError
from vpcreaper.cleanup.base import CategoryHandler, TeardownContext
from vpcreaper.cleanup.engine import TeardownOrchestrator
from vpcreaper.cleanup.probe import VpcDeletionProbe
from vpcreaper.cleanup.registry import CategoryDescriptor, CategoryRegistry, build_registry
from vpcreaper.cleanup.waiter import (
    CancellationToken,
    Poller,
    TeardownCancelledError,
    WaitTimeoutError,
)

__all__ = [
    "AccumulatedError",
    "CancellationToken",
    "CategoryDescriptor",
    "CategoryHandler",
    "CategoryRegistry",
    "ErrorAccumulator",
    "Poller",
    "ResourceActionError",
    "TeardownCancelledError",
    "TeardownContext",
    "TeardownOrchestrator",
    "VpcDeletionProbe",
    "WaitTimeoutError",
    "build_registry",
]
