"""Teardown orchestration engine.

Drives the teardown state machine for one VPC:

1. Probe: try to delete the VPC. If it is gone (or deletes), finish without
   touching any category. If the probe fails for any reason other than
   remaining dependencies, abort without retrying.
2. Pass: for each enabled category, in deletion order, enumerate, keep only
   resources associated with the VPC, and delete them. Failures are
   accumulated; a failing category never stops the pass.
3. Probe again. On remaining dependencies, sleep the retry delay and run
   another pass, up to the configured number of tries.
"""

import logging
from typing import List, Optional

from vpcreaper.cleanup.accumulator import AccumulatedError, ErrorAccumulator, ResourceActionError
from vpcreaper.cleanup.probe import VpcDeletionProbe
from vpcreaper.cleanup.registry import CategoryDescriptor, CategoryRegistry
from vpcreaper.cleanup.waiter import CancellationToken, TeardownCancelledError
from vpcreaper.models import RetryPolicy, TeardownOutcome, TeardownResult, VpcResource
from vpcreaper.utils.logging import log_error_with_details, log_resource_scan

logger = logging.getLogger(__name__)


class TeardownOrchestrator:
    """Runs passes over the category registry until the VPC is deleted."""

    def __init__(
        self,
        registry: CategoryRegistry,
        probe: VpcDeletionProbe,
        retry_policy: Optional[RetryPolicy] = None,
        token: Optional[CancellationToken] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            registry: Category handlers in deletion order
            probe: Terminal VPC delete attempt
            retry_policy: Number of passes and delay between them
            token: Cancellation token shared with the handlers
        """
        self.registry = registry
        self.probe = probe
        self.retry_policy = retry_policy or RetryPolicy()
        self.token = token or CancellationToken()

    def run(self, vpc_id: str) -> TeardownResult:
        """Tear down vpc_id and report how it went."""
        result = TeardownResult(vpc_id=vpc_id)

        try:
            initial = self.probe.try_delete(vpc_id)
        except TeardownCancelledError as e:
            result.outcome = TeardownOutcome.FAILED
            result.fatal_error = e
            return result

        if initial.deleted:
            logger.info(f"VPC {vpc_id} deleted without running any pass")
            result.succeeded = True
            result.outcome = TeardownOutcome.DELETED
            return result

        if initial.outcome is TeardownOutcome.FAILED:
            logger.error(f"Initial delete of VPC {vpc_id} failed, aborting: {initial.error}")
            result.outcome = TeardownOutcome.FAILED
            result.fatal_error = initial.error
            return result

        for attempt in range(1, self.retry_policy.tries + 1):
            if attempt > 1:
                logger.info(f"Waiting {self.retry_policy.delay_seconds}s before attempt {attempt}")
                try:
                    self.token.sleep(self.retry_policy.delay_seconds)
                except TeardownCancelledError as e:
                    result.outcome = TeardownOutcome.FAILED
                    result.fatal_error = e
                    break
                result.delays += 1

            logger.info(f"Attempt {attempt}/{self.retry_policy.tries} for VPC {vpc_id}")
            errors = self.run_pass(vpc_id)
            result.passes += 1

            try:
                probe_result = self.probe.try_delete(vpc_id)
            except TeardownCancelledError as e:
                result.attempt_errors.append(errors)
                result.outcome = TeardownOutcome.FAILED
                result.fatal_error = e
                break

            result.outcome = probe_result.outcome
            if probe_result.outcome is TeardownOutcome.FAILED and probe_result.error is not None:
                errors = AccumulatedError(list(errors) + [probe_result.error])
            result.attempt_errors.append(errors)

            if probe_result.deleted:
                result.succeeded = True
                break

            logger.warning(
                f"Attempt {attempt} for VPC {vpc_id} did not delete it "
                f"({probe_result.outcome.value}, {len(errors)} error(s))"
            )

        if not result.succeeded:
            logger.error(result.failure_message())
        return result

    def run_pass(self, vpc_id: str) -> AccumulatedError:
        """Run every enabled category once, in order, collecting failures.

        Cancellation stops the pass and is recorded as a failure.
        """
        errors = ErrorAccumulator()
        for descriptor in self.registry.enabled():
            try:
                errors.append(self._run_category(descriptor, vpc_id))
            except TeardownCancelledError as e:
                logger.warning(f"Pass cancelled during {descriptor.name}")
                errors.append(e)
                break
        return errors.combined()

    def _run_category(self, descriptor: CategoryDescriptor, vpc_id: str) -> AccumulatedError:
        handler = descriptor.handler
        errors = ErrorAccumulator()

        try:
            candidates = handler.enumerate(vpc_id)
        except TeardownCancelledError:
            raise
        except Exception as e:
            log_error_with_details(descriptor.name, vpc_id, e, {"action": "enumerate"})
            errors.append(ResourceActionError("enumerate", descriptor.name, vpc_id, e))
            return errors.combined()

        associated: List[VpcResource] = []
        excluded: List[str] = []
        for resource in candidates:
            try:
                matches = handler.is_associated(resource, vpc_id)
            except TeardownCancelledError:
                raise
            except Exception as e:
                log_error_with_details(descriptor.name, resource.resource_id, e, {"action": "associate"})
                errors.append(
                    ResourceActionError("check association of", descriptor.name, resource.resource_id, e)
                )
                continue
            if matches:
                associated.append(resource)
            else:
                excluded.append(resource.resource_id)

        log_resource_scan(descriptor.name, [r.resource_id for r in associated], excluded)

        if associated:
            try:
                errors.append(handler.delete(vpc_id, associated))
            except TeardownCancelledError:
                raise
            except Exception as e:
                log_error_with_details(descriptor.name, vpc_id, e, {"action": "delete"})
                errors.append(ResourceActionError("delete", descriptor.name, vpc_id, e))

        return errors.combined()
