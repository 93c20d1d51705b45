"""Tests for the teardown orchestrator.

Covers the probe-first state machine, category ordering, association
filtering, best-effort passes, bounded retries and cancellation.
"""

import random
from typing import List, Optional
from unittest.mock import MagicMock

from hypothesis import given, settings
from hypothesis import strategies as st

from vpcreaper.cleanup.accumulator import AccumulatedError, ErrorAccumulator, ResourceActionError
from vpcreaper.cleanup.base import CategoryHandler, TeardownContext
from vpcreaper.cleanup.compute_manager import AutoScalingGroupHandler
from vpcreaper.cleanup.engine import TeardownOrchestrator
from vpcreaper.cleanup.probe import VpcDeletionProbe
from vpcreaper.cleanup.registry import CategoryDescriptor, CategoryRegistry
from vpcreaper.cleanup.waiter import CancellationToken, Poller, TeardownCancelledError
from vpcreaper.models import (
    ProbeResult,
    ResourceCategory,
    RetryPolicy,
    TeardownOutcome,
    VpcResource,
)
from vpcreaper.utils.aws_client import RetryStrategy

VPC_ID = "vpc-12345678"
OTHER_VPC_ID = "vpc-87654321"


class RecordingHandler(CategoryHandler):
    """Handler stub that records every call into a shared log."""

    def __init__(
        self,
        category: ResourceCategory,
        log: List[tuple],
        resources: Optional[List[VpcResource]] = None,
        fail_ids: frozenset = frozenset(),
        enumerate_error: Optional[Exception] = None,
    ):
        super().__init__(client=MagicMock())
        self.category = category
        self.log = log
        self.resources = resources or []
        self.fail_ids = fail_ids
        self.enumerate_error = enumerate_error
        self.deleted: List[str] = []

    def enumerate(self, vpc_id):
        self.log.append(("enumerate", self.category))
        if self.enumerate_error is not None:
            raise self.enumerate_error
        return list(self.resources)

    def delete(self, vpc_id, resources):
        self.log.append(("delete", self.category))
        errors = ErrorAccumulator()
        for resource in resources:
            self.deleted.append(resource.resource_id)
            if resource.resource_id in self.fail_ids:
                errors.append(
                    ResourceActionError("delete", self.resource_type, resource.resource_id, RuntimeError("refused"))
                )
        return errors.combined()


class StubProbe:
    """Probe that replays a scripted list of outcomes, repeating the last."""

    def __init__(self, *outcomes: TeardownOutcome, error: Optional[Exception] = None):
        self.outcomes = list(outcomes)
        self.error = error
        self.calls = 0

    def try_delete(self, vpc_id):
        outcome = self.outcomes[min(self.calls, len(self.outcomes) - 1)]
        self.calls += 1
        return ProbeResult(outcome, self.error if outcome is TeardownOutcome.FAILED else None)


class CountingToken(CancellationToken):
    def __init__(self):
        super().__init__()
        self.sleeps: List[float] = []

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        super().sleep(0)


def resource(resource_id: str, category: ResourceCategory, vpc_id: Optional[str] = VPC_ID) -> VpcResource:
    return VpcResource(resource_id=resource_id, category=category, vpc_id=vpc_id)


def registry_of(*handlers: CategoryHandler) -> CategoryRegistry:
    return CategoryRegistry(CategoryDescriptor(h.category, h) for h in handlers)


class TestInitialProbe:
    """Tests for the probe that precedes any pass."""

    def test_already_deletable_vpc_runs_no_handler(self):
        log: List[tuple] = []
        handler = RecordingHandler(ResourceCategory.SUBNETS, log, [resource("subnet-1", ResourceCategory.SUBNETS)])
        probe = StubProbe(TeardownOutcome.DELETED)

        result = TeardownOrchestrator(registry_of(handler), probe, RetryPolicy(tries=3)).run(VPC_ID)

        assert result.succeeded
        assert result.passes == 0
        assert probe.calls == 1
        assert log == []

    def test_missing_vpc_is_success_without_passes(self, make_client_error):
        log: List[tuple] = []
        handler = RecordingHandler(ResourceCategory.SUBNETS, log)
        ec2 = MagicMock()
        ec2.delete_vpc.side_effect = make_client_error("InvalidVpcID.NotFound", "DeleteVpc")

        result = TeardownOrchestrator(registry_of(handler), VpcDeletionProbe(ec2)).run(VPC_ID)

        assert result.succeeded
        assert result.outcome is TeardownOutcome.DELETED
        assert result.passes == 0
        assert log == []

    def test_initial_failure_is_fatal(self):
        log: List[tuple] = []
        handler = RecordingHandler(ResourceCategory.SUBNETS, log)
        error = RuntimeError("access denied")
        probe = StubProbe(TeardownOutcome.FAILED, error=error)

        result = TeardownOrchestrator(registry_of(handler), probe, RetryPolicy(tries=5, delay_seconds=0)).run(VPC_ID)

        assert not result.succeeded
        assert result.outcome is TeardownOutcome.FAILED
        assert result.fatal_error is error
        assert result.passes == 0
        assert probe.calls == 1
        assert log == []
        assert "initial delete failed" in result.failure_message()


class TestRetries:
    """Tests for the outer retry loop."""

    def test_three_tries_three_passes_two_delays(self):
        log: List[tuple] = []
        handler = RecordingHandler(ResourceCategory.SUBNETS, log, [resource("subnet-1", ResourceCategory.SUBNETS)])
        probe = StubProbe(TeardownOutcome.HAS_DEPENDENCIES)
        token = CountingToken()

        result = TeardownOrchestrator(
            registry_of(handler), probe, RetryPolicy(tries=3, delay_seconds=0), token
        ).run(VPC_ID)

        assert not result.succeeded
        assert result.passes == 3
        assert result.delays == 2
        assert token.sleeps == [0, 0]
        assert len(result.attempt_errors) == 3
        assert probe.calls == 4

        message = result.failure_message()
        for attempt in (1, 2, 3):
            assert f"attempt {attempt}" in message

    def test_success_on_second_pass_stops_retrying(self):
        log: List[tuple] = []
        handler = RecordingHandler(ResourceCategory.SUBNETS, log, [resource("subnet-1", ResourceCategory.SUBNETS)])
        probe = StubProbe(
            TeardownOutcome.HAS_DEPENDENCIES,
            TeardownOutcome.HAS_DEPENDENCIES,
            TeardownOutcome.DELETED,
        )

        result = TeardownOrchestrator(
            registry_of(handler), probe, RetryPolicy(tries=5, delay_seconds=0)
        ).run(VPC_ID)

        assert result.succeeded
        assert result.passes == 2
        assert result.delays == 1

    def test_failure_after_pass_is_recorded_and_retried(self):
        log: List[tuple] = []
        handler = RecordingHandler(ResourceCategory.SUBNETS, log)
        error = RuntimeError("internal error")
        probe = StubProbe(TeardownOutcome.HAS_DEPENDENCIES, TeardownOutcome.FAILED, error=error)

        result = TeardownOrchestrator(
            registry_of(handler), probe, RetryPolicy(tries=2, delay_seconds=0)
        ).run(VPC_ID)

        assert not result.succeeded
        assert result.passes == 2
        assert all(error in list(errors) for errors in result.attempt_errors)


@settings(max_examples=50, deadline=10000)
@given(tries=st.integers(min_value=1, max_value=8))
def test_always_blocked_vpc_runs_exactly_tries_passes(tries):
    """A VPC that always has dependencies gets exactly `tries` passes."""
    log: List[tuple] = []
    handler = RecordingHandler(ResourceCategory.SUBNETS, log)
    probe = StubProbe(TeardownOutcome.HAS_DEPENDENCIES)

    result = TeardownOrchestrator(
        registry_of(handler), probe, RetryPolicy(tries=tries, delay_seconds=0)
    ).run(VPC_ID)

    assert not result.succeeded
    assert result.passes == tries
    assert result.delays == tries - 1
    assert log.count(("enumerate", ResourceCategory.SUBNETS)) == tries
    assert probe.calls == tries + 1


class TestOrdering:
    """Tests for deletion order within a pass."""

    def test_categories_run_in_declared_order(self):
        log: List[tuple] = []
        handlers = [
            RecordingHandler(c, log, [resource(f"{c.value}-1", c)]) for c in reversed(list(ResourceCategory))
        ]
        probe = StubProbe(TeardownOutcome.HAS_DEPENDENCIES, TeardownOutcome.DELETED)

        TeardownOrchestrator(registry_of(*handlers), probe).run(VPC_ID)

        enumerated = [category for action, category in log if action == "enumerate"]
        assert enumerated == list(ResourceCategory)

    def test_disabled_categories_are_skipped(self):
        log: List[tuple] = []
        enabled = RecordingHandler(ResourceCategory.SUBNETS, log)
        disabled = RecordingHandler(ResourceCategory.INSTANCES, log)
        registry = CategoryRegistry(
            [
                CategoryDescriptor(ResourceCategory.SUBNETS, enabled, enabled=True),
                CategoryDescriptor(ResourceCategory.INSTANCES, disabled, enabled=False),
            ]
        )

        TeardownOrchestrator(registry, StubProbe(TeardownOutcome.HAS_DEPENDENCIES)).run(VPC_ID)

        assert ("enumerate", ResourceCategory.INSTANCES) not in log


@settings(max_examples=100, deadline=10000)
@given(
    selected=st.sets(st.sampled_from(list(ResourceCategory)), min_size=1),
    seed=st.integers(min_value=0, max_value=10_000),
)
def test_handler_order_matches_category_order(selected, seed):
    """Whatever the registration order, handlers run in category order."""
    log: List[tuple] = []
    categories = list(selected)
    random.Random(seed).shuffle(categories)
    handlers = [RecordingHandler(c, log, [resource(f"r-{c.value}", c)]) for c in categories]

    orchestrator = TeardownOrchestrator(registry_of(*handlers), StubProbe(TeardownOutcome.HAS_DEPENDENCIES))
    orchestrator.run_pass(VPC_ID)

    observed = [category for action, category in log if action == "delete"]
    assert observed == sorted(selected, key=lambda c: c.position)


class TestAssociationFiltering:
    """Tests that only resources of the target VPC reach delete."""

    def test_foreign_resources_never_deleted(self):
        log: List[tuple] = []
        handler = RecordingHandler(
            ResourceCategory.SUBNETS,
            log,
            [
                resource("subnet-mine", ResourceCategory.SUBNETS),
                resource("subnet-theirs", ResourceCategory.SUBNETS, OTHER_VPC_ID),
                resource("subnet-none", ResourceCategory.SUBNETS, None),
            ],
        )

        TeardownOrchestrator(registry_of(handler), StubProbe(TeardownOutcome.HAS_DEPENDENCIES)).run(VPC_ID)

        assert handler.deleted == ["subnet-mine"]

    def test_delete_not_called_when_nothing_associated(self):
        log: List[tuple] = []
        handler = RecordingHandler(
            ResourceCategory.SUBNETS, log, [resource("subnet-theirs", ResourceCategory.SUBNETS, OTHER_VPC_ID)]
        )

        TeardownOrchestrator(registry_of(handler), StubProbe(TeardownOutcome.HAS_DEPENDENCIES)).run(VPC_ID)

        assert ("delete", ResourceCategory.SUBNETS) not in log


@settings(max_examples=100, deadline=10000)
@given(owners=st.lists(st.sampled_from([VPC_ID, OTHER_VPC_ID, None]), max_size=15))
def test_only_associated_resources_are_deleted(owners):
    """A resource whose VPC does not match is never passed to delete."""
    log: List[tuple] = []
    resources = [resource(f"sg-{i}", ResourceCategory.SECURITY_GROUPS, owner) for i, owner in enumerate(owners)]
    handler = RecordingHandler(ResourceCategory.SECURITY_GROUPS, log, resources)

    TeardownOrchestrator(registry_of(handler), StubProbe(TeardownOutcome.HAS_DEPENDENCIES)).run_pass(VPC_ID)

    assert handler.deleted == [r.resource_id for r in resources if r.vpc_id == VPC_ID]


class TestBestEffortPass:
    """Tests that one failing category or resource never stops the pass."""

    def test_enumerate_failure_does_not_stop_later_categories(self):
        log: List[tuple] = []
        broken = RecordingHandler(
            ResourceCategory.INSTANCES, log, enumerate_error=RuntimeError("describe failed")
        )
        later = RecordingHandler(ResourceCategory.SUBNETS, log, [resource("subnet-1", ResourceCategory.SUBNETS)])

        errors = TeardownOrchestrator(registry_of(broken, later), StubProbe(TeardownOutcome.DELETED)).run_pass(VPC_ID)

        assert later.deleted == ["subnet-1"]
        assert len(errors) == 1
        assert isinstance(errors.errors[0], ResourceActionError)
        assert errors.errors[0].action == "enumerate"

    def test_one_failed_resource_does_not_skip_siblings(self):
        log: List[tuple] = []
        resources = [resource(f"subnet-{i}", ResourceCategory.SUBNETS) for i in range(5)]
        handler = RecordingHandler(ResourceCategory.SUBNETS, log, resources, fail_ids=frozenset({"subnet-2"}))

        errors = TeardownOrchestrator(registry_of(handler), StubProbe(TeardownOutcome.DELETED)).run_pass(VPC_ID)

        assert handler.deleted == [r.resource_id for r in resources]
        assert len(errors) == 1
        assert "subnet-2" in str(errors)

    def test_errors_from_all_categories_are_combined(self):
        log: List[tuple] = []
        first = RecordingHandler(
            ResourceCategory.INSTANCES, log, [resource("i-1", ResourceCategory.INSTANCES)], fail_ids=frozenset({"i-1"})
        )
        second = RecordingHandler(
            ResourceCategory.SUBNETS, log, [resource("subnet-1", ResourceCategory.SUBNETS)], fail_ids=frozenset({"subnet-1"})
        )

        errors = TeardownOrchestrator(registry_of(first, second), StubProbe(TeardownOutcome.DELETED)).run_pass(VPC_ID)

        assert isinstance(errors, AccumulatedError)
        assert len(errors) == 2


class TestCancellation:
    """Tests for cooperative cancellation during a run."""

    def test_cancel_during_pass_stops_remaining_categories(self):
        log: List[tuple] = []
        token = CancellationToken()

        class CancellingHandler(RecordingHandler):
            def delete(self, vpc_id, resources):
                token.cancel("cancelled by test")
                raise TeardownCancelledError("Teardown cancelled by test")

        first = CancellingHandler(ResourceCategory.INSTANCES, log, [resource("i-1", ResourceCategory.INSTANCES)])
        later = RecordingHandler(ResourceCategory.SUBNETS, log, [resource("subnet-1", ResourceCategory.SUBNETS)])
        probe = StubProbe(TeardownOutcome.HAS_DEPENDENCIES)

        result = TeardownOrchestrator(
            registry_of(first, later), probe, RetryPolicy(tries=3, delay_seconds=0), token
        ).run(VPC_ID)

        assert not result.succeeded
        assert result.passes == 1
        assert ("enumerate", ResourceCategory.SUBNETS) not in log
        assert any(isinstance(e, TeardownCancelledError) for e in result.attempt_errors[0])
        assert isinstance(result.fatal_error, TeardownCancelledError)

    def test_cancel_during_delay_reports_failed(self):
        log: List[tuple] = []
        handler = RecordingHandler(ResourceCategory.SUBNETS, log, [resource("subnet-1", ResourceCategory.SUBNETS)])
        token = CountingToken()

        class CancelOnSecondProbe(StubProbe):
            def try_delete(self, vpc_id):
                result = super().try_delete(vpc_id)
                if self.calls == 2:
                    token.cancel("SIGTERM")
                return result

        probe = CancelOnSecondProbe(TeardownOutcome.HAS_DEPENDENCIES)

        result = TeardownOrchestrator(
            registry_of(handler), probe, RetryPolicy(tries=3, delay_seconds=30), token
        ).run(VPC_ID)

        assert not result.succeeded
        assert result.passes == 1
        assert result.delays == 0
        assert result.outcome is TeardownOutcome.FAILED
        message = result.failure_message()
        assert "stopped after 1 attempt(s): Teardown SIGTERM" in message
        assert "all" not in message.splitlines()[0]


def test_scaling_group_scenario_succeeds_in_one_pass(make_client_error):
    """One group with capacity 2 and two running members is torn down in one pass."""
    autoscaling = MagicMock()
    autoscaling.get_paginator.return_value.paginate.return_value = [
        {
            "AutoScalingGroups": [
                {
                    "AutoScalingGroupName": "workers",
                    "AutoScalingGroupARN": "arn:aws:autoscaling:us-east-1:123456789012:autoScalingGroup:1:workers",
                    "DesiredCapacity": 2,
                    "MinSize": 2,
                    "MaxSize": 2,
                    "VPCZoneIdentifier": "subnet-a,subnet-b",
                    "Instances": [{"InstanceId": "i-1"}, {"InstanceId": "i-2"}],
                }
            ]
        }
    ]

    describe_instances_pages = iter(
        [
            [{"Reservations": [{"Instances": [
                {"InstanceId": "i-1", "State": {"Name": "shutting-down"}},
                {"InstanceId": "i-2", "State": {"Name": "shutting-down"}},
            ]}]}],
            [{"Reservations": [{"Instances": [
                {"InstanceId": "i-1", "State": {"Name": "terminated"}},
                {"InstanceId": "i-2", "State": {"Name": "terminated"}},
            ]}]}],
        ]
    )

    def ec2_paginator(operation_name):
        paginator = MagicMock()
        if operation_name == "describe_subnets":
            paginator.paginate.return_value = [{"Subnets": [{"SubnetId": "subnet-a"}, {"SubnetId": "subnet-b"}]}]
        elif operation_name == "describe_instances":
            paginator.paginate.side_effect = lambda **kwargs: next(describe_instances_pages)
        return paginator

    ec2 = MagicMock()
    ec2.get_paginator.side_effect = ec2_paginator
    ec2.delete_vpc.side_effect = [make_client_error("DependencyViolation", "DeleteVpc"), None]

    token = CancellationToken()
    context = TeardownContext(
        token=token,
        poller=Poller(token=token, interval_seconds=0, timeout_seconds=5),
        retry_strategy=RetryStrategy(max_retries=0),
    )
    handler = AutoScalingGroupHandler(autoscaling, ec2, context)

    result = TeardownOrchestrator(
        registry_of(handler), VpcDeletionProbe(ec2, token), RetryPolicy(tries=3, delay_seconds=0), token
    ).run(VPC_ID)

    assert result.succeeded
    assert result.passes == 1
    assert result.total_errors() == 0
    autoscaling.update_auto_scaling_group.assert_called_once_with(
        AutoScalingGroupName="workers", DesiredCapacity=0, MinSize=0, MaxSize=0
    )
    autoscaling.delete_auto_scaling_group.assert_called_once_with(AutoScalingGroupName="workers")
