"""Teardown of traffic and compute consumers.

Handles:
- Classic and v2 load balancers, matched to the VPC client-side
- Auto Scaling groups: resize to zero, wait for members, delete
- EC2 instances: one batch terminate, then wait for termination
"""

import logging
from typing import Any, Dict, FrozenSet, List, Optional

from vpcreaper.cleanup.accumulator import AccumulatedError, ErrorAccumulator
from vpcreaper.cleanup.base import CategoryHandler, TeardownContext, tags_to_dict
from vpcreaper.filters.tags import FilterGroup, vpc_filter
from vpcreaper.models import AutoScalingGroup, LoadBalancer, ResourceCategory, VpcResource

logger = logging.getLogger(__name__)

TERMINATED = "terminated"

# DescribeInstances accepts at most this many values per filter
MAX_FILTER_VALUES = 200


def instance_id_filter(instance_ids: List[str]) -> List[Dict[str, Any]]:
    return [{"Name": "instance-id", "Values": list(instance_ids)}]


def wait_for_instances_terminated(
    handler: CategoryHandler, ec2_client: Any, instance_ids: List[str]
) -> int:
    """Block until every instance in instance_ids reports terminated.

    The instances are queried with an instance-id filter rather than
    InstanceIds, which fails the whole call when any one id is unknown.
    Instances missing from the response count as terminated.

    Returns:
        Number of polls performed.
    """

    def all_terminated() -> bool:
        for start in range(0, len(instance_ids), MAX_FILTER_VALUES):
            chunk = instance_ids[start : start + MAX_FILTER_VALUES]
            reservations = handler._paginate_on(
                ec2_client, "ec2", "describe_instances", "Reservations", Filters=instance_id_filter(chunk)
            )
            for reservation in reservations:
                for instance in reservation.get("Instances", []):
                    if instance.get("State", {}).get("Name") != TERMINATED:
                        return False
        return True

    return handler.context.poller.wait_until(
        all_terminated, f"instances {instance_ids} to terminate"
    )


class LoadBalancerHandler(CategoryHandler):
    """Deletes classic load balancers by name and v2 load balancers by ARN.

    Neither API filters by VPC, so every load balancer in the region is
    enumerated and the association check does the matching.
    """

    category = ResourceCategory.LOAD_BALANCERS
    service = "elb"

    def __init__(
        self,
        client: Any,
        elbv2_client: Optional[Any] = None,
        context: Optional[TeardownContext] = None,
    ):
        super().__init__(client, context)
        self.elbv2 = elbv2_client

    def enumerate(self, vpc_id: str) -> List[VpcResource]:
        load_balancers: List[VpcResource] = []

        for description in self._paginate("describe_load_balancers", "LoadBalancerDescriptions"):
            name = description.get("LoadBalancerName")
            if not name:
                continue
            load_balancers.append(
                LoadBalancer(
                    resource_id=name,
                    category=self.category,
                    vpc_id=description.get("VPCId"),
                    kind="classic",
                    name=name,
                )
            )

        if self.elbv2 is not None:
            for lb in self._paginate_on(self.elbv2, "elbv2", "describe_load_balancers", "LoadBalancers"):
                arn = lb.get("LoadBalancerArn")
                if not arn:
                    continue
                load_balancers.append(
                    LoadBalancer(
                        resource_id=arn,
                        category=self.category,
                        vpc_id=lb.get("VpcId"),
                        state=lb.get("State", {}).get("Code"),
                        kind=lb.get("Type", "application"),
                        name=lb.get("LoadBalancerName", ""),
                    )
                )

        return load_balancers

    def delete_one(self, vpc_id: str, resource: VpcResource) -> None:
        if isinstance(resource, LoadBalancer) and resource.kind != "classic":
            self._call_on(self.elbv2, "elbv2", "delete_load_balancer", LoadBalancerArn=resource.resource_id)
        else:
            self._call("delete_load_balancer", LoadBalancerName=resource.resource_id)


class AutoScalingGroupHandler(CategoryHandler):
    """Tears down Auto Scaling groups whose subnets lie in the target VPC.

    Groups are found through the context's autoscaling tag filter, one
    describe call per filter group, de-duplicated by ARN. Each returned
    group is checked again against its filter group client-side. An empty
    filter lists every group in the region.
    """

    category = ResourceCategory.AUTO_SCALING_GROUPS
    service = "autoscaling"

    def __init__(self, client: Any, ec2_client: Any, context: Optional[TeardownContext] = None):
        super().__init__(client, context)
        self.ec2 = ec2_client
        self._vpc_subnets: Dict[str, FrozenSet[str]] = {}

    def enumerate(self, vpc_id: str) -> List[VpcResource]:
        groups: Dict[str, AutoScalingGroup] = {}
        filter_groups: List[Optional[FilterGroup]] = list(self.context.autoscaling_filter) or [None]

        for filter_group in filter_groups:
            kwargs = {"Filters": filter_group.to_filters()} if filter_group else {}
            for raw in self._paginate("describe_auto_scaling_groups", "AutoScalingGroups", **kwargs):
                name = raw.get("AutoScalingGroupName")
                if not name:
                    continue
                arn = raw.get("AutoScalingGroupARN") or name
                if arn in groups:
                    continue
                group = self._to_model(raw)
                # tag-key and tag-value filters may be satisfied by two different tags
                if filter_group and not filter_group.matches_tags(group.tags):
                    logger.debug(f"Auto Scaling group {name} matched the filter on separate tags, skipping")
                    continue
                groups[arn] = group

        # Refresh the VPC's subnets once per pass for the association check
        self._vpc_subnets[vpc_id] = self._subnet_ids(vpc_id)
        return list(groups.values())

    def is_associated(self, resource: VpcResource, vpc_id: str) -> bool:
        if not isinstance(resource, AutoScalingGroup):
            return False
        if vpc_id not in self._vpc_subnets:
            self._vpc_subnets[vpc_id] = self._subnet_ids(vpc_id)
        return bool(set(resource.subnet_ids) & self._vpc_subnets[vpc_id])

    def delete(self, vpc_id: str, resources: List[VpcResource]) -> AccumulatedError:
        errors = ErrorAccumulator()
        for group in resources:
            if not isinstance(group, AutoScalingGroup):
                continue
            if group.needs_resize() and not self._attempt(
                errors, "resize", group.resource_id, self._resize, group
            ):
                continue
            if group.instance_ids and not self._attempt(
                errors, "wait", group.resource_id, self._wait_for_members, group
            ):
                continue
            self._attempt(errors, "delete", group.resource_id, self._delete_group, group)
        return errors.combined()

    def _to_model(self, raw: Dict[str, Any]) -> AutoScalingGroup:
        zone_identifier = raw.get("VPCZoneIdentifier") or ""
        return AutoScalingGroup(
            resource_id=raw["AutoScalingGroupName"],
            category=self.category,
            vpc_id=None,
            state=raw.get("Status"),
            tags=tags_to_dict(raw.get("Tags")),
            arn=raw.get("AutoScalingGroupARN", ""),
            desired_capacity=raw.get("DesiredCapacity", 0),
            min_size=raw.get("MinSize", 0),
            max_size=raw.get("MaxSize", 0),
            instance_ids=[i["InstanceId"] for i in raw.get("Instances", []) if i.get("InstanceId")],
            subnet_ids=[s.strip() for s in zone_identifier.split(",") if s.strip()],
        )

    def _subnet_ids(self, vpc_id: str) -> FrozenSet[str]:
        subnets = self._paginate_on(
            self.ec2, "ec2", "describe_subnets", "Subnets", Filters=vpc_filter(vpc_id)
        )
        return frozenset(s["SubnetId"] for s in subnets if s.get("SubnetId"))

    def _resize(self, group: AutoScalingGroup) -> None:
        self._call(
            "update_auto_scaling_group",
            AutoScalingGroupName=group.resource_id,
            DesiredCapacity=0,
            MinSize=0,
            MaxSize=0,
        )

    def _wait_for_members(self, group: AutoScalingGroup) -> None:
        wait_for_instances_terminated(self, self.ec2, group.instance_ids)

    def _delete_group(self, group: AutoScalingGroup) -> None:
        self._call("delete_auto_scaling_group", AutoScalingGroupName=group.resource_id)


class InstanceHandler(CategoryHandler):
    """Terminates every non-terminated instance in the VPC with one call."""

    category = ResourceCategory.INSTANCES

    def enumerate(self, vpc_id: str) -> List[VpcResource]:
        instances: List[VpcResource] = []
        for reservation in self._paginate(
            "describe_instances", "Reservations", Filters=vpc_filter(vpc_id)
        ):
            for instance in reservation.get("Instances", []):
                instance_id = instance.get("InstanceId")
                if not instance_id:
                    continue
                instances.append(
                    VpcResource(
                        resource_id=instance_id,
                        category=self.category,
                        vpc_id=instance.get("VpcId"),
                        state=instance.get("State", {}).get("Name"),
                        tags=tags_to_dict(instance.get("Tags")),
                    )
                )
        return instances

    def delete(self, vpc_id: str, resources: List[VpcResource]) -> AccumulatedError:
        errors = ErrorAccumulator()
        pending = [r.resource_id for r in resources if r.state != TERMINATED]
        if not pending:
            logger.info("All instances already terminated")
            return errors.combined()

        self._attempt(errors, "terminate", ",".join(pending), self._terminate_and_wait, pending)
        return errors.combined()

    def _terminate_and_wait(self, instance_ids: List[str]) -> None:
        response = self._call("terminate_instances", InstanceIds=instance_ids)
        terminating = [
            i["InstanceId"]
            for i in response.get("TerminatingInstances", [])
            if i.get("InstanceId") and i.get("CurrentState", {}).get("Name") != TERMINATED
        ]
        if terminating:
            wait_for_instances_terminated(self, self.client, terminating)
