"""Ordered registry of category handlers.

The registry binds each ResourceCategory to its handler and to whether it is
enabled for this run. Iteration always follows ResourceCategory definition
order, whatever order descriptors were registered in.
"""

from dataclasses import dataclass
from typing import FrozenSet, Iterable, Iterator, List

from vpcreaper.cleanup.base import CategoryHandler, TeardownContext
from vpcreaper.cleanup.cluster_manager import ClusterHandler, CloudFormationStackHandler, NodeGroupHandler
from vpcreaper.cleanup.compute_manager import AutoScalingGroupHandler, InstanceHandler, LoadBalancerHandler
from vpcreaper.cleanup.connectivity_manager import VpcPeeringConnectionHandler, VpnGatewayHandler
from vpcreaper.cleanup.network_manager import (
    ElasticIpHandler,
    InternetGatewayHandler,
    NatGatewayHandler,
    NetworkAclHandler,
    NetworkInterfaceHandler,
    RouteTableHandler,
    SubnetHandler,
)
from vpcreaper.cleanup.security_manager import SecurityGroupHandler
from vpcreaper.models import ResourceCategory
from vpcreaper.utils.aws_client import AWSClientManager
from vpcreaper.utils.config import TeardownConfig


@dataclass(frozen=True)
class CategoryDescriptor:
    """One registry row: a category, its handler and whether it runs."""

    category: ResourceCategory
    handler: CategoryHandler
    enabled: bool = True

    @property
    def name(self) -> str:
        return self.category.value


class CategoryRegistry:
    """Descriptors kept in deletion order."""

    def __init__(self, descriptors: Iterable[CategoryDescriptor]):
        self._descriptors = sorted(descriptors, key=lambda d: d.category.position)
        seen = [d.category for d in self._descriptors]
        if len(seen) != len(set(seen)):
            raise ValueError("Each category may be registered only once")

    def __iter__(self) -> Iterator[CategoryDescriptor]:
        return iter(self._descriptors)

    def __len__(self) -> int:
        return len(self._descriptors)

    def enabled(self) -> List[CategoryDescriptor]:
        return [d for d in self._descriptors if d.enabled]

    def enabled_names(self) -> List[str]:
        return [d.name for d in self.enabled()]


def is_category_enabled(
    category: ResourceCategory,
    selected: FrozenSet[ResourceCategory],
    cluster_name: str,
    delete_cluster: bool,
) -> bool:
    """Whether category runs, given the selected set and the cluster settings.

    Cluster objects run only when cluster teardown was requested for a named
    cluster. Elastic IPs are scoped by cluster name, so they need one.
    """
    if category not in selected:
        return False
    if category.requires_cluster_teardown:
        return delete_cluster and bool(cluster_name)
    if category is ResourceCategory.ELASTIC_IPS:
        return bool(cluster_name)
    return True


def build_handlers(clients: AWSClientManager, context: TeardownContext) -> List[CategoryHandler]:
    """Construct one handler per category on the given clients."""
    return [
        NodeGroupHandler(clients.eks, context),
        ClusterHandler(clients.eks, context),
        CloudFormationStackHandler(clients.cloudformation, context),
        LoadBalancerHandler(clients.elb, clients.elbv2, context),
        AutoScalingGroupHandler(clients.autoscaling, clients.ec2, context),
        InstanceHandler(clients.ec2, context),
        NetworkInterfaceHandler(clients.ec2, context),
        NatGatewayHandler(clients.ec2, context),
        ElasticIpHandler(clients.ec2, context),
        InternetGatewayHandler(clients.ec2, context),
        SubnetHandler(clients.ec2, context),
        SecurityGroupHandler(clients.ec2, context),
        RouteTableHandler(clients.ec2, context),
        NetworkAclHandler(clients.ec2, context),
        VpnGatewayHandler(clients.ec2, context),
        VpcPeeringConnectionHandler(clients.ec2, context),
    ]


def build_registry(
    clients: AWSClientManager,
    config: TeardownConfig,
    context: TeardownContext,
) -> CategoryRegistry:
    """Build the registry for one run.

    Raises:
        ConfigurationError: If the include or exclude set names an unknown category.
    """
    selected = config.enabled_categories()
    return CategoryRegistry(
        CategoryDescriptor(
            category=handler.category,
            handler=handler,
            enabled=is_category_enabled(
                handler.category, selected, config.cluster_name, config.delete_cluster
            ),
        )
        for handler in build_handlers(clients, context)
    )
