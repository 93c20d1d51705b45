"""Managed cluster teardown: node groups, the EKS cluster and its eksctl
CloudFormation stacks.

These categories run only when cluster teardown was requested, and always
before anything else in the VPC, since the cluster's own instances, load
balancers and interfaces would otherwise be recreated.
"""

import logging
from typing import Any, Dict, List, Optional

from botocore.exceptions import ClientError

from vpcreaper.cleanup.accumulator import AccumulatedError, ErrorAccumulator
from vpcreaper.cleanup.base import CategoryHandler, is_not_found, tags_to_dict
from vpcreaper.filters.tags import is_cluster_stack
from vpcreaper.models import NodeGroup, ResourceCategory, VpcResource

logger = logging.getLogger(__name__)

CLUSTER_DELETING = "DELETING"
NODE_GROUP_DELETING = "DELETING"

DELETED_STACK_STATUSES = frozenset({"DELETE_IN_PROGRESS", "DELETE_COMPLETE"})


class _ClusterScopedHandler(CategoryHandler):
    """Shared cluster lookups for the EKS handlers."""

    service = "eks"

    def describe_cluster(self) -> Optional[Dict[str, Any]]:
        """Return the cluster description, or None if it does not exist."""
        try:
            response = self._call("describe_cluster", name=self.context.cluster_name)
        except ClientError as e:
            if is_not_found(e):
                return None
            raise
        return response.get("cluster")

    @staticmethod
    def cluster_vpc_id(cluster: Dict[str, Any]) -> Optional[str]:
        return cluster.get("resourcesVpcConfig", {}).get("vpcId")


class NodeGroupHandler(_ClusterScopedHandler):
    """Deletes the cluster's managed node groups and waits until none remain."""

    category = ResourceCategory.NODE_GROUPS

    def enumerate(self, vpc_id: str) -> List[VpcResource]:
        cluster_name = self.context.cluster_name
        if not cluster_name:
            return []

        cluster = self.describe_cluster()
        if cluster is None:
            logger.info(f"Cluster {cluster_name} not found, no node groups to delete")
            return []
        cluster_vpc_id = self.cluster_vpc_id(cluster)

        node_groups: List[VpcResource] = []
        for name in self._list_node_group_names():
            node_groups.append(
                NodeGroup(
                    resource_id=name,
                    category=self.category,
                    vpc_id=cluster_vpc_id,
                    state=self._node_group_status(name),
                    cluster_name=cluster_name,
                )
            )
        return node_groups

    def delete(self, vpc_id: str, resources: List[VpcResource]) -> AccumulatedError:
        errors = ErrorAccumulator()
        for node_group in resources:
            if node_group.state == NODE_GROUP_DELETING:
                logger.info(f"Node group {node_group.resource_id} already deleting")
                continue
            self._attempt(errors, "delete", node_group.resource_id, self._delete, node_group.resource_id)

        # Only wait when every delete was accepted
        if resources and not errors.has_failures:
            self._attempt(errors, "wait", self.context.cluster_name, self._wait_until_empty)
        return errors.combined()

    def _list_node_group_names(self) -> List[str]:
        try:
            return self._paginate("list_nodegroups", "nodegroups", clusterName=self.context.cluster_name)
        except ClientError as e:
            if is_not_found(e):
                return []
            raise

    def _node_group_status(self, name: str) -> Optional[str]:
        try:
            response = self._call(
                "describe_nodegroup", clusterName=self.context.cluster_name, nodegroupName=name
            )
        except ClientError as e:
            if is_not_found(e):
                return None
            raise
        return response.get("nodegroup", {}).get("status")

    def _delete(self, name: str) -> None:
        self._call("delete_nodegroup", clusterName=self.context.cluster_name, nodegroupName=name)

    def _wait_until_empty(self) -> None:
        self.context.poller.wait_until(
            lambda: not self._list_node_group_names(),
            f"node groups of cluster {self.context.cluster_name} to be deleted",
        )


class ClusterHandler(_ClusterScopedHandler):
    """Deletes the EKS cluster when it lives in the target VPC."""

    category = ResourceCategory.CLUSTERS

    def enumerate(self, vpc_id: str) -> List[VpcResource]:
        if not self.context.cluster_name:
            return []

        cluster = self.describe_cluster()
        if cluster is None:
            return []

        status = cluster.get("status")
        if status == CLUSTER_DELETING:
            logger.info(f"Cluster {self.context.cluster_name} is already deleting")
            return []

        return [
            VpcResource(
                resource_id=cluster.get("name", self.context.cluster_name),
                category=self.category,
                vpc_id=self.cluster_vpc_id(cluster),
                state=status,
                tags=cluster.get("tags", {}),
            )
        ]

    def delete_one(self, vpc_id: str, resource: VpcResource) -> None:
        self._call("delete_cluster", name=resource.resource_id)
        self.context.poller.wait_until(
            lambda: self.describe_cluster() is None,
            f"cluster {resource.resource_id} to be deleted",
        )


class CloudFormationStackHandler(CategoryHandler):
    """Deletes eksctl stacks tagged with the cluster name.

    Stacks can depend on each other and a parent delete is silently ignored
    while children exist; those are picked up again on the next pass.
    """

    category = ResourceCategory.CLOUDFORMATION_STACKS
    service = "cloudformation"

    def enumerate(self, vpc_id: str) -> List[VpcResource]:
        cluster_name = self.context.cluster_name
        if not cluster_name:
            return []

        stacks: List[VpcResource] = []
        for stack in self._paginate("describe_stacks", "Stacks"):
            if stack.get("StackStatus") in DELETED_STACK_STATUSES:
                continue
            tags = tags_to_dict(stack.get("Tags"))
            if not is_cluster_stack(tags, cluster_name):
                continue
            stacks.append(
                VpcResource(
                    resource_id=stack["StackName"],
                    category=self.category,
                    vpc_id=None,
                    state=stack.get("StackStatus"),
                    tags=tags,
                )
            )
        return stacks

    def is_associated(self, resource: VpcResource, vpc_id: str) -> bool:
        cluster_name = self.context.cluster_name
        return bool(cluster_name) and is_cluster_stack(resource.tags, cluster_name)

    def delete_one(self, vpc_id: str, resource: VpcResource) -> None:
        self._call("delete_stack", StackName=resource.resource_id)
