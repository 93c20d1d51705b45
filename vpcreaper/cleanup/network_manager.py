"""Network plumbing teardown for network interfaces, NAT gateways, elastic
IPs, internet gateways, subnets, route tables and network ACLs.

Default network ACLs and the VPC's main route table are never enumerated;
both are removed together with the VPC itself.
"""

import logging
from typing import Any, Dict, List

from vpcreaper.cleanup.accumulator import AccumulatedError, ErrorAccumulator
from vpcreaper.cleanup.base import CategoryHandler, tags_to_dict
from vpcreaper.filters.tags import attachment_vpc_filter, elastic_ip_name_filter, vpc_filter
from vpcreaper.models import Attachment, ElasticIp, ResourceCategory, VpcResource

logger = logging.getLogger(__name__)

INACTIVE_NAT_GATEWAY_STATES = frozenset({"deleting", "deleted"})


def _attachments(raw: List[Dict[str, Any]], fallback_vpc_id: Any = None) -> List[Attachment]:
    return [
        Attachment(vpc_id=a.get("VpcId", fallback_vpc_id), state=a.get("State", ""))
        for a in raw
    ]


class NetworkInterfaceHandler(CategoryHandler):
    """Detaches and deletes network interfaces.

    Delete is issued right after a successful detach without waiting for the
    detachment to finish. When the provider has not finished detaching, the
    delete fails and is retried on the next pass.
    """

    category = ResourceCategory.NETWORK_INTERFACES

    def enumerate(self, vpc_id: str) -> List[VpcResource]:
        interfaces: List[VpcResource] = []
        for eni in self._paginate(
            "describe_network_interfaces", "NetworkInterfaces", Filters=vpc_filter(vpc_id)
        ):
            eni_id = eni.get("NetworkInterfaceId")
            if not eni_id:
                continue
            attachments = []
            attachment = eni.get("Attachment")
            if attachment and attachment.get("AttachmentId"):
                attachments.append(
                    Attachment(
                        vpc_id=eni.get("VpcId"),
                        state=attachment.get("Status", ""),
                        attachment_id=attachment["AttachmentId"],
                    )
                )
            interfaces.append(
                VpcResource(
                    resource_id=eni_id,
                    category=self.category,
                    vpc_id=eni.get("VpcId"),
                    state=eni.get("Status"),
                    attachments=attachments,
                    tags=tags_to_dict(eni.get("TagSet")),
                )
            )
        return interfaces

    def delete(self, vpc_id: str, resources: List[VpcResource]) -> AccumulatedError:
        errors = ErrorAccumulator()
        for eni in resources:
            detach_failed = False
            for attachment in eni.attachments:
                if attachment.state in ("detached", "detaching") or not attachment.attachment_id:
                    continue
                if not self._attempt(
                    errors, "detach", eni.resource_id, self._detach, attachment.attachment_id
                ):
                    detach_failed = True
            if detach_failed:
                continue
            self._attempt(errors, "delete", eni.resource_id, self._delete, eni.resource_id)
        return errors.combined()

    def _detach(self, attachment_id: str) -> None:
        self._call("detach_network_interface", AttachmentId=attachment_id)

    def _delete(self, eni_id: str) -> None:
        self._call("delete_network_interface", NetworkInterfaceId=eni_id)


class NatGatewayHandler(CategoryHandler):
    category = ResourceCategory.NAT_GATEWAYS

    def enumerate(self, vpc_id: str) -> List[VpcResource]:
        gateways: List[VpcResource] = []
        # DescribeNatGateways takes "Filter", not "Filters"
        for nat in self._paginate("describe_nat_gateways", "NatGateways", Filter=vpc_filter(vpc_id)):
            nat_id = nat.get("NatGatewayId")
            if not nat_id or nat.get("State") in INACTIVE_NAT_GATEWAY_STATES:
                continue
            gateways.append(
                VpcResource(
                    resource_id=nat_id,
                    category=self.category,
                    vpc_id=nat.get("VpcId"),
                    state=nat.get("State"),
                    tags=tags_to_dict(nat.get("Tags")),
                )
            )
        return gateways

    def delete_one(self, vpc_id: str, resource: VpcResource) -> None:
        self._call("delete_nat_gateway", NatGatewayId=resource.resource_id)


class ElasticIpHandler(CategoryHandler):
    """Releases elastic IPs whose Name tag starts with the cluster name.

    Addresses carry no VPC reference, so ownership is established through
    the cluster's Name tag prefix instead.
    """

    category = ResourceCategory.ELASTIC_IPS

    def enumerate(self, vpc_id: str) -> List[VpcResource]:
        cluster_name = self.context.cluster_name
        if not cluster_name:
            return []

        response = self._call("describe_addresses", Filters=elastic_ip_name_filter(cluster_name))
        addresses: List[VpcResource] = []
        for address in response.get("Addresses", []):
            allocation_id = address.get("AllocationId")
            if not allocation_id:
                continue
            addresses.append(
                ElasticIp(
                    resource_id=allocation_id,
                    category=self.category,
                    vpc_id=None,
                    tags=tags_to_dict(address.get("Tags")),
                    public_ip=address.get("PublicIp", ""),
                    association_id=address.get("AssociationId"),
                )
            )
        return addresses

    def is_associated(self, resource: VpcResource, vpc_id: str) -> bool:
        cluster_name = self.context.cluster_name
        if not cluster_name:
            return False
        return resource.tags.get("Name", "").startswith(cluster_name)

    def delete_one(self, vpc_id: str, resource: VpcResource) -> None:
        self._call("release_address", AllocationId=resource.resource_id)


class InternetGatewayHandler(CategoryHandler):
    """Detaches internet gateways from the VPC, then deletes them.

    A gateway whose detach failed is not deleted on this pass.
    """

    category = ResourceCategory.INTERNET_GATEWAYS

    def enumerate(self, vpc_id: str) -> List[VpcResource]:
        gateways: List[VpcResource] = []
        for igw in self._paginate(
            "describe_internet_gateways", "InternetGateways", Filters=attachment_vpc_filter(vpc_id)
        ):
            igw_id = igw.get("InternetGatewayId")
            if not igw_id:
                continue
            attachments = _attachments(igw.get("Attachments", []))
            gateways.append(
                VpcResource(
                    resource_id=igw_id,
                    category=self.category,
                    vpc_id=attachments[0].vpc_id if attachments else None,
                    attachments=attachments,
                    tags=tags_to_dict(igw.get("Tags")),
                )
            )
        return gateways

    def is_associated(self, resource: VpcResource, vpc_id: str) -> bool:
        return any(a.vpc_id == vpc_id for a in resource.attachments)

    def delete(self, vpc_id: str, resources: List[VpcResource]) -> AccumulatedError:
        errors = ErrorAccumulator()
        for igw in resources:
            if self._detach_from(errors, igw, vpc_id, self._detach):
                self._attempt(errors, "delete", igw.resource_id, self._delete, igw.resource_id)
        return errors.combined()

    def _detach(self, igw_id: str, vpc_id: str) -> None:
        self._call("detach_internet_gateway", InternetGatewayId=igw_id, VpcId=vpc_id)

    def _delete(self, igw_id: str) -> None:
        self._call("delete_internet_gateway", InternetGatewayId=igw_id)


class SubnetHandler(CategoryHandler):
    category = ResourceCategory.SUBNETS

    def enumerate(self, vpc_id: str) -> List[VpcResource]:
        return [
            VpcResource(
                resource_id=subnet["SubnetId"],
                category=self.category,
                vpc_id=subnet.get("VpcId"),
                state=subnet.get("State"),
                tags=tags_to_dict(subnet.get("Tags")),
            )
            for subnet in self._paginate("describe_subnets", "Subnets", Filters=vpc_filter(vpc_id))
            if subnet.get("SubnetId")
        ]

    def delete_one(self, vpc_id: str, resource: VpcResource) -> None:
        self._call("delete_subnet", SubnetId=resource.resource_id)


class RouteTableHandler(CategoryHandler):
    """Deletes the VPC's non-main route tables."""

    category = ResourceCategory.ROUTE_TABLES

    def enumerate(self, vpc_id: str) -> List[VpcResource]:
        route_tables: List[VpcResource] = []
        for table in self._paginate("describe_route_tables", "RouteTables", Filters=vpc_filter(vpc_id)):
            table_id = table.get("RouteTableId")
            if not table_id:
                continue
            # The main route table goes away with the VPC
            if any(a.get("Main") for a in table.get("Associations", [])):
                continue
            route_tables.append(
                VpcResource(
                    resource_id=table_id,
                    category=self.category,
                    vpc_id=table.get("VpcId"),
                    tags=tags_to_dict(table.get("Tags")),
                )
            )
        return route_tables

    def delete_one(self, vpc_id: str, resource: VpcResource) -> None:
        self._call("delete_route_table", RouteTableId=resource.resource_id)


class NetworkAclHandler(CategoryHandler):
    """Deletes the VPC's non-default network ACLs."""

    category = ResourceCategory.NETWORK_ACLS

    def enumerate(self, vpc_id: str) -> List[VpcResource]:
        return [
            VpcResource(
                resource_id=acl["NetworkAclId"],
                category=self.category,
                vpc_id=acl.get("VpcId"),
                tags=tags_to_dict(acl.get("Tags")),
            )
            for acl in self._paginate("describe_network_acls", "NetworkAcls", Filters=vpc_filter(vpc_id))
            if acl.get("NetworkAclId") and not acl.get("IsDefault")
        ]

    def delete_one(self, vpc_id: str, resource: VpcResource) -> None:
        self._call("delete_network_acl", NetworkAclId=resource.resource_id)
