"""Cross-VPC link teardown: VPN gateways and VPC peering connections."""

import logging
from typing import Any, Dict, List

from vpcreaper.cleanup.accumulator import AccumulatedError, ErrorAccumulator
from vpcreaper.cleanup.base import CategoryHandler, tags_to_dict
from vpcreaper.filters.tags import FilterGroup, attachment_vpc_filter
from vpcreaper.models import Attachment, ResourceCategory, VpcPeeringConnection, VpcResource

logger = logging.getLogger(__name__)

INACTIVE_PEERING_STATES = frozenset({"deleted", "deleting"})

PEERING_SIDE_FILTERS = ("accepter-vpc-info.vpc-id", "requester-vpc-info.vpc-id")


class VpnGatewayHandler(CategoryHandler):
    """Detaches virtual private gateways from the VPC, then deletes them."""

    category = ResourceCategory.VPN_GATEWAYS

    def enumerate(self, vpc_id: str) -> List[VpcResource]:
        # DescribeVpnGateways is not paginated
        response = self._call("describe_vpn_gateways", Filters=attachment_vpc_filter(vpc_id))
        gateways: List[VpcResource] = []
        for vgw in response.get("VpnGateways", []):
            vgw_id = vgw.get("VpnGatewayId")
            if not vgw_id:
                continue
            attachments = [
                Attachment(vpc_id=a.get("VpcId"), state=a.get("State", ""))
                for a in vgw.get("VpcAttachments", [])
            ]
            gateways.append(
                VpcResource(
                    resource_id=vgw_id,
                    category=self.category,
                    vpc_id=vpc_id if any(a.vpc_id == vpc_id for a in attachments) else None,
                    state=vgw.get("State"),
                    attachments=attachments,
                    tags=tags_to_dict(vgw.get("Tags")),
                )
            )
        return gateways

    def is_associated(self, resource: VpcResource, vpc_id: str) -> bool:
        return any(a.vpc_id == vpc_id for a in resource.attachments)

    def delete(self, vpc_id: str, resources: List[VpcResource]) -> AccumulatedError:
        errors = ErrorAccumulator()
        for vgw in resources:
            if self._detach_from(errors, vgw, vpc_id, self._detach):
                self._attempt(errors, "delete", vgw.resource_id, self._delete, vgw.resource_id)
        return errors.combined()

    def _detach(self, vgw_id: str, vpc_id: str) -> None:
        self._call("detach_vpn_gateway", VpnGatewayId=vgw_id, VpcId=vpc_id)

    def _delete(self, vgw_id: str) -> None:
        self._call("delete_vpn_gateway", VpnGatewayId=vgw_id)


class VpcPeeringConnectionHandler(CategoryHandler):
    """Deletes peering connections in which the VPC is accepter or requester."""

    category = ResourceCategory.VPC_PEERING_CONNECTIONS

    def enumerate(self, vpc_id: str) -> List[VpcResource]:
        connections: Dict[str, VpcResource] = {}
        for side in PEERING_SIDE_FILTERS:
            for pcx in self._paginate(
                "describe_vpc_peering_connections",
                "VpcPeeringConnections",
                Filters=FilterGroup.from_pairs([(side, vpc_id)]).to_filters(),
            ):
                pcx_id = pcx.get("VpcPeeringConnectionId")
                if not pcx_id or pcx_id in connections:
                    continue
                status = pcx.get("Status", {}).get("Code")
                if status in INACTIVE_PEERING_STATES:
                    continue
                connections[pcx_id] = self._to_model(pcx_id, pcx, status)
        return list(connections.values())

    def _to_model(self, pcx_id: str, pcx: Dict[str, Any], status: Any) -> VpcPeeringConnection:
        accepter = pcx.get("AccepterVpcInfo", {}).get("VpcId")
        requester = pcx.get("RequesterVpcInfo", {}).get("VpcId")
        return VpcPeeringConnection(
            resource_id=pcx_id,
            category=self.category,
            vpc_id=requester,
            state=status,
            tags=tags_to_dict(pcx.get("Tags")),
            accepter_vpc_id=accepter,
            requester_vpc_id=requester,
        )

    def is_associated(self, resource: VpcResource, vpc_id: str) -> bool:
        if not isinstance(resource, VpcPeeringConnection):
            return False
        return vpc_id in (resource.accepter_vpc_id, resource.requester_vpc_id)

    def delete_one(self, vpc_id: str, resource: VpcResource) -> None:
        self._call("delete_vpc_peering_connection", VpcPeeringConnectionId=resource.resource_id)
