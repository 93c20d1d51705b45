"""Security group teardown.

Groups that reference each other through rules cannot be deleted while the
references exist, so every group's rules are revoked before any group is
deleted. A revoke failure is recorded, but the delete is still attempted.
"""

import logging
from typing import Any, Dict, List, Tuple

from vpcreaper.cleanup.accumulator import AccumulatedError, ErrorAccumulator
from vpcreaper.cleanup.base import CategoryHandler, tags_to_dict
from vpcreaper.filters.tags import FilterGroup, vpc_filter
from vpcreaper.models import ResourceCategory, VpcResource

logger = logging.getLogger(__name__)

DEFAULT_GROUP_NAME = "default"


def partition_rules(group_id: str, rules: List[Dict[str, Any]]) -> Tuple[List[str], List[str]]:
    """Split a group's rule ids into (ingress, egress).

    Rules without an id, or belonging to another group, are dropped.
    """
    ingress: List[str] = []
    egress: List[str] = []
    for rule in rules:
        rule_id = rule.get("SecurityGroupRuleId")
        if not rule_id or rule.get("GroupId") != group_id:
            continue
        if rule.get("IsEgress"):
            egress.append(rule_id)
        else:
            ingress.append(rule_id)
    return ingress, egress


class SecurityGroupHandler(CategoryHandler):
    """Revokes rules of, then deletes, the VPC's non-default security groups."""

    category = ResourceCategory.SECURITY_GROUPS

    def enumerate(self, vpc_id: str) -> List[VpcResource]:
        groups: List[VpcResource] = []
        for sg in self._paginate("describe_security_groups", "SecurityGroups", Filters=vpc_filter(vpc_id)):
            group_id = sg.get("GroupId")
            # The default group is removed with the VPC
            if not group_id or sg.get("GroupName") == DEFAULT_GROUP_NAME:
                continue
            groups.append(
                VpcResource(
                    resource_id=group_id,
                    category=self.category,
                    vpc_id=sg.get("VpcId"),
                    tags=tags_to_dict(sg.get("Tags")),
                )
            )
        return groups

    def delete(self, vpc_id: str, resources: List[VpcResource]) -> AccumulatedError:
        errors = ErrorAccumulator()

        for group in resources:
            self.revoke_rules(errors, group.resource_id)

        for group in resources:
            self._attempt(errors, "delete", group.resource_id, self._delete, group.resource_id)

        return errors.combined()

    def revoke_rules(self, errors: ErrorAccumulator, group_id: str) -> None:
        """Revoke every ingress and egress rule of group_id, one call per direction."""
        rules: List[Dict[str, Any]] = []
        if not self._attempt(errors, "list rules of", group_id, self._list_rules, group_id, rules):
            return

        ingress, egress = partition_rules(group_id, rules)
        logger.info(f"Security group {group_id}: {len(ingress)} ingress, {len(egress)} egress rule(s)")

        if ingress:
            self._attempt(
                errors, "revoke ingress of", group_id, self._revoke, "revoke_security_group_ingress", group_id, ingress
            )
        if egress:
            self._attempt(
                errors, "revoke egress of", group_id, self._revoke, "revoke_security_group_egress", group_id, egress
            )

    def _list_rules(self, group_id: str, into: List[Dict[str, Any]]) -> None:
        into.extend(
            self._paginate(
                "describe_security_group_rules",
                "SecurityGroupRules",
                Filters=FilterGroup.of(group_id=group_id).to_filters(),
            )
        )

    def _revoke(self, operation_name: str, group_id: str, rule_ids: List[str]) -> None:
        self._call(operation_name, GroupId=group_id, SecurityGroupRuleIds=rule_ids)

    def _delete(self, group_id: str) -> None:
        self._call("delete_security_group", GroupId=group_id)
