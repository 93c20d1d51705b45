"""Provider filter construction.

A TagFilter is an ordered disjunction of FilterGroups. Each group is a
conjunction of (name, values) conditions and renders to one provider
``Filters`` list. Callers issue one describe call per group and merge the
results.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterator, List, Tuple

# Tags eksctl puts on every CloudFormation stack it creates for a cluster
CLUSTER_STACK_TAG_KEYS: FrozenSet[str] = frozenset(
    {
        "alpha.eksctl.io/cluster-name",
        "eksctl.cluster.k8s.io/v1alpha1/cluster-name",
    }
)

# Ownership tag key prefixes placed on cluster-managed Auto Scaling groups
CLUSTER_OWNERSHIP_TAG_PREFIXES: Tuple[str, ...] = (
    "k8s.io/cluster-autoscaler/",
    "kubernetes.io/cluster/",
    "k8s.io/cluster/",
)

CLUSTER_NAME_TAG_KEY = "eks:cluster-name"
OWNED_TAG_VALUE = "owned"


@dataclass(frozen=True)
class FilterGroup:
    """Conjunction of filter conditions, rendered as one provider filter list."""

    conditions: Tuple[Tuple[str, FrozenSet[str]], ...] = ()

    @classmethod
    def of(cls, **conditions: Any) -> "FilterGroup":
        """Build a group from keyword conditions.

        Keyword names use underscores for hyphens (``tag_key`` -> ``tag-key``).
        """
        return cls.from_pairs((name.replace("_", "-"), values) for name, values in conditions.items())

    @classmethod
    def from_pairs(cls, pairs: Any) -> "FilterGroup":
        built = []
        for name, values in pairs:
            if isinstance(values, str):
                values = [values]
            built.append((name, frozenset(values)))
        return cls(conditions=tuple(built))

    def to_filters(self) -> List[Dict[str, Any]]:
        """Render as a provider ``Filters`` parameter."""
        return [{"Name": name, "Values": sorted(values)} for name, values in self.conditions]

    def matches_tags(self, tags: Dict[str, str]) -> bool:
        """Evaluate the group against a tag mapping.

        Supports ``tag-key``/``tag-value`` pairs (some tag has a listed key and
        a listed value) and ``tag:<key>`` conditions.
        """
        keys: FrozenSet[str] = frozenset()
        values: FrozenSet[str] = frozenset()
        has_key_condition = has_value_condition = False
        for name, allowed in self.conditions:
            if name == "tag-key":
                keys, has_key_condition = allowed, True
            elif name == "tag-value":
                values, has_value_condition = allowed, True
            elif name.startswith("tag:"):
                if tags.get(name[4:]) not in allowed:
                    return False
        if not (has_key_condition or has_value_condition):
            return True
        for key, value in tags.items():
            if has_key_condition and key not in keys:
                continue
            if has_value_condition and value not in values:
                continue
            return True
        return False


@dataclass(frozen=True)
class TagFilter:
    """Ordered disjunction of filter groups. An empty filter selects everything."""

    groups: Tuple[FilterGroup, ...] = field(default_factory=tuple)

    def __iter__(self) -> Iterator[FilterGroup]:
        return iter(self.groups)

    def __len__(self) -> int:
        return len(self.groups)

    def __bool__(self) -> bool:
        return bool(self.groups)


def vpc_filter(vpc_id: str) -> List[Dict[str, Any]]:
    """Standard ``vpc-id`` filter for EC2 describe calls."""
    return FilterGroup.of(vpc_id=vpc_id).to_filters()


def attachment_vpc_filter(vpc_id: str) -> List[Dict[str, Any]]:
    """``attachment.vpc-id`` filter for gateways."""
    return FilterGroup.from_pairs([("attachment.vpc-id", vpc_id)]).to_filters()


def autoscaling_tag_filter(
    cluster_name: str = "",
    tag_key: str = "",
    tag_value: str = OWNED_TAG_VALUE,
) -> TagFilter:
    """Filter groups that identify Auto Scaling groups to tear down.

    With a cluster name, groups carrying any cluster ownership tag set to
    ``owned``, or ``eks:cluster-name`` set to the cluster, match. A custom
    tag key/value pair adds one more group. With neither, the filter is
    empty and every group in the region is considered.
    """
    groups = []
    if cluster_name:
        groups.append(
            FilterGroup.of(
                tag_key=[prefix + cluster_name for prefix in CLUSTER_OWNERSHIP_TAG_PREFIXES],
                tag_value=OWNED_TAG_VALUE,
            )
        )
        groups.append(FilterGroup.of(tag_key=CLUSTER_NAME_TAG_KEY, tag_value=cluster_name))
    if tag_key and tag_value:
        groups.append(FilterGroup.of(tag_key=tag_key, tag_value=tag_value))
    return TagFilter(groups=tuple(groups))


def elastic_ip_name_filter(cluster_name: str) -> List[Dict[str, Any]]:
    """``tag:Name`` prefix filter for addresses allocated for a cluster."""
    return FilterGroup.from_pairs([("tag:Name", f"{cluster_name}*")]).to_filters()


def is_cluster_stack(tags: Dict[str, str], cluster_name: str) -> bool:
    """True when a stack carries an eksctl cluster tag naming cluster_name."""
    return any(tags.get(key) == cluster_name for key in CLUSTER_STACK_TAG_KEYS)
