"""Data models for the VPC Resource Reaper."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class ResourceCategory(Enum):
    """Kinds of VPC dependents the reaper knows how to delete.

    Members are declared in deletion order: consumers of traffic and compute
    first, then network plumbing, then perimeter and policy objects, then
    cross-VPC links. The VPC itself is always last and is not a category.
    """

    NODE_GROUPS = "NodeGroups"
    CLUSTERS = "Clusters"
    CLOUDFORMATION_STACKS = "CloudFormationStacks"
    LOAD_BALANCERS = "LoadBalancers"
    AUTO_SCALING_GROUPS = "AutoScalingGroups"
    INSTANCES = "Instances"
    NETWORK_INTERFACES = "NetworkInterfaces"
    NAT_GATEWAYS = "NatGateways"
    ELASTIC_IPS = "ElasticIps"
    INTERNET_GATEWAYS = "InternetGateways"
    SUBNETS = "Subnets"
    SECURITY_GROUPS = "SecurityGroups"
    ROUTE_TABLES = "RouteTables"
    NETWORK_ACLS = "NetworkAcls"
    VPN_GATEWAYS = "VpnGateways"
    VPC_PEERING_CONNECTIONS = "VpcPeeringConnections"

    @property
    def position(self) -> int:
        """Zero-based position of this category in the deletion order."""
        return list(ResourceCategory).index(self)

    @property
    def requires_cluster_teardown(self) -> bool:
        return self in CLUSTER_TEARDOWN_CATEGORIES

    @classmethod
    def from_name(cls, name: str) -> "ResourceCategory":
        """Look up a category by its configuration name (case-insensitive)."""
        normalized = name.strip().lower()
        if normalized in CATEGORY_ALIASES:
            return CATEGORY_ALIASES[normalized]
        for category in cls:
            if category.value.lower() == normalized:
                return category
        raise ValueError(f"Unknown resource category: {name!r}")


CLUSTER_TEARDOWN_CATEGORIES = frozenset(
    {
        ResourceCategory.NODE_GROUPS,
        ResourceCategory.CLUSTERS,
        ResourceCategory.CLOUDFORMATION_STACKS,
    }
)

# Older invocations name instances after the EC2 reservation that holds them
CATEGORY_ALIASES = {"reservations": ResourceCategory.INSTANCES}


class TeardownOutcome(Enum):
    """Classification of a single attempt to delete the VPC."""

    DELETED = "deleted"
    HAS_DEPENDENCIES = "has_dependencies"
    FAILED = "failed"


@dataclass(frozen=True)
class Attachment:
    """A sub-relation such as "attached to VPC X with state Y"."""

    vpc_id: Optional[str]
    state: str
    attachment_id: Optional[str] = None

    def is_active_for(self, vpc_id: str) -> bool:
        """True when this attachment binds the resource to vpc_id."""
        return self.vpc_id == vpc_id and self.state not in {"detached", "detaching"}


@dataclass
class VpcResource:
    """Snapshot of one dependent resource taken during a pass."""

    resource_id: str
    category: ResourceCategory
    vpc_id: Optional[str]
    state: Optional[str] = None
    attachments: list[Attachment] = field(default_factory=list)
    tags: dict[str, str] = field(default_factory=dict)


@dataclass
class AutoScalingGroup(VpcResource):
    """Auto Scaling group with its capacities and member instances."""

    arn: str = ""
    desired_capacity: int = 0
    min_size: int = 0
    max_size: int = 0
    instance_ids: list[str] = field(default_factory=list)
    subnet_ids: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.category = ResourceCategory.AUTO_SCALING_GROUPS

    def needs_resize(self) -> bool:
        return self.desired_capacity != 0 or self.min_size != 0 or self.max_size != 0


@dataclass
class LoadBalancer(VpcResource):
    """Classic or v2 (application/network/gateway) load balancer."""

    kind: str = "classic"
    name: str = ""

    def __post_init__(self) -> None:
        self.category = ResourceCategory.LOAD_BALANCERS


@dataclass
class ElasticIp(VpcResource):
    """Elastic IP allocation. Scoped by tag, so vpc_id is usually None."""

    public_ip: str = ""
    association_id: Optional[str] = None

    def __post_init__(self) -> None:
        self.category = ResourceCategory.ELASTIC_IPS


@dataclass
class VpcPeeringConnection(VpcResource):
    """Peering connection between an accepter and a requester VPC."""

    accepter_vpc_id: Optional[str] = None
    requester_vpc_id: Optional[str] = None

    def __post_init__(self) -> None:
        self.category = ResourceCategory.VPC_PEERING_CONNECTIONS


@dataclass
class NodeGroup(VpcResource):
    """Managed node group belonging to an EKS cluster."""

    cluster_name: str = ""

    def __post_init__(self) -> None:
        self.category = ResourceCategory.NODE_GROUPS


@dataclass
class RetryPolicy:
    """How many passes to run and how long to wait between them."""

    tries: int = 1
    delay_seconds: float = 10.0

    def __post_init__(self) -> None:
        self.tries = max(1, self.tries)
        self.delay_seconds = max(0.0, self.delay_seconds)


@dataclass
class ProbeResult:
    """Outcome of one DeleteVpc attempt, with the error when it FAILED."""

    outcome: TeardownOutcome
    error: Optional[BaseException] = None

    @property
    def deleted(self) -> bool:
        return self.outcome is TeardownOutcome.DELETED


@dataclass
class TeardownResult:
    """Result of a full teardown run."""

    vpc_id: str
    succeeded: bool = False
    outcome: Optional[TeardownOutcome] = None
    passes: int = 0
    delays: int = 0
    attempt_errors: list[Any] = field(default_factory=list)
    fatal_error: Optional[BaseException] = None

    def total_errors(self) -> int:
        """Total number of failures recorded across all passes."""
        return sum(len(errors) for errors in self.attempt_errors)

    def failure_message(self) -> str:
        """Describe why the teardown failed, attempt by attempt."""
        if self.succeeded:
            return ""
        if self.fatal_error is not None and self.passes == 0:
            return f"VPC {self.vpc_id}: initial delete failed: {self.fatal_error}"

        if self.fatal_error is not None:
            lines = [f"VPC {self.vpc_id}: stopped after {self.passes} attempt(s): {self.fatal_error}"]
        else:
            lines = [f"VPC {self.vpc_id}: all {self.passes} attempt(s) failed"]
        for attempt, errors in enumerate(self.attempt_errors, start=1):
            if errors:
                lines.append(f"  attempt {attempt}: {errors}")
            else:
                lines.append(f"  attempt {attempt}: VPC still has dependencies")
        return "\n".join(lines)

    def summary(self) -> dict[str, Any]:
        return {
            "vpc_id": self.vpc_id,
            "succeeded": self.succeeded,
            "outcome": self.outcome.value if self.outcome else None,
            "passes": self.passes,
            "errors": self.total_errors(),
        }
