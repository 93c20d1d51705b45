"""VPC Resource Reaper - dependency-ordered VPC teardown."""

__version__ = "1.0.0"

from vpcreaper.models import (
    Attachment,
    AutoScalingGroup,
    ElasticIp,
    LoadBalancer,
    NodeGroup,
    ProbeResult,
    ResourceCategory,
    RetryPolicy,
    TeardownOutcome,
    TeardownResult,
    VpcPeeringConnection,
    VpcResource,
)

__all__ = [
    "Attachment",
    "AutoScalingGroup",
    "ElasticIp",
    "LoadBalancer",
    "NodeGroup",
    "ProbeResult",
    "ResourceCategory",
    "RetryPolicy",
    "TeardownOutcome",
    "TeardownResult",
    "VpcPeeringConnection",
    "VpcResource",
]
