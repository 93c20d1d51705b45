"""Terminal VPC delete attempt and outcome classification."""

import logging
from typing import Any, Optional

from botocore.exceptions import ClientError

from vpcreaper.cleanup.base import error_code
from vpcreaper.cleanup.waiter import CancellationToken
from vpcreaper.models import ProbeResult, TeardownOutcome
from vpcreaper.utils.logging import log_debug_api_call

logger = logging.getLogger(__name__)

VPC_NOT_FOUND = "InvalidVpcID.NotFound"
DEPENDENCY_VIOLATION = "DependencyViolation"


def classify_error(error: BaseException) -> TeardownOutcome:
    """Map a DeleteVpc failure onto a TeardownOutcome."""
    code = error_code(error)
    if code == VPC_NOT_FOUND:
        return TeardownOutcome.DELETED
    if code == DEPENDENCY_VIOLATION:
        return TeardownOutcome.HAS_DEPENDENCIES
    return TeardownOutcome.FAILED


class VpcDeletionProbe:
    """Issues DeleteVpc once per call and classifies the result.

    A VPC that is already gone is reported as DELETED; a run against a
    missing VPC is indistinguishable from one that just deleted it.
    """

    def __init__(self, ec2_client: Any, token: Optional[CancellationToken] = None):
        self.ec2 = ec2_client
        self.token = token or CancellationToken()

    def try_delete(self, vpc_id: str) -> ProbeResult:
        self.token.raise_if_cancelled()
        log_debug_api_call("delete_vpc", "ec2", {"VpcId": vpc_id})
        try:
            self.ec2.delete_vpc(VpcId=vpc_id)
        except ClientError as e:
            outcome = classify_error(e)
            if outcome is TeardownOutcome.DELETED:
                logger.info(f"VPC {vpc_id} does not exist")
                return ProbeResult(TeardownOutcome.DELETED)
            if outcome is TeardownOutcome.HAS_DEPENDENCIES:
                logger.info(f"VPC {vpc_id} still has dependencies")
                return ProbeResult(TeardownOutcome.HAS_DEPENDENCIES, e)
            logger.error(f"VPC {vpc_id} delete failed: {e}")
            return ProbeResult(TeardownOutcome.FAILED, e)
        except Exception as e:
            logger.error(f"VPC {vpc_id} delete failed: {e}")
            return ProbeResult(TeardownOutcome.FAILED, e)

        logger.info(f"VPC {vpc_id} deleted")
        return ProbeResult(TeardownOutcome.DELETED)
