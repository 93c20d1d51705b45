"""Input validation and log sanitization for the VPC Resource Reaper.

Identifiers supplied on the command line or in an invocation event are
validated before any API call is made, and everything written to the logs
passes through LogSanitizer first.
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, List

# AWS identifier patterns
AWS_RESOURCE_PATTERNS = {
    "vpc_id": re.compile(r"^vpc-[a-f0-9]{8,17}$"),
    "region": re.compile(r"^[a-z]{2}(-gov)?-[a-z]+-[0-9]$"),
    "role_arn": re.compile(r"^arn:aws[a-z-]*:iam::[0-9]{12}:role/[\w+=,.@/-]+$"),
    # EKS cluster names: letters, digits, hyphens and underscores, 1-100 chars
    "cluster_name": re.compile(r"^[0-9A-Za-z][A-Za-z0-9_-]{0,99}$"),
}

# Characters that could be used in injection attacks
DANGEROUS_CHARACTERS = set("<>{}[]|\\`$;!&*()\"'\n\r\t")

MAX_LENGTHS = {
    "tag_key": 128,
    "tag_value": 256,
    "resource_id": 50,
    "region": 20,
    "arn": 2048,
}

TAG_KEY_PATTERN = re.compile(r"^[a-zA-Z0-9\s_.:/=+\-@]+$")
TAG_VALUE_PATTERN = re.compile(r"^[a-zA-Z0-9\s_.:/=+\-@]*$")


@dataclass
class ValidationResult:
    """Result of input validation."""

    is_valid: bool
    errors: List[str]

    @classmethod
    def valid(cls) -> "ValidationResult":
        return cls(is_valid=True, errors=[])

    @classmethod
    def invalid(cls, errors: List[str]) -> "ValidationResult":
        return cls(is_valid=False, errors=errors)


class InputValidator:
    """Validates identifiers and tags before they reach the AWS APIs."""

    @staticmethod
    def validate_vpc_id(vpc_id: str) -> ValidationResult:
        """
        Validate a VPC identifier.

        Args:
            vpc_id: The VPC ID to validate

        Returns:
            ValidationResult with validation status and any errors
        """
        if not vpc_id:
            return ValidationResult.invalid(["VPC ID cannot be empty"])

        errors = []

        if len(vpc_id) > MAX_LENGTHS["resource_id"]:
            errors.append(f"VPC ID exceeds maximum length of {MAX_LENGTHS['resource_id']}")

        if any(c in vpc_id for c in DANGEROUS_CHARACTERS):
            errors.append("VPC ID contains potentially dangerous characters")

        if not AWS_RESOURCE_PATTERNS["vpc_id"].match(vpc_id):
            errors.append(f"VPC ID '{vpc_id}' does not match expected pattern (e.g., vpc-0a1b2c3d)")

        if errors:
            return ValidationResult.invalid(errors)

        return ValidationResult.valid()

    @staticmethod
    def validate_region(region: str) -> ValidationResult:
        """
        Validate an AWS region.

        Args:
            region: The region to validate

        Returns:
            ValidationResult with validation status and any errors
        """
        if not region:
            return ValidationResult.invalid(["Region cannot be empty"])

        errors = []

        if len(region) > MAX_LENGTHS["region"]:
            errors.append(f"Region exceeds maximum length of {MAX_LENGTHS['region']}")

        if any(c in region for c in DANGEROUS_CHARACTERS):
            errors.append("Region contains potentially dangerous characters")

        if not AWS_RESOURCE_PATTERNS["region"].match(region):
            errors.append("Region does not match expected pattern (e.g., us-east-1)")

        if errors:
            return ValidationResult.invalid(errors)

        return ValidationResult.valid()

    @staticmethod
    def validate_cluster_name(cluster_name: str) -> ValidationResult:
        """Validate an EKS cluster name."""
        if not cluster_name:
            return ValidationResult.invalid(["Cluster name cannot be empty"])

        if not AWS_RESOURCE_PATTERNS["cluster_name"].match(cluster_name):
            return ValidationResult.invalid(
                [f"Cluster name '{cluster_name}' contains invalid characters or is too long"]
            )

        return ValidationResult.valid()

    @staticmethod
    def validate_role_arn(arn: str) -> ValidationResult:
        """Validate an IAM role ARN used for role assumption."""
        if not arn:
            return ValidationResult.invalid(["Role ARN cannot be empty"])

        errors = []

        if len(arn) > MAX_LENGTHS["arn"]:
            errors.append(f"Role ARN exceeds maximum length of {MAX_LENGTHS['arn']}")

        if not AWS_RESOURCE_PATTERNS["role_arn"].match(arn):
            errors.append("Role ARN does not match expected pattern (arn:aws:iam::<account>:role/<name>)")

        if errors:
            return ValidationResult.invalid(errors)

        return ValidationResult.valid()

    @staticmethod
    def validate_tag_key(key: str) -> ValidationResult:
        """Validate a tag key."""
        if not key:
            return ValidationResult.invalid(["Tag key cannot be empty"])

        errors = []

        if len(key) > MAX_LENGTHS["tag_key"]:
            errors.append(f"Tag key exceeds maximum length of {MAX_LENGTHS['tag_key']}")

        if not TAG_KEY_PATTERN.match(key):
            errors.append("Tag key contains invalid characters")

        if errors:
            return ValidationResult.invalid(errors)

        return ValidationResult.valid()

    @staticmethod
    def validate_tag_value(value: str) -> ValidationResult:
        """Validate a tag value. Empty values are allowed."""
        errors = []

        if len(value) > MAX_LENGTHS["tag_value"]:
            errors.append(f"Tag value exceeds maximum length of {MAX_LENGTHS['tag_value']}")

        if not TAG_VALUE_PATTERN.match(value):
            errors.append("Tag value contains invalid characters")

        if errors:
            return ValidationResult.invalid(errors)

        return ValidationResult.valid()


class LogSanitizer:
    """Sanitizes log output to prevent sensitive data exposure."""

    SENSITIVE_PATTERNS = [
        (re.compile(r"AKIA[0-9A-Z]{16}"), "[REDACTED_ACCESS_KEY]"),
        (re.compile(r"ASIA[0-9A-Z]{16}"), "[REDACTED_ACCESS_KEY]"),
        (re.compile(r"(?i)password\s*[=:]\s*\S+"), "password=[REDACTED]"),
        (re.compile(r"(?i)secret\s*[=:]\s*\S+"), "secret=[REDACTED]"),
        (re.compile(r"(?i)token\s*[=:]\s*\S+"), "token=[REDACTED]"),
        (re.compile(r"(?i)api[_-]?key\s*[=:]\s*\S+"), "api_key=[REDACTED]"),
        # Standalone 40-character secret keys; runs inside ARNs and paths are left alone
        (re.compile(r"(?<![A-Za-z0-9+/:._-])[A-Za-z0-9+/]{40}(?![A-Za-z0-9+/=_-])"), "[REDACTED_SECRET]"),
    ]

    @classmethod
    def sanitize(cls, message: str) -> str:
        """
        Sanitize a log message to remove sensitive data.

        Args:
            message: The message to sanitize

        Returns:
            Sanitized message
        """
        sanitized = message
        for pattern, replacement in cls.SENSITIVE_PATTERNS:
            sanitized = pattern.sub(replacement, sanitized)
        return sanitized

    @classmethod
    def sanitize_dict(cls, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Sanitize a dictionary for logging.

        Args:
            data: Dictionary to sanitize

        Returns:
            Sanitized dictionary
        """
        sanitized = {}
        sensitive_keys = {"password", "secret", "token", "credential", "auth"}

        for key, value in data.items():
            key_lower = key.lower()
            if any(s in key_lower for s in sensitive_keys):
                sanitized[key] = "[REDACTED]"
            elif isinstance(value, str):
                sanitized[key] = cls.sanitize(value)
            elif isinstance(value, dict):
                sanitized[key] = cls.sanitize_dict(value)
            elif isinstance(value, list):
                sanitized[key] = [cls.sanitize(v) if isinstance(v, str) else v for v in value]
            else:
                sanitized[key] = value

        return sanitized
