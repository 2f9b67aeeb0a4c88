"""
Naming utilities for resources declared by the stack constructs.

Physical resource names are derived from a component name ("backend") and an
item ("task-role"); CloudFormation logical ids are the CamelCase form of the
same parts.
"""

import hashlib
import re
from typing import Dict, Optional


class NamingConvention:
    """Derives physical names and logical ids for stack resources."""

    # Resource name validation pattern
    RESOURCE_NAME_PATTERN = re.compile(r'^[a-z0-9-]+$')

    # Longest physical name AWS accepts per resource kind
    MAX_LENGTHS: Dict[str, int] = {
        "load_balancer": 32,
        "target_group": 32,
        "iam_role": 64,
        "s3_bucket": 63,
        "ecs_cluster": 255,
        "ecs_service": 255,
        "ecr_repository": 256,
    }

    @classmethod
    def validate_resource_name(cls, name: str) -> bool:
        """Check that a name only uses lowercase letters, digits and hyphens."""
        return bool(cls.RESOURCE_NAME_PATTERN.match(name))

    @classmethod
    def prefix(cls, name: str, item: str) -> str:
        """
        Build the physical name of an item belonging to a component.

        Args:
            name: Component name (e.g., "backend")
            item: Item within the component (e.g., "execution-role")

        Returns:
            Prefixed name (e.g., "backend-execution-role")

        Raises:
            ValueError: If the resulting name is invalid
        """
        resource_name = f"{name}-{item}"
        if not cls.validate_resource_name(resource_name):
            raise ValueError(
                f"Invalid resource name: {resource_name}. "
                "Must contain only lowercase letters, numbers, and hyphens."
            )
        return resource_name

    @classmethod
    def logical_id(cls, *parts: str) -> str:
        """
        Build a CloudFormation logical id from name parts.

        "backend", "task-role" -> "BackendTaskRole"
        """
        words = []
        for part in parts:
            words.extend(w for w in re.split(r'[^A-Za-z0-9]+', part) if w)
        if not words:
            raise ValueError("Logical id needs at least one alphanumeric part")
        return "".join(w[0].upper() + w[1:] for w in words)

    @classmethod
    def fit(cls, name: str, kind: str) -> str:
        """
        Shorten a name to the length limit of a resource kind.

        Names that fit are returned unchanged; longer names are truncated and
        suffixed with a short hash of the full name so they stay unique.
        """
        limit = cls.MAX_LENGTHS.get(kind)
        if limit is None:
            raise ValueError(f"Unknown resource kind: {kind}")
        if len(name) <= limit:
            return name

        digest = hashlib.sha256(name.encode("utf-8")).hexdigest()[:6]
        head = name[: limit - len(digest) - 1].rstrip("-")
        return f"{head}-{digest}"


def get_resource_name(name: str, item: str, kind: Optional[str] = None) -> str:
    """Convenience function for a prefixed, length-checked resource name."""
    resource_name = NamingConvention.prefix(name, item)
    if kind:
        resource_name = NamingConvention.fit(resource_name, kind)
    return resource_name


def logical_id(*parts: str) -> str:
    """Convenience function for a CloudFormation logical id."""
    return NamingConvention.logical_id(*parts)
