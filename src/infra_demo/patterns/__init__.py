"""
Infrastructure patterns (L3) for complete application deployments.

These patterns combine L2 constructs into a deployable stack.
"""

from .container_app import ContainerAppPattern

__all__ = ["ContainerAppPattern"]
