"""
Infrastructure constructs (L2) for building cloud resources.
"""

from .compute import ComputeCluster, TaskHandle
from .distribution import EdgeDistribution, Origin
from .load_balancer import LoadBalancer, RoutingRule, SecurityScope
from .network import NetworkConstruct
from .registry import BuildAction, ImagePublisher, ImageReference, PublishedImage
from .storage import StaticContentOrigin, StaticFile, collect_static_files

__all__ = [
    "NetworkConstruct",
    "ImagePublisher",
    "ImageReference",
    "BuildAction",
    "PublishedImage",
    "ComputeCluster",
    "TaskHandle",
    "LoadBalancer",
    "RoutingRule",
    "SecurityScope",
    "StaticContentOrigin",
    "StaticFile",
    "collect_static_files",
    "EdgeDistribution",
    "Origin",
]
