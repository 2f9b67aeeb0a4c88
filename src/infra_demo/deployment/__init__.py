"""
Deployment utilities for managing infrastructure and application deployments.
"""

from .base_deployer import BaseDeployer, DeploymentResult, DeploymentStatus
from .images import ImagePusher
from .infrastructure import InfrastructureDeployer
from .static_files import StaticFileUploader

__all__ = [
    "BaseDeployer",
    "DeploymentResult",
    "DeploymentStatus",
    "ImagePusher",
    "InfrastructureDeployer",
    "StaticFileUploader",
]
