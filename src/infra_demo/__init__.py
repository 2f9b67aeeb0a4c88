"""
Docker infra demo - a container backend, a static frontend and the AWS
infrastructure that serves them.
"""

__version__ = "1.0.0"

from .config import ProjectConfig, get_project_config

__all__ = ["ProjectConfig", "get_project_config"]
