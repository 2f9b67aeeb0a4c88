"""
Configuration management for the demo application stack.

Handles project-level variables such as region, network layout, container
sizing and the locations of the backend and frontend sources.
"""

import os
import yaml
from pathlib import Path
from typing import Dict, Any, Optional, Union
from dataclasses import dataclass, field


@dataclass
class ProjectConfig:
    """Configuration for a deployable application stack."""

    # Project identification
    name: str
    display_name: str
    aws_region: str = "us-east-1"
    aws_account_id: Optional[str] = None

    # Environment settings
    environments: list[str] = field(default_factory=lambda: ["dev", "staging", "prod"])
    default_environment: str = "staging"

    # Stack naming
    stack_name_pattern: str = "{project}-{environment}"

    # Network
    vpc_cidr: str = "10.0.0.0/16"
    availability_zones: list[str] = field(default_factory=lambda: ["a", "b", "c"])
    public_subnet_cidrs: list[str] = field(
        default_factory=lambda: ["10.0.101.0/24", "10.0.102.0/24", "10.0.103.0/24"]
    )
    private_subnet_cidrs: list[str] = field(
        default_factory=lambda: ["10.0.1.0/24", "10.0.2.0/24", "10.0.3.0/24"]
    )
    enable_nat_gateway: bool = True
    single_nat_gateway: bool = True

    # Container workload
    container_cpu: int = 256
    container_memory: int = 512
    container_port: int = 80
    desired_count: int = 1

    # Load balancer
    health_check_path: str = "/posts"
    listener_rule_priority: int = 100

    # Sources
    backend_name: str = "backend"
    backend_path: str = "."
    frontend_name: str = "frontend"
    frontend_build_dir: Optional[str] = None
    backend_path_patterns: list[str] = field(
        default_factory=lambda: ["/posts", "/posts/*"]
    )

    # Static content
    static_file_extensions: list[str] = field(
        default_factory=lambda: [".json", ".js", ".html", ".png", ".ico", ".txt", ".map"]
    )

    # CloudFront configuration
    cloudfront_price_class: str = "PriceClass_100"

    # Monitoring
    log_retention_days: int = 30

    def format_name(self, pattern: str, **kwargs) -> str:
        """Format a naming pattern with project variables."""
        variables = {
            "project": self.name,
            "display_name": self.display_name,
            "account_id": self.aws_account_id or "unknown",
            "region": self.aws_region,
            **kwargs
        }
        return pattern.format(**variables)

    def get_stack_name(self, environment: str) -> str:
        """Get the CloudFormation stack name for an environment."""
        return self.format_name(self.stack_name_pattern, environment=environment)

    def resolve_path(self, path: Optional[str], base_dir: Optional[Path] = None) -> Optional[Path]:
        """Resolve a configured source path relative to ``base_dir`` (cwd by default)."""
        if path is None:
            return None
        resolved = Path(path).expanduser()
        if not resolved.is_absolute():
            resolved = (base_dir or Path.cwd()) / resolved
        return resolved.resolve()

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary."""
        return {
            k: v for k, v in self.__dict__.items()
            if not k.startswith('_')
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProjectConfig":
        """Create config from dictionary."""
        return cls(**data)


class ConfigManager:
    """Loads project configurations from defaults and YAML overrides."""

    DEFAULT_CONFIGS = {
        "docker-infra-demo": {
            "name": "docker-infra-demo",
            "display_name": "Docker Infra Demo",
            "aws_region": "us-east-1",
            "backend_name": "backend",
            "backend_path": ".",
            "frontend_name": "frontend",
        },
    }

    def __init__(self, config_dir: Optional[Union[str, Path]] = None):
        """Initialize config manager."""
        self.config_dir = Path(config_dir) if config_dir else Path.cwd() / "config"
        self._cache: Dict[str, ProjectConfig] = {}
        self._load_configs()

    def _load_configs(self) -> None:
        """Load all project configurations."""
        names = set(self.DEFAULT_CONFIGS)
        if self.config_dir.exists():
            names.update(p.stem for p in self.config_dir.glob("*.yaml"))

        for project_name in sorted(names):
            self._cache[project_name] = self._load(project_name)

    def _load(self, project_name: str) -> ProjectConfig:
        config_data = dict(self.DEFAULT_CONFIGS.get(project_name, {}))
        config_file = self.config_dir / f"{project_name}.yaml"
        if config_file.exists():
            with open(config_file, 'r') as f:
                overrides = yaml.safe_load(f) or {}
            # Merge with defaults
            config_data.update(overrides)
            config_data.setdefault("name", project_name)
            config_data.setdefault("display_name", project_name.replace("-", " ").title())
        return ProjectConfig.from_dict(config_data)

    def get_project_config(self, project_name: str) -> ProjectConfig:
        """Get configuration for a specific project."""
        if project_name not in self._cache:
            raise ValueError(f"Unknown project: {project_name}")
        return self._cache[project_name]

    def save_project_config(self, project_name: str, config: ProjectConfig) -> None:
        """Save project configuration to file."""
        self.config_dir.mkdir(parents=True, exist_ok=True)
        config_file = self.config_dir / f"{project_name}.yaml"
        with open(config_file, 'w') as f:
            yaml.dump(config.to_dict(), f, default_flow_style=False)
        self._cache[project_name] = config

    def list_projects(self) -> list[str]:
        """List all available projects."""
        return list(self._cache.keys())


# Singleton instance
_config_manager: Optional[ConfigManager] = None


def get_config_manager(config_dir: Optional[Union[str, Path]] = None) -> ConfigManager:
    """Get or create the config manager instance."""
    global _config_manager
    if _config_manager is None or config_dir is not None:
        _config_manager = ConfigManager(config_dir)
    return _config_manager


def get_project_config(project_name: str, config_dir: Optional[Union[str, Path]] = None) -> ProjectConfig:
    """Get configuration for a specific project."""
    manager = get_config_manager(config_dir)
    return manager.get_project_config(project_name)


def get_current_project_config() -> ProjectConfig:
    """Get the configuration named by ``PROJECT_NAME``, or the default project."""
    project_name = os.environ.get("PROJECT_NAME", "docker-infra-demo")
    return get_project_config(project_name)
