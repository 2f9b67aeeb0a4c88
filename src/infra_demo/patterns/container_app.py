"""Containerized backend behind a load balancer, with an optional CDN frontend."""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from troposphere import Template

from ..config import ProjectConfig
from ..constructs.compute import ComputeCluster, TaskHandle
from ..constructs.distribution import EdgeDistribution
from ..constructs.load_balancer import LoadBalancer, RoutingRule
from ..constructs.network import NetworkConstruct
from ..constructs.registry import BuildAction, ImagePublisher, PublishedImage
from ..constructs.storage import StaticContentOrigin

logger = logging.getLogger(__name__)


class ContainerAppPattern:
    """
    Complete container application pattern with:
    - VPC with public and private subnets
    - ECS cluster running the backend image on Fargate
    - Application load balancer routing to the backend
    - S3 bucket and CloudFront distribution for the frontend (optional)
    """

    def __init__(
        self,
        config: ProjectConfig,
        environment: str,
        backend_path: Optional[Union[str, Path]] = None,
        frontend_path: Optional[Union[str, Path]] = None,
    ):
        """Initialize the pattern.

        Args:
            config: Project configuration
            environment: Deployment environment (dev, staging, prod)
            backend_path: Docker build context, ``config.backend_path`` by default
            frontend_path: Frontend build output, ``config.frontend_build_dir`` by default
        """
        self.config = config
        self.environment = environment
        self.stack_name = config.get_stack_name(environment)
        self.backend_path = Path(backend_path) if backend_path else config.resolve_path(config.backend_path)
        self.frontend_path = Path(frontend_path) if frontend_path else config.resolve_path(config.frontend_build_dir)

        self.template = Template()
        self.template.set_version("2010-09-09")
        self.template.set_description(
            f"{config.display_name} - {environment.upper()} Environment"
        )

        self.backend_image: Optional[PublishedImage] = None
        self.backend_task: Optional[TaskHandle] = None
        self.backend_rule: Optional[RoutingRule] = None
        self.static_origin: Optional[StaticContentOrigin] = None
        self.distribution: Optional[EdgeDistribution] = None

        # Build the infrastructure
        self._build()

    def _build(self):
        """Build the complete infrastructure."""
        config = self.config

        network_config = {
            "vpc": {
                "cidr": config.vpc_cidr,
                "azs": config.availability_zones,
                "enable_nat_gateway": config.enable_nat_gateway,
                "single_nat_gateway": config.single_nat_gateway,
            },
            "subnets": {
                "public": config.public_subnet_cidrs,
                "private": config.private_subnet_cidrs,
            },
            "container_port": config.container_port,
        }
        self.network = NetworkConstruct(self.template, network_config, self.environment)

        compute_config = {
            "task": {
                "cpu": config.container_cpu,
                "memory": config.container_memory,
                "container_port": config.container_port,
            },
            "monitoring": {"log_retention_days": config.log_retention_days},
        }
        self.cluster = ComputeCluster(
            self.template, compute_config, self.environment, self.stack_name
        )

        self.publisher = ImagePublisher(
            self.template,
            {"account_id": config.aws_account_id, "region": config.aws_region},
            self.environment,
        )

        lb_config = {
            "listener": {"rule_priority": config.listener_rule_priority},
            "target_group": {"health_check_path": config.health_check_path},
            "service": {"desired_count": config.desired_count},
        }
        self.load_balancer = LoadBalancer(
            self.template, lb_config, self.environment, self.stack_name, self.network
        )

        if self.backend_path:
            self._build_backend()

        if self.frontend_path:
            self._build_frontend()

    def _build_backend(self):
        """Publish the backend image and run it behind the load balancer."""
        name = self.config.backend_name
        self.backend_image = self.publisher.publish(name, self.backend_path)
        self.backend_task = self.cluster.run(
            name,
            self.backend_image.tag,
            dependency=self.backend_image.build_action,
        )
        self.backend_rule = self.load_balancer.expose(
            name,
            self.backend_task,
            self.load_balancer.default_security_scope(),
        )
        logger.info(f"Backend {name} exposed with rule priority {self.backend_rule.priority}")

    def _build_frontend(self):
        """Serve the frontend from S3 and route API paths to the load balancer."""
        self.static_origin = StaticContentOrigin(
            self.template,
            {"extensions": self.config.static_file_extensions},
            self.environment,
            self.config.frontend_name,
            self.frontend_path,
        )
        self.distribution = EdgeDistribution(
            self.template,
            {"price_class": self.config.cloudfront_price_class},
            self.environment,
            self.static_origin.as_origin(),
        )
        if self.backend_rule is not None:
            self.distribution.add_origin(
                self.load_balancer.as_origin(), self.config.backend_path_patterns
            )

    @property
    def build_actions(self) -> List[BuildAction]:
        """Image builds that must run before the stack is deployed."""
        return self.cluster.build_actions

    def to_dict(self) -> Dict[str, Any]:
        """Convert template to dictionary."""
        return json.loads(self.template.to_json())

    def to_yaml(self) -> str:
        """Convert template to YAML."""
        return self.template.to_yaml()

    def to_json(self) -> str:
        """Convert template to JSON."""
        return self.template.to_json()
