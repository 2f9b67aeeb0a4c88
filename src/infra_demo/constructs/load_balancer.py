"""
Load balancer constructs: a public entry point with a default deny rule and
per-service routing rules.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from troposphere import Export, GetAtt, Output, Ref, Sub, Tags, Template
from troposphere import ecs
from troposphere import elasticloadbalancingv2 as elbv2

from ..naming import NamingConvention, get_resource_name
from .compute import TaskHandle
from .network import NetworkConstruct
from .distribution import Origin

NOT_FOUND_MESSAGE = "Could not find the resource your are looking for"


@dataclass
class SecurityScope:
    """Network placement of a service: security groups and subnets."""

    security_group_ids: List[Any]
    subnet_ids: List[Any]
    assign_public_ip: bool = True


@dataclass
class RoutingRule:
    """A listener rule: match predicate plus target, evaluated by priority."""

    priority: int
    match: Dict[str, List[Any]]
    target: elbv2.TargetGroup
    rule: elbv2.ListenerRule
    service: Optional[ecs.Service] = None
    task: Optional[TaskHandle] = field(default=None, repr=False)


class LoadBalancer:
    """
    L2 Construct for an application load balancer.

    Creates the load balancer and an HTTP listener whose default action is a
    fixed 404 response. Services are attached with ``expose``; each call adds
    one routing rule and nothing is ever removed or reconciled here.
    """

    def __init__(
        self,
        template: Template,
        config: Dict[str, Any],
        environment: str,
        name: str,
        network: NetworkConstruct,
    ):
        """
        Initialize load balancer.

        Args:
            template: CloudFormation template to add resources to
            config: Load balancer configuration ("listener", "target_group", "service")
            environment: Deployment environment (dev/staging/prod)
            name: Load balancer name
            network: Network the load balancer and its services live in
        """
        self.template = template
        self.config = config
        self.environment = environment
        self.name = name
        self.network = network
        self.resources: Dict[str, Any] = {}
        self.rules: List[RoutingRule] = []

        self._create_load_balancer()
        self._create_listener()
        self._create_outputs()

    def _create_load_balancer(self):
        """Create the internet-facing application load balancer."""
        self.load_balancer = self.template.add_resource(
            elbv2.LoadBalancer(
                "LoadBalancer",
                Name=NamingConvention.fit(self.name, "load_balancer"),
                Scheme="internet-facing",
                Type="application",
                SecurityGroups=[Ref(self.network.load_balancer_sg)],
                Subnets=self.network.get_public_subnet_ids(),
                DependsOn=self.network.gateway_attachment.title,
                Tags=Tags(
                    Name=self.name,
                    Environment=self.environment
                )
            )
        )
        self.resources["load_balancer"] = self.load_balancer

    def _create_listener(self):
        """Create the HTTP listener with its default deny rule."""
        listener_config = self.config.get("listener", {})

        self.listener = self.template.add_resource(
            elbv2.Listener(
                "LoadBalancerListener",
                LoadBalancerArn=Ref(self.load_balancer),
                Port=listener_config.get("port", 80),
                Protocol="HTTP",
                DefaultActions=[
                    elbv2.Action(
                        Type="fixed-response",
                        FixedResponseConfig=elbv2.FixedResponseConfig(
                            ContentType="text/plain",
                            StatusCode="404",
                            MessageBody=listener_config.get(
                                "not_found_message", NOT_FOUND_MESSAGE
                            )
                        )
                    )
                ]
            )
        )
        self.resources["listener"] = self.listener

    def _create_outputs(self):
        """Create CloudFormation outputs for cross-stack references."""
        self.template.add_output(Output(
            "LoadBalancerDNS",
            Value=GetAtt(self.load_balancer, "DNSName"),
            Description="Load balancer DNS name",
            Export=Export(Sub("${AWS::StackName}-LoadBalancerDNS"))
        ))

    def _next_priority(self) -> int:
        start = self.config.get("listener", {}).get("rule_priority", 100)
        if not self.rules:
            return start
        return max(rule.priority for rule in self.rules) + 1

    def default_security_scope(self) -> SecurityScope:
        """Service security group in the public subnets, with public IPs."""
        return SecurityScope(
            security_group_ids=[Ref(self.network.service_sg)],
            subnet_ids=self.network.get_public_subnet_ids(),
            assign_public_ip=True,
        )

    def expose(
        self,
        name: str,
        task: TaskHandle,
        security_scope: SecurityScope,
        path_patterns: Optional[List[str]] = None,
        host_headers: Optional[List[Any]] = None,
        priority: Optional[int] = None,
    ) -> RoutingRule:
        """
        Attach a task behind this load balancer.

        Creates a target group, one listener rule and an ECS service running
        the task. Without a path or host predicate the rule matches requests
        addressed to the load balancer's own DNS name.

        Args:
            name: Service name
            task: Task returned by ``ComputeCluster.run``
            security_scope: Security groups and subnets for the service
            path_patterns: Path patterns the rule matches
            host_headers: Host headers the rule matches
            priority: Explicit rule priority (next free one by default)

        Returns:
            The routing rule that was added
        """
        target_config = self.config.get("target_group", {})
        service_config = self.config.get("service", {})

        target_group = self.template.add_resource(
            elbv2.TargetGroup(
                NamingConvention.logical_id(name, "target-group"),
                Name=get_resource_name(f"{self.name}-{name}", "tg", "target_group"),
                Port=task.container_port,
                Protocol="HTTP",
                TargetType="ip",
                VpcId=self.network.get_vpc_id(),
                HealthCheckPath=target_config.get("health_check_path", "/"),
                Matcher=elbv2.Matcher(HttpCode="200"),
                DependsOn=self.listener.title,
                Tags=Tags(
                    Name=get_resource_name(f"{self.name}-{name}", "tg", "target_group"),
                    Environment=self.environment
                )
            )
        )

        match: Dict[str, List[Any]] = {}
        conditions = []
        if path_patterns:
            match["path"] = list(path_patterns)
            conditions.append(
                elbv2.Condition(
                    Field="path-pattern",
                    PathPatternConfig=elbv2.PathPatternConfig(Values=list(path_patterns))
                )
            )
        if host_headers or not path_patterns:
            hosts = list(host_headers or [GetAtt(self.load_balancer, "DNSName")])
            match["host"] = hosts
            conditions.append(
                elbv2.Condition(
                    Field="host-header",
                    HostHeaderConfig=elbv2.HostHeaderConfig(Values=hosts)
                )
            )

        rule_priority = priority if priority is not None else self._next_priority()
        listener_rule = self.template.add_resource(
            elbv2.ListenerRule(
                NamingConvention.logical_id(name, "rule"),
                ListenerArn=Ref(self.listener),
                Priority=rule_priority,
                Actions=[
                    elbv2.ListenerRuleAction(
                        Type="forward",
                        TargetGroupArn=Ref(target_group)
                    )
                ],
                Conditions=conditions
            )
        )

        service = self.template.add_resource(
            ecs.Service(
                NamingConvention.logical_id(name, "service"),
                ServiceName=name,
                Cluster=Ref(task.cluster),
                LaunchType="FARGATE",
                DesiredCount=service_config.get("desired_count", 1),
                TaskDefinition=Ref(task.task_definition),
                NetworkConfiguration=ecs.NetworkConfiguration(
                    AwsvpcConfiguration=ecs.AwsvpcConfiguration(
                        AssignPublicIp="ENABLED" if security_scope.assign_public_ip else "DISABLED",
                        SecurityGroups=list(security_scope.security_group_ids),
                        Subnets=list(security_scope.subnet_ids)
                    )
                ),
                LoadBalancers=[
                    ecs.LoadBalancer(
                        ContainerName=task.name,
                        ContainerPort=task.container_port,
                        TargetGroupArn=Ref(target_group)
                    )
                ],
                DependsOn=[self.listener.title, listener_rule.title],
                Tags=Tags(
                    Name=name,
                    Environment=self.environment
                )
            )
        )

        routing_rule = RoutingRule(
            priority=rule_priority,
            match=match,
            target=target_group,
            rule=listener_rule,
            service=service,
            task=task,
        )
        self.rules.append(routing_rule)
        return routing_rule

    def as_origin(self, origin_id: str = "LoadBalancerOrigin") -> Origin:
        """Expose the load balancer as an HTTP origin for the edge."""
        return Origin(
            origin_id=origin_id,
            domain_name=GetAtt(self.load_balancer, "DNSName"),
            http_port=self.config.get("listener", {}).get("port", 80),
        )

    def get_dns_name(self):
        """Get load balancer DNS name."""
        return GetAtt(self.load_balancer, "DNSName")
