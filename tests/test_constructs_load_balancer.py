"""
Tests for load balancer constructs.
"""

from troposphere import GetAtt, Ref, Template

from infra_demo.constructs.compute import ComputeCluster
from infra_demo.constructs.load_balancer import (
    NOT_FOUND_MESSAGE,
    LoadBalancer,
    SecurityScope,
)
from infra_demo.constructs.network import NetworkConstruct


def count_resources(template: Template, resource_type: str) -> int:
    return sum(
        1 for resource in template.resources.values()
        if resource.resource_type == resource_type
    )


class TestLoadBalancer:
    """Test LoadBalancer class."""

    def setup_method(self):
        """Set up test fixtures."""
        self.template = Template()
        self.network = NetworkConstruct(
            self.template,
            {
                "vpc": {"azs": ["a", "b"]},
                "subnets": {"public": ["10.0.101.0/24", "10.0.102.0/24"]},
            },
            "test",
        )
        self.cluster = ComputeCluster(self.template, {}, "test", "demo-test")
        self.lb = LoadBalancer(
            self.template,
            {
                "listener": {"rule_priority": 100},
                "target_group": {"health_check_path": "/posts"},
                "service": {"desired_count": 1},
            },
            "test",
            "demo-test",
            self.network,
        )

    def test_load_balancer(self) -> None:
        """Test the load balancer resource."""
        lb = self.lb.load_balancer
        assert lb.Name == "demo-test"
        assert lb.Scheme == "internet-facing"
        assert len(lb.Subnets) == 2
        assert "LoadBalancerDNS" in self.template.outputs

    def test_default_listener_action(self) -> None:
        """Test that unmatched requests get a fixed 404."""
        action = self.lb.listener.DefaultActions[0]

        assert self.lb.listener.Port == 80
        assert action.Type == "fixed-response"
        assert action.FixedResponseConfig.StatusCode == "404"
        assert action.FixedResponseConfig.MessageBody == NOT_FOUND_MESSAGE

    def test_expose_default_host_rule(self) -> None:
        """Test that a rule without predicates matches the load balancer's own DNS name."""
        task = self.cluster.run("backend", "nginx:latest")
        rule = self.lb.expose("backend", task, self.lb.default_security_scope())

        assert rule.priority == 100
        conditions = rule.rule.Conditions
        assert len(conditions) == 1
        assert conditions[0].Field == "host-header"
        assert isinstance(conditions[0].HostHeaderConfig.Values[0], GetAtt)
        assert list(rule.match) == ["host"]

    def test_expose_target_group(self) -> None:
        """Test the target group created per exposed task."""
        task = self.cluster.run("backend", "nginx:latest")
        rule = self.lb.expose("backend", task, self.lb.default_security_scope())

        target = rule.target
        assert target.title == "BackendTargetGroup"
        assert target.Port == 80
        assert target.Protocol == "HTTP"
        assert target.TargetType == "ip"
        assert target.HealthCheckPath == "/posts"
        assert target.Name == "demo-test-backend-tg"
        assert rule.rule.Actions[0].Type == "forward"

    def test_expose_service(self) -> None:
        """Test the ECS service running the task."""
        task = self.cluster.run("backend", "nginx:latest")
        rule = self.lb.expose("backend", task, self.lb.default_security_scope())
        service = rule.service

        assert service.LaunchType == "FARGATE"
        assert service.DesiredCount == 1
        assert isinstance(service.TaskDefinition, Ref)

        vpc_config = service.NetworkConfiguration.AwsvpcConfiguration
        assert vpc_config.AssignPublicIp == "ENABLED"
        assert len(vpc_config.Subnets) == 2

        binding = service.LoadBalancers[0]
        assert binding.ContainerName == "backend"
        assert binding.ContainerPort == 80
        assert service.DependsOn == ["LoadBalancerListener", "BackendRule"]

    def test_each_expose_adds_one_rule(self) -> None:
        """Test that priorities increase and rules are never merged."""
        backend = self.cluster.run("backend", "nginx:latest")
        admin = self.cluster.run("admin", "nginx:latest")

        first = self.lb.expose("backend", backend, self.lb.default_security_scope())
        assert count_resources(self.template, "AWS::ElasticLoadBalancingV2::ListenerRule") == 1

        second = self.lb.expose(
            "admin", admin, self.lb.default_security_scope(), path_patterns=["/admin/*"]
        )
        assert count_resources(self.template, "AWS::ElasticLoadBalancingV2::ListenerRule") == 2
        assert count_resources(self.template, "AWS::ECS::Service") == 2

        assert (first.priority, second.priority) == (100, 101)
        assert [r.priority for r in self.lb.rules] == [100, 101]

    def test_expose_path_patterns(self) -> None:
        """Test path based routing."""
        task = self.cluster.run("backend", "nginx:latest")
        rule = self.lb.expose(
            "backend", task, self.lb.default_security_scope(), path_patterns=["/posts", "/posts/*"]
        )

        assert rule.match == {"path": ["/posts", "/posts/*"]}
        assert rule.rule.Conditions[0].Field == "path-pattern"
        assert rule.rule.Conditions[0].PathPatternConfig.Values == ["/posts", "/posts/*"]

    def test_expose_host_and_path(self) -> None:
        """Test combined host and path predicates."""
        task = self.cluster.run("backend", "nginx:latest")
        rule = self.lb.expose(
            "backend",
            task,
            self.lb.default_security_scope(),
            path_patterns=["/api/*"],
            host_headers=["api.example.com"],
        )

        assert [c.Field for c in rule.rule.Conditions] == ["path-pattern", "host-header"]
        assert rule.match["host"] == ["api.example.com"]

    def test_explicit_priority(self) -> None:
        """Test that explicit priorities are used and auto assignment continues after them."""
        backend = self.cluster.run("backend", "nginx:latest")
        admin = self.cluster.run("admin", "nginx:latest")

        first = self.lb.expose("backend", backend, self.lb.default_security_scope(), priority=10)
        second = self.lb.expose("admin", admin, self.lb.default_security_scope())

        assert first.rule.Priority == 10
        assert second.priority == 11

    def test_private_security_scope(self) -> None:
        """Test a service placed in custom subnets without public IPs."""
        task = self.cluster.run("backend", "nginx:latest")
        scope = SecurityScope(
            security_group_ids=["sg-123"],
            subnet_ids=["subnet-1"],
            assign_public_ip=False,
        )
        rule = self.lb.expose("backend", task, scope)

        vpc_config = rule.service.NetworkConfiguration.AwsvpcConfiguration
        assert vpc_config.AssignPublicIp == "DISABLED"
        assert vpc_config.SecurityGroups == ["sg-123"]
        assert vpc_config.Subnets == ["subnet-1"]

    def test_default_security_scope(self) -> None:
        """Test the default service placement."""
        scope = self.lb.default_security_scope()

        assert scope.assign_public_ip is True
        assert len(scope.subnet_ids) == 2
        assert scope.security_group_ids[0].to_dict() == {"Ref": "ServiceSecurityGroup"}

    def test_as_origin(self) -> None:
        """Test the load balancer as an edge origin."""
        origin = self.lb.as_origin()

        assert origin.origin_id == "LoadBalancerOrigin"
        assert not origin.is_s3
        assert origin.http_port == 80
        assert origin.to_cloudfront().CustomOriginConfig.OriginProtocolPolicy == "http-only"

    def test_template_renders(self) -> None:
        """Test that the whole template serializes."""
        task = self.cluster.run("backend", "nginx:latest")
        self.lb.expose("backend", task, self.lb.default_security_scope())

        resources = self.template.to_dict()["Resources"]
        assert resources["BackendRule"]["Properties"]["Priority"] == 100
        assert resources["LoadBalancerListener"]["Properties"]["DefaultActions"][0]["Type"] == "fixed-response"
